"""FastAPI dependencies for identity and role checks.

The session middleware has already resolved the credentials; these
dependencies only read request.state.

- anonymous caller on a protected route: 401 UNAUTHORIZED
- authenticated caller without an allowed role: 403 FORBIDDEN
"""

from collections.abc import Awaitable, Callable, Iterable
from typing import Annotated

from fastapi import Depends, Request

from recipeauth.app.components import AuthComponents
from recipeauth.core.domain import Identity
from recipeauth.core.errors import ForbiddenError, UnauthorizedError
from recipeauth.core.models import Role
from recipeauth.services.auth_service import AuthService
from recipeauth.services.session_service import SessionOutcome


def get_components(request: Request) -> AuthComponents:
    return request.app.state.auth


def get_auth_service(request: Request) -> AuthService:
    return get_components(request).auth_service


def get_session_outcome(request: Request) -> SessionOutcome | None:
    return getattr(request.state, "session", None)


def get_optional_identity(request: Request) -> Identity | None:
    return getattr(request.state, "identity", None)


def get_identity(
    identity: Annotated[Identity | None, Depends(get_optional_identity)],
) -> Identity:
    """Require an authenticated caller."""
    if identity is None:
        raise UnauthorizedError()
    return identity


def role_allows(role: Role, allowed: Iterable[Role]) -> bool:
    return role in set(allowed)


def require_role(*roles: Role) -> Callable[..., Awaitable[Identity]]:
    """Build a dependency admitting only callers holding one of `roles`.

    Usage:
        @router.get("/admin/x")
        async def x(identity: Annotated[Identity, Depends(require_role(Role.ADMIN))]):
            ...
    """
    allowed = frozenset(roles)

    async def dependency(
        identity: Annotated[Identity | None, Depends(get_optional_identity)],
    ) -> Identity:
        if identity is None:
            raise UnauthorizedError()
        if not role_allows(identity.role, allowed):
            raise ForbiddenError("Insufficient role")
        return identity

    return dependency


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
SessionDep = Annotated[SessionOutcome | None, Depends(get_session_outcome)]
OptionalIdentity = Annotated[Identity | None, Depends(get_optional_identity)]
CurrentIdentity = Annotated[Identity, Depends(get_identity)]
AdminIdentity = Annotated[Identity, Depends(require_role(Role.ADMIN))]
StaffIdentity = Annotated[Identity, Depends(require_role(Role.ADMIN, Role.MODERATOR))]
