"""Authentication API endpoints.

Endpoints:
- POST /api/v1/auth/register - Create a `user` account
- POST /api/v1/auth/login - Login with email/password, sets credential cookies
- POST /api/v1/auth/refresh - Rotate the access credential explicitly
- POST /api/v1/auth/logout - Revoke the session's credentials, clear cookies
- GET /api/v1/auth/session - Current identity
- GET /api/v1/auth/me - Current account profile
- POST /api/v1/auth/change-password - Change password, ends the session
- POST /api/v1/auth/check-password-strength - Score a candidate password
- GET /api/v1/auth/security-status - Lock state, failures, password age
- GET /api/v1/auth/admin/revocations - Revocation ledger size (admin)
- PUT /api/v1/auth/admin/users/{user_id}/role - Change a role (admin)
- POST /api/v1/auth/admin/users/{user_id}/unlock - Clear a lockout (admin, moderator)

Credentials only ever travel in HttpOnly cookies, never in bodies.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Cookie, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from recipeauth.app.api.v1.dependencies import (
    AdminIdentity,
    AuthServiceDep,
    CurrentIdentity,
    SessionDep,
    StaffIdentity,
)
from recipeauth.app.config import get_settings
from recipeauth.app.cookies import (
    clear_auth_cookies,
    set_access_cookie,
    set_auth_cookies,
)
from recipeauth.core.errors import UnauthorizedError
from recipeauth.core.models import Role, User
from recipeauth.core.security import check_password_strength, is_common_password

router = APIRouter(prefix="/auth", tags=["auth"])

_REFRESH_COOKIE = get_settings().cookie.refresh_name


# =============================================================================
# Request/Response Models
# =============================================================================


class RegisterRequest(BaseModel):
    """Request schema for registration."""

    email: str = Field(..., max_length=254, pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    password: str = Field(..., min_length=1, max_length=128)


class LoginRequest(BaseModel):
    """Request schema for login."""

    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, max_length=128)


class RoleUpdateRequest(BaseModel):
    role: Role


class UserResponse(BaseModel):
    """Account profile. Never includes credentials."""

    id: str
    email: str
    username: str
    role: Role
    created_at: datetime | None = None
    last_login: datetime | None = None

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    """Response schema for session info."""

    user_id: str
    role: Role
    access_expires_at: datetime | None = None


class RefreshResponse(BaseModel):
    access_expires_at: datetime


class MessageResponse(BaseModel):
    message: str


class RevocationStatsResponse(BaseModel):
    revoked: int


class PasswordStrengthRequest(BaseModel):
    password: str = Field(..., min_length=1, max_length=1024)


class PasswordStrengthResponse(BaseModel):
    """Policy verdict for a candidate password. The password is not echoed."""

    score: int
    label: str
    is_valid: bool
    is_common: bool
    errors: list[str]


class SecurityStatusResponse(BaseModel):
    user_id: str
    account_locked: bool
    failed_login_attempts: int
    last_login: datetime | None = None
    password_changed_at: datetime | None = None
    password_age_days: int
    recommendations: list[str]


def _profile(user: User) -> UserResponse:
    return UserResponse.model_validate(user)


# =============================================================================
# Account
# =============================================================================


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, service: AuthServiceDep) -> UserResponse:
    """Create an account with role `user`.

    Returns 400 if the password fails the policy, 409 if the email or
    username is already taken.
    """
    user = await service.register(body.email, body.username, body.password)
    return _profile(user)


@router.post("/login")
async def login(
    body: LoginRequest, response: Response, service: AuthServiceDep
) -> UserResponse:
    """Login with email and password.

    On success, sets both credential cookies and returns the profile.
    On failure, returns 401 Unauthorized.
    On a locked account, returns 423 Locked.
    """
    result = await service.login(body.email, body.password)
    set_auth_cookies(response, result.tokens)
    return _profile(result.user)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    service: AuthServiceDep,
    session: SessionDep,
    refresh_token: Annotated[str | None, Cookie(alias=_REFRESH_COOKIE)] = None,
) -> Response:
    """Rotate the access credential using the refresh cookie.

    Reuses the access credential the session middleware already rotated
    on this request, if any. A rejected refresh credential clears both
    cookies and returns 401.
    """
    grant = session.new_access if session else None
    if grant is None:
        try:
            grant = await service.refresh(refresh_token)
        except UnauthorizedError as exc:
            response = JSONResponse(
                status_code=exc.status_code, content=exc.to_response().model_dump()
            )
            clear_auth_cookies(response)
            return response

    response = JSONResponse(
        content=RefreshResponse(
            access_expires_at=grant.claims.expires_at
        ).model_dump(mode="json")
    )
    set_access_cookie(response, grant)
    return response


@router.post("/logout")
async def logout(
    response: Response,
    service: AuthServiceDep,
    session: SessionDep,
    refresh_token: Annotated[str | None, Cookie(alias=_REFRESH_COOKIE)] = None,
) -> MessageResponse:
    """Logout by revoking both credentials and clearing the cookies.

    Always succeeds (even without cookies).
    """
    access_claims = session.access_claims if session else None
    await service.logout(access_claims, refresh_token)
    clear_auth_cookies(response)
    return MessageResponse(message="Logged out")


@router.get("/session")
async def get_session_info(
    identity: CurrentIdentity, session: SessionDep
) -> SessionResponse:
    """Get current session info.

    Returns 401 if not authenticated.
    """
    claims = session.access_claims if session else None
    return SessionResponse(
        user_id=identity.user_id,
        role=identity.role,
        access_expires_at=claims.expires_at if claims else None,
    )


@router.get("/me")
async def me(identity: CurrentIdentity, service: AuthServiceDep) -> UserResponse:
    """Current account profile."""
    user = await service.get_user(identity.user_id)
    if user is None:
        raise UnauthorizedError()
    return _profile(user)


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    response: Response,
    identity: CurrentIdentity,
    service: AuthServiceDep,
    session: SessionDep,
    refresh_token: Annotated[str | None, Cookie(alias=_REFRESH_COOKIE)] = None,
) -> MessageResponse:
    """Change password, then end the current session.

    Returns 400 if the current password is wrong or the new one fails
    the policy.
    """
    await service.change_password(
        identity,
        body.current_password,
        body.new_password,
        session.access_claims if session else None,
        refresh_token,
    )
    clear_auth_cookies(response)
    return MessageResponse(message="Password changed. Please log in again.")


@router.post("/check-password-strength")
async def check_strength(body: PasswordStrengthRequest) -> PasswordStrengthResponse:
    """Score a candidate password against the policy. Public."""
    check = check_password_strength(body.password)
    return PasswordStrengthResponse(
        score=check.score,
        label=check.label,
        is_valid=check.is_valid,
        is_common=is_common_password(body.password),
        errors=check.errors,
    )


@router.get("/security-status")
async def security_status(
    identity: CurrentIdentity, service: AuthServiceDep
) -> SecurityStatusResponse:
    """Security summary for the caller's own account."""
    status = await service.security_status(identity.user_id)
    return SecurityStatusResponse(
        user_id=status.user_id,
        account_locked=status.account_locked,
        failed_login_attempts=status.failed_login_attempts,
        last_login=status.last_login,
        password_changed_at=status.password_changed_at,
        password_age_days=status.password_age_days,
        recommendations=list(status.recommendations),
    )


# =============================================================================
# Administration
# =============================================================================


@router.get("/admin/revocations")
async def revocation_stats(
    _identity: AdminIdentity, service: AuthServiceDep
) -> RevocationStatsResponse:
    """Number of live revocation ledger entries."""
    return RevocationStatsResponse(revoked=await service.revocation_count())


@router.put("/admin/users/{user_id}/role")
async def update_role(
    user_id: str,
    body: RoleUpdateRequest,
    _identity: AdminIdentity,
    service: AuthServiceDep,
) -> UserResponse:
    """Change an account's role. Applies from the account's next rotation."""
    return _profile(await service.set_role(user_id, body.role))


@router.post("/admin/users/{user_id}/unlock")
async def unlock_user(
    user_id: str, _identity: StaffIdentity, service: AuthServiceDep
) -> UserResponse:
    """Clear an account's failure counter and lock."""
    return _profile(await service.unlock(user_id))

