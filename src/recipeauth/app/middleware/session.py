"""Session middleware.

Resolves the credential cookies once per request, exposes the result as
request.state.identity / request.state.session, and applies the outcome
to the response: a rotated access cookie, or both cookies cleared.
Handlers that set or delete credential cookies themselves win.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from recipeauth.app.components import AuthComponents
from recipeauth.app.cookies import (
    clear_auth_cookies,
    set_access_cookie,
    touches_auth_cookies,
)
from recipeauth.app.logging import bind_user

_SKIP_PATHS = ("/health", "/metrics")


class SessionMiddleware(BaseHTTPMiddleware):
    """Attach the caller's identity to every request.

    Usage:
        app.add_middleware(SessionMiddleware)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in _SKIP_PATHS:
            request.state.identity = None
            request.state.session = None
            return await call_next(request)

        auth: AuthComponents = request.app.state.auth
        cookie = auth.settings.cookie
        outcome = await auth.resolver.resolve(
            request.cookies.get(cookie.access_name),
            request.cookies.get(cookie.refresh_name),
        )
        request.state.identity = outcome.identity
        request.state.session = outcome
        if outcome.identity is not None:
            bind_user(outcome.identity.user_id)

        response = await call_next(request)

        if touches_auth_cookies(response):
            return response
        if outcome.new_access is not None:
            set_access_cookie(response, outcome.new_access)
        elif outcome.clear_credentials:
            clear_auth_cookies(response)
        return response
