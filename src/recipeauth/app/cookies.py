"""Cookie transport for access and refresh credentials.

Both cookies are HttpOnly and live as long as the refresh credential.
The access JWT's own exp is what bounds it; keeping the cookie longer
lets the session middleware see an expired access token and rotate it.
"""

from starlette.responses import Response

from recipeauth.app.config import CookieConfig, get_settings
from recipeauth.core.domain import AccessGrant, TokenPair


def _config() -> CookieConfig:
    return get_settings().cookie


def _set(response: Response, key: str, value: str) -> None:
    config = _config()
    response.set_cookie(
        key=key,
        value=value,
        httponly=True,
        samesite=config.samesite,
        secure=config.secure,
        path=config.path,
        max_age=get_settings().jwt.refresh_ttl,
    )


def set_access_cookie(response: Response, grant: AccessGrant) -> None:
    config = _config()
    _set(response, config.access_name, grant.token)


def set_auth_cookies(response: Response, tokens: TokenPair) -> None:
    config = _config()
    _set(response, config.access_name, tokens.access_token)
    _set(response, config.refresh_name, tokens.refresh_token)


def clear_auth_cookies(response: Response) -> None:
    config = _config()
    for key in (config.access_name, config.refresh_name):
        response.delete_cookie(
            key=key,
            path=config.path,
            secure=config.secure,
            httponly=True,
            samesite=config.samesite,
        )


def touches_auth_cookies(response: Response) -> bool:
    """Whether the handler already set or deleted a credential cookie."""
    config = _config()
    prefixes = (f"{config.access_name}=", f"{config.refresh_name}=")
    return any(
        value.startswith(prefixes)
        for value in response.headers.getlist("set-cookie")
    )
