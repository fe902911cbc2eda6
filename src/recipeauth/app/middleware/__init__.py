"""HTTP middleware."""

from recipeauth.app.middleware.logging import LoggingMiddleware
from recipeauth.app.middleware.session import SessionMiddleware

__all__ = ["LoggingMiddleware", "SessionMiddleware"]
