"""Services module."""

from recipeauth.services.auth_service import AuthService, LoginResult, SecurityStatus
from recipeauth.services.credential_store import SqlCredentialStore
from recipeauth.services.lockout import FailureOutcome, LockoutPolicy
from recipeauth.services.revocation import (
    InMemoryRevocationLedger,
    RedisRevocationLedger,
    sweep_ledger_loop,
)
from recipeauth.services.session_service import SessionOutcome, SessionResolver
from recipeauth.services.token_service import TokenIssuer, TokenVerifier

__all__ = [
    "AuthService",
    "FailureOutcome",
    "InMemoryRevocationLedger",
    "LockoutPolicy",
    "LoginResult",
    "RedisRevocationLedger",
    "SecurityStatus",
    "SessionOutcome",
    "SessionResolver",
    "SqlCredentialStore",
    "TokenIssuer",
    "TokenVerifier",
    "sweep_ledger_loop",
]
