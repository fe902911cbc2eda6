"""Core interfaces for the session subsystem."""

from recipeauth.core.interfaces.credential_store import CredentialStore
from recipeauth.core.interfaces.revocation import RevocationLedger

__all__ = [
    "CredentialStore",
    "RevocationLedger",
]
