"""Wiring of the session subsystem.

The lifespan builds one AuthComponents and stores it on app.state.auth;
the session middleware and the route dependencies read it from there.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from recipeauth.app.config import Settings
from recipeauth.core.interfaces import CredentialStore, RevocationLedger
from recipeauth.core.models import utc_now
from recipeauth.services.auth_service import AuthService
from recipeauth.services.lockout import LockoutPolicy
from recipeauth.services.session_service import SessionResolver
from recipeauth.services.token_service import TokenIssuer, TokenVerifier


@dataclass
class AuthComponents:
    settings: Settings
    store: CredentialStore
    ledger: RevocationLedger
    verifier: TokenVerifier
    issuer: TokenIssuer
    lockout: LockoutPolicy
    resolver: SessionResolver
    auth_service: AuthService


def build_components(
    settings: Settings,
    store: CredentialStore,
    ledger: RevocationLedger,
    clock: Callable[[], datetime] = utc_now,
) -> AuthComponents:
    """Assemble verifier, issuer, lockout, resolver and service around a store and ledger."""
    timeout = settings.security.store_timeout
    verifier = TokenVerifier(settings.jwt, ledger, clock=clock)
    issuer = TokenIssuer(settings.jwt, verifier, store, clock=clock)
    lockout = LockoutPolicy(store, settings.security, clock=clock)
    return AuthComponents(
        settings=settings,
        store=store,
        ledger=ledger,
        verifier=verifier,
        issuer=issuer,
        lockout=lockout,
        resolver=SessionResolver(verifier, issuer, timeout),
        auth_service=AuthService(
            store, ledger, verifier, issuer, lockout, timeout, clock=clock
        ),
    )
