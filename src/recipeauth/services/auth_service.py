"""Account and credential operations behind the /api/v1/auth routes.

Provides:
- register: create a `user` account after the password policy passes
- login: lockout check, password check, token pair issuance
- refresh: explicit access rotation from a refresh credential
- logout: write the session's jtis to the revocation ledger
- change_password: re-verify, re-hash, revoke the current session
- security_status: lock state, failed attempts and password age for the owner
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from recipeauth.app.metrics.collector import (
    LOGIN_ATTEMPTS_TOTAL,
    TOKEN_REVOCATIONS_TOTAL,
)
from recipeauth.core.domain import (
    AccessGrant,
    Claims,
    Identity,
    Rejected,
    TokenPair,
    Verified,
)
from recipeauth.core.errors import (
    AccountLockedError,
    InvalidRequestError,
    UnauthorizedError,
)
from recipeauth.core.interfaces import CredentialStore, RevocationLedger
from recipeauth.core.logging_schema import LogEvent
from recipeauth.core.models import Role, User, as_utc, utc_now
from recipeauth.core.security import (
    DUMMY_PASSWORD_HASH,
    check_password_strength,
    hash_password,
    verify_password,
)
from recipeauth.services.lockout import FailureOutcome, LockoutPolicy
from recipeauth.services.token_service import TokenIssuer, TokenVerifier

logger = logging.getLogger(__name__)

_LOGIN_FAILED_MESSAGE = "Invalid email or password"

PASSWORD_MAX_AGE_DAYS = 90


@dataclass(frozen=True)
class LoginResult:
    user: User
    tokens: TokenPair


@dataclass(frozen=True)
class SecurityStatus:
    """Account security summary shown to its owner."""

    user_id: str
    account_locked: bool
    failed_login_attempts: int
    last_login: datetime | None
    password_changed_at: datetime | None
    password_age_days: int
    recommendations: tuple[str, ...]


class AuthService:
    """Service for account authentication and session teardown."""

    def __init__(
        self,
        store: CredentialStore,
        ledger: RevocationLedger,
        verifier: TokenVerifier,
        issuer: TokenIssuer,
        lockout: LockoutPolicy,
        store_timeout: float,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._verifier = verifier
        self._issuer = issuer
        self._lockout = lockout
        self._store_timeout = store_timeout
        self._clock = clock

    async def register(self, email: str, username: str, password: str) -> User:
        """Create a new account with role `user`.

        Raises:
            InvalidRequestError: If the password fails the policy
            ConflictError: If the email or username is taken
        """
        check = check_password_strength(password)
        if not check.is_valid:
            raise InvalidRequestError("; ".join(check.errors))

        password_hash = hash_password(password)
        async with asyncio.timeout(self._store_timeout):
            user = await self._store.create_user(
                email=email, username=username, password_hash=password_hash
            )
        logger.info(
            "User registered",
            extra={"event": LogEvent.USER_REGISTERED, "user_id": user.id},
        )
        return user

    async def login(self, email: str, password: str) -> LoginResult:
        """Authenticate with email and password.

        Unknown accounts and wrong passwords share one generic message.

        Raises:
            UnauthorizedError: Unknown account or wrong password
            AccountLockedError: Account locked, or locked by this attempt
        """
        async with asyncio.timeout(self._store_timeout):
            user = await self._store.find_user_by_email(email)
        if user is None:
            # Equalize timing with the wrong-password path
            verify_password(password, DUMMY_PASSWORD_HASH)
            LOGIN_ATTEMPTS_TOTAL.labels(outcome="failed").inc()
            logger.info(
                "Login failed",
                extra={"event": LogEvent.LOGIN_FAILED, "reason": "unknown_account"},
            )
            raise UnauthorizedError(_LOGIN_FAILED_MESSAGE)

        if await self._lockout.is_locked(user):
            LOGIN_ATTEMPTS_TOTAL.labels(outcome="locked").inc()
            raise AccountLockedError()

        if not verify_password(password, user.password_hash):
            async with asyncio.timeout(self._store_timeout):
                outcome = await self._lockout.record_failure(user)
            if outcome is not FailureOutcome.COUNTED:
                LOGIN_ATTEMPTS_TOTAL.labels(outcome="locked").inc()
                raise AccountLockedError()
            LOGIN_ATTEMPTS_TOTAL.labels(outcome="failed").inc()
            raise UnauthorizedError(_LOGIN_FAILED_MESSAGE)

        async with asyncio.timeout(self._store_timeout):
            recorded = await self._lockout.record_success(user)
        if not recorded:
            LOGIN_ATTEMPTS_TOTAL.labels(outcome="locked").inc()
            raise AccountLockedError()

        tokens = self._issuer.issue_pair(user.id, Role(user.role))
        LOGIN_ATTEMPTS_TOTAL.labels(outcome="success").inc()
        logger.info(
            "Login succeeded",
            extra={
                "event": LogEvent.LOGIN_SUCCESS,
                "user_id": user.id,
                "role": user.role,
            },
        )
        return LoginResult(user=user, tokens=tokens)

    async def refresh(self, refresh_token: str | None) -> AccessGrant:
        """Mint a new access credential from a refresh credential.

        Raises:
            UnauthorizedError: Missing or rejected refresh credential
            StoreUnavailableError: Store or ledger unreachable
            TimeoutError: Store or ledger slower than store_timeout
        """
        if not refresh_token:
            raise UnauthorizedError()

        async with asyncio.timeout(self._store_timeout):
            grant = await self._issuer.issue_access_only(refresh_token)

        if isinstance(grant, Rejected):
            logger.info(
                "Refresh rejected",
                extra={
                    "event": LogEvent.TOKEN_REJECTED,
                    "reason": grant.reason,
                    "token_type": "refresh",
                },
            )
            raise UnauthorizedError()

        logger.info(
            "Access token rotated",
            extra={
                "event": LogEvent.TOKEN_ROTATED,
                "user_id": grant.claims.user_id,
                "role": grant.claims.role,
                "explicit": True,
            },
        )
        return grant

    async def _revoke(self, claims: Claims) -> None:
        await self._ledger.revoke(claims.jti, claims.expires_at)
        TOKEN_REVOCATIONS_TOTAL.labels(token_type=claims.token_type).inc()
        logger.info(
            "Token revoked",
            extra={
                "event": LogEvent.TOKEN_REVOKED,
                "user_id": claims.user_id,
                "token_type": claims.token_type,
                "expires_at": claims.expires_at.isoformat(),
            },
        )

    async def logout(
        self, access_claims: Claims | None, refresh_token: str | None
    ) -> int:
        """Revoke the session's access and refresh credentials.

        Credentials that no longer verify are skipped, so logout is
        idempotent.

        Returns:
            Number of ledger entries written

        Raises:
            StoreUnavailableError: Ledger unreachable
            TimeoutError: Ledger slower than store_timeout
        """
        async with asyncio.timeout(self._store_timeout):
            return await self._revoke_session(access_claims, refresh_token)

    async def _revoke_session(
        self, access_claims: Claims | None, refresh_token: str | None
    ) -> int:
        revoked = 0
        if access_claims is not None:
            await self._revoke(access_claims)
            revoked += 1

        if refresh_token:
            result = await self._verifier.verify_refresh(refresh_token)
            if isinstance(result, Verified):
                await self._revoke(result.claims)
                revoked += 1

        return revoked

    async def change_password(
        self,
        identity: Identity,
        current_password: str,
        new_password: str,
        access_claims: Claims | None,
        refresh_token: str | None,
    ) -> None:
        """Replace the password and end the current session.

        Raises:
            UnauthorizedError: If the account no longer exists
            InvalidRequestError: Wrong current password, or policy failure
        """
        async with asyncio.timeout(self._store_timeout):
            user = await self._store.find_user_by_id(identity.user_id)
        if user is None:
            raise UnauthorizedError()

        if not verify_password(current_password, user.password_hash):
            raise InvalidRequestError("Current password is incorrect")
        if new_password == current_password:
            raise InvalidRequestError(
                "New password must be different from the current password"
            )

        check = check_password_strength(new_password)
        if not check.is_valid:
            raise InvalidRequestError("; ".join(check.errors))

        new_hash = hash_password(new_password)
        async with asyncio.timeout(self._store_timeout):
            await self._store.update_password(user.id, new_hash, self._clock())
            await self._revoke_session(access_claims, refresh_token)
        logger.info(
            "Password changed",
            extra={"event": LogEvent.PASSWORD_CHANGED, "user_id": user.id},
        )

    async def get_user(self, user_id: str) -> User | None:
        async with asyncio.timeout(self._store_timeout):
            return await self._store.find_user_by_id(user_id)

    async def set_role(self, user_id: str, role: Role) -> User:
        """Change an account's role; takes effect at the next rotation.

        Raises:
            InvalidRequestError: If the account does not exist
        """
        async with asyncio.timeout(self._store_timeout):
            user = await self._store.update_role(user_id, role)
        if user is None:
            raise InvalidRequestError("User not found")
        return user

    async def unlock(self, user_id: str) -> User:
        """Clear the failure counter and any lock.

        Raises:
            InvalidRequestError: If the account does not exist
        """
        async with asyncio.timeout(self._store_timeout):
            user = await self._store.find_user_by_id(user_id)
            if user is None:
                raise InvalidRequestError("User not found")
            await self._store.reset_failed_login(user.id)
        user.failed_login_attempts = 0
        user.locked_until = None
        return user

    async def revocation_count(self) -> int:
        async with asyncio.timeout(self._store_timeout):
            return await self._ledger.count()

    async def security_status(self, user_id: str) -> SecurityStatus:
        """Summarize lock state, failures and password age for the owner.

        Raises:
            UnauthorizedError: If the account no longer exists
        """
        async with asyncio.timeout(self._store_timeout):
            user = await self._store.find_user_by_id(user_id)
        if user is None:
            raise UnauthorizedError()

        now = self._clock()
        changed_at = as_utc(user.password_changed_at or user.created_at)
        age_days = max((now - changed_at).days, 0)

        recommendations: list[str] = []
        if age_days >= PASSWORD_MAX_AGE_DAYS:
            recommendations.append(
                f"Change your password, it is older than {PASSWORD_MAX_AGE_DAYS} days"
            )
        if user.failed_login_attempts:
            recommendations.append(
                "Failed sign-in attempts were recorded since your last login"
            )

        return SecurityStatus(
            user_id=user.id,
            account_locked=user.is_locked(now),
            failed_login_attempts=user.failed_login_attempts,
            last_login=user.last_login,
            password_changed_at=user.password_changed_at,
            password_age_days=age_days,
            recommendations=tuple(recommendations),
        )
