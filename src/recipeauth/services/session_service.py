"""Per-request session resolution with silent access rotation.

Decision table for the (access, refresh) cookie pair:
1. No access credential: anonymous, cookies untouched.
2. Access verifies: authenticated.
3. Access EXPIRED and refresh present: mint one new access credential from
   the refresh credential. Success authenticates and attaches the new
   token; any failure clears both cookies. No retry within a request.
4. Access EXPIRED without refresh, or INVALID/MALFORMED/REVOKED:
   anonymous, both cookies cleared.

Resolution runs under a single deadline (SecurityConfig.store_timeout).
A timeout or unreachable store fails closed: anonymous, cookies cleared.
"""

import asyncio
import logging
from dataclasses import dataclass

from recipeauth.app.metrics.collector import (
    TOKEN_REJECTIONS_TOTAL,
    TOKEN_ROTATIONS_TOTAL,
)
from recipeauth.core.domain import (
    AccessGrant,
    Claims,
    Identity,
    Rejected,
    RejectReason,
)
from recipeauth.core.errors import StoreUnavailableError
from recipeauth.core.logging_schema import LogEvent
from recipeauth.services.token_service import TokenIssuer, TokenVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionOutcome:
    """What the middleware should do with the request and its response.

    access_claims are the claims of the access credential in effect for
    this request (the presented one, or the freshly rotated one).
    """

    identity: Identity | None = None
    reason: RejectReason | None = None
    new_access: AccessGrant | None = None
    access_claims: Claims | None = None
    clear_credentials: bool = False

    @property
    def authenticated(self) -> bool:
        return self.identity is not None

    @property
    def rotated(self) -> bool:
        return self.new_access is not None


ANONYMOUS = SessionOutcome()


def _identity(claims: Claims) -> Identity | None:
    if claims.role is None:
        return None
    return Identity(user_id=claims.user_id, role=claims.role)


class SessionResolver:
    """Turns a cookie pair into an authentication outcome."""

    def __init__(
        self, verifier: TokenVerifier, issuer: TokenIssuer, timeout: float
    ) -> None:
        self._verifier = verifier
        self._issuer = issuer
        self._timeout = timeout

    async def resolve(
        self, access_token: str | None, refresh_token: str | None
    ) -> SessionOutcome:
        if not access_token:
            return ANONYMOUS

        try:
            async with asyncio.timeout(self._timeout):
                return await self._resolve(access_token, refresh_token)
        except (TimeoutError, StoreUnavailableError) as exc:
            logger.error(
                "Session resolution failed closed",
                extra={
                    "event": LogEvent.SESSION_FAILED_CLOSED,
                    "error_type": type(exc).__name__,
                    "timeout_s": self._timeout,
                },
            )
            return SessionOutcome(clear_credentials=True)

    async def _resolve(
        self, access_token: str, refresh_token: str | None
    ) -> SessionOutcome:
        result = await self._verifier.verify_access(access_token)
        if not isinstance(result, Rejected):
            identity = _identity(result.claims)
            if identity is None:
                return self._reject(RejectReason.INVALID, "access")
            return SessionOutcome(identity=identity, access_claims=result.claims)

        if result.reason is RejectReason.EXPIRED and refresh_token:
            return await self._rotate(refresh_token)

        return self._reject(result.reason, "access")

    async def _rotate(self, refresh_token: str) -> SessionOutcome:
        grant = await self._issuer.issue_access_only(refresh_token)
        if isinstance(grant, Rejected):
            TOKEN_ROTATIONS_TOTAL.labels(outcome="failed").inc()
            return self._reject(grant.reason, "refresh")

        identity = _identity(grant.claims)
        if identity is None:
            TOKEN_ROTATIONS_TOTAL.labels(outcome="failed").inc()
            return self._reject(RejectReason.INVALID, "refresh")

        TOKEN_ROTATIONS_TOTAL.labels(outcome="success").inc()
        logger.info(
            "Access token rotated",
            extra={
                "event": LogEvent.TOKEN_ROTATED,
                "user_id": grant.claims.user_id,
                "role": grant.claims.role,
                "expires_at": grant.claims.expires_at.isoformat(),
            },
        )
        return SessionOutcome(
            identity=identity,
            new_access=grant,
            access_claims=grant.claims,
        )

    def _reject(self, reason: RejectReason, token_type: str) -> SessionOutcome:
        TOKEN_REJECTIONS_TOTAL.labels(reason=reason).inc()
        logger.info(
            "Credential rejected",
            extra={
                "event": LogEvent.TOKEN_REJECTED,
                "reason": reason,
                "token_type": token_type,
            },
        )
        return SessionOutcome(reason=reason, clear_credentials=True)
