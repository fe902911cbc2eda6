"""Token issuance and verification.

Access and refresh credentials are HS256 JWTs signed with separate secrets:
- access: sub, role, type=access, jti, iat, exp (15 minutes)
- refresh: sub, type=refresh, jti, iat, exp (7 days)

Verification order is fixed: parse, signature, expiry, claim checks,
then the revocation ledger. A forged token is reported INVALID even if
it is also expired, and an expired token is reported EXPIRED even if it
was also revoked.

Configuration via JwtConfig (JWT_ env prefix).
"""

import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from recipeauth.app.config import JwtConfig
from recipeauth.core.domain import (
    AccessGrant,
    Claims,
    Rejected,
    RejectReason,
    TokenPair,
    TokenType,
    Verified,
    VerifyResult,
)
from recipeauth.core.interfaces import CredentialStore, RevocationLedger
from recipeauth.core.models import Role, utc_now

_REQUIRED_CLAIMS = ["sub", "type", "jti", "iat", "exp"]


def _new_jti() -> str:
    return secrets.token_hex(16)


class TokenVerifier:
    """Validates presented credentials and extracts their claims.

    Expiry is judged against the injected clock, the one TokenIssuer
    stamps iat and exp with.
    """

    def __init__(
        self,
        config: JwtConfig,
        ledger: RevocationLedger,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._ledger = ledger
        self._clock = clock

    def _decode(self, token: str, secret: str, expected: TokenType) -> VerifyResult:
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                secret,
                algorithms=[self._config.algorithm],
                audience=self._config.audience,
                issuer=self._config.issuer,
                options={
                    "require": _REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidSignatureError:
            return Rejected(RejectReason.INVALID)
        except jwt.DecodeError:
            return Rejected(RejectReason.MALFORMED)
        except jwt.InvalidTokenError:
            return Rejected(RejectReason.INVALID)

        try:
            issued_at = datetime.fromtimestamp(payload["iat"], UTC)
            expires_at = datetime.fromtimestamp(payload["exp"], UTC)
        except (TypeError, ValueError, OverflowError):
            return Rejected(RejectReason.INVALID)

        if expires_at <= self._clock():
            return Rejected(RejectReason.EXPIRED)

        if payload.get("type") != expected:
            return Rejected(RejectReason.INVALID)

        role: Role | None = None
        if expected is TokenType.ACCESS:
            try:
                role = Role(payload.get("role"))
            except ValueError:
                return Rejected(RejectReason.INVALID)

        return Verified(
            Claims(
                user_id=str(payload["sub"]),
                token_type=expected,
                jti=str(payload["jti"]),
                issued_at=issued_at,
                expires_at=expires_at,
                role=role,
            )
        )

    async def _verify(self, token: str, secret: str, expected: TokenType) -> VerifyResult:
        result = self._decode(token, secret, expected)
        if isinstance(result, Rejected):
            return result
        if await self._ledger.is_revoked(result.claims.jti):
            return Rejected(RejectReason.REVOKED)
        return result

    async def verify_access(self, token: str) -> VerifyResult:
        """Verify an access credential.

        Raises:
            StoreUnavailableError: If the revocation ledger cannot be read
        """
        return await self._verify(token, self._config.access_secret, TokenType.ACCESS)

    async def verify_refresh(self, token: str) -> VerifyResult:
        """Verify a refresh credential.

        Raises:
            StoreUnavailableError: If the revocation ledger cannot be read
        """
        return await self._verify(token, self._config.refresh_secret, TokenType.REFRESH)


class TokenIssuer:
    """Mints signed access and refresh credentials."""

    def __init__(
        self,
        config: JwtConfig,
        verifier: TokenVerifier,
        store: CredentialStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._verifier = verifier
        self._store = store
        self._clock = clock

    def _encode(
        self, claims: dict[str, Any], secret: str, ttl: int
    ) -> tuple[str, Claims]:
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + timedelta(seconds=ttl)
        jti = _new_jti()
        payload = {
            **claims,
            "jti": jti,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "iss": self._config.issuer,
            "aud": self._config.audience,
        }
        token = jwt.encode(payload, secret, algorithm=self._config.algorithm)
        role = claims.get("role")
        return token, Claims(
            user_id=claims["sub"],
            token_type=TokenType(claims["type"]),
            jti=jti,
            issued_at=issued_at,
            expires_at=expires_at,
            role=Role(role) if role else None,
        )

    def issue_access(self, user_id: str, role: Role) -> AccessGrant:
        token, claims = self._encode(
            {"sub": user_id, "role": str(role), "type": str(TokenType.ACCESS)},
            self._config.access_secret,
            self._config.access_ttl,
        )
        return AccessGrant(token=token, claims=claims)

    def issue_pair(self, user_id: str, role: Role) -> TokenPair:
        """Issue an access/refresh pair for an already authenticated user."""
        access = self.issue_access(user_id, role)
        refresh_token, refresh_claims = self._encode(
            {"sub": user_id, "type": str(TokenType.REFRESH)},
            self._config.refresh_secret,
            self._config.refresh_ttl,
        )
        return TokenPair(
            access_token=access.token,
            refresh_token=refresh_token,
            access_expires_at=access.claims.expires_at,
            refresh_expires_at=refresh_claims.expires_at,
        )

    async def issue_access_only(self, refresh_token: str) -> AccessGrant | Rejected:
        """Mint a new access credential from a refresh credential.

        The role is read from the credential store, so a role change takes
        effect at the next rotation. A refresh token naming a deleted
        account is rejected as INVALID.

        Raises:
            StoreUnavailableError: If the store or ledger cannot be reached
        """
        result = await self._verifier.verify_refresh(refresh_token)
        if isinstance(result, Rejected):
            return result

        user = await self._store.find_user_by_id(result.claims.user_id)
        if user is None:
            return Rejected(RejectReason.INVALID)

        return self.issue_access(user.id, Role(user.role))
