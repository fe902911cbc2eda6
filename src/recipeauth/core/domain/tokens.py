"""Credential domain types.

Verification returns a tagged result instead of raising, so the rejection
cause survives until the session resolver logs it:

    result = await verifier.verify_access(token)
    match result:
        case Verified(claims):
            ...
        case Rejected(RejectReason.EXPIRED):
            ...
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from recipeauth.core.models import Role


class TokenType(StrEnum):
    """Value of the `type` claim."""

    ACCESS = "access"
    REFRESH = "refresh"


class RejectReason(StrEnum):
    """Why a presented credential was refused.

    Only logged; clients see a single UNAUTHORIZED for all of them.
    """

    MALFORMED = "malformed"  # Not a parseable token
    INVALID = "invalid"  # Bad signature, wrong type/audience/issuer, unknown user
    EXPIRED = "expired"
    REVOKED = "revoked"


@dataclass(frozen=True)
class Claims:
    """Verified token contents."""

    user_id: str
    token_type: TokenType
    jti: str
    issued_at: datetime
    expires_at: datetime
    role: Role | None = None  # Refresh tokens carry no role


@dataclass(frozen=True)
class Verified:
    claims: Claims


@dataclass(frozen=True)
class Rejected:
    reason: RejectReason


VerifyResult = Verified | Rejected


@dataclass(frozen=True)
class AccessGrant:
    """A newly minted access credential and its claims (rotation output)."""

    token: str
    claims: Claims


@dataclass(frozen=True)
class TokenPair:
    """Freshly issued access and refresh credentials."""

    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


@dataclass(frozen=True)
class Identity:
    """Per-request authenticated identity."""

    user_id: str
    role: Role
