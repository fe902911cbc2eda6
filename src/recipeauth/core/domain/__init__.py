"""Domain models and enums."""

from recipeauth.core.domain.tokens import (
    AccessGrant,
    Claims,
    Identity,
    Rejected,
    RejectReason,
    TokenPair,
    TokenType,
    Verified,
    VerifyResult,
)

__all__ = [
    "AccessGrant",
    "Claims",
    "Identity",
    "Rejected",
    "RejectReason",
    "TokenPair",
    "TokenType",
    "Verified",
    "VerifyResult",
]
