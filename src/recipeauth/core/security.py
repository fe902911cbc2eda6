"""Security utilities for recipeauth.

Password hashing and verification using Argon2id, and the strength policy
applied to new passwords (registration and password change).
"""

import math
import re
from dataclasses import dataclass, field

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

_hasher = PasswordHasher()

# Password policy constants
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
SPECIAL_CHARS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
COMMON_PASSWORDS = frozenset({
    "password", "123456", "123456789", "qwerty", "abc123",
    "password123", "admin", "letmein", "welcome", "monkey",
    "dragon", "master", "football", "superman", "trustno1",
})
KEYBOARD_PATTERNS = ("qwerty", "asdfgh", "zxcvbn", "123456", "654321")

_SPECIAL_RE = re.compile(f"[{re.escape(SPECIAL_CHARS)}]")
_REPEAT_RE = re.compile(r"(.)\1{2,}")


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    try:
        _hasher.verify(password_hash, password)
        return True
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


# Hash of a throwaway value, verified against when the account does not exist
# so unknown emails cost the same as wrong passwords.
DUMMY_PASSWORD_HASH = hash_password("recipeauth-dummy-password")


@dataclass
class PasswordCheck:
    """Outcome of the strength policy."""

    is_valid: bool
    score: int
    errors: list[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return strength_label(self.score)


def password_score(password: str) -> int:
    """Score a password from 0 to 100.

    Length, character classes, distinct characters and entropy each
    contribute a capped share.
    """
    score = 0.0
    score += min(len(password) * 4, 25)

    pool = 0
    if re.search(r"[a-z]", password):
        score += 10
        pool += 26
    if re.search(r"[A-Z]", password):
        score += 10
        pool += 26
    if re.search(r"\d", password):
        score += 10
        pool += 10
    if re.search(r"[^a-zA-Z0-9]", password):
        score += 15
        pool += 32

    score += min(len(set(password)) * 2, 20)

    if pool:
        entropy = len(password) * math.log2(pool)
        score += min(entropy / 2, 10)

    return min(round(score), 100)


def strength_label(score: int) -> str:
    if score >= 80:
        return "Very Strong"
    if score >= 60:
        return "Strong"
    if score >= 40:
        return "Medium"
    if score >= 20:
        return "Weak"
    return "Very Weak"


def is_common_password(password: str) -> bool:
    return password.lower() in COMMON_PASSWORDS


def check_password_strength(password: str) -> PasswordCheck:
    """Apply the password policy.

    Returns:
        PasswordCheck listing every violated rule
    """
    errors: list[str] = []

    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(
            f"Password must be no more than {PASSWORD_MAX_LENGTH} characters long"
        )
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not _SPECIAL_RE.search(password):
        errors.append("Password must contain at least one special character")

    lowered = password.lower()
    if is_common_password(password):
        errors.append("Password is too common")
    if _REPEAT_RE.search(password):
        errors.append(
            "Password cannot contain more than 2 consecutive identical characters"
        )
    if any(pattern in lowered for pattern in KEYBOARD_PATTERNS):
        errors.append("Password contains common keyboard patterns")

    return PasswordCheck(
        is_valid=not errors,
        score=password_score(password),
        errors=errors,
    )
