"""Account lockout policy.

Per-account state machine:
- Unlocked: failures increment the counter; the failure that brings it to
  the threshold locks the account until now + lockout_duration.
- Locked(until): every attempt before `until` is refused outright and the
  counter is left alone, so hammering a locked account cannot extend it.
- Lock elapsed: the next failure restarts the count at 1 and the next
  success clears the stale lock.
- Any successful login resets the counter and clears the lock.

The read in is_locked() only short-circuits the password check. The
decisive checks are made by the store in the same statement as each
write, so concurrent attempts on one account cannot slip past a lock.

Configuration via SecurityConfig (SECURITY_ env prefix).
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import StrEnum

from recipeauth.app.config import SecurityConfig
from recipeauth.app.metrics.collector import ACCOUNT_LOCKOUTS_TOTAL
from recipeauth.core.interfaces import CredentialStore
from recipeauth.core.logging_schema import LogEvent
from recipeauth.core.models import User, as_utc, utc_now

logger = logging.getLogger(__name__)


class FailureOutcome(StrEnum):
    """Result of recording a failed attempt."""

    COUNTED = "counted"
    LOCKED = "locked"
    # Another attempt locked the account first; nothing was counted
    REFUSED = "refused"


class LockoutPolicy:
    """Applies the lockout state machine through the credential store."""

    def __init__(
        self,
        store: CredentialStore,
        config: SecurityConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._threshold = config.lockout_threshold
        self._duration = timedelta(seconds=config.lockout_duration)
        self._clock = clock

    def _log_refused(self, user: User, now: datetime) -> None:
        extra: dict[str, object] = {
            "event": LogEvent.LOGIN_REJECTED_LOCKED,
            "user_id": user.id,
        }
        if user.locked_until is not None:
            locked_until = as_utc(user.locked_until)
            extra["locked_until"] = locked_until.isoformat()
            extra["remaining_s"] = int((locked_until - now).total_seconds())
        logger.warning("Login attempt on locked account", extra=extra)

    async def is_locked(self, user: User) -> bool:
        """Check the lock on a loaded account before credentials are evaluated."""
        if user.locked_until is None:
            return False

        now = self._clock()
        if user.is_locked(now):
            self._log_refused(user, now)
            return True

        logger.info(
            "Account lock expired",
            extra={"event": LogEvent.LOCK_EXPIRED, "user_id": user.id},
        )
        return False

    async def record_failure(self, user: User) -> FailureOutcome:
        """Count a failed attempt, locking the account at the threshold."""
        now = self._clock()
        until = now + self._duration
        count = await self._store.increment_failed_login(
            user.id, now, self._threshold, until
        )
        if count is None:
            self._log_refused(user, now)
            return FailureOutcome.REFUSED

        user.failed_login_attempts = count
        if count < self._threshold:
            user.locked_until = None
            logger.info(
                "Login failed",
                extra={
                    "event": LogEvent.LOGIN_FAILED,
                    "user_id": user.id,
                    "failed_attempts": count,
                },
            )
            return FailureOutcome.COUNTED

        user.locked_until = until
        ACCOUNT_LOCKOUTS_TOTAL.inc()
        logger.warning(
            "Account locked after repeated failures",
            extra={
                "event": LogEvent.ACCOUNT_LOCKED,
                "user_id": user.id,
                "failed_attempts": count,
                "locked_until": until.isoformat(),
            },
        )
        return FailureOutcome.LOCKED

    async def record_success(self, user: User) -> bool:
        """Reset counter and lock, and stamp last_login.

        Returns:
            False if a concurrent attempt locked the account first
        """
        now = self._clock()
        if not await self._store.record_login(user.id, now):
            self._log_refused(user, now)
            return False
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = now
        return True
