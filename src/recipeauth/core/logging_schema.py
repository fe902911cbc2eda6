"""Logging field schema - v1.0

Standard fields (added to all logs):
- schema_version: Log schema version
- service: Service name (recipeauth)
- event: Event type (login_failed, token_rotated, etc.)
- trace_id: Request trace ID
- duration_ms: Duration in milliseconds

High cardinality fields (OK in logs, NOT in metric labels):
- user_id: User ID
- jti: Token identifier
"""

from enum import StrEnum


class LogEvent(StrEnum):
    """Standard log event types.

    Use these event types in the 'event' extra field for consistent
    log filtering and analysis.
    """

    # Lifecycle events
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"

    # API events
    REQUEST_COMPLETE = "request_complete"
    REQUEST_FAILED = "request_failed"
    REQUEST_SLOW = "request_slow"

    # Login events
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGIN_REJECTED_LOCKED = "login_rejected_locked"
    ACCOUNT_LOCKED = "account_locked"
    LOCK_EXPIRED = "lock_expired"
    USER_REGISTERED = "user_registered"
    PASSWORD_CHANGED = "password_changed"

    # Session events
    TOKEN_ROTATED = "token_rotated"
    TOKEN_REJECTED = "token_rejected"
    TOKEN_REVOKED = "token_revoked"
    SESSION_FAILED_CLOSED = "session_failed_closed"
    LEDGER_PURGED = "ledger_purged"

    # Infra events
    DB_CONNECTED = "db_connected"
    DB_ERROR = "db_error"
    REDIS_CONNECTED = "redis_connected"


class ErrorClass(StrEnum):
    """Error classification for structured error logging."""

    TRANSIENT = "transient"  # Store timeout, connection reset
    PERMANENT = "permanent"  # Bad credential, unknown account
    TIMEOUT = "timeout"
