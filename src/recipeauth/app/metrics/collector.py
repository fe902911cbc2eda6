"""Prometheus metrics definitions for HTTP traffic and session lifecycle."""

import os
from pathlib import Path

from prometheus_client import Counter, Histogram

# FAST: request handling incl. Argon2 verification (0.5ms ~ 5s)
_BUCKETS_FAST = (
    0.0005, 0.001, 0.002, 0.005, 0.01,
    0.02, 0.05, 0.1, 0.2, 0.5,
    1, 2, 5,
)

# Multiprocess values are mmap files; the directory must exist before
# any metric below is created.
_multiproc_dir = os.environ.get("PROMETHEUS_MULTIPROC_DIR", "/tmp/recipeauth_metrics")
Path(_multiproc_dir).mkdir(parents=True, exist_ok=True)
os.environ["PROMETHEUS_MULTIPROC_DIR"] = _multiproc_dir

# =============================================================================
# HTTP
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "recipeauth_http_requests_total",
    "HTTP requests by method, endpoint and status",
    ["method", "endpoint", "status"],
)

HTTP_REQUEST_DURATION = Histogram(
    "recipeauth_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=_BUCKETS_FAST,
)

# =============================================================================
# Session lifecycle
# =============================================================================
# Label values are bounded enums (outcome, reason, token_type); never user ids.

LOGIN_ATTEMPTS_TOTAL = Counter(
    "recipeauth_login_attempts_total",
    "Login attempts by outcome (success, failed, locked)",
    ["outcome"],
)

ACCOUNT_LOCKOUTS_TOTAL = Counter(
    "recipeauth_account_lockouts_total",
    "Accounts locked after reaching the failure threshold",
)

TOKEN_ROTATIONS_TOTAL = Counter(
    "recipeauth_token_rotations_total",
    "Access token rotations by outcome (success, failed)",
    ["outcome"],
)

TOKEN_REJECTIONS_TOTAL = Counter(
    "recipeauth_token_rejections_total",
    "Presented credentials refused, by reason",
    ["reason"],
)

TOKEN_REVOCATIONS_TOTAL = Counter(
    "recipeauth_token_revocations_total",
    "Token identifiers written to the revocation ledger",
    ["token_type"],
)
