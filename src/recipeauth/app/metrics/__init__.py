"""Prometheus exposition for the auth service.

Metric definitions live in recipeauth.app.metrics.collector. Their values
are kept in PROMETHEUS_MULTIPROC_DIR so the login, rotation and lockout
counters of every uvicorn worker land in one scrape.
"""

import os
from pathlib import Path

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    generate_latest,
    multiprocess,
)
from starlette.responses import Response

from recipeauth.app.config import MetricsConfig

MULTIPROC_ENV = "PROMETHEUS_MULTIPROC_DIR"


def setup_metrics(config: MetricsConfig) -> Path | None:
    """Prepare the shared metric directory.

    An exported PROMETHEUS_MULTIPROC_DIR wins over METRICS_MULTIPROC_DIR.

    Returns:
        Directory in use, or None when metrics are disabled
    """
    if not config.enabled:
        return None
    path = Path(os.environ.get(MULTIPROC_ENV) or config.multiproc_dir)
    path.mkdir(parents=True, exist_ok=True)
    os.environ[MULTIPROC_ENV] = str(path)
    return path


def _registry() -> CollectorRegistry:
    if not os.environ.get(MULTIPROC_ENV):
        return REGISTRY
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    return registry


def get_metrics_response() -> Response:
    """Render all workers' metrics in Prometheus text format."""
    return Response(content=generate_latest(_registry()), media_type=CONTENT_TYPE_LATEST)
