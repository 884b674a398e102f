"""
Prometheus metrics for transfer runs.

The transfer is a batch job, so metrics are pushed to a pushgateway at the
end of a run instead of being scraped.
"""

import structlog
from prometheus_client import REGISTRY, Counter, Histogram, push_to_gateway

logger = structlog.get_logger(__name__)

PUSH_JOB_NAME = "css_feedviz_transfer"


# =============================================================================
# METRICS
# =============================================================================

PRODUCTS_READ = Counter(
    "feedviz_css_products_read_total",
    "Total number of CSS products read from the catalog API",
)

ROWS_WRITTEN = Counter(
    "feedviz_rows_written_total",
    "Total number of rows submitted to the warehouse",
    ["mode"],
)

APPENDS = Counter(
    "feedviz_appends_total",
    "Write stream appends by outcome",
    ["status"],
)

TRANSFER_DURATION = Histogram(
    "feedviz_transfer_duration_seconds",
    "Wall time of a complete transfer run",
    ["mode", "status"],
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800, 3600),
)


def push_metrics(gateway_url: str, job: str = PUSH_JOB_NAME) -> None:
    """Push the process registry to a pushgateway; failures are only logged."""
    try:
        push_to_gateway(gateway_url, job=job, registry=REGISTRY)
    except OSError as e:
        logger.warning("Failed to push metrics", gateway=gateway_url, error=str(e))
