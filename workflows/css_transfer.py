"""
Prefect Workflow Orchestration - CSS Products Transfer

Daily scheduled snapshot of the CSS catalog into BigQuery with:
- One transfer task per run
- Run summary returned as the flow result
- Failures raised so Prefect marks the run failed
"""

from typing import Optional

from prefect import flow, task, get_run_logger

from feedviz.config import IngestionMode, Settings, get_settings
from feedviz.pipeline import TransferPipeline


def settings_for_run(
    settings: Settings,
    mode: Optional[str] = None,
    dataset_name: Optional[str] = None,
) -> Settings:
    """Apply per-run parameters on top of the deployed configuration."""
    updates = {}
    if mode:
        updates["ingestion_mode"] = IngestionMode(mode)
    if dataset_name:
        updates["dataset_name"] = dataset_name
    if not updates:
        return settings
    return settings.model_copy(update={"warehouse": settings.warehouse.model_copy(update=updates)})


# =============================================================================
# TASKS
# =============================================================================

# No retries: a retry appends a second snapshot of rows already committed
@task(
    name="transfer_css_products",
    description="Read the CSS catalog and write it to BigQuery",
    retries=0,
)
def transfer_css_products(
    mode: Optional[str] = None,
    dataset_name: Optional[str] = None,
) -> dict:
    """Run one transfer and return its summary"""
    logger = get_run_logger()

    settings = settings_for_run(get_settings(), mode=mode, dataset_name=dataset_name)
    result = TransferPipeline(settings).run()

    logger.info(
        f"Transfer {result.status.value}: {result.rows_written} rows in "
        f"{result.batches} batches to {result.dataset}"
    )
    for error in result.errors:
        logger.warning(f"Row {error.index} rejected: {error.errors}")

    return result.model_dump(mode="json")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="daily_css_transfer",
    description="Daily snapshot of CSS products into BigQuery",
)
def daily_css_transfer(
    mode: Optional[str] = None,
    dataset_name: Optional[str] = None,
) -> dict:
    """
    Daily CSS products transfer.

    Steps:
    1. Resolve account and credentials
    2. Read every CSS product of the domain
    3. Stream (or bulk insert) the mapped rows
    """
    logger = get_run_logger()
    logger.info(f"Starting daily CSS transfer (mode={mode or 'configured'})")

    try:
        summary = transfer_css_products(mode=mode, dataset_name=dataset_name)
    except Exception as e:
        logger.error(f"CSS transfer failed: {e}")
        raise

    return summary


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

if __name__ == "__main__":
    daily_css_transfer.serve(name="daily-css-transfer", cron="0 5 * * *")
