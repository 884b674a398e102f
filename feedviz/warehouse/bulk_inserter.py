"""
Bulk Inserter

Legacy ingestion path: synchronous ``insert_rows_json`` calls into the daily
partitioned css_products table. Row-level rejections are collected and
returned, never raised.
"""

from typing import Any, Dict, Iterable, List

import structlog
from google.api_core import exceptions as api_exceptions
from google.cloud import bigquery
from pydantic import BaseModel, Field

from feedviz.exceptions import AppendError
from feedviz.metrics import ROWS_WRITTEN
from feedviz.warehouse.batch_streamer import DEFAULT_BATCH_SIZE, iter_batches
from feedviz.warehouse.provisioner import WarehouseProvisioner

logger = structlog.get_logger(__name__)


class InsertError(BaseModel):
    """Rejection of one row, indexed over the whole run"""
    index: int
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class InsertResult(BaseModel):
    """Outcome of a bulk insert run"""
    rows_inserted: int = 0
    batches: int = 0
    errors: List[InsertError] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


class BulkInserter:
    """Inserts mapped rows in chunks through the tabledata.insertAll API."""

    def __init__(
        self,
        client: bigquery.Client,
        provisioner: WarehouseProvisioner,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.client = client
        self.provisioner = provisioner
        self.batch_size = batch_size

    def insert_rows(
        self,
        dataset_name: str,
        location: str,
        rows: Iterable[Dict[str, Any]],
    ) -> InsertResult:
        """
        Provision the table, then insert every row.

        Raises:
            ProvisioningError: dataset or table could not be set up
            AppendError: an insert request itself was rejected
        """
        table = self.provisioner.ensure_ready(dataset_name, location)
        result = InsertResult()

        for batch in iter_batches(rows, self.batch_size):
            start = result.rows_inserted
            try:
                batch_errors = self.client.insert_rows_json(table, batch)
            except api_exceptions.GoogleAPIError as e:
                raise AppendError(
                    "Bulk insert request failed",
                    context={"dataset": dataset_name, "first_row": start, "rows": len(batch)},
                    original_exception=e,
                ) from e

            for entry in batch_errors:
                result.errors.append(
                    InsertError(index=start + int(entry.get("index", 0)), errors=entry.get("errors", []))
                )
            result.rows_inserted += len(batch)
            result.batches += 1
            ROWS_WRITTEN.labels(mode="insert").inc(len(batch))
            logger.debug("Inserted batch", first_row=start, rows=len(batch), errors=len(batch_errors))

        logger.info(
            "Bulk insert complete",
            dataset=dataset_name,
            rows=result.rows_inserted,
            batches=result.batches,
            rejected=len(result.errors),
        )
        return result
