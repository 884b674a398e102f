"""
CSS products transfer

One run of the job: resolve the account, authenticate, read the CSS catalog,
map every product and write the rows with the configured ingestion mode.

Features:
- Streaming (hourly table) or legacy bulk insert (daily table)
- Structured run summary as a pydantic model
- Run metrics pushed to a pushgateway when configured
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

import structlog
from google.cloud import bigquery
from google.cloud.bigquery_storage_v1 import BigQueryWriteClient
from pydantic import BaseModel, Field

from feedviz.accounts.account_info import resolve_account_info
from feedviz.accounts.authenticator import Authenticator
from feedviz.config.settings import IngestionMode, Settings, get_settings
from feedviz.exceptions import FeedvizError
from feedviz.ingestion.catalog_reader import CatalogReader
from feedviz.metrics import TRANSFER_DURATION, push_metrics
from feedviz.transformation.row_mapper import TransferMarker, map_css_product
from feedviz.warehouse.batch_streamer import BatchStreamer
from feedviz.warehouse.bulk_inserter import BulkInserter, InsertError
from feedviz.warehouse.provisioner import WarehouseProvisioner
from feedviz.warehouse.schema import variant_for_mode
from feedviz.warehouse.write_stream import storage_stream_factory

logger = structlog.get_logger(__name__)


class TransferStatus(str, Enum):
    """Transfer run status"""
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class TransferResult(BaseModel):
    """Summary of one transfer run"""
    mode: IngestionMode
    status: TransferStatus
    dataset: str
    transfer_marker: str
    rows_written: int = 0
    batches: int = 0
    errors: List[InsertError] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0


def default_transfer_marker(mode: IngestionMode) -> TransferMarker:
    """Current UTC time for streaming runs, current UTC date for bulk inserts."""
    now = datetime.now(timezone.utc)
    return now if IngestionMode(mode) is IngestionMode.STREAM else now.date()


def _bigquery_client(credentials, project: Optional[str]) -> bigquery.Client:
    return bigquery.Client(project=project or credentials.project_id, credentials=credentials)


def _write_client(credentials) -> BigQueryWriteClient:
    return BigQueryWriteClient(credentials=credentials)


class TransferPipeline:
    """
    Runs CSS products transfers for the configured account.

    Collaborators are created from the credentials of each run; the factories
    exist so tests and callers can substitute them.

    Example:
        result = TransferPipeline(get_settings()).run()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        authenticator: Optional[Authenticator] = None,
        catalog_reader_factory: Callable[..., CatalogReader] = CatalogReader,
        bigquery_client_factory: Callable[..., bigquery.Client] = _bigquery_client,
        write_client_factory: Callable[..., BigQueryWriteClient] = _write_client,
    ):
        self.settings = settings or get_settings()
        self.authenticator = authenticator or Authenticator(self.settings.account.service_account_file)
        self.catalog_reader_factory = catalog_reader_factory
        self.bigquery_client_factory = bigquery_client_factory
        self.write_client_factory = write_client_factory

    def run(self, transfer_marker: Optional[TransferMarker] = None) -> TransferResult:
        """
        Execute one transfer.

        Args:
            transfer_marker: Timestamp or date stamped on every row; defaults to now

        Returns:
            TransferResult describing what was written

        Raises:
            FeedvizError: any failure; the run is logged before re-raising
        """
        warehouse = self.settings.warehouse
        mode = IngestionMode(warehouse.ingestion_mode)
        marker = transfer_marker or default_transfer_marker(mode)
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        status = TransferStatus.FAILED

        log = logger.bind(mode=mode.value, dataset=warehouse.dataset_name)
        log.info("Starting CSS products transfer", transfer_marker=marker.isoformat())

        try:
            account_info = resolve_account_info(self.settings)
            credentials = self.authenticator.authenticate(account_info)
            products = self.catalog_reader_factory(account_info, credentials=credentials).list_css_products()
            rows = (map_css_product(product, marker) for product in products)

            client = self.bigquery_client_factory(credentials, warehouse.project_id)
            try:
                result = self._write(client, credentials, mode, rows, started_at, marker)
            finally:
                client.close()
            status = result.status
        except FeedvizError as e:
            log.error("CSS products transfer failed", **e.to_dict())
            raise
        except Exception:
            log.exception("CSS products transfer failed")
            raise
        finally:
            TRANSFER_DURATION.labels(mode=mode.value, status=status.value).observe(
                time.perf_counter() - start
            )
            if self.settings.monitoring.pushgateway_url:
                push_metrics(self.settings.monitoring.pushgateway_url)

        result.completed_at = datetime.now(timezone.utc)
        result.duration_seconds = time.perf_counter() - start
        log.info(
            "CSS products transfer finished",
            status=result.status.value,
            rows=result.rows_written,
            batches=result.batches,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result

    def _write(
        self,
        client: bigquery.Client,
        credentials,
        mode: IngestionMode,
        rows,
        started_at: datetime,
        marker: TransferMarker,
    ) -> TransferResult:
        warehouse = self.settings.warehouse
        provisioner = WarehouseProvisioner(client, variant_for_mode(mode))
        summary = dict(
            mode=mode,
            dataset=warehouse.dataset_name,
            transfer_marker=marker.isoformat(),
            started_at=started_at,
        )

        if mode is IngestionMode.STREAM:
            streamer = BatchStreamer(
                provisioner,
                storage_stream_factory(lambda: self.write_client_factory(credentials)),
                batch_size=warehouse.batch_size,
                max_in_flight=warehouse.max_in_flight,
            )
            streamed = streamer.stream(warehouse.dataset_name, warehouse.dataset_location, rows)
            return TransferResult(
                status=TransferStatus.COMPLETED,
                rows_written=streamed.rows_written,
                batches=streamed.batches,
                **summary,
            )

        inserter = BulkInserter(client, provisioner, batch_size=warehouse.batch_size)
        inserted = inserter.insert_rows(warehouse.dataset_name, warehouse.dataset_location, rows)
        for error in inserted.errors:
            logger.warning("BigQuery insert error", index=error.index, errors=error.errors)
        return TransferResult(
            status=TransferStatus.PARTIAL if inserted.has_errors else TransferStatus.COMPLETED,
            rows_written=inserted.rows_inserted,
            batches=inserted.batches,
            errors=inserted.errors,
            **summary,
        )


def transfer_css_products(settings: Optional[Settings] = None, **kwargs) -> TransferResult:
    """Run a single transfer with default collaborators."""
    return TransferPipeline(settings, **kwargs).run()
