"""
Batch Streamer

Streams mapped CSS product rows into the hourly css_products table through a
single committed write stream.

Supports:
- Fixed-size batches sent with contiguous offsets
- Non-blocking appends with completion callbacks
- First-error-wins failure reporting after all appends settle
- Optional bound on appends in flight
"""

import threading
from concurrent.futures import CancelledError
from dataclasses import dataclass, field
from enum import Enum
from itertools import islice
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

import structlog

from feedviz.exceptions import AppendError
from feedviz.metrics import APPENDS, ROWS_WRITTEN
from feedviz.warehouse.provisioner import WarehouseProvisioner
from feedviz.warehouse.row_codec import RowEncoder
from feedviz.warehouse.schema import css_products_schema

logger = structlog.get_logger(__name__)

Row = Dict[str, Any]

DEFAULT_BATCH_SIZE = 100


class StreamState(str, Enum):
    """Lifecycle of one streaming run"""
    IDLE = "idle"
    PROVISIONING = "provisioning"
    STREAMING = "streaming"
    DRAINING = "draining"
    COMPLETED = "completed"
    FAILED = "failed"


VALID_TRANSITIONS: Dict[StreamState, Set[StreamState]] = {
    StreamState.IDLE: {StreamState.PROVISIONING},
    StreamState.PROVISIONING: {StreamState.STREAMING, StreamState.FAILED},
    StreamState.STREAMING: {StreamState.DRAINING},
    StreamState.DRAINING: {StreamState.COMPLETED, StreamState.FAILED},
    StreamState.COMPLETED: set(),
    StreamState.FAILED: set(),
}


@dataclass
class StreamResult:
    """Outcome of a completed streaming run"""
    rows_written: int = 0
    batches: int = 0
    stream_name: Optional[str] = None
    acknowledged_offsets: List[int] = field(default_factory=list)


def iter_batches(rows: Iterable[Row], batch_size: int) -> Iterator[List[Row]]:
    """Group rows into lists of at most ``batch_size``, preserving order."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    iterator = iter(rows)
    while True:
        batch = list(islice(iterator, batch_size))
        if not batch:
            return
        yield batch


class FirstErrorSlot:
    """Holds the first append failure; later ones are logged and dropped."""

    def __init__(self):
        self._lock = threading.Lock()
        self._error: Optional[BaseException] = None

    def offer(self, error: BaseException) -> bool:
        """Store ``error`` if the slot is empty; returns whether it was kept."""
        with self._lock:
            if self._error is None:
                self._error = error
                return True
            return False

    def get(self) -> Optional[BaseException]:
        with self._lock:
            return self._error


class InFlightTracker:
    """Counts submitted appends whose callback has not fired yet."""

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit
        self._count = 0
        self._cond = threading.Condition()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def acquire(self) -> None:
        with self._cond:
            if self.limit is not None:
                while self._count >= self.limit:
                    self._cond.wait()
            self._count += 1

    def release(self) -> None:
        with self._cond:
            self._count -= 1
            self._cond.notify_all()

    def wait_idle(self) -> None:
        with self._cond:
            while self._count > 0:
                self._cond.wait()


class BatchStreamer:
    """
    Streams rows through one committed write stream per run.

    The submitting thread never waits on an acknowledgement unless
    ``max_in_flight`` appends are already outstanding. Completion callbacks may
    run on client threads; the first failure they report is raised as an
    ``AppendError`` once every append has settled and the stream is closed.

    Example:
        streamer = BatchStreamer(provisioner, storage_stream_factory(BigQueryWriteClient))
        result = streamer.stream("css_feedviz", "EU", rows)
    """

    def __init__(
        self,
        provisioner: WarehouseProvisioner,
        stream_factory: Callable[..., Any],
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_in_flight: Optional[int] = None,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if max_in_flight is not None and max_in_flight <= 0:
            raise ValueError("max_in_flight must be positive")
        self.provisioner = provisioner
        self.stream_factory = stream_factory
        self.batch_size = batch_size
        self.max_in_flight = max_in_flight
        self.state = StreamState.IDLE

    def _transition(self, target: StreamState) -> None:
        if target not in VALID_TRANSITIONS[self.state]:
            raise ValueError(f"Invalid stream state transition: {self.state.value} -> {target.value}")
        logger.debug("Stream state changed", from_state=self.state.value, to_state=target.value)
        self.state = target

    def _on_append_done(
        self,
        future: Any,
        offset: int,
        rows: int,
        errors: FirstErrorSlot,
        in_flight: InFlightTracker,
        result: StreamResult,
    ) -> None:
        try:
            try:
                error = future.exception()
            except CancelledError as e:
                error = e

            if error is None:
                APPENDS.labels(status="success").inc()
                response = future.result()
                acked = _acknowledged_offset(response, offset)
                result.acknowledged_offsets.append(acked)
                logger.info("Append succeeded", offset=acked, rows=rows)
                return

            APPENDS.labels(status="error").inc()
            if errors.offer(error):
                logger.error("Append failed", offset=offset, rows=rows, error=str(error))
            else:
                logger.warning("Additional append failure", offset=offset, rows=rows, error=str(error))
        finally:
            in_flight.release()

    def stream(self, dataset_name: str, location: str, rows: Iterable[Row]) -> StreamResult:
        """
        Provision the table, then stream every row in batches.

        Args:
            dataset_name: Destination dataset
            location: Dataset location used if it has to be created
            rows: Mapped rows; consumed lazily

        Returns:
            StreamResult with row and batch counts

        Raises:
            ProvisioningError: dataset, table or write stream could not be set up
            RowEncodingError: a row does not fit the schema
            AppendError: at least one append failed; wraps the first failure
        """
        self._transition(StreamState.PROVISIONING)
        try:
            table = self.provisioner.ensure_ready(dataset_name, location)
            encoder = RowEncoder(css_products_schema(self.provisioner.variant))
            stream = self.stream_factory(table, encoder)
        except Exception:
            self._transition(StreamState.FAILED)
            raise
        self._transition(StreamState.STREAMING)

        result = StreamResult(stream_name=getattr(stream, "stream_name", None))
        errors = FirstErrorSlot()
        in_flight = InFlightTracker(self.max_in_flight)
        offset = 0
        submit_error: Optional[BaseException] = None

        try:
            for batch in iter_batches(rows, self.batch_size):
                in_flight.acquire()
                try:
                    future = stream.append(batch, offset)
                except BaseException:
                    in_flight.release()
                    raise
                future.add_done_callback(
                    lambda f, o=offset, n=len(batch): self._on_append_done(
                        f, o, n, errors, in_flight, result
                    )
                )
                logger.debug("Submitted batch", offset=offset, rows=len(batch))
                offset += len(batch)
                result.batches += 1
                ROWS_WRITTEN.labels(mode="stream").inc(len(batch))
        except BaseException as e:
            submit_error = e
        finally:
            self._transition(StreamState.DRAINING)
            in_flight.wait_idle()
            stream.close()

        result.rows_written = offset
        first_error = errors.get()

        if submit_error is not None:
            self._transition(StreamState.FAILED)
            raise submit_error

        if first_error is not None:
            self._transition(StreamState.FAILED)
            raise AppendError(
                "Streaming CSS products failed",
                context={"dataset": dataset_name, "rows_submitted": offset, "batches": result.batches},
                original_exception=first_error,
            ) from first_error

        self._transition(StreamState.COMPLETED)
        logger.info(
            "Streaming complete",
            dataset=dataset_name,
            rows=result.rows_written,
            batches=result.batches,
        )
        return result


def _acknowledged_offset(response: Any, default: int) -> int:
    """Offset reported by an AppendRowsResponse, or the submitted one."""
    append_result = getattr(response, "append_result", None)
    acked = getattr(append_result, "offset", None)
    if acked is None:
        return default
    return int(getattr(acked, "value", acked))
