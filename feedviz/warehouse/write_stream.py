"""
Committed write stream over the BigQuery Storage Write API

Wraps one COMMITTED stream and its ``AppendRowsStream`` connection. Each
``append`` encodes a batch of row dicts to protobuf and sends it with an
explicit offset; rows become visible as soon as their append is acknowledged.
"""

from typing import Any, Callable, Mapping, Optional, Sequence

import structlog
from google.api_core import exceptions as api_exceptions
from google.cloud import bigquery
from google.cloud.bigquery_storage_v1 import BigQueryWriteClient, types, writer
from google.cloud.bigquery_storage_v1 import exceptions as bqstorage_exceptions

from feedviz.exceptions import AppendError, ProvisioningError
from feedviz.warehouse.row_codec import RowEncoder

logger = structlog.get_logger(__name__)


class StorageWriteStream:
    """
    One committed stream into a table.

    The stream owns the write client it was opened with and releases it on
    ``close``.
    """

    def __init__(
        self,
        write_client: BigQueryWriteClient,
        table: bigquery.TableReference,
        encoder: RowEncoder,
    ):
        self.write_client = write_client
        self.table = table
        self.encoder = encoder
        self.stream_name: Optional[str] = None
        self._append_stream: Optional[writer.AppendRowsStream] = None

    def open(self) -> "StorageWriteStream":
        parent = self.write_client.table_path(self.table.project, self.table.dataset_id, self.table.table_id)
        try:
            write_stream = self.write_client.create_write_stream(
                parent=parent,
                write_stream=types.WriteStream(type_=types.WriteStream.Type.COMMITTED),
            )
        except api_exceptions.GoogleAPIError as e:
            raise ProvisioningError(
                "Failed to create write stream",
                context={"table": parent},
                original_exception=e,
            ) from e
        self.stream_name = write_stream.name

        proto_schema = types.ProtoSchema()
        proto_schema.proto_descriptor = self.encoder.descriptor_proto
        proto_data = types.AppendRowsRequest.ProtoData()
        proto_data.writer_schema = proto_schema

        request_template = types.AppendRowsRequest()
        request_template.write_stream = self.stream_name
        request_template.proto_rows = proto_data

        self._append_stream = writer.AppendRowsStream(self.write_client, request_template)
        logger.info("Opened committed write stream", stream=self.stream_name)
        return self

    def append(self, rows: Sequence[Mapping[str, Any]], offset: int):
        """Encode and send one batch; returns the append future."""
        if self._append_stream is None:
            raise RuntimeError("Write stream is not open")

        proto_rows = types.ProtoRows()
        proto_rows.serialized_rows = self.encoder.encode_rows(rows)
        proto_data = types.AppendRowsRequest.ProtoData()
        proto_data.rows = proto_rows

        request = types.AppendRowsRequest()
        request.offset = offset
        request.proto_rows = proto_data
        try:
            return self._append_stream.send(request)
        except (api_exceptions.GoogleAPIError, bqstorage_exceptions.StreamClosedError) as e:
            raise AppendError(
                "Failed to send append request",
                context={"stream": self.stream_name, "offset": offset, "rows": len(rows)},
                original_exception=e,
            ) from e

    def close(self) -> None:
        """Close the connection, then release the write client's transport."""
        try:
            if self._append_stream is not None:
                try:
                    self._append_stream.close()
                except bqstorage_exceptions.StreamClosedError as e:
                    # Never opened (no sends) or already shut down by the client
                    logger.debug("Append connection already closed", stream=self.stream_name, reason=str(e))
        finally:
            self._append_stream = None
            self.write_client.transport.close()
        logger.debug("Closed write stream", stream=self.stream_name)


def storage_stream_factory(
    write_client_factory: Callable[[], BigQueryWriteClient],
) -> Callable[[bigquery.TableReference, RowEncoder], StorageWriteStream]:
    """Build a factory that opens a fresh write client and stream per run."""

    def open_stream(table: bigquery.TableReference, encoder: RowEncoder) -> StorageWriteStream:
        return StorageWriteStream(write_client_factory(), table, encoder).open()

    return open_stream
