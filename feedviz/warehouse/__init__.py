"""
Warehouse Module

Schema, provisioning and both ingestion paths for the css_products table.
"""
from .batch_streamer import BatchStreamer, StreamResult, StreamState
from .bulk_inserter import BulkInserter, InsertError, InsertResult
from .provisioner import WarehouseProvisioner
from .row_codec import RowEncoder
from .schema import SchemaVariant, css_products_schema, variant_for_mode
from .write_stream import StorageWriteStream, storage_stream_factory

__all__ = [
    "BatchStreamer",
    "BulkInserter",
    "InsertError",
    "InsertResult",
    "RowEncoder",
    "SchemaVariant",
    "StorageWriteStream",
    "StreamResult",
    "StreamState",
    "WarehouseProvisioner",
    "css_products_schema",
    "storage_stream_factory",
    "variant_for_mode",
]
