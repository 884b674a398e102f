"""
Protobuf encoding of warehouse rows for the Storage Write API

The write stream only accepts serialized protocol buffers. ``RowEncoder``
derives a proto2 message type from a BigQuery schema tree once, then turns
mapped row dicts into serialized rows:

- STRUCT/RECORD columns become nested message types
- REPEATED columns become repeated fields
- TIMESTAMP is sent as int64 microseconds since the epoch
- DATE is sent as int32 days since the epoch
- ``None`` leaves the column NULL
"""

import calendar
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from google.cloud.bigquery import SchemaField
from google.protobuf import descriptor_pb2, descriptor_pool, json_format, message_factory
from google.protobuf import timestamp_pb2

from feedviz.exceptions import RowEncodingError

_FDP = descriptor_pb2.FieldDescriptorProto

_PACKAGE = "feedviz"
_EPOCH = date(1970, 1, 1)

_SCALAR_TYPES = {
    "STRING": _FDP.TYPE_STRING,
    "INT64": _FDP.TYPE_INT64,
    "INTEGER": _FDP.TYPE_INT64,
    "FLOAT64": _FDP.TYPE_DOUBLE,
    "FLOAT": _FDP.TYPE_DOUBLE,
    "BOOL": _FDP.TYPE_BOOL,
    "BOOLEAN": _FDP.TYPE_BOOL,
    "TIMESTAMP": _FDP.TYPE_INT64,
    "DATE": _FDP.TYPE_INT32,
}

_STRUCT_TYPES = ("STRUCT", "RECORD")


def _camel(path: Sequence[str]) -> str:
    return "".join(part.title().replace("_", "") for part in path)


def timestamp_to_micros(value: Any) -> int:
    """Epoch microseconds of an RFC 3339 string or a datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return calendar.timegm(value.utctimetuple()) * 1_000_000 + value.microsecond
    ts = timestamp_pb2.Timestamp()
    ts.FromJsonString(value)
    return ts.ToMicroseconds()


def date_to_days(value: Any) -> int:
    """Days since the epoch of an ISO date string or a date."""
    if isinstance(value, datetime):
        value = value.date()
    elif not isinstance(value, date):
        value = date.fromisoformat(value)
    return (value - _EPOCH).days


class RowEncoder:
    """
    Serializes row dicts against a fixed schema.

    Example:
        encoder = RowEncoder(css_products_schema(SchemaVariant.HOURLY))
        payload = encoder.encode_rows(rows)
    """

    def __init__(self, schema: Iterable[SchemaField], message_name: str = "CssProductRow"):
        self.schema: Tuple[SchemaField, ...] = tuple(schema)
        self.message_name = message_name
        self._root = self._build_descriptor_proto()
        self._message_class = self._build_message_class()

    # ===== DESCRIPTOR =====

    def _build_descriptor_proto(self) -> descriptor_pb2.DescriptorProto:
        root = descriptor_pb2.DescriptorProto(name=self.message_name)
        self._add_fields(root, root, self.schema, path=())
        return root

    def _add_fields(
        self,
        root: descriptor_pb2.DescriptorProto,
        target: descriptor_pb2.DescriptorProto,
        fields: Sequence[SchemaField],
        path: Tuple[str, ...],
    ) -> None:
        # Nested types are declared flat on the root; the write API wants a self-contained descriptor
        for number, field in enumerate(fields, start=1):
            field_type = field.field_type.upper()
            proto_field = target.field.add(
                name=field.name,
                number=number,
                label=_FDP.LABEL_REPEATED if field.mode == "REPEATED" else _FDP.LABEL_OPTIONAL,
            )
            if field_type in _STRUCT_TYPES:
                nested = root.nested_type.add(name=_camel(path + (field.name,)))
                self._add_fields(root, nested, field.fields, path + (field.name,))
                proto_field.type = _FDP.TYPE_MESSAGE
                proto_field.type_name = nested.name
            elif field_type in _SCALAR_TYPES:
                proto_field.type = _SCALAR_TYPES[field_type]
            else:
                raise RowEncodingError(
                    f"Unsupported column type {field.field_type}",
                    context={"column": ".".join(path + (field.name,))},
                )

    def _build_message_class(self):
        file_proto = descriptor_pb2.FileDescriptorProto(
            name=f"{_PACKAGE}/{self.message_name.lower()}.proto",
            package=_PACKAGE,
            syntax="proto2",
        )
        message = file_proto.message_type.add()
        message.CopyFrom(self._root)
        qualified = f".{_PACKAGE}.{self.message_name}."
        for nested in [message, *message.nested_type]:
            for field in nested.field:
                if field.type == _FDP.TYPE_MESSAGE:
                    field.type_name = qualified + field.type_name

        pool = descriptor_pool.DescriptorPool()
        pool.AddSerializedFile(file_proto.SerializeToString())
        descriptor = pool.FindMessageTypeByName(f"{_PACKAGE}.{self.message_name}")
        return message_factory.GetMessageClass(descriptor)

    @property
    def descriptor_proto(self) -> descriptor_pb2.DescriptorProto:
        """Self-contained descriptor for ``ProtoSchema.proto_descriptor``"""
        proto = descriptor_pb2.DescriptorProto()
        proto.CopyFrom(self._root)
        return proto

    # ===== ENCODING =====

    def _convert(self, fields: Sequence[SchemaField], row: Mapping[str, Any], path: str) -> Dict[str, Any]:
        if not isinstance(row, Mapping):
            raise RowEncodingError(
                "Expected a struct value",
                context={"column": path or "<row>", "value_type": type(row).__name__},
            )
        by_name = {field.name: field for field in fields}
        unknown = set(row) - set(by_name)
        if unknown:
            raise RowEncodingError(
                "Row has columns missing from the schema",
                context={"columns": sorted(f"{path}{name}" for name in unknown)},
            )

        converted: Dict[str, Any] = {}
        for name, value in row.items():
            if value is None:
                continue
            field = by_name[name]
            if field.mode == "REPEATED":
                if not isinstance(value, (list, tuple)):
                    raise RowEncodingError(
                        "Expected a list for a repeated column",
                        context={"column": f"{path}{name}"},
                    )
                converted[name] = [self._convert_value(field, item, f"{path}{name}") for item in value]
            else:
                converted[name] = self._convert_value(field, value, f"{path}{name}")
        return converted

    def _convert_value(self, field: SchemaField, value: Any, path: str) -> Any:
        field_type = field.field_type.upper()
        if field_type in _STRUCT_TYPES:
            return self._convert(field.fields, value, f"{path}.")
        try:
            if field_type == "TIMESTAMP":
                return timestamp_to_micros(value)
            if field_type == "DATE":
                return date_to_days(value)
        except (TypeError, ValueError) as e:
            raise RowEncodingError(
                f"Invalid {field_type} value",
                context={"column": path, "value": value},
                original_exception=e,
            ) from e
        return value

    def encode(self, row: Mapping[str, Any]):
        """Build the protobuf message for one row."""
        converted = self._convert(self.schema, row, "")
        message = self._message_class()
        try:
            json_format.ParseDict(converted, message)
        except json_format.ParseError as e:
            raise RowEncodingError("Row does not match the schema", original_exception=e) from e
        return message

    def encode_rows(self, rows: Iterable[Mapping[str, Any]]) -> List[bytes]:
        """Serialize rows in order."""
        return [self.encode(row).SerializeToString() for row in rows]
