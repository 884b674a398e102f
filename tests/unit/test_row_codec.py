"""
Unit Tests - Write Stream Row Encoding
"""
from datetime import date, datetime, timezone

import pytest
from google.cloud.bigquery import SchemaField
from google.protobuf import descriptor_pb2

from feedviz.exceptions import RowEncodingError
from feedviz.transformation.row_mapper import map_css_product
from feedviz.warehouse.row_codec import RowEncoder, date_to_days, timestamp_to_micros
from feedviz.warehouse.schema import SchemaVariant, css_products_schema

from tests.conftest import make_product


@pytest.fixture(scope="module")
def hourly_encoder() -> RowEncoder:
    return RowEncoder(css_products_schema(SchemaVariant.HOURLY))


class TestConversions:
    """Tests for temporal conversions"""

    def test_timestamp_to_micros(self):
        """Test RFC 3339 text and datetimes convert to epoch micros"""
        assert timestamp_to_micros("1970-01-01T00:00:01Z") == 1_000_000
        assert timestamp_to_micros("2024-01-02T03:04:05.500Z") == 1_704_164_645_500_000
        assert timestamp_to_micros("2024-05-01T12:30:00+02:00") == timestamp_to_micros("2024-05-01T10:30:00Z")
        assert timestamp_to_micros(datetime(1970, 1, 1, 0, 0, 2, tzinfo=timezone.utc)) == 2_000_000

    def test_date_to_days(self):
        """Test ISO dates convert to days since the epoch"""
        assert date_to_days("1970-01-02") == 1
        assert date_to_days(date(2024, 5, 1)) == 19844


class TestRowEncoder:
    """Tests for RowEncoder"""

    def test_descriptor_is_self_contained(self, hourly_encoder):
        """Test nested types live on the root and are referenced by simple name"""
        proto = hourly_encoder.descriptor_proto
        nested_names = {nested.name for nested in proto.nested_type}

        assert proto.name == "CssProductRow"
        assert "Attributes" in nested_names
        assert "AttributesLowPrice" in nested_names
        assert "CssProductStatusItemLevelIssues" in nested_names
        for message in [proto, *proto.nested_type]:
            for field in message.field:
                if field.type == descriptor_pb2.FieldDescriptorProto.TYPE_MESSAGE:
                    assert field.type_name in nested_names

    def test_encode_mapped_row(self, hourly_encoder, transfer_time):
        """Test a fully populated mapped row encodes with converted values"""
        row = map_css_product(make_product(3, full=True), transfer_time)

        message = hourly_encoder.encode(row)

        assert message.transfer_date == timestamp_to_micros("2024-05-01T10:30:00Z")
        assert message.name == "accounts/456/cssProducts/de~DE~3"
        assert message.attributes.low_price.amount_micros == 1_990_003
        assert message.attributes.multipack == 2
        assert list(message.attributes.product_types) == ["Home > Kitchen"]
        assert message.attributes.product_details[0].attribute_value == "Steel"
        assert message.css_product_status.destination_statuses[0].disapproved_countries == ["CH"]
        assert message.css_product_status.creation_date == 1_704_164_645_000_000

    def test_null_columns_stay_unset(self, hourly_encoder, transfer_time):
        """Test None values leave the column unset"""
        row = map_css_product(make_product(), transfer_time)

        message = hourly_encoder.encode(row)

        assert not message.css_product_status.HasField("creation_date")
        assert not message.attributes.HasField("expiration_date")
        assert message.attributes.HasField("title")

    def test_encode_rows(self, hourly_encoder, transfer_time):
        """Test batches serialize in order"""
        rows = [map_css_product(make_product(i), transfer_time) for i in range(3)]

        payload = hourly_encoder.encode_rows(rows)

        assert len(payload) == 3
        assert all(isinstance(item, bytes) and item for item in payload)

    def test_daily_variant_dates(self):
        """Test DATE columns encode as epoch days"""
        encoder = RowEncoder(css_products_schema(SchemaVariant.DAILY))
        row = map_css_product(make_product(), date(1970, 1, 11))

        assert encoder.encode(row).transfer_date == 10

    def test_unknown_column(self, hourly_encoder):
        """Test columns missing from the schema are rejected"""
        with pytest.raises(RowEncodingError, match="missing from the schema"):
            hourly_encoder.encode({"name": "x", "colour": "red"})

    def test_wrong_type(self, hourly_encoder):
        """Test values of the wrong type are rejected"""
        with pytest.raises(RowEncodingError):
            hourly_encoder.encode({"attributes": {"number_of_offers": "many"}})

    def test_invalid_timestamp(self, hourly_encoder):
        """Test unparseable timestamps are rejected"""
        with pytest.raises(RowEncodingError, match="TIMESTAMP"):
            hourly_encoder.encode({"transfer_date": "yesterday"})

    def test_repeated_column_needs_list(self, hourly_encoder):
        """Test scalars given for repeated columns are rejected"""
        with pytest.raises(RowEncodingError):
            hourly_encoder.encode({"attributes": {"product_types": "Kitchen"}})

    def test_unsupported_type(self):
        """Test schemas with unsupported column types are rejected"""
        with pytest.raises(RowEncodingError, match="Unsupported"):
            RowEncoder([SchemaField("location", "GEOGRAPHY")])
