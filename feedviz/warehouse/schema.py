"""
CSS products table schema

Declarative column tree of the ``css_products`` table. The tree is the same
for both ingestion modes apart from ``transfer_date``:

- HOURLY: TIMESTAMP column, hourly partitions kept for 30 days (streaming)
- DAILY: DATE column, daily partitions kept for 90 days (bulk insert)

The schema is built once per variant and reused for provisioning the table
and for encoding rows sent to the write stream.
"""

from enum import Enum
from functools import lru_cache
from typing import Iterable, Set, Tuple

from google.cloud import bigquery
from google.cloud.bigquery import SchemaField

from feedviz.config.settings import IngestionMode

CSS_PRODUCTS_TABLE = "css_products"
PARTITION_FIELD = "transfer_date"

_DAY_MS = 24 * 60 * 60 * 1000


class SchemaVariant(str, Enum):
    """Partitioning flavour of the destination table"""
    HOURLY = "hourly"
    DAILY = "daily"


PARTITION_EXPIRATION_MS = {
    SchemaVariant.HOURLY: 30 * _DAY_MS,
    SchemaVariant.DAILY: 90 * _DAY_MS,
}

_PARTITION_TYPE = {
    SchemaVariant.HOURLY: bigquery.TimePartitioningType.HOUR,
    SchemaVariant.DAILY: bigquery.TimePartitioningType.DAY,
}

_TRANSFER_DATE_TYPE = {
    SchemaVariant.HOURLY: "TIMESTAMP",
    SchemaVariant.DAILY: "DATE",
}


def variant_for_mode(mode: IngestionMode) -> SchemaVariant:
    """Streaming writes hourly partitions, bulk insert writes daily ones."""
    return SchemaVariant.HOURLY if IngestionMode(mode) is IngestionMode.STREAM else SchemaVariant.DAILY


# =============================================================================
# FIELD BUILDERS
# =============================================================================

def _string(name: str) -> SchemaField:
    return SchemaField(name, "STRING")


def _repeated_string(name: str) -> SchemaField:
    return SchemaField(name, "STRING", mode="REPEATED")


def _price(name: str) -> SchemaField:
    return SchemaField(
        name,
        "STRUCT",
        fields=(
            SchemaField("amount_micros", "INT64"),
            SchemaField("currency_code", "STRING"),
        ),
    )


def _dimension(name: str) -> SchemaField:
    return SchemaField(
        name,
        "STRUCT",
        fields=(
            SchemaField("value", "FLOAT64"),
            SchemaField("unit", "STRING"),
        ),
    )


def attributes_field() -> SchemaField:
    """Product attributes as provided by the CSS feed."""
    return SchemaField(
        "attributes",
        "STRUCT",
        fields=(
            _price("low_price"),
            _price("high_price"),
            _price("headline_offer_price"),
            _price("headline_offer_shipping_price"),
            _repeated_string("additional_image_links"),
            _repeated_string("product_types"),
            _repeated_string("size_types"),
            SchemaField(
                "product_details",
                "STRUCT",
                mode="REPEATED",
                fields=(
                    _string("section_name"),
                    _string("attribute_name"),
                    _string("attribute_value"),
                ),
            ),
            _dimension("product_weight"),
            _dimension("product_length"),
            _dimension("product_width"),
            _dimension("product_height"),
            _repeated_string("product_highlights"),
            SchemaField(
                "certifications",
                "STRUCT",
                mode="REPEATED",
                fields=(
                    _string("name"),
                    _string("authority"),
                    _string("code"),
                ),
            ),
            SchemaField("expiration_date", "TIMESTAMP"),
            _repeated_string("included_destinations"),
            _repeated_string("excluded_destinations"),
            _string("cpp_link"),
            _string("cpp_mobile_link"),
            _string("cpp_ads_redirect"),
            SchemaField("number_of_offers", "INT64"),
            _string("headline_offer_condition"),
            _string("headline_offer_link"),
            _string("headline_offer_mobile_link"),
            _string("title"),
            _string("image_link"),
            _string("description"),
            _string("brand"),
            _string("mpn"),
            _string("gtin"),
            _string("google_product_category"),
            SchemaField("adult", "BOOL"),
            SchemaField("multipack", "INT64"),
            SchemaField("is_bundle", "BOOL"),
            _string("age_group"),
            _string("color"),
            _string("gender"),
            _string("material"),
            _string("pattern"),
            _string("size"),
            _string("size_system"),
            _string("item_group_id"),
            _string("pause"),
            _string("custom_label_0"),
            _string("custom_label_1"),
            _string("custom_label_2"),
            _string("custom_label_3"),
            _string("custom_label_4"),
        ),
    )


def css_product_status_field() -> SchemaField:
    """Serving status of the product per destination, plus item level issues."""
    return SchemaField(
        "css_product_status",
        "STRUCT",
        fields=(
            SchemaField(
                "destination_statuses",
                "STRUCT",
                mode="REPEATED",
                fields=(
                    _string("destination"),
                    _repeated_string("approved_countries"),
                    _repeated_string("pending_countries"),
                    _repeated_string("disapproved_countries"),
                ),
            ),
            SchemaField(
                "item_level_issues",
                "STRUCT",
                mode="REPEATED",
                fields=(
                    _string("code"),
                    _string("servability"),
                    _string("resolution"),
                    _string("attribute"),
                    _string("destination"),
                    _string("description"),
                    _string("detail"),
                    _string("documentation"),
                    _repeated_string("applicable_countries"),
                ),
            ),
            SchemaField("creation_date", "TIMESTAMP"),
            SchemaField("last_update_date", "TIMESTAMP"),
            SchemaField("google_expiration_date", "TIMESTAMP"),
        ),
    )


@lru_cache(maxsize=None)
def css_products_schema(variant: SchemaVariant = SchemaVariant.HOURLY) -> Tuple[SchemaField, ...]:
    """
    Full column tree of the css_products table.

    Args:
        variant: Partitioning flavour; decides the type of ``transfer_date``

    Returns:
        Tuple of top-level schema fields, identical on every call
    """
    variant = SchemaVariant(variant)
    return (
        SchemaField(PARTITION_FIELD, _TRANSFER_DATE_TYPE[variant]),
        _string("name"),
        _string("raw_provided_id"),
        _string("content_language"),
        _string("feed_label"),
        attributes_field(),
        css_product_status_field(),
    )


def time_partitioning(variant: SchemaVariant) -> bigquery.TimePartitioning:
    """Partitioning on ``transfer_date`` with the variant's retention window."""
    variant = SchemaVariant(variant)
    return bigquery.TimePartitioning(
        type_=_PARTITION_TYPE[variant],
        field=PARTITION_FIELD,
        expiration_ms=PARTITION_EXPIRATION_MS[variant],
    )


def field_paths(fields: Iterable[SchemaField], prefix: str = "") -> Set[str]:
    """Dotted paths of every field in a schema tree, structs included."""
    paths: Set[str] = set()
    for field in fields:
        path = f"{prefix}{field.name}"
        paths.add(path)
        if field.fields:
            paths |= field_paths(field.fields, prefix=f"{path}.")
    return paths
