"""
CSS product row mapping

Pure transformation of a ``css_v1.CssProduct`` into a warehouse row whose keys
mirror the css_products schema one to one.

Rules:
- unset timestamps become ``None``; set ones become RFC 3339 strings
- unset scalars pass through the record's declared default
- empty repeated fields become ``[]``
- ``multipack`` and price ``amount_micros`` are rendered as decimal strings
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Union

from google.api_core.datetime_helpers import DatetimeWithNanoseconds
from google.protobuf import timestamp_pb2
from google.shopping import css_v1
from google.shopping.type import Price

TransferMarker = Union[datetime, date]
Row = Dict[str, Any]


def price_to_dict(price: Price) -> Dict[str, str]:
    return {
        "amount_micros": str(price.amount_micros),
        "currency_code": price.currency_code,
    }


def dimension_to_dict(dimension: Union[css_v1.ProductDimension, css_v1.ProductWeight]) -> Dict[str, Any]:
    return {"value": dimension.value, "unit": dimension.unit}


def timestamp_to_string(
    value: Optional[Union[datetime, timestamp_pb2.Timestamp]],
) -> Optional[str]:
    """
    Render a timestamp as RFC 3339, or ``None`` when it is unset.

    proto-plus returns ``None`` for an absent timestamp field; a timestamp
    explicitly set to the epoch is treated as unset as well.
    """
    if value is None:
        return None

    if isinstance(value, timestamp_pb2.Timestamp):
        ts = value
    elif isinstance(value, DatetimeWithNanoseconds):
        ts = value.timestamp_pb()
    else:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        ts = timestamp_pb2.Timestamp()
        ts.FromDatetime(value.astimezone(timezone.utc).replace(tzinfo=None))

    if ts.seconds == 0 and ts.nanos == 0:
        return None
    return ts.ToJsonString()


def transfer_marker_to_string(marker: TransferMarker) -> str:
    """ISO-8601 text of the run marker; naive datetimes are taken as UTC."""
    if isinstance(marker, datetime):
        if marker.tzinfo is None:
            marker = marker.replace(tzinfo=timezone.utc)
        return marker.isoformat()
    return marker.isoformat()


def item_level_issue_to_dict(issue: css_v1.CssProductStatus.ItemLevelIssue) -> Dict[str, Any]:
    return {
        "code": issue.code,
        "servability": issue.servability,
        "resolution": issue.resolution,
        "attribute": issue.attribute,
        "destination": issue.destination,
        "description": issue.description,
        "detail": issue.detail,
        "documentation": issue.documentation,
        "applicable_countries": list(issue.applicable_countries),
    }


def destination_status_to_dict(status: css_v1.CssProductStatus.DestinationStatus) -> Dict[str, Any]:
    return {
        "destination": status.destination,
        "approved_countries": list(status.approved_countries),
        "pending_countries": list(status.pending_countries),
        "disapproved_countries": list(status.disapproved_countries),
    }


def attributes_to_dict(attributes: css_v1.Attributes) -> Row:
    """Flatten product attributes into the ``attributes`` struct."""
    return {
        "low_price": price_to_dict(attributes.low_price),
        "high_price": price_to_dict(attributes.high_price),
        "headline_offer_price": price_to_dict(attributes.headline_offer_price),
        "headline_offer_shipping_price": price_to_dict(attributes.headline_offer_shipping_price),
        "additional_image_links": list(attributes.additional_image_links),
        "product_types": list(attributes.product_types),
        "size_types": list(attributes.size_types),
        "product_details": [
            {
                "section_name": detail.section_name,
                "attribute_name": detail.attribute_name,
                "attribute_value": detail.attribute_value,
            }
            for detail in attributes.product_details
        ],
        "product_weight": dimension_to_dict(attributes.product_weight),
        "product_length": dimension_to_dict(attributes.product_length),
        "product_width": dimension_to_dict(attributes.product_width),
        "product_height": dimension_to_dict(attributes.product_height),
        "product_highlights": list(attributes.product_highlights),
        "certifications": [
            {
                "name": certification.name,
                "authority": certification.authority,
                "code": certification.code,
            }
            for certification in attributes.certifications
        ],
        "expiration_date": timestamp_to_string(attributes.expiration_date),
        "included_destinations": list(attributes.included_destinations),
        "excluded_destinations": list(attributes.excluded_destinations),
        "cpp_link": attributes.cpp_link,
        "cpp_mobile_link": attributes.cpp_mobile_link,
        "cpp_ads_redirect": attributes.cpp_ads_redirect,
        "number_of_offers": attributes.number_of_offers,
        "headline_offer_condition": attributes.headline_offer_condition,
        "headline_offer_link": attributes.headline_offer_link,
        "headline_offer_mobile_link": attributes.headline_offer_mobile_link,
        "title": attributes.title,
        "image_link": attributes.image_link,
        "description": attributes.description,
        "brand": attributes.brand,
        "mpn": attributes.mpn,
        "gtin": attributes.gtin,
        "google_product_category": attributes.google_product_category,
        "adult": attributes.adult,
        "multipack": str(attributes.multipack),
        "is_bundle": attributes.is_bundle,
        "age_group": attributes.age_group,
        "color": attributes.color,
        "gender": attributes.gender,
        "material": attributes.material,
        "pattern": attributes.pattern,
        "size": attributes.size,
        "size_system": attributes.size_system,
        "item_group_id": attributes.item_group_id,
        "pause": attributes.pause,
        "custom_label_0": attributes.custom_label_0,
        "custom_label_1": attributes.custom_label_1,
        "custom_label_2": attributes.custom_label_2,
        "custom_label_3": attributes.custom_label_3,
        "custom_label_4": attributes.custom_label_4,
    }


def status_to_dict(status: css_v1.CssProductStatus) -> Row:
    """Flatten the product status into the ``css_product_status`` struct."""
    return {
        "destination_statuses": [destination_status_to_dict(s) for s in status.destination_statuses],
        "item_level_issues": [item_level_issue_to_dict(i) for i in status.item_level_issues],
        "creation_date": timestamp_to_string(status.creation_date),
        "last_update_date": timestamp_to_string(status.last_update_date),
        "google_expiration_date": timestamp_to_string(status.google_expiration_date),
    }


def map_css_product(product: css_v1.CssProduct, transfer_marker: TransferMarker) -> Row:
    """
    Map one CSS product to a css_products row.

    Args:
        product: Record returned by the catalog API
        transfer_marker: Timestamp (hourly table) or date (daily table) of the run

    Returns:
        Row dict ready for the write stream or ``insert_rows_json``
    """
    return {
        "transfer_date": transfer_marker_to_string(transfer_marker),
        "name": product.name,
        "raw_provided_id": product.raw_provided_id,
        "content_language": product.content_language,
        "feed_label": product.feed_label,
        "attributes": attributes_to_dict(product.attributes),
        "css_product_status": status_to_dict(product.css_product_status),
    }
