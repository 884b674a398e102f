"""
Data Transformation Module
"""
from .row_mapper import map_css_product, timestamp_to_string

__all__ = [
    "map_css_product",
    "timestamp_to_string",
]
