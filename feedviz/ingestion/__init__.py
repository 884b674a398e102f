"""
Data Ingestion Module
"""
from .catalog_reader import CatalogReader

__all__ = ["CatalogReader"]
