"""
CSS Feed Visualisation Transfer
Configuration Module
"""
from .settings import IngestionMode, Settings, get_settings

__all__ = ["IngestionMode", "Settings", "get_settings"]
