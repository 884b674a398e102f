"""
CSS Feed Visualisation Transfer

Batch transfer of Comparison Shopping Service products into BigQuery.
"""

__version__ = "1.0.0"
