"""
warehouse-watch

Runs scheduled SQL checks against BigQuery and emails an alert whenever a check returns rows.
"""

__version__ = "1.0.0"
