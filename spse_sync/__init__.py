"""
Procurement portal ingestion, normalization and reconciliation.
"""

__version__ = "0.1.0"
