"""
Detail-page enrichment of planning records.
"""

from .enricher import DetailEnricher
from .extractor import DetailExtractor
from .locale import parse_currency, parse_date, parse_datetime

__all__ = [
    "DetailEnricher",
    "DetailExtractor",
    "parse_date",
    "parse_datetime",
    "parse_currency",
]
