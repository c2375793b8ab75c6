"""
Portal access and record normalization.
"""

from .errors import (
    MalformedResponseError,
    SourceError,
    SourceUnavailableError,
    TokenNotFoundError,
)
from .normalizer import RecordNormalizer
from .source_client import SourceClient

__all__ = [
    "SourceClient",
    "RecordNormalizer",
    "SourceError",
    "TokenNotFoundError",
    "SourceUnavailableError",
    "MalformedResponseError",
]
