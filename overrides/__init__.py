"""Parameter overrides and asset ingestion."""

from .engine import ParameterOverrideEngine
from .ingest import AssetIngestor, IngestResult
from .values import (
    normalize_boolean,
    normalize_number,
    normalize_text,
    validate_bulk_values,
)

__all__ = [
    "AssetIngestor",
    "IngestResult",
    "ParameterOverrideEngine",
    "normalize_boolean",
    "normalize_number",
    "normalize_text",
    "validate_bulk_values",
]
