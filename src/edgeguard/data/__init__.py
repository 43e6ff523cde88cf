"""Data layer: feature-table ingestion, schema, and integrity checks."""

from edgeguard.data.integrity import IntegrityReport, validate_integrity
from edgeguard.data.reader import FeatureTableReader, load_features
from edgeguard.data.schemas import FeatureRecord

__all__ = [
    "FeatureRecord",
    "FeatureTableReader",
    "IntegrityReport",
    "load_features",
    "validate_integrity",
]
