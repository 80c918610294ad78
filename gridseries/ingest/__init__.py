"""
GridSeries - Ingest Package

Reading validation, document parsing, bulk import and sample data.
"""

from gridseries.ingest.ingestor import (
    IngestSummary,
    Ingestor,
    parse_document,
    validate_reading
)
from gridseries.ingest.json_loader import load_documents, parse_documents, write_ndjson
from gridseries.ingest.sample_data import TimeSpec, generate_documents

__all__ = [
    "IngestSummary",
    "Ingestor",
    "TimeSpec",
    "generate_documents",
    "load_documents",
    "parse_documents",
    "parse_document",
    "validate_reading",
    "write_ndjson"
]
