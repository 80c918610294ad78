"""
GridSeries - JSON Document Loader

Reads reading documents from JSON files for bulk import. A file may hold a
JSON array of documents, a single JSON object, or newline-delimited JSON.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, TextIO, Union

from gridseries.errors import ValidationError


logger = logging.getLogger(__name__)


def parse_documents(text: str) -> List[Dict[str, Any]]:
    """
    Parse JSON or NDJSON text into a list of documents.

    Raises:
        ValidationError: If the text is neither valid JSON nor valid NDJSON
    """
    stripped = text.strip()
    if not stripped:
        return []

    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError:
        parsed = None
    else:
        if isinstance(parsed, list):
            return parsed
        if isinstance(parsed, dict):
            return [parsed]
        raise ValidationError(f"Expected a JSON array or object, got {type(parsed).__name__}")

    documents = []
    for line_number, line in enumerate(stripped.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            documents.append(json.loads(line))
        except json.JSONDecodeError as error:
            raise ValidationError(f"Invalid JSON on line {line_number}: {error.msg}")
    return documents


def load_documents(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Load documents from a JSON or NDJSON file.

    Args:
        path: File to read

    Returns:
        List of documents in file order
    """
    path = Path(path)
    logger.info(f"[...] Loading documents from {path}")
    documents = parse_documents(path.read_text(encoding="utf-8"))
    logger.info(f"[OK] Loaded {len(documents)} documents from {path.name}")
    return documents


def write_ndjson(documents: Iterable[Dict[str, Any]], stream: TextIO) -> int:
    """
    Write documents as compact JSON lines.

    Returns:
        Number of documents written
    """
    written = 0
    for document in documents:
        stream.write(json.dumps(document, separators=(",", ":"), default=str))
        stream.write("\n")
        written += 1
    return written
