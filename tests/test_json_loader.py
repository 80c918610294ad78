"""
GridSeries - Document Loader Tests

Tests for JSON/NDJSON import, NDJSON output and sample data generation.
"""

import io
import json
from datetime import datetime, timedelta, timezone

import pytest

from gridseries.errors import ValidationError
from gridseries.ingest.json_loader import load_documents, parse_documents, write_ndjson
from gridseries.ingest.sample_data import TimeSpec, generate_documents
from gridseries.models.collection import CollectionConfig


DOCUMENT = {
    "timestamp": "2024-01-01T00:00:00Z",
    "metadata": {"region": "north", "type": "household"},
    "value": 1.5,
}


class TestParseDocuments:
    """Test suite for parse_documents."""

    def test_json_array(self):
        assert parse_documents(json.dumps([DOCUMENT, DOCUMENT])) == [DOCUMENT, DOCUMENT]

    def test_single_object(self):
        assert parse_documents(json.dumps(DOCUMENT)) == [DOCUMENT]

    def test_ndjson_skips_blank_lines(self):
        text = json.dumps(DOCUMENT) + "\n\n" + json.dumps(DOCUMENT) + "\n"
        assert len(parse_documents(text)) == 2

    def test_empty_text(self):
        assert parse_documents("  \n") == []

    def test_bad_ndjson_line_reported(self):
        text = json.dumps(DOCUMENT) + "\n{not json\n"

        with pytest.raises(ValidationError, match="line 2"):
            parse_documents(text)

    def test_scalar_json_rejected(self):
        with pytest.raises(ValidationError):
            parse_documents("42")


class TestLoadAndWrite:
    """Test suite for file loading and NDJSON output."""

    def test_load_documents_from_file(self, tmp_path):
        path = tmp_path / "readings.ndjson"
        path.write_text("\n".join(json.dumps(DOCUMENT) for _ in range(3)), encoding="utf-8")

        assert len(load_documents(path)) == 3

    def test_write_ndjson(self):
        stream = io.StringIO()

        written = write_ndjson([{"a": 1}, {"b": 2}], stream)

        assert written == 2
        assert stream.getvalue() == '{"a":1}\n{"b":2}\n'


class TestGenerateDocuments:
    """Test suite for sample data generation."""

    def test_every_series_every_timestamp(self):
        documents = list(generate_documents(count=3, regions=["north", "south"], seed=1))

        assert len(documents) == 3 * 2 * 3
        assert documents[0]["timestamp"] == "2024-01-01T00:00:00Z"
        assert documents[-1]["timestamp"] == "2024-01-01T00:30:00Z"

    def test_seed_is_reproducible(self):
        first = list(generate_documents(count=4, seed=7))
        second = list(generate_documents(count=4, seed=7))

        assert first == second

    def test_custom_layout_and_times(self):
        collection = CollectionConfig(time_field="ts", meta_field="meta", measurement_field="kwh")
        times = TimeSpec(start=datetime(2024, 6, 1, tzinfo=timezone.utc), step=timedelta(hours=1))

        documents = list(generate_documents(
            count=2, times=times, regions=["east"], customer_types=["public"],
            collection=collection, values_as_strings=True
        ))

        assert [document["ts"] for document in documents] == [
            "2024-06-01T00:00:00Z", "2024-06-01T01:00:00Z"
        ]
        assert documents[0]["meta"] == {"region": "east", "type": "public"}
        assert isinstance(documents[0]["kwh"], str)
