"""Unit tests for structured logging."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import json
import logging

from logger import JSONFormatter


def make_record(**extra):
    record = logging.LogRecord(
        name="services.orchestrator",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Answered with %s",
        args=("strict_retrieval",),
        exc_info=None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_core_fields():
    data = json.loads(JSONFormatter().format(make_record()))

    assert data["level"] == "INFO"
    assert data["logger"] == "services.orchestrator"
    assert data["message"] == "Answered with strict_retrieval"
    assert data["timestamp"].endswith("Z")


def test_includes_extra_fields():
    data = json.loads(JSONFormatter().format(make_record(conversation_id="conv-1", top_score=0.93)))

    assert data["conversation_id"] == "conv-1"
    assert data["top_score"] == 0.93
    assert "args" not in data
    assert "pathname" not in data


def test_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = make_record()
        record.exc_info = sys.exc_info()

    data = json.loads(JSONFormatter().format(record))

    assert "RuntimeError: boom" in data["exception"]
