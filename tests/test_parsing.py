"""Tests for payload parsing helpers."""

from datetime import datetime, timezone

import pytest

from unified_inbox.adapters.parsing import html_to_text, require, to_epoch_ms
from unified_inbox.core import MalformedPayloadError


def test_to_epoch_ms_formats() -> None:
    """Test the timestamp shapes providers return."""
    assert to_epoch_ms("1970-01-01T00:00:01Z") == 1000
    assert to_epoch_ms("1970-01-01T00:00:01.5Z") == 1500
    # Seven fractional digits as returned by ADO
    assert to_epoch_ms("1970-01-01T00:00:01.2500000Z") == 1250
    assert to_epoch_ms("1970-01-01T01:00:00+01:00") == 0
    # Naive values are UTC
    assert to_epoch_ms("1970-01-01T00:00:02") == 2000
    assert to_epoch_ms(datetime(1970, 1, 1, 0, 0, 3, tzinfo=timezone.utc)) == 3000


def test_to_epoch_ms_invalid() -> None:
    """Test unparseable timestamps raise MalformedPayloadError."""
    with pytest.raises(MalformedPayloadError, match="Invalid timestamp"):
        to_epoch_ms("yesterday")

    with pytest.raises(MalformedPayloadError, match="Missing timestamp"):
        to_epoch_ms(None)


def test_html_to_text() -> None:
    """Test markup is stripped from descriptions."""
    assert html_to_text("<p>Hello <b>world</b></p>") == "Hello\nworld"
    assert html_to_text("  plain text  ") == "plain text"
    assert html_to_text(None) == ""
    assert html_to_text("") == ""


def test_require() -> None:
    """Test nested required keys."""
    data = {"repository": {"project": {"name": "Proj"}}, "empty": None}

    assert require(data, "repository", "project", "name") == "Proj"

    with pytest.raises(MalformedPayloadError, match="repository.name"):
        require(data, "repository", "name")

    with pytest.raises(MalformedPayloadError):
        require(data, "empty")
