"""Shared helpers for reading provider payloads."""

import re
from datetime import datetime, timezone
from typing import Any, Optional

from bs4 import BeautifulSoup

from unified_inbox.core.errors import MalformedPayloadError

_FRACTION = re.compile(r"\.(\d+)")


def to_epoch_ms(value: Any) -> int:
    """Convert an ISO 8601 timestamp (or datetime) to epoch milliseconds."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        text = value.strip().replace("Z", "+00:00")
        # ADO returns up to 7 fractional digits
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise MalformedPayloadError(f"Invalid timestamp: {value!r}") from None
    else:
        raise MalformedPayloadError(f"Missing timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def html_to_text(html: Optional[str]) -> str:
    """Strip markup from an HTML fragment."""
    if not html:
        return ""
    if "<" not in html:
        return html.strip()
    soup = BeautifulSoup(html, "html.parser")
    return soup.get_text(separator="\n", strip=True)


def require(data: dict[str, Any], *path: str) -> Any:
    """Read a nested required key, raising ``MalformedPayloadError`` if absent."""
    current: Any = data
    for key in path:
        if not isinstance(current, dict) or current.get(key) is None:
            raise MalformedPayloadError(f"Missing field '{'.'.join(path)}'")
        current = current[key]
    return current
