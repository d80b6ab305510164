"""Newline-delimited JSON framing of progressive fetch results."""

import json
import logging
from typing import Any, AsyncIterator, Iterable

from unified_inbox.core import ItemBatch, MalformedPayloadError, group_inbox_items

logger = logging.getLogger(__name__)

PROGRESS = "progress"
COMPLETE = "complete"
ERROR = "error"


def encode_frame(frame: dict[str, Any]) -> str:
    return json.dumps(frame, ensure_ascii=False) + "\n"


def progress_frame(batch: ItemBatch, group_by_instance: bool = False) -> dict[str, Any]:
    groups = group_inbox_items(batch.items, group_by_instance)
    return {
        "type": PROGRESS,
        "data": {key: group.to_dict() for key, group in groups.items()},
        "progress": batch.progress.to_dict(),
    }


async def stream_frames(batches: AsyncIterator[ItemBatch], group_by_instance: bool = False) -> AsyncIterator[str]:
    """Encode batches as NDJSON lines.

    One ``progress`` line per batch, then ``complete``. An unexpected failure
    ends the stream with a single ``error`` line.
    """
    try:
        async for batch in batches:
            yield encode_frame(progress_frame(batch, group_by_instance))
    except Exception as e:
        logger.error("Error in streaming fetch: %s", e, exc_info=True)
        yield encode_frame({"type": ERROR, "error": str(e)})
        return

    yield encode_frame({"type": COMPLETE})


class DecodedStream:
    """Consumer-side view of a frame stream."""

    def __init__(self) -> None:
        self.groups: dict[str, dict[str, Any]] = {}
        self.progress: list[dict[str, Any]] = []
        self.complete = False
        self.error: str = ""

    def add_progress(self, frame: dict[str, Any]) -> None:
        for key, group in (frame.get("data") or {}).items():
            target = self.groups.setdefault(
                key, {"project": group.get("project"), "instance": group.get("instance"), "items": []}
            )
            seen = {item["id"] for item in target["items"]}
            for item in group.get("items") or []:
                if item.get("id") not in seen:
                    target["items"].append(item)
                    seen.add(item.get("id"))
        if frame.get("progress"):
            self.progress.append(frame["progress"])


def decode_frames(lines: Iterable[str]) -> DecodedStream:
    """Accumulate progress frames by group key, skipping items already seen."""
    stream = DecodedStream()
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            frame = json.loads(line)
        except ValueError as e:
            raise MalformedPayloadError(f"Invalid frame: {line[:100]!r}") from e

        frame_type = frame.get("type")
        if frame_type == PROGRESS:
            stream.add_progress(frame)
        elif frame_type == COMPLETE:
            stream.complete = True
            break
        elif frame_type == ERROR:
            stream.error = frame.get("error") or "Unknown error"
            break
        else:
            raise MalformedPayloadError(f"Unknown frame type: {frame_type!r}")
    return stream
