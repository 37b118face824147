"""Event model and Server-Sent Events frame codec.

A frame on the wire looks like:

    event: <type>
    id: <id>          (optional)
    data: <json>      (optional, exactly one JSON value)
    <blank line>

Consumers treat a missing ``data`` line as "no payload".
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)


def _single_line(value: str, what: str) -> str:
    if "\r" in value or "\n" in value:
        raise ValueError(f"{what} must not contain line breaks")
    return value


class Event(BaseModel):
    """A server-pushed event.

    Example:
        Event(type="connected", data={"sessionId": "sess_abc"})
    """

    type: str
    id: str | None = None
    data: Any = None

    @field_validator("type")
    @classmethod
    def _type_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("event type must not be empty")
        return _single_line(value, "event type")

    @field_validator("id")
    @classmethod
    def _id_single_line(cls, value: str | None) -> str | None:
        return value if value is None else _single_line(value, "event id")

    @field_validator("data")
    @classmethod
    def _data_serializable(cls, value: Any) -> Any:
        # Frames are written long after publish; fail at the publisher instead.
        try:
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"event data must be JSON-serializable: {e}") from e
        return value

    @classmethod
    def connected(cls, session_id: str) -> Event:
        """Create the first event sent on a new push stream."""
        return cls(type="connected", data={"sessionId": session_id})

    @classmethod
    def ping(cls) -> Event:
        """Create a liveness event (no payload)."""
        return cls(type="ping")


def encode_frame(event: Event) -> str:
    """Serialize an event as a single SSE frame."""
    lines = [f"event: {event.type}"]
    if event.id:
        lines.append(f"id: {event.id}")
    if event.data is not None:
        lines.append(f"data: {json.dumps(event.data, separators=(',', ':'))}")
    return "\n".join(lines) + "\n\n"


class FrameParser:
    """Incremental SSE frame parser.

    Feed it lines (without trailing newlines) and it yields an Event each
    time a blank line terminates a frame. Comment lines (``:``) and unknown
    fields are ignored.
    """

    def __init__(self) -> None:
        self._type: str | None = None
        self._id: str | None = None
        self._data: list[str] = []

    def feed(self, line: str) -> Event | None:
        """Consume one line, returning a completed Event if any."""
        if line == "":
            return self._flush()

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._type = value
        elif field == "id":
            self._id = value
        elif field == "data":
            self._data.append(value)

        return None

    def _flush(self) -> Event | None:
        event_type, event_id, data_lines = self._type, self._id, self._data
        self._type, self._id, self._data = None, None, []

        if not event_type:
            if data_lines:
                logger.warning("Dropping SSE frame without event type")
            return None

        data: Any = None
        if data_lines:
            raw = "\n".join(data_lines)
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Failed to parse SSE data: {raw}")
                data = raw

        return Event(type=event_type, id=event_id or None, data=data)
