"""Server-Sent Events: frame codec, event hub and the push-stream response."""

from .frames import Event, FrameParser, encode_frame
from .hub import ClientClosedError, EventClient, EventHub
from .response import EventStreamResponse

__all__ = [
    "ClientClosedError",
    "Event",
    "EventClient",
    "EventHub",
    "EventStreamResponse",
    "FrameParser",
    "encode_frame",
]
