"""Incremental decoder for the chat-send event stream."""

import json
from typing import List

import structlog
from pydantic import ValidationError

from ..domain.events import StreamEvent

logger = structlog.get_logger()

DATA_PREFIX = "data:"


class EventStreamDecoder:
    """Turns arbitrarily split text chunks into complete events.

    Network chunks need not line up with event boundaries, so any trailing
    partial line is held until the next ``feed``.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> List[StreamEvent]:
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        events = []
        for line in lines:
            event = self._parse_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> List[StreamEvent]:
        """Decode whatever is left once the stream has ended."""
        line, self._buffer = self._buffer, ""
        event = self._parse_line(line.rstrip("\r"))
        return [event] if event is not None else []

    @staticmethod
    def _parse_line(line: str):
        if not line.startswith(DATA_PREFIX):
            return None
        payload = line[len(DATA_PREFIX):].strip()
        if not payload:
            return None
        try:
            return StreamEvent.model_validate(json.loads(payload))
        except (ValueError, ValidationError) as e:
            logger.warning("stream_event_malformed", error=str(e))
            return None
