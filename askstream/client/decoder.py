"""
Incremental decoder for newline-delimited `data:` event streams.

Reads may split a record anywhere, including inside a multi-byte UTF-8
sequence; the decoder buffers the unterminated tail until the next feed.
"""

from __future__ import annotations

import codecs
import json

from pydantic import ValidationError

from askstream.exceptions import FrameParseWarning
from askstream.logging_utils import ContextualLogger

from .models import StreamEvent

DATA_PREFIX = "data:"
RECORD_SEPARATOR = "\n"
MAX_WARNING_HISTORY = 100


class FrameDecoder:
    """
    Turns arbitrary chunks of a byte stream into ordered StreamEvents.

    One instance owns one decode buffer for one request attempt; create a new
    decoder for every attempt so partial data never leaks into a retry.
    """

    def __init__(self, log: ContextualLogger | None = None):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._log = log or ContextualLogger({"component": "frame_decoder"})
        self.warnings: list[FrameParseWarning] = []
        self.stats = {
            'frames': 0,
            'ignored_lines': 0,
            'parse_warnings': 0,
        }

    @property
    def pending(self) -> str:
        """Unterminated tail waiting for its separator."""
        return self._buffer

    def feed(self, data: bytes | str) -> list[StreamEvent]:
        """
        Append a chunk and return every event completed by it, in order.

        Args:
            data: Raw bytes from the transport (text is accepted as-is)

        Returns:
            Decoded events, possibly empty
        """
        if isinstance(data, bytes):
            text = self._decoder.decode(data)
        else:
            text = data
        if not text:
            return []

        self._buffer += text
        if RECORD_SEPARATOR not in text:
            return []

        *lines, self._buffer = self._buffer.split(RECORD_SEPARATOR)

        events = []
        for raw_line in lines:
            event = self._decode_line(raw_line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[StreamEvent]:
        """Discard any unterminated fragment at end of stream."""
        self._decoder.reset()
        if self._buffer.strip():
            self._log.debug(
                "Discarding unterminated trailing fragment",
                fragment_length=len(self._buffer),
            )
        self._buffer = ""
        return []

    def _decode_line(self, raw_line: str) -> StreamEvent | None:
        line = raw_line.strip()
        if not line.startswith(DATA_PREFIX):
            if line:
                self.stats['ignored_lines'] += 1
            return None

        payload = line[len(DATA_PREFIX):].strip()
        if not payload:
            return None

        try:
            record = json.loads(payload)
            if not isinstance(record, dict):
                raise ValueError(
                    f"expected a JSON object, got {type(record).__name__}"
                )
            event = StreamEvent.model_validate(record)
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            self._warn(f"Failed to parse stream frame: {e}", payload)
            return None

        self.stats['frames'] += 1
        return event

    def _warn(self, message: str, payload: str) -> None:
        warning = FrameParseWarning(message, payload)
        self.stats['parse_warnings'] += 1
        self.warnings.append(warning)
        if len(self.warnings) > MAX_WARNING_HISTORY:
            self.warnings.pop(0)
        self._log.warning(message, payload=payload[:200])

    def get_stats(self) -> dict[str, int]:
        """Get decoding statistics for monitoring."""
        return self.stats.copy()

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self.stats = {
            'frames': 0,
            'ignored_lines': 0,
            'parse_warnings': 0,
        }
