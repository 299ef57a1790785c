"""SSE (Server-Sent Events) framing helpers."""

import json
from typing import Any, Mapping

DONE_FRAME = b"data: [DONE]\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def is_event_line(line: str) -> bool:
    """Return True for lines carrying an SSE ``data:`` payload."""
    return line.startswith("data:")


def format_sse_frame(payload: Mapping[str, Any]) -> bytes:
    """Encode one JSON payload as a ``data: <json>\\n\\n`` frame."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


class SSELineBuffer:
    """Splits a byte stream into complete ``data:`` lines.

    A network chunk may end mid-line; the partial tail is held until the
    next chunk (or ``flush``) completes it. Each complete event line is
    returned separately so callers can translate and write them one by one.
    """

    def __init__(self) -> None:
        self._pending = b""

    def feed(self, chunk: bytes) -> list[str]:
        if not chunk:
            return []
        data = self._pending + chunk
        lines = data.split(b"\n")
        self._pending = lines.pop()
        return self._event_lines(lines)

    def flush(self) -> list[str]:
        if not self._pending:
            return []
        lines = [self._pending]
        self._pending = b""
        return self._event_lines(lines)

    @staticmethod
    def _event_lines(lines: list[bytes]) -> list[str]:
        result = []
        for raw in lines:
            line = raw.decode("utf-8", errors="replace").strip()
            if line and is_event_line(line):
                result.append(line)
        return result
