"""In-memory usage counters for request and stream accounting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any


class RequestTracker:
    """Track a single request lifecycle for in-memory counters."""

    def __init__(self, counters: "UsageCounters") -> None:
        self._counters = counters
        self._finished = False

    def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._counters.finish_request()


@dataclass
class UsageCounters:
    """Thread-safe counters for requests and backend stream frames."""

    _lock: Lock = field(default_factory=Lock, repr=False)
    _started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    _received: int = 0
    _served: int = 0
    _ongoing: int = 0
    _frames_repaired: int = 0
    _frames_dropped: int = 0
    _stream_errors: int = 0

    def start_request(self) -> RequestTracker:
        with self._lock:
            self._received += 1
            self._ongoing += 1
        return RequestTracker(self)

    def finish_request(self) -> None:
        with self._lock:
            self._served += 1
            if self._ongoing > 0:
                self._ongoing -= 1
            else:
                self._ongoing = 0

    def record_frame_repaired(self) -> None:
        with self._lock:
            self._frames_repaired += 1

    def record_frame_dropped(self) -> None:
        with self._lock:
            self._frames_dropped += 1

    def record_stream_error(self) -> None:
        with self._lock:
            self._stream_errors += 1

    def reset(self) -> None:
        with self._lock:
            self._received = 0
            self._served = 0
            self._ongoing = 0
            self._frames_repaired = 0
            self._frames_dropped = 0
            self._stream_errors = 0

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "started_at": self._started_at,
                "received": self._received,
                "served": self._served,
                "ongoing": self._ongoing,
                "frames_repaired": self._frames_repaired,
                "frames_dropped": self._frames_dropped,
                "stream_errors": self._stream_errors,
            }


USAGE_COUNTERS = UsageCounters()
