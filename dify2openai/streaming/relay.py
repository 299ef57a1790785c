"""Relay a Dify event stream to an OpenAI chat.completion.chunk stream.

Dify events:
    data: {"event": "message", "answer": "Hi", ...}
    data: {"event": "message", "answer": " there", ...}
    data: {"event": "message_end", ...}

Client frames:
    data: {"object": "chat.completion.chunk", "choices": [{"delta": {"content": "Hi"}, ...}]}
    data: {"object": "chat.completion.chunk", "choices": [{"delta": {"content": " there"}, ...}]}
    data: {"object": "chat.completion.chunk", "choices": [{"delta": {...}, "finish_reason": "stop"}]}
    data: [DONE]
"""

import asyncio
import itertools
import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Iterator, Optional, Protocol

from ..core.sse import DONE_FRAME, SSELineBuffer, format_sse_frame
from ..translation.response import ResponseTranslator
from ..usage_metrics import USAGE_COUNTERS

logger = logging.getLogger("dify2openai")


class BackendStream(Protocol):
    def iter_chunks(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


class StreamState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class StreamRelay:
    """Drives one backend stream through OPEN -> CLOSING -> CLOSED.

    Every complete backend event line is translated and written as its own
    client frame. The stream always ends with ``data: [DONE]`` unless the
    client went away, in which case the backend stream is released and
    nothing more is written.
    """

    def __init__(
        self,
        backend_stream: BackendStream,
        translator: ResponseTranslator,
        conversation_key: Optional[str],
        model: Optional[str] = None,
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> None:
        self._backend = backend_stream
        self._translator = translator
        self._conversation_key = conversation_key
        self._model = model
        self._disconnect_checker = disconnect_checker
        self._buffer = SSELineBuffer()
        self.state = StreamState.OPEN
        self.frames_written = 0
        self.client_disconnected = False

    def _translate_lines(self, lines: list[str]) -> Iterator[bytes]:
        # Lazy: a line is translated only once the previous frame was consumed.
        for line in lines:
            chunk = self._translator.translate_stream_event(
                line, self._conversation_key, self._model
            )
            if chunk is not None:
                yield format_sse_frame(chunk)

    def _on_frame(self, chunk: bytes) -> Iterator[bytes]:
        return self._translate_lines(self._buffer.feed(chunk))

    def _on_backend_end(self) -> Iterator[bytes]:
        self.state = StreamState.CLOSING
        return itertools.chain(self._translate_lines(self._buffer.flush()), [DONE_FRAME])

    def _on_backend_error(self, exc: BaseException) -> Iterator[bytes]:
        self.state = StreamState.CLOSING
        USAGE_COUNTERS.record_stream_error()
        logger.error(f"Error during Dify stream: {exc} (type: {exc.__class__.__name__})")
        return iter([DONE_FRAME])

    async def _on_client_disconnect(self) -> None:
        self.client_disconnected = True
        self.state = StreamState.CLOSING
        logger.info("Client disconnected; releasing Dify stream")
        await self._close()

    async def _close(self) -> None:
        if self.state is StreamState.CLOSED:
            return
        self.state = StreamState.CLOSED
        await self._backend.aclose()

    async def _client_gone(self) -> bool:
        if self._disconnect_checker is None:
            return False
        return await self._disconnect_checker()

    async def iterate(self) -> AsyncIterator[bytes]:
        """Yield client SSE frames until the stream reaches CLOSED."""
        chunks = self._backend.iter_chunks()
        try:
            while self.state is StreamState.OPEN:
                if await self._client_gone():
                    await self._on_client_disconnect()
                    return
                try:
                    chunk = await chunks.__anext__()
                except StopAsyncIteration:
                    tail = self._on_backend_end()
                except Exception as exc:
                    tail = self._on_backend_error(exc)
                else:
                    for frame in self._on_frame(chunk):
                        self.frames_written += 1
                        yield frame
                    continue

                await self._close()
                for frame in tail:
                    self.frames_written += 1
                    yield frame
        except (asyncio.CancelledError, GeneratorExit):
            logger.info("Streaming response cancelled by client")
            self.client_disconnected = True
            raise
        finally:
            await self._close()
            logger.debug(f"Stream relay finished, {self.frames_written} frames written")
