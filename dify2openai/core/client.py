"""HTTP client for the Dify chat-messages API."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from .backend import (
    DEFAULT_TIMEOUT,
    DifyBackend,
    build_outbound_headers,
    describe_error_body,
    format_httpx_error,
)
from .exceptions import UpstreamError

logger = logging.getLogger("dify2openai")


class DifyStream:
    """An open streaming response from Dify.

    Owns both the response and the client that produced it; ``aclose``
    releases the connection and is safe to call more than once.
    """

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient, url: str) -> None:
        self.response = response
        self._client = client
        self.url = url
        self.closed = False

    def iter_chunks(self) -> AsyncIterator[bytes]:
        return self.response.aiter_bytes()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        logger.debug(f"Closing stream for {self.url}")
        try:
            await self.response.aclose()
        finally:
            await self._client.aclose()


class DifyClient:
    """Sends BackendRequest payloads to Dify in blocking or streaming mode.

    No retries are performed; a failed call surfaces as one UpstreamError.
    """

    def __init__(
        self,
        backend: DifyBackend,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.backend = backend
        self._transport = transport

    def _timeout(self) -> float:
        return self.backend.timeout or DEFAULT_TIMEOUT

    async def chat_blocking(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a blocking request and return the decoded JSON reply.

        Raises:
            UpstreamError: On transport failure, non-2xx status or a
                body that is not a JSON object.
        """
        url = self.backend.build_url()
        headers = build_outbound_headers(self.backend.api_key)
        timeout = self._timeout()
        logger.debug(f"Executing blocking request to {url} with timeout {timeout}s")

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            message = format_httpx_error(exc, self.backend, url)
            logger.error(f"Blocking request to {url} failed: {message}")
            raise UpstreamError(f"Failed to reach Dify: {message}") from exc

        logger.debug(f"Received response from {url}: status {resp.status_code}")
        if resp.status_code >= 400:
            message = describe_error_body(resp.status_code, resp.content)
            logger.warning(message)
            raise UpstreamError(message, status_code=resp.status_code, body=resp.content)

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise UpstreamError(f"Dify returned invalid JSON: {exc}", status_code=502) from exc
        if not isinstance(data, dict):
            raise UpstreamError("Dify returned a non-object JSON body", status_code=502)
        return data

    async def open_stream(self, payload: dict[str, Any]) -> DifyStream:
        """POST a streaming request and return the open stream.

        The connect/write/pool phases are bounded by the backend timeout;
        reads on the open stream are not.

        Raises:
            UpstreamError: On transport failure or non-2xx status, before
                any bytes reach the client.
        """
        url = self.backend.build_url()
        headers = build_outbound_headers(self.backend.api_key, is_stream=True)
        timeout = self._timeout()
        stream_timeout = httpx.Timeout(connect=timeout, read=None, write=timeout, pool=timeout)
        logger.debug(f"Stream timeout config - connect={timeout}s, read=None, write={timeout}s, pool={timeout}s")

        client = httpx.AsyncClient(timeout=stream_timeout, transport=self._transport)
        try:
            request = client.build_request("POST", url, headers=headers, json=payload)
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            message = format_httpx_error(exc, self.backend, url)
            logger.error(f"Failed to send streaming request to {url}: {message}")
            raise UpstreamError(f"Failed to reach Dify: {message}") from exc
        except BaseException:
            await client.aclose()
            raise

        stream = DifyStream(resp, client, url)
        if resp.status_code >= 400:
            try:
                body = await resp.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await stream.aclose()
            message = describe_error_body(resp.status_code, body)
            logger.warning(f"Streaming request to {url} returned error: {message}")
            raise UpstreamError(message, status_code=resp.status_code, body=body)

        logger.info(f"Streaming request to {url} successful, status {resp.status_code}")
        return stream
