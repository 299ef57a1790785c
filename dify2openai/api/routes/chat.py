"""OpenAI-compatible chat completions endpoint backed by Dify."""

import json
import logging
import uuid
from typing import Any, Callable, Mapping, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask, BackgroundTasks

from ...conversations.keys import derive_conversation_key
from ...core.exceptions import InvalidRequestError, ProxyError
from ...core.sse import SSE_HEADERS
from ...streaming.relay import StreamRelay
from ...translation.request import translate_request
from ...usage_metrics import USAGE_COUNTERS
from ..context import ProxyContext, get_proxy_context

logger = logging.getLogger("dify2openai")

INTERNAL_ERROR_MESSAGE = "An error occurred during your request."


def _attach_finish_task(response: Response, finish: Callable[[], None]) -> None:
    existing = getattr(response, "background", None)
    if existing is None:
        response.background = BackgroundTask(finish)
        return

    tasks = BackgroundTasks()
    if isinstance(existing, BackgroundTasks):
        for task in existing.tasks:
            tasks.add_task(task.func, *task.args, **task.kwargs)
    else:
        tasks.add_task(existing.func, *existing.args, **existing.kwargs)
    tasks.add_task(finish)
    response.background = tasks


def error_response(exc: ProxyError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


def _parse_payload(body: bytes) -> Mapping[str, Any]:
    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.error(f"Invalid JSON payload: {exc}")
        raise InvalidRequestError("Invalid JSON payload") from exc

    if not isinstance(payload, Mapping):
        logger.error("Payload must be a JSON object")
        raise InvalidRequestError("Request body must be a JSON object")

    messages = payload.get("messages")
    if not isinstance(messages, list):
        logger.error("Request missing or invalid messages array")
        raise InvalidRequestError("Invalid messages format: messages must be an array")
    return payload


def _resolve_stream_flag(payload: Mapping[str, Any]) -> bool:
    stream = payload.get("stream")
    if stream is None:
        return False
    if not isinstance(stream, bool):
        logger.error(f"Invalid stream flag: {stream!r}")
        raise InvalidRequestError("Invalid stream flag: stream must be a boolean")
    return stream


def _resolve_model(payload: Mapping[str, Any], default: str) -> str:
    model = payload.get("model")
    if isinstance(model, str) and model.strip():
        return model.strip()
    return default


def _resolve_session_id(
    request: Request, payload: Mapping[str, Any], header_name: str
) -> Optional[str]:
    header_value = request.headers.get(header_name)
    if header_value and header_value.strip():
        return header_value.strip()
    body_value = payload.get("session_id")
    if isinstance(body_value, (str, int)) and str(body_value).strip():
        return str(body_value).strip()
    return None


async def _stream_completion(
    request: Request,
    context: ProxyContext,
    backend_payload: dict[str, Any],
    conversation_key: str,
    model: str,
) -> StreamingResponse:
    backend_stream = await context.client.open_stream(backend_payload)
    relay = StreamRelay(
        backend_stream,
        context.translator,
        conversation_key,
        model=model,
        disconnect_checker=request.is_disconnected,
    )
    return StreamingResponse(
        relay.iterate(),
        media_type="text/event-stream",
        headers=dict(SSE_HEADERS),
    )


async def handle_chat_request(request: Request) -> Response:
    """Translate one chat completions call into a Dify call and back.

    Client faults and upstream failures become ``{"error": {...}}`` bodies;
    any other failure is logged and reported as a generic 500.
    """
    req_id = uuid.uuid4().hex[:8]
    context = get_proxy_context(request)
    tracker = USAGE_COUNTERS.start_request()
    streaming_started = False

    try:
        body = await request.body()
        payload = _parse_payload(body)
        messages = payload["messages"]
        is_stream = _resolve_stream_flag(payload)
        model = _resolve_model(payload, context.settings.model_name)
        session_id = _resolve_session_id(
            request, payload, context.settings.conversations.session_header
        )
        conversation_key = derive_conversation_key(messages, session_id)

        backend_request = translate_request(
            messages,
            conversation_key,
            user=payload.get("user"),
            response_mode="streaming" if is_stream else "blocking",
            registry=context.registry,
            default_user=context.settings.dify.default_user,
        )
        logger.info(
            f"[{req_id}] Processing chat request: stream={is_stream}, "
            f"messages={len(messages)}, conversation_id={backend_request.conversation_id or '<new>'}"
        )

        backend_payload = backend_request.to_payload()
        if is_stream:
            response = await _stream_completion(
                request, context, backend_payload, conversation_key, model
            )
            _attach_finish_task(response, tracker.finish)
            streaming_started = True
            return response

        reply = await context.client.chat_blocking(backend_payload)
        completion = context.translator.translate_blocking(reply, conversation_key, model)
        logger.info(f"[{req_id}] Chat request completed successfully")
        return JSONResponse(completion)
    except ProxyError as exc:
        logger.warning(f"[{req_id}] Chat request failed ({exc.status_code}): {exc.message}")
        return error_response(exc)
    except Exception:
        logger.exception(f"[{req_id}] Unexpected error while handling chat request")
        return error_response(ProxyError(INTERNAL_ERROR_MESSAGE))
    finally:
        if not streaming_started:
            tracker.finish()


async def chat_completions(request: Request) -> Response:
    """Chat completions endpoint - OpenAI compatible.

    POST /v1/chat/completions
    """
    logger.info("Received chat completions request")
    return await handle_chat_request(request)
