"""
HTTP endpoints for the chat session.

Long-running operations (model load, chat turn) answer with a
server-sent event stream of session events that ends with a ``done``
event. Requests that fail validation are rejected with a plain HTTP
error before any streaming starts.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Set

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from .catalog import PROMPT_TEMPLATES, template_for
from .errors import EmptyInput, ErrorKind, InvalidTransition, NiraError
from .events import SessionEvents
from .models import ModelDescriptor
from .orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

_STATUS_CODES = {
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.NOT_READY: 409,
    ErrorKind.UNKNOWN_MODEL: 404,
    ErrorKind.MODEL_LOAD_FAILED: 502,
    ErrorKind.STREAM_FAILED: 502,
}


class LoadRequest(BaseModel):
    """Model load request. Omitting the model selects the catalog default."""
    model: Optional[str] = None
    stream: bool = True


class ChatRequest(BaseModel):
    """Chat turn request. Naming a model starts it first if it is not ready."""
    message: str
    model: Optional[str] = None
    stream: bool = True


class ResetRequest(BaseModel):
    """New conversation request."""
    system_prompt: Optional[str] = None


def _orchestrator(request: Request) -> SessionOrchestrator:
    return request.app.state.orchestrator


def _events(request: Request) -> SessionEvents:
    return request.app.state.events


def _stream(request: Request, operation: Callable[[], Awaitable[Dict[str, Any]]]) -> StreamingResponse:
    return StreamingResponse(
        _stream_operation(_events(request), operation, request.app.state.tasks),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/v1/models")
async def list_models(request: Request):
    """List the model catalog, flagging models already in the local store."""
    orchestrator = _orchestrator(request)
    catalog = orchestrator.catalog
    installed = {m.get("name") for m in await orchestrator.engine.list_models()}
    data = []
    for model in catalog.list():
        info = _model_info(model)
        info["installed"] = model.id in installed
        data.append(info)
    return {
        "object": "list",
        "default": catalog.default.id,
        "data": data,
    }


@router.get("/v1/templates")
async def list_templates():
    """Quick-topic starter prompts."""
    return {"templates": PROMPT_TEMPLATES}


@router.get("/v1/templates/{topic}")
async def get_template(topic: str):
    """Starter prompt for one quick topic."""
    prompt = template_for(topic)
    if not prompt:
        return JSONResponse(
            status_code=404,
            content={"error": {"kind": "unknown_topic", "message": f"Unknown topic: {topic}"}},
        )
    return {"topic": topic.strip(), "prompt": prompt}


@router.get("/v1/session")
async def get_session(request: Request):
    """Current session snapshot."""
    return _session_snapshot(_orchestrator(request))


@router.post("/v1/session/load")
async def load_model(body: LoadRequest, request: Request):
    """
    Start, reload or retry a model.

    Streams progress/state events while the engine downloads and warms
    up the model.
    """
    orchestrator = _orchestrator(request)
    model_id = body.model or orchestrator.catalog.default.id
    orchestrator.check_load(model_id)

    async def operation() -> Dict[str, Any]:
        model = await orchestrator.load_model(model_id)
        return {"model": model.id, "status": orchestrator.status.value}

    if not body.stream:
        return await operation()

    return _stream(request, operation)


@router.post("/v1/chat")
async def chat(body: ChatRequest, request: Request):
    """
    Send a message and stream the reply.

    The response stream carries:
    - message: transcript entries (user, then assistant)
    - streaming: running assistant text after each delta
    - usage: updated token tally
    - error: stream failures
    - done: {"text": ..., "discarded": bool}

    With "model" set, state/progress events of the model load come first.
    """
    orchestrator = _orchestrator(request)
    needs_load = bool(body.model) and not orchestrator.is_ready_on(body.model)
    if needs_load:
        orchestrator.check_load(body.model)
        if not body.message.strip():
            raise EmptyInput()
    else:
        orchestrator.check_send(body.message)

    async def operation() -> Dict[str, Any]:
        if needs_load:
            await orchestrator.ensure_loaded(body.model)
        text = await orchestrator.send_message(body.message)
        return {
            "text": text,
            "discarded": text is None,
            "usage": orchestrator.usage.summary(),
            "token_info": orchestrator.token_info(),
        }

    if not body.stream:
        return await operation()

    return _stream(request, operation)


@router.post("/v1/session/reset")
async def reset_session(request: Request, body: Optional[ResetRequest] = None):
    """Start a new conversation."""
    orchestrator = _orchestrator(request)
    orchestrator.reset_conversation(body.system_prompt if body else None)
    return _session_snapshot(orchestrator)


@router.get("/v1/events")
async def event_stream(request: Request):
    """
    SSE feed of every session event.

    Useful for a display that wants to follow the session regardless of
    which client triggered an operation.
    """
    return StreamingResponse(
        _event_feed(_events(request)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def session_error_handler(request: Request, exc: NiraError):
    """Map the session error taxonomy onto HTTP responses."""
    if isinstance(exc, EmptyInput):
        return Response(status_code=204)
    if isinstance(exc, InvalidTransition):
        logger.warning(f"Ignored invalid transition: {exc}")
    return JSONResponse(
        status_code=_STATUS_CODES.get(exc.kind, 400),
        content={"error": {"kind": exc.kind.value, "message": str(exc)}},
    )


# =============================================================================
# Streaming helpers
# =============================================================================

async def _stream_operation(
    events: SessionEvents,
    operation: Callable[[], Awaitable[Dict[str, Any]]],
    tasks: Set[asyncio.Task],
) -> AsyncIterator[str]:
    """
    Run an operation and stream the session events it produces.

    The operation keeps running if the client disconnects mid-stream;
    ``tasks`` holds a reference until it finishes.
    """
    queue = events.subscribe()
    task = asyncio.create_task(_run_operation(operation, queue))
    tasks.add(task)
    task.add_done_callback(tasks.discard)

    try:
        while True:
            event = await queue.get()
            if event is None:
                break
            yield _format_sse_event(event["event"], event["data"])
    finally:
        events.unsubscribe(queue)

    await task


async def _run_operation(
    operation: Callable[[], Awaitable[Dict[str, Any]]],
    queue: asyncio.Queue,
) -> None:
    try:
        result = await operation()
        queue.put_nowait({"event": "done", "data": {"ok": True, **result}})
    except InvalidTransition as e:
        logger.warning(f"Ignored invalid transition: {e}")
        queue.put_nowait({"event": "error", "data": {"kind": e.kind.value, "message": str(e)}})
        queue.put_nowait({"event": "done", "data": {"ok": False}})
    except NiraError as e:
        # Already reported to subscribers through the session listener.
        logger.info(f"Operation ended with {e.kind.value}: {e}")
        queue.put_nowait({"event": "done", "data": {"ok": False, "kind": e.kind.value}})
    finally:
        queue.put_nowait(None)


async def _event_feed(events: SessionEvents) -> AsyncIterator[str]:
    queue = events.subscribe()
    try:
        while True:
            event = await queue.get()
            yield _format_sse_event(event["event"], event["data"])
    finally:
        events.unsubscribe(queue)


def _model_info(model: ModelDescriptor) -> Dict[str, Any]:
    return {
        "id": model.id,
        "label": model.label,
        "approx_size_bytes": model.approx_size_bytes,
        "approx_size": model.approx_size_label,
    }


def _session_snapshot(orchestrator: SessionOrchestrator) -> Dict[str, Any]:
    model = orchestrator.current_model
    return {
        "status": orchestrator.status.value,
        "model": _model_info(model) if model else None,
        "messages": [m.model_dump(mode="json") for m in orchestrator.transcript],
        "usage": orchestrator.usage.summary(),
        "token_info": orchestrator.token_info(),
        "progress": orchestrator.last_progress.model_dump(),
        "generation": orchestrator.generation,
    }


def _format_sse_event(event_type: str, data: dict) -> str:
    """Format session event as SSE."""
    return f"event: {event_type}\ndata: {json.dumps(data)}\n\n"
