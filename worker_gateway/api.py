"""
OpenAI-compatible API endpoints.

Provides /v1/chat/completions, /v1/completions, /v1/embeddings and
/v1/models, compatible with OpenAI clients, plus /health and the operator
endpoints /status and /logs. Generation endpoints answer 503 while the
model is not loaded; embeddings do not depend on the chat model.
"""

import logging
import time
import uuid
from typing import Type, TypeVar

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from .errors import BadRequest, ModelNotLoaded
from .models import (
    ChatChoice,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    CompletionChoice,
    CompletionRequest,
    CompletionResponse,
    EmbeddingData,
    EmbeddingRequest,
    EmbeddingResponse,
    ModelList,
    Role,
    Usage,
)
from .session import ModelSession
from .streaming import collect_text, iter_deltas, pump, stream_chat_events

logger = logging.getLogger(__name__)

router = APIRouter()

M = TypeVar("M", bound=BaseModel)


def _session(request: Request) -> ModelSession:
    return request.app.state.session


def _require_loaded(session: ModelSession) -> None:
    if not session.is_loaded:
        raise ModelNotLoaded()


async def _parse_body(request: Request, model: Type[M]) -> M:
    """Decode a JSON body, mapping every decode failure to a 400."""
    try:
        body = await request.json()
    except ValueError as e:
        raise BadRequest(f"Request body is not valid JSON: {e}") from e

    try:
        return model.model_validate(body)
    except ValidationError as e:
        err = e.errors()[0]
        location = ".".join(str(p) for p in err.get("loc", ())) or "body"
        raise BadRequest(f"Invalid request at '{location}': {err.get('msg')}") from e


@router.get("/health", response_class=PlainTextResponse)
async def health():
    """Liveness check."""
    return "Server is running."


@router.get("/v1/models")
async def list_models(request: Request):
    """List the loaded model (OpenAI-compatible); empty when none is loaded."""
    info = _session(request).model_info()
    return ModelList(data=[info] if info else []).model_dump()


@router.post("/v1/chat/completions")
async def chat_completions(request: Request):
    """
    OpenAI-compatible chat completions.

    With ``stream: true`` the response is an event stream of
    ``chat.completion.chunk`` events terminated by ``data: [DONE]``.
    """
    session = _session(request)
    _require_loaded(session)
    chat = await _parse_body(request, ChatCompletionRequest)

    logger.info(f"Chat completion: model={chat.model}, messages={len(chat.messages)}, stream={bool(chat.stream)}")

    deltas = iter_deltas(session.generate(chat.messages))
    completion_id = f"chatcmpl-{uuid.uuid4()}"
    created = int(time.time())

    if chat.stream:
        return StreamingResponse(
            stream_chat_events(pump(deltas), completion_id, created, chat.model, session.log),
            media_type="text/event-stream",
            headers={
                "X-Request-ID": completion_id,
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )

    text = await collect_text(deltas)
    prompt_tokens = len("".join(m.content for m in chat.messages))
    response = ChatCompletionResponse(
        id=completion_id,
        created=created,
        model=chat.model,
        choices=[ChatChoice(index=0, message=ChatMessage(role=Role.ASSISTANT, content=text))],
        usage=Usage.of(prompt_tokens, len(text)),
    )
    return response.model_dump(mode="json")


@router.post("/v1/completions")
async def completions(request: Request):
    """Legacy text completion; the prompt is sent as a single user message."""
    session = _session(request)
    _require_loaded(session)
    req = await _parse_body(request, CompletionRequest)

    messages = [ChatMessage(role=Role.USER, content=req.prompt)]
    text = await collect_text(iter_deltas(session.generate(messages)))

    response = CompletionResponse(
        id=f"cmpl-{uuid.uuid4()}",
        created=int(time.time()),
        model=req.model,
        choices=[CompletionChoice(text=text, index=0)],
        usage=Usage.of(len(req.prompt), len(text)),
    )
    return response.model_dump(mode="json")


@router.post("/v1/embeddings")
async def embeddings(request: Request):
    """Sentence embeddings; available regardless of the chat model state."""
    session = _session(request)
    req = await _parse_body(request, EmbeddingRequest)

    data = []
    for index, text in enumerate(req.inputs):
        vector = await session.generate_embedding(text)
        data.append(EmbeddingData(embedding=vector, index=index))

    prompt_tokens = sum(len(text) for text in req.inputs)
    response = EmbeddingResponse(data=data, model=req.model, usage=Usage.of(prompt_tokens, 0))
    return response.model_dump(mode="json")


# =============================================================================
# Operator endpoints
# =============================================================================

@router.get("/status")
async def status(request: Request):
    """Model and server state with host metrics."""
    session = _session(request)
    gateway = getattr(request.app.state, "gateway", None)
    metrics = request.app.state.monitor.sample()

    return {
        "model_state": session.state.status.value,
        "model_error": session.state.message,
        "server_state": gateway.state.status.value if gateway else None,
        "server_error": gateway.state.message if gateway else None,
        "address": gateway.address if gateway else None,
        "memory_mode": session.memory_mode,
        "cpu_percent": metrics.cpu_percent,
        "memory_rss": metrics.memory_rss,
    }


@router.get("/logs")
async def logs(request: Request, limit: int = 200):
    """Most recent operator log lines, oldest first."""
    entries = _session(request).log.entries(limit)
    return {"logs": [e.message for e in entries]}
