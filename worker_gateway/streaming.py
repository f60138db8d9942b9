"""
Streaming adapter.

Turns the model's cumulative snapshots into deltas and frames deltas as
OpenAI-compatible server-sent events:

    data: {"object": "chat.completion.chunk", ...}\\n\\n   (first carries role)
    ...
    data: {... "delta": {}, "finish_reason": "stop"}\\n\\n
    data: [DONE]\\n\\n

The terminal chunk and the [DONE] line are always sent, also after a
failed generation; already-sent chunks are never retracted.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional, TypeVar

from .logstore import LogStore
from .models import Role, StreamChoice, StreamChunk, StreamDelta

logger = logging.getLogger(__name__)

DONE_EVENT = "data: [DONE]\n\n"

T = TypeVar("T")


async def iter_deltas(snapshots: AsyncIterable[str]) -> AsyncIterator[str]:
    """
    Yield the new suffix of each cumulative snapshot.

    Snapshots that add nothing (repeats included) are dropped. Each
    snapshot is assumed to extend the last one that produced a delta.
    """
    last_length = 0
    async for snapshot in snapshots:
        delta = snapshot[last_length:]
        if delta:
            last_length = len(snapshot)
            yield delta


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException):
        self.error = error


_END = object()


async def pump(source: AsyncIterable[T], maxsize: int = 1) -> AsyncIterator[T]:
    """
    Drain ``source`` from a producer task through a bounded queue.

    The producer runs at most ``maxsize`` items ahead of the consumer.
    Closing this iterator early (e.g. the HTTP client went away) cancels
    the producer, so the underlying generation stops with the response.
    Errors raised by ``source`` are re-raised to the consumer in order.
    """
    queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def produce() -> None:
        try:
            async for item in source:
                await queue.put(item)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put(_Failure(e))
            return
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
        await queue.put(_END)

    task = asyncio.create_task(produce())
    try:
        while True:
            item = await queue.get()
            if item is _END:
                break
            if isinstance(item, _Failure):
                raise item.error
            yield item
    finally:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


async def collect_text(deltas: AsyncIterable[str]) -> str:
    """Concatenate deltas into one response (non-streaming endpoints)."""
    parts = []
    async for delta in deltas:
        parts.append(delta)
    return "".join(parts)


# =============================================================================
# SSE Formatting Helpers
# =============================================================================

def chunk_payload(chunk: StreamChunk) -> Dict[str, Any]:
    """JSON-ready chunk; unset delta fields are omitted, finish_reason is kept."""
    data = chunk.model_dump(mode="json")
    for choice in data["choices"]:
        choice["delta"] = {k: v for k, v in choice["delta"].items() if v is not None}
    return data


def format_sse(chunk: StreamChunk) -> str:
    """Frame one chunk as a server-sent event."""
    return f"data: {json.dumps(chunk_payload(chunk), ensure_ascii=False)}\n\n"


def content_chunk(
    id: str, created: int, model: str, content: str, role: Optional[Role] = None
) -> StreamChunk:
    return StreamChunk(
        id=id,
        created=created,
        model=model,
        choices=[StreamChoice(index=0, delta=StreamDelta(role=role, content=content))],
    )


def final_chunk(id: str, created: int, model: str) -> StreamChunk:
    return StreamChunk(
        id=id,
        created=created,
        model=model,
        choices=[StreamChoice(index=0, delta=StreamDelta(), finish_reason="stop")],
    )


async def stream_chat_events(
    deltas: AsyncIterable[str],
    id: str,
    created: int,
    model: str,
    log: LogStore,
) -> AsyncIterator[str]:
    """
    Frame deltas as chat completion SSE events.

    The first content event carries ``role: assistant``. A failure of
    ``deltas`` is logged and the stream is terminated normally.
    """
    first = True
    try:
        async for delta in deltas:
            if not delta:
                continue

            chunk = content_chunk(id, created, model, delta, Role.ASSISTANT if first else None)
            try:
                event = format_sse(chunk)
            except (TypeError, ValueError) as e:
                log.add(f"Streaming Error: Failed to encode stream chunk - {e}", logging.ERROR)
                continue

            first = False
            yield event

    except Exception as e:
        log.add(f"Streaming response error: {e}", logging.ERROR)

    yield format_sse(final_chunk(id, created, model))
    yield DONE_EVENT
