"""Tests for delta extraction, the bounded pump and SSE framing."""

import asyncio
import json

import pytest

from worker_gateway.logstore import LogStore
from worker_gateway.streaming import DONE_EVENT, iter_deltas, pump, stream_chat_events


async def _aiter(items, error=None):
    for item in items:
        await asyncio.sleep(0)
        yield item
    if error is not None:
        raise error


async def _collect(aiter):
    return [item async for item in aiter]


def _events(body: str):
    return [block for block in body.split("\n\n") if block]


class TestIterDeltas:
    async def test_cumulative_snapshots_to_deltas(self):
        deltas = await _collect(iter_deltas(_aiter(["Hi", "Hi there", "Hi there!"])))
        assert deltas == ["Hi", " there", "!"]

    async def test_repeated_snapshot_yields_nothing(self):
        deltas = await _collect(iter_deltas(_aiter(["Hi", "Hi there", "Hi there!", "Hi there!"])))
        assert deltas == ["Hi", " there", "!"]

    async def test_empty_snapshots_filtered(self):
        deltas = await _collect(iter_deltas(_aiter(["", "A", "A", "AB"])))
        assert deltas == ["A", "B"]


class TestPump:
    async def test_preserves_order(self):
        assert await _collect(pump(_aiter(list(range(20))))) == list(range(20))

    async def test_reraises_source_error_after_items(self):
        received = []
        with pytest.raises(RuntimeError, match="boom"):
            async for item in pump(_aiter(["a", "b"], RuntimeError("boom"))):
                received.append(item)
        assert received == ["a", "b"]

    async def test_closing_consumer_stops_producer(self):
        finished = asyncio.Event()
        produced = []

        async def source():
            try:
                for i in range(1000):
                    produced.append(i)
                    yield i
            finally:
                finished.set()

        it = pump(source())
        assert await it.__anext__() == 0
        await it.aclose()

        assert finished.is_set()
        # Bounded queue: the producer never runs far ahead of the consumer
        assert len(produced) < 10


class TestStreamChatEvents:
    async def test_success(self):
        log = LogStore()
        body = "".join(await _collect(
            stream_chat_events(_aiter(["Hi", " there"]), "chatcmpl-1", 123, "m", log)
        ))
        events = _events(body)

        assert all(e.startswith("data: ") for e in events)
        assert events[-1] + "\n\n" == DONE_EVENT

        chunks = [json.loads(e[len("data: "):]) for e in events[:-1]]
        assert chunks[0]["choices"][0]["delta"] == {"role": "assistant", "content": "Hi"}
        assert chunks[1]["choices"][0]["delta"] == {"content": " there"}
        assert chunks[2]["choices"][0]["delta"] == {}
        assert chunks[2]["choices"][0]["finish_reason"] == "stop"
        assert {c["id"] for c in chunks} == {"chatcmpl-1"}

    async def test_failure_still_terminates(self):
        log = LogStore()
        body = "".join(await _collect(
            stream_chat_events(_aiter(["partial"], RuntimeError("lost")), "c", 1, "m", log)
        ))
        events = _events(body)

        assert events.count("data: [DONE]") == 1
        assert events[-1] == "data: [DONE]"
        final = json.loads(events[-2][len("data: "):])
        assert final["choices"][0]["finish_reason"] == "stop"
        # Partial output already sent is kept
        first = json.loads(events[0][len("data: "):])
        assert first["choices"][0]["delta"]["content"] == "partial"
        assert any("lost" in e.message for e in log.entries())

    async def test_empty_generation(self):
        events = _events("".join(await _collect(
            stream_chat_events(_aiter([]), "c", 1, "m", LogStore())
        )))
        assert len(events) == 2
        assert json.loads(events[0][len("data: "):])["choices"][0]["finish_reason"] == "stop"
        assert events[1] == "data: [DONE]"
