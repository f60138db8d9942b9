"""Shared fixtures: a scripted model capability and an in-process client."""

import asyncio
from typing import List, Optional

import httpx
import pytest

from worker_gateway.config import Config
from worker_gateway.logstore import LogStore
from worker_gateway.main import create_app
from worker_gateway.session import ModelSession


class FakeModel:
    """Yields a fixed list of cumulative snapshots, optionally failing midway."""

    def __init__(
        self,
        snapshots: Optional[List[str]] = None,
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
    ):
        self.snapshots = snapshots if snapshots is not None else ["Hi", "Hi there", "Hi there!"]
        self.fail_after = fail_after
        self.error = error or RuntimeError("model crashed")
        self.prompts: List[str] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def stream_response(self, prompt: str):
        self.prompts.append(prompt)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            for i, snapshot in enumerate(self.snapshots):
                if self.fail_after is not None and i == self.fail_after:
                    raise self.error
                await asyncio.sleep(0)
                yield snapshot
            if self.fail_after is not None and self.fail_after >= len(self.snapshots):
                raise self.error
        finally:
            self.active -= 1

    async def close(self):
        self.closed = True


class CountingFactory:
    """Model factory that records how often it was asked to initialize."""

    def __init__(self, model=None, error: Optional[Exception] = None, delay: float = 0.0):
        self.model = model or FakeModel()
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.model


class FakeEmbedder:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error

    async def embed(self, text: str) -> List[float]:
        if self.error is not None:
            raise self.error
        return [float(len(text)), 0.5, -0.5]


@pytest.fixture
def config():
    return Config(
        host="127.0.0.1",
        port=8080,
        memory_mode=False,
        context_limit=4096,
        response_reserve=1536,
        model_id="test-model",
        owned_by="tests",
    )


@pytest.fixture
def log():
    return LogStore()


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def factory(fake_model):
    return CountingFactory(fake_model)


@pytest.fixture
def session(config, log, factory):
    return ModelSession(config, log, model_factory=factory, embedder=FakeEmbedder())


@pytest.fixture
async def loaded_session(session):
    session.load()
    await session.wait_loaded()
    assert session.is_loaded
    return session


@pytest.fixture
def app(session, log):
    return create_app(session, log)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
