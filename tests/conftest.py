import asyncio
import inspect
import sys
from pathlib import Path
from typing import Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT_DIR))

from supamind.config import CounterStoreBackend, Settings  # noqa: E402
from supamind.infra import InMemoryCounterStore, InMemoryProcessingStore  # noqa: E402
from supamind.main import create_app  # noqa: E402
from supamind.pipelines import PipelineClient  # noqa: E402
from supamind.security import RateLimitService, WebhookAuthenticator  # noqa: E402

WEBHOOK_SECRET = "test-webhook-secret"

# Three minutes before an hour boundary, so every tier's window resets
# 180 seconds after "now".
FIXED_NOW_MS = 1_700_002_800_000 - 180_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = FIXED_NOW_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class PipelineRecorder:
    """httpx transport handler standing in for the automation pipelines."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.reply: Dict[str, object] = {"accepted": True}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.reply)


def make_request(headers: Dict[str, str] | None = None, body: bytes | None = None, path: str = "/") -> Request:
    """Build a bare Starlette request; reading the body fails unless one is given."""

    scope = {
        "type": "http",
        "method": "POST",
        "path": path,
        "query_string": b"",
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()],
    }

    async def receive():
        if body is None:
            raise AssertionError("request body was read")
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture()
def rate_limiter(counter_store, clock) -> RateLimitService:
    return RateLimitService(counter_store, clock=clock)


@pytest.fixture()
def pipeline_recorder() -> PipelineRecorder:
    return PipelineRecorder()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        rate_limit_store=CounterStoreBackend.MEMORY,
        webhook_secret=WEBHOOK_SECRET,
        pipeline_endpoints={
            "document_processing": "https://pipelines.example/documents",
            "chat": "https://pipelines.example/chat",
            "audio_generation": "https://pipelines.example/audio",
            "additional_sources": "https://pipelines.example/sources",
            "podcast_feed": "https://pipelines.example/podcasts",
        },
        public_base_url="https://functions.example",
    )


@pytest.fixture()
def processing_store() -> InMemoryProcessingStore:
    return InMemoryProcessingStore()


@pytest.fixture()
def app(settings, rate_limiter, pipeline_recorder, processing_store):
    pipelines = PipelineClient(
        settings.pipeline_endpoints,
        secret=settings.webhook_secret,
        client=httpx.AsyncClient(transport=httpx.MockTransport(pipeline_recorder)),
    )
    return create_app(
        settings,
        rate_limiter=rate_limiter,
        webhook_authenticator=WebhookAuthenticator(WEBHOOK_SECRET),
        pipeline_client=pipelines,
        processing_store=processing_store,
    )


@pytest.fixture()
def client(app):
    """Provide a FastAPI TestClient for API tests."""

    with TestClient(app) as test_client:
        yield test_client


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Run async test functions without requiring pytest-asyncio plugin."""

    test_func = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_func):
        kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
        loop = asyncio.new_event_loop()
        try:
            loop.run_until_complete(test_func(**kwargs))
        finally:
            loop.close()
        return True
    return None
