"""Shared fixtures: in-memory Redis double and scripted capability services."""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from services.workflow_service.config import CapabilityEndpoint
from services.workflow_service.event_publisher import EventBus
from services.workflow_service.execution_store import ExecutionStore
from services.workflow_service.models import WorkflowEvent
from services.workflow_service.step_invoker import StepInvoker


ENDPOINTS = {
    "video-processor": CapabilityEndpoint(name="video-processor", base_url="http://video-processor:8002"),
    "transcription-service": CapabilityEndpoint(
        name="transcription-service", base_url="http://transcription-service:8003"
    ),
    "llm-service": CapabilityEndpoint(name="llm-service", base_url="http://llm-service:8005"),
}


class FakeRedis:
    """The subset of redis.asyncio.Redis the service uses."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.expiry: Dict[str, Optional[int]] = {}
        self.published: List[tuple] = []
        self.closed = False
        self.fail_writes = False
        self.fail_publish = False

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        if self.fail_writes:
            raise ConnectionError("redis is down")
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def publish(self, channel: str, message: str) -> int:
        if self.fail_publish:
            raise ConnectionError("redis is down")
        self.published.append((channel, message))
        return 0

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True


class CapabilityStub:
    """Answers MockTransport requests from per-path scripts.

    A script is a list of responses consumed in order; the last one repeats.
    A response is a dict (200 JSON), an httpx.Response, or an async callable
    taking the request and returning either of those.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, List[Any]] = {}
        self.calls: List[httpx.Request] = []

    def on(self, path: str, *responses: Any) -> None:
        self.routes[path] = list(responses)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        script = self.routes.get(request.url.path)
        if not script:
            return httpx.Response(404, json={"error": f"No route for {request.url.path}"})

        response = script.pop(0) if len(script) > 1 else script[0]
        if callable(response):
            response = await response(request)
        if isinstance(response, httpx.Response):
            # Fresh copy per call, scripts repeat their last response
            return httpx.Response(response.status_code, headers=response.headers, content=response.content)
        return httpx.Response(200, json=response)

    def paths(self) -> List[str]:
        return [request.url.path for request in self.calls]

    def bodies(self, path: str) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.calls if r.url.path == path and r.content]


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def store(fake_redis: FakeRedis) -> ExecutionStore:
    return ExecutionStore(redis_client=fake_redis, ttl_seconds=3600)


@pytest.fixture
def events() -> List[WorkflowEvent]:
    return []


@pytest.fixture
def event_bus(fake_redis: FakeRedis, events: List[WorkflowEvent]) -> EventBus:
    bus = EventBus(fake_redis)
    bus.subscribe(events.append)
    return bus


@pytest.fixture
def stub() -> CapabilityStub:
    return CapabilityStub()


@pytest.fixture
def invoker(stub: CapabilityStub) -> StepInvoker:
    client = httpx.AsyncClient(transport=httpx.MockTransport(stub.handler))
    return StepInvoker(ENDPOINTS, client=client)
