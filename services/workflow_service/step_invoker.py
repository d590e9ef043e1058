# step_invoker.py - Calls named capability services over HTTP
# Both engines reach external services only through this class.

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from .config import CapabilityEndpoint
from .errors import CapabilityCallError
from .models import RetryPolicy

logger = logging.getLogger(__name__)

RetryCallback = Callable[[int, CapabilityCallError], Awaitable[None]]

class StepCall(BaseModel):
    service: str
    endpoint: str
    method: str = "POST"
    payload: Dict[str, Any] = Field(default_factory=dict)
    timeout: Optional[float] = None  # seconds, falls back to the service default

class StepInvoker:
    def __init__(self, endpoints: Dict[str, CapabilityEndpoint],
                 client: Optional[httpx.AsyncClient] = None):
        self.endpoints = dict(endpoints)
        self.http_client = client or httpx.AsyncClient(
            headers={"User-Agent": "workflow-service/1.0.0"}
        )

    async def invoke(self, call: StepCall) -> Dict[str, Any]:
        """Issue one call and return the parsed JSON body of a 2xx response."""
        endpoint = self.endpoints.get(call.service)
        if endpoint is None:
            raise CapabilityCallError(f"Service endpoint not found: {call.service}", service=call.service,
                                     retryable=False)

        url = f"{endpoint.base_url.rstrip('/')}{call.endpoint}"
        timeout = call.timeout or endpoint.timeout
        method = call.method.upper()

        try:
            response = await self.http_client.request(
                method,
                url,
                params=call.payload if method == "GET" else None,
                json=call.payload if method != "GET" else None,
                timeout=timeout,
            )
        except httpx.TimeoutException:
            logger.error(f"Call to {call.service}{call.endpoint} timed out after {timeout}s")
            raise CapabilityCallError(
                f"Call to {call.service}{call.endpoint} timed out after {timeout}s",
                service=call.service,
            )
        except httpx.HTTPError as e:
            logger.error(f"Call to {call.service}{call.endpoint} failed: {str(e)}")
            raise CapabilityCallError(str(e) or type(e).__name__, service=call.service) from e

        if not response.is_success:
            message = self._remote_error(response)
            logger.error(f"Call to {call.service}{call.endpoint} failed with status {response.status_code}: {message}")
            raise CapabilityCallError(message, service=call.service, status_code=response.status_code,
                                     retryable=response.status_code >= 500)

        try:
            body = response.json()
        except ValueError:
            raise CapabilityCallError(
                f"Non-JSON response from {call.service}{call.endpoint}",
                service=call.service,
                status_code=response.status_code,
                retryable=False,
            )

        # Some capabilities wrap their payload as {"success": true, "data": {...}}
        if isinstance(body, dict) and isinstance(body.get("data"), dict) and "success" in body:
            return body["data"]
        return body if isinstance(body, dict) else {"data": body}

    async def invoke_with_retry(self, call: StepCall, policy: RetryPolicy,
                                on_retry: Optional[RetryCallback] = None) -> Dict[str, Any]:
        """Invoke, retrying failed attempts as the policy declares."""
        attempt = 0
        while True:
            try:
                return await self.invoke(call)
            except CapabilityCallError as e:
                if not e.retryable or attempt >= policy.max_retries:
                    raise
                attempt += 1
                delay = policy.delay_for(attempt)
                logger.info(f"Retrying {call.service}{call.endpoint} (attempt {attempt + 1}) in {delay}s")
                if on_retry:
                    await on_retry(attempt, e)
                await asyncio.sleep(delay)

    async def check_health(self) -> Dict[str, str]:
        """Probe every capability's health endpoint."""
        statuses = {}
        for name, endpoint in self.endpoints.items():
            try:
                response = await self.http_client.get(
                    f"{endpoint.base_url.rstrip('/')}{endpoint.health_endpoint}", timeout=5.0
                )
                statuses[name] = "healthy" if response.status_code == 200 else "degraded"
            except httpx.HTTPError:
                statuses[name] = "unhealthy"
        return statuses

    async def close(self):
        await self.http_client.aclose()

    @staticmethod
    def _remote_error(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            for key in ("error", "detail", "message"):
                if body.get(key):
                    return str(body[key])
        text = response.text[:200] if response.text else ""
        return f"HTTP {response.status_code}: {text}".rstrip(": ")
