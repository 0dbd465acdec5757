"""
X-Ray Export Client

Ships completed executions to a remote X-Ray collector over HTTP. Use it as
an execution hook:

    client = XRayClient("http://collector:8000", api_key="...")
    session = XRaySession(name="checkout", execution_hooks=[ExportHook(client)])
"""

import asyncio
from typing import Any, Dict, Optional

import httpx
import structlog

from .models import Execution

logger = structlog.get_logger(__name__)


class XRayClient:
    """
    Async HTTP client for the X-Ray collector.

    Retries connection errors, timeouts and 5xx responses with exponential
    backoff. 4xx responses are raised immediately.
    """

    def __init__(
        self,
        api_url: str,
        timeout: float = 5.0,
        api_key: Optional[str] = None,
        retries: int = 3,
        backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            api_url: Base URL of the collector
            timeout: Request timeout in seconds
            api_key: Optional API key for authentication
            retries: Attempts per request
            backoff: First retry delay in seconds, doubled after each attempt
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.api_key = api_key
        self.retries = max(retries, 1)
        self.backoff = backoff
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    async def send_execution(self, execution: Execution) -> Dict[str, Any]:
        """
        POST an execution to {api_url}/api/executions.

        Returns:
            Response body from the collector

        Raises:
            httpx.HTTPError: If the request fails for good
        """
        payload = execution.to_dict(mode="json")
        backoff = self.backoff

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(self.retries):
                try:
                    response = await client.post(
                        f"{self.api_url}/api/executions",
                        json=payload,
                        headers=self._headers(),
                    )
                    response.raise_for_status()
                    return response.json() if response.content else {}
                except (httpx.ConnectError, httpx.TimeoutException, httpx.HTTPStatusError) as e:
                    # Client errors will not get better by retrying
                    if isinstance(e, httpx.HTTPStatusError) and 400 <= e.response.status_code < 500:
                        raise

                    if attempt == self.retries - 1:
                        raise

                    logger.warning(
                        "client.send_retry",
                        execution_id=execution.id,
                        attempt=attempt + 1,
                        error=str(e),
                    )
                    await asyncio.sleep(backoff)
                    backoff *= 2
        return {}


class ExportHook:
    """Execution hook that exports every completed execution"""

    def __init__(self, client: XRayClient):
        self.client = client

    async def on_execution_complete(self, execution: Execution) -> None:
        await self.client.send_execution(execution)
        logger.info("client.exported", execution_id=execution.id, steps=len(execution.steps))
