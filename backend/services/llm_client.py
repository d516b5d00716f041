"""
LLM Client - async HTTP transport to the portal's model endpoint.

Request (POST llm_url):
    {"model": ..., "messages": [...], "tools": [...], "stream": true,
     "options": {"temperature", "top_p", "top_k", "repeat_penalty", "num_predict", "num_ctx"}}

Response: newline-delimited JSON frames, or one JSON object.
    {"message": {"role": "assistant", "content": "...", "tool_calls": [...]}, "done": false}

Health (GET health_url):
    {"status": "ok", "config": {"hotline": "1108/1109"}}

Transport failures are raised as LLMError / ExternalServiceError so the
orchestrator can decide whether to retry.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from config import RuntimeConfig, runtime_config
from errors import ExternalServiceError, LLMError

logger = logging.getLogger(__name__)


class LLMClient:
    """
    Thin wrapper around one httpx.AsyncClient.

    Usage:
        client = LLMClient(config)
        payload = client.build_payload(messages, tools, num_predict=256)
        async with client.stream_chat(payload, token) as chunks:
            async for chunk in chunks:
                ...
        await client.aclose()
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or runtime_config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(self.config.request_timeout_s, connect=self.config.health_timeout_s),
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def build_payload(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        num_predict: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Build the request body for one streamed chat call."""
        payload: Dict[str, Any] = {
            "model": self.config.model_name,
            "messages": messages,
            "stream": True,
            "options": self.config.get_llm_options(num_predict or self.config.max_output_tokens),
        }
        if tools:
            payload["tools"] = tools
        return payload

    @staticmethod
    def _headers(token: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/x-ndjson, application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @asynccontextmanager
    async def stream_chat(self, payload: Dict[str, Any], token: Optional[str] = None) -> AsyncIterator[AsyncIterator[bytes]]:
        """
        POST the payload and yield the response body as a byte-chunk iterator.

        The response is released when the block exits, including on
        cancellation.

        Raises:
            LLMError: Non-2xx status, timeout or connection failure
        """
        model = payload.get("model")
        try:
            async with self._client.stream(
                "POST", self.config.llm_url, json=payload, headers=self._headers(token)
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise LLMError(
                        f"Model endpoint returned HTTP {response.status_code}",
                        details=response.text[:200] or None,
                        model=model,
                        error_type="http",
                        status_code=response.status_code,
                    )
                yield response.aiter_bytes()
        except httpx.TimeoutException as e:
            raise LLMError("Model endpoint timed out", details=str(e) or None, model=model, error_type="timeout") from e
        except httpx.HTTPError as e:
            raise LLMError("Model endpoint unreachable", details=str(e) or None, model=model) from e

    async def check_health(self, token: Optional[str] = None) -> Dict[str, Any]:
        """
        Query the health endpoint.

        Returns:
            Parsed health body

        Raises:
            ExternalServiceError: Unreachable, non-2xx or unreadable body
        """
        try:
            response = await self._client.get(
                self.config.health_url,
                headers=self._headers(token),
                timeout=self.config.health_timeout_s,
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError("Health check failed", details=str(e) or None, service="health") from e

        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Health check returned HTTP {response.status_code}",
                service="health",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise ExternalServiceError("Health check returned invalid JSON", service="health") from e
        if not isinstance(body, dict):
            raise ExternalServiceError("Health check returned unexpected body", service="health")
        return body

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()
