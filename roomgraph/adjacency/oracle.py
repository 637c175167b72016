"""
Reasoning Oracle Client

Thin async client for a tool-calling language model speaking the Anthropic
Messages API shape. The agent loop only depends on the ``ReasoningOracle``
protocol, so tests and alternative providers can plug in their own object.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

import httpx
from loguru import logger
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from roomgraph.exceptions import (
    ConfigurationError,
    OracleError,
    OracleMalformedOutputError,
    OracleRateLimitError,
    OracleTimeoutError,
)
from roomgraph.settings import OracleSettings, get_settings


class ContentBlock(BaseModel):
    type: str
    text: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    input: Dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        if self.type == "tool_use":
            return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}
        return {"type": "text", "text": self.text or ""}


class OracleResponse(BaseModel):
    stop_reason: Optional[str] = None
    content: List[ContentBlock] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(block.text or "" for block in self.content if block.type == "text")

    @property
    def tool_calls(self) -> List[ContentBlock]:
        return [block for block in self.content if block.type == "tool_use"]

    def to_message(self) -> Dict[str, Any]:
        """Assistant turn to append to the transcript."""
        blocks = [block.to_wire() for block in self.content if block.type in ("text", "tool_use")]
        return {"role": "assistant", "content": blocks}


class ReasoningOracle(Protocol):
    async def create_message(
        self,
        messages: Sequence[Dict[str, Any]],
        tools: Sequence[Dict[str, Any]],
        system: str = "",
    ) -> OracleResponse:
        ...


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class AnthropicMessagesOracle:
    """POSTs to the Messages endpoint, retrying rate-limited calls with backoff."""

    def __init__(
        self,
        settings: Optional[OracleSettings] = None,
        *,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings().oracle
        self.api_key = (api_key or "").strip() or self.settings.api_key
        if not self.api_key:
            raise ConfigurationError(
                f"{self.settings.api_key_env} is not set",
                {"setting": "oracle.api_key_env"},
            )
        self._client = client
        self._sleep = sleep

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.settings.api_version,
            "content-type": "application/json",
        }

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> OracleResponse:
        cfg = self.settings
        for attempt in range(cfg.max_retries + 1):
            try:
                response = await client.post(cfg.api_url, json=payload, headers=self._headers())
            except httpx.TimeoutException as exc:
                raise OracleTimeoutError(f"Oracle request timed out: {exc}", {"url": cfg.api_url}) from exc
            except httpx.HTTPError as exc:
                raise OracleError(f"Oracle request failed: {exc}", {"url": cfg.api_url}) from exc

            if response.status_code == 429:
                if attempt >= cfg.max_retries:
                    break
                delay = _retry_after(response)
                if delay is None:
                    delay = cfg.backoff_base_seconds * (2 ** attempt)
                logger.warning(
                    "Oracle rate limited, retrying in {:.1f}s ({}/{})", delay, attempt + 1, cfg.max_retries
                )
                await self._sleep(delay)
                continue

            if response.status_code >= 400:
                raise OracleError(
                    f"Oracle API error {response.status_code}",
                    {"status_code": response.status_code, "body": response.text[:500]},
                )
            try:
                return OracleResponse.model_validate(response.json())
            except (ValueError, PydanticValidationError) as exc:
                raise OracleMalformedOutputError(f"Unexpected oracle response: {exc}") from exc

        raise OracleRateLimitError(
            f"Oracle still rate limited after {cfg.max_retries} retries",
            {"max_retries": cfg.max_retries},
        )

    async def create_message(
        self,
        messages: Sequence[Dict[str, Any]],
        tools: Sequence[Dict[str, Any]],
        system: str = "",
    ) -> OracleResponse:
        payload: Dict[str, Any] = {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "messages": list(messages),
            "tools": list(tools),
        }
        if system:
            payload["system"] = system
        if self._client is not None:
            return await self._post(self._client, payload)
        async with httpx.AsyncClient(timeout=self.settings.request_timeout_seconds) as client:
            return await self._post(client, payload)
