"""OpenAI-compatible streaming chat transport."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Sequence

import httpx
from httpx_sse import SSEError, aconnect_sse
from langchain_core.messages import BaseMessage, convert_to_openai_messages
from langchain_core.tools import BaseTool
from langchain_core.utils.function_calling import convert_to_openai_tool

from .streaming import (
    Started,
    StreamEvent,
    StreamEventDecoder,
    classify_exception,
    classify_status,
)

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT_URL = "https://api.deepinfra.com/v1/openai"
DEFAULT_TIMEOUT = httpx.Timeout(120.0, connect=30.0)


class ChatTransport:
    """Send one chat-completion request and yield its decoded events.

    Every call to :meth:`stream` yields exactly one ``Started`` first and
    ends with exactly one ``Completed`` or ``StreamError``.  Transport
    failures never raise into the caller; only task cancellation does.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        endpoint_url: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.endpoint_url = (endpoint_url or DEFAULT_ENDPOINT_URL).rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    @property
    def url(self) -> str:
        if self.endpoint_url.endswith("/chat/completions"):
            return self.endpoint_url
        return f"{self.endpoint_url}/chat/completions"

    def build_payload(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] = (),
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": convert_to_openai_messages(list(messages)),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }
        if tools:
            payload["tools"] = [convert_to_openai_tool(t) for t in tools]
            payload["tool_choice"] = "auto"
        return payload

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def stream(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] = (),
    ) -> AsyncIterator[StreamEvent]:
        decoder = StreamEventDecoder()
        payload = self.build_payload(messages, tools)
        started = False
        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        try:
            async with aconnect_sse(
                client, "POST", self.url, json=payload, headers=self._headers()
            ) as event_source:
                started = True
                yield Started()

                response = event_source.response
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    error = classify_status(response.status_code, body)
                    logger.warning(
                        "Chat request failed: status=%d message=%s",
                        response.status_code, error.message,
                    )
                    for event in decoder.fail(error):
                        yield event
                    return

                async for sse in event_source.aiter_sse():
                    for event in decoder.decode(sse.data, sse.event):
                        yield event
                    if decoder.terminated:
                        break
        except (httpx.HTTPError, SSEError, OSError) as exc:
            logger.warning("Chat transport error: %s", exc)
            if not started:
                yield Started()
            for event in decoder.fail(classify_exception(exc)):
                yield event
            return
        finally:
            if owns_client:
                await client.aclose()

        # Stream closed by the server without the sentinel.
        for event in decoder.end_of_stream():
            yield event
