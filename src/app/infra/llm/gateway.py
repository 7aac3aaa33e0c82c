from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from src.app.domain.errors import (
    QuotaExhaustedError,
    RateLimitedError,
    StructuredOutputError,
    UpstreamUnavailableError,
)
from src.app.infra.llm.base import GenerativeTextClient, ToolSpec

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_MODEL = "google/gemini-2.5-flash"


class GatewayTextClient(GenerativeTextClient):
    """OpenAI-compatible chat completions endpoint with forced function calling."""

    def __init__(
        self,
        api_key: str,
        url: str = DEFAULT_GATEWAY_URL,
        model_id: str = DEFAULT_MODEL,
        http_client: Optional[httpx.Client] = None,
        timeout_seconds: float = 120.0,
    ):
        if not api_key:
            raise ValueError("Missing AI gateway API key")
        self.url = url
        self.model_id = model_id
        self._headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        self._http = http_client or httpx.Client(timeout=timeout_seconds)

    def close(self) -> None:
        self._http.close()

    def call_tool(self, system_prompt: str, user_prompt: str, tool: ToolSpec) -> dict[str, Any]:
        body = {
            "model": self.model_id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "tools": [{
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }],
            "tool_choice": {"type": "function", "function": {"name": tool.name}},
        }

        try:
            response = self._http.post(self.url, headers=self._headers, json=body)
        except httpx.HTTPError as error:
            raise UpstreamUnavailableError("AI gateway", str(error), step="generation") from error

        self._raise_for_status(response, tool.name)
        return self._extract_arguments(response, tool.name)

    @staticmethod
    def _raise_for_status(response: httpx.Response, tool_name: str) -> None:
        if response.status_code < 400:
            return

        logger.error(
            "llm.gateway_error tool=%s status=%s body=%s",
            tool_name,
            response.status_code,
            response.text[:500],
        )
        if response.status_code == 429:
            raise RateLimitedError()
        if response.status_code == 402:
            raise QuotaExhaustedError()
        raise UpstreamUnavailableError(
            "AI gateway",
            f"status {response.status_code}",
            step="generation",
        )

    @staticmethod
    def _extract_arguments(response: httpx.Response, tool_name: str) -> dict[str, Any]:
        try:
            data = response.json()
            tool_call = data["choices"][0]["message"]["tool_calls"][0]
        except (ValueError, KeyError, IndexError, TypeError) as error:
            raise StructuredOutputError("AI did not return a tool call") from error

        function = tool_call.get("function") or {}
        if function.get("name") != tool_name:
            raise StructuredOutputError(f"AI called unexpected tool: {function.get('name')}")

        raw_arguments = function.get("arguments")
        try:
            arguments = json.loads(raw_arguments) if isinstance(raw_arguments, str) else raw_arguments
        except json.JSONDecodeError as error:
            raise StructuredOutputError("AI returned malformed tool arguments") from error

        if not isinstance(arguments, dict):
            raise StructuredOutputError("AI tool arguments are not an object")
        return arguments
