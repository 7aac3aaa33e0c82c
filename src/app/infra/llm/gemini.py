from __future__ import annotations

import logging
from typing import Any

from google import genai
from google.genai import types
from google.genai.errors import APIError, ClientError

from src.app.domain.errors import (
    QuotaExhaustedError,
    RateLimitedError,
    StructuredOutputError,
    UpstreamUnavailableError,
)
from src.app.infra.llm.base import GenerativeTextClient, ToolSpec

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


def _is_rate_limited_error(exc: Exception) -> bool:
    status_code = getattr(exc, "code", None)
    return status_code == 429 or "RESOURCE_EXHAUSTED" in str(exc)


class GeminiTextClient(GenerativeTextClient):
    def __init__(self, api_key: str, model_id: str = DEFAULT_MODEL, client: genai.Client | None = None):
        if not api_key and client is None:
            raise ValueError("Missing Google API key.")
        self.model_id = model_id
        self._client = client or genai.Client(api_key=api_key)

    def call_tool(self, system_prompt: str, user_prompt: str, tool: ToolSpec) -> dict[str, Any]:
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            tools=[types.Tool(function_declarations=[
                types.FunctionDeclaration(
                    name=tool.name,
                    description=tool.description,
                    parameters_json_schema=tool.parameters,
                ),
            ])],
            tool_config=types.ToolConfig(
                function_calling_config=types.FunctionCallingConfig(
                    mode="ANY",
                    allowed_function_names=[tool.name],
                ),
            ),
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

        try:
            response = self._client.models.generate_content(
                model=self.model_id,
                contents=user_prompt,
                config=config,
            )
        except ClientError as err:
            if _is_rate_limited_error(err):
                raise RateLimitedError() from err
            if getattr(err, "code", None) == 402:
                raise QuotaExhaustedError() from err
            raise UpstreamUnavailableError("Gemini", str(err), step="generation") from err
        except APIError as err:
            raise UpstreamUnavailableError("Gemini", str(err), step="generation") from err

        calls = [call for call in (response.function_calls or []) if call.name == tool.name]
        if not calls:
            logger.error("llm.gemini_no_tool_call tool=%s", tool.name)
            raise StructuredOutputError("AI did not return a tool call")

        arguments = calls[0].args
        if not isinstance(arguments, dict):
            raise StructuredOutputError("AI tool arguments are not an object")
        return dict(arguments)
