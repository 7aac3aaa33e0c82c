from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ToolSpec:
    """A function declaration the model is forced to call."""
    name: str
    description: str
    parameters: dict[str, Any]  # JSON schema of the arguments object


class GenerativeTextClient(ABC):
    """
    Structured-output access to a generative text service.

    Implementations:
    - GatewayTextClient: OpenAI-compatible chat completions over HTTP
    - GeminiTextClient: Google Gemini via google-genai
    """

    model_id: str

    @abstractmethod
    def call_tool(self, system_prompt: str, user_prompt: str, tool: ToolSpec) -> dict[str, Any]:
        """
        Run one completion that must answer by calling ``tool``.

        Returns:
            The untyped tool arguments; callers validate them.

        Raises:
            RateLimitedError: upstream answered 429
            QuotaExhaustedError: upstream answered 402
            StructuredOutputError: no well-formed tool call in the answer
            UpstreamUnavailableError: transport failure or other non-success
        """
        pass

    def close(self) -> None:
        """Release pooled connections held by the client."""
        pass
