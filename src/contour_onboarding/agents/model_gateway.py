"""Model gateway: the request/response boundary to the generative backend.

Conversation history is exchanged in the function-calling message format:
``user`` and ``assistant`` turns, assistant turns carrying ``tool_calls``,
and ``tool`` messages carrying each call's result.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import autogen

from ..config import build_role_llm_config
from ..errors import ModelGatewayError
from ..models import AgentConfig, ModelResponse, ToolCall

logger = logging.getLogger(__name__)


class ModelGateway(Protocol):
    """Anything that can answer a conversation with text and/or tool calls."""

    def complete(
        self,
        instructions: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> ModelResponse: ...


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Tool call arguments are not valid JSON: %.200s", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def parse_completion(response: Any) -> ModelResponse:
    """Convert a chat completion into a ``ModelResponse``."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ModelResponse(text="", tool_calls=[], stop_reason=None)
    choice = choices[0]
    message = choice.message
    calls = []
    for tc in getattr(message, "tool_calls", None) or []:
        function = getattr(tc, "function", None)
        if function is None:
            continue
        calls.append(ToolCall(
            id=tc.id,
            name=function.name,
            input=_parse_arguments(function.arguments),
        ))
    return ModelResponse(
        text=message.content or "",
        tool_calls=calls,
        stop_reason=getattr(choice, "finish_reason", None),
    )


class AG2ModelGateway:
    """Gateway backed by AG2's ``OpenAIWrapper``."""

    def __init__(self, config: AgentConfig, role: str = "interviewer") -> None:
        self.config = config
        self.role = role
        self._client: autogen.OpenAIWrapper | None = None

    @property
    def client(self) -> autogen.OpenAIWrapper:
        if self._client is None:
            llm_config = build_role_llm_config(self.role, self.config)
            self._client = autogen.OpenAIWrapper(**llm_config, cache_seed=None)
        return self._client

    def complete(
        self,
        instructions: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> ModelResponse:
        request = [{"role": "system", "content": instructions}, *messages]
        try:
            response = self.client.create(
                messages=request,
                tools=tools,
                max_tokens=self.config.max_tokens,
            )
        except Exception as exc:
            logger.error("Model call failed: %s", exc)
            raise ModelGatewayError(f"Model call failed: {exc}") from exc
        return parse_completion(response)


# ---------------------------------------------------------------------------
# Message helpers
# ---------------------------------------------------------------------------

def user_message(content: str) -> dict[str, Any]:
    return {"role": "user", "content": content}


def assistant_message(text: str, tool_calls: list[ToolCall] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"role": "assistant", "content": text or None}
    if tool_calls:
        message["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.input, default=str)},
            }
            for call in tool_calls
        ]
    elif not text:
        message["content"] = ""
    return message


def tool_result_message(call_id: str, result: Any) -> dict[str, Any]:
    return {
        "role": "tool",
        "tool_call_id": call_id,
        "content": json.dumps(result, default=str),
    }
