"""
Wire Translation - Conversation <-> provider request/response shapes.

Pure functions, one section per provider:

    OpenAI   chat messages with assistant ``tool_calls`` and ``tool`` messages
    Gemini   ``contents`` with ``function_call`` / ``function_response`` parts
    Ollama   /api/chat messages, tools in OpenAI function format

Responses are parsed back into a ModelTurn with a normalized finish reason
(STOP, MAX_TOKENS, TOOL_CALLS, ...).
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import structlog

from shellmate_core.schema import (
    Content,
    FunctionCallPart,
    FunctionDeclaration,
    FunctionResponsePart,
    ModelTurn,
    Role,
    TextPart,
)

logger = structlog.get_logger()

FINISH_REASONS = {
    "stop": "STOP",
    "length": "MAX_TOKENS",
    "tool_calls": "TOOL_CALLS",
    "function_call": "TOOL_CALLS",
    "content_filter": "SAFETY",
}


def normalize_finish_reason(reason: str | None) -> str | None:
    if not reason:
        return None
    reason = str(reason)
    return FINISH_REASONS.get(reason.lower(), reason.upper())


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Tool-call arguments arrive as a JSON string or an object; bad JSON gives {}."""
    if isinstance(raw, Mapping):
        return to_plain(raw)
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("tool_arguments_unparseable", raw=str(raw)[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_plain(value: Any) -> Any:
    """Convert SDK containers (proto maps/repeated fields) into dicts and lists."""
    if isinstance(value, (str, bytes)):
        return value
    if isinstance(value, Mapping):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, Iterable):
        return [to_plain(v) for v in value]
    return value


# =============================================================================
# OpenAI
# =============================================================================


def to_openai_messages(
    conversation: Sequence[Content],
    system_instruction: str | None = None,
) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    if system_instruction:
        messages.append({"role": "system", "content": system_instruction})

    for content in conversation:
        if content.role == Role.USER:
            messages.append({"role": "user", "content": content.text})
        elif content.role == Role.MODEL:
            message: dict[str, Any] = {"role": "assistant", "content": content.text or None}
            if content.function_calls:
                message["tool_calls"] = [
                    {
                        "id": part.id,
                        "type": "function",
                        "function": {"name": part.name, "arguments": json.dumps(part.args)},
                    }
                    for part in content.function_calls
                ]
            messages.append(message)
        else:
            for part in content.function_responses:
                messages.append({
                    "role": "tool",
                    "tool_call_id": part.id,
                    "content": json.dumps(part.response),
                })
    return messages


def parse_openai_response(response: Any) -> ModelTurn:
    """Parse a ChatCompletion (SDK object) into a ModelTurn."""
    if not getattr(response, "choices", None):
        return ModelTurn(parts=[], finish_reason=None)

    choice = response.choices[0]
    message = choice.message
    parts: list[TextPart | FunctionCallPart] = []
    if message.content:
        parts.append(TextPart(text=message.content))
    for tool_call in message.tool_calls or []:
        parts.append(FunctionCallPart(
            name=tool_call.function.name,
            args=parse_arguments(tool_call.function.arguments),
            id=tool_call.id,
        ))
    return ModelTurn(parts=parts, finish_reason=normalize_finish_reason(choice.finish_reason))


# =============================================================================
# Gemini
# =============================================================================


def _gemini_schema(schema: Any) -> Any:
    """Gemini wants upper-case type names (OBJECT, STRING, ...)."""
    if isinstance(schema, dict):
        return {
            key: (value.upper() if key == "type" and isinstance(value, str) else _gemini_schema(value))
            for key, value in schema.items()
        }
    if isinstance(schema, list):
        return [_gemini_schema(item) for item in schema]
    return schema


def to_gemini_tools(declarations: Sequence[FunctionDeclaration]) -> list[dict[str, Any]]:
    if not declarations:
        return []
    return [{
        "function_declarations": [
            {
                "name": d.name,
                "description": d.description,
                "parameters": _gemini_schema(d.parameters),
            }
            for d in declarations
        ]
    }]


def to_gemini_contents(conversation: Sequence[Content]) -> list[dict[str, Any]]:
    contents: list[dict[str, Any]] = []
    for content in conversation:
        parts: list[dict[str, Any]] = []
        for part in content.parts:
            if isinstance(part, TextPart):
                parts.append({"text": part.text})
            elif isinstance(part, FunctionCallPart):
                parts.append({"function_call": {"name": part.name, "args": part.args}})
            elif isinstance(part, FunctionResponsePart):
                parts.append({"function_response": {"name": part.name, "response": part.response}})
        if not parts:
            continue
        # Function responses travel in a user-role content
        role = "model" if content.role == Role.MODEL else "user"
        contents.append({"role": role, "parts": parts})
    return contents


def parse_gemini_response(response: Any) -> ModelTurn:
    """Parse a GenerateContentResponse (SDK object) into a ModelTurn."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ModelTurn(parts=[], finish_reason=None)

    candidate = candidates[0]
    finish = getattr(candidate, "finish_reason", None)
    finish_name = getattr(finish, "name", None) or (str(finish) if finish is not None else None)

    parts: list[TextPart | FunctionCallPart] = []
    content = getattr(candidate, "content", None)
    for part in getattr(content, "parts", None) or []:
        function_call = getattr(part, "function_call", None)
        if function_call is not None and getattr(function_call, "name", ""):
            parts.append(FunctionCallPart(
                name=function_call.name,
                args=to_plain(function_call.args) if function_call.args else {},
            ))
        elif getattr(part, "text", ""):
            parts.append(TextPart(text=part.text))
    return ModelTurn(parts=parts, finish_reason=normalize_finish_reason(finish_name))


# =============================================================================
# Ollama
# =============================================================================


def to_ollama_messages(
    conversation: Sequence[Content],
    system_instruction: str | None = None,
) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    if system_instruction:
        messages.append({"role": "system", "content": system_instruction})

    for content in conversation:
        if content.role == Role.TOOL:
            for part in content.function_responses:
                messages.append({
                    "role": "tool",
                    "content": json.dumps(part.response),
                    "tool_name": part.name,
                })
            continue

        role = "assistant" if content.role == Role.MODEL else "user"
        message: dict[str, Any] = {"role": role, "content": content.text}
        if content.function_calls:
            message["tool_calls"] = [
                {"function": {"name": part.name, "arguments": part.args}}
                for part in content.function_calls
            ]
        if message["content"] or "tool_calls" in message:
            messages.append(message)
    return messages


def to_ollama_options(temperature: float, top_p: float | None, top_k: int | None) -> dict[str, Any]:
    options: dict[str, Any] = {"temperature": temperature}
    if top_p is not None:
        options["top_p"] = top_p
    if top_k is not None:
        options["top_k"] = top_k
    return options


def parse_ollama_tool_calls(message: Mapping[str, Any]) -> list[FunctionCallPart]:
    """Function calls of an Ollama message. Raises ValueError on a malformed shape."""
    tool_calls = message.get("tool_calls") or []
    if not isinstance(tool_calls, list):
        raise ValueError(f"tool_calls must be a list, got {type(tool_calls).__name__}")
    calls = []
    for tool_call in tool_calls:
        if not isinstance(tool_call, Mapping):
            raise ValueError(f"tool call must be an object, got {type(tool_call).__name__}")
        function = tool_call.get("function") or {}
        if not isinstance(function, Mapping):
            raise ValueError(f"tool call function must be an object, got {type(function).__name__}")
        name = function.get("name")
        if not name:
            continue
        calls.append(FunctionCallPart(
            name=str(name),
            args=parse_arguments(function.get("arguments")),
            id=tool_call.get("id") or None,
        ))
    return calls


def ollama_message(body: Mapping[str, Any]) -> Mapping[str, Any]:
    """The ``message`` object of an /api/chat body or chunk; ValueError if it is not one."""
    message = body.get("message") or {}
    if not isinstance(message, Mapping):
        raise ValueError(f"message must be an object, got {type(message).__name__}")
    return message


def parse_ollama_response(body: Mapping[str, Any]) -> ModelTurn:
    """Parse a non-streaming /api/chat body into a ModelTurn."""
    message = ollama_message(body)
    parts: list[TextPart | FunctionCallPart] = []
    content = message.get("content")
    if content:
        parts.append(TextPart(text=str(content)))
    parts.extend(parse_ollama_tool_calls(message))

    finish = body.get("done_reason") or ("stop" if body.get("done") else None)
    if finish == "stop" and any(isinstance(p, FunctionCallPart) for p in parts):
        finish = "tool_calls"
    return ModelTurn(parts=parts, finish_reason=normalize_finish_reason(finish))
