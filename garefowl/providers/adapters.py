"""
providers/adapters.py
=====================
One adapter per chat-completion backend.

Each adapter turns the canonical conversation into that backend's
endpoint, headers and JSON body, and reduces the JSON that comes back
to plain text and/or tool calls. Reading a response never raises: a
missing field yields "" (text) or None (tool calls) and the ChatSession
decides whether that is an empty-response failure.

Wire dialects:
  Anthropic        → messages[],  tools[{name, description, input_schema}]
  OpenAI / Groq /
  OpenRouter       → messages[],  tools[{type: "function", function: {...}}]
  Gemini           → contents[{role, parts}], tools[{function_declarations: [...]}]
  Ollama (local)   → messages[],  OpenAI-style tools, only for known model families
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from garefowl.agent.prompts import TOOL_CONTEXT_PROMPT
from garefowl.errors import ParseError
from garefowl.memory.conversation import ConversationTurn, Role
from garefowl.providers.config import ProviderConfig, ProviderKind
from garefowl.providers.transport import HttpTransport
from garefowl.tools.descriptors import ALL_TOOLS, ToolDescriptor

logger = logging.getLogger(__name__)

THINK_CLOSE_TAG = "</think>"


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""
    id:    str
    name:  str
    input: dict[str, Any]


@dataclass
class ProviderReply:
    """What is left of a provider response once the adapter has read it."""
    text:       str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


# ── Helpers ───────────────────────────────────────────────────────────────────

def _dig(data: Any, *path: str | int) -> Any:
    """Walk dict keys / list indexes; None as soon as anything is missing."""
    current = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
    return current


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _parse_arguments(arguments: Any) -> dict[str, Any]:
    """Arguments arrive as a JSON string from some backends and as an object from others."""
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str):
        if not arguments.strip():
            return {}
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError:
            return {"raw": arguments}
        return parsed if isinstance(parsed, dict) else {"raw": arguments}
    return {}


def strip_reasoning(text: str) -> str:
    """Keep only what follows </think>; the whole text if nothing does."""
    index = text.find(THINK_CLOSE_TAG)
    if index == -1:
        return text
    answer = text[index + len(THINK_CLOSE_TAG):].strip()
    return answer or text


# ── Base adapter ──────────────────────────────────────────────────────────────

class ProviderAdapter:
    """
    Shared plumbing; subclasses fill in the wire format.

    Usage:
        adapter = OpenAIAdapter(config)
        reply   = await adapter.complete(history, transport)
    """

    kind: ProviderKind
    tools: Sequence[ToolDescriptor] = ALL_TOOLS

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    def api_key(self) -> str:
        return self.config.api_key

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def tools_enabled(self) -> bool:
        return self.config.web_search_enabled and self.supports_tools()

    # ── Wire format (per backend) ─────────────────────────────────────────────

    def endpoint(self) -> str:
        raise NotImplementedError

    def headers(self) -> dict[str, str]:
        return {}

    def build_request_body(self, history: Sequence[ConversationTurn]) -> dict[str, Any]:
        raise NotImplementedError

    def supports_tools(self) -> bool:
        return True

    def parse_response_text(self, data: Any) -> str:
        raise NotImplementedError

    def extract_tool_calls(self, data: Any) -> list[ToolCall] | None:
        raise NotImplementedError

    # ── Round trip ────────────────────────────────────────────────────────────

    async def complete(
        self,
        history: Sequence[ConversationTurn],
        transport: HttpTransport,
    ) -> ProviderReply:
        """
        Sends the conversation and reads the answer.

        Raises:
            TransportError: from the transport, unchanged.
            ParseError:     the body was not a JSON object.
        """
        body = self.build_request_body(history)
        url  = self.endpoint()
        logger.info("Sending %d turns to %s (%s)", len(history), self.kind.value, self.model)

        response = await transport.send(
            "POST", url, self.headers(), body, self.config.request_timeout_seconds
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"Failed to parse JSON: {e}", url=url, raw=response.text) from e
        if not isinstance(data, dict):
            raise ParseError("Expected a JSON object in the response", url=url, raw=response.text)

        return ProviderReply(
            text       = self.parse_response_text(data),
            tool_calls = self.extract_tool_calls(data) or [],
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r}, tools_enabled={self.tools_enabled})"


# ── Anthropic ─────────────────────────────────────────────────────────────────

class AnthropicAdapter(ProviderAdapter):
    kind = ProviderKind.ANTHROPIC

    API_VERSION = "2023-06-01"
    MAX_TOKENS  = 4096

    def endpoint(self) -> str:
        return "https://api.anthropic.com/v1/messages"

    def headers(self) -> dict[str, str]:
        return {
            "x-api-key":         self.api_key,
            "anthropic-version": self.API_VERSION,
        }

    def build_request_body(self, history: Sequence[ConversationTurn]) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model":      self.model,
            "messages":   [turn.to_dict() for turn in history],
            "max_tokens": self.MAX_TOKENS,
        }
        if self.tools_enabled and history:
            body["system"] = TOOL_CONTEXT_PROMPT
            body["tools"] = [
                {
                    "name":         tool.name,
                    "description":  tool.description,
                    "input_schema": tool.input_schema,
                }
                for tool in self.tools
            ]
        return body

    def parse_response_text(self, data: Any) -> str:
        blocks = _dig(data, "content")
        if not isinstance(blocks, list):
            return ""
        for block in blocks:
            if isinstance(block, dict) and block.get("type", "text") == "text":
                text = _text(block.get("text"))
                if text:
                    return text
        return ""

    def extract_tool_calls(self, data: Any) -> list[ToolCall] | None:
        blocks = _dig(data, "content")
        if not isinstance(blocks, list):
            return None
        calls = [
            ToolCall(
                id    = _text(block.get("id")) or "anthropic_call",
                name  = _text(block.get("name")),
                input = _parse_arguments(block.get("input")),
            )
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "tool_use"
        ]
        return calls or None


# ── OpenAI-compatible chat completions ───────────────────────────────────────

def _openai_tool(tool: ToolDescriptor) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name":        tool.name,
            "description": tool.description,
            "parameters":  tool.input_schema,
        },
    }


class ChatCompletionsAdapter(ProviderAdapter):
    """choices[0].message.{content, tool_calls}, bearer auth."""

    url: str = ""
    default_tool_call_id = "call"

    def endpoint(self) -> str:
        return self.url

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def format_messages(self, history: Sequence[ConversationTurn]) -> list[dict[str, str]]:
        return [turn.to_dict() for turn in history]

    def extra_body(self) -> dict[str, Any]:
        return {}

    def build_request_body(self, history: Sequence[ConversationTurn]) -> dict[str, Any]:
        messages = self.format_messages(history)
        if self.tools_enabled and messages:
            messages.insert(0, {"role": "system", "content": TOOL_CONTEXT_PROMPT})

        body: dict[str, Any] = {"model": self.model, "messages": messages, **self.extra_body()}
        if self.tools_enabled and messages:
            body["tools"] = [_openai_tool(tool) for tool in self.tools]
        return body

    def response_message(self, data: Any) -> Any:
        return _dig(data, "choices", 0, "message")

    def parse_response_text(self, data: Any) -> str:
        return _text(_dig(self.response_message(data), "content"))

    def extract_tool_calls(self, data: Any) -> list[ToolCall] | None:
        raw_calls = _dig(self.response_message(data), "tool_calls")
        if not isinstance(raw_calls, list):
            return None
        calls = [
            ToolCall(
                id    = _text(call.get("id")) or self.default_tool_call_id,
                name  = _text(_dig(call, "function", "name")),
                input = _parse_arguments(_dig(call, "function", "arguments")),
            )
            for call in raw_calls
            if isinstance(call, dict)
        ]
        return calls or None


class OpenAIAdapter(ChatCompletionsAdapter):
    kind = ProviderKind.OPENAI
    url  = "https://api.openai.com/v1/chat/completions"

    def extra_body(self) -> dict[str, Any]:
        return {
            "temperature":           1,
            "max_completion_tokens": 4096,
            "top_p":                 1,
            "frequency_penalty":     0,
            "presence_penalty":      0,
        }


class OpenRouterAdapter(ChatCompletionsAdapter):
    kind = ProviderKind.OPENROUTER
    url  = "https://openrouter.ai/api/v1/chat/completions"


class GroqAdapter(ChatCompletionsAdapter):
    kind = ProviderKind.GROQ
    url  = "https://api.groq.com/openai/v1/chat/completions"


# ── Ollama (local) ────────────────────────────────────────────────────────────

class OllamaAdapter(ChatCompletionsAdapter):
    """
    Local /api/chat in non-streaming mode. No auth; tools only for model
    families on the configured allow-list.
    """

    kind = ProviderKind.OLLAMA
    default_tool_call_id = "ollama_call"

    def endpoint(self) -> str:
        return f"{self.config.ollama_host.rstrip('/')}/api/chat"

    def headers(self) -> dict[str, str]:
        return {}

    def supports_tools(self) -> bool:
        model = (self.model or "").lower()
        return any(family.lower() in model for family in self.config.ollama_tool_models)

    def format_messages(self, history: Sequence[ConversationTurn]) -> list[dict[str, str]]:
        messages = [
            {"role": turn.role.value, "content": turn.content or ""}
            for turn in history
            if turn.role in (Role.USER, Role.ASSISTANT)
        ]
        # Ollama answers 400 when the conversation does not open with a user message.
        if messages and messages[0]["role"] != Role.USER.value:
            messages.insert(0, {"role": Role.USER.value, "content": ""})
        return messages

    def extra_body(self) -> dict[str, Any]:
        if not (self.model or "").strip():
            logger.warning("Ollama model name is empty, check your settings")
        return {"stream": False}

    def response_message(self, data: Any) -> Any:
        return _dig(data, "message")

    def parse_response_text(self, data: Any) -> str:
        content = _dig(data, "message", "content")
        if isinstance(content, str):
            return strip_reasoning(content)
        for path in (("response",), ("choices", 0, "message", "content"), ("completions", 0, "text")):
            text = _text(_dig(data, *path))
            if text:
                return text
        return ""


# ── Gemini ────────────────────────────────────────────────────────────────────

class GeminiAdapter(ProviderAdapter):
    kind = ProviderKind.GEMINI

    MODEL_ROLE = "model"
    GENERATION_CONFIG = {
        "temperature":      1,
        "topK":             40,
        "topP":             0.95,
        "maxOutputTokens":  8192,
        "responseMimeType": "text/plain",
    }

    def endpoint(self) -> str:
        return (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{self.model}:generateContent"
        )

    def headers(self) -> dict[str, str]:
        # Header auth keeps the key out of the URL, which ends up in error messages.
        return {"x-goog-api-key": self.api_key}

    def build_request_body(self, history: Sequence[ConversationTurn]) -> dict[str, Any]:
        body: dict[str, Any] = {
            "contents": [
                {
                    "role":  Role.USER.value if turn.role is Role.USER else self.MODEL_ROLE,
                    "parts": [{"text": turn.content}],
                }
                for turn in history
            ],
            "generationConfig": dict(self.GENERATION_CONFIG),
        }
        if self.tools_enabled and history:
            body["systemInstruction"] = {"parts": [{"text": TOOL_CONTEXT_PROMPT}]}
            body["tools"] = [
                {
                    "function_declarations": [
                        {
                            "name":        tool.name,
                            "description": tool.description,
                            "parameters":  tool.input_schema,
                        }
                        for tool in self.tools
                    ]
                }
            ]
        return body

    def _parts(self, data: Any) -> list[Any]:
        parts = _dig(data, "candidates", 0, "content", "parts")
        return parts if isinstance(parts, list) else []

    def parse_response_text(self, data: Any) -> str:
        for part in self._parts(data):
            text = _text(_dig(part, "text"))
            if text:
                return text
        return ""

    def extract_tool_calls(self, data: Any) -> list[ToolCall] | None:
        calls = [
            ToolCall(
                id    = "gemini_call",
                name  = _text(_dig(part, "functionCall", "name")),
                input = _parse_arguments(_dig(part, "functionCall", "args")),
            )
            for part in self._parts(data)
            if isinstance(_dig(part, "functionCall"), dict)
        ]
        return calls or None
