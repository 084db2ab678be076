"""LLM clients.

An LlmClient answers a ChatRequest either in one piece (chat) or as a
sequence of stream events (chat_stream). Two clients ship:
- StubClient: deterministic, offline; used by default and in tests
- AnthropicClient: the Anthropic Messages API via the ``anthropic`` SDK
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

import anthropic

from agentscript.harness.logging_utils import abbreviate
from agentscript.protocol import (
    LlmTool,
    StreamCompleted,
    StreamEvent,
    TextDelta,
    ToolCallAccumulator,
    ToolCallEvent,
    ToolInvocation,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass
class Message:
    """A message in the conversation transcript."""

    role: str  # "user", "assistant", "tool"
    content: str
    tool_call_id: str | None = None
    tool_calls: list[ToolInvocation] = field(default_factory=list)

    @classmethod
    def tool(cls, content: str, tool_call_id: str | None = None) -> "Message":
        return cls(role="tool", content=content, tool_call_id=tool_call_id)

    def to_dict(self) -> dict:
        """Convert to serializable dict."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return data


@dataclass
class ChatRequest:
    """Everything one LLM exchange needs."""

    messages: list[Message]
    system_prompt: str | None = None
    tools: list[LlmTool] = field(default_factory=list)
    stream: bool = False

    def latest_user_prompt(self) -> str | None:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return None


@dataclass
class ChatResponse:
    """A complete (non-streamed) answer: text, tool calls, or both."""

    text: str = ""
    tool_calls: list[ToolInvocation] = field(default_factory=list)


EventSink = Callable[[StreamEvent], None]


class LlmClient(ABC):
    """Interface every provider implements."""

    @abstractmethod
    def chat(self, request: ChatRequest) -> ChatResponse:
        """Answer the request in one piece."""

    def chat_stream(self, request: ChatRequest, emit: EventSink) -> None:
        """Answer the request as stream events.

        The default replays chat() as a single delta plus its tool calls.
        """
        response = self.chat(request)
        if response.text:
            emit(TextDelta(response.text))
        for invocation in response.tool_calls:
            emit(ToolCallEvent(invocation))
        emit(StreamCompleted())

    @property
    def supports_streaming(self) -> bool:
        return True


class StubClient(LlmClient):
    """Offline client that echoes the latest prompt."""

    def chat(self, request: ChatRequest) -> ChatResponse:
        turn = sum(1 for m in request.messages if m.role == "user")
        prompt = request.latest_user_prompt()
        if prompt is None:
            raise ValueError("stub client requires at least one user prompt")

        trimmed = prompt.strip()
        if not trimmed:
            return ChatResponse(text="I need some text to work with.")
        if "python" in trimmed.lower() or "script" in trimmed.lower():
            return ChatResponse(
                text='Try `/py host.read_file("pyproject.toml")` to inspect a file.'
            )
        return ChatResponse(text=f'Stub agent turn {turn} heard: "{trimmed}"')


def to_anthropic_messages(messages: list[Message]) -> list[dict]:
    """Convert the transcript to Anthropic Messages API format.

    Tool results without a call id cannot be attributed and are skipped, and
    tool calls that never got a result (still queued, or skipped) are left out.
    """
    answered = {m.tool_call_id for m in messages if m.role == "tool" and m.tool_call_id}
    converted: list[dict] = []
    for message in messages:
        if message.role == "tool":
            if not message.tool_call_id:
                continue
            converted.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": message.tool_call_id,
                            "content": message.content,
                        }
                    ],
                }
            )
        elif message.role == "assistant":
            blocks: list[dict] = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for call in message.tool_calls:
                if call.call_id not in answered:
                    continue
                arguments = call.arguments if isinstance(call.arguments, dict) else {"raw": call.arguments}
                blocks.append({"type": "tool_use", "id": call.call_id, "name": call.name, "input": arguments})
            if blocks:
                converted.append({"role": "assistant", "content": blocks})
        else:
            converted.append({"role": "user", "content": message.content})
    return converted


class AnthropicClient(LlmClient):
    """Anthropic Messages API client."""

    def __init__(self, model: str = DEFAULT_MODEL, max_tokens: int = 4096, client: Any = None):
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or anthropic.Anthropic()

    def _params(self, request: ChatRequest) -> dict:
        params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": to_anthropic_messages(request.messages),
        }
        if request.system_prompt:
            params["system"] = request.system_prompt
        if request.tools:
            params["tools"] = [tool.to_anthropic() for tool in request.tools]
        logger.debug("llm request model=%s messages=%s", self.model, len(params["messages"]))
        return params

    def chat(self, request: ChatRequest) -> ChatResponse:
        response = self._client.messages.create(**self._params(request))
        text_parts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolInvocation(name=block.name, arguments=block.input, call_id=block.id))
        text = "".join(text_parts)
        logger.debug("llm response text=%s tool_calls=%s", abbreviate(text), len(tool_calls))
        return ChatResponse(text=text, tool_calls=tool_calls)

    def chat_stream(self, request: ChatRequest, emit: EventSink) -> None:
        accumulator = ToolCallAccumulator()

        def flush() -> None:
            for invocation in accumulator.finalize():
                emit(ToolCallEvent(invocation))

        with self._client.messages.stream(**self._params(request)) as stream:
            for event in stream:
                if event.type == "content_block_start":
                    block = event.content_block
                    if block.type == "tool_use":
                        accumulator.add(event.index, name=block.name, call_id=block.id)
                elif event.type == "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta" and delta.text:
                        emit(TextDelta(delta.text))
                    elif delta.type == "input_json_delta":
                        accumulator.add(event.index, arguments=delta.partial_json)
                elif event.type == "message_delta":
                    if getattr(event.delta, "stop_reason", None) == "tool_use":
                        flush()
        flush()
        emit(StreamCompleted())


def build_client(provider: str, model: str = DEFAULT_MODEL, max_tokens: int = 4096) -> LlmClient:
    """Create the client for a provider name (``stub`` or ``anthropic``)."""
    if provider == "stub":
        return StubClient()
    if provider == "anthropic":
        return AnthropicClient(model=model, max_tokens=max_tokens)
    raise ValueError(f"Unknown provider: {provider} (expected 'stub' or 'anthropic')")


__all__ = [
    "AnthropicClient",
    "ChatRequest",
    "ChatResponse",
    "LlmClient",
    "Message",
    "StubClient",
    "build_client",
    "to_anthropic_messages",
]
