"""
agent-pool — Bigmodel (Zhipu GLM) chat completions adapter

File: src/agent_pool/providers/bigmodel.py
Last updated: 2026-10-19

Purpose
- Bearer-authenticated JSON client for the Bigmodel chat-completions API and an
  AgentHandle built on top of it.

What should be included in this file
- Wire message models (user / assistant / system / tool) and tool-call encoding.
- Request body construction from a provider-neutral completion request.
- Response parsing with vendor error bodies mapped onto the prompt error taxonomy.
- Opt-in SSE streaming and reassembly of streamed deltas.

Functional requirements
- Tool-call arguments are JSON objects in memory and stringified JSON on the wire.
- Non-text tool results are rejected with ConversionError.
- Non-2xx replies and ``{message}`` bodies surface as ProviderError.

Non-functional requirements
- All HTTP goes through one ``httpx.AsyncClient``; tests inject a MockTransport.
- Must never log the API key.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final, Literal, TypeAlias

import httpx

from agent_pool.providers.base import (
    ChatMessage,
    ConversionError,
    JSONValue,
    Prompt,
    PromptError,
    ProviderError,
    ProviderUnavailableError,
    ResponseError,
    TransportError,
    _validate_non_empty_str,
    _validate_optional_str,
)
from agent_pool.providers.common import env_key_name, validate_base_url
from agent_pool.providers.sse import iter_sse_events

logger = logging.getLogger(__name__)

PROVIDER_NAME: Final[str] = "bigmodel"
BIGMODEL_API_BASE_URL: Final[str] = "https://open.bigmodel.cn/api/paas/v4/"
BIGMODEL_GLM_4_FLASH: Final[str] = "glm-4-flash"
CHAT_COMPLETIONS_PATH: Final[str] = "chat/completions"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 60.0
_SLASH_RUN: Final[re.Pattern[str]] = re.compile(r"/{2,}")


def _wire_int(value: object, field_name: str) -> int:
    """Integer field of a reply; absent or null counts as 0."""

    if value is None:
        return 0
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError) as exc:
        raise ResponseError(
            f"{field_name} must be an integer, got {value!r}", provider=PROVIDER_NAME
        ) from exc


# ---------------------------------------------------------------------------
# Provider-neutral request content
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class ImagePart:
    data: str
    media_type: str | None = None


@dataclass(frozen=True, slots=True)
class ToolCallPart:
    id: str
    name: str
    arguments: JSONValue = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResultPart:
    id: str
    content: tuple[TextPart | ImagePart, ...]


ContentPart: TypeAlias = TextPart | ImagePart | ToolCallPart | ToolResultPart


@dataclass(frozen=True, slots=True)
class RichMessage:
    """Multi-part user or assistant turn, before conversion to the wire format."""

    role: Literal["user", "assistant"]
    content: tuple[ContentPart, ...]

    @classmethod
    def user(cls, text: str) -> RichMessage:
        return cls(role="user", content=(TextPart(text),))

    @classmethod
    def assistant(cls, text: str) -> RichMessage:
        return cls(role="assistant", content=(TextPart(text),))


@dataclass(frozen=True, slots=True)
class Document:
    id: str
    text: str


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    name: str
    description: str
    parameters: Mapping[str, JSONValue] = field(default_factory=dict)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters),
            },
        }


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    prompt: RichMessage | str
    preamble: str | None = None
    chat_history: tuple[RichMessage | ChatMessage, ...] = ()
    documents: tuple[Document, ...] = ()
    temperature: float | None = None
    tools: tuple[ToolDefinition, ...] = ()
    additional_params: Mapping[str, JSONValue] | None = None


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CallFunction:
    name: str
    arguments: JSONValue

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "arguments": json.dumps(self.arguments, ensure_ascii=False),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> CallFunction:
        name = payload.get("name")
        if not isinstance(name, str):
            raise ResponseError("tool call function has no name", provider=PROVIDER_NAME)
        raw_arguments = payload.get("arguments")
        if isinstance(raw_arguments, str):
            try:
                arguments = json.loads(raw_arguments) if raw_arguments.strip() else {}
            except json.JSONDecodeError as exc:
                raise ResponseError(
                    f"tool call {name} carries non-JSON arguments",
                    provider=PROVIDER_NAME,
                ) from exc
        else:
            arguments = raw_arguments if raw_arguments is not None else {}
        return cls(name=name, arguments=arguments)


@dataclass(frozen=True, slots=True)
class ToolCall:
    id: str
    index: int
    function: CallFunction
    type: Literal["function"] = "function"

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "index": self.index,
            "type": self.type,
            "function": self.function.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ToolCall:
        function = payload.get("function")
        if not isinstance(function, Mapping):
            raise ResponseError("tool call has no function object", provider=PROVIDER_NAME)
        return cls(
            id=str(payload.get("id", "")),
            index=_wire_int(payload.get("index"), "tool call index"),
            function=CallFunction.from_dict(function),
        )


@dataclass(frozen=True, slots=True)
class UserMessage:
    content: str
    role: Literal["user"] = "user"

    def to_dict(self) -> dict[str, JSONValue]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class AssistantMessage:
    content: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    role: Literal["assistant"] = "assistant"

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "role": self.role,
            "content": self.content,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
        }


@dataclass(frozen=True, slots=True)
class SystemMessage:
    content: str
    role: Literal["system"] = "system"

    def to_dict(self) -> dict[str, JSONValue]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class ToolResultMessage:
    tool_call_id: str
    content: str
    role: Literal["tool"] = "tool"

    def to_dict(self) -> dict[str, JSONValue]:
        return {"role": self.role, "tool_call_id": self.tool_call_id, "content": self.content}


WireMessage: TypeAlias = UserMessage | AssistantMessage | SystemMessage | ToolResultMessage


def parse_wire_message(payload: Mapping[str, Any]) -> WireMessage:
    role = payload.get("role")
    content = payload.get("content")
    if role == "assistant":
        raw_calls = payload.get("tool_calls") or []
        return AssistantMessage(
            content=content if isinstance(content, str) else None,
            tool_calls=tuple(ToolCall.from_dict(item) for item in raw_calls),
        )
    if role == "user":
        return UserMessage(content=str(content or ""))
    if role == "system":
        return SystemMessage(content=str(content or ""))
    if role == "tool":
        return ToolResultMessage(
            tool_call_id=str(payload.get("tool_call_id", "")),
            content=str(content or ""),
        )
    raise ResponseError(f"unknown message role {role!r}", provider=PROVIDER_NAME)


@dataclass(frozen=True, slots=True)
class Usage:
    completion_tokens: int = 0
    prompt_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, payload: object) -> Usage:
        if not isinstance(payload, Mapping):
            return cls()
        return cls(
            completion_tokens=_wire_int(payload.get("completion_tokens"), "completion_tokens"),
            prompt_tokens=_wire_int(payload.get("prompt_tokens"), "prompt_tokens"),
            total_tokens=_wire_int(payload.get("total_tokens"), "total_tokens"),
        )


@dataclass(frozen=True, slots=True)
class Choice:
    finish_reason: str | None
    index: int
    message: WireMessage


@dataclass(frozen=True, slots=True)
class AssistantReply:
    text: str
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(frozen=True, slots=True)
class CompletionResponse:
    id: str
    created: int
    model: str
    request_id: str
    choices: tuple[Choice, ...]
    usage: Usage

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> CompletionResponse:
        raw_choices = payload.get("choices") or []
        if not isinstance(raw_choices, list):
            raise ResponseError("choices must be an array", provider=PROVIDER_NAME)
        choices: list[Choice] = []
        for raw in raw_choices:
            if not isinstance(raw, Mapping) or not isinstance(raw.get("message"), Mapping):
                raise ResponseError("choice has no message object", provider=PROVIDER_NAME)
            choices.append(
                Choice(
                    finish_reason=raw.get("finish_reason"),
                    index=_wire_int(raw.get("index"), "choice index"),
                    message=parse_wire_message(raw["message"]),
                )
            )
        return cls(
            id=str(payload.get("id", "")),
            created=_wire_int(payload.get("created"), "created"),
            model=str(payload.get("model", "")),
            request_id=str(payload.get("request_id", "")),
            choices=tuple(choices),
            usage=Usage.from_dict(payload.get("usage")),
        )

    def reply(self) -> AssistantReply:
        """The first choice as an assistant reply."""

        if not self.choices:
            raise ResponseError("Response contained no choices", provider=PROVIDER_NAME)
        message = self.choices[0].message
        if not isinstance(message, AssistantMessage):
            raise ResponseError(
                "Chat response does not include an assistant message",
                provider=PROVIDER_NAME,
            )
        return AssistantReply(text=message.content or "", tool_calls=message.tool_calls)


@dataclass(frozen=True, slots=True)
class StreamChunk:
    """One streamed delta."""

    text: str = ""
    tool_calls: tuple[Mapping[str, Any], ...] = ()
    finish_reason: str | None = None
    usage: Usage | None = None


@dataclass(frozen=True, slots=True)
class StreamedCompletion:
    text: str
    tool_calls: tuple[ToolCall, ...]
    finish_reason: str | None
    usage: Usage | None


# ---------------------------------------------------------------------------
# Message conversion
# ---------------------------------------------------------------------------


def to_wire_message(message: RichMessage | ChatMessage) -> WireMessage:
    """Convert one history or prompt turn into the Bigmodel wire shape."""

    if isinstance(message, ChatMessage):
        return _chat_message_to_wire(message)

    if message.role == "user":
        texts: list[str] = []
        for part in message.content:
            if isinstance(part, TextPart):
                texts.append(part.text)
            elif isinstance(part, ToolResultPart):
                return _tool_result_to_wire(part)
        return UserMessage(content=" ".join(texts))

    texts = []
    tool_calls: list[ToolCall] = []
    for part in message.content:
        if isinstance(part, TextPart):
            texts.append(part.text)
        elif isinstance(part, ToolCallPart):
            tool_calls.append(
                ToolCall(
                    id=part.id,
                    index=0,
                    function=CallFunction(name=part.name, arguments=part.arguments),
                )
            )
    return AssistantMessage(content=" ".join(texts), tool_calls=tuple(tool_calls))


def _tool_result_to_wire(part: ToolResultPart) -> ToolResultMessage:
    if not part.content:
        raise ConversionError(
            "tool result has no content",
            provider=PROVIDER_NAME,
        )
    texts: list[str] = []
    for item in part.content:
        if not isinstance(item, TextPart):
            raise ConversionError("Non-text tool results not supported", provider=PROVIDER_NAME)
        texts.append(item.text)
    return ToolResultMessage(tool_call_id=part.id, content=texts[0])


def _chat_message_to_wire(message: ChatMessage) -> WireMessage:
    if message.role == "user":
        return UserMessage(content=message.content)
    if message.role == "assistant":
        return AssistantMessage(content=message.content)
    if message.role == "system":
        return SystemMessage(content=message.content)
    raise ConversionError(
        "plain tool messages carry no tool_call_id; use ToolResultPart",
        provider=PROVIDER_NAME,
    )


def render_documents(documents: Sequence[Document]) -> RichMessage | None:
    if not documents:
        return None
    rendered = "\n".join(f"<file id: {doc.id}>\n{doc.text}\n</file>" for doc in documents)
    return RichMessage.user(rendered)


def join_url(base_url: str, path: str) -> str:
    """Join ``base_url`` and ``path`` with runs of slashes after the scheme collapsed."""

    scheme, sep, rest = base_url.partition("://")
    if not sep:
        scheme, rest = "", base_url
    joined = _SLASH_RUN.sub("/", f"{rest.rstrip('/')}/{path.lstrip('/')}")
    return f"{scheme}{sep}{joined}"


# ---------------------------------------------------------------------------
# Client and completion model
# ---------------------------------------------------------------------------


class BigmodelClient:
    """Bearer-authenticated HTTP client for the Bigmodel API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = BIGMODEL_API_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._api_key = _validate_non_empty_str(api_key, "api_key")
        self.base_url = (
            validate_base_url(base_url, field_name="base_url") or BIGMODEL_API_BASE_URL
        )
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._owns_http_client = http_client is None
        self._http_client = (
            http_client if http_client is not None else httpx.AsyncClient(timeout=timeout_seconds)
        )

    @property
    def is_closed(self) -> bool:
        return self._http_client.is_closed

    @classmethod
    def from_env(
        cls,
        *,
        environ: Mapping[str, str] | None = None,
        base_url: str = BIGMODEL_API_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
    ) -> BigmodelClient:
        env = os.environ if environ is None else environ
        name = env_key_name(PROVIDER_NAME)
        api_key = env.get(name)
        if api_key is None or not api_key.strip():
            raise ProviderUnavailableError(f"{name} not set", provider=PROVIDER_NAME)
        return cls(api_key, base_url=base_url, http_client=http_client)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def url(self, path: str) -> str:
        return join_url(self.base_url, path)

    def completion_model(self, model: str) -> BigmodelCompletionModel:
        return BigmodelCompletionModel(self, model)

    def agent(
        self,
        model: str,
        *,
        preamble: str | None = None,
        temperature: float | None = None,
        name: str | None = None,
    ) -> BigmodelAgent:
        return BigmodelAgent(
            self.completion_model(model),
            preamble=preamble,
            temperature=temperature,
            name=name,
        )

    async def post_json(self, path: str, body: Mapping[str, JSONValue]) -> httpx.Response:
        try:
            return await self._http_client.post(self.url(path), json=body, headers=self.headers)
        except httpx.HTTPError as exc:
            raise TransportError(exc, provider=PROVIDER_NAME) from exc

    async def stream_lines(
        self, path: str, body: Mapping[str, JSONValue]
    ) -> AsyncIterator[str]:
        try:
            async with self._http_client.stream(
                "POST", self.url(path), json=body, headers=self.headers
            ) as response:
                if not response.is_success:
                    raw = await response.aread()
                    raise _error_from_body(
                        raw.decode("utf-8", errors="replace"), response.status_code
                    )
                async for line in response.aiter_lines():
                    yield line
        except httpx.HTTPError as exc:
            raise TransportError(exc, provider=PROVIDER_NAME) from exc

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> BigmodelClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"BigmodelClient(base_url={self.base_url!r})"


class BigmodelCompletionModel:
    def __init__(self, client: BigmodelClient, model: str) -> None:
        self.client = client
        self.model = _validate_non_empty_str(model, "model")

    def build_request_body(self, request: CompletionRequest) -> dict[str, JSONValue]:
        messages: list[WireMessage] = []
        if request.preamble is not None:
            messages.append(SystemMessage(content=request.preamble))
        documents = render_documents(request.documents)
        if documents is not None:
            messages.append(to_wire_message(documents))
        messages.extend(to_wire_message(item) for item in request.chat_history)
        prompt = (
            RichMessage.user(request.prompt) if isinstance(request.prompt, str) else request.prompt
        )
        messages.append(to_wire_message(prompt))

        body: dict[str, JSONValue] = {
            "model": self.model,
            "messages": [message.to_dict() for message in messages],
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.tools:
            body["tools"] = [tool.to_dict() for tool in request.tools]
            body["tool_choice"] = "auto"
        if request.additional_params:
            body.update(request.additional_params)
        return body

    async def completion(self, request: CompletionRequest) -> CompletionResponse:
        body = self.build_request_body(request)
        logger.debug("bigmodel completion request", extra={"model": self.model})
        response = await self.client.post_json(CHAT_COMPLETIONS_PATH, body)
        if not response.is_success:
            raise _error_from_body(response.text, response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ResponseError("response body is not JSON", provider=PROVIDER_NAME) from exc
        if not isinstance(payload, Mapping):
            raise ResponseError("response body must be a JSON object", provider=PROVIDER_NAME)
        if "choices" not in payload and isinstance(payload.get("message"), str):
            raise ProviderError(payload["message"], provider=PROVIDER_NAME)

        parsed = CompletionResponse.from_dict(payload)
        logger.info(
            "bigmodel completion token usage",
            extra={
                "model": self.model,
                "request_id": parsed.request_id,
                "prompt_tokens": parsed.usage.prompt_tokens,
                "completion_tokens": parsed.usage.completion_tokens,
                "total_tokens": parsed.usage.total_tokens,
            },
        )
        return parsed

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        body = self.build_request_body(request)
        body["stream"] = True
        async for event in iter_sse_events(self.client.stream_lines(CHAT_COMPLETIONS_PATH, body)):
            if event.is_done:
                return
            yield _parse_stream_event(event.data)


async def collect_stream(chunks: AsyncIterator[StreamChunk]) -> StreamedCompletion:
    """Reassemble streamed deltas into one completion."""

    text_parts: list[str] = []
    calls: dict[int, dict[str, Any]] = {}
    finish_reason: str | None = None
    usage: Usage | None = None
    async for chunk in chunks:
        text_parts.append(chunk.text)
        for delta in chunk.tool_calls:
            _merge_tool_call_delta(calls, delta)
        if chunk.finish_reason is not None:
            finish_reason = chunk.finish_reason
        if chunk.usage is not None:
            usage = chunk.usage
    tool_calls = tuple(
        ToolCall.from_dict({**calls[index], "index": index}) for index in sorted(calls)
    )
    return StreamedCompletion(
        text="".join(text_parts),
        tool_calls=tool_calls,
        finish_reason=finish_reason,
        usage=usage,
    )


class BigmodelAgent:
    """AgentHandle over a Bigmodel completion model."""

    def __init__(
        self,
        model: BigmodelCompletionModel,
        *,
        preamble: str | None = None,
        temperature: float | None = None,
        name: str | None = None,
    ) -> None:
        self.completion_model = model
        self.preamble = preamble
        self.name = _validate_optional_str(name, "name")
        if temperature is not None and not (0.0 <= temperature <= 1.0):
            raise ValueError("temperature must be between 0.0 and 1.0")
        self.temperature = temperature

    @property
    def model(self) -> str:
        return self.completion_model.model

    async def prompt(self, message: Prompt) -> str:
        request = CompletionRequest(
            prompt=message.text,
            preamble=self.preamble,
            chat_history=message.history,
            temperature=self.temperature,
        )
        reply = (await self.completion_model.completion(request)).reply()
        if reply.tool_calls and not reply.text:
            names = ", ".join(call.function.name for call in reply.tool_calls)
            raise ResponseError(
                f"model requested tool calls ({names}) but the agent has no tools",
                provider=PROVIDER_NAME,
            )
        return reply.text

    async def aclose(self) -> None:
        await self.completion_model.client.aclose()

    def __repr__(self) -> str:
        return f"BigmodelAgent(model={self.model!r})"


def _error_from_body(body: str, status_code: int) -> PromptError:
    message = body.strip() or f"HTTP {status_code}"
    try:
        parsed = json.loads(body)
    except ValueError:
        parsed = None
    if isinstance(parsed, Mapping):
        if isinstance(parsed.get("message"), str):
            message = parsed["message"]
        elif isinstance(parsed.get("error"), Mapping) and isinstance(
            parsed["error"].get("message"), str
        ):
            message = parsed["error"]["message"]
    return ProviderError(message, provider=PROVIDER_NAME, http_status=status_code)


def _parse_stream_event(data: str) -> StreamChunk:
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise ResponseError("stream chunk is not JSON", provider=PROVIDER_NAME) from exc
    if not isinstance(payload, Mapping):
        raise ResponseError("stream chunk must be a JSON object", provider=PROVIDER_NAME)
    error = payload.get("error")
    if isinstance(error, Mapping):
        raise ProviderError(str(error.get("message", error)), provider=PROVIDER_NAME)

    usage = Usage.from_dict(payload["usage"]) if "usage" in payload else None
    choices = payload.get("choices") or []
    if not choices:
        return StreamChunk(usage=usage)
    if not isinstance(choices, list) or not isinstance(choices[0], Mapping):
        raise ResponseError("stream choice must be a JSON object", provider=PROVIDER_NAME)
    choice = choices[0]
    delta = choice.get("delta") or {}
    if not isinstance(delta, Mapping):
        raise ResponseError("stream delta must be a JSON object", provider=PROVIDER_NAME)
    tool_calls = delta.get("tool_calls") or []
    if not isinstance(tool_calls, list) or not all(
        isinstance(call, Mapping) for call in tool_calls
    ):
        raise ResponseError("stream tool_calls must be JSON objects", provider=PROVIDER_NAME)
    content = delta.get("content")
    return StreamChunk(
        text=content if isinstance(content, str) else "",
        tool_calls=tuple(tool_calls),
        finish_reason=choice.get("finish_reason"),
        usage=usage,
    )


def _merge_tool_call_delta(calls: dict[int, dict[str, Any]], delta: Mapping[str, Any]) -> None:
    index = _wire_int(delta["index"], "tool call index") if "index" in delta else len(calls)
    current = calls.setdefault(index, {"id": "", "function": {"name": "", "arguments": ""}})
    if delta.get("id"):
        current["id"] = delta["id"]
    function = delta.get("function") or {}
    if not isinstance(function, Mapping):
        raise ResponseError("tool call delta has no function object", provider=PROVIDER_NAME)
    if function.get("name"):
        current["function"]["name"] = function["name"]
    arguments = function.get("arguments")
    if isinstance(arguments, str):
        current["function"]["arguments"] += arguments
    elif isinstance(arguments, Mapping):
        current["function"]["arguments"] = json.dumps(arguments)


__all__ = [
    "BIGMODEL_API_BASE_URL",
    "BIGMODEL_GLM_4_FLASH",
    "AssistantMessage",
    "AssistantReply",
    "BigmodelAgent",
    "BigmodelClient",
    "BigmodelCompletionModel",
    "CallFunction",
    "Choice",
    "CompletionRequest",
    "CompletionResponse",
    "Document",
    "ImagePart",
    "RichMessage",
    "StreamChunk",
    "StreamedCompletion",
    "SystemMessage",
    "TextPart",
    "ToolCall",
    "ToolCallPart",
    "ToolDefinition",
    "ToolResultMessage",
    "ToolResultPart",
    "Usage",
    "UserMessage",
    "collect_stream",
    "join_url",
    "parse_wire_message",
    "to_wire_message",
]
