"""Model backend: the ModelClient interface and its LiteLLM implementation."""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from .capabilities import CapabilityRegistry
from .conversation import Role, Turn
from .report import (
    AuthenticationFailure,
    BackendError,
    BackendUnavailable,
    ConfigError,
    MalformedResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_AZURE_API_VERSION = "2024-06-01"


@dataclass(frozen=True)
class InvocationRequest:
    capability_name: str
    arguments: dict = field(default_factory=dict)
    call_id: str = ""


@dataclass(frozen=True)
class TextReply:
    content: str


@dataclass(frozen=True)
class ToolCalls:
    requests: tuple[InvocationRequest, ...]

    def __post_init__(self):
        if not self.requests:
            raise ValueError("ToolCalls needs at least one request")


PendingResponse = TextReply | ToolCalls


class ModelClient(Protocol):
    def converse(
        self, transcript: Sequence[Turn], registry: CapabilityRegistry
    ) -> PendingResponse: ...


def turns_to_messages(transcript: Sequence[Turn]) -> list[dict]:
    """Convert a transcript into chat-completions messages.

    Each run of consecutive TOOL_RESULT turns from the same batch is preceded
    by one synthesized assistant message that carries the matching
    tool_calls, as the API requires.
    """
    messages: list[dict] = []
    i = 0
    while i < len(transcript):
        turn = transcript[i]
        if turn.role is not Role.TOOL_RESULT:
            messages.append({"role": turn.role.value, "content": turn.content})
            i += 1
            continue

        batch = [turn]
        i += 1
        while (
            i < len(transcript)
            and transcript[i].role is Role.TOOL_RESULT
            and transcript[i].batch == turn.batch
        ):
            batch.append(transcript[i])
            i += 1
        ids = [t.call_id or f"call_{uuid.uuid4().hex[:12]}" for t in batch]
        messages.append(
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": call_id,
                        "type": "function",
                        "function": {
                            "name": t.produced_by or "unknown",
                            "arguments": json.dumps(dict(t.arguments or {})),
                        },
                    }
                    for call_id, t in zip(ids, batch)
                ],
            }
        )
        for call_id, t in zip(ids, batch):
            messages.append(
                {"role": "tool", "tool_call_id": call_id, "content": t.content}
            )
    return messages


def parse_response(response) -> PendingResponse:
    """Turn a LiteLLM ModelResponse into a PendingResponse."""
    try:
        message = response.choices[0].message
    except (AttributeError, IndexError, TypeError) as e:
        raise MalformedResponse(f"response has no choices: {e}") from e

    tool_calls = getattr(message, "tool_calls", None)
    if not tool_calls:
        return TextReply(getattr(message, "content", None) or "")

    requests = []
    for tc in tool_calls:
        name = tc.function.name
        raw_args = tc.function.arguments
        try:
            arguments = json.loads(raw_args) if raw_args else {}
        except (json.JSONDecodeError, TypeError) as e:
            raise MalformedResponse(
                f"invalid JSON in arguments for {name!r}: {e}"
            ) from e
        if not isinstance(arguments, dict):
            raise MalformedResponse(
                f"arguments for {name!r} must be a JSON object, got {type(arguments).__name__}"
            )
        requests.append(InvocationRequest(name, arguments, tc.id or ""))
    return ToolCalls(tuple(requests))


class LiteLLMClient:
    """ModelClient that talks to OpenAI or Azure OpenAI through LiteLLM."""

    def __init__(
        self,
        *,
        provider: str,
        model: str,
        api_key: str,
        base_url: str | None = None,
        api_version: str | None = None,
        temperature: float | None = None,
    ):
        if provider == "openai":
            self.model_str = f"openai/{model.removeprefix('openai/')}"
            self.kwargs = {"api_key": api_key}
            if base_url:
                self.kwargs["api_base"] = base_url
        elif provider == "azure":
            if not base_url:
                raise ConfigError("azure provider requires an endpoint (CLIENT_ENDPOINT)")
            self.model_str = f"azure/{model.removeprefix('azure/')}"
            self.kwargs = {
                "api_key": api_key,
                "api_base": base_url,
                "api_version": api_version or DEFAULT_AZURE_API_VERSION,
            }
        else:
            raise ConfigError(f"unknown provider {provider!r}")
        self.provider = provider
        self.model = model
        self.temperature = temperature

    def converse(
        self, transcript: Sequence[Turn], registry: CapabilityRegistry
    ) -> PendingResponse:
        import litellm

        litellm.suppress_debug_info = True

        completion_kwargs = dict(
            model=self.model_str,
            messages=turns_to_messages(transcript),
            **self.kwargs,
        )
        tools = registry.to_tools()
        if tools:
            completion_kwargs["tools"] = tools
            completion_kwargs["tool_choice"] = "auto"
        if self.temperature is not None:
            completion_kwargs["temperature"] = self.temperature

        logger.debug(
            "calling %s with %d messages, %d tools",
            self.model_str,
            len(completion_kwargs["messages"]),
            len(tools),
        )
        try:
            response = litellm.completion(**completion_kwargs)
        except litellm.AuthenticationError as e:
            raise AuthenticationFailure(f"authentication failed: {e}") from e
        except (
            litellm.APIConnectionError,
            litellm.ServiceUnavailableError,
            litellm.RateLimitError,
            litellm.Timeout,
        ) as e:
            raise BackendUnavailable(f"backend unavailable: {e}") from e
        except Exception as e:
            raise BackendError(f"LLM call failed: {e}") from e

        return parse_response(response)
