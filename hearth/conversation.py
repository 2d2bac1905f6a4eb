"""Conversation transcript: turns and the state that owns them."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from .capabilities import CapabilityRegistry


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool"


@dataclass(frozen=True)
class Turn:
    """One transcript entry.

    ``produced_by`` names the capability behind a TOOL_RESULT turn.
    ``call_id`` and ``arguments`` let the model client rebuild the
    assistant tool-call message that preceded the result; ``batch`` groups
    the results of one model response. ``arguments`` is stored read-only.
    """

    role: Role
    content: str
    produced_by: str | None = None
    call_id: str | None = None
    arguments: Mapping[str, Any] | None = None
    batch: int | None = None

    def __post_init__(self):
        if self.arguments is not None:
            object.__setattr__(
                self, "arguments", MappingProxyType(dict(self.arguments))
            )


class ConversationState:
    """Ordered, append-only transcript plus the active capability registry.

    The first turn is always the single SYSTEM turn; only ``reset`` puts it
    there.
    """

    def __init__(self, system_preamble: str, registry: CapabilityRegistry):
        self.registry = registry
        self._turns: list[Turn] = []
        self.reset(system_preamble)

    def reset(self, system_preamble: str) -> None:
        self._turns = [Turn(Role.SYSTEM, system_preamble)]

    def append(self, turn: Turn) -> None:
        if turn.role is Role.SYSTEM:
            raise ValueError("system turns are only created by reset()")
        self._turns.append(turn)

    def snapshot(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)
