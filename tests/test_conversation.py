"""Tests for ConversationState invariants."""

import dataclasses

import pytest

from hearth.capabilities import CapabilityRegistry
from hearth.conversation import ConversationState, Role, Turn


def _state(preamble="sys"):
    return ConversationState(preamble, CapabilityRegistry())


def test_starts_with_single_system_turn():
    state = _state("hello")
    turns = state.snapshot()
    assert turns == (Turn(Role.SYSTEM, "hello"),)
    assert len(state) == 1


def test_append_preserves_order():
    state = _state()
    state.append(Turn(Role.USER, "q"))
    state.append(Turn(Role.TOOL_RESULT, "r", produced_by="Cap"))
    state.append(Turn(Role.ASSISTANT, "a"))
    assert [t.content for t in state.snapshot()] == ["sys", "q", "r", "a"]


def test_append_rejects_system_turn():
    state = _state()
    with pytest.raises(ValueError):
        state.append(Turn(Role.SYSTEM, "second system"))
    assert len(state) == 1


def test_reset_replaces_everything():
    state = _state("old")
    for i in range(10):
        state.append(Turn(Role.USER, f"q{i}"))
    state.reset("new")
    assert state.snapshot() == (Turn(Role.SYSTEM, "new"),)


def test_snapshot_is_detached():
    state = _state()
    state.append(Turn(Role.USER, "q"))
    snap = state.snapshot()
    assert isinstance(snap, tuple)

    state.append(Turn(Role.ASSISTANT, "a"))
    assert len(snap) == 2
    assert len(state.snapshot()) == 3


def test_turns_are_frozen():
    turn = Turn(Role.USER, "q")
    with pytest.raises(dataclasses.FrozenInstanceError):
        turn.content = "changed"


def test_state_keeps_registry_reference():
    registry = CapabilityRegistry()
    state = ConversationState("sys", registry)
    assert state.registry is registry


def test_role_values_match_chat_api():
    assert [r.value for r in Role] == ["system", "user", "assistant", "tool"]


def test_snapshot_arguments_are_read_only():
    state = _state()
    state.append(
        Turn(Role.TOOL_RESULT, "on", "TurnOnLight", "c1", {"location": "kitchen"})
    )
    turn = state.snapshot()[1]
    with pytest.raises(TypeError):
        turn.arguments["location"] = "CORRUPTED"
    assert state.snapshot()[1].arguments == {"location": "kitchen"}


def test_turn_detaches_from_caller_arguments():
    args = {"location": "kitchen"}
    turn = Turn(Role.TOOL_RESULT, "on", "TurnOnLight", "c1", args)
    args["location"] = "hall"
    assert turn.arguments == {"location": "kitchen"}
