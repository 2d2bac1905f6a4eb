"""Error taxonomy and JSON session statistics."""

import json
from datetime import datetime, timezone


class AgentError(Exception):
    """Raised by the session or setup helpers for reportable runtime failures."""


class ConfigError(AgentError):
    """Raised for invalid configuration (missing credentials, bad config file, etc.)."""


class BackendError(AgentError):
    """The model backend failed during an exchange."""


class BackendUnavailable(BackendError):
    """The backend could not be reached or refused service."""


class AuthenticationFailure(BackendError):
    """The backend rejected the configured credentials."""


class MalformedResponse(BackendError):
    """The backend answered with something that is not a usable reply."""


class CapabilityError(AgentError):
    """Base class for failures while running a capability."""


class CapabilityNotFound(CapabilityError):
    """The model asked for a capability that is not registered."""


class InvalidArgument(CapabilityError):
    """A capability was called with missing or unexpected arguments."""


class CapabilityExecutionFailure(CapabilityError):
    """A capability raised while executing."""


class ToolCallOverrun(AgentError):
    """The model kept requesting tools past the follow-up round bound.

    Carries the partial text gathered before the exchange was cut short.
    """

    def __init__(self, message: str, partial_text: str = ""):
        super().__init__(message)
        self.partial_text = partial_text


class ReportCollector:
    """Accumulates events during a session for JSON report output."""

    def __init__(self):
        self.events: list[dict] = []
        self.tool_stats: dict[str, dict[str, int]] = {}
        self.exchanges = 0
        self.backend_errors = 0
        self.overruns = 0
        self.interrupted = 0
        self.llm_calls = 0
        self.total_llm_time = 0.0
        self.total_tool_time = 0.0

    def record_exchange(self, exchange: int, outcome: str):
        self.exchanges = max(self.exchanges, exchange)
        if outcome == "error":
            self.backend_errors += 1
        elif outcome == "truncated":
            self.overruns += 1
        elif outcome == "interrupted":
            self.interrupted += 1
        self.events.append({"exchange": exchange, "type": "exchange", "outcome": outcome})

    def record_llm_call(
        self,
        exchange: int,
        duration: float,
        outcome: str,
        *,
        is_follow_up: bool = False,
    ):
        self.llm_calls += 1
        self.total_llm_time += duration
        self.events.append(
            {
                "exchange": exchange,
                "type": "llm_call",
                "duration_s": round(duration, 3),
                "outcome": outcome,
                "is_follow_up": is_follow_up,
            }
        )

    def record_tool_call(
        self,
        exchange: int,
        name: str,
        arguments: dict | None,
        succeeded: bool,
        duration: float,
        error: str | None = None,
    ):
        self.total_tool_time += duration
        stats = self.tool_stats.setdefault(name, {"succeeded": 0, "failed": 0})
        if succeeded:
            stats["succeeded"] += 1
        else:
            stats["failed"] += 1
        event: dict = {
            "exchange": exchange,
            "type": "tool_call",
            "name": name,
            "arguments": arguments,
            "succeeded": succeeded,
            "duration_s": round(duration, 3),
        }
        if error is not None:
            event["error"] = error
        self.events.append(event)

    def build_report(self, *, model: str, provider: str, settings: dict) -> dict:
        tool_calls_succeeded = sum(s["succeeded"] for s in self.tool_stats.values())
        tool_calls_failed = sum(s["failed"] for s in self.tool_stats.values())

        return {
            "version": 1,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "model": model,
            "provider": provider,
            "settings": settings,
            "stats": {
                "exchanges": self.exchanges,
                "backend_errors": self.backend_errors,
                "overruns": self.overruns,
                "interrupted": self.interrupted,
                "tool_calls_total": tool_calls_succeeded + tool_calls_failed,
                "tool_calls_succeeded": tool_calls_succeeded,
                "tool_calls_failed": tool_calls_failed,
                "tool_calls_by_name": dict(self.tool_stats),
                "llm_calls": self.llm_calls,
                "total_llm_time_s": round(self.total_llm_time, 3),
                "total_tool_time_s": round(self.total_tool_time, 3),
            },
            "timeline": self.events,
        }

    def write(self, path: str, *, model: str, provider: str, settings: dict):
        """Build the report and write it to disk in one step."""
        report = self.build_report(model=model, provider=provider, settings=settings)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)
            f.write("\n")
        return report
