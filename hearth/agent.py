import argparse
import json
import logging
import sys
import time
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path

from . import fmt
from .capabilities import CapabilityRegistry
from .config import (
    _UNSET,
    DEFAULT_SYSTEM_PROMPT,
    PROVIDERS,
    apply_config_to_args,
    generate_config,
    load_config,
    resolve_credentials,
)
from .conversation import ConversationState, Role, Turn
from .model import (
    InvocationRequest,
    LiteLLMClient,
    ModelClient,
    PendingResponse,
    TextReply,
    ToolCalls,
    turns_to_messages,
)
from .report import (
    AgentError,
    BackendError,
    CapabilityError,
    CapabilityNotFound,
    ReportCollector,
    ToolCallOverrun,
)

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I processed your request."
TRUNCATION_NOTE = "(exchange truncated: tool-call round limit reached)"
MAX_ARG_LOG = 1000

_encoder = None


def estimate_tokens(transcript, tools: list | None = None) -> int:
    """Count tokens across a transcript using tiktoken."""
    global _encoder
    if _encoder is None:
        import tiktoken

        _encoder = tiktoken.get_encoding("cl100k_base")

    messages = turns_to_messages(transcript)
    total = 0
    for m in messages:
        content = m.get("content") or ""
        for tc in m.get("tool_calls") or []:
            fn = tc["function"]
            content += fn["name"] + fn["arguments"]
        total += len(_encoder.encode(content))
    if tools:
        total += len(_encoder.encode(json.dumps(tools)))
    # Per-message overhead (role, separators), ~4 tokens each
    total += 4 * len(messages)
    return total


@dataclass
class Reply:
    """Outcome of one exchange.

    ``text`` is what gets shown to the user (None on error). ``error`` is set
    when the backend failed; ``truncated`` when the tool-call round bound
    cut the exchange short.
    """

    text: str | None
    truncated: bool = False
    error: str | None = None


class TurnProcessor:
    """Drives one request/response/tool-execution cycle per user message."""

    def __init__(
        self,
        client: ModelClient,
        *,
        max_tool_rounds: int = 1,
        verbose: bool = False,
        report: ReportCollector | None = None,
    ):
        if max_tool_rounds < 1:
            raise ValueError("max_tool_rounds must be at least 1")
        self.client = client
        self.max_tool_rounds = max_tool_rounds
        self.verbose = verbose
        self.report = report
        self.exchanges = 0
        self._call_seq = 0
        self._batch_seq = 0

    def handle_user_message(
        self, user_text: str, state: ConversationState, registry: CapabilityRegistry
    ) -> Reply:
        self.exchanges += 1
        state.append(Turn(Role.USER, user_text))

        try:
            text = self._run_rounds(state, registry)
        except ToolCallOverrun as e:
            logger.debug("exchange %d truncated: %s", self.exchanges, e)
            self._record_exchange("truncated")
            text = f"{e.partial_text}\n\n{TRUNCATION_NOTE}" if e.partial_text else TRUNCATION_NOTE
            return Reply(text, truncated=True)
        except BackendError as e:
            logger.debug("exchange %d failed: %s", self.exchanges, e)
            self._record_exchange("error")
            return Reply(None, error=str(e))
        except KeyboardInterrupt:
            # Results of requests already executed stay in the transcript.
            logger.debug("exchange %d interrupted", self.exchanges)
            self._record_exchange("interrupted")
            raise

        self._record_exchange("ok")
        return Reply(text)

    def _record_exchange(self, outcome: str) -> None:
        if self.report:
            self.report.record_exchange(self.exchanges, outcome)

    def _run_rounds(self, state: ConversationState, registry: CapabilityRegistry) -> str:
        """Initial call, then up to max_tool_rounds follow-ups after tool batches.

        Raises ToolCallOverrun when the model still asks for tools after the
        last allowed follow-up; that batch is not executed.
        """
        results: list[str] = []
        response = self._converse(state, registry, follow_up=False)
        rounds = 0

        while isinstance(response, ToolCalls):
            if rounds >= self.max_tool_rounds:
                raise ToolCallOverrun(
                    f"model requested more tool calls after {rounds} follow-up round(s)",
                    "\n".join(results),
                )
            self._batch_seq += 1
            for request in response.requests:
                turn = self._execute(request, registry, self._batch_seq)
                state.append(turn)
                results.append(turn.content)
            rounds += 1
            response = self._converse(state, registry, follow_up=True)

        content = response.content
        if not content or not content.strip():
            return FALLBACK_REPLY
        state.append(Turn(Role.ASSISTANT, content))
        return content

    def _converse(
        self, state: ConversationState, registry: CapabilityRegistry, *, follow_up: bool
    ) -> PendingResponse:
        t0 = time.monotonic()
        try:
            if self.verbose:
                with fmt.llm_spinner():
                    response = self.client.converse(state.snapshot(), registry)
            else:
                response = self.client.converse(state.snapshot(), registry)
        except BackendError:
            self._record_llm(time.monotonic() - t0, "error", follow_up)
            raise
        except Exception as e:
            self._record_llm(time.monotonic() - t0, "error", follow_up)
            raise BackendError(f"model client failed: {e}") from e

        elapsed = time.monotonic() - t0
        kind = "text" if isinstance(response, TextReply) else "tool_calls"
        self._record_llm(elapsed, kind, follow_up)
        if self.verbose:
            fmt.llm_timing(elapsed, kind)
        return response

    def _record_llm(self, elapsed: float, outcome: str, follow_up: bool) -> None:
        if self.report:
            self.report.record_llm_call(
                self.exchanges, elapsed, outcome, is_follow_up=follow_up
            )

    def _execute(
        self, request: InvocationRequest, registry: CapabilityRegistry, batch: int
    ) -> Turn:
        """Run one capability and return its TOOL_RESULT turn.

        Failures become "error: ..." content rather than exceptions so the
        transcript keeps one result per request.
        """
        self._call_seq += 1
        name = request.capability_name
        call_id = request.call_id or f"call_{self._call_seq}"
        arguments = dict(request.arguments)

        if self.verbose:
            pretty = json.dumps(arguments, indent=2)
            if len(pretty) > MAX_ARG_LOG:
                pretty = pretty[:MAX_ARG_LOG] + "\n... (truncated)"
            fmt.tool_call(name, pretty)

        t0 = time.monotonic()
        try:
            capability = registry.lookup(name)
            if capability is None:
                raise CapabilityNotFound(f"capability not found: {name}")
            result = capability.invoke(dict(arguments))
            succeeded = True
        except CapabilityError as e:
            result = f"error: {e}"
            succeeded = False
        elapsed = time.monotonic() - t0

        if self.verbose:
            if succeeded:
                fmt.tool_result(name, elapsed, result[:500])
            else:
                fmt.tool_error(name, result)
        if self.report:
            self.report.record_tool_call(
                self.exchanges,
                name,
                arguments,
                succeeded,
                elapsed,
                error=None if succeeded else result,
            )

        return Turn(
            Role.TOOL_RESULT,
            result,
            produced_by=name,
            call_id=call_id,
            arguments=arguments,
            batch=batch,
        )


def build_parser():
    """Build and return the argument parser.

    Options that may also come from config files default to _UNSET so that
    apply_config_to_args() can tell what the user actually passed.
    """
    parser = argparse.ArgumentParser(
        prog="hearth",
        description="An interactive AI console that can call local capabilities (smart-home lights).",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print the version and exit.",
    )
    parser.add_argument(
        "--provider",
        choices=list(PROVIDERS),
        default=_UNSET,
        help="LLM provider (default: azure if AZURE_CLIENT_KEY is set, else openai).",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=_UNSET,
        help="Model identifier or Azure deployment name (default: $MODEL_ID or gpt-4o).",
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default=_UNSET,
        help="API key for the provider (overrides env var).",
    )
    parser.add_argument(
        "--base-url",
        default=_UNSET,
        help="Endpoint URL (Azure endpoint, or an OpenAI-compatible server).",
    )
    parser.add_argument(
        "--api-version",
        default=_UNSET,
        help="Azure OpenAI API version.",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=_UNSET,
        help="Sampling temperature (default: provider default).",
    )
    parser.add_argument(
        "--system-prompt",
        type=str,
        default=_UNSET,
        help="System prompt used at start and after 'clear'.",
    )
    parser.add_argument(
        "--max-tool-rounds",
        type=int,
        default=_UNSET,
        help="Follow-up model calls allowed after tool calls, per message (default: 1).",
    )
    parser.add_argument(
        "--report",
        type=str,
        default=None,
        metavar="FILE",
        help="Write a JSON session statistics report to FILE on exit.",
    )

    color_group = parser.add_mutually_exclusive_group()
    color_group.add_argument(
        "--color",
        action="store_true",
        default=_UNSET,
        help="Force ANSI color even when stderr is not a TTY.",
    )
    color_group.add_argument(
        "--no-color",
        action="store_true",
        default=_UNSET,
        help="Disable ANSI color even when stderr is a TTY.",
    )

    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=_UNSET,
        help="Suppress diagnostics; only print replies.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=_UNSET,
        help="Enable debug logging on stderr.",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Print a commented config template and exit.",
    )
    parser.add_argument(
        "--project",
        action="store_true",
        help="With --init-config, print the project (./hearth.toml) variant.",
    )

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.version:
        try:
            version = metadata.version("hearth")
        except metadata.PackageNotFoundError:
            version = "unknown"
        print(version)
        sys.exit(0)

    if args.init_config:
        print(generate_config(project=args.project))
        sys.exit(0)

    try:
        apply_config_to_args(args, load_config(Path.cwd()))
    except AgentError as e:
        fmt.error(str(e))
        sys.exit(1)

    if args.max_tool_rounds < 1:
        parser.error("--max-tool-rounds must be at least 1")

    args.verbose = not args.quiet
    fmt.init(color=args.color, no_color=args.no_color, debug=args.debug)

    try:
        _run_main(args)
    except AgentError as e:
        fmt.error(str(e))
        sys.exit(1)


def _run_main(args):
    from .lights import build_light_registry
    from .repl import SessionLoop

    credentials = resolve_credentials(
        provider=args.provider,
        model=args.model,
        api_key=args.api_key,
        base_url=args.base_url,
        api_version=args.api_version,
    )
    if args.verbose:
        label = "Azure OpenAI Service" if credentials.provider == "azure" else "OpenAI API"
        fmt.info(f"Using {label}")

    client = LiteLLMClient(
        provider=credentials.provider,
        model=credentials.model,
        api_key=credentials.api_key,
        base_url=credentials.base_url,
        api_version=credentials.api_version,
        temperature=args.temperature,
    )
    registry = build_light_registry()
    report = ReportCollector() if args.report else None
    processor = TurnProcessor(
        client,
        max_tool_rounds=args.max_tool_rounds,
        verbose=args.verbose,
        report=report,
    )
    loop = SessionLoop(
        processor,
        registry,
        args.system_prompt or DEFAULT_SYSTEM_PROMPT,
        verbose=args.verbose,
    )

    if args.verbose:
        fmt.banner(credentials.model, credentials.provider, registry.names())
    try:
        loop.run()
    finally:
        if report:
            try:
                report.write(
                    args.report,
                    model=credentials.model,
                    provider=credentials.provider,
                    settings={
                        "max_tool_rounds": args.max_tool_rounds,
                        "temperature": args.temperature,
                        "capabilities": registry.names(),
                    },
                )
            except OSError as e:
                fmt.error(f"Failed to write report to {args.report}: {e}")
            else:
                if args.verbose:
                    fmt.info(f"Report written to {args.report}")


if __name__ == "__main__":
    main()
