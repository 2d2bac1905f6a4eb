"""Interactive session: command dispatch and the read-eval-print loop."""

import logging
from enum import Enum

from . import fmt
from .agent import TurnProcessor, estimate_tokens
from .capabilities import CapabilityRegistry
from .conversation import ConversationState

logger = logging.getLogger(__name__)

EXIT_WORDS = frozenset({"exit", "quit", "bye"})

HELP_TEXT = (
    "\nAvailable Commands:\n"
    "  exit, quit, bye - Exit the application\n"
    "  clear          - Clear chat history\n"
    "  help           - Show this help message\n"
    "\nTips:\n"
    "  - Ask questions, request explanations, or have a conversation\n"
    "  - The AI remembers the conversation context\n"
    "  - Use 'clear' to start fresh if needed\n"
    "\nSmart Home Features:\n"
    "  - Ask me to turn lights on/off in any room\n"
    "  - Example: 'Turn on the lights in the living room'\n"
    "  - Example: 'Turn off the bedroom lights'\n"
    "  - I'll automatically call the appropriate functions!\n"
)


class Command(Enum):
    EMPTY = "empty"
    EXIT = "exit"
    CLEAR = "clear"
    HELP = "help"
    MESSAGE = "message"


class LoopState(Enum):
    RUNNING = "running"
    TERMINATED = "terminated"


def classify(line: str) -> Command:
    """Classify one input line. Commands match the whole trimmed line, any case."""
    word = line.strip().lower()
    if not word:
        return Command.EMPTY
    if word in EXIT_WORDS:
        return Command.EXIT
    if word == "clear":
        return Command.CLEAR
    if word == "help":
        return Command.HELP
    return Command.MESSAGE


class CommandDispatcher:
    """Routes each line to a meta-command or to the TurnProcessor."""

    def __init__(
        self,
        processor: TurnProcessor,
        state: ConversationState,
        registry: CapabilityRegistry,
        default_preamble: str,
        *,
        verbose: bool = False,
    ):
        self.processor = processor
        self.state = state
        self.registry = registry
        self.default_preamble = default_preamble
        self.verbose = verbose

    def dispatch(self, line: str) -> Command:
        command = classify(line)
        if command is Command.CLEAR:
            self.state.reset(self.default_preamble)
            fmt.info("Chat history cleared!")
        elif command is Command.HELP:
            fmt.help_text(HELP_TEXT)
        elif command is Command.MESSAGE:
            self._converse(line.strip())
        return command

    def _converse(self, text: str) -> None:
        try:
            reply = self.processor.handle_user_message(text, self.state, self.registry)
        except KeyboardInterrupt:
            fmt.warning("interrupted, message aborted.")
            return

        if reply.error is not None:
            fmt.error(f"Error processing message: {reply.error}")
            return
        print(f"AI: {reply.text}", flush=True)
        if reply.truncated:
            fmt.warning("tool-call round limit reached; the reply may be incomplete.")
        if self.verbose:
            fmt.context_stats(
                "Context",
                len(self.state),
                estimate_tokens(self.state.snapshot(), self.registry.to_tools()),
            )


class SessionLoop:
    """Top-level loop owning one ConversationState for the process lifetime."""

    def __init__(
        self,
        processor: TurnProcessor,
        registry: CapabilityRegistry,
        default_preamble: str,
        *,
        verbose: bool = False,
    ):
        self.registry = registry
        self.state = ConversationState(default_preamble, registry)
        self.dispatcher = CommandDispatcher(
            processor, self.state, registry, default_preamble, verbose=verbose
        )
        self.verbose = verbose
        self.status = LoopState.RUNNING

    def step(self, line: str) -> LoopState:
        """Handle one input line and return the resulting loop state."""
        if self.status is LoopState.TERMINATED:
            return self.status
        if self.dispatcher.dispatch(line) is Command.EXIT:
            self.status = LoopState.TERMINATED
        return self.status

    def run(self) -> None:
        """Read lines until exit, end-of-input or Ctrl-C at the prompt."""
        from prompt_toolkit import PromptSession
        from prompt_toolkit.history import InMemoryHistory

        session = PromptSession(history=InMemoryHistory())

        if self.verbose:
            fmt.repl_hints()

        while self.status is LoopState.RUNNING:
            try:
                line = session.prompt("You: ")
            except (EOFError, KeyboardInterrupt):
                logger.debug("input closed, terminating session")
                self.status = LoopState.TERMINATED
                break
            self.step(line)

        fmt.goodbye()
