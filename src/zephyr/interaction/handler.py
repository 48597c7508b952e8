"""Operator interaction: prompts, confirmations and console notifications."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from rich.console import Console
from rich.prompt import Confirm, Prompt

logger = logging.getLogger(__name__)


class InputType(str, Enum):
    """Type of operator input expected."""
    TEXT = "text"           # free text (commit messages)
    CONFIRM = "confirm"     # yes/no
    CHOICE = "choice"       # pick one of `options`


class QuestionCategory(str, Enum):
    """Why the orchestrator is asking."""
    COMMIT = "commit"                   # message for pending local changes
    STALE_LOCK = "stale_lock"           # remove a lock left by this machine
    RESUME = "resume"                   # resume an interrupted plan
    CUSTOM = "custom"


class Decision(str, Enum):
    """Outcome of a decision point in the deployment pipeline."""
    PROCEED = "proceed"
    ABORT = "abort"
    RESUME = "resume"


@dataclass
class InteractionRequest:
    """A question put to the operator."""

    question: str
    input_type: InputType = InputType.CONFIRM
    category: QuestionCategory = QuestionCategory.CUSTOM
    options: List[str] = field(default_factory=list)
    context: Optional[str] = None
    default: Optional[str] = None
    validate: Optional[Callable[[str], Optional[str]]] = None  # returns an error message or None

    def format_prompt(self) -> str:
        lines = [self.question]
        if self.context:
            lines.append(f"  {self.context}")
        if self.input_type == InputType.CHOICE and self.options:
            for i, option in enumerate(self.options, 1):
                marker = " (default)" if self.default == option else ""
                lines.append(f"  [{i}] {option}{marker}")
        return "\n".join(lines)

    def error_for(self, value: str) -> Optional[str]:
        if self.validate is None:
            return None
        return self.validate(value)


@dataclass
class InteractionResponse:
    """Operator's answer to an interaction request."""

    value: str
    cancelled: bool = False

    @property
    def confirmed(self) -> bool:
        return not self.cancelled and self.value.strip().lower() in ("y", "yes", "true")

    @classmethod
    def cancelled_response(cls) -> "InteractionResponse":
        return cls(value="", cancelled=True)


class UserInteractionHandler(ABC):
    """Abstract base class for prompting the operator.

    The deployment core only ever talks to this interface, so it can be
    driven from a terminal, a callback or canned answers in tests.
    """

    @abstractmethod
    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """
        Present a request to the operator and return the answer.

        Args:
            request: The interaction request to present

        Returns:
            The operator's response
        """

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        """
        Show a one-way message.

        Args:
            message: The message to display
            level: processing, success, info, warning or error
        """

    def confirm(
        self,
        question: str,
        *,
        default: bool,
        category: QuestionCategory = QuestionCategory.CUSTOM,
        context: Optional[str] = None,
    ) -> bool:
        response = self.ask(
            InteractionRequest(
                question=question,
                input_type=InputType.CONFIRM,
                category=category,
                context=context,
                default="y" if default else "n",
            )
        )
        if response.cancelled:
            return False
        return response.confirmed

    def decide(
        self,
        question: str,
        *,
        default: bool,
        category: QuestionCategory,
        on_yes: Decision = Decision.PROCEED,
        context: Optional[str] = None,
    ) -> Decision:
        """Ask a yes/no question and map it to a Decision."""
        if self.confirm(question, default=default, category=category, context=context):
            return on_yes
        return Decision.ABORT


class CLIInteractionHandler(UserInteractionHandler):
    """Terminal handler built on rich."""

    STYLES = {
        "processing": "yellow",
        "success": "green",
        "info": "cyan",
        "warning": "yellow",
        "error": "red",
    }

    def __init__(self, console: Optional[Console] = None, error_console: Optional[Console] = None) -> None:
        self.console = console or Console(highlight=False)
        self.error_console = error_console or Console(stderr=True, highlight=False)

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        try:
            if request.input_type == InputType.CONFIRM:
                return self._handle_confirm(request)
            if request.input_type == InputType.CHOICE:
                return self._handle_choice(request)
            return self._handle_text(request)
        except (KeyboardInterrupt, EOFError):
            self.console.print("\n(cancelled)")
            return InteractionResponse.cancelled_response()

    def _handle_confirm(self, request: InteractionRequest) -> InteractionResponse:
        default = (request.default or "n").lower().startswith("y")
        answer = Confirm.ask(request.format_prompt(), default=default, console=self.console)
        return InteractionResponse(value="yes" if answer else "no")

    def _handle_choice(self, request: InteractionRequest) -> InteractionResponse:
        value = Prompt.ask(
            request.format_prompt(),
            choices=request.options,
            default=request.default,
            console=self.console,
        )
        return InteractionResponse(value=value)

    def _handle_text(self, request: InteractionRequest) -> InteractionResponse:
        while True:
            value = Prompt.ask(request.format_prompt(), default=request.default, console=self.console)
            value = (value or "").strip()
            error = request.error_for(value)
            if error is None:
                return InteractionResponse(value=value)
            self.console.print(f"[red]{error}[/red]")

    def notify(self, message: str, level: str = "info") -> None:
        style = self.STYLES.get(level, "")
        console = self.error_console if level in ("warning", "error") else self.console
        console.print(message, style=style, markup=False)


class CallbackInteractionHandler(UserInteractionHandler):
    """
    Interaction handler that delegates to callbacks.
    Used by tests and by embedding applications.
    """

    def __init__(
        self,
        ask_callback: Callable[[InteractionRequest], InteractionResponse],
        notify_callback: Optional[Callable[[str, str], None]] = None,
    ) -> None:
        self.ask_callback = ask_callback
        self.notify_callback = notify_callback or (lambda msg, lvl: logger.info("[%s] %s", lvl, msg))

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        return self.ask_callback(request)

    def notify(self, message: str, level: str = "info") -> None:
        self.notify_callback(message, level)


class AutoResponseHandler(UserInteractionHandler):
    """
    Non-interactive handler.
    Answers from `responses` (keyed by category), then request defaults.
    Notifications are rendered on `console` when one is given, otherwise
    they only go to the logger.
    """

    def __init__(
        self,
        responses: Optional[Dict[QuestionCategory, str]] = None,
        use_defaults: bool = True,
        console: Optional[Console] = None,
        error_console: Optional[Console] = None,
    ) -> None:
        self.responses = responses or {}
        self.use_defaults = use_defaults
        self.console = console
        self.error_console = error_console or console
        self.requests: List[InteractionRequest] = []
        self.messages: List[Tuple[str, str]] = []

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        self.requests.append(request)
        logger.info("Auto-responding to: %s", request.question[:80])

        if request.category in self.responses:
            return InteractionResponse(value=self.responses[request.category])
        if self.use_defaults and request.default is not None:
            return InteractionResponse(value=request.default)
        return InteractionResponse.cancelled_response()

    def notify(self, message: str, level: str = "info") -> None:
        self.messages.append((level, message))
        if self.console is not None:
            console = self.error_console if level in ("warning", "error") else self.console
            console.print(message, style=CLIInteractionHandler.STYLES.get(level, ""), markup=False)
            return
        if level == "error":
            logger.error(message)
        elif level == "warning":
            logger.warning(message)
        else:
            logger.info(message)
