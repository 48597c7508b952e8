"""Operator interaction module."""

from .handler import (
    UserInteractionHandler,
    InteractionRequest,
    InteractionResponse,
    CLIInteractionHandler,
    CallbackInteractionHandler,
    AutoResponseHandler,
    Decision,
    InputType,
    QuestionCategory,
)

__all__ = [
    "UserInteractionHandler",
    "InteractionRequest",
    "InteractionResponse",
    "CLIInteractionHandler",
    "CallbackInteractionHandler",
    "AutoResponseHandler",
    "Decision",
    "InputType",
    "QuestionCategory",
]
