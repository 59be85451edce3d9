"""Textual widgets for the duochat front-end."""

from .input_box import InputBox
from .turn_view import ReplyPane, TurnView

__all__ = ["InputBox", "ReplyPane", "TurnView"]
