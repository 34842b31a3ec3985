"""Wire models for UNO game actions."""

from .actions import (
    ActionKind,
    ActionEnvelope,
    GameAction,
    ENVELOPES,
    build_action,
    new_action_id,
    parse_action,
)

__all__ = [
    "ActionKind",
    "ActionEnvelope",
    "GameAction",
    "ENVELOPES",
    "build_action",
    "new_action_id",
    "parse_action",
]
