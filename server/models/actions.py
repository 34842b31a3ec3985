"""
Game action messages exchanged between participants.

Every action travels in the same envelope:

    {
        "room_id": "...",
        "action": "PLAY_CARD",
        "data": {..., "player_id": "...", "state_version": 12},
        "player_name": "Ann",
        "action_id": "1718000000000-k3j9x2a",
    }

``action`` is the tag of a closed union: each kind has its own payload
model, and GameAction parses any envelope into the matching variant.
Payloads carry post-state (resulting hands, piles, turn) rather than
intent, so receivers overwrite fields instead of replaying rules.

Cards are kept as loose ``{color, value}`` dicts here; cards.py validates
them before they reach a Match.
"""

import secrets
import time
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class ActionKind(str, Enum):
    """Every kind of game action."""

    PLAY_CARD = "PLAY_CARD"
    DRAW_CARDS = "DRAW_CARDS"
    PASS_TURN = "PASS_TURN"
    UNO_CALL = "UNO_CALL"
    WILD_COLOR_SELECT = "WILD_COLOR_SELECT"
    SPECIAL_CARD = "SPECIAL_CARD"
    STACKING = "STACKING"
    TURN_CHANGE = "TURN_CHANGE"
    NEW_ROUND_STARTED = "NEW_ROUND_STARTED"
    ROUND_WIN = "ROUND_WIN"
    GAME_STATE_SYNC = "GAME_STATE_SYNC"
    REQUEST_SYNC = "REQUEST_SYNC"


WireCard = Any


def new_action_id() -> str:
    """Millisecond timestamp plus a random suffix."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


# =============================================================================
# Payloads
# =============================================================================

class ActionData(BaseModel):
    """Fields common to every payload."""

    player_id: str
    state_version: Optional[int] = None


class SpecialEffect(BaseModel):
    skip_turn: bool = False
    draw_card_count: int = 0
    target_player: Optional[str] = None


class StackFields(BaseModel):
    stacked_cards: list[WireCard] = Field(default_factory=list)
    can_stack: bool = False
    pending_draw_count: int = 0


class PlayCardData(ActionData, StackFields):
    card: WireCard
    card_index: Optional[int] = None
    player_hand: list[WireCard]
    discard_pile: list[WireCard]
    current_player_index: Optional[int] = None
    direction: Optional[int] = None
    awaiting_color: bool = False
    jump_in: bool = False
    special_effect: SpecialEffect = Field(default_factory=SpecialEffect)


class DrawCardsData(ActionData):
    player: str
    num_cards: int
    player_hand: list[WireCard]
    deck: list[WireCard]
    discard_pile: Optional[list[WireCard]] = None
    pending_draw_count: int = 0
    penalty: bool = False
    chain_broken: bool = False


class PassTurnData(ActionData):
    player: str
    current_player_index: int


class UnoCallData(ActionData):
    player: str


class WildColorSelectData(ActionData, StackFields):
    card: WireCard
    discard_pile: list[WireCard]
    current_player_index: int
    direction: Optional[int] = None
    special_effect: SpecialEffect = Field(default_factory=SpecialEffect)


class SpecialCardData(ActionData):
    card: WireCard
    effect: Literal["skip", "reverse", "draw", "wild"]
    target_player: Optional[str] = None
    draw_count: int = 0


class StackingData(ActionData, StackFields):
    current_player_index: int


class TurnChangeData(ActionData):
    current_player_index: int
    direction: Optional[int] = None


class SnapshotData(ActionData):
    """Full match state; see Match.snapshot()."""

    players: Optional[list[str]] = None
    deck: list[WireCard] = Field(default_factory=list)
    player_hands: dict[str, list[WireCard]] = Field(default_factory=dict)
    discard_pile: list[WireCard] = Field(default_factory=list)
    current_player_index: int = 0
    direction: int = 1
    player_said_uno: dict[str, bool] = Field(default_factory=dict)
    stacked_cards: list[WireCard] = Field(default_factory=list)
    can_stack: bool = False
    pending_draw_count: int = 0
    scores: Optional[dict[str, int]] = None
    phase: Optional[str] = None
    pending_wild: Optional[WireCard] = None
    pending_wild_player: Optional[str] = None
    round_winner: Optional[str] = None
    game_winner: Optional[str] = None
    settings: Optional[dict[str, Any]] = None

    def to_snapshot(self) -> dict:
        """Back to the dict shape Match.restore() takes."""
        return self.model_dump(exclude={"player_id"}, exclude_none=True)


class RoundWinData(ActionData):
    winner: str
    new_scores: dict[str, int]
    game_winner: Optional[str] = None
    points: int = 0


class RequestSyncData(ActionData):
    requester: Optional[str] = None


# =============================================================================
# Envelopes
# =============================================================================

class ActionEnvelope(BaseModel):
    room_id: str
    player_name: str = ""
    action_id: str = Field(default_factory=new_action_id)

    @property
    def origin(self) -> str:
        return self.data.player_id

    def to_message(self) -> dict:
        return self.model_dump(mode="json")


class PlayCardAction(ActionEnvelope):
    action: Literal["PLAY_CARD"] = "PLAY_CARD"
    data: PlayCardData


class DrawCardsAction(ActionEnvelope):
    action: Literal["DRAW_CARDS"] = "DRAW_CARDS"
    data: DrawCardsData


class PassTurnAction(ActionEnvelope):
    action: Literal["PASS_TURN"] = "PASS_TURN"
    data: PassTurnData


class UnoCallAction(ActionEnvelope):
    action: Literal["UNO_CALL"] = "UNO_CALL"
    data: UnoCallData


class WildColorSelectAction(ActionEnvelope):
    action: Literal["WILD_COLOR_SELECT"] = "WILD_COLOR_SELECT"
    data: WildColorSelectData


class SpecialCardAction(ActionEnvelope):
    action: Literal["SPECIAL_CARD"] = "SPECIAL_CARD"
    data: SpecialCardData


class StackingAction(ActionEnvelope):
    action: Literal["STACKING"] = "STACKING"
    data: StackingData


class TurnChangeAction(ActionEnvelope):
    action: Literal["TURN_CHANGE"] = "TURN_CHANGE"
    data: TurnChangeData


class NewRoundStartedAction(ActionEnvelope):
    action: Literal["NEW_ROUND_STARTED"] = "NEW_ROUND_STARTED"
    data: SnapshotData


class RoundWinAction(ActionEnvelope):
    action: Literal["ROUND_WIN"] = "ROUND_WIN"
    data: RoundWinData


class GameStateSyncAction(ActionEnvelope):
    action: Literal["GAME_STATE_SYNC"] = "GAME_STATE_SYNC"
    data: SnapshotData


class RequestSyncAction(ActionEnvelope):
    action: Literal["REQUEST_SYNC"] = "REQUEST_SYNC"
    data: RequestSyncData


GameAction = Annotated[
    Union[
        PlayCardAction,
        DrawCardsAction,
        PassTurnAction,
        UnoCallAction,
        WildColorSelectAction,
        SpecialCardAction,
        StackingAction,
        TurnChangeAction,
        NewRoundStartedAction,
        RoundWinAction,
        GameStateSyncAction,
        RequestSyncAction,
    ],
    Field(discriminator="action"),
]

_game_action_adapter = TypeAdapter(GameAction)

ENVELOPES: dict[ActionKind, type[ActionEnvelope]] = {
    ActionKind.PLAY_CARD: PlayCardAction,
    ActionKind.DRAW_CARDS: DrawCardsAction,
    ActionKind.PASS_TURN: PassTurnAction,
    ActionKind.UNO_CALL: UnoCallAction,
    ActionKind.WILD_COLOR_SELECT: WildColorSelectAction,
    ActionKind.SPECIAL_CARD: SpecialCardAction,
    ActionKind.STACKING: StackingAction,
    ActionKind.TURN_CHANGE: TurnChangeAction,
    ActionKind.NEW_ROUND_STARTED: NewRoundStartedAction,
    ActionKind.ROUND_WIN: RoundWinAction,
    ActionKind.GAME_STATE_SYNC: GameStateSyncAction,
    ActionKind.REQUEST_SYNC: RequestSyncAction,
}


def parse_action(message: dict) -> ActionEnvelope:
    """
    Parse an envelope into its typed variant.

    Raises:
        pydantic.ValidationError: Unknown kind or malformed payload.
    """
    return _game_action_adapter.validate_python(message)


def build_action(
    kind: ActionKind,
    room_id: str,
    player_id: str,
    player_name: str,
    state_version: Optional[int] = None,
    **data,
) -> ActionEnvelope:
    """Create an outgoing envelope of ``kind`` with a fresh action id."""
    envelope_cls = ENVELOPES[kind]
    payload = {"player_id": player_id, "state_version": state_version, **data}
    return envelope_cls(room_id=room_id, player_name=player_name, data=payload)
