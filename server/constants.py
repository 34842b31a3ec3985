"""
Game constants for UNO.

This module is the single source of truth for card point values, room code
rules and replication timings. Values come from config.py, which reads the
environment (see .env.example).

Standard UNO Scoring (points credited to the round winner):
    - Number cards: face value
    - Skip, Reverse, Draw Two: 20 points
    - Wild, Wild Draw Four: 50 points
"""

from config import config


# =============================================================================
# Card Values - Single Source of Truth
# =============================================================================

ACTION_CARD_VALUES: dict[str, int] = config.card_values.to_dict()
NUMBER_MULTIPLIER: int = config.card_values.NUMBER_MULTIPLIER

# Cards drawn by the victim of each draw card
DRAW_AMOUNTS: dict[str, int] = {
    "draw2": 2,
    "wild4": 4,
    "wild": 4,  # a plain wild inside a chain counts as a four
}

UNO_PENALTY_CARDS = 2


# =============================================================================
# Room Constants
# =============================================================================

# Excludes glyphs that are easy to misread (I, O, 0, 1)
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = config.ROOM_CODE_LENGTH
MAX_PLAYERS = config.MAX_PLAYERS_PER_ROOM
MIN_PLAYERS_TO_START = 2
ROOM_IDLE_TIMEOUT_MINUTES = config.ROOM_IDLE_TIMEOUT_MINUTES
ACTION_LOG_SIZE = config.ACTION_LOG_SIZE


# =============================================================================
# Game Constants
# =============================================================================

DEFAULT_POINTS_TO_WIN = config.game_defaults.points_to_win
DEFAULT_HAND_SIZE = config.game_defaults.hand_size
DEFAULT_CPU_DIFFICULTY = config.game_defaults.cpu_difficulty
DEFAULT_STACKING = config.game_defaults.stacking_enabled
DEFAULT_UNLIMITED_DRAW = config.game_defaults.unlimited_draw_enabled
DEFAULT_FORCE_PLAY = config.game_defaults.force_play_enabled
DEFAULT_JUMP_IN = config.game_defaults.jump_in_enabled

# Safety limit for force-play draws
MAX_HAND_SIZE = 20


# =============================================================================
# Replication Timings (seconds)
# =============================================================================

UNO_GRACE_SECONDS = config.timings.uno_grace
SYNC_INTERVAL_SECONDS = config.timings.sync_interval
SYNC_TIMEOUT_SECONDS = config.timings.sync_timeout
SEND_RETRY_SECONDS = config.timings.send_retry
CPU_TURN_DELAY_SECONDS = config.timings.cpu_turn_delay

# Remembered action ids for duplicate suppression
PROCESSED_ACTIONS_LIMIT = 100
