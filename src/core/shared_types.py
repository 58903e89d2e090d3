"""
Type definitions used across layers
"""

from enum import IntEnum, StrEnum


# --- Wire values: these are the cleartexts the decryption oracle hands back, so they stay integers.
class Cell(IntEnum):
    EMPTY = 0
    PLAYER1 = 1
    PLAYER2 = 2


class Winner(IntEnum):
    NONE = 0
    PLAYER1 = 1
    PLAYER2 = 2
    DRAW = 3
    CANCELLED = 4  # bookkeeping only, never produced by board logic


class MoveState(StrEnum):
    NOT_SUBMITTED = "not submitted"
    SUBMITTED = "submitted"
    MADE = "made"


class EventName(StrEnum):
    GAME_STARTED = "GameStarted"
    PLAYER_JOINED = "PlayerJoined"
    MOVE_SUBMITTED = "MoveSubmitted"
    MOVE_INVALID = "MoveInvalid"
    MOVE_MADE = "MoveMade"
    MOVES_PROCESSED = "MovesProcessed"
    COLLISION = "Collision"
    GAME_UPDATED = "GameUpdated"
    BOARD_REVEALED = "BoardRevealed"
    GAME_CANCELLED = "GameCancelled"
    GAME_TIMEOUT = "GameTimeout"


class Action(StrEnum):
    """State-changing ledger calls. Also the keys of the orchestrator's transaction markers."""

    START_GAME = "start_game"
    JOIN_GAME = "join_game"
    SUBMIT_MOVE = "submit_move"
    FINALIZE_MOVE = "finalize_move"
    FINALIZE_GAME_STATE = "finalize_game_state"
    REVEAL_BOARD = "reveal_board"
    CANCEL_GAME = "cancel_game"
    CLAIM_TIMEOUT = "claim_timeout"


class View(StrEnum):
    GET_GAME = "get_game"
    GET_MOVES = "get_moves"
    GET_OPEN_GAMES = "get_open_games"
    GET_GAMES_BY_PLAYER = "get_games_by_player"
    CAN_SUBMIT_MOVE = "can_submit_move"
    GAME_COUNT = "game_count"
    BALANCE_OF = "balance_of"


class TxStatus(StrEnum):
    """What the ledger reports about a transaction hash."""

    PENDING = "pending"
    SUCCESS = "success"
    REVERTED = "reverted"
    NOT_FOUND = "not_found"


class MarkerStatus(StrEnum):
    """What the orchestrator remembers about its own transaction for an action."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"


class AttemptStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    INVALID = "invalid"
    COLLISION = "collision"


class AgentPhase(StrEnum):
    IDLE = "idle"
    WAITING_FOR_OPPONENT = "waiting_for_opponent"
    SELECTING_MOVE = "selecting_move"
    SUBMITTING_MOVE = "submitting_move"
    FINALIZING_MOVE = "finalizing_move"
    WAITING_FOR_OPPONENT_MOVE = "waiting_for_opponent_move"
    FINALIZING_GAME_STATE = "finalizing_game_state"
    REVEALING_BOARD = "revealing_board"
    GAME_COMPLETE = "game_complete"
    ERROR = "error"


class TrackingStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
