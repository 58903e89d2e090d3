"""Requests and Response models"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from src.core.exceptions import InvalidRequestError
from src.core.shared_types import Cell, MoveState, Winner
from src.game.board import BOARD_SIZE

Address = str
HandleStr = str


def _validate_handle(value: str) -> str:
    if not (value.startswith("0x") and len(value) == 66):
        raise InvalidRequestError(f"Cannot interpret {value!r} as a ciphertext handle.")
    return value


# --- REQUEST MODELS ---
class StartGameRequest(BaseModel):
    player: Address
    stake: int = Field(default=0, ge=0)
    move_timeout_seconds: int = Field(default=86_400, gt=0)


class JoinGameRequest(BaseModel):
    game_id: int = Field(ge=0)
    player: Address
    stake: int = Field(default=0, ge=0)


class SubmitMoveRequest(BaseModel):
    game_id: int = Field(ge=0)
    player: Address
    x_handle: HandleStr
    y_handle: HandleStr
    input_proof: str

    @field_validator(*["x_handle", "y_handle"])
    @classmethod
    def validate_handle(cls, value: str) -> str:
        return _validate_handle(value)


class FinalizeMoveRequest(BaseModel):
    game_id: int = Field(ge=0)
    player: Address
    is_invalid: bool
    proof: str


class FinalizeGameStateRequest(BaseModel):
    game_id: int = Field(ge=0)
    winner: Winner
    collision: bool
    proof: str

    @field_validator("winner")
    @classmethod
    def validate_winner(cls, value: Winner) -> Winner:
        # CANCELLED is bookkeeping only, the board logic never yields it
        if value == Winner.CANCELLED:
            raise InvalidRequestError("A decrypted winner can never be 'cancelled'.")
        return value


class RevealBoardRequest(BaseModel):
    game_id: int = Field(ge=0)
    board: list[list[int]]
    proof: str

    @field_validator("board")
    @classmethod
    def validate_board(cls, value: list[list[int]]) -> list[list[int]]:
        if len(value) != BOARD_SIZE or any(len(row) != BOARD_SIZE for row in value):
            raise InvalidRequestError(f"Board must be {BOARD_SIZE}x{BOARD_SIZE}.")
        valid_cells = {int(cell) for cell in Cell}
        for row in value:
            for cell in row:
                if cell not in valid_cells:
                    raise InvalidRequestError(f"Unknown cell value {cell!r}.")
        return value


class CancelGameRequest(BaseModel):
    game_id: int = Field(ge=0)
    player: Address


class ClaimTimeoutRequest(BaseModel):
    game_id: int = Field(ge=0)
    player: Address


# --- RESPONSE MODELS ---
class GameResponse(BaseModel):
    game_id: int
    player1: Address
    player2: Address | None
    encrypted_board: list[list[HandleStr]]
    encrypted_winner: HandleStr
    encrypted_collision: HandleStr
    board: list[list[Cell]]
    winner: Winner
    stake: int
    move_timeout_seconds: int
    last_action_at: datetime
    awaiting_state_finalization: bool
    board_revealed: bool


class MoveResponse(BaseModel):
    is_submitted: bool
    is_made: bool
    is_invalid: HandleStr | None
    is_cell_occupied: HandleStr | None
    x: HandleStr | None
    y: HandleStr | None
    state: MoveState


class MovesResponse(BaseModel):
    game_id: int
    move1: MoveResponse
    move2: MoveResponse
