"""
Domain records of one game and its pending moves.

These are the authoritative objects held by the GameLedger. The protocol and settlement engines mutate them; the
service layer converts them into response models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from src.core.shared_types import MoveState, Winner
from src.fhe.encrypted import EncryptedValue
from src.game.board import ClearBoard, EncryptedBoard, empty_clear_board
from src.game.engine import EncryptedMove


@dataclass
class Move:
    is_submitted: bool = False
    is_made: bool = False
    is_invalid: EncryptedValue | None = None
    is_cell_occupied: EncryptedValue | None = None
    x: EncryptedValue | None = None
    y: EncryptedValue | None = None

    @property
    def state(self) -> MoveState:
        if self.is_made:
            return MoveState.MADE
        if self.is_submitted:
            return MoveState.SUBMITTED
        return MoveState.NOT_SUBMITTED

    def encrypted(self) -> EncryptedMove:
        if self.x is None or self.y is None:
            raise ValueError("Move has no coordinates yet.")
        return EncryptedMove(self.x, self.y)


@dataclass
class Game:
    game_id: int
    player1: str
    board: EncryptedBoard
    encrypted_winner: EncryptedValue
    encrypted_collision: EncryptedValue
    stake: int
    move_timeout: timedelta
    last_action_at: datetime
    player2: str | None = None
    clear_board: ClearBoard = field(default_factory=empty_clear_board)
    winner: Winner = Winner.NONE
    awaiting_state_finalization: bool = False
    board_revealed: bool = False

    @property
    def is_open(self) -> bool:
        return self.player2 is None and self.winner == Winner.NONE

    @property
    def is_terminal(self) -> bool:
        return self.winner != Winner.NONE

    @property
    def timeout_deadline(self) -> datetime:
        return self.last_action_at + self.move_timeout

    def has_player(self, player: str) -> bool:
        return player in (self.player1, self.player2)

    def player_for(self, winner: Winner) -> str | None:
        if winner == Winner.PLAYER1:
            return self.player1
        if winner == Winner.PLAYER2:
            return self.player2
        return None
