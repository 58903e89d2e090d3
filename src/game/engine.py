"""
The encrypted board engine.

Every rule of the game (validity, collision, winner) is evaluated over encrypted values. There is no cleartext
branching in here: conditions become `select`s, and nothing is ever short-circuited, since an encrypted condition
cannot be branched on.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.fhe.encrypted import EncryptedValue
from src.game.board import BOARD_SIZE, EncryptedBoard, winning_lines
from src.game.constants import EncryptedConstants


@dataclass(frozen=True)
class EncryptedMove:
    """The two encrypted coordinates of a submitted move."""

    x: EncryptedValue
    y: EncryptedValue


@dataclass(frozen=True)
class ProcessedRound:
    board: EncryptedBoard
    winner: EncryptedValue
    collision: EncryptedValue


class EncryptedBoardEngine:
    def __init__(self, constants: EncryptedConstants) -> None:
        self.constants = constants

    def new_board(self) -> EncryptedBoard:
        return tuple(tuple(self.constants.empty for _ in range(BOARD_SIZE)) for _ in range(BOARD_SIZE))

    def validate_move(
        self, board: EncryptedBoard, x: EncryptedValue, y: EncryptedValue
    ) -> tuple[EncryptedValue, EncryptedValue]:
        """
        Returns (is_valid, is_cell_occupied).

        An out-of-range coordinate matches no cell, so the oblivious read yields Empty and only the bounds check
        makes it invalid.
        """
        in_bounds = x.lt(self.constants.board_size) & y.lt(self.constants.board_size)
        is_cell_occupied = ~self.read_cell(board, x, y).eq(self.constants.empty)
        return in_bounds & ~is_cell_occupied, is_cell_occupied

    def read_cell(self, board: EncryptedBoard, x: EncryptedValue, y: EncryptedValue) -> EncryptedValue:
        matches = self._coordinate_matches(x, y)
        value = self.constants.empty
        for row in range(BOARD_SIZE):
            for col in range(BOARD_SIZE):
                value = matches[row][col].select(board[row][col], value)
        return value

    def write_cell(
        self, board: EncryptedBoard, x: EncryptedValue, y: EncryptedValue, value: EncryptedValue
    ) -> EncryptedBoard:
        """Oblivious write: every cell is rewritten, with either `value` or its old content."""
        matches = self._coordinate_matches(x, y)
        return tuple(
            tuple(matches[row][col].select(value, board[row][col]) for col in range(BOARD_SIZE))
            for row in range(BOARD_SIZE)
        )

    def compute_collision(self, move_a: EncryptedMove, move_b: EncryptedMove) -> EncryptedValue:
        return move_a.x.eq(move_b.x) & move_a.y.eq(move_b.y)

    def compute_winner(self, board: EncryptedBoard) -> EncryptedValue:
        """
        Winner over all 10 lines.

        Two different winners across lines cannot happen in correct play (a round places one mark per player),
        but if it does the result is a Draw.
        Without any complete line a full board is a Draw, otherwise the game continues (Winner.NONE).
        """
        c = self.constants
        result = c.winner_none
        for line in winning_lines():
            line_winner = self._line_winner([board[cell.y][cell.x] for cell in line])
            has_line = ~line_winner.eq(c.winner_none)
            result_is_none = result.eq(c.winner_none)
            conflict = has_line & ~result_is_none & ~result.eq(line_winner)
            result = conflict.select(c.winner_draw, (has_line & result_is_none).select(line_winner, result))

        no_winner_and_full = result.eq(c.winner_none) & self.is_board_full(board)
        return no_winner_and_full.select(c.winner_draw, result)

    def is_board_full(self, board: EncryptedBoard) -> EncryptedValue:
        full = self.constants.true
        for row in board:
            for cell in row:
                full = full & ~cell.eq(self.constants.empty)
        return full

    def process_moves(self, board: EncryptedBoard, move1: EncryptedMove, move2: EncryptedMove) -> ProcessedRound:
        """
        Place both marks unless the moves collide.

        Both targets were validated as Empty against this same board, so writing Empty on a collision leaves the
        board as it was.
        """
        c = self.constants
        collision = self.compute_collision(move1, move2)
        board = self.write_cell(board, move1.x, move1.y, collision.select(c.empty, c.player1))
        board = self.write_cell(board, move2.x, move2.y, collision.select(c.empty, c.player2))
        return ProcessedRound(board=board, winner=self.compute_winner(board), collision=collision)

    # -- PRIVATE HELPERS ---
    def _coordinate_matches(self, x: EncryptedValue, y: EncryptedValue) -> list[list[EncryptedValue]]:
        """4 + 4 comparisons, combined into the 4 x 4 grid of 'is this the addressed cell' flags."""
        x_matches = [x.eq(index) for index in self.constants.indices]
        y_matches = [y.eq(index) for index in self.constants.indices]
        return [[y_matches[row] & x_matches[col] for col in range(BOARD_SIZE)] for row in range(BOARD_SIZE)]

    def _line_winner(self, cells: list[EncryptedValue]) -> EncryptedValue:
        c = self.constants
        all_player1 = c.true
        all_player2 = c.true
        for cell in cells:
            all_player1 = all_player1 & cell.eq(c.player1)
            all_player2 = all_player2 & cell.eq(c.player2)
        return all_player1.select(c.winner_player1, all_player2.select(c.winner_player2, c.winner_none))
