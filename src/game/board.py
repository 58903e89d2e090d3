"""
Board geometry shared by the encrypted engine and the cleartext views.

Boards are always indexed board[y][x] (row, then column).
"""

from __future__ import annotations

from dataclasses import dataclass

from src.core.shared_types import Cell
from src.fhe.encrypted import EncryptedValue

BOARD_SIZE = 4

EncryptedBoard = tuple[tuple[EncryptedValue, ...], ...]
ClearBoard = list[list[Cell]]


@dataclass(frozen=True, order=True)
class Coordinate:
    x: int
    y: int

    def is_within_bounds(self) -> bool:
        return 0 <= self.x < BOARD_SIZE and 0 <= self.y < BOARD_SIZE

    def __str__(self) -> str:
        return f"({self.x},{self.y})"


def all_coordinates() -> list[Coordinate]:
    """Row-major order, the same order board handles are decrypted in."""
    return [Coordinate(x, y) for y in range(BOARD_SIZE) for x in range(BOARD_SIZE)]


def winning_lines() -> list[list[Coordinate]]:
    """4 rows, 4 columns and both diagonals."""
    rows = [[Coordinate(x, y) for x in range(BOARD_SIZE)] for y in range(BOARD_SIZE)]
    columns = [[Coordinate(x, y) for y in range(BOARD_SIZE)] for x in range(BOARD_SIZE)]
    main_diagonal = [Coordinate(i, i) for i in range(BOARD_SIZE)]
    anti_diagonal = [Coordinate(BOARD_SIZE - 1 - i, i) for i in range(BOARD_SIZE)]
    return rows + columns + [main_diagonal, anti_diagonal]


def empty_clear_board() -> ClearBoard:
    return [[Cell.EMPTY] * BOARD_SIZE for _ in range(BOARD_SIZE)]


def flatten(board: EncryptedBoard) -> list[EncryptedValue]:
    return [cell for row in board for cell in row]


def clear_board_from_values(values: list[int]) -> ClearBoard:
    """Inverse of the row-major flattening."""
    if len(values) != BOARD_SIZE * BOARD_SIZE:
        raise ValueError(f"Expected {BOARD_SIZE * BOARD_SIZE} cells, got {len(values)}")
    return [
        [Cell(values[y * BOARD_SIZE + x]) for x in range(BOARD_SIZE)]
        for y in range(BOARD_SIZE)
    ]


def is_revealed(board: ClearBoard) -> bool:
    """A terminal board always holds at least one move, so any non-empty cell means the reveal happened."""
    return any(cell != Cell.EMPTY for row in board for cell in row)


def format_board(board: ClearBoard, player1_symbol: str = "X", player2_symbol: str = "O") -> str:
    symbols = {Cell.EMPTY: ".", Cell.PLAYER1: player1_symbol, Cell.PLAYER2: player2_symbol}
    lines = ["  " + " ".join(str(x) for x in range(BOARD_SIZE)) + "  (x)"]
    for y, row in enumerate(board):
        lines.append(f"{y} " + " ".join(symbols[Cell(cell)] for cell in row))
    lines.append("(y)")
    return "\n".join(lines)
