"""Encrypted constants, created once per substrate and handed to the engine."""

from __future__ import annotations

from dataclasses import dataclass

from src.core.shared_types import Cell, Winner
from src.fhe.encrypted import ConfidentialSubstrate, EncryptedValue
from src.game.board import BOARD_SIZE


@dataclass(frozen=True)
class EncryptedConstants:
    empty: EncryptedValue
    player1: EncryptedValue
    player2: EncryptedValue
    winner_none: EncryptedValue
    winner_player1: EncryptedValue
    winner_player2: EncryptedValue
    winner_draw: EncryptedValue
    true: EncryptedValue
    false: EncryptedValue
    indices: tuple[EncryptedValue, ...]
    board_size: EncryptedValue

    @classmethod
    def create(cls, substrate: ConfidentialSubstrate) -> EncryptedConstants:
        constants = cls(
            empty=substrate.as_euint8(Cell.EMPTY),
            player1=substrate.as_euint8(Cell.PLAYER1),
            player2=substrate.as_euint8(Cell.PLAYER2),
            winner_none=substrate.as_euint8(Winner.NONE),
            winner_player1=substrate.as_euint8(Winner.PLAYER1),
            winner_player2=substrate.as_euint8(Winner.PLAYER2),
            winner_draw=substrate.as_euint8(Winner.DRAW),
            true=substrate.as_ebool(True),
            false=substrate.as_ebool(False),
            indices=tuple(substrate.as_euint8(i) for i in range(BOARD_SIZE)),
            board_size=substrate.as_euint8(BOARD_SIZE),
        )
        # Initial board cells and the initial collision flag are exactly these handles, and the board is decrypted
        # in full at the end of every game.
        substrate.make_publicly_decryptable(constants.empty, constants.false)
        return constants
