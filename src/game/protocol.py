"""
The per-round move state machine and the decrypt-confirm handshakes.

NotSubmitted --submit--> Submitted --finalize(invalid)--> NotSubmitted
                                    --finalize(valid)----> Made --(both Made)--> processed and deleted

Once a round is processed, the game waits for `finalize_game_state` with the decrypted winner and collision flag.
Once a game is terminal, `reveal_board` publishes the cleartext board.
"""

import logging
from datetime import datetime
from typing import Sequence

from src.core.exceptions import GameStateError, IllegalMoveError, NotAPlayerError
from src.core.shared_types import Cell, EventName, Winner
from src.fhe.encrypted import ConfidentialSubstrate, Handle, handles_of
from src.game.board import BOARD_SIZE, clear_board_from_values, flatten
from src.game.engine import EncryptedBoardEngine
from src.game.events import EventBus
from src.game.game import Game, Move
from src.game.settlement import SettlementEngine
from src.ledger.game_ledger import GameLedger

logger = logging.getLogger(__name__)


class MoveProtocol:
    def __init__(
        self,
        engine: EncryptedBoardEngine,
        substrate: ConfidentialSubstrate,
        ledger: GameLedger,
        settlement: SettlementEngine,
        events: EventBus,
    ) -> None:
        self.engine = engine
        self.substrate = substrate
        self.ledger = ledger
        self.settlement = settlement
        self.events = events

    def can_submit(self, game: Game, player: str) -> bool:
        if game.player2 is None or game.is_terminal or game.awaiting_state_finalization:
            return False
        if not game.has_player(player):
            return False
        return not self.ledger.get_move(game.game_id, player).is_submitted

    def submit(
        self,
        game: Game,
        player: str,
        x_handle: Handle,
        y_handle: Handle,
        input_proof: str,
        now: datetime,
    ) -> Move:
        """Validate the encrypted coordinates against the board and park the move until its validity is decrypted."""
        if not game.has_player(player):
            raise NotAPlayerError("You are not a player in this game.", context={"game_id": game.game_id})
        if game.player2 is None:
            raise GameStateError("Game has not started yet.")
        if game.is_terminal:
            raise GameStateError("Game is already finished.")
        if game.awaiting_state_finalization:
            raise GameStateError("Previous round is awaiting finalization.")
        if self.ledger.get_move(game.game_id, player).is_submitted:
            raise IllegalMoveError("Move already submitted.")

        x, y = self.substrate.from_external(player, [x_handle, y_handle], input_proof)
        with self.substrate.transient() as keep:
            is_valid, is_cell_occupied = self.engine.validate_move(game.board, x, y)
            is_invalid = ~is_valid
            keep.update((is_invalid.handle, is_cell_occupied.handle))
        move = Move(
            is_submitted=True,
            is_invalid=is_invalid,
            is_cell_occupied=is_cell_occupied,
            x=x,
            y=y,
        )
        self.substrate.make_publicly_decryptable(move.is_invalid)
        self.substrate.allow(is_cell_occupied, player)
        self.ledger.set_move(game.game_id, player, move)
        game.last_action_at = now

        logger.info("Move submitted in game %s by %s", game.game_id, player)
        self.events.emit(EventName.MOVE_SUBMITTED, game.game_id, player=player)
        return move

    def finalize(self, game: Game, player: str, is_invalid: bool, proof: str, now: datetime) -> Move:
        """Feed back the decrypted validity flag. The proof must match the flag made decryptable at submit time."""
        if not game.has_player(player):
            raise NotAPlayerError("You are not a player in this game.", context={"game_id": game.game_id})
        if game.is_terminal:
            raise GameStateError("Game is already finished.")
        move = self.ledger.get_move(game.game_id, player)
        if not move.is_submitted or move.is_invalid is None:
            raise IllegalMoveError("No submitted move to finalize.")
        if move.is_made:
            raise IllegalMoveError("Move already finalized.")

        self.substrate.verify_decryption([move.is_invalid.handle], [int(is_invalid)], proof)
        game.last_action_at = now

        if is_invalid:
            self.ledger.delete_move(game.game_id, player)
            logger.info("Move in game %s by %s was invalid", game.game_id, player)
            self.events.emit(EventName.MOVE_INVALID, game.game_id, player=player)
            return Move()

        move.is_made = True
        self.events.emit(EventName.MOVE_MADE, game.game_id, player=player)

        move1, move2 = self.ledger.moves_for(game)
        if move1.is_made and move2.is_made:
            self._process_moves(game, move1, move2)
        return move

    def finalize_game_state(self, game: Game, winner: Winner, collision: bool, proof: str, now: datetime) -> None:
        """Feed back the decrypted (winner, collision) pair. Honored once per processed round."""
        if game.is_terminal:
            raise GameStateError("Game is already finished.")
        if not game.awaiting_state_finalization:
            raise GameStateError("No game state awaiting finalization.")

        self.substrate.verify_decryption(
            [game.encrypted_winner.handle, game.encrypted_collision.handle],
            [int(winner), int(collision)],
            proof,
        )
        game.awaiting_state_finalization = False
        game.last_action_at = now

        if collision:
            game.encrypted_collision = self.engine.constants.false
            logger.info("Collision in game %s, both players must pick again", game.game_id)
            self.events.emit(EventName.COLLISION, game.game_id)
            return

        if winner != Winner.NONE:
            logger.info("Game %s finished, winner=%s", game.game_id, winner.name)
            self.settlement.finish_game(game, winner)

        self.events.emit(EventName.GAME_UPDATED, game.game_id, winner=int(winner))

    def reveal_board(self, game: Game, board: Sequence[Sequence[int]], proof: str) -> None:
        if not game.is_terminal or game.winner == Winner.CANCELLED:
            raise GameStateError("Game is not finished.")
        if game.board_revealed:
            raise GameStateError("Board already revealed.")

        values = [int(cell) for row in board for cell in row]
        if len(board) != BOARD_SIZE or len(values) != BOARD_SIZE * BOARD_SIZE:
            raise IllegalMoveError("Board must be 4x4.")
        if any(value not in tuple(Cell) for value in values):
            raise IllegalMoveError("Board holds an unknown cell value.")

        self.substrate.verify_decryption([cell.handle for cell in flatten(game.board)], values, proof)
        game.clear_board = clear_board_from_values(values)
        game.board_revealed = True
        self.events.emit(EventName.BOARD_REVEALED, game.game_id)

    # -- PRIVATE HELPERS ---
    def _process_moves(self, game: Game, move1: Move, move2: Move) -> None:
        """Both moves are Made: write the board, compute winner and collision, consume the moves."""
        with self.substrate.transient() as keep:
            processed = self.engine.process_moves(game.board, move1.encrypted(), move2.encrypted())
            keep.update(handles_of([*flatten(processed.board), processed.winner, processed.collision]))
        game.board = processed.board
        game.encrypted_winner = processed.winner
        game.encrypted_collision = processed.collision
        game.awaiting_state_finalization = True
        self.substrate.make_publicly_decryptable(processed.winner, processed.collision)
        self.ledger.clear_moves(game)

        logger.info("Moves processed in game %s", game.game_id)
        self.events.emit(EventName.MOVES_PROCESSED, game.game_id)
