"""
The authoritative game surface: every state-changing call and read view of the protocol.

Each public method is one atomic ledger call. The transaction layer (src/ledger/transactions.py) serializes calls and
turns exceptions into reverted transactions.
"""

import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterator

from src.api.models import (
    CancelGameRequest,
    ClaimTimeoutRequest,
    FinalizeGameStateRequest,
    FinalizeMoveRequest,
    GameResponse,
    JoinGameRequest,
    MoveResponse,
    MovesResponse,
    RevealBoardRequest,
    StartGameRequest,
    SubmitMoveRequest,
)
from src.core.clock import Clock, utc_now
from src.core.exceptions import GameError, GameStateError, InvalidRequestError
from src.core.shared_types import EventName
from src.fhe.encrypted import ConfidentialSubstrate
from src.game.constants import EncryptedConstants
from src.game.engine import EncryptedBoardEngine
from src.game.events import EventBus
from src.game.game import Game, Move
from src.game.protocol import MoveProtocol
from src.game.settlement import SettlementEngine, Treasury
from src.ledger.game_ledger import GameLedger

logger = logging.getLogger(__name__)


class GameService:
    """Orchestration of the protocol layers for the confidential game."""

    def __init__(
        self,
        substrate: ConfidentialSubstrate,
        constants: EncryptedConstants | None = None,
        treasury: Treasury | None = None,
        events: EventBus | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.substrate = substrate
        self.constants = constants or EncryptedConstants.create(substrate)
        self.treasury = treasury or Treasury()
        self.events = events or EventBus()
        self.clock = clock
        self.ledger = GameLedger()
        self.engine = EncryptedBoardEngine(self.constants)
        self.settlement = SettlementEngine(self.ledger, self.treasury, substrate, self.events)
        self.protocol = MoveProtocol(self.engine, substrate, self.ledger, self.settlement, self.events)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Run a call all or nothing.

        A GameError raised inside the block restores the games, moves and balances, the event history and the access
        grants to what they were on entry, then propagates.
        """
        ledger = self.ledger.snapshot()
        balances = self.treasury.snapshot()
        access = self.substrate.access_snapshot()
        events = len(self.events.history)
        try:
            yield
        except GameError:
            self.ledger.restore(ledger)
            self.treasury.restore(balances)
            self.substrate.restore_access(access)
            self.events.truncate(events)
            raise

    # -- State-changing calls ---
    def start_game(self, request: StartGameRequest) -> GameResponse:
        """First player opens a game and escrows the stake."""
        self.treasury.escrow(request.player, request.stake)
        game = self.ledger.create_game(
            player1=request.player,
            board=self.engine.new_board(),
            encrypted_winner=self.constants.winner_none,
            encrypted_collision=self.constants.false,
            stake=request.stake,
            move_timeout=timedelta(seconds=request.move_timeout_seconds),
            now=self.clock(),
        )
        logger.info("Game %s started by %s (stake=%s)", game.game_id, request.player, request.stake)
        self.events.emit(
            EventName.GAME_STARTED,
            game.game_id,
            player=request.player,
            stake=request.stake,
            move_timeout=request.move_timeout_seconds,
        )
        return self._create_game_response(game)

    def join_game(self, request: JoinGameRequest) -> GameResponse:
        """Second player joins an open game and matches the stake."""
        game = self.ledger.get_game(request.game_id)
        if game.is_terminal:
            raise GameStateError("Game is already finished.")
        if request.player == game.player1:
            raise GameStateError("Cannot join your own game.")
        if game.player2 is not None:
            raise GameStateError("Game is already full.")
        if request.stake != game.stake:
            raise InvalidRequestError(
                "Stake must match the game's stake.",
                context={"expected": game.stake, "got": request.stake},
            )

        self.treasury.escrow(request.player, request.stake)
        self.ledger.add_player2(game, request.player)
        game.last_action_at = self.clock()
        logger.info("%s joined game %s", request.player, game.game_id)
        self.events.emit(EventName.PLAYER_JOINED, game.game_id, player=request.player)
        return self._create_game_response(game)

    def submit_move(self, request: SubmitMoveRequest) -> MovesResponse:
        game = self.ledger.get_game(request.game_id)
        self.protocol.submit(
            game,
            request.player,
            request.x_handle,
            request.y_handle,
            request.input_proof,
            self.clock(),
        )
        return self.get_moves(game.game_id)

    def finalize_move(self, request: FinalizeMoveRequest) -> MovesResponse:
        game = self.ledger.get_game(request.game_id)
        self.protocol.finalize(game, request.player, request.is_invalid, request.proof, self.clock())
        return self.get_moves(game.game_id)

    def finalize_game_state(self, request: FinalizeGameStateRequest) -> GameResponse:
        game = self.ledger.get_game(request.game_id)
        self.protocol.finalize_game_state(game, request.winner, request.collision, request.proof, self.clock())
        return self._create_game_response(game)

    def reveal_board(self, request: RevealBoardRequest) -> GameResponse:
        game = self.ledger.get_game(request.game_id)
        self.protocol.reveal_board(game, request.board, request.proof)
        return self._create_game_response(game)

    def cancel_game(self, request: CancelGameRequest) -> GameResponse:
        game = self.ledger.get_game(request.game_id)
        self.settlement.cancel_game(game, request.player)
        return self._create_game_response(game)

    def claim_timeout(self, request: ClaimTimeoutRequest) -> GameResponse:
        game = self.ledger.get_game(request.game_id)
        self.settlement.claim_timeout(game, request.player, self.clock())
        return self._create_game_response(game)

    # -- Read views ---
    def get_game(self, game_id: int) -> GameResponse:
        return self._create_game_response(self.ledger.get_game(game_id))

    def get_moves(self, game_id: int) -> MovesResponse:
        game = self.ledger.get_game(game_id)
        move1, move2 = self.ledger.moves_for(game)
        return MovesResponse(
            game_id=game_id,
            move1=self._create_move_response(move1),
            move2=self._create_move_response(move2),
        )

    def get_open_games(self) -> list[int]:
        return self.ledger.open_games()

    def get_games_by_player(self, player: str) -> list[int]:
        return self.ledger.games_by_player(player)

    def can_submit_move(self, game_id: int, player: str) -> bool:
        return self.protocol.can_submit(self.ledger.get_game(game_id), player)

    def game_count(self) -> int:
        return self.ledger.game_count()

    def balance_of(self, player: str) -> int:
        return self.treasury.balance_of(player)

    # -- Internal helpers --
    def _create_game_response(self, game: Game) -> GameResponse:
        return GameResponse(
            game_id=game.game_id,
            player1=game.player1,
            player2=game.player2,
            encrypted_board=[[cell.handle for cell in row] for row in game.board],
            encrypted_winner=game.encrypted_winner.handle,
            encrypted_collision=game.encrypted_collision.handle,
            board=[list(row) for row in game.clear_board],
            winner=game.winner,
            stake=game.stake,
            move_timeout_seconds=int(game.move_timeout.total_seconds()),
            last_action_at=game.last_action_at,
            awaiting_state_finalization=game.awaiting_state_finalization,
            board_revealed=game.board_revealed,
        )

    @staticmethod
    def _create_move_response(move: Move) -> MoveResponse:
        return MoveResponse(
            is_submitted=move.is_submitted,
            is_made=move.is_made,
            is_invalid=move.is_invalid.handle if move.is_invalid is not None else None,
            is_cell_occupied=move.is_cell_occupied.handle if move.is_cell_occupied is not None else None,
            x=move.x.handle if move.x is not None else None,
            y=move.y.handle if move.y is not None else None,
            state=move.state,
        )
