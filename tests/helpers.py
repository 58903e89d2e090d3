"""Players and a protocol driver shared by the test modules."""

from src.api.models import (
    FinalizeGameStateRequest,
    FinalizeMoveRequest,
    JoinGameRequest,
    RevealBoardRequest,
    StartGameRequest,
    SubmitMoveRequest,
)
from src.core.shared_types import Winner
from src.fhe.oracle import DecryptionOracle
from src.services.game_service import GameService

ALICE = "0xa11ce"
BOB = "0xb0b"
CAROL = "0xca201"
STARTING_BALANCE = 1_000


class GameDriver:
    """Plays the client side of the protocol directly against the service (encrypt, decrypt, confirm)."""

    def __init__(self, service: GameService, oracle: DecryptionOracle) -> None:
        self.service = service
        self.oracle = oracle
        self.substrate = service.substrate

    def start(self, player: str = ALICE, stake: int = 0, move_timeout_seconds: int = 86_400) -> int:
        request = StartGameRequest(player=player, stake=stake, move_timeout_seconds=move_timeout_seconds)
        return self.service.start_game(request).game_id

    def join(self, game_id: int, player: str = BOB, stake: int = 0) -> None:
        self.service.join_game(JoinGameRequest(game_id=game_id, player=player, stake=stake))

    def new_game(self, stake: int = 0, move_timeout_seconds: int = 86_400) -> int:
        game_id = self.start(ALICE, stake, move_timeout_seconds)
        self.join(game_id, BOB, stake)
        return game_id

    def submit(self, game_id: int, player: str, x: int, y: int) -> None:
        encrypted = self.substrate.encrypt_input(player, [x, y])
        request = SubmitMoveRequest(
            game_id=game_id,
            player=player,
            x_handle=encrypted.handles[0],
            y_handle=encrypted.handles[1],
            input_proof=encrypted.input_proof,
        )
        self.service.submit_move(request)

    def finalize(self, game_id: int, player: str) -> bool:
        """Decrypt the validity flag of the player's move and confirm it. Returns is_invalid."""
        moves = self.service.get_moves(game_id)
        move = moves.move1 if player == self.service.get_game(game_id).player1 else moves.move2
        result = self.oracle.request_decryption([move.is_invalid])
        is_invalid = bool(result.clear_values[move.is_invalid])
        self.service.finalize_move(
            FinalizeMoveRequest(game_id=game_id, player=player, is_invalid=is_invalid, proof=result.proof)
        )
        return is_invalid

    def finalize_state(self, game_id: int) -> tuple[Winner, bool]:
        game = self.service.get_game(game_id)
        result = self.oracle.request_decryption([game.encrypted_winner, game.encrypted_collision])
        winner, collision = Winner(result.values_in_order()[0]), bool(result.values_in_order()[1])
        self.service.finalize_game_state(
            FinalizeGameStateRequest(game_id=game_id, winner=winner, collision=collision, proof=result.proof)
        )
        return winner, collision

    def play_round(self, game_id: int, move1: tuple[int, int], move2: tuple[int, int]) -> tuple[Winner, bool]:
        """Both players move, confirm and the round outcome is finalized. Assumes both moves are valid."""
        self.submit(game_id, ALICE, *move1)
        self.submit(game_id, BOB, *move2)
        self.finalize(game_id, ALICE)
        self.finalize(game_id, BOB)
        return self.finalize_state(game_id)

    def reveal(self, game_id: int) -> list[list[int]]:
        game = self.service.get_game(game_id)
        handles = [handle for row in game.encrypted_board for handle in row]
        result = self.oracle.request_decryption(handles)
        values = result.values_in_order()
        board = [values[row * 4 : (row + 1) * 4] for row in range(4)]
        self.service.reveal_board(RevealBoardRequest(game_id=game_id, board=board, proof=result.proof))
        return board
