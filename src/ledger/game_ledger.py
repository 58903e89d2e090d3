"""The authoritative registry of games and their pending moves, with the derived lookup views."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from src.core.exceptions import RepositoryError
from src.fhe.encrypted import EncryptedValue
from src.game.board import EncryptedBoard
from src.game.game import Game, Move


@dataclass
class LedgerSnapshot:
    games: dict[int, Game]
    moves: dict[tuple[int, str], Move]
    games_by_player: dict[str, list[int]]
    fields: list[tuple[Game | Move, dict[str, Any]]]


class GameLedger:
    """Games are indexed by a sequential id starting at 0. Moves are keyed by (game id, player)."""

    def __init__(self) -> None:
        self._games: dict[int, Game] = {}
        self._moves: dict[tuple[int, str], Move] = {}
        self._games_by_player: dict[str, list[int]] = {}

    def create_game(
        self,
        player1: str,
        board: EncryptedBoard,
        encrypted_winner: EncryptedValue,
        encrypted_collision: EncryptedValue,
        stake: int,
        move_timeout: timedelta,
        now: datetime,
    ) -> Game:
        game = Game(
            game_id=len(self._games),
            player1=player1,
            board=board,
            encrypted_winner=encrypted_winner,
            encrypted_collision=encrypted_collision,
            stake=stake,
            move_timeout=move_timeout,
            last_action_at=now,
        )
        self._games[game.game_id] = game
        self._index_player(player1, game.game_id)
        return game

    def add_player2(self, game: Game, player2: str) -> None:
        game.player2 = player2
        self._index_player(player2, game.game_id)

    def get_game(self, game_id: int) -> Game:
        game = self._games.get(game_id)
        if game is None:
            raise RepositoryError(f"Game with {game_id=} not found.")
        return game

    def game_count(self) -> int:
        return len(self._games)

    def open_games(self) -> list[int]:
        return [game_id for game_id, game in self._games.items() if game.is_open]

    def games_by_player(self, player: str) -> list[int]:
        """Ids in ascending order."""
        return sorted(self._games_by_player.get(player, []))

    # --- moves ---
    def get_move(self, game_id: int, player: str | None) -> Move:
        """The player's current move, or a fresh default record (a Move is created implicitly on first submit)."""
        if player is None:
            return Move()
        return self._moves.get((game_id, player), Move())

    def set_move(self, game_id: int, player: str, move: Move) -> None:
        self._moves[(game_id, player)] = move

    def delete_move(self, game_id: int, player: str | None) -> None:
        if player is not None:
            self._moves.pop((game_id, player), None)

    def moves_for(self, game: Game) -> tuple[Move, Move]:
        return self.get_move(game.game_id, game.player1), self.get_move(game.game_id, game.player2)

    def clear_moves(self, game: Game) -> None:
        self.delete_move(game.game_id, game.player1)
        self.delete_move(game.game_id, game.player2)

    # --- rollback ---
    def snapshot(self) -> LedgerSnapshot:
        """Capture the registry and the field values of every game and move, for `restore`."""
        records: list[Game | Move] = [*self._games.values(), *self._moves.values()]
        return LedgerSnapshot(
            games=dict(self._games),
            moves=dict(self._moves),
            games_by_player={player: list(ids) for player, ids in self._games_by_player.items()},
            fields=[(record, dict(vars(record))) for record in records],
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        """Undo everything since `snapshot`. Records are restored in place, so existing references stay valid."""
        self._games = dict(snapshot.games)
        self._moves = dict(snapshot.moves)
        self._games_by_player = {player: list(ids) for player, ids in snapshot.games_by_player.items()}
        for record, fields in snapshot.fields:
            vars(record).update(fields)

    def _index_player(self, player: str, game_id: int) -> None:
        self._games_by_player.setdefault(player, []).append(game_id)
