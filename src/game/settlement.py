"""
Stake escrow, timeouts and prize distribution.

The stake field of a Game is written by this module only: escrowed when a player creates or joins, zeroed exactly
once when the game ends, before any funds move.
"""

import logging
from datetime import datetime
from typing import Callable

from src.core.exceptions import GameStateError, InsufficientFundsError, InvalidRequestError, NotAPlayerError
from src.core.shared_types import EventName, Winner
from src.fhe.encrypted import ConfidentialSubstrate
from src.game.board import flatten
from src.game.events import EventBus
from src.game.game import Game
from src.ledger.game_ledger import GameLedger

logger = logging.getLogger(__name__)

TransferHook = Callable[[str, int], None]


class Treasury:
    """Account balances plus the escrow pool. Every operation preserves total_supply()."""

    def __init__(self) -> None:
        self._balances: dict[str, int] = {}
        self.escrow_balance = 0
        self._transfer_hooks: list[TransferHook] = []

    def mint(self, address: str, amount: int) -> None:
        """Fund an account. The only way new value enters the system."""
        if amount < 0:
            raise InvalidRequestError("Cannot mint a negative amount.")
        self._balances[address] = self._balances.get(address, 0) + amount

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def total_supply(self) -> int:
        return sum(self._balances.values()) + self.escrow_balance

    def escrow(self, from_address: str, amount: int) -> None:
        balance = self.balance_of(from_address)
        if balance < amount:
            raise InsufficientFundsError(
                "Insufficient balance for the stake.",
                context={"balance": balance, "stake": amount},
            )
        self._balances[from_address] = balance - amount
        self.escrow_balance += amount

    def release(self, to_address: str, amount: int) -> None:
        """Pay out of escrow. Hooks run after the books are updated and may call back into the ledger."""
        if amount > self.escrow_balance:
            raise InsufficientFundsError("Escrow cannot cover this payout.")
        self.escrow_balance -= amount
        self._balances[to_address] = self.balance_of(to_address) + amount
        for hook in list(self._transfer_hooks):
            hook(to_address, amount)

    def add_transfer_hook(self, hook: TransferHook) -> None:
        self._transfer_hooks.append(hook)

    def snapshot(self) -> tuple[dict[str, int], int]:
        return dict(self._balances), self.escrow_balance

    def restore(self, snapshot: tuple[dict[str, int], int]) -> None:
        balances, self.escrow_balance = snapshot
        self._balances = dict(balances)


class SettlementEngine:
    def __init__(
        self,
        ledger: GameLedger,
        treasury: Treasury,
        substrate: ConfidentialSubstrate,
        events: EventBus,
    ) -> None:
        self.ledger = ledger
        self.treasury = treasury
        self.substrate = substrate
        self.events = events

    def cancel_game(self, game: Game, sender: str) -> None:
        """Creator backs out before anyone joined: full refund, game becomes CANCELLED."""
        if sender != game.player1:
            raise NotAPlayerError("Only the creator can cancel this game.", context={"game_id": game.game_id})
        if game.player2 is not None:
            raise GameStateError("Cannot cancel a game that already has two players.")
        if game.is_terminal:
            raise GameStateError("Game is already finished.")

        game.winner = Winner.CANCELLED
        refund = game.stake
        game.stake = 0
        if refund > 0:
            self.treasury.release(game.player1, refund)
        logger.info("Game %s cancelled, refunded %s to %s", game.game_id, refund, game.player1)
        self.events.emit(EventName.GAME_CANCELLED, game.game_id)

    def claim_timeout(self, game: Game, sender: str, now: datetime) -> Winner:
        """
        End a stalled game.

        Whoever completed their move for the pending round wins. If both or neither did, it is a draw.
        """
        if game.is_terminal:
            raise GameStateError("Game is already finished.")
        if game.player2 is None:
            raise GameStateError("Game has no opponent yet, cancel it instead.")
        if not game.has_player(sender):
            raise NotAPlayerError("You are not a player in this game.", context={"game_id": game.game_id})
        if now <= game.timeout_deadline:
            raise GameStateError(
                "Timeout has not been reached.",
                context={"deadline": game.timeout_deadline.isoformat()},
            )

        move1, move2 = self.ledger.moves_for(game)
        if move1.is_made and not move2.is_made:
            winner = Winner.PLAYER1
        elif move2.is_made and not move1.is_made:
            winner = Winner.PLAYER2
        else:
            winner = Winner.DRAW

        self.ledger.clear_moves(game)
        game.awaiting_state_finalization = False
        game.last_action_at = now
        self.finish_game(game, winner)
        self.events.emit(
            EventName.GAME_TIMEOUT,
            game.game_id,
            player=game.player_for(winner),
            winner=int(winner),
        )
        return winner

    def finish_game(self, game: Game, winner: Winner) -> None:
        """Mark terminal, open the board for decryption, pay out."""
        game.winner = winner
        self.substrate.make_publicly_decryptable(*flatten(game.board))
        self.distribute_prizes(game)

    def distribute_prizes(self, game: Game) -> dict[str, int]:
        """
        Winner takes the pot. A draw splits it, odd remainder to player1.
        Returns the payouts made (empty for zero-stake games or when the stake was already paid out).
        """
        stake = game.stake
        game.stake = 0
        if stake == 0:
            return {}

        pot = 2 * stake
        winner_address = game.player_for(game.winner)
        if game.player2 is None:
            payouts = {game.player1: stake}
        elif winner_address is not None:
            payouts = {winner_address: pot}
        else:
            player2_share = pot // 2
            payouts = {game.player1: pot - player2_share, game.player2: player2_share}

        for address, amount in payouts.items():
            self.treasury.release(address, amount)
        logger.info("Game %s settled: %s", game.game_id, payouts)
        return payouts
