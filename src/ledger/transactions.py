"""
Transaction submission interface over the GameService.

`call` queues a state-changing action and returns a transaction hash. Transactions execute one at a time, in
submission order, either immediately (auto_mine) or when `mine()` is called. A business-rule failure does not raise
at the caller: the transaction is recorded as reverted, with its reason, and every change it made is rolled back
(see `GameService.atomic`), like an on-ledger revert.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from src.api.models import (
    CancelGameRequest,
    ClaimTimeoutRequest,
    FinalizeGameStateRequest,
    FinalizeMoveRequest,
    JoinGameRequest,
    RevealBoardRequest,
    StartGameRequest,
    SubmitMoveRequest,
)
from src.core.exceptions import GameError, InvalidRequestError
from src.core.shared_types import Action, EventName, TxStatus, View
from src.game.events import EventListener, GameEvent
from src.services.game_service import GameService

logger = logging.getLogger(__name__)

# action -> (request model, GameService method name). The sender is passed as `player` where the model has one.
ACTIONS: dict[Action, tuple[type[BaseModel], str]] = {
    Action.START_GAME: (StartGameRequest, "start_game"),
    Action.JOIN_GAME: (JoinGameRequest, "join_game"),
    Action.SUBMIT_MOVE: (SubmitMoveRequest, "submit_move"),
    Action.FINALIZE_MOVE: (FinalizeMoveRequest, "finalize_move"),
    Action.FINALIZE_GAME_STATE: (FinalizeGameStateRequest, "finalize_game_state"),
    Action.REVEAL_BOARD: (RevealBoardRequest, "reveal_board"),
    Action.CANCEL_GAME: (CancelGameRequest, "cancel_game"),
    Action.CLAIM_TIMEOUT: (ClaimTimeoutRequest, "claim_timeout"),
}


@dataclass
class Transaction:
    tx_hash: str
    sender: str
    action: Action
    args: dict[str, Any]
    status: TxStatus = TxStatus.PENDING
    result: Any = None
    revert_reason: str | None = None
    block_number: int | None = None


class LocalChain:
    def __init__(self, service: GameService, auto_mine: bool = True) -> None:
        self.service = service
        self.auto_mine = auto_mine
        self.block_number = 0
        self._nonce = 0
        self._transactions: dict[str, Transaction] = {}
        self._mempool: list[str] = []

    # --- writes ---
    def call(self, sender: str, action: Action | str, **args: Any) -> str:
        action = Action(action)
        self._nonce += 1
        tx_hash = "0x" + hashlib.sha256(f"{self._nonce}:{sender}:{action}".encode()).hexdigest()
        self._transactions[tx_hash] = Transaction(tx_hash, sender, action, dict(args))
        self._mempool.append(tx_hash)
        logger.debug("Queued %s from %s as %s", action, sender, tx_hash)
        if self.auto_mine:
            self.mine()
        return tx_hash

    def mine(self) -> int:
        """Execute every queued transaction in order. Returns how many were executed."""
        executed = 0
        while self._mempool:
            tx = self._transactions[self._mempool.pop(0)]
            self.block_number += 1
            tx.block_number = self.block_number
            self._execute(tx)
            executed += 1
        return executed

    def drop(self, tx_hash: str) -> None:
        """Forget a queued transaction, as if the network never included it."""
        if tx_hash in self._mempool:
            self._mempool.remove(tx_hash)
            del self._transactions[tx_hash]

    # --- transaction status ---
    def get_status(self, tx_hash: str) -> TxStatus:
        tx = self._transactions.get(tx_hash)
        return tx.status if tx else TxStatus.NOT_FOUND

    def get_receipt(self, tx_hash: str) -> Transaction | None:
        return self._transactions.get(tx_hash)

    def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 60.0,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Transaction:
        """Poll until the transaction leaves the mempool. Raises TimeoutError if it does not, LookupError if dropped."""
        waited = 0.0
        while True:
            status = self.get_status(tx_hash)
            if status == TxStatus.NOT_FOUND:
                raise LookupError(f"Transaction {tx_hash} not found")
            if status != TxStatus.PENDING:
                return self._transactions[tx_hash]
            if waited >= timeout:
                raise TimeoutError(f"Transaction {tx_hash} still pending after {timeout}s")
            sleep(poll_interval)
            waited += poll_interval

    def transactions(self, action: Action | None = None, status: TxStatus | None = None) -> list[Transaction]:
        return [
            tx
            for tx in self._transactions.values()
            if (action is None or tx.action == action) and (status is None or tx.status == status)
        ]

    # --- reads ---
    def read(self, view: View | str, **args: Any) -> Any:
        view = View(view)
        return getattr(self.service, view.value)(**args)

    def get_events(self, game_id: int, name: EventName | None = None) -> list[GameEvent]:
        """The ledger's event log for one game, oldest first."""
        return self.service.events.events_for(game_id, name)

    def subscribe(self, listener: EventListener) -> None:
        self.service.events.subscribe(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        self.service.events.unsubscribe(listener)

    # -- Internal helpers --
    def _execute(self, tx: Transaction) -> None:
        request_model, method_name = ACTIONS[tx.action]
        try:
            request = request_model.model_validate({**tx.args, "player": tx.sender})
            with self.service.atomic():
                tx.result = getattr(self.service, method_name)(request)
            tx.status = TxStatus.SUCCESS
        except ValidationError as e:
            self._revert(tx, InvalidRequestError(str(e)).message)
        except GameError as e:
            self._revert(tx, e.message)

    def _revert(self, tx: Transaction, reason: str) -> None:
        tx.status = TxStatus.REVERTED
        tx.revert_reason = reason
        logger.info("Transaction %s (%s) reverted: %s", tx.tx_hash, tx.action, reason)
