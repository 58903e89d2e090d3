"""Unit tests for src/ledger/transactions.py"""

import pytest

from src.core.exceptions import GameStateError
from src.core.shared_types import Action, EventName, TxStatus, View, Winner
from src.fhe.oracle import DecryptionOracle
from src.ledger.transactions import LocalChain
from src.services.game_service import GameService
from tests.helpers import ALICE, BOB, STARTING_BALANCE, GameDriver


def test_successful_call(chain: LocalChain) -> None:
    tx_hash = chain.call(ALICE, Action.START_GAME, stake=10)
    assert chain.get_status(tx_hash) == TxStatus.SUCCESS

    receipt = chain.get_receipt(tx_hash)
    assert receipt is not None
    assert receipt.result.game_id == 0
    assert receipt.block_number == 1
    assert chain.read(View.BALANCE_OF, player=ALICE) == STARTING_BALANCE - 10


def test_sender_is_the_player(chain: LocalChain) -> None:
    """A `player` passed in the arguments is overridden by the sender."""
    chain.call(ALICE, Action.START_GAME, player=BOB)
    assert chain.read(View.GET_GAME, game_id=0).player1 == ALICE


@pytest.mark.parametrize(
    "action, args, reason",
    [
        (Action.JOIN_GAME, {"game_id": 0}, "Cannot join your own game."),
        (Action.CANCEL_GAME, {"game_id": 7}, "Game with game_id=7 not found."),
        (Action.START_GAME, {"stake": 10_000}, "Insufficient balance for the stake."),
    ],
)
def test_business_rule_failures_revert(chain: LocalChain, action: Action, args: dict, reason: str) -> None:
    chain.call(ALICE, Action.START_GAME)
    tx_hash = chain.call(ALICE, action, **args)
    assert chain.get_status(tx_hash) == TxStatus.REVERTED
    assert chain.get_receipt(tx_hash).revert_reason == reason


def test_malformed_arguments_revert(chain: LocalChain) -> None:
    tx_hash = chain.call(ALICE, Action.START_GAME, stake=-1)
    assert chain.get_status(tx_hash) == TxStatus.REVERTED
    assert "stake" in chain.get_receipt(tx_hash).revert_reason


def test_malformed_handle_reverts(chain: LocalChain) -> None:
    tx_hash = chain.call(ALICE, Action.SUBMIT_MOVE, game_id=0, x_handle="0x1", y_handle="0x2", input_proof="0x")
    assert chain.get_status(tx_hash) == TxStatus.REVERTED
    assert "ciphertext handle" in chain.get_receipt(tx_hash).revert_reason


def test_unknown_hash(chain: LocalChain) -> None:
    assert chain.get_status("0xdead") == TxStatus.NOT_FOUND
    assert chain.get_receipt("0xdead") is None


def test_revert_rolls_back_partial_changes(
    chain: LocalChain, service: GameService, driver: GameDriver, oracle: DecryptionOracle
) -> None:
    """A payout hook failing after the stake was zeroed and the board opened leaves no trace of the call."""
    game_id = driver.new_game(stake=10)
    for a, b in [((0, 0), (1, 0)), ((1, 1), (2, 0)), ((2, 2), (3, 1))]:
        driver.play_round(game_id, a, b)
    driver.submit(game_id, ALICE, 3, 3)
    driver.submit(game_id, BOB, 0, 2)
    driver.finalize(game_id, ALICE)
    driver.finalize(game_id, BOB)

    def refuse_payout(address: str, amount: int) -> None:
        raise GameStateError("Payout refused.")

    service.treasury.add_transfer_hook(refuse_payout)
    balances = (service.balance_of(ALICE), service.balance_of(BOB), service.treasury.escrow_balance)
    event_count = len(service.events.history)
    game = service.get_game(game_id)
    decrypted = oracle.request_decryption([game.encrypted_winner, game.encrypted_collision])
    assert decrypted.values_in_order() == [Winner.PLAYER1, 0]

    tx_hash = chain.call(
        BOB, Action.FINALIZE_GAME_STATE, game_id=game_id, winner=1, collision=False, proof=decrypted.proof
    )
    assert chain.get_status(tx_hash) == TxStatus.REVERTED
    assert chain.get_receipt(tx_hash).revert_reason == "Payout refused."

    game = service.get_game(game_id)
    assert game.winner == Winner.NONE
    assert game.awaiting_state_finalization
    assert game.stake == 10
    assert (service.balance_of(ALICE), service.balance_of(BOB), service.treasury.escrow_balance) == balances
    assert len(service.events.history) == event_count
    assert not service.substrate.is_publicly_decryptable(game.encrypted_board[0][0])


# --- MEMPOOL ----
def test_pending_until_mined(service: GameService) -> None:
    chain = LocalChain(service, auto_mine=False)
    first = chain.call(ALICE, Action.START_GAME)
    second = chain.call(BOB, Action.JOIN_GAME, game_id=0)
    assert chain.get_status(first) == chain.get_status(second) == TxStatus.PENDING
    assert chain.read(View.GAME_COUNT) == 0

    # Executed in submission order
    assert chain.mine() == 2
    assert chain.get_status(first) == chain.get_status(second) == TxStatus.SUCCESS
    assert chain.read(View.GET_GAME, game_id=0).player2 == BOB
    assert [tx.tx_hash for tx in chain.transactions(action=Action.JOIN_GAME)] == [second]


def test_dropped_transaction_is_forgotten(service: GameService) -> None:
    chain = LocalChain(service, auto_mine=False)
    tx_hash = chain.call(ALICE, Action.START_GAME)
    chain.drop(tx_hash)
    assert chain.get_status(tx_hash) == TxStatus.NOT_FOUND
    assert chain.mine() == 0
    with pytest.raises(LookupError):
        chain.wait_for_receipt(tx_hash)


def test_wait_for_receipt(service: GameService) -> None:
    chain = LocalChain(service, auto_mine=False)
    tx_hash = chain.call(ALICE, Action.START_GAME)
    sleeps: list[float] = []

    def sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) == 3:
            chain.mine()

    receipt = chain.wait_for_receipt(tx_hash, timeout=10, poll_interval=2, sleep=sleep)
    assert receipt.status == TxStatus.SUCCESS
    assert sleeps == [2, 2, 2]


def test_wait_for_receipt_times_out(service: GameService) -> None:
    chain = LocalChain(service, auto_mine=False)
    tx_hash = chain.call(ALICE, Action.START_GAME)
    with pytest.raises(TimeoutError):
        chain.wait_for_receipt(tx_hash, timeout=3, poll_interval=1, sleep=lambda _: None)


# --- READS AND EVENTS ----
def test_reads_and_event_log(chain: LocalChain) -> None:
    seen: list[EventName] = []
    chain.subscribe(lambda event: seen.append(event.name))
    chain.call(ALICE, Action.START_GAME)
    chain.call(BOB, Action.JOIN_GAME, game_id=0)

    assert seen == [EventName.GAME_STARTED, EventName.PLAYER_JOINED]
    assert [event.name for event in chain.get_events(0)] == seen
    assert chain.get_events(0, EventName.PLAYER_JOINED)[0].player == BOB
    assert chain.read(View.GET_OPEN_GAMES) == []
    assert chain.read(View.GET_GAMES_BY_PLAYER, player=BOB) == [0]
    assert chain.read(View.CAN_SUBMIT_MOVE, game_id=0, player=ALICE) is True
