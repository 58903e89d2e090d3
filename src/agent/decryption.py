"""
Client-side access to the confidential substrate: input encryption and oracle decryption.

Oracle failures come back as RelayerError so the retry policy can tell infrastructure trouble (5xx, 429) from
requests that will never succeed (403, 404).
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from src.agent.retry import RELAYER_POLICY, RetryPolicy, with_retry
from src.core.exceptions import OracleError, RelayerError
from src.core.shared_types import Winner
from src.fhe.encrypted import ConfidentialSubstrate, EncryptedInput, Handle
from src.fhe.oracle import DecryptionOracle, DecryptionResult

logger = logging.getLogger(__name__)

STATUS_TEXT = {
    400: "Bad request",
    403: "Forbidden",
    404: "Not found",
    429: "Too many requests",
    500: "Internal server error",
    502: "Bad gateway",
    503: "Service unavailable",
    504: "Gateway timeout",
}


@dataclass(frozen=True)
class DecryptedGameState:
    winner: Winner
    collision: bool
    proof: str


@dataclass(frozen=True)
class DecryptedBoard:
    values: list[int]
    proof: str


def to_relayer_error(error: OracleError) -> RelayerError:
    status_text = STATUS_TEXT.get(error.status_code, "Unknown error") if error.status_code else None
    if error.status_code:
        message = f"Relayer request failed ({error.status_code} {status_text})"
    else:
        message = "Relayer request failed"
    return RelayerError(message, status_code=error.status_code, status_text=status_text, relayer_message=error.message)


class RelayerClient:
    def __init__(
        self,
        substrate: ConfidentialSubstrate,
        oracle: DecryptionOracle,
        player_address: str,
        policy: RetryPolicy = RELAYER_POLICY,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.substrate = substrate
        self.oracle = oracle
        self.player_address = player_address
        self.policy = policy
        self.sleep = sleep
        self.rng = rng

    def encrypt_move(self, x: int, y: int) -> EncryptedInput:
        """Encrypt (x, y) bound to our address, ready for submit_move."""
        return self.substrate.encrypt_input(self.player_address, [x, y])

    def decrypt_bool(self, handle: Handle) -> tuple[bool, str]:
        result = self._decrypt([handle], "decrypt flag")
        return bool(result.clear_values[handle]), result.proof

    def decrypt_game_state(self, winner_handle: Handle, collision_handle: Handle) -> DecryptedGameState:
        result = self._decrypt([winner_handle, collision_handle], "decrypt game state")
        return DecryptedGameState(
            winner=Winner(result.clear_values[winner_handle]),
            collision=bool(result.clear_values[collision_handle]),
            proof=result.proof,
        )

    def decrypt_board(self, handles: Sequence[Handle]) -> DecryptedBoard:
        result = self._decrypt(list(handles), "decrypt board")
        return DecryptedBoard(values=result.values_in_order(), proof=result.proof)

    def user_decrypt(self, handle: Handle) -> int:
        """Private decryption of a handle shared with us through the ACL. No proof needed, nothing goes on-ledger."""
        result = self._decrypt([handle], "user decrypt", requester=self.player_address)
        return result.clear_values[handle]

    # -- Internal helpers --
    def _decrypt(self, handles: list[Handle], description: str, requester: str | None = None) -> DecryptionResult:
        def request() -> DecryptionResult:
            try:
                return self.oracle.request_decryption(handles, requester=requester)
            except OracleError as e:
                raise to_relayer_error(e) from e

        return with_retry(request, self.policy, sleep=self.sleep, rng=self.rng, description=description)
