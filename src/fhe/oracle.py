"""Decryption oracle: turns publicly decryptable handles into cleartexts plus a validity proof."""

import logging
from dataclasses import dataclass
from typing import Sequence

from src.core.exceptions import OracleError
from src.fhe.encrypted import ConfidentialSubstrate, Handle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecryptionResult:
    handles: tuple[Handle, ...]
    clear_values: dict[Handle, int]
    proof: str

    def values_in_order(self) -> list[int]:
        return [self.clear_values[handle] for handle in self.handles]


class DecryptionOracle:
    def __init__(self, substrate: ConfidentialSubstrate) -> None:
        self.substrate = substrate

    def request_decryption(self, handles: Sequence[Handle], requester: str | None = None) -> DecryptionResult:
        """
        Decrypt `handles` in order.

        Public handles can be decrypted by anyone. Otherwise `requester` must be on the handle's ACL.
        The proof is bound to the exact order of `handles`.
        """
        if not handles:
            raise OracleError("No handles to decrypt.", status_code=400)

        for handle in handles:
            if not self.substrate.knows(handle):
                raise OracleError(f"Unknown handle {handle}", status_code=404)
            if not self.substrate.is_publicly_decryptable(handle) and not (
                requester is not None and self.substrate.is_allowed(handle, requester)
            ):
                raise OracleError(f"Handle {handle} is not decryptable by this requester", status_code=403)

        values = [self.substrate.reveal(handle) for handle in handles]
        proof = self.substrate.sign_decryption(handles, values)
        logger.debug("Decrypted %d handle(s)", len(handles))
        return DecryptionResult(tuple(handles), dict(zip(handles, values)), proof)
