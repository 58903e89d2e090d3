"""
In-process confidential-compute substrate.

Holds plaintexts behind opaque handles and only ever hands out new handles. Callers combine EncryptedValue objects with
`eq`, `lt`, `&`, `|`, `~` and `select`, so engine code reads like ordinary branching while every step stays oblivious.
Cleartexts leave the substrate only through the DecryptionOracle (see oracle.py), together with a proof that
`verify_decryption` can check against the exact handles.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterable, Iterator, Sequence

from src.core.exceptions import InvalidRequestError, ProofVerificationError

Handle = str
ZERO_HANDLE: Handle = "0x" + "00" * 32
UINT8_MAX = 255


class EncryptedType(StrEnum):
    EBOOL = "ebool"
    EUINT8 = "euint8"


@dataclass(frozen=True)
class EncryptedValue:
    handle: Handle
    kind: EncryptedType
    substrate: ConfidentialSubstrate = field(compare=False, repr=False)

    def eq(self, other: EncryptedValue) -> EncryptedValue:
        return self.substrate.eq(self, other)

    def lt(self, other: EncryptedValue) -> EncryptedValue:
        return self.substrate.lt(self, other)

    def select(self, if_true: EncryptedValue, if_false: EncryptedValue) -> EncryptedValue:
        """self must be an ebool: pick `if_true` or `if_false` without revealing which."""
        return self.substrate.select(self, if_true, if_false)

    def __and__(self, other: EncryptedValue) -> EncryptedValue:
        return self.substrate.and_(self, other)

    def __or__(self, other: EncryptedValue) -> EncryptedValue:
        return self.substrate.or_(self, other)

    def __invert__(self) -> EncryptedValue:
        return self.substrate.not_(self)


@dataclass(frozen=True)
class EncryptedInput:
    """What a client sends: handles for its encrypted values plus a proof that it owns them."""

    handles: tuple[Handle, ...]
    input_proof: str


class ConfidentialSubstrate:
    """Opaque value store + boolean/compare/select circuit evaluator + access control list."""

    def __init__(self, secret: bytes | None = None) -> None:
        self._secret = secret or secrets.token_bytes(32)
        self._plaintexts: dict[Handle, int] = {}
        self._kinds: dict[Handle, EncryptedType] = {}
        self._public: set[Handle] = set()
        self._acl: dict[Handle, set[str]] = {}
        self._counter = 0
        self.operation_count = 0
        self._recording: list[set[Handle]] = []

    # --- value creation ---
    def as_ebool(self, value: bool) -> EncryptedValue:
        """Trivial encryption of a cleartext known to everyone (constants)."""
        return self._store(int(bool(value)), EncryptedType.EBOOL)

    def as_euint8(self, value: int) -> EncryptedValue:
        self._check_uint8(value)
        return self._store(value, EncryptedType.EUINT8)

    def encrypt_input(self, owner: str, values: Sequence[int]) -> EncryptedInput:
        """Client-side encryption of uint8 values, bound to the submitting address."""
        handles = []
        for value in values:
            self._check_uint8(value)
            handles.append(self._store(value, EncryptedType.EUINT8).handle)
        return EncryptedInput(tuple(handles), self._sign("input", owner, handles))

    def from_external(self, owner: str, handles: Sequence[Handle], input_proof: str) -> list[EncryptedValue]:
        """Accept client-encrypted handles only when the proof binds them to `owner`."""
        expected = self._sign("input", owner, list(handles))
        if not hmac.compare_digest(expected, input_proof):
            raise ProofVerificationError("Input proof does not match the submitted handles.")
        return [self._wrap(handle) for handle in handles]

    # --- oblivious operations ---
    def eq(self, a: EncryptedValue, b: EncryptedValue) -> EncryptedValue:
        return self._op(EncryptedType.EBOOL, int(self._plain(a) == self._plain(b)))

    def lt(self, a: EncryptedValue, b: EncryptedValue) -> EncryptedValue:
        return self._op(EncryptedType.EBOOL, int(self._plain(a) < self._plain(b)))

    def and_(self, a: EncryptedValue, b: EncryptedValue) -> EncryptedValue:
        self._require_bool(a, b)
        return self._op(EncryptedType.EBOOL, self._plain(a) & self._plain(b))

    def or_(self, a: EncryptedValue, b: EncryptedValue) -> EncryptedValue:
        self._require_bool(a, b)
        return self._op(EncryptedType.EBOOL, self._plain(a) | self._plain(b))

    def not_(self, a: EncryptedValue) -> EncryptedValue:
        self._require_bool(a)
        return self._op(EncryptedType.EBOOL, 1 - self._plain(a))

    def select(self, condition: EncryptedValue, if_true: EncryptedValue, if_false: EncryptedValue) -> EncryptedValue:
        self._require_bool(condition)
        if if_true.kind != if_false.kind:
            raise TypeError(f"select branches differ in type: {if_true.kind} vs {if_false.kind}")
        chosen = if_true if self._plain(condition) else if_false
        return self._op(if_true.kind, self._plain(chosen))

    # --- access control ---
    def make_publicly_decryptable(self, *values: EncryptedValue) -> None:
        for value in values:
            self._public.add(value.handle)

    def is_publicly_decryptable(self, handle: Handle) -> bool:
        return handle in self._public

    def allow(self, value: EncryptedValue, address: str) -> None:
        self._acl.setdefault(value.handle, set()).add(address)

    def is_allowed(self, handle: Handle, address: str) -> bool:
        return address in self._acl.get(handle, set())

    def access_snapshot(self) -> tuple[set[Handle], dict[Handle, set[str]]]:
        return set(self._public), {handle: set(addresses) for handle, addresses in self._acl.items()}

    def restore_access(self, snapshot: tuple[set[Handle], dict[Handle, set[str]]]) -> None:
        public, acl = snapshot
        self._public = set(public)
        self._acl = {handle: set(addresses) for handle, addresses in acl.items()}

    def knows(self, handle: Handle) -> bool:
        return handle in self._plaintexts

    def kind_of(self, handle: Handle) -> EncryptedType:
        return self._kinds[handle]

    @property
    def live_handle_count(self) -> int:
        return len(self._plaintexts)

    # --- handle lifetime ---
    @contextmanager
    def transient(self) -> Iterator[set[Handle]]:
        """
        Scope for intermediate values.

        Handles created inside the block are released when it exits, except the ones the caller adds to the yielded
        set. Kept handles stay owned by an enclosing block, if there is one.
        """
        created: set[Handle] = set()
        keep: set[Handle] = set()
        self._recording.append(created)
        try:
            yield keep
        finally:
            self._recording.pop()
            self.release(created - keep)
            if self._recording:
                self._recording[-1].update(created & keep)

    def release(self, handles: Iterable[Handle]) -> None:
        """Forget handles nothing refers to any more. Unknown handles are ignored."""
        for handle in handles:
            self._plaintexts.pop(handle, None)
            self._kinds.pop(handle, None)
            self._public.discard(handle)
            self._acl.pop(handle, None)

    # --- decryption proofs ---
    def sign_decryption(self, handles: Sequence[Handle], clear_values: Sequence[int]) -> str:
        return self._sign("decrypt", list(zip(handles, clear_values)))

    def verify_decryption(self, handles: Sequence[Handle], clear_values: Sequence[int], proof: str) -> None:
        """Raise ProofVerificationError unless `proof` binds exactly these cleartexts to exactly these handles."""
        if len(handles) != len(clear_values):
            raise ProofVerificationError("Handle and cleartext counts differ.")
        expected = self.sign_decryption(handles, [int(v) for v in clear_values])
        if not hmac.compare_digest(expected, proof):
            raise ProofVerificationError(
                "Decryption proof does not match the committed handles.",
                context={"handles": len(handles)},
            )

    def reveal(self, handle: Handle) -> int:
        """Plaintext lookup for the oracle. Nothing else in the code base should call this."""
        return self._plaintexts[handle]

    # -- Internal helpers --
    def _op(self, kind: EncryptedType, plaintext: int) -> EncryptedValue:
        self.operation_count += 1
        return self._store(plaintext, kind)

    def _store(self, plaintext: int, kind: EncryptedType) -> EncryptedValue:
        self._counter += 1
        digest = hashlib.sha256(self._secret + self._counter.to_bytes(8, "big")).hexdigest()
        handle = f"0x{digest}"
        self._plaintexts[handle] = plaintext
        self._kinds[handle] = kind
        if self._recording:
            self._recording[-1].add(handle)
        return EncryptedValue(handle, kind, self)

    def _wrap(self, handle: Handle) -> EncryptedValue:
        if handle not in self._plaintexts:
            raise InvalidRequestError(f"Unknown ciphertext handle: {handle!r}")
        return EncryptedValue(handle, self._kinds[handle], self)

    def _plain(self, value: EncryptedValue) -> int:
        return self._plaintexts[value.handle]

    def _sign(self, *parts: object) -> str:
        payload = json.dumps(parts, separators=(",", ":")).encode()
        return "0x" + hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    @staticmethod
    def _require_bool(*values: EncryptedValue) -> None:
        for value in values:
            if value.kind != EncryptedType.EBOOL:
                raise TypeError(f"Expected an ebool operand, got {value.kind}")

    @staticmethod
    def _check_uint8(value: int) -> None:
        if not 0 <= value <= UINT8_MAX:
            raise InvalidRequestError(f"Value {value} does not fit in a uint8.")


def handles_of(values: Iterable[EncryptedValue]) -> list[Handle]:
    return [value.handle for value in values]
