"""Unit tests for src/fhe/encrypted.py"""

import pytest

from src.core.exceptions import InvalidRequestError, ProofVerificationError
from src.fhe.encrypted import ConfidentialSubstrate, EncryptedType, handles_of


def test_handles_are_opaque_and_unique(substrate: ConfidentialSubstrate) -> None:
    """Encrypting the same value twice gives two different handles that do not leak the value."""
    a = substrate.as_euint8(3)
    b = substrate.as_euint8(3)
    assert a.handle != b.handle
    assert a.handle.startswith("0x") and len(a.handle) == 66
    assert a.kind == EncryptedType.EUINT8


@pytest.mark.parametrize(
    "left, right, equal, less",
    [
        (0, 0, 1, 0),
        (1, 2, 0, 1),
        (3, 1, 0, 0),
        (4, 4, 1, 0),
    ],
)
def test_comparisons(substrate: ConfidentialSubstrate, left: int, right: int, equal: int, less: int) -> None:
    a, b = substrate.as_euint8(left), substrate.as_euint8(right)
    assert substrate.reveal(a.eq(b).handle) == equal
    assert substrate.reveal(a.lt(b).handle) == less
    assert a.eq(b).kind == EncryptedType.EBOOL


def test_boolean_operators(substrate: ConfidentialSubstrate) -> None:
    t, f = substrate.as_ebool(True), substrate.as_ebool(False)
    assert substrate.reveal((t & f).handle) == 0
    assert substrate.reveal((t | f).handle) == 1
    assert substrate.reveal((~f).handle) == 1
    assert substrate.reveal((~t).handle) == 0


def test_select_picks_branch_without_branching(substrate: ConfidentialSubstrate) -> None:
    """The result is always a fresh handle, whichever branch was chosen."""
    t, f = substrate.as_ebool(True), substrate.as_ebool(False)
    one, two = substrate.as_euint8(1), substrate.as_euint8(2)

    picked = t.select(one, two)
    assert picked.handle not in (one.handle, two.handle)
    assert substrate.reveal(picked.handle) == 1
    assert substrate.reveal(f.select(one, two).handle) == 2


def test_operations_are_counted(substrate: ConfidentialSubstrate) -> None:
    a, b = substrate.as_euint8(1), substrate.as_euint8(2)
    before = substrate.operation_count
    a.eq(b) & a.lt(b)
    assert substrate.operation_count - before == 3


def test_type_errors(substrate: ConfidentialSubstrate) -> None:
    number = substrate.as_euint8(1)
    flag = substrate.as_ebool(True)
    with pytest.raises(TypeError):
        _ = number & flag
    with pytest.raises(TypeError):
        number.select(flag, flag)
    with pytest.raises(TypeError):
        flag.select(number, flag)


def test_uint8_range(substrate: ConfidentialSubstrate) -> None:
    with pytest.raises(InvalidRequestError):
        substrate.as_euint8(256)
    with pytest.raises(InvalidRequestError):
        substrate.encrypt_input("0xa", [1, -1])


# --- INPUTS ----
def test_external_input_bound_to_owner(substrate: ConfidentialSubstrate) -> None:
    encrypted = substrate.encrypt_input("0xa", [1, 2])
    x, y = substrate.from_external("0xa", list(encrypted.handles), encrypted.input_proof)
    assert handles_of([x, y]) == list(encrypted.handles)

    # Same handles submitted by someone else
    with pytest.raises(ProofVerificationError):
        substrate.from_external("0xb", list(encrypted.handles), encrypted.input_proof)

    # Handles swapped
    with pytest.raises(ProofVerificationError):
        substrate.from_external("0xa", list(reversed(encrypted.handles)), encrypted.input_proof)


# --- ACCESS CONTROL AND PROOFS ----
def test_acl_and_public_decryption(substrate: ConfidentialSubstrate) -> None:
    secret = substrate.as_euint8(2)
    assert not substrate.is_publicly_decryptable(secret.handle)
    assert not substrate.is_allowed(secret.handle, "0xa")

    substrate.allow(secret, "0xa")
    assert substrate.is_allowed(secret.handle, "0xa")
    assert not substrate.is_allowed(secret.handle, "0xb")

    substrate.make_publicly_decryptable(secret)
    assert substrate.is_publicly_decryptable(secret.handle)


def test_decryption_proof_binds_values_and_handles(substrate: ConfidentialSubstrate) -> None:
    a, b = substrate.as_euint8(1), substrate.as_euint8(0)
    proof = substrate.sign_decryption([a.handle, b.handle], [1, 0])

    substrate.verify_decryption([a.handle, b.handle], [1, 0], proof)
    with pytest.raises(ProofVerificationError):
        substrate.verify_decryption([a.handle, b.handle], [0, 0], proof)
    with pytest.raises(ProofVerificationError):
        substrate.verify_decryption([b.handle, a.handle], [0, 1], proof)
    with pytest.raises(ProofVerificationError):
        substrate.verify_decryption([a.handle], [1], proof)


def test_proofs_from_another_substrate_are_rejected(substrate: ConfidentialSubstrate) -> None:
    other = ConfidentialSubstrate(secret=b"someone-else")
    value = substrate.as_ebool(True)
    forged = other.sign_decryption([value.handle], [1])
    with pytest.raises(ProofVerificationError):
        substrate.verify_decryption([value.handle], [1], forged)


# --- HANDLE LIFETIME ----
def test_transient_releases_what_is_not_kept(substrate: ConfidentialSubstrate) -> None:
    a, b = substrate.as_euint8(1), substrate.as_euint8(2)
    before = substrate.live_handle_count
    with substrate.transient() as keep:
        scratch = a.eq(b)
        result = ~scratch
        substrate.make_publicly_decryptable(scratch)
        keep.add(result.handle)

    assert substrate.live_handle_count == before + 1
    assert substrate.knows(result.handle) and substrate.reveal(result.handle) == 1
    assert not substrate.knows(scratch.handle)
    assert not substrate.is_publicly_decryptable(scratch.handle)
    # operands created outside the block are untouched
    assert substrate.knows(a.handle) and substrate.knows(b.handle)


def test_nested_transient_hands_kept_values_to_the_outer_block(substrate: ConfidentialSubstrate) -> None:
    a = substrate.as_ebool(True)
    with substrate.transient():
        with substrate.transient() as inner_keep:
            inner = ~a
            inner_keep.add(inner.handle)
        assert substrate.knows(inner.handle)
    assert not substrate.knows(inner.handle)
    assert substrate.knows(a.handle)
