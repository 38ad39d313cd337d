"""
Proof verifier tests.

The verifier never checks Ed25519 math itself; it checks that the sibling
record is from the native program, reads only its own data, and attests
exactly (presented proof, registered signer, expected digest).
"""

from __future__ import annotations

import struct

import pytest

from ticketmint.codec import Attestation, SignatureOffsets, claim_digest, encode_sibling_record
from ticketmint.errors import InvalidProof, Malformed, MalformedRecord, Mismatch, WrongVerifier
from ticketmint.instructions import Instruction
from ticketmint.keys import ED25519_PROGRAM_ID, Pubkey
from ticketmint.verifier import NativeVerifier, ProofVerifier

from conftest import keypair


SIGNER = keypair(2)
RECIPIENT = keypair(10).pubkey
NFT_ID = 17


def _sibling(signature=None, public_key=None, message=None, program_id=ED25519_PROGRAM_ID):
    message = claim_digest(RECIPIENT, NFT_ID) if message is None else message
    signature = SIGNER.sign(message) if signature is None else signature
    public_key = SIGNER.pubkey if public_key is None else public_key
    return Instruction(program_id=program_id, data=encode_sibling_record(signature, public_key, message))


def _proof():
    return SIGNER.sign(claim_digest(RECIPIENT, NFT_ID))


class TestHappyPath:

    def test_valid_proof(self):
        ProofVerifier().verify(_proof(), RECIPIENT, NFT_ID, SIGNER.pubkey, _sibling())

    def test_explicit_self_index_is_accepted(self):
        sibling = _sibling()
        data = bytearray(sibling.data)
        for at in (4, 8, 14):
            data[at : at + 2] = struct.pack("<H", 0)
        sibling = Instruction(program_id=ED25519_PROGRAM_ID, data=bytes(data))
        ProofVerifier().verify(_proof(), RECIPIENT, NFT_ID, SIGNER.pubkey, sibling, sibling_index=0)


class TestWrongVerifier:

    def test_other_program(self):
        foreign = _sibling(program_id=Pubkey(b"\x07" * 32))
        with pytest.raises(WrongVerifier) as exc:
            ProofVerifier().verify(_proof(), RECIPIENT, NFT_ID, SIGNER.pubkey, foreign)
        assert exc.value.code == 6000

    def test_checked_before_parsing(self):
        garbage = Instruction(program_id=Pubkey(b"\x07" * 32), data=b"")
        with pytest.raises(WrongVerifier):
            ProofVerifier().verify(_proof(), RECIPIENT, NFT_ID, SIGNER.pubkey, garbage)


class TestMalformed:

    @pytest.mark.parametrize("data", [b"", b"\x01" * 15, bytes([2, 0]) + bytes(14 + 128)])
    def test_unparseable_record(self, data):
        sibling = Instruction(program_id=ED25519_PROGRAM_ID, data=data)
        with pytest.raises(Malformed):
            ProofVerifier().verify(_proof(), RECIPIENT, NFT_ID, SIGNER.pubkey, sibling)

    @pytest.mark.parametrize("field_at", [4, 8, 14])
    def test_index_into_other_instruction(self, field_at):
        """The native program would have checked bytes the ticket program never sees."""
        data = bytearray(_sibling().data)
        data[field_at : field_at + 2] = struct.pack("<H", 1)
        sibling = Instruction(program_id=ED25519_PROGRAM_ID, data=bytes(data))
        with pytest.raises(Malformed):
            ProofVerifier().verify(_proof(), RECIPIENT, NFT_ID, SIGNER.pubkey, sibling, sibling_index=0)


class TestMismatch:

    def test_proof_differs_from_attested_signature(self):
        other_proof = SIGNER.sign(claim_digest(RECIPIENT, NFT_ID + 1))
        with pytest.raises(Mismatch):
            ProofVerifier().verify(other_proof, RECIPIENT, NFT_ID, SIGNER.pubkey, _sibling())

    def test_attested_key_is_not_registered_signer(self):
        rogue = keypair(66)
        message = claim_digest(RECIPIENT, NFT_ID)
        proof = rogue.sign(message)
        sibling = _sibling(signature=proof, public_key=rogue.pubkey)
        with pytest.raises(Mismatch):
            ProofVerifier().verify(proof, RECIPIENT, NFT_ID, SIGNER.pubkey, sibling)

    def test_record_for_other_recipient(self):
        """Substitution: valid signature for a different (recipient, id) pair."""
        other = keypair(11).pubkey
        message = claim_digest(other, NFT_ID)
        proof = SIGNER.sign(message)
        sibling = _sibling(signature=proof, message=message)
        with pytest.raises(Mismatch):
            ProofVerifier().verify(proof, RECIPIENT, NFT_ID, SIGNER.pubkey, sibling)

    def test_record_for_other_id(self):
        message = claim_digest(RECIPIENT, NFT_ID + 1)
        proof = SIGNER.sign(message)
        sibling = _sibling(signature=proof, message=message)
        with pytest.raises(Mismatch):
            ProofVerifier().verify(proof, RECIPIENT, NFT_ID, SIGNER.pubkey, sibling)

    def test_undigested_message(self):
        """Signing the raw 36-byte message instead of its digest is rejected."""
        raw = RECIPIENT.to_bytes() + struct.pack("<I", NFT_ID)
        proof = SIGNER.sign(raw)
        sibling = _sibling(signature=proof, message=raw)
        with pytest.raises(Mismatch):
            ProofVerifier().verify(proof, RECIPIENT, NFT_ID, SIGNER.pubkey, sibling)

    def test_all_failures_are_invalid_proof(self):
        with pytest.raises(InvalidProof):
            ProofVerifier().verify(b"\x00" * 64, RECIPIENT, NFT_ID, SIGNER.pubkey, _sibling())


class _FixedAttestation(NativeVerifier):
    """Native verifier stand-in returning a preset attestation."""

    program_id = ED25519_PROGRAM_ID

    def __init__(self, attestation=None, error=None):
        self.attestation = attestation
        self.error = error

    def parse(self, data):
        if self.error:
            raise self.error
        return self.attestation


class TestInjectedNativeVerifier:

    OFFSETS = SignatureOffsets(16, 0xFFFF, 80, 0xFFFF, 112, 32, 0xFFFF)

    def test_uses_injected_parser(self):
        proof = _proof()
        native = _FixedAttestation(
            Attestation(proof, SIGNER.pubkey.to_bytes(), claim_digest(RECIPIENT, NFT_ID), self.OFFSETS)
        )
        sibling = Instruction(program_id=ED25519_PROGRAM_ID, data=b"opaque")
        ProofVerifier(native).verify(proof, RECIPIENT, NFT_ID, SIGNER.pubkey, sibling)

    def test_parser_error_becomes_malformed(self):
        native = _FixedAttestation(error=MalformedRecord("bad"))
        sibling = Instruction(program_id=ED25519_PROGRAM_ID, data=b"opaque")
        with pytest.raises(Malformed):
            ProofVerifier(native).verify(_proof(), RECIPIENT, NFT_ID, SIGNER.pubkey, sibling)

    def test_message_longer_than_digest(self):
        proof = _proof()
        expected = claim_digest(RECIPIENT, NFT_ID)
        native = _FixedAttestation(
            Attestation(proof, SIGNER.pubkey.to_bytes(), expected + b"\x00", self.OFFSETS)
        )
        sibling = Instruction(program_id=ED25519_PROGRAM_ID, data=b"opaque")
        with pytest.raises(Mismatch):
            ProofVerifier(native).verify(proof, RECIPIENT, NFT_ID, SIGNER.pubkey, sibling)
