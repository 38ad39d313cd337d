"""Claim proof verification.

A claim is authorized by an Ed25519 signature from the collection's signer over
``sha256(recipient || nft_id_le)``. The program never verifies the signature
itself: it requires that the native Ed25519 program already checked it inside
the same transaction, and then confirms that what was checked is exactly
(presented proof, registered signer, expected digest).

Checks, in order:

1. the sibling instruction belongs to the native verifier     -> WrongVerifier
2. its data parses as a single-signature record               -> Malformed
3. the record reads only from its own instruction             -> Malformed
4. attested signature == presented proof                      -> Mismatch
5. attested public key == registered signer                   -> Mismatch
6. attested message == digest (so exactly 32 bytes)           -> Mismatch

Step 3 blocks a record whose offsets point into some other instruction of the
transaction: the native program would then have checked data the ticket program
never sees.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ticketmint.codec import CURRENT_INSTRUCTION, Attestation, claim_digest, parse_sibling_record
from ticketmint.errors import Malformed, MalformedRecord, Mismatch, WrongVerifier
from ticketmint.hardening import CryptoUtils
from ticketmint.instructions import Instruction
from ticketmint.keys import ED25519_PROGRAM_ID, Pubkey
from ticketmint.observability import Layer, get_logger

logger = get_logger("verifier", Layer.VERIFIER)


class NativeVerifier(ABC):
    """The host facility whose records a proof is checked against."""

    program_id: Pubkey

    @abstractmethod
    def parse(self, data: bytes) -> Attestation:
        """Decode a verification record, raising MalformedRecord on bad input."""


class Ed25519NativeVerifier(NativeVerifier):
    program_id = ED25519_PROGRAM_ID

    def parse(self, data: bytes) -> Attestation:
        return parse_sibling_record(data)


class ProofVerifier:
    """Checks a claim proof against a sibling verification instruction."""

    def __init__(self, native: Optional[NativeVerifier] = None):
        self.native = native or Ed25519NativeVerifier()

    def verify(
        self,
        proof: bytes,
        recipient: Pubkey,
        nft_id: int,
        expected_signer: Pubkey,
        sibling: Instruction,
        sibling_index: int = 0,
    ) -> None:
        """Return normally when the proof is valid, else raise an InvalidProof subtype."""
        if sibling.program_id != self.native.program_id:
            logger.debug(
                "sibling instruction not from native verifier",
                program_id=str(sibling.program_id),
            )
            raise WrongVerifier(f"instruction {sibling_index} is owned by {sibling.program_id}")

        try:
            attestation = self.native.parse(sibling.data)
        except MalformedRecord as ex:
            logger.debug("sibling record malformed", reason=str(ex))
            raise Malformed(str(ex)) from ex

        allowed = (CURRENT_INSTRUCTION, sibling_index)
        for index in attestation.offsets.instruction_indices:
            if index not in allowed:
                logger.debug("sibling record references another instruction", index=index)
                raise Malformed(f"record reads from instruction {index}")

        expected = claim_digest(recipient, nft_id)
        checks = (
            ("signature", attestation.signature, proof),
            ("public key", attestation.public_key, expected_signer.to_bytes()),
            ("message", attestation.message, expected),
        )
        for what, attested, wanted in checks:
            if not CryptoUtils.secure_compare(attested, wanted):
                logger.debug("attested value differs", field=what, nft_id=nft_id)
                raise Mismatch(f"attested {what} differs")

        logger.debug("proof accepted", nft_id=nft_id, recipient=str(recipient))
