"""Proof codec.

Builds the canonical claim message and its digest, and reads (or writes) the
verification record that the native Ed25519 program consumes.

Claim message (36 bytes, no separator, no length prefix):

    recipient pubkey (32) || nft_id as u32 little-endian (4)

The value that must be signed is ``sha256(message)``, not the message itself.

Verification record layout (single signature):

    [0]      number of signatures (u8, must be 1)
    [1]      padding (u8)
    [2-3]    signature offset (u16 LE)
    [4-5]    signature instruction index (u16 LE)
    [6-7]    public key offset (u16 LE)
    [8-9]    public key instruction index (u16 LE)
    [10-11]  message data offset (u16 LE)
    [12-13]  message data size (u16 LE)
    [14-15]  message instruction index (u16 LE)
    [16..]   signature (64) || public key (32) || message (digest, 32)

An instruction index of 0xFFFF means "the instruction carrying this record".
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass

from ticketmint.errors import MalformedRecord
from ticketmint.hardening import Validators, require_valid
from ticketmint.keys import PUBKEY_LEN, SIGNATURE_LEN, Pubkey


NFT_ID_LEN = 4
DIGEST_LEN = 32
MESSAGE_LEN = PUBKEY_LEN + NFT_ID_LEN

SIGNATURE_COUNT_LEN = 2  # count + padding
OFFSETS_LEN = 14
HEADER_LEN = SIGNATURE_COUNT_LEN + OFFSETS_LEN
CURRENT_INSTRUCTION = 0xFFFF

_OFFSETS = struct.Struct("<7H")
_NFT_ID = struct.Struct("<I")


@dataclass(frozen=True)
class SignatureOffsets:
    """The seven little-endian u16 fields following the record prefix."""
    signature_offset: int
    signature_instruction_index: int
    public_key_offset: int
    public_key_instruction_index: int
    message_data_offset: int
    message_data_size: int
    message_instruction_index: int

    @classmethod
    def unpack(cls, data: bytes, at: int = SIGNATURE_COUNT_LEN) -> "SignatureOffsets":
        return cls(*_OFFSETS.unpack_from(data, at))

    def pack(self) -> bytes:
        return _OFFSETS.pack(
            self.signature_offset,
            self.signature_instruction_index,
            self.public_key_offset,
            self.public_key_instruction_index,
            self.message_data_offset,
            self.message_data_size,
            self.message_instruction_index,
        )

    @property
    def instruction_indices(self) -> tuple:
        return (
            self.signature_instruction_index,
            self.public_key_instruction_index,
            self.message_instruction_index,
        )


@dataclass(frozen=True)
class Attestation:
    """What a verification record claims was checked."""
    signature: bytes
    public_key: bytes
    message: bytes
    offsets: SignatureOffsets


# ---------------------------------------------------------------------------
# Claim message
# ---------------------------------------------------------------------------


def encode_nft_id(nft_id: int) -> bytes:
    require_valid(Validators.validate_u32(nft_id, "nft_id"))
    return _NFT_ID.pack(nft_id)


def build_message(recipient: Pubkey, nft_id: int) -> bytes:
    """recipient (32 bytes) followed by nft_id as u32 LE."""
    return recipient.to_bytes() + encode_nft_id(nft_id)


def digest(message: bytes) -> bytes:
    return hashlib.sha256(message).digest()


def claim_digest(recipient: Pubkey, nft_id: int) -> bytes:
    return digest(build_message(recipient, nft_id))


# ---------------------------------------------------------------------------
# Verification record
# ---------------------------------------------------------------------------


def _slice(data: bytes, offset: int, length: int, what: str) -> bytes:
    if offset + length > len(data):
        raise MalformedRecord(
            f"{what} [{offset}:{offset + length}] exceeds record length {len(data)}"
        )
    return data[offset : offset + length]


def parse_sibling_record(data: bytes) -> Attestation:
    """Extract signature, public key and signed message from a record.

    Raises MalformedRecord when the record is shorter than the header, when it
    declares anything other than exactly one signature, or when any declared
    region would read past the end of the record.
    """
    data = bytes(data)
    if len(data) < HEADER_LEN:
        raise MalformedRecord(f"record shorter than header ({len(data)} < {HEADER_LEN})")
    if data[0] != 1:
        raise MalformedRecord(f"expected exactly 1 signature, record declares {data[0]}")

    offsets = SignatureOffsets.unpack(data)
    return Attestation(
        signature=_slice(data, offsets.signature_offset, SIGNATURE_LEN, "signature"),
        public_key=_slice(data, offsets.public_key_offset, PUBKEY_LEN, "public key"),
        message=_slice(data, offsets.message_data_offset, offsets.message_data_size, "message"),
        offsets=offsets,
    )


def encode_sibling_record(signature: bytes, public_key: Pubkey, message: bytes) -> bytes:
    """Build a single-signature record whose data all lives in the record itself."""
    signature = require_valid(Validators.validate_fixed_bytes(signature, "signature", SIGNATURE_LEN))
    message = require_valid(Validators.validate_bytes(message, "message", max_length=0xFFFF))

    signature_offset = HEADER_LEN
    public_key_offset = signature_offset + SIGNATURE_LEN
    message_offset = public_key_offset + PUBKEY_LEN
    offsets = SignatureOffsets(
        signature_offset=signature_offset,
        signature_instruction_index=CURRENT_INSTRUCTION,
        public_key_offset=public_key_offset,
        public_key_instruction_index=CURRENT_INSTRUCTION,
        message_data_offset=message_offset,
        message_data_size=len(message),
        message_instruction_index=CURRENT_INSTRUCTION,
    )
    return bytes([1, 0]) + offsets.pack() + signature + public_key.to_bytes() + message
