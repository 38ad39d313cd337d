"""Instruction wire format for the ticket program.

Each instruction's data is an 8-byte discriminator, ``sha256("global:<name>")[:8]``,
followed by its arguments in declaration order:

    u32       4 bytes little-endian
    pubkey    32 raw bytes
    proof     64 raw bytes
    string    u32 LE byte length + UTF-8 bytes

Builders return an `Instruction` with the account list the program expects.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ticketmint.errors import InstructionDecodeError
from ticketmint.hardening import CryptoUtils, Validators, require_valid
from ticketmint.keys import (
    PUBKEY_LEN,
    SIGNATURE_LEN,
    SYSTEM_PROGRAM_ID,
    SYSVAR_INSTRUCTIONS_ID,
    Pubkey,
)


@dataclass(frozen=True)
class AccountMeta:
    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = False


@dataclass
class Instruction:
    """One operation inside a transaction."""
    program_id: Pubkey
    data: bytes
    accounts: List[AccountMeta] = field(default_factory=list)

    def serialize(self) -> bytes:
        """Stable byte form used in the transaction message."""
        out = bytearray(self.program_id.to_bytes())
        out += struct.pack("<H", len(self.accounts))
        for meta in self.accounts:
            out += meta.pubkey.to_bytes()
            out.append((1 if meta.is_signer else 0) | (2 if meta.is_writable else 0))
        out += struct.pack("<I", len(self.data))
        out += self.data
        return bytes(out)


# ---------------------------------------------------------------------------
# Argument schema
# ---------------------------------------------------------------------------

U32 = "u32"
PUBKEY = "pubkey"
PROOF = "proof"
STRING = "string"

INSTRUCTION_ARGS: Dict[str, List[Tuple[str, str]]] = {
    "initialize": [("signer", PUBKEY), ("base_uri", STRING)],
    "claim": [("proof", PROOF), ("nft_id", U32), ("recipient", PUBKEY)],
    "transfer": [("nft_id", U32), ("new_owner", PUBKEY)],
    "burn": [("nft_id", U32)],
    "update_signer": [("new_signer", PUBKEY)],
    "update_base_uri": [("new_base_uri", STRING)],
    "lock_contract": [],
}

DISCRIMINATORS: Dict[str, bytes] = {
    name: CryptoUtils.discriminator("global", name) for name in INSTRUCTION_ARGS
}
_BY_DISCRIMINATOR = {disc: name for name, disc in DISCRIMINATORS.items()}


def _encode_arg(kind: str, name: str, value: Any) -> bytes:
    if kind == U32:
        return struct.pack("<I", require_valid(Validators.validate_u32(value, name)))
    if kind == PUBKEY:
        return value.to_bytes()
    if kind == PROOF:
        return require_valid(Validators.validate_fixed_bytes(value, name, SIGNATURE_LEN))
    if kind == STRING:
        raw = value.encode("utf-8")
        return struct.pack("<I", len(raw)) + raw
    raise ValueError(f"unknown argument kind: {kind}")


def encode_instruction_data(name: str, **args: Any) -> bytes:
    if name not in INSTRUCTION_ARGS:
        raise ValueError(f"unknown instruction: {name}")
    out = bytearray(DISCRIMINATORS[name])
    for arg_name, kind in INSTRUCTION_ARGS[name]:
        if arg_name not in args:
            raise ValueError(f"{name}: missing argument {arg_name}")
        out += _encode_arg(kind, arg_name, args[arg_name])
    return bytes(out)


def _take(data: bytes, pos: int, n: int, name: str) -> Tuple[bytes, int]:
    if pos + n > len(data):
        raise InstructionDecodeError(f"truncated argument {name}")
    return data[pos : pos + n], pos + n


def decode_instruction_data(data: bytes) -> Tuple[str, Dict[str, Any]]:
    """Return (instruction name, arguments). Trailing bytes are rejected."""
    data = bytes(data)
    if len(data) < 8:
        raise InstructionDecodeError("instruction data shorter than discriminator")
    name = _BY_DISCRIMINATOR.get(data[:8])
    if name is None:
        raise InstructionDecodeError(f"unknown discriminator {data[:8].hex()}")

    args: Dict[str, Any] = {}
    pos = 8
    for arg_name, kind in INSTRUCTION_ARGS[name]:
        if kind == U32:
            raw, pos = _take(data, pos, 4, arg_name)
            args[arg_name] = struct.unpack("<I", raw)[0]
        elif kind == PUBKEY:
            raw, pos = _take(data, pos, PUBKEY_LEN, arg_name)
            args[arg_name] = Pubkey(raw)
        elif kind == PROOF:
            raw, pos = _take(data, pos, SIGNATURE_LEN, arg_name)
            args[arg_name] = raw
        elif kind == STRING:
            raw, pos = _take(data, pos, 4, arg_name)
            (length,) = struct.unpack("<I", raw)
            raw, pos = _take(data, pos, length, arg_name)
            try:
                args[arg_name] = raw.decode("utf-8")
            except UnicodeDecodeError as ex:
                raise InstructionDecodeError(f"{arg_name} is not valid UTF-8") from ex
    if pos != len(data):
        raise InstructionDecodeError(f"{len(data) - pos} trailing bytes after {name}")
    return name, args


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def initialize(
    program_id: Pubkey,
    collection: Pubkey,
    authority: Pubkey,
    signer: Pubkey,
    base_uri: str,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        data=encode_instruction_data("initialize", signer=signer, base_uri=base_uri),
        accounts=[
            AccountMeta(collection, is_signer=True, is_writable=True),
            AccountMeta(authority, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID),
        ],
    )


def claim(
    program_id: Pubkey,
    collection: Pubkey,
    ticket: Pubkey,
    payer: Pubkey,
    proof: bytes,
    nft_id: int,
    recipient: Pubkey,
    instructions_sysvar: Optional[Pubkey] = None,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        data=encode_instruction_data("claim", proof=proof, nft_id=nft_id, recipient=recipient),
        accounts=[
            AccountMeta(collection, is_writable=True),
            AccountMeta(ticket, is_writable=True),
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(instructions_sysvar or SYSVAR_INSTRUCTIONS_ID),
            AccountMeta(SYSTEM_PROGRAM_ID),
        ],
    )


def transfer(
    program_id: Pubkey,
    collection: Pubkey,
    ticket: Pubkey,
    from_owner: Pubkey,
    authority: Pubkey,
    nft_id: int,
    new_owner: Pubkey,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        data=encode_instruction_data("transfer", nft_id=nft_id, new_owner=new_owner),
        accounts=[
            AccountMeta(collection),
            AccountMeta(ticket, is_writable=True),
            AccountMeta(from_owner),
            AccountMeta(authority, is_signer=True),
        ],
    )


def burn(
    program_id: Pubkey,
    collection: Pubkey,
    ticket: Pubkey,
    authority: Pubkey,
    nft_id: int,
    rent_recipient: Optional[Pubkey] = None,
) -> Instruction:
    return Instruction(
        program_id=program_id,
        data=encode_instruction_data("burn", nft_id=nft_id),
        accounts=[
            AccountMeta(collection, is_writable=True),
            AccountMeta(ticket, is_writable=True),
            AccountMeta(authority, is_signer=True),
            AccountMeta(rent_recipient or authority, is_writable=True),
        ],
    )


def _authority_only(program_id: Pubkey, name: str, collection: Pubkey, authority: Pubkey, **args: Any) -> Instruction:
    return Instruction(
        program_id=program_id,
        data=encode_instruction_data(name, **args),
        accounts=[
            AccountMeta(collection, is_writable=True),
            AccountMeta(authority, is_signer=True),
        ],
    )


def update_signer(program_id: Pubkey, collection: Pubkey, authority: Pubkey, new_signer: Pubkey) -> Instruction:
    return _authority_only(program_id, "update_signer", collection, authority, new_signer=new_signer)


def update_base_uri(program_id: Pubkey, collection: Pubkey, authority: Pubkey, new_base_uri: str) -> Instruction:
    return _authority_only(program_id, "update_base_uri", collection, authority, new_base_uri=new_base_uri)


def lock_contract(program_id: Pubkey, collection: Pubkey, authority: Pubkey) -> Instruction:
    return _authority_only(program_id, "lock_contract", collection, authority)
