"""ticketmint.keys

Identities on the ledger: 32-byte public keys rendered as base58, Ed25519
keypairs, and deterministic derived addresses.

Profile / invariants:
- A `Pubkey` is exactly 32 raw bytes; its text form is base58 (Bitcoin alphabet)
- Keypair secrets use the 64-byte layout `seed || public key`
- Derived addresses are `sha256(seeds || program_id || "ProgramDerivedAddress")`;
  callers never supply raw ticket addresses
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Sequence, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey


PUBKEY_LEN = 32
SEED_LEN = 32
SECRET_KEY_LEN = 64
SIGNATURE_LEN = 64

MAX_SEEDS = 16
MAX_SEED_LEN = 32
PDA_MARKER = b"ProgramDerivedAddress"


# Base58 implementation (no external deps)
B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
B58_MAP = {c: i for i, c in enumerate(B58_ALPHABET)}


def b58decode(s: Union[str, bytes]) -> bytes:
    if isinstance(s, str):
        s_bytes = s.encode("ascii")
    else:
        s_bytes = s
    num = 0
    for c in s_bytes:
        if c not in B58_MAP:
            raise ValueError("Invalid base58 character")
        num = num * 58 + B58_MAP[c]
    # Count leading zeros
    n_pad = 0
    for c in s_bytes:
        if c == B58_ALPHABET[0]:
            n_pad += 1
        else:
            break
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


def b58encode(b: bytes) -> str:
    n_pad = 0
    for c in b:
        if c == 0:
            n_pad += 1
        else:
            break
    num = int.from_bytes(b, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(B58_ALPHABET[rem])
    out.extend(B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


# ---------------------------------------------------------------------------
# Public keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Pubkey:
    """A 32-byte ledger identity."""

    raw: bytes

    def __post_init__(self) -> None:
        raw = bytes(self.raw)
        if len(raw) != PUBKEY_LEN:
            raise ValueError(f"Pubkey must be {PUBKEY_LEN} bytes, got {len(raw)}")
        object.__setattr__(self, "raw", raw)

    @classmethod
    def from_string(cls, text: str) -> "Pubkey":
        return cls(b58decode(text.strip()))

    @classmethod
    def default(cls) -> "Pubkey":
        return cls(bytes(PUBKEY_LEN))

    def to_bytes(self) -> bytes:
        return self.raw

    def __bytes__(self) -> bytes:
        return self.raw

    def __str__(self) -> str:
        return b58encode(self.raw)

    def __repr__(self) -> str:
        return f"Pubkey({self})"

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Check an Ed25519 signature by this key over message."""
        try:
            Ed25519PublicKey.from_public_bytes(self.raw).verify(bytes(signature), bytes(message))
        except (InvalidSignature, ValueError):
            return False
        return True


def as_pubkey(value: Union[Pubkey, str, bytes]) -> Pubkey:
    """Coerce base58 text or raw bytes into a Pubkey."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, str):
        return Pubkey.from_string(value)
    return Pubkey(value)


# ---------------------------------------------------------------------------
# Keypairs
# ---------------------------------------------------------------------------


class Keypair:
    """Ed25519 keypair backed by `cryptography`."""

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key
        raw_pub = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self._pubkey = Pubkey(raw_pub)

    @classmethod
    def generate(cls) -> "Keypair":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        if len(seed) != SEED_LEN:
            raise ValueError(f"Ed25519 seed must be {SEED_LEN} bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(bytes(seed)))

    @classmethod
    def from_secret_key(cls, secret: bytes) -> "Keypair":
        """Load the 64-byte `seed || pubkey` form, checking the embedded key."""
        if len(secret) != SECRET_KEY_LEN:
            raise ValueError(f"Secret key must be {SECRET_KEY_LEN} bytes, got {len(secret)}")
        kp = cls.from_seed(secret[:SEED_LEN])
        if kp.pubkey.raw != bytes(secret[SEED_LEN:]):
            raise ValueError("Secret key public half does not match its seed")
        return kp

    @classmethod
    def from_base58(cls, text: str) -> "Keypair":
        return cls.from_secret_key(b58decode(text.strip()))

    @property
    def pubkey(self) -> Pubkey:
        return self._pubkey

    @property
    def seed(self) -> bytes:
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )

    @property
    def secret_key(self) -> bytes:
        return self.seed + self._pubkey.raw

    def to_base58(self) -> str:
        return b58encode(self.secret_key)

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(bytes(message))

    def __repr__(self) -> str:
        return f"Keypair(pubkey={self._pubkey})"


# ---------------------------------------------------------------------------
# Derived addresses
# ---------------------------------------------------------------------------


def derive_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """Deterministic address for (seeds, program_id).

    No curve check is made: derived addresses are storage keys only and are
    never used to sign.
    """
    if len(seeds) > MAX_SEEDS:
        raise ValueError(f"At most {MAX_SEEDS} seeds allowed, got {len(seeds)}")
    h = hashlib.sha256()
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise ValueError(f"Seed longer than {MAX_SEED_LEN} bytes")
        h.update(bytes(seed))
    h.update(program_id.raw)
    h.update(PDA_MARKER)
    return Pubkey(h.digest())


# ---------------------------------------------------------------------------
# Well-known addresses
# ---------------------------------------------------------------------------

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
ED25519_PROGRAM_ID = Pubkey.from_string("Ed25519SigVerify111111111111111111111111111")
SYSVAR_INSTRUCTIONS_ID = Pubkey.from_string("Sysvar1nstructions1111111111111111111111111")
DEFAULT_PROGRAM_ID = Pubkey.from_string("6mfzKkngeptJoiVH7oYdSPSxnNpt3dBs94CMNkfw5oyG")
