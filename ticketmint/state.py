"""Collection and ticket records.

`CollectionState` holds collection-wide configuration and enforces the
collection-level invariants; `TicketState` is the per-ticket record. Both
serialize to fixed-size account data:

    collection (381 bytes)
        discriminator (8) | authority (32) | signer (32) | is_locked (1)
        | total_supply u32 LE (4) | base_uri u32 LE length + UTF-8 (4 + <=200)
        | reserved (100)

    ticket (126 bytes)
        discriminator (8) | nft_id u32 LE (4) | owner (32) | collection (32)
        | reserved (50)

Discriminators are ``sha256("account:<Name>")[:8]``.

The lock flag is a two-state machine with no reverse edge. Assigning
``LockState.UNLOCKED`` to a locked collection raises `InvariantViolation`.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, FrozenSet, List, Set, Tuple

from ticketmint.codec import encode_nft_id
from ticketmint.errors import (
    AccountDiscriminatorMismatch,
    ContractLocked,
    InvalidBaseUri,
    SupplyInvariant,
    Unauthorized,
)
from ticketmint.hardening import (
    U32_MAX,
    CryptoUtils,
    InvariantChecker,
    InvariantViolation,
    Validators,
)
from ticketmint.keys import PUBKEY_LEN, Pubkey, derive_address


MAX_SUPPLY = 10000
MAX_BASE_URI_BYTES = 200
TICKET_SEED = b"nft"

_U32 = struct.Struct("<I")


class LockState(Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"


LOCK_TRANSITIONS: Dict[Enum, Set[Enum]] = {
    LockState.UNLOCKED: {LockState.LOCKED},
    LockState.LOCKED: {LockState.LOCKED},
}


def validate_base_uri(base_uri: str, max_bytes: int = MAX_BASE_URI_BYTES) -> str:
    result = Validators.validate_utf8_string(base_uri, "base_uri", max_bytes)
    if not result.is_valid:
        raise InvalidBaseUri(result.errors[0].message)
    return result.sanitized_value


def _check_discriminator(data: bytes, expected: bytes, name: str) -> None:
    if len(data) < len(expected) or data[: len(expected)] != expected:
        raise AccountDiscriminatorMismatch(f"account data is not a {name} record")


class _ImmutableFields:
    """Refuses re-assignment of the names in _IMMUTABLE once they are set."""

    _IMMUTABLE: ClassVar[FrozenSet[str]] = frozenset()

    def __setattr__(self, name: str, value: object) -> None:
        if name in self._IMMUTABLE and name in self.__dict__:
            raise InvariantViolation(f"{type(self).__name__}.{name} is immutable")
        super().__setattr__(name, value)


# =============================================================================
# COLLECTION
# =============================================================================


@dataclass
class CollectionState(_ImmutableFields):
    """Collection-wide configuration and supply counter."""

    authority: Pubkey
    signer: Pubkey
    lock_state: LockState = LockState.UNLOCKED
    total_supply: int = 0
    base_uri: str = ""

    _IMMUTABLE: ClassVar[FrozenSet[str]] = frozenset({"authority"})
    DISCRIMINATOR: ClassVar[bytes] = CryptoUtils.discriminator("account", "NftCollection")
    SPACE: ClassVar[int] = 8 + PUBKEY_LEN + PUBKEY_LEN + 1 + 4 + (4 + MAX_BASE_URI_BYTES) + 100

    def __setattr__(self, name: str, value: object) -> None:
        if name == "lock_state" and name in self.__dict__:
            InvariantChecker.check_state_transition(self.lock_state, value, LOCK_TRANSITIONS)
        super().__setattr__(name, value)

    @classmethod
    def create(cls, authority: Pubkey, signer: Pubkey, base_uri: str) -> "CollectionState":
        return cls(
            authority=authority,
            signer=signer,
            lock_state=LockState.UNLOCKED,
            total_supply=0,
            base_uri=validate_base_uri(base_uri),
        )

    @property
    def is_locked(self) -> bool:
        return self.lock_state is LockState.LOCKED

    def assert_unlocked(self) -> None:
        if self.is_locked:
            raise ContractLocked()

    def assert_authority(self, caller: Pubkey) -> None:
        if caller != self.authority:
            raise Unauthorized(f"caller {caller} is not the collection authority")

    def increment_supply(self) -> int:
        if self.total_supply >= U32_MAX:
            raise SupplyInvariant(f"increment overflows u32 at {self.total_supply}")
        self.total_supply += 1
        return self.total_supply

    def decrement_supply(self) -> int:
        if self.total_supply <= 0:
            raise SupplyInvariant("decrement below zero")
        self.total_supply -= 1
        return self.total_supply

    def set_signer(self, new_signer: Pubkey) -> Pubkey:
        old = self.signer
        self.signer = new_signer
        return old

    def set_base_uri(self, new_base_uri: str) -> str:
        old = self.base_uri
        self.base_uri = validate_base_uri(new_base_uri)
        return old

    def lock(self) -> None:
        self.lock_state = LockState.LOCKED

    # -- record layout -------------------------------------------------------

    def to_bytes(self) -> bytes:
        InvariantChecker.check_u32("total_supply", self.total_supply)
        uri = validate_base_uri(self.base_uri).encode("utf-8")
        body = (
            self.DISCRIMINATOR
            + self.authority.to_bytes()
            + self.signer.to_bytes()
            + bytes([1 if self.is_locked else 0])
            + _U32.pack(self.total_supply)
            + _U32.pack(len(uri))
            + uri
        )
        return body + bytes(self.SPACE - len(body))

    @classmethod
    def from_bytes(cls, data: bytes) -> "CollectionState":
        data = bytes(data)
        _check_discriminator(data, cls.DISCRIMINATOR, "collection")
        fixed = 8 + 2 * PUBKEY_LEN + 1 + 4 + 4
        if len(data) < fixed:
            raise AccountDiscriminatorMismatch("collection record truncated")
        pos = 8
        authority = Pubkey(data[pos : pos + PUBKEY_LEN])
        pos += PUBKEY_LEN
        signer = Pubkey(data[pos : pos + PUBKEY_LEN])
        pos += PUBKEY_LEN
        flag = data[pos]
        pos += 1
        if flag not in (0, 1):
            raise InvariantViolation(f"invalid lock flag byte {flag}")
        (total_supply,) = _U32.unpack_from(data, pos)
        pos += 4
        (uri_len,) = _U32.unpack_from(data, pos)
        pos += 4
        if uri_len > MAX_BASE_URI_BYTES or pos + uri_len > len(data):
            raise InvariantViolation(f"base_uri length {uri_len} exceeds record")
        base_uri = data[pos : pos + uri_len].decode("utf-8")
        return cls(
            authority=authority,
            signer=signer,
            lock_state=LockState.LOCKED if flag else LockState.UNLOCKED,
            total_supply=total_supply,
            base_uri=base_uri,
        )


# =============================================================================
# TICKET
# =============================================================================


@dataclass
class TicketState(_ImmutableFields):
    """One live ticket."""

    nft_id: int
    owner: Pubkey
    collection: Pubkey
    live: bool = True

    _IMMUTABLE: ClassVar[FrozenSet[str]] = frozenset({"nft_id", "collection"})
    DISCRIMINATOR: ClassVar[bytes] = CryptoUtils.discriminator("account", "Nft")
    SPACE: ClassVar[int] = 8 + 4 + PUBKEY_LEN + PUBKEY_LEN + 50

    @classmethod
    def create(cls, nft_id: int, owner: Pubkey, collection: Pubkey) -> "TicketState":
        return cls(nft_id=nft_id, owner=owner, collection=collection)

    def set_owner(self, new_owner: Pubkey) -> Pubkey:
        old = self.owner
        self.owner = new_owner
        return old

    def destroy(self) -> None:
        self.live = False

    def to_bytes(self) -> bytes:
        if not self.live:
            raise InvariantViolation(f"ticket #{self.nft_id} was destroyed")
        body = (
            self.DISCRIMINATOR
            + encode_nft_id(self.nft_id)
            + self.owner.to_bytes()
            + self.collection.to_bytes()
        )
        return body + bytes(self.SPACE - len(body))

    @classmethod
    def from_bytes(cls, data: bytes) -> "TicketState":
        data = bytes(data)
        _check_discriminator(data, cls.DISCRIMINATOR, "ticket")
        if len(data) < 8 + 4 + 2 * PUBKEY_LEN:
            raise AccountDiscriminatorMismatch("ticket record truncated")
        (nft_id,) = _U32.unpack_from(data, 8)
        owner = Pubkey(data[12 : 12 + PUBKEY_LEN])
        collection = Pubkey(data[44 : 44 + PUBKEY_LEN])
        return cls(nft_id=nft_id, owner=owner, collection=collection)


# =============================================================================
# ADDRESSING
# =============================================================================


def ticket_seeds(collection: Pubkey, nft_id: int) -> List[bytes]:
    return [TICKET_SEED, collection.to_bytes(), encode_nft_id(nft_id)]


def ticket_address(collection: Pubkey, nft_id: int, program_id: Pubkey) -> Pubkey:
    """Storage address of ticket `nft_id` in `collection`."""
    return derive_address(ticket_seeds(collection, nft_id), program_id)


def describe(collection: CollectionState) -> Dict[str, object]:
    return {
        "authority": str(collection.authority),
        "signer": str(collection.signer),
        "is_locked": collection.is_locked,
        "total_supply": collection.total_supply,
        "base_uri": collection.base_uri,
    }


def describe_ticket(ticket: TicketState) -> Dict[str, object]:
    return {
        "nft_id": ticket.nft_id,
        "owner": str(ticket.owner),
        "collection": str(ticket.collection),
    }


__all__: Tuple[str, ...] = (
    "MAX_SUPPLY",
    "MAX_BASE_URI_BYTES",
    "LockState",
    "CollectionState",
    "TicketState",
    "ticket_address",
    "ticket_seeds",
    "validate_base_uri",
)
