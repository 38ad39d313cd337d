"""Ticket lifecycle operations.

Pure state transitions over explicit aggregates. Account loading, address
derivation, signer checks and persistence belong to the ticket program; every
function here receives the records it acts on and returns the event to emit.

Precondition order for every operation is: lock flag, then id range or caller
authority, then proof or current owner. The first failing check determines the
error. A raised error leaves the passed-in records untouched.

    operation        gated by lock   authority   extra
    initialize       -               -           base_uri <= 200 bytes
    claim            yes             -           0 <= id < max_supply, proof
    transfer         yes             yes         owner == declared from
    burn             yes             yes         -
    update_signer    yes             yes         -
    update_base_uri  yes             yes         base_uri <= 200 bytes
    lock             no              yes         repeatable
"""

from __future__ import annotations

from typing import Optional, Tuple

from ticketmint.errors import InvalidOwner, NftIdOutOfRange
from ticketmint.events import (
    BaseUriUpdatedEvent,
    BurnEvent,
    ClaimEvent,
    LockEvent,
    SignerUpdatedEvent,
    TransferEvent,
)
from ticketmint.instructions import Instruction
from ticketmint.keys import Pubkey
from ticketmint.state import MAX_SUPPLY, CollectionState, TicketState, validate_base_uri
from ticketmint.verifier import ProofVerifier


class LifecycleOperations:
    """The seven ticket operations."""

    def __init__(self, verifier: Optional[ProofVerifier] = None, max_supply: int = MAX_SUPPLY):
        self.verifier = verifier or ProofVerifier()
        self.max_supply = max_supply

    def initialize(self, authority: Pubkey, signer: Pubkey, base_uri: str) -> CollectionState:
        return CollectionState.create(authority, signer, base_uri)

    def claim(
        self,
        collection: CollectionState,
        collection_address: Pubkey,
        proof: bytes,
        nft_id: int,
        recipient: Pubkey,
        sibling: Instruction,
        now: int,
        sibling_index: int = 0,
    ) -> Tuple[TicketState, ClaimEvent]:
        """Mint ticket `nft_id` to `recipient` on a valid proof.

        Uniqueness of the id is enforced by the caller when it creates the
        ticket's storage; this function never sees an existing ticket.
        """
        collection.assert_unlocked()
        if not 0 <= nft_id < self.max_supply:
            raise NftIdOutOfRange(f"got {nft_id}")
        self.verifier.verify(proof, recipient, nft_id, collection.signer, sibling, sibling_index)

        ticket = TicketState.create(nft_id, recipient, collection_address)
        collection.increment_supply()
        return ticket, ClaimEvent(nft_id=nft_id, recipient=recipient, timestamp=now)

    def transfer(
        self,
        collection: CollectionState,
        ticket: TicketState,
        caller: Pubkey,
        declared_from: Pubkey,
        new_owner: Pubkey,
    ) -> TransferEvent:
        collection.assert_unlocked()
        collection.assert_authority(caller)
        if ticket.owner != declared_from:
            raise InvalidOwner(f"ticket #{ticket.nft_id} is not owned by {declared_from}")

        old_owner = ticket.set_owner(new_owner)
        return TransferEvent(nft_id=ticket.nft_id, from_owner=old_owner, to=new_owner, operator=caller)

    def burn(self, collection: CollectionState, ticket: TicketState, caller: Pubkey) -> BurnEvent:
        collection.assert_unlocked()
        collection.assert_authority(caller)

        collection.decrement_supply()
        ticket.destroy()
        return BurnEvent(nft_id=ticket.nft_id, operator=caller)

    def update_signer(self, collection: CollectionState, caller: Pubkey, new_signer: Pubkey) -> SignerUpdatedEvent:
        collection.assert_unlocked()
        collection.assert_authority(caller)

        old_signer = collection.set_signer(new_signer)
        return SignerUpdatedEvent(old_signer=old_signer, new_signer=new_signer, operator=caller)

    def update_base_uri(self, collection: CollectionState, caller: Pubkey, new_base_uri: str) -> BaseUriUpdatedEvent:
        collection.assert_unlocked()
        collection.assert_authority(caller)
        validate_base_uri(new_base_uri)

        old_base_uri = collection.set_base_uri(new_base_uri)
        return BaseUriUpdatedEvent(old_base_uri=old_base_uri, new_base_uri=new_base_uri, operator=caller)

    def lock(self, collection: CollectionState, caller: Pubkey, now: int) -> LockEvent:
        collection.assert_authority(caller)

        collection.lock()
        return LockEvent(operator=caller, timestamp=now)
