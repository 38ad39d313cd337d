"""Transaction builders and account readers for operators and claimants.

    client = TicketClient(ledger)
    collection = client.initialize(authority, collection_kp, signer.pubkey, "https://...")
    proof = generate_claim_proof(7, alice.pubkey, signer)
    client.claim(collection, alice, proof.signature, 7, alice.pubkey, signer.pubkey)
"""

from __future__ import annotations

from typing import List, Optional

from ticketmint import instructions as ix
from ticketmint.codec import claim_digest, encode_sibling_record
from ticketmint.instructions import Instruction
from ticketmint.keys import DEFAULT_PROGRAM_ID, ED25519_PROGRAM_ID, Keypair, Pubkey
from ticketmint.ledger import Ledger, Receipt, Transaction
from ticketmint.observability import Layer, get_logger
from ticketmint.state import CollectionState, TicketState, ticket_address

logger = get_logger("client", Layer.CLIENT)


def verification_instruction(proof: bytes, signer: Pubkey, recipient: Pubkey, nft_id: int) -> Instruction:
    """Native Ed25519 instruction attesting `proof` over the claim digest."""
    record = encode_sibling_record(proof, signer, claim_digest(recipient, nft_id))
    return Instruction(program_id=ED25519_PROGRAM_ID, data=record)


class TicketClient:
    """Builds, signs and submits ticket transactions against one ledger."""

    def __init__(self, ledger: Ledger, program_id: Pubkey = DEFAULT_PROGRAM_ID):
        self.ledger = ledger
        self.program_id = program_id

    def submit(self, instructions: List[Instruction], *signers: Keypair) -> Receipt:
        return self.ledger.execute(Transaction(list(instructions)).sign(*signers))

    # -- operator ------------------------------------------------------------

    def initialize(
        self,
        authority: Keypair,
        collection: Keypair,
        signer: Pubkey,
        base_uri: str,
    ) -> Pubkey:
        """Create a collection at `collection`'s address; returns that address."""
        instruction = ix.initialize(self.program_id, collection.pubkey, authority.pubkey, signer, base_uri)
        self.submit([instruction], authority, collection)
        logger.info("collection initialized", collection=str(collection.pubkey))
        return collection.pubkey

    def transfer(
        self,
        collection: Pubkey,
        authority: Keypair,
        nft_id: int,
        from_owner: Pubkey,
        new_owner: Pubkey,
    ) -> Receipt:
        instruction = ix.transfer(
            self.program_id,
            collection,
            self.ticket_address(collection, nft_id),
            from_owner,
            authority.pubkey,
            nft_id,
            new_owner,
        )
        return self.submit([instruction], authority)

    def burn(
        self,
        collection: Pubkey,
        authority: Keypair,
        nft_id: int,
        rent_recipient: Optional[Pubkey] = None,
    ) -> Receipt:
        instruction = ix.burn(
            self.program_id,
            collection,
            self.ticket_address(collection, nft_id),
            authority.pubkey,
            nft_id,
            rent_recipient,
        )
        return self.submit([instruction], authority)

    def update_signer(self, collection: Pubkey, authority: Keypair, new_signer: Pubkey) -> Receipt:
        return self.submit([ix.update_signer(self.program_id, collection, authority.pubkey, new_signer)], authority)

    def update_base_uri(self, collection: Pubkey, authority: Keypair, new_base_uri: str) -> Receipt:
        return self.submit(
            [ix.update_base_uri(self.program_id, collection, authority.pubkey, new_base_uri)], authority
        )

    def lock(self, collection: Pubkey, authority: Keypair) -> Receipt:
        return self.submit([ix.lock_contract(self.program_id, collection, authority.pubkey)], authority)

    # -- claimant ------------------------------------------------------------

    def claim_instructions(
        self,
        collection: Pubkey,
        payer: Pubkey,
        proof: bytes,
        nft_id: int,
        recipient: Pubkey,
        signer: Pubkey,
    ) -> List[Instruction]:
        """The verification record at position 0, the claim at position 1."""
        return [
            verification_instruction(proof, signer, recipient, nft_id),
            ix.claim(
                self.program_id,
                collection,
                self.ticket_address(collection, nft_id),
                payer,
                proof,
                nft_id,
                recipient,
            ),
        ]

    def claim(
        self,
        collection: Pubkey,
        payer: Keypair,
        proof: bytes,
        nft_id: int,
        recipient: Pubkey,
        signer: Pubkey,
    ) -> Receipt:
        instructions = self.claim_instructions(collection, payer.pubkey, proof, nft_id, recipient, signer)
        return self.submit(instructions, payer)

    # -- reads ---------------------------------------------------------------

    def ticket_address(self, collection: Pubkey, nft_id: int) -> Pubkey:
        return ticket_address(collection, nft_id, self.program_id)

    def fetch_collection(self, collection: Pubkey) -> Optional[CollectionState]:
        account = self.ledger.get_account(collection)
        if account is None or account.owner != self.program_id:
            return None
        return CollectionState.from_bytes(account.data)

    def fetch_ticket(self, collection: Pubkey, nft_id: int) -> Optional[TicketState]:
        """The live ticket, or None when it was never claimed or was burned."""
        account = self.ledger.get_account(self.ticket_address(collection, nft_id))
        if account is None or account.owner != self.program_id:
            return None
        return TicketState.from_bytes(account.data)

    def live_ticket_ids(self, collection: Pubkey) -> List[int]:
        ids = []
        for _, account in self.ledger.program_accounts(self.program_id):
            if account.data[:8] != TicketState.DISCRIMINATOR:
                continue
            ticket = TicketState.from_bytes(account.data)
            if ticket.collection == collection:
                ids.append(ticket.nft_id)
        return sorted(ids)
