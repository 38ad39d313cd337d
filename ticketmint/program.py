"""The ticket program.

Host adapter for `LifecycleOperations`: decodes instruction data, enforces the
account constraints of each instruction, loads and stores the collection and
ticket records, and hands the records to the lifecycle.

Account constraints (checked before any lifecycle rule):

    - enough accounts supplied                          NotEnoughAccountKeys
    - required signer present and signed                MissingRequiredSignature
    - records owned by this program                     AccountOwnerMismatch
    - records carry the expected discriminator          AccountDiscriminatorMismatch
    - ticket address == derive([b"nft", collection, id_le])   AddressMismatch
    - instructions sysvar / system program addresses    AddressMismatch
    - ticket record exists (transfer, burn)             AccountNotFound
    - ticket record absent (claim, before the proof)    Conflict
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from ticketmint.errors import (
    AccountNotFound,
    AccountOwnerMismatch,
    AddressMismatch,
    Conflict,
    MissingRequiredSignature,
    NotEnoughAccountKeys,
)
from ticketmint.instructions import AccountMeta, Instruction, decode_instruction_data
from ticketmint.keys import DEFAULT_PROGRAM_ID, SYSTEM_PROGRAM_ID, SYSVAR_INSTRUCTIONS_ID, Pubkey
from ticketmint.ledger import InvokeContext, Program
from ticketmint.lifecycle import LifecycleOperations
from ticketmint.observability import Layer, get_logger, timed_operation
from ticketmint.state import CollectionState, TicketState, ticket_address

logger = get_logger("program", Layer.PROGRAM)

# Position of the verification record a claim is checked against.
SIBLING_INDEX = 0


def _accounts(instruction: Instruction, count: int) -> List[AccountMeta]:
    if len(instruction.accounts) < count:
        raise NotEnoughAccountKeys(f"expected {count} accounts, got {len(instruction.accounts)}")
    return instruction.accounts[:count]


def _require_signer(ctx: InvokeContext, meta: AccountMeta, role: str) -> Pubkey:
    if not ctx.is_signer(meta.pubkey):
        raise MissingRequiredSignature(f"{role} {meta.pubkey} must sign")
    return meta.pubkey


def _require_address(meta: AccountMeta, expected: Pubkey, role: str) -> None:
    if meta.pubkey != expected:
        raise AddressMismatch(f"{role} must be {expected}, got {meta.pubkey}")


class TicketProgram(Program):
    """Dispatches ticket instructions to the lifecycle operations."""

    def __init__(
        self,
        program_id: Pubkey = DEFAULT_PROGRAM_ID,
        operations: Optional[LifecycleOperations] = None,
    ):
        self.program_id = program_id
        self.operations = operations or LifecycleOperations()
        self._handlers: Dict[str, Callable[..., None]] = {
            "initialize": self._initialize,
            "claim": self._claim,
            "transfer": self._transfer,
            "burn": self._burn,
            "update_signer": self._update_signer,
            "update_base_uri": self._update_base_uri,
            "lock_contract": self._lock_contract,
        }

    @timed_operation(logger, "process_instruction")
    def process(self, ctx: InvokeContext, instruction: Instruction) -> None:
        name, args = decode_instruction_data(instruction.data)
        logger.debug("dispatch", operation=name, index=ctx.index)
        ctx.log(f"Instruction: {name}")
        self._handlers[name](ctx, instruction, **args)

    # -- record access -------------------------------------------------------

    def _load_collection(self, ctx: InvokeContext, address: Pubkey) -> CollectionState:
        account = ctx.get_account(address)
        if account is None:
            raise AccountNotFound(f"collection {address} does not exist")
        if account.owner != self.program_id:
            raise AccountOwnerMismatch(f"collection {address} is owned by {account.owner}")
        return CollectionState.from_bytes(account.data)

    def _load_ticket(self, ctx: InvokeContext, collection: Pubkey, nft_id: int, meta: AccountMeta) -> TicketState:
        _require_address(meta, ticket_address(collection, nft_id, self.program_id), "ticket")
        account = ctx.get_account(meta.pubkey)
        if account is None:
            raise AccountNotFound(f"ticket #{nft_id} does not exist")
        if account.owner != self.program_id:
            raise AccountOwnerMismatch(f"ticket {meta.pubkey} is owned by {account.owner}")
        return TicketState.from_bytes(account.data)

    # -- handlers --------------------------------------------------------------

    def _initialize(self, ctx: InvokeContext, instruction: Instruction, signer: Pubkey, base_uri: str) -> None:
        collection_meta, authority_meta, system_meta = _accounts(instruction, 3)
        _require_signer(ctx, collection_meta, "collection")
        authority = _require_signer(ctx, authority_meta, "authority")
        _require_address(system_meta, SYSTEM_PROGRAM_ID, "system program")

        state = self.operations.initialize(authority, signer, base_uri)
        ctx.create_account(collection_meta.pubkey, CollectionState.SPACE, payer=authority)
        ctx.write_data(collection_meta.pubkey, state.to_bytes())
        ctx.log(f"NFT Collection initialized with authority: {authority}")

    def _claim(
        self,
        ctx: InvokeContext,
        instruction: Instruction,
        proof: bytes,
        nft_id: int,
        recipient: Pubkey,
    ) -> None:
        collection_meta, ticket_meta, payer_meta, sysvar_meta, system_meta = _accounts(instruction, 5)
        payer = _require_signer(ctx, payer_meta, "payer")
        _require_address(sysvar_meta, SYSVAR_INSTRUCTIONS_ID, "instructions sysvar")
        _require_address(system_meta, SYSTEM_PROGRAM_ID, "system program")
        _require_address(ticket_meta, ticket_address(collection_meta.pubkey, nft_id, self.program_id), "ticket")
        if ctx.get_account(ticket_meta.pubkey) is not None:
            raise Conflict(f"ticket #{nft_id} is already claimed")

        collection = self._load_collection(ctx, collection_meta.pubkey)
        sibling = ctx.instructions[SIBLING_INDEX]
        ticket, event = self.operations.claim(
            collection,
            collection_meta.pubkey,
            proof,
            nft_id,
            recipient,
            sibling,
            now=ctx.timestamp,
            sibling_index=SIBLING_INDEX,
        )

        ctx.create_account(ticket_meta.pubkey, TicketState.SPACE, payer=payer)
        ctx.write_data(ticket_meta.pubkey, ticket.to_bytes())
        ctx.write_data(collection_meta.pubkey, collection.to_bytes())
        ctx.emit(event)
        ctx.log(f"NFT #{nft_id} claimed by {recipient}")

    def _transfer(self, ctx: InvokeContext, instruction: Instruction, nft_id: int, new_owner: Pubkey) -> None:
        collection_meta, ticket_meta, from_meta, authority_meta = _accounts(instruction, 4)
        authority = _require_signer(ctx, authority_meta, "authority")

        collection = self._load_collection(ctx, collection_meta.pubkey)
        ticket = self._load_ticket(ctx, collection_meta.pubkey, nft_id, ticket_meta)
        event = self.operations.transfer(collection, ticket, authority, from_meta.pubkey, new_owner)

        ctx.write_data(ticket_meta.pubkey, ticket.to_bytes())
        ctx.emit(event)
        ctx.log(f"NFT #{nft_id} transferred from {event.from_owner} to {new_owner} by operator")

    def _burn(self, ctx: InvokeContext, instruction: Instruction, nft_id: int) -> None:
        collection_meta, ticket_meta, authority_meta, recipient_meta = _accounts(instruction, 4)
        authority = _require_signer(ctx, authority_meta, "authority")

        collection = self._load_collection(ctx, collection_meta.pubkey)
        ticket = self._load_ticket(ctx, collection_meta.pubkey, nft_id, ticket_meta)
        event = self.operations.burn(collection, ticket, authority)

        ctx.close_account(ticket_meta.pubkey, recipient_meta.pubkey)
        ctx.write_data(collection_meta.pubkey, collection.to_bytes())
        ctx.emit(event)
        ctx.log(f"NFT #{nft_id} burned by operator")

    def _authority_update(self, ctx: InvokeContext, instruction: Instruction, apply: Callable[..., Any]) -> Any:
        collection_meta, authority_meta = _accounts(instruction, 2)
        authority = _require_signer(ctx, authority_meta, "authority")

        collection = self._load_collection(ctx, collection_meta.pubkey)
        event = apply(collection, authority)
        ctx.write_data(collection_meta.pubkey, collection.to_bytes())
        ctx.emit(event)
        return event

    def _update_signer(self, ctx: InvokeContext, instruction: Instruction, new_signer: Pubkey) -> None:
        event = self._authority_update(
            ctx, instruction, lambda c, caller: self.operations.update_signer(c, caller, new_signer)
        )
        ctx.log(f"Signer updated from {event.old_signer} to {event.new_signer} by operator")

    def _update_base_uri(self, ctx: InvokeContext, instruction: Instruction, new_base_uri: str) -> None:
        self._authority_update(
            ctx, instruction, lambda c, caller: self.operations.update_base_uri(c, caller, new_base_uri)
        )
        ctx.log("Base URI updated by operator")

    def _lock_contract(self, ctx: InvokeContext, instruction: Instruction) -> None:
        self._authority_update(
            ctx, instruction, lambda c, caller: self.operations.lock(c, caller, ctx.timestamp)
        )
        ctx.log("Contract locked permanently by operator")
