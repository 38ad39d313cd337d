"""
Ticketmint Ledger Host

An in-process ledger that executes atomic transactions against a map of
accounts. It supplies what the ticket program expects from its host:

    - accounts keyed by 32-byte address, each owned by one program
    - transactions signed by every account marked as a signer
    - all-or-nothing execution of the instructions of one transaction
    - the native Ed25519 signature verification program
    - a clock for event timestamps

Execution model:

    ┌──────────────┐    verify signatures    ┌───────────────────────────┐
    │ Transaction  │ ──────────────────────► │  working copy of accounts │
    └──────────────┘                         └─────────────┬─────────────┘
                                                           │ instruction 0..n
                                             ┌─────────────▼─────────────┐
                                             │  Program.process(ctx, ix) │
                                             └─────────────┬─────────────┘
                                  any error: discard copy  │  all ok: install copy,
                                  re-raise with index      │  publish events

Transactions are executed one at a time under a ledger-wide lock.

Copyright (c) 2026 The Ticketmint Authors. All rights reserved.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ticketmint.codec import CURRENT_INSTRUCTION, OFFSETS_LEN, SIGNATURE_COUNT_LEN, SignatureOffsets
from ticketmint.errors import (
    AccountNotWritable,
    AccountOwnerMismatch,
    AddressMismatch,
    Conflict,
    InsufficientFunds,
    MissingRequiredSignature,
    ProgramFailure,
    SignatureVerificationFailed,
    TicketmintError,
    UnknownProgram,
)
from ticketmint.events import Event, EventBus
from ticketmint.hardening import CryptoUtils
from ticketmint.instructions import Instruction
from ticketmint.keys import ED25519_PROGRAM_ID, PUBKEY_LEN, SIGNATURE_LEN, SYSTEM_PROGRAM_ID, Keypair, Pubkey
from ticketmint.observability import (
    AuditLogger,
    Layer,
    get_logger,
    reset_correlation_id,
    set_correlation_id,
)

logger = get_logger("ledger", Layer.LEDGER)

ACCOUNT_STORAGE_OVERHEAD = 128
LAMPORTS_PER_BYTE = 6960


def rent_exempt_minimum(space: int) -> int:
    """Deposit required to keep an account of `space` data bytes alive."""
    return (ACCOUNT_STORAGE_OVERHEAD + space) * LAMPORTS_PER_BYTE


# =============================================================================
# CLOCK
# =============================================================================


class Clock:
    """Unix time source for event timestamps."""

    def now(self) -> int:
        return int(time.time())


class FixedClock(Clock):
    """Deterministic clock for tests and replays."""

    def __init__(self, timestamp: int):
        self.timestamp = timestamp

    def now(self) -> int:
        return self.timestamp

    def advance(self, seconds: int) -> None:
        self.timestamp += seconds


# =============================================================================
# ACCOUNTS AND TRANSACTIONS
# =============================================================================


@dataclass
class Account:
    lamports: int
    owner: Pubkey
    data: bytes = b""

    def copy(self) -> "Account":
        return Account(lamports=self.lamports, owner=self.owner, data=bytes(self.data))


@dataclass
class Transaction:
    """An ordered list of instructions plus the signatures that authorize them."""

    instructions: List[Instruction]
    signatures: Dict[Pubkey, bytes] = field(default_factory=dict)

    def message(self) -> bytes:
        """SHA-256 over the serialized instructions; this is what signers sign."""
        return CryptoUtils.sha256(b"".join(ix.serialize() for ix in self.instructions))

    @property
    def transaction_id(self) -> str:
        return self.message().hex()[:16]

    def required_signers(self) -> List[Pubkey]:
        seen: List[Pubkey] = []
        for ix in self.instructions:
            for meta in ix.accounts:
                if meta.is_signer and meta.pubkey not in seen:
                    seen.append(meta.pubkey)
        return seen

    def sign(self, *keypairs: Keypair) -> "Transaction":
        message = self.message()
        for keypair in keypairs:
            self.signatures[keypair.pubkey] = keypair.sign(message)
        return self

    def verify_signatures(self) -> Set[Pubkey]:
        """Check every required signature; return the set of verified signers."""
        message = self.message()
        verified: Set[Pubkey] = set()
        for signer in self.required_signers():
            signature = self.signatures.get(signer)
            if signature is None:
                raise MissingRequiredSignature(f"{signer} did not sign")
            if not signer.verify(message, signature):
                raise SignatureVerificationFailed(f"bad transaction signature from {signer}")
            verified.add(signer)
        return verified


@dataclass
class Receipt:
    """Outcome of a committed transaction."""
    transaction_id: str
    slot: int
    timestamp: int
    logs: List[str] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)


# =============================================================================
# PROGRAM INTERFACE
# =============================================================================


class InvokeContext:
    """What one instruction may see and change while it executes."""

    def __init__(
        self,
        accounts: Dict[Pubkey, Account],
        instructions: List[Instruction],
        index: int,
        signers: Set[Pubkey],
        timestamp: int,
        logs: List[str],
        events: List[Event],
    ):
        self._accounts = accounts
        self.instructions = instructions
        self.index = index
        self.signers = signers
        self.timestamp = timestamp
        self._logs = logs
        self._events = events

    @property
    def instruction(self) -> Instruction:
        return self.instructions[self.index]

    @property
    def program_id(self) -> Pubkey:
        return self.instruction.program_id

    def is_signer(self, pubkey: Pubkey) -> bool:
        return pubkey in self.signers and any(
            m.pubkey == pubkey and m.is_signer for m in self.instruction.accounts
        )

    def _require_writable(self, pubkey: Pubkey) -> None:
        if not any(m.pubkey == pubkey and m.is_writable for m in self.instruction.accounts):
            raise AccountNotWritable(f"{pubkey} is not writable in instruction {self.index}")

    def get_account(self, pubkey: Pubkey) -> Optional[Account]:
        return self._accounts.get(pubkey)

    def create_account(self, address: Pubkey, space: int, payer: Pubkey) -> Account:
        """Allocate `space` zeroed bytes at `address`, owned by the calling program."""
        self._require_writable(address)
        self._require_writable(payer)
        if address in self._accounts:
            raise Conflict(f"account {address} already in use")
        deposit = rent_exempt_minimum(space)
        payer_account = self._accounts.get(payer)
        if payer_account is None or payer_account.lamports < deposit:
            have = payer_account.lamports if payer_account else 0
            raise InsufficientFunds(f"{payer} has {have}, needs {deposit}")
        payer_account.lamports -= deposit
        account = Account(lamports=deposit, owner=self.program_id, data=bytes(space))
        self._accounts[address] = account
        return account

    def write_data(self, address: Pubkey, data: bytes) -> None:
        self._require_writable(address)
        account = self._accounts[address]
        if account.owner != self.program_id:
            raise AccountOwnerMismatch(f"{address} is owned by {account.owner}")
        if len(data) != len(account.data):
            raise ValueError(f"data length {len(data)} != allocated {len(account.data)}")
        account.data = bytes(data)

    def close_account(self, address: Pubkey, recipient: Pubkey) -> None:
        """Delete `address` and move its deposit to `recipient`."""
        if recipient == address:
            raise AddressMismatch(f"cannot close {address} into itself")
        self._require_writable(address)
        self._require_writable(recipient)
        account = self._accounts[address]
        if account.owner != self.program_id:
            raise AccountOwnerMismatch(f"{address} is owned by {account.owner}")
        del self._accounts[address]
        target = self._accounts.get(recipient)
        if target is None:
            target = Account(lamports=0, owner=SYSTEM_PROGRAM_ID)
            self._accounts[recipient] = target
        target.lamports += account.lamports

    def log(self, message: str) -> None:
        self._logs.append(f"Program log: {message}")

    def emit(self, event: Event) -> None:
        self._events.append(event)


class Program(ABC):
    """An executable that owns accounts on the ledger."""

    program_id: Pubkey

    @abstractmethod
    def process(self, ctx: InvokeContext, instruction: Instruction) -> None:
        """Execute one instruction or raise a TicketmintError."""


class Ed25519SigVerifyProgram(Program):
    """
    Native Ed25519 signature verification.

    Instruction data: u8 count, u8 padding, then `count` offset blocks of
    seven u16 values (see `codec.SignatureOffsets`). Each of signature,
    public key and message is read from the instruction named by its index,
    0xFFFF meaning this instruction. Any failing entry aborts the transaction.
    """

    program_id = ED25519_PROGRAM_ID

    def process(self, ctx: InvokeContext, instruction: Instruction) -> None:
        data = instruction.data
        if len(data) < SIGNATURE_COUNT_LEN or data[0] == 0:
            raise SignatureVerificationFailed("no signatures in verification instruction")
        count = data[0]
        if len(data) < SIGNATURE_COUNT_LEN + count * OFFSETS_LEN:
            raise SignatureVerificationFailed("verification instruction shorter than its offsets")

        for i in range(count):
            offsets = SignatureOffsets.unpack(data, SIGNATURE_COUNT_LEN + i * OFFSETS_LEN)
            signature = self._resolve(ctx, offsets.signature_instruction_index, offsets.signature_offset, SIGNATURE_LEN)
            public_key = self._resolve(ctx, offsets.public_key_instruction_index, offsets.public_key_offset, PUBKEY_LEN)
            message = self._resolve(
                ctx, offsets.message_instruction_index, offsets.message_data_offset, offsets.message_data_size
            )
            if not Pubkey(public_key).verify(message, signature):
                raise SignatureVerificationFailed(f"signature {i} does not verify")

    @staticmethod
    def _resolve(ctx: InvokeContext, index: int, offset: int, length: int) -> bytes:
        if index == CURRENT_INSTRUCTION:
            data = ctx.instruction.data
        elif index < len(ctx.instructions):
            data = ctx.instructions[index].data
        else:
            raise SignatureVerificationFailed(f"instruction index {index} out of range")
        if offset + length > len(data):
            raise SignatureVerificationFailed(f"slice [{offset}:{offset + length}] out of bounds")
        return data[offset : offset + length]


# =============================================================================
# LEDGER
# =============================================================================


class Ledger:
    """
    Account store plus transaction executor.

    Example:
        ledger = Ledger(clock=FixedClock(1_700_000_000))
        ledger.register_program(TicketProgram())
        ledger.airdrop(authority.pubkey, 10 ** 9)
        receipt = ledger.execute(Transaction([ix]).sign(authority))
    """

    def __init__(self, clock: Optional[Clock] = None, event_bus: Optional[EventBus] = None):
        self.clock = clock or Clock()
        self.event_bus = event_bus or EventBus()
        self.audit = AuditLogger(logger)
        self._accounts: Dict[Pubkey, Account] = {}
        self._programs: Dict[Pubkey, Program] = {}
        self._lock = threading.RLock()
        self._slot = 0
        self.register_program(Ed25519SigVerifyProgram())

    def register_program(self, program: Program) -> None:
        with self._lock:
            self._programs[program.program_id] = program

    # -- reads ---------------------------------------------------------------

    def get_account(self, address: Pubkey) -> Optional[Account]:
        with self._lock:
            account = self._accounts.get(address)
            return account.copy() if account else None

    def balance(self, address: Pubkey) -> int:
        account = self.get_account(address)
        return account.lamports if account else 0

    def program_accounts(self, program_id: Pubkey) -> List[Tuple[Pubkey, Account]]:
        """All accounts owned by `program_id`, in address order."""
        with self._lock:
            owned = [(k, v.copy()) for k, v in self._accounts.items() if v.owner == program_id]
        return sorted(owned, key=lambda item: item[0].to_bytes())

    def snapshot(self) -> Dict[Pubkey, Tuple[int, Pubkey, bytes]]:
        with self._lock:
            return {k: (v.lamports, v.owner, v.data) for k, v in self._accounts.items()}

    @property
    def slot(self) -> int:
        return self._slot

    # -- writes --------------------------------------------------------------

    def airdrop(self, address: Pubkey, lamports: int) -> int:
        with self._lock:
            account = self._accounts.setdefault(address, Account(lamports=0, owner=SYSTEM_PROGRAM_ID))
            account.lamports += lamports
            return account.lamports

    def execute(self, transaction: Transaction) -> Receipt:
        """Run every instruction or none of them.

        On failure the exception propagates with ``instruction_index`` set to
        the failing position (None for signature failures) and the account
        map is exactly as it was before the call.
        """
        with self._lock:
            token = set_correlation_id(transaction.transaction_id)
            try:
                receipt = self._execute_locked(transaction)
            except TicketmintError as ex:
                logger.warning(
                    "transaction rejected",
                    operation="execute",
                    error_code=type(ex).__name__,
                    instruction_index=ex.instruction_index,
                    reason=str(ex),
                )
                raise
            finally:
                reset_correlation_id(token)

        for event in receipt.events:
            event.correlation_id = receipt.transaction_id
            self.event_bus.publish(event)
        return receipt

    def _execute_locked(self, transaction: Transaction) -> Receipt:
        signers = transaction.verify_signatures()
        working = {k: v.copy() for k, v in self._accounts.items()}
        timestamp = self.clock.now()
        logs: List[str] = []
        events: List[Event] = []

        for index, instruction in enumerate(transaction.instructions):
            program = self._programs.get(instruction.program_id)
            logs.append(f"Program {instruction.program_id} invoke [{index}]")
            ctx = InvokeContext(working, transaction.instructions, index, signers, timestamp, logs, events)
            try:
                if program is None:
                    raise UnknownProgram(f"no program at {instruction.program_id}")
                program.process(ctx, instruction)
            except TicketmintError as ex:
                ex.instruction_index = index
                raise
            except Exception as ex:
                failure = ProgramFailure(f"{type(ex).__name__}: {ex}")
                failure.instruction_index = index
                raise failure from ex
            logs.append(f"Program {instruction.program_id} success")

        self._accounts = working
        self._slot += 1
        receipt = Receipt(
            transaction_id=transaction.transaction_id,
            slot=self._slot,
            timestamp=timestamp,
            logs=logs,
            events=events,
        )
        for event in events:
            self.audit.log(
                actor=str(getattr(event, "operator", getattr(event, "recipient", ""))),
                action=event.event_type,
                resource_type="transaction",
                resource_id=receipt.transaction_id,
                outcome="committed",
                digest=event.digest(),
            )
        logger.info(
            "transaction committed",
            operation="execute",
            slot=self._slot,
            instructions=len(transaction.instructions),
            events=len(events),
        )
        return receipt


