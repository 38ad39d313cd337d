"""
Error taxonomy for the ticket program and its host.

Program errors carry a stable numeric code (custom program errors start at
6000) and the human readable message the program reports. Host errors come
from account storage, signature checks and instruction decoding; they have no
program code.

Every error aborts the whole transaction. The ledger records the index of the
failing instruction on the exception before re-raising it.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Optional

from ticketmint.hardening import InvariantViolation


class ErrorCode(IntEnum):
    """Program error codes."""
    INVALID_PROOF = 6000
    NFT_ID_OUT_OF_RANGE = 6001
    UNAUTHORIZED = 6002
    CONTRACT_LOCKED = 6003
    INVALID_OWNER = 6004
    SUPPLY_INVARIANT = 6005
    INVALID_BASE_URI = 6006


ERROR_MESSAGES = {
    ErrorCode.INVALID_PROOF: "Invalid proof signature",
    ErrorCode.NFT_ID_OUT_OF_RANGE: "NFT ID out of range (must be 0-9999)",
    ErrorCode.UNAUTHORIZED: "Unauthorized: only operator can perform this action",
    ErrorCode.CONTRACT_LOCKED: "Contract is locked",
    ErrorCode.INVALID_OWNER: "Invalid owner",
    ErrorCode.SUPPLY_INVARIANT: "Supply counter invariant violated",
    ErrorCode.INVALID_BASE_URI: "Base URI exceeds 200 bytes",
}


class TicketmintError(Exception):
    """Base class for every error raised while executing a transaction."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.instruction_index: Optional[int] = None


# =============================================================================
# PROGRAM ERRORS
# =============================================================================

class ProgramError(TicketmintError):
    """Error with a program error code."""

    code: ErrorCode

    def __init__(self, detail: str = ""):
        message = ERROR_MESSAGES[self.code]
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.detail = detail

    @property
    def error_name(self) -> str:
        return type(self).__name__


class InvalidProof(ProgramError):
    code = ErrorCode.INVALID_PROOF


class WrongVerifier(InvalidProof):
    """Sibling record was not produced by the native Ed25519 program."""


class Malformed(InvalidProof):
    """Sibling record could not be parsed or references foreign data."""


class Mismatch(InvalidProof):
    """Attested signature, key or message differs from the expected value."""


class NftIdOutOfRange(ProgramError):
    code = ErrorCode.NFT_ID_OUT_OF_RANGE


class Unauthorized(ProgramError):
    code = ErrorCode.UNAUTHORIZED


class ContractLocked(ProgramError):
    code = ErrorCode.CONTRACT_LOCKED


class InvalidOwner(ProgramError):
    code = ErrorCode.INVALID_OWNER


class SupplyInvariant(ProgramError, InvariantViolation):
    code = ErrorCode.SUPPLY_INVARIANT


class InvalidBaseUri(ProgramError):
    code = ErrorCode.INVALID_BASE_URI


# =============================================================================
# CODEC ERRORS
# =============================================================================

class MalformedRecord(ValueError):
    """Raised by the codec when a verification record cannot be parsed."""


# =============================================================================
# HOST ERRORS
# =============================================================================

class HostError(TicketmintError):
    """Error raised by the host ledger rather than the program."""


class Conflict(HostError):
    """Account address already in use."""


class AccountNotFound(HostError):
    pass


class AddressMismatch(HostError):
    """Supplied account does not match the derived or well-known address."""


class MissingRequiredSignature(HostError):
    pass


class SignatureVerificationFailed(HostError):
    pass


class AccountOwnerMismatch(HostError):
    pass


class AccountDiscriminatorMismatch(HostError):
    pass


class NotEnoughAccountKeys(HostError):
    pass


class InstructionDecodeError(HostError):
    pass


class UnknownProgram(HostError):
    pass


class ProgramFailure(HostError):
    """Unexpected exception inside a program; original is chained as __cause__."""


class InsufficientFunds(HostError):
    """Payer cannot cover the storage deposit of a new account."""


class AccountNotWritable(HostError):
    pass
