"""
Validation and Hardening Utilities

Input validation, constant-time comparison and invariant enforcement shared by
the codec, the state records and the ticket program.

Security Model:
    - All inputs are untrusted until validated
    - All secret-dependent comparisons are constant-time
    - All state transitions are checked against an explicit transition table
    - All counters are bounded to their on-ledger width

Copyright (c) 2026 The Ticketmint Authors. All rights reserved.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Set


U32_MAX = 2**32 - 1
U16_MAX = 2**16 - 1


# =============================================================================
# VALIDATION ERROR TYPES
# =============================================================================

class ValidationError(ValueError):
    """Base exception for validation failures."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class ValidationErrors(ValueError):
    """Collection of validation errors."""

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        messages = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Validation failed: {messages}")


class SecurityViolation(Exception):
    """Security constraint violated."""
    pass


class InvariantViolation(Exception):
    """State machine invariant violated."""
    pass


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise the single error, or ValidationErrors when there are several."""
        if self.is_valid:
            return
        if len(self.errors) == 1:
            raise self.errors[0]
        raise ValidationErrors(self.errors)

    @classmethod
    def success(cls, sanitized_value: Any = None) -> "ValidationResult":
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> "ValidationResult":
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    BASE58_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]+$")

    @classmethod
    def validate_u32(cls, value: Any, field_name: str) -> ValidationResult:
        """Validate an unsigned 32-bit integer."""
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected int, got {type(value).__name__}", value)
            ])
        if value < 0 or value > U32_MAX:
            return ValidationResult.failure([
                ValidationError(field_name, f"Out of u32 range: {value}", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_bytes(
        cls,
        value: Any,
        field_name: str,
        min_length: int = 0,
        max_length: int = 65536,
    ) -> ValidationResult:
        """Validate bytes. Hex strings are decoded first."""
        errors = []

        if isinstance(value, str):
            text = value[2:] if value.startswith("0x") else value
            try:
                value = bytes.fromhex(text)
            except ValueError:
                errors.append(ValidationError(field_name, "Invalid hex string", value))
                return ValidationResult.failure(errors)

        if isinstance(value, (bytearray, memoryview)):
            value = bytes(value)

        if not isinstance(value, bytes):
            errors.append(ValidationError(field_name, f"Expected bytes, got {type(value).__name__}", value))
            return ValidationResult.failure(errors)

        if len(value) < min_length:
            errors.append(ValidationError(field_name, f"Too short (min {min_length} bytes)", value))

        if len(value) > max_length:
            errors.append(ValidationError(field_name, f"Too long (max {max_length} bytes)", value))

        if errors:
            return ValidationResult.failure(errors)

        return ValidationResult.success(value)

    @classmethod
    def validate_fixed_bytes(cls, value: Any, field_name: str, length: int) -> ValidationResult:
        """Validate bytes of an exact length."""
        return cls.validate_bytes(value, field_name, min_length=length, max_length=length)

    @classmethod
    def validate_utf8_string(
        cls,
        value: Any,
        field_name: str,
        max_bytes: int,
    ) -> ValidationResult:
        """Validate a string whose UTF-8 encoding fits in max_bytes."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])
        encoded = value.encode("utf-8")
        if len(encoded) > max_bytes:
            return ValidationResult.failure([
                ValidationError(field_name, f"Too long ({len(encoded)} > {max_bytes} bytes)", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_base58(cls, value: Any, field_name: str) -> ValidationResult:
        """Validate base58 text (no decoding)."""
        if not isinstance(value, str) or not value:
            return ValidationResult.failure([
                ValidationError(field_name, "Expected non-empty base58 string", value)
            ])
        if not cls.BASE58_PATTERN.match(value):
            return ValidationResult.failure([
                ValidationError(field_name, "Invalid base58 character", value)
            ])
        return ValidationResult.success(value)


# =============================================================================
# CRYPTOGRAPHIC UTILITIES
# =============================================================================

class CryptoUtils:
    """Cryptographic utility functions with security hardening."""

    @staticmethod
    def secure_compare(a: bytes, b: bytes) -> bool:
        """Constant-time comparison to prevent timing attacks."""
        return hmac.compare_digest(bytes(a), bytes(b))

    @staticmethod
    def sha256(data: bytes) -> bytes:
        """Raw SHA-256 digest."""
        return hashlib.sha256(data).digest()

    @staticmethod
    def discriminator(namespace: str, name: str) -> bytes:
        """First 8 bytes of sha256("<namespace>:<name>")."""
        return hashlib.sha256(f"{namespace}:{name}".encode("utf-8")).digest()[:8]


# =============================================================================
# STATE MACHINE INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces state machine invariants."""

    @staticmethod
    def check_state_transition(
        current_state: Enum,
        target_state: Enum,
        valid_transitions: Dict[Enum, Set[Enum]],
    ) -> None:
        """Verify state transition is valid."""
        valid_targets = valid_transitions.get(current_state, set())
        if target_state not in valid_targets:
            raise InvariantViolation(
                f"Invalid state transition: {current_state.value} -> {target_state.value}. "
                f"Valid targets: {sorted(s.value for s in valid_targets)}"
            )

    @staticmethod
    def check_u32(field_name: str, value: int) -> None:
        """Ensure value fits an unsigned 32-bit counter."""
        if value < 0 or value > U32_MAX:
            raise InvariantViolation(f"{field_name} out of u32 range: {value}")


def require_valid(result: ValidationResult) -> Any:
    """Return the sanitized value or raise the validation error."""
    result.raise_if_invalid()
    return result.sanitized_value
