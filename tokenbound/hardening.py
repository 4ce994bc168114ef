"""
Tokenbound Validation and Hardening Module

Error taxonomy, input validation, hashing helpers and invariant enforcement
shared by every layer of the token-bound wallet stack:

1. Revert taxonomy raised by contract code running on the ledger
2. Input validation with sanitization for addresses and integers
3. Hashing utilities used for deterministic addressing
4. State machine and monotonic-counter invariant enforcement

Security Model:
    - All inputs are untrusted until validated
    - All contract failures abort the enclosing frame atomically

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Set,
    Union,
)


# =============================================================================
# VALIDATION ERROR TYPES
# =============================================================================

class ValidationError(Exception):
    """Base exception for validation failures."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class ValidationErrors(Exception):
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
# REVERT TAXONOMY
# =============================================================================

class Revert(Exception):
    """
    A contract-level failure.

    Raising a Revert inside a frame rolls back every state change made by
    that frame. ``reason`` is the revert message surfaced to the caller.
    """

    REASON = "execution reverted"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason if reason is not None else self.REASON
        super().__init__(self.reason)


class AlreadyInitialized(Revert):
    """Initializer invoked on an already-initialized proxy."""
    REASON = "Initializable: contract is already initialized"


class NotInitialized(Revert):
    """Proxy used before its initializer ran."""
    REASON = "Proxy: not initialized"


class NotOwner(Revert):
    """Caller is not the currently resolved effective owner."""
    REASON = "Caller is not owner"


class SelfOwnership(Revert):
    """Deposit of the token that backs the receiving wallet."""
    REASON = "Cannot own yourself"


class OwnershipChainCycle(Revert):
    """Deposit would close a cycle in the ownership chain."""
    REASON = "Token in ownership chain"

    def __init__(self, reason: Optional[str] = None, depth_exceeded: bool = False):
        super().__init__(reason)
        self.depth_exceeded = depth_exceeded


class ExecutionReverted(Revert):
    """
    The target of execTransaction failed.

    The inner revert reason is propagated verbatim; the inner exception is
    kept on ``inner`` and chained as ``__cause__``.
    """

    def __init__(self, reason: Optional[str] = None, inner: Optional[BaseException] = None):
        super().__init__(reason)
        self.inner = inner


class DeploymentCollision(Revert):
    """Deterministic address already holds code with a foreign code hash."""
    REASON = "Create2: address occupied by foreign code"


class InvalidImplementation(Revert):
    """Implementation address does not hold a wallet contract."""
    REASON = "Proxy: implementation is not a wallet"


class NotDelegated(Revert):
    """Migration helper called directly instead of by delegated execution."""
    REASON = "Migration: must be delegate-called"


class StaticCallViolation(Revert):
    """State change attempted inside a static (read-only) call."""
    REASON = "state change during static call"


class CallDepthExceeded(Revert):
    """Nested frames went past the ledger's call-depth bound."""

    def __init__(self, max_depth: int):
        super().__init__(f"call depth exceeded ({max_depth})")
        self.max_depth = max_depth


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
        """Raise ValidationErrors if validation failed."""
        if not self.is_valid:
            raise ValidationErrors(self.errors)

    @classmethod
    def success(cls, sanitized_value: Any = None) -> 'ValidationResult':
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> 'ValidationResult':
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    HEX40_PATTERN = re.compile(r'^0x[a-f0-9]{40}$')

    MAX_BYTES_LENGTH = 1 << 20

    @classmethod
    def validate_address(cls, value: Any, field_name: str = "address") -> ValidationResult:
        """Validate an address (0x + 40 hex), returning it lowercased."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])

        lower = value.strip().lower()
        if not cls.HEX40_PATTERN.match(lower):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be valid address (0x + 40 hex)", value)
            ])

        return ValidationResult.success(lower)

    @classmethod
    def validate_uint(
        cls,
        value: Any,
        field_name: str = "value",
        bits: int = 256,
    ) -> ValidationResult:
        """Validate an unsigned integer that fits in ``bits`` bits."""
        # bool is an int subclass but never a valid uint
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected int, got {type(value).__name__}", value)
            ])

        if value < 0:
            return ValidationResult.failure([
                ValidationError(field_name, "Must be non-negative", value)
            ])

        if value >= (1 << bits):
            return ValidationResult.failure([
                ValidationError(field_name, f"Exceeds uint{bits} range", value)
            ])

        return ValidationResult.success(value)

    @classmethod
    def validate_bytes(
        cls,
        value: Any,
        field_name: str,
        max_length: Optional[int] = None,
    ) -> ValidationResult:
        """Validate bytes, accepting 0x-prefixed hex strings."""
        max_length = max_length or cls.MAX_BYTES_LENGTH

        if isinstance(value, str):
            hex_str = value[2:] if value.startswith("0x") else value
            try:
                value = bytes.fromhex(hex_str)
            except ValueError:
                return ValidationResult.failure([
                    ValidationError(field_name, "Invalid hex string", value)
                ])

        if isinstance(value, bytearray):
            value = bytes(value)

        if not isinstance(value, bytes):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected bytes, got {type(value).__name__}", value)
            ])

        if len(value) > max_length:
            return ValidationResult.failure([
                ValidationError(field_name, f"Too long (max {max_length} bytes)", value)
            ])

        return ValidationResult.success(value)


def require_address(value: Any, field_name: str = "address") -> str:
    """Validate an address or raise ValidationError."""
    result = Validators.validate_address(value, field_name)
    if not result.is_valid:
        raise result.errors[0]
    return result.sanitized_value


def require_uint(value: Any, field_name: str = "value", bits: int = 256) -> int:
    """Validate an unsigned integer or raise ValidationError."""
    result = Validators.validate_uint(value, field_name, bits)
    if not result.is_valid:
        raise result.errors[0]
    return result.sanitized_value


# =============================================================================
# CRYPTOGRAPHIC UTILITIES
# =============================================================================

class CryptoUtils:
    """Hashing helpers used for selectors and deterministic addresses."""

    @staticmethod
    def hash(data: Union[str, bytes]) -> bytes:
        """SHA3-256 digest of ``data``."""
        if isinstance(data, str):
            data = data.encode('utf-8')
        return hashlib.sha3_256(data).digest()

    @staticmethod
    def hash_hex(data: Union[str, bytes]) -> str:
        """SHA3-256 hex digest of ``data``."""
        return '0x' + CryptoUtils.hash(data).hex()


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
                f"Valid targets: {[s.value for s in valid_targets]}"
            )

    @staticmethod
    def check_monotonic_increase(
        field_name: str,
        old_value: int,
        new_value: int,
    ) -> None:
        """Ensure value strictly increases."""
        if new_value <= old_value:
            raise InvariantViolation(
                f"{field_name} must be strictly increasing: "
                f"cannot go from {old_value} to {new_value}"
            )
