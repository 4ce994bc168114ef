"""
Tokenbound Wallet Proxy

The per-wallet storage and identity component. A proxy is deployed by the
registry at a deterministic address with its wallet key baked into its
immutables; everything it does beyond its own minimal surface is delegated
to the implementation it points at.

Lifecycle:

    UNINITIALIZED ──initialize──▶ INITIALIZED (terminal)

Storage layout (shared with every implementation and helper that runs
delegated in the proxy's context):

    proxy.token           (chain_id, token_contract, token_id)
    proxy.implementation  current wallet implementation
    proxy.nonce           privileged-operation counter
    proxy.initialized     one-shot initializer guard

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Set, Tuple

from tokenbound.abi import encode_call, function_selector, interface_id
from tokenbound.events import Initialized, Upgraded
from tokenbound.hardening import (
    AlreadyInitialized,
    InvalidImplementation,
    InvariantChecker,
    NotInitialized,
    NotOwner,
    Revert,
)
from tokenbound.ledger import ZERO_ADDRESS, Contract, Frame, external


# =============================================================================
# STORAGE LAYOUT
# =============================================================================

BOUND_TOKEN_SLOT = "proxy.token"
IMPLEMENTATION_SLOT = "proxy.implementation"
NONCE_SLOT = "proxy.nonce"
INITIALIZED_SLOT = "proxy.initialized"

BoundToken = Tuple[int, str, int]

ERC165_INTERFACE_ID = function_selector("supportsInterface(bytes4)")

WALLET_INTERFACE_ID = interface_id([
    "owner()",
    "execTransaction(address,uint256,bytes,uint8)",
    "execTransaction(address,uint256,bytes)",
])


class ProxyState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


PROXY_TRANSITIONS: Dict[ProxyState, Set[ProxyState]] = {
    ProxyState.UNINITIALIZED: {ProxyState.INITIALIZED},
    ProxyState.INITIALIZED: set(),
}


# =============================================================================
# SHARED HELPERS
# =============================================================================

def read_bound_token(frame: Frame) -> BoundToken:
    """Bound token of the proxy whose storage ``frame`` runs over."""
    token = frame.sload(BOUND_TOKEN_SLOT)
    if token is None:
        raise NotInitialized()
    return token


def owner_of_token(frame: Frame, token: BoundToken) -> Optional[str]:
    """
    Current holder of ``token``, or None when it cannot be resolved here.

    Tokens bound on another chain and collaborators that revert do not
    resolve.
    """
    chain_id, token_contract, token_id = token
    if chain_id != frame.chain_id:
        return None
    try:
        owner = frame.static_call(token_contract, encode_call("ownerOf(uint256)", token_id))
    except Revert:
        return None
    return owner if isinstance(owner, str) else None


def resolve_owner(frame: Frame) -> str:
    """Effective owner of the wallet: the bound token's holder, queried now."""
    return owner_of_token(frame, read_bound_token(frame)) or ZERO_ADDRESS


def require_owner(frame: Frame) -> str:
    """Authorize the caller against the live owner. An unresolved owner authorizes no one."""
    owner = resolve_owner(frame)
    if owner == ZERO_ADDRESS or frame.sender != owner:
        raise NotOwner()
    return owner


def increment_nonce(frame: Frame) -> int:
    old = frame.sload(NONCE_SLOT, 0)
    new = old + 1
    InvariantChecker.check_monotonic_increase("nonce", old, new)
    frame.sstore(NONCE_SLOT, new)
    return new


def require_wallet_implementation(frame: Frame, implementation: str) -> None:
    """Reject anything that is not deployed wallet logic."""
    code = frame.ledger.get_code(implementation)
    if code is None or isinstance(code, Proxy):
        raise InvalidImplementation()
    try:
        supported = frame.static_call(
            implementation, encode_call("supportsInterface(bytes4)", WALLET_INTERFACE_ID)
        )
    except Revert as e:
        raise InvalidImplementation() from e
    if supported is not True:
        raise InvalidImplementation()


# =============================================================================
# PROXY
# =============================================================================

class Proxy(Contract):
    """
    Minimal forwarding shell.

    Immutables: ``registry``, ``chain_id``, ``token_contract``, ``token_id``
    and ``implementation_index``.
    """

    @staticmethod
    def state(frame: Frame) -> ProxyState:
        if frame.sload(INITIALIZED_SLOT):
            return ProxyState.INITIALIZED
        return ProxyState.UNINITIALIZED

    def _require_initialized(self, frame: Frame) -> str:
        implementation = frame.sload(IMPLEMENTATION_SLOT)
        if self.state(frame) is not ProxyState.INITIALIZED or implementation is None:
            raise NotInitialized()
        return implementation

    @external("initialize(address,bytes)")
    def initialize(self, frame: Frame, implementation: str, extra: bytes) -> None:
        state = self.state(frame)
        if state is ProxyState.INITIALIZED:
            raise AlreadyInitialized()
        InvariantChecker.check_state_transition(state, ProxyState.INITIALIZED, PROXY_TRANSITIONS)

        require_wallet_implementation(frame, implementation)
        frame.sstore(BOUND_TOKEN_SLOT, (
            frame.immutable("chain_id"),
            frame.immutable("token_contract"),
            frame.immutable("token_id"),
        ))
        frame.sstore(IMPLEMENTATION_SLOT, implementation)
        frame.sstore(INITIALIZED_SLOT, True)
        nonce = increment_nonce(frame)
        frame.emit(Initialized(implementation=implementation, nonce=nonce))

        if extra:
            frame.delegate_call(implementation, extra)

    @external("upgrade(address)")
    def upgrade(self, frame: Frame, new_implementation: str) -> None:
        self._require_initialized(frame)
        require_owner(frame)

        require_wallet_implementation(frame, new_implementation)
        frame.sstore(IMPLEMENTATION_SLOT, new_implementation)
        nonce = increment_nonce(frame)
        frame.emit(Upgraded(implementation=new_implementation, nonce=nonce))

    @external("implementation()")
    def implementation(self, frame: Frame) -> str:
        return frame.sload(IMPLEMENTATION_SLOT, ZERO_ADDRESS)

    @external("token()")
    def token(self, frame: Frame) -> BoundToken:
        return read_bound_token(frame)

    @external("nonce()")
    def nonce(self, frame: Frame) -> int:
        return frame.sload(NONCE_SLOT, 0)

    def fallback(self, frame: Frame, data: bytes):
        return frame.delegate_call(self._require_initialized(frame), data)

    def receive(self, frame: Frame):
        return frame.delegate_call(self._require_initialized(frame), b"")
