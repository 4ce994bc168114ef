"""
Tokenbound Wallet Implementation

Stateless wallet logic executed by delegation inside a proxy's storage.

Authorization
─────────────

    The effective owner is never stored. Every privileged entry point asks
    the bound token's contract for ``ownerOf(token_id)`` at call time, so an
    NFT transfer moves control of the wallet in the same instant.

Cycle Detection
───────────────

    A wallet must never directly or indirectly own the token that backs it.
    On every deposit the wallet walks its ownership chain upward:

        this wallet ◀── bound token ◀── holder (wallet?) ◀── its token ◀── ...

    and rejects the deposit if the walk reaches the incoming token or this
    wallet again. The walk is bounded by ``wallet.max_chain_depth`` and fails
    closed when the bound is exhausted.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from typing import Any, List, Optional

from tokenbound.abi import function_selector
from tokenbound.collaborators import (
    ERC1155_BATCH_RECEIVED,
    ERC1155_RECEIVED,
    ERC721_RECEIVED,
)
from tokenbound.config import get_config
from tokenbound.events import TransactionExecuted
from tokenbound.hardening import (
    ExecutionReverted,
    OwnershipChainCycle,
    Revert,
    SelfOwnership,
)
from tokenbound.ledger import CallKind, Contract, Frame, external
from tokenbound.observability import TokenboundLayer, get_logger
from tokenbound.proxy import (
    ERC165_INTERFACE_ID,
    WALLET_INTERFACE_ID,
    BoundToken,
    increment_nonce,
    owner_of_token,
    read_bound_token,
    require_owner,
    resolve_owner,
)


ERC721_RECEIVER_INTERFACE_ID = ERC721_RECEIVED
ERC1155_RECEIVER_INTERFACE_ID = bytes(
    a ^ b for a, b in zip(ERC1155_RECEIVED, ERC1155_BATCH_RECEIVED)
)

SUPPORTED_INTERFACES = frozenset({
    ERC165_INTERFACE_ID,
    WALLET_INTERFACE_ID,
    ERC721_RECEIVER_INTERFACE_ID,
    ERC1155_RECEIVER_INTERFACE_ID,
})

_TOKEN_CALL = function_selector("token()")

logger = get_logger("wallet", TokenboundLayer.WALLET)


# =============================================================================
# OWNERSHIP CHAIN WALK
# =============================================================================

def bound_token_of(frame: Frame, holder: Optional[str]) -> Optional[BoundToken]:
    """
    Bound token of ``holder`` if it is a token-bound wallet on this chain.

    Accounts without code, contracts without a readable ``token()`` and
    wallets bound on another chain all terminate the chain.
    """
    if holder is None or not frame.is_contract(holder):
        return None
    try:
        token = frame.static_call(holder, _TOKEN_CALL)
    except Revert:
        return None
    if not (isinstance(token, tuple) and len(token) == 3):
        return None
    chain_id, token_contract, token_id = token
    if chain_id != frame.chain_id:
        return None
    return chain_id, token_contract, token_id


def check_ownership_chain(frame: Frame, incoming: BoundToken, max_depth: int) -> None:
    """
    Reject ``incoming`` if accepting it would close an ownership cycle.

    Each hop resolves the holder of one token. The walk starts at this
    wallet's bound token and follows holder wallets upward; the chain ends at
    the first holder that is not a token-bound wallet.
    """
    bound = read_bound_token(frame)
    if incoming == bound:
        raise SelfOwnership()

    current = bound
    for _ in range(max_depth):
        if current == incoming:
            raise OwnershipChainCycle()
        holder = owner_of_token(frame, current)
        if holder == frame.address:
            raise OwnershipChainCycle()
        next_token = bound_token_of(frame, holder)
        if next_token is None:
            return
        current = next_token

    raise OwnershipChainCycle(depth_exceeded=True)


# =============================================================================
# WALLET
# =============================================================================

class WalletImplementation(Contract):
    """Wallet behavior. ``token()`` and ``nonce()`` are served by the proxy."""

    @external("owner()")
    def owner(self, frame: Frame) -> str:
        return resolve_owner(frame)

    @external("execTransaction(address,uint256,bytes,uint8)", payable=True)
    def exec_transaction(
        self, frame: Frame, target: str, value: int, data: bytes, operation: int
    ) -> Any:
        require_owner(frame)
        if operation not in (CallKind.CALL, CallKind.DELEGATECALL):
            raise Revert(f"Wallet: unsupported operation {operation}")
        if operation == CallKind.DELEGATECALL and value:
            raise Revert("Wallet: value not allowed with delegatecall")

        nonce = increment_nonce(frame)
        try:
            if operation == CallKind.CALL:
                result = frame.call(target, data, value)
            else:
                result = frame.delegate_call(target, data)
        except Revert as e:
            raise ExecutionReverted(e.reason, inner=e) from e

        frame.emit(TransactionExecuted(target=target, value=value, operation=operation, nonce=nonce))
        return result

    @external("execTransaction(address,uint256,bytes)", payable=True)
    def exec_call(self, frame: Frame, target: str, value: int, data: bytes) -> Any:
        return self.exec_transaction(frame, target, value, data, CallKind.CALL)

    # -- receivers -------------------------------------------------------------

    def _accept(self, frame: Frame, token_ids: List[int]) -> None:
        max_depth = get_config().wallet.max_chain_depth.get()
        for token_id in token_ids:
            try:
                check_ownership_chain(frame, (frame.chain_id, frame.sender, token_id), max_depth)
            except (SelfOwnership, OwnershipChainCycle) as e:
                logger.warning(
                    "Deposit rejected",
                    operation="deposit",
                    wallet=frame.address,
                    token_contract=frame.sender,
                    token_id=token_id,
                    reason=e.reason,
                )
                raise

    @external("onERC721Received(address,address,uint256,bytes)")
    def on_erc721_received(
        self, frame: Frame, operator: str, from_address: str, token_id: int, data: bytes
    ) -> bytes:
        self._accept(frame, [token_id])
        return ERC721_RECEIVED

    @external("onERC1155Received(address,address,uint256,uint256,bytes)")
    def on_erc1155_received(
        self, frame: Frame, operator: str, from_address: str, token_id: int, amount: int, data: bytes
    ) -> bytes:
        self._accept(frame, [token_id])
        return ERC1155_RECEIVED

    @external("onERC1155BatchReceived(address,address,uint256[],uint256[],bytes)")
    def on_erc1155_batch_received(
        self,
        frame: Frame,
        operator: str,
        from_address: str,
        token_ids: List[int],
        amounts: List[int],
        data: bytes,
    ) -> bytes:
        self._accept(frame, token_ids)
        return ERC1155_BATCH_RECEIVED

    @external("supportsInterface(bytes4)")
    def supports_interface(self, frame: Frame, interface: bytes) -> bool:
        return interface in SUPPORTED_INTERFACES

    def receive(self, frame: Frame) -> None:
        return None
