"""
Tokenbound NFT Collaborators

Minimal, standards-shaped ERC-721 and ERC-1155 token contracts used to
exercise wallets on the simulated ledger.

Both contracts update balances *before* invoking the receiver hook on a
contract recipient, and reject the transfer unless the hook returns the
standard success selector. Recipients without code accept every transfer.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from typing import List

from tokenbound.abi import encode_call, function_selector
from tokenbound.events import ApprovalForAll, Transfer, TransferBatch, TransferSingle
from tokenbound.hardening import Revert
from tokenbound.ledger import ZERO_ADDRESS, Contract, Frame, external


ERC721_RECEIVED = function_selector("onERC721Received(address,address,uint256,bytes)")
ERC1155_RECEIVED = function_selector("onERC1155Received(address,address,uint256,uint256,bytes)")
ERC1155_BATCH_RECEIVED = function_selector(
    "onERC1155BatchReceived(address,address,uint256[],uint256[],bytes)"
)


def _receiver_check(frame: Frame, to: str, call_data: bytes, expected: bytes, standard: str) -> None:
    """Invoke a receiver hook on a contract recipient and require the success selector."""
    if not frame.is_contract(to):
        return
    result = frame.call(to, call_data)
    if result != expected:
        raise Revert(f"{standard}: transfer to non {standard}Receiver implementer")


# =============================================================================
# ERC-721
# =============================================================================

class MockERC721(Contract):
    """Non-fungible token with unrestricted minting."""

    @external("name()")
    def name(self, frame: Frame) -> str:
        return frame.immutable("name")

    @external("symbol()")
    def symbol(self, frame: Frame) -> str:
        return frame.immutable("symbol")

    @external("mint(address,uint256)")
    def mint(self, frame: Frame, to: str, token_id: int) -> None:
        if to == ZERO_ADDRESS:
            raise Revert("ERC721: mint to the zero address")
        if frame.sload(f"owner:{token_id}") is not None:
            raise Revert("ERC721: token already minted")
        frame.sstore(f"owner:{token_id}", to)
        frame.sstore(f"balance:{to}", frame.sload(f"balance:{to}", 0) + 1)
        frame.emit(Transfer(from_address=ZERO_ADDRESS, to=to, token_id=token_id))

    @external("ownerOf(uint256)")
    def owner_of(self, frame: Frame, token_id: int) -> str:
        owner = frame.sload(f"owner:{token_id}")
        if owner is None:
            raise Revert("ERC721: invalid token ID")
        return owner

    @external("balanceOf(address)")
    def balance_of(self, frame: Frame, owner: str) -> int:
        if owner == ZERO_ADDRESS:
            raise Revert("ERC721: address zero is not a valid owner")
        return frame.sload(f"balance:{owner}", 0)

    @external("approve(address,uint256)")
    def approve(self, frame: Frame, to: str, token_id: int) -> None:
        owner = self.owner_of(frame, token_id)
        if to == owner:
            raise Revert("ERC721: approval to current owner")
        if frame.sender != owner and not self.is_approved_for_all(frame, owner, frame.sender):
            raise Revert("ERC721: approve caller is not token owner or approved for all")
        frame.sstore(f"approved:{token_id}", to)

    @external("getApproved(uint256)")
    def get_approved(self, frame: Frame, token_id: int) -> str:
        self.owner_of(frame, token_id)
        return frame.sload(f"approved:{token_id}", ZERO_ADDRESS)

    @external("setApprovalForAll(address,bool)")
    def set_approval_for_all(self, frame: Frame, operator: str, approved: bool) -> None:
        if operator == frame.sender:
            raise Revert("ERC721: approve to caller")
        frame.sstore(f"operator:{frame.sender}:{operator}", approved or None)
        frame.emit(ApprovalForAll(owner=frame.sender, operator=operator, approved=approved))

    @external("isApprovedForAll(address,address)")
    def is_approved_for_all(self, frame: Frame, owner: str, operator: str) -> bool:
        return bool(frame.sload(f"operator:{owner}:{operator}", False))

    def _transfer(self, frame: Frame, from_address: str, to: str, token_id: int) -> None:
        owner = self.owner_of(frame, token_id)
        spender = frame.sender
        if not (
            spender == owner
            or self.is_approved_for_all(frame, owner, spender)
            or frame.sload(f"approved:{token_id}") == spender
        ):
            raise Revert("ERC721: caller is not token owner or approved")
        if owner != from_address:
            raise Revert("ERC721: transfer from incorrect owner")
        if to == ZERO_ADDRESS:
            raise Revert("ERC721: transfer to the zero address")

        frame.sstore(f"approved:{token_id}", None)
        frame.sstore(f"balance:{from_address}", frame.sload(f"balance:{from_address}", 0) - 1)
        frame.sstore(f"balance:{to}", frame.sload(f"balance:{to}", 0) + 1)
        frame.sstore(f"owner:{token_id}", to)
        frame.emit(Transfer(from_address=from_address, to=to, token_id=token_id))

    @external("transferFrom(address,address,uint256)")
    def transfer_from(self, frame: Frame, from_address: str, to: str, token_id: int) -> None:
        self._transfer(frame, from_address, to, token_id)

    @external("safeTransferFrom(address,address,uint256)")
    def safe_transfer_from(self, frame: Frame, from_address: str, to: str, token_id: int) -> None:
        self.safe_transfer_from_with_data(frame, from_address, to, token_id, b"")

    @external("safeTransferFrom(address,address,uint256,bytes)")
    def safe_transfer_from_with_data(
        self, frame: Frame, from_address: str, to: str, token_id: int, data: bytes
    ) -> None:
        self._transfer(frame, from_address, to, token_id)
        hook = encode_call(
            "onERC721Received(address,address,uint256,bytes)",
            frame.sender, from_address, token_id, data,
        )
        _receiver_check(frame, to, hook, ERC721_RECEIVED, "ERC721")


# =============================================================================
# ERC-1155
# =============================================================================

class MockERC1155(Contract):
    """Multi-token with unrestricted minting."""

    @external("mint(address,uint256,uint256,bytes)")
    def mint(self, frame: Frame, to: str, token_id: int, amount: int, data: bytes) -> None:
        if to == ZERO_ADDRESS:
            raise Revert("ERC1155: mint to the zero address")
        frame.sstore(f"balance:{token_id}:{to}", frame.sload(f"balance:{token_id}:{to}", 0) + amount)
        frame.emit(TransferSingle(
            operator=frame.sender, from_address=ZERO_ADDRESS, to=to, token_id=token_id, amount=amount,
        ))
        hook = encode_call(
            "onERC1155Received(address,address,uint256,uint256,bytes)",
            frame.sender, ZERO_ADDRESS, token_id, amount, data,
        )
        _receiver_check(frame, to, hook, ERC1155_RECEIVED, "ERC1155")

    @external("balanceOf(address,uint256)")
    def balance_of(self, frame: Frame, owner: str, token_id: int) -> int:
        if owner == ZERO_ADDRESS:
            raise Revert("ERC1155: address zero is not a valid owner")
        return frame.sload(f"balance:{token_id}:{owner}", 0)

    @external("balanceOfBatch(address[],uint256[])")
    def balance_of_batch(self, frame: Frame, owners: List[str], token_ids: List[int]) -> List[int]:
        if len(owners) != len(token_ids):
            raise Revert("ERC1155: accounts and ids length mismatch")
        return [self.balance_of(frame, o, t) for o, t in zip(owners, token_ids)]

    @external("setApprovalForAll(address,bool)")
    def set_approval_for_all(self, frame: Frame, operator: str, approved: bool) -> None:
        if operator == frame.sender:
            raise Revert("ERC1155: setting approval status for self")
        frame.sstore(f"operator:{frame.sender}:{operator}", approved or None)
        frame.emit(ApprovalForAll(owner=frame.sender, operator=operator, approved=approved))

    @external("isApprovedForAll(address,address)")
    def is_approved_for_all(self, frame: Frame, owner: str, operator: str) -> bool:
        return bool(frame.sload(f"operator:{owner}:{operator}", False))

    def _move(self, frame: Frame, from_address: str, to: str, token_id: int, amount: int) -> None:
        balance = frame.sload(f"balance:{token_id}:{from_address}", 0)
        if balance < amount:
            raise Revert("ERC1155: insufficient balance for transfer")
        frame.sstore(f"balance:{token_id}:{from_address}", (balance - amount) or None)
        frame.sstore(f"balance:{token_id}:{to}", frame.sload(f"balance:{token_id}:{to}", 0) + amount)

    def _check_transfer(self, frame: Frame, from_address: str, to: str) -> None:
        if from_address != frame.sender and not self.is_approved_for_all(frame, from_address, frame.sender):
            raise Revert("ERC1155: caller is not token owner or approved")
        if to == ZERO_ADDRESS:
            raise Revert("ERC1155: transfer to the zero address")

    @external("safeTransferFrom(address,address,uint256,uint256,bytes)")
    def safe_transfer_from(
        self, frame: Frame, from_address: str, to: str, token_id: int, amount: int, data: bytes
    ) -> None:
        self._check_transfer(frame, from_address, to)
        self._move(frame, from_address, to, token_id, amount)
        frame.emit(TransferSingle(
            operator=frame.sender, from_address=from_address, to=to, token_id=token_id, amount=amount,
        ))
        hook = encode_call(
            "onERC1155Received(address,address,uint256,uint256,bytes)",
            frame.sender, from_address, token_id, amount, data,
        )
        _receiver_check(frame, to, hook, ERC1155_RECEIVED, "ERC1155")

    @external("safeBatchTransferFrom(address,address,uint256[],uint256[],bytes)")
    def safe_batch_transfer_from(
        self,
        frame: Frame,
        from_address: str,
        to: str,
        token_ids: List[int],
        amounts: List[int],
        data: bytes,
    ) -> None:
        if len(token_ids) != len(amounts):
            raise Revert("ERC1155: ids and amounts length mismatch")
        self._check_transfer(frame, from_address, to)
        for token_id, amount in zip(token_ids, amounts):
            self._move(frame, from_address, to, token_id, amount)
        frame.emit(TransferBatch(
            operator=frame.sender,
            from_address=from_address,
            to=to,
            token_ids=list(token_ids),
            amounts=list(amounts),
        ))
        hook = encode_call(
            "onERC1155BatchReceived(address,address,uint256[],uint256[],bytes)",
            frame.sender, from_address, token_ids, amounts, data,
        )
        _receiver_check(frame, to, hook, ERC1155_BATCH_RECEIVED, "ERC1155")
