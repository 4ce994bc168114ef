"""
Tokenbound Wallet Test Suite

Tests for the wallet proxy and implementation:
- live owner resolution from the bound token
- owner-gated execution and the nonce
- custody of ERC-721, ERC-1155 and native value
- upgrades and migration helpers

Run with: pytest tests/test_tokenbound_wallet.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from tokenbound.abi import encode_call
from tokenbound.events import TransactionExecuted, Upgraded
from tokenbound.hardening import (
    AlreadyInitialized,
    ExecutionReverted,
    InvalidImplementation,
    NotDelegated,
    NotInitialized,
    NotOwner,
    Revert,
)
from tokenbound.ledger import ZERO_ADDRESS, CallKind, Frame, external
from tokenbound.migration import MIGRATE_CALL, MigrationHelper, migration_call
from tokenbound.proxy import WALLET_INTERFACE_ID, Proxy
from tokenbound.wallet import (
    ERC721_RECEIVER_INTERFACE_ID,
    ERC1155_RECEIVER_INTERFACE_ID,
    WalletImplementation,
)


class WalletImplementationV2(WalletImplementation):
    """Second wallet release, distinguishable by ``version()``."""

    VERSION = "2"

    @external("version()")
    def version(self, frame: Frame) -> str:
        return self.VERSION


@pytest.fixture
def v2(ledger, system):
    return ledger.deploy(system.deployer, WalletImplementationV2())


def _transfer_token(erc721, sender, to, token_id):
    erc721.transact("safeTransferFrom(address,address,uint256)", sender, to, token_id, sender=sender)


# =============================================================================
# OWNERSHIP
# =============================================================================

class TestOwnership:
    """Owner is derived from the bound token at call time."""

    def test_owner_is_token_holder(self, wallet, accounts):
        assert wallet.call("owner") == accounts.owner

    def test_owner_follows_token_transfer(self, wallet, erc721, accounts):
        _transfer_token(erc721, accounts.owner, accounts.new_owner, 1)
        assert wallet.call("owner") == accounts.new_owner

    def test_previous_owner_loses_control(self, wallet, erc721, accounts):
        _transfer_token(erc721, accounts.owner, accounts.new_owner, 1)

        with pytest.raises(NotOwner):
            wallet.transact("execTransaction", accounts.account1, 0, b"", sender=accounts.owner)
        wallet.transact("execTransaction", accounts.account1, 0, b"", sender=accounts.new_owner)

    def test_token_reports_binding(self, ledger, wallet, erc721):
        assert wallet.call("token") == (ledger.chain_id, erc721.address, 1)

    def test_foreign_chain_wallet_has_no_owner(self, system, erc721, accounts):
        wallet = system.create_wallet(erc721.address, 1, sender=accounts.owner, chain_id=5)
        assert wallet.call("owner") == ZERO_ADDRESS
        with pytest.raises(NotOwner):
            wallet.transact("execTransaction", accounts.account1, 0, b"", sender=accounts.owner)

    def test_unminted_token_has_no_owner(self, system, erc721, accounts):
        wallet = system.create_wallet(erc721.address, 99, sender=accounts.owner)
        assert wallet.call("owner") == ZERO_ADDRESS

    def test_zero_address_never_authorized(self, system, erc721):
        wallet = system.create_wallet(erc721.address, 99)
        with pytest.raises(NotOwner):
            wallet.transact("execTransaction", ZERO_ADDRESS, 0, b"", sender=ZERO_ADDRESS)


# =============================================================================
# INITIALIZATION
# =============================================================================

class TestInitialization:
    """One-shot initializer and pre-initialization behavior."""

    def test_second_initialize_rejected(self, system, wallet, accounts):
        with pytest.raises(AlreadyInitialized):
            wallet.transact("initialize", system.implementation, b"", sender=accounts.owner)

    def test_initialized_state(self, system, wallet):
        assert wallet.call("implementation") == system.implementation
        assert wallet.call("nonce") == 1

    def test_uninitialized_proxy(self, ledger, system, erc721, accounts):
        address = ledger.deploy(system.deployer, Proxy(), {
            "registry": system.registry.address,
            "chain_id": ledger.chain_id,
            "token_contract": erc721.address,
            "token_id": 1,
            "implementation_index": 0,
        })
        proxy = system.wallet(address)

        assert proxy.call("implementation") == ZERO_ADDRESS
        assert proxy.call("nonce") == 0
        with pytest.raises(NotInitialized):
            proxy.call("token")
        with pytest.raises(NotInitialized):
            proxy.call("owner")
        with pytest.raises(NotInitialized):
            proxy.transact("execTransaction", accounts.account1, 0, b"", sender=accounts.owner)
        with pytest.raises(NotInitialized):
            ledger.transact(accounts.owner, address, value=1)


# =============================================================================
# EXECUTION
# =============================================================================

class TestExecution:
    """Owner-gated arbitrary calls."""

    def test_owner_can_execute(self, ledger, wallet, accounts):
        ledger.fund(wallet.address, 1000)
        receipt = wallet.transact("execTransaction", accounts.account1, 400, b"", sender=accounts.owner)

        assert ledger.balance_of(wallet.address) == 600
        assert wallet.call("nonce") == 2
        executed = receipt.events_of(TransactionExecuted)
        assert len(executed) == 1
        assert executed[0].address == wallet.address
        assert (executed[0].target, executed[0].value, executed[0].nonce) == (accounts.account1, 400, 2)

    def test_non_owner_rejected(self, wallet, accounts):
        with pytest.raises(NotOwner):
            wallet.transact("execTransaction", accounts.account1, 0, b"", sender=accounts.account1)
        assert wallet.call("nonce") == 1

    def test_nonce_increments_per_execution(self, wallet, accounts):
        for _ in range(3):
            wallet.transact("execTransaction", accounts.account1, 0, b"", sender=accounts.owner)
        assert wallet.call("nonce") == 4

    def test_returns_call_result(self, wallet, erc721, accounts):
        data = encode_call("ownerOf(uint256)", 1)
        receipt = wallet.transact("execTransaction", erc721.address, 0, data, sender=accounts.owner)
        assert receipt.return_value == accounts.owner

    def test_inner_revert_propagates_reason(self, wallet, erc721, accounts):
        data = encode_call(
            "transferFrom(address,address,uint256)", accounts.owner, wallet.address, 1
        )
        with pytest.raises(ExecutionReverted) as exc:
            wallet.transact("execTransaction", erc721.address, 0, data, sender=accounts.owner)

        assert exc.value.reason == "ERC721: caller is not token owner or approved"
        assert isinstance(exc.value.__cause__, Revert)
        assert exc.value.inner is exc.value.__cause__
        assert wallet.call("nonce") == 1

    def test_value_sent_with_execution(self, ledger, wallet, accounts):
        before = ledger.balance_of(accounts.account2)
        wallet.transact(
            "execTransaction", accounts.account2, 300, b"", sender=accounts.owner, value=300
        )
        assert ledger.balance_of(accounts.account2) == before + 300
        assert ledger.balance_of(wallet.address) == 0

    def test_insufficient_wallet_balance(self, wallet, accounts):
        with pytest.raises(ExecutionReverted, match="insufficient balance"):
            wallet.transact("execTransaction", accounts.account1, 1, b"", sender=accounts.owner)

    @pytest.mark.parametrize("operation", [2, 3, 255])
    def test_unsupported_operation(self, wallet, accounts, operation):
        with pytest.raises(Revert, match=f"unsupported operation {operation}"):
            wallet.transact(
                "execTransaction", accounts.account1, 0, b"", operation, sender=accounts.owner
            )

    def test_delegatecall_rejects_value(self, ledger, wallet, accounts):
        ledger.fund(wallet.address, 10)
        with pytest.raises(Revert, match="value not allowed"):
            wallet.transact(
                "execTransaction", accounts.account1, 10, b"", int(CallKind.DELEGATECALL),
                sender=accounts.owner,
            )

    def test_reentrant_self_execution_rejected(self, wallet, accounts):
        inner = encode_call("execTransaction(address,uint256,bytes)", accounts.account1, 0, b"")
        with pytest.raises(ExecutionReverted) as exc:
            wallet.transact("execTransaction", wallet.address, 0, inner, sender=accounts.owner)
        assert exc.value.reason == "Caller is not owner"
        assert wallet.call("nonce") == 1

    def test_nested_wallet_control(self, ledger, system, wallet, erc721, accounts):
        erc721.transact("mint", accounts.account1, 2, sender=system.deployer)
        inner_wallet = system.create_wallet(erc721.address, 2, sender=accounts.account1)
        _transfer_token(erc721, accounts.account1, wallet.address, 2)
        ledger.fund(inner_wallet.address, 100)

        assert inner_wallet.call("owner") == wallet.address
        with pytest.raises(NotOwner):
            inner_wallet.transact("execTransaction", accounts.account1, 0, b"", sender=accounts.account1)

        before = ledger.balance_of(accounts.account2)
        inner = encode_call("execTransaction(address,uint256,bytes)", accounts.account2, 50, b"")
        wallet.transact("execTransaction", inner_wallet.address, 0, inner, sender=accounts.owner)
        assert ledger.balance_of(accounts.account2) == before + 50
        assert inner_wallet.call("nonce") == 2


# =============================================================================
# CUSTODY
# =============================================================================

class TestCustody:
    """Receiving and sending assets."""

    def test_receives_native_value(self, ledger, wallet, accounts):
        ledger.transact(accounts.account1, wallet.address, value=123)
        assert ledger.balance_of(wallet.address) == 123

    def test_receives_and_sends_erc721(self, system, wallet, deploy_erc721, accounts):
        other = deploy_erc721("bar", "BAR")
        other.transact("mint", accounts.account1, 5, sender=system.deployer)
        _transfer_token(other, accounts.account1, wallet.address, 5)
        assert other.call("ownerOf", 5) == wallet.address

        data = encode_call(
            "safeTransferFrom(address,address,uint256)", wallet.address, accounts.account2, 5
        )
        wallet.transact("execTransaction", other.address, 0, data, sender=accounts.owner)
        assert other.call("ownerOf", 5) == accounts.account2

    def test_erc1155_single(self, system, wallet, deploy_erc1155, accounts):
        multi = deploy_erc1155()
        multi.transact("mint", wallet.address, 7, 10, b"", sender=system.deployer)
        assert multi.call("balanceOf", wallet.address, 7) == 10

        data = encode_call(
            "safeTransferFrom(address,address,uint256,uint256,bytes)",
            wallet.address, accounts.account1, 7, 4, b"",
        )
        wallet.transact("execTransaction", multi.address, 0, data, sender=accounts.owner)
        assert multi.call("balanceOf", wallet.address, 7) == 6
        assert multi.call("balanceOf", accounts.account1, 7) == 4

    def test_erc1155_batch(self, system, wallet, deploy_erc1155, accounts):
        multi = deploy_erc1155()
        multi.transact("mint", accounts.account1, 1, 5, b"", sender=system.deployer)
        multi.transact("mint", accounts.account1, 2, 8, b"", sender=system.deployer)

        multi.transact(
            "safeBatchTransferFrom", accounts.account1, wallet.address, [1, 2], [5, 3], b"",
            sender=accounts.account1,
        )
        balances = multi.call("balanceOfBatch", [wallet.address, wallet.address], [1, 2])
        assert balances == [5, 3]

    def test_supports_interface(self, wallet):
        assert wallet.call("supportsInterface", WALLET_INTERFACE_ID) is True
        assert wallet.call("supportsInterface", ERC721_RECEIVER_INTERFACE_ID) is True
        assert wallet.call("supportsInterface", ERC1155_RECEIVER_INTERFACE_ID) is True
        assert wallet.call("supportsInterface", b"\xff\xff\xff\xff") is False


# =============================================================================
# UPGRADES
# =============================================================================

class TestUpgrade:
    """Owner-only implementation changes."""

    def test_owner_upgrades(self, ledger, system, wallet, v2, accounts):
        receipt = wallet.transact("upgrade", v2, sender=accounts.owner)

        assert wallet.call("implementation") == v2
        assert wallet.call("nonce") == 2
        upgraded = receipt.events_of(Upgraded)
        assert [(e.implementation, e.nonce) for e in upgraded] == [(v2, 2)]

        routed = ledger.at(wallet.address, Proxy, WalletImplementationV2)
        assert routed.call("version") == "2"
        assert routed.call("owner") == accounts.owner

    def test_non_owner_cannot_upgrade(self, system, wallet, v2, accounts):
        with pytest.raises(NotOwner):
            wallet.transact("upgrade", v2, sender=accounts.account1)
        assert wallet.call("implementation") == system.implementation

    def test_upgrade_to_non_wallet_rejected(self, wallet, erc721, accounts):
        with pytest.raises(InvalidImplementation):
            wallet.transact("upgrade", erc721.address, sender=accounts.owner)

    def test_upgrade_to_account_without_code_rejected(self, wallet, accounts):
        with pytest.raises(InvalidImplementation):
            wallet.transact("upgrade", accounts.account1, sender=accounts.owner)

    def test_upgrade_to_proxy_rejected(self, wallet, accounts):
        with pytest.raises(InvalidImplementation):
            wallet.transact("upgrade", wallet.address, sender=accounts.owner)

    def test_state_survives_upgrade(self, ledger, wallet, v2, accounts):
        ledger.fund(wallet.address, 50)
        wallet.transact("upgrade", v2, sender=accounts.owner)

        assert ledger.balance_of(wallet.address) == 50
        wallet.transact("execTransaction", accounts.account1, 50, b"", sender=accounts.owner)
        assert wallet.call("nonce") == 3


class TestMigration:
    """Self-upgrade by delegated execution of a helper."""

    @pytest.fixture
    def helper(self, ledger, system, v2):
        return ledger.deploy(system.deployer, MigrationHelper(), {"implementation": v2})

    def test_migration_through_execution(self, ledger, wallet, helper, v2, accounts):
        receipt = wallet.transact("execTransaction", *migration_call(helper), sender=accounts.owner)

        assert wallet.call("implementation") == v2
        assert wallet.call("nonce") == 2
        assert receipt.events_of(Upgraded)[0].implementation == v2
        assert receipt.events_of(Upgraded)[0].address == wallet.address
        assert ledger.at(wallet.address, WalletImplementationV2).call("version") == "2"

    def test_migration_requires_owner(self, system, wallet, helper, accounts):
        with pytest.raises(NotOwner):
            wallet.transact("execTransaction", *migration_call(helper), sender=accounts.account1)
        assert wallet.call("implementation") == system.implementation

    def test_migration_requires_delegatecall(self, system, wallet, helper, accounts):
        with pytest.raises(ExecutionReverted) as exc:
            wallet.transact("execTransaction", helper, 0, MIGRATE_CALL, sender=accounts.owner)
        assert exc.value.reason == NotDelegated.REASON
        assert wallet.call("implementation") == system.implementation

    def test_direct_migrate_rejected(self, ledger, helper, accounts):
        with pytest.raises(NotDelegated):
            ledger.at(helper, MigrationHelper).transact("migrate", sender=accounts.owner)

    def test_helper_requires_wallet_target(self, ledger, system, erc721):
        with pytest.raises(InvalidImplementation):
            ledger.deploy(system.deployer, MigrationHelper(), {"implementation": erc721.address})

    def test_helper_reports_target(self, ledger, helper, v2):
        assert ledger.at(helper, MigrationHelper).call("target") == v2

    def test_nonce_monotonic_across_operations(self, wallet, helper, v2, system, accounts):
        seen = [wallet.call("nonce")]
        wallet.transact("execTransaction", accounts.account1, 0, b"", sender=accounts.owner)
        seen.append(wallet.call("nonce"))
        wallet.transact("execTransaction", *migration_call(helper), sender=accounts.owner)
        seen.append(wallet.call("nonce"))
        wallet.transact("upgrade", system.implementation, sender=accounts.owner)
        seen.append(wallet.call("nonce"))
        assert seen == [1, 2, 3, 4]
