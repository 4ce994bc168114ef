"""
Tokenbound Registry

Deterministic, permissionless factory for wallet proxies.

Every wallet is addressed by its key alone:

    salt    = H(encode(chain_id, token_contract, token_id, implementation_index))
    address = H(0xff ‖ registry ‖ salt ‖ H(proxy_init_code(key)))[12:]

so any party can compute a wallet's address before it exists and send
assets to it. ``create`` deploys the proxy there exactly once; repeating it
is a no-op that returns the same address.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import astuple, dataclass
from typing import Any, Dict, Optional

from tokenbound.abi import encode, encode_call
from tokenbound.events import AccountCreated
from tokenbound.hardening import (
    CryptoUtils,
    DeploymentCollision,
    NotInitialized,
    require_address,
    require_uint,
)
from tokenbound.ledger import ZERO_ADDRESS, ContractHandle, Contract, Frame, Ledger, external
from tokenbound.observability import TokenboundLayer, get_logger, timed_operation
from tokenbound.proxy import Proxy, require_wallet_implementation
from tokenbound.wallet import WalletImplementation


logger = get_logger("registry", TokenboundLayer.REGISTRY)


# =============================================================================
# WALLET KEY
# =============================================================================

@dataclass(frozen=True)
class WalletKey:
    """
    Identity of a token-bound wallet.

    Immutable and hashable; two keys are equal iff all four fields are.
    """
    chain_id: int
    token_contract: str
    token_id: int
    implementation_index: int = 0

    def __post_init__(self):
        object.__setattr__(self, "chain_id", require_uint(self.chain_id, "chain_id"))
        object.__setattr__(
            self, "token_contract", require_address(self.token_contract, "token_contract")
        )
        object.__setattr__(self, "token_id", require_uint(self.token_id, "token_id"))
        object.__setattr__(
            self,
            "implementation_index",
            require_uint(self.implementation_index, "implementation_index"),
        )

    @property
    def salt(self) -> bytes:
        return CryptoUtils.hash(encode(
            ["uint256", "address", "uint256", "uint256"],
            [self.chain_id, self.token_contract, self.token_id, self.implementation_index],
        ))

    @property
    def bound_token(self):
        return self.chain_id, self.token_contract, self.token_id

    def proxy_immutables(self, registry: str) -> Dict[str, Any]:
        """Constructor context baked into the proxy deployed for this key."""
        return {
            "registry": registry,
            "chain_id": self.chain_id,
            "token_contract": self.token_contract,
            "token_id": self.token_id,
            "implementation_index": self.implementation_index,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "token_contract": self.token_contract,
            "token_id": self.token_id,
            "implementation_index": self.implementation_index,
        }


def compute_wallet_address(registry: str, key: WalletKey) -> str:
    """Offline address derivation, identical to ``Registry.addressOf``."""
    code_hash = Proxy.code_hash(key.proxy_immutables(registry))
    return Ledger.create2_address(registry, key.salt, code_hash)


# =============================================================================
# REGISTRY CONTRACT
# =============================================================================

_PROXY = Proxy()


class Registry(Contract):
    """
    Wallet factory.

    Immutables: ``implementation``, the default wallet implementation used
    when ``create`` receives no initializer payload.

    A non-empty payload is sent to the new proxy as-is and must leave it
    initialized; otherwise the whole ``create`` reverts and nothing is
    deployed. The 3-argument overloads use implementation index 0.
    """

    def constructor(self, frame: Frame) -> None:
        require_wallet_implementation(frame, frame.immutable("implementation"))

    @staticmethod
    def _key(chain_id: int, token_contract: str, token_id: int, index: int) -> WalletKey:
        return WalletKey(chain_id, token_contract, token_id, index)

    @external("implementation()")
    def implementation(self, frame: Frame) -> str:
        return frame.immutable("implementation")

    @external("addressOf(uint256,address,uint256,uint256)")
    def address_of(
        self, frame: Frame, chain_id: int, token_contract: str, token_id: int, index: int
    ) -> str:
        return compute_wallet_address(frame.address, self._key(chain_id, token_contract, token_id, index))

    @external("addressExists(uint256,address,uint256,uint256)")
    def address_exists(
        self, frame: Frame, chain_id: int, token_contract: str, token_id: int, index: int
    ) -> bool:
        return frame.is_contract(self.address_of(frame, chain_id, token_contract, token_id, index))

    @external("addressOf(uint256,address,uint256)")
    def address_of_default(self, frame: Frame, chain_id: int, token_contract: str, token_id: int) -> str:
        return self.address_of(frame, chain_id, token_contract, token_id, 0)

    @external("addressExists(uint256,address,uint256)")
    def address_exists_default(self, frame: Frame, chain_id: int, token_contract: str, token_id: int) -> bool:
        return self.address_exists(frame, chain_id, token_contract, token_id, 0)

    @external("proxyCodeHash(uint256,address,uint256,uint256)")
    def proxy_code_hash(
        self, frame: Frame, chain_id: int, token_contract: str, token_id: int, index: int
    ) -> str:
        key = self._key(chain_id, token_contract, token_id, index)
        return Proxy.code_hash(key.proxy_immutables(frame.address))

    @external("walletCount()")
    def wallet_count(self, frame: Frame) -> int:
        return frame.sload("wallets.count", 0)

    @external("create(uint256,address,uint256,uint256,bytes)")
    def create(
        self,
        frame: Frame,
        chain_id: int,
        token_contract: str,
        token_id: int,
        index: int,
        init_data: bytes,
    ) -> str:
        key = self._key(chain_id, token_contract, token_id, index)
        immutables = key.proxy_immutables(frame.address)
        expected_hash = Proxy.code_hash(immutables)
        address = Ledger.create2_address(frame.address, key.salt, expected_hash)

        if frame.is_contract(address):
            if frame.ledger.code_hash(address) != expected_hash:
                raise DeploymentCollision()
            return address

        deployed = frame.create2(_PROXY, key.salt, immutables)
        if not init_data:
            init_data = encode_call("initialize(address,bytes)", frame.immutable("implementation"), b"")
        frame.call(deployed, init_data)
        if frame.static_call(deployed, encode_call("implementation()")) == ZERO_ADDRESS:
            raise NotInitialized("Registry: init data left the wallet uninitialized")

        slot = f"wallets:{chain_id}:{key.token_contract}:{token_id}:{index}"
        frame.sstore(slot, deployed)
        frame.sstore("wallets.count", frame.sload("wallets.count", 0) + 1)
        frame.emit(AccountCreated(
            account=deployed,
            chain_id=chain_id,
            token_contract=key.token_contract,
            token_id=token_id,
            implementation_index=index,
        ))
        logger.info("Wallet created", operation="create", account=deployed, **key.to_dict())
        return deployed

    @external("create(uint256,address,uint256)")
    def create_default(self, frame: Frame, chain_id: int, token_contract: str, token_id: int) -> str:
        return self.create(frame, chain_id, token_contract, token_id, 0, b"")


# =============================================================================
# SYSTEM BOOTSTRAP
# =============================================================================

@dataclass
class TokenboundSystem:
    """A ledger with a wallet implementation and a registry deployed on it."""
    ledger: Ledger
    deployer: str
    implementation: str
    registry: ContractHandle

    def create_wallet(
        self,
        token_contract: str,
        token_id: int,
        sender: Optional[str] = None,
        implementation_index: int = 0,
        init_data: bytes = b"",
        chain_id: Optional[int] = None,
    ) -> ContractHandle:
        """Create (or look up) the wallet for a token and return a handle to it."""
        key = WalletKey(
            chain_id if chain_id is not None else self.ledger.chain_id,
            token_contract,
            token_id,
            implementation_index,
        )
        receipt = self.registry.transact(
            "create(uint256,address,uint256,uint256,bytes)",
            *astuple(key),
            init_data,
            sender=sender or self.deployer,
        )
        return self.wallet(receipt.return_value)

    def address_of(self, key: WalletKey) -> str:
        return self.registry.call("addressOf", *astuple(key))

    def wallet(self, address: str) -> ContractHandle:
        return self.ledger.at(address, Proxy, WalletImplementation)


@timed_operation(logger, "deploy_system")
def deploy_system(ledger: Optional[Ledger] = None, deployer: Optional[str] = None) -> TokenboundSystem:
    """Deploy a wallet implementation and a registry using it as default."""
    ledger = ledger or Ledger()
    deployer = deployer or ledger.new_account()
    implementation = ledger.deploy(deployer, WalletImplementation())
    registry = ledger.deploy(deployer, Registry(), {"implementation": implementation})
    logger.info(
        "System deployed",
        operation="deploy_system",
        registry=registry,
        implementation=implementation,
        chain_id=ledger.chain_id,
    )
    return TokenboundSystem(
        ledger=ledger,
        deployer=deployer,
        implementation=implementation,
        registry=ledger.at(registry, Registry),
    )
