"""
TOKENBOUND — Token-Bound Wallets

Programmable accounts whose ownership is derived, on every call, from the
current holder of a designated NFT.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                          TOKEN-BOUND WALLETS                             │
    │                                                                          │
    │  CORE                                                                    │
    │    registry.py     Deterministic, idempotent wallet factory             │
    │    proxy.py        Per-wallet storage shell, owner-gated upgrades       │
    │    wallet.py       Dynamic owner resolution, ownership-cycle rejection  │
    │    migration.py    Self-upgrade through delegated execution             │
    │                                                                          │
    │  RUNTIME                                                                 │
    │    ledger.py       Simulated ledger: frames, atomic transactions        │
    │    abi.py          Selectors and call-data codec                        │
    │    collaborators.py  Mock ERC-721 / ERC-1155 tokens                     │
    │                                                                          │
    │  INFRASTRUCTURE                                                          │
    │    hardening.py    Revert taxonomy, validation, hashing                 │
    │    events.py       Contract events and event bus                        │
    │    config.py       YAML / environment configuration                     │
    │    observability.py  Structured logging, tracing, audit chain           │
    │    cli.py          Command-line interface                               │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Wallet Key: (chain id, token contract, token id, implementation index).
    The key alone determines the wallet's address, before or after the
    wallet exists.

    Effective Owner: whoever holds the bound token right now. It is never
    stored; transferring the NFT transfers the wallet.

    Ownership Chain: token → holder → (holder's own bound token) → ... A
    wallet refuses any deposit that would make the chain loop back to it.

Copyright © 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

__version__ = "0.1.0"

# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import tokenbound modules on first access."""

    # Ledger exports
    if name in ("Ledger", "Contract", "ContractHandle", "Frame", "Account",
                "Receipt", "CallKind", "ZERO_ADDRESS", "external"):
        from tokenbound import ledger
        return getattr(ledger, name)

    # Codec exports
    if name in ("encode", "decode", "encode_call", "decode_call",
                "function_selector", "interface_id"):
        from tokenbound import abi
        return getattr(abi, name)

    # Registry exports
    if name in ("Registry", "WalletKey", "TokenboundSystem", "deploy_system",
                "compute_wallet_address"):
        from tokenbound import registry
        return getattr(registry, name)

    # Proxy exports
    if name in ("Proxy", "ProxyState"):
        from tokenbound import proxy
        return getattr(proxy, name)

    # Wallet exports
    if name in ("WalletImplementation", "check_ownership_chain"):
        from tokenbound import wallet
        return getattr(wallet, name)

    # Migration exports
    if name in ("MigrationHelper", "migration_call"):
        from tokenbound import migration
        return getattr(migration, name)

    # Collaborator exports
    if name in ("MockERC721", "MockERC1155"):
        from tokenbound import collaborators
        return getattr(collaborators, name)

    # Error exports
    if name in ("Revert", "AlreadyInitialized", "NotInitialized", "NotOwner",
                "SelfOwnership", "OwnershipChainCycle", "ExecutionReverted",
                "DeploymentCollision", "InvalidImplementation", "NotDelegated",
                "StaticCallViolation", "CallDepthExceeded", "ValidationError", "SecurityViolation",
                "InvariantViolation"):
        from tokenbound import hardening
        return getattr(hardening, name)

    # Config exports
    if name in ("get_config", "get_config_manager", "ConfigManager", "ConfigError"):
        from tokenbound import config
        return getattr(config, name)

    raise AttributeError(f"module 'tokenbound' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Ledger
    "Ledger", "Contract", "ContractHandle", "Frame", "Account", "Receipt",
    "CallKind", "ZERO_ADDRESS", "external",
    # Codec
    "encode", "decode", "encode_call", "decode_call", "function_selector", "interface_id",
    # Core
    "Registry", "WalletKey", "TokenboundSystem", "deploy_system", "compute_wallet_address",
    "Proxy", "ProxyState", "WalletImplementation", "check_ownership_chain",
    "MigrationHelper", "migration_call",
    # Collaborators
    "MockERC721", "MockERC1155",
    # Errors
    "Revert", "AlreadyInitialized", "NotInitialized", "NotOwner", "SelfOwnership",
    "OwnershipChainCycle", "ExecutionReverted", "DeploymentCollision",
    "InvalidImplementation", "NotDelegated", "StaticCallViolation", "CallDepthExceeded",
    "ValidationError", "SecurityViolation", "InvariantViolation",
    # Config
    "get_config", "get_config_manager", "ConfigManager", "ConfigError",
]
