"""
Tokenbound Migration Helper

Self-upgrade through the ordinary "execute as owner" path.

A helper is deployed once per target implementation. The owner of a wallet
points ``execTransaction`` at it with the DELEGATECALL operation:

    owner ──execTransaction(helper, 0, migrate(), DELEGATECALL)──▶ proxy
      proxy ──delegate──▶ wallet implementation   (owner check, nonce + 1)
        wallet ──delegate──▶ helper.migrate()     (writes proxy.implementation)

The helper runs in the proxy's storage, so it overwrites the
``implementation`` slot directly; no registry privilege is involved. Nonce
bookkeeping stays with ``execTransaction``.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from tokenbound.abi import encode_call
from tokenbound.events import Upgraded
from tokenbound.hardening import NotDelegated, NotInitialized
from tokenbound.ledger import CallKind, Contract, Frame, external
from tokenbound.observability import TokenboundLayer, get_logger
from tokenbound.proxy import (
    IMPLEMENTATION_SLOT,
    INITIALIZED_SLOT,
    NONCE_SLOT,
    require_wallet_implementation,
)


logger = get_logger("migration", TokenboundLayer.MIGRATION)

MIGRATE_CALL = encode_call("migrate()")


class MigrationHelper(Contract):
    """Immutables: ``implementation``, the implementation to migrate to."""

    def constructor(self, frame: Frame) -> None:
        require_wallet_implementation(frame, frame.immutable("implementation"))

    @external("target()")
    def target(self, frame: Frame) -> str:
        return frame.immutable("implementation")

    @external("migrate()")
    def migrate(self, frame: Frame) -> None:
        if not frame.delegated:
            raise NotDelegated()
        if not frame.sload(INITIALIZED_SLOT):
            raise NotInitialized()

        new_implementation = frame.immutable("implementation")
        require_wallet_implementation(frame, new_implementation)
        frame.sstore(IMPLEMENTATION_SLOT, new_implementation)
        frame.emit(Upgraded(implementation=new_implementation, nonce=frame.sload(NONCE_SLOT, 0)))
        logger.info(
            "Wallet migrated",
            operation="migrate",
            wallet=frame.address,
            implementation=new_implementation,
        )


def migration_call(helper: str) -> tuple:
    """Arguments for ``execTransaction`` that run ``helper`` as a migration."""
    return helper, 0, MIGRATE_CALL, int(CallKind.DELEGATECALL)
