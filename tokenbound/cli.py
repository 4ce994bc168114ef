#!/usr/bin/env python3
"""
Tokenbound CLI

Command-line interface for the token-bound wallet stack.

Usage:
    tokenbound <command> [subcommand] [options]

Commands:
    address     Derive a wallet address offline from its key
    demo        Run the two-wallet ownership-cycle scenario on a fresh ledger
    config      Configuration management

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from tokenbound import __version__
from tokenbound.observability import (
    TokenboundLayer,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.dump(data, default_flow_style=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:44] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def _parse_int(value: str) -> int:
    """Accept decimal or 0x-prefixed integers."""
    return int(value, 0)


class TokenboundCLI:
    """Main CLI application."""

    def __init__(self):
        self.logger = get_logger("cli", TokenboundLayer.CLI)
        self.parser = argparse.ArgumentParser(
            prog="tokenbound",
            description="Token-bound wallet toolkit",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"tokenbound {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Configuration file to load before running the command",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_address_command()
        self._register_demo_command()
        self._register_config_commands()

    def _register_address_command(self) -> None:
        address = self.subparsers.add_parser("address", help="Derive a wallet address")
        address.add_argument("--registry", "-r", required=True, help="Registry address")
        address.add_argument("--chain-id", type=_parse_int, default=None, help="Chain id (default: ledger.chain_id)")
        address.add_argument("--token-contract", "-t", required=True, help="NFT contract address")
        address.add_argument("--token-id", "-i", type=_parse_int, required=True, help="Token id")
        address.add_argument("--index", type=_parse_int, default=0, help="Implementation index")

    def _register_demo_command(self) -> None:
        demo = self.subparsers.add_parser("demo", help="Run the ownership-cycle scenario")
        demo.add_argument("--max-chain-depth", type=int, help="Override wallet.max_chain_depth")

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        # config show
        config_sub.add_parser("show", help="Show current configuration")

        # config get
        get = config_sub.add_parser("get", help="Get a configuration value")
        get.add_argument("path", help="Dotted config path, e.g. wallet.max_chain_depth")

        # config validate
        config_sub.add_parser("validate", help="Validate configuration")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        set_correlation_id(generate_correlation_id())

        try:
            fmt = OutputFormat(parsed.format)
            from tokenbound.config import ConfigError, get_config_manager
            mgr = get_config_manager()
            mgr.load_defaults()
            if parsed.config:
                try:
                    mgr.load_from_file(parsed.config)
                except ConfigError as e:
                    raise CLIError(str(e), exit_code=2) from e

            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            self.logger.error("Command failed", exc_info=True, command=parsed.command)
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}")

        return handler(args)

    # Address handler
    def _handle_address(self, args: argparse.Namespace) -> Any:
        from tokenbound.config import get_config
        from tokenbound.hardening import ValidationError, require_address
        from tokenbound.registry import WalletKey, compute_wallet_address

        chain_id = args.chain_id if args.chain_id is not None else get_config().ledger.chain_id.get()
        try:
            registry = require_address(args.registry, "registry")
            key = WalletKey(chain_id, args.token_contract, args.token_id, args.index)
        except ValidationError as e:
            raise CLIError(str(e), exit_code=2) from e

        return {
            "registry": registry,
            **key.to_dict(),
            "salt": "0x" + key.salt.hex(),
            "address": compute_wallet_address(registry, key),
        }

    # Demo handler
    def _handle_demo(self, args: argparse.Namespace) -> Any:
        from tokenbound.config import ConfigValidationError, get_config
        from tokenbound.events import EventBus
        from tokenbound.ledger import Ledger

        if args.max_chain_depth is not None:
            try:
                get_config().wallet.max_chain_depth.set(args.max_chain_depth)
            except ConfigValidationError as e:
                raise CLIError(f"--max-chain-depth: {e}", exit_code=2) from e

        return run_demo(Ledger(event_bus=EventBus()))

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from tokenbound.config import ConfigError, get_config_manager
        mgr = get_config_manager()
        try:
            return {"path": args.path, "value": mgr.get(args.path)}
        except ConfigError as e:
            raise CLIError(str(e), exit_code=2) from e

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from tokenbound.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from tokenbound.config import get_config_manager
        errors = get_config_manager().validate()
        return {"valid": len(errors) == 0, "errors": errors}


def run_demo(ledger) -> Dict[str, Any]:
    """
    Two wallets, two tokens: park T1 in W2, then try to park T2 in W1.

    The second deposit would make W1 and W2 own each other's backing
    tokens and must be rejected.
    """
    from tokenbound.collaborators import MockERC721
    from tokenbound.hardening import Revert
    from tokenbound.registry import deploy_system

    system = deploy_system(ledger)
    alice = ledger.new_account("alice")
    bob = ledger.new_account("bob")

    nft = ledger.at(ledger.deploy(system.deployer, MockERC721(), {"name": "Demo", "symbol": "DEMO"}), MockERC721)
    nft.transact("mint", alice, 1, sender=system.deployer)
    nft.transact("mint", bob, 2, sender=system.deployer)

    w1 = system.create_wallet(nft.address, 1, sender=alice)
    w2 = system.create_wallet(nft.address, 2, sender=bob)

    steps: List[Dict[str, Any]] = []

    def attempt(action: str, sender: str, *call: Any) -> None:
        try:
            nft.transact("safeTransferFrom(address,address,uint256)", *call, sender=sender)
            steps.append({"action": action, "outcome": "ok", "reason": ""})
        except Revert as e:
            steps.append({"action": action, "outcome": "rejected", "reason": e.reason})

    attempt("alice deposits token 1 into wallet 2", alice, alice, w2.address, 1)
    attempt("bob deposits token 2 into wallet 1", bob, bob, w1.address, 2)
    attempt("bob deposits token 2 into wallet 2", bob, bob, w2.address, 2)

    return {
        "chain_id": ledger.chain_id,
        "registry": system.registry.address,
        "implementation": system.implementation,
        "wallets": [
            {"token_id": 1, "address": w1.address, "owner": w1.call("owner")},
            {"token_id": 2, "address": w2.address, "owner": w2.call("owner")},
        ],
        "steps": steps,
        "audit_entries": len(ledger.audit.entries),
        "audit_chain_valid": ledger.audit.verify_chain(),
    }


def main() -> int:
    """CLI entry point."""
    cli = TokenboundCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
