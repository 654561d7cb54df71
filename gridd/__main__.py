#!/usr/bin/env python3
"""
Grid daemon CLI

Usage:
    gridd run [--config PATH] [--splinterd-url URL] [--key-name NAME]
              [--key-dir DIR] [--scar-dir DIR] [--log-level LEVEL] [--json-logs]
    gridd addresses NAME [VERSION]

Exit codes:
    0   listener closed cleanly
    1   listener gave up reconnecting
    2   startup failed (configuration, keys, node lookup)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from gridd import __version__

logger = logging.getLogger("gridd")

EXIT_OK = 0
EXIT_RECONNECT_EXHAUSTED = 1
EXIT_STARTUP_FAILED = 2


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = EXIT_STARTUP_FAILED):
        super().__init__(message)
        self.exit_code = exit_code


class GriddCLI:
    """Argument parsing and command dispatch."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="gridd",
            description="Provision Grid smart contracts on Splinter circuits",
        )
        self.parser.add_argument("--version", action="version", version=f"gridd {__version__}")
        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_run_command()
        self._register_addresses_command()

    def _register_run_command(self) -> None:
        run = self.subparsers.add_parser("run", help="Run the provisioning daemon")
        run.add_argument("--config", "-c", help="YAML configuration file")
        run.add_argument("--splinterd-url", help="Base URL of the splinterd REST API")
        run.add_argument("--key-name", help="Name of the key pair in the key directory")
        run.add_argument("--key-dir", help="Directory holding key files")
        run.add_argument("--scar-dir", help="Directory holding .scar contract artifacts")
        run.add_argument(
            "--log-level",
            choices=["debug", "info", "warning", "error", "critical"],
            help="Log level",
        )
        run.add_argument(
            "--json-logs",
            action="store_true",
            default=None,
            help="Emit one JSON object per log record",
        )

    def _register_addresses_command(self) -> None:
        addresses = self.subparsers.add_parser(
            "addresses", help="Print the Sabre state addresses of a contract"
        )
        addresses.add_argument("name", help="Contract name")
        addresses.add_argument("version", nargs="?", help="Contract version")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return EXIT_OK

        try:
            return getattr(self, f"_handle_{parsed.command}")(parsed)
        except CLIError as e:
            print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

    def _handle_run(self, args: argparse.Namespace) -> int:
        from gridd.splinter import app_auth_handler
        from gridd.splinter.config import load_config
        from gridd.splinter.errors import (
            ConfigError,
            KeyFileError,
            NodeLookupError,
            ReconnectExhaustedError,
        )
        from gridd.splinter.observability import configure_logging
        from gridd.splinter.signing import load_keys

        try:
            config = load_config(args.config, overrides=_run_overrides(args))
        except ConfigError as e:
            raise CLIError(str(e)) from e

        configure_logging(config.log_level, json_output=config.log_json)

        try:
            keys = load_keys(config.key_name, config.key_dir)
            app_auth_handler.run(config, keys)
        except (KeyFileError, NodeLookupError) as e:
            logger.error(f"Startup failed: {e}")
            return EXIT_STARTUP_FAILED
        except ReconnectExhaustedError as e:
            logger.error(f"Daemon stopped: {e}")
            return EXIT_RECONNECT_EXHAUSTED
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        return EXIT_OK

    def _handle_addresses(self, args: argparse.Namespace) -> int:
        from gridd.splinter.addressing import (
            contract_address,
            contract_registry_address,
            namespace_registry_address,
        )

        result: Dict[str, Any] = {
            "name": args.name,
            "contract_registry": contract_registry_address(args.name),
        }
        if args.version:
            result["version"] = args.version
            result["contract"] = contract_address(args.name, args.version)
        if len(args.name) >= 6:
            result["namespace_registry"] = namespace_registry_address(args.name)

        print(json.dumps(result, indent=2))
        return EXIT_OK


def _run_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "splinter.url": args.splinterd_url,
        "keys.key_name": args.key_name,
        "keys.key_dir": args.key_dir,
        "contracts.scar_dir": args.scar_dir,
        "logging.level": args.log_level,
        "logging.json": args.json_logs,
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    cli = GriddCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
