#!/usr/bin/env python3
"""Command-line interface for listing, inspecting and running playbooks.

Usage:
    playbook-runner list
    playbook-runner info Regression-Check
    playbook-runner run Regression-Check --inputs '{"scheme": "App"}' --format compact
    playbook-runner run ./my-playbook.yaml --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import structlog

from playbook_runner.config import RunnerConfig
from playbook_runner.playbook.formatters import FORMATTERS, get_formatter
from playbook_runner.playbook.loader import (
    PlaybookLoader,
    PlaybookNotFoundError,
    PlaybookValidationError,
)
from playbook_runner.playbook.runner import run_playbook

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_ERROR = 2


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="playbook-runner",
        description="Run declarative iOS automation playbooks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--playbooks-dir",
        type=str,
        default=None,
        help="Directory containing <name>/playbook.yaml playbooks",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # List playbooks command
    subparsers.add_parser("list", help="List available playbooks")

    # Playbook info command
    info_parser = subparsers.add_parser("info", help="Show playbook metadata and validation")
    info_parser.add_argument("playbook", type=str, help="Playbook name or YAML path")

    # Run playbook command
    run_parser = subparsers.add_parser("run", help="Run a playbook")
    run_parser.add_argument("playbook", type=str, help="Playbook name or YAML path")
    run_parser.add_argument(
        "--inputs",
        type=str,
        default=None,
        help="Playbook inputs as a JSON object",
    )
    run_parser.add_argument(
        "--session-id",
        type=str,
        default="cli",
        help="Session ID used for the artifacts directory",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Walk the steps without executing actions",
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Default per-step timeout in seconds",
    )
    run_parser.add_argument(
        "--continue",
        dest="continue_on_error",
        action="store_true",
        help="Continue after failed steps",
    )
    run_parser.add_argument(
        "--format",
        type=str,
        choices=list(FORMATTERS),
        default="markdown",
        help="Output format for the run result",
    )

    return parser


def configure_logging(verbose: bool) -> None:
    """Send structlog output to stderr, filtered by verbosity."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def list_command(args: argparse.Namespace, config: RunnerConfig) -> int:
    """List available playbooks."""
    loader = PlaybookLoader(config.playbooks_dir)
    playbooks = loader.list_playbooks()

    if not playbooks:
        print(f"No playbooks found in {loader.playbooks_dir}")
        return EXIT_PASSED

    print("Available Playbooks:")
    print("-" * 40)
    for info in playbooks:
        marker = " (built-in)" if info.built_in else ""
        version = f" v{info.version}" if info.version else ""
        print(f"  - {info.id}{version}{marker}")
        if info.description:
            print(f"      {info.description}")

    return EXIT_PASSED


def info_command(args: argparse.Namespace, config: RunnerConfig) -> int:
    """Show playbook metadata, inputs and validation result."""
    loader = PlaybookLoader(config.playbooks_dir)

    try:
        playbook = loader.load(args.playbook)
    except PlaybookNotFoundError as e:
        print(str(e), file=sys.stderr)
        return EXIT_ERROR
    except PlaybookValidationError as e:
        print(f"Invalid playbook: {e}", file=sys.stderr)
        return EXIT_ERROR

    validation = loader.validate(playbook)

    print("=" * 60)
    print(f"PLAYBOOK: {playbook.name}")
    print("=" * 60)
    if playbook.description:
        print(playbook.description)
    print(f"Version: {playbook.version or '-'}")
    print(f"Steps: {len(playbook.steps)}")

    if playbook.inputs:
        print()
        print("Inputs:")
        print("-" * 40)
        for key, spec in playbook.inputs.items():
            flags = [spec.type or "any"]
            if spec.required:
                flags.append("required")
            if spec.has_default:
                flags.append(f"default={json.dumps(spec.default, default=str)}")
            print(f"  {key} ({', '.join(flags)})")
            if spec.description:
                print(f"      {spec.description}")

    print()
    print(f"Valid: {'yes' if validation.valid else 'no'}")
    for error in validation.errors:
        print(f"  Error: {error}")
    for warning in validation.warnings:
        print(f"  Warning: {warning}")

    return EXIT_PASSED if validation.valid else EXIT_ERROR


async def run_command(args: argparse.Namespace, config: RunnerConfig) -> int:
    """Run a playbook and print the formatted result."""
    inputs = {}
    if args.inputs:
        try:
            inputs = json.loads(args.inputs)
        except json.JSONDecodeError as e:
            print(f"Invalid JSON for --inputs: {e}", file=sys.stderr)
            return EXIT_ERROR
        if not isinstance(inputs, dict):
            print("--inputs must be a JSON object", file=sys.stderr)
            return EXIT_ERROR

    response = await run_playbook(
        args.playbook,
        inputs,
        args.session_id,
        dry_run=args.dry_run,
        step_timeout=args.timeout,
        continue_on_error=args.continue_on_error or None,
        config=config,
    )

    if not response.success or response.data is None:
        print(f"{response.error_code}: {response.error}", file=sys.stderr)
        return EXIT_ERROR

    print(get_formatter(args.format)(response.data))

    return EXIT_PASSED if response.data.passed else EXIT_FAILED


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_FAILED

    configure_logging(args.verbose)

    config = RunnerConfig.from_env()
    if args.playbooks_dir:
        config = config.model_copy(
            update={"playbooks_dir": Path(args.playbooks_dir).expanduser()}
        )

    if args.command == "list":
        return list_command(args, config)
    if args.command == "info":
        return info_command(args, config)
    if args.command == "run":
        return asyncio.run(run_command(args, config))

    parser.print_help()
    return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
