#!/usr/bin/env python3
"""dpchain command line.

Usage:
    dpchain [options] [KEY=VALUE ...] operation=NAME [KEY=VALUE ...] ...
    dpchain [options] deploy.yaml [KEY=VALUE ...]
    dpchain [options] find OPERATION [KEY=VALUE ...]
    dpchain [options] history [N]

KEY=VALUE tokens before the first operation=NAME are session options
(hostName, port, userName, userPassword, domain, failOnError,
rollbackOnError, outputType, firmware, ...). Tokens after it are options of
that operation, until the next operation=NAME.

Environment variables:
    DPCHAIN_PASSWORD    Appliance password
    DPCHAIN_NETRC       netrc file for credential lookup (default: ~/.netrc)
    DPCHAIN_LOG_LEVEL   Console log level (default: INFO)
    DPCHAIN_AUDIT_DIR   Audit log directory (default: ~/.dpchain)
"""
import argparse
import asyncio
import getpass
import json
import logging
import signal
import sys
from dataclasses import dataclass, field
from typing import Optional

from .chain.engine import DeploymentSession
from .chain.errors import EXIT_FAILURE, EXIT_SUCCESS, ChainError, ConfigError
from .config.credentials import resolve_credentials
from .config.deployment import (
    OperationSpec,
    OptionSpec,
    is_deployment_file,
    load_deployment,
)
from .config.session import SessionConfig
from .utils.audit_log import get_recent_changes, setup_audit_logging
from .utils.logging_config import setup_logging

logger = logging.getLogger("dpchain.cli")

OPERATION_KEY = "operation"
COMMANDS = ("find", "history")


@dataclass
class CommandLine:
    """Tokens sorted into what they configure."""
    command: str = "run"
    argument: Optional[str] = None
    global_options: list[tuple[str, str]] = field(default_factory=list)
    operations: list[OperationSpec] = field(default_factory=list)
    deployment_files: list[str] = field(default_factory=list)


def parse_tokens(tokens: list[str]) -> CommandLine:
    """Sort positional tokens into commands, session options and operations.

    Raises:
        ConfigError: on a token that is neither KEY=VALUE nor a YAML file
    """
    parsed = CommandLine()
    tokens = list(tokens)

    if tokens and tokens[0] in COMMANDS:
        parsed.command = tokens.pop(0)
        if tokens and "=" not in tokens[0]:
            parsed.argument = tokens.pop(0)
        if parsed.command == "find" and parsed.argument is None:
            raise ConfigError("find requires an operation name")

    current: Optional[OperationSpec] = None
    for token in tokens:
        if "=" in token:
            key, value = token.split("=", 1)
            if key == OPERATION_KEY:
                current = OperationSpec(value)
                parsed.operations.append(current)
            elif current is not None:
                current.options.append(OptionSpec(key, value))
            else:
                parsed.global_options.append((key, value))
        elif is_deployment_file(token):
            parsed.deployment_files.append(token)
        else:
            raise ConfigError(f"Unrecognised argument '{token}' (expected KEY=VALUE or a YAML file)")
    return parsed


def build_session(parsed: CommandLine, args: argparse.Namespace) -> DeploymentSession:
    """Session with deployment files applied first, then command line tokens."""
    session = DeploymentSession(SessionConfig())
    for path in list(args.file or []) + parsed.deployment_files:
        session.apply_deployment(load_deployment(path))
    for key, value in parsed.global_options:
        session.set_global_option(key, value)
    if args.verbose:
        session.set_global_option("verbose", "true")
    if args.debug:
        session.set_global_option("debug", "true")

    for spec in parsed.operations:
        operation = session.create_operation(spec.name)
        for option in spec.options:
            if option.name == "domain":
                operation.set_domain(option.value)
            else:
                operation.add_option(option.name, option.value)
    return session


def prompt_credentials(config: SessionConfig) -> None:
    """Ask for missing credentials when attached to a terminal."""
    try:
        resolve_credentials(config.host, config.username, config.password, config.netrc_path)
        return
    except ConfigError:
        if not sys.stdin.isatty():
            raise
    if not config.username:
        config.username = input(f"User name for {config.host}: ").strip()
    config.password = getpass.getpass(f"Password for {config.username}@{config.host}: ")


def install_signal_handlers(session: DeploymentSession) -> list[signal.Signals]:
    """Cancel the session on SIGINT/SIGTERM. Returns the signals handled."""
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, session.cancel_token.cancel, sig.name)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform's event loop
            logger.debug(f"Cannot install handler for {sig.name}")
    return installed


async def run_session(session: DeploymentSession) -> int:
    installed = install_signal_handlers(session)
    try:
        result = await session.run()
    finally:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)
    for warning in result.warnings:
        logger.debug(f"warning: {warning}")
    if result.operations_removed:
        logger.warning(f"Operations dropped: {', '.join(result.operations_removed)}")
    return result.exit_code


def show_history(argument: Optional[str]) -> int:
    try:
        limit = int(argument) if argument else 20
    except ValueError:
        logger.error(f"history expects a number, got '{argument}'")
        return EXIT_FAILURE
    for record in get_recent_changes(limit=limit):
        status = "OK" if record.success else record.severity
        print(
            f"{record.timestamp} {record.host:15s} {record.domain or '-':15s} "
            f"{record.operation:20s} {status}"
        )
    return EXIT_SUCCESS


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the dpchain CLI."""
    parser = argparse.ArgumentParser(
        prog="dpchain",
        description="Run chained operations against an appliance's XML management interface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Upload a file and save the configuration
    dpchain hostName=dp-dev-01 domain=SANDBOX \\
        operation=set-file srcFile=build/a.xsl destFile=local:///a.xsl \\
        operation=SaveConfig

    # Run a deployment file with rollback on error
    dpchain deploy.yaml rollbackOnError=true

    # Show which options an operation accepts
    dpchain find do-import

    # Show the last 10 audited posts
    dpchain history 10
""",
    )
    parser.add_argument("-f", "--file", action="append", help="Deployment YAML file (repeatable)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Do not truncate logged payloads")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Log file (default: ~/.dpchain/dpchain.log)")
    parser.add_argument("--no-log-file", action="store_true", help="Log to the console only")
    parser.add_argument("tokens", nargs="*", help="KEY=VALUE tokens, operation=NAME, YAML files, find, history")

    args = parser.parse_args(argv)

    setup_logging(
        level="DEBUG" if args.debug else None,
        log_file=args.log_file,
        file_logging=not args.no_log_file,
    )

    try:
        parsed = parse_tokens(args.tokens)
        if parsed.command == "history":
            return show_history(parsed.argument)

        session = build_session(parsed, args)
        if parsed.command == "find":
            print(json.dumps(session.describe(parsed.argument), indent=2))
            return EXIT_SUCCESS

        if len(session.chain) == 0:
            parser.print_help()
            return EXIT_FAILURE

        prompt_credentials(session.config)
        setup_audit_logging()
        return asyncio.run(run_session(session))
    except ChainError as e:
        logger.error(e.message)
        return e.exit_code
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
