"""
Command-line interface for the PromQL poller.
"""

import argparse
import asyncio
import inspect
import os
import sys
from pathlib import Path
from typing import Optional

from promql_poller import __version__
from promql_poller.clients.query_client import QueryExecutor
from promql_poller.config.manager import ConfigManager, DEFAULT_CONFIG_PATH
from promql_poller.config.models import HTTPConfig, LoggingConfig, QueryDefinition
from promql_poller.output.result_logger import FormatOptions, PrettyResultLogger, ResultLogger
from promql_poller.scheduling.scheduler import QueryScheduler, run_once, run_query
from promql_poller.scheduling.signals import TerminationSignal
from promql_poller.utils.errors import ConfigurationError
from promql_poller.utils.structured_logging import logging_manager


def _add_init_command(subparsers):
    """Add init command parser."""
    init_parser = subparsers.add_parser(
        "init",
        help="Write an example configuration",
        description="Write an example query configuration file"
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing configuration"
    )


def _add_validate_command(subparsers):
    """Add validate command parser."""
    subparsers.add_parser(
        "validate",
        help="Validate configuration",
        description="Validate the configuration file and print a summary"
    )


def _add_start_command(subparsers):
    """Add start command parser."""
    subparsers.add_parser(
        "start",
        help="Start polling",
        description="Run every configured query on its interval until SIGINT or SIGTERM"
    )


def _add_format_arguments(parser):
    parser.add_argument(
        "--no-pretty-json",
        action="store_true",
        help="Disable JSON pretty printing"
    )
    parser.add_argument(
        "--no-colour",
        action="store_true",
        help="Disable coloured output"
    )
    parser.add_argument(
        "--plain", "-P",
        action="store_true",
        help="Disable JSON pretty printing and colours"
    )


def _add_run_command(subparsers):
    """Add run command parser."""
    run_parser = subparsers.add_parser(
        "run",
        help="Run every configured query once",
        description="Run every configured query once and print the results"
    )
    _add_format_arguments(run_parser)


def _add_query_command(subparsers):
    """Add query command parser."""
    query_parser = subparsers.add_parser(
        "query",
        help="Run the given query",
        description="Run one query given on the command line"
    )
    query_parser.add_argument(
        "--name",
        type=str,
        default="",
        help="Name to log the result under"
    )
    _add_format_arguments(query_parser)
    query_parser.add_argument("server", help="Server base URL, e.g. http://localhost:9090")
    query_parser.add_argument("query", help="PromQL expression")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promql-poller",
        description="Periodically run PromQL queries and log the results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  promql-poller init                         # Write an example config.yaml
  promql-poller validate                     # Validate current configuration
  promql-poller start                        # Poll until interrupted
  promql-poller run --plain                  # Run every query once
  promql-poller query http://localhost:9090 'up'
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"promql-poller {__version__}"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})"
    )

    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug output (also enabled by the DEBUG environment variable)"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log errors"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_init_command(subparsers)
    _add_validate_command(subparsers)
    _add_start_command(subparsers)
    _add_run_command(subparsers)
    _add_query_command(subparsers)

    return parser


def _debug_from_env() -> bool:
    return os.getenv("DEBUG", "").lower() in ("true", "1", "yes", "on")


def _setup_logging(args, logging_config: Optional[LoggingConfig] = None) -> None:
    """Configure diagnostics from the command line flags and configuration."""
    logging_config = logging_config or LoggingConfig()

    if args.quiet:
        level = "ERROR"
    elif args.debug or _debug_from_env():
        level = "DEBUG"
    else:
        level = logging_config.level

    logging_manager.setup_logging(
        log_level=level,
        log_file=logging_config.file,
        structured_format=logging_config.structured,
    )


def _format_options(args) -> FormatOptions:
    return FormatOptions(
        no_pretty_json=args.no_pretty_json,
        no_colour=args.no_colour,
        plain=args.plain,
    )


def _status(args, message: str) -> None:
    """Print a progress message to stderr; stdout carries results only."""
    if not args.quiet:
        print(message, file=sys.stderr)


def init_command(args):
    """Write an example configuration file."""
    config_path = Path(args.config)

    if config_path.exists() and not args.force:
        print(
            f"Configuration file {config_path} already exists. Use --force to overwrite.",
            file=sys.stderr
        )
        return 1

    manager = ConfigManager(str(config_path))
    written = manager.create_default_config(force=args.force)
    print(f"✓ Example configuration written to {written}")
    return 0


def validate_command(args):
    """Validate configuration file."""
    config_path = Path(args.config)

    if not config_path.exists():
        print(f"Configuration file {config_path} not found.", file=sys.stderr)
        return 1

    print(f"Validating configuration: {config_path}")

    manager = ConfigManager(str(config_path))
    is_valid, errors = manager.validate_config_file()

    if not is_valid:
        print("✗ Configuration validation failed:")
        for error in errors:
            print(f"  - {error}")
        return 1

    print("✓ Configuration is valid")
    config = manager.load_config()

    print("\nConfiguration Summary:")
    print(f"  HTTP timeout: {config.http.timeout}s")
    print(f"  Shutdown timeout: {config.scheduler.shutdown_timeout}s")
    print(f"  Queries ({len(config.queries)}):")
    for name, query in config.queries.items():
        print(f"    {name}: every {query.interval} on {query.server}")
        print(f"      {query.expression}")

    return 0


async def start_command(args):
    """Poll every configured query until terminated."""
    config = ConfigManager(args.config).load_config()
    _setup_logging(args, config.logging)

    async with QueryExecutor(config.http) as executor:
        scheduler = QueryScheduler(config.queries, executor, ResultLogger())

        termination = TerminationSignal()
        termination.install()
        try:
            _status(args, f"Polling {len(config.queries)} queries. Press Ctrl+C to stop.")
            await scheduler.run(termination)
        finally:
            termination.uninstall()

        shutdown_timeout = config.scheduler.shutdown_timeout
        drained = shutdown_timeout > 0 and await scheduler.wait_closed(shutdown_timeout)
        if not drained:
            # Queries still waiting on the session are dropped, not logged
            await scheduler.abort()

    _status(args, "Stopped.")
    return 0


async def run_command(args):
    """Run every configured query once."""
    config = ConfigManager(args.config).load_config()
    _setup_logging(args, config.logging)

    result_logger = PrettyResultLogger(options=_format_options(args))
    async with QueryExecutor(config.http) as executor:
        await run_once(config.queries, executor, result_logger)

    return 0


async def query_command(args):
    """Run one query given on the command line."""
    _setup_logging(args)

    definition = QueryDefinition(name=args.name, server=args.server, expression=args.query)
    if not definition.server.startswith(("http://", "https://")):
        raise ConfigurationError(f"Server must start with http:// or https://, got {args.server!r}")

    result_logger = PrettyResultLogger(options=_format_options(args))
    async with QueryExecutor(HTTPConfig()) as executor:
        await run_query(definition, executor, result_logger)

    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    command_handlers = {
        "init": init_command,
        "validate": validate_command,
        "start": start_command,
        "run": run_command,
        "query": query_command,
    }

    handler = command_handlers[args.command]
    try:
        if inspect.iscoroutinefunction(handler):
            return asyncio.run(handler(args))
        return handler(args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.", file=sys.stderr)
        return 130
    except Exception as e:
        if args.debug or _debug_from_env():
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
