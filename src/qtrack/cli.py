"""
qtrack.cli - Command-line interface.

Main entry point for the qtrack CLI tool.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from qtrack import __version__
from qtrack.commands import gates, ingest, metrics_cmd, parse_junit, serve


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="qtrack",
        description="Test result reconciliation and release quality metrics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  qtrack serve --snapshot data.json        # Run the webhook + metrics API
  qtrack parse-junit report.xml --test-id TC1
  qtrack ingest data.json payload.json --write
  qtrack metrics data.json --version v1.0  # Release health and risk areas
  qtrack gates data.json                   # Re-evaluate all quality gates

Configuration:
  .qtrack.toml is searched from the current directory upwards.
  QTRACK_<SECTION>_<KEY> environment variables override file values,
  e.g. QTRACK_SERVER_PORT=9000.

For detailed command help: qtrack <command> --help
        """,
    )

    # Global options
    parser.add_argument(
        "--version",
        action="version",
        version=f"qtrack {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file",
        metavar="PATH",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only log errors",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the REST API (webhook ingress and metrics)",
    )
    serve_parser.add_argument("--host", help="Bind address (default from config)")
    serve_parser.add_argument("--port", type=int, help="Port (default from config)")
    serve_parser.add_argument(
        "--snapshot",
        type=Path,
        help="JSON snapshot to preload requirements, test cases, mapping and releases from",
        metavar="FILE",
    )

    # parse-junit command
    junit_parser = subparsers.add_parser(
        "parse-junit",
        help="Extract one test case result from a JUnit XML file",
    )
    junit_parser.add_argument("file", type=Path, help="JUnit XML file")
    junit_parser.add_argument(
        "--test-id",
        required=True,
        help="Test case identifier to resolve (exact name first, then fuzzy)",
        metavar="ID",
    )
    junit_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")

    # ingest command
    ingest_parser = subparsers.add_parser(
        "ingest",
        help="Process a webhook payload against a snapshot file",
    )
    ingest_parser.add_argument("snapshot", type=Path, help="JSON snapshot file")
    ingest_parser.add_argument("payload", type=Path, help="Webhook payload JSON file")
    ingest_parser.add_argument(
        "--write",
        action="store_true",
        help="Write the updated snapshot back to the snapshot file",
    )

    # metrics command
    metrics_parser = subparsers.add_parser(
        "metrics",
        help="Show release metrics for one release",
    )
    metrics_parser.add_argument("snapshot", type=Path, help="JSON snapshot file")
    metrics_parser.add_argument(
        "--version",
        dest="release",
        required=True,
        help="Release id",
        metavar="ID",
    )
    metrics_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")

    # gates command
    gates_parser = subparsers.add_parser(
        "gates",
        help="Re-evaluate quality gates for every release (exit 3 if any gate fails)",
    )
    gates_parser.add_argument("snapshot", type=Path, help="JSON snapshot file")
    gates_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    gates_parser.add_argument(
        "--write",
        action="store_true",
        help="Write the evaluated gates back to the snapshot file",
    )

    # version command
    subparsers.add_parser("version", help="Show version")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()

    # Enable shell tab-completion if argcomplete is installed
    # Install with: pip install qtrack[completion]
    # Then activate: eval "$(register-python-argcomplete qtrack)"
    try:
        import argcomplete

        argcomplete.autocomplete(parser)
    except ImportError:
        pass

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        _setup(args)

        if args.command == "serve":
            return serve.run(args)
        elif args.command == "parse-junit":
            return parse_junit.run(args)
        elif args.command == "ingest":
            return ingest.run(args)
        elif args.command == "metrics":
            return metrics_cmd.run(args)
        elif args.command == "gates":
            return gates.run(args)
        elif args.command == "version":
            return version_command(args)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled.", file=sys.stderr)
        return 130
    except Exception as e:
        if args.verbose:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _setup(args: argparse.Namespace) -> None:
    """Load configuration onto ``args.loaded_config`` and configure logging."""
    from qtrack.config import load_config
    from qtrack.logging_setup import configure_from_config, configure_logging

    config = load_config(args.config)
    args.loaded_config = config
    if args.quiet:
        configure_logging("ERROR")
    else:
        configure_from_config(config, verbose=args.verbose)


def version_command(args: argparse.Namespace) -> int:
    """Handle version command."""
    print(f"qtrack {__version__}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
