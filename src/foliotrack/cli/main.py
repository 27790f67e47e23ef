#!/usr/bin/env python3
"""Main entry point for the foliotrack CLI."""

import argparse
import sys

DISCLAIMER = (
    " \033[33m⚠  Figures are estimates computed from the recorded ledger and\n"
    "    market data. They are not tax statements or investment advice.\033[0m"
)


def build_parser():
    """Build the argument parser with every subcommand registered."""
    parser = argparse.ArgumentParser(
        prog="foliotrack",
        description="foliotrack - portfolio valuation and performance engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  foliotrack holdings project.json                 Display open positions
  foliotrack history project.json -r MAX -g daily  Display the full daily history
  foliotrack metrics project.json -b IE00B4L5Y983  Display metrics with a benchmark
  foliotrack metrics project.json -d 2024-12-31    Metrics as of a past date
        """,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    # Import subcommand modules and register them
    from .holdings import register_subcommand as register_holdings
    from .history import register_subcommand as register_history
    from .metrics import register_subcommand as register_metrics
    from .version import register_subcommand as register_version

    register_holdings(subparsers)
    register_history(subparsers)
    register_metrics(subparsers)
    register_version(subparsers)

    return parser


def main(argv: list[str] | None = None):
    """Parse CLI arguments and dispatch to the appropriate subcommand.

    Args:
        argv: Arguments to parse. Defaults to ``sys.argv[1:]``.

    Returns:
        int: Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # If no command specified, show help
    if args.command is None:
        print(DISCLAIMER)
        print()
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
