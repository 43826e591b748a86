"""
CLI Parser - Argument parser for the willi command.

Defines all subcommands and their arguments.
"""

import argparse

__all__ = ["RESET_TIERS", "create_parser"]

RESET_TIERS = ("free", "paid", "providers", "all")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="willi",
        description="Willi - Quota-aware model routing and plugin host",
    )
    parser.add_argument("--url", help="Server URL (default: http://WILLI_HOST:WILLI_PORT)")
    parser.add_argument("--token", help="Admin token (default: WILLI_ADMIN_TOKEN)")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the server in the foreground")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")
    serve_parser.add_argument("--json-logs", action="store_true", help="Log JSON lines")

    # health
    subparsers.add_parser("health", help="Readiness check including plugin health")

    # plugins
    subparsers.add_parser("plugins", help="List registered plugins")

    # metrics
    metrics_parser = subparsers.add_parser("metrics", help="Show API key usage metrics")
    metrics_parser.add_argument("--json", action="store_true", help="Print the raw JSON report")

    # reset-metrics
    reset_parser = subparsers.add_parser("reset-metrics", help="Reset API key usage metrics")
    reset_parser.add_argument(
        "tier",
        nargs="?",
        default="all",
        choices=RESET_TIERS,
        help="Which counters to reset (default: all)",
    )

    return parser
