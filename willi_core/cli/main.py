"""
CLI Main - Entry point for the `willi` command.

Usage:
    willi serve [--host H] [--port P]   Run the server
    willi health                        Readiness and plugin health
    willi plugins                       List registered plugins
    willi metrics [--json]              API key usage and cost savings
    willi reset-metrics [TIER]          Reset free, paid, providers or all
"""

import sys

import httpx

from ..config import WilliConfig
from .client import print_error
from .commands import run_command
from .parser import create_parser

__all__ = ["main"]


def main(args: list[str] | None = None) -> int:
    """Main entry point for the willi CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    if args is None:
        args = sys.argv[1:]

    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 0

    config = WilliConfig()

    try:
        return run_command(parsed.command, parsed, config)
    except KeyboardInterrupt:
        return 130
    except httpx.HTTPStatusError as e:
        detail = e.response.text
        try:
            detail = e.response.json().get("detail", detail)
        except ValueError:
            pass
        print_error(f"{e.response.status_code}: {detail}")
        return 1
    except Exception as e:
        print_error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
