"""
CLI Commands - Command handlers.

`serve` runs the app in this process; every other command talks to a
running server through AdminClient.
"""

import argparse
import dataclasses
import json

import uvicorn

from ..config import WilliConfig
from ..logging import configure_logging
from .client import AdminClient, print_error, print_metrics, print_plugins

__all__ = ["COMMANDS", "run_command", "serve"]

COMMANDS = {"serve", "health", "plugins", "metrics", "reset-metrics"}


def serve(config: WilliConfig, json_logs: bool = False) -> int:
    """Run the server in the foreground until interrupted."""
    from ..app import create_app

    configure_logging(config.log_level, json=json_logs)
    app = create_app(config)
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        access_log=False,  # LoggingMiddleware logs requests
    )
    return 0


def run_command(command: str, args: argparse.Namespace, config: WilliConfig) -> int:
    """Run the specified command.

    Returns:
        Exit code
    """
    if command == "serve":
        overrides = {}
        if args.host:
            overrides["host"] = args.host
        if args.port:
            overrides["port"] = args.port
        return serve(dataclasses.replace(config, **overrides), json_logs=args.json_logs)

    with AdminClient(config, base_url=args.url, token=args.token) as client:
        if not client.is_running():
            print_error(f"Server is not running at {client.base_url}. Start it with: willi serve")
            return 1

        if command == "health":
            ready = client.ready()
            plugins = ready.get("plugins", {})
            print(f"Status: {ready.get('status', 'unknown')}")
            for name in plugins.get("healthy", []):
                print(f"  [ok]   {name}")
            for entry in plugins.get("unhealthy", []):
                print(f"  [fail] {entry['name']}: {entry['message']}")
            return 0 if ready.get("status") == "ready" else 1

        elif command == "plugins":
            print_plugins(client.plugins())
            return 0

        elif command == "metrics":
            metrics = client.usage_metrics()
            if args.json:
                print(json.dumps(metrics, indent=2))
            else:
                print_metrics(metrics)
            return 0

        elif command == "reset-metrics":
            client.reset_metrics(args.tier)
            print(f"Reset {args.tier} metrics")
            return 0

    return 0
