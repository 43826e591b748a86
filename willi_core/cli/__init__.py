"""
CLI - Command-line interface for willi.

Commands:
    willi serve            Run the server in the foreground
    willi health           Readiness and plugin health
    willi plugins          List registered plugins
    willi metrics          API key usage and cost savings
    willi reset-metrics X  Reset free, paid, providers or all counters

Example:
    $ WILLI_ADMIN_TOKEN=secret willi metrics
    Usage for 2025-03-14

      free  today 37/100  total 4120  this minute 2/10
      paid  today 5  total 311
"""

from .main import main

__all__ = ["main"]
