"""
Willi Core - Quota-aware model routing and a plugin host for the assistant backend.
"""

__version__ = "1.0.0"

from .config import WilliConfig, config

__all__ = [
    "__version__",
    "WilliConfig",
    "config",
]
