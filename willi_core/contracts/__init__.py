"""
Contracts (Protocols) for willi-core.

These protocols define the interfaces that implementations must satisfy.
Using Protocol enables structural subtyping - no inheritance required.
"""

from .plugin import PluginHealth, PluginMetadata, PluginProtocol
from .provider import ModelProvider

__all__ = [
    "ModelProvider",
    "PluginHealth",
    "PluginMetadata",
    "PluginProtocol",
]
