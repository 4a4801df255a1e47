"""Upstream client and the tools that use it."""

from .perplexity_client import PerplexityClient
from .tools import ToolRegistry, ToolSpec, build_tool_registry

__all__ = [
    "PerplexityClient",
    "ToolRegistry",
    "ToolSpec",
    "build_tool_registry",
]
