"""Perplexity MCP server: stdio and multi-session SSE transports."""

__version__ = "1.0.0"
