"""
Tools exposed through tools/list and tools/call.

Each tool validates its arguments with a pydantic model and forwards one
prompt to Perplexity, returning the generated text.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, Field

from ..protocol.messages import Tool
from .perplexity_client import PerplexityClient

logger = logging.getLogger(__name__)

PerplexityModel = Literal["sonar-pro", "sonar-reasoning-pro"]

SEARCH_SYSTEM_PROMPT = (
    "You are a helpful web search assistant. Search the web for current "
    "information and provide concise answers with citations."
)


class QueryArguments(BaseModel):
    prompt: str = Field(description="The query to send to Perplexity")
    model: PerplexityModel = Field(default="sonar-pro", description="The model to use")
    systemPrompt: str | None = Field(
        default=None, description="Optional system prompt to set context"
    )


class SearchArguments(BaseModel):
    query: str = Field(description="The search query")
    model: PerplexityModel = Field(default="sonar-pro", description="The model to use")


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    arguments_model: type[BaseModel]
    handler: Callable[[BaseModel], Awaitable[str]]

    def describe(self) -> Tool:
        return Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.arguments_model.model_json_schema(),
        )


class ToolRegistry:
    """Tools by name, listed in registration order."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, tool: ToolSpec) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def describe(self) -> list[Tool]:
        return [tool.describe() for tool in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)


def _preview(text: str) -> str:
    return text[:50]


def build_tool_registry(client: PerplexityClient) -> ToolRegistry:
    """Register the perplexity-query and perplexity-search tools."""

    async def perplexity_query(args: QueryArguments) -> str:
        logger.info(f'Executing perplexity-query tool with prompt: "{_preview(args.prompt)}..."')
        messages = []
        if args.systemPrompt:
            messages.append({"role": "system", "content": args.systemPrompt})
        messages.append({"role": "user", "content": args.prompt})

        result = await client.chat(args.model, messages)
        logger.info("Perplexity API response received successfully")
        return result or "No response received from Perplexity API"

    async def perplexity_search(args: SearchArguments) -> str:
        logger.info(f'Executing perplexity-search tool with query: "{_preview(args.query)}..."')
        result = await client.chat(
            args.model,
            [
                {"role": "system", "content": SEARCH_SYSTEM_PROMPT},
                {"role": "user", "content": args.query},
            ],
        )
        logger.info("Perplexity API search results received successfully")
        return result or "No search results received from Perplexity API"

    registry = ToolRegistry()
    registry.register(
        ToolSpec(
            name="perplexity-query",
            description="Send a query to Perplexity API and get a response",
            arguments_model=QueryArguments,
            handler=perplexity_query,
        )
    )
    registry.register(
        ToolSpec(
            name="perplexity-search",
            description="Perform a web search using Perplexity API",
            arguments_model=SearchArguments,
            handler=perplexity_search,
        )
    )
    return registry
