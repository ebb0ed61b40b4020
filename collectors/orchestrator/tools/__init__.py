"""Retailer tool registry.

Tools register once at startup. The research orchestrator asks the
registry for every tool serving a vehicle type and runs them concurrently;
a failing tool contributes no products instead of failing the batch.
"""

import asyncio
import logging
import re

from collectors.orchestrator.tools.base import (
    ALL_VEHICLE_TYPES,
    RetailerProduct,
    RetailerTool,
    SearchParams,
)
from collectors.orchestrator.tools.cache import TTLCache
from collectors.orchestrator.tools.revzilla import RevZillaTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Ordered collection of retailer tools keyed by name."""

    def __init__(self, tools: list[RetailerTool] | None = None) -> None:
        self._tools: dict[str, RetailerTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: RetailerTool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    @property
    def tools(self) -> list[RetailerTool]:
        return list(self._tools.values())

    def get_tools_for_vehicle_type(self, vehicle_type: str) -> list[RetailerTool]:
        """Tools serving ``vehicle_type`` or tagged for all types."""
        return [tool for tool in self._tools.values() if tool.supports(vehicle_type)]

    async def execute_tool(
        self, tool_name: str, params: SearchParams
    ) -> list[RetailerProduct]:
        """Run one tool by name.

        Raises:
            KeyError: If no tool with that name is registered.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            raise KeyError(f"Unknown tool: {tool_name}")
        return await tool.search(params)

    async def execute_all_tools_for_vehicle(
        self, vehicle_type: str, params: SearchParams
    ) -> list[RetailerProduct]:
        """Run every tool for ``vehicle_type`` concurrently and merge results.

        Results keep registration order. Per-tool exceptions are logged and
        contribute an empty list.
        """
        tools = self.get_tools_for_vehicle_type(vehicle_type)
        if not tools:
            logger.info("No retailer tools for vehicle type %r", vehicle_type)
            return []

        logger.info(
            "Executing %d retailer tools for %s: %s",
            len(tools),
            vehicle_type,
            [t.name for t in tools],
        )
        results = await asyncio.gather(
            *(tool.search(params) for tool in tools), return_exceptions=True
        )

        products: list[RetailerProduct] = []
        for tool, result in zip(tools, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error("Retailer tool %s failed: %s", tool.name, result)
                continue
            products.extend(result)

        logger.info("Total products from retailer tools: %d", len(products))
        return products

    def __len__(self) -> int:
        return len(self._tools)


def build_default_registry() -> ToolRegistry:
    """Registry with every built-in retailer tool."""
    return ToolRegistry([RevZillaTool()])


# Keywords that mark a message as a product search.
PRODUCT_KEYWORDS = (
    "battery", "batteries", "tire", "tires", "oil", "helmet", "gear",
    "part", "parts", "accessory", "accessories", "buy", "recommend",
    "recommendation", "best", "which", "what should", "need", "needs",
    "chain", "sprocket", "brake", "brakes", "pad", "pads", "filter",
    "exhaust", "seat", "handlebars", "grips", "mirrors", "lights",
    "jacket", "gloves", "boots", "pants",
)

# Concrete products; a message mentioning one searches for exactly that.
SPECIFIC_PRODUCTS = frozenset({
    "battery", "batteries", "tire", "tires", "oil", "helmet", "chain",
    "sprocket", "brake", "brakes", "filter", "exhaust", "seat",
    "handlebars", "grips", "mirrors", "jacket", "gloves", "boots", "pants",
})

_QUESTION_PREFIX = re.compile(
    r"^(what|which|can you|do you|please|help me|i need|i want|get me|"
    r"find me|looking for|it needs)\s+",
    re.IGNORECASE,
)
_ARTICLE_PREFIX = re.compile(r"^(a|an|the|some|new)\s+", re.IGNORECASE)
_TRAILING_QUESTION = re.compile(r"\?+$")
_HELP_ME_FIX = re.compile(r"help me fix.*?:", re.IGNORECASE)
_FOR_VEHICLE_SUFFIX = re.compile(r"for (my|the|a)\s+\w+.*$", re.IGNORECASE)
_PRODUCT_WORD = re.compile(
    r"\b(battery|batteries|tire|tires|oil|helmet|chain|sprocket|brake|brakes|"
    r"filter|exhaust|seat|handlebars|grips|mirrors|jacket|gloves|boots|pants|"
    r"pad|pads|lights)\b",
    re.IGNORECASE,
)
_SHOULD_I_GET = re.compile(r"should\s+i\s+(get|buy|use)", re.IGNORECASE)

MAX_QUERY_WORDS = 4


def is_product_query(message: str) -> bool:
    lowered = message.lower()
    return any(keyword in lowered for keyword in PRODUCT_KEYWORDS)


def mentioned_product(message: str) -> str | None:
    """First specific product named in ``message``, e.g. "tire"."""
    lowered = message.lower()
    for keyword in PRODUCT_KEYWORDS:
        if keyword in lowered and keyword in SPECIFIC_PRODUCTS:
            return keyword
    return None


def extract_product_query(message: str) -> str:
    """Reduce a chat message to a short retailer search query.

    "What battery should I get for my CBR?" -> "battery".
    """
    product = mentioned_product(message)
    if product:
        return product

    query = _QUESTION_PREFIX.sub("", message)
    query = _ARTICLE_PREFIX.sub("", query)
    query = _TRAILING_QUESTION.sub("", query)
    query = _HELP_ME_FIX.sub("", query)
    query = _FOR_VEHICLE_SUFFIX.sub("", query).strip()

    match = _PRODUCT_WORD.search(query)
    if match:
        return match.group(1)

    query = _SHOULD_I_GET.sub("", query).strip()
    words = query.split()
    if len(words) > MAX_QUERY_WORDS:
        query = " ".join(words[:MAX_QUERY_WORDS])
    return query or message


__all__ = [
    "ALL_VEHICLE_TYPES",
    "PRODUCT_KEYWORDS",
    "RetailerProduct",
    "RetailerTool",
    "RevZillaTool",
    "SearchParams",
    "TTLCache",
    "ToolRegistry",
    "build_default_registry",
    "extract_product_query",
    "is_product_query",
    "mentioned_product",
]
