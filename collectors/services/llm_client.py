"""Thin async wrapper around the Anthropic Messages API.

The chat and research code depends on the ``LLMCollaborator`` protocol
only: free-text generation (optionally grounded with web search) and
structured JSON output. Tests supply a fake implementing the same two
coroutines.

Web search uses Anthropic's server-side web search tool; result URLs are
collected from the search result blocks and from text citations.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from anthropic import AsyncAnthropic

from collectors.orchestrator.config import get_model, get_web_search_max_uses
from collectors.orchestrator.models import SourceLink

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 2048
STRUCTURED_MAX_TOKENS = 4096
WEB_SEARCH_TOOL_TYPE = "web_search_20250305"


class LLMResponseError(Exception):
    """The model returned no usable content for a request."""


@dataclass
class LLMResponse:
    """Generated text plus the web pages it was grounded on."""

    text: str
    sources: list[SourceLink] = field(default_factory=list)


class LLMCollaborator(Protocol):
    async def generate_content(
        self,
        prompt: str,
        *,
        system: str | None = None,
        web_search: bool = False,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        model: str | None = None,
    ) -> LLMResponse: ...

    async def generate_structured(
        self,
        prompt: str,
        *,
        tool_name: str,
        schema: dict[str, Any],
        description: str = "",
        system: str | None = None,
        max_tokens: int = STRUCTURED_MAX_TOKENS,
    ) -> dict[str, Any]: ...


def _block_type(block: Any) -> str | None:
    return getattr(block, "type", None)


def _collect_sources(content: list[Any]) -> list[SourceLink]:
    seen: set[str] = set()
    sources: list[SourceLink] = []

    def add(url: str | None, title: str | None) -> None:
        if not url or url in seen:
            return
        seen.add(url)
        sources.append(SourceLink(url=url, title=title or url))

    for block in content:
        kind = _block_type(block)
        if kind == "web_search_tool_result":
            results = getattr(block, "content", None)
            # An error payload is a single object, not a list of results.
            if isinstance(results, list):
                for result in results:
                    add(getattr(result, "url", None), getattr(result, "title", None))
        elif kind == "text":
            for citation in getattr(block, "citations", None) or []:
                add(getattr(citation, "url", None), getattr(citation, "title", None))
    return sources


class LLMClient:
    """``LLMCollaborator`` backed by ``anthropic.AsyncAnthropic``.

    Args:
        client: Pre-built AsyncAnthropic client. Created lazily from the
            ANTHROPIC_API_KEY environment variable when omitted.
        model: Model override; defaults to ANTHROPIC_MODEL.
    """

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str | None = None,
    ) -> None:
        self._client = client
        self._model = model

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic()
        return self._client

    @property
    def model(self) -> str:
        return self._model or get_model()

    async def generate_content(
        self,
        prompt: str,
        *,
        system: str | None = None,
        web_search: bool = False,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        model: str | None = None,
    ) -> LLMResponse:
        """Generate free text, optionally grounded with web search.

        Raises:
            anthropic.APIError: On transport or API failures.
        """
        kwargs: dict[str, Any] = {
            "model": model or self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        if web_search:
            kwargs["tools"] = [
                {
                    "type": WEB_SEARCH_TOOL_TYPE,
                    "name": "web_search",
                    "max_uses": get_web_search_max_uses(),
                }
            ]

        response = await self.client.messages.create(**kwargs)
        content = list(response.content or [])
        text = "".join(
            getattr(block, "text", "") for block in content if _block_type(block) == "text"
        ).strip()
        sources = _collect_sources(content) if web_search else []
        logger.debug(
            "LLM response: %d chars, %d sources, stop_reason=%s",
            len(text),
            len(sources),
            getattr(response, "stop_reason", None),
        )
        return LLMResponse(text=text, sources=sources)

    async def generate_structured(
        self,
        prompt: str,
        *,
        tool_name: str,
        schema: dict[str, Any],
        description: str = "",
        system: str | None = None,
        max_tokens: int = STRUCTURED_MAX_TOKENS,
    ) -> dict[str, Any]:
        """Get JSON matching ``schema`` by forcing a single tool call.

        Raises:
            LLMResponseError: If the model did not call the tool.
            anthropic.APIError: On transport or API failures.
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "tools": [
                {
                    "name": tool_name,
                    "description": description or f"Record the {tool_name} result",
                    "input_schema": schema,
                }
            ],
            "tool_choice": {"type": "tool", "name": tool_name},
        }
        if system:
            kwargs["system"] = system

        response = await self.client.messages.create(**kwargs)
        for block in response.content or []:
            if _block_type(block) == "tool_use" and getattr(block, "name", None) == tool_name:
                return dict(block.input)
        raise LLMResponseError(f"Model did not return {tool_name} output")
