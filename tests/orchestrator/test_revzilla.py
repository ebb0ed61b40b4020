"""Tests for the RevZilla search tool and its HTML parser."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from collectors.orchestrator.tools.base import SearchParams
from collectors.orchestrator.tools.cache import TTLCache
from collectors.orchestrator.tools.revzilla import (
    RevZillaTool,
    extract_brand_from_name,
    parse_search_results,
)

SEARCH_PAGE = """
<html><head><title>battery | RevZilla</title></head><body>
<div class="product-tile" data-brand="Yuasa">
  <a href="/motorcycle/yuasa-ytz10s-battery">
    <div class="product-tile__name">Yuasa YTZ10S Battery</div>
  </a>
  <span class="product-tile__price">$89.99 - $129.99</span>
  <div class="product-tile__rating" aria-label="4.5 out of 5 stars"></div>
  <span>128 reviews</span>
</div>
<div class="product-tile">
  <a href="https://www.revzilla.com/motorcycle/antigravity-lithium">
    <div class="product-tile__name">Antigravity Lithium Battery</div>
  </a>
  <span>$1,049.00</span>
  <div class="out-of-stock">Out of stock</div>
</div>
<div class="product-tile">
  <div class="product-tile__name">Tile Without Link</div>
</div>
</body></html>
"""

LEGACY_PAGE = """
<html><body>
<div class="product-index-results__product-tile">
  <a href="/motorcycle/shoei-rf-1400">
    <span data-qa="product-tile-name">Shoei RF-1400 Helmet</span>
  </a>
  <span>$579.99</span>
</div>
</body></html>
"""

EMPTY_PAGE = "<html><head><title>Access Denied</title></head><body></body></html>"


def _response(status: int, text: str = "") -> httpx.Response:
    return httpx.Response(
        status,
        text=text,
        request=httpx.Request("GET", "https://www.revzilla.com/search"),
    )


@pytest.fixture
def tool() -> RevZillaTool:
    return RevZillaTool(cache=TTLCache(ttl_seconds=900, max_entries=16), timeout=5)


class TestParseSearchResults:
    def test_parses_product_tiles(self):
        products = parse_search_results(SEARCH_PAGE)

        assert [p.name for p in products] == [
            "Yuasa YTZ10S Battery",
            "Antigravity Lithium Battery",
        ]
        yuasa, antigravity = products

        assert yuasa.brand == "Yuasa"
        assert yuasa.price == 89.99
        assert yuasa.url == "https://www.revzilla.com/motorcycle/yuasa-ytz10s-battery"
        assert yuasa.rating == 4.5
        assert yuasa.review_count == 128
        assert yuasa.in_stock is True
        assert yuasa.retailer == "RevZilla"
        assert yuasa.fitment_verified is False

        assert antigravity.brand == "Antigravity"
        assert antigravity.price == 1049.0
        assert antigravity.rating is None
        assert antigravity.in_stock is False

    def test_falls_back_to_legacy_layout(self):
        products = parse_search_results(LEGACY_PAGE)

        assert len(products) == 1
        assert products[0].name == "Shoei RF-1400 Helmet"
        assert products[0].brand == "Shoei"
        assert products[0].price == 579.99
        assert products[0].url == "https://www.revzilla.com/motorcycle/shoei-rf-1400"

    def test_unrecognized_markup_returns_empty(self, caplog):
        assert parse_search_results(EMPTY_PAGE) == []
        assert "Access Denied" in caplog.text


class TestExtractBrand:
    def test_known_brand(self):
        assert extract_brand_from_name("Michelin Road 6 Rear Tire") == "Michelin"

    def test_first_word_fallback(self):
        assert extract_brand_from_name("Oxford Heaterz Grips") == "Oxford"

    def test_unknown_for_single_character(self):
        assert extract_brand_from_name("X") == "Unknown"


class TestRevZillaTool:
    def test_metadata(self, tool):
        assert tool.name == "search_revzilla"
        assert tool.supports("motorcycle")
        assert not tool.supports("car")
        assert tool.description == "Search RevZilla for motorcycle parts, gear, and accessories."

    def test_search_url_encodes_query(self, tool):
        url = tool.build_search_url(SearchParams(query="lithium battery"))
        assert url == "https://www.revzilla.com/search?query=lithium+battery"

    @pytest.mark.asyncio
    async def test_search_returns_products(self, tool):
        mock_get = AsyncMock(return_value=_response(200, SEARCH_PAGE))
        with patch.object(httpx.AsyncClient, "get", mock_get):
            products = await tool.search(
                SearchParams(query="battery", year=2019, make="Honda", model="CBR650F")
            )

        assert len(products) == 2
        assert all(p.fitment_verified is False for p in products)
        assert mock_get.await_args.args[0] == "https://www.revzilla.com/search?query=battery"
        assert mock_get.await_args.kwargs["follow_redirects"] is True

    @pytest.mark.asyncio
    async def test_second_search_is_served_from_cache(self, tool):
        mock_get = AsyncMock(return_value=_response(200, SEARCH_PAGE))
        with patch.object(httpx.AsyncClient, "get", mock_get):
            first = await tool.search(SearchParams(query="battery"))
            second = await tool.search(SearchParams(query="battery"))

        assert mock_get.await_count == 1
        assert first == second

    @pytest.mark.asyncio
    async def test_different_fitment_is_a_different_cache_key(self, tool):
        mock_get = AsyncMock(return_value=_response(200, SEARCH_PAGE))
        with patch.object(httpx.AsyncClient, "get", mock_get):
            await tool.search(SearchParams(query="battery", make="Honda"))
            await tool.search(SearchParams(query="battery", make="BMW"))

        assert mock_get.await_count == 2

    @pytest.mark.asyncio
    async def test_http_error_status_returns_empty(self, tool):
        mock_get = AsyncMock(return_value=_response(503))
        with patch.object(httpx.AsyncClient, "get", mock_get):
            assert await tool.search(SearchParams(query="battery")) == []
            # Failures are not cached.
            await tool.search(SearchParams(query="battery"))

        assert mock_get.await_count == 2

    @pytest.mark.asyncio
    async def test_transport_error_returns_empty(self, tool):
        mock_get = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
        with patch.object(httpx.AsyncClient, "get", mock_get):
            assert await tool.search(SearchParams(query="battery")) == []
