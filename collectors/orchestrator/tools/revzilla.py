"""RevZilla search tool for motorcycle parts, gear and accessories.

Scrapes the public search results page. The page markup is an implicit,
unversioned contract: when RevZilla changes it the tool returns no
products rather than failing the research request.

RevZilla's fitment filter lives in client-side JavaScript and cookies, so
the search uses the product query only and every product comes back with
``fitment_verified=False``.
"""

import logging
import re
from urllib.parse import quote_plus, urljoin

import httpx
from bs4 import BeautifulSoup, Tag

from collectors.orchestrator.config import (
    get_retailer_cache_max_entries,
    get_retailer_cache_ttl,
    get_retailer_http_timeout,
)
from collectors.orchestrator.tools.base import (
    RetailerProduct,
    RetailerTool,
    SearchParams,
)
from collectors.orchestrator.tools.cache import TTLCache

logger = logging.getLogger(__name__)

BASE_URL = "https://www.revzilla.com"
SEARCH_URL = BASE_URL + "/search?query={query}"

REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

TILE_SELECTOR = ".product-tile"
FALLBACK_TILE_SELECTOR = ".product-index-results__product-tile"
NAME_SELECTOR = ".product-tile__name"
FALLBACK_NAME_SELECTOR = '.product-tile__name, [data-qa="product-tile-name"]'
PRODUCT_LINK_SELECTOR = 'a[href*="/motorcycle/"]'
RATING_SELECTOR = '.product-tile__rating, [class*="star"], [class*="rating"]'
OUT_OF_STOCK_SELECTOR = '[class*="out-of-stock"], [class*="sold-out"]'

_PRICE_PATTERN = re.compile(r"\$(\d{1,3}(?:,\d{3})*(?:\.\d{2})?)")
_RATING_PATTERNS = (
    re.compile(r"([\d.]+)\s*(?:out of|/)\s*5", re.IGNORECASE),
    re.compile(r"([\d.]+)\s*star", re.IGNORECASE),
)
_REVIEW_COUNT_PATTERN = re.compile(r"(\d+)\s*(?:review|rating)", re.IGNORECASE)
_NAME_SPLIT = re.compile(r"[\s-]")

KNOWN_BRANDS = (
    "Yuasa", "Antigravity", "Fire Power", "Shorai", "Lithium", "AGM",
    "Dainese", "Alpinestars", "Icon", "Shoei", "Arai", "Bell", "HJC",
    "RevIt", "Klim", "Scorpion", "Fly", "Fox", "Thor", "Answer",
    "Michelin", "Pirelli", "Dunlop", "Bridgestone", "Metzeler",
    "K&N", "Akrapovic", "Yoshimura", "Two Brothers", "Leo Vince",
)


def extract_brand_from_name(name: str) -> str:
    """Known brand contained in the product name, else its first word."""
    lowered = name.lower()
    for brand in KNOWN_BRANDS:
        if brand.lower() in lowered:
            return brand
    first_word = _NAME_SPLIT.split(name, maxsplit=1)[0]
    return first_word if len(first_word) > 1 else "Unknown"


def _lowest_price(text: str) -> float:
    prices = [float(p.replace(",", "")) for p in _PRICE_PATTERN.findall(text)]
    return min(prices) if prices else 0.0


def _rating(tile: Tag) -> float | None:
    element = tile.select_one(RATING_SELECTOR)
    if element is None:
        return None
    label = element.get("aria-label") or element.get("title") or ""
    for pattern in _RATING_PATTERNS:
        match = pattern.search(label)
        if match:
            try:
                return float(match.group(1))
            except ValueError:
                return None
    return None


def _review_count(text: str) -> int | None:
    match = _REVIEW_COUNT_PATTERN.search(text)
    return int(match.group(1)) if match else None


def _tile_href(tile: Tag) -> str | None:
    link = tile.select_one(PRODUCT_LINK_SELECTOR)
    if link is None:
        link = tile.find_parent("a")
    if link is None or not link.get("href"):
        link = tile.find("a", href=True)
    return link.get("href") if link is not None else None


def _tile_brand(tile: Tag, name: str) -> str:
    if tile.get("data-brand"):
        return tile["data-brand"]
    branded = tile.select_one("[data-brand]")
    if branded is not None and branded.get("data-brand"):
        return branded["data-brand"]
    return extract_brand_from_name(name)


def _parse_primary_tiles(soup: BeautifulSoup) -> list[RetailerProduct]:
    products: list[RetailerProduct] = []
    tiles = soup.select(TILE_SELECTOR)
    logger.debug("RevZilla: found %d product tiles", len(tiles))

    for tile in tiles:
        name_el = tile.select_one(NAME_SELECTOR)
        name = name_el.get_text(strip=True) if name_el else ""
        if not name:
            continue
        href = _tile_href(tile)
        if not href:
            continue

        text = tile.get_text(" ", strip=True)
        out_of_stock = (
            "out of stock" in text.lower()
            or tile.select_one(OUT_OF_STOCK_SELECTOR) is not None
        )
        products.append(
            RetailerProduct(
                name=name,
                brand=_tile_brand(tile, name),
                price=_lowest_price(text),
                url=urljoin(BASE_URL, href),
                rating=_rating(tile),
                review_count=_review_count(text),
                in_stock=not out_of_stock,
                retailer=RevZillaTool.retailer_name,
            )
        )
    return products


def _parse_fallback_tiles(soup: BeautifulSoup) -> list[RetailerProduct]:
    products: list[RetailerProduct] = []
    for tile in soup.select(FALLBACK_TILE_SELECTOR):
        name_el = tile.select_one(FALLBACK_NAME_SELECTOR)
        name = name_el.get_text(strip=True) if name_el else ""
        if not name:
            continue
        link = tile.find("a", href=True)
        if link is None:
            continue
        products.append(
            RetailerProduct(
                name=name,
                brand=extract_brand_from_name(name),
                price=_lowest_price(tile.get_text(" ", strip=True)),
                url=urljoin(BASE_URL, link["href"]),
                in_stock=True,
                retailer=RevZillaTool.retailer_name,
            )
        )
    return products


def parse_search_results(html: str) -> list[RetailerProduct]:
    """Extract products from a RevZilla search results page.

    Tries the product-tile layout first, then the older
    product-index-results layout. Missing optional fields are left unset.
    """
    soup = BeautifulSoup(html, "html.parser")
    products = _parse_primary_tiles(soup)
    if not products:
        products = _parse_fallback_tiles(soup)

    if not products:
        title = soup.title.get_text(strip=True) if soup.title else ""
        logger.warning(
            "RevZilla: no products found, selectors may need updating (page title %r)",
            title,
        )
    return products


class RevZillaTool(RetailerTool):
    """Search RevZilla with a short-lived result cache."""

    name = "search_revzilla"
    retailer_name = "RevZilla"
    vehicle_types = frozenset({"motorcycle"})
    description = "Search RevZilla for motorcycle parts, gear, and accessories."

    def __init__(
        self,
        cache: TTLCache | None = None,
        timeout: float | None = None,
    ) -> None:
        self._cache = cache or TTLCache(
            ttl_seconds=get_retailer_cache_ttl(),
            max_entries=get_retailer_cache_max_entries(),
        )
        self._timeout = timeout if timeout is not None else get_retailer_http_timeout()

    def build_search_url(self, params: SearchParams) -> str:
        return SEARCH_URL.format(query=quote_plus(params.query))

    async def search(self, params: SearchParams) -> list[RetailerProduct]:
        cached = self._cache.get(params.cache_key)
        if cached is not None:
            logger.debug("RevZilla: cache hit for %r", params.query)
            return list(cached)

        url = self.build_search_url(params)
        logger.info("RevZilla: searching %s", url)
        if params.fitment:
            logger.debug(
                "RevZilla: fitment for %s must be verified on the product page",
                params.fitment,
            )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    url, headers=REQUEST_HEADERS, follow_redirects=True
                )
        except httpx.HTTPError as e:
            logger.warning("RevZilla: request failed: %s", e)
            return []

        if not 200 <= response.status_code < 300:
            logger.warning("RevZilla: HTTP error %s", response.status_code)
            return []

        products = parse_search_results(response.text)
        logger.info("RevZilla: returning %d products", len(products))
        self._cache.set(params.cache_key, tuple(products))
        return products
