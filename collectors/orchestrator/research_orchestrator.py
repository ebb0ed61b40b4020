"""Chat and product-research orchestration.

One user turn is answered in one of three ways:

- direct answer: a single web-search-grounded model call with the
  collection summary as system prompt;
- discovery: web research into what kinds of product exist for the
  request (and vehicle), summarized into product types and considerations;
- product finding: after the user narrows the choice, retailer tools and a
  web search run concurrently and the model ranks concrete products.

Research never surfaces an error to the user. Any failure in either phase
is logged and the turn degrades to a direct answer.
"""

import asyncio
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from collectors.db.models import ResearchStatus
from collectors.orchestrator.intent_classifier import (
    IntentClassification,
    classify_intent_fast,
    classify_intent_with_ai,
    is_followup_request,
    resolve_vehicle_context,
)
from collectors.orchestrator.models import (
    HAS_MORE_RESULTS_THRESHOLD,
    DiscoveryResult,
    ProductRecommendation,
    ResearchResult,
    SourceLink,
    VehicleContext,
)
from collectors.orchestrator.research_state import (
    ResearchPhase,
    ResearchState,
    complete_product_finding,
    next_phase,
    reset,
    start_discovery,
)
from collectors.orchestrator.tools import (
    RetailerProduct,
    SearchParams,
    ToolRegistry,
    extract_product_query,
    mentioned_product,
)
from collectors.services.llm_client import LLMCollaborator

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "I apologize, but I was unable to generate a response. Please try again."
)
MAX_DIRECT_SOURCES = 5
MAX_FALLBACK_SOURCES = 5
MAX_RAW_PRODUCTS = 10

MOTORCYCLE_RETAILER = "RevZilla"
MOTORCYCLE_RETAILER_DOMAIN = "revzilla.com"
GENERAL_RETAILER = "Amazon"
EXCLUDED_SOURCE_DOMAINS = ("ebay.com", "walmart.com")

DISCOVERY_TOOL_NAME = "record_discovery"
DISCOVERY_SCHEMA = {
    "type": "object",
    "properties": {
        "oem_spec": {
            "type": ["string", "null"],
            "description": "OEM specification and part number if found",
        },
        "product_types": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "price_range": {"type": ["string", "null"]},
                    "pros": {"type": "array", "items": {"type": "string"}},
                    "cons": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["name", "description"],
            },
        },
        "key_considerations": {"type": "array", "items": {"type": "string"}},
        "popular_brands": {"type": "array", "items": {"type": "string"}},
        "suggested_questions": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["product_types", "key_considerations", "popular_brands"],
}

RECOMMENDATION_TOOL_NAME = "record_recommendations"
RECOMMENDATION_SCHEMA = {
    "type": "object",
    "properties": {
        "recommendations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "brand": {"type": "string"},
                    "price": {"type": ["number", "null"]},
                    "currency": {"type": ["string", "null"]},
                    "url": {"type": "string"},
                    "retailer": {"type": ["string", "null"]},
                    "reasoning": {"type": "string"},
                    "pros": {"type": "array", "items": {"type": "string"}},
                    "cons": {"type": "array", "items": {"type": "string"}},
                    "review_summary": {"type": ["string", "null"]},
                },
                "required": ["name", "brand", "url"],
            },
        },
        "sources": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "url": {"type": "string"},
                },
                "required": ["title", "url"],
            },
        },
    },
    "required": ["recommendations"],
}

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

# Conversational words dropped from refinements before a retailer search.
_FILLER_WORDS = frozenset({
    "a", "an", "the", "i", "id", "im", "me", "my", "please", "want", "would",
    "like", "prefer", "show", "give", "go", "with", "lets", "one", "ones",
    "some", "thanks", "ok", "okay", "sure", "yes", "any", "other", "more",
    "options", "what", "about", "else", "for", "of", "to", "and", "is", "it",
    "that", "those", "these", "sounds", "good", "great", "type", "kind",
})


def _vehicle_info(vehicle: VehicleContext | None) -> str:
    return vehicle.describe() if vehicle else "unspecified vehicle"


def _vehicle_label(vehicle: VehicleContext | None) -> str:
    if vehicle is None:
        return "vehicle"
    return vehicle.year_make_model or vehicle.name or "vehicle"


def _is_search_page(url: str) -> bool:
    return "/search" in url or "?q=" in url


def filter_sources(sources: Sequence[SourceLink], is_motorcycle: bool) -> list[SourceLink]:
    """Keep product-page sources worth showing.

    Motorcycle research only links to RevZilla product pages. Everything
    else excludes search pages and marketplace listings.
    """
    kept: list[SourceLink] = []
    seen: set[str] = set()
    for source in sources:
        url = source.url
        if url in seen or _is_search_page(url):
            continue
        if is_motorcycle:
            if MOTORCYCLE_RETAILER_DOMAIN not in url:
                continue
        elif any(domain in url for domain in EXCLUDED_SOURCE_DOMAINS):
            continue
        seen.add(url)
        kept.append(source)
    return kept


def _dedupe_by_title(sources: Sequence[SourceLink]) -> list[SourceLink]:
    seen: set[str] = set()
    unique: list[SourceLink] = []
    for source in sources:
        if source.title in seen:
            continue
        seen.add(source.title)
        unique.append(source)
    return unique


async def perform_discovery_phase(
    llm: LLMCollaborator,
    query: str,
    vehicle: VehicleContext | None = None,
) -> DiscoveryResult:
    """Research what options exist for ``query`` on ``vehicle``.

    Raises:
        Exception: Any LLM or validation failure; the caller degrades.
    """
    vehicle_info = _vehicle_info(vehicle)
    search_prompt = f"""Research {query} for a {vehicle_info}.

Find:
1. What is the OEM/stock specification? Include part numbers.
2. What types/categories are available (e.g., for batteries: Lithium-Ion, AGM, Lead-Acid)?
3. What are key considerations when choosing?
4. What are popular brands recommended by owners?

Use web search to find current, accurate information."""

    findings = await llm.generate_content(search_prompt, web_search=True)
    logger.info("Discovery search returned %d chars", len(findings.text))

    structure_prompt = f"""Based on the following research about {query} for a {vehicle_info}, extract and structure the information.

Research findings:
{findings.text}

Record the OEM specification (or null), the product types with price
ranges, pros and cons, key considerations, popular brands and questions
that would help the user narrow down their choice."""

    data = await llm.generate_structured(
        structure_prompt,
        tool_name=DISCOVERY_TOOL_NAME,
        schema=DISCOVERY_SCHEMA,
        description="Record structured discovery research",
    )
    return DiscoveryResult.model_validate(data)


def _from_retailer(product: RetailerProduct) -> ProductRecommendation:
    return ProductRecommendation(
        name=product.name,
        brand=product.brand,
        price=product.price or None,
        currency=product.currency,
        url=product.url,
        image_url=product.image_url,
        rating=product.rating,
        review_count=product.review_count,
        in_stock=product.in_stock,
        retailer=product.retailer,
        fitment_verified=product.fitment_verified,
    )


def _retailer_listing(products: Sequence[RetailerProduct]) -> str:
    if not products:
        return "(no retailer results)"
    lines = []
    for p in products:
        price = f"${p.price:,.2f}" if p.price else "price unknown"
        stock = "" if p.in_stock else " [out of stock]"
        lines.append(f"- {p.brand} | {p.name} | {price} | {p.url}{stock}")
    return "\n".join(lines)


def build_search_query(product_category: str, user_preferences: str) -> str:
    """Refined retailer query, e.g. "lithium please" -> ``lithium battery``."""
    category = product_category.lower().strip()
    words = [
        word
        for word in _NON_ALPHANUMERIC.sub("", user_preferences.lower()).split()
        if word not in _FILLER_WORDS and word != category
    ]
    return _WHITESPACE.sub(" ", " ".join(words + [category])).strip()


async def perform_product_finding_phase(
    llm: LLMCollaborator,
    registry: ToolRegistry,
    product_category: str,
    user_preferences: str,
    vehicle: VehicleContext | None = None,
    discovery: DiscoveryResult | None = None,
) -> ResearchResult:
    """Find concrete products matching the user's refinement.

    Retailer tools and web search run concurrently. If the ranking call
    fails or returns nothing, raw retailer products are returned instead.

    Raises:
        Exception: Web search failures, or a ranking failure with no
            retailer products to fall back to.
    """
    vehicle_info = _vehicle_info(vehicle)
    is_motorcycle = vehicle is not None and vehicle.vehicle_type == "motorcycle"
    retailer = MOTORCYCLE_RETAILER if is_motorcycle else GENERAL_RETAILER
    site = f" site:{MOTORCYCLE_RETAILER_DOMAIN}" if is_motorcycle else ""
    oem_context = (
        f"OEM Spec: {discovery.oem_spec}" if discovery and discovery.oem_spec else ""
    )
    query = build_search_query(product_category, user_preferences) or product_category

    params = SearchParams(
        query=query,
        year=vehicle.year if vehicle else None,
        make=vehicle.make if vehicle else None,
        model=vehicle.model if vehicle else None,
    )
    search_prompt = f"""Search{site} for {query} that fits {vehicle_info}.

Find {query} products on {retailer} that are compatible with {vehicle_info}.

For each product found:
- Exact product name and part number
- Current price
- Direct product page URL on {retailer}
- Whether it is listed as fitting {vehicle_info}

{oem_context}"""

    products, findings = await asyncio.gather(
        registry.execute_all_tools_for_vehicle(
            vehicle.vehicle_type if vehicle else "other", params
        ),
        llm.generate_content(search_prompt, web_search=True),
    )
    source_urls = filter_sources(findings.sources, is_motorcycle)
    logger.info(
        "Product finding: %d retailer products, %d sources", len(products), len(source_urls)
    )

    rank_prompt = f"""Rank products for {user_preferences} {product_category} for {vehicle_info}.

Retailer search results:
{_retailer_listing(products)}

Web search results:
{findings.text}

Available URLs from search:
{chr(10).join(f"- {s.title}: {s.url}" for s in source_urls)}

RULES:
1. Include every product that fits the vehicle and the user's preference.
2. Use only product page URLs listed above{" (revzilla.com only)" if is_motorcycle else ""}.
3. Explain the reasoning, pros and cons for each product.
4. Retailer search does not verify fitment; say so when unsure."""

    recommendations: list[ProductRecommendation] = []
    ranked_sources: list[SourceLink] = []
    try:
        data = await llm.generate_structured(
            rank_prompt,
            tool_name=RECOMMENDATION_TOOL_NAME,
            schema=RECOMMENDATION_SCHEMA,
            description="Record ranked product recommendations",
        )
        recommendations = [
            ProductRecommendation.model_validate(item)
            for item in data.get("recommendations") or []
        ]
        ranked_sources = [
            SourceLink.model_validate(item) for item in data.get("sources") or []
        ]
    except Exception:
        if not products:
            raise
        logger.exception("Product ranking failed, returning raw retailer results")

    if not recommendations:
        recommendations = [_from_retailer(p) for p in products[:MAX_RAW_PRODUCTS]]

    return ResearchResult(
        recommendations=recommendations,
        sources=ranked_sources or source_urls[:MAX_FALLBACK_SOURCES],
        has_more_results=len(recommendations) >= HAS_MORE_RESULTS_THRESHOLD,
    )


def format_discovery_response(
    result: DiscoveryResult, vehicle: VehicleContext | None = None
) -> str:
    """Plain-text summary of discovery, ending with a narrowing question."""
    lines = [f"Here's what I found about options for your {_vehicle_label(vehicle)}:", ""]

    if result.oem_spec:
        lines += [f"OEM Specification: {result.oem_spec}", ""]

    if result.product_types:
        lines += ["Your main options:", ""]
        for index, product_type in enumerate(result.product_types, start=1):
            heading = f"{index}. {product_type.name}"
            if product_type.price_range:
                heading += f" ({product_type.price_range})"
            lines.append(heading)
            lines.append(f"   {product_type.description}")
            if product_type.pros:
                lines.append(f"   Pros: {', '.join(product_type.pros)}")
            if product_type.cons:
                lines.append(f"   Cons: {', '.join(product_type.cons)}")
            lines.append("")

    if result.key_considerations:
        lines.append("Things to consider:")
        lines += [f"- {item}" for item in result.key_considerations]
        lines.append("")

    if result.popular_brands:
        lines += [f"Popular brands: {', '.join(result.popular_brands)}", ""]

    lines.append("Which type interests you? Or should I show you all options?")
    return "\n".join(lines)


def _format_price(recommendation: ProductRecommendation) -> str:
    if recommendation.price is None:
        return ""
    if recommendation.currency and recommendation.currency != "USD":
        return f"{recommendation.price:,.2f} {recommendation.currency}"
    return f"${recommendation.price:,.2f}"


def format_research_response(
    result: ResearchResult, vehicle: VehicleContext | None = None
) -> str:
    label = _vehicle_label(vehicle)
    if not result.recommendations:
        return (
            f"I couldn't find specific products for your {label} this time. "
            "Could you describe what you're looking for in a bit more detail?"
        )

    lines = [f"Here are the products I found for your {label}:", ""]
    for index, rec in enumerate(result.recommendations, start=1):
        details = " - ".join(
            part for part in (_format_price(rec), rec.retailer or "") if part
        )
        heading = f"{index}. {rec.name}"
        if rec.brand and rec.brand.lower() not in rec.name.lower():
            heading = f"{index}. {rec.brand} {rec.name}"
        lines.append(f"{heading} ({details})" if details else heading)
        if rec.reasoning:
            lines.append(f"   {rec.reasoning}")
        if rec.pros:
            lines.append(f"   Pros: {', '.join(rec.pros)}")
        if rec.cons:
            lines.append(f"   Cons: {', '.join(rec.cons)}")
        if rec.in_stock is False:
            lines.append("   Currently out of stock")
        if rec.url:
            lines.append(f"   {rec.url}")
        lines.append("")

    if any(rec.fitment_verified is False for rec in result.recommendations):
        lines += ["Fitment is not verified. Check the product page before ordering.", ""]
    if result.has_more_results:
        lines += ["Want to see more options?", ""]
    if result.sources:
        lines.append("Sources:")
        lines += [f"[{s.title}]({s.url})" for s in result.sources]
    return "\n".join(lines).rstrip()


@dataclass
class ChatContext:
    """Everything the orchestrator needs to answer one turn.

    ``history`` is chronological and excludes the current message.
    """

    system_prompt: str
    history: Sequence[Any] = field(default_factory=list)
    vehicles: Sequence[Any] = field(default_factory=list)
    research_state: ResearchState = field(default_factory=ResearchState)
    research_mode: bool | None = None


@dataclass
class OrchestratorReply:
    text: str
    metadata: dict[str, Any] | None
    research_state: ResearchState

    @property
    def research_status(self) -> ResearchStatus:
        return self.research_state.status


class ResearchOrchestrator:
    """Route a chat turn to a direct answer or a research phase.

    Args:
        llm: Model collaborator.
        registry: Retailer tools used during product finding.
        use_ai_classifier: Classify intent with the model instead of
            keywords (one extra model call per turn).
    """

    def __init__(
        self,
        llm: LLMCollaborator,
        registry: ToolRegistry,
        use_ai_classifier: bool = False,
    ) -> None:
        self._llm = llm
        self._registry = registry
        self._use_ai_classifier = use_ai_classifier

    async def classify(self, message: str) -> IntentClassification:
        if self._use_ai_classifier:
            return await classify_intent_with_ai(message, self._llm)
        return IntentClassification(intent=classify_intent_fast(message))

    async def respond(self, message: str, context: ChatContext) -> OrchestratorReply:
        state = context.research_state
        classification = await self.classify(message)
        intent = classification.intent
        phase = next_phase(
            state,
            intent,
            research_mode=context.research_mode,
            follow_up=is_followup_request(message),
            product=mentioned_product(message),
        )
        logger.info(
            "Chat turn: intent=%s research_status=%s phase=%s",
            intent.value,
            state.status.value,
            phase.value if phase else None,
        )

        if phase is not None:
            try:
                if phase == ResearchPhase.discovery:
                    return await self._discover(
                        message, context, classification.vehicle_mentioned
                    )
                return await self._find_products(
                    message, context, classification.vehicle_mentioned
                )
            except Exception:
                logger.exception("Research %s failed, answering directly", phase.value)
                state = reset()

        if state.status == ResearchStatus.awaiting_refinement:
            # Only a collection question reaches here while awaiting refinement.
            state = reset()

        text = await self.direct_answer(message, context)
        return OrchestratorReply(text=text, metadata=None, research_state=state)

    async def _discover(
        self, message: str, context: ChatContext, mentioned: str | None = None
    ) -> OrchestratorReply:
        # A new product question keeps the bike from an earlier search.
        vehicle = (
            resolve_vehicle_context(
                message, context.history, context.vehicles, mentioned=mentioned
            )
            or context.research_state.vehicle_context
        )
        category = extract_product_query(message)
        discovery = await perform_discovery_phase(self._llm, category, vehicle)
        state = start_discovery(category, vehicle, discovery)
        return OrchestratorReply(
            text=format_discovery_response(discovery, vehicle),
            metadata=self._metadata("discovery", state, discovery_result=discovery),
            research_state=state,
        )

    async def _find_products(
        self, message: str, context: ChatContext, mentioned: str | None = None
    ) -> OrchestratorReply:
        state = context.research_state
        vehicle = state.vehicle_context or resolve_vehicle_context(
            message, context.history, context.vehicles, mentioned=mentioned
        )
        category = state.product_category or extract_product_query(message)
        if state.status == ResearchStatus.completed and state.user_preferences:
            # "Any other options?" keeps the earlier refinement.
            preferences = f"{state.user_preferences} {message}"
        else:
            preferences = message

        result = await perform_product_finding_phase(
            self._llm,
            self._registry,
            category,
            preferences,
            vehicle,
            state.discovery_result,
        )
        carried = state.model_copy(
            update={"product_category": category, "vehicle_context": vehicle}
        )
        new_state = complete_product_finding(carried, preferences)
        return OrchestratorReply(
            text=format_research_response(result, vehicle),
            metadata=self._metadata("product_research", new_state, research_result=result),
            research_state=new_state,
        )

    @staticmethod
    def _metadata(
        kind: str,
        state: ResearchState,
        discovery_result: DiscoveryResult | None = None,
        research_result: ResearchResult | None = None,
    ) -> dict[str, Any]:
        metadata: dict[str, Any] = {"type": kind}
        if discovery_result is not None:
            metadata["discoveryResult"] = discovery_result.to_metadata()
        if research_result is not None:
            metadata["researchResult"] = research_result.to_metadata()
        if state.vehicle_context is not None:
            metadata["vehicleContext"] = state.vehicle_context.to_metadata()
        metadata["researchState"] = state.to_metadata()
        return metadata

    async def direct_answer(self, message: str, context: ChatContext) -> str:
        """Single grounded answer with up to five sources appended."""
        response = await self._llm.generate_content(
            message, system=context.system_prompt, web_search=True
        )
        text = response.text or FALLBACK_MESSAGE
        sources = _dedupe_by_title(response.sources)[:MAX_DIRECT_SOURCES]
        if sources:
            text += "\n\nSources:\n" + "\n".join(f"[{s.title}]({s.url})" for s in sources)
        return text
