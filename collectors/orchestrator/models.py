"""Pydantic models for assistant research results.

Serialized with camelCase aliases (``model_dump(by_alias=True)``) because
they are stored verbatim in chat message metadata and rendered by the
client as product cards and discovery summaries.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting snake_case or camelCase input, emitting camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_metadata(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class VehicleContext(CamelModel):
    """A vehicle the conversation is about.

    ``id`` is None when the vehicle was mentioned in free text but is not
    part of the user's collection.
    """

    id: str | None = None
    name: str
    vehicle_type: str = "other"
    year: int | None = None
    make: str | None = None
    model: str | None = None
    nickname: str | None = None

    @property
    def year_make_model(self) -> str:
        return " ".join(str(p) for p in (self.year, self.make, self.model) if p)

    def describe(self) -> str:
        """e.g. ``2019 Honda CBR650F (motorcycle)``."""
        return f"{self.year_make_model or self.name} ({self.vehicle_type})"


class SourceLink(CamelModel):
    url: str
    title: str


class ProductType(CamelModel):
    """One category of product uncovered during discovery (e.g. "AGM")."""

    name: str
    description: str = ""
    price_range: str | None = None
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)


class DiscoveryResult(CamelModel):
    """Output of the discovery phase: what options exist for a product."""

    oem_spec: str | None = None
    product_types: list[ProductType] = Field(default_factory=list)
    key_considerations: list[str] = Field(default_factory=list)
    popular_brands: list[str] = Field(default_factory=list)
    suggested_questions: list[str] = Field(default_factory=list)


class ProductRecommendation(CamelModel):
    """A ranked product with purchase link and reasoning."""

    name: str
    brand: str = "Unknown"
    price: float | None = None
    currency: str | None = "USD"
    url: str = ""
    image_url: str | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    review_count: int | None = None
    in_stock: bool | None = None
    retailer: str | None = None
    fitment_verified: bool | None = None
    reasoning: str | None = None
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)
    review_summary: str | None = None


# Results at or above this count suggest the user can ask for more.
HAS_MORE_RESULTS_THRESHOLD = 8


class ResearchResult(CamelModel):
    """Output of the product-finding phase."""

    recommendations: list[ProductRecommendation] = Field(default_factory=list)
    sources: list[SourceLink] = Field(default_factory=list)
    has_more_results: bool = False
