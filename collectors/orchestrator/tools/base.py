"""Abstract base class for retailer search tools.

Each retailer (RevZilla today; parts stores for cars and boats later)
implements this interface so the registry can fan a search out to every
tool that serves a vehicle type.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from collectors.orchestrator.models import CamelModel

# Vehicle type wildcard for tools that serve every vehicle type.
ALL_VEHICLE_TYPES = "all"


class RetailerProduct(CamelModel):
    """A product listing scraped from a retailer search page.

    ``fitment_verified`` is False for every scraped result: search pages
    do not confirm fitment, so the user must check the product page.
    """

    name: str
    brand: str
    price: float = 0.0
    currency: str = "USD"
    url: str
    image_url: str | None = None
    rating: float | None = None
    review_count: int | None = None
    in_stock: bool = True
    retailer: str
    fitment_verified: bool = False


class SearchParams(BaseModel):
    """Product query plus optional vehicle fitment."""

    query: str = Field(..., min_length=1)
    year: int | None = None
    make: str | None = None
    model: str | None = None

    @property
    def cache_key(self) -> tuple:
        return (self.query, self.year, self.make, self.model)

    @property
    def fitment(self) -> str:
        return " ".join(str(p) for p in (self.year, self.make, self.model) if p)


class RetailerTool(ABC):
    """Abstract base class for retailer search tools.

    Example implementation:
        class CycleGearTool(RetailerTool):
            name = "search_cyclegear"
            retailer_name = "Cycle Gear"
            vehicle_types = frozenset({"motorcycle"})
            description = "Search Cycle Gear for riding gear."

            async def search(self, params: SearchParams) -> list[RetailerProduct]:
                ...
    """

    name: str
    retailer_name: str
    vehicle_types: frozenset[str]
    description: str

    def supports(self, vehicle_type: str) -> bool:
        """True if this tool serves ``vehicle_type`` (or every type)."""
        return vehicle_type in self.vehicle_types or ALL_VEHICLE_TYPES in self.vehicle_types

    @abstractmethod
    async def search(self, params: SearchParams) -> list[RetailerProduct]:
        """Search the retailer.

        Args:
            params: Product query and optional year/make/model.

        Returns:
            Products found, possibly empty. Implementations may raise on
            transport errors; the registry isolates such failures.
        """
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(name={self.name!r})>"
