"""Vehicle field access shared by the chat and CSV code."""

from typing import Any


def vehicle_field(vehicle: Any, name: str) -> Any:
    """Read a field from an ORM row or a plain dict."""
    if isinstance(vehicle, dict):
        return vehicle.get(name)
    return getattr(vehicle, name, None)
