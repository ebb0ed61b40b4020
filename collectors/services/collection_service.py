"""Collection membership checks and vehicle lookup.

A user sees a collection's vehicles when they own it or are a member.
Vehicles in collections the user cannot access are simply not returned.
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from collectors.db.models import (
    Collection,
    CollectionMember,
    CollectionRole,
    Vehicle,
)
from collectors.errors import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

EDITOR_ROLES = frozenset({CollectionRole.owner.value, CollectionRole.editor.value})


class CollectionService:
    """Access-checked reads over collections and their vehicles.

    Args:
        db: SQLAlchemy session (sync).
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def get_role(self, collection_id: str, user_id: str) -> str | None:
        """The user's role in the collection, or None without access."""
        collection = self._db.get(Collection, collection_id)
        if collection is None:
            return None
        if collection.owner_id == user_id:
            return CollectionRole.owner.value
        return self._db.scalars(
            select(CollectionMember.role).where(
                CollectionMember.collection_id == collection_id,
                CollectionMember.user_id == user_id,
            )
        ).first()

    def _accessible_collection_ids(self, user_id: str):
        member_of = select(CollectionMember.collection_id).where(
            CollectionMember.user_id == user_id
        )
        return select(Collection.id).where(
            or_(Collection.owner_id == user_id, Collection.id.in_(member_of))
        )

    def list_vehicles(
        self,
        user_id: str,
        collection_id: str | None = None,
        recently_updated_first: bool = False,
    ) -> list[Vehicle]:
        """Vehicles the user can see, optionally limited to one collection.

        Ordered by name, or by last update when ``recently_updated_first``.
        """
        stmt = select(Vehicle).where(
            Vehicle.collection_id.in_(self._accessible_collection_ids(user_id))
        )
        if collection_id:
            stmt = stmt.where(Vehicle.collection_id == collection_id)
        if recently_updated_first:
            stmt = stmt.order_by(Vehicle.updated_at.desc())
        else:
            stmt = stmt.order_by(Vehicle.name)
        return list(self._db.scalars(stmt).all())

    def get_vehicle(self, vehicle_id: str, user_id: str) -> Vehicle:
        """Vehicle by id if the user can see it.

        Raises:
            NotFoundError: Missing, or in a collection the user cannot access.
        """
        vehicle = self._db.get(Vehicle, vehicle_id)
        if vehicle is None or self.get_role(vehicle.collection_id, user_id) is None:
            raise NotFoundError("Vehicle", vehicle_id)
        return vehicle

    def require_editor(self, collection_id: str, user_id: str) -> None:
        """Raises unless the user may modify vehicles in the collection.

        Raises:
            NotFoundError: No access at all.
            PermissionDeniedError: Viewer role.
        """
        role = self.get_role(collection_id, user_id)
        if role is None:
            raise NotFoundError("Collection", collection_id)
        if role not in EDITOR_ROLES:
            raise PermissionDeniedError(
                f"Role '{role}' cannot modify collection '{collection_id}'"
            )
