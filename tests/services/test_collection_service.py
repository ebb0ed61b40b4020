"""Tests for collection access checks and vehicle lookup."""

import pytest

from collectors.db.models import Collection, CollectionRole
from collectors.errors import NotFoundError, PermissionDeniedError
from collectors.services.collection_service import CollectionService


@pytest.fixture
def service(test_db) -> CollectionService:
    return CollectionService(test_db)


class TestRoles:
    def test_owner(self, service, owner, collection):
        assert service.get_role(collection.id, owner.id) == "owner"

    def test_member_role(self, service, other_user, collection, add_member):
        add_member(collection.id, other_user.id, CollectionRole.editor)
        assert service.get_role(collection.id, other_user.id) == "editor"

    def test_no_access(self, service, other_user, collection):
        assert service.get_role(collection.id, other_user.id) is None
        assert service.get_role("missing", other_user.id) is None

    def test_require_editor(self, service, owner, other_user, collection, add_member):
        service.require_editor(collection.id, owner.id)

        with pytest.raises(NotFoundError, match="Collection"):
            service.require_editor(collection.id, other_user.id)

        add_member(collection.id, other_user.id, CollectionRole.viewer)
        with pytest.raises(PermissionDeniedError, match="viewer"):
            service.require_editor(collection.id, other_user.id)


class TestVehicles:
    def test_list_sorted_by_name(self, service, owner, add_vehicle):
        add_vehicle(name="Zephyr")
        add_vehicle(name="Avenger")

        assert [v.name for v in service.list_vehicles(owner.id, "coll-1")] == [
            "Avenger",
            "Zephyr",
        ]

    def test_recently_updated_first(self, service, owner, add_vehicle):
        add_vehicle(name="Old", updated_at="2026-01-01T00:00:00+00:00")
        add_vehicle(name="New", updated_at="2026-05-01T00:00:00+00:00")

        vehicles = service.list_vehicles(owner.id, "coll-1", recently_updated_first=True)

        assert [v.name for v in vehicles] == ["New", "Old"]

    def test_other_users_collections_hidden(
        self, service, test_db, owner, other_user, add_vehicle
    ):
        test_db.add(Collection(id="coll-2", name="Theirs", owner_id=other_user.id))
        test_db.commit()
        add_vehicle(name="Mine")
        add_vehicle(name="Theirs", collection_id="coll-2")

        assert [v.name for v in service.list_vehicles(owner.id)] == ["Mine"]
        assert service.list_vehicles(owner.id, "coll-2") == []

    def test_get_vehicle(self, service, owner, other_user, add_vehicle):
        vehicle = add_vehicle(name="Mine")

        assert service.get_vehicle(vehicle.id, owner.id) is vehicle
        with pytest.raises(NotFoundError):
            service.get_vehicle(vehicle.id, other_user.id)
        with pytest.raises(NotFoundError):
            service.get_vehicle("missing", owner.id)
