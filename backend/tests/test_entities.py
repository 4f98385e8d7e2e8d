# Overview: Pytest coverage for the entity store: upsert, read filters, archive/recover, hard delete.

import pytest

from unistore.errors import HasDependents, InvalidPayload, NotFound, TypeMismatch
from unistore.models import DynamicField, Entity, Relationship
from unistore.services import entity_service, universal_service


SVC = "CORE.SALON.SVC.ITEM.v1"


class TestEntityUpsert:
    def test_round_trip(self, db_session, org_a):
        payload = {
            "entity_type": "service",
            "entity_name": "Haircut",
            "entity_code": "SVC-001",
            "smart_code": SVC,
            "metadata": {"duration_minutes": 45},
        }
        created = universal_service.execute("entity", "upsert", org_a.id, payload, actor="u1")["entity"]

        result = universal_service.execute("entity", "read", org_a.id, {"ids": [created["id"]]})
        assert result["total"] == 1
        read_back = result["entities"][0]
        for key, value in payload.items():
            assert read_back[key] == value
        assert read_back["organization_id"] == org_a.id
        assert read_back["status"] == "active"
        assert read_back["created_by"] == "u1"

    def test_update_in_place(self, db_session, org_a, make_entity):
        entity = make_entity(org_a)
        updated = universal_service.execute("entity", "upsert", org_a.id, {
            "id": entity["id"],
            "entity_name": "Haircut & Style",
            "metadata": {"duration_minutes": 60},
        }, actor="u2")["entity"]

        assert updated["id"] == entity["id"]
        assert updated["entity_name"] == "Haircut & Style"
        assert updated["metadata"] == {"duration_minutes": 60}
        assert updated["smart_code"] == SVC
        assert updated["updated_by"] == "u2"
        assert db_session.query(Entity).count() == 1

    def test_unknown_id_is_not_found(self, db_session, org_a):
        with pytest.raises(NotFound):
            universal_service.execute("entity", "upsert", org_a.id, {"id": "missing", "entity_name": "x"})

    def test_entity_type_is_fixed(self, db_session, org_a, make_entity):
        entity = make_entity(org_a)
        with pytest.raises(InvalidPayload):
            universal_service.execute("entity", "upsert", org_a.id, {"id": entity["id"], "entity_type": "product"})

    def test_missing_name(self, db_session, org_a):
        with pytest.raises(InvalidPayload) as exc_info:
            universal_service.execute("entity", "upsert", org_a.id, {"entity_type": "service", "smart_code": SVC})
        assert exc_info.value.details["field"] == "entity_name"

    def test_parent_cycle_rejected(self, db_session, org_a, make_entity):
        root = make_entity(org_a, "Hair", entity_type="category")
        child = make_entity(org_a, "Cuts", entity_type="category", parent_entity_id=root["id"])

        with pytest.raises(InvalidPayload):
            universal_service.execute("entity", "upsert", org_a.id, {"id": root["id"], "parent_entity_id": child["id"]})
        with pytest.raises(InvalidPayload):
            universal_service.execute("entity", "upsert", org_a.id, {"id": root["id"], "parent_entity_id": root["id"]})


class TestCompositeUpsert:
    def test_entity_fields_and_edges_in_one_call(self, db_session, org_a, make_entity):
        category = make_entity(org_a, "Hair", entity_type="category")

        result = universal_service.execute("entity", "upsert", org_a.id, {
            "entity_type": "service",
            "entity_name": "Haircut",
            "smart_code": SVC,
            "dynamic_fields": [
                {"field_name": "price", "field_type": "number", "value": 65},
                {"field_name": "bookable", "field_type": "boolean", "value": True,
                 "smart_code": "CORE.SALON.SVC.DYN.BOOKABLE.v1"},
            ],
            "relationships": [
                {"to_entity_id": category["id"], "relationship_type": "BELONGS_TO"},
            ],
        })

        assert result["dynamic_fields"]["price"]["value"] == 65
        assert result["dynamic_fields"]["price"]["smart_code"] == SVC
        assert result["dynamic_fields"]["bookable"]["value"] is True
        assert result["relationships"][0]["from_entity_id"] == result["entity"]["id"]
        assert result["relationships"][0]["to_entity_id"] == category["id"]

    def test_failure_rolls_back_everything(self, db_session, org_a, make_entity):
        category = make_entity(org_a, "Hair", entity_type="category")

        with pytest.raises(TypeMismatch):
            universal_service.execute("entity", "upsert", org_a.id, {
                "entity_type": "service",
                "entity_name": "Haircut",
                "smart_code": SVC,
                "relationships": [{"to_entity_id": category["id"], "relationship_type": "BELONGS_TO"}],
                "dynamic_fields": [{"field_name": "price", "field_type": "number", "value": "free"}],
            })

        assert db_session.query(Entity).count() == 1
        assert db_session.query(DynamicField).count() == 0
        assert db_session.query(Relationship).count() == 0


class TestEntityRead:
    def test_filters(self, db_session, org_a, make_entity):
        hair = make_entity(org_a, "Hair", entity_type="category", entity_code="CAT-HAIR",
                           smart_code="CORE.SALON.CAT.GROUP.v1")
        make_entity(org_a, "Haircut", entity_code="SVC-1", parent_entity_id=hair["id"])
        make_entity(org_a, "Colour", entity_code="SVC-2", parent_entity_id=hair["id"])
        make_entity(org_a, "Jane Doe", entity_type="customer", smart_code="CORE.SALON.CRM.CUSTOMER.v1")

        def names(filters):
            result = universal_service.execute("entity", "read", org_a.id, filters)
            return sorted(e["entity_name"] for e in result["entities"])

        assert names({"entity_type": "service"}) == ["Colour", "Haircut"]
        assert names({"entity_code": "SVC-2"}) == ["Colour"]
        assert names({"parent_entity_id": hair["id"]}) == ["Colour", "Haircut"]
        assert names({"smart_code": "CORE.SALON.CRM.CUSTOMER.v1"}) == ["Jane Doe"]
        assert names({"smart_code_prefix": "CORE.SALON.CAT"}) == ["Hair"]
        assert names({"search": "hair"}) == ["Hair", "Haircut"]
        assert names({"search": "svc-"}) == ["Colour", "Haircut"]

    def test_pagination(self, db_session, org_a, make_entity):
        for i in range(5):
            make_entity(org_a, f"Service {i}")

        result = universal_service.execute("entity", "read", org_a.id, {"limit": 2, "offset": 1})
        assert result["total"] == 5
        assert len(result["entities"]) == 2
        assert result["limit"] == 2
        assert result["offset"] == 1

    def test_page_size_is_clamped(self, db_session, org_a, app):
        result = universal_service.execute("entity", "read", org_a.id, {"limit": 10_000})
        assert result["limit"] == app.config["MAX_PAGE_SIZE"]


class TestArchiveRecover:
    def test_archived_hidden_by_default(self, db_session, org_a, make_entity):
        entity = make_entity(org_a)
        universal_service.execute("entity", "archive", org_a.id, {"id": entity["id"]})

        assert universal_service.execute("entity", "read", org_a.id, {})["total"] == 0
        archived = universal_service.execute("entity", "read", org_a.id, {"status": "archived"})
        assert archived["entities"][0]["id"] == entity["id"]
        assert universal_service.execute("entity", "read", org_a.id, {"status": "all"})["total"] == 1

    def test_recover(self, db_session, org_a, make_entity):
        entity = make_entity(org_a)
        universal_service.execute("entity", "archive", org_a.id, {"id": entity["id"]})
        recovered = universal_service.execute("entity", "recover", org_a.id, {"id": entity["id"]})

        assert recovered["entity"]["status"] == "active"
        assert universal_service.execute("entity", "read", org_a.id, {})["total"] == 1

    def test_archive_twice_is_safe(self, db_session, org_a, make_entity):
        entity = make_entity(org_a)
        universal_service.execute("entity", "archive", org_a.id, {"id": entity["id"]})
        again = universal_service.execute("entity", "archive", org_a.id, {"id": entity["id"]})
        assert again["entity"]["status"] == "archived"


class TestHardDelete:
    def test_blocked_by_dynamic_fields_then_allowed(self, db_session, org_a, make_entity):
        entity = make_entity(org_a)
        universal_service.execute("dynamic_field", "set", org_a.id, {
            "entity_id": entity["id"],
            "field_name": "price",
            "field_type": "number",
            "value": 65,
            "smart_code": "CORE.SALON.SVC.DYN.PRICE.v1",
        })
        universal_service.execute("entity", "archive", org_a.id, {"id": entity["id"]})

        with pytest.raises(HasDependents) as exc_info:
            universal_service.execute("entity", "delete", org_a.id, {"id": entity["id"]})
        assert exc_info.value.details["dependents"] == {"dynamic_fields": 1}

        deleted = universal_service.execute("dynamic_field", "delete", org_a.id, {
            "entity_id": entity["id"],
            "field_names": ["price"],
        })
        assert deleted["deleted"] == 1

        result = universal_service.execute("entity", "delete", org_a.id, {"id": entity["id"]})
        assert result == {"id": entity["id"], "deleted": True}
        assert db_session.get(Entity, entity["id"]) is None

    def test_inactive_relationship_still_blocks(self, db_session, org_a, make_entity):
        a = make_entity(org_a, "Stylist", entity_type="staff")
        b = make_entity(org_a, "Haircut")
        edge = universal_service.execute("relationship", "upsert", org_a.id, {
            "from_entity_id": a["id"],
            "to_entity_id": b["id"],
            "relationship_type": "CAN_PERFORM",
            "smart_code": "CORE.SALON.REL.CAN_PERFORM.v1",
        })["relationship"]
        universal_service.execute("relationship", "deactivate", org_a.id, {"id": edge["id"]})

        with pytest.raises(HasDependents) as exc_info:
            universal_service.execute("entity", "delete", org_a.id, {"id": b["id"]})
        assert exc_info.value.details["dependents"] == {"relationships": 1}

    def test_children_block(self, db_session, org_a, make_entity):
        parent = make_entity(org_a, "Hair", entity_type="category")
        make_entity(org_a, "Haircut", parent_entity_id=parent["id"])

        counts = entity_service.count_dependents(parent["id"])
        assert counts["children"] == 1
        with pytest.raises(HasDependents):
            universal_service.execute("entity", "delete", org_a.id, {"id": parent["id"]})

    def test_transaction_references_block(self, db_session, org_a, make_entity, emit, pos_ticket):
        customer = make_entity(org_a, "Jane", entity_type="customer")
        emit(org_a, pos_ticket(source_entity_id=customer["id"]))

        with pytest.raises(HasDependents) as exc_info:
            universal_service.execute("entity", "delete", org_a.id, {"id": customer["id"]})
        assert exc_info.value.details["dependents"] == {"transactions": 1}
