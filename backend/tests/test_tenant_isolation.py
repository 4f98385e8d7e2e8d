# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

Two organizations share one database. These tests prove that:
1. Every call needs an explicit organization id
2. A payload naming another tenant is rejected, never rewritten
3. Ids owned by another tenant cannot be referenced or addressed (TenantMismatch)
4. Reads never return another tenant's rows
5. Cross-tenant attempts are logged
"""

import logging

import pytest

from unistore.errors import NotFound, TenantMismatch, TenantRequired
from unistore.models import Entity
from unistore.services import universal_service
from unistore.services.tenant_service import require_tenant, stamp_tenant


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    @pytest.mark.parametrize("value", [None, "", "   ", 17])
    def test_require_tenant_rejects_missing(self, db_session, value):
        with pytest.raises(TenantRequired):
            require_tenant(value)

    def test_stamp_fills_missing_tenant(self, db_session, org_a):
        stamped = stamp_tenant({"entity_name": "x"}, org_a.id)
        assert stamped["organization_id"] == org_a.id

    def test_stamp_rejects_other_tenant(self, db_session, org_a, org_b):
        with pytest.raises(TenantMismatch) as exc_info:
            stamp_tenant({"organization_id": org_b.id}, org_a.id)
        assert exc_info.value.details["field"] == "organization_id"


class TestFacadeGuard:
    """The facade refuses calls without a valid tenant before touching any store."""

    def test_missing_tenant(self, db_session):
        with pytest.raises(TenantRequired):
            universal_service.execute("entity", "read", None, {})

    def test_unknown_tenant(self, db_session):
        with pytest.raises(NotFound):
            universal_service.execute("entity", "read", "no-such-org", {})

    def test_payload_tenant_mismatch_writes_nothing(self, db_session, org_a, org_b):
        with pytest.raises(TenantMismatch):
            universal_service.execute("entity", "upsert", org_a.id, {
                "organization_id": org_b.id,
                "entity_type": "service",
                "entity_name": "Haircut",
                "smart_code": "CORE.SALON.SVC.ITEM.v1",
            })
        assert db_session.query(Entity).count() == 0


class TestEntityIsolation:
    def test_organization_id_is_immutable(self, db_session, org_a, org_b, make_entity):
        entity = make_entity(org_a)

        with pytest.raises(TenantMismatch):
            universal_service.execute("entity", "upsert", org_b.id, {
                "id": entity["id"],
                "entity_name": "Stolen",
            })

        stored = db_session.get(Entity, entity["id"])
        assert stored.organization_id == org_a.id
        assert stored.entity_name == "Haircut"

    def test_get_foreign_entity_is_mismatch(self, db_session, org_a, org_b, make_entity):
        entity = make_entity(org_a)
        with pytest.raises(TenantMismatch):
            universal_service.execute("entity", "get", org_b.id, {"id": entity["id"]})

    def test_archive_foreign_entity_is_mismatch(self, db_session, org_a, org_b, make_entity):
        entity = make_entity(org_a)
        with pytest.raises(TenantMismatch):
            universal_service.execute("entity", "archive", org_b.id, {"id": entity["id"]})
        assert db_session.get(Entity, entity["id"]).status == "active"

    def test_read_returns_only_own_rows(self, db_session, org_a, org_b, make_entity):
        make_entity(org_a, "Haircut")
        make_entity(org_b, "Sofa", entity_type="product")

        result_a = universal_service.execute("entity", "read", org_a.id, {})
        result_b = universal_service.execute("entity", "read", org_b.id, {})

        assert [e["entity_name"] for e in result_a["entities"]] == ["Haircut"]
        assert [e["entity_name"] for e in result_b["entities"]] == ["Sofa"]

    def test_foreign_parent_rejected(self, db_session, org_a, org_b, make_entity):
        parent = make_entity(org_b, "Category B", entity_type="category")
        with pytest.raises(TenantMismatch):
            make_entity(org_a, "Haircut", parent_entity_id=parent["id"])


class TestReferencedIds:
    def test_dynamic_field_on_foreign_entity(self, db_session, org_a, org_b, make_entity):
        entity = make_entity(org_b)
        with pytest.raises(TenantMismatch):
            universal_service.execute("dynamic_field", "set", org_a.id, {
                "entity_id": entity["id"],
                "field_name": "price",
                "field_type": "number",
                "value": 10,
                "smart_code": "CORE.SALON.SVC.DYN.PRICE.v1",
            })

    def test_relationship_to_foreign_entity(self, db_session, org_a, org_b, make_entity):
        mine = make_entity(org_a)
        theirs = make_entity(org_b)
        with pytest.raises(TenantMismatch) as exc_info:
            universal_service.execute("relationship", "upsert", org_a.id, {
                "from_entity_id": mine["id"],
                "to_entity_id": theirs["id"],
                "relationship_type": "LINKED_TO",
                "smart_code": "CORE.PLATFORM.REL.LINK.v1",
            })
        assert exc_info.value.details["field"] == "to_entity_id"

    def test_transaction_line_with_foreign_entity(self, db_session, org_a, org_b, make_entity, pos_ticket):
        theirs = make_entity(org_b)
        payload = pos_ticket()
        payload["lines"][0]["entity_id"] = theirs["id"]

        with pytest.raises(TenantMismatch):
            universal_service.execute("transaction", "emit", org_a.id, payload, actor="cashier-1")

    def test_transactions_not_visible_across_tenants(self, db_session, org_a, org_b, emit, pos_ticket):
        txn = emit(org_a, pos_ticket())["transaction"]

        with pytest.raises(TenantMismatch):
            universal_service.execute("transaction", "get", org_b.id, {"transaction_id": txn["id"]})
        assert universal_service.execute("transaction", "search", org_b.id, {})["total"] == 0

    def test_foreign_records_fail_the_same_way_when_read_or_addressed(
        self, db_session, org_a, org_b, make_entity, emit, pos_ticket
    ):
        entity = make_entity(org_a)
        txn = emit(org_a, pos_ticket())["transaction"]

        with pytest.raises(TenantMismatch):
            universal_service.execute("dynamic_field", "get", org_b.id, {"entity_id": entity["id"]})
        with pytest.raises(TenantMismatch):
            universal_service.execute("entity", "get", org_b.id, {"id": entity["id"]})
        with pytest.raises(TenantMismatch):
            universal_service.execute("transaction", "void", org_b.id, {
                "transaction_id": txn["id"], "reason": "x",
            }, actor="u")
        with pytest.raises(NotFound):
            universal_service.execute("entity", "get", org_b.id, {"id": "no-such-entity"})

    def test_same_external_reference_in_two_tenants(self, db_session, org_a, org_b, emit, pos_ticket):
        first = emit(org_a, pos_ticket("shared-ref"))
        second = emit(org_b, pos_ticket("shared-ref"))

        assert first["transaction"]["id"] != second["transaction"]["id"]
        assert second["replayed"] is False


class TestCrossTenantLogging:
    def test_cross_tenant_access_is_logged(self, db_session, org_a, org_b, make_entity, caplog):
        entity = make_entity(org_a)

        with caplog.at_level(logging.WARNING):
            with pytest.raises(TenantMismatch):
                universal_service.execute("entity", "get", org_b.id, {"id": entity["id"]})

        assert any("CROSS_TENANT_ACCESS_DENIED" in record.getMessage() for record in caplog.records)
