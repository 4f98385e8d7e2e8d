# Overview: Pytest coverage for the universal facade dispatch and its JSON transport.

import pytest

from unistore.errors import InvalidPayload, InvalidSmartCode, TenantMismatch
from unistore.models import Entity, Transaction
from unistore.services import universal_service


SVC = "CORE.SALON.SVC.ITEM.v1"


class TestDispatch:
    def test_unknown_operation(self, db_session, org_a):
        with pytest.raises(InvalidPayload):
            universal_service.execute("invoice", "upsert", org_a.id, {})
        with pytest.raises(InvalidPayload):
            universal_service.execute("entity", "explode", org_a.id, {})

    def test_verbs_accept_underscores(self, db_session, org_a, emit, pos_ticket):
        txn = emit(org_a, pos_ticket())["transaction"]
        result = universal_service.execute("transaction", "get_lines", org_a.id, {"transaction_id": txn["id"]})
        assert len(result["lines"]) == 4

    def test_smart_code_checked_before_store(self, db_session, org_a):
        with pytest.raises(InvalidSmartCode):
            universal_service.execute("entity", "upsert", org_a.id, {
                "entity_type": "service",
                "entity_name": "Haircut",
                "smart_code": "service.haircut",
            })
        assert db_session.query(Entity).count() == 0

    def test_create_requires_smart_code(self, db_session, org_a):
        with pytest.raises(InvalidSmartCode):
            universal_service.execute("entity", "upsert", org_a.id, {"entity_type": "service", "entity_name": "x"})

    def test_nested_line_codes_are_checked(self, db_session, org_a, emit, pos_ticket):
        payload = pos_ticket()
        payload["lines"][1]["smart_code"] = "CORE.SALON.POS.TAX"
        with pytest.raises(InvalidSmartCode) as exc_info:
            emit(org_a, payload)
        assert exc_info.value.details["location"] == "lines[1].smart_code"

    def test_payload_must_be_object(self, db_session, org_a):
        with pytest.raises(InvalidPayload):
            universal_service.execute("entity", "read", org_a.id, ["not", "a", "dict"])

    def test_appended_lines_inherit_the_stored_code(self, db_session, org_a, emit, pos_ticket):
        txn = emit(org_a, pos_ticket(status="draft"))["transaction"]
        result = universal_service.execute("transaction", "add-lines", org_a.id, {
            "transaction_id": txn["id"],
            "lines": [
                {"line_type": "PRODUCT", "line_amount": 20},
                {"line_type": "PAYMENT", "line_amount": 20},
            ],
        })
        assert {line["smart_code"] for line in result["lines"]} == {txn["smart_code"]}

    def test_field_batch_without_any_code_names_the_field(self, db_session, org_a, make_entity):
        entity = make_entity(org_a)
        with pytest.raises(InvalidSmartCode) as exc_info:
            universal_service.execute("dynamic_field", "set-batch", org_a.id, {
                "entity_id": entity["id"],
                "fields": [{"field_name": "price", "field_type": "number", "value": 65}],
            })
        assert exc_info.value.details["location"] == "fields[0].smart_code"

    def test_nested_items_cannot_name_another_tenant(self, db_session, org_a, org_b, pos_ticket):
        payload = pos_ticket()
        payload["lines"][0]["organization_id"] = org_b.id
        with pytest.raises(TenantMismatch):
            universal_service.execute("transaction", "emit", org_a.id, payload)
        assert db_session.query(Transaction).count() == 0


class TestHttpTransport:
    def test_upsert_and_read(self, client, db_session, org_a):
        response = client.post("/api/v1/entity/upsert", json={
            "organization_id": org_a.id,
            "actor": "web-user",
            "entity_type": "service",
            "entity_name": "Haircut",
            "smart_code": SVC,
        })
        assert response.status_code == 200
        entity = response.get_json()["entity"]
        assert entity["created_by"] == "web-user"

        response = client.post("/api/v1/entity/read", json={"organization_id": org_a.id})
        assert response.status_code == 200
        assert response.get_json()["entities"][0]["id"] == entity["id"]

    def test_missing_tenant(self, client, db_session):
        response = client.post("/api/v1/entity/read", json={})
        assert response.status_code == 400
        assert response.get_json()["error"] == "TenantRequired"

    def test_invalid_smart_code(self, client, db_session, org_a):
        response = client.post("/api/v1/entity/upsert", json={
            "organization_id": org_a.id,
            "entity_type": "service",
            "entity_name": "Haircut",
            "smart_code": "CORE.SALON.SVC.ITEM",
        })
        body = response.get_json()
        assert response.status_code == 400
        assert body["error"] == "InvalidSmartCode"
        assert body["details"]["smart_code"] == "CORE.SALON.SVC.ITEM"

    def test_unbalanced_ticket(self, client, db_session, org_a, pos_ticket):
        payload = pos_ticket()
        payload["lines"][2]["line_amount"] = 10
        payload["organization_id"] = org_a.id

        response = client.post("/api/v1/transaction/emit", json=payload)
        assert response.status_code == 422
        assert response.get_json()["error"] == "Unbalanced"

    def test_not_found(self, client, db_session, org_a):
        response = client.post("/api/v1/transaction/get", json={
            "organization_id": org_a.id,
            "transaction_id": "missing",
        })
        assert response.status_code == 404
        assert response.get_json()["error"] == "NotFound"

    def test_non_object_body(self, client, db_session):
        response = client.post("/api/v1/entity/read", json=[1, 2])
        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidPayload"

    def test_health(self, client, db_session, org_a):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"
        assert response.get_json()["details"]["organizations"] == 1
