# Overview: Universal access facade; the single call surface over every record kind.

"""
Universal Access Facade

    execute(kind, verb, organization_id, payload, actor=None) -> dict

Every caller (vertical features, the HTTP transport, the CLI) goes through
this one function. It adds no business logic; it only fixes the order in
which the stores are reached:

    1. tenant guard         organization_id present, payload tenant matches,
                            organization exists (and accepts writes)
    2. smart code check     every smart code anywhere in the payload
    3. target store         inside one unit of work (commit or full rollback)

Kinds and verbs:

    organization    upsert, get, archive
    entity          upsert, read, get, archive, recover, delete
    dynamic_field   set, set-batch, get, get-many, delete
    relationship    upsert, bulk-upsert, query, deactivate, reactivate
    transaction     emit, bulk-emit, post, add-lines, void, reverse, validate,
                    get, get-lines, search

Entity upsert is composite: optional ``dynamic_fields`` and
``relationships`` lists are written with the entity as one atomic unit.
Bulk verbs write every item or none.
"""

from __future__ import annotations

from typing import Callable

from ..errors import InvalidPayload
from ..validation import clamp_page, coerce_bool
from . import (
    dynamic_field_service,
    entity_service,
    organization_service,
    relationship_service,
    tenant_service,
    transaction_service,
)
from .concurrency import unit_of_work
from .smart_code_service import validate_many


NESTED_CODE_KEYS = ("lines", "fields", "dynamic_fields", "relationships")

# Nested items of these operations without a smart code take the code of the
# stored record they are attached to (the entity, the transaction header).
INHERITS_STORED_CODE = {("entity", "upsert"), ("transaction", "add-lines")}


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

def _organization_upsert(org_id, payload, actor):
    return {"organization": organization_service.upsert_organization(org_id, payload, actor).to_dict()}


def _organization_get(org_id, payload, actor):
    return {"organization": organization_service.get_organization(org_id).to_dict()}


def _organization_archive(org_id, payload, actor):
    return {"organization": organization_service.archive_organization(org_id, actor).to_dict()}


# ---------------------------------------------------------------------------
# Entity
# ---------------------------------------------------------------------------

def _entity_upsert(org_id, payload, actor):
    entity = entity_service.upsert_entity(org_id, payload, actor)

    fields = payload.get("dynamic_fields")
    rows = []
    if fields:
        rows = dynamic_field_service.set_batch(
            org_id, entity.id, fields, actor, default_smart_code=entity.smart_code
        )

    relationships = payload.get("relationships") or []
    if not isinstance(relationships, list):
        raise InvalidPayload("relationships must be a list", field="relationships")
    edges = []
    for item in relationships:
        if not isinstance(item, dict):
            raise InvalidPayload("each relationship must be an object", field="relationships")
        edge_payload = dict(item, from_entity_id=entity.id)
        edge_payload.setdefault("smart_code", entity.smart_code)
        edges.append(relationship_service.upsert_relationship(org_id, edge_payload, actor))

    return {
        "entity": entity.to_dict(),
        "dynamic_fields": {row.field_name: row.to_value_dict() for row in rows},
        "relationships": [edge.to_dict() for edge in edges],
    }


def _entity_read(org_id, payload, actor):
    rows, total = entity_service.read_entities(org_id, payload)
    limit, offset = clamp_page(payload.get("limit"), payload.get("offset"))
    return {
        "entities": [row.to_dict() for row in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


def _entity_get(org_id, payload, actor):
    return {"entity": entity_service.get_entity(org_id, _entity_id(payload)).to_dict()}


def _entity_archive(org_id, payload, actor):
    return {"entity": entity_service.archive_entity(org_id, _entity_id(payload), actor).to_dict()}


def _entity_recover(org_id, payload, actor):
    return {"entity": entity_service.recover_entity(org_id, _entity_id(payload), actor).to_dict()}


def _entity_delete(org_id, payload, actor):
    return entity_service.delete_entity(org_id, _entity_id(payload), actor)


def _entity_id(payload: dict) -> str:
    entity_id = payload.get("id") or payload.get("entity_id")
    if not entity_id:
        raise InvalidPayload("id is required", field="id")
    return entity_id


# ---------------------------------------------------------------------------
# Dynamic attributes
# ---------------------------------------------------------------------------

def _dynamic_set(org_id, payload, actor):
    row = dynamic_field_service.set_field(
        org_id,
        payload.get("entity_id"),
        payload.get("field_name"),
        payload.get("field_type"),
        payload.get("value"),
        payload.get("smart_code"),
        actor,
    )
    return {"entity_id": row.entity_id, "fields": {row.field_name: row.to_value_dict()}}


def _dynamic_set_batch(org_id, payload, actor):
    rows = dynamic_field_service.set_batch(
        org_id,
        payload.get("entity_id"),
        payload.get("fields"),
        actor,
        default_smart_code=payload.get("smart_code"),
    )
    return {
        "entity_id": payload.get("entity_id"),
        "fields": {row.field_name: row.to_value_dict() for row in rows},
    }


def _dynamic_get(org_id, payload, actor):
    fields = dynamic_field_service.get_fields(org_id, payload.get("entity_id"), payload.get("field_names"))
    return {"entity_id": payload.get("entity_id"), "fields": fields}


def _dynamic_get_many(org_id, payload, actor):
    return {
        "entities": dynamic_field_service.get_fields_many(
            org_id, payload.get("entity_ids"), payload.get("field_names")
        )
    }


def _dynamic_delete(org_id, payload, actor):
    deleted = dynamic_field_service.delete_fields(org_id, payload.get("entity_id"), payload.get("field_names"))
    return {"entity_id": payload.get("entity_id"), "deleted": deleted}


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------

def _relationship_upsert(org_id, payload, actor):
    return {"relationship": relationship_service.upsert_relationship(org_id, payload, actor).to_dict()}


def _relationship_bulk_upsert(org_id, payload, actor):
    edges = relationship_service.bulk_upsert_relationships(
        org_id, payload.get("relationships"), actor, default_smart_code=payload.get("smart_code")
    )
    return {"relationships": [edge.to_dict() for edge in edges], "count": len(edges)}


def _relationship_query(org_id, payload, actor):
    edges = relationship_service.query_relationships(org_id, payload)
    return {"relationships": [edge.to_dict() for edge in edges], "count": len(edges)}


def _relationship_deactivate(org_id, payload, actor):
    edge = relationship_service.deactivate_relationship(org_id, payload.get("id"), actor)
    return {"relationship": edge.to_dict()}


def _relationship_reactivate(org_id, payload, actor):
    edge = relationship_service.reactivate_relationship(org_id, payload.get("id"), actor)
    return {"relationship": edge.to_dict()}


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

def _transaction_result(txn, **extra) -> dict:
    result = {
        "transaction": txn.to_dict(),
        "lines": [line.to_dict() for line in txn.lines],
    }
    result.update(extra)
    return result


def _transaction_id(payload: dict) -> str:
    transaction_id = payload.get("id") or payload.get("transaction_id")
    if not transaction_id:
        raise InvalidPayload("transaction_id is required", field="transaction_id")
    return transaction_id


def _transaction_emit(org_id, payload, actor):
    txn, replayed = transaction_service.emit_transaction(org_id, payload, actor)
    return _transaction_result(txn, replayed=replayed)


def _transaction_bulk_emit(org_id, payload, actor):
    results = transaction_service.bulk_emit_transactions(
        org_id, payload.get("transactions"), actor, default_smart_code=payload.get("smart_code")
    )
    return {
        "transactions": [_transaction_result(txn, replayed=replayed) for txn, replayed in results],
        "count": len(results),
        "replayed": sum(1 for _, replayed in results if replayed),
    }


def _transaction_post(org_id, payload, actor):
    return _transaction_result(transaction_service.post_transaction(org_id, _transaction_id(payload), actor))


def _transaction_add_lines(org_id, payload, actor):
    added = transaction_service.add_lines(org_id, _transaction_id(payload), payload.get("lines"), actor)
    txn = transaction_service.get_transaction(org_id, _transaction_id(payload))
    return {"transaction": txn.to_dict(), "lines": [line.to_dict() for line in added]}


def _transaction_void(org_id, payload, actor):
    txn = transaction_service.void_transaction(org_id, _transaction_id(payload), payload.get("reason"), actor)
    return {"transaction": txn.to_dict()}


def _transaction_reverse(org_id, payload, actor):
    reversal = transaction_service.reverse_transaction(
        org_id,
        _transaction_id(payload),
        payload.get("reason"),
        actor,
        transaction_date=payload.get("transaction_date"),
    )
    original = transaction_service.get_transaction(org_id, reversal.reversal_of_id)
    return _transaction_result(reversal, original=original.to_dict())


def _transaction_validate(org_id, payload, actor):
    return transaction_service.validate_transaction(org_id, _transaction_id(payload))


def _transaction_get(org_id, payload, actor):
    txn = transaction_service.get_transaction(org_id, _transaction_id(payload))
    if coerce_bool("include_lines", payload.get("include_lines"), default=False):
        return _transaction_result(txn)
    return {"transaction": txn.to_dict()}


def _transaction_get_lines(org_id, payload, actor):
    lines = transaction_service.get_lines(org_id, _transaction_id(payload))
    return {"transaction_id": _transaction_id(payload), "lines": [line.to_dict() for line in lines]}


def _transaction_search(org_id, payload, actor):
    rows, total = transaction_service.search_transactions(org_id, payload)
    limit, offset = clamp_page(payload.get("limit"), payload.get("offset"))
    return {
        "transactions": [row.to_dict() for row in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

# (handler, writes, requires_smart_code)
OPERATIONS: dict[tuple[str, str], tuple[Callable, bool, Callable[[dict], bool]]] = {
    ("organization", "upsert"): (_organization_upsert, True, lambda p: False),
    ("organization", "get"): (_organization_get, False, lambda p: False),
    ("organization", "archive"): (_organization_archive, True, lambda p: False),

    ("entity", "upsert"): (_entity_upsert, True, lambda p: not (p.get("id") or p.get("entity_id"))),
    ("entity", "read"): (_entity_read, False, lambda p: False),
    ("entity", "get"): (_entity_get, False, lambda p: False),
    ("entity", "archive"): (_entity_archive, True, lambda p: False),
    ("entity", "recover"): (_entity_recover, True, lambda p: False),
    ("entity", "delete"): (_entity_delete, True, lambda p: False),

    ("dynamic_field", "set"): (_dynamic_set, True, lambda p: True),
    ("dynamic_field", "set-batch"): (_dynamic_set_batch, True, lambda p: False),
    ("dynamic_field", "get"): (_dynamic_get, False, lambda p: False),
    ("dynamic_field", "get-many"): (_dynamic_get_many, False, lambda p: False),
    ("dynamic_field", "delete"): (_dynamic_delete, True, lambda p: False),

    ("relationship", "upsert"): (_relationship_upsert, True, lambda p: True),
    ("relationship", "bulk-upsert"): (_relationship_bulk_upsert, True, lambda p: False),
    ("relationship", "query"): (_relationship_query, False, lambda p: False),
    ("relationship", "deactivate"): (_relationship_deactivate, True, lambda p: False),
    ("relationship", "reactivate"): (_relationship_reactivate, True, lambda p: False),

    ("transaction", "emit"): (_transaction_emit, True, lambda p: True),
    ("transaction", "bulk-emit"): (_transaction_bulk_emit, True, lambda p: False),
    ("transaction", "post"): (_transaction_post, True, lambda p: False),
    ("transaction", "add-lines"): (_transaction_add_lines, True, lambda p: False),
    ("transaction", "void"): (_transaction_void, True, lambda p: False),
    ("transaction", "reverse"): (_transaction_reverse, True, lambda p: False),
    ("transaction", "validate"): (_transaction_validate, False, lambda p: False),
    ("transaction", "get"): (_transaction_get, False, lambda p: False),
    ("transaction", "get-lines"): (_transaction_get_lines, False, lambda p: False),
    ("transaction", "search"): (_transaction_search, False, lambda p: False),
}


def _operation_key(kind: str, verb: str) -> tuple[str, str]:
    return (kind or "").strip().lower(), (verb or "").strip().lower().replace("_", "-")


def resolve(kind: str, verb: str) -> tuple[Callable, bool, Callable[[dict], bool]]:
    operation = OPERATIONS.get(_operation_key(kind, verb))
    if operation is None:
        raise InvalidPayload(f"Unknown operation {kind}/{verb}", kind=kind, verb=verb)
    return operation


def collect_smart_codes(
    payload: dict,
    *,
    required: bool,
    inherits: bool = False,
    prefix: str = "",
) -> list[tuple[str, object]]:
    """
    (location, code) pairs for every smart code in the payload.

    Nested items (lines, fields, dynamic_fields, relationships) without their
    own code inherit the top-level one. When neither exists the missing code
    is reported at the item's location, unless ``inherits`` says the items
    take their code from the stored record they attach to. Each item of a
    bulk ``transactions`` list is checked as a payload of its own.
    """
    codes: list[tuple[str, object]] = []
    top = payload.get("smart_code")
    if top is not None or required:
        codes.append((f"{prefix}smart_code", top))

    for key in NESTED_CODE_KEYS:
        items = payload.get(key)
        if not isinstance(items, list):
            continue
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            location = f"{prefix}{key}[{index}].smart_code"
            if item.get("smart_code") is not None:
                codes.append((location, item["smart_code"]))
            elif top is None and not inherits:
                codes.append((location, None))

    transactions = payload.get("transactions")
    if isinstance(transactions, list):
        for index, item in enumerate(transactions):
            if not isinstance(item, dict):
                continue
            if item.get("smart_code") is None and top is not None:
                item = dict(item, smart_code=top)
            codes += collect_smart_codes(item, required=True, prefix=f"{prefix}transactions[{index}].")
    return codes


def _stamp_nested(payload: dict, org_id: str) -> dict:
    """Apply the tenant guard to every nested item that may name a tenant."""
    for key in NESTED_CODE_KEYS:
        items = payload.get(key)
        if isinstance(items, list):
            payload[key] = [
                tenant_service.stamp_tenant(item, org_id) if isinstance(item, dict) else item
                for item in items
            ]
    transactions = payload.get("transactions")
    if isinstance(transactions, list):
        payload["transactions"] = [
            _stamp_nested(tenant_service.stamp_tenant(item, org_id), org_id) if isinstance(item, dict) else item
            for item in transactions
        ]
    return payload


def execute(kind: str, verb: str, organization_id, payload: dict | None = None, actor: str | None = None) -> dict:
    """Run one store operation: tenant guard, smart code check, then the store."""
    key = _operation_key(kind, verb)
    handler, writes, requires_smart_code = resolve(*key)
    if payload is not None and not isinstance(payload, dict):
        raise InvalidPayload("payload must be an object")

    org_id = tenant_service.require_tenant(organization_id)
    payload = _stamp_nested(tenant_service.stamp_tenant(payload or {}, org_id), org_id)

    with unit_of_work():
        if key[0] != "organization":
            if writes:
                tenant_service.require_writable_org(org_id)
            else:
                tenant_service.get_organization(org_id)

        validate_many(collect_smart_codes(
            payload,
            required=requires_smart_code(payload),
            inherits=key in INHERITS_STORED_CODE,
        ))

        return handler(org_id, payload, actor)
