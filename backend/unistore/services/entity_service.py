# Overview: Service-layer operations for generic entities: upsert, read, archive/recover, hard delete.

"""
Entity Store

Entities are generic named objects; entity_type is free data, so one table
serves every vertical. Domain-specific fields live in the dynamic attribute
store, and links between entities live in the relationship graph.

LIFECYCLE:
    active <-> archived      (archive / recover; both idempotent)
    hard delete              (only when nothing references the entity)

An entity's organization_id is fixed at creation. Every function takes the
tenant explicitly and only flushes; the caller's unit of work commits.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..errors import HasDependents, InvalidPayload, NotFound, TenantMismatch
from ..extensions import db
from ..models import DynamicField, Entity, Relationship, Transaction, TransactionLine
from ..models.entities import ENTITY_STATUSES
from ..validation import clamp_page, coerce_mapping, optional_str, require_str
from .tenant_service import log_cross_tenant_attempt, load_scoped, require_entity_in_org


MUTABLE_FIELDS = ("entity_name", "entity_code", "status", "metadata", "parent_entity_id", "smart_code")


def upsert_entity(organization_id: str, payload: dict, actor: str | None = None) -> Entity:
    """
    Create an entity, or update the mutable fields of an existing one.

    - id omitted: a new entity is created
    - id owned by this tenant: name/code/status/metadata/parent/smart_code are updated
    - id owned by another tenant: TenantMismatch (organization_id is immutable)
    - id unknown: NotFound
    """
    entity_id = payload.get("id") or payload.get("entity_id")
    if entity_id:
        entity = db.session.get(Entity, entity_id)
        if entity is None:
            raise NotFound("Entity not found", id=entity_id)
        if entity.organization_id != organization_id:
            log_cross_tenant_attempt(
                f"Upsert tried to move entity {entity_id} from org {entity.organization_id}",
                org_id=organization_id,
            )
            raise TenantMismatch(
                "Entity belongs to a different organization; organization_id cannot change",
                field="organization_id",
                entity_id=entity_id,
            )
        _apply_updates(entity, payload, organization_id)
        entity.updated_by = actor
        db.session.flush()
        return entity

    status = _status_from(payload, default="active")
    entity = Entity(
        organization_id=organization_id,
        entity_type=require_str(payload, "entity_type", max_length=64),
        entity_name=require_str(payload, "entity_name"),
        entity_code=optional_str(payload, "entity_code", max_length=128),
        smart_code=require_str(payload, "smart_code"),
        status=status,
        metadata_json=coerce_mapping("metadata", payload.get("metadata")),
        created_by=actor,
        updated_by=actor,
    )
    parent_id = payload.get("parent_entity_id")
    if parent_id:
        require_entity_in_org(parent_id, organization_id, field="parent_entity_id")
        entity.parent_entity_id = parent_id

    db.session.add(entity)
    db.session.flush()
    return entity


def _apply_updates(entity: Entity, payload: dict, organization_id: str) -> None:
    if "entity_type" in payload and payload["entity_type"] != entity.entity_type:
        raise InvalidPayload("entity_type cannot change after creation", field="entity_type")

    if "entity_name" in payload:
        entity.entity_name = require_str(payload, "entity_name")
    if "entity_code" in payload:
        entity.entity_code = optional_str(payload, "entity_code", max_length=128)
    if "status" in payload:
        entity.status = _status_from(payload, default=entity.status)
    if "metadata" in payload:
        entity.metadata_json = coerce_mapping("metadata", payload.get("metadata"))
    if payload.get("smart_code"):
        entity.smart_code = payload["smart_code"]
    if "parent_entity_id" in payload:
        parent_id = payload.get("parent_entity_id")
        if parent_id:
            require_entity_in_org(parent_id, organization_id, field="parent_entity_id")
            _require_no_cycle(entity.id, parent_id)
        entity.parent_entity_id = parent_id or None


def _require_no_cycle(entity_id: str, parent_id: str) -> None:
    """Walk up from the proposed parent; reaching entity_id means a cycle."""
    seen: set[str] = set()
    current = parent_id
    while current:
        if current == entity_id:
            raise InvalidPayload(
                "parent_entity_id would make the entity its own ancestor",
                field="parent_entity_id",
                parent_entity_id=parent_id,
            )
        if current in seen:
            break
        seen.add(current)
        current = db.session.query(Entity.parent_entity_id).filter_by(id=current).scalar()


def _status_from(payload: dict, *, default: str) -> str:
    status = payload.get("status") or default
    if status not in ENTITY_STATUSES:
        raise InvalidPayload("status must be one of: " + ", ".join(ENTITY_STATUSES), field="status")
    return status


def get_entity(organization_id: str, entity_id: str) -> Entity:
    return load_scoped(Entity, entity_id, organization_id, label="Entity")


def read_entities(organization_id: str, filters: dict | None = None) -> tuple[list[Entity], int]:
    """
    Filtered, paginated read within one tenant.

    Filters: entity_type, status (default "active", "all" for every status),
    entity_code, parent_entity_id, smart_code, smart_code_prefix, ids, search,
    limit, offset.

    Returns (rows, total) where total ignores pagination.
    """
    filters = filters or {}
    query = db.session.query(Entity).filter(Entity.organization_id == organization_id)

    status = filters.get("status") or "active"
    if status != "all":
        if status not in ENTITY_STATUSES:
            raise InvalidPayload("status must be one of: active, archived, all", field="status")
        query = query.filter(Entity.status == status)

    if filters.get("entity_type"):
        query = query.filter(Entity.entity_type == filters["entity_type"])
    if filters.get("entity_code"):
        query = query.filter(Entity.entity_code == filters["entity_code"])
    if filters.get("parent_entity_id"):
        query = query.filter(Entity.parent_entity_id == filters["parent_entity_id"])
    if filters.get("smart_code"):
        query = query.filter(Entity.smart_code == filters["smart_code"])
    if filters.get("smart_code_prefix"):
        query = query.filter(Entity.smart_code.startswith(filters["smart_code_prefix"], autoescape=True))

    ids = filters.get("ids")
    if ids is not None:
        if not isinstance(ids, list):
            raise InvalidPayload("ids must be a list", field="ids")
        query = query.filter(Entity.id.in_(ids))

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(
            func.lower(Entity.entity_name).like(pattern),
            func.lower(Entity.entity_code).like(pattern),
        ))

    total = query.count()
    limit, offset = clamp_page(filters.get("limit"), filters.get("offset"))
    rows = (
        query.order_by(Entity.created_at.asc(), Entity.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def archive_entity(organization_id: str, entity_id: str, actor: str | None = None) -> Entity:
    entity = get_entity(organization_id, entity_id)
    if entity.status != "archived":
        entity.status = "archived"
        entity.updated_by = actor
        db.session.flush()
        current_app.logger.info("Entity %s archived by %s", entity.id, actor)
    return entity


def recover_entity(organization_id: str, entity_id: str, actor: str | None = None) -> Entity:
    entity = get_entity(organization_id, entity_id)
    if entity.status != "active":
        entity.status = "active"
        entity.updated_by = actor
        db.session.flush()
        current_app.logger.info("Entity %s recovered by %s", entity.id, actor)
    return entity


def count_dependents(entity_id: str) -> dict[str, int]:
    """Rows in other stores that still reference the entity."""
    return {
        "dynamic_fields": db.session.query(DynamicField).filter_by(entity_id=entity_id).count(),
        "relationships": db.session.query(Relationship).filter(or_(
            Relationship.from_entity_id == entity_id,
            Relationship.to_entity_id == entity_id,
        )).count(),
        "transaction_lines": db.session.query(TransactionLine).filter_by(entity_id=entity_id).count(),
        "transactions": db.session.query(Transaction).filter(or_(
            Transaction.source_entity_id == entity_id,
            Transaction.target_entity_id == entity_id,
        )).count(),
        "children": db.session.query(Entity).filter_by(parent_entity_id=entity_id).count(),
    }


def delete_entity(organization_id: str, entity_id: str, actor: str | None = None) -> dict:
    """
    Hard delete. Never cascades: any dependent row blocks the delete and the
    caller removes dependents explicitly first.
    """
    entity = get_entity(organization_id, entity_id)
    dependents = {kind: n for kind, n in count_dependents(entity.id).items() if n}
    if dependents:
        raise HasDependents(
            "Entity still has dependent records",
            entity_id=entity.id,
            dependents=dependents,
        )

    db.session.delete(entity)
    db.session.flush()
    current_app.logger.info("Entity %s hard-deleted by %s", entity_id, actor)
    return {"id": entity_id, "deleted": True}
