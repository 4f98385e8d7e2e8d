# Overview: Service-layer operations for the relationship graph: upsert, query, deactivate/reactivate.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import InvalidPayload, StoreError
from ..extensions import db
from ..models import Relationship
from ..time_utils import utcnow
from ..validation import coerce_bool, coerce_datetime, coerce_decimal, coerce_mapping, require_str
from .concurrency import lock_for_update
from .tenant_service import load_scoped, require_entities_in_org


DIRECTIONS = ("forward", "reverse", "bidirectional")


def upsert_relationship(organization_id: str, payload: dict, actor: str | None = None) -> Relationship:
    """
    Idempotent on (organization_id, from_entity_id, to_entity_id, relationship_type).

    The first call creates the edge; later calls replace relationship_data and
    update strength, direction, dates and smart_code in place. An upsert
    reactivates a deactivated edge unless is_active=False is passed.
    """
    from_id = require_str(payload, "from_entity_id", max_length=36)
    to_id = require_str(payload, "to_entity_id", max_length=36)
    relationship_type = require_str(payload, "relationship_type", max_length=64)

    require_entities_in_org(
        [("from_entity_id", from_id), ("to_entity_id", to_id)],
        organization_id,
    )

    direction = payload.get("relationship_direction") or "forward"
    if direction not in DIRECTIONS:
        raise InvalidPayload(
            "relationship_direction must be one of: " + ", ".join(DIRECTIONS),
            field="relationship_direction",
        )
    strength = coerce_decimal("relationship_strength", payload.get("relationship_strength"))
    effective_date = coerce_datetime("effective_date", payload.get("effective_date"))
    expiration_date = coerce_datetime("expiration_date", payload.get("expiration_date"))
    if effective_date and expiration_date and expiration_date < effective_date:
        raise InvalidPayload("expiration_date precedes effective_date", field="expiration_date")

    edge = lock_for_update(
        db.session.query(Relationship).filter_by(
            organization_id=organization_id,
            from_entity_id=from_id,
            to_entity_id=to_id,
            relationship_type=relationship_type,
        )
    ).first()

    if edge is None:
        edge = Relationship(
            organization_id=organization_id,
            from_entity_id=from_id,
            to_entity_id=to_id,
            relationship_type=relationship_type,
            created_by=actor,
        )
        db.session.add(edge)

    edge.relationship_direction = direction
    edge.relationship_strength = float(strength) if strength is not None else 1.0
    edge.relationship_data = coerce_mapping("relationship_data", payload.get("relationship_data"))
    edge.smart_code = require_str(payload, "smart_code")
    edge.is_active = coerce_bool("is_active", payload.get("is_active"), default=True)
    edge.effective_date = effective_date
    edge.expiration_date = expiration_date
    edge.updated_by = actor

    db.session.flush()
    return edge


def bulk_upsert_relationships(
    organization_id: str,
    items: list,
    actor: str | None = None,
    *,
    default_smart_code: str | None = None,
) -> list[Relationship]:
    """
    Upsert several edges in order. The caller's unit of work commits all of
    them or none; a failure names the index of the offending item.
    """
    if not isinstance(items, list) or not items:
        raise InvalidPayload("relationships must be a non-empty list", field="relationships")

    edges = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidPayload("each relationship must be an object", field="relationships", index=index)
        item = dict(item)
        if default_smart_code and not item.get("smart_code"):
            item["smart_code"] = default_smart_code
        try:
            edges.append(upsert_relationship(organization_id, item, actor))
        except StoreError as exc:
            exc.details.setdefault("index", index)
            raise

    current_app.logger.info("Bulk upsert of %d relationships by %s", len(edges), actor)
    return edges


def query_relationships(organization_id: str, filters: dict | None = None) -> list[Relationship]:
    """
    Edges touching an endpoint. At least one of from_entity_id, to_entity_id
    or entity_id (either end) is required.

    Every matching edge is returned; when historic data holds several edges
    between the same endpoints the caller decides which one wins.
    """
    filters = filters or {}
    from_id = filters.get("from_entity_id")
    to_id = filters.get("to_entity_id")
    either_id = filters.get("entity_id")
    if not (from_id or to_id or either_id):
        raise InvalidPayload(
            "from_entity_id, to_entity_id or entity_id is required",
            field="from_entity_id",
        )

    query = db.session.query(Relationship).filter(Relationship.organization_id == organization_id)
    if from_id:
        query = query.filter(Relationship.from_entity_id == from_id)
    if to_id:
        query = query.filter(Relationship.to_entity_id == to_id)
    if either_id:
        query = query.filter(or_(
            Relationship.from_entity_id == either_id,
            Relationship.to_entity_id == either_id,
        ))

    types = filters.get("relationship_types")
    if types is None and filters.get("relationship_type"):
        types = [filters["relationship_type"]]
    if types:
        if not isinstance(types, list):
            raise InvalidPayload("relationship_types must be a list", field="relationship_types")
        query = query.filter(Relationship.relationship_type.in_(types))

    if coerce_bool("active_only", filters.get("active_only"), default=True):
        now = utcnow()
        query = query.filter(
            Relationship.is_active.is_(True),
            or_(Relationship.expiration_date.is_(None), Relationship.expiration_date > now),
        )

    return query.order_by(Relationship.relationship_type, Relationship.created_at, Relationship.id).all()


def deactivate_relationship(organization_id: str, relationship_id: str, actor: str | None = None) -> Relationship:
    """Soft removal; the edge stays for audit continuity."""
    return _set_active(organization_id, relationship_id, False, actor)


def reactivate_relationship(organization_id: str, relationship_id: str, actor: str | None = None) -> Relationship:
    return _set_active(organization_id, relationship_id, True, actor)


def _set_active(organization_id: str, relationship_id: str, active: bool, actor: str | None) -> Relationship:
    edge = load_scoped(Relationship, relationship_id, organization_id, label="Relationship")
    require_entities_in_org(
        [("from_entity_id", edge.from_entity_id), ("to_entity_id", edge.to_entity_id)],
        organization_id,
    )
    if edge.is_active != active:
        edge.is_active = active
        edge.updated_by = actor
        db.session.flush()
        current_app.logger.info(
            "Relationship %s %s by %s", edge.id, "reactivated" if active else "deactivated", actor
        )
    return edge
