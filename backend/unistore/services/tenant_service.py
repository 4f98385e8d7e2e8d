"""
Tenant Service: Tenant Validation and Scoping Helpers

Every store call is scoped to exactly one organization, passed explicitly by
the caller. Nothing here reads a "current" tenant from ambient state.

INVARIANTS:
1. A call without an organization id fails TenantRequired
2. A payload organization_id that differs from the declared tenant fails TenantMismatch
3. Ids referenced by a payload (parents, endpoints, line entities) must live in
   the declared tenant, otherwise TenantMismatch
4. The record a call addresses (get/archive/void/...) must live in the
   declared tenant, otherwise TenantMismatch; unknown ids are NotFound
5. Cross-tenant attempts are logged at WARNING

USAGE:
    from unistore.services.tenant_service import require_tenant, load_scoped

    org_id = require_tenant(organization_id)
    entity = load_scoped(Entity, entity_id, org_id, label="Entity")
"""

from __future__ import annotations

from typing import Iterable

from flask import current_app

from ..errors import InvalidStateTransition, NotFound, TenantMismatch, TenantRequired
from ..extensions import db
from ..models import Entity, Organization


def require_tenant(organization_id) -> str:
    """Return the declared tenant id or raise TenantRequired."""
    if organization_id is None:
        raise TenantRequired("organization_id is required on every call")
    if not isinstance(organization_id, str) or not organization_id.strip():
        raise TenantRequired("organization_id must be a non-empty string", organization_id=organization_id)
    return organization_id.strip()


def stamp_tenant(payload: dict, organization_id: str) -> dict:
    """
    Fill a missing payload organization_id from the declared tenant.

    A payload that names a different tenant is rejected, never rewritten.
    """
    stamped = dict(payload or {})
    declared = stamped.get("organization_id")
    if declared is None or declared == "":
        stamped["organization_id"] = organization_id
        return stamped
    if declared != organization_id:
        log_cross_tenant_attempt(
            f"Payload organization_id {declared} differs from declared tenant",
            org_id=organization_id,
        )
        raise TenantMismatch(
            "Payload organization_id does not match the declared tenant",
            field="organization_id",
            declared=organization_id,
            payload=declared,
        )
    return stamped


def get_organization(organization_id: str) -> Organization:
    org = db.session.get(Organization, organization_id)
    if org is None:
        raise NotFound("Organization not found", organization_id=organization_id)
    return org


def require_writable_org(organization_id: str) -> Organization:
    """Archived organizations stay readable but accept no writes."""
    org = get_organization(organization_id)
    if not org.is_active:
        raise InvalidStateTransition(
            "Organization is archived; writes are not accepted",
            organization_id=organization_id,
            status=org.status,
        )
    return org


def load_scoped(model, record_id, organization_id: str, *, label: str | None = None):
    """
    Load the record a call addresses, scoped to the tenant.

    Raises:
        NotFound if no such record exists
        TenantMismatch if it belongs to a different organization
    """
    label = label or model.__name__
    if not record_id:
        raise NotFound(f"{label} not found", id=record_id)

    record = db.session.get(model, record_id)
    if record is None:
        raise NotFound(f"{label} not found", id=record_id)

    if record.organization_id != organization_id:
        log_cross_tenant_attempt(
            f"{label} {record_id} belongs to org {record.organization_id}",
            org_id=organization_id,
        )
        raise TenantMismatch(
            f"{label} belongs to a different organization",
            id=record_id,
        )

    return record


def require_entity_in_org(entity_id, organization_id: str, *, field: str = "entity_id") -> Entity:
    """
    Validate an entity id referenced by a payload.

    Raises:
        NotFound if no such entity exists
        TenantMismatch if it belongs to a different organization
    """
    entity = db.session.get(Entity, entity_id) if entity_id else None
    if entity is None:
        raise NotFound("Referenced entity not found", field=field, entity_id=entity_id)

    if entity.organization_id != organization_id:
        log_cross_tenant_attempt(
            f"Entity {entity_id} ({field}) belongs to org {entity.organization_id}",
            org_id=organization_id,
        )
        raise TenantMismatch(
            "Referenced entity belongs to a different organization",
            field=field,
            entity_id=entity_id,
        )
    return entity


def require_entities_in_org(refs: Iterable[tuple[str, str]], organization_id: str) -> dict[str, Entity]:
    """
    Batch form of require_entity_in_org for (field, entity_id) pairs.

    Returns entities keyed by id.
    """
    refs = [(field, entity_id) for field, entity_id in refs if entity_id]
    if not refs:
        return {}

    ids = {entity_id for _, entity_id in refs}
    found = {e.id: e for e in db.session.query(Entity).filter(Entity.id.in_(ids)).all()}

    for field, entity_id in refs:
        entity = found.get(entity_id)
        if entity is None:
            raise NotFound("Referenced entity not found", field=field, entity_id=entity_id)
        if entity.organization_id != organization_id:
            log_cross_tenant_attempt(
                f"Entity {entity_id} ({field}) belongs to org {entity.organization_id}",
                org_id=organization_id,
            )
            raise TenantMismatch(
                "Referenced entity belongs to a different organization",
                field=field,
                entity_id=entity_id,
            )
    return found


def log_cross_tenant_attempt(reason: str, org_id: str | None = None) -> None:
    current_app.logger.warning("CROSS_TENANT_ACCESS_DENIED org=%s: %s", org_id, reason)
