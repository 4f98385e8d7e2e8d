# Overview: Service-layer operations for organizations (tenants): upsert, get, archive.

from __future__ import annotations

from flask import current_app

from ..errors import Conflict, InvalidPayload
from ..extensions import db
from ..models import Organization
from ..models.tenancy import ORG_STATUSES
from ..validation import coerce_mapping, optional_str, require_str
from .concurrency import lock_for_update
from .smart_code_service import validate_smart_code
from .tenant_service import get_organization


def upsert_organization(organization_id: str, payload: dict, actor: str | None = None) -> Organization:
    """
    Create the organization with the given id, or update it in place.

    Updates are optimistic: when payload carries ``version`` it must match the
    stored version, and a concurrent writer that commits first makes this
    flush fail with StaleDataError (reported as Conflict by the unit of work).
    """
    org = lock_for_update(db.session.query(Organization).filter_by(id=organization_id)).first()
    code = optional_str(payload, "code", max_length=64)
    if code is not None:
        _require_unique_code(code, organization_id)

    if org is None:
        validate_smart_code(payload.get("smart_code"))
        org = Organization(
            id=organization_id,
            name=require_str(payload, "name"),
            code=code,
            organization_type=optional_str(payload, "organization_type", max_length=64),
            status="active",
            settings=coerce_mapping("settings", payload.get("settings")),
            smart_code=require_str(payload, "smart_code"),
            created_by=actor,
            updated_by=actor,
        )
        db.session.add(org)
        db.session.flush()
        current_app.logger.info("Organization %s created by %s", org.id, actor)
        return org

    expected_version = payload.get("version")
    if expected_version is not None and expected_version != org.version:
        raise Conflict(
            "Organization was modified since it was read",
            organization_id=org.id,
            expected_version=expected_version,
            current_version=org.version,
        )

    if "name" in payload:
        org.name = require_str(payload, "name")
    if "code" in payload:
        org.code = code
    if "organization_type" in payload:
        org.organization_type = optional_str(payload, "organization_type", max_length=64)
    if "settings" in payload:
        org.settings = coerce_mapping("settings", payload.get("settings"))
    if payload.get("smart_code"):
        org.smart_code = payload["smart_code"]
    if "status" in payload:
        status = require_str(payload, "status", max_length=16)
        if status not in ORG_STATUSES:
            raise InvalidPayload("status must be one of: " + ", ".join(ORG_STATUSES), field="status")
        org.status = status
    org.updated_by = actor

    db.session.flush()
    return org


def archive_organization(organization_id: str, actor: str | None = None) -> Organization:
    """Archive a tenant. Archiving an archived tenant is a no-op."""
    org = get_organization(organization_id)
    if org.status == "archived":
        return org

    org.status = "archived"
    org.updated_by = actor
    db.session.flush()
    current_app.logger.info("Organization %s archived by %s", org.id, actor)
    return org


def list_organizations(status: str | None = None) -> list[Organization]:
    query = db.session.query(Organization)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Organization.name.asc()).all()


def _require_unique_code(code: str, organization_id: str) -> None:
    clash = (
        db.session.query(Organization.id)
        .filter(Organization.code == code, Organization.id != organization_id)
        .first()
    )
    if clash:
        raise Conflict("Organization code already in use", field="code", code=code)
