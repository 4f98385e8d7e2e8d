# Overview: Service-layer operations for typed dynamic attributes (EAV) attached to entities.

"""
Dynamic Attribute Store

Each (entity_id, field_name) pair holds at most one typed value. field_type is
authoritative: a value that does not fit its declared type is rejected with
TypeMismatch, never coerced. The first write fixes a field's type; re-typing
requires deleting the field first.

Accepted values per type:
    text     str
    number   int, float, Decimal (bool is rejected)
    boolean  bool
    date     date, datetime, ISO-8601 string
    json     dict, list
"""

from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable

from ..errors import InvalidPayload, TypeMismatch
from ..extensions import db
from ..models import DynamicField
from ..models.entities import FIELD_TYPES
from ..time_utils import parse_iso_datetime
from ..validation import require_str
from .concurrency import lock_for_update
from .tenant_service import require_entities_in_org, require_entity_in_org


# Matches DynamicField.field_value_number = Numeric(20, 6)
NUMBER_PRECISION = 20
NUMBER_SCALE = 6

VALUE_COLUMNS = (
    "field_value_text",
    "field_value_number",
    "field_value_boolean",
    "field_value_date",
    "field_value_json",
)


def _require_storable(field_name: str, number: Decimal) -> None:
    """Reject numbers the value column would round or overflow."""
    exponent = number.normalize().as_tuple().exponent
    if -exponent > NUMBER_SCALE or number.adjusted() >= NUMBER_PRECISION - NUMBER_SCALE:
        raise InvalidPayload(
            f"Value for {field_name!r} does not fit a number field "
            f"({NUMBER_PRECISION - NUMBER_SCALE} integer digits, {NUMBER_SCALE} decimal places)",
            field="value",
            field_name=field_name,
            max_decimal_places=NUMBER_SCALE,
        )


def _column_values(field_name: str, field_type: str, value: Any) -> dict:
    """Map a typed value onto exactly one populated value column."""
    columns = dict.fromkeys(VALUE_COLUMNS)

    def mismatch():
        return TypeMismatch(
            f"Value for {field_name!r} is not a valid {field_type}",
            field_name=field_name,
            field_type=field_type,
            value_type=type(value).__name__,
        )

    if field_type == "text":
        if not isinstance(value, str):
            raise mismatch()
        columns["field_value_text"] = value
    elif field_type == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise mismatch()
        if isinstance(value, float) and not math.isfinite(value):
            raise mismatch()
        number = value if isinstance(value, Decimal) else Decimal(str(value))
        if not number.is_finite():
            raise mismatch()
        _require_storable(field_name, number)
        columns["field_value_number"] = number
    elif field_type == "boolean":
        if not isinstance(value, bool):
            raise mismatch()
        columns["field_value_boolean"] = value
    elif field_type == "date":
        if not isinstance(value, (str, date, datetime)):
            raise mismatch()
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            raise mismatch()
        if parsed is None:
            raise mismatch()
        columns["field_value_date"] = parsed
    elif field_type == "json":
        if not isinstance(value, (dict, list)):
            raise mismatch()
        columns["field_value_json"] = value
    return columns


def _normalize_field(entry: dict, default_smart_code: str | None) -> dict:
    field_name = require_str(entry, "field_name", max_length=128)
    field_type = require_str(entry, "field_type", max_length=16)
    if field_type not in FIELD_TYPES:
        raise InvalidPayload(
            "field_type must be one of: " + ", ".join(FIELD_TYPES),
            field="field_type",
            field_name=field_name,
        )
    if "value" not in entry or entry["value"] is None:
        raise InvalidPayload(f"value is required for {field_name!r}", field="value", field_name=field_name)

    smart_code = entry.get("smart_code") or default_smart_code
    if not smart_code:
        raise InvalidPayload(f"smart_code is required for {field_name!r}", field="smart_code", field_name=field_name)

    return {
        "field_name": field_name,
        "field_type": field_type,
        "smart_code": smart_code,
        "columns": _column_values(field_name, field_type, entry["value"]),
    }


def _write(organization_id: str, entity_id: str, normalized: dict, actor: str | None) -> DynamicField:
    row = lock_for_update(
        db.session.query(DynamicField).filter_by(entity_id=entity_id, field_name=normalized["field_name"])
    ).first()

    if row is not None and row.field_type != normalized["field_type"]:
        raise TypeMismatch(
            f"Field {normalized['field_name']!r} is declared as {row.field_type}",
            field_name=normalized["field_name"],
            field_type=row.field_type,
            requested_type=normalized["field_type"],
        )

    if row is None:
        row = DynamicField(
            organization_id=organization_id,
            entity_id=entity_id,
            field_name=normalized["field_name"],
            field_type=normalized["field_type"],
            created_by=actor,
        )
        db.session.add(row)

    for column, value in normalized["columns"].items():
        setattr(row, column, value)
    row.smart_code = normalized["smart_code"]
    row.updated_by = actor
    return row


def set_field(
    organization_id: str,
    entity_id: str,
    field_name: str,
    field_type: str,
    value: Any,
    smart_code: str,
    actor: str | None = None,
) -> DynamicField:
    """Single-field upsert; overwrites any prior value for the name."""
    require_entity_in_org(entity_id, organization_id)
    normalized = _normalize_field(
        {"field_name": field_name, "field_type": field_type, "value": value, "smart_code": smart_code},
        None,
    )
    row = _write(organization_id, entity_id, normalized, actor)
    db.session.flush()
    return row


def set_batch(
    organization_id: str,
    entity_id: str,
    fields: Iterable[dict],
    actor: str | None = None,
    *,
    default_smart_code: str | None = None,
) -> list[DynamicField]:
    """
    Apply several field writes as one unit.

    Every field is validated before the first row is touched, and the caller's
    unit of work rolls back all of them if any write fails.
    """
    if not isinstance(fields, list) or not fields:
        raise InvalidPayload("fields must be a non-empty list", field="fields")

    require_entity_in_org(entity_id, organization_id)

    normalized = []
    names: set[str] = set()
    for entry in fields:
        if not isinstance(entry, dict):
            raise InvalidPayload("each field must be an object", field="fields")
        item = _normalize_field(entry, default_smart_code)
        if item["field_name"] in names:
            raise InvalidPayload(
                f"Field {item['field_name']!r} appears more than once",
                field="fields",
                field_name=item["field_name"],
            )
        names.add(item["field_name"])
        normalized.append(item)

    rows = [_write(organization_id, entity_id, item, actor) for item in normalized]
    db.session.flush()
    return rows


def get_fields(organization_id: str, entity_id: str, field_names: list[str] | None = None) -> dict[str, dict]:
    """Field name -> {value, field_type, smart_code, updated_at}; unknown names are omitted."""
    require_entity_in_org(entity_id, organization_id)
    query = db.session.query(DynamicField).filter_by(organization_id=organization_id, entity_id=entity_id)
    if field_names:
        query = query.filter(DynamicField.field_name.in_(field_names))
    return {row.field_name: row.to_value_dict() for row in query.order_by(DynamicField.field_name).all()}


def get_fields_many(
    organization_id: str,
    entity_ids: list[str],
    field_names: list[str] | None = None,
) -> dict[str, dict[str, dict]]:
    """Bulk form of get_fields keyed by entity id."""
    if not isinstance(entity_ids, list):
        raise InvalidPayload("entity_ids must be a list", field="entity_ids")
    require_entities_in_org((("entity_ids", entity_id) for entity_id in entity_ids), organization_id)

    result: dict[str, dict[str, dict]] = {entity_id: {} for entity_id in entity_ids}
    if not entity_ids:
        return result

    query = db.session.query(DynamicField).filter(
        DynamicField.organization_id == organization_id,
        DynamicField.entity_id.in_(entity_ids),
    )
    if field_names:
        query = query.filter(DynamicField.field_name.in_(field_names))

    for row in query.order_by(DynamicField.entity_id, DynamicField.field_name).all():
        result[row.entity_id][row.field_name] = row.to_value_dict()
    return result


def delete_fields(organization_id: str, entity_id: str, field_names: list[str]) -> int:
    """Delete the named fields; returns how many rows were removed."""
    if not isinstance(field_names, list) or not field_names:
        raise InvalidPayload("field_names must be a non-empty list", field="field_names")
    require_entity_in_org(entity_id, organization_id)

    rows = (
        db.session.query(DynamicField)
        .filter(
            DynamicField.organization_id == organization_id,
            DynamicField.entity_id == entity_id,
            DynamicField.field_name.in_(field_names),
        )
        .all()
    )
    for row in rows:
        db.session.delete(row)
    db.session.flush()
    return len(rows)
