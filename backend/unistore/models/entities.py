from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from ..extensions import db
from unistore.time_utils import to_utc_z
from .tenancy import new_id


ENTITY_STATUSES = ("active", "archived")
FIELD_TYPES = ("text", "number", "boolean", "date", "json")


class Entity(db.Model):
    """
    Generic named object of an arbitrary domain type.

    entity_type is free data ("service", "customer", "gl_account", ...), not a
    schema. Domain variance lives in entity_type + smart_code; extra fields
    live in core_dynamic_data.

    LIFECYCLE:
    - created/updated by upsert
    - "delete" is status -> archived (recoverable)
    - hard delete only once nothing references the row
    - organization_id never changes after creation
    """
    __tablename__ = "core_entities"
    __table_args__ = (
        db.Index("ix_core_entities_org_type_status", "organization_id", "entity_type", "status"),
        db.Index("ix_core_entities_org_code", "organization_id", "entity_code"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    organization_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)

    entity_type = db.Column(db.String(64), nullable=False)
    entity_name = db.Column(db.String(255), nullable=False)
    entity_code = db.Column(db.String(128), nullable=True)
    smart_code = db.Column(db.String(255), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    parent_entity_id = db.Column(db.String(36), db.ForeignKey("core_entities.id"), nullable=True, index=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=False, default=dict)

    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    parent = db.relationship("Entity", remote_side=[id], backref=db.backref("children", lazy=True))

    def __repr__(self) -> str:
        return f"<Entity id={self.id} type={self.entity_type!r} name={self.entity_name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "entity_type": self.entity_type,
            "entity_name": self.entity_name,
            "entity_code": self.entity_code,
            "smart_code": self.smart_code,
            "status": self.status,
            "parent_entity_id": self.parent_entity_id,
            "metadata": self.metadata_json or {},
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DynamicField(db.Model):
    """
    One typed value attached to one entity (EAV row).

    Exactly one field_value_* column is populated, the one matching field_type.
    At most one row per (entity_id, field_name); writing the same name again
    overwrites the value in place.
    """
    __tablename__ = "core_dynamic_data"
    __table_args__ = (
        db.UniqueConstraint("entity_id", "field_name", name="uq_core_dynamic_data_entity_field"),
        db.Index("ix_core_dynamic_data_org_field", "organization_id", "field_name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    organization_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    entity_id = db.Column(db.String(36), db.ForeignKey("core_entities.id"), nullable=False, index=True)

    field_name = db.Column(db.String(128), nullable=False)
    field_type = db.Column(db.String(16), nullable=False)

    field_value_text = db.Column(db.Text, nullable=True)
    field_value_number = db.Column(db.Numeric(20, 6), nullable=True)
    field_value_boolean = db.Column(db.Boolean, nullable=True)
    field_value_date = db.Column(db.DateTime, nullable=True)
    field_value_json = db.Column(db.JSON, nullable=True)

    smart_code = db.Column(db.String(255), nullable=False)

    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    entity = db.relationship("Entity", backref=db.backref("dynamic_fields", lazy=True))

    @property
    def value(self):
        """The one populated column, resolved to a plain Python value."""
        if self.field_type == "number":
            number = self.field_value_number
            if isinstance(number, Decimal):
                return int(number) if number == number.to_integral_value() else float(number)
            return number
        if self.field_type == "boolean":
            return self.field_value_boolean
        if self.field_type == "date":
            return self.field_value_date
        if self.field_type == "json":
            return self.field_value_json
        return self.field_value_text

    def to_value_dict(self) -> dict:
        value = self.value
        if isinstance(value, datetime):
            value = to_utc_z(value)
        return {
            "value": value,
            "field_type": self.field_type,
            "smart_code": self.smart_code,
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "entity_id": self.entity_id,
            "field_name": self.field_name,
            **self.to_value_dict(),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
        }
