from __future__ import annotations

import uuid

from ..extensions import db
from unistore.time_utils import to_utc_z


ORG_STATUSES = ("active", "archived")


def new_id() -> str:
    return str(uuid.uuid4())


class Organization(db.Model):
    """
    Multi-tenant root: every record in the store belongs to exactly one Organization.

    DESIGN:
    - organization_id on every other table is the tenant boundary
    - Organizations are archived, never merged or hard-deleted in normal operation
    - Updates use optimistic versioning (version_id_col); a stale write raises
      StaleDataError which the unit of work reports as Conflict
    """
    __tablename__ = "organizations"
    __table_args__ = (
        db.Index("ix_organizations_status", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=True, unique=True, index=True)
    organization_type = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")
    settings = db.Column(db.JSON, nullable=False, default=dict)
    smart_code = db.Column(db.String(255), nullable=False)

    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.id,
            "name": self.name,
            "code": self.code,
            "organization_type": self.organization_type,
            "status": self.status,
            "settings": self.settings or {},
            "smart_code": self.smart_code,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version": self.version,
        }
