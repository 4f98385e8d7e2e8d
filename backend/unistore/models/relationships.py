from __future__ import annotations

from ..extensions import db
from unistore.time_utils import to_utc_z
from .tenancy import new_id


class Relationship(db.Model):
    """
    Typed, directed edge between two entities of the same organization.

    Identity is (organization_id, from_entity_id, to_entity_id, relationship_type):
    upserting the same key updates the row in place. A->B and B->A are
    distinct edges even with the same type.

    Edges are deactivated (is_active=False) rather than deleted so the
    history of who-was-linked-to-what stays auditable.
    """
    __tablename__ = "core_relationships"
    __table_args__ = (
        db.UniqueConstraint(
            "organization_id", "from_entity_id", "to_entity_id", "relationship_type",
            name="uq_core_relationships_org_from_to_type",
        ),
        db.Index("ix_core_relationships_org_from_type", "organization_id", "from_entity_id", "relationship_type"),
        db.Index("ix_core_relationships_org_to_type", "organization_id", "to_entity_id", "relationship_type"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    organization_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)

    from_entity_id = db.Column(db.String(36), db.ForeignKey("core_entities.id"), nullable=False)
    to_entity_id = db.Column(db.String(36), db.ForeignKey("core_entities.id"), nullable=False)
    relationship_type = db.Column(db.String(64), nullable=False)
    relationship_direction = db.Column(db.String(16), nullable=False, default="forward")
    relationship_strength = db.Column(db.Float, nullable=False, default=1.0)
    relationship_data = db.Column(db.JSON, nullable=False, default=dict)
    smart_code = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    effective_date = db.Column(db.DateTime, nullable=True)
    expiration_date = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    from_entity = db.relationship("Entity", foreign_keys=[from_entity_id])
    to_entity = db.relationship("Entity", foreign_keys=[to_entity_id])

    def __repr__(self) -> str:
        return (
            f"<Relationship {self.relationship_type} "
            f"{self.from_entity_id} -> {self.to_entity_id} active={self.is_active}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "from_entity_id": self.from_entity_id,
            "to_entity_id": self.to_entity_id,
            "relationship_type": self.relationship_type,
            "relationship_direction": self.relationship_direction,
            "relationship_strength": self.relationship_strength,
            "relationship_data": self.relationship_data or {},
            "smart_code": self.smart_code,
            "is_active": self.is_active,
            "effective_date": to_utc_z(self.effective_date),
            "expiration_date": to_utc_z(self.expiration_date),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
