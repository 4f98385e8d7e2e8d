from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from unistore.time_utils import to_utc_z
from .tenancy import new_id


TRANSACTION_STATUSES = ("draft", "posted", "voided", "reversed")


def _money(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(value)


class Transaction(db.Model):
    """
    Business event header (sale, POS ticket, journal entry, ...).

    STATE MACHINE:
        draft -> posted -> (voided | reversed)

    - Lines may be appended only in draft/posted
    - voided/reversed are terminal; original lines are never mutated
    - external_reference is the idempotency key per organization
    """
    __tablename__ = "universal_transactions"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "external_reference", name="uq_universal_transactions_org_extref"),
        db.Index("ix_universal_transactions_org_type_status", "organization_id", "transaction_type", "status"),
        db.Index("ix_universal_transactions_org_date", "organization_id", "transaction_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    organization_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(64), nullable=False)
    transaction_code = db.Column(db.String(128), nullable=True, index=True)
    transaction_date = db.Column(db.DateTime, nullable=False)
    smart_code = db.Column(db.String(255), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="posted")

    total_amount = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    transaction_currency_code = db.Column(db.String(3), nullable=True)
    base_currency_code = db.Column(db.String(3), nullable=True)
    exchange_rate = db.Column(db.Numeric(18, 8), nullable=True)

    # Fiscal stamp (explicit or derived from transaction_date)
    fiscal_year = db.Column(db.Integer, nullable=True)
    fiscal_period = db.Column(db.Integer, nullable=True)
    posting_period_code = db.Column(db.String(16), nullable=True, index=True)

    external_reference = db.Column(db.String(255), nullable=True)
    request_fingerprint = db.Column(db.String(64), nullable=True)

    source_entity_id = db.Column(db.String(36), db.ForeignKey("core_entities.id"), nullable=True, index=True)
    target_entity_id = db.Column(db.String(36), db.ForeignKey("core_entities.id"), nullable=True, index=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=False, default=dict)

    # Void audit trail
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.String(64), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    # Reversal links (both directions)
    reversal_of_id = db.Column(db.String(36), db.ForeignKey("universal_transactions.id"), nullable=True, index=True)
    reversed_by_id = db.Column(db.String(36), nullable=True)
    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reversal_reason = db.Column(db.String(255), nullable=True)

    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "transaction_type": self.transaction_type,
            "transaction_code": self.transaction_code,
            "transaction_date": to_utc_z(self.transaction_date),
            "smart_code": self.smart_code,
            "status": self.status,
            "total_amount": _money(self.total_amount),
            "transaction_currency_code": self.transaction_currency_code,
            "base_currency_code": self.base_currency_code,
            "exchange_rate": _money(self.exchange_rate),
            "fiscal_year": self.fiscal_year,
            "fiscal_period": self.fiscal_period,
            "posting_period_code": self.posting_period_code,
            "external_reference": self.external_reference,
            "source_entity_id": self.source_entity_id,
            "target_entity_id": self.target_entity_id,
            "metadata": self.metadata_json or {},
            "voided_at": to_utc_z(self.voided_at),
            "voided_by": self.voided_by,
            "void_reason": self.void_reason,
            "reversal_of_id": self.reversal_of_id,
            "reversed_by_id": self.reversed_by_id,
            "reversed_at": to_utc_z(self.reversed_at),
            "reversal_reason": self.reversal_reason,
            "posted_at": to_utc_z(self.posted_at),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TransactionLine(db.Model):
    """Itemized component of a transaction; line_number is dense and 1-based per header."""
    __tablename__ = "universal_transaction_lines"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "line_number", name="uq_universal_transaction_lines_txn_number"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    organization_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    transaction_id = db.Column(db.String(36), db.ForeignKey("universal_transactions.id"), nullable=False, index=True)

    line_number = db.Column(db.Integer, nullable=False)
    line_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.String(36), db.ForeignKey("core_entities.id"), nullable=True, index=True)
    description = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Numeric(18, 4), nullable=False, default=1)
    unit_price = db.Column(db.Numeric(18, 4), nullable=True)
    line_amount = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    line_data = db.Column(db.JSON, nullable=False, default=dict)
    smart_code = db.Column(db.String(255), nullable=False)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    transaction = db.relationship(
        "Transaction",
        backref=db.backref("lines", lazy=True, order_by="TransactionLine.line_number"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "transaction_id": self.transaction_id,
            "line_number": self.line_number,
            "line_type": self.line_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "quantity": _money(self.quantity),
            "unit_price": _money(self.unit_price),
            "line_amount": _money(self.line_amount),
            "line_data": self.line_data or {},
            "smart_code": self.smart_code,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
