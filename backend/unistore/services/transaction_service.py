# Overview: Service-layer operations for the transaction ledger: emit, post, add lines, void, reverse, validate, search.

"""
Transaction Ledger

STATE MACHINE:
    draft -> posted -> (voided | reversed)

- Lines may be appended only while draft or posted
- voided and reversed are terminal
- Void and reverse never mutate original lines; reverse adds a compensating
  transaction whose lines carry the opposite sign

BALANCED LEDGERS:
A transaction whose smart code carries one of the configured balanced
segments (POS, GL, JOURNAL by default) must net to zero per currency:

    signed(line) = +line_amount   when line_data.side == "DR"
                   -line_amount   when line_data.side == "CR"
                    line_amount   otherwise

Callers send PAYMENT lines in the same sign as the sale lines they settle.
On a balanced ledger the stored PAYMENT amount is the sent amount negated:

    sale      SERVICE 100, TAX 5, PAYMENT 60, PAYMENT 45  ->  100, 5, -60, -45
    refund    SERVICE -100, PAYMENT -100                  -> -100, 100
    change    SERVICE 100, PAYMENT 120, PAYMENT -20       ->  100, -120, 20

LINE NUMBERS:
Supplied line_number values are stored as sent. Unnumbered lines take the
lowest free numbers in input order. The result must be the dense run
1..n (or, when appending, the run right after the last stored number).

IDEMPOTENCY:
external_reference is the idempotency key per organization. The header stores
a SHA-256 fingerprint of the normalized header and lines, so 100, 100.0 and
"100" fingerprint the same. A replay with the same fingerprint returns the
stored header untouched; a divergent payload is a Conflict.

FISCAL PERIODS:
A header may carry fiscal_year + fiscal_period (+ posting_period_code), or
ask for assign_fiscal_period to derive them from transaction_date using
FISCAL_YEAR_START_MONTH. Posting period codes look like FY2026-P03.
"""

from __future__ import annotations

import hashlib
import itertools
import json
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, or_

from ..errors import (
    Conflict,
    DuplicateLineNumber,
    InvalidPayload,
    InvalidStateTransition,
    StoreError,
    Unbalanced,
)
from ..extensions import db
from ..models import Transaction, TransactionLine
from ..time_utils import to_utc_z, utcnow
from ..validation import (
    clamp_page,
    coerce_bool,
    coerce_datetime,
    coerce_decimal,
    coerce_int,
    coerce_mapping,
    optional_str,
    require_str,
)
from .concurrency import lock_for_update
from .smart_code_service import is_balanced_ledger
from .tenant_service import load_scoped, require_entities_in_org


ZERO = Decimal("0")
SIDES = ("DR", "CR")
PAYMENT = "PAYMENT"
EMIT_STATUSES = ("draft", "posted")
APPENDABLE_STATUSES = ("draft", "posted")


# ---------------------------------------------------------------------------
# Ledger arithmetic
# ---------------------------------------------------------------------------

def _tolerance() -> Decimal:
    return Decimal(str(current_app.config.get("BALANCE_TOLERANCE", "0.01")))


def is_balanced(smart_code: str) -> bool:
    return is_balanced_ledger(smart_code, current_app.config.get("BALANCED_SEGMENTS", ()))


def _side(line_data: dict | None) -> str | None:
    side = (line_data or {}).get("side")
    return side.upper() if isinstance(side, str) else None


def signed_amount(line_amount: Decimal, line_data: dict | None) -> Decimal:
    side = _side(line_data)
    if side == "DR":
        return line_amount
    if side == "CR":
        return -line_amount
    return line_amount


def _is_sale_side(line_type: str, line_data: dict | None) -> bool:
    return _side(line_data) is None and line_type.upper() != PAYMENT


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _line_view(line) -> tuple[str, Decimal, dict]:
    """(line_type, line_amount, line_data) for a normalized dict or a TransactionLine."""
    if isinstance(line, dict):
        return line["line_type"], _as_decimal(line["line_amount"]), line["line_data"]
    return line.line_type, _as_decimal(line.line_amount), line.line_data or {}


def balance_by_currency(lines, default_currency: str | None) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for line in lines:
        _, amount, line_data = _line_view(line)
        currency = line_data.get("currency") or default_currency or ""
        totals[currency] = totals.get(currency, ZERO) + signed_amount(amount, line_data)
    return totals


def expected_total(lines) -> Decimal | None:
    """
    Header total implied by the lines: the sum of sale-side lines, or the
    debit total for pure journal entries. None when there are no lines.
    """
    views = [_line_view(line) for line in lines]
    if not views:
        return None
    sale = [amount for line_type, amount, data in views if _is_sale_side(line_type, data)]
    if sale:
        return sum(sale, ZERO)
    return sum((amount for _, amount, data in views if _side(data) == "DR"), ZERO)


def _require_balanced(lines, default_currency: str | None, **context) -> None:
    tolerance = _tolerance()
    for currency, difference in balance_by_currency(lines, default_currency).items():
        if abs(difference) > tolerance:
            raise Unbalanced(
                "Signed line amounts do not net to zero",
                currency=currency or None,
                difference=str(difference),
                tolerance=str(tolerance),
                **context,
            )


def _checked_total(total_amount: Decimal | None, lines: list, balanced: bool) -> Decimal:
    """Header total: computed when omitted, otherwise checked against the lines."""
    tolerance = _tolerance()
    implied_total = expected_total(lines)
    if total_amount is None:
        return implied_total if implied_total is not None else ZERO

    if implied_total is None:
        if balanced and abs(total_amount) > tolerance:
            raise Unbalanced(
                "A balanced transaction without lines cannot carry a total",
                field="total_amount",
                total_amount=str(total_amount),
                line_total=str(ZERO),
            )
        return total_amount

    if abs(total_amount - implied_total) > tolerance:
        raise Unbalanced(
            "total_amount does not match the line amounts",
            field="total_amount",
            total_amount=str(total_amount),
            line_total=str(implied_total),
        )
    return total_amount


def _canonical(value) -> str:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, datetime):
        return to_utc_z(value)
    return str(value)


def request_fingerprint(header: dict, lines: list) -> str:
    """SHA-256 over the normalized header and lines."""
    canonical = json.dumps(
        {"header": header, "lines": lines},
        sort_keys=True,
        separators=(",", ":"),
        default=_canonical,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Fiscal periods
# ---------------------------------------------------------------------------

def _period_code(fiscal_year: int, fiscal_period: int) -> str:
    return f"FY{fiscal_year}-P{fiscal_period:02d}"


def fiscal_period_for(moment: datetime, start_month: int | None = None) -> tuple[int, int, str]:
    """
    (fiscal_year, fiscal_period, posting_period_code) for a date.

    The fiscal year is named after the calendar year it starts in; with an
    April start, 2026-03-15 is FY2025-P12 and 2026-04-01 is FY2026-P01.
    """
    start = start_month or current_app.config.get("FISCAL_YEAR_START_MONTH", 4)
    if moment.month >= start:
        fiscal_year, fiscal_period = moment.year, moment.month - start + 1
    else:
        fiscal_year, fiscal_period = moment.year - 1, moment.month + 13 - start
    return fiscal_year, fiscal_period, _period_code(fiscal_year, fiscal_period)


def _fiscal_request(payload: dict) -> dict:
    assign = coerce_bool("assign_fiscal_period", payload.get("assign_fiscal_period"), default=False)
    fiscal_year = coerce_int("fiscal_year", payload.get("fiscal_year"), minimum=1900, maximum=9999)
    fiscal_period = coerce_int("fiscal_period", payload.get("fiscal_period"), minimum=1, maximum=12)
    code = optional_str(payload, "posting_period_code", max_length=16)

    if assign and (fiscal_year is not None or fiscal_period is not None or code is not None):
        raise InvalidPayload(
            "assign_fiscal_period cannot be combined with explicit fiscal fields",
            field="assign_fiscal_period",
        )
    if (fiscal_year is None) != (fiscal_period is None):
        raise InvalidPayload(
            "fiscal_year and fiscal_period must be given together",
            field="fiscal_period" if fiscal_period is None else "fiscal_year",
        )
    if code is not None and fiscal_year is None:
        raise InvalidPayload(
            "posting_period_code needs fiscal_year and fiscal_period",
            field="posting_period_code",
        )
    return {
        "assign": assign,
        "fiscal_year": fiscal_year,
        "fiscal_period": fiscal_period,
        "posting_period_code": code,
    }


def _fiscal_stamp(fiscal: dict, transaction_date: datetime) -> dict:
    if fiscal["assign"]:
        fiscal_year, fiscal_period, code = fiscal_period_for(transaction_date)
    elif fiscal["fiscal_year"] is not None:
        fiscal_year, fiscal_period = fiscal["fiscal_year"], fiscal["fiscal_period"]
        code = fiscal["posting_period_code"] or _period_code(fiscal_year, fiscal_period)
    else:
        fiscal_year = fiscal_period = code = None
    return {
        "fiscal_year": fiscal_year,
        "fiscal_period": fiscal_period,
        "posting_period_code": code,
    }


# ---------------------------------------------------------------------------
# Header and line normalization
# ---------------------------------------------------------------------------

def _normalize_header(payload: dict) -> dict:
    status = payload.get("status") or "posted"
    if status not in EMIT_STATUSES:
        raise InvalidPayload("status must be draft or posted", field="status")

    return {
        "transaction_type": require_str(payload, "transaction_type", max_length=64),
        "transaction_code": optional_str(payload, "transaction_code", max_length=128),
        "transaction_date": coerce_datetime("transaction_date", payload.get("transaction_date")),
        "smart_code": require_str(payload, "smart_code"),
        "status": status,
        "total_amount": coerce_decimal("total_amount", payload.get("total_amount")),
        "transaction_currency_code": optional_str(payload, "transaction_currency_code", max_length=3),
        "base_currency_code": optional_str(payload, "base_currency_code", max_length=3),
        "exchange_rate": coerce_decimal("exchange_rate", payload.get("exchange_rate")),
        "external_reference": optional_str(payload, "external_reference"),
        "source_entity_id": payload.get("source_entity_id") or None,
        "target_entity_id": payload.get("target_entity_id") or None,
        "metadata": coerce_mapping("metadata", payload.get("metadata")),
        "fiscal": _fiscal_request(payload),
    }


def _number_lines(raw_lines: list, *, start: int = 1, taken: set[int] | None = None) -> list[tuple[int, dict]]:
    """
    Pair every line with its line_number, sorted by number.

    Supplied numbers must be positive and unique (also against ``taken``).
    Unnumbered lines fill the lowest free numbers from ``start``; the result
    must be exactly start..start+n-1.
    """
    taken = taken or set()
    supplied: dict[int, int] = {}
    seen: set[int] = set()

    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise InvalidPayload("each line must be an object", field="lines", index=index)
        number = raw.get("line_number")
        if number is None:
            continue
        if isinstance(number, bool) or not isinstance(number, int) or number < 1:
            raise InvalidPayload("line_number must be a positive integer", field="line_number", index=index)
        if number in seen or number in taken:
            raise DuplicateLineNumber(f"Line number {number} is used more than once", line_number=number)
        seen.add(number)
        supplied[index] = number

    free = (n for n in itertools.count(start) if n not in seen)
    numbered = [
        (supplied[index] if index in supplied else next(free), raw)
        for index, raw in enumerate(raw_lines)
    ]

    expected = set(range(start, start + len(raw_lines)))
    actual = {number for number, _ in numbered}
    if actual != expected:
        raise InvalidPayload(
            "line_number values must form a dense sequence",
            field="line_number",
            first=start,
            missing=sorted(expected - actual),
            unexpected=sorted(actual - expected),
        )
    return sorted(numbered, key=lambda item: item[0])


def _normalize_line(raw: dict, number: int, *, header_smart_code: str, balanced: bool) -> dict:
    line_type = require_str(raw, "line_type", max_length=32).upper()
    quantity = coerce_decimal("quantity", raw.get("quantity"), default=Decimal("1"))
    unit_price = coerce_decimal("unit_price", raw.get("unit_price"))
    line_amount = coerce_decimal("line_amount", raw.get("line_amount"))
    if line_amount is None:
        if unit_price is None:
            raise InvalidPayload("line_amount or unit_price is required", field="line_amount", line_number=number)
        line_amount = quantity * unit_price

    line_data = coerce_mapping("line_data", raw.get("line_data"))
    side = line_data.get("side")
    if side is not None:
        if not isinstance(side, str) or side.upper() not in SIDES:
            raise InvalidPayload("line_data.side must be DR or CR", field="line_data.side", line_number=number)
        line_data["side"] = side.upper()
    elif balanced and line_type == PAYMENT:
        line_amount = -line_amount

    return {
        "line_number": number,
        "line_type": line_type,
        "entity_id": raw.get("entity_id") or None,
        "description": optional_str(raw, "description"),
        "quantity": quantity,
        "unit_price": unit_price,
        "line_amount": line_amount,
        "line_data": line_data,
        "smart_code": raw.get("smart_code") or header_smart_code,
    }


def _normalize_lines(
    raw_lines,
    *,
    header_smart_code: str,
    balanced: bool,
    start: int = 1,
    taken: set[int] | None = None,
) -> list[dict]:
    if raw_lines is None:
        return []
    if not isinstance(raw_lines, list):
        raise InvalidPayload("lines must be a list", field="lines")
    return [
        _normalize_line(raw, number, header_smart_code=header_smart_code, balanced=balanced)
        for number, raw in _number_lines(raw_lines, start=start, taken=taken)
    ]


def _build_line(organization_id: str, line: dict, actor: str | None) -> TransactionLine:
    return TransactionLine(
        organization_id=organization_id,
        created_by=actor,
        **line,
    )


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def emit_transaction(organization_id: str, payload: dict, actor: str | None = None) -> tuple[Transaction, bool]:
    """
    Persist a header and its lines as one unit.

    Returns (transaction, replayed). replayed is True when external_reference
    matched an earlier emit with the same fingerprint; nothing is written then.
    """
    header = _normalize_header(payload)
    smart_code = header["smart_code"]
    balanced = is_balanced(smart_code)
    lines = _normalize_lines(payload.get("lines"), header_smart_code=smart_code, balanced=balanced)
    fingerprint = request_fingerprint(header, lines)

    external_reference = header["external_reference"]
    if external_reference:
        existing = lock_for_update(
            db.session.query(Transaction).filter_by(
                organization_id=organization_id,
                external_reference=external_reference,
            )
        ).first()
        if existing is not None:
            if existing.request_fingerprint != fingerprint:
                raise Conflict(
                    "external_reference was already used with a different payload",
                    field="external_reference",
                    external_reference=external_reference,
                    transaction_id=existing.id,
                )
            current_app.logger.info(
                "Idempotent replay of %s returned transaction %s", external_reference, existing.id
            )
            return existing, True

    refs = [
        ("source_entity_id", header["source_entity_id"]),
        ("target_entity_id", header["target_entity_id"]),
    ]
    refs += [(f"lines[{i}].entity_id", line["entity_id"]) for i, line in enumerate(lines)]
    require_entities_in_org(refs, organization_id)

    currency = header["transaction_currency_code"]
    if balanced:
        _require_balanced(lines, currency)
    total_amount = _checked_total(header["total_amount"], lines, balanced)

    now = utcnow()
    transaction_date = header["transaction_date"] or now
    txn = Transaction(
        organization_id=organization_id,
        transaction_type=header["transaction_type"],
        transaction_code=header["transaction_code"],
        transaction_date=transaction_date,
        smart_code=smart_code,
        status=header["status"],
        total_amount=total_amount,
        transaction_currency_code=currency,
        base_currency_code=header["base_currency_code"],
        exchange_rate=header["exchange_rate"],
        external_reference=external_reference,
        request_fingerprint=fingerprint,
        source_entity_id=header["source_entity_id"],
        target_entity_id=header["target_entity_id"],
        metadata_json=header["metadata"],
        posted_at=now if header["status"] == "posted" else None,
        created_by=actor,
        updated_by=actor,
        **_fiscal_stamp(header["fiscal"], transaction_date),
    )
    for line in lines:
        txn.lines.append(_build_line(organization_id, line, actor))

    db.session.add(txn)
    db.session.flush()
    return txn, False


def bulk_emit_transactions(
    organization_id: str,
    payloads: list,
    actor: str | None = None,
    *,
    default_smart_code: str | None = None,
) -> list[tuple[Transaction, bool]]:
    """
    Emit several transactions in order. The caller's unit of work commits all
    of them or none; a failure names the index of the offending item.
    """
    if not isinstance(payloads, list) or not payloads:
        raise InvalidPayload("transactions must be a non-empty list", field="transactions")

    results = []
    for index, item in enumerate(payloads):
        if not isinstance(item, dict):
            raise InvalidPayload("each transaction must be an object", field="transactions", index=index)
        item = dict(item)
        if default_smart_code and not item.get("smart_code"):
            item["smart_code"] = default_smart_code
        try:
            results.append(emit_transaction(organization_id, item, actor))
        except StoreError as exc:
            exc.details.setdefault("index", index)
            raise

    current_app.logger.info("Bulk emit of %d transactions by %s", len(results), actor)
    return results


def _locked_transaction(organization_id: str, transaction_id: str) -> Transaction:
    txn = lock_for_update(
        db.session.query(Transaction).filter_by(id=transaction_id, organization_id=organization_id)
    ).first()
    if txn is None:
        # Raises NotFound or TenantMismatch.
        load_scoped(Transaction, transaction_id, organization_id, label="Transaction")
    return txn


def _require_status(txn: Transaction, allowed: tuple[str, ...], target: str) -> None:
    if txn.status not in allowed:
        raise InvalidStateTransition(
            f"Cannot move transaction from {txn.status} to {target}",
            transaction_id=txn.id,
            from_status=txn.status,
            to_status=target,
        )


def post_transaction(organization_id: str, transaction_id: str, actor: str | None = None) -> Transaction:
    txn = _locked_transaction(organization_id, transaction_id)
    _require_status(txn, ("draft",), "posted")

    if is_balanced(txn.smart_code):
        _require_balanced(txn.lines, txn.transaction_currency_code, transaction_id=txn.id)

    txn.status = "posted"
    txn.posted_at = utcnow()
    txn.updated_by = actor
    db.session.flush()
    current_app.logger.info("Transaction %s posted by %s", txn.id, actor)
    return txn


def add_lines(organization_id: str, transaction_id: str, raw_lines: list, actor: str | None = None) -> list[TransactionLine]:
    """
    Append lines to a draft or posted transaction.

    New lines continue the dense numbering. On a balanced ledger the appended
    batch must balance on its own, so the whole transaction stays balanced.
    """
    txn = _locked_transaction(organization_id, transaction_id)
    _require_status(txn, APPENDABLE_STATUSES, "lines appended")

    if not isinstance(raw_lines, list) or not raw_lines:
        raise InvalidPayload("lines must be a non-empty list", field="lines")

    existing_numbers = {line.line_number for line in txn.lines}
    balanced = is_balanced(txn.smart_code)
    lines = _normalize_lines(
        raw_lines,
        header_smart_code=txn.smart_code,
        balanced=balanced,
        start=max(existing_numbers, default=0) + 1,
        taken=existing_numbers,
    )
    require_entities_in_org(
        [(f"lines[{i}].entity_id", line["entity_id"]) for i, line in enumerate(lines)],
        organization_id,
    )
    if balanced:
        _require_balanced(lines, txn.transaction_currency_code, transaction_id=txn.id)

    added = []
    for line in lines:
        row = _build_line(organization_id, line, actor)
        txn.lines.append(row)
        added.append(row)

    txn.total_amount = expected_total(txn.lines)
    txn.updated_by = actor
    db.session.flush()
    return added


def _require_reason_and_actor(reason, actor) -> str:
    if not isinstance(reason, str) or not reason.strip():
        raise InvalidPayload("reason is required", field="reason")
    if not actor:
        raise InvalidPayload("actor is required", field="actor")
    return reason.strip()


def void_transaction(organization_id: str, transaction_id: str, reason: str, actor: str | None) -> Transaction:
    """Flag a posted transaction as voided. Lines are left untouched."""
    reason = _require_reason_and_actor(reason, actor)
    txn = _locked_transaction(organization_id, transaction_id)
    _require_status(txn, ("posted",), "voided")

    txn.status = "voided"
    txn.voided_at = utcnow()
    txn.voided_by = actor
    txn.void_reason = reason
    txn.updated_by = actor
    db.session.flush()
    current_app.logger.info("Transaction %s voided by %s: %s", txn.id, actor, reason)
    return txn


def reverse_transaction(
    organization_id: str,
    transaction_id: str,
    reason: str,
    actor: str | None,
    transaction_date=None,
) -> Transaction:
    """
    Create a compensating posted transaction and flag the original as reversed.

    Reversal lines negate line_amount and quantity; journal lines keep their
    amount and flip side instead. The original's lines are not modified.
    """
    reason = _require_reason_and_actor(reason, actor)
    original = _locked_transaction(organization_id, transaction_id)
    _require_status(original, ("posted",), "reversed")

    now = utcnow()
    reversal_date = coerce_datetime("transaction_date", transaction_date) or now
    # A stamped original gets a reversal stamped in the reversal date's own period.
    fiscal = {"assign": original.fiscal_year is not None, "fiscal_year": None}
    reversal = Transaction(
        organization_id=organization_id,
        transaction_type=original.transaction_type,
        transaction_code=f"{original.transaction_code}-REV" if original.transaction_code else None,
        transaction_date=reversal_date,
        smart_code=original.smart_code,
        status="posted",
        transaction_currency_code=original.transaction_currency_code,
        base_currency_code=original.base_currency_code,
        exchange_rate=original.exchange_rate,
        external_reference=(
            f"{original.external_reference}:reversal" if original.external_reference else None
        ),
        source_entity_id=original.source_entity_id,
        target_entity_id=original.target_entity_id,
        metadata_json={"reversal_reason": reason},
        reversal_of_id=original.id,
        reversal_reason=reason,
        posted_at=now,
        created_by=actor,
        updated_by=actor,
        **_fiscal_stamp(fiscal, reversal_date),
    )

    for line in original.lines:
        line_data = dict(line.line_data or {})
        amount = _as_decimal(line.line_amount)
        quantity = _as_decimal(line.quantity)
        side = _side(line_data)
        if side:
            line_data["side"] = "CR" if side == "DR" else "DR"
        else:
            amount = -amount
            quantity = -quantity
        reversal.lines.append(TransactionLine(
            organization_id=organization_id,
            line_number=line.line_number,
            line_type=line.line_type,
            entity_id=line.entity_id,
            description=line.description,
            quantity=quantity,
            unit_price=line.unit_price,
            line_amount=amount,
            line_data=line_data,
            smart_code=line.smart_code,
            created_by=actor,
        ))

    implied_total = expected_total(reversal.lines)
    reversal.total_amount = implied_total if implied_total is not None else -_as_decimal(original.total_amount)

    db.session.add(reversal)
    db.session.flush()

    original.status = "reversed"
    original.reversed_by_id = reversal.id
    original.reversed_at = now
    original.reversal_reason = reason
    original.updated_by = actor
    db.session.flush()
    current_app.logger.info("Transaction %s reversed by %s as %s", original.id, actor, reversal.id)
    return reversal


def validate_transaction(organization_id: str, transaction_id: str) -> dict:
    """
    Recompute ledger invariants without mutating anything.

    Discrepancy kinds: DuplicateLineNumber, LineNumberGap, Unbalanced, TotalMismatch.
    """
    txn = get_transaction(organization_id, transaction_id)
    lines = get_lines(organization_id, transaction_id)
    discrepancies: list[dict] = []

    numbers = [line.line_number for line in lines]
    duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
    if duplicates:
        discrepancies.append({"kind": "DuplicateLineNumber", "line_numbers": duplicates})

    distinct = set(numbers)
    missing = sorted(set(range(1, max(distinct, default=0) + 1)) - distinct)
    if missing:
        discrepancies.append({"kind": "LineNumberGap", "missing": missing})

    tolerance = _tolerance()
    if is_balanced(txn.smart_code):
        for currency, difference in balance_by_currency(lines, txn.transaction_currency_code).items():
            if abs(difference) > tolerance:
                discrepancies.append({
                    "kind": "Unbalanced",
                    "currency": currency or None,
                    "difference": float(difference),
                })

    implied_total = expected_total(lines)
    if implied_total is not None and abs(_as_decimal(txn.total_amount) - implied_total) > tolerance:
        discrepancies.append({
            "kind": "TotalMismatch",
            "total_amount": float(txn.total_amount),
            "line_total": float(implied_total),
        })

    return {
        "transaction_id": txn.id,
        "ok": not discrepancies,
        "discrepancies": discrepancies,
    }


def get_transaction(organization_id: str, transaction_id: str) -> Transaction:
    return load_scoped(Transaction, transaction_id, organization_id, label="Transaction")


def get_lines(organization_id: str, transaction_id: str) -> list[TransactionLine]:
    txn = get_transaction(organization_id, transaction_id)
    return (
        db.session.query(TransactionLine)
        .filter_by(transaction_id=txn.id, organization_id=organization_id)
        .order_by(TransactionLine.line_number.asc(), TransactionLine.id.asc())
        .all()
    )


def search_transactions(organization_id: str, filters: dict | None = None) -> tuple[list[Transaction], int]:
    """
    Filters: transaction_type, status, smart_code, smart_code_prefix,
    external_reference, entity_id (source or target), date_from, date_to,
    fiscal_year, fiscal_period, posting_period_code,
    include_voided (default False), limit, offset.
    """
    filters = filters or {}
    query = db.session.query(Transaction).filter(Transaction.organization_id == organization_id)

    if filters.get("transaction_type"):
        query = query.filter(Transaction.transaction_type == filters["transaction_type"])
    if filters.get("status"):
        query = query.filter(Transaction.status == filters["status"])
    elif not coerce_bool("include_voided", filters.get("include_voided"), default=False):
        query = query.filter(Transaction.status != "voided")
    if filters.get("smart_code"):
        query = query.filter(Transaction.smart_code == filters["smart_code"])
    if filters.get("smart_code_prefix"):
        query = query.filter(Transaction.smart_code.startswith(filters["smart_code_prefix"], autoescape=True))
    if filters.get("external_reference"):
        query = query.filter(Transaction.external_reference == filters["external_reference"])
    if filters.get("entity_id"):
        query = query.filter(or_(
            Transaction.source_entity_id == filters["entity_id"],
            Transaction.target_entity_id == filters["entity_id"],
        ))

    fiscal_year = coerce_int("fiscal_year", filters.get("fiscal_year"))
    fiscal_period = coerce_int("fiscal_period", filters.get("fiscal_period"))
    if fiscal_year is not None:
        query = query.filter(Transaction.fiscal_year == fiscal_year)
    if fiscal_period is not None:
        query = query.filter(Transaction.fiscal_period == fiscal_period)
    if filters.get("posting_period_code"):
        query = query.filter(Transaction.posting_period_code == filters["posting_period_code"])

    date_from = coerce_datetime("date_from", filters.get("date_from"))
    date_to = coerce_datetime("date_to", filters.get("date_to"))
    if date_from:
        query = query.filter(Transaction.transaction_date >= date_from)
    if date_to:
        query = query.filter(Transaction.transaction_date <= date_to)

    total = query.with_entities(func.count(Transaction.id)).scalar()
    limit, offset = clamp_page(filters.get("limit"), filters.get("offset"))
    rows = (
        query.order_by(Transaction.transaction_date.desc(), Transaction.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total
