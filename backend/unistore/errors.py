# Overview: Structured error taxonomy shared by every store and the transport layer.

"""
Store errors carry a stable ``kind`` string so callers can render targeted
messages without parsing text. ``details`` names the field or invariant that
failed, which keeps errors actionable without re-querying.

Validation failures (tenant, smart code, payload shape, value types) are
raised before any write is flushed. The unit of work in
``services.concurrency`` rolls back everything else.
"""

from __future__ import annotations

from typing import Any


class StoreError(Exception):
    """Base class for every failure the record store reports to callers."""

    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details or None,
        }


# ---------------------------------------------------------------------------
# Tenant guard
# ---------------------------------------------------------------------------

class TenantRequired(StoreError):
    """No organization id was passed with the call."""
    status_code = 400


class TenantMismatch(StoreError):
    """The payload or a referenced record belongs to another organization."""
    status_code = 403


# ---------------------------------------------------------------------------
# Classification and payload shape
# ---------------------------------------------------------------------------

class InvalidSmartCode(StoreError):
    status_code = 400

    def __init__(self, smart_code: Any, reason: str, **details: Any):
        super().__init__(f"Invalid smart code {smart_code!r}: {reason}", smart_code=smart_code, **details)


class InvalidPayload(StoreError):
    """A required field is missing or malformed."""
    status_code = 400


class TypeMismatch(StoreError):
    """A dynamic attribute value disagrees with its declared field_type."""
    status_code = 422


# ---------------------------------------------------------------------------
# Record lifecycle
# ---------------------------------------------------------------------------

class NotFound(StoreError):
    status_code = 404


class HasDependents(StoreError):
    """Hard delete blocked; the caller must remove dependents first."""
    status_code = 409


class Conflict(StoreError):
    """Idempotency key reused with a divergent payload, or a stale version."""
    status_code = 409


class InvalidStateTransition(StoreError):
    status_code = 409


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class Unbalanced(StoreError):
    status_code = 422


class DuplicateLineNumber(StoreError):
    status_code = 422


# ---------------------------------------------------------------------------
# Backing store
# ---------------------------------------------------------------------------

class BackendUnavailable(StoreError):
    """Transient backing-store failure. Safe to retry with the same idempotency key."""
    status_code = 503
