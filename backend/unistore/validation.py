from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import current_app

from .errors import InvalidPayload
from .time_utils import parse_iso_datetime


def require_str(payload: dict, key: str, *, max_length: int = 255) -> str:
    """Return a stripped, non-empty string field or raise InvalidPayload."""
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidPayload(f"{key} is required", field=key)
    return coerce_str(key, value, max_length=max_length)


def optional_str(payload: dict, key: str, *, max_length: int = 255) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return coerce_str(key, value, max_length=max_length)


def coerce_str(key: str, value: Any, *, max_length: int = 255) -> str:
    if isinstance(value, (dict, list, bool)):
        raise InvalidPayload(f"{key} must be a string", field=key)
    text = str(value).strip()
    if len(text) > max_length:
        raise InvalidPayload(f"{key} exceeds {max_length} characters", field=key, max_length=max_length)
    return text


def coerce_decimal(key: str, value: Any, *, default: Decimal | None = None) -> Decimal | None:
    """
    Numbers arrive as int, float, Decimal or numeric strings.
    Booleans are rejected even though bool is an int subclass.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidPayload(f"{key} must be a number", field=key)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            raise InvalidPayload(f"{key} must be a number", field=key)
    raise InvalidPayload(f"{key} must be a number", field=key)


def coerce_int(key: str, value: Any, *, minimum: int | None = None, maximum: int | None = None) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidPayload(f"{key} must be an integer", field=key)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise InvalidPayload(f"{key} must be an integer", field=key)
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        raise InvalidPayload(f"{key} is out of range", field=key, minimum=minimum, maximum=maximum)
    return value


def coerce_datetime(key: str, value: Any) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise InvalidPayload(f"{key} must be an ISO-8601 datetime", field=key)


def coerce_mapping(key: str, value: Any) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidPayload(f"{key} must be an object", field=key)
    return dict(value)


def coerce_bool(key: str, value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "1", "yes"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "0", "no"}:
        return False
    raise InvalidPayload(f"{key} must be a boolean", field=key)


def clamp_page(limit: Any = None, offset: Any = None) -> tuple[int, int]:
    """Apply configured page bounds; out-of-range values are clamped, not rejected."""
    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 100)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 500)
    try:
        limit = int(limit) if limit is not None else default_size
        offset = int(offset) if offset is not None else 0
    except (TypeError, ValueError):
        raise InvalidPayload("limit and offset must be integers")
    limit = max(1, min(limit, max_size))
    offset = max(0, offset)
    return limit, offset
