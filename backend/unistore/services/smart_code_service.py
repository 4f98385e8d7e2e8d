# Overview: Parses and validates smart codes, the versioned classification on every record.

"""
Smart code grammar:

    PREFIX.SEGMENT.SEGMENT[.SEGMENT...].vN

- at least four dot-separated parts (prefix, two or more segments, version)
- PREFIX: upper-case letter followed by 1-14 upper-case letters/digits
- SEGMENT: 1-30 upper-case letters, digits or underscores
- version suffix: "v" or "V" followed by digits

Examples: CORE.SALON.SVC.ITEM.v1, CORE.FIN.GL.JOURNAL.V2

Validation is pure; callers must validate before flushing any write.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable

from ..errors import InvalidSmartCode


MAX_LENGTH = 255
MAX_PARTS = 12

PREFIX_RE = re.compile(r"^[A-Z][A-Z0-9]{1,14}$")
SEGMENT_RE = re.compile(r"^[A-Z0-9_]{1,30}$")
VERSION_RE = re.compile(r"^[vV]([0-9]+)$")


@dataclass(frozen=True)
class SmartCode:
    raw: str
    prefix: str
    segments: tuple[str, ...]
    version: int

    @property
    def family(self) -> str:
        """The code without its version suffix, e.g. CORE.SALON.SVC.ITEM."""
        return ".".join((self.prefix,) + self.segments)

    def has_segment(self, segment: str) -> bool:
        return segment.upper() in self.segments

    def with_version(self, version: int) -> str:
        return f"{self.family}.v{version}"


def parse_smart_code(smart_code: Any) -> SmartCode:
    """Parse a smart code or raise InvalidSmartCode naming the malformed part."""
    if not isinstance(smart_code, str) or not smart_code.strip():
        raise InvalidSmartCode(smart_code, "must be a non-empty string")
    if smart_code != smart_code.strip():
        raise InvalidSmartCode(smart_code, "must not contain surrounding whitespace")
    if len(smart_code) > MAX_LENGTH:
        raise InvalidSmartCode(smart_code, f"longer than {MAX_LENGTH} characters")

    parts = smart_code.split(".")
    if len(parts) < 4:
        raise InvalidSmartCode(smart_code, "needs at least four dot-separated parts", parts=len(parts))
    if len(parts) > MAX_PARTS:
        raise InvalidSmartCode(smart_code, f"has more than {MAX_PARTS} parts", parts=len(parts))

    version_match = VERSION_RE.match(parts[-1])
    if not version_match:
        raise InvalidSmartCode(smart_code, "must end with a version suffix like v1", part=parts[-1])

    if not PREFIX_RE.match(parts[0]):
        raise InvalidSmartCode(smart_code, "prefix is malformed", part=parts[0], position=0)

    for position, segment in enumerate(parts[1:-1], start=1):
        if not SEGMENT_RE.match(segment):
            raise InvalidSmartCode(smart_code, "segment is malformed", part=segment, position=position)

    return SmartCode(
        raw=smart_code,
        prefix=parts[0],
        segments=tuple(parts[1:-1]),
        version=int(version_match.group(1)),
    )


def validate_smart_code(smart_code: Any) -> str:
    """Validate and return the code unchanged."""
    parse_smart_code(smart_code)
    return smart_code


def is_valid_smart_code(smart_code: Any) -> bool:
    try:
        parse_smart_code(smart_code)
    except InvalidSmartCode:
        return False
    return True


def validate_many(smart_codes: Iterable[tuple[str, Any]]) -> None:
    """Validate (location, code) pairs; the error names where the bad code sat."""
    for location, code in smart_codes:
        try:
            parse_smart_code(code)
        except InvalidSmartCode as exc:
            exc.details["location"] = location
            raise


def is_balanced_ledger(smart_code: str, balanced_segments: Iterable[str]) -> bool:
    """True when any classification segment marks the code as a balanced ledger."""
    parsed = parse_smart_code(smart_code)
    return any(parsed.has_segment(segment) for segment in balanced_segments)
