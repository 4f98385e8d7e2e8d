# Overview: Pytest coverage for smart code parsing and validation.

import pytest

from unistore.errors import InvalidSmartCode
from unistore.services.smart_code_service import (
    is_balanced_ledger,
    is_valid_smart_code,
    parse_smart_code,
    validate_many,
    validate_smart_code,
)


class TestAcceptedCodes:
    """Codes matching PREFIX.SEGMENT.SEGMENT[...].vN are accepted."""

    @pytest.mark.parametrize("code", [
        "CORE.SALON.SVC.ITEM.v1",
        "CORE.SALON.SVC.ITEM.V1",
        "CORE.FIN.GL.JOURNAL.v12",
        "CORE.CRM.CUSTOMER.v1",
        "CORE.TXN.LINES.BULK_CREATE.COMPLETE.v2",
        "JEWELRY.ITEM.RING.GOLD_18K.v3",
    ])
    def test_valid(self, code):
        assert is_valid_smart_code(code)
        assert validate_smart_code(code) == code

    def test_parse_parts(self):
        parsed = parse_smart_code("CORE.SALON.SVC.ITEM.v3")
        assert parsed.prefix == "CORE"
        assert parsed.segments == ("SALON", "SVC", "ITEM")
        assert parsed.version == 3
        assert parsed.family == "CORE.SALON.SVC.ITEM"
        assert parsed.with_version(4) == "CORE.SALON.SVC.ITEM.v4"

    def test_upper_case_version_suffix(self):
        assert parse_smart_code("CORE.SALON.SVC.ITEM.V7").version == 7


class TestRejectedCodes:
    """Every rejected code has a malformed segment, prefix or version suffix."""

    @pytest.mark.parametrize("code,part", [
        ("CORE.SALON.SVC.ITEM", "ITEM"),          # no version suffix
        ("CORE.SALON.SVC.ITEM.version1", "version1"),
        ("CORE.SALON.SVC.ITEM.v", "v"),
        ("CORE.salon.SVC.ITEM.v1", "salon"),      # lower-case segment
        ("CORE.SAL-ON.SVC.ITEM.v1", "SAL-ON"),
        ("CORE..SVC.ITEM.v1", ""),                # empty segment
        ("1CORE.SALON.SVC.v1", "1CORE"),          # prefix must start with a letter
        ("core.SALON.SVC.v1", "core"),
    ])
    def test_malformed_part_is_named(self, code, part):
        with pytest.raises(InvalidSmartCode) as exc_info:
            parse_smart_code(code)
        assert exc_info.value.details["smart_code"] == code
        assert exc_info.value.details["part"] == part

    def test_too_few_parts(self):
        with pytest.raises(InvalidSmartCode) as exc_info:
            parse_smart_code("CORE.SALON.v1")
        assert exc_info.value.details["parts"] == 3

    @pytest.mark.parametrize("code", [None, "", "   ", 42, " CORE.SALON.SVC.ITEM.v1"])
    def test_not_a_code(self, code):
        assert not is_valid_smart_code(code)
        with pytest.raises(InvalidSmartCode):
            validate_smart_code(code)

    def test_too_long(self):
        code = "CORE." + ".".join(["SEGMENT_NAME_XX"] * 16) + ".v1"
        with pytest.raises(InvalidSmartCode):
            parse_smart_code(code)

    def test_error_kind_is_stable(self):
        with pytest.raises(InvalidSmartCode) as exc_info:
            parse_smart_code("nope")
        assert exc_info.value.kind == "InvalidSmartCode"
        assert exc_info.value.to_dict()["error"] == "InvalidSmartCode"


class TestHelpers:
    def test_validate_many_reports_location(self):
        with pytest.raises(InvalidSmartCode) as exc_info:
            validate_many([
                ("smart_code", "CORE.SALON.POS.SALE.v1"),
                ("lines[1].smart_code", "bad"),
            ])
        assert exc_info.value.details["location"] == "lines[1].smart_code"

    def test_balanced_ledger_detection(self):
        segments = ("POS", "GL", "JOURNAL")
        assert is_balanced_ledger("CORE.SALON.POS.SALE.v1", segments)
        assert is_balanced_ledger("CORE.FIN.GL.ENTRY.v1", segments)
        assert not is_balanced_ledger("CORE.SALON.APPT.BOOKING.v1", segments)

    def test_prefix_is_not_a_ledger_segment(self):
        assert not is_balanced_ledger("POS.SALON.APPT.BOOKING.v1", ("POS",))
