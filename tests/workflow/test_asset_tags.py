"""Tests for asset tag generation."""

import pytest

from src.rtb.core.exceptions import ValidationError
from src.rtb.workflow.domain.asset_tags import (
    generate_tag,
    is_valid_tag,
    parse_tag,
    short_code,
)
from src.rtb.workflow.domain.entities import DeviceCategory


class TestGenerateTag:
    """Tests for generate_tag."""

    @pytest.mark.parametrize(
        "category,expected",
        [
            (DeviceCategory.LAPTOP, "LAP/GAS/SCH00012/0001"),
            (DeviceCategory.DESKTOP, "DES/GAS/SCH00012/0001"),
            (DeviceCategory.TABLET, "TAB/GAS/SCH00012/0001"),
            (DeviceCategory.PROJECTOR, "PRO/GAS/SCH00012/0001"),
            (DeviceCategory.OTHERS, "OTH/GAS/SCH00012/0001"),
        ],
    )
    def test_category_codes(self, category, expected):
        assert generate_tag(category, "Gasabo", "SCH00012", 1) == expected

    def test_district_and_school_are_normalized(self):
        tag = generate_tag(DeviceCategory.LAPTOP, " nyarugenge ", "sch-000 45", 7)
        assert tag == "LAP/NYA/SCH00045/0007"

    def test_short_district_is_kept(self):
        assert generate_tag(DeviceCategory.TABLET, "Ho", "SCH1", 12) == "TAB/HO/SCH1/0012"

    def test_accepts_category_value(self):
        assert generate_tag("Laptop", "Gasabo", "SCH00012", 3) == "LAP/GAS/SCH00012/0003"

    def test_sequence_beyond_padding_width(self):
        tag = generate_tag(DeviceCategory.LAPTOP, "Gasabo", "SCH00012", 12345)
        assert tag == "LAP/GAS/SCH00012/12345"
        assert is_valid_tag(tag)

    @pytest.mark.parametrize("sequence", [0, -1, True, "1"])
    def test_rejects_bad_sequence(self, sequence):
        with pytest.raises(ValidationError):
            generate_tag(DeviceCategory.LAPTOP, "Gasabo", "SCH00012", sequence)

    def test_rejects_missing_district(self):
        with pytest.raises(ValidationError) as exc_info:
            generate_tag(DeviceCategory.LAPTOP, " - ", "SCH00012", 1)
        assert exc_info.value.field == "district"

    def test_rejects_missing_school_code(self):
        with pytest.raises(ValidationError) as exc_info:
            generate_tag(DeviceCategory.LAPTOP, "Gasabo", "", 1)
        assert exc_info.value.field == "school_code"

    def test_thousand_sequential_tags(self):
        tags = [
            generate_tag(DeviceCategory.LAPTOP, "Gasabo", "SCH00012", n)
            for n in range(1, 1001)
        ]

        assert len(set(tags)) == 1000
        assert all(is_valid_tag(t) for t in tags)
        assert [parse_tag(t).sequence for t in tags] == list(range(1, 1001))
        assert tags[0].endswith("/0001")
        assert tags[-1].endswith("/1000")


class TestParseTag:
    """Tests for parse_tag."""

    def test_round_trip_components(self):
        parts = parse_tag("PRO/RUB/SCH00345/0042")
        assert parts.category == DeviceCategory.PROJECTOR
        assert parts.district_code == "RUB"
        assert parts.school_code == "SCH00345"
        assert parts.sequence == 42

    @pytest.mark.parametrize(
        "tag",
        ["", "LAP/GAS/SCH00012/1", "XXX/GAS/SCH00012/0001", "LAP/GASA/SCH00012/0001", "lap/gas/sch/0001"],
    )
    def test_malformed(self, tag):
        assert not is_valid_tag(tag)
        with pytest.raises(ValidationError):
            parse_tag(tag)


def test_short_code():
    assert short_code("Gasabo", 3) == "GAS"
    assert short_code("sch_00-12") == "SCH0012"
    assert short_code(None) == ""
