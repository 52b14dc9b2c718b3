"""Asset tag generation.

Tags have the form CAT/DIS/SCH/NNNN, for example "LAP/GAS/SCH00012/0007":

    CAT   fixed code for the device category
    DIS   first three letters of the school's district
    SCH   the school code with separators removed
    NNNN  per-(school, category) sequence number, zero-padded to 4 digits

The sequence number comes from a serialized counter (see
ITagSequenceRepository) and is never reused, so tags stay unique over a
school's whole history even after devices are unassigned or deleted.
"""

import re
from dataclasses import dataclass

from ...core.exceptions import ValidationError
from .entities import DeviceCategory

CATEGORY_CODES: dict[DeviceCategory, str] = {
    DeviceCategory.LAPTOP: "LAP",
    DeviceCategory.DESKTOP: "DES",
    DeviceCategory.TABLET: "TAB",
    DeviceCategory.PROJECTOR: "PRO",
    DeviceCategory.OTHERS: "OTH",
}

DISTRICT_CODE_LENGTH = 3
SEQUENCE_WIDTH = 4

TAG_PATTERN = re.compile(
    r"^(?P<category>LAP|DES|TAB|PRO|OTH)/"
    r"(?P<district>[A-Z0-9]{1,3})/"
    r"(?P<school>[A-Z0-9]+)/"
    r"(?P<sequence>\d{4,})$"
)

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


@dataclass(frozen=True)
class TagParts:
    """The components of a parsed asset tag."""

    category: DeviceCategory
    district_code: str
    school_code: str
    sequence: int


def short_code(value: str, length: int = 0) -> str:
    """Upper-case a name and strip everything but letters and digits.

    Args:
        value: District name or school code
        length: Keep only the first N characters (0 keeps all)
    """
    code = _NON_ALNUM.sub("", (value or "").upper())
    return code[:length] if length else code


def generate_tag(
    category: DeviceCategory,
    district: str,
    school_code: str,
    sequence: int,
) -> str:
    """Build the asset tag for one device.

    Args:
        category: Device category
        district: School district name (e.g. "Gasabo")
        school_code: Unique school code (e.g. "SCH00012")
        sequence: Sequence number reserved for (school, category), >= 1

    Returns:
        Tag string such as "LAP/GAS/SCH00012/0001"

    Raises:
        ValidationError: If any component is empty or the sequence is < 1
    """
    category = DeviceCategory(category)
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 1:
        raise ValidationError(
            f"Tag sequence must be a positive integer, got {sequence!r}",
            field="sequence",
        )

    district_code = short_code(district, DISTRICT_CODE_LENGTH)
    if not district_code:
        raise ValidationError("District is required to build an asset tag", field="district")

    school_part = short_code(school_code)
    if not school_part:
        raise ValidationError("School code is required to build an asset tag", field="school_code")

    return (
        f"{CATEGORY_CODES[category]}/{district_code}/{school_part}/"
        f"{sequence:0{SEQUENCE_WIDTH}d}"
    )


def parse_tag(tag: str) -> TagParts:
    """Split a tag into its components.

    Raises:
        ValidationError: If the tag is not well-formed
    """
    match = TAG_PATTERN.match(tag or "")
    if match is None:
        raise ValidationError(f"Malformed asset tag: {tag!r}", field="asset_tag")

    category = next(c for c, code in CATEGORY_CODES.items() if code == match["category"])
    return TagParts(
        category=category,
        district_code=match["district"],
        school_code=match["school"],
        sequence=int(match["sequence"]),
    )


def is_valid_tag(tag: str) -> bool:
    return TAG_PATTERN.match(tag or "") is not None
