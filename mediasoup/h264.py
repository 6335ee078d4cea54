"""H264 profile-level-id parsing, formatting and SDP answer negotiation."""

from __future__ import annotations

import re
from dataclasses import dataclass

PROFILE_CONSTRAINED_BASELINE = 1
PROFILE_BASELINE = 2
PROFILE_MAIN = 3
PROFILE_CONSTRAINED_HIGH = 4
PROFILE_HIGH = 5

# Every level is ten times the level number, except level 1b which is special.
LEVEL_1_B = 0
LEVEL_1 = 10
LEVEL_1_1 = 11
LEVEL_1_2 = 12
LEVEL_1_3 = 13
LEVEL_2 = 20
LEVEL_2_1 = 21
LEVEL_2_2 = 22
LEVEL_3 = 30
LEVEL_3_1 = 31
LEVEL_3_2 = 32
LEVEL_4 = 40
LEVEL_4_1 = 41
LEVEL_4_2 = 42
LEVEL_5 = 50
LEVEL_5_1 = 51
LEVEL_5_2 = 52

# For level_idc=11 and profile_idc=0x42, 0x4D or 0x58 the constraint set3 flag
# tells level 1b from level 1.1.
CONSTRAINT_SET3_FLAG = 0x10

_PLAIN_LEVELS = frozenset(
    {
        LEVEL_1,
        LEVEL_1_2,
        LEVEL_1_3,
        LEVEL_2,
        LEVEL_2_1,
        LEVEL_2_2,
        LEVEL_3,
        LEVEL_3_1,
        LEVEL_3_2,
        LEVEL_4,
        LEVEL_4_1,
        LEVEL_4_2,
        LEVEL_5,
        LEVEL_5_1,
        LEVEL_5_2,
    }
)

_LEVEL_1B_STRINGS = {
    PROFILE_CONSTRAINED_BASELINE: "42f00b",
    PROFILE_BASELINE: "42100b",
    PROFILE_MAIN: "4d100b",
}

_PROFILE_IDC_IOP_STRINGS = {
    PROFILE_CONSTRAINED_BASELINE: "42e0",
    PROFILE_BASELINE: "4200",
    PROFILE_MAIN: "4d00",
    PROFILE_CONSTRAINED_HIGH: "640c",
    PROFILE_HIGH: "6400",
}

_HEX6 = re.compile(r"[0-9a-fA-F]{6}")


@dataclass(frozen=True)
class ProfileLevelId:
    """An H264 profile together with a level."""

    profile: int
    level: int

    def __str__(self) -> str:
        """Three hex bytes of the profile level id, or "" if it is invalid."""
        if self.level == LEVEL_1_B:
            return _LEVEL_1B_STRINGS.get(self.profile, "")
        prefix = _PROFILE_IDC_IOP_STRINGS.get(self.profile)
        if prefix is None:
            return ""
        return f"{prefix}{self.level & 0xFF:02x}"


# The default should be Baseline level 1, but ConstrainedBaseline level 3.1 is
# kept for compatibility with peers whose codecs carry no parameters.
DEFAULT_PROFILE_LEVEL_ID = ProfileLevelId(PROFILE_CONSTRAINED_BASELINE, LEVEL_3_1)


def byte_mask_string(c: str, text: str) -> int:
    """Return a byte with the bits set where ``text`` holds character ``c``.

    For example ``byte_mask_string("x", "x1xx0000")`` is ``0b10110000``.
    """
    length = len(text)
    mask = 0
    for index, char in enumerate(text):
        if char == c:
            mask |= 1 << (length - 1 - index)
    return mask & 0xFF


class BitPattern:
    """Matches bytes against a pattern such as "x1xx0000" ("x" is either bit)."""

    def __init__(self, pattern: str) -> None:
        self.mask = 0xFF - byte_mask_string("x", pattern)
        self.masked_value = byte_mask_string("1", pattern)

    def is_match(self, value: int) -> bool:
        """Tell whether ``value`` fits the pattern."""
        return self.masked_value == (value & self.mask)

    def __repr__(self) -> str:
        return f"BitPattern(mask={self.mask:#04x}, masked_value={self.masked_value:#04x})"


@dataclass(frozen=True)
class ProfilePattern:
    """Maps a profile_idc and a profile_iop pattern to a profile."""

    profile_idc: int
    profile_iop: BitPattern
    profile: int


PROFILE_PATTERNS = (
    ProfilePattern(0x42, BitPattern("x1xx0000"), PROFILE_CONSTRAINED_BASELINE),
    ProfilePattern(0x4D, BitPattern("1xxx0000"), PROFILE_CONSTRAINED_BASELINE),
    ProfilePattern(0x58, BitPattern("11xx0000"), PROFILE_CONSTRAINED_BASELINE),
    ProfilePattern(0x42, BitPattern("x0xx0000"), PROFILE_BASELINE),
    ProfilePattern(0x58, BitPattern("10xx0000"), PROFILE_BASELINE),
    ProfilePattern(0x4D, BitPattern("0x0x0000"), PROFILE_MAIN),
    ProfilePattern(0x64, BitPattern("00000000"), PROFILE_HIGH),
    ProfilePattern(0x64, BitPattern("00001100"), PROFILE_CONSTRAINED_HIGH),
)


@dataclass(frozen=True)
class RtpParameter:
    """The H264 specific codec parameters used in negotiation."""

    packetization_mode: int = 0
    profile_level_id: str = ""
    level_asymmetry_allowed: int = 0


def parse_profile_level_id(text: str) -> ProfileLevelId | None:
    """Parse a profile-level-id of three hex bytes; None if not recognised."""
    if len(text) != 6 or not _HEX6.fullmatch(text):
        return None
    numeric = int(text, 16)
    if numeric == 0:
        return None

    level_idc = numeric & 0xFF
    profile_iop = (numeric >> 8) & 0xFF
    profile_idc = (numeric >> 16) & 0xFF

    if level_idc == LEVEL_1_1:
        level = LEVEL_1_B if profile_iop & CONSTRAINT_SET3_FLAG else LEVEL_1_1
    elif level_idc in _PLAIN_LEVELS:
        level = level_idc
    else:
        return None

    for pattern in PROFILE_PATTERNS:
        if profile_idc == pattern.profile_idc and pattern.profile_iop.is_match(profile_iop):
            return ProfileLevelId(pattern.profile, level)
    return None


def parse_sdp_profile_level_id(text: str) -> ProfileLevelId | None:
    """Like :func:`parse_profile_level_id`, but "" gives the default id."""
    if not text:
        return DEFAULT_PROFILE_LEVEL_ID
    return parse_profile_level_id(text)


def is_same_profile(first: str, second: str) -> bool:
    """Tell whether two profile-level-id strings name the same H264 profile."""
    first_id = parse_sdp_profile_level_id(first)
    second_id = parse_sdp_profile_level_id(second)
    return first_id is not None and second_id is not None and first_id.profile == second_id.profile


def is_less_level(a: int, b: int) -> bool:
    """Compare two H264 levels, taking level 1b into account."""
    if a == LEVEL_1_B:
        return b not in (LEVEL_1, LEVEL_1_B)
    if b == LEVEL_1_B:
        return a != LEVEL_1
    return a < b


def min_level(a: int, b: int) -> int:
    """Return the lower of two H264 levels."""
    return a if is_less_level(a, b) else b


def generate_profile_level_id_for_answer(
    local_supported_params: RtpParameter,
    remote_offered_params: RtpParameter,
) -> str:
    """Return the profile-level-id for an SDP answer, or "" if neither side has one.

    Both sides must use the same profile; only the level is negotiated.
    Raises ValueError for an invalid id or a profile mismatch.
    """
    if not local_supported_params.profile_level_id and not remote_offered_params.profile_level_id:
        return ""

    local_id = parse_sdp_profile_level_id(local_supported_params.profile_level_id)
    remote_id = parse_sdp_profile_level_id(remote_offered_params.profile_level_id)

    if local_id is None:
        raise ValueError("invalid local_profile_level_id")
    if remote_id is None:
        raise ValueError("invalid remote_profile_level_id")
    if local_id.profile != remote_id.profile:
        raise ValueError("H264 Profile mismatch")

    level_asymmetry_allowed = (
        local_supported_params.level_asymmetry_allowed > 0
        and remote_offered_params.level_asymmetry_allowed > 0
    )
    # Without level asymmetry the answer may not upgrade the offered level.
    if level_asymmetry_allowed:
        answer_level = local_id.level
    else:
        answer_level = min_level(local_id.level, remote_id.level)

    return str(ProfileLevelId(local_id.profile, answer_level))