"""Identifier remapping for MRCLM routes and stops.

Maps raw agency identifiers onto a stable numeric id space. Alphanumeric
identifiers are split into a digit run plus prefix/suffix markers, and each
marker selects an additive band. Bands are 1,000 wide and never overlap,
so distinct raw identifier shapes cannot collide without needing a
persistent id-allocation table.

Route id bands:
    digits-only raw id ........ the number itself
    EXPH / EXPM / EXPR ........ 99001 / 99002 / 99003
    suffix B / C / G .......... 2000 / 3000 / 7000 + digits
    prefix T .................. 20000 + digits
    prefix MT ................. 1320000 + digits

Stop id bands (when the feed has no usable stop code):
    prefix MAS / TER .......... 100000 / 200000
    suffix A / B / C / D / G .. 1000 / 2000 / 3000 / 4000 / 7000
"""

from __future__ import annotations

import logging
import re
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from mrclm.errors import ConfigurationError
from mrclm.normalize import NameKind, normalize

if TYPE_CHECKING:
    from collections.abc import Mapping

    from mrclm.models import RawRoute, RawStop

logger: Final[logging.Logger] = logging.getLogger(__name__)

_DIGITS: Final[re.Pattern[str]] = re.compile(r"[0-9]+")
_MERGED_SUFFIX: Final[re.Pattern[str]] = re.compile(r"_merged_\d+$")

# Digit runs must stay below the band width or they spill into the next band
BAND_WIDTH: Final[int] = 1_000

# ---------------------------------------------------------------------------
# Route id tables
# ---------------------------------------------------------------------------

ROUTE_FIXED_IDS: Final[Mapping[str, int]] = MappingProxyType(
    {
        "EXPH": 99_001,
        "EXPM": 99_002,
        "EXPR": 99_003,
    }
)

# Checked in order: "MT" must be tested before "T"
ROUTE_PREFIX_BANDS: Final[tuple[tuple[str, int], ...]] = (
    ("MT", 1_320_000),
    ("T", 20_000),
)

ROUTE_SUFFIX_BANDS: Final[tuple[tuple[str, int], ...]] = (
    ("B", 2_000),
    ("C", 3_000),
    ("G", 7_000),
)

# ---------------------------------------------------------------------------
# Stop id tables
# ---------------------------------------------------------------------------

# Historical data-quality exception: this stop predates the stop_code column
STOP_FIXED_IDS: Final[Mapping[str, int]] = MappingProxyType({"LPL105A": 84_315})

STOP_PREFIX_BANDS: Final[tuple[tuple[str, int], ...]] = (
    ("MAS", 100_000),
    ("TER", 200_000),
)

STOP_SUFFIX_BANDS: Final[tuple[tuple[str, int], ...]] = (
    ("A", 1_000),
    ("B", 2_000),
    ("C", 3_000),
    ("D", 4_000),
    ("G", 7_000),
)

_PLACEHOLDER_STOP_CODE: Final[str] = "0"

# ---------------------------------------------------------------------------
# Route colours (feed omits route_color for most routes)
# ---------------------------------------------------------------------------

_SHORT_NAME_COLORS: Final[Mapping[str, str]] = MappingProxyType({"24C": "754740"})

ROUTE_COLORS: Final[Mapping[int, str]] = MappingProxyType(
    {
        1: "1A5846",
        2: "EC2F48",
        3: "EC2F48",
        4: "EC008C",
        5: "E46D1E",
        6: "000000",
        8: "231F20",
        9: "B3CB2D",
        11: "26ABDF",
        14: "9FA1A4",
        15: "F6ABC9",
        16: "9C3F97",
        17: "F6ABC9",
        18: "F8B43A",
        19: "8AB5E1",
        20: "028C5B",
        21: "1D407D",
        22: "92B02C",
        23: "A0092D",
        24: "2A465A",
        25: "26225C",
        26: "000000",
        27: "008EBE",
        30: "6F6D70",
        35: "26225C",
        40: "811B55",
        41: "C19708",
        42: "08B6AD",
        43: "08B6AD",
        45: "684B1F",
        48: "C79EC9",
        55: "000000",
        57: "000000",
        124: "000000",
        125: "000000",
        140: "A85A29",
        403: "A71F67",
        411: "38BEAC",
        417: "0096A9",
        418: "5D6335",
        427: "778937",
        440: "5F7975",
    }
)


def _first_digits(value: str) -> int | None:
    """Return the first run of digits in value as an int, if any."""
    match = _DIGITS.search(value)
    if match is None:
        return None
    return int(match.group())


def _banded_digits(kind: str, raw: str, digits: int) -> int:
    if digits >= BAND_WIDTH:
        raise ConfigurationError(
            kind, raw, f"digits {digits} overflow the {BAND_WIDTH}-wide id band"
        )
    return digits


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def route_id(route: RawRoute) -> int:
    """Map a raw route to its canonical numeric id.

    Args:
        route: Raw route record from routes.txt.

    Returns:
        Stable numeric route id.

    Raises:
        ConfigurationError: If the short name matches no known marker.
    """
    raw_id = route.route_id.strip()
    if _DIGITS.fullmatch(raw_id):
        return int(raw_id)

    short_name = route.short_name.strip().upper()
    fixed = ROUTE_FIXED_IDS.get(short_name)
    if fixed is not None:
        return fixed

    digits = _first_digits(short_name)
    if digits is None:
        raise ConfigurationError(
            "route_id", route.route_id, "no digits in short name"
        )
    digits = _banded_digits("route_id", route.route_id, digits)

    for prefix, offset in ROUTE_PREFIX_BANDS:
        if short_name.startswith(prefix):
            return offset + digits
    for suffix, offset in ROUTE_SUFFIX_BANDS:
        if short_name.endswith(suffix):
            return offset + digits

    raise ConfigurationError(
        "route_id",
        route.route_id,
        f"short name '{route.short_name}' has no known marker",
    )


def route_color(route: RawRoute) -> str:
    """Resolve the display colour of a route.

    The feed colour wins when present. Otherwise the static table is
    consulted, keyed by short name first and by the route id digits next.

    Raises:
        ConfigurationError: If the route has no colour anywhere.
    """
    if route.color.strip():
        return route.color.strip().upper()

    by_short_name = _SHORT_NAME_COLORS.get(route.short_name.strip().upper())
    if by_short_name is not None:
        return by_short_name

    digits = _first_digits(route.route_id)
    if digits is not None and digits in ROUTE_COLORS:
        return ROUTE_COLORS[digits]

    raise ConfigurationError("route_color", route.route_id)


def route_long_name(route: RawRoute) -> str:
    """Return the canonical display long name of a route."""
    return normalize(route.long_name, NameKind.ROUTE_LONG_NAME)


# ---------------------------------------------------------------------------
# Stops
# ---------------------------------------------------------------------------


def clean_stop_original_id(raw: str) -> str:
    """Strip the '_merged_<n>' artefact some feed exports append to stop ids."""
    return _MERGED_SUFFIX.sub("", raw.strip())


def stop_code(stop: RawStop) -> str | None:
    """Return the stop code, treating empty and placeholder '0' as absent."""
    code = stop.code.strip()
    if not code or code == _PLACEHOLDER_STOP_CODE:
        return None
    return code


def stop_id(stop: RawStop) -> int:
    """Map a raw stop to its canonical numeric id.

    Args:
        stop: Raw stop record from stops.txt.

    Returns:
        Stable numeric stop id.

    Raises:
        ConfigurationError: If the stop code is not numeric, or the raw id
            has no digits, an unknown prefix, or an unknown suffix.
    """
    raw_id = clean_stop_original_id(stop.stop_id)
    fixed = STOP_FIXED_IDS.get(raw_id)
    if fixed is not None:
        logger.debug("Stop %s uses fixed id %d", raw_id, fixed)
        return fixed

    code = stop_code(stop)
    if code is not None:
        if not _DIGITS.fullmatch(code):
            raise ConfigurationError("stop_code", code, f"stop '{raw_id}'")
        return int(code)

    digits = _first_digits(raw_id)
    if digits is None:
        raise ConfigurationError("stop_id", raw_id, "no digits")
    digits = _banded_digits("stop_id", raw_id, digits)

    prefix_band = next(
        (offset for prefix, offset in STOP_PREFIX_BANDS if raw_id.startswith(prefix)),
        None,
    )
    if prefix_band is None:
        raise ConfigurationError("stop_id", raw_id, "unknown prefix")

    suffix_band = next(
        (offset for suffix, offset in STOP_SUFFIX_BANDS if raw_id.endswith(suffix)),
        None,
    )
    if suffix_band is None:
        raise ConfigurationError("stop_id", raw_id, "unknown suffix")

    return prefix_band + suffix_band + digits
