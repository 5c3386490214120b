"""French label normalization for stop names, headsigns and route names.

Turns raw MRCLM feed strings into canonical display labels. The rewrite
pipeline is applied in a fixed order regardless of input case:

1. Strip filler phrases ("direction ", "chemin ", "vers ", "face au ", ...).
2. Strip trailing " am" / " pm" feed artefacts.
3. Collapse the " et " conjunction to " & ".
4. Abbreviate street types and common words from a static table.
5. Drop leading articles, normalise slashes, whitespace and casing.

Each rule removes every occurrence it targets in one pass. The pipeline is
still re-applied until the label stops changing, since one rule can expose
input for an earlier one, so normalizing an already-normalized label is a
no-op. Normalization never raises: unknown tokens pass through unchanged.
"""

from __future__ import annotations

import enum
import re
from functools import lru_cache
from typing import Final


class NameKind(enum.Enum):
    """Which family of user-facing string is being normalized."""

    STOP_NAME = "stop_name"
    HEADSIGN = "headsign"
    ROUTE_LONG_NAME = "route_long_name"


# ---------------------------------------------------------------------------
# Step 1: filler phrases, per kind
# ---------------------------------------------------------------------------

_SECTEUR: Final[re.Pattern[str]] = re.compile(r"\bsecteurs?\s+", re.IGNORECASE)

_HEADSIGN_FILLERS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\bdirection\s+", re.IGNORECASE),
    re.compile(r"\bchemin\s+", re.IGNORECASE),
    re.compile(r"\bparcours\s+", re.IGNORECASE),
    re.compile(r"\bexpresse?\b\s*", re.IGNORECASE),
    re.compile(r"\bvers\s+", re.IGNORECASE),
    _SECTEUR,
)

# "face à ", "face au ", "face " -- leading or interior
_STOP_NAME_FILLERS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\bface(?:\s+(?:à|au))?\s+", re.IGNORECASE),
)

_ROUTE_LONG_NAME_FILLERS: Final[tuple[re.Pattern[str], ...]] = (_SECTEUR,)

_FILLERS: Final[dict[NameKind, tuple[re.Pattern[str], ...]]] = {
    NameKind.HEADSIGN: _HEADSIGN_FILLERS,
    NameKind.STOP_NAME: _STOP_NAME_FILLERS,
    NameKind.ROUTE_LONG_NAME: _ROUTE_LONG_NAME_FILLERS,
}

# ---------------------------------------------------------------------------
# Steps 2-3
# ---------------------------------------------------------------------------

_ENDS_WITH_AM_PM: Final[re.Pattern[str]] = re.compile(
    r"(?:\s+(?:am|pm))+$", re.IGNORECASE
)

_CONJUNCTION_ET: Final[re.Pattern[str]] = re.compile(r"\s+et\s+", re.IGNORECASE)
_AMPERSAND: Final[re.Pattern[str]] = re.compile(r"\s*&\s*")

# ---------------------------------------------------------------------------
# Step 4: static substitution table (lowercase word -> canonical form)
# ---------------------------------------------------------------------------

_ABBREVIATIONS: Final[dict[str, str]] = {
    "autoroute": "aut.",
    "avenue": "av.",
    "boulevard": "boul.",
    "chemin": "ch.",
    "croissant": "crois.",
    "montée": "mtée",
    "rang": "rg",
    "terrasse": "terr.",
    "terminus": "term",
    "sainte": "ste",
    "saint": "st",
}

# Longest first so "sainte" wins over "saint"
_ABBREVIATION_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\b("
    + "|".join(sorted(map(re.escape, _ABBREVIATIONS), key=len, reverse=True))
    + r")\b",
    re.IGNORECASE,
)

# Dotted abbreviations keep their lowercase form in display labels
_LOWERCASE_TOKENS: Final[frozenset[str]] = frozenset(
    v for v in _ABBREVIATIONS.values() if v.endswith(".")
)

# ---------------------------------------------------------------------------
# Step 5: label cleanup
# ---------------------------------------------------------------------------

_SLASH: Final[re.Pattern[str]] = re.compile(r"\s*/\s*")
_LEADING_ARTICLE: Final[re.Pattern[str]] = re.compile(
    r"^(?:(?:de|du|des)\s+|d')+", re.IGNORECASE
)
_WORD_START: Final[re.Pattern[str]] = re.compile(r"(^|[\-/(])(\w)")

_MAX_PASSES: Final[int] = 8


def _strip_fillers(label: str, kind: NameKind) -> str:
    for pattern in _FILLERS[kind]:
        label = pattern.sub("", label)
    return label


def _abbreviate(label: str) -> str:
    return _ABBREVIATION_PATTERN.sub(
        lambda m: _ABBREVIATIONS[m.group(1).lower()], label
    )


def _strip_leading_articles(label: str) -> str:
    """Drop leading de/du/des/d' from the label and from each ' / ' part."""
    parts = [_LEADING_ARTICLE.sub("", part.strip()) for part in label.split("/")]
    return " / ".join(part for part in parts if part)


def _capitalize_token(token: str) -> str:
    if token.lower() in _LOWERCASE_TOKENS:
        return token.lower()
    return _WORD_START.sub(lambda m: m.group(1) + m.group(2).upper(), token)


def _lower_if_shouting(label: str) -> str:
    """Lower-case an all-uppercase label so abbreviation and casing rules apply."""
    return label.lower() if label.upper() == label else label


def _fix_case(label: str) -> str:
    """Capitalise every word start except dotted abbreviations."""
    return " ".join(_capitalize_token(token) for token in label.split(" "))


def _apply_pipeline(label: str, kind: NameKind) -> str:
    label = _lower_if_shouting(label)
    label = _strip_fillers(label, kind)
    label = _ENDS_WITH_AM_PM.sub("", label.strip())
    label = _CONJUNCTION_ET.sub(" & ", label)
    label = _AMPERSAND.sub(" & ", label)
    label = _abbreviate(label)
    label = _SLASH.sub(" / ", label)
    label = " ".join(label.split())
    label = _strip_leading_articles(label)
    return _fix_case(label)


@lru_cache(maxsize=8192)
def normalize(raw: str, kind: NameKind) -> str:
    """Normalize a raw feed string into its canonical display label.

    Args:
        raw: Stop name, trip headsign or route long name from the feed.
        kind: Which rewrite rules apply (step 1 differs per kind).

    Returns:
        Canonical label. Empty input yields an empty string.
    """
    label = raw
    for _ in range(_MAX_PASSES):
        cleaned = _apply_pipeline(label, kind)
        if cleaned == label:
            break
        label = cleaned
    return label


def normalize_stop_name(raw: str) -> str:
    """Shorthand for normalize(raw, NameKind.STOP_NAME)."""
    return normalize(raw, NameKind.STOP_NAME)


def normalize_headsign(raw: str) -> str:
    """Shorthand for normalize(raw, NameKind.HEADSIGN)."""
    return normalize(raw, NameKind.HEADSIGN)
