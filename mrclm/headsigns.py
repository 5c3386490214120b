"""Headsign merge resolver for the default (non-table) path.

When trips of one route share a feed direction flag but carry different
normalized headsigns, the two labels are only merged if the pair is listed
for that route in MERGE_ALLOW_LIST. Any other pair is a MergeConflictError:
publishing one direction under two destinations is worse than failing.

Allow-list labels are written the way a curator reads them and are
normalized once at import, so matching is insensitive to the raw casing
and filler words the feed uses.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from mrclm.errors import MergeConflictError
from mrclm.identifiers import ROUTE_PREFIX_BANDS
from mrclm.normalize import normalize_headsign

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger: Final[logging.Logger] = logging.getLogger(__name__)

_T_BAND: Final[int] = dict(ROUTE_PREFIX_BANDS)["T"]

# route id -> ((tolerated labels, replacement), ...)
MERGE_ALLOW_LIST: Final[Mapping[int, tuple[tuple[frozenset[str], str], ...]]] = (
    MappingProxyType(
        {
            1: (
                (
                    frozenset(
                        {"Mascouche / Gascon & De La Pinière", "Mascouche / Term Terrebonne"}
                    ),
                    "Mascouche / Term Terrebonne",
                ),
                (
                    frozenset({"Pinière / Cologne", "Mascouche / Term Terrebonne"}),
                    "Mascouche / Term Terrebonne",
                ),
            ),
            2: (
                (
                    frozenset({"Anglais / O'diana", "Terrebonne / Mascouche"}),
                    "Terrebonne / Mascouche",
                ),
            ),
            5: (
                (
                    frozenset(
                        {
                            "Industriel / Jacques Paschini",
                            "Souvenir / Gagnon",
                            "Terrebonne / Bois-Des-Filion",
                        }
                    ),
                    "Terrebonne / Bois-Des-Filion",
                ),
            ),
            8: ((frozenset({"Angora / Hansen", "Term Terrebonne"}), "Term Terrebonne"),),
            9: (
                (
                    frozenset({"Souvenir / Gagnon", "St-Roch / Lamothe"}),
                    "St-Roch / Lamothe",
                ),
            ),
            11: (
                (
                    frozenset(
                        {
                            "Lachenaie / Cegep Terrebonne",
                            "Cité Du Sport",
                            "Terrebonne Cite Du Sport",
                            "Term Terrebonne",
                        }
                    ),
                    "Term Terrebonne",
                ),
            ),
            18: (
                (
                    frozenset({"Angora / Gascon", "Terrebonne / Cegep De Terrebonne"}),
                    "Terrebonne / Cegep De Terrebonne",
                ),
            ),
            _T_BAND + 24: (
                (
                    frozenset({"Terrebonne / Gascon", "Terrebonne / Valiquette"}),
                    "Terrebonne / Valiquette",
                ),
            ),
            25: (
                (
                    frozenset({"St-Julien / Amos", "Term Henri-Bourassa"}),
                    "Term Henri-Bourassa",
                ),
            ),
            _T_BAND + 55: (
                (
                    frozenset({"Terrebonne / Pinière & Sobeys", "Term Terrebonne"}),
                    "Term Terrebonne",
                ),
            ),
        }
    )
)


def _normalized_allow_list() -> dict[int, tuple[tuple[frozenset[str], str], ...]]:
    return {
        route: tuple(
            (frozenset(normalize_headsign(h) for h in tolerated), normalize_headsign(replacement))
            for tolerated, replacement in entries
        )
        for route, entries in MERGE_ALLOW_LIST.items()
    }


_NORMALIZED_ALLOW_LIST: Final[Mapping[int, tuple[tuple[frozenset[str], str], ...]]] = (
    MappingProxyType(_normalized_allow_list())
)


def merge(route_id: int, direction_id: int, headsign_a: str, headsign_b: str) -> str:
    """Resolve two headsigns sharing one direction into a single label.

    Args:
        route_id: Canonical route id.
        direction_id: Feed direction flag shared by both trips.
        headsign_a: First label (raw or normalized).
        headsign_b: Second label (raw or normalized).

    Returns:
        The normalized label when both are equal, else the allow-list
        replacement of the entry tolerating both.

    Raises:
        MergeConflictError: If no allow-list entry tolerates the pair.
    """
    a = normalize_headsign(headsign_a)
    b = normalize_headsign(headsign_b)
    if a == b:
        return a

    for tolerated, replacement in _NORMALIZED_ALLOW_LIST.get(route_id, ()):
        if a in tolerated and b in tolerated:
            logger.debug(
                "Route %d direction %d: merged '%s' + '%s' -> '%s'",
                route_id,
                direction_id,
                a,
                b,
                replacement,
            )
            return replacement

    raise MergeConflictError(route_id, direction_id, (a, b))


def merge_all(route_id: int, direction_id: int, headsigns: Iterable[str]) -> str:
    """Fold every distinct headsign of one direction into a single label.

    Labels are folded in sorted order of their normalized form, so the
    result does not depend on trip order in the feed.

    Raises:
        ValueError: If headsigns is empty.
        MergeConflictError: If any pair along the fold is not tolerated.
    """
    distinct = sorted({normalize_headsign(h) for h in headsigns})
    if not distinct:
        raise ValueError("merge_all() needs at least one headsign")

    merged = distinct[0]
    for headsign in distinct[1:]:
        merged = merge(route_id, direction_id, merged, headsign)
    if len(distinct) > 1:
        logger.info(
            "Route %d direction %d: %d headsigns merged into '%s'",
            route_id,
            direction_id,
            len(distinct),
            merged,
        )
    return merged
