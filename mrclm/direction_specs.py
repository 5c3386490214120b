"""Route direction specification table.

Some MRCLM routes publish trips whose direction_id and trip_headsign cannot
be trusted (typically both directions carry the same headsign). For those
routes this module fixes two canonical directions, each with a canonical
headsign and a reference stop sequence describing a known-good traversal.

A reference sequence is an ordered tuple of slots. Each slot is either an
Anchor (one stop that must appear, order-significant) or a VariantGroup
(several interchangeable waypoints at the same position; the first-listed
member sorts first when trips diverge at that slot).

The embedded table is validated once at import and exposed as
DEFAULT_REGISTRY. Operators may curate the same structure in a TOML file
and load it with load_direction_specs().
"""

from __future__ import annotations

import enum
import logging
import tomllib
from dataclasses import dataclass
from itertools import combinations
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final

from mrclm.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

logger: Final[logging.Logger] = logging.getLogger(__name__)


class DirectionLabel(enum.Enum):
    """Descriptive compass label of a canonical direction."""

    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"


# ---------------------------------------------------------------------------
# Reference sequence slots
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Anchor:
    """A single stop that must appear at this position."""

    stop_id: int

    @property
    def members(self) -> tuple[int, ...]:
        return (self.stop_id,)

    def matches(self, stop_id: int) -> bool:
        return stop_id == self.stop_id


@dataclass(frozen=True, slots=True)
class VariantGroup:
    """Interchangeable waypoints at one position, in preference order."""

    stop_ids: tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.stop_ids) < 2:
            raise ConfigurationError(
                "variant_group", str(self.stop_ids), "needs at least two stops"
            )
        if len(set(self.stop_ids)) != len(self.stop_ids):
            raise ConfigurationError(
                "variant_group", str(self.stop_ids), "duplicate stop"
            )

    @property
    def members(self) -> tuple[int, ...]:
        return self.stop_ids

    def matches(self, stop_id: int) -> bool:
        return stop_id in self.stop_ids


Slot = Anchor | VariantGroup


@dataclass(frozen=True, slots=True)
class DirectionSpec:
    """One canonical direction of a route.

    Attributes:
        label: Compass label (descriptive only).
        headsign: Canonical headsign for every trip assigned here.
        slots: Reference stop sequence. Empty means no disambiguation
            evidence exists for this direction; its trips keep feed order.
    """

    label: DirectionLabel
    headsign: str
    slots: tuple[Slot, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.slots

    def position(self, stop_id: int) -> tuple[int, int] | None:
        """Return (slot index, member index) of a stop, or None if absent."""
        for slot_index, slot in enumerate(self.slots):
            if slot.matches(stop_id):
                return slot_index, slot.members.index(stop_id)
        return None


@dataclass(frozen=True, slots=True)
class RouteDirectionSpec:
    """Both canonical directions of a route.

    Attributes:
        route_id: Canonical (post-remap) route id.
        directions: Exactly two directions. Index 0 is direction_id 0.
        reason: Why the route needs an entry, for curators.
    """

    route_id: int
    directions: tuple[DirectionSpec, DirectionSpec]
    reason: str = ""

    def direction_id(self, label: DirectionLabel) -> int:
        for index, direction in enumerate(self.directions):
            if direction.label is label:
                return index
        raise KeyError(f"Route {self.route_id} has no {label.value} direction")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _interior_positions(direction: DirectionSpec) -> dict[int, int]:
    """Map stop id to slot index, excluding the terminal slots."""
    positions: dict[int, int] = {}
    for slot_index, slot in enumerate(direction.slots[1:-1], start=1):
        for stop_id in slot.members:
            positions[stop_id] = slot_index
    return positions


def validate_route_spec(spec: RouteDirectionSpec) -> None:
    """Reject a table entry that cannot drive disambiguation.

    Checks, in order: two distinct labels, at least one non-empty
    reference, no stop repeated within one reference, and no contradictory
    ordering of interior stops shared by both references. Terminal slots
    are exempt from the ordering check since the two directions of a route
    run between the same terminals.

    Raises:
        ConfigurationError: On the first violated rule.
    """
    key = str(spec.route_id)
    first, second = spec.directions

    if first.label is second.label:
        raise ConfigurationError(
            "direction_spec", key, f"both directions labelled {first.label.value}"
        )
    if first.is_empty and second.is_empty:
        raise ConfigurationError("direction_spec", key, "both references are empty")

    for direction in spec.directions:
        seen: set[int] = set()
        for slot in direction.slots:
            repeated = seen.intersection(slot.members)
            if repeated:
                raise ConfigurationError(
                    "direction_spec",
                    key,
                    f"{direction.label.value} reference repeats stop(s) "
                    f"{sorted(repeated)}",
                )
            seen.update(slot.members)

    first_positions = _interior_positions(first)
    second_positions = _interior_positions(second)
    shared = sorted(first_positions.keys() & second_positions.keys())
    for stop_a, stop_b in combinations(shared, 2):
        first_delta = first_positions[stop_a] - first_positions[stop_b]
        second_delta = second_positions[stop_a] - second_positions[stop_b]
        if first_delta * second_delta < 0:
            raise ConfigurationError(
                "direction_spec",
                key,
                f"stops {stop_a} and {stop_b} are ordered differently "
                f"in {first.label.value} and {second.label.value}",
            )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class DirectionSpecRegistry:
    """Immutable lookup of RouteDirectionSpec by canonical route id.

    Constructed once per run and passed by reference to the disambiguator.
    """

    __slots__ = ("_specs",)

    def __init__(self, specs: Iterable[RouteDirectionSpec]) -> None:
        by_route: dict[int, RouteDirectionSpec] = {}
        for spec in specs:
            if spec.route_id in by_route:
                raise ConfigurationError(
                    "direction_spec", str(spec.route_id), "duplicate route entry"
                )
            validate_route_spec(spec)
            by_route[spec.route_id] = spec
        self._specs: Mapping[int, RouteDirectionSpec] = MappingProxyType(by_route)

    def get(self, route_id: int) -> RouteDirectionSpec | None:
        return self._specs.get(route_id)

    def __contains__(self, route_id: object) -> bool:
        return route_id in self._specs

    def __iter__(self) -> Iterator[RouteDirectionSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    @property
    def route_ids(self) -> frozenset[int]:
        return frozenset(self._specs)


# ---------------------------------------------------------------------------
# Embedded table
# ---------------------------------------------------------------------------

# Route T24 is remapped into the "T" prefix band (see identifiers.py)
_RID_T24: Final[int] = 20_000 + 24

_ROUTE_18: Final[RouteDirectionSpec] = RouteDirectionSpec(
    route_id=18,
    reason="both directions publish the same headsign",
    directions=(
        DirectionSpec(
            label=DirectionLabel.EAST,
            headsign="Term Terrebonne",
            slots=(
                Anchor(85782),  # Cité du Sport
                Anchor(84106),  # rue des Bâtisseurs / face au 3100
                VariantGroup((84728, 84872)),
                Anchor(85117),
                Anchor(85482),
                Anchor(85144),
                Anchor(85030),
                Anchor(84889),
                Anchor(84837),
                Anchor(84875),  # Terminus Terrebonne
            ),
        ),
        DirectionSpec(
            label=DirectionLabel.WEST,
            headsign="Cité Du Sport",
            slots=(
                Anchor(84875),  # Terminus Terrebonne
                Anchor(84943),  # boul. des Seigneurs / rue Vaillant
                Anchor(85117),
                Anchor(85482),
                Anchor(84726),  # boul. Claude Léveillée / face au McDonald
                Anchor(84845),  # boul. Moody / face aux Galeries Terrebonne
                Anchor(84998),  # rue Angora / ch. Gascon
                Anchor(85150),  # boul. des Entreprises / boul. Claude Léveillée
                Anchor(85782),  # Cité du Sport
            ),
        ),
    ),
)

_ROUTE_T24: Final[RouteDirectionSpec] = RouteDirectionSpec(
    route_id=_RID_T24,
    reason="both directions publish the same headsign",
    directions=(
        DirectionSpec(
            label=DirectionLabel.EAST,
            headsign="Gascon",
            slots=(
                Anchor(85125),  # ch. Martin / montée Valiquette
                Anchor(85135),
                Anchor(84870),  # ch. Gascon / face au 3620
            ),
        ),
        DirectionSpec(
            label=DirectionLabel.WEST,
            headsign="Place Longchamps",
            slots=(
                Anchor(85131),  # Comptois / Gascon
                Anchor(85134),
                Anchor(85126),  # montée Valiquette / ch. Martin
            ),
        ),
    ),
)

DEFAULT_REGISTRY: Final[DirectionSpecRegistry] = DirectionSpecRegistry(
    (_ROUTE_18, _ROUTE_T24)
)


# ---------------------------------------------------------------------------
# TOML loader
# ---------------------------------------------------------------------------


def _parse_slot(route_key: str, raw: Any) -> Slot:
    if isinstance(raw, bool):
        raise ConfigurationError("direction_spec", route_key, f"bad stop {raw!r}")
    if isinstance(raw, int):
        return Anchor(raw)
    if isinstance(raw, list) and all(
        isinstance(s, int) and not isinstance(s, bool) for s in raw
    ):
        return VariantGroup(tuple(raw))
    raise ConfigurationError("direction_spec", route_key, f"bad stop {raw!r}")


def _parse_direction(route_key: str, raw: Any) -> DirectionSpec:
    if not isinstance(raw, dict):
        raise ConfigurationError(
            "direction_spec", route_key, "[[route.direction]] must be a table"
        )
    try:
        label = DirectionLabel(str(raw["label"]).lower())
        headsign = str(raw["headsign"])
    except (KeyError, ValueError) as exc:
        raise ConfigurationError(
            "direction_spec", route_key, f"invalid direction: {exc}"
        ) from exc
    stops = raw.get("stops", [])
    if not isinstance(stops, list):
        raise ConfigurationError("direction_spec", route_key, "stops must be a list")
    slots = tuple(_parse_slot(route_key, s) for s in stops)
    return DirectionSpec(label=label, headsign=headsign, slots=slots)


def _parse_route(raw: Any) -> RouteDirectionSpec:
    if not isinstance(raw, dict):
        raise ConfigurationError("direction_spec", "?", "[[route]] must be a table")
    route_key = str(raw.get("route_id", "?"))
    if not isinstance(raw.get("route_id"), int):
        raise ConfigurationError("direction_spec", route_key, "route_id must be int")
    directions = raw.get("direction", [])
    if not isinstance(directions, list) or len(directions) != 2:
        raise ConfigurationError(
            "direction_spec",
            route_key,
            "expected exactly 2 directions",
        )
    return RouteDirectionSpec(
        route_id=raw["route_id"],
        directions=(
            _parse_direction(route_key, directions[0]),
            _parse_direction(route_key, directions[1]),
        ),
        reason=str(raw.get("reason", "")),
    )


def load_direction_specs(path: Path) -> DirectionSpecRegistry:
    """Load a direction specification table from a TOML file.

    Expected layout::

        [[route]]
        route_id = 18
        reason = "same headsigns"

        [[route.direction]]
        label = "east"
        headsign = "Term Terrebonne"
        stops = [85782, 84106, [84728, 84872], 84875]

    An integer stop is an Anchor; a list of integers is a VariantGroup.

    Args:
        path: TOML file to read.

    Returns:
        Validated registry.

    Raises:
        ConfigurationError: If the file is malformed or an entry is invalid.
    """
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError("direction_spec_file", str(path), str(exc)) from exc

    routes = data.get("route", [])
    if not isinstance(routes, list):
        raise ConfigurationError(
            "direction_spec_file", str(path), "route must be an array of tables"
        )
    registry = DirectionSpecRegistry(_parse_route(r) for r in routes)
    logger.info("Loaded %d direction specs from %s", len(registry), path)
    return registry
