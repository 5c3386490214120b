"""Trip direction disambiguation against reference stop sequences.

For routes listed in the direction specification table, the feed's
direction_id and trip_headsign are ignored. Each trip is scored against
both reference sequences and assigned to the better-aligned direction:

    score = length of the longest ordered subsequence of the trip's stops
            that matches the reference slots in order (a variant-group
            member satisfies its slot)

Ties go to the direction whose first reference slot appears earliest in
the trip. A trip that matches nothing goes to a direction with an empty
reference when the route has one; otherwise it is a fatal AlignmentError,
as is a tie that the first-slot rule cannot break.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from mrclm.errors import AlignmentError, ConfigurationError
from mrclm.models import TripAssignment
from mrclm.normalize import normalize_headsign

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from mrclm.direction_specs import (
        DirectionSpec,
        DirectionSpecRegistry,
        RouteDirectionSpec,
        Slot,
    )

logger: Final[logging.Logger] = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DirectionScore:
    """Alignment evidence of one trip against one direction.

    Attributes:
        direction_id: 0 or 1, index into RouteDirectionSpec.directions.
        score: Alignment score (0 when the reference is empty).
        first_slot_at: Index in the trip of the first stop satisfying the
            reference's first slot, None if never visited.
    """

    direction_id: int
    score: int
    first_slot_at: int | None


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def alignment_score(stop_ids: Sequence[int], slots: Sequence[Slot]) -> int:
    """Length of the longest common ordered subsequence of stops and slots."""
    if not stop_ids or not slots:
        return 0
    previous = [0] * (len(slots) + 1)
    for stop_id in stop_ids:
        current = [0]
        for j, slot in enumerate(slots, start=1):
            if slot.matches(stop_id):
                current.append(previous[j - 1] + 1)
            else:
                current.append(max(previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def _first_slot_at(stop_ids: Sequence[int], direction: DirectionSpec) -> int | None:
    if direction.is_empty:
        return None
    first = direction.slots[0]
    return next((i for i, s in enumerate(stop_ids) if first.matches(s)), None)


def score_trip(
    spec: RouteDirectionSpec,
    stop_ids: Sequence[int],
) -> tuple[DirectionScore, DirectionScore]:
    """Score a trip's stop sequence against both directions of a route."""
    first, second = (
        DirectionScore(
            direction_id=index,
            score=alignment_score(stop_ids, direction.slots),
            first_slot_at=_first_slot_at(stop_ids, direction),
        )
        for index, direction in enumerate(spec.directions)
    )
    return first, second


def choose_direction(
    spec: RouteDirectionSpec,
    trip_id: str,
    stop_ids: Sequence[int],
) -> int:
    """Pick the canonical direction_id (0 or 1) for one trip.

    Raises:
        AlignmentError: If the trip matches neither reference and the route
            has no empty reference, or the scores tie and neither first
            slot appears earlier in the trip.
    """
    a, b = score_trip(spec, stop_ids)
    scores = {
        spec.directions[s.direction_id].label.value: s.score for s in (a, b)
    }

    if a.score == 0 and b.score == 0:
        for index, direction in enumerate(spec.directions):
            if direction.is_empty:
                return index
        raise AlignmentError(
            spec.route_id, trip_id, scores, "no stop matches either reference"
        )

    if a.score != b.score:
        return a.direction_id if a.score > b.score else b.direction_id

    if a.first_slot_at is not None and (
        b.first_slot_at is None or a.first_slot_at < b.first_slot_at
    ):
        return a.direction_id
    if b.first_slot_at is not None and (
        a.first_slot_at is None or b.first_slot_at < a.first_slot_at
    ):
        return b.direction_id

    raise AlignmentError(
        spec.route_id, trip_id, scores, "tied scores and no earlier first stop"
    )


# ---------------------------------------------------------------------------
# Ordering within a direction
# ---------------------------------------------------------------------------


def trip_sort_key(direction: DirectionSpec, stop_ids: Sequence[int]) -> tuple[int, ...]:
    """Rank a trip by which member of each reference slot it uses.

    For every slot the key holds the index of the first member the trip
    visits, or the member count when it visits none. Two trips that differ
    only at a variant slot therefore sort by declared member order.
    """
    visited = set(stop_ids)
    key: list[int] = []
    for slot in direction.slots:
        members = slot.members
        key.append(
            next((i for i, m in enumerate(members) if m in visited), len(members))
        )
    return tuple(key)


def compare_stops(direction: DirectionSpec, stop_a: int, stop_b: int) -> int:
    """Order two stops by their reference position.

    Returns -1 / 1 when the reference places stop_a before / after stop_b,
    0 when they share a position or either stop is not in the reference.
    Members of one variant group compare by declared member order.
    """
    pos_a = direction.position(stop_a)
    pos_b = direction.position(stop_b)
    if pos_a is None or pos_b is None or pos_a == pos_b:
        return 0
    return -1 if pos_a < pos_b else 1


def sort_trips(
    direction: DirectionSpec,
    trips: Sequence[TripAssignment],
) -> list[TripAssignment]:
    """Stable output order of trips assigned to one direction."""
    return sorted(
        trips, key=lambda t: (trip_sort_key(direction, t.stop_ids), t.trip_id)
    )


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------


def assign(
    route_id: int,
    trip_stops: Mapping[str, Sequence[int]],
    registry: DirectionSpecRegistry,
) -> list[TripAssignment]:
    """Assign every trip of a table-listed route to one canonical direction.

    Args:
        route_id: Canonical route id.
        trip_stops: Trip id -> canonical stop ids in visiting order.
        registry: Direction specification table for this run.

    Returns:
        One TripAssignment per trip, ordered by direction then by
        trip_sort_key within the direction. Headsigns are the table's,
        normalized.

    Raises:
        ConfigurationError: If the route has no table entry.
        AlignmentError: If a trip cannot be placed in either direction.
    """
    spec = registry.get(route_id)
    if spec is None:
        raise ConfigurationError("direction_spec", str(route_id), "route not listed")

    headsigns = tuple(normalize_headsign(d.headsign) for d in spec.directions)
    buckets: tuple[list[TripAssignment], list[TripAssignment]] = ([], [])
    for trip_id in sorted(trip_stops):
        stop_ids = tuple(trip_stops[trip_id])
        direction_id = choose_direction(spec, trip_id, stop_ids)
        direction = spec.directions[direction_id]
        buckets[direction_id].append(
            TripAssignment(
                trip_id=trip_id,
                route_id=route_id,
                direction_id=direction_id,
                direction=direction.label,
                headsign=headsigns[direction_id],
                stop_ids=stop_ids,
            )
        )

    logger.info(
        "Route %d: %d trips %s, %d trips %s",
        route_id,
        len(buckets[0]),
        spec.directions[0].label.value,
        len(buckets[1]),
        spec.directions[1].label.value,
    )
    return [
        assignment
        for direction, bucket in zip(spec.directions, buckets, strict=True)
        for assignment in sort_trips(direction, bucket)
    ]
