"""Typed in-memory model exchanged with the feed ingestion layer.

Raw* records mirror the GTFS columns the remapper consumes. The canonical
records are what the remapper hands back to the output writer.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from mrclm.direction_specs import DirectionLabel


@dataclass(frozen=True, slots=True)
class RawRoute:
    """A routes.txt row.

    Attributes:
        route_id: Agency route identifier, alphanumeric for most routes.
        short_name: route_short_name (e.g. "24B", "T24", "EXPM").
        long_name: route_long_name before normalization.
        color: route_color, empty string when the feed omits it.
    """

    route_id: str
    short_name: str
    long_name: str
    color: str = ""


@dataclass(frozen=True, slots=True)
class RawStop:
    """A stops.txt row."""

    stop_id: str
    code: str
    name: str


@dataclass(frozen=True, slots=True)
class RawTrip:
    """A trips.txt row joined with its stop_times.

    Attributes:
        trip_id: Feed trip identifier.
        route_id: Raw route identifier the trip belongs to.
        headsign: trip_headsign before normalization.
        direction_id: Feed direction flag (0/1), None when absent.
        stop_ids: Raw stop ids in visiting order (sorted by stop_sequence).
    """

    trip_id: str
    route_id: str
    headsign: str
    direction_id: int | None
    stop_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class FeedSnapshot:
    """Everything the remapper needs from one feed load."""

    routes: tuple[RawRoute, ...]
    stops: tuple[RawStop, ...]
    trips: tuple[RawTrip, ...]


@dataclass(frozen=True, slots=True)
class Route:
    """Canonical route record."""

    route_id: int
    short_name: str
    long_name: str
    color: str


@dataclass(frozen=True, slots=True)
class Stop:
    """Canonical stop record.

    Attributes:
        stop_id: Stable numeric identifier.
        original_id: Raw stop id after merge-artefact cleanup.
        name: Display name after normalization.
    """

    stop_id: int
    original_id: str
    name: str


@dataclass(frozen=True, slots=True)
class TripAssignment:
    """A trip re-labelled with its canonical direction and headsign.

    Attributes:
        trip_id: Feed trip identifier.
        route_id: Canonical route id.
        direction_id: 0 or 1. For table routes, 0 is the first configured
            direction; otherwise the feed's own flag.
        direction: Compass label for table routes, None on the default path.
        headsign: Canonical headsign.
        stop_ids: Canonical stop ids in visiting order.
    """

    trip_id: str
    route_id: int
    direction_id: int
    direction: DirectionLabel | None
    headsign: str
    stop_ids: tuple[int, ...] = field(default=())
