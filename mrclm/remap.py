"""MRCLM feed remapper: orchestration and CLI.

Runs the full remap over one feed snapshot:

1. Routes and stops get stable numeric ids, colours and display names.
2. Trips are grouped by canonical route id.
3. Routes listed in the direction specification table go through the
   trip disambiguator; every other route keeps its feed direction flag and
   has its normalized headsigns merged per direction.
4. The canonical routes, stops and trips are written as CSV files.

Any ConfigurationError, AlignmentError or MergeConflictError aborts the
run; nothing is written unless the whole feed remaps cleanly.

Usage:
    python -m mrclm.remap --feed input/google_transit.zip --output-dir output
    python -m mrclm.remap --download --config mrclm.toml
    python -m mrclm.remap --feed gtfs/ --direction-specs specs.toml --verbose
"""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

import httpx

from mrclm.config import load_feed_config
from mrclm.direction_specs import DEFAULT_REGISTRY, load_direction_specs
from mrclm.disambiguate import assign
from mrclm.download import DownloadError, download_feed
from mrclm.errors import ConfigurationError, RemapError
from mrclm.feed import FeedError, load_feed
from mrclm.headsigns import merge_all
from mrclm.identifiers import (
    clean_stop_original_id,
    route_color,
    route_id,
    route_long_name,
    stop_id,
)
from mrclm.models import Route, Stop, TripAssignment
from mrclm.normalize import normalize_headsign, normalize_stop_name

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from mrclm.direction_specs import DirectionSpecRegistry
    from mrclm.models import FeedSnapshot, RawRoute, RawStop, RawTrip

logger: Final[logging.Logger] = logging.getLogger(__name__)

ROUTES_CSV: Final[str] = "routes.csv"
STOPS_CSV: Final[str] = "stops.csv"
TRIPS_CSV: Final[str] = "trips.csv"

ROUTES_HEADER: Final[tuple[str, ...]] = (
    "route_id",
    "route_short_name",
    "route_long_name",
    "route_color",
)
STOPS_HEADER: Final[tuple[str, ...]] = ("stop_id", "original_stop_id", "stop_name")
TRIPS_HEADER: Final[tuple[str, ...]] = (
    "trip_id",
    "route_id",
    "direction_id",
    "direction",
    "trip_headsign",
)


@dataclass(frozen=True, slots=True)
class RemapResult:
    """Canonical output of one run, ordered for stable CSV output.

    Attributes:
        routes: Sorted by route id.
        stops: Sorted by stop id, one per canonical id.
        trips: Grouped by route id, then by direction.
    """

    routes: tuple[Route, ...]
    stops: tuple[Stop, ...]
    trips: tuple[TripAssignment, ...]


# ---------------------------------------------------------------------------
# Routes and stops
# ---------------------------------------------------------------------------


def remap_routes(routes: Iterable[RawRoute]) -> dict[str, Route]:
    """Map raw route id -> canonical Route.

    Raises:
        ConfigurationError: If a route cannot be mapped, or two raw routes
            land on the same canonical id.
    """
    by_raw: dict[str, Route] = {}
    owner: dict[int, str] = {}
    for raw in routes:
        canonical_id = route_id(raw)
        if canonical_id in owner:
            raise ConfigurationError(
                "route_id",
                raw.route_id,
                f"collides with route '{owner[canonical_id]}' on id {canonical_id}",
            )
        owner[canonical_id] = raw.route_id
        by_raw[raw.route_id] = Route(
            route_id=canonical_id,
            short_name=raw.short_name.strip(),
            long_name=route_long_name(raw),
            color=route_color(raw),
        )
    return by_raw


def remap_stops(stops: Iterable[RawStop]) -> dict[str, Stop]:
    """Map raw stop id -> canonical Stop.

    Several raw stops may share one canonical id (merged duplicates of the
    same physical stop). They stay distinct keys here; the output keeps the
    first record seen per canonical id.
    """
    by_raw: dict[str, Stop] = {}
    for raw in stops:
        by_raw[raw.stop_id] = Stop(
            stop_id=stop_id(raw),
            original_id=clean_stop_original_id(raw.stop_id),
            name=normalize_stop_name(raw.name),
        )
    return by_raw


def _unique_stops(stops: Iterable[Stop]) -> tuple[Stop, ...]:
    first: dict[int, Stop] = {}
    for stop in stops:
        kept = first.setdefault(stop.stop_id, stop)
        if kept is not stop and kept.name != stop.name:
            logger.debug(
                "Stop %d: keeping '%s', dropping duplicate '%s'",
                stop.stop_id,
                kept.name,
                stop.name,
            )
    return tuple(first[k] for k in sorted(first))


def _canonical_stop_ids(trip: RawTrip, stops: dict[str, Stop]) -> tuple[int, ...]:
    try:
        return tuple(stops[raw].stop_id for raw in trip.stop_ids)
    except KeyError as exc:
        raise ConfigurationError(
            "stop_times stop_id", str(exc.args[0]), f"trip '{trip.trip_id}'"
        ) from exc


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------


def remap_default_trips(
    route: Route,
    trips: Sequence[tuple[RawTrip, tuple[int, ...]]],
) -> list[TripAssignment]:
    """Keep feed directions and merge each direction's headsigns into one.

    A missing direction flag is read as 0. Trips without a headsign take
    the merged headsign of their direction.

    Raises:
        MergeConflictError: If one direction carries headsigns that no
            allow-list entry tolerates together.
    """
    by_direction: dict[int, list[tuple[RawTrip, tuple[int, ...]]]] = defaultdict(list)
    for trip, stop_ids in trips:
        direction_id = trip.direction_id
        if direction_id is None:
            logger.warning(
                "Route %d trip '%s' has no direction_id, using 0",
                route.route_id,
                trip.trip_id,
            )
            direction_id = 0
        by_direction[direction_id].append((trip, stop_ids))

    assignments: list[TripAssignment] = []
    for direction_id in sorted(by_direction):
        group = sorted(by_direction[direction_id], key=lambda t: t[0].trip_id)
        labels = [
            normalize_headsign(t.headsign) for t, _ in group if t.headsign.strip()
        ]
        headsign = merge_all(route.route_id, direction_id, labels) if labels else ""
        assignments.extend(
            TripAssignment(
                trip_id=trip.trip_id,
                route_id=route.route_id,
                direction_id=direction_id,
                direction=None,
                headsign=headsign,
                stop_ids=stop_ids,
            )
            for trip, stop_ids in group
        )
    return assignments


def remap(
    snapshot: FeedSnapshot,
    registry: DirectionSpecRegistry = DEFAULT_REGISTRY,
) -> RemapResult:
    """Remap a whole feed snapshot.

    Args:
        snapshot: Raw routes, stops and trips from the feed.
        registry: Direction specification table for this run.

    Returns:
        RemapResult with canonical routes, stops and trip assignments.

    Raises:
        RemapError: On the first configuration, alignment or merge error.
    """
    routes = remap_routes(snapshot.routes)
    stops = remap_stops(snapshot.stops)

    trips_by_route: dict[int, list[tuple[RawTrip, tuple[int, ...]]]] = defaultdict(list)
    for trip in snapshot.trips:
        route = routes.get(trip.route_id)
        if route is None:
            raise ConfigurationError(
                "trip route_id", trip.route_id, f"trip '{trip.trip_id}'"
            )
        trips_by_route[route.route_id].append((trip, _canonical_stop_ids(trip, stops)))

    unused = registry.route_ids - trips_by_route.keys()
    if unused:
        logger.warning("Direction specs for routes with no trips: %s", sorted(unused))

    routes_by_id = {r.route_id: r for r in routes.values()}
    assignments: list[TripAssignment] = []
    for canonical_id in sorted(trips_by_route):
        route_trips = trips_by_route[canonical_id]
        if canonical_id in registry:
            assignments.extend(
                assign(
                    canonical_id,
                    {trip.trip_id: stop_ids for trip, stop_ids in route_trips},
                    registry,
                )
            )
        else:
            assignments.extend(
                remap_default_trips(routes_by_id[canonical_id], route_trips)
            )

    result = RemapResult(
        routes=tuple(sorted(routes.values(), key=lambda r: r.route_id)),
        stops=_unique_stops(stops.values()),
        trips=tuple(assignments),
    )
    logger.info(
        "Remapped %d routes, %d stops, %d trips",
        len(result.routes),
        len(result.stops),
        len(result.trips),
    )
    return result


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _write_csv(path: Path, header: Sequence[str], rows: Iterable[Sequence[object]]) -> None:
    with path.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(header)
        writer.writerows(rows)


def write_outputs(result: RemapResult, output_dir: Path) -> list[Path]:
    """Write routes.csv, stops.csv and trips.csv into output_dir."""
    output_dir.mkdir(parents=True, exist_ok=True)
    routes_path = output_dir / ROUTES_CSV
    stops_path = output_dir / STOPS_CSV
    trips_path = output_dir / TRIPS_CSV

    _write_csv(
        routes_path,
        ROUTES_HEADER,
        ((r.route_id, r.short_name, r.long_name, r.color) for r in result.routes),
    )
    _write_csv(
        stops_path,
        STOPS_HEADER,
        ((s.stop_id, s.original_id, s.name) for s in result.stops),
    )
    _write_csv(
        trips_path,
        TRIPS_HEADER,
        (
            (
                t.trip_id,
                t.route_id,
                t.direction_id,
                t.direction.value if t.direction is not None else "",
                t.headsign,
            )
            for t in result.trips
        ),
    )
    logger.info("Wrote %s, %s, %s to %s", ROUTES_CSV, STOPS_CSV, TRIPS_CSV, output_dir)
    return [routes_path, stops_path, trips_path]


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _build_arg_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Remap the MRCLM GTFS feed to stable ids, directions and labels.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--feed",
        type=Path,
        default=None,
        help="GTFS zip file or extracted directory to remap.",
    )
    source.add_argument(
        "--download",
        action="store_true",
        help="Download the feed from the configured URL first.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for the CSV outputs (default: from config, 'output').",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="TOML file with a [feed] table overriding the defaults.",
    )
    parser.add_argument(
        "--direction-specs",
        type=Path,
        default=None,
        help="TOML direction specification table replacing the embedded one.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug-level logging.",
    )
    return parser


def _configure_logging(verbose: bool) -> None:
    """Set up structured logging for the remap session."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the remapper.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code: 0 on success, 1 on error.
    """
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        config = load_feed_config(args.config)
        output_dir: Path = args.output_dir or config.output_dir
        specs_path: Path | None = args.direction_specs or config.direction_specs
        registry = (
            load_direction_specs(specs_path) if specs_path is not None else DEFAULT_REGISTRY
        )

        if args.download:
            feed_path = download_feed(config.feed_url, output_dir).file_path
        else:
            feed_path = args.feed

        result = remap(load_feed(feed_path), registry)
        write_outputs(result, output_dir)
    except (RemapError, FeedError, DownloadError) as exc:
        logger.error("Remap failed: %s", exc)
        return 1
    except httpx.HTTPError as exc:
        logger.error("Feed download failed: %s", exc)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
