"""GTFS feed reader.

Loads the four GTFS files the remapper consumes (routes.txt, stops.txt,
trips.txt, stop_times.txt) from either a zip archive or an extracted
directory and returns a FeedSnapshot.

Agency exports are not reliably UTF-8: every file goes through
charset-normalizer detection and has any BOM stripped before parsing.
"""

from __future__ import annotations

import csv
import io
import logging
import zipfile
from collections import defaultdict
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Final

from charset_normalizer import from_bytes

from mrclm.models import FeedSnapshot, RawRoute, RawStop, RawTrip

if TYPE_CHECKING:
    from collections.abc import Iterator

logger: Final[logging.Logger] = logging.getLogger(__name__)

_UTF8_BOM: Final[bytes] = b"\xef\xbb\xbf"
_UTF16_LE_BOM: Final[bytes] = b"\xff\xfe"
_UTF16_BE_BOM: Final[bytes] = b"\xfe\xff"

ROUTES_FILE: Final[str] = "routes.txt"
STOPS_FILE: Final[str] = "stops.txt"
TRIPS_FILE: Final[str] = "trips.txt"
STOP_TIMES_FILE: Final[str] = "stop_times.txt"

REQUIRED_COLUMNS: Final[dict[str, tuple[str, ...]]] = {
    ROUTES_FILE: ("route_id", "route_short_name", "route_long_name"),
    STOPS_FILE: ("stop_id", "stop_name"),
    TRIPS_FILE: ("route_id", "trip_id"),
    STOP_TIMES_FILE: ("trip_id", "stop_id", "stop_sequence"),
}


class FeedError(Exception):
    """Raised when a GTFS feed is missing a file or a required column.

    Attributes:
        source: Feed path (zip or directory).
        file_name: GTFS file the problem was found in.
    """

    def __init__(self, source: Path, file_name: str, detail: str) -> None:
        self.source: Final[Path] = source
        self.file_name: Final[str] = file_name
        super().__init__(f"Invalid feed '{source}' ({file_name}): {detail}")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _strip_bom(data: bytes) -> bytes:
    for bom in (_UTF8_BOM, _UTF16_LE_BOM, _UTF16_BE_BOM):
        if data.startswith(bom):
            return data[len(bom) :]
    return data


def decode_feed_text(data: bytes, source: Path, file_name: str) -> str:
    """Decode raw feed file bytes into text using detected encoding.

    Raises:
        FeedError: If charset-normalizer returns no candidate encoding.
    """
    data = _strip_bom(data)
    if not data:
        return ""
    best = from_bytes(data).best()
    if best is None:
        raise FeedError(source, file_name, "cannot detect text encoding")
    encoding = str(best.encoding)
    if encoding.lower().replace("-", "").replace("_", "") not in {"utf8", "ascii"}:
        logger.info("Decoding %s as %s", file_name, encoding)
    return data.decode(encoding)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def _read_member(source: Path, file_name: str) -> bytes:
    """Return the raw bytes of one GTFS file from a zip or directory."""
    if source.is_dir():
        path = source / file_name
        if not path.is_file():
            raise FeedError(source, file_name, "file not found")
        return path.read_bytes()

    try:
        with zipfile.ZipFile(source, "r") as zf:
            # Some exports nest the files under a top-level folder
            for info in zf.infolist():
                if info.is_dir() or "__MACOSX" in info.filename:
                    continue
                if PurePosixPath(info.filename).name == file_name:
                    return zf.read(info)
    except zipfile.BadZipFile as exc:
        raise FeedError(source, file_name, f"corrupt archive: {exc}") from exc
    raise FeedError(source, file_name, "file not found in archive")


def _read_rows(source: Path, file_name: str) -> Iterator[dict[str, str]]:
    text = decode_feed_text(_read_member(source, file_name), source, file_name)
    reader = csv.DictReader(io.StringIO(text))
    header = [h.strip() for h in reader.fieldnames or []]
    reader.fieldnames = header
    missing = [c for c in REQUIRED_COLUMNS[file_name] if c not in header]
    if missing:
        raise FeedError(source, file_name, f"missing columns {missing}")
    for row in reader:
        yield {k: (v or "").strip() for k, v in row.items() if k is not None}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_direction(source: Path, trip_id: str, raw: str) -> int | None:
    if raw == "":
        return None
    if raw in {"0", "1"}:
        return int(raw)
    raise FeedError(source, TRIPS_FILE, f"trip '{trip_id}' has direction_id '{raw}'")


def _parse_sequence(source: Path, row: dict[str, str]) -> int:
    try:
        return int(row["stop_sequence"])
    except ValueError as exc:
        raise FeedError(
            source,
            STOP_TIMES_FILE,
            f"trip '{row['trip_id']}' has stop_sequence '{row['stop_sequence']}'",
        ) from exc


def _load_stop_sequences(source: Path) -> dict[str, tuple[str, ...]]:
    """Return trip_id -> stop ids ordered by stop_sequence."""
    by_trip: dict[str, list[tuple[int, str]]] = defaultdict(list)
    for row in _read_rows(source, STOP_TIMES_FILE):
        by_trip[row["trip_id"]].append((_parse_sequence(source, row), row["stop_id"]))
    return {
        trip_id: tuple(stop for _, stop in sorted(visits))
        for trip_id, visits in by_trip.items()
    }


def load_feed(source: Path) -> FeedSnapshot:
    """Read a GTFS feed into memory.

    Args:
        source: GTFS zip file or directory holding the extracted files.

    Returns:
        FeedSnapshot with routes, stops and trips (stop sequences joined).

    Raises:
        FeedError: If a file or required column is missing, or a value
            cannot be parsed.
    """
    if not source.exists():
        raise FeedError(source, "-", "path does not exist")

    routes = tuple(
        RawRoute(
            route_id=row["route_id"],
            short_name=row["route_short_name"],
            long_name=row["route_long_name"],
            color=row.get("route_color", ""),
        )
        for row in _read_rows(source, ROUTES_FILE)
    )
    stops = tuple(
        RawStop(
            stop_id=row["stop_id"],
            code=row.get("stop_code", ""),
            name=row["stop_name"],
        )
        for row in _read_rows(source, STOPS_FILE)
    )
    sequences = _load_stop_sequences(source)
    trips = tuple(
        RawTrip(
            trip_id=row["trip_id"],
            route_id=row["route_id"],
            headsign=row.get("trip_headsign", ""),
            direction_id=_parse_direction(
                source, row["trip_id"], row.get("direction_id", "")
            ),
            stop_ids=sequences.get(row["trip_id"], ()),
        )
        for row in _read_rows(source, TRIPS_FILE)
    )

    logger.info(
        "Loaded feed %s: %d routes, %d stops, %d trips",
        source,
        len(routes),
        len(stops),
        len(trips),
    )
    return FeedSnapshot(routes=routes, stops=stops, trips=trips)
