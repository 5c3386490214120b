"""Shared pytest fixtures for the remapper tests.

Builds small GTFS feeds programmatically under tmp_path, both as an
extracted directory and as a zip archive. The feed exercises every remap
path: a table-listed route (18) whose feed directions are wrong, the T24
prefix band, a lettered suffix route (24C), and a default-path route (8)
whose headsigns need merging.
"""

from __future__ import annotations

import csv
import io
import zipfile
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

# ---------------------------------------------------------------------------
# Feed content
# ---------------------------------------------------------------------------

ROUTES_ROWS: list[list[str]] = [
    ["route_id", "route_short_name", "route_long_name", "route_color"],
    ["18", "18", "Secteur Cité du Sport / Terminus Terrebonne", ""],
    ["8", "8", "Angora / Terminus Terrebonne", ""],
    ["T24R", "T24", "Gascon / Place Longchamps", ""],
    ["24CR", "24C", "Gagnon / Grande Allée", ""],
]

ROUTE_18_EAST: list[str] = [
    "s85782",
    "s84106",
    "s84728",
    "s85117",
    "s85482",
    "s85144",
    "s85030",
    "s84889",
    "s84837",
    "s84875",
]
ROUTE_18_EAST_VARIANT: list[str] = [
    "s84872" if s == "s84728" else s for s in ROUTE_18_EAST
]
ROUTE_18_WEST: list[str] = [
    "s84875",
    "s84943",
    "s85117",
    "s85482",
    "s84726",
    "s84845",
    "s84998",
    "s85150",
    "s85782",
]
T24_EAST: list[str] = ["s85125", "s85135", "s84870"]
T24_WEST: list[str] = ["s85131", "s85134", "s85126"]

_CODED_STOPS: list[str] = sorted(
    set(ROUTE_18_EAST + ROUTE_18_EAST_VARIANT + ROUTE_18_WEST + T24_EAST + T24_WEST)
)

STOPS_ROWS: list[list[str]] = [
    ["stop_id", "stop_code", "stop_name"],
    *([s, s[1:], f"Arrêt {s[1:]}"] for s in _CODED_STOPS if s != "s85782"),
    ["s85782", "85782", "CITÉ DU SPORT"],
    ["s85782_merged_1", "85782", "Cité du sport (quai 2)"],
    ["MAS6G", "", "Face au 1234 Boulevard de Mascouche"],
    ["TER12A", "0", "Avenue Claude-Léveillée / Terminus"],
    ["LPL105A", "", "Montée Gagnon et Grande Allée"],
]

TRIPS_ROWS: list[list[str]] = [
    ["route_id", "trip_id", "trip_headsign", "direction_id"],
    # Route 18: feed headsign and direction flag are unreliable
    ["18", "t18-east-1", "Terminus Terrebonne", "0"],
    ["18", "t18-east-2", "Terminus Terrebonne", "0"],
    ["18", "t18-west-1", "Terminus Terrebonne", "0"],
    ["18", "t18-short", "Terminus Terrebonne", "1"],
    ["8", "t8-a", "Direction Terminus Terrebonne", "0"],
    ["8", "t8-b", "ANGORA / HANSEN", "0"],
    ["8", "t8-c", "Vers Secteur Angora", "1"],
    ["T24R", "t24-e", "Gascon", "0"],
    ["T24R", "t24-w", "Gascon", "0"],
    ["24CR", "t24c-1", "Express Gagnon Pm", ""],
]

TRIP_STOPS: dict[str, list[str]] = {
    "t18-east-1": ROUTE_18_EAST,
    "t18-east-2": ROUTE_18_EAST_VARIANT,
    "t18-west-1": ROUTE_18_WEST,
    "t18-short": ["s84875", "s85782"],
    "t8-a": ["MAS6G", "TER12A"],
    "t8-b": ["TER12A", "LPL105A"],
    "t8-c": ["LPL105A", "MAS6G"],
    "t24-e": T24_EAST,
    "t24-w": T24_WEST,
    "t24c-1": ["MAS6G", "LPL105A"],
}


def _stop_times_rows() -> list[list[str]]:
    rows = [["trip_id", "arrival_time", "stop_id", "stop_sequence"]]
    for trip_id, stops in TRIP_STOPS.items():
        # Written in reverse so readers must sort on stop_sequence
        for sequence, stop in reversed(list(enumerate(stops, start=1))):
            rows.append([trip_id, "08:00:00", stop, str(sequence * 5)])
    return rows


def _csv_bytes(rows: list[list[str]]) -> bytes:
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerows(rows)
    return buffer.getvalue().encode("utf-8")


def feed_files(
    routes: list[list[str]] | None = None,
    stops: list[list[str]] | None = None,
    trips: list[list[str]] | None = None,
    stop_times: list[list[str]] | None = None,
) -> dict[str, bytes]:
    """Return GTFS file name -> encoded content, with optional overrides."""
    return {
        "routes.txt": _csv_bytes(routes if routes is not None else ROUTES_ROWS),
        "stops.txt": _csv_bytes(stops if stops is not None else STOPS_ROWS),
        "trips.txt": _csv_bytes(trips if trips is not None else TRIPS_ROWS),
        "stop_times.txt": _csv_bytes(
            stop_times if stop_times is not None else _stop_times_rows()
        ),
    }


def write_feed_dir(target: Path, files: dict[str, bytes]) -> Path:
    target.mkdir(parents=True, exist_ok=True)
    for name, content in files.items():
        (target / name).write_bytes(content)
    return target


def write_feed_zip(target: Path, files: dict[str, bytes], prefix: str = "") -> Path:
    target.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(target, "w") as zf:
        for name, content in files.items():
            zf.writestr(f"{prefix}{name}", content)
    return target


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def feed_dir(tmp_path: Path) -> Path:
    """Extracted GTFS feed directory."""
    return write_feed_dir(tmp_path / "gtfs", feed_files())


@pytest.fixture()
def feed_zip(tmp_path: Path) -> Path:
    """GTFS feed zip archive with the files at the archive root."""
    return write_feed_zip(tmp_path / "google_transit.zip", feed_files())


@pytest.fixture()
def feed_zip_bytes(feed_zip: Path) -> bytes:
    """Raw bytes of the feed zip, for mocked downloads."""
    return feed_zip.read_bytes()


@pytest.fixture(autouse=True)
def _clear_mrclm_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep MRCLM_* variables from the host out of every test."""
    for name in ("MRCLM_FEED_URL", "MRCLM_OUTPUT_DIR", "MRCLM_DIRECTION_SPECS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def make_feed_dir(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a feed directory with selected files overridden.

    Keyword arguments (routes, stops, trips, stop_times) take row lists,
    header first. A ``drop`` keyword removes files by name.
    """
    counter = iter(range(1_000))

    def _make(drop: tuple[str, ...] = (), **overrides: list[list[str]]) -> Path:
        files = feed_files(**overrides)
        for name in drop:
            files.pop(name)
        return write_feed_dir(tmp_path / f"feed-{next(counter)}", files)

    return _make


@pytest.fixture()
def nested_feed_zip(tmp_path: Path) -> Path:
    """GTFS feed zip whose files sit under a top-level folder."""
    return write_feed_zip(tmp_path / "nested.zip", feed_files(), prefix="gtfs/")
