"""Fatal error taxonomy for the MRCLM feed remapper.

Every error raised here aborts the run: a wrong direction or label in the
published data is worse than a loud failure during curation. The only
recovery is to update the static tables and re-run. Errors propagate to
the CLI entry point in remap.py, which logs them and exits non-zero.
"""

from __future__ import annotations

from typing import Final


class RemapError(Exception):
    """Base class for all fatal remapping errors."""


class ConfigurationError(RemapError):
    """Raised when an observed raw value has no matching static table entry.

    Attributes:
        kind: Which table was consulted (e.g. "route_id", "stop_id").
        value: The raw value that could not be resolved.
    """

    def __init__(self, kind: str, value: str, detail: str = "") -> None:
        self.kind: Final[str] = kind
        self.value: Final[str] = value
        message = f"Unexpected {kind} '{value}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class AlignmentError(RemapError):
    """Raised when a table-listed route's trip cannot be scored against
    either reference direction, or both directions score identically with
    no tie-break available.

    Attributes:
        route_id: Canonical route id of the trip.
        trip_id: Raw trip id from the feed.
        scores: Alignment score per direction label.
    """

    def __init__(
        self,
        route_id: int,
        trip_id: str,
        scores: dict[str, int],
        detail: str,
    ) -> None:
        self.route_id: Final[int] = route_id
        self.trip_id: Final[str] = trip_id
        self.scores: Final[dict[str, int]] = scores
        super().__init__(
            f"Route {route_id} trip '{trip_id}' cannot be assigned a direction "
            f"(scores {scores}): {detail}"
        )


class MergeConflictError(RemapError):
    """Raised when two headsigns share a direction without an allow-list entry.

    Attributes:
        route_id: Canonical route id.
        direction_id: Direction shared by the conflicting trips.
        headsigns: The two labels that could not be merged.
    """

    def __init__(
        self,
        route_id: int,
        direction_id: int,
        headsigns: tuple[str, str],
    ) -> None:
        self.route_id: Final[int] = route_id
        self.direction_id: Final[int] = direction_id
        self.headsigns: Final[tuple[str, str]] = headsigns
        super().__init__(
            f"Unexpected trips to merge on route {route_id} "
            f"direction {direction_id}: '{headsigns[0]}' & '{headsigns[1]}'"
        )
