"""Run configuration for the MRCLM feed remapper.

Defaults describe the MRCLM (Les Moulins) bus feed published by exo. Each
value can be overridden from an optional TOML file (``[feed]`` table) and
then from environment variables, in that order of precedence:

    MRCLM_FEED_URL          download URL of the GTFS zip
    MRCLM_OUTPUT_DIR        directory receiving the remapped CSV files
    MRCLM_DIRECTION_SPECS   TOML direction specification table to use
                            instead of the embedded one
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Final

from mrclm.errors import ConfigurationError

logger: Final[logging.Logger] = logging.getLogger(__name__)

DEFAULT_FEED_URL: Final[str] = "https://rtm.quebec/xdata/mrclm/google_transit.zip"
DEFAULT_OUTPUT_DIR: Final[str] = "output"

_ENV_FEED_URL: Final[str] = "MRCLM_FEED_URL"
_ENV_OUTPUT_DIR: Final[str] = "MRCLM_OUTPUT_DIR"
_ENV_DIRECTION_SPECS: Final[str] = "MRCLM_DIRECTION_SPECS"


@dataclass(frozen=True, slots=True)
class FeedConfig:
    """Immutable configuration for one remap run.

    Attributes:
        feed_url: Where --download fetches the GTFS zip from.
        output_dir: Directory receiving routes.csv, stops.csv and trips.csv.
        direction_specs: Optional TOML table replacing the embedded one.
    """

    feed_url: str = DEFAULT_FEED_URL
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    direction_specs: Path | None = None


def _from_toml(config: FeedConfig, path: Path) -> FeedConfig:
    try:
        with path.open("rb") as fh:
            data: dict[str, Any] = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError("config_file", str(path), str(exc)) from exc

    feed = data.get("feed", {})
    if not isinstance(feed, dict):
        raise ConfigurationError("config_file", str(path), "[feed] must be a table")

    changes: dict[str, Any] = {}
    if "feed_url" in feed:
        changes["feed_url"] = str(feed["feed_url"])
    if "output_dir" in feed:
        changes["output_dir"] = Path(str(feed["output_dir"]))
    if "direction_specs" in feed:
        # Relative paths resolve against the config file's directory
        changes["direction_specs"] = path.parent / str(feed["direction_specs"])

    unknown = sorted(set(feed) - set(FeedConfig.__dataclass_fields__))
    if unknown:
        logger.warning("Ignoring unknown [feed] keys in %s: %s", path, unknown)
    return replace(config, **changes)


def _from_environment(config: FeedConfig) -> FeedConfig:
    changes: dict[str, Any] = {}
    if feed_url := os.environ.get(_ENV_FEED_URL, ""):
        changes["feed_url"] = feed_url
    if output_dir := os.environ.get(_ENV_OUTPUT_DIR, ""):
        changes["output_dir"] = Path(output_dir)
    if direction_specs := os.environ.get(_ENV_DIRECTION_SPECS, ""):
        changes["direction_specs"] = Path(direction_specs)
    return replace(config, **changes)


def load_feed_config(path: Path | None = None) -> FeedConfig:
    """Resolve the run configuration.

    Args:
        path: Optional TOML file with a [feed] table.

    Returns:
        Defaults, overridden by the file, overridden by the environment.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    config = FeedConfig()
    if path is not None:
        config = _from_toml(config, path)
        logger.debug("Loaded configuration from %s", path)
    return _from_environment(config)
