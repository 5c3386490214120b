"""Tests for the route direction specification table (mrclm/direction_specs.py)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from mrclm.direction_specs import (
    DEFAULT_REGISTRY,
    Anchor,
    DirectionLabel,
    DirectionSpec,
    DirectionSpecRegistry,
    RouteDirectionSpec,
    VariantGroup,
    load_direction_specs,
    validate_route_spec,
)
from mrclm.errors import ConfigurationError
from mrclm.normalize import normalize_headsign

if TYPE_CHECKING:
    from pathlib import Path


def _direction(label: DirectionLabel, *slots: int | tuple[int, ...]) -> DirectionSpec:
    return DirectionSpec(
        label=label,
        headsign=label.value.title(),
        slots=tuple(
            VariantGroup(s) if isinstance(s, tuple) else Anchor(s) for s in slots
        ),
    )


def _spec(first: DirectionSpec, second: DirectionSpec) -> RouteDirectionSpec:
    return RouteDirectionSpec(route_id=900, directions=(first, second))


class TestSlots:
    """Anchor and VariantGroup behaviour."""

    def test_anchor_matches_only_its_stop(self) -> None:
        anchor = Anchor(85117)
        assert anchor.matches(85117)
        assert not anchor.matches(85482)
        assert anchor.members == (85117,)

    def test_variant_group_matches_any_member(self) -> None:
        group = VariantGroup((84728, 84872))
        assert group.matches(84872)
        assert not group.matches(85117)

    def test_variant_group_needs_two_members(self) -> None:
        with pytest.raises(ConfigurationError, match="at least two"):
            VariantGroup((84728,))

    def test_variant_group_rejects_duplicates(self) -> None:
        with pytest.raises(ConfigurationError, match="duplicate"):
            VariantGroup((84728, 84728))

    def test_position_reports_slot_and_member(self) -> None:
        direction = _direction(DirectionLabel.EAST, 1, (2, 3), 4)
        assert direction.position(1) == (0, 0)
        assert direction.position(3) == (1, 1)
        assert direction.position(4) == (2, 0)
        assert direction.position(99) is None


class TestValidation:
    """Rules enforced when a table entry is built."""

    def test_same_labels_rejected(self) -> None:
        spec = _spec(
            _direction(DirectionLabel.EAST, 1, 2), _direction(DirectionLabel.EAST, 2, 1)
        )
        with pytest.raises(ConfigurationError, match="both directions labelled east"):
            validate_route_spec(spec)

    def test_both_empty_rejected(self) -> None:
        spec = _spec(_direction(DirectionLabel.NORTH), _direction(DirectionLabel.SOUTH))
        with pytest.raises(ConfigurationError, match="both references are empty"):
            validate_route_spec(spec)

    def test_one_empty_reference_is_allowed(self) -> None:
        spec = _spec(
            _direction(DirectionLabel.NORTH, 1, 2, 3), _direction(DirectionLabel.SOUTH)
        )
        validate_route_spec(spec)

    def test_repeated_stop_rejected(self) -> None:
        spec = _spec(
            _direction(DirectionLabel.EAST, 1, (2, 3), 2),
            _direction(DirectionLabel.WEST, 5, 6),
        )
        with pytest.raises(ConfigurationError, match="repeats stop"):
            validate_route_spec(spec)

    def test_contradictory_interior_order_rejected(self) -> None:
        spec = _spec(
            _direction(DirectionLabel.EAST, 1, 2, 3, 4),
            _direction(DirectionLabel.WEST, 5, 3, 2, 6),
        )
        with pytest.raises(ConfigurationError, match="ordered differently"):
            validate_route_spec(spec)

    def test_shared_terminals_may_swap(self) -> None:
        spec = _spec(
            _direction(DirectionLabel.EAST, 1, 2, 3, 4),
            _direction(DirectionLabel.WEST, 4, 2, 3, 1),
        )
        validate_route_spec(spec)

    def test_registry_rejects_duplicate_route(self) -> None:
        spec = _spec(
            _direction(DirectionLabel.EAST, 1, 2), _direction(DirectionLabel.WEST, 2, 1)
        )
        with pytest.raises(ConfigurationError, match="duplicate route entry"):
            DirectionSpecRegistry([spec, spec])


class TestDefaultRegistry:
    """The embedded table."""

    def test_contains_route_18_and_t24(self) -> None:
        assert DEFAULT_REGISTRY.route_ids == frozenset({18, 20024})
        assert 18 in DEFAULT_REGISTRY
        assert 8 not in DEFAULT_REGISTRY
        assert len(DEFAULT_REGISTRY) == 2

    def test_headsigns_are_already_normalized(self) -> None:
        for spec in DEFAULT_REGISTRY:
            for direction in spec.directions:
                assert normalize_headsign(direction.headsign) == direction.headsign

    def test_route_18_directions(self) -> None:
        spec = DEFAULT_REGISTRY.get(18)
        assert spec is not None
        east, west = spec.directions
        assert east.headsign == "Term Terrebonne"
        assert west.headsign == "Cité Du Sport"
        assert spec.direction_id(DirectionLabel.WEST) == 1
        # Both directions share the same terminals, swapped
        assert east.slots[0] == west.slots[-1] == Anchor(85782)
        assert east.slots[-1] == west.slots[0] == Anchor(84875)

    def test_missing_label_raises(self) -> None:
        spec = DEFAULT_REGISTRY.get(18)
        assert spec is not None
        with pytest.raises(KeyError):
            spec.direction_id(DirectionLabel.NORTH)

    def test_unlisted_route_returns_none(self) -> None:
        assert DEFAULT_REGISTRY.get(8) is None


class TestLoadDirectionSpecs:
    """TOML loader."""

    def test_loads_anchors_and_variant_groups(self, tmp_path: Path) -> None:
        path = tmp_path / "specs.toml"
        path.write_text(
            """
[[route]]
route_id = 42
reason = "same headsigns"

[[route.direction]]
label = "North"
headsign = "Terminus Nord"
stops = [10, [11, 12], 13]

[[route.direction]]
label = "south"
headsign = "Terminus Sud"
stops = []
""",
            encoding="utf-8",
        )
        registry = load_direction_specs(path)

        spec = registry.get(42)
        assert spec is not None
        north, south = spec.directions
        assert north.label is DirectionLabel.NORTH
        assert north.slots == (Anchor(10), VariantGroup((11, 12)), Anchor(13))
        assert south.is_empty
        assert spec.reason == "same headsigns"

    def test_wrong_direction_count_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "specs.toml"
        path.write_text(
            '[[route]]\nroute_id = 1\n[[route.direction]]\nlabel = "east"\n'
            'headsign = "A"\nstops = [1]\n',
            encoding="utf-8",
        )
        with pytest.raises(ConfigurationError, match="exactly 2 directions"):
            load_direction_specs(path)

    def test_unknown_label_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "specs.toml"
        path.write_text(
            "[[route]]\nroute_id = 1\n"
            '[[route.direction]]\nlabel = "up"\nheadsign = "A"\nstops = [1]\n'
            '[[route.direction]]\nlabel = "east"\nheadsign = "B"\nstops = [2]\n',
            encoding="utf-8",
        )
        with pytest.raises(ConfigurationError, match="invalid direction"):
            load_direction_specs(path)

    def test_bad_stop_value_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "specs.toml"
        path.write_text(
            "[[route]]\nroute_id = 1\n"
            '[[route.direction]]\nlabel = "east"\nheadsign = "A"\nstops = ["x"]\n'
            '[[route.direction]]\nlabel = "west"\nheadsign = "B"\nstops = [2]\n',
            encoding="utf-8",
        )
        with pytest.raises(ConfigurationError, match="bad stop"):
            load_direction_specs(path)

    @pytest.mark.parametrize(
        ("text", "match"),
        [
            ("route = 5\n", "array of tables"),
            ('route = ["x"]\n', r"\[\[route\]\] must be a table"),
            ('[[route]]\nroute_id = 1\ndirection = "east"\n', "exactly 2 directions"),
            (
                "[[route]]\nroute_id = 1\ndirection = [1, 2]\n",
                r"\[\[route.direction\]\] must be a table",
            ),
            (
                "[[route]]\nroute_id = 1\n"
                '[[route.direction]]\nlabel = "east"\nheadsign = "A"\nstops = 1\n'
                '[[route.direction]]\nlabel = "west"\nheadsign = "B"\nstops = [2]\n',
                "stops must be a list",
            ),
        ],
    )
    def test_wrong_value_types_raise(
        self, tmp_path: Path, text: str, match: str
    ) -> None:
        path = tmp_path / "specs.toml"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(ConfigurationError, match=match):
            load_direction_specs(path)

    def test_malformed_toml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "specs.toml"
        path.write_text("[[route]\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="direction_spec_file"):
            load_direction_specs(path)

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="direction_spec_file"):
            load_direction_specs(tmp_path / "absent.toml")
