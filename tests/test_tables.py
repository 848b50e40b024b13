"""
Unit tests for roll tables, complication tables and engagement scales.

Tests src/tables/table_types.py, src/tables/complication_tables.py and
src/tables/scale_tables.py.
"""

import pytest

from src.data_models import Ability, DiceRoller, ScaleName
from src.tables import (
    COMPLICATION_CUTOFF,
    DieType,
    RollTable,
    calculate_closing_speed,
    calculate_movement_per_round,
    calculate_new_distance,
    format_distance,
    format_roll_range,
    get_complication_roll_range,
    get_complications_for_scale,
    get_scale_config,
    get_scale_for_distance,
    lookup_complication,
    roll_complication,
    should_transition_scale,
)
from src.tables.scale_tables import is_action_available


# =============================================================================
# ROLL TABLES
# =============================================================================


class TestRollTable:
    """Tests for the generic roll table."""

    @pytest.fixture
    def gappy_table(self):
        return RollTable(
            table_id="test",
            name="Test",
            die_type=DieType.D6,
            entries=[lookup_complication(1, ScaleName.TACTICAL)],
        )

    def test_die_sides(self):
        assert DieType.D20.sides == 20
        assert DieType.D100.sides == 100

    def test_gap_resolves_to_nothing(self, gappy_table):
        assert gappy_table.lookup(1).name == "Creature Chase"
        assert gappy_table.lookup(5) is None

    def test_rolls_are_clamped(self, gappy_table):
        assert gappy_table.lookup(-3).name == "Creature Chase"
        assert gappy_table.clamp(99) == 6

    def test_roll_uses_die(self, gappy_table):
        roll, entry = gappy_table.roll(DiceRoller(seed=5))
        assert 1 <= roll <= 6
        assert (entry is None) == (roll > 2)


# =============================================================================
# COMPLICATIONS
# =============================================================================


class TestComplicationTables:
    """Tests for per-scale complication lookups."""

    def test_above_cutoff_is_clear(self):
        for scale in ScaleName:
            for roll in range(COMPLICATION_CUTOFF + 1, 21):
                assert lookup_complication(roll, scale) is None

    def test_every_roll_up_to_cutoff_has_an_entry(self):
        for scale in ScaleName:
            for roll in range(1, COMPLICATION_CUTOFF + 1):
                assert lookup_complication(roll, scale) is not None

    @pytest.mark.parametrize("roll,scale,name", [
        (6, ScaleName.TACTICAL, "Fiend Herd"),
        (10, ScaleName.TACTICAL, "Ground Collapse"),
        (8, ScaleName.APPROACH, "Flanking Threat"),
        (1, ScaleName.STRATEGIC, "Wrong Turn"),
        (4, ScaleName.POINT_BLANK, "Collision Course"),
    ])
    def test_lookup(self, roll, scale, name):
        assert lookup_complication(roll, scale).name == name

    def test_fiend_herd_halves_speed(self):
        herd = lookup_complication(6, ScaleName.TACTICAL)
        assert herd.save_ability == Ability.DEX
        assert herd.difficulty == 15
        assert herd.failure_speed_multiplier == 0.5

    def test_shared_entries_across_scales(self):
        assert lookup_complication(3, ScaleName.APPROACH) is lookup_complication(3, ScaleName.TACTICAL)

    def test_tables_by_scale(self):
        assert get_complications_for_scale(ScaleName.STRATEGIC).table_id == "complications_strategic"

    def test_roll_ranges(self):
        assert get_complication_roll_range(None) == "11-20"
        assert get_complication_roll_range(lookup_complication(1, ScaleName.TACTICAL)) == "1-2"
        assert format_roll_range(lookup_complication(6, ScaleName.TACTICAL)) == "6"

    def test_roll(self):
        roll, complication = roll_complication(ScaleName.TACTICAL, DiceRoller(seed=2))
        assert 1 <= roll <= 20
        assert (complication is None) == (roll > COMPLICATION_CUTOFF)


# =============================================================================
# SCALES
# =============================================================================


class TestScales:
    """Tests for engagement scale rules."""

    @pytest.mark.parametrize("distance,scale", [
        (0, ScaleName.POINT_BLANK),
        (99, ScaleName.POINT_BLANK),
        (100, ScaleName.TACTICAL),
        (999, ScaleName.TACTICAL),
        (1000, ScaleName.APPROACH),
        (5280, ScaleName.STRATEGIC),
    ])
    def test_scale_for_distance(self, distance, scale):
        assert get_scale_for_distance(distance) == scale

    def test_transition(self):
        assert should_transition_scale(ScaleName.TACTICAL, 500) == (False, ScaleName.TACTICAL)
        assert should_transition_scale(ScaleName.TACTICAL, 50) == (True, ScaleName.POINT_BLANK)

    def test_round_timing(self):
        assert get_scale_config(ScaleName.STRATEGIC).round_duration == 600
        assert get_scale_config(ScaleName.POINT_BLANK).round_duration_display == "6 seconds"

    def test_movement(self):
        assert calculate_movement_per_round(100, ScaleName.TACTICAL) == 300
        assert calculate_movement_per_round(100, ScaleName.APPROACH) == 1000

    def test_closing_speed(self):
        assert calculate_closing_speed(120, 100, ScaleName.TACTICAL) == 60
        assert calculate_closing_speed(100, 120, ScaleName.TACTICAL) == -60

    def test_new_distance_never_negative(self):
        assert calculate_new_distance(200, 120, 100, ScaleName.TACTICAL) == 140
        assert calculate_new_distance(30, 120, 100, ScaleName.TACTICAL) == 0

    def test_actions(self):
        assert is_action_available("ram", ScaleName.POINT_BLANK)
        assert is_action_available("ram", ScaleName.TACTICAL)
        assert not is_action_available("ram", ScaleName.STRATEGIC)

    def test_format_distance(self):
        assert format_distance(450) == "450 ft"
        assert format_distance(10560) == "2.0 miles"
