"""
Unit tests for the vehicle mishap table and selector.

Tests lookups, triggers and the reroll-avoiding selector from
src/tables/mishap_tables.py.
"""

import pytest

from src.data_models import DiceRoller, Mishap, MishapDuration
from src.tables.mishap_tables import (
    MISHAP_TABLE,
    MishapSeverity,
    VehicleMishapState,
    can_repair_mishap,
    get_catalog_entry,
    get_mishap_result,
    get_mishap_roll_range,
    get_mishap_severity,
    get_repair_description,
    instantiate_mishap,
    mishap_triggered_by_damage,
    mishap_triggered_by_failed_check,
    roll_mishap_for_vehicle,
    unavailable_mishap_ids,
)


NON_STACKABLE = (
    "mishap_engine_flare",
    "mishap_locked_steering",
    "mishap_blinding_smoke",
    "mishap_damaged_axle",
    "mishap_flip",
)


def active(*catalog_ids):
    return [instantiate_mishap(get_catalog_entry(i)) for i in catalog_ids]


class TestMishapTable:
    """Tests for the catalog itself."""

    def test_every_roll_has_an_entry(self):
        for roll in range(1, 21):
            assert MISHAP_TABLE.lookup(roll) is not None

    @pytest.mark.parametrize("roll,name", [
        (1, "Engine Flare"),
        (3, "Locked Steering"),
        (6, "Furnace Rupture"),
        (9, "Weapon Malfunction"),
        (12, "Blinding Smoke"),
        (15, "Shedding Armor"),
        (18, "Damaged Axle"),
        (20, "Flip"),
    ])
    def test_lookup(self, roll, name):
        assert get_mishap_result(roll).name == name

    def test_out_of_range_rolls_are_clamped(self):
        assert get_mishap_result(0).name == "Engine Flare"
        assert get_mishap_result(25).name == "Flip"

    def test_severity(self):
        assert get_mishap_severity(20) == MishapSeverity.CATASTROPHIC
        assert get_mishap_severity(1) == MishapSeverity.SEVERE
        assert get_mishap_severity(18) == MishapSeverity.SEVERE
        assert get_mishap_severity(6) == MishapSeverity.MINOR
        assert get_mishap_severity(12) == MishapSeverity.MODERATE

    def test_repair_rules(self):
        flip = get_catalog_entry("mishap_flip")
        smoke = get_catalog_entry("mishap_blinding_smoke")
        assert not can_repair_mishap(flip)
        assert get_repair_description(flip) == "This mishap cannot be repaired."
        assert can_repair_mishap(smoke)
        assert get_repair_description(smoke).startswith("DC 15")

    def test_roll_range(self):
        assert get_mishap_roll_range(get_catalog_entry("mishap_locked_steering")) == "2-4"
        assert get_mishap_roll_range(get_catalog_entry("mishap_flip")) == "20"

    def test_unknown_catalog_id(self):
        assert get_catalog_entry("mishap_nope") is None


class TestTriggers:
    """Tests for when a mishap is rolled at all."""

    def test_damage_at_threshold(self):
        assert mishap_triggered_by_damage(20, 20)
        assert mishap_triggered_by_damage(45, 10)
        assert not mishap_triggered_by_damage(19, 20)

    def test_failed_check_by_five(self):
        assert mishap_triggered_by_failed_check(10, 15)
        assert not mishap_triggered_by_failed_check(11, 15)


class TestInstantiate:
    """Tests for turning catalog entries into active mishaps."""

    def test_fresh_identity(self):
        entry = get_catalog_entry("mishap_furnace_rupture")
        first = instantiate_mishap(entry)
        second = instantiate_mishap(entry)
        assert first.id != second.id
        assert first.catalog_id == entry.id
        assert first.base_id == entry.id

    def test_reinstantiating_keeps_catalog_id(self):
        entry = get_catalog_entry("mishap_furnace_rupture")
        assert instantiate_mishap(instantiate_mishap(entry)).catalog_id == entry.id

    def test_rounds_only_for_timed_mishaps(self):
        entry = get_catalog_entry("mishap_engine_flare")
        assert instantiate_mishap(entry, rounds=3).rounds_remaining is None
        stalled = Mishap(id="stalled", name="Stalled", roll_min=0, roll_max=0, duration=MishapDuration.ROUNDS)
        assert instantiate_mishap(stalled, rounds=3).rounds_remaining == 3


class TestSelector:
    """Tests for the reroll-avoiding selector."""

    @pytest.fixture
    def tormentor_state(self):
        return VehicleMishapState(base_speed=100, damage_threshold=10, weapon_count=1)

    def test_nothing_unavailable_on_a_fresh_vehicle(self, tormentor_state):
        assert unavailable_mishap_ids(tormentor_state) == set()

    def test_active_non_stackable_is_unavailable(self, tormentor_state):
        tormentor_state.active_mishaps = active("mishap_locked_steering")
        assert unavailable_mishap_ids(tormentor_state) == {"mishap_locked_steering"}

    def test_stackables_run_out(self):
        state = VehicleMishapState(
            base_speed=60,
            damage_threshold=10,
            weapon_count=0,
            active_mishaps=active("mishap_furnace_rupture", "mishap_furnace_rupture"),
        )
        unavailable = unavailable_mishap_ids(state)
        assert "mishap_furnace_rupture" in unavailable
        assert "mishap_weapon_malfunction" in unavailable
        assert "mishap_shedding_armor" not in unavailable

    def test_never_rolls_an_active_non_stackable(self, tormentor_state):
        tormentor_state.active_mishaps = active(*NON_STACKABLE)
        dice = DiceRoller(seed=7)
        for _ in range(50):
            result = roll_mishap_for_vehicle(tormentor_state, dice)
            assert result.mishap.id not in NON_STACKABLE

    def test_saturated_vehicle_gets_nothing(self):
        """A Devil's Ride with every outcome already in effect."""
        state = VehicleMishapState(
            base_speed=120,
            damage_threshold=5,
            weapon_count=0,
            active_mishaps=active(
                *NON_STACKABLE,
                *(["mishap_furnace_rupture"] * 4),
                "mishap_shedding_armor",
            ),
        )
        assert roll_mishap_for_vehicle(state, DiceRoller(seed=1)) is None

    def test_fallback_after_rerolls(self, tormentor_state):
        """With no redraws allowed the pick falls back to an available entry."""
        tormentor_state.active_mishaps = active(*NON_STACKABLE)
        result = roll_mishap_for_vehicle(tormentor_state, DiceRoller(seed=3), max_attempts=0)
        assert result.reroll_count == 0
        assert result.mishap.id not in unavailable_mishap_ids(tormentor_state)
        assert get_mishap_result(result.roll).id == result.mishap.id

    def test_seeded_selection_is_reproducible(self, tormentor_state):
        first = roll_mishap_for_vehicle(tormentor_state, DiceRoller(seed=11))
        second = roll_mishap_for_vehicle(tormentor_state, DiceRoller(seed=11))
        assert (first.roll, first.mishap.id) == (second.roll, second.mishap.id)
