"""
Unit tests for the encounter engine.

Tests EncounterEngine.apply from src/encounter/encounter_engine.py: turn
order, turn and round flow, vehicle destruction, damage, mishaps, speed
modifiers, crew management, complications and setup events.
"""

import copy
import math
from dataclasses import dataclass
from typing import ClassVar

import pytest

from src.content_loader.vehicle_templates import FLAMETHROWER
from src.data_models import (
    CrewAssignment,
    ElevationZone,
    EncounterPhase,
    EncounterSnapshot,
    Faction,
    LogEntryType,
    Mishap,
    MishapDuration,
    Position,
    ResolutionStatus,
    ScaleName,
    SpeedModifierDuration,
    TurnEntry,
    TurnEntryKind,
)
from src.encounter import events as ev
from src.encounter.encounter_engine import EncounterEngine, EngineConfig, apply
from src.encounter.views import get_current_actor
from src.tables.complication_tables import lookup_complication
from src.tables.mishap_tables import get_catalog_entry
from tests.helpers import apply_all, crew_events, entry_ids, make_creature, make_vehicle


@dataclass(frozen=True)
class UnknownEvent(ev.EncounterEvent):
    kind: ClassVar[str] = "unknown"


def in_combat(engine, chase):
    return engine.apply(ev.StartCombat(), chase["snapshot"])


def actions(snapshot) -> list[str]:
    return [entry.action for entry in snapshot.log]


# =============================================================================
# TURN ORDER
# =============================================================================


class TestStartCombat:
    """Tests for building the turn order."""

    def test_driven_vehicle_creature_then_undriven_vehicle(self, engine, chase):
        """A driven vehicle, a lone creature and an undriven vehicle order by initiative."""
        snapshot = in_combat(engine, chase)
        assert entry_ids(snapshot) == [chase["tormentor"].id, chase["imp"].id, chase["ride"].id]

    def test_combat_state(self, engine, chase):
        """Starting combat sets phase, round and index, and logs it."""
        snapshot = in_combat(engine, chase)
        assert snapshot.phase == EncounterPhase.COMBAT
        assert snapshot.round == 1
        assert snapshot.current_turn_index == 0
        assert snapshot.log[-1].action == "Combat begins! Round 1"
        assert snapshot.log[-1].type == LogEntryType.ROUND_START

    def test_crewed_creatures_are_not_in_order(self, engine, chase):
        """Crew act on their vehicle's turn."""
        ids = entry_ids(in_combat(engine, chase))
        assert chase["driver"].id not in ids
        assert chase["gunner"].id not in ids

    def test_ties_break_by_case_sensitive_name(self, engine):
        """Equal initiatives sort by name, uppercase first."""
        amy = make_creature("amy", initiative=10)
        zed = make_creature("Zed", initiative=10)
        snapshot = apply_all(
            engine, EncounterSnapshot(),
            ev.AddCreature(creature=amy), ev.AddCreature(creature=zed), ev.StartCombat(),
        )
        assert entry_ids(snapshot) == [zed.id, amy.id]

    def test_wrecked_vehicle_left_out(self, engine, chase):
        """Inoperative vehicles never get a slot."""
        snapshot = engine.apply(ev.DamageVehicle(chase["ride"].id, 30, check_mishap=False), chase["snapshot"])
        snapshot = engine.apply(ev.StartCombat(), snapshot)
        assert chase["ride"].id not in entry_ids(snapshot)

    def test_start_twice_is_noop(self, engine, chase):
        """A running combat cannot be started again."""
        snapshot = in_combat(engine, chase)
        assert engine.apply(ev.StartCombat(), snapshot) is snapshot


# =============================================================================
# TURN AND ROUND FLOW
# =============================================================================


class TestTurnFlow:
    """Tests for next/previous turn and next round."""

    def test_next_turn_advances_and_logs(self, engine, chase):
        """The next active entry becomes current."""
        snapshot = engine.apply(ev.NextTurn(), in_combat(engine, chase))
        assert snapshot.current_turn_index == 1
        assert snapshot.log[-1].action == "Imp's turn"

    def test_undriven_vehicle_turn_uses_vehicle_name(self, engine, chase):
        """A vehicle with nobody at the helm is announced by its own name."""
        snapshot = apply_all(engine, in_combat(engine, chase), ev.NextTurn(), ev.NextTurn())
        assert snapshot.log[-1].action == "Devil's Ride's turn"

    def test_next_turn_at_end_is_noop(self, engine, chase):
        """Nothing follows the last entry; the caller must start a new round."""
        snapshot = apply_all(engine, in_combat(engine, chase), ev.NextTurn(), ev.NextTurn())
        assert snapshot.current_turn_index == 2
        assert engine.apply(ev.NextTurn(), snapshot) is snapshot

    def test_dead_npc_is_skipped(self, engine, chase):
        """A non-player creature at 0 HP loses its turn."""
        snapshot = engine.apply(ev.DamageCreature(chase["imp"].id, 20), in_combat(engine, chase))
        snapshot = engine.apply(ev.NextTurn(), snapshot)
        assert snapshot.turn_order[snapshot.current_turn_index].id == chase["ride"].id

    def test_downed_player_character_still_acts(self, engine, chase):
        """Player characters at 0 HP keep their turn for death saves."""
        hero = make_creature("Hero", initiative=12, creature_type="pc")
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.AddCreature(creature=hero), ev.StartCombat(), ev.DamageCreature(hero.id, 50),
        )
        snapshot = engine.apply(ev.NextTurn(), snapshot)
        assert snapshot.turn_order[snapshot.current_turn_index].id == hero.id

    def test_previous_turn(self, engine, chase):
        """Stepping back stops at the first entry."""
        snapshot = in_combat(engine, chase)
        assert engine.apply(ev.PreviousTurn(), snapshot) is snapshot
        snapshot = apply_all(engine, snapshot, ev.NextTurn(), ev.PreviousTurn())
        assert snapshot.current_turn_index == 0

    def test_next_round(self, engine, chase):
        """A new round bumps the counter and restarts the order."""
        snapshot = apply_all(engine, in_combat(engine, chase), ev.NextTurn(), ev.NextRound())
        assert snapshot.round == 2
        assert snapshot.current_turn_index == 0
        assert snapshot.log[-1].action == "Round 2 begins"

    def test_turn_events_need_combat(self, engine, chase):
        """Turn flow is ignored outside combat."""
        snapshot = chase["snapshot"]
        for event in (ev.NextTurn(), ev.PreviousTurn(), ev.NextRound(), ev.EndCombat()):
            assert engine.apply(event, snapshot) is snapshot

    def test_round_rebuild_restores_initiative_order(self, engine, chase):
        """A creature that exited mid-round moves to its sorted slot next round."""
        snapshot = in_combat(engine, chase)
        snapshot = engine.apply(ev.UnassignCrew(chase["gunner"].id), snapshot)
        assert entry_ids(snapshot) == [
            chase["tormentor"].id, chase["gunner"].id, chase["imp"].id, chase["ride"].id,
        ]
        snapshot = engine.apply(ev.NextRound(), snapshot)
        assert entry_ids(snapshot) == [
            chase["tormentor"].id, chase["imp"].id, chase["gunner"].id, chase["ride"].id,
        ]

    def test_round_rebuild_drops_the_dead(self, engine, chase):
        """Dead non-player creatures leave the order at the round boundary."""
        snapshot = engine.apply(ev.DamageCreature(chase["imp"].id, 20), in_combat(engine, chase))
        snapshot = engine.apply(ev.NextRound(), snapshot)
        assert chase["imp"].id not in entry_ids(snapshot)

    def test_dead_driver_keeps_vehicle_slot(self, engine, chase):
        """A vehicle whose driver died still takes its turn on that initiative."""
        snapshot = engine.apply(ev.DamageCreature(chase["driver"].id, 20), chase["snapshot"])
        snapshot = engine.apply(ev.StartCombat(), snapshot)
        assert entry_ids(snapshot)[0] == chase["tormentor"].id


# =============================================================================
# VEHICLE DESTRUCTION
# =============================================================================


class TestVehicleDestruction:
    """Tests for a vehicle dropping to 0 HP."""

    @pytest.fixture
    def rig_fight(self, engine, rig_template):
        rig = make_vehicle(rig_template, "Rig", position=Position(100, 100))
        driver = make_creature("Driver", initiative=14)
        gunner = make_creature("Gunner", initiative=5)
        scout = make_creature("Scout", initiative=9, position=Position(400, 400))
        snapshot = apply_all(
            engine, EncounterSnapshot(),
            ev.AddVehicle(vehicle=rig),
            *crew_events(driver, rig, "helm"),
            *crew_events(gunner, rig, "gun_deck"),
            ev.AddCreature(creature=scout),
            ev.StartCombat(),
        )
        return snapshot, rig, driver, gunner, scout

    def test_one_big_hit_destroys_and_ejects(self, engine, rig_fight):
        """A 40 HP two-crew rig taking 45 in one hit is wrecked and its crew thrown clear."""
        snapshot, rig, driver, gunner, scout = rig_fight
        result = engine.apply(ev.DamageVehicle(rig.id, 45, "Wrecking ball"), snapshot)

        vehicle = result.get_vehicle(rig.id)
        assert vehicle.current_hp == 0
        assert vehicle.is_inoperative
        assert result.crew_for_vehicle(rig.id) == []
        assert rig.id not in entry_ids(result)
        for creature_id in (driver.id, gunner.id):
            creature = result.get_creature(creature_id)
            assert creature.position is not None
            distance = math.hypot(creature.position.x - 100, creature.position.y - 100)
            assert distance <= 15 + 1e-9

    def test_destruction_logs_and_rolls_mishap(self, engine, rig_fight):
        """Destruction is summarized, and 45 over a threshold of 10 rolls a mishap."""
        snapshot, rig, *_ = rig_fight
        result = engine.apply(ev.DamageVehicle(rig.id, 45), snapshot)
        destroyed = [e for e in result.log if e.action == "Rig is destroyed! All crew ejected."]
        assert len(destroyed) == 1
        assert "2 creature(s)" in destroyed[0].details
        assert any(e.type == LogEntryType.MISHAP for e in result.log)

    def test_ejected_crew_inserted_by_initiative(self, engine, rig_fight):
        """Ejected crew join the running order in descending initiative."""
        snapshot, rig, driver, gunner, scout = rig_fight
        result = engine.apply(ev.DamageVehicle(rig.id, 45), snapshot)
        assert entry_ids(result) == [driver.id, scout.id, gunner.id]

    def test_removing_current_entry_moves_index_back(self, engine, chase):
        """Destroying the acting vehicle steps the index back by one."""
        snapshot = apply_all(engine, in_combat(engine, chase), ev.NextTurn(), ev.NextTurn())
        assert snapshot.current_turn_index == 2
        result = engine.apply(ev.DamageVehicle(chase["ride"].id, 30, check_mishap=False), snapshot)
        assert result.current_turn_index == 1
        assert entry_ids(result) == [chase["tormentor"].id, chase["imp"].id]

    def test_ejection_keeps_the_current_actor(self, engine, rig_template):
        """Crew thrown clear ahead of the acting creature do not take its turn."""
        rig = make_vehicle(rig_template, "Rig", position=Position(100, 100))
        driver = make_creature("Driver", initiative=14)
        gunner = make_creature("Gunner", initiative=3)
        scout = make_creature("Scout", initiative=20, position=Position(400, 400))
        imp = make_creature("Imp", initiative=5, creature_type="fiend", position=Position(300, 300))
        snapshot = apply_all(
            engine, EncounterSnapshot(),
            ev.AddVehicle(vehicle=rig),
            *crew_events(driver, rig, "helm"),
            *crew_events(gunner, rig, "gun_deck"),
            ev.AddCreature(creature=scout),
            ev.AddCreature(creature=imp),
            ev.StartCombat(),
            ev.NextTurn(),
            ev.NextTurn(),
        )
        assert get_current_actor(snapshot).name == "Imp"

        result = engine.apply(ev.DamageVehicle(rig.id, 45, check_mishap=False), snapshot)
        assert entry_ids(result) == [scout.id, driver.id, imp.id, gunner.id]
        assert get_current_actor(result).name == "Imp"
        assert get_current_actor(engine.apply(ev.NextTurn(), result)).name == "Gunner"

    def test_late_arrival_keeps_the_current_actor(self, engine, chase):
        snapshot = apply_all(engine, in_combat(engine, chase), ev.NextTurn())
        assert get_current_actor(snapshot).name == "Imp"
        late = make_creature("Latecomer", initiative=20)
        result = engine.apply(ev.AddCreature(creature=late), snapshot)
        assert result.turn_order[0].id == late.id
        assert get_current_actor(result).name == "Imp"

    def test_destruction_happens_once(self, engine, rig_fight):
        """Further damage to a wreck does not destroy it again."""
        snapshot, rig, *_ = rig_fight
        result = apply_all(
            engine, snapshot,
            ev.DamageVehicle(rig.id, 45, check_mishap=False),
            ev.DamageVehicle(rig.id, 5, check_mishap=False),
        )
        assert sum(1 for a in actions(result) if "is destroyed" in a) == 1

    def test_healing_does_not_restore_a_wreck(self, engine, rig_fight):
        """Repairs add HP but the wreck stays out of action."""
        snapshot, rig, *_ = rig_fight
        result = apply_all(
            engine, snapshot,
            ev.DamageVehicle(rig.id, 45, check_mishap=False),
            ev.HealVehicle(rig.id, 10),
        )
        vehicle = result.get_vehicle(rig.id)
        assert vehicle.current_hp == 10
        assert vehicle.is_inoperative

    def test_setting_hp_to_zero_destroys(self, engine, rig_fight):
        """Editing HP down to 0 has the same side effects as damage."""
        snapshot, rig, *_ = rig_fight
        result = engine.apply(ev.UpdateVehicle(rig.id, current_hp=0), snapshot)
        assert result.get_vehicle(rig.id).is_inoperative
        assert result.crew_for_vehicle(rig.id) == []

    def test_destruction_in_setup_leaves_order_empty(self, engine, chase):
        """Outside combat the crew are placed but nobody joins a turn order."""
        result = engine.apply(
            ev.DamageVehicle(chase["tormentor"].id, 100, check_mishap=False), chase["snapshot"]
        )
        assert result.turn_order == []
        assert result.get_creature(chase["driver"].id).position is not None


# =============================================================================
# DAMAGE AND MISHAPS
# =============================================================================


class TestDamageAndMishaps:
    """Tests for damage, healing and mishaps."""

    def test_damage_below_mishap_threshold(self, engine, chase):
        """Small hits only cost HP."""
        result = engine.apply(ev.DamageVehicle(chase["tormentor"].id, 5), chase["snapshot"])
        assert result.get_vehicle(chase["tormentor"].id).current_hp == 95
        assert not any(e.type == LogEntryType.MISHAP for e in result.log)
        assert result.log[-1].action == "Tormentor takes 5 damage"

    def test_damage_at_mishap_threshold_rolls(self, engine, chase):
        """A hit equal to the mishap threshold triggers a roll."""
        result = engine.apply(ev.DamageVehicle(chase["tormentor"].id, 20), chase["snapshot"])
        assert any(e.type == LogEntryType.MISHAP for e in result.log)

    def test_mishap_check_can_be_suppressed(self, engine, chase):
        """check_mishap=False skips the automatic roll."""
        result = engine.apply(
            ev.DamageVehicle(chase["tormentor"].id, 50, check_mishap=False), chase["snapshot"]
        )
        assert not any(e.type == LogEntryType.MISHAP for e in result.log)

    def test_wreck_rolls_no_further_mishaps(self, engine, chase):
        """Hits on a vehicle that is already out of the fight only cost HP."""
        ride_id = chase["ride"].id
        wrecked = engine.apply(ev.DamageVehicle(ride_id, 100, check_mishap=False), chase["snapshot"])
        result = engine.apply(ev.DamageVehicle(ride_id, 50), wrecked)
        assert result.log[-1].action == "Devil's Ride takes 50 damage"
        assert not any(e.type == LogEntryType.MISHAP for e in result.log)
        assert result.get_vehicle(ride_id).active_mishaps == []

    def test_automatic_mishaps_can_be_disabled(self, seeded_dice, chase):
        """The engine can be configured not to roll mishaps on damage."""
        quiet = EncounterEngine(seeded_dice, EngineConfig(auto_mishap_on_damage=False))
        result = quiet.apply(ev.DamageVehicle(chase["tormentor"].id, 50), chase["snapshot"])
        assert not any(e.type == LogEntryType.MISHAP for e in result.log)

    def test_damage_is_clamped(self, engine, chase):
        """HP never goes below 0 and negative damage heals nothing."""
        snapshot = engine.apply(ev.DamageVehicle(chase["ride"].id, -10), chase["snapshot"])
        assert snapshot.get_vehicle(chase["ride"].id).current_hp == 30
        snapshot = engine.apply(ev.DamageVehicle(chase["ride"].id, 500, check_mishap=False), snapshot)
        assert snapshot.get_vehicle(chase["ride"].id).current_hp == 0

    def test_heal_is_clamped_to_max(self, engine, chase):
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.DamageVehicle(chase["tormentor"].id, 5),
            ev.HealVehicle(chase["tormentor"].id, 50),
        )
        assert snapshot.get_vehicle(chase["tormentor"].id).current_hp == 100

    def test_temp_hp_absorbs_first(self, engine, chase):
        """Temporary HP soaks damage before real HP."""
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.SetTempHp(chase["imp"].id, 5),
            ev.DamageCreature(chase["imp"].id, 8),
        )
        imp = snapshot.get_creature(chase["imp"].id)
        assert imp.temp_hp == 0
        assert imp.current_hp == 17

    def test_creature_healing(self, engine, chase):
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.DamageCreature(chase["imp"].id, 8),
            ev.HealCreature(chase["imp"].id, 100),
        )
        assert snapshot.get_creature(chase["imp"].id).current_hp == 20

    def test_crew_death_leaves_station_unmanned(self, engine, chase):
        """A crew member killed at a station stays there and the log says so."""
        snapshot = engine.apply(ev.DamageCreature(chase["gunner"].id, 20), chase["snapshot"])
        assert snapshot.is_crewed(chase["gunner"].id)
        assert snapshot.log[-1].action == "Bel is incapacitated at their station"
        assert snapshot.log[-1].details == "Harpoon Flinger on Tormentor is now unmanned"

    def test_apply_and_repair_mishap(self, engine, chase):
        """A failed repair check leaves the mishap; a good one clears it."""
        tormentor_id = chase["tormentor"].id
        snapshot = engine.apply(
            ev.ApplyMishap(tormentor_id, get_catalog_entry("mishap_furnace_rupture")), chase["snapshot"]
        )
        vehicle = snapshot.get_vehicle(tormentor_id)
        assert vehicle.current_speed == 70
        mishap_id = vehicle.active_mishaps[0].id

        snapshot = engine.apply(ev.RepairMishap(tormentor_id, mishap_id, check_total=10), snapshot)
        assert len(snapshot.get_vehicle(tormentor_id).active_mishaps) == 1
        assert "fails" in snapshot.log[-1].action

        snapshot = engine.apply(ev.RepairMishap(tormentor_id, mishap_id, check_total=15), snapshot)
        vehicle = snapshot.get_vehicle(tormentor_id)
        assert vehicle.active_mishaps == []
        assert vehicle.current_speed == 100

    def test_unrepairable_mishap_needs_narrative_resolution(self, engine, chase):
        """A flip cannot be fixed by a check, only cleared outright."""
        tormentor_id = chase["tormentor"].id
        snapshot = engine.apply(ev.ApplyMishap(tormentor_id, get_catalog_entry("mishap_flip")), chase["snapshot"])
        mishap_id = snapshot.get_vehicle(tormentor_id).active_mishaps[0].id
        assert engine.apply(ev.RepairMishap(tormentor_id, mishap_id, check_total=30), snapshot) is snapshot
        cleared = engine.apply(ev.RepairMishap(tormentor_id, mishap_id), snapshot)
        assert cleared.get_vehicle(tormentor_id).active_mishaps == []

    def test_timed_mishap_wears_off(self, engine, chase):
        """Round-limited mishaps count down at each new round."""
        stalled = Mishap(id="stalled", name="Stalled", roll_min=0, roll_max=0, duration=MishapDuration.ROUNDS)
        tormentor_id = chase["tormentor"].id
        snapshot = apply_all(
            engine, in_combat(engine, chase),
            ev.ApplyMishap(tormentor_id, stalled, rounds=2),
            ev.NextRound(),
        )
        assert snapshot.get_vehicle(tormentor_id).active_mishaps[0].rounds_remaining == 1
        snapshot = engine.apply(ev.NextRound(), snapshot)
        assert snapshot.get_vehicle(tormentor_id).active_mishaps == []
        assert "Tormentor: Stalled wears off" in actions(snapshot)

    def test_manual_tick(self, engine, chase):
        stalled = Mishap(id="stalled", name="Stalled", roll_min=0, roll_max=0, duration=MishapDuration.ROUNDS)
        tormentor_id = chase["tormentor"].id
        assert engine.apply(ev.TickMishapDurations(), chase["snapshot"]) is chase["snapshot"]

        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.ApplyMishap(tormentor_id, stalled, rounds=1),
            ev.TickMishapDurations(),
        )
        assert snapshot.get_vehicle(tormentor_id).active_mishaps == []
        assert snapshot.round == 0

    def test_saturated_vehicle_gets_no_mishap(self, engine, chase):
        """With every outcome redundant the roll is logged as having no effect."""
        ride_id = chase["ride"].id
        ids = [
            "mishap_engine_flare", "mishap_locked_steering", "mishap_blinding_smoke",
            "mishap_damaged_axle", "mishap_flip", "mishap_shedding_armor",
        ] + ["mishap_furnace_rupture"] * 4
        snapshot = apply_all(
            engine, chase["snapshot"], *(ev.ApplyMishap(ride_id, get_catalog_entry(i)) for i in ids)
        )
        result = engine.apply(ev.RollMishap(ride_id, "stunt failed"), snapshot)
        assert result.log[-1].action == "Devil's Ride: no mishap"
        assert len(result.get_vehicle(ride_id).active_mishaps) == len(ids)

    def test_rolled_mishap_is_never_a_duplicate(self, engine, chase):
        """An already active non-stackable mishap is never rolled again."""
        tormentor_id = chase["tormentor"].id
        snapshot = engine.apply(
            ev.ApplyMishap(tormentor_id, get_catalog_entry("mishap_locked_steering")), chase["snapshot"]
        )
        for _ in range(30):
            result = engine.apply(ev.RollMishap(tormentor_id), snapshot)
            names = [m.name for m in result.get_vehicle(tormentor_id).active_mishaps]
            assert names.count("Locked Steering") == 1


# =============================================================================
# SPEED MODIFIERS
# =============================================================================


class TestSpeedModifiers:
    """Tests for transient speed multipliers."""

    def test_round_modifier_lasts_the_round(self, engine, chase):
        tormentor_id = chase["tormentor"].id
        snapshot = engine.apply(ev.AddSpeedModifier(tormentor_id, 0.5, source="Mud"), in_combat(engine, chase))
        assert snapshot.get_vehicle(tormentor_id).current_speed == 50
        snapshot = engine.apply(ev.NextTurn(), snapshot)
        assert snapshot.get_vehicle(tormentor_id).current_speed == 50
        snapshot = engine.apply(ev.NextRound(), snapshot)
        assert snapshot.get_vehicle(tormentor_id).current_speed == 100

    def test_turn_modifier_lasts_the_turn(self, engine, chase):
        tormentor_id = chase["tormentor"].id
        snapshot = apply_all(
            engine, in_combat(engine, chase),
            ev.AddSpeedModifier(tormentor_id, 0.0, SpeedModifierDuration.THIS_TURN),
        )
        assert snapshot.get_vehicle(tormentor_id).current_speed == 0
        snapshot = engine.apply(ev.NextTurn(), snapshot)
        assert snapshot.get_vehicle(tormentor_id).speed_modifiers == []

    def test_lasting_modifier_survives_rounds(self, engine, chase):
        tormentor_id = chase["tormentor"].id
        snapshot = apply_all(
            engine, in_combat(engine, chase),
            ev.AddSpeedModifier(tormentor_id, 0.5, SpeedModifierDuration.UNTIL_CLEARED),
            ev.NextRound(),
        )
        assert len(snapshot.get_vehicle(tormentor_id).speed_modifiers) == 1
        assert engine.apply(ev.ClearExpiredSpeedModifiers(), snapshot) is snapshot


# =============================================================================
# CREW MANAGEMENT
# =============================================================================


class TestCrewManagement:
    """Tests for assigning and unassigning crew."""

    def test_station_capacity_is_enforced(self, engine, chase):
        """A full station takes nobody else."""
        snapshot = chase["snapshot"]
        assert engine.apply(ev.AssignCrew(chase["imp"].id, chase["tormentor"].id, "helm"), snapshot) is snapshot

    def test_unknown_station_is_noop(self, engine, chase):
        snapshot = chase["snapshot"]
        assert engine.apply(ev.AssignCrew(chase["imp"].id, chase["tormentor"].id, "roof"), snapshot) is snapshot

    def test_boarding_in_combat(self, engine, chase):
        """A creature that boards loses its position and its own turn."""
        snapshot = in_combat(engine, chase)
        result = engine.apply(ev.AssignCrew(chase["imp"].id, chase["ride"].id, "helm"), snapshot)
        assert result.get_creature(chase["imp"].id).position is None
        assert chase["imp"].id not in entry_ids(result)
        assert result.log[-1].action == "Imp boards Devil's Ride"

    def test_reassignment_moves_station(self, engine, chase):
        """A creature holds at most one station."""
        result = engine.apply(
            ev.AssignCrew(chase["gunner"].id, chase["tormentor"].id, "passenger_area"), chase["snapshot"]
        )
        stations = [a.station_id for a in result.crew_assignments if a.creature_id == chase["gunner"].id]
        assert stations == ["passenger_area"]

    def test_no_boarding_a_wreck(self, engine, chase):
        snapshot = engine.apply(ev.DamageVehicle(chase["ride"].id, 30, check_mishap=False), chase["snapshot"])
        assert engine.apply(ev.AssignCrew(chase["imp"].id, chase["ride"].id, "helm"), snapshot) is snapshot

    def test_exit_in_setup_places_creature(self, engine, chase):
        """An exiting creature lands 15 feet from its vehicle."""
        result = engine.apply(ev.UnassignCrew(chase["gunner"].id), chase["snapshot"])
        gunner = result.get_creature(chase["gunner"].id)
        assert not result.is_crewed(gunner.id)
        distance = math.hypot(gunner.position.x - 100, gunner.position.y - 300)
        assert distance == pytest.approx(15)
        assert result.turn_order == []

    def test_exit_in_combat_acts_next(self, engine, chase):
        """A creature leaving mid-round acts right after the current turn."""
        result = engine.apply(ev.UnassignCrew(chase["gunner"].id), in_combat(engine, chase))
        assert result.turn_order[1].id == chase["gunner"].id
        assert result.log[-1].action == "Bel exits Tormentor"
        assert "Acts immediately after current turn" in result.log[-1].details

    def test_unassigning_a_free_creature_is_noop(self, engine, chase):
        snapshot = chase["snapshot"]
        assert engine.apply(ev.UnassignCrew(chase["imp"].id), snapshot) is snapshot

    def test_removing_vehicle_frees_crew(self, engine, chase):
        result = engine.apply(ev.RemoveVehicle(chase["tormentor"].id), chase["snapshot"])
        assert result.get_vehicle(chase["tormentor"].id) is None
        assert not result.is_crewed(chase["driver"].id)
        assert result.get_creature(chase["driver"].id).position is not None

    def test_removing_creature_drops_assignment(self, engine, chase):
        result = engine.apply(ev.RemoveCreature(chase["driver"].id), chase["snapshot"])
        assert result.get_creature(chase["driver"].id) is None
        crew = [a.creature_id for a in result.crew_for_vehicle(chase["tormentor"].id)]
        assert crew == [chase["gunner"].id]

    def test_new_creature_joins_running_combat(self, engine, chase):
        """Creatures added during combat slot in by initiative."""
        late = make_creature("Latecomer", initiative=20)
        result = engine.apply(ev.AddCreature(creature=late), in_combat(engine, chase))
        assert result.turn_order[0].id == late.id


# =============================================================================
# COMPLICATIONS
# =============================================================================


class TestComplications:
    """Tests for the complication workflow."""

    @pytest.fixture
    def fiend_herd(self):
        return lookup_complication(6, ScaleName.TACTICAL)

    def test_every_operative_vehicle_gets_a_record(self, engine, chase, fiend_herd):
        snapshot = engine.apply(ev.StartComplication(fiend_herd, 6), chase["snapshot"])
        active = snapshot.active_complication
        assert active.complication.name == "Fiend Herd"
        assert {r.vehicle_id for r in active.resolutions} == {chase["tormentor"].id, chase["ride"].id}
        assert all(r.status == ResolutionStatus.PENDING for r in active.resolutions)
        assert active.get_resolution(chase["tormentor"].id).driver_name == "Zariel"

    def test_driverless_vehicle_cannot_pass(self, engine, chase, fiend_herd):
        """Without a driver a vehicle can only fail or be skipped."""
        ride_id = chase["ride"].id
        snapshot = engine.apply(ev.StartComplication(fiend_herd, 6), chase["snapshot"])
        assert engine.apply(ev.ResolveVehicleComplication(ride_id, ResolutionStatus.PASSED), snapshot) is snapshot
        assert engine.apply(ev.ResolveVehicleComplication(ride_id, roll=20), snapshot) is snapshot
        failed = engine.apply(ev.ResolveVehicleComplication(ride_id, ResolutionStatus.FAILED), snapshot)
        assert failed.active_complication.get_resolution(ride_id).status == ResolutionStatus.FAILED
        skipped = engine.apply(ev.ResolveVehicleComplication(ride_id, ResolutionStatus.SKIPPED), snapshot)
        assert skipped.active_complication.get_resolution(ride_id).status == ResolutionStatus.SKIPPED

    def test_driver_roll_adds_save_modifier(self, engine, chase, fiend_herd):
        """Roll 12 plus a +3 Dexterity save meets DC 15."""
        tormentor_id = chase["tormentor"].id
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.StartComplication(fiend_herd, 6),
            ev.ResolveVehicleComplication(tormentor_id, roll=12),
        )
        resolution = snapshot.active_complication.get_resolution(tormentor_id)
        assert resolution.status == ResolutionStatus.PASSED
        assert (resolution.roll_result, resolution.modifier, resolution.total) == (12, 3, 15)

    def test_driver_roll_can_fail(self, engine, chase, fiend_herd):
        tormentor_id = chase["tormentor"].id
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.StartComplication(fiend_herd, 6),
            ev.ResolveVehicleComplication(tormentor_id, roll=11),
        )
        assert snapshot.active_complication.get_resolution(tormentor_id).status == ResolutionStatus.FAILED

    def test_engine_rolls_when_no_roll_given(self, engine, chase, fiend_herd):
        tormentor_id = chase["tormentor"].id
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.StartComplication(fiend_herd, 6),
            ev.ResolveVehicleComplication(tormentor_id),
        )
        resolution = snapshot.active_complication.get_resolution(tormentor_id)
        assert resolution.status in (ResolutionStatus.PASSED, ResolutionStatus.FAILED)
        assert 1 <= resolution.roll_result <= 20

    def test_locked_steering_fails_dexterity(self, engine, chase, fiend_herd):
        """A vehicle with locked steering fails Dexterity complications outright."""
        tormentor_id = chase["tormentor"].id
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.ApplyMishap(tormentor_id, get_catalog_entry("mishap_locked_steering")),
            ev.StartComplication(fiend_herd, 6),
            ev.ResolveVehicleComplication(tormentor_id, roll=20),
        )
        assert snapshot.active_complication.get_resolution(tormentor_id).status == ResolutionStatus.FAILED

    def test_effects_wait_for_every_vehicle(self, engine, chase, fiend_herd):
        """Nothing is applied while any record is pending."""
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.StartComplication(fiend_herd, 6),
            ev.ResolveVehicleComplication(chase["tormentor"].id, roll=20),
        )
        assert engine.apply(ev.ApplyComplicationEffects(), snapshot) is snapshot

    def test_effects_hit_only_failed_vehicles(self, engine, chase, fiend_herd):
        """Failed vehicles are slowed for the round, then the complication clears."""
        ride_id = chase["ride"].id
        tormentor_id = chase["tormentor"].id
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.StartComplication(fiend_herd, 6),
            ev.ResolveVehicleComplication(tormentor_id, roll=20),
            ev.ResolveVehicleComplication(ride_id, ResolutionStatus.FAILED),
            ev.ApplyComplicationEffects(),
        )
        assert snapshot.active_complication is None
        assert snapshot.get_vehicle(ride_id).current_speed == 60
        assert snapshot.get_vehicle(tormentor_id).speed_modifiers == []
        assert snapshot.log[-1].action == "Fiend Herd resolved"
        assert "Failed: Devil's Ride" in snapshot.log[-1].details
        assert "Passed: Tormentor" in snapshot.log[-1].details

    def test_only_one_complication_at_a_time(self, engine, chase, fiend_herd):
        snapshot = engine.apply(ev.StartComplication(fiend_herd, 6), chase["snapshot"])
        other = lookup_complication(3, ScaleName.TACTICAL)
        assert engine.apply(ev.StartComplication(other, 3), snapshot) is snapshot
        assert engine.apply(ev.RollComplication(), snapshot) is snapshot

    def test_destroyed_vehicle_is_skipped(self, engine, chase, fiend_herd):
        ride_id = chase["ride"].id
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.StartComplication(fiend_herd, 6),
            ev.DamageVehicle(ride_id, 30, check_mishap=False),
        )
        assert snapshot.active_complication.get_resolution(ride_id).status == ResolutionStatus.SKIPPED

    def test_roll_complication(self, engine, chase):
        """A roll either starts a complication or logs a clear road."""
        snapshot = engine.apply(ev.RollComplication(), chase["snapshot"])
        assert snapshot.active_complication is not None or snapshot.log[-1].action.startswith("No complication")

    def test_auto_roll_on_new_round(self, engine, chase):
        snapshot = apply_all(
            engine, in_combat(engine, chase), ev.ToggleAutoRollComplications(), ev.NextRound()
        )
        assert snapshot.auto_roll_complications
        round_start = actions(snapshot).index("Round 2 begins")
        assert snapshot.log[round_start + 1].type == LogEntryType.COMPLICATION

    def test_clear_complication(self, engine, chase, fiend_herd):
        snapshot = apply_all(engine, chase["snapshot"], ev.StartComplication(fiend_herd, 6), ev.ClearComplication())
        assert snapshot.active_complication is None
        assert engine.apply(ev.ClearComplication(), snapshot) is snapshot


# =============================================================================
# SETUP AND CONTRACT
# =============================================================================


class TestEngineContract:
    """Tests for the apply contract itself."""

    def test_unknown_event_is_noop(self, engine, chase):
        snapshot = chase["snapshot"]
        assert engine.apply(UnknownEvent(), snapshot) is snapshot

    def test_missing_identity_is_noop(self, engine, chase):
        snapshot = chase["snapshot"]
        for event in (
            ev.DamageVehicle("missing", 10),
            ev.DamageCreature("missing", 10),
            ev.RemoveVehicle("missing"),
            ev.RepairMishap(chase["tormentor"].id, "missing"),
            ev.ResolveVehicleComplication("missing", roll=10),
        ):
            assert engine.apply(event, snapshot) is snapshot

    def test_prior_snapshot_is_untouched(self, engine, chase):
        snapshot = chase["snapshot"]
        before = copy.deepcopy(snapshot.to_dict())
        engine.apply(ev.DamageVehicle(chase["tormentor"].id, 50), snapshot)
        assert snapshot.to_dict() == before

    def test_module_level_apply(self, chase):
        result = apply(ev.SetEncounterName("Renamed"), chase["snapshot"])
        assert result.name == "Renamed"


class TestSetupEvents:
    """Tests for setup-phase events."""

    def test_new_encounter(self, engine, chase):
        snapshot = engine.apply(ev.NewEncounter("Ambush"), chase["snapshot"])
        assert snapshot.name == "Ambush"
        assert snapshot.vehicles == []

    def test_mark_saved(self, engine, chase):
        assert engine.apply(ev.MarkSaved(), chase["snapshot"]).has_been_saved

    def test_set_scale_logs(self, engine, chase):
        snapshot = engine.apply(ev.SetScale(ScaleName.APPROACH), chase["snapshot"])
        assert snapshot.scale == ScaleName.APPROACH
        assert snapshot.log[-1].type == LogEntryType.SCALE_CHANGE
        assert snapshot.log[-1].details == "1 minute per round"
        assert engine.apply(ev.SetScale(ScaleName.APPROACH), snapshot) is snapshot

    def test_chase_mode_and_environment(self, engine, chase):
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.SetChaseMode(True),
            ev.SetEnvironment(name="River Styx", visibility="smoke"),
        )
        assert snapshot.is_chase
        assert snapshot.environment.name == "River Styx"
        assert snapshot.environment.visibility == "smoke"

    def test_elevation_zones(self, engine, chase):
        zone = ElevationZone(id="ridge", name="Ridge", x=0, y=0, width=50, height=50, elevation=10)
        snapshot = engine.apply(ev.AddElevationZone(zone), chase["snapshot"])
        assert engine.apply(ev.AddElevationZone(zone), snapshot) is snapshot
        raised = ElevationZone(id="ridge", name="Ridge", x=0, y=0, width=50, height=50, elevation=20)
        snapshot = engine.apply(ev.UpdateElevationZone(raised), snapshot)
        assert snapshot.elevation_zones[0].elevation == 20
        snapshot = engine.apply(ev.RemoveElevationZone("ridge"), snapshot)
        assert snapshot.elevation_zones == []

    def test_move_vehicle_wraps_facing(self, engine, chase):
        snapshot = engine.apply(
            ev.MoveVehicle(chase["ride"].id, Position(150, 150), 370), chase["snapshot"]
        )
        ride = snapshot.get_vehicle(chase["ride"].id)
        assert (ride.position.x, ride.position.y) == (150, 150)
        assert ride.facing == 10

    def test_crewed_creature_cannot_be_moved(self, engine, chase):
        snapshot = chase["snapshot"]
        assert engine.apply(ev.MoveCreature(chase["driver"].id, Position(5, 5)), snapshot) is snapshot

    def test_initiative_order_must_be_a_permutation(self, engine, chase):
        snapshot = in_combat(engine, chase)
        reversed_order = tuple(reversed(snapshot.turn_order))
        assert engine.apply(ev.SetInitiativeOrder(reversed_order), snapshot).turn_order == list(reversed_order)
        assert engine.apply(ev.SetInitiativeOrder(reversed_order[:2]), snapshot) is snapshot

    def test_swap_weapon(self, engine, chase):
        tormentor_id = chase["tormentor"].id
        snapshot = engine.apply(ev.SwapVehicleWeapon(tormentor_id, "harpoon_station", FLAMETHROWER), chase["snapshot"])
        mounted = [w for w in snapshot.get_vehicle(tormentor_id).weapons if w.station_id == "harpoon_station"]
        assert [w.name for w in mounted] == ["Flamethrower"]

    def test_set_armor(self, engine, chase):
        ride_id = chase["ride"].id
        snapshot = engine.apply(ev.SetVehicleArmor(ride_id, "canian_armor"), chase["snapshot"])
        assert snapshot.get_vehicle(ride_id).armor_upgrade_id == "canian_armor"
        assert engine.apply(ev.SetVehicleArmor(ride_id, "canian_armor"), snapshot) is snapshot
        assert engine.apply(ev.SetVehicleArmor(ride_id, "mithral_plate"), snapshot) is snapshot
        stripped = engine.apply(ev.SetVehicleArmor(ride_id, "none"), snapshot)
        assert stripped.get_vehicle(ride_id).armor_upgrade_id == "none"

    def test_toggle_gadget(self, engine, chase):
        ride_id = chase["ride"].id
        snapshot = apply_all(
            engine, chase["snapshot"],
            ev.ToggleVehicleGadget(ride_id, "teleporter"),
            ev.ToggleVehicleGadget(ride_id, "necrotic_smoke_screen"),
        )
        assert snapshot.get_vehicle(ride_id).gadget_ids == ["teleporter", "necrotic_smoke_screen"]
        snapshot = engine.apply(ev.ToggleVehicleGadget(ride_id, "teleporter"), snapshot)
        assert snapshot.get_vehicle(ride_id).gadget_ids == ["necrotic_smoke_screen"]
        assert engine.apply(ev.ToggleVehicleGadget(ride_id, "jet_pack"), snapshot) is snapshot

    def test_weapon_station_upgrade(self, engine, chase):
        tormentor_id = chase["tormentor"].id
        snapshot = engine.apply(ev.ToggleWeaponStationUpgrade(tormentor_id), chase["snapshot"])
        tormentor = snapshot.get_vehicle(tormentor_id)
        assert tormentor.has_weapon_station_upgrade
        mounted = [w for w in tormentor.weapons if w.station_id == "passenger_area"]
        assert [w.id for w in mounted] == ["harpoon_flinger_custom"]

        snapshot = engine.apply(ev.SwapVehicleWeapon(tormentor_id, "passenger_area", FLAMETHROWER), snapshot)
        snapshot = engine.apply(ev.ToggleWeaponStationUpgrade(tormentor_id), snapshot)
        tormentor = snapshot.get_vehicle(tormentor_id)
        assert not tormentor.has_weapon_station_upgrade
        assert [w for w in tormentor.weapons if w.station_id == "passenger_area"] == []
        assert len(tormentor.weapons) == len(chase["tormentor"].weapons)

    def test_weapon_station_upgrade_needs_a_station(self, engine, chase):
        snapshot = chase["snapshot"]
        assert engine.apply(ev.ToggleWeaponStationUpgrade(chase["ride"].id), snapshot) is snapshot
        assert engine.apply(ev.ToggleWeaponStationUpgrade("missing"), snapshot) is snapshot

    def test_update_creature(self, engine, chase):
        snapshot = engine.apply(
            ev.UpdateCreature(chase["imp"].id, name="Spined Imp", faction=Faction.PARTY), chase["snapshot"]
        )
        imp = snapshot.get_creature(chase["imp"].id)
        assert imp.name == "Spined Imp"
        assert imp.faction == Faction.PARTY

    def test_party_preset_replaces_party(self, engine, chase, devils_ride_template):
        """Party vehicles and crew are swapped out; enemies stay."""
        bike = make_vehicle(devils_ride_template, "Party Bike")
        rider = make_creature("Rider", creature_type="pc")
        preset = ev.LoadPartyPreset(
            vehicles=(bike,),
            creatures=(rider,),
            crew_assignments=(CrewAssignment(rider.id, bike.id, "helm"),),
        )
        snapshot = engine.apply(preset, chase["snapshot"])

        names = [v.name for v in snapshot.vehicles]
        assert names == ["Devil's Ride", "Party Bike"]
        new_bike = snapshot.vehicles[1]
        assert new_bike.id != bike.id
        assert (new_bike.position.x, new_bike.position.y) == (200, 300)
        assert [c.name for c in snapshot.creatures] == ["Imp", "Rider"]
        assignment = snapshot.crew_assignments[0]
        assert assignment.vehicle_id == new_bike.id
        assert snapshot.get_creature(assignment.creature_id).position is None

    def test_party_preset_only_in_setup(self, engine, chase, devils_ride_template):
        snapshot = in_combat(engine, chase)
        preset = ev.LoadPartyPreset(vehicles=(make_vehicle(devils_ride_template),))
        assert engine.apply(preset, snapshot) is snapshot

    def test_end_reset_and_return(self, engine, chase):
        tormentor_id = chase["tormentor"].id
        snapshot = apply_all(
            engine, in_combat(engine, chase),
            ev.DamageVehicle(tormentor_id, 50),
            ev.EndCombat(),
        )
        assert snapshot.phase == EncounterPhase.ENDED

        returned = engine.apply(ev.ReturnToSetup(), snapshot)
        assert returned.phase == EncounterPhase.SETUP
        assert returned.get_vehicle(tormentor_id).current_hp == 50

        reset = engine.apply(ev.ResetCombat(), snapshot)
        assert reset.phase == EncounterPhase.SETUP
        assert reset.round == 0
        assert reset.turn_order == []
        vehicle = reset.get_vehicle(tormentor_id)
        assert vehicle.current_hp == 100
        assert vehicle.active_mishaps == []
        assert len(reset.log) == 1

    def test_load_encounter_repairs_snapshot(self, engine, chase):
        """Loading runs the migration pass on the incoming snapshot."""
        broken = copy.deepcopy(chase["snapshot"])
        broken.get_vehicle(chase["tormentor"].id).current_hp = 0
        loaded = engine.apply(ev.LoadEncounter(broken), EncounterSnapshot())
        assert loaded.get_vehicle(chase["tormentor"].id).is_inoperative
        assert loaded.crew_for_vehicle(chase["tormentor"].id) == []

    def test_log_events(self, engine, chase):
        snapshot = engine.apply(ev.LogAction("Zariel curses", "loudly", LogEntryType.ABILITY), chase["snapshot"])
        assert snapshot.log[-1].action == "Zariel curses"
        assert engine.apply(ev.LogAction(""), snapshot) is snapshot
        assert engine.apply(ev.ClearLog(), snapshot).log == []

    def test_turn_entry_kinds(self, engine, chase):
        snapshot = in_combat(engine, chase)
        kinds = [e.kind for e in snapshot.turn_order]
        assert kinds == [TurnEntryKind.VEHICLE, TurnEntryKind.CREATURE, TurnEntryKind.VEHICLE]
        assert snapshot.turn_order[0] == TurnEntry(TurnEntryKind.VEHICLE, chase["tormentor"].id)
