"""
Encounter Engine for the vehicle combat tracker.

The engine is the only thing that advances an encounter. It exposes one
operation, apply(event, snapshot), which returns either a complete new
snapshot or, when the event does not apply (unknown event, missing id,
wrong phase), the very snapshot it was given.

The encounter sequence:
1. Setup - vehicles, creatures and crew stations are arranged
2. Start combat - one turn order of vehicles (on their driver's
   initiative) and uncrewed creatures
3. Turns and rounds - damage, mishaps and complications along the way
4. End combat, or reset back to setup
"""

import copy
import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, Optional

from src.data_models import (
    Ability,
    ActiveComplication,
    Complication,
    ComplicationResolution,
    CrewAssignment,
    DiceRoller,
    EncounterPhase,
    EncounterSnapshot,
    Faction,
    LogEntry,
    LogEntryType,
    Mishap,
    MishapDuration,
    Position,
    ResolutionStatus,
    SpeedModifier,
    SpeedModifierDuration,
    TurnEntry,
    TurnEntryKind,
    Vehicle,
    new_id,
)
from src.encounter import events as ev
from src.encounter.initiative import (
    EJECTION_RADIUS,
    NO_DRIVER_INITIATIVE,
    admit_creatures,
    build_turn_order,
    eject_crew,
    find_entry_index,
    first_active_index,
    insert_by_initiative,
    rebuild_turn_order,
    remove_entry,
)
from src.encounter.migration import migrate_snapshot
from src.encounter.views import (
    describe_turn,
    find_vehicle_driver,
    get_driver_save_modifier,
    get_effective_speed,
    has_auto_fail_dex,
)
from src.tables.complication_tables import (
    get_complication_roll_range,
    lookup_complication,
)
from src.tables.mishap_tables import (
    MISHAP_MAX_REROLLS,
    VehicleMishapState,
    instantiate_mishap,
    mishap_triggered_by_damage,
    roll_mishap_for_vehicle,
)
from src.tables.scale_tables import get_scale_config
from src.tables.vehicle_upgrades import (
    get_armor_upgrade,
    get_magical_gadget,
    get_weapon_station_upgrade,
)


logger = logging.getLogger(__name__)


# Where a loaded party preset lines its vehicles up
PRESET_ORIGIN = Position(200, 200)
PRESET_SPACING = 100


@dataclass
class EngineConfig:
    """Tunable constants of the encounter rules."""
    no_driver_initiative: int = NO_DRIVER_INITIATIVE
    ejection_radius: float = EJECTION_RADIUS
    exit_radius: float = EJECTION_RADIUS
    mishap_max_rerolls: int = MISHAP_MAX_REROLLS
    auto_mishap_on_damage: bool = True


Handler = Callable[[ev.EncounterEvent, EncounterSnapshot], Optional[EncounterSnapshot]]


class EncounterEngine:
    """
    Folds events into encounter snapshots.

    The engine holds no encounter state of its own. Its only collaborators
    are the dice roller (every random draw goes through it) and its
    configuration.

    Usage:
        engine = EncounterEngine(DiceRoller(seed=7))
        snapshot = engine.apply(AddVehicle(vehicle=tormentor), EncounterSnapshot())
        snapshot = engine.apply(StartCombat(), snapshot)
    """

    def __init__(self, dice: Optional[DiceRoller] = None, config: Optional[EngineConfig] = None):
        self.dice = dice or DiceRoller()
        self.config = config or EngineConfig()
        self._handlers: dict[type, Handler] = {
            # Setup
            ev.NewEncounter: self._new_encounter,
            ev.LoadEncounter: self._load_encounter,
            ev.SetEncounterName: self._set_encounter_name,
            ev.MarkSaved: self._mark_saved,
            ev.AddVehicle: self._add_vehicle,
            ev.RemoveVehicle: self._remove_vehicle,
            ev.UpdateVehicle: self._update_vehicle,
            ev.SwapVehicleWeapon: self._swap_vehicle_weapon,
            ev.SetVehicleArmor: self._set_vehicle_armor,
            ev.ToggleVehicleGadget: self._toggle_vehicle_gadget,
            ev.ToggleWeaponStationUpgrade: self._toggle_weapon_station_upgrade,
            ev.AddCreature: self._add_creature,
            ev.RemoveCreature: self._remove_creature,
            ev.UpdateCreature: self._update_creature,
            ev.AssignCrew: self._assign_crew,
            ev.UnassignCrew: self._unassign_crew,
            ev.SetInitiative: self._set_initiative,
            ev.SetInitiativeOrder: self._set_initiative_order,
            ev.SetChaseMode: self._set_chase_mode,
            ev.SetEnvironment: self._set_environment,
            ev.LoadPartyPreset: self._load_party_preset,
            ev.AddElevationZone: self._add_elevation_zone,
            ev.UpdateElevationZone: self._update_elevation_zone,
            ev.RemoveElevationZone: self._remove_elevation_zone,
            ev.MoveVehicle: self._move_vehicle,
            ev.MoveCreature: self._move_creature,
            ev.SetScale: self._set_scale,
            # Turn flow
            ev.StartCombat: self._start_combat,
            ev.NextTurn: self._next_turn,
            ev.PreviousTurn: self._previous_turn,
            ev.NextRound: self._next_round,
            ev.EndCombat: self._end_combat,
            ev.ResetCombat: self._reset_combat,
            ev.ReturnToSetup: self._return_to_setup,
            # Damage and mishaps
            ev.DamageVehicle: self._damage_vehicle,
            ev.HealVehicle: self._heal_vehicle,
            ev.DamageCreature: self._damage_creature,
            ev.HealCreature: self._heal_creature,
            ev.SetTempHp: self._set_temp_hp,
            ev.RollMishap: self._roll_mishap,
            ev.ApplyMishap: self._apply_mishap,
            ev.RepairMishap: self._repair_mishap,
            ev.TickMishapDurations: self._tick_mishap_durations,
            ev.AddSpeedModifier: self._add_speed_modifier,
            ev.ClearExpiredSpeedModifiers: self._clear_expired_speed_modifiers,
            # Complications
            ev.ToggleAutoRollComplications: self._toggle_auto_roll_complications,
            ev.RollComplication: self._roll_complication,
            ev.StartComplication: self._start_complication,
            ev.ResolveVehicleComplication: self._resolve_vehicle_complication,
            ev.ApplyComplicationEffects: self._apply_complication_effects,
            ev.ClearComplication: self._clear_complication,
            # Log
            ev.LogAction: self._log_action,
            ev.ClearLog: self._clear_log,
        }

    def handles(self, event: ev.EncounterEvent) -> bool:
        return type(event) in self._handlers

    def apply(self, event: ev.EncounterEvent, snapshot: EncounterSnapshot) -> EncounterSnapshot:
        """
        Fold one event into a snapshot.

        Args:
            event: The event to apply
            snapshot: The current snapshot; never modified

        Returns:
            A fresh snapshot, or the given snapshot itself when the event
            does not apply
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug(f"Ignoring unknown event {type(event).__name__}")
            return snapshot

        working = copy.deepcopy(snapshot)
        result = handler(event, working)
        if result is None:
            logger.debug(f"{event.kind} did not apply")
            return snapshot

        for vehicle in result.vehicles:
            vehicle.current_speed = get_effective_speed(vehicle)
        return result

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _log(
        self,
        state: EncounterSnapshot,
        entry_type: LogEntryType,
        action: str,
        details: str = "",
    ) -> None:
        state.log.append(
            LogEntry(id=new_id("log"), round=state.round, type=entry_type, action=action, details=details)
        )

    def _destroy_vehicle(self, state: EncounterSnapshot, vehicle: Vehicle) -> None:
        """Wreck a vehicle: eject its crew and take it out of the turn order."""
        vehicle.is_inoperative = True

        removed = find_entry_index(state, vehicle.id)
        if removed != -1:
            del state.turn_order[removed]
            if removed <= state.current_turn_index:
                state.current_turn_index = max(0, state.current_turn_index - 1)

        ejected = eject_crew(state, vehicle, self.config.ejection_radius)
        admit_creatures(state, ejected, self.config.no_driver_initiative)

        if state.active_complication is not None:
            resolution = state.active_complication.get_resolution(vehicle.id)
            if resolution is not None and resolution.status == ResolutionStatus.PENDING:
                resolution.status = ResolutionStatus.SKIPPED

        if ejected:
            self._log(
                state,
                LogEntryType.SYSTEM,
                f"{vehicle.name} is destroyed! All crew ejected.",
                f"{len(ejected)} creature(s) placed on the battlefield around the wreck",
            )
        else:
            self._log(state, LogEntryType.SYSTEM, f"{vehicle.name} is destroyed!")
        logger.info(f"{vehicle.name} destroyed, {len(ejected)} crew ejected")

    def _add_mishap(
        self,
        state: EncounterSnapshot,
        vehicle: Vehicle,
        entry: Mishap,
        details: str = "",
        rounds: Optional[int] = None,
    ) -> None:
        instance = instantiate_mishap(entry, rounds)
        if instance.duration != MishapDuration.INSTANT:
            vehicle.active_mishaps.append(instance)
        self._log(
            state,
            LogEntryType.MISHAP,
            f"{vehicle.name}: {instance.name}",
            f"{instance.effect} {details}".strip(),
        )

    def _roll_vehicle_mishap(self, state: EncounterSnapshot, vehicle: Vehicle, reason: str = "") -> None:
        result = roll_mishap_for_vehicle(
            VehicleMishapState.from_vehicle(vehicle), self.dice, self.config.mishap_max_rerolls
        )
        if result is None:
            self._log(
                state,
                LogEntryType.MISHAP,
                f"{vehicle.name}: no mishap",
                "Every mishap outcome is already in effect",
            )
            return
        details = f"(Rolled {result.roll}"
        if result.reroll_count:
            details += f" after {result.reroll_count} reroll(s)"
        details += f"{', ' + reason if reason else ''})"
        self._add_mishap(state, vehicle, result.mishap, details)

    def _expire_speed_modifiers(self, state: EncounterSnapshot, round_number: int, turn_index: int) -> bool:
        """Drop modifiers whose round or turn is over. Returns whether any went."""
        changed = False
        for vehicle in state.vehicles:
            kept = []
            for modifier in vehicle.speed_modifiers:
                if modifier.duration == SpeedModifierDuration.THIS_ROUND:
                    expired = modifier.applied_at_round < round_number
                elif modifier.duration == SpeedModifierDuration.THIS_TURN:
                    expired = (
                        modifier.applied_at_round < round_number
                        or modifier.applied_at_turn_index < turn_index
                    )
                else:
                    expired = False
                if expired:
                    changed = True
                else:
                    kept.append(modifier)
            vehicle.speed_modifiers = kept
        return changed

    def _begin_complication(
        self, state: EncounterSnapshot, complication: Complication, roll: int
    ) -> None:
        resolutions = []
        for vehicle in state.vehicles:
            if vehicle.is_inoperative or vehicle.is_destroyed:
                continue
            driver = find_vehicle_driver(state, vehicle)
            resolutions.append(
                ComplicationResolution(
                    vehicle_id=vehicle.id,
                    vehicle_name=vehicle.name,
                    driver_name=driver.name if driver else None,
                )
            )
        state.active_complication = ActiveComplication(
            id=new_id("complication"),
            complication=complication,
            roll=roll,
            round=state.round,
            resolutions=resolutions,
        )
        check = f"DC {complication.difficulty} {complication.save_ability.value.upper()} save. " if complication.difficulty else ""
        self._log(
            state,
            LogEntryType.COMPLICATION,
            f"Complication: {complication.name}",
            f"{check}{complication.effect}",
        )

    def _roll_and_begin_complication(self, state: EncounterSnapshot) -> None:
        roll = self.dice.roll_d20(f"complication ({state.scale.value})").total
        complication = lookup_complication(roll, state.scale)
        if complication is None:
            self._log(
                state,
                LogEntryType.COMPLICATION,
                f"No complication (rolled {roll})",
                f"{get_complication_roll_range(None)} means the way stays clear",
            )
            return
        self._begin_complication(state, complication, roll)

    # =========================================================================
    # SETUP
    # =========================================================================

    def _new_encounter(self, event: ev.NewEncounter, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        return EncounterSnapshot(name=event.name)

    def _load_encounter(self, event: ev.LoadEncounter, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        return migrate_snapshot(
            copy.deepcopy(event.snapshot),
            self.config.ejection_radius,
            self.config.no_driver_initiative,
        )

    def _set_encounter_name(self, event: ev.SetEncounterName, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if not event.name or event.name == state.name:
            return None
        state.name = event.name
        return state

    def _mark_saved(self, event: ev.MarkSaved, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        state.has_been_saved = True
        return state

    def _add_vehicle(self, event: ev.AddVehicle, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if event.vehicle is None or state.get_vehicle(event.vehicle.id) is not None:
            return None
        vehicle = copy.deepcopy(event.vehicle)
        vehicle.current_hp = max(0, min(vehicle.max_hp, vehicle.current_hp))
        if vehicle.current_hp == 0:
            vehicle.is_inoperative = True
        state.vehicles.append(vehicle)
        if state.in_combat and not vehicle.is_inoperative:
            insert_by_initiative(
                state, TurnEntry(TurnEntryKind.VEHICLE, vehicle.id), self.config.no_driver_initiative
            )
            self._log(state, LogEntryType.SYSTEM, f"{vehicle.name} joins the fight")
        return state

    def _remove_vehicle(self, event: ev.RemoveVehicle, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        if vehicle is None:
            return None
        crew = eject_crew(state, vehicle, self.config.ejection_radius)
        remove_entry(state, vehicle.id)
        state.vehicles = [v for v in state.vehicles if v.id != vehicle.id]
        admit_creatures(state, crew, self.config.no_driver_initiative)
        if state.active_complication is not None:
            state.active_complication.resolutions = [
                r for r in state.active_complication.resolutions if r.vehicle_id != vehicle.id
            ]
        return state

    def _update_vehicle(self, event: ev.UpdateVehicle, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        if vehicle is None:
            return None
        if event.name is not None:
            vehicle.name = event.name
        if event.faction is not None:
            vehicle.faction = event.faction
        if event.current_hp is not None:
            vehicle.current_hp = max(0, min(vehicle.max_hp, event.current_hp))
            if vehicle.current_hp == 0 and not vehicle.is_inoperative:
                self._destroy_vehicle(state, vehicle)
        return state

    def _swap_vehicle_weapon(self, event: ev.SwapVehicleWeapon, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        if vehicle is None or event.weapon is None:
            return None
        if vehicle.template.get_station(event.station_id) is None:
            return None
        mounted = replace(event.weapon, station_id=event.station_id)
        vehicle.weapons = [w for w in vehicle.weapons if w.station_id != event.station_id]
        vehicle.weapons.append(mounted)
        return state

    def _set_vehicle_armor(self, event: ev.SetVehicleArmor, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        armor = get_armor_upgrade(event.armor_upgrade_id)
        if vehicle is None or armor is None or vehicle.armor_upgrade_id == armor.id:
            return None
        vehicle.armor_upgrade_id = armor.id
        logger.debug(f"{vehicle.name} fitted with {armor.name}")
        return state

    def _toggle_vehicle_gadget(self, event: ev.ToggleVehicleGadget, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        gadget = get_magical_gadget(event.gadget_id)
        if vehicle is None or gadget is None:
            return None
        if gadget.id in vehicle.gadget_ids:
            vehicle.gadget_ids.remove(gadget.id)
        else:
            vehicle.gadget_ids.append(gadget.id)
        return state

    def _toggle_weapon_station_upgrade(
        self, event: ev.ToggleWeaponStationUpgrade, state: EncounterSnapshot
    ) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        if vehicle is None:
            return None
        upgrade = get_weapon_station_upgrade(vehicle.template.id)
        if upgrade is None or vehicle.template.get_station(upgrade.station_id) is None:
            logger.debug(f"{vehicle.name} has no room for a custom weapon station")
            return None
        # Whatever is mounted at the station goes, including a swapped-in weapon
        vehicle.weapons = [w for w in vehicle.weapons if w.station_id != upgrade.station_id]
        if vehicle.has_weapon_station_upgrade:
            vehicle.has_weapon_station_upgrade = False
        else:
            vehicle.weapons.append(
                replace(upgrade.default_weapon, id=upgrade.weapon_id, station_id=upgrade.station_id)
            )
            vehicle.has_weapon_station_upgrade = True
        return state

    def _add_creature(self, event: ev.AddCreature, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if event.creature is None or state.get_creature(event.creature.id) is not None:
            return None
        creature = copy.deepcopy(event.creature)
        creature.current_hp = max(0, min(creature.max_hp, creature.current_hp))
        state.creatures.append(creature)
        if state.in_combat:
            admit_creatures(state, [creature], self.config.no_driver_initiative)
            self._log(state, LogEntryType.SYSTEM, f"{creature.name} joins the fight")
        return state

    def _remove_creature(self, event: ev.RemoveCreature, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if state.get_creature(event.creature_id) is None:
            return None
        state.creatures = [c for c in state.creatures if c.id != event.creature_id]
        state.crew_assignments = [a for a in state.crew_assignments if a.creature_id != event.creature_id]
        remove_entry(state, event.creature_id)
        return state

    def _update_creature(self, event: ev.UpdateCreature, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        creature = state.get_creature(event.creature_id)
        if creature is None:
            return None
        if event.name is not None:
            creature.name = event.name
        if event.faction is not None:
            creature.faction = event.faction
        if event.notes is not None:
            creature.notes = event.notes
        return state

    def _assign_crew(self, event: ev.AssignCrew, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        creature = state.get_creature(event.creature_id)
        vehicle = state.get_vehicle(event.vehicle_id)
        if creature is None or vehicle is None or vehicle.is_inoperative:
            return None
        station = vehicle.template.get_station(event.station_id)
        if station is None:
            return None

        current = state.get_assignment(creature.id)
        if current is not None and current.vehicle_id == vehicle.id and current.station_id == station.id:
            return None
        occupants = [
            a for a in state.crew_for_vehicle(vehicle.id)
            if a.station_id == station.id and a.creature_id != creature.id
        ]
        if len(occupants) >= station.capacity:
            logger.debug(f"{station.name} on {vehicle.name} is full")
            return None

        state.crew_assignments = [a for a in state.crew_assignments if a.creature_id != creature.id]
        state.crew_assignments.append(CrewAssignment(creature.id, vehicle.id, station.id))
        creature.position = None
        remove_entry(state, creature.id)
        if state.in_combat:
            self._log(state, LogEntryType.MOVEMENT, f"{creature.name} boards {vehicle.name}", station.name)
        return state

    def _unassign_crew(self, event: ev.UnassignCrew, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        assignment = state.get_assignment(event.creature_id)
        if assignment is None:
            return None
        creature = state.get_creature(assignment.creature_id)
        vehicle = state.get_vehicle(assignment.vehicle_id)
        state.crew_assignments = [a for a in state.crew_assignments if a.creature_id != event.creature_id]
        if creature is None or vehicle is None:
            return state

        angle = self.dice.uniform(0, 2 * math.pi)
        creature.position = Position(
            x=vehicle.position.x + math.cos(angle) * self.config.exit_radius,
            y=vehicle.position.y + math.sin(angle) * self.config.exit_radius,
        )

        if state.in_combat:
            if find_entry_index(state, creature.id) == -1:
                insert_at = min(state.current_turn_index + 1, len(state.turn_order))
                state.turn_order.insert(insert_at, TurnEntry(TurnEntryKind.CREATURE, creature.id))
            self._log(
                state,
                LogEntryType.MOVEMENT,
                f"{creature.name} exits {vehicle.name}",
                "Acts immediately after current turn, then normal initiative next round",
            )
        return state

    def _set_initiative(self, event: ev.SetInitiative, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        creature = state.get_creature(event.creature_id)
        if creature is None:
            return None
        creature.initiative = event.initiative
        return state

    def _set_initiative_order(self, event: ev.SetInitiativeOrder, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        order = list(event.order)
        if len(order) != len(state.turn_order) or set(order) != set(state.turn_order):
            return None
        state.turn_order = order
        return state

    def _set_chase_mode(self, event: ev.SetChaseMode, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if state.is_chase == event.is_chase:
            return None
        state.is_chase = event.is_chase
        return state

    def _set_environment(self, event: ev.SetEnvironment, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if event.name is not None:
            state.environment.name = event.name
        if event.visibility is not None:
            state.environment.visibility = event.visibility
        if event.notes is not None:
            state.environment.notes = event.notes
        return state

    def _load_party_preset(self, event: ev.LoadPartyPreset, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if state.phase != EncounterPhase.SETUP:
            return None

        vehicle_ids = {}
        new_vehicles = []
        for index, preset in enumerate(event.vehicles, start=1):
            vehicle = copy.deepcopy(preset)
            vehicle.id = new_id()
            vehicle.faction = Faction.PARTY
            vehicle.position = Position(PRESET_ORIGIN.x, PRESET_ORIGIN.y + index * PRESET_SPACING)
            vehicle_ids[preset.id] = vehicle.id
            new_vehicles.append(vehicle)

        creature_ids = {}
        new_creatures = []
        for preset in event.creatures:
            creature = copy.deepcopy(preset)
            creature.id = new_id()
            creature_ids[preset.id] = creature.id
            new_creatures.append(creature)

        new_assignments = [
            CrewAssignment(creature_ids[a.creature_id], vehicle_ids[a.vehicle_id], a.station_id)
            for a in event.crew_assignments
            if a.creature_id in creature_ids and a.vehicle_id in vehicle_ids
        ]
        crewed = {a.creature_id for a in new_assignments}
        for creature in new_creatures:
            if creature.id in crewed:
                creature.position = None

        enemy_vehicles = [v for v in state.vehicles if v.faction == Faction.ENEMY]
        enemy_ids = {v.id for v in enemy_vehicles}
        kept_assignments = [a for a in state.crew_assignments if a.vehicle_id in enemy_ids]
        kept_creatures = {a.creature_id for a in kept_assignments}
        kept_creatures.update(
            c.id for c in state.creatures
            if c.faction == Faction.ENEMY and not state.is_crewed(c.id)
        )

        state.vehicles = enemy_vehicles + new_vehicles
        state.creatures = [c for c in state.creatures if c.id in kept_creatures] + new_creatures
        state.crew_assignments = kept_assignments + new_assignments
        state.turn_order = []
        self._log(
            state,
            LogEntryType.SYSTEM,
            "Party preset loaded",
            f"{len(new_vehicles)} vehicle(s), {len(new_creatures)} creature(s)",
        )
        return state

    def _add_elevation_zone(self, event: ev.AddElevationZone, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if event.zone is None or any(z.id == event.zone.id for z in state.elevation_zones):
            return None
        state.elevation_zones.append(copy.deepcopy(event.zone))
        return state

    def _update_elevation_zone(self, event: ev.UpdateElevationZone, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if event.zone is None:
            return None
        for index, zone in enumerate(state.elevation_zones):
            if zone.id == event.zone.id:
                state.elevation_zones[index] = copy.deepcopy(event.zone)
                return state
        return None

    def _remove_elevation_zone(self, event: ev.RemoveElevationZone, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        remaining = [z for z in state.elevation_zones if z.id != event.zone_id]
        if len(remaining) == len(state.elevation_zones):
            return None
        state.elevation_zones = remaining
        return state

    def _move_vehicle(self, event: ev.MoveVehicle, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        if vehicle is None or (event.position is None and event.facing is None):
            return None
        if event.position is not None:
            vehicle.position = Position(event.position.x, event.position.y)
        if event.facing is not None:
            vehicle.facing = event.facing % 360
        return state

    def _move_creature(self, event: ev.MoveCreature, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        creature = state.get_creature(event.creature_id)
        if creature is None or event.position is None or state.is_crewed(creature.id):
            return None
        creature.position = Position(event.position.x, event.position.y)
        return state

    def _set_scale(self, event: ev.SetScale, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if event.scale == state.scale:
            return None
        state.scale = event.scale
        config = get_scale_config(event.scale)
        self._log(
            state,
            LogEntryType.SCALE_CHANGE,
            f"Scale changed to {config.display_name}",
            f"{config.round_duration_display} per round",
        )
        return state

    # =========================================================================
    # TURN FLOW
    # =========================================================================

    def _start_combat(self, event: ev.StartCombat, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if state.in_combat:
            return None
        state.turn_order = build_turn_order(state, self.config.no_driver_initiative)
        state.phase = EncounterPhase.COMBAT
        state.round = 1
        state.current_turn_index = first_active_index(state) or 0
        self._log(state, LogEntryType.ROUND_START, "Combat begins! Round 1")
        logger.info(f"Combat started with {len(state.turn_order)} turn order entries")
        return state

    def _next_turn(self, event: ev.NextTurn, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if not state.in_combat:
            return None
        next_index = first_active_index(state, state.current_turn_index + 1)
        if next_index is None:
            return None
        state.current_turn_index = next_index
        self._expire_speed_modifiers(state, state.round, next_index)
        self._log(
            state,
            LogEntryType.TURN_START,
            f"{describe_turn(state, state.turn_order[next_index])}'s turn",
        )
        return state

    def _previous_turn(self, event: ev.PreviousTurn, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if not state.in_combat or state.current_turn_index <= 0:
            return None
        state.current_turn_index -= 1
        return state

    def _next_round(self, event: ev.NextRound, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if not state.in_combat:
            return None
        state.round += 1

        self._tick_timed_mishaps(state)
        self._expire_speed_modifiers(state, state.round, 0)
        state.turn_order = rebuild_turn_order(state, self.config.no_driver_initiative)
        state.current_turn_index = first_active_index(state) or 0
        self._log(state, LogEntryType.ROUND_START, f"Round {state.round} begins")

        if state.auto_roll_complications and state.active_complication is None:
            self._roll_and_begin_complication(state)
        return state

    def _tick_mishap_durations(self, event: ev.TickMishapDurations, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if not self._tick_timed_mishaps(state):
            return None
        return state

    def _tick_timed_mishaps(self, state: EncounterSnapshot) -> bool:
        """Count down every timed mishap by one round; returns whether any was timed."""
        ticked = False
        for vehicle in state.vehicles:
            remaining = []
            for mishap in vehicle.active_mishaps:
                if mishap.duration == MishapDuration.ROUNDS and mishap.rounds_remaining is not None:
                    ticked = True
                    mishap.rounds_remaining -= 1
                    if mishap.rounds_remaining <= 0:
                        self._log(state, LogEntryType.MISHAP, f"{vehicle.name}: {mishap.name} wears off")
                        continue
                remaining.append(mishap)
            vehicle.active_mishaps = remaining
        return ticked

    def _end_combat(self, event: ev.EndCombat, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if not state.in_combat:
            return None
        state.phase = EncounterPhase.ENDED
        self._log(state, LogEntryType.SYSTEM, "Combat ended")
        logger.info(f"Combat ended after {state.round} round(s)")
        return state

    def _reset_combat(self, event: ev.ResetCombat, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        state.phase = EncounterPhase.SETUP
        state.round = 0
        state.current_turn_index = 0
        state.turn_order = []
        state.active_complication = None
        for vehicle in state.vehicles:
            vehicle.current_hp = vehicle.max_hp
            vehicle.is_inoperative = False
            vehicle.active_mishaps = []
            vehicle.speed_modifiers = []
        for creature in state.creatures:
            creature.current_hp = creature.max_hp
            creature.temp_hp = 0
            creature.initiative = 0
        state.log = []
        self._log(state, LogEntryType.SYSTEM, "Encounter reset - HP and mishaps restored")
        return state

    def _return_to_setup(self, event: ev.ReturnToSetup, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if state.phase == EncounterPhase.SETUP:
            return None
        self._log(state, LogEntryType.SYSTEM, "Returned to setup phase")
        state.phase = EncounterPhase.SETUP
        state.round = 0
        state.current_turn_index = 0
        state.turn_order = []
        return state

    # =========================================================================
    # DAMAGE AND MISHAPS
    # =========================================================================

    def _damage_vehicle(self, event: ev.DamageVehicle, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        if vehicle is None:
            return None
        amount = max(0, event.amount)
        was_inoperative = vehicle.is_inoperative
        vehicle.current_hp = max(0, vehicle.current_hp - amount)
        self._log(state, LogEntryType.DAMAGE, f"{vehicle.name} takes {amount} damage", event.source)

        if vehicle.current_hp == 0 and not vehicle.is_inoperative:
            self._destroy_vehicle(state, vehicle)

        if (
            event.check_mishap
            and not was_inoperative
            and self.config.auto_mishap_on_damage
            and amount > 0
            and mishap_triggered_by_damage(amount, vehicle.template.mishap_threshold)
        ):
            self._roll_vehicle_mishap(state, vehicle, f"{amount} damage in one hit")
        return state

    def _heal_vehicle(self, event: ev.HealVehicle, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        if vehicle is None:
            return None
        amount = max(0, event.amount)
        vehicle.current_hp = min(vehicle.max_hp, vehicle.current_hp + amount)
        self._log(state, LogEntryType.HEALING, f"{vehicle.name} is repaired for {amount} HP")
        return state

    def _damage_creature(self, event: ev.DamageCreature, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        creature = state.get_creature(event.creature_id)
        if creature is None:
            return None
        amount = max(0, event.amount)
        was_up = creature.current_hp > 0
        absorbed = min(creature.temp_hp, amount)
        creature.temp_hp -= absorbed
        creature.current_hp = max(0, creature.current_hp - (amount - absorbed))
        self._log(state, LogEntryType.DAMAGE, f"{creature.name} takes {amount} damage", event.source)

        if was_up and creature.current_hp == 0:
            assignment = state.get_assignment(creature.id)
            if assignment is not None:
                vehicle = state.get_vehicle(assignment.vehicle_id)
                station = vehicle.template.get_station(assignment.station_id) if vehicle else None
                details = f"{station.name} on {vehicle.name} is now unmanned" if station else ""
                self._log(state, LogEntryType.SYSTEM, f"{creature.name} is incapacitated at their station", details)
            else:
                self._log(state, LogEntryType.CONDITION, f"{creature.name} drops to 0 HP")
        return state

    def _heal_creature(self, event: ev.HealCreature, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        creature = state.get_creature(event.creature_id)
        if creature is None:
            return None
        amount = max(0, event.amount)
        creature.current_hp = min(creature.max_hp, creature.current_hp + amount)
        self._log(state, LogEntryType.HEALING, f"{creature.name} heals {amount} HP")
        return state

    def _set_temp_hp(self, event: ev.SetTempHp, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        creature = state.get_creature(event.creature_id)
        if creature is None:
            return None
        creature.temp_hp = max(0, event.amount)
        return state

    def _roll_mishap(self, event: ev.RollMishap, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        if vehicle is None:
            return None
        self._roll_vehicle_mishap(state, vehicle, event.reason)
        return state

    def _apply_mishap(self, event: ev.ApplyMishap, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        if vehicle is None or event.mishap is None:
            return None
        self._add_mishap(state, vehicle, event.mishap, rounds=event.rounds)
        return state

    def _repair_mishap(self, event: ev.RepairMishap, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        mishap = vehicle.get_mishap(event.mishap_id) if vehicle else None
        if mishap is None:
            return None
        if event.check_total is not None:
            if not mishap.is_repairable:
                return None
            if event.check_total < mishap.repair_dc:
                self._log(
                    state,
                    LogEntryType.MISHAP,
                    f"Repair of {mishap.name} on {vehicle.name} fails",
                    f"{event.check_total} vs DC {mishap.repair_dc}",
                )
                return state
        vehicle.active_mishaps = [m for m in vehicle.active_mishaps if m.id != mishap.id]
        self._log(state, LogEntryType.MISHAP, f"{vehicle.name}: {mishap.name} repaired")
        return state

    def _add_speed_modifier(self, event: ev.AddSpeedModifier, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        vehicle = state.get_vehicle(event.vehicle_id)
        if vehicle is None:
            return None
        vehicle.speed_modifiers.append(
            SpeedModifier(
                id=new_id("speed"),
                multiplier=max(0.0, event.multiplier),
                duration=event.duration,
                applied_at_round=state.round,
                applied_at_turn_index=state.current_turn_index,
                source=event.source,
            )
        )
        return state

    def _clear_expired_speed_modifiers(
        self, event: ev.ClearExpiredSpeedModifiers, state: EncounterSnapshot
    ) -> Optional[EncounterSnapshot]:
        if not self._expire_speed_modifiers(state, state.round, state.current_turn_index):
            return None
        return state

    # =========================================================================
    # COMPLICATIONS
    # =========================================================================

    def _toggle_auto_roll_complications(
        self, event: ev.ToggleAutoRollComplications, state: EncounterSnapshot
    ) -> Optional[EncounterSnapshot]:
        state.auto_roll_complications = not state.auto_roll_complications
        return state

    def _roll_complication(self, event: ev.RollComplication, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if state.active_complication is not None:
            return None
        self._roll_and_begin_complication(state)
        return state

    def _start_complication(self, event: ev.StartComplication, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if state.active_complication is not None or event.complication is None:
            return None
        self._begin_complication(state, event.complication, event.roll)
        return state

    def _resolve_vehicle_complication(
        self, event: ev.ResolveVehicleComplication, state: EncounterSnapshot
    ) -> Optional[EncounterSnapshot]:
        active = state.active_complication
        resolution = active.get_resolution(event.vehicle_id) if active else None
        vehicle = state.get_vehicle(event.vehicle_id)
        if resolution is None or vehicle is None:
            return None

        complication = active.complication
        driver = find_vehicle_driver(state, vehicle)

        if event.status is not None:
            if event.status == ResolutionStatus.PENDING:
                return None
            if event.status == ResolutionStatus.PASSED and driver is None:
                logger.debug(f"{vehicle.name} has no driver and cannot pass {complication.name}")
                return None
            resolution.status = event.status
            self._log(
                state,
                LogEntryType.COMPLICATION,
                f"{vehicle.name}: {complication.name} {event.status.value}",
            )
            return state

        if driver is None:
            return None
        roll = event.roll if event.roll is not None else self.dice.roll_d20(
            f"{driver.name} vs {complication.name}"
        ).total
        modifier = get_driver_save_modifier(state, vehicle, complication.save_ability)
        total = roll + modifier
        if complication.save_ability == Ability.DEX and has_auto_fail_dex(vehicle):
            passed = False
        else:
            passed = total >= complication.difficulty

        resolution.driver_name = driver.name
        resolution.roll_result = roll
        resolution.modifier = modifier
        resolution.total = total
        resolution.status = ResolutionStatus.PASSED if passed else ResolutionStatus.FAILED
        self._log(
            state,
            LogEntryType.COMPLICATION,
            f"{vehicle.name}: {complication.name} {resolution.status.value}",
            f"{driver.name} rolled {roll} {modifier:+d} = {total} vs DC {complication.difficulty}",
        )
        return state

    def _apply_complication_effects(
        self, event: ev.ApplyComplicationEffects, state: EncounterSnapshot
    ) -> Optional[EncounterSnapshot]:
        active = state.active_complication
        if active is None or not active.is_resolved:
            return None
        complication = active.complication

        failed = [r for r in active.resolutions if r.status == ResolutionStatus.FAILED]
        passed = [r for r in active.resolutions if r.status == ResolutionStatus.PASSED]
        for resolution in failed:
            vehicle = state.get_vehicle(resolution.vehicle_id)
            if vehicle is None or complication.failure_speed_multiplier is None:
                continue
            vehicle.speed_modifiers.append(
                SpeedModifier(
                    id=new_id("speed"),
                    multiplier=complication.failure_speed_multiplier,
                    duration=SpeedModifierDuration.THIS_ROUND,
                    applied_at_round=state.round,
                    applied_at_turn_index=state.current_turn_index,
                    source=complication.name,
                )
            )

        details = []
        if failed:
            details.append(f"Failed: {', '.join(r.vehicle_name for r in failed)}")
            if complication.failure_effect:
                details.append(complication.failure_effect)
        if passed:
            details.append(f"Passed: {', '.join(r.vehicle_name for r in passed)}")
        self._log(
            state,
            LogEntryType.COMPLICATION,
            f"{complication.name} resolved",
            ". ".join(details),
        )
        state.active_complication = None
        return state

    def _clear_complication(self, event: ev.ClearComplication, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if state.active_complication is None:
            return None
        self._log(state, LogEntryType.COMPLICATION, f"{state.active_complication.complication.name} cleared")
        state.active_complication = None
        return state

    # =========================================================================
    # LOG
    # =========================================================================

    def _log_action(self, event: ev.LogAction, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if not event.action:
            return None
        self._log(state, event.entry_type, event.action, event.details)
        return state

    def _clear_log(self, event: ev.ClearLog, state: EncounterSnapshot) -> Optional[EncounterSnapshot]:
        if not state.log:
            return None
        state.log = []
        return state


# =============================================================================
# DEFAULT ENGINE
# =============================================================================

_engine: Optional[EncounterEngine] = None


def get_encounter_engine() -> EncounterEngine:
    """Get the shared default engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = EncounterEngine()
    return _engine


def reset_encounter_engine(engine: Optional[EncounterEngine] = None) -> None:
    """Replace (or drop) the shared default engine."""
    global _engine
    _engine = engine


def apply(event: ev.EncounterEvent, snapshot: EncounterSnapshot) -> EncounterSnapshot:
    """Fold an event into a snapshot with the default engine."""
    return get_encounter_engine().apply(event, snapshot)
