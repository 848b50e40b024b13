"""
Events accepted by the encounter engine.

Each event is a small frozen dataclass. The engine folds one event at a
time into a snapshot; callers never touch a snapshot directly.
"""

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Optional

from src.data_models import (
    Complication,
    CrewAssignment,
    Creature,
    ElevationZone,
    EncounterSnapshot,
    Faction,
    LogEntryType,
    Mishap,
    Position,
    ResolutionStatus,
    ScaleName,
    SpeedModifierDuration,
    TurnEntry,
    Vehicle,
    WeaponTemplate,
)


@dataclass(frozen=True)
class EncounterEvent:
    """Base class for everything the engine understands."""
    kind: ClassVar[str] = "event"


# =============================================================================
# SETUP
# =============================================================================


@dataclass(frozen=True)
class NewEncounter(EncounterEvent):
    kind: ClassVar[str] = "new_encounter"
    name: str = "New Encounter"


@dataclass(frozen=True)
class LoadEncounter(EncounterEvent):
    """Replace the whole encounter with a previously saved snapshot."""
    kind: ClassVar[str] = "load_encounter"
    snapshot: EncounterSnapshot = field(default_factory=EncounterSnapshot)


@dataclass(frozen=True)
class SetEncounterName(EncounterEvent):
    kind: ClassVar[str] = "set_encounter_name"
    name: str = ""


@dataclass(frozen=True)
class MarkSaved(EncounterEvent):
    kind: ClassVar[str] = "mark_saved"


@dataclass(frozen=True)
class AddVehicle(EncounterEvent):
    kind: ClassVar[str] = "add_vehicle"
    vehicle: Optional[Vehicle] = None


@dataclass(frozen=True)
class RemoveVehicle(EncounterEvent):
    kind: ClassVar[str] = "remove_vehicle"
    vehicle_id: str = ""


@dataclass(frozen=True)
class UpdateVehicle(EncounterEvent):
    """Edit a vehicle's details; setting HP to 0 destroys it like damage would."""
    kind: ClassVar[str] = "update_vehicle"
    vehicle_id: str = ""
    name: Optional[str] = None
    faction: Optional[Faction] = None
    current_hp: Optional[int] = None


@dataclass(frozen=True)
class SwapVehicleWeapon(EncounterEvent):
    """Mount a different weapon at a station, replacing what was there."""
    kind: ClassVar[str] = "swap_vehicle_weapon"
    vehicle_id: str = ""
    station_id: str = ""
    weapon: Optional[WeaponTemplate] = None


@dataclass(frozen=True)
class SetVehicleArmor(EncounterEvent):
    """Fit an armor upgrade; "none" strips it back to plain plating."""
    kind: ClassVar[str] = "set_vehicle_armor"
    vehicle_id: str = ""
    armor_upgrade_id: str = "none"


@dataclass(frozen=True)
class ToggleVehicleGadget(EncounterEvent):
    kind: ClassVar[str] = "toggle_vehicle_gadget"
    vehicle_id: str = ""
    gadget_id: str = ""


@dataclass(frozen=True)
class ToggleWeaponStationUpgrade(EncounterEvent):
    """Mount or remove the template's custom weapon station."""
    kind: ClassVar[str] = "toggle_weapon_station_upgrade"
    vehicle_id: str = ""


@dataclass(frozen=True)
class AddCreature(EncounterEvent):
    kind: ClassVar[str] = "add_creature"
    creature: Optional[Creature] = None


@dataclass(frozen=True)
class RemoveCreature(EncounterEvent):
    kind: ClassVar[str] = "remove_creature"
    creature_id: str = ""


@dataclass(frozen=True)
class UpdateCreature(EncounterEvent):
    kind: ClassVar[str] = "update_creature"
    creature_id: str = ""
    name: Optional[str] = None
    faction: Optional[Faction] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class AssignCrew(EncounterEvent):
    kind: ClassVar[str] = "assign_crew"
    creature_id: str = ""
    vehicle_id: str = ""
    station_id: str = ""


@dataclass(frozen=True)
class UnassignCrew(EncounterEvent):
    kind: ClassVar[str] = "unassign_crew"
    creature_id: str = ""


@dataclass(frozen=True)
class SetInitiative(EncounterEvent):
    kind: ClassVar[str] = "set_initiative"
    creature_id: str = ""
    initiative: int = 0


@dataclass(frozen=True)
class SetInitiativeOrder(EncounterEvent):
    """Manually reorder the turn order; must contain the same entries."""
    kind: ClassVar[str] = "set_initiative_order"
    order: tuple[TurnEntry, ...] = ()


@dataclass(frozen=True)
class SetChaseMode(EncounterEvent):
    kind: ClassVar[str] = "set_chase_mode"
    is_chase: bool = True


@dataclass(frozen=True)
class SetEnvironment(EncounterEvent):
    kind: ClassVar[str] = "set_environment"
    name: Optional[str] = None
    visibility: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class LoadPartyPreset(EncounterEvent):
    """Swap in a saved party: fresh ids, enemy side left untouched."""
    kind: ClassVar[str] = "load_party_preset"
    vehicles: tuple[Vehicle, ...] = ()
    creatures: tuple[Creature, ...] = ()
    crew_assignments: tuple[CrewAssignment, ...] = ()


@dataclass(frozen=True)
class AddElevationZone(EncounterEvent):
    kind: ClassVar[str] = "add_elevation_zone"
    zone: Optional[ElevationZone] = None


@dataclass(frozen=True)
class UpdateElevationZone(EncounterEvent):
    kind: ClassVar[str] = "update_elevation_zone"
    zone: Optional[ElevationZone] = None


@dataclass(frozen=True)
class RemoveElevationZone(EncounterEvent):
    kind: ClassVar[str] = "remove_elevation_zone"
    zone_id: str = ""


@dataclass(frozen=True)
class MoveVehicle(EncounterEvent):
    kind: ClassVar[str] = "move_vehicle"
    vehicle_id: str = ""
    position: Optional[Position] = None
    facing: Optional[float] = None


@dataclass(frozen=True)
class MoveCreature(EncounterEvent):
    """Move a creature on foot. Crewed creatures have no position to move."""
    kind: ClassVar[str] = "move_creature"
    creature_id: str = ""
    position: Optional[Position] = None


@dataclass(frozen=True)
class SetScale(EncounterEvent):
    kind: ClassVar[str] = "set_scale"
    scale: ScaleName = ScaleName.TACTICAL


# =============================================================================
# TURN FLOW
# =============================================================================


@dataclass(frozen=True)
class StartCombat(EncounterEvent):
    kind: ClassVar[str] = "start_combat"


@dataclass(frozen=True)
class NextTurn(EncounterEvent):
    kind: ClassVar[str] = "next_turn"


@dataclass(frozen=True)
class PreviousTurn(EncounterEvent):
    kind: ClassVar[str] = "previous_turn"


@dataclass(frozen=True)
class NextRound(EncounterEvent):
    kind: ClassVar[str] = "next_round"


@dataclass(frozen=True)
class EndCombat(EncounterEvent):
    kind: ClassVar[str] = "end_combat"


@dataclass(frozen=True)
class ResetCombat(EncounterEvent):
    """Back to setup with full HP and no mishaps."""
    kind: ClassVar[str] = "reset_combat"


@dataclass(frozen=True)
class ReturnToSetup(EncounterEvent):
    """Back to setup, keeping damage and mishaps."""
    kind: ClassVar[str] = "return_to_setup"


# =============================================================================
# DAMAGE AND MISHAPS
# =============================================================================


@dataclass(frozen=True)
class DamageVehicle(EncounterEvent):
    """
    A single damage instance against a vehicle.

    With check_mishap set, a hit at or above the vehicle's mishap threshold
    rolls on the mishap table.
    """
    kind: ClassVar[str] = "damage_vehicle"
    vehicle_id: str = ""
    amount: int = 0
    source: str = ""
    check_mishap: bool = True


@dataclass(frozen=True)
class HealVehicle(EncounterEvent):
    kind: ClassVar[str] = "heal_vehicle"
    vehicle_id: str = ""
    amount: int = 0


@dataclass(frozen=True)
class DamageCreature(EncounterEvent):
    kind: ClassVar[str] = "damage_creature"
    creature_id: str = ""
    amount: int = 0
    source: str = ""


@dataclass(frozen=True)
class HealCreature(EncounterEvent):
    kind: ClassVar[str] = "heal_creature"
    creature_id: str = ""
    amount: int = 0


@dataclass(frozen=True)
class SetTempHp(EncounterEvent):
    kind: ClassVar[str] = "set_temp_hp"
    creature_id: str = ""
    amount: int = 0


@dataclass(frozen=True)
class RollMishap(EncounterEvent):
    """Roll on the mishap table for a vehicle (e.g. after a badly failed check)."""
    kind: ClassVar[str] = "roll_mishap"
    vehicle_id: str = ""
    reason: str = ""


@dataclass(frozen=True)
class ApplyMishap(EncounterEvent):
    """Apply a specific mishap, chosen by the operator rather than rolled."""
    kind: ClassVar[str] = "apply_mishap"
    vehicle_id: str = ""
    mishap: Optional[Mishap] = None
    rounds: Optional[int] = None


@dataclass(frozen=True)
class RepairMishap(EncounterEvent):
    """
    Clear an active mishap.

    With check_total, the repair only succeeds against a mishap that has a
    repair DC the total meets. Without it, the operator is declaring the
    mishap resolved.
    """
    kind: ClassVar[str] = "repair_mishap"
    vehicle_id: str = ""
    mishap_id: str = ""
    check_total: Optional[int] = None


@dataclass(frozen=True)
class TickMishapDurations(EncounterEvent):
    """Count timed mishaps down by one round without advancing the round."""
    kind: ClassVar[str] = "tick_mishap_durations"


@dataclass(frozen=True)
class AddSpeedModifier(EncounterEvent):
    kind: ClassVar[str] = "add_speed_modifier"
    vehicle_id: str = ""
    multiplier: float = 1.0
    duration: SpeedModifierDuration = SpeedModifierDuration.THIS_ROUND
    source: str = ""


@dataclass(frozen=True)
class ClearExpiredSpeedModifiers(EncounterEvent):
    kind: ClassVar[str] = "clear_expired_speed_modifiers"


# =============================================================================
# COMPLICATIONS
# =============================================================================


@dataclass(frozen=True)
class ToggleAutoRollComplications(EncounterEvent):
    kind: ClassVar[str] = "toggle_auto_roll_complications"


@dataclass(frozen=True)
class RollComplication(EncounterEvent):
    """Roll on the current scale's complication table."""
    kind: ClassVar[str] = "roll_complication"


@dataclass(frozen=True)
class StartComplication(EncounterEvent):
    kind: ClassVar[str] = "start_complication"
    complication: Optional[Complication] = None
    roll: int = 0


@dataclass(frozen=True)
class ResolveVehicleComplication(EncounterEvent):
    """
    Record one vehicle's outcome.

    Give either a status (passed/failed/skipped) or the driver's d20 roll;
    with neither, the engine rolls for the driver.
    """
    kind: ClassVar[str] = "resolve_vehicle_complication"
    vehicle_id: str = ""
    status: Optional[ResolutionStatus] = None
    roll: Optional[int] = None


@dataclass(frozen=True)
class ApplyComplicationEffects(EncounterEvent):
    kind: ClassVar[str] = "apply_complication_effects"


@dataclass(frozen=True)
class ClearComplication(EncounterEvent):
    kind: ClassVar[str] = "clear_complication"


# =============================================================================
# LOG
# =============================================================================


@dataclass(frozen=True)
class LogAction(EncounterEvent):
    kind: ClassVar[str] = "log_action"
    action: str = ""
    details: str = ""
    entry_type: LogEntryType = LogEntryType.SYSTEM


@dataclass(frozen=True)
class ClearLog(EncounterEvent):
    kind: ClassVar[str] = "clear_log"


# =============================================================================
# EVENT SCRIPTS
# =============================================================================


EVENT_TYPES: dict[str, type[EncounterEvent]] = {
    cls.kind: cls
    for cls in (
        NewEncounter, LoadEncounter, SetEncounterName, MarkSaved, AddVehicle,
        RemoveVehicle, UpdateVehicle, SwapVehicleWeapon, SetVehicleArmor, ToggleVehicleGadget,
        ToggleWeaponStationUpgrade, AddCreature, RemoveCreature,
        UpdateCreature, AssignCrew, UnassignCrew, SetInitiative, SetInitiativeOrder,
        SetChaseMode, SetEnvironment, LoadPartyPreset, AddElevationZone,
        UpdateElevationZone, RemoveElevationZone, MoveVehicle, MoveCreature, SetScale,
        StartCombat, NextTurn, PreviousTurn, NextRound, EndCombat, ResetCombat,
        ReturnToSetup, DamageVehicle, HealVehicle, DamageCreature, HealCreature,
        SetTempHp, RollMishap, ApplyMishap, RepairMishap, TickMishapDurations, AddSpeedModifier,
        ClearExpiredSpeedModifiers, ToggleAutoRollComplications, RollComplication,
        StartComplication, ResolveVehicleComplication, ApplyComplicationEffects,
        ClearComplication, LogAction, ClearLog,
    )
}

# Fields that need more than a plain JSON value to rebuild
_FIELD_DECODERS: dict[str, Any] = {
    "vehicle": Vehicle.from_dict,
    "creature": Creature.from_dict,
    "zone": ElevationZone.from_dict,
    "mishap": Mishap.from_dict,
    "complication": Complication.from_dict,
    "weapon": WeaponTemplate.from_dict,
    "position": Position.from_dict,
    "snapshot": EncounterSnapshot.from_dict,
    "faction": Faction,
    "scale": ScaleName,
    "status": ResolutionStatus,
    "duration": SpeedModifierDuration,
    "entry_type": LogEntryType,
    "order": lambda items: tuple(TurnEntry.from_dict(i) for i in items),
    "vehicles": lambda items: tuple(Vehicle.from_dict(i) for i in items),
    "creatures": lambda items: tuple(Creature.from_dict(i) for i in items),
    "crew_assignments": lambda items: tuple(CrewAssignment.from_dict(i) for i in items),
}


def event_from_dict(data: dict[str, Any]) -> EncounterEvent:
    """
    Build an event from a JSON-style record such as
    {"kind": "damage_vehicle", "vehicle_id": "...", "amount": 12}.

    Raises:
        ValueError: If the kind is unknown
    """
    kind = data.get("kind")
    event_type = EVENT_TYPES.get(kind)
    if event_type is None:
        raise ValueError(f"Unknown event kind: {kind!r}")

    kwargs = {}
    for f in fields(event_type):
        if f.name not in data:
            continue
        value = data[f.name]
        decoder = _FIELD_DECODERS.get(f.name)
        if decoder is not None and value is not None:
            value = decoder(value)
        kwargs[f.name] = value
    return event_type(**kwargs)
