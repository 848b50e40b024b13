"""
Derived views over an encounter snapshot.

Cheap, pure queries for renderers and for the engine itself, so nobody
has to recompute who is driving or how fast a damaged vehicle can go.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from src.data_models import (
    Ability,
    CrewAssignment,
    Creature,
    EncounterSnapshot,
    Station,
    StationRole,
    TurnEntry,
    TurnEntryKind,
    Vehicle,
    ability_modifier,
)
from src.tables.vehicle_upgrades import get_armor_upgrade


# =============================================================================
# CREW AND DRIVERS
# =============================================================================


@dataclass
class CrewMember:
    """A crew assignment resolved against its creature and station."""
    assignment: CrewAssignment
    creature: Creature
    station: Optional[Station]

    @property
    def role(self) -> Optional[StationRole]:
        return self.station.role if self.station else None


def get_vehicle_crew(snapshot: EncounterSnapshot, vehicle: Vehicle) -> list[CrewMember]:
    """Crew of a vehicle in assignment order, skipping dangling assignments."""
    crew = []
    for assignment in snapshot.crew_for_vehicle(vehicle.id):
        creature = snapshot.get_creature(assignment.creature_id)
        if creature is None:
            continue
        crew.append(CrewMember(assignment, creature, vehicle.template.get_station(assignment.station_id)))
    return crew


def find_vehicle_driver(snapshot: EncounterSnapshot, vehicle: Vehicle) -> Optional[Creature]:
    """
    The creature whose initiative the vehicle acts on.

    The first crew member at a driver station wins; without one, the crew
    member at the earliest station in template order drives.
    """
    crew = get_vehicle_crew(snapshot, vehicle)
    if not crew:
        return None
    for member in crew:
        if member.role == StationRole.DRIVER:
            return member.creature
    earliest = min(crew, key=lambda m: vehicle.template.station_index(m.assignment.station_id))
    return earliest.creature


def get_driver_save_modifier(
    snapshot: EncounterSnapshot, vehicle: Vehicle, ability: Ability = Ability.DEX
) -> Optional[int]:
    """Driver's save bonus for an ability, or None for a driverless vehicle."""
    driver = find_vehicle_driver(snapshot, vehicle)
    if driver is None:
        return None
    return driver.statblock.save_modifier(ability)


def get_station_occupants(
    snapshot: EncounterSnapshot, vehicle_id: str, station_id: str
) -> list[Creature]:
    occupants = []
    for assignment in snapshot.crew_for_vehicle(vehicle_id):
        if assignment.station_id != station_id:
            continue
        creature = snapshot.get_creature(assignment.creature_id)
        if creature is not None:
            occupants.append(creature)
    return occupants


def is_station_unmanned(snapshot: EncounterSnapshot, vehicle_id: str, station_id: str) -> bool:
    """True when nobody alive is at the station."""
    return not any(c.current_hp > 0 for c in get_station_occupants(snapshot, vehicle_id, station_id))


# =============================================================================
# VEHICLE STATISTICS
# =============================================================================


def get_effective_speed(vehicle: Vehicle) -> int:
    """
    Speed after mishaps and speed modifiers.

    Mishap speed loss is subtracted from the template speed (never below
    zero), then each modifier multiplies and rounds down in turn.
    """
    reduction = sum(m.mechanical_effect.speed_reduction for m in vehicle.active_mishaps)
    speed = max(0, vehicle.template.speed - reduction)
    for modifier in vehicle.speed_modifiers:
        speed = int(speed * modifier.multiplier)
    return speed


def get_effective_damage_threshold(vehicle: Vehicle) -> int:
    reduction = sum(m.mechanical_effect.damage_threshold_reduction for m in vehicle.active_mishaps)
    return max(0, vehicle.template.damage_threshold - reduction)


def get_disabled_weapon_count(vehicle: Vehicle) -> int:
    disabled = sum(1 for m in vehicle.active_mishaps if m.mechanical_effect.disables_weapon)
    return min(disabled, len(vehicle.weapons))


def has_auto_fail_dex(vehicle: Vehicle) -> bool:
    return any(m.mechanical_effect.auto_fail_dex_checks for m in vehicle.active_mishaps)


def get_effective_ac(vehicle: Vehicle) -> int:
    """
    Armor class after the armor upgrade.

    Plating with a fixed AC replaces the hull's, plus the vehicle's own
    Dexterity modifier; any other plating leaves the template AC alone.
    """
    armor = get_armor_upgrade(vehicle.armor_upgrade_id)
    if armor is None or armor.fixed_ac is None:
        return vehicle.template.ac
    dex = vehicle.template.ability_scores.get(Ability.DEX.value, 10)
    return armor.fixed_ac + ability_modifier(dex)


@dataclass
class VehicleDefenses:
    immunities: list[str] = field(default_factory=list)
    resistances: list[str] = field(default_factory=list)


def get_vehicle_defenses(vehicle: Vehicle) -> VehicleDefenses:
    """Hull immunities plus whatever the armor upgrade adds."""
    immunities = list(vehicle.template.immunities)
    armor = get_armor_upgrade(vehicle.armor_upgrade_id)
    if armor is None:
        return VehicleDefenses(immunities=immunities)
    for immunity in armor.additional_immunities:
        if immunity not in immunities:
            immunities.append(immunity)
    return VehicleDefenses(immunities=immunities, resistances=list(armor.resistances))


# =============================================================================
# TURN ORDER
# =============================================================================


def get_current_turn_entry(snapshot: EncounterSnapshot) -> Optional[TurnEntry]:
    if not snapshot.in_combat:
        return None
    if 0 <= snapshot.current_turn_index < len(snapshot.turn_order):
        return snapshot.turn_order[snapshot.current_turn_index]
    return None


def get_current_actor(snapshot: EncounterSnapshot) -> Optional[Union[Vehicle, Creature]]:
    """The vehicle or creature whose turn it is."""
    entry = get_current_turn_entry(snapshot)
    if entry is None:
        return None
    if entry.kind == TurnEntryKind.VEHICLE:
        return snapshot.get_vehicle(entry.id)
    return snapshot.get_creature(entry.id)


def get_current_turn_vehicle(snapshot: EncounterSnapshot) -> Optional[Vehicle]:
    actor = get_current_actor(snapshot)
    return actor if isinstance(actor, Vehicle) else None


def get_current_turn_creature(snapshot: EncounterSnapshot) -> Optional[Creature]:
    actor = get_current_actor(snapshot)
    return actor if isinstance(actor, Creature) else None


def get_current_turn_driver(snapshot: EncounterSnapshot) -> Optional[Creature]:
    vehicle = get_current_turn_vehicle(snapshot)
    return find_vehicle_driver(snapshot, vehicle) if vehicle else None


def describe_turn(snapshot: EncounterSnapshot, entry: TurnEntry) -> str:
    """Display name of a turn order slot, e.g. 'Tormentor (Zariel)'."""
    if entry.kind == TurnEntryKind.VEHICLE:
        vehicle = snapshot.get_vehicle(entry.id)
        if vehicle is None:
            return "Unknown"
        driver = find_vehicle_driver(snapshot, vehicle)
        return f"{vehicle.name} ({driver.name})" if driver else vehicle.name
    creature = snapshot.get_creature(entry.id)
    return creature.name if creature else "Unknown"


# =============================================================================
# PLAYER VIEW PROJECTION
# =============================================================================


@dataclass
class PlayerView:
    """Read-only projection broadcast to secondary displays."""
    round: int
    phase: str
    scale: str
    current_turn: Optional[str]
    vehicles: list[dict[str, Any]] = field(default_factory=list)
    creatures: list[dict[str, Any]] = field(default_factory=list)
    crew_assignments: list[dict[str, Any]] = field(default_factory=list)
    complication: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "round": self.round,
            "phase": self.phase,
            "scale": self.scale,
            "current_turn": self.current_turn,
            "vehicles": self.vehicles,
            "creatures": self.creatures,
            "crew_assignments": self.crew_assignments,
            "complication": self.complication,
        }


def build_player_view(snapshot: EncounterSnapshot) -> PlayerView:
    """Reduce a snapshot to what the players may see."""
    entry = get_current_turn_entry(snapshot)
    complication = None
    if snapshot.active_complication is not None:
        complication = {
            "name": snapshot.active_complication.complication.name,
            "round": snapshot.active_complication.round,
            "is_resolved": snapshot.active_complication.is_resolved,
        }
    return PlayerView(
        round=snapshot.round,
        phase=snapshot.phase.value,
        scale=snapshot.scale.value,
        current_turn=describe_turn(snapshot, entry) if entry else None,
        vehicles=[
            {
                "id": v.id,
                "name": v.name,
                "faction": v.faction.value,
                "position": v.position.to_dict(),
                "facing": v.facing,
                "current_hp": v.current_hp,
                "max_hp": v.max_hp,
                "ac": get_effective_ac(v),
                "is_inoperative": v.is_inoperative,
            }
            for v in snapshot.vehicles
        ],
        creatures=[
            {
                "id": c.id,
                "name": c.name,
                "faction": c.faction.value if c.faction else None,
                "position": c.position.to_dict() if c.position else None,
                "current_hp": c.current_hp,
                "max_hp": c.max_hp,
            }
            for c in snapshot.creatures
        ],
        crew_assignments=[a.to_dict() for a in snapshot.crew_assignments],
        complication=complication,
    )
