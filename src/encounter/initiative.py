"""
Turn order and crew placement rules.

A vehicle takes one turn for its whole crew, on its driver's initiative.
Creatures that are not crewing anything take their own turns. Vehicles
without a driver always act after everyone else.

The helpers here mutate the snapshot they are given; the engine only ever
hands them its private working copy.
"""

import math
from typing import Optional

from src.data_models import (
    Creature,
    EncounterSnapshot,
    Position,
    TurnEntry,
    TurnEntryKind,
    Vehicle,
)
from src.encounter.views import find_vehicle_driver


# Initiative given to a vehicle nobody is driving
NO_DRIVER_INITIATIVE = -100

# Distance from the vehicle at which ejected or exiting crew land
EJECTION_RADIUS = 15


def entry_initiative(
    snapshot: EncounterSnapshot, entry: TurnEntry, no_driver: int = NO_DRIVER_INITIATIVE
) -> int:
    if entry.kind == TurnEntryKind.VEHICLE:
        vehicle = snapshot.get_vehicle(entry.id)
        driver = find_vehicle_driver(snapshot, vehicle) if vehicle else None
        return driver.initiative if driver else no_driver
    creature = snapshot.get_creature(entry.id)
    return creature.initiative if creature else no_driver


def _sort_key(snapshot: EncounterSnapshot, entry: TurnEntry, no_driver: int) -> tuple:
    if entry.kind == TurnEntryKind.VEHICLE:
        vehicle = snapshot.get_vehicle(entry.id)
        driver = find_vehicle_driver(snapshot, vehicle) if vehicle else None
        name = vehicle.name if vehicle else ""
        if driver is None:
            return (1, -no_driver, name)
        return (0, -driver.initiative, name)
    creature = snapshot.get_creature(entry.id)
    if creature is None:
        return (1, -no_driver, "")
    return (0, -creature.initiative, creature.name)


def sort_turn_order(
    snapshot: EncounterSnapshot, entries: list[TurnEntry], no_driver: int = NO_DRIVER_INITIATIVE
) -> list[TurnEntry]:
    """Descending initiative, ties by name; undriven vehicles last."""
    return sorted(entries, key=lambda e: _sort_key(snapshot, e, no_driver))


def build_turn_order(
    snapshot: EncounterSnapshot, no_driver: int = NO_DRIVER_INITIATIVE
) -> list[TurnEntry]:
    """Fresh order: every operative vehicle plus every uncrewed creature."""
    entries = [
        TurnEntry(TurnEntryKind.VEHICLE, v.id)
        for v in snapshot.vehicles
        if not (v.is_inoperative or v.is_destroyed)
    ]
    entries.extend(
        TurnEntry(TurnEntryKind.CREATURE, c.id)
        for c in snapshot.creatures
        if not snapshot.is_crewed(c.id)
    )
    return sort_turn_order(snapshot, entries, no_driver)


def is_entry_active(snapshot: EncounterSnapshot, entry: TurnEntry) -> bool:
    """
    Whether a slot still gets a turn.

    Wrecked vehicles and downed non-player creatures are passed over.
    Player characters at 0 HP still act so they can make death saves.
    """
    if entry.kind == TurnEntryKind.VEHICLE:
        vehicle = snapshot.get_vehicle(entry.id)
        return vehicle is not None and not (vehicle.is_inoperative or vehicle.is_destroyed)
    creature = snapshot.get_creature(entry.id)
    if creature is None:
        return False
    return not (creature.is_down and not creature.is_player_controlled)


def rebuild_turn_order(
    snapshot: EncounterSnapshot, no_driver: int = NO_DRIVER_INITIATIVE
) -> list[TurnEntry]:
    """
    Re-sort the existing order at a round boundary.

    Only entries already in the order survive, minus wrecks, dead
    non-player creatures and creatures that have since taken a station.
    Nobody who left combat is re-admitted.
    """
    kept = []
    for entry in snapshot.turn_order:
        if not is_entry_active(snapshot, entry):
            continue
        if entry.kind == TurnEntryKind.CREATURE and snapshot.is_crewed(entry.id):
            continue
        kept.append(entry)
    return sort_turn_order(snapshot, kept, no_driver)


def first_active_index(snapshot: EncounterSnapshot, start: int = 0) -> Optional[int]:
    for index in range(max(0, start), len(snapshot.turn_order)):
        if is_entry_active(snapshot, snapshot.turn_order[index]):
            return index
    return None


def find_entry_index(snapshot: EncounterSnapshot, entry_id: str) -> int:
    for index, entry in enumerate(snapshot.turn_order):
        if entry.id == entry_id:
            return index
    return -1


def insert_by_initiative(
    snapshot: EncounterSnapshot, entry: TurnEntry, no_driver: int = NO_DRIVER_INITIATIVE
) -> int:
    """
    Insert before the first slot with a lower initiative, keeping the
    order descending. Returns the insertion index.

    During combat an entry landing at or before the current index pushes
    the index forward, so whoever is acting keeps the turn.
    """
    initiative = entry_initiative(snapshot, entry, no_driver)
    index = len(snapshot.turn_order)
    for position, existing in enumerate(snapshot.turn_order):
        if entry_initiative(snapshot, existing, no_driver) < initiative:
            index = position
            break
    if snapshot.in_combat and snapshot.turn_order and index <= snapshot.current_turn_index:
        snapshot.current_turn_index += 1
    snapshot.turn_order.insert(index, entry)
    return index


def remove_entry(snapshot: EncounterSnapshot, entry_id: str) -> bool:
    """
    Drop a slot that left the encounter, keeping the current actor in place.

    An entry removed before the current index shifts the index back; removing
    the current last entry clamps the index to the new end.
    """
    removed = find_entry_index(snapshot, entry_id)
    if removed == -1:
        return False
    del snapshot.turn_order[removed]
    if removed < snapshot.current_turn_index:
        snapshot.current_turn_index = max(0, snapshot.current_turn_index - 1)
    elif snapshot.current_turn_index >= len(snapshot.turn_order):
        snapshot.current_turn_index = max(0, len(snapshot.turn_order) - 1)
    return True


def ring_positions(center: Position, count: int, radius: float = EJECTION_RADIUS) -> list[Position]:
    """Evenly spaced points on a circle around a center."""
    return [
        Position(
            x=center.x + math.cos(2 * math.pi * index / count) * radius,
            y=center.y + math.sin(2 * math.pi * index / count) * radius,
        )
        for index in range(count)
    ]


def eject_crew(
    snapshot: EncounterSnapshot, vehicle: Vehicle, radius: float = EJECTION_RADIUS
) -> list[Creature]:
    """
    Pull every crew member off a vehicle and set them down around it.

    Returns the ejected creatures in assignment order.
    """
    assignments = snapshot.crew_for_vehicle(vehicle.id)
    creatures = [snapshot.get_creature(a.creature_id) for a in assignments]
    creatures = [c for c in creatures if c is not None]
    for creature, position in zip(creatures, ring_positions(vehicle.position, len(creatures), radius)):
        creature.position = position
    snapshot.crew_assignments = [a for a in snapshot.crew_assignments if a.vehicle_id != vehicle.id]
    return creatures


def admit_creatures(
    snapshot: EncounterSnapshot, creatures: list[Creature], no_driver: int = NO_DRIVER_INITIATIVE
) -> None:
    """Give newly uncrewed creatures their place in a running combat."""
    if not snapshot.in_combat:
        return
    for creature in creatures:
        if find_entry_index(snapshot, creature.id) == -1:
            insert_by_initiative(snapshot, TurnEntry(TurnEntryKind.CREATURE, creature.id), no_driver)
