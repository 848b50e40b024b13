"""
Defensive repair of loaded snapshots.

Older saves may predate fields or carry states the engine would never
produce itself (a wreck still holding crew, a crewed creature still in the
turn order). migrate_snapshot brings any such snapshot back in line with
the engine's invariants.
"""

import logging

from src.data_models import EncounterSnapshot, TurnEntry, TurnEntryKind
from src.encounter.initiative import (
    EJECTION_RADIUS,
    NO_DRIVER_INITIATIVE,
    admit_creatures,
    eject_crew,
    is_entry_active,
)


logger = logging.getLogger(__name__)


def _repair_vehicles(snapshot: EncounterSnapshot) -> None:
    for vehicle in snapshot.vehicles:
        vehicle.current_hp = max(0, min(vehicle.max_hp, vehicle.current_hp))
        if vehicle.current_hp == 0:
            vehicle.is_inoperative = True


def _repair_creatures(snapshot: EncounterSnapshot) -> None:
    for creature in snapshot.creatures:
        creature.current_hp = max(0, min(creature.max_hp, creature.current_hp))
        creature.temp_hp = max(0, creature.temp_hp)


def _repair_assignments(snapshot: EncounterSnapshot) -> None:
    """Drop dangling assignments; a creature keeps only its latest station."""
    latest = {}
    for assignment in snapshot.crew_assignments:
        vehicle = snapshot.get_vehicle(assignment.vehicle_id)
        if vehicle is None or snapshot.get_creature(assignment.creature_id) is None:
            continue
        if vehicle.template.get_station(assignment.station_id) is None:
            continue
        latest.pop(assignment.creature_id, None)
        latest[assignment.creature_id] = assignment
    snapshot.crew_assignments = list(latest.values())
    for creature in snapshot.creatures:
        if snapshot.is_crewed(creature.id):
            creature.position = None


def _repair_turn_order(snapshot: EncounterSnapshot) -> None:
    seen = set()
    order = []
    for entry in snapshot.turn_order:
        if entry.id in seen:
            continue
        if entry.kind == TurnEntryKind.VEHICLE:
            vehicle = snapshot.get_vehicle(entry.id)
            if vehicle is None or vehicle.is_inoperative:
                continue
        else:
            if snapshot.get_creature(entry.id) is None or snapshot.is_crewed(entry.id):
                continue
        seen.add(entry.id)
        order.append(entry)
    snapshot.turn_order = order


def migrate_snapshot(
    snapshot: EncounterSnapshot,
    ejection_radius: float = EJECTION_RADIUS,
    no_driver: int = NO_DRIVER_INITIATIVE,
) -> EncounterSnapshot:
    """
    Bring a loaded snapshot in line with the engine's invariants.

    Mutates and returns the snapshot it is given.
    """
    _repair_vehicles(snapshot)
    _repair_creatures(snapshot)
    _repair_assignments(snapshot)

    ejected = []
    for vehicle in snapshot.vehicles:
        if vehicle.is_inoperative and snapshot.crew_for_vehicle(vehicle.id):
            crew = eject_crew(snapshot, vehicle, ejection_radius)
            logger.info(f"Ejected {len(crew)} crew from wrecked {vehicle.name} on load")
            ejected.extend(crew)

    _repair_turn_order(snapshot)

    if snapshot.in_combat:
        admit_creatures(snapshot, ejected, no_driver)
        stragglers = [
            c for c in snapshot.creatures
            if c.position is not None
            and not snapshot.is_crewed(c.id)
            and is_entry_active(snapshot, TurnEntry(TurnEntryKind.CREATURE, c.id))
        ]
        admit_creatures(snapshot, stragglers, no_driver)

    if snapshot.turn_order:
        snapshot.current_turn_index = max(0, min(len(snapshot.turn_order) - 1, snapshot.current_turn_index))
    else:
        snapshot.current_turn_index = 0

    if snapshot.active_complication is not None:
        snapshot.active_complication.resolutions = [
            r for r in snapshot.active_complication.resolutions
            if snapshot.get_vehicle(r.vehicle_id) is not None
        ]
    return snapshot
