"""
Test helpers for the vehicle combat tracker test suite.

Builders for creatures and vehicles, plus a shortcut for folding a run of
events into a snapshot.
"""

from typing import Optional

from src.data_models import (
    Ability,
    Creature,
    EncounterSnapshot,
    Faction,
    Position,
    Statblock,
    Vehicle,
    VehicleTemplate,
    new_id,
)
from src.encounter.encounter_engine import EncounterEngine
from src.encounter.events import AddCreature, AssignCrew, SetInitiative


def apply_all(engine: EncounterEngine, snapshot: EncounterSnapshot, *events) -> EncounterSnapshot:
    """Fold events into a snapshot in order."""
    for event in events:
        snapshot = engine.apply(event, snapshot)
    return snapshot


def make_creature(
    name: str,
    initiative: int = 0,
    hp: int = 20,
    creature_type: str = "humanoid",
    dex: int = 10,
    dex_save: Optional[int] = None,
    position: Optional[Position] = None,
) -> Creature:
    scores = {a.value: 10 for a in Ability}
    scores["dex"] = dex
    saves = {"dex": dex_save} if dex_save is not None else {}
    return Creature(
        id=new_id(),
        name=name,
        statblock=Statblock(
            name=name,
            creature_type=creature_type,
            ability_scores=scores,
            saving_throws=saves,
            max_hp=hp,
        ),
        initiative=initiative,
        position=position or Position(0, 0),
    )


def make_vehicle(
    template: VehicleTemplate,
    name: Optional[str] = None,
    faction: Faction = Faction.PARTY,
    position: Optional[Position] = None,
    facing: float = 0.0,
    hp: Optional[int] = None,
) -> Vehicle:
    return Vehicle(
        id=new_id(),
        name=name or template.name,
        template=template,
        faction=faction,
        current_hp=hp,
        position=position or Position(100, 100),
        facing=facing,
    )


def crew_events(creature: Creature, vehicle: Vehicle, station_id: str) -> list:
    """Add a creature, keep its initiative and seat it at a station."""
    return [
        AddCreature(creature=creature),
        SetInitiative(creature.id, creature.initiative),
        AssignCrew(creature.id, vehicle.id, station_id),
    ]


def entry_ids(snapshot: EncounterSnapshot) -> list[str]:
    return [entry.id for entry in snapshot.turn_order]
