"""
Pytest fixtures for the vehicle combat tracker test suite.

Provides seeded dice, an engine, vehicle templates and a ready-made chase
encounter.
"""

import pytest

from src.content_loader.vehicle_templates import get_vehicle_template
from src.data_models import (
    DiceRoller,
    EncounterSnapshot,
    Faction,
    Position,
    Station,
    VehicleTemplate,
    WeaponTemplate,
)
from src.encounter.encounter_engine import EncounterEngine
from src.encounter.events import AddCreature, AddVehicle
from tests.helpers import apply_all, crew_events, make_creature, make_vehicle


# =============================================================================
# DICE AND ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def seeded_dice():
    """Provide a seeded DiceRoller for reproducible tests."""
    return DiceRoller(seed=42)


@pytest.fixture
def engine(seeded_dice):
    """An engine rolling with the seeded dice."""
    return EncounterEngine(seeded_dice)


# =============================================================================
# TEMPLATE FIXTURES
# =============================================================================


@pytest.fixture
def rig_template():
    """A small two-station rig: 40 HP, mishap threshold 10."""
    return VehicleTemplate(
        id="test_rig",
        name="Test Rig",
        max_hp=40,
        ac=15,
        speed=60,
        damage_threshold=5,
        mishap_threshold=10,
        crew_capacity=2,
        stations=(
            Station(id="helm", name="Helm"),
            Station(id="gun_deck", name="Gun Deck"),
        ),
        weapons=(
            WeaponTemplate(id="rig_harpoon", name="Harpoon", range="120 ft", station_id="gun_deck"),
        ),
    )


@pytest.fixture
def tormentor_template():
    return get_vehicle_template("tormentor")


@pytest.fixture
def devils_ride_template():
    return get_vehicle_template("devils_ride")


@pytest.fixture
def demon_grinder_template():
    return get_vehicle_template("demon_grinder")


# =============================================================================
# ENCOUNTER FIXTURES
# =============================================================================


@pytest.fixture
def chase(engine, tormentor_template, devils_ride_template):
    """
    Setup-phase encounter:
    - Tormentor driven by Zariel (initiative 14) with gunner Bel (initiative 5)
    - an undriven Devil's Ride
    - Imp (initiative 9) on foot
    """
    tormentor = make_vehicle(tormentor_template, "Tormentor", Faction.PARTY, Position(100, 300))
    ride = make_vehicle(devils_ride_template, "Devil's Ride", Faction.ENEMY, Position(100, 100))
    driver = make_creature("Zariel", initiative=14, dex_save=3)
    gunner = make_creature("Bel", initiative=5)
    imp = make_creature("Imp", initiative=9, creature_type="fiend", position=Position(300, 300))

    snapshot = apply_all(
        engine,
        EncounterSnapshot(name="Chase"),
        AddVehicle(vehicle=tormentor),
        AddVehicle(vehicle=ride),
        *crew_events(driver, tormentor, "helm"),
        *crew_events(gunner, tormentor, "harpoon_station"),
        AddCreature(creature=imp),
    )
    return {
        "snapshot": snapshot,
        "tormentor": tormentor,
        "ride": ride,
        "driver": driver,
        "gunner": gunner,
        "imp": imp,
    }
