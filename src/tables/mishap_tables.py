"""
Vehicle mishap table and selector.

A mishap occurs when a vehicle takes damage from a single source equal to
or greater than its mishap threshold, or fails an ability check by 5 or
more. The d20 table below decides what breaks.

The selector never hands back a result with no mechanical meaning: a
non-stackable mishap that is already active, or a stackable one whose
resource is already used up, is rerolled.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Optional

from src.data_models import (
    Ability,
    DiceRoller,
    Mishap,
    MishapDuration,
    MishapEffect,
    new_id,
)
from src.tables.table_types import DieType, RollTable, format_roll_range

if TYPE_CHECKING:
    from src.data_models import Vehicle


logger = logging.getLogger(__name__)


# Redraws allowed before falling back to a uniform pick among available outcomes
MISHAP_MAX_REROLLS = 20

# A failed check triggers a mishap when it misses the DC by at least this much
FAILED_CHECK_MISHAP_MARGIN = 5


class MishapSeverity(str, Enum):
    """Rough severity bands for display."""
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"
    CATASTROPHIC = "catastrophic"


MISHAP_TABLE: RollTable[Mishap] = RollTable(
    table_id="vehicle_mishaps",
    name="Vehicle Mishaps",
    die_type=DieType.D20,
    description="Roll when a vehicle suffers a mishap.",
    entries=[
        Mishap(
            id="mishap_engine_flare",
            name="Engine Flare",
            roll_min=1,
            roll_max=1,
            effect=(
                "Fire erupts from the engine and engulfs the vehicle. Any creature that "
                "starts its turn on or inside the vehicle takes 10 (3d6) fire damage "
                "until this mishap ends."
            ),
            repair_dc=15,
            repair_ability=Ability.DEX,
            mechanical_effect=MishapEffect(recurring_damage="3d6 fire"),
        ),
        Mishap(
            id="mishap_locked_steering",
            name="Locked Steering",
            roll_min=2,
            roll_max=4,
            effect=(
                "The vehicle can move in a straight line only. It automatically fails "
                "Dexterity checks and Dexterity saving throws until this mishap ends."
            ),
            repair_dc=15,
            repair_ability=Ability.STR,
            mechanical_effect=MishapEffect(auto_fail_dex_checks=True),
        ),
        Mishap(
            id="mishap_furnace_rupture",
            name="Furnace Rupture",
            roll_min=5,
            roll_max=7,
            effect="The vehicle's speed decreases by 30 feet until this mishap ends.",
            repair_dc=15,
            repair_ability=Ability.STR,
            mechanical_effect=MishapEffect(speed_reduction=30),
            stackable=True,
        ),
        Mishap(
            id="mishap_weapon_malfunction",
            name="Weapon Malfunction",
            roll_min=8,
            roll_max=10,
            effect=(
                "One of the vehicle's weapons can't be used until this mishap ends. "
                "If the vehicle has no functioning weapons, no mishap occurs."
            ),
            repair_dc=20,
            repair_ability=Ability.STR,
            mechanical_effect=MishapEffect(disables_weapon=True),
            stackable=True,
        ),
        Mishap(
            id="mishap_blinding_smoke",
            name="Blinding Smoke",
            roll_min=11,
            roll_max=13,
            effect=(
                "The helm station fills with smoke and is heavily obscured until this "
                "mishap ends. Any creature in the helm station is blinded by the smoke."
            ),
            repair_dc=15,
            repair_ability=Ability.DEX,
            mechanical_effect=MishapEffect(obscured_station="helm"),
        ),
        Mishap(
            id="mishap_shedding_armor",
            name="Shedding Armor",
            roll_min=14,
            roll_max=16,
            effect="The vehicle's damage threshold is reduced by 10 until this mishap ends.",
            repair_dc=15,
            repair_ability=Ability.STR,
            mechanical_effect=MishapEffect(damage_threshold_reduction=10),
            stackable=True,
        ),
        Mishap(
            id="mishap_damaged_axle",
            name="Damaged Axle",
            roll_min=17,
            roll_max=19,
            effect=(
                "The vehicle grinds and shakes uncontrollably. Until the mishap ends, the "
                "vehicle has disadvantage on all Dexterity checks, and all ability checks "
                "and attack rolls made by creatures on or inside the vehicle have disadvantage."
            ),
            repair_dc=20,
            repair_ability=Ability.DEX,
            mechanical_effect=MishapEffect(disadvantage_on_all_checks=True),
        ),
        Mishap(
            id="mishap_flip",
            name="Flip",
            roll_min=20,
            roll_max=20,
            effect=(
                "The vehicle flips over, falls prone, and comes to a dead stop. Creatures "
                "inside fall prone and must succeed on a DC 15 Strength saving throw or "
                "take 10 (3d6) bludgeoning damage."
            ),
            mechanical_effect=MishapEffect(
                vehicle_prone=True, crew_save_dc=15, crew_save_damage="3d6 bludgeoning"
            ),
        ),
    ],
)


@dataclass
class VehicleMishapState:
    """The parts of a vehicle the selector needs to judge availability."""
    base_speed: int
    damage_threshold: int
    weapon_count: int
    active_mishaps: list[Mishap] = field(default_factory=list)

    @classmethod
    def from_vehicle(cls, vehicle: "Vehicle") -> "VehicleMishapState":
        return cls(
            base_speed=vehicle.template.speed,
            damage_threshold=vehicle.template.damage_threshold,
            weapon_count=len(vehicle.weapons),
            active_mishaps=list(vehicle.active_mishaps),
        )


@dataclass
class MishapRollResult:
    """Outcome of the selector."""
    roll: int
    mishap: Mishap
    reroll_count: int = 0


def get_mishap_result(roll: int) -> Mishap:
    """Catalog entry for a d20 roll, clamped into 1-20."""
    entry = MISHAP_TABLE.lookup(roll)
    return entry if entry is not None else MISHAP_TABLE.entries[0]


def get_catalog_entry(catalog_id: str) -> Optional[Mishap]:
    for entry in MISHAP_TABLE.entries:
        if entry.id == catalog_id:
            return entry
    return None


def mishap_triggered_by_damage(damage: int, mishap_threshold: int) -> bool:
    return damage >= mishap_threshold


def mishap_triggered_by_failed_check(check_total: int, dc: int) -> bool:
    return check_total <= dc - FAILED_CHECK_MISHAP_MARGIN


def get_mishap_severity(roll: int) -> MishapSeverity:
    if roll == 20:
        return MishapSeverity.CATASTROPHIC
    if roll == 1 or 17 <= roll <= 19:
        return MishapSeverity.SEVERE
    if 5 <= roll <= 7:
        return MishapSeverity.MINOR
    return MishapSeverity.MODERATE


def can_repair_mishap(mishap: Mishap) -> bool:
    return mishap.is_repairable


def get_repair_description(mishap: Mishap) -> str:
    if not mishap.is_repairable:
        return "This mishap cannot be repaired."
    ability_name = "Strength" if mishap.repair_ability == Ability.STR else "Dexterity"
    return f"DC {mishap.repair_dc} {ability_name} check (with disadvantage if vehicle is moving)"


def get_mishap_roll_range(mishap: Mishap) -> str:
    return format_roll_range(mishap)


def instantiate_mishap(entry: Mishap, rounds: Optional[int] = None) -> Mishap:
    """Copy a catalog entry into an active instance with its own id."""
    return replace(
        entry,
        id=new_id("mishap"),
        catalog_id=entry.base_id,
        mechanical_effect=replace(entry.mechanical_effect),
        rounds_remaining=rounds if entry.duration == MishapDuration.ROUNDS else None,
    )


def _active_of(entry: Mishap, state: VehicleMishapState) -> list[Mishap]:
    return [m for m in state.active_mishaps if m.base_id == entry.id or m.name == entry.name]


def _stackable_has_effect(entry: Mishap, state: VehicleMishapState) -> bool:
    """Whether another copy of a stackable entry would still change anything."""
    active = _active_of(entry, state)
    effect = entry.mechanical_effect
    if effect.speed_reduction:
        used = sum(m.mechanical_effect.speed_reduction for m in active)
        return state.base_speed - used > 0
    if effect.damage_threshold_reduction:
        used = sum(m.mechanical_effect.damage_threshold_reduction for m in active)
        return state.damage_threshold - used > 0
    if effect.disables_weapon:
        return state.weapon_count - len(active) > 0
    return True


def unavailable_mishap_ids(state: VehicleMishapState) -> set[str]:
    """Catalog ids that would be redundant for this vehicle right now."""
    unavailable = set()
    for entry in MISHAP_TABLE.entries:
        if entry.stackable:
            if not _stackable_has_effect(entry, state):
                unavailable.add(entry.id)
        elif _active_of(entry, state):
            unavailable.add(entry.id)
    return unavailable


def roll_mishap_for_vehicle(
    state: VehicleMishapState,
    dice: DiceRoller,
    max_attempts: int = MISHAP_MAX_REROLLS,
) -> Optional[MishapRollResult]:
    """
    Roll a mishap for a vehicle, rerolling redundant results.

    Args:
        state: The vehicle's current mishap-relevant state
        dice: Source of the d20 draws
        max_attempts: Redraws allowed before a uniform fallback pick

    Returns:
        MishapRollResult, or None when every outcome would be redundant
    """
    unavailable = unavailable_mishap_ids(state)
    available = [entry for entry in MISHAP_TABLE.entries if entry.id not in unavailable]
    if not available:
        logger.debug("No mishap outcome has any remaining effect")
        return None

    reroll_count = 0
    while reroll_count < max_attempts:
        roll = dice.roll_d20("mishap").total
        entry = get_mishap_result(roll)
        if entry.id not in unavailable:
            return MishapRollResult(roll=roll, mishap=entry, reroll_count=reroll_count)
        reroll_count += 1

    # The reported roll is one that lands on the fallback entry
    fallback = dice.choice(available)
    logger.info(f"Mishap rerolls exhausted after {reroll_count} draws, picked {fallback.name}")
    return MishapRollResult(roll=fallback.roll_min, mishap=fallback, reroll_count=reroll_count)
