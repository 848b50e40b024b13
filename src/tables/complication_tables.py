"""
Battlefield complication tables, one per engagement scale.

A d20 is rolled; anything above COMPLICATION_CUTOFF means nothing happens.
Each entry names the save the driver makes for the vehicle and what a
failure costs.
"""

from typing import Optional

from src.data_models import Ability, Complication, DiceRoller, ScaleName
from src.tables.table_types import DieType, RollTable, format_roll_range


# Highest roll that still produces a complication
COMPLICATION_CUTOFF = 10

DIFFICULT_TERRAIN_MULTIPLIER = 0.5
DEAD_STOP_MULTIPLIER = 0.0


_CREATURE_CHASE = Complication(
    id="creature_chase",
    name="Creature Chase",
    roll_min=1,
    roll_max=2,
    description="You drive past a creature native to the wastes, and it chases after you.",
    effect="The DM chooses the creature. A new pursuer joins the chase.",
)

_FIRE_TORNADO = Complication(
    id="fire_tornado",
    name="Fire Tornado",
    roll_min=3,
    roll_max=3,
    description="A fire tornado, 300 feet high and 30 feet wide at its base, crosses your path.",
    effect=(
        "DC 15 Dexterity save to avoid. Fail: each creature without total cover makes a "
        "DC 18 Dexterity save, taking 99 (18d10) fire damage on a failure, half on a success."
    ),
    difficulty=15,
    failure_effect="Crew without total cover: DC 18 Dex save or 99 fire damage (half on success)",
    damage="18d10 fire",
)

_DUST_CLOUD = Complication(
    id="dust_cloud",
    name="Dust Cloud",
    roll_min=4,
    roll_max=4,
    description="A swirling cloud of dust envelops the vehicle.",
    effect=(
        "Any creature on or inside the vehicle without total cover is blinded until the "
        "start of its next turn unless it wears protective eyewear."
    ),
    failure_effect="Exposed creatures are blinded until start of next turn",
)

_ROCK_PILLARS = Complication(
    id="rock_pillars",
    name="Rock Pillars",
    roll_min=5,
    roll_max=5,
    description="Natural pillars of rock can grant cover as the vehicle swerves between them.",
    effect=(
        "DC 15 Dexterity check using the vehicle's Dexterity. Success: three-quarters cover "
        "against attacks from other vehicles until the start of the driver's next turn."
    ),
    difficulty=15,
    failure_effect="No cover gained",
)

_FIEND_HERD = Complication(
    id="fiend_herd",
    name="Fiend Herd",
    roll_min=6,
    roll_max=6,
    description="Your vehicle drives into a herd of lemures, manes, or other fiends.",
    effect=(
        "DC 15 Strength or Dexterity check (driver's choice) to plow through. "
        "Fail: the herd counts as 30 feet of difficult terrain."
    ),
    difficulty=15,
    failure_effect="30 feet of difficult terrain",
    failure_speed_multiplier=DIFFICULT_TERRAIN_MULTIPLIER,
)

_LEDGE_DROP = Complication(
    id="ledge_drop",
    name="Ledge Drop",
    roll_min=7,
    roll_max=7,
    description="The vehicle drives off a 10-foot-high ledge and comes crashing down.",
    effect=(
        "Any unsecured creature on the outside must succeed on a DC 15 Dexterity save or "
        "tumble off, taking fall damage and landing prone."
    ),
    difficulty=15,
    failure_effect="Fall off vehicle, take fall damage, land prone",
    damage="1d6 bludgeoning",
)

_UNEVEN_GROUND = Complication(
    id="uneven_ground",
    name="Uneven Ground",
    roll_min=8,
    roll_max=8,
    description="Uneven ground threatens to slow your vehicle's progress.",
    effect="DC 10 Dexterity check to navigate. Fail: the ground counts as 60 feet of difficult terrain.",
    difficulty=10,
    failure_effect="60 feet of difficult terrain",
    failure_speed_multiplier=DIFFICULT_TERRAIN_MULTIPLIER,
)

_DERELICT_MACHINES = Complication(
    id="derelict_machines",
    name="Derelict Machines",
    roll_min=9,
    roll_max=9,
    description="Derelict war machines dot the landscape, rusted and half buried in the dust.",
    effect=(
        "If the vehicle uses Dash, the driver must succeed on a DC 10 Dexterity check or "
        "crash into a derelict machine."
    ),
    difficulty=10,
    failure_effect="Crash into derelict (crashing rules)",
)

_GROUND_COLLAPSE = Complication(
    id="ground_collapse",
    name="Ground Collapse",
    roll_min=10,
    roll_max=10,
    description="Part of the ground gives way underneath the vehicle, causing it to roll over.",
    effect=(
        "DC 10 Dexterity save. Fail: the vehicle lands prone and comes to a dead stop. "
        "Unsecured creatures on the outside must succeed on a DC 20 Strength save or tumble off."
    ),
    difficulty=10,
    failure_effect="Vehicle prone, dead stop. Crew: DC 20 Str save or fall off",
    failure_speed_multiplier=DEAD_STOP_MULTIPLIER,
)


TACTICAL_COMPLICATIONS: RollTable[Complication] = RollTable(
    table_id="complications_tactical",
    name="Tactical Complications",
    die_type=DieType.D20,
    entries=[
        _CREATURE_CHASE,
        _FIRE_TORNADO,
        _DUST_CLOUD,
        _ROCK_PILLARS,
        _FIEND_HERD,
        _LEDGE_DROP,
        _UNEVEN_GROUND,
        _DERELICT_MACHINES,
        _GROUND_COLLAPSE,
    ],
)

APPROACH_COMPLICATIONS: RollTable[Complication] = RollTable(
    table_id="complications_approach",
    name="Approach Complications",
    die_type=DieType.D20,
    entries=[
        _CREATURE_CHASE,
        _FIRE_TORNADO,
        _DUST_CLOUD,
        _ROCK_PILLARS,
        Complication(
            id="flanking_threat",
            name="Flanking Threat",
            roll_min=6,
            roll_max=10,
            description="Another vehicle appears on the horizon, heading to intercept.",
            effect="A new enemy vehicle may join the chase in 1d4 rounds.",
        ),
    ],
)

STRATEGIC_COMPLICATIONS: RollTable[Complication] = RollTable(
    table_id="complications_strategic",
    name="Strategic Complications",
    die_type=DieType.D20,
    entries=[
        Complication(
            id="wrong_turn",
            name="Wrong Turn",
            roll_min=1,
            roll_max=2,
            description="The wasteland all looks the same. You've gone the wrong way.",
            effect="DC 12 Wisdom (Survival) check or lose 1 mile of progress.",
            save_ability=Ability.WIS,
            difficulty=12,
            failure_effect="Lose 1 mile of progress",
        ),
        Complication(
            id="terrain_change",
            name="Terrain Change",
            roll_min=3,
            roll_max=4,
            description="The terrain ahead is impassable. You must find an alternate route.",
            effect="Speed halved for the round as you navigate around.",
            difficulty=10,
            failure_effect="Speed halved this round",
            failure_speed_multiplier=DIFFICULT_TERRAIN_MULTIPLIER,
        ),
        Complication(
            id="soul_storm",
            name="Soul Storm",
            roll_min=5,
            roll_max=6,
            description="A storm of souls reduces visibility to near zero.",
            effect="Lose visual contact with quarry or pursuer for 1d4 rounds.",
        ),
        Complication(
            id="wandering_war_band",
            name="Wandering War Band",
            roll_min=7,
            roll_max=8,
            description="A war band of devils blocks the route.",
            effect="Must detour or engage. A detour costs 1 round.",
        ),
        Complication(
            id="fuel_concerns",
            name="Fuel Concerns",
            roll_min=9,
            roll_max=10,
            description="The vehicle's soul coin is running low on power.",
            effect="Unless the soul coin is fed a drop of blood, speed is halved.",
            save_ability=Ability.CON,
            difficulty=10,
            failure_effect="Speed halved this round",
            failure_speed_multiplier=DIFFICULT_TERRAIN_MULTIPLIER,
        ),
    ],
)

POINT_BLANK_COMPLICATIONS: RollTable[Complication] = RollTable(
    table_id="complications_point_blank",
    name="Point-Blank Complications",
    die_type=DieType.D20,
    entries=[
        Complication(
            id="boarding_attempt",
            name="Boarding Attempt",
            roll_min=1,
            roll_max=2,
            description="An enemy leaps toward your vehicle!",
            effect="Enemy creature attempts to board. Make an opposed Athletics check.",
            save_ability=Ability.STR,
        ),
        Complication(
            id="collision_course",
            name="Collision Course",
            roll_min=3,
            roll_max=4,
            description="Vehicles are on a collision course.",
            effect="Both vehicles must make a DC 12 handling check or collide for 4d10 damage each.",
            difficulty=12,
            failure_effect="Collide for 4d10 bludgeoning damage",
            damage="4d10 bludgeoning",
        ),
        Complication(
            id="weapon_lock",
            name="Weapon Lock",
            roll_min=5,
            roll_max=6,
            description="Vehicles are too close for ranged weapons.",
            effect="Ranged weapons cannot fire until distance increases to 100+ feet.",
        ),
        Complication(
            id="grappling_hook",
            name="Grappling Hook",
            roll_min=7,
            roll_max=8,
            description="An enemy throws a grappling hook.",
            effect="Vehicles are tethered. DC 15 Strength check to break free.",
            save_ability=Ability.STR,
            difficulty=15,
            failure_effect="Tethered, dead stop this round",
            failure_speed_multiplier=DEAD_STOP_MULTIPLIER,
        ),
        Complication(
            id="ram_opportunity",
            name="Ram Opportunity",
            roll_min=9,
            roll_max=10,
            description="Perfect position for a ram attack.",
            effect="The current driver may immediately attempt a ram as a reaction.",
        ),
    ],
)


COMPLICATION_TABLES: dict[ScaleName, RollTable[Complication]] = {
    ScaleName.STRATEGIC: STRATEGIC_COMPLICATIONS,
    ScaleName.APPROACH: APPROACH_COMPLICATIONS,
    ScaleName.TACTICAL: TACTICAL_COMPLICATIONS,
    ScaleName.POINT_BLANK: POINT_BLANK_COMPLICATIONS,
}


def get_complications_for_scale(scale: ScaleName) -> RollTable[Complication]:
    return COMPLICATION_TABLES.get(scale, TACTICAL_COMPLICATIONS)


def lookup_complication(roll: int, scale: ScaleName) -> Optional[Complication]:
    """Complication for a d20 roll at a scale, or None above the cutoff."""
    if roll > COMPLICATION_CUTOFF:
        return None
    return get_complications_for_scale(scale).lookup(roll)


def roll_complication(
    scale: ScaleName, dice: DiceRoller
) -> tuple[int, Optional[Complication]]:
    roll = dice.roll_d20(f"complication ({scale.value})").total
    return roll, lookup_complication(roll, scale)


def get_complication_roll_range(complication: Optional[Complication]) -> str:
    if complication is None:
        return f"{COMPLICATION_CUTOFF + 1}-20"
    return format_roll_range(complication)
