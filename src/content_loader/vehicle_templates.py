"""
Built-in infernal war machine templates.

Hull statistics, crew stations and mounted weapons for the five standard
vehicles, plus the alternative weapons a station can be refitted with.
"""

import logging
from dataclasses import replace
from typing import Optional

from src.data_models import (
    Arc,
    ALL_ARCS,
    CoverType,
    Faction,
    Position,
    Station,
    Vehicle,
    VehicleTemplate,
    WeaponTemplate,
    new_id,
)


logger = logging.getLogger(__name__)


# =============================================================================
# WEAPONS
# =============================================================================

HARPOON_FLINGER = WeaponTemplate(
    id="harpoon_flinger_standard",
    name="Harpoon Flinger",
    damage="2d8 piercing",
    range="120 ft",
    attack_bonus=5,
    properties=("Requires 1 crew", "Ammunition (10 harpoons)"),
)

ACIDIC_BILE_SPRAYER = WeaponTemplate(
    id="acidic_bile_sprayer",
    name="Acidic Bile Sprayer",
    damage="9d8 acid (DC 12 Dex)",
    range="30 ft cone",
    properties=("Requires 1 crew", "Recharge 5-6", "Save-based"),
    description="Each creature in the cone makes a DC 12 Dexterity save. A creature reduced to 0 HP is dissolved.",
)

FLAMETHROWER = WeaponTemplate(
    id="flamethrower",
    name="Flamethrower",
    damage="4d8 fire (DC 15 Dex)",
    range="60 ft line",
    properties=("Requires 1 crew", "Save-based", "5 ft wide line"),
    description="Each creature in the line makes a DC 15 Dexterity save. Ignites flammable objects.",
)

INFERNAL_SCREAMER = WeaponTemplate(
    id="infernal_screamer",
    name="Infernal Screamer",
    damage="4d12 psychic (DC 15 Wis)",
    range="120 ft",
    properties=("Requires 1 crew", "Save-based", "Single target"),
)

STYX_SPRAYER = WeaponTemplate(
    id="styx_sprayer",
    name="Styx Sprayer",
    damage="Feeblemind (DC 20 Int)",
    range="30 ft",
    attack_bonus=5,
    properties=("Requires 1 crew", "Ammunition (3 uses)", "Ranged spell attack"),
)

# Weapons any weapon station can be refitted with
SWAPPABLE_WEAPONS: tuple[WeaponTemplate, ...] = (
    HARPOON_FLINGER,
    ACIDIC_BILE_SPRAYER,
    FLAMETHROWER,
    INFERNAL_SCREAMER,
    STYX_SPRAYER,
)

CHOMPER = WeaponTemplate(
    id="chomper_main",
    name="Chomper",
    damage="6d6+4 piercing",
    range="melee (5 ft)",
    station_id="chomper_station",
    attack_bonus=9,
    properties=("Requires 1 crew to operate",),
    description="A target reduced to 0 hit points is ground to bits, along with its nonmagical gear.",
)

WRECKING_BALL = WeaponTemplate(
    id="wrecking_ball_main",
    name="Wrecking Ball",
    damage="8d8+4 bludgeoning",
    range="melee (15 ft)",
    station_id="wrecking_ball_station",
    attack_bonus=9,
    properties=("Requires 1 crew to operate",),
    description="Double damage against objects and structures.",
)

GRAPPLING_CLAW = WeaponTemplate(
    id="grappling_claw_main",
    name="Grappling Claw",
    damage="Grapple",
    range="melee (15 ft)",
    station_id="grappling_claw_station",
    attack_bonus=10,
    properties=("Requires 1 crew to operate",),
    description="The target is grappled (escape DC 12) and restrained while grappled.",
)

BUZZ_SAW = WeaponTemplate(
    id="buzz_saw_main",
    name="Buzz Saw",
    damage="3d10+3 slashing",
    range="melee (5 ft)",
    station_id="helm",
    attack_bonus=8,
    properties=("Magical", "Driver can attack while driving"),
)


def _harpoon(weapon_id: str, station_id: str, damage: str, attack_bonus: int) -> WeaponTemplate:
    return replace(
        HARPOON_FLINGER,
        id=weapon_id,
        station_id=station_id,
        damage=damage,
        attack_bonus=attack_bonus,
        properties=("Requires 1 crew to operate", "Ammunition (10 harpoons)"),
    )


# =============================================================================
# STATIONS
# =============================================================================


def _helm(cover: CoverType = CoverType.THREE_QUARTERS, arcs: tuple[Arc, ...] = (Arc.FRONT,)) -> Station:
    return Station(
        id="helm",
        name="Helm",
        cover=cover,
        visible_from_arcs=arcs,
        description="Driver position.",
    )


def _side_stations() -> tuple[Station, Station]:
    return (
        Station(
            id="harpoon_station_port",
            name="Port Weapon Station",
            cover=CoverType.HALF,
            visible_from_arcs=(Arc.FRONT, Arc.LEFT),
            description="Port-side weapon station. Fires across the front and port arcs.",
        ),
        Station(
            id="harpoon_station_starboard",
            name="Starboard Weapon Station",
            cover=CoverType.HALF,
            visible_from_arcs=(Arc.FRONT, Arc.RIGHT),
            description="Starboard-side weapon station. Fires across the front and starboard arcs.",
        ),
    )


def _passenger_area(capacity: int, cover: CoverType = CoverType.THREE_QUARTERS) -> Station:
    return Station(
        id="passenger_area",
        name="Passenger Area",
        cover=cover,
        capacity=capacity,
        visible_from_arcs=ALL_ARCS,
        description="Passenger positions.",
    )


# =============================================================================
# VEHICLE TEMPLATES
# =============================================================================

DEVILS_RIDE = VehicleTemplate(
    id="devils_ride",
    name="Devil's Ride",
    max_hp=30,
    ac=23,
    speed=120,
    damage_threshold=5,
    mishap_threshold=10,
    crew_capacity=1,
    size="large",
    ability_scores={"str": 14, "dex": 18, "con": 12},
    stations=(_helm(CoverType.HALF, ALL_ARCS),),
    traits=(
        "Jump: after 30 feet in a straight line it can clear a 60-foot gap.",
        "Prone Deficiency: if it falls prone it is incapacitated until pulled upright.",
        "Stunt: the driver can spend 10 feet of movement on a DC 10 Dexterity stunt.",
        "Juke: the driver's reaction grants advantage on a Dexterity saving throw.",
    ),
    description="Two-wheeled infernal war machine that handles like a motorcycle.",
)

BUZZ_KILLER = VehicleTemplate(
    id="buzz_killer",
    name="Buzz Killer",
    max_hp=50,
    ac=22,
    speed=110,
    damage_threshold=8,
    mishap_threshold=15,
    crew_capacity=2,
    size="large",
    ability_scores={"str": 16, "dex": 16, "con": 14},
    stations=(
        _helm(),
        Station(
            id="passenger",
            name="Passenger Seat",
            cover=CoverType.HALF,
            visible_from_arcs=ALL_ARCS,
            description="Elevated passenger seat. The passenger gains +2 to attack rolls.",
        ),
    ),
    weapons=(BUZZ_SAW,),
    traits=(
        "Buzz Saw Wheel: rakes a creature or vehicle it passes for 3d10+3 slashing (DC 14 Dex negates).",
        "Aggressive Charge: after 40 feet in a straight line the saw deals an extra 2d8 slashing.",
        "Prone Deficiency: if it falls prone it is incapacitated until pulled upright.",
        "Magic Weapons: its weapon attacks are magical.",
    ),
    description="Custom motor trike with a massive saw blade for a front wheel.",
)

TORMENTOR = VehicleTemplate(
    id="tormentor",
    name="Tormentor",
    max_hp=100,
    ac=21,
    speed=100,
    damage_threshold=10,
    mishap_threshold=20,
    crew_capacity=4,
    size="huge",
    ability_scores={"str": 16, "dex": 14, "con": 14},
    stations=(
        _helm(),
        Station(
            id="harpoon_station",
            name="Harpoon Flinger",
            cover=CoverType.HALF,
            visible_from_arcs=(Arc.FRONT, Arc.LEFT, Arc.RIGHT),
            description="Harpoon flinger station.",
        ),
        _passenger_area(2, CoverType.HALF),
    ),
    weapons=(_harpoon("harpoon_main", "harpoon_station", "2d8+2 piercing", 7),),
    traits=(
        "Crushing Wheels: Medium or smaller creatures run over take 2d10 bludgeoning (DC 13 Dex negates).",
        "Raking Scythes: rakes a creature or vehicle it passes for 2d10+2 slashing (DC 13 Dex negates).",
        "Prone Deficiency: if it rolls over it is incapacitated until flipped upright.",
        "Magic Weapons: its weapon attacks are magical.",
    ),
    description="Light assault vehicle that handles like a dune buggy.",
)

DEMON_GRINDER = VehicleTemplate(
    id="demon_grinder",
    name="Demon Grinder",
    max_hp=200,
    ac=19,
    speed=100,
    damage_threshold=10,
    mishap_threshold=20,
    crew_capacity=8,
    size="gargantuan",
    ability_scores={"str": 18, "dex": 10, "con": 18},
    stations=(
        _helm(),
        Station(
            id="chomper_station",
            name="Chomper Station",
            cover=CoverType.HALF,
            visible_from_arcs=(Arc.FRONT,),
            description="Main chomper at the front.",
        ),
        Station(
            id="wrecking_ball_station",
            name="Wrecking Ball Station",
            cover=CoverType.HALF,
            visible_from_arcs=(Arc.LEFT, Arc.RIGHT, Arc.REAR),
            description="Wrecking ball station.",
        ),
        *_side_stations(),
        _passenger_area(3),
    ),
    weapons=(
        CHOMPER,
        WRECKING_BALL,
        _harpoon("harpoon_port", "harpoon_station_port", "2d8 piercing", 5),
        _harpoon("harpoon_starboard", "harpoon_station_starboard", "2d8 piercing", 5),
    ),
    traits=(
        "Crushing Wheels: Large or smaller creatures run over take 4d10 bludgeoning (DC 11 Dex negates).",
        "Prone Deficiency: if it rolls over it is incapacitated until flipped upright.",
        "Magic Weapons: its weapon attacks are magical.",
    ),
    description="Bulky armored coach with a swinging wrecking ball and iron jaws.",
)

SCAVENGER = VehicleTemplate(
    id="scavenger",
    name="Scavenger",
    max_hp=150,
    ac=20,
    speed=100,
    damage_threshold=10,
    mishap_threshold=20,
    crew_capacity=8,
    size="huge",
    ability_scores={"str": 20, "dex": 12, "con": 20},
    stations=(
        _helm(),
        Station(
            id="grappling_claw_station",
            name="Grappling Claw Station",
            cover=CoverType.HALF,
            visible_from_arcs=(Arc.REAR, Arc.LEFT, Arc.RIGHT),
            description="Crane-mounted grappling claw.",
        ),
        *_side_stations(),
        _passenger_area(4),
    ),
    weapons=(
        GRAPPLING_CLAW,
        _harpoon("harpoon_port", "harpoon_station_port", "2d8+1 piercing", 6),
        _harpoon("harpoon_starboard", "harpoon_station_starboard", "2d8+1 piercing", 6),
    ),
    traits=(
        "Crushing Wheels: Large or smaller creatures run over take 3d10 bludgeoning (DC 12 Dex negates).",
        "Prone Deficiency: if it rolls over it is incapacitated until flipped upright.",
        "Magic Weapons: its weapon attacks are magical.",
    ),
    description="Salvage vehicle that handles like a small bus, with a crane and grappling claw.",
)

VEHICLE_TEMPLATES: dict[str, VehicleTemplate] = {
    t.id: t for t in (DEVILS_RIDE, BUZZ_KILLER, TORMENTOR, DEMON_GRINDER, SCAVENGER)
}


def get_vehicle_template(template_id: str) -> VehicleTemplate:
    """
    Look up a built-in template.

    Raises:
        KeyError: No template with that id
    """
    if template_id not in VEHICLE_TEMPLATES:
        raise KeyError(f"Unknown vehicle template: {template_id}")
    return VEHICLE_TEMPLATES[template_id]


def get_swappable_weapon(weapon_id: str) -> Optional[WeaponTemplate]:
    for weapon in SWAPPABLE_WEAPONS:
        if weapon.id == weapon_id:
            return weapon
    return None


def create_vehicle(
    template_id: str,
    name: Optional[str] = None,
    faction: Faction = Faction.PARTY,
    position: Optional[Position] = None,
    facing: float = 0.0,
) -> Vehicle:
    """Build a fresh, undamaged vehicle from a built-in template."""
    template = get_vehicle_template(template_id)
    vehicle = Vehicle(
        id=new_id(),
        name=name or template.name,
        template=template,
        faction=faction,
        facing=facing,
        position=position or Position(),
    )
    logger.debug(f"Created {vehicle.name} from template {template_id}")
    return vehicle
