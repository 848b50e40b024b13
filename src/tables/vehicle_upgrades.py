"""
Vehicle refits: armor plating, magical gadgets and the custom weapon station.

A vehicle carries at most one armor upgrade and any number of gadgets.
The weapon-station upgrade mounts a swappable weapon at a crewed station
that has none.
"""

from dataclasses import dataclass
from typing import Optional

from src.data_models import WeaponTemplate


NO_ARMOR_UPGRADE = "none"


@dataclass(frozen=True)
class ArmorUpgrade:
    """Plating that replaces the hull's armor class or adds defenses."""
    id: str
    name: str
    description: str
    effect: str
    fixed_ac: Optional[int] = None  # plus the vehicle's Dex modifier
    additional_immunities: tuple[str, ...] = ()
    resistances: tuple[str, ...] = ()


@dataclass(frozen=True)
class MagicalGadget:
    id: str
    name: str
    description: str
    effect: str
    activation: str
    recharge: str


@dataclass(frozen=True)
class WeaponStationUpgrade:
    """Where a template mounts its custom weapon, and what it starts with."""
    station_id: str
    default_weapon: WeaponTemplate

    @property
    def weapon_id(self) -> str:
        return f"{self.default_weapon.id}_custom"


ARMOR_UPGRADES: dict[str, ArmorUpgrade] = {
    a.id: a for a in (
        ArmorUpgrade(
            id=NO_ARMOR_UPGRADE,
            name="None",
            description="Standard infernal iron plating.",
            effect="No special effects.",
        ),
        ArmorUpgrade(
            id="canian_armor",
            name="Canian Armor",
            description="Infernal iron mined from Cania, the coldest layer of the Nine Hells.",
            effect=(
                "AC becomes 22 + Dex modifier. Attack rolls have advantage against the vehicle "
                "while it is not moving. Immunity to cold damage and extreme cold."
            ),
            fixed_ac=22,
            additional_immunities=("cold",),
        ),
        ArmorUpgrade(
            id="gilded_death_armor",
            name="Gilded Death Armor",
            description="Gold stolen from the archdevil Mammon plates the exterior.",
            effect=(
                "Resistance to bludgeoning, piercing and slashing damage. "
                "The gold turns to dust if the vehicle is destroyed."
            ),
            resistances=("bludgeoning", "piercing", "slashing"),
        ),
        ArmorUpgrade(
            id="soul_spike_armor",
            name="Soul Spike Armor",
            description="Spikes inscribed with blasphemous symbols, haunted by wailing figures.",
            effect=(
                "Creatures that die within 30 ft have their soul trapped on the spikes and "
                "can't be raised. Spikes: AC 19, 15 HP, resistance to all damage except radiant."
            ),
        ),
    )
}

MAGICAL_GADGETS: dict[str, MagicalGadget] = {
    g.id: g for g in (
        MagicalGadget(
            id="necrotic_smoke_screen",
            name="Necrotic Smoke Screen",
            description="Expels a 30-foot cube of opaque necrotic smoke.",
            effect=(
                "Heavily obscured area for 1 minute. Creatures entering or starting their turn "
                "in the cloud take 6d6 necrotic damage. Strong wind disperses it."
            ),
            activation="Bonus action",
            recharge="24 hours",
        ),
        MagicalGadget(
            id="teleporter",
            name="Teleporter",
            description="Teleports the vehicle up to 300 feet.",
            effect=(
                "The vehicle teleports to an unoccupied space the driver can see within 300 feet, "
                "taking everything in contact with it along."
            ),
            activation="Bonus action",
            recharge="24 hours",
        ),
    )
}


# =============================================================================
# CUSTOM WEAPON STATIONS
# =============================================================================

STATION_HARPOON = WeaponTemplate(
    id="harpoon_flinger",
    name="Harpoon Flinger",
    damage="2d8 piercing",
    range="120 ft",
    attack_bonus=5,
    properties=("Requires 1 crew", "Ammunition (10 harpoons)", "Swappable"),
)

# Templates without an entry (the single-seat Devil's Ride) can't take the upgrade
WEAPON_STATION_UPGRADES: dict[str, WeaponStationUpgrade] = {
    "buzz_killer": WeaponStationUpgrade("passenger", STATION_HARPOON),
    "tormentor": WeaponStationUpgrade("passenger_area", STATION_HARPOON),
    "demon_grinder": WeaponStationUpgrade("passenger_area", STATION_HARPOON),
    "scavenger": WeaponStationUpgrade("passenger_area", STATION_HARPOON),
}


def get_armor_upgrade(armor_id: str) -> Optional[ArmorUpgrade]:
    return ARMOR_UPGRADES.get(armor_id)


def get_magical_gadget(gadget_id: str) -> Optional[MagicalGadget]:
    return MAGICAL_GADGETS.get(gadget_id)


def get_weapon_station_upgrade(template_id: str) -> Optional[WeaponStationUpgrade]:
    return WEAPON_STATION_UPGRADES.get(template_id)
