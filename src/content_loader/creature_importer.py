"""
Creature import for the vehicle combat tracker.

Maps SRD-style monster records (the shape published by open SRD monster
APIs: "hit_points", "armor_class", "strength", "dexterity_save", comma
separated resistance strings, a speed mapping) onto Statblock and Creature,
and builds quick player characters from class presets.

JSON File Format accepted by load_creature_file:
{
    "items": [
        {
            "name": "Bearded Devil",
            "size": "Medium",
            "type": "fiend",
            "armor_class": 13,
            "hit_points": 52,
            "speed": {"walk": 30},
            "strength": 16,
            ...
        }
    ]
}
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from src.data_models import (
    Ability,
    Creature,
    Faction,
    Position,
    Statblock,
    new_id,
)
from src.encounter.events import AddCreature


logger = logging.getLogger(__name__)


SIZES = ("tiny", "small", "medium", "large", "huge", "gargantuan")

# Record keys for each ability, e.g. "dexterity" and "dexterity_save"
ABILITY_KEYS: dict[Ability, str] = {
    Ability.STR: "strength",
    Ability.DEX: "dexterity",
    Ability.CON: "constitution",
    Ability.INT: "intelligence",
    Ability.WIS: "wisdom",
    Ability.CHA: "charisma",
}

# Quick-add player characters: (hp, ac)
PC_CLASS_PRESETS: dict[str, tuple[int, int]] = {
    "Fighter": (52, 18),
    "Rogue": (38, 15),
    "Wizard": (32, 12),
    "Cleric": (45, 18),
    "Barbarian": (60, 14),
    "Paladin": (52, 18),
}


def parse_damage_list(value: Any) -> list[str]:
    """Comma separated text (or a list) into trimmed, non-empty entries."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(v).strip() for v in value if str(v).strip()]


def _walk_speed(value: Any) -> int:
    if isinstance(value, dict):
        return int(value.get("walk") or 30)
    if isinstance(value, (int, float)):
        return int(value)
    return 30


def statblock_from_record(record: dict[str, Any]) -> Statblock:
    """
    Parse one SRD-style record into a Statblock.

    Raises:
        KeyError: The record has no name
    """
    name = record["name"]
    size = str(record.get("size", "medium")).lower()
    saving_throws = {
        ability.value: int(record[f"{key}_save"])
        for ability, key in ABILITY_KEYS.items()
        if record.get(f"{key}_save") is not None
    }
    challenge = record.get("challenge_rating", record.get("cr"))
    return Statblock(
        name=name,
        size=size if size in SIZES else "medium",
        creature_type=str(record.get("type", "humanoid")).lower(),
        ability_scores={
            ability.value: int(record.get(key, 10)) for ability, key in ABILITY_KEYS.items()
        },
        saving_throws=saving_throws,
        max_hp=max(1, int(record.get("hit_points", 1))),
        ac=int(record.get("armor_class", 10)),
        speed=_walk_speed(record.get("speed")),
        damage_resistances=parse_damage_list(record.get("damage_resistances")),
        damage_immunities=parse_damage_list(record.get("damage_immunities")),
        challenge_rating=str(challenge) if challenge is not None else None,
        source=record.get("source", "srd"),
    )


def creature_from_record(
    record: dict[str, Any],
    position: Optional[Position] = None,
    faction: Optional[Faction] = None,
    name: Optional[str] = None,
) -> Creature:
    statblock = statblock_from_record(record)
    return Creature(
        id=new_id(),
        name=name or statblock.name,
        statblock=statblock,
        position=position or Position(),
        faction=faction,
    )


def import_creature(
    record: dict[str, Any],
    position: Optional[Position] = None,
    faction: Optional[Faction] = None,
) -> AddCreature:
    """Build the event that adds an imported creature to an encounter."""
    creature = creature_from_record(record, position, faction)
    logger.debug(f"Imported {creature.name} ({creature.statblock.creature_type})")
    return AddCreature(creature=creature)


def create_player_character(
    name: str,
    class_name: str = "Fighter",
    position: Optional[Position] = None,
    dex: int = 10,
) -> Creature:
    """
    Quick-add a player character from a class preset.

    Raises:
        KeyError: Unknown class preset
    """
    hp, ac = PC_CLASS_PRESETS[class_name]
    scores = {a.value: 10 for a in Ability}
    scores[Ability.DEX.value] = dex
    return Creature(
        id=new_id(),
        name=name,
        statblock=Statblock(
            name=class_name,
            creature_type="pc",
            ability_scores=scores,
            max_hp=hp,
            ac=ac,
            source="preset",
        ),
        position=position or Position(),
    )


def load_creature_file(file_path: Path) -> list[Creature]:
    """
    Load every creature record in a JSON file.

    Records that fail to parse are skipped with an error log; the file
    itself must exist and be valid JSON.
    """
    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    items = data.get("items", []) if isinstance(data, dict) else data
    creatures = []
    for item in items:
        try:
            creatures.append(creature_from_record(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Error parsing creature {item.get('name', '?')} from {file_path}: {e}")
    logger.debug(f"Loaded {len(creatures)} creatures from {file_path}")
    return creatures
