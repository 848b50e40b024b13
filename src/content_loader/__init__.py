"""Built-in vehicle content and creature import."""

from src.content_loader.vehicle_templates import (
    VEHICLE_TEMPLATES,
    SWAPPABLE_WEAPONS,
    create_vehicle,
    get_swappable_weapon,
    get_vehicle_template,
)
from src.content_loader.creature_importer import (
    PC_CLASS_PRESETS,
    create_player_character,
    creature_from_record,
    import_creature,
    load_creature_file,
    statblock_from_record,
)

__all__ = [
    "VEHICLE_TEMPLATES",
    "SWAPPABLE_WEAPONS",
    "create_vehicle",
    "get_swappable_weapon",
    "get_vehicle_template",
    "PC_CLASS_PRESETS",
    "create_player_character",
    "creature_from_record",
    "import_creature",
    "load_creature_file",
    "statblock_from_record",
]
