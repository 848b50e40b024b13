"""
Random tables for the encounter tracker.

This module provides:
- Generic roll tables keyed by inclusive roll ranges
- The vehicle mishap table and its reroll-avoiding selector
- Battlefield complication tables per engagement scale
- Engagement scale configuration
- Armor, gadget and weapon-station refits
"""

from src.tables.table_types import (
    DieType,
    RollTable,
    format_roll_range,
    matches_roll,
)

from src.tables.mishap_tables import (
    MISHAP_MAX_REROLLS,
    MISHAP_TABLE,
    MishapRollResult,
    MishapSeverity,
    VehicleMishapState,
    can_repair_mishap,
    get_mishap_result,
    get_mishap_severity,
    get_repair_description,
    instantiate_mishap,
    mishap_triggered_by_damage,
    mishap_triggered_by_failed_check,
    roll_mishap_for_vehicle,
    unavailable_mishap_ids,
)

from src.tables.complication_tables import (
    COMPLICATION_CUTOFF,
    COMPLICATION_TABLES,
    get_complication_roll_range,
    get_complications_for_scale,
    lookup_complication,
    roll_complication,
)

from src.tables.scale_tables import (
    SCALES,
    ScaleConfig,
    calculate_closing_speed,
    calculate_movement_per_round,
    calculate_new_distance,
    format_distance,
    get_scale_config,
    get_scale_for_distance,
    should_transition_scale,
)

from src.tables.vehicle_upgrades import (
    ARMOR_UPGRADES,
    MAGICAL_GADGETS,
    NO_ARMOR_UPGRADE,
    WEAPON_STATION_UPGRADES,
    ArmorUpgrade,
    MagicalGadget,
    WeaponStationUpgrade,
    get_armor_upgrade,
    get_magical_gadget,
    get_weapon_station_upgrade,
)

__all__ = [
    # Table types
    "DieType",
    "RollTable",
    "format_roll_range",
    "matches_roll",
    # Mishaps
    "MISHAP_MAX_REROLLS",
    "MISHAP_TABLE",
    "MishapRollResult",
    "MishapSeverity",
    "VehicleMishapState",
    "can_repair_mishap",
    "get_mishap_result",
    "get_mishap_severity",
    "get_repair_description",
    "instantiate_mishap",
    "mishap_triggered_by_damage",
    "mishap_triggered_by_failed_check",
    "roll_mishap_for_vehicle",
    "unavailable_mishap_ids",
    # Complications
    "COMPLICATION_CUTOFF",
    "COMPLICATION_TABLES",
    "get_complication_roll_range",
    "get_complications_for_scale",
    "lookup_complication",
    "roll_complication",
    # Scales
    "SCALES",
    "ScaleConfig",
    "calculate_closing_speed",
    "calculate_movement_per_round",
    "calculate_new_distance",
    "format_distance",
    "get_scale_config",
    "get_scale_for_distance",
    "should_transition_scale",
    # Refits
    "ARMOR_UPGRADES",
    "MAGICAL_GADGETS",
    "NO_ARMOR_UPGRADE",
    "WEAPON_STATION_UPGRADES",
    "ArmorUpgrade",
    "MagicalGadget",
    "WeaponStationUpgrade",
    "get_armor_upgrade",
    "get_magical_gadget",
    "get_weapon_station_upgrade",
]
