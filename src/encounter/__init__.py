"""Vehicle encounter rules: events, the engine that applies them, and views."""

from src.encounter.encounter_engine import (
    EncounterEngine,
    EngineConfig,
    apply,
    get_encounter_engine,
    reset_encounter_engine,
)
from src.encounter.events import EncounterEvent, EVENT_TYPES, event_from_dict
from src.encounter.migration import migrate_snapshot
from src.encounter.views import (
    PlayerView,
    build_player_view,
    describe_turn,
    find_vehicle_driver,
    get_current_actor,
    get_effective_ac,
    get_effective_speed,
    get_vehicle_defenses,
)

__all__ = [
    "EncounterEngine",
    "EngineConfig",
    "apply",
    "get_encounter_engine",
    "reset_encounter_engine",
    "EncounterEvent",
    "EVENT_TYPES",
    "event_from_dict",
    "migrate_snapshot",
    "PlayerView",
    "build_player_view",
    "describe_turn",
    "find_vehicle_driver",
    "get_current_actor",
    "get_effective_ac",
    "get_effective_speed",
    "get_vehicle_defenses",
]
