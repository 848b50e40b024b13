"""Encounter state ownership and persistence."""

from src.game_state.session_manager import EncounterLoadError, EncounterStore
from src.game_state.encounter_controller import AutoSaver, DispatchRecord, EncounterController

__all__ = [
    "EncounterLoadError",
    "EncounterStore",
    "AutoSaver",
    "DispatchRecord",
    "EncounterController",
]
