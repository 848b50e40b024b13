"""
Encounter controller.

Holds the one current snapshot of a running tracker, pushes events through
the engine and tells registered listeners whenever the snapshot changes.
Renderers, player-view broadcasters and the auto-saver all hang off the
listener hook; none of them ever mutate the snapshot.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional
import logging

from src.data_models import EncounterSnapshot
from src.encounter.encounter_engine import EncounterEngine
from src.encounter.events import EncounterEvent, LoadEncounter, MarkSaved
from src.encounter.views import describe_turn, get_current_turn_entry
from src.game_state.session_manager import EncounterStore

logger = logging.getLogger(__name__)


# Called with (old_snapshot, new_snapshot, event)
SnapshotListener = Callable[[EncounterSnapshot, EncounterSnapshot, EncounterEvent], None]


@dataclass
class DispatchRecord:
    """One dispatched event and whether it changed anything."""
    timestamp: datetime
    event_kind: str
    changed: bool


@dataclass
class EncounterController:
    """
    Owner of the current encounter snapshot.

    Usage:
        controller = EncounterController(EncounterEngine(DiceRoller(seed=1)))
        controller.register_listener(AutoSaver(store))
        controller.dispatch(StartCombat())
    """
    engine: EncounterEngine = field(default_factory=EncounterEngine)
    snapshot: EncounterSnapshot = field(default_factory=EncounterSnapshot)
    history: list[DispatchRecord] = field(default_factory=list)
    _listeners: list[SnapshotListener] = field(default_factory=list, repr=False)

    def dispatch(self, event: EncounterEvent) -> bool:
        """
        Apply an event to the current snapshot.

        Returns:
            True if the snapshot changed
        """
        old = self.snapshot
        new = self.engine.apply(event, old)
        changed = new is not old
        self.history.append(DispatchRecord(datetime.now(), event.kind, changed))
        if not changed:
            return False

        self.snapshot = new
        for listener in list(self._listeners):
            listener(old, new, event)
        return True

    def dispatch_all(self, events: list[EncounterEvent]) -> int:
        """Dispatch events in order; returns how many changed the snapshot."""
        return sum(1 for event in events if self.dispatch(event))

    def register_listener(self, listener: SnapshotListener) -> None:
        """
        Register a listener for snapshot changes.

        The listener will be called with (old_snapshot, new_snapshot, event).
        """
        self._listeners.append(listener)

    def unregister_listener(self, listener: SnapshotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def save(self, store: EncounterStore, filename: Optional[str] = None) -> Path:
        """Mark the encounter saved and write it out."""
        self.dispatch(MarkSaved())
        return store.save(self.snapshot, filename)

    def load(self, store: EncounterStore, filepath: Path | str) -> EncounterSnapshot:
        """Load a saved encounter and make it current."""
        self.dispatch(LoadEncounter(snapshot=store.load(filepath)))
        return self.snapshot

    def get_state_info(self) -> dict[str, Any]:
        """Short status summary of the current encounter."""
        entry = get_current_turn_entry(self.snapshot)
        return {
            "name": self.snapshot.name,
            "phase": self.snapshot.phase.value,
            "round": self.snapshot.round,
            "scale": self.snapshot.scale.value,
            "current_turn": describe_turn(self.snapshot, entry) if entry else None,
            "vehicles": len(self.snapshot.vehicles),
            "creatures": len(self.snapshot.creatures),
            "log_entries": len(self.snapshot.log),
            "events_dispatched": len(self.history),
        }


class AutoSaver:
    """
    Listener that saves after every N snapshot changes, and immediately on
    any phase change.
    """

    def __init__(self, store: EncounterStore, every: int = 5):
        self.store = store
        self.every = max(1, every)
        self.pending_changes = 0
        self.last_saved_path: Optional[Path] = None

    def __call__(self, old: EncounterSnapshot, new: EncounterSnapshot, event: EncounterEvent) -> None:
        self.pending_changes += 1
        if new.phase != old.phase or self.pending_changes >= self.every:
            self.last_saved_path = self.store.save(new)
            self.pending_changes = 0
            logger.debug(f"Auto-saved after {event.kind}")
