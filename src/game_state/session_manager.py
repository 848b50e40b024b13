"""
Encounter persistence for the vehicle combat tracker.

Snapshots are plain JSON documents written through their to_dict() form.
Loading goes the other way and then through migrate_snapshot(), so files
written by older versions (or edited by hand) come back consistent.

Layout of the save directory:
- <name>_<id>.json      saved encounters
- presets/<name>.json   party presets (vehicles, creatures, crew)
- archives/<...>.json   finished combats kept for reference
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional
import json
import logging

from src.data_models import CrewAssignment, Creature, EncounterSnapshot, Vehicle
from src.encounter.events import LoadPartyPreset
from src.encounter.migration import migrate_snapshot

logger = logging.getLogger(__name__)


SAVE_VERSION = "1.0.0"
PRESET_DIRECTORY = "presets"
ARCHIVE_DIRECTORY = "archives"


class EncounterLoadError(ValueError):
    """A save file exists but does not hold a readable encounter."""


def _safe_name(name: str) -> str:
    safe = "".join(c for c in name if c.isalnum() or c in " -_").strip()
    return safe.replace(" ", "_") or "encounter"


def _read_json(filepath: Path) -> dict[str, Any]:
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise EncounterLoadError(f"{filepath} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise EncounterLoadError(f"{filepath} does not hold a JSON object")
    return data


def _write_json(filepath: Path, data: dict[str, Any]) -> None:
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


class EncounterStore:
    """
    Saves and loads encounters, party presets and combat archives.

    The store never changes a snapshot it is handed; marking an encounter
    as saved is the engine's job (MarkSaved).
    """

    def __init__(self, save_directory: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            save_directory: Directory for save files. Defaults to ./saves/
        """
        self.save_directory = Path(save_directory) if save_directory else Path("./saves")
        self.save_directory.mkdir(parents=True, exist_ok=True)

    @property
    def preset_directory(self) -> Path:
        path = self.save_directory / PRESET_DIRECTORY
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def archive_directory(self) -> Path:
        path = self.save_directory / ARCHIVE_DIRECTORY
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _resolve(self, filepath: Path | str) -> Path:
        filepath = Path(filepath)
        if not filepath.exists():
            # Try relative to save directory
            filepath = self.save_directory / filepath
        return filepath

    def filename_for(self, snapshot: EncounterSnapshot) -> str:
        return f"{_safe_name(snapshot.name)}_{snapshot.id[:8]}.json"

    # =========================================================================
    # ENCOUNTERS
    # =========================================================================

    def save(self, snapshot: EncounterSnapshot, filename: Optional[str] = None) -> Path:
        """
        Save an encounter to a JSON file.

        Args:
            snapshot: Encounter to save
            filename: Custom filename (defaults to <name>_<id>.json)

        Returns:
            Path to the saved file
        """
        filepath = self.save_directory / (filename or self.filename_for(snapshot))
        _write_json(filepath, {
            "version": SAVE_VERSION,
            "saved_at": datetime.now().isoformat(),
            "snapshot": snapshot.to_dict(),
        })
        logger.info(f"Saved encounter to: {filepath}")
        return filepath

    def load(self, filepath: Path | str) -> EncounterSnapshot:
        """
        Load an encounter from a JSON file.

        Accepts both the wrapped save format and a bare snapshot dictionary.

        Raises:
            FileNotFoundError: No such file
            EncounterLoadError: The file is not a readable encounter
        """
        filepath = self._resolve(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"Save file not found: {filepath}")

        data = _read_json(filepath)
        raw = data.get("snapshot", data)
        try:
            snapshot = EncounterSnapshot.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise EncounterLoadError(f"Could not read encounter from {filepath}: {e}") from e

        snapshot = migrate_snapshot(snapshot)
        logger.info(f"Loaded encounter: {snapshot.name} ({snapshot.id})")
        return snapshot

    def list_encounters(self) -> list[dict[str, Any]]:
        """
        List all saved encounters, most recently saved first.

        Unreadable files are skipped with a warning.
        """
        encounters = []

        for filepath in self.save_directory.glob("*.json"):
            try:
                data = _read_json(filepath)
                snapshot = data.get("snapshot", data)
                encounters.append({
                    "filepath": str(filepath),
                    "filename": filepath.name,
                    "id": snapshot.get("id", "unknown"),
                    "name": snapshot.get("name", "Untitled"),
                    "phase": snapshot.get("phase", "setup"),
                    "round": snapshot.get("round", 0),
                    "vehicle_count": len(snapshot.get("vehicles", [])),
                    "saved_at": data.get("saved_at"),
                    "version": data.get("version", "unknown"),
                })
            except (EncounterLoadError, AttributeError) as e:
                logger.warning(f"Could not read save file {filepath}: {e}")

        encounters.sort(key=lambda e: e.get("saved_at") or "", reverse=True)
        return encounters

    def delete(self, filepath: Path | str) -> bool:
        """
        Delete a save file.

        Returns:
            True if deleted successfully
        """
        filepath = self._resolve(filepath)
        if filepath.exists():
            filepath.unlink()
            logger.info(f"Deleted save file: {filepath}")
            return True
        return False

    # =========================================================================
    # PARTY PRESETS
    # =========================================================================

    def save_party_preset(
        self,
        name: str,
        vehicles: list[Vehicle],
        creatures: list[Creature],
        crew_assignments: list[CrewAssignment],
    ) -> Path:
        """Store a party's vehicles, characters and stations under a name."""
        filepath = self.preset_directory / f"{_safe_name(name)}.json"
        _write_json(filepath, {
            "version": SAVE_VERSION,
            "name": name,
            "saved_at": datetime.now().isoformat(),
            "vehicles": [v.to_dict() for v in vehicles],
            "creatures": [c.to_dict() for c in creatures],
            "crew_assignments": [a.to_dict() for a in crew_assignments],
        })
        logger.info(f"Saved party preset '{name}' to: {filepath}")
        return filepath

    def load_party_preset(self, name: str) -> LoadPartyPreset:
        """
        Read a party preset as the event that puts it into an encounter.

        Raises:
            FileNotFoundError: No preset with that name
            EncounterLoadError: The preset file is unreadable
        """
        filepath = self.preset_directory / f"{_safe_name(name)}.json"
        if not filepath.exists():
            raise FileNotFoundError(f"Party preset not found: {name}")

        data = _read_json(filepath)
        try:
            return LoadPartyPreset(
                vehicles=tuple(Vehicle.from_dict(v) for v in data.get("vehicles", [])),
                creatures=tuple(Creature.from_dict(c) for c in data.get("creatures", [])),
                crew_assignments=tuple(
                    CrewAssignment.from_dict(a) for a in data.get("crew_assignments", [])
                ),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise EncounterLoadError(f"Could not read party preset {name}: {e}") from e

    def list_party_presets(self) -> list[str]:
        names = []
        for filepath in sorted(self.preset_directory.glob("*.json")):
            try:
                names.append(_read_json(filepath).get("name", filepath.stem))
            except EncounterLoadError as e:
                logger.warning(f"Could not read preset file {filepath}: {e}")
        return names

    # =========================================================================
    # COMBAT ARCHIVES
    # =========================================================================

    def archive_combat(self, snapshot: EncounterSnapshot) -> Path:
        """Keep a finished combat, log included, for later reference."""
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filepath = self.archive_directory / f"{_safe_name(snapshot.name)}_{stamp}.json"
        _write_json(filepath, {
            "version": SAVE_VERSION,
            "archived_at": datetime.now().isoformat(),
            "name": snapshot.name,
            "rounds": snapshot.round,
            "surviving_vehicles": [v.name for v in snapshot.vehicles if not v.is_inoperative],
            "destroyed_vehicles": [v.name for v in snapshot.vehicles if v.is_inoperative],
            "snapshot": snapshot.to_dict(),
        })
        logger.info(f"Archived combat '{snapshot.name}' to: {filepath}")
        return filepath

    def list_archives(self) -> list[dict[str, Any]]:
        archives = []
        for filepath in self.archive_directory.glob("*.json"):
            try:
                data = _read_json(filepath)
            except EncounterLoadError as e:
                logger.warning(f"Could not read archive file {filepath}: {e}")
                continue
            archives.append({
                "filepath": str(filepath),
                "name": data.get("name", "Untitled"),
                "rounds": data.get("rounds", 0),
                "archived_at": data.get("archived_at"),
            })
        archives.sort(key=lambda a: a.get("archived_at") or "", reverse=True)
        return archives
