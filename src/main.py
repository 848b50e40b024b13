"""
Infernal Vehicle Combat Tracker - Main Entry Point

A rules engine for tabletop vehicle combat: infernal war machines, their
crews, mishaps and chase complications.

This module provides the command-line entry point and the VehicleTracker
class that wires the engine, the encounter store and the auto-saver
together.
"""

import argparse
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from src.content_loader import create_player_character, create_vehicle, import_creature
from src.data_models import (
    DiceRoller,
    EncounterSnapshot,
    Faction,
    Position,
    Vehicle,
)
from src.encounter import EncounterEngine, EngineConfig, event_from_dict
from src.encounter.events import (
    AddCreature,
    AddVehicle,
    AssignCrew,
    EncounterEvent,
    NewEncounter,
    SetInitiative,
)
from src.encounter.views import find_vehicle_driver, get_effective_speed
from src.game_state import AutoSaver, EncounterController, EncounterStore


# Configure logging
def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class TrackerConfig:
    """Configuration for a tracker run."""
    save_dir: Path = field(default_factory=lambda: Path("saves"))
    encounter: Optional[Path] = None
    script: Optional[Path] = None
    name: str = "New Encounter"
    demo: bool = False

    # Rules options
    seed: Optional[int] = None
    mishap_max_rerolls: int = 20

    # Persistence options
    auto_save_every: int = 5
    save_on_exit: bool = True

    # Runtime options
    verbose: bool = False

    def __post_init__(self):
        """Ensure paths are Path objects."""
        if isinstance(self.save_dir, str):
            self.save_dir = Path(self.save_dir)
        if isinstance(self.encounter, str):
            self.encounter = Path(self.encounter)
        if isinstance(self.script, str):
            self.script = Path(self.script)


# =============================================================================
# VEHICLE TRACKER
# =============================================================================

class VehicleTracker:
    """
    Orchestrates one tracked encounter.

    Every change goes through the controller as an event; the tracker only
    adds convenience builders and reporting on top.
    """

    def __init__(self, config: Optional[TrackerConfig] = None):
        self.config = config or TrackerConfig()
        self.dice = DiceRoller(seed=self.config.seed)
        self.engine = EncounterEngine(
            self.dice,
            EngineConfig(mishap_max_rerolls=self.config.mishap_max_rerolls),
        )
        self.store = EncounterStore(self.config.save_dir)
        self.controller = EncounterController(engine=self.engine)
        self.auto_saver = AutoSaver(self.store, every=self.config.auto_save_every)
        self.controller.register_listener(self.auto_saver)

        if self.config.encounter is not None:
            self.controller.load(self.store, self.config.encounter)
        else:
            self.controller.dispatch(NewEncounter(name=self.config.name))

    @property
    def snapshot(self) -> EncounterSnapshot:
        return self.controller.snapshot

    def dispatch(self, event: EncounterEvent) -> bool:
        return self.controller.dispatch(event)

    def add_vehicle(
        self,
        template_id: str,
        name: Optional[str] = None,
        faction: Faction = Faction.PARTY,
        position: Optional[Position] = None,
        facing: float = 0.0,
    ) -> Vehicle:
        vehicle = create_vehicle(template_id, name, faction, position, facing)
        self.dispatch(AddVehicle(vehicle=vehicle))
        return vehicle

    def run_script(self, script_path: Path) -> int:
        """
        Replay a JSON list of event records.

        Returns:
            Number of events that changed the encounter
        """
        with open(script_path, "r", encoding="utf-8") as f:
            records = json.load(f)
        events = [event_from_script_record(r) for r in records]
        changed = self.controller.dispatch_all(events)
        logger.info(f"Replayed {len(events)} events from {script_path} ({changed} applied)")
        return changed

    def save(self) -> Path:
        return self.controller.save(self.store)

    def status(self) -> str:
        """
        Get a formatted status string for display.

        Returns:
            Multi-line status string
        """
        info = self.controller.get_state_info()
        snapshot = self.snapshot

        lines = [
            "=" * 60,
            "INFERNAL VEHICLE COMBAT TRACKER",
            "=" * 60,
            f"Encounter: {info['name']}",
            f"Phase: {info['phase']} (round {info['round']}, {info['scale']} scale)",
            f"Current turn: {info['current_turn'] or '-'}",
            "",
            "Vehicles:",
        ]
        for vehicle in snapshot.vehicles:
            driver = find_vehicle_driver(snapshot, vehicle)
            state = "WRECKED" if vehicle.is_inoperative else f"speed {get_effective_speed(vehicle)} ft"
            lines.append(
                f"  {vehicle.name} [{vehicle.faction.value}] "
                f"HP {vehicle.current_hp}/{vehicle.max_hp}, {state}"
            )
            if driver:
                lines.append(f"    Driver: {driver.name}")
            for mishap in vehicle.active_mishaps:
                lines.append(f"    Mishap: {mishap.name}")

        loose = [c for c in snapshot.creatures if not snapshot.is_crewed(c.id)]
        if loose:
            lines.append("")
            lines.append("On foot:")
            for creature in loose:
                lines.append(f"  {creature.name}: HP {creature.current_hp}/{creature.max_hp}")

        if snapshot.active_complication:
            lines.append("")
            lines.append(f"Complication: {snapshot.active_complication.complication.name}")

        lines.append("")
        lines.append("Recent log:")
        for entry in snapshot.log[-5:]:
            lines.append(f"  [R{entry.round}] {entry.action}")
        lines.append("=" * 60)

        return "\n".join(lines)


def event_from_script_record(record: dict[str, Any]) -> EncounterEvent:
    """
    Decode one script record.

    On top of the full event form, two shorthands are accepted:
    {"kind": "add_vehicle", "template": "tormentor", ...} builds the vehicle
    from a built-in template, and {"kind": "add_creature", "statblock": {...}}
    imports an SRD-style monster record.
    """
    kind = record.get("kind")
    if kind == AddVehicle.kind and "template" in record:
        vehicle = create_vehicle(
            record["template"],
            name=record.get("name"),
            faction=Faction(record.get("faction", Faction.PARTY.value)),
            position=Position.from_dict(record["position"]) if "position" in record else None,
            facing=record.get("facing", 0.0),
        )
        if "id" in record:
            vehicle.id = record["id"]
        return AddVehicle(vehicle=vehicle)

    if kind == AddCreature.kind and "statblock" in record:
        event = import_creature(
            record["statblock"],
            position=Position.from_dict(record["position"]) if "position" in record else None,
            faction=Faction(record["faction"]) if "faction" in record else None,
        )
        if "id" in record:
            event.creature.id = record["id"]
        if "initiative" in record:
            event.creature.initiative = record["initiative"]
        return event

    return event_from_dict(record)


# =============================================================================
# DEMO ENCOUNTER
# =============================================================================

BEARDED_DEVIL = {
    "name": "Bearded Devil",
    "size": "Medium",
    "type": "fiend",
    "armor_class": 13,
    "hit_points": 52,
    "speed": {"walk": 30},
    "strength": 16,
    "dexterity": 15,
    "constitution": 15,
    "intelligence": 9,
    "wisdom": 11,
    "charisma": 11,
    "strength_save": 5,
    "constitution_save": 4,
    "wisdom_save": 2,
    "damage_resistances": "cold; bludgeoning, piercing, and slashing from nonmagical attacks",
    "damage_immunities": "fire, poison",
    "challenge_rating": "3",
}


def create_demo_encounter(config: Optional[TrackerConfig] = None) -> VehicleTracker:
    """
    Create a tracker with a small chase ready to start: a party Tormentor
    against a devil-crewed Demon Grinder.
    """
    config = config or TrackerConfig(name="Demo Chase")
    tracker = VehicleTracker(config)

    tormentor = tracker.add_vehicle("tormentor", "Hellrider", Faction.PARTY, Position(200, 300))
    grinder = tracker.add_vehicle(
        "demon_grinder", faction=Faction.ENEMY, position=Position(200, 100), facing=180.0
    )

    party = [
        (create_player_character("Karlach", "Barbarian", dex=14), "helm"),
        (create_player_character("Wyll", "Fighter", dex=12), "harpoon_station"),
    ]
    for creature, station_id in party:
        tracker.dispatch(AddCreature(creature=creature))
        tracker.dispatch(SetInitiative(creature.id, tracker.dice.roll_d20("initiative").total))
        tracker.dispatch(AssignCrew(creature.id, tormentor.id, station_id))

    for index, station_id in enumerate(("helm", "chomper_station")):
        event = import_creature(BEARDED_DEVIL)
        event.creature.name = f"Bearded Devil {index + 1}"
        tracker.dispatch(event)
        tracker.dispatch(SetInitiative(event.creature.id, tracker.dice.roll_d20("initiative").total))
        tracker.dispatch(AssignCrew(event.creature.id, grinder.id, station_id))

    return tracker


# =============================================================================
# COMMAND LINE
# =============================================================================

def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Infernal Vehicle Combat Tracker - vehicle encounter rules engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m src.main --demo                         # Build the demo chase
  python -m src.main --name "Ambush" --script ev.json
  python -m src.main --encounter saves/Ambush_1a2b3c4d.json --script next.json
        """
    )

    parser.add_argument(
        "--save-dir",
        type=Path,
        default=Path("saves"),
        help="Directory for saved encounters (default: saves)",
    )
    parser.add_argument(
        "--encounter",
        type=Path,
        help="Saved encounter to load",
    )
    parser.add_argument(
        "--name",
        type=str,
        default="New Encounter",
        help="Name of a new encounter (default: New Encounter)",
    )
    parser.add_argument(
        "--script",
        type=Path,
        help="JSON file with a list of events to replay",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Start from the built-in demo chase",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    rules_group = parser.add_argument_group("Rules Options")
    rules_group.add_argument(
        "--seed",
        type=int,
        help="Seed for the dice roller (repeatable runs)",
    )
    rules_group.add_argument(
        "--mishap-max-rerolls",
        type=int,
        default=20,
        help="Rerolls before a mishap is picked directly (default: 20)",
    )

    save_group = parser.add_argument_group("Persistence Options")
    save_group.add_argument(
        "--auto-save-every",
        type=int,
        default=5,
        help="Auto-save after this many changes (default: 5)",
    )
    save_group.add_argument(
        "--no-save",
        action="store_true",
        help="Do not save the encounter on exit",
    )

    return parser.parse_args(argv)


def create_config_from_args(args: argparse.Namespace) -> TrackerConfig:
    """Create TrackerConfig from parsed arguments."""
    return TrackerConfig(
        save_dir=args.save_dir,
        encounter=args.encounter,
        script=args.script,
        name=args.name,
        demo=args.demo,
        seed=args.seed,
        mishap_max_rerolls=args.mishap_max_rerolls,
        auto_save_every=args.auto_save_every,
        save_on_exit=not args.no_save,
        verbose=args.verbose,
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main(argv: Optional[list[str]] = None) -> VehicleTracker:
    """Main entry point for CLI usage."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    config = create_config_from_args(args)
    if config.demo and config.encounter is None:
        tracker = create_demo_encounter(config)
    else:
        tracker = VehicleTracker(config)

    if config.script is not None:
        tracker.run_script(config.script)

    print(tracker.status())

    if config.save_on_exit:
        path = tracker.save()
        print(f"Saved to {path}")

    return tracker


if __name__ == "__main__":
    main()
