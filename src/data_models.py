"""
Shared data structures for the vehicle combat encounter tracker.

Every piece of encounter state lives in an EncounterSnapshot. Snapshots are
only ever advanced by the encounter engine, which hands back a fresh object
graph for each accepted event. Vehicle templates are frozen and shared
between snapshots.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional
import random
import re
import uuid


# =============================================================================
# ENUMS
# =============================================================================


class Faction(str, Enum):
    """Which side a vehicle or creature fights for."""
    PARTY = "party"
    ENEMY = "enemy"


class EncounterPhase(str, Enum):
    """Lifecycle phase of an encounter."""
    SETUP = "setup"
    COMBAT = "combat"
    ENDED = "ended"


class CoverType(str, Enum):
    """Cover classes, ordered from least to most protective."""
    NONE = "none"
    HALF = "half"
    THREE_QUARTERS = "three_quarters"
    FULL = "full"


class Arc(str, Enum):
    """90-degree sectors around a vehicle, relative to its facing."""
    FRONT = "front"
    REAR = "rear"
    LEFT = "left"
    RIGHT = "right"


ALL_ARCS: tuple[Arc, ...] = (Arc.FRONT, Arc.REAR, Arc.LEFT, Arc.RIGHT)


class StationRole(str, Enum):
    """What a station is for, derived once when a template is built."""
    DRIVER = "driver"
    GUNNER = "gunner"
    PASSENGER = "passenger"


class RangeKind(str, Enum):
    """Kinds of parsed weapon range."""
    FIXED = "fixed"
    MELEE = "melee"


class Ability(str, Enum):
    """Ability score abbreviations."""
    STR = "str"
    DEX = "dex"
    CON = "con"
    INT = "int"
    WIS = "wis"
    CHA = "cha"


class MishapDuration(str, Enum):
    """How long an active mishap lasts."""
    INSTANT = "instant"
    UNTIL_REPAIRED = "until_repaired"
    ROUNDS = "rounds"


class SpeedModifierDuration(str, Enum):
    """Scope of a transient speed multiplier."""
    THIS_TURN = "this_turn"
    THIS_ROUND = "this_round"
    UNTIL_CLEARED = "until_cleared"


class ResolutionStatus(str, Enum):
    """Per-vehicle state of a battlefield complication."""
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ScaleName(str, Enum):
    """Engagement-distance bands, from furthest to closest."""
    STRATEGIC = "strategic"
    APPROACH = "approach"
    TACTICAL = "tactical"
    POINT_BLANK = "point_blank"


class TurnEntryKind(str, Enum):
    """Whether a turn order slot belongs to a vehicle or a creature."""
    VEHICLE = "vehicle"
    CREATURE = "creature"


class LogEntryType(str, Enum):
    """Categories of combat log entries."""
    ATTACK = "attack"
    DAMAGE = "damage"
    HEALING = "healing"
    MISHAP = "mishap"
    COMPLICATION = "complication"
    MOVEMENT = "movement"
    ABILITY = "ability"
    CONDITION = "condition"
    SCALE_CHANGE = "scale_change"
    ROUND_START = "round_start"
    TURN_START = "turn_start"
    SYSTEM = "system"


# =============================================================================
# DICE AND RANDOMIZATION
# =============================================================================


class DiceRoller:
    """
    Seedable source of every random draw the engine makes.

    Each roller owns its own PRNG so that two engines never share hidden
    state. Rolls are kept in a log for replay and inspection.
    """

    def __init__(self, seed: Optional[int] = None):
        self._seed = seed
        self._random = random.Random(seed)
        self._roll_log: list["DiceResult"] = []

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def set_seed(self, seed: int) -> None:
        """Reseed for reproducibility."""
        self._seed = seed
        self._random.seed(seed)

    def roll(self, dice: str, reason: str = "") -> "DiceResult":
        """
        Roll dice using standard notation (e.g., '2d6', '1d20+5', '3d6-2').

        Args:
            dice: Dice notation string
            reason: Why this roll is being made (for logging)

        Returns:
            DiceResult with individual rolls and total
        """
        modifier = 0
        if '+' in dice:
            dice_part, mod_part = dice.split('+')
            modifier = int(mod_part)
        elif '-' in dice:
            dice_part, mod_part = dice.split('-')
            modifier = -int(mod_part)
        else:
            dice_part = dice

        num_dice, die_size = dice_part.lower().strip().split('d')
        num_dice = int(num_dice) if num_dice else 1
        die_size = int(die_size)

        rolls = [self._random.randint(1, die_size) for _ in range(num_dice)]
        total = sum(rolls) + modifier

        result = DiceResult(
            notation=dice,
            rolls=rolls,
            modifier=modifier,
            total=total,
            reason=reason
        )

        self._roll_log.append(result)
        return result

    def roll_d20(self, reason: str = "") -> "DiceResult":
        """Convenience method for d20 rolls."""
        return self.roll("1d20", reason)

    def roll_die(self, sides: int, reason: str = "") -> "DiceResult":
        """Roll a single die with the given number of sides."""
        return self.roll(f"1d{sides}", reason)

    def choice(self, options: list[Any]) -> Any:
        """Pick uniformly from a non-empty list."""
        return self._random.choice(options)

    def uniform(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def get_roll_log(self) -> list["DiceResult"]:
        """Get the complete roll log for this roller."""
        return self._roll_log.copy()

    def clear_roll_log(self) -> None:
        """Clear the roll log."""
        self._roll_log = []


@dataclass
class DiceResult:
    """Result of a dice roll with full information."""
    notation: str
    rolls: list[int]
    modifier: int
    total: int
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        if self.modifier > 0:
            return f"{self.notation}: {self.rolls} + {self.modifier} = {self.total}"
        elif self.modifier < 0:
            return f"{self.notation}: {self.rolls} - {abs(self.modifier)} = {self.total}"
        return f"{self.notation}: {self.rolls} = {self.total}"


def new_id(prefix: str = "") -> str:
    """Generate a fresh identity string."""
    value = str(uuid.uuid4())
    return f"{prefix}_{value}" if prefix else value


def ability_modifier(score: int) -> int:
    """Standard d20 ability modifier."""
    return (score - 10) // 2


# =============================================================================
# GEOMETRY
# =============================================================================


@dataclass
class Position:
    """A point on the battlefield in distance units (feet); y grows southward."""
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Position":
        return cls(x=data.get("x", 0.0), y=data.get("y", 0.0))


@dataclass
class ElevationZone:
    """A raised rectangle of terrain."""
    id: str
    name: str
    x: float
    y: float
    width: float
    height: float
    elevation: int = 0
    color: str = ""

    def contains(self, position: Position) -> bool:
        return (
            self.x <= position.x <= self.x + self.width
            and self.y <= position.y <= self.y + self.height
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "elevation": self.elevation,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ElevationZone":
        return cls(
            id=data["id"],
            name=data.get("name", "Elevation"),
            x=data.get("x", 0.0),
            y=data.get("y", 0.0),
            width=data.get("width", 0.0),
            height=data.get("height", 0.0),
            elevation=data.get("elevation", 0),
            color=data.get("color", ""),
        )


# =============================================================================
# VEHICLE TEMPLATES
# =============================================================================

# Station id/name fragments that mark the vehicle's controls
DRIVER_STATION_KEYWORDS = ("helm", "rider", "driver", "pilot")

# Fragments that mark a weapon post even when no weapon is mounted yet
GUNNER_STATION_KEYWORDS = ("weapon", "gun", "harpoon", "chomper", "wrecking", "claw", "saw")

# Reach of a weapon listed only as "melee"
DEFAULT_MELEE_REACH = 5

_RANGE_NUMBER = re.compile(r"\d+")


@dataclass(frozen=True)
class WeaponRange:
    """Parsed weapon range."""
    kind: RangeKind
    distance: int

    @property
    def is_melee(self) -> bool:
        return self.kind == RangeKind.MELEE


def parse_weapon_range(text: str, melee_reach: int = DEFAULT_MELEE_REACH) -> WeaponRange:
    """
    Parse a free-text weapon range.

    "melee" becomes a melee range of the default reach, "melee (15 ft)"
    keeps its stated reach, and anything else takes its leading integer
    ("120 ft", "80/320 ft"). Text with no number is a fixed range of 0.
    """
    lowered = (text or "").strip().lower()
    match = _RANGE_NUMBER.search(lowered)
    if lowered.startswith("melee"):
        return WeaponRange(RangeKind.MELEE, int(match.group()) if match else melee_reach)
    return WeaponRange(RangeKind.FIXED, int(match.group()) if match else 0)


def classify_station_role(
    station_id: str, station_name: str, weapons: tuple["WeaponTemplate", ...] = ()
) -> StationRole:
    """Tag a station as driver, gunner or passenger."""
    haystack = f"{station_id} {station_name}".lower()
    if any(keyword in haystack for keyword in DRIVER_STATION_KEYWORDS):
        return StationRole.DRIVER
    if any(weapon.station_id == station_id for weapon in weapons):
        return StationRole.GUNNER
    if any(keyword in haystack for keyword in GUNNER_STATION_KEYWORDS):
        return StationRole.GUNNER
    return StationRole.PASSENGER


class _SharedValue:
    """Mixin for frozen values that copies of a snapshot keep sharing."""

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


@dataclass(frozen=True)
class Station(_SharedValue):
    """A named crew slot on a vehicle."""
    id: str
    name: str
    cover: CoverType = CoverType.NONE
    capacity: int = 1
    can_attack_out: bool = True
    visible_from_arcs: tuple[Arc, ...] = ALL_ARCS
    description: str = ""
    role: Optional[StationRole] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "cover": self.cover.value,
            "capacity": self.capacity,
            "can_attack_out": self.can_attack_out,
            "visible_from_arcs": [arc.value for arc in self.visible_from_arcs],
            "description": self.description,
            "role": self.role.value if self.role else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Station":
        role = data.get("role")
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            cover=CoverType(data.get("cover", "none")),
            capacity=data.get("capacity", 1),
            can_attack_out=data.get("can_attack_out", True),
            visible_from_arcs=tuple(Arc(a) for a in data.get("visible_from_arcs", [a.value for a in ALL_ARCS])),
            description=data.get("description", ""),
            role=StationRole(role) if role else None,
        )


@dataclass(frozen=True)
class WeaponTemplate(_SharedValue):
    """A vehicle-mounted weapon. Its range is parsed once, on construction."""
    id: str
    name: str
    damage: str = ""
    range: str = ""
    station_id: Optional[str] = None
    attack_bonus: int = 0
    properties: tuple[str, ...] = ()
    description: str = ""
    range_spec: WeaponRange = field(init=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "properties", tuple(self.properties))
        object.__setattr__(self, "range_spec", parse_weapon_range(self.range))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "damage": self.damage,
            "range": self.range,
            "station_id": self.station_id,
            "attack_bonus": self.attack_bonus,
            "properties": list(self.properties),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WeaponTemplate":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            damage=data.get("damage", ""),
            range=data.get("range", ""),
            station_id=data.get("station_id"),
            attack_bonus=data.get("attack_bonus", 0),
            properties=tuple(data.get("properties", [])),
            description=data.get("description", ""),
        )


# Every infernal war machine shrugs these off
INFERNAL_VEHICLE_IMMUNITIES: tuple[str, ...] = ("fire", "poison", "psychic")


@dataclass(frozen=True)
class VehicleTemplate(_SharedValue):
    """
    Hull statistics shared by every vehicle built from it.

    Station roles are classified here, once, so call sites never have to
    pattern-match station names themselves.
    """
    id: str
    name: str
    max_hp: int
    ac: int
    speed: int
    damage_threshold: int
    mishap_threshold: int
    crew_capacity: int = 1
    size: str = "large"
    ability_scores: dict[str, int] = field(default_factory=dict, compare=False)
    stations: tuple[Station, ...] = ()
    weapons: tuple[WeaponTemplate, ...] = ()
    traits: tuple[str, ...] = ()
    immunities: tuple[str, ...] = INFERNAL_VEHICLE_IMMUNITIES
    description: str = ""

    def __post_init__(self):
        weapons = tuple(self.weapons)
        stations = tuple(
            station if station.role is not None
            else replace(station, role=classify_station_role(station.id, station.name, weapons))
            for station in self.stations
        )
        object.__setattr__(self, "weapons", weapons)
        object.__setattr__(self, "stations", stations)
        object.__setattr__(self, "traits", tuple(self.traits))
        object.__setattr__(self, "immunities", tuple(self.immunities))

    def get_station(self, station_id: str) -> Optional[Station]:
        for station in self.stations:
            if station.id == station_id:
                return station
        return None

    def station_index(self, station_id: str) -> int:
        """Template order of a station; unknown stations sort last."""
        for index, station in enumerate(self.stations):
            if station.id == station_id:
                return index
        return len(self.stations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "max_hp": self.max_hp,
            "ac": self.ac,
            "speed": self.speed,
            "damage_threshold": self.damage_threshold,
            "mishap_threshold": self.mishap_threshold,
            "crew_capacity": self.crew_capacity,
            "size": self.size,
            "ability_scores": dict(self.ability_scores),
            "stations": [s.to_dict() for s in self.stations],
            "weapons": [w.to_dict() for w in self.weapons],
            "traits": list(self.traits),
            "immunities": list(self.immunities),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VehicleTemplate":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            max_hp=data["max_hp"],
            ac=data.get("ac", 10),
            speed=data.get("speed", 0),
            damage_threshold=data.get("damage_threshold", 0),
            mishap_threshold=data.get("mishap_threshold", 0),
            crew_capacity=data.get("crew_capacity", 1),
            size=data.get("size", "large"),
            ability_scores=data.get("ability_scores", {}),
            stations=tuple(Station.from_dict(s) for s in data.get("stations", [])),
            weapons=tuple(WeaponTemplate.from_dict(w) for w in data.get("weapons", [])),
            traits=tuple(data.get("traits", [])),
            immunities=tuple(data.get("immunities", INFERNAL_VEHICLE_IMMUNITIES)),
            description=data.get("description", ""),
        )


# =============================================================================
# MISHAPS AND SPEED MODIFIERS
# =============================================================================


@dataclass
class MishapEffect:
    """Structured mechanical consequence of a mishap."""
    speed_reduction: int = 0
    damage_threshold_reduction: int = 0
    disables_weapon: bool = False
    auto_fail_dex_checks: bool = False
    disadvantage_on_all_checks: bool = False
    recurring_damage: Optional[str] = None  # e.g. "3d6 fire" at start of each turn
    obscured_station: Optional[str] = None
    vehicle_prone: bool = False
    crew_save_dc: Optional[int] = None
    crew_save_damage: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "speed_reduction": self.speed_reduction,
            "damage_threshold_reduction": self.damage_threshold_reduction,
            "disables_weapon": self.disables_weapon,
            "auto_fail_dex_checks": self.auto_fail_dex_checks,
            "disadvantage_on_all_checks": self.disadvantage_on_all_checks,
            "recurring_damage": self.recurring_damage,
            "obscured_station": self.obscured_station,
            "vehicle_prone": self.vehicle_prone,
            "crew_save_dc": self.crew_save_dc,
            "crew_save_damage": self.crew_save_damage,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MishapEffect":
        return cls(
            speed_reduction=data.get("speed_reduction", 0),
            damage_threshold_reduction=data.get("damage_threshold_reduction", 0),
            disables_weapon=data.get("disables_weapon", False),
            auto_fail_dex_checks=data.get("auto_fail_dex_checks", False),
            disadvantage_on_all_checks=data.get("disadvantage_on_all_checks", False),
            recurring_damage=data.get("recurring_damage"),
            obscured_station=data.get("obscured_station"),
            vehicle_prone=data.get("vehicle_prone", False),
            crew_save_dc=data.get("crew_save_dc"),
            crew_save_damage=data.get("crew_save_damage"),
        )


@dataclass
class Mishap:
    """
    A mechanical failure, either as a catalog entry or as an active instance.

    Active instances get a fresh id and remember the catalog entry they were
    drawn from in catalog_id.
    """
    id: str
    name: str
    roll_min: int
    roll_max: int
    description: str = ""
    effect: str = ""
    duration: MishapDuration = MishapDuration.UNTIL_REPAIRED
    rounds_remaining: Optional[int] = None
    repair_dc: Optional[int] = None
    repair_ability: Optional[Ability] = None
    mechanical_effect: MishapEffect = field(default_factory=MishapEffect)
    stackable: bool = False
    catalog_id: Optional[str] = None

    @property
    def base_id(self) -> str:
        return self.catalog_id or self.id

    @property
    def is_repairable(self) -> bool:
        return self.repair_dc is not None and self.repair_ability is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "roll_min": self.roll_min,
            "roll_max": self.roll_max,
            "description": self.description,
            "effect": self.effect,
            "duration": self.duration.value,
            "rounds_remaining": self.rounds_remaining,
            "repair_dc": self.repair_dc,
            "repair_ability": self.repair_ability.value if self.repair_ability else None,
            "mechanical_effect": self.mechanical_effect.to_dict(),
            "stackable": self.stackable,
            "catalog_id": self.catalog_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Mishap":
        repair_ability = data.get("repair_ability")
        return cls(
            id=data["id"],
            name=data["name"],
            roll_min=data.get("roll_min", 1),
            roll_max=data.get("roll_max", data.get("roll_min", 1)),
            description=data.get("description", ""),
            effect=data.get("effect", ""),
            duration=MishapDuration(data.get("duration", "until_repaired")),
            rounds_remaining=data.get("rounds_remaining"),
            repair_dc=data.get("repair_dc"),
            repair_ability=Ability(repair_ability) if repair_ability else None,
            mechanical_effect=MishapEffect.from_dict(data.get("mechanical_effect", {})),
            stackable=data.get("stackable", False),
            catalog_id=data.get("catalog_id"),
        )


@dataclass
class SpeedModifier:
    """A time-boxed multiplier on a vehicle's speed."""
    id: str
    multiplier: float
    duration: SpeedModifierDuration
    applied_at_round: int
    applied_at_turn_index: int = 0
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "multiplier": self.multiplier,
            "duration": self.duration.value,
            "applied_at_round": self.applied_at_round,
            "applied_at_turn_index": self.applied_at_turn_index,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SpeedModifier":
        return cls(
            id=data["id"],
            multiplier=data.get("multiplier", 1.0),
            duration=SpeedModifierDuration(data.get("duration", "until_cleared")),
            applied_at_round=data.get("applied_at_round", 0),
            applied_at_turn_index=data.get("applied_at_turn_index", 0),
            source=data.get("source", ""),
        )


# =============================================================================
# CREATURES
# =============================================================================


@dataclass
class Statblock:
    """Game statistics for a creature."""
    name: str
    size: str = "medium"
    creature_type: str = "humanoid"  # "pc" marks a player character
    ability_scores: dict[str, int] = field(
        default_factory=lambda: {a.value: 10 for a in Ability}
    )
    saving_throws: dict[str, int] = field(default_factory=dict)
    max_hp: int = 1
    ac: int = 10
    speed: int = 30
    damage_resistances: list[str] = field(default_factory=list)
    damage_immunities: list[str] = field(default_factory=list)
    challenge_rating: Optional[str] = None
    source: str = "custom"

    def ability_modifier(self, ability: Ability) -> int:
        return ability_modifier(self.ability_scores.get(ability.value, 10))

    def save_modifier(self, ability: Ability) -> int:
        """Saving throw bonus, falling back to the plain ability modifier."""
        if ability.value in self.saving_throws:
            return self.saving_throws[ability.value]
        return self.ability_modifier(ability)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size": self.size,
            "creature_type": self.creature_type,
            "ability_scores": dict(self.ability_scores),
            "saving_throws": dict(self.saving_throws),
            "max_hp": self.max_hp,
            "ac": self.ac,
            "speed": self.speed,
            "damage_resistances": list(self.damage_resistances),
            "damage_immunities": list(self.damage_immunities),
            "challenge_rating": self.challenge_rating,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Statblock":
        scores = {a.value: 10 for a in Ability}
        scores.update(data.get("ability_scores", {}))
        return cls(
            name=data.get("name", "Unknown"),
            size=data.get("size", "medium"),
            creature_type=data.get("creature_type", "humanoid"),
            ability_scores=scores,
            saving_throws=data.get("saving_throws", {}),
            max_hp=data.get("max_hp", 1),
            ac=data.get("ac", 10),
            speed=data.get("speed", 30),
            damage_resistances=data.get("damage_resistances", []),
            damage_immunities=data.get("damage_immunities", []),
            challenge_rating=data.get("challenge_rating"),
            source=data.get("source", "custom"),
        )


def infer_faction(statblock: Statblock) -> Faction:
    """Player characters fight for the party, everything else for the enemy."""
    return Faction.PARTY if statblock.creature_type == "pc" else Faction.ENEMY


@dataclass
class Creature:
    """A combatant. Has a position only while not crewing a vehicle."""
    id: str
    name: str
    statblock: Statblock
    current_hp: Optional[int] = None
    temp_hp: int = 0
    initiative: int = 0
    position: Optional[Position] = None
    faction: Optional[Faction] = None
    notes: str = ""

    def __post_init__(self):
        if self.current_hp is None:
            self.current_hp = self.statblock.max_hp
        if self.faction is None:
            self.faction = infer_faction(self.statblock)

    @property
    def max_hp(self) -> int:
        return self.statblock.max_hp

    @property
    def is_player_controlled(self) -> bool:
        return self.statblock.creature_type == "pc"

    @property
    def is_down(self) -> bool:
        return self.current_hp <= 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "statblock": self.statblock.to_dict(),
            "current_hp": self.current_hp,
            "temp_hp": self.temp_hp,
            "initiative": self.initiative,
            "position": self.position.to_dict() if self.position else None,
            "faction": self.faction.value if self.faction else None,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Creature":
        position = data.get("position")
        faction = data.get("faction")
        return cls(
            id=data["id"],
            name=data.get("name", "Creature"),
            statblock=Statblock.from_dict(data.get("statblock", {})),
            current_hp=data.get("current_hp"),
            temp_hp=data.get("temp_hp", 0),
            initiative=data.get("initiative", 0),
            position=Position.from_dict(position) if position else None,
            faction=Faction(faction) if faction else None,
            notes=data.get("notes", ""),
        )


# =============================================================================
# VEHICLES AND CREW
# =============================================================================


@dataclass
class Vehicle:
    """A vehicle in the encounter, built from a shared template."""
    id: str
    name: str
    template: VehicleTemplate
    faction: Faction = Faction.PARTY
    current_hp: Optional[int] = None
    current_speed: Optional[int] = None
    facing: float = 0.0  # degrees clockwise from north
    position: Position = field(default_factory=Position)
    active_mishaps: list[Mishap] = field(default_factory=list)
    speed_modifiers: list[SpeedModifier] = field(default_factory=list)
    weapons: Optional[list[WeaponTemplate]] = None
    is_inoperative: bool = False
    armor_upgrade_id: str = "none"
    gadget_ids: list[str] = field(default_factory=list)
    has_weapon_station_upgrade: bool = False

    def __post_init__(self):
        if self.current_hp is None:
            self.current_hp = self.template.max_hp
        if self.current_speed is None:
            self.current_speed = self.template.speed
        if self.weapons is None:
            self.weapons = list(self.template.weapons)

    @property
    def max_hp(self) -> int:
        return self.template.max_hp

    @property
    def is_destroyed(self) -> bool:
        return self.current_hp <= 0

    def get_mishap(self, mishap_id: str) -> Optional[Mishap]:
        for mishap in self.active_mishaps:
            if mishap.id == mishap_id:
                return mishap
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "template": self.template.to_dict(),
            "faction": self.faction.value,
            "current_hp": self.current_hp,
            "current_speed": self.current_speed,
            "facing": self.facing,
            "position": self.position.to_dict(),
            "active_mishaps": [m.to_dict() for m in self.active_mishaps],
            "speed_modifiers": [m.to_dict() for m in self.speed_modifiers],
            "weapons": [w.to_dict() for w in self.weapons],
            "is_inoperative": self.is_inoperative,
            "armor_upgrade_id": self.armor_upgrade_id,
            "gadget_ids": list(self.gadget_ids),
            "has_weapon_station_upgrade": self.has_weapon_station_upgrade,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Vehicle":
        weapons = data.get("weapons")
        template = VehicleTemplate.from_dict(data["template"])
        current_hp = data.get("current_hp")
        return cls(
            id=data["id"],
            name=data.get("name", template.name),
            template=template,
            faction=Faction(data.get("faction", "party")),
            current_hp=current_hp,
            current_speed=data.get("current_speed"),
            facing=data.get("facing", 0.0),
            position=Position.from_dict(data.get("position", {})),
            active_mishaps=[Mishap.from_dict(m) for m in data.get("active_mishaps", [])],
            speed_modifiers=[SpeedModifier.from_dict(m) for m in data.get("speed_modifiers", [])],
            weapons=[WeaponTemplate.from_dict(w) for w in weapons] if weapons is not None else None,
            is_inoperative=data.get("is_inoperative", current_hp == 0),
            armor_upgrade_id=data.get("armor_upgrade_id", "none"),
            gadget_ids=list(data.get("gadget_ids", [])),
            has_weapon_station_upgrade=data.get("has_weapon_station_upgrade", False),
        )


@dataclass
class CrewAssignment:
    """A creature manning a station on a vehicle."""
    creature_id: str
    vehicle_id: str
    station_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "creature_id": self.creature_id,
            "vehicle_id": self.vehicle_id,
            "station_id": self.station_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrewAssignment":
        return cls(
            creature_id=data["creature_id"],
            vehicle_id=data["vehicle_id"],
            station_id=data["station_id"],
        )


# =============================================================================
# BATTLEFIELD COMPLICATIONS
# =============================================================================


@dataclass(frozen=True)
class Complication(_SharedValue):
    """A catalog entry of the complication tables."""
    id: str
    name: str
    roll_min: int
    roll_max: int
    description: str = ""
    effect: str = ""
    save_ability: Ability = Ability.DEX
    difficulty: int = 0
    failure_effect: str = ""
    failure_speed_multiplier: Optional[float] = None  # applied for this round on failure
    damage: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "roll_min": self.roll_min,
            "roll_max": self.roll_max,
            "description": self.description,
            "effect": self.effect,
            "save_ability": self.save_ability.value,
            "difficulty": self.difficulty,
            "failure_effect": self.failure_effect,
            "failure_speed_multiplier": self.failure_speed_multiplier,
            "damage": self.damage,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Complication":
        return cls(
            id=data["id"],
            name=data["name"],
            roll_min=data.get("roll_min", 1),
            roll_max=data.get("roll_max", data.get("roll_min", 1)),
            description=data.get("description", ""),
            effect=data.get("effect", ""),
            save_ability=Ability(data.get("save_ability", "dex")),
            difficulty=data.get("difficulty", 0),
            failure_effect=data.get("failure_effect", ""),
            failure_speed_multiplier=data.get("failure_speed_multiplier"),
            damage=data.get("damage"),
        )


@dataclass
class ComplicationResolution:
    """One vehicle's outcome against the active complication."""
    vehicle_id: str
    vehicle_name: str
    status: ResolutionStatus = ResolutionStatus.PENDING
    driver_name: Optional[str] = None
    roll_result: Optional[int] = None
    modifier: Optional[int] = None
    total: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "vehicle_id": self.vehicle_id,
            "vehicle_name": self.vehicle_name,
            "status": self.status.value,
            "driver_name": self.driver_name,
            "roll_result": self.roll_result,
            "modifier": self.modifier,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ComplicationResolution":
        return cls(
            vehicle_id=data["vehicle_id"],
            vehicle_name=data.get("vehicle_name", ""),
            status=ResolutionStatus(data.get("status", "pending")),
            driver_name=data.get("driver_name"),
            roll_result=data.get("roll_result"),
            modifier=data.get("modifier"),
            total=data.get("total"),
        )


@dataclass
class ActiveComplication:
    """The single in-flight battlefield complication."""
    id: str
    complication: Complication
    roll: int
    round: int
    resolutions: list[ComplicationResolution] = field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return all(r.status != ResolutionStatus.PENDING for r in self.resolutions)

    def get_resolution(self, vehicle_id: str) -> Optional[ComplicationResolution]:
        for resolution in self.resolutions:
            if resolution.vehicle_id == vehicle_id:
                return resolution
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "complication": self.complication.to_dict(),
            "roll": self.roll,
            "round": self.round,
            "resolutions": [r.to_dict() for r in self.resolutions],
            "is_resolved": self.is_resolved,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActiveComplication":
        return cls(
            id=data["id"],
            complication=Complication.from_dict(data["complication"]),
            roll=data.get("roll", 0),
            round=data.get("round", 0),
            resolutions=[ComplicationResolution.from_dict(r) for r in data.get("resolutions", [])],
        )


# =============================================================================
# ENCOUNTER SNAPSHOT
# =============================================================================


@dataclass(frozen=True)
class TurnEntry:
    """One slot in the turn order."""
    kind: TurnEntryKind
    id: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "id": self.id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TurnEntry":
        return cls(kind=TurnEntryKind(data["kind"]), id=data["id"])


@dataclass
class LogEntry:
    """A user-visible line in the combat log."""
    id: str
    round: int
    type: LogEntryType
    action: str
    details: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "round": self.round,
            "type": self.type.value,
            "action": self.action,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEntry":
        timestamp = data.get("timestamp")
        return cls(
            id=data["id"],
            round=data.get("round", 0),
            type=LogEntryType(data.get("type", "system")),
            action=data.get("action", ""),
            details=data.get("details", ""),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(),
        )


@dataclass
class Battlefield:
    """Extent of the map in distance units."""
    width: int = 2000
    height: int = 2000
    grid_size: int = 5

    def to_dict(self) -> dict[str, Any]:
        return {"width": self.width, "height": self.height, "grid_size": self.grid_size}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Battlefield":
        return cls(
            width=data.get("width", 2000),
            height=data.get("height", 2000),
            grid_size=data.get("grid_size", 5),
        )


@dataclass
class Environment:
    """Flavor conditions of the battlefield."""
    name: str = "Fiery Plains"
    visibility: str = "clear"
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "visibility": self.visibility, "notes": self.notes}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Environment":
        return cls(
            name=data.get("name", "Fiery Plains"),
            visibility=data.get("visibility", "clear"),
            notes=data.get("notes", ""),
        )


@dataclass
class EncounterSnapshot:
    """The aggregate root: everything the engine knows about one encounter."""
    id: str = field(default_factory=new_id)
    name: str = "New Encounter"
    round: int = 0
    phase: EncounterPhase = EncounterPhase.SETUP
    has_been_saved: bool = False
    vehicles: list[Vehicle] = field(default_factory=list)
    creatures: list[Creature] = field(default_factory=list)
    crew_assignments: list[CrewAssignment] = field(default_factory=list)
    turn_order: list[TurnEntry] = field(default_factory=list)
    current_turn_index: int = 0
    is_chase: bool = False
    scale: ScaleName = ScaleName.TACTICAL
    battlefield: Battlefield = field(default_factory=Battlefield)
    elevation_zones: list[ElevationZone] = field(default_factory=list)
    environment: Environment = field(default_factory=Environment)
    log: list[LogEntry] = field(default_factory=list)
    auto_roll_complications: bool = False
    active_complication: Optional[ActiveComplication] = None

    @property
    def in_combat(self) -> bool:
        return self.phase == EncounterPhase.COMBAT

    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        for vehicle in self.vehicles:
            if vehicle.id == vehicle_id:
                return vehicle
        return None

    def get_creature(self, creature_id: str) -> Optional[Creature]:
        for creature in self.creatures:
            if creature.id == creature_id:
                return creature
        return None

    def get_assignment(self, creature_id: str) -> Optional[CrewAssignment]:
        for assignment in self.crew_assignments:
            if assignment.creature_id == creature_id:
                return assignment
        return None

    def crew_for_vehicle(self, vehicle_id: str) -> list[CrewAssignment]:
        return [a for a in self.crew_assignments if a.vehicle_id == vehicle_id]

    def is_crewed(self, creature_id: str) -> bool:
        return self.get_assignment(creature_id) is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "round": self.round,
            "phase": self.phase.value,
            "has_been_saved": self.has_been_saved,
            "vehicles": [v.to_dict() for v in self.vehicles],
            "creatures": [c.to_dict() for c in self.creatures],
            "crew_assignments": [a.to_dict() for a in self.crew_assignments],
            "turn_order": [e.to_dict() for e in self.turn_order],
            "current_turn_index": self.current_turn_index,
            "is_chase": self.is_chase,
            "scale": self.scale.value,
            "battlefield": self.battlefield.to_dict(),
            "elevation_zones": [z.to_dict() for z in self.elevation_zones],
            "environment": self.environment.to_dict(),
            "log": [entry.to_dict() for entry in self.log],
            "auto_roll_complications": self.auto_roll_complications,
            "active_complication": (
                self.active_complication.to_dict() if self.active_complication else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EncounterSnapshot":
        """Field-level load; structural repair happens in migrate_snapshot."""
        active = data.get("active_complication")
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", "New Encounter"),
            round=data.get("round", 0),
            phase=EncounterPhase(data.get("phase", "setup")),
            has_been_saved=data.get("has_been_saved", False),
            vehicles=[Vehicle.from_dict(v) for v in data.get("vehicles", [])],
            creatures=[Creature.from_dict(c) for c in data.get("creatures", [])],
            crew_assignments=[CrewAssignment.from_dict(a) for a in data.get("crew_assignments", [])],
            turn_order=[TurnEntry.from_dict(e) for e in data.get("turn_order", [])],
            current_turn_index=data.get("current_turn_index", 0),
            is_chase=data.get("is_chase", False),
            scale=ScaleName(data.get("scale", "tactical")),
            battlefield=Battlefield.from_dict(data.get("battlefield", {})),
            elevation_zones=[ElevationZone.from_dict(z) for z in data.get("elevation_zones", [])],
            environment=Environment.from_dict(data.get("environment", {})),
            log=[LogEntry.from_dict(entry) for entry in data.get("log", [])],
            auto_roll_complications=data.get("auto_roll_complications", False),
            active_complication=ActiveComplication.from_dict(active) if active else None,
        )
