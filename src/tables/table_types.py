"""
Table type definitions for the encounter tracker.

Random tables map an inclusive roll range to an entry. Mishaps and
battlefield complications both live in tables of this shape.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, Protocol, TypeVar

from src.data_models import DiceRoller


class DieType(str, Enum):
    """Standard die types for table rolls."""
    D4 = "d4"
    D6 = "d6"
    D8 = "d8"
    D10 = "d10"
    D12 = "d12"
    D20 = "d20"
    D100 = "d100"

    @property
    def sides(self) -> int:
        return int(self.value[1:])


class RangedEntry(Protocol):
    roll_min: int
    roll_max: int


EntryT = TypeVar("EntryT", bound=RangedEntry)


def matches_roll(entry: RangedEntry, roll: int) -> bool:
    """Check if a roll value falls within an entry's range."""
    return entry.roll_min <= roll <= entry.roll_max


def format_roll_range(entry: RangedEntry) -> str:
    """Display form of an entry's range, e.g. '2-4' or '20'."""
    if entry.roll_min == entry.roll_max:
        return str(entry.roll_min)
    return f"{entry.roll_min}-{entry.roll_max}"


@dataclass
class RollTable(Generic[EntryT]):
    """
    A table for random determination.

    Rolls outside the die's range are clamped. Rolls that land in a gap of
    the table (or above its cutoff) resolve to no entry.
    """
    table_id: str
    name: str
    die_type: DieType = DieType.D20
    entries: list[EntryT] = field(default_factory=list)
    description: str = ""

    def get_min_roll(self) -> int:
        return 1

    def get_max_roll(self) -> int:
        return self.die_type.sides

    def clamp(self, roll: int) -> int:
        return max(self.get_min_roll(), min(self.get_max_roll(), roll))

    def lookup(self, roll: int) -> Optional[EntryT]:
        """Find the entry for a roll, or None when the roll has no entry."""
        roll = self.clamp(roll)
        for entry in self.entries:
            if matches_roll(entry, roll):
                return entry
        return None

    def roll(self, dice: DiceRoller, reason: str = "table roll") -> tuple[int, Optional[EntryT]]:
        """
        Roll on this table and return the result.

        Returns:
            Tuple of (roll_total, matching_entry or None)
        """
        total = dice.roll_die(self.die_type.sides, reason).total
        return total, self.lookup(total)
