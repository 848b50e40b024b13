"""
Arc and elevation aware targeting between positioned combatants.

Everything here is a pure function of its arguments. Angles are degrees
clockwise from north on a map whose y axis grows southward.

Cover rules:
- A station that is not visible from the incoming arc has full cover.
- Otherwise the station's own cover applies, one step better when the
  target holds high ground and one step worse when the observer does.
- Full cover means no line of sight.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

from src.data_models import (
    ALL_ARCS,
    Arc,
    CoverType,
    Creature,
    ElevationZone,
    EncounterSnapshot,
    Position,
    Station,
    Vehicle,
    WeaponRange,
)


logger = logging.getLogger(__name__)


COVER_ORDER: tuple[CoverType, ...] = (
    CoverType.NONE,
    CoverType.HALF,
    CoverType.THREE_QUARTERS,
    CoverType.FULL,
)

# AC bonus granted by cover; full cover cannot be targeted at all
COVER_AC_BONUS: dict[CoverType, Optional[int]] = {
    CoverType.NONE: 0,
    CoverType.HALF: 2,
    CoverType.THREE_QUARTERS: 5,
    CoverType.FULL: None,
}

ARC_DISPLAY_NAMES = {
    Arc.FRONT: "Bow",
    Arc.REAR: "Stern",
    Arc.LEFT: "Port",
    Arc.RIGHT: "Starboard",
}


@dataclass
class TargetingConfig:
    """Tunable constants of the targeting rules."""
    high_ground_min_difference: int = 10   # elevation gap that counts as high ground
    elevation_attack_rate: float = 0.2     # attack modifier per unit of elevation gap
    elevation_attack_cap: int = 2
    range_tier_size: int = 10              # elevation units per range bonus tier
    range_bonus_per_tier: float = 0.1      # fraction of base range added per tier


DEFAULT_TARGETING_CONFIG = TargetingConfig()


@dataclass
class CombatantLocation:
    """Where a combatant is, and which station (if any) it occupies."""
    position: Position
    facing: float = 0.0
    station: Optional[Station] = None
    label: str = ""

    @classmethod
    def at_station(cls, vehicle: Vehicle, station_id: str) -> "CombatantLocation":
        station = vehicle.template.get_station(station_id)
        label = f"{vehicle.name} ({station.name})" if station else vehicle.name
        return cls(position=vehicle.position, facing=vehicle.facing, station=station, label=label)

    @classmethod
    def on_foot(cls, creature: Creature) -> "CombatantLocation":
        return cls(position=creature.position or Position(), label=creature.name)


@dataclass
class TargetingResult:
    """Everything an attacker needs to know about one target."""
    distance: float
    arc: Arc
    cover: CoverType
    line_of_sight: bool
    attack_modifier: int
    cover_ac_bonus: Optional[int]
    observer_elevation: int = 0
    target_elevation: int = 0
    details: list[str] = field(default_factory=list)

    @property
    def elevation_difference(self) -> int:
        return self.observer_elevation - self.target_elevation


# =============================================================================
# GEOMETRY
# =============================================================================


def calculate_distance(a: Position, b: Position) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def calculate_angle(origin: Position, toward: Position) -> float:
    """Compass bearing from origin toward a point, in [0, 360)."""
    degrees = math.degrees(math.atan2(toward.x - origin.x, -(toward.y - origin.y)))
    return degrees % 360


def midpoint(a: Position, b: Position) -> Position:
    return Position(x=(a.x + b.x) / 2, y=(a.y + b.y) / 2)


def arc_for_relative_angle(relative: float) -> Arc:
    relative %= 360
    if relative >= 315 or relative < 45:
        return Arc.FRONT
    if relative < 135:
        return Arc.RIGHT
    if relative < 225:
        return Arc.REAR
    return Arc.LEFT


def get_attack_arc(observer: Position, target: Position, target_facing: float) -> Arc:
    """Arc of the target that faces the observer."""
    bearing = calculate_angle(target, midpoint(observer, target))
    return arc_for_relative_angle(bearing - target_facing)


def get_arc_display_name(arc: Arc) -> str:
    return ARC_DISPLAY_NAMES[arc]


# =============================================================================
# ELEVATION
# =============================================================================


def elevation_at(position: Position, zones: list[ElevationZone]) -> int:
    """Height of the tallest zone containing a position, 0 on open ground."""
    heights = [zone.elevation for zone in zones if zone.contains(position)]
    return max(heights, default=0)


def elevation_attack_modifier(
    difference: float, config: TargetingConfig = DEFAULT_TARGETING_CONFIG
) -> int:
    """Attack roll modifier for attacking downhill (positive) or uphill (negative)."""
    raw = int(difference * config.elevation_attack_rate)
    return max(-config.elevation_attack_cap, min(config.elevation_attack_cap, raw))


def has_high_ground(
    own_elevation: float, other_elevation: float, config: TargetingConfig = DEFAULT_TARGETING_CONFIG
) -> bool:
    return own_elevation - other_elevation >= config.high_ground_min_difference


def shift_cover(cover: CoverType, steps: int) -> CoverType:
    index = COVER_ORDER.index(cover) + steps
    return COVER_ORDER[max(0, min(len(COVER_ORDER) - 1, index))]


# =============================================================================
# COVER
# =============================================================================


def base_cover(station: Optional[Station], arc: Arc) -> CoverType:
    """Cover of a station against attacks from an arc, before elevation."""
    if station is None:
        return CoverType.NONE
    if arc not in station.visible_from_arcs:
        return CoverType.FULL
    return station.cover


def effective_cover(
    station: Optional[Station],
    arc: Arc,
    observer_elevation: float = 0,
    target_elevation: float = 0,
    config: TargetingConfig = DEFAULT_TARGETING_CONFIG,
) -> CoverType:
    cover = base_cover(station, arc)
    if station is not None and arc not in station.visible_from_arcs:
        return cover
    if has_high_ground(target_elevation, observer_elevation, config):
        cover = shift_cover(cover, 1)
    elif has_high_ground(observer_elevation, target_elevation, config):
        cover = shift_cover(cover, -1)
    return cover


def get_cover_ac_bonus(cover: CoverType) -> Optional[int]:
    return COVER_AC_BONUS[cover]


# =============================================================================
# WEAPON RANGE
# =============================================================================


def extended_weapon_range(
    weapon_range: WeaponRange,
    elevation_advantage: float = 0,
    config: TargetingConfig = DEFAULT_TARGETING_CONFIG,
) -> int:
    """Range of a weapon fired from above; melee reach never grows."""
    if weapon_range.is_melee or elevation_advantage <= 0:
        return weapon_range.distance
    tiers = int(elevation_advantage // config.range_tier_size)
    return int(weapon_range.distance * (1 + tiers * config.range_bonus_per_tier))


def is_in_range(
    weapon_range: WeaponRange,
    distance: float,
    elevation_advantage: float = 0,
    config: TargetingConfig = DEFAULT_TARGETING_CONFIG,
) -> bool:
    return distance <= extended_weapon_range(weapon_range, elevation_advantage, config)


def _station_has_living_crew(snapshot: EncounterSnapshot, vehicle_id: str, station_id: str) -> bool:
    for assignment in snapshot.crew_for_vehicle(vehicle_id):
        if assignment.station_id != station_id:
            continue
        creature = snapshot.get_creature(assignment.creature_id)
        if creature is not None and creature.current_hp > 0:
            return True
    return False


def max_weapon_range_by_arc(
    snapshot: EncounterSnapshot,
    vehicle: Vehicle,
    elevation_advantage: float = 0,
    config: TargetingConfig = DEFAULT_TARGETING_CONFIG,
) -> dict[Arc, int]:
    """
    Longest reach of a vehicle's weapons into each arc.

    Only weapons whose station can see the arc and holds at least one living
    crew member count. Arcs nothing can reach map to 0.
    """
    ranges = {arc: 0 for arc in ALL_ARCS}
    for weapon in vehicle.weapons:
        if weapon.station_id is None:
            continue
        station = vehicle.template.get_station(weapon.station_id)
        if station is None:
            continue
        if not _station_has_living_crew(snapshot, vehicle.id, station.id):
            continue
        reach = extended_weapon_range(weapon.range_spec, elevation_advantage, config)
        for arc in station.visible_from_arcs:
            ranges[arc] = max(ranges[arc], reach)
    return ranges


# =============================================================================
# TARGETING
# =============================================================================


def calculate_targeting(
    observer: CombatantLocation,
    target: CombatantLocation,
    zones: Optional[list[ElevationZone]] = None,
    config: TargetingConfig = DEFAULT_TARGETING_CONFIG,
) -> TargetingResult:
    """
    Distance, arc, cover, line of sight and attack modifier from observer to target.

    Args:
        observer: The attacker's location (usually a vehicle station)
        target: The target's location (a vehicle station or a creature on foot)
        zones: Elevation zones of the battlefield
        config: Targeting constants

    Returns:
        TargetingResult
    """
    zones = zones or []
    distance = calculate_distance(observer.position, target.position)
    arc = get_attack_arc(observer.position, target.position, target.facing)
    observer_elevation = elevation_at(observer.position, zones)
    target_elevation = elevation_at(target.position, zones)
    cover = effective_cover(target.station, arc, observer_elevation, target_elevation, config)

    line_of_sight = cover != CoverType.FULL
    if observer.station is not None and not observer.station.can_attack_out:
        line_of_sight = False

    difference = observer_elevation - target_elevation
    modifier = elevation_attack_modifier(difference, config)

    details = [f"{get_arc_display_name(arc)} arc", f"{cover.value} cover"]
    if modifier:
        details.append(f"Elevation {modifier:+d}")
    if not line_of_sight:
        details.append("No line of sight")

    return TargetingResult(
        distance=distance,
        arc=arc,
        cover=cover,
        line_of_sight=line_of_sight,
        attack_modifier=modifier,
        cover_ac_bonus=get_cover_ac_bonus(cover),
        observer_elevation=observer_elevation,
        target_elevation=target_elevation,
        details=details,
    )


def calculate_station_targeting(
    snapshot: EncounterSnapshot,
    observer_vehicle_id: str,
    observer_station_id: str,
    target_id: str,
    target_station_id: Optional[str] = None,
    config: TargetingConfig = DEFAULT_TARGETING_CONFIG,
) -> Optional[TargetingResult]:
    """
    Targeting from a crewed station to a vehicle station or a creature on foot.

    Returns None when an identity is unknown or the target creature has no
    battlefield position.
    """
    observer_vehicle = snapshot.get_vehicle(observer_vehicle_id)
    if observer_vehicle is None:
        return None
    observer = CombatantLocation.at_station(observer_vehicle, observer_station_id)

    target_vehicle = snapshot.get_vehicle(target_id)
    if target_vehicle is not None:
        if target_vehicle.id == observer_vehicle.id:
            # Same vehicle: only the target station's own cover applies
            station = target_vehicle.template.get_station(target_station_id or "")
            cover = station.cover if station else CoverType.NONE
            return TargetingResult(
                distance=0.0,
                arc=Arc.FRONT,
                cover=cover,
                line_of_sight=cover != CoverType.FULL,
                attack_modifier=0,
                cover_ac_bonus=get_cover_ac_bonus(cover),
                details=["Same vehicle"],
            )
        target = CombatantLocation.at_station(target_vehicle, target_station_id or "")
    else:
        creature = snapshot.get_creature(target_id)
        if creature is None or creature.position is None:
            logger.debug(f"No targetable entity {target_id}")
            return None
        target = CombatantLocation.on_foot(creature)

    return calculate_targeting(observer, target, snapshot.elevation_zones, config)
