"""
Engagement scales for chases that span miles down to point-blank range.

Each scale sets how long a round lasts and how far a vehicle's speed takes
it in one round.
"""

import math
from dataclasses import dataclass

from src.data_models import ScaleName


FEET_PER_MILE = 5280


@dataclass(frozen=True)
class ScaleConfig:
    """Timing and movement rules of one scale."""
    name: ScaleName
    display_name: str
    min_distance: float
    max_distance: float
    round_duration: int  # seconds
    round_duration_display: str
    movement_unit: int
    speed_multiplier: int  # vehicle speed x multiplier = feet per round
    available_actions: tuple[str, ...]


SCALES: dict[ScaleName, ScaleConfig] = {
    ScaleName.STRATEGIC: ScaleConfig(
        name=ScaleName.STRATEGIC,
        display_name="Strategic",
        min_distance=FEET_PER_MILE,
        max_distance=math.inf,
        round_duration=600,
        round_duration_display="10 minutes",
        movement_unit=FEET_PER_MILE,
        speed_multiplier=100,
        available_actions=("navigate", "spot", "hide", "signal", "change_course", "forced_march"),
    ),
    ScaleName.APPROACH: ScaleConfig(
        name=ScaleName.APPROACH,
        display_name="Approach",
        min_distance=1000,
        max_distance=FEET_PER_MILE,
        round_duration=60,
        round_duration_display="1 minute",
        movement_unit=100,
        speed_multiplier=10,
        available_actions=("drive", "dash", "maneuver", "ready", "ranged_attack", "signal"),
    ),
    ScaleName.TACTICAL: ScaleConfig(
        name=ScaleName.TACTICAL,
        display_name="Tactical",
        min_distance=100,
        max_distance=1000,
        round_duration=6,
        round_duration_display="6 seconds",
        movement_unit=5,
        speed_multiplier=3,
        available_actions=("all",),
    ),
    ScaleName.POINT_BLANK: ScaleConfig(
        name=ScaleName.POINT_BLANK,
        display_name="Point-Blank",
        min_distance=0,
        max_distance=100,
        round_duration=6,
        round_duration_display="6 seconds",
        movement_unit=5,
        speed_multiplier=1,
        available_actions=("all", "board", "ram", "jump", "melee", "grapple"),
    ),
}


def get_scale_config(scale: ScaleName) -> ScaleConfig:
    return SCALES[scale]


def get_scale_for_distance(distance: float) -> ScaleName:
    """The scale whose band contains a distance."""
    if distance >= SCALES[ScaleName.STRATEGIC].min_distance:
        return ScaleName.STRATEGIC
    if distance >= SCALES[ScaleName.APPROACH].min_distance:
        return ScaleName.APPROACH
    if distance >= SCALES[ScaleName.TACTICAL].min_distance:
        return ScaleName.TACTICAL
    return ScaleName.POINT_BLANK


def should_transition_scale(current: ScaleName, distance: float) -> tuple[bool, ScaleName]:
    """Whether a new distance belongs to another scale, and which one."""
    suggested = get_scale_for_distance(distance)
    return suggested != current, suggested


def is_action_available(action: str, scale: ScaleName) -> bool:
    actions = SCALES[scale].available_actions
    return "all" in actions or action in actions


def calculate_movement_per_round(speed: int, scale: ScaleName) -> int:
    return speed * SCALES[scale].speed_multiplier


def calculate_closing_speed(pursuer_speed: int, quarry_speed: int, scale: ScaleName) -> int:
    """Positive when the pursuer gains, negative when the quarry pulls away."""
    return (pursuer_speed - quarry_speed) * SCALES[scale].speed_multiplier


def calculate_new_distance(
    distance: float, pursuer_speed: int, quarry_speed: int, scale: ScaleName
) -> float:
    return max(0.0, distance - calculate_closing_speed(pursuer_speed, quarry_speed, scale))


def format_distance(distance_feet: float) -> str:
    if distance_feet >= FEET_PER_MILE:
        return f"{distance_feet / FEET_PER_MILE:.1f} miles"
    return f"{round(distance_feet)} ft"
