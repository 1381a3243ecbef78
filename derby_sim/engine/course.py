from __future__ import annotations

import math
from typing import Sequence

from .constants import (
    COURSE_SECTIONS,
    COURSE_SYNERGY_STAT_CAP,
    COURSE_SYNERGY_STEP,
    COURSE_SYNERGY_TIER,
)
from .data_models import CompetitorParameters, CourseData, Phase, ThresholdStat

# (numerator, denominator) pairs; multiplying before dividing keeps D/6 exact.
_PHASE_START_FRACTION = ((0, 1), (1, 6), (2, 3), (5, 6))
_PHASE_END_FRACTION = ((1, 6), (2, 3), (5, 6), (1, 1))


def base_speed(course: CourseData) -> float:
    """Course baseline speed: 20 m/s at 2000m, one less per extra kilometre."""
    return 20.0 - (course.distance - 2000.0) / 1000.0


def phase_start(distance: float, phase: int) -> float:
    phase = Phase.parse(phase)
    numerator, denominator = _PHASE_START_FRACTION[phase]
    return distance * numerator / denominator


def phase_end(distance: float, phase: int) -> float:
    phase = Phase.parse(phase)
    numerator, denominator = _PHASE_END_FRACTION[phase]
    return distance * numerator / denominator


def section_length(course: CourseData) -> float:
    return course.distance / COURSE_SECTIONS


def is_sorted_by_start(segments: Sequence) -> bool:
    """True when every segment starts strictly after the previous one."""
    previous = -1.0
    for segment in segments:
        if not segment.start > previous:
            return False
        previous = segment.start
    return True


def course_speed_modifier(course: CourseData, stats: CompetitorParameters) -> float:
    """
    Speed multiplier granted by the course's required-stat thresholds.

    Each listed stat earns 5% per satisfied 300-point tier (stats are capped
    at 901 for this purpose); the total is averaged over the listed stats.
    """
    values = {
        ThresholdStat.SPEED: stats.speed,
        ThresholdStat.STAMINA: stats.stamina,
        ThresholdStat.POWER: stats.power,
        ThresholdStat.GUTS: stats.guts,
        ThresholdStat.WISDOM: stats.wisdom,
    }
    total = 0.0
    for stat in course.course_set_status:
        value = min(values[stat], COURSE_SYNERGY_STAT_CAP)
        total += (1 + math.floor(value / COURSE_SYNERGY_TIER)) * COURSE_SYNERGY_STEP
    return 1.0 + total / max(len(course.course_set_status), 1)
