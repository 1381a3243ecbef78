"""
Closed-form approximations of skills the game grants implicitly.

Neither effect is listed in the skill data: foot conservation is an
acceleration bonus at the start of the final leg for competitors with high
power, the stamina duel a target speed bonus in long races once the
competitor reaches last spurt speed. Both are injected as synthetic skills by
builder hooks, computed from stats that already include green skill bonuses.
"""

from __future__ import annotations

import math
from typing import Callable, List

from .constants import (
    FOOT_CONSERVATION_BASE,
    FOOT_CONSERVATION_COEF,
    STAMINA_DUEL_COEF,
    STAT_OVERCAP_THRESHOLD,
    UNREACHABLE_POSITION,
)
from .course import phase_start
from .data_models import CompetitorParameters, CourseData, DistanceType, RaceParameters, Strategy
from .region import Region, RegionList
from .sample_policy import ImmediatePolicy
from .skills import Perspective, SkillData, SkillEffect, SkillRarity, SkillType, always

FOOT_CONSERVATION_ID = "asitame"
STAMINA_DUEL_ID = "staminasyoubu"

SkillDataHook = Callable[[List[SkillData], CompetitorParameters, CourseData, RaceParameters], None]


def foot_conservation_modifier(power: float, strategy: Strategy, distance_type: DistanceType) -> float:
    coef = FOOT_CONSERVATION_COEF[DistanceType.parse(distance_type)][Strategy.parse(strategy)]
    return FOOT_CONSERVATION_BASE * math.sqrt(power - STAT_OVERCAP_THRESHOLD) * coef


def stamina_duel_distance_factor(distance: float) -> float:
    if distance < 2101:
        return 0.0
    if distance < 2201:
        return 0.5
    if distance < 2401:
        return 1.0
    if distance < 2601:
        return 1.2
    return 1.5


def stamina_duel_modifier(stamina: float, distance: float) -> float:
    return math.sqrt(stamina - STAT_OVERCAP_THRESHOLD) * STAMINA_DUEL_COEF * stamina_duel_distance_factor(distance)


def with_stat_bonuses(base: float, skill_data: List[SkillData], stat: SkillType) -> float:
    """``base`` plus the bonuses of every reachable skill raising ``stat``."""
    total = base
    for sd in skill_data:
        bonus = next((ef for ef in sd.effects if ef.type == stat), None)
        if bonus is not None and sd.regions and sd.regions[0].start < UNREACHABLE_POSITION:
            total += bonus.modifier
    return total


def _final_leg(course: CourseData) -> RegionList:
    return RegionList([Region(phase_start(course.distance, 2), course.distance)])


def foot_conservation_hook(displayed_power: float) -> SkillDataHook:
    # the game uses displayed power (motivation applied, no overcap), so it is fixed when the hook is created
    def hook(skill_data: List[SkillData], horse: CompetitorParameters, course: CourseData, race: RaceParameters) -> None:
        power = with_stat_bonuses(displayed_power, skill_data, SkillType.POWER_UP)
        if power <= STAT_OVERCAP_THRESHOLD:
            return
        skill_data.append(
            SkillData(
                skill_id=FOOT_CONSERVATION_ID,
                perspective=Perspective.SELF,
                rarity=SkillRarity.WHITE,
                sample_policy=ImmediatePolicy,
                regions=_final_leg(course),
                extra_condition=always,
                effects=[
                    SkillEffect(
                        type=SkillType.ACCEL,
                        # undo the distance scaling the solver applies to every duration
                        base_duration=3.0 / (course.distance / 1000.0),
                        modifier=foot_conservation_modifier(power, horse.strategy, course.distance_type),
                    )
                ],
            )
        )

    return hook


def stamina_duel_hook(skill_data: List[SkillData], horse: CompetitorParameters, course: CourseData, race: RaceParameters) -> None:
    stamina = with_stat_bonuses(horse.raw_stamina, skill_data, SkillType.STAMINA_UP)
    if stamina <= STAT_OVERCAP_THRESHOLD:
        return
    skill_data.append(
        SkillData(
            skill_id=STAMINA_DUEL_ID,
            perspective=Perspective.SELF,
            rarity=SkillRarity.WHITE,
            sample_policy=ImmediatePolicy,
            regions=_final_leg(course),
            extra_condition=lambda state: state.current_speed >= state.last_spurt_speed,
            effects=[
                SkillEffect(
                    type=SkillType.TARGET_SPEED,
                    base_duration=9999.0,
                    modifier=stamina_duel_modifier(stamina, course.distance),
                )
            ],
        )
    )
