from __future__ import annotations

import math
from typing import List, Protocol, Tuple

from .constants import (
    GROUND_HP_MOD,
    LAST_SPURT_MARGIN,
    LAST_SPURT_SPEED_STEP,
    PACE_DOWN_HP_MOD,
    STRATEGY_HP_MOD,
)
from .course import base_speed
from .data_models import CompetitorParameters, CourseData, GroundCondition
from .rng import RandomSource


class HpPolicy(Protocol):
    def init(self, horse: CompetitorParameters) -> None: ...

    def tick(self, state, dt: float) -> None: ...

    def has_remaining_hp(self) -> bool: ...

    def recover(self, modifier: float) -> None: ...

    def get_last_spurt_pair(self, state, max_speed: float, base_target_speed_late: float) -> Tuple[float, float]: ...


class NoopHpPolicy:
    """HP that never runs out; used for pacers."""

    def init(self, horse: CompetitorParameters) -> None:
        pass

    def tick(self, state, dt: float) -> None:
        pass

    def has_remaining_hp(self) -> bool:
        return True

    def recover(self, modifier: float) -> None:
        pass

    def get_last_spurt_pair(self, state, max_speed: float, base_target_speed_late: float) -> Tuple[float, float]:
        return (-1.0, max_speed)


class _LastLeg:
    """Minimal state used to price HP consumption during the last spurt."""

    phase = 2
    is_pace_down = False


class GameHpPolicy:
    """
    HP consumption following the game's formulas.

    Consumption per second is ``20 * (v - baseSpeed + 12)^2 / 144`` scaled by
    the ground condition, by 0.6 while pacing down and, from phase 2 on, by a
    guts modifier. The last-spurt plan either spurts at full speed from the
    start of phase 2 or, when HP is short, walks down the speed in 0.1 steps
    and accepts each candidate with a wisdom-dependent probability.
    """

    def __init__(self, course: CourseData, ground: GroundCondition, rng: RandomSource) -> None:
        self.distance = course.distance
        self.base_speed = base_speed(course)
        self.ground_modifier = GROUND_HP_MOD[course.surface][GroundCondition.parse(ground)]
        self.rng = rng
        self.max_hp = 0.0
        self.hp = 0.0
        self.guts_modifier = 1.0
        self.subpar_accept_chance = 0

    def init(self, horse: CompetitorParameters) -> None:
        self.max_hp = 0.8 * STRATEGY_HP_MOD[horse.strategy] * horse.stamina + self.distance
        self.hp = self.max_hp
        self.guts_modifier = 1.0 + 200.0 / math.sqrt(600.0 * horse.guts)
        self.subpar_accept_chance = round((15.0 + 0.05 * horse.wisdom) * 1000)

    def status_modifier(self, state) -> float:
        return PACE_DOWN_HP_MOD if state.is_pace_down else 1.0

    def hp_per_second(self, state, velocity: float) -> float:
        guts = self.guts_modifier if state.phase >= 2 else 1.0
        return (
            20.0
            * (velocity - self.base_speed + 12.0) ** 2
            / 144.0
            * self.status_modifier(state)
            * self.ground_modifier
            * guts
        )

    def tick(self, state, dt: float) -> None:
        self.hp -= self.hp_per_second(state, state.current_speed) * dt

    def has_remaining_hp(self) -> bool:
        return self.hp > 0.0

    def hp_ratio_remaining(self) -> float:
        if self.max_hp <= 0.0:
            return 0.0
        return max(0.0, self.hp / self.max_hp)

    def recover(self, modifier: float) -> None:
        self.hp = min(self.max_hp, self.hp + self.max_hp * modifier)

    def get_last_spurt_pair(self, state, max_speed: float, base_target_speed_late: float) -> Tuple[float, float]:
        last_leg = _LastLeg()
        remaining = self.distance - state.pos
        if self.hp >= self.hp_per_second(last_leg, max_speed) * (remaining - LAST_SPURT_MARGIN) / max_speed:
            return (-1.0, max_speed)

        spurt_distance_budget = self.distance - LAST_SPURT_MARGIN - state.pos
        cruise_cost = self.hp_per_second(last_leg, base_target_speed_late)
        candidates: List[Tuple[float, float]] = []
        speed = max_speed - LAST_SPURT_SPEED_STEP
        while speed >= base_target_speed_late:
            spurt_cost = self.hp_per_second(last_leg, speed)
            denominator = base_target_speed_late * spurt_cost - cruise_cost * speed
            if denominator > 0.0:
                affordable = (base_target_speed_late * self.hp - cruise_cost * spurt_distance_budget) / denominator
            else:
                affordable = spurt_distance_budget / speed
            duration = min(spurt_distance_budget / speed, max(0.0, affordable))
            candidates.append((self.distance - duration * speed, speed))
            speed -= LAST_SPURT_SPEED_STEP

        if not candidates:
            return (self.distance, base_target_speed_late)

        def finish_time(candidate: Tuple[float, float]) -> float:
            transition, spurt_speed = candidate
            return (transition - state.pos) / base_target_speed_late + (self.distance - transition) / spurt_speed

        candidates.sort(key=finish_time)
        for candidate in candidates:
            if self.rng.uniform(100000) <= self.subpar_accept_chance:
                return candidate
        return candidates[-1]
