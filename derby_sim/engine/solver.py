from __future__ import annotations

import dataclasses
import logging
import math
from typing import Callable, List, Optional, Sequence, Set

from .constants import (
    ACCEL_DISTANCE_APTITUDE_MOD,
    ACCEL_STRATEGY_PHASE_COEF,
    ACCEL_SURFACE_APTITUDE_MOD,
    BASE_ACCEL,
    DEPLETED_DECELERATION,
    MAX_START_DELAY,
    PACE_DOWN_DECELERATION,
    PACE_DOWN_SPEED_COEF,
    PACE_DOWN_SPEED_COEF_MIDDLE,
    PHASE_DECELERATION,
    POSITION_KEEP_COOLDOWN,
    POSITION_KEEP_MAX_THRESHOLD,
    POSITION_KEEP_MIN_THRESHOLD,
    POSITION_KEEP_SECTIONS,
    SPEED_DISTANCE_APTITUDE_MOD,
    SPEED_STRATEGY_PHASE_COEF,
    START_DASH_ACCEL_BONUS,
    START_DASH_TARGET_FACTOR,
    START_SPEED,
    UNBOUNDED_SPEED,
    UPHILL_BASE_ACCEL,
)
from .course import base_speed, is_sorted_by_start, phase_start, section_length
from .data_models import CompetitorParameters, CourseData, Phase, Strategy
from .hp_policy import HpPolicy, NoopHpPolicy
from .rng import RaceRng, RandomSource
from .skills import ActiveSkill, PendingSkill, Perspective, SkillRarity, SkillType
from .timing import CompensatedAccumulator, Timer

logger = logging.getLogger(__name__)

SkillCallback = Callable[["RaceSolver", str, Optional[Perspective]], None]


def _noop_callback(solver: "RaceSolver", skill_id: str, perspective: Optional[Perspective]) -> None:
    pass


# --- Per-competitor formulas ---------------------------------------------


def base_target_speed(horse: CompetitorParameters, course: CourseData, phase: int) -> float:
    speed = base_speed(course) * SPEED_STRATEGY_PHASE_COEF[horse.strategy][phase]
    if phase == 2:
        speed += math.sqrt(500.0 * horse.speed) * SPEED_DISTANCE_APTITUDE_MOD[horse.distance_aptitude] * 0.002
    return speed


def last_spurt_speed(horse: CompetitorParameters, course: CourseData, legacy_mode: bool = False) -> float:
    speed = (base_target_speed(horse, course, 2) + 0.01 * base_speed(course)) * 1.05 + math.sqrt(
        500.0 * horse.speed
    ) * SPEED_DISTANCE_APTITUDE_MOD[horse.distance_aptitude] * 0.002
    if not legacy_mode:
        speed += math.pow(450.0 * horse.guts, 0.597) * 0.0001
    return speed


def base_accel(base: float, horse: CompetitorParameters, phase: int) -> float:
    return (
        base
        * math.sqrt(500.0 * horse.power)
        * ACCEL_STRATEGY_PHASE_COEF[horse.strategy][phase]
        * ACCEL_SURFACE_APTITUDE_MOD[horse.surface_aptitude]
        * ACCEL_DISTANCE_APTITUDE_MOD[horse.distance_aptitude]
    )


def position_keep_course_factor(distance: float) -> float:
    return 0.0008 * (distance - 1000.0) + 1.0


def position_keep_min_threshold(strategy: Strategy, distance: float) -> float:
    base = POSITION_KEEP_MIN_THRESHOLD.get(strategy, 0.0)
    # The pace chaser minimum does not scale with the course.
    if strategy is Strategy.PACE_CHASER:
        return base
    return base * position_keep_course_factor(distance)


def position_keep_max_threshold(strategy: Strategy, distance: float) -> float:
    return POSITION_KEEP_MAX_THRESHOLD.get(strategy, 0.0) * position_keep_course_factor(distance)


@dataclasses.dataclass
class SkillModifiers:
    """Net effect of all active skills, by kind."""

    target_speed: CompensatedAccumulator = dataclasses.field(default_factory=CompensatedAccumulator)
    current_speed: CompensatedAccumulator = dataclasses.field(default_factory=CompensatedAccumulator)
    accel: CompensatedAccumulator = dataclasses.field(default_factory=CompensatedAccumulator)
    one_frame_accel: float = 0.0
    special_skill_duration_scaling: float = 1.0


class RaceSolver:
    """
    Frame-by-frame simulation of one competitor over one race.

    A solver is single use: construct it, call ``step(dt)`` until ``pos``
    reaches the course distance, then ``cleanup()``. When a pacer solver is
    supplied it is owned by this solver and stepped before this solver reads
    its position in the same tick.
    """

    def __init__(
        self,
        horse: CompetitorParameters,
        course: CourseData,
        rng: RandomSource,
        skills: Sequence[PendingSkill],
        hp: Optional[HpPolicy] = None,
        pacer: Optional["RaceSolver"] = None,
        on_skill_activate: Optional[SkillCallback] = None,
        on_skill_deactivate: Optional[SkillCallback] = None,
        legacy_mode: bool = False,
    ) -> None:
        # skills can raise stats, so never touch the caller's copy
        self.horse = dataclasses.replace(horse)
        self.course = course
        self.hp: HpPolicy = hp if hp is not None else NoopHpPolicy()
        self.pacer = pacer
        self.rng = rng
        self.legacy_mode = legacy_mode
        self.pending_skills: List[PendingSkill] = list(skills)
        self._pending_removal: Set[int] = set()
        self.used_skills: Set[str] = set()
        self.gold_rng = RaceRng(rng.int32())
        self.pace_effect_rng = RaceRng(rng.int32())

        self.timers: List[Timer] = []
        self.accumulate_time = self.new_timer()
        self.phase = Phase.OPENING
        self.next_phase_transition = phase_start(course.distance, Phase.MIDDLE)
        self.active_target_speed_skills: List[ActiveSkill] = []
        self.active_current_speed_skills: List[ActiveSkill] = []
        self.active_accel_skills: List[ActiveSkill] = []
        self.activate_count = [0, 0, 0]
        self.activate_count_heal = 0
        self.on_skill_activate = on_skill_activate or _noop_callback
        self.on_skill_deactivate = on_skill_deactivate or _noop_callback

        self.section_length = section_length(course)
        self.is_pace_down = False
        self.pos_keep_min_threshold = position_keep_min_threshold(self.horse.strategy, course.distance)
        self.pos_keep_max_threshold = position_keep_max_threshold(self.horse.strategy, course.distance)
        self.pos_keep_cooldown = self.new_timer()
        self.pos_keep_end = self.section_length * POSITION_KEEP_SECTIONS
        self.pos_keep_speed_coef = 1.0
        self.pos_keep_effect_start = 0.0
        self.pos_keep_exit_distance = 0.0
        self._position_keep_enabled = pacer is not None and not self.horse.strategy.matches(Strategy.FRONT_RUNNER)

        self.modifiers = SkillModifiers()
        self._init_hills()

        # set before the gate skills run so start delay skills can modify it
        self.start_delay = MAX_START_DELAY * self.rng.random()
        if self.pacer is not None:
            # the pacer is only stepped once our own start delay has passed, which synchronizes the starts
            self.pacer.start_delay = 0.0

        self.course_base_speed = base_speed(course)
        self.start_dash_speed = START_DASH_TARGET_FACTOR * self.course_base_speed
        self.pos = 0.0
        self.accel = 0.0
        self.current_speed = START_SPEED
        self.target_speed = self.start_dash_speed
        self.is_last_spurt = False
        self.last_spurt_speed = 0.0
        self.last_spurt_transition: Optional[float] = None
        self.min_speed = 0.0
        self.start_dash = True

        # gate skills can raise guts, so they must activate before the minimum speed is fixed
        self.process_skill_activations()
        self.min_speed = self.start_dash_speed + math.sqrt(200.0 * self.horse.guts) * 0.001
        self.modifiers.accel.add(START_DASH_ACCEL_BONUS)

        self.base_target_speed = [base_target_speed(self.horse, course, phase) for phase in range(3)]
        self.last_spurt_speed = last_spurt_speed(self.horse, course, legacy_mode)

        self.hp.init(self.horse)

        flat = [base_accel(BASE_ACCEL, self.horse, phase) for phase in range(3)]
        uphill = [base_accel(UPHILL_BASE_ACCEL, self.horse, phase) for phase in range(3)]
        self.base_accel = flat + uphill

    # --- Setup ------------------------------------------------------------

    def _init_hills(self) -> None:
        slopes = self.course.slopes
        if not is_sorted_by_start(slopes):
            raise ValueError("slopes must be sorted by start location")

        self.n_hills = len(slopes)
        # stacks: the next boundary is always the last element
        self.hill_start = [slope.start for slope in reversed(slopes)]
        self.hill_end = [slope.end for slope in reversed(slopes)]
        self.hill_idx = -1
        if self.hill_start and self.hill_start[-1] == 0:
            if slopes[0].slope > 0:
                self.hill_idx = 0
            else:
                self.hill_end.pop()
            self.hill_start.pop()

    def new_timer(self, t: float = 0.0) -> Timer:
        timer = Timer(t)
        self.timers.append(timer)
        return timer

    # --- Stepping ---------------------------------------------------------

    def max_speed(self) -> float:
        if self.start_dash:
            # with a hill at the start the target can sit below the start dash cap
            return min(self.target_speed, self.start_dash_speed)
        if self.current_speed + self.modifiers.one_frame_accel > self.target_speed:
            return UNBOUNDED_SPEED
        return self.target_speed

    def _advance_timers(self, dt: float) -> None:
        for timer in self.timers:
            timer.t += dt

    def step(self, dt: float) -> None:
        if self.accumulate_time.t < self.start_delay:
            partial_frame = self.start_delay - self.accumulate_time.t
            if partial_frame < dt:
                self._advance_timers(partial_frame)
                dt -= partial_frame
            else:
                self._advance_timers(dt)
                return

        if self.pacer is not None and self.pos < self.pos_keep_end:
            self.pacer.step(dt)

        # velocity Verlet: acceleration depends on velocity during the start dash
        half_v = min(self.current_speed + 0.5 * dt * self.accel, self.max_speed())
        self.pos += (half_v + self.modifiers.current_speed.value) * dt
        self.hp.tick(self, dt)
        self._advance_timers(dt)
        self.update_hills()
        self.update_phase()
        self.process_skill_activations()
        self.update_position_keep()
        self.update_last_spurt_state()
        self.update_target_speed()
        self.apply_forces()
        self.current_speed = min(half_v + 0.5 * dt * self.accel + self.modifiers.one_frame_accel, self.max_speed())
        if not self.start_dash and self.current_speed < self.min_speed:
            self.current_speed = self.min_speed
        elif self.start_dash and self.current_speed >= self.start_dash_speed:
            self.start_dash = False
            self.modifiers.accel.add(-START_DASH_ACCEL_BONUS)
        self.modifiers.one_frame_accel = 0.0

    def update_position_keep(self) -> None:
        if not self._position_keep_enabled:
            return
        if self.pos >= self.pos_keep_end:
            self.is_pace_down = False
            self.pos_keep_speed_coef = 1.0
            self._position_keep_enabled = False
            return

        speed_skills_active = bool(self.active_target_speed_skills or self.active_current_speed_skills)
        gap = self.pacer.pos - self.pos
        if self.is_pace_down:
            if (
                gap > self.pos_keep_exit_distance
                or self.pos - self.pos_keep_effect_start > self.section_length
                or speed_skills_active
            ):
                self.is_pace_down = False
                self.pos_keep_cooldown.t = POSITION_KEEP_COOLDOWN
                self.pos_keep_speed_coef = 1.0
        elif gap < self.pos_keep_min_threshold and not speed_skills_active and self.pos_keep_cooldown.expired:
            self.is_pace_down = True
            self.pos_keep_effect_start = self.pos
            low = self.pos_keep_min_threshold
            if self.phase == Phase.MIDDLE:
                high = low + 0.5 * (self.pos_keep_max_threshold - low)
            else:
                high = self.pos_keep_max_threshold
            self.pos_keep_exit_distance = low + self.pace_effect_rng.random() * (high - low)
            self.pos_keep_speed_coef = PACE_DOWN_SPEED_COEF_MIDDLE if self.phase == Phase.MIDDLE else PACE_DOWN_SPEED_COEF

    def update_last_spurt_state(self) -> None:
        if self.is_last_spurt or self.phase < 2:
            return
        if self.last_spurt_transition is None:
            transition, speed = self.hp.get_last_spurt_pair(self, self.last_spurt_speed, self.base_target_speed[2])
            self.last_spurt_transition = transition
            self.last_spurt_speed = speed
        if self.pos >= self.last_spurt_transition:
            self.is_last_spurt = True

    def update_target_speed(self) -> None:
        if not self.hp.has_remaining_hp():
            target = self.min_speed
        elif self.is_last_spurt:
            target = self.last_spurt_speed
        else:
            target = self.base_target_speed[self.phase] * self.pos_keep_speed_coef
        target += self.modifiers.target_speed.value

        if self.hill_idx != -1:
            target -= self.course.slopes[self.hill_idx].slope / 10000.0 * 200.0 / self.horse.power
            target = max(target, self.min_speed)
        self.target_speed = target

    def apply_forces(self) -> None:
        if not self.hp.has_remaining_hp():
            self.accel = DEPLETED_DECELERATION
            return
        if self.current_speed > self.target_speed:
            self.accel = PACE_DOWN_DECELERATION if self.is_pace_down else PHASE_DECELERATION[self.phase]
            return
        uphill = 3 if self.hill_idx != -1 else 0
        self.accel = self.base_accel[uphill + self.phase] + self.modifiers.accel.value

    def update_hills(self) -> None:
        if self.hill_idx == -1 and self.hill_start and self.pos >= self.hill_start[-1]:
            idx = self.n_hills - len(self.hill_start)
            if self.course.slopes[idx].slope > 0:
                self.hill_idx = idx
            else:
                self.hill_end.pop()
            self.hill_start.pop()
        elif self.hill_idx != -1 and self.hill_end and self.pos > self.hill_end[-1]:
            self.hill_idx = -1
            self.hill_end.pop()

    def update_phase(self) -> None:
        # phase 3 behaves like phase 2 for every coefficient, so stop at 2
        if self.pos >= self.next_phase_transition and self.phase < 2:
            self.phase = Phase(self.phase + 1)
            self.next_phase_transition = phase_start(self.course.distance, self.phase + 1)

    @property
    def reported_phase(self) -> Phase:
        if self.pos >= phase_start(self.course.distance, Phase.LAST):
            return Phase.LAST
        return self.phase

    # --- Skills -----------------------------------------------------------

    def _expire(self, active: List[ActiveSkill], accumulator: CompensatedAccumulator) -> List[ActiveSkill]:
        remaining: List[ActiveSkill] = []
        for skill in reversed(active):
            if skill.duration_timer.expired:
                accumulator.add(-skill.modifier)
                if skill.natural_deceleration:
                    self.modifiers.one_frame_accel += skill.modifier
                self.on_skill_deactivate(self, skill.skill_id, skill.perspective)
                logger.debug("skill %s expired at %.2f", skill.skill_id, self.pos)
            else:
                remaining.append(skill)
        remaining.reverse()
        return remaining

    def process_skill_activations(self) -> None:
        self.active_target_speed_skills = self._expire(self.active_target_speed_skills, self.modifiers.target_speed)
        self.active_current_speed_skills = self._expire(self.active_current_speed_skills, self.modifiers.current_speed)
        self.active_accel_skills = self._expire(self.active_accel_skills, self.modifiers.accel)

        # The pending list is never mutated during the sweep. Finished entries
        # (including ones promoted by random gold activation) are flagged by
        # index and compacted once the sweep is over.
        for i in range(len(self.pending_skills) - 1, -1, -1):
            if i in self._pending_removal:
                continue
            skill = self.pending_skills[i]
            if self.pos >= skill.trigger.end:
                # half-open trigger: at pos == end the skill has failed to activate
                self._pending_removal.add(i)
            elif self.pos >= skill.trigger.start and skill.extra_condition(self):
                self._pending_removal.add(i)
                self.activate_skill(skill)
        if self._pending_removal:
            removed = self._pending_removal
            self.pending_skills = [skill for i, skill in enumerate(self.pending_skills) if i not in removed]
            self._pending_removal = set()

    def activate_skill(self, skill: PendingSkill) -> None:
        # the duration extension must not lengthen effects activated alongside it
        effects = sorted(skill.effects, key=lambda ef: ef.type == SkillType.EXTEND_EVOLVED_DURATION)
        for effect in effects:
            scaled_duration = effect.base_duration * (self.course.distance / 1000.0)
            if skill.rarity == SkillRarity.EVOLUTION:
                scaled_duration *= self.modifiers.special_skill_duration_scaling
            self._apply_effect(skill, effect.type, effect.modifier, scaled_duration)
        self.activate_count[self.phase] += 1
        self.used_skills.add(skill.skill_id)
        logger.debug("skill %s activated at %.2f", skill.skill_id, self.pos)
        self.on_skill_activate(self, skill.skill_id, skill.perspective)

    def _raise_stat(self, name: str, amount: float) -> None:
        setattr(self.horse, name, max(getattr(self.horse, name) + amount, 1))

    def _apply_effect(self, skill: PendingSkill, kind: int, modifier: float, duration: float) -> None:
        if kind == SkillType.SPEED_UP:
            self._raise_stat("speed", modifier)
        elif kind == SkillType.STAMINA_UP:
            self._raise_stat("stamina", modifier)
            self._raise_stat("raw_stamina", modifier)
        elif kind == SkillType.POWER_UP:
            self._raise_stat("power", modifier)
        elif kind == SkillType.GUTS_UP:
            self._raise_stat("guts", modifier)
        elif kind == SkillType.WISDOM_UP:
            self._raise_stat("wisdom", modifier)
        elif kind == SkillType.MULTIPLY_START_DELAY:
            self.start_delay *= modifier
        elif kind == SkillType.SET_START_DELAY:
            self.start_delay = modifier
        elif kind == SkillType.TARGET_SPEED:
            self.modifiers.target_speed.add(modifier)
            self.active_target_speed_skills.append(self._active(skill, modifier, duration))
        elif kind == SkillType.ACCEL:
            self.modifiers.accel.add(modifier)
            self.active_accel_skills.append(self._active(skill, modifier, duration))
        elif kind in (SkillType.CURRENT_SPEED, SkillType.CURRENT_SPEED_WITH_NATURAL_DECELERATION):
            self.modifiers.current_speed.add(modifier)
            active = self._active(skill, modifier, duration)
            active.natural_deceleration = kind == SkillType.CURRENT_SPEED_WITH_NATURAL_DECELERATION
            self.active_current_speed_skills.append(active)
        elif kind == SkillType.RECOVERY:
            self.activate_count_heal += 1
            self.hp.recover(modifier)
            if not self.legacy_mode and self.phase >= 2 and not self.is_last_spurt:
                self.update_last_spurt_state()
        elif kind == SkillType.ACTIVATE_RANDOM_GOLD:
            self.activate_random_gold(int(modifier))
        elif kind == SkillType.EXTEND_EVOLVED_DURATION:
            self.modifiers.special_skill_duration_scaling = modifier

    def _active(self, skill: PendingSkill, modifier: float, duration: float) -> ActiveSkill:
        return ActiveSkill(
            skill_id=skill.skill_id,
            perspective=skill.perspective,
            duration_timer=self.new_timer(-duration),
            modifier=modifier,
        )

    def activate_random_gold(self, ngolds: int) -> None:
        """Activate up to ``ngolds`` pending gold skills chosen at random."""
        gold_indices = [
            i
            for i, skill in enumerate(self.pending_skills)
            if i not in self._pending_removal
            and skill.rarity in (SkillRarity.GOLD, SkillRarity.EVOLUTION)
            and all(effect.type > SkillType.WISDOM_UP for effect in skill.effects)
        ]
        # Fisher-Yates shuffle, then take the first ngolds
        for i in range(len(gold_indices) - 1, -1, -1):
            j = self.gold_rng.uniform(i + 1)
            gold_indices[i], gold_indices[j] = gold_indices[j], gold_indices[i]
        for idx in gold_indices[: min(ngolds, len(gold_indices))]:
            self._pending_removal.add(idx)
            self.activate_skill(self.pending_skills[idx])

    def cleanup(self) -> None:
        """Emit deactivation for every skill still running when the race ends."""
        for active in (self.active_target_speed_skills, self.active_current_speed_skills, self.active_accel_skills):
            for skill in active:
                self.on_skill_deactivate(self, skill.skill_id, skill.perspective)
