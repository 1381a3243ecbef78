"""
Batch construction of race solvers.

``RaceSolverBuilder`` collects the race configuration, derives the
competitor's stats once, resolves every requested skill into candidate
trigger regions and then hands out one freshly seeded ``RaceSolver`` per
Monte Carlo sample through a ``SolverBatch``.

The batch is pulled by the caller. After receiving a solver the caller may
ask for it to be regenerated with ``BuildRequest.REDO``; the solver and pacer
seed streams are rewound to their state before that sample, so a discarded
sample never shifts the random draws seen by later samples.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import re
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from ..config import get_config, legacy_mode_enabled
from .conditions import ACTIVATE_COUNT_AS_RANDOM_CONDITIONS, ConditionParser, get_parser
from .constants import (
    GROUND_POWER_MOD,
    GROUND_SPEED_MOD,
    MOOD_COEF_STEP,
    SKILL_DATA_SCALE,
    STAT_OVERCAP_THRESHOLD,
    STRATEGY_APTITUDE_WISDOM_MOD,
    UNREACHABLE_POSITION,
)
from .course import course_speed_modifier
from .data_models import (
    Aptitude,
    CompetitorParameters,
    CourseData,
    GroundCondition,
    Grade,
    HorseDesc,
    Mood,
    RaceParameters,
    Season,
    Strategy,
    TimeOfDay,
    Weather,
)
from .emergent import SkillDataHook, foot_conservation_hook, stamina_duel_hook
from .hp_policy import GameHpPolicy, NoopHpPolicy
from .region import Region, RegionList
from .registry import DEFAULT_COURSE_REGISTRY, DEFAULT_SKILL_REGISTRY, CourseRegistry, SkillRegistry, SkillAlternative
from .rng import RaceRng
from .sample_policy import ImmediatePolicy
from .skills import (
    PendingSkill,
    Perspective,
    SkillData,
    SkillEffect,
    SkillRarity,
    SkillType,
    is_target,
    never,
)
from .solver import RaceSolver, SkillCallback

logger = logging.getLogger(__name__)

# Alternatives after the first only place their own trigger when they refer to
# another skill having been used.
_CROSS_SKILL_CONDITION = re.compile(r"is_activate_other_skill_detail|is_used_skill_id")

DEFAULT_PARSER = get_parser()
ACTIVATE_COUNT_AS_RANDOM_PARSER = get_parser(ACTIVATE_COUNT_AS_RANDOM_CONDITIONS)

PACER_OPENING_SKILLS = (
    ("201601", 3.0),
    ("200532", 1.2),
)


# --- Stat derivation ----------------------------------------------------------


def adjust_overcap(stat: float) -> float:
    """Stats above 1200 only count half for the excess."""
    if stat > STAT_OVERCAP_THRESHOLD:
        return STAT_OVERCAP_THRESHOLD + math.floor((stat - STAT_OVERCAP_THRESHOLD) / 2)
    return stat


def motivation_coef(mood: Union[int, Mood]) -> float:
    return 1.0 + MOOD_COEF_STEP * Mood.parse(mood)


def build_base_stats(desc: HorseDesc, mood: Union[int, Mood]) -> CompetitorParameters:
    coef = motivation_coef(mood)
    return CompetitorParameters(
        speed=adjust_overcap(desc.speed) * coef,
        stamina=adjust_overcap(desc.stamina) * coef,
        power=adjust_overcap(desc.power) * coef,
        guts=adjust_overcap(desc.guts) * coef,
        wisdom=adjust_overcap(desc.wisdom) * coef,
        strategy=Strategy.parse(desc.strategy),
        distance_aptitude=Aptitude.parse(desc.distance_aptitude, "distance"),
        surface_aptitude=Aptitude.parse(desc.surface_aptitude, "surface"),
        strategy_aptitude=Aptitude.parse(desc.strategy_aptitude, "strategy"),
        raw_stamina=desc.stamina * coef,
    )


def build_adjusted_stats(base: CompetitorParameters, course: CourseData, ground) -> CompetitorParameters:
    """Applies course synergy, ground condition penalties and the strategy aptitude wisdom scaling."""
    ground = GroundCondition.parse(ground)
    course_modifier = course_speed_modifier(course, base)
    return dataclasses.replace(
        base,
        speed=max(base.speed * course_modifier + GROUND_SPEED_MOD[course.surface][ground], 1),
        power=max(base.power + GROUND_POWER_MOD[course.surface][ground], 1),
        wisdom=base.wisdom * STRATEGY_APTITUDE_WISDOM_MOD[base.strategy_aptitude],
    )


# --- Skill resolution ---------------------------------------------------------


def build_skill_effects(alternative: SkillAlternative, perspective: Perspective) -> List[SkillEffect]:
    effects: List[SkillEffect] = []
    for effect in alternative.effects:
        if not is_target(perspective, effect.target) or not SkillType.known(effect.type):
            continue
        effects.append(
            SkillEffect(
                type=SkillType(effect.type),
                base_duration=alternative.base_duration / SKILL_DATA_SCALE,
                modifier=effect.modifier / SKILL_DATA_SCALE,
            )
        )
    return effects


def build_skill_data(
    horse: CompetitorParameters,
    race: RaceParameters,
    course: CourseData,
    whole_course: RegionList,
    parser: ConditionParser,
    skill_id: str,
    perspective: Perspective = Perspective.SELF,
    ignore_null_effects: bool = False,
    registry: Optional[SkillRegistry] = None,
) -> List[SkillData]:
    """
    Resolves one skill into trigger candidates for this course and competitor.

    Alternatives are tried in order. Only the first satisfiable alternative
    contributes unless a later one refers to another skill having been used.
    This misses skills whose two triggers can both fire independently.
    """
    registry = registry if registry is not None else DEFAULT_SKILL_REGISTRY
    if skill_id not in registry:
        raise ValueError(f"Unknown skill id {skill_id!r}")
    record = registry.load(skill_id)
    rarity = SkillRarity.normalize(record.rarity)
    extra = dataclasses.replace(race, skill_id=skill_id)

    triggers: List[SkillData] = []
    for alternative in record.alternatives:
        full = RegionList(whole_course)
        if alternative.precondition:
            pre = parser.parse(parser.tokenize(alternative.precondition))
            pre_regions, _ = pre.apply(whole_course, course, horse, extra)
            if not pre_regions:
                continue
            bounds = Region(pre_regions[0].start, whole_course[-1].end)
            full = full.rmap(lambda r: r.intersect(bounds))

        op = parser.parse(parser.tokenize(alternative.condition))
        regions, extra_condition = op.apply(full, course, horse, extra)
        if not regions:
            continue
        if triggers and not _CROSS_SKILL_CONDITION.search(alternative.condition):
            continue

        effects = build_skill_effects(alternative, perspective)
        if effects or ignore_null_effects:
            triggers.append(
                SkillData(
                    skill_id=skill_id,
                    perspective=perspective,
                    rarity=rarity,
                    sample_policy=op.sample_policy,
                    regions=regions,
                    extra_condition=extra_condition,
                    effects=effects,
                )
            )

    if triggers:
        return triggers

    # Kept as a never-firing trigger past the finish so conditions on this
    # skill having been used can still see it (e.g. activated as a random gold).
    effects = build_skill_effects(record.alternatives[0], perspective) if record.alternatives else []
    if not effects and not ignore_null_effects:
        return []
    logger.debug("Skill %s has no satisfiable trigger on course %s", skill_id, course.race_track_id)
    return [
        SkillData(
            skill_id=skill_id,
            perspective=perspective,
            rarity=rarity,
            sample_policy=ImmediatePolicy,
            regions=RegionList([Region(UNREACHABLE_POSITION, UNREACHABLE_POSITION)]),
            extra_condition=never,
            effects=effects,
        )
    ]


# --- Batch protocol -----------------------------------------------------------


class BuildRequest(Enum):
    ACCEPT = "accept"
    REDO = "redo"


class SolverBatch:
    """
    Pull-based sequence of solvers, one per sample.

    ``next(batch)`` accepts the previous solver and returns the next one;
    ``batch.send(BuildRequest.REDO)`` discards the previous solver and returns
    a regenerated solver for the same sample index.
    """

    def __init__(
        self,
        nsamples: int,
        horse: CompetitorParameters,
        course: CourseData,
        ground: GroundCondition,
        skill_data: Sequence[SkillData],
        triggers: Sequence[Sequence[Region]],
        solver_rng: RaceRng,
        pacer_rng: RaceRng,
        pacer_horse: Optional[CompetitorParameters] = None,
        pacer_skills: Sequence[PendingSkill] = (),
        on_skill_activate: Optional[SkillCallback] = None,
        on_skill_deactivate: Optional[SkillCallback] = None,
        legacy_mode: bool = False,
    ) -> None:
        self.nsamples = nsamples
        self.horse = horse
        self.course = course
        self.ground = ground
        self.skill_data = list(skill_data)
        self.triggers = [list(t) for t in triggers]
        self.solver_rng = solver_rng
        self.pacer_rng = pacer_rng
        self.pacer_horse = pacer_horse
        self.pacer_skills = list(pacer_skills)
        self.on_skill_activate = on_skill_activate
        self.on_skill_deactivate = on_skill_deactivate
        self.legacy_mode = legacy_mode
        self.index = 0
        self._backup: Optional[Tuple[RaceRng, RaceRng]] = None

    def __iter__(self) -> "SolverBatch":
        return self

    def __next__(self) -> RaceSolver:
        return self.send(BuildRequest.ACCEPT)

    def __len__(self) -> int:
        return self.nsamples

    def send(self, request: BuildRequest = BuildRequest.ACCEPT) -> RaceSolver:
        if BuildRequest(request) is BuildRequest.REDO:
            self.redo()
        if self.index >= self.nsamples:
            raise StopIteration
        return self._next_solver()

    def redo(self) -> None:
        """Rewind so the next solver regenerates the sample handed out last."""
        if self._backup is None:
            raise ValueError("No sample has been generated yet, nothing to redo")
        pacer_backup, solver_backup = self._backup
        self.pacer_rng.restore(pacer_backup)
        self.solver_rng.restore(solver_backup)
        self.index -= 1
        self._backup = None

    def pending_skills(self, index: int) -> List[PendingSkill]:
        return [sd.to_pending(self.triggers[sdi][index % len(self.triggers[sdi])]) for sdi, sd in enumerate(self.skill_data)]

    def _next_solver(self) -> RaceSolver:
        i = self.index
        skills = self.pending_skills(i)
        self._backup = (self.pacer_rng.copy(), self.solver_rng.copy())

        pacer = None
        if self.pacer_horse is not None:
            pacer = RaceSolver(
                horse=self.pacer_horse,
                course=self.course,
                rng=self.pacer_rng,
                skills=self.pacer_skills,
                hp=NoopHpPolicy(),
                legacy_mode=self.legacy_mode,
            )

        # drawn before the solver itself consumes solver_rng
        hp = GameHpPolicy(self.course, self.ground, self.solver_rng.child())
        solver = RaceSolver(
            horse=self.horse,
            course=self.course,
            rng=self.solver_rng,
            skills=skills,
            hp=hp,
            pacer=pacer,
            on_skill_activate=self.on_skill_activate,
            on_skill_deactivate=self.on_skill_deactivate,
            legacy_mode=self.legacy_mode,
        )
        self.index += 1
        return solver


# --- Builder ------------------------------------------------------------------


def _random_seed() -> int:
    return int(np.random.default_rng().integers(0, 1 << 32))


class RaceSolverBuilder:
    """Fluent configuration of a batch of race solvers."""

    def __init__(
        self,
        nsamples: int,
        course_registry: Optional[CourseRegistry] = None,
        skill_registry: Optional[SkillRegistry] = None,
    ) -> None:
        if nsamples < 1:
            raise ValueError("nsamples must be at least 1")
        self.nsamples = nsamples
        self.course_registry = course_registry if course_registry is not None else DEFAULT_COURSE_REGISTRY
        self.skill_registry = skill_registry if skill_registry is not None else DEFAULT_SKILL_REGISTRY
        self._course: Optional[CourseData] = None
        self._race = RaceParameters()
        self._horse: Optional[HorseDesc] = None
        self._pacer: Optional[HorseDesc] = None
        self._pacer_skills: List[PendingSkill] = []
        seed = get_config("race_engine.default_seed")
        self._rng = RaceRng(seed if seed is not None else _random_seed())
        self._parser = DEFAULT_PARSER
        self._skills: List[Tuple[str, Perspective]] = []
        self._extra_skill_hooks: List[SkillDataHook] = []
        self._on_skill_activate: Optional[SkillCallback] = None
        self._on_skill_deactivate: Optional[SkillCallback] = None
        self._legacy_mode = legacy_mode_enabled()

    def seed(self, seed: int) -> "RaceSolverBuilder":
        self._rng = RaceRng(seed)
        return self

    def course(self, course: Union[int, str, CourseData]) -> "RaceSolverBuilder":
        if isinstance(course, CourseData):
            self._course = course
        else:
            self._course = self.course_registry.load(course)
        return self

    def mood(self, mood) -> "RaceSolverBuilder":
        self._race.mood = Mood.parse(mood)
        return self

    def ground(self, ground) -> "RaceSolverBuilder":
        self._race.ground_condition = GroundCondition.parse(ground)
        return self

    def weather(self, weather) -> "RaceSolverBuilder":
        self._race.weather = Weather.parse(weather)
        return self

    def season(self, season) -> "RaceSolverBuilder":
        self._race.season = Season.parse(season)
        return self

    def time(self, time) -> "RaceSolverBuilder":
        self._race.time = TimeOfDay.parse(time)
        return self

    def grade(self, grade) -> "RaceSolverBuilder":
        self._race.grade = Grade.parse(grade)
        return self

    def popularity(self, popularity: int) -> "RaceSolverBuilder":
        self._race.popularity = int(popularity)
        return self

    def order(self, start: int, end: int) -> "RaceSolverBuilder":
        self._race.order_range = (int(start), int(end))
        return self

    def num_umas(self, n: int) -> "RaceSolverBuilder":
        self._race.num_umas = int(n)
        return self

    def horse(self, horse: HorseDesc) -> "RaceSolverBuilder":
        self._horse = horse
        return self

    def pacer(self, horse: HorseDesc) -> "RaceSolverBuilder":
        self._pacer = horse
        return self

    def _is_front_runner(self) -> bool:
        return Strategy.parse(self._require_horse().strategy).matches(Strategy.FRONT_RUNNER)

    def _require_horse(self) -> HorseDesc:
        if self._horse is None:
            raise ValueError("horse() must be called first")
        return self._horse

    def use_default_pacer(self, opening_leg_accel: bool = True) -> "RaceSolverBuilder":
        """Paces against a front-running copy of the competitor."""
        if self._is_front_runner():
            return self

        self._pacer = dataclasses.replace(self._require_horse(), strategy=Strategy.FRONT_RUNNER)
        if opening_leg_accel:
            # these can hide the pace down effects being investigated, so they are optional
            self._pacer_skills = [
                PendingSkill(
                    skill_id=skill_id,
                    perspective=Perspective.SELF,
                    rarity=SkillRarity.WHITE,
                    trigger=Region(0.0, 100.0),
                    extra_condition=lambda state: True,
                    effects=[SkillEffect(type=SkillType.ACCEL, base_duration=duration, modifier=0.2)],
                )
                for skill_id, duration in PACER_OPENING_SKILLS
            ]
        return self

    def with_activate_counts_as_random(self) -> "RaceSolverBuilder":
        self._parser = ACTIVATE_COUNT_AS_RANDOM_PARSER
        return self

    def with_foot_conservation(self) -> "RaceSolverBuilder":
        """Must be called after ``horse()`` and ``mood()``; forks keep the power computed here."""
        displayed_power = self._require_horse().power * motivation_coef(self._race.mood)
        self._extra_skill_hooks.append(foot_conservation_hook(displayed_power))
        return self

    def with_stamina_duel(self) -> "RaceSolverBuilder":
        self._extra_skill_hooks.append(stamina_duel_hook)
        return self

    def with_legacy_mode(self, enabled: bool = True) -> "RaceSolverBuilder":
        self._legacy_mode = enabled
        return self

    def add_skill(self, skill_id: str, perspective: Perspective = Perspective.SELF) -> "RaceSolverBuilder":
        self._skills.append((str(skill_id), Perspective(perspective)))
        return self

    def on_skill_activate(self, callback: SkillCallback) -> "RaceSolverBuilder":
        self._on_skill_activate = callback
        return self

    def on_skill_deactivate(self, callback: SkillCallback) -> "RaceSolverBuilder":
        self._on_skill_deactivate = callback
        return self

    def fork(self) -> "RaceSolverBuilder":
        """Copy of this builder whose random stream starts from the same state."""
        clone = RaceSolverBuilder(self.nsamples, self.course_registry, self.skill_registry)
        clone._course = self._course
        clone._race = dataclasses.replace(self._race)
        clone._horse = self._horse
        clone._pacer = self._pacer
        clone._pacer_skills = list(self._pacer_skills)
        clone._rng = self._rng.copy()
        clone._parser = self._parser
        clone._skills = list(self._skills)
        clone._extra_skill_hooks = list(self._extra_skill_hooks)
        clone._on_skill_activate = self._on_skill_activate
        clone._on_skill_deactivate = self._on_skill_deactivate
        clone._legacy_mode = self._legacy_mode
        return clone

    def build(self) -> SolverBatch:
        if self._course is None:
            raise ValueError("course() must be called before build()")
        course = self._course
        horse = build_base_stats(self._require_horse(), self._race.mood)
        solver_rng = self._rng.child()
        # drawn even without a pacer so forks with and without one stay in sync
        pacer_rng = self._rng.child()

        pacer_horse = None
        if self._pacer is not None:
            pacer_horse = build_adjusted_stats(
                build_base_stats(self._pacer, self._race.mood), course, self._race.ground_condition
            )

        whole_course = RegionList([Region(0.0, course.distance)])
        skill_data: List[SkillData] = []
        for skill_id, perspective in self._skills:
            skill_data.extend(
                build_skill_data(
                    horse,
                    self._race,
                    course,
                    whole_course,
                    self._parser,
                    skill_id,
                    perspective,
                    registry=self.skill_registry,
                )
            )
        for hook in self._extra_skill_hooks:
            hook(skill_data, horse, course, self._race)
        triggers = [sd.sample_policy.sample(sd.regions, self.nsamples, self._rng) for sd in skill_data]

        # base_* conditions read base stats, so this comes after skill resolution
        horse = build_adjusted_stats(horse, course, self._race.ground_condition)

        logger.info(
            "Built batch of %d samples on course %s with %d skill triggers",
            self.nsamples,
            course.race_track_id,
            len(skill_data),
        )
        return SolverBatch(
            nsamples=self.nsamples,
            horse=horse,
            course=course,
            ground=self._race.ground_condition,
            skill_data=skill_data,
            triggers=triggers,
            solver_rng=solver_rng,
            pacer_rng=pacer_rng,
            pacer_horse=pacer_horse,
            pacer_skills=self._pacer_skills,
            on_skill_activate=self._on_skill_activate,
            on_skill_deactivate=self._on_skill_deactivate,
            legacy_mode=self._legacy_mode,
        )
