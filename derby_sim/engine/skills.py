"""Skill records shared by the solver and the builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, List, Optional, Protocol, Set

from .region import Region, RegionList
from .timing import Timer


class RaceState(Protocol):
    """Read-only view of a running solver, as seen by dynamic conditions."""

    accumulate_time: Timer
    activate_count: List[int]
    activate_count_heal: int
    current_speed: float
    is_last_spurt: bool
    last_spurt_speed: float
    last_spurt_transition: Optional[float]
    is_pace_down: bool
    phase: int
    pos: float
    start_delay: float
    used_skills: Set[str]


DynamicCondition = Callable[[RaceState], bool]


def always(_state: RaceState) -> bool:
    return True


def never(_state: RaceState) -> bool:
    return False


class Perspective(IntEnum):
    SELF = 1
    OTHER = 2
    ANY = 3


class SkillType(IntEnum):
    SPEED_UP = 1
    STAMINA_UP = 2
    POWER_UP = 3
    GUTS_UP = 4
    WISDOM_UP = 5
    RECOVERY = 9
    MULTIPLY_START_DELAY = 10
    SET_START_DELAY = 14
    CURRENT_SPEED = 21
    CURRENT_SPEED_WITH_NATURAL_DECELERATION = 22
    TARGET_SPEED = 27
    ACCEL = 31
    ACTIVATE_RANDOM_GOLD = 37
    EXTEND_EVOLVED_DURATION = 42

    @classmethod
    def known(cls, value: int) -> bool:
        return value in cls._value2member_map_


class SkillRarity(IntEnum):
    WHITE = 1
    GOLD = 2
    UNIQUE = 3
    EVOLUTION = 6

    @classmethod
    def normalize(cls, raw: int) -> "SkillRarity":
        # 1*/2* uniques, upgraded uniques and 3* uniques are stored as 3, 4 and 5.
        if 3 <= raw <= 5:
            return cls.UNIQUE
        return cls(raw)


class SkillTarget(IntEnum):
    SELF = 1
    ALL = 2
    IN_FOV = 4
    AHEAD_OF_POSITION = 7
    AHEAD_OF_SELF = 9
    BEHIND_SELF = 10
    ALL_ALLIES = 11
    ENEMY_STRATEGY = 18
    KAKARI_AHEAD = 19
    KAKARI_BEHIND = 20
    KAKARI_STRATEGY = 21
    UMA_ID = 22
    USED_RECOVERY = 23


def is_target(perspective: Perspective, target: int) -> bool:
    """Whether an effect aimed at ``target`` applies from ``perspective``."""
    if target == SkillTarget.ALL or perspective == Perspective.ANY:
        return True
    return (perspective == Perspective.SELF) == (target == SkillTarget.SELF)


@dataclass(frozen=True)
class SkillEffect:
    type: SkillType
    base_duration: float
    modifier: float


@dataclass
class PendingSkill:
    skill_id: str
    rarity: SkillRarity
    trigger: Region
    extra_condition: DynamicCondition
    effects: List[SkillEffect]
    perspective: Optional[Perspective] = None


@dataclass
class ActiveSkill:
    skill_id: str
    perspective: Optional[Perspective]
    duration_timer: Timer
    modifier: float
    natural_deceleration: bool = False


@dataclass
class SkillData:
    """A resolved trigger before per-sample position sampling."""

    skill_id: str
    rarity: SkillRarity
    sample_policy: object
    regions: RegionList
    extra_condition: DynamicCondition
    effects: List[SkillEffect] = field(default_factory=list)
    perspective: Optional[Perspective] = None

    def to_pending(self, trigger: Region) -> PendingSkill:
        return PendingSkill(
            skill_id=self.skill_id,
            rarity=self.rarity,
            trigger=trigger,
            extra_condition=self.extra_condition,
            effects=self.effects,
            perspective=self.perspective,
        )
