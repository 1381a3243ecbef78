"""
Race engine package implementing the frame-by-frame solver.

The package is split into data models, lookup tables, the solver itself and
the batch builder, plus small implementations of the collaborators the
builder needs (regions, random streams, sampling, conditions, HP and data
registries).
"""

from .builder import (  # noqa: F401
    BuildRequest,
    RaceSolverBuilder,
    SolverBatch,
    build_adjusted_stats,
    build_base_stats,
    build_skill_data,
)
from .course import base_speed, phase_end, phase_start  # noqa: F401
from .data_models import (  # noqa: F401
    Aptitude,
    CompetitorParameters,
    CourseCorner,
    CourseData,
    CourseSlope,
    CourseStraight,
    DistanceType,
    GroundCondition,
    HorseDesc,
    Mood,
    Phase,
    RaceParameters,
    Strategy,
    Surface,
)
from .hp_policy import GameHpPolicy, NoopHpPolicy  # noqa: F401
from .region import Region, RegionList  # noqa: F401
from .registry import DEFAULT_COURSE_REGISTRY, DEFAULT_SKILL_REGISTRY, CourseRegistry, SkillRegistry  # noqa: F401
from .rng import RaceRng  # noqa: F401
from .runner import SampleResult, compare, run_batch, run_solver, summarize  # noqa: F401
from .skills import Perspective, PendingSkill, SkillEffect, SkillRarity, SkillType  # noqa: F401
from .solver import RaceSolver  # noqa: F401
from .telemetry import TelemetryCollector, TelemetryFrame  # noqa: F401
from .timing import CompensatedAccumulator, Timer  # noqa: F401

__all__ = [
    "BuildRequest",
    "RaceSolverBuilder",
    "SolverBatch",
    "build_adjusted_stats",
    "build_base_stats",
    "build_skill_data",
    "base_speed",
    "phase_end",
    "phase_start",
    "Aptitude",
    "CompetitorParameters",
    "CourseCorner",
    "CourseData",
    "CourseSlope",
    "CourseStraight",
    "DistanceType",
    "GroundCondition",
    "HorseDesc",
    "Mood",
    "Phase",
    "RaceParameters",
    "Strategy",
    "Surface",
    "GameHpPolicy",
    "NoopHpPolicy",
    "Region",
    "RegionList",
    "DEFAULT_COURSE_REGISTRY",
    "DEFAULT_SKILL_REGISTRY",
    "CourseRegistry",
    "SkillRegistry",
    "RaceRng",
    "SampleResult",
    "compare",
    "run_batch",
    "run_solver",
    "summarize",
    "Perspective",
    "PendingSkill",
    "SkillEffect",
    "SkillRarity",
    "SkillType",
    "RaceSolver",
    "TelemetryCollector",
    "TelemetryFrame",
    "CompensatedAccumulator",
    "Timer",
]
