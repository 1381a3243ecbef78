from __future__ import annotations

from .data_models import DistanceType, GroundCondition, Strategy, Surface

# --- Speed ---------------------------------------------------------------

# Indexed by strategy, then by phase (0-2; phase 3 uses the phase 2 entry).
SPEED_STRATEGY_PHASE_COEF = {
    Strategy.FRONT_RUNNER: (1.0, 0.98, 0.962),
    Strategy.PACE_CHASER: (0.978, 0.991, 0.975),
    Strategy.LATE_SURGER: (0.938, 0.998, 0.994),
    Strategy.END_CLOSER: (0.931, 1.0, 1.0),
    Strategy.RUNAWAY: (1.063, 0.962, 0.95),
}

# Indexed by aptitude (S..G).
SPEED_DISTANCE_APTITUDE_MOD = (1.05, 1.0, 0.9, 0.8, 0.6, 0.4, 0.2, 0.1)

# --- Acceleration --------------------------------------------------------

ACCEL_STRATEGY_PHASE_COEF = {
    Strategy.FRONT_RUNNER: (1.0, 1.0, 0.996),
    Strategy.PACE_CHASER: (0.985, 1.0, 0.996),
    Strategy.LATE_SURGER: (0.975, 1.0, 1.0),
    Strategy.END_CLOSER: (0.945, 1.0, 0.997),
    Strategy.RUNAWAY: (1.17, 0.94, 0.956),
}

ACCEL_SURFACE_APTITUDE_MOD = (1.05, 1.0, 0.9, 0.8, 0.7, 0.5, 0.3, 0.1)
ACCEL_DISTANCE_APTITUDE_MOD = (1.0, 1.0, 1.0, 1.0, 1.0, 0.6, 0.5, 0.4)

BASE_ACCEL = 0.0006
UPHILL_BASE_ACCEL = 0.0004

PHASE_DECELERATION = (-1.2, -0.8, -1.0)
PACE_DOWN_DECELERATION = -0.5
DEPLETED_DECELERATION = -1.2

START_DASH_ACCEL_BONUS = 24.0
START_DASH_TARGET_FACTOR = 0.85
START_SPEED = 3.0
MAX_START_DELAY = 0.1

# Effectively unbounded cap used while decelerating towards a lower target.
UNBOUNDED_SPEED = 9999.0

# --- Position keep -------------------------------------------------------

POSITION_KEEP_MIN_THRESHOLD = {
    Strategy.PACE_CHASER: 3.0,
    Strategy.LATE_SURGER: 6.5,
    Strategy.END_CLOSER: 7.5,
}
POSITION_KEEP_MAX_THRESHOLD = {
    Strategy.PACE_CHASER: 5.0,
    Strategy.LATE_SURGER: 7.0,
    Strategy.END_CLOSER: 8.0,
}

COURSE_SECTIONS = 24
# The game keeps position for 10 sections; only the early pace down is modeled.
POSITION_KEEP_SECTIONS = 5
PACE_DOWN_SPEED_COEF_MIDDLE = 0.945
PACE_DOWN_SPEED_COEF = 0.915
POSITION_KEEP_COOLDOWN = -3.0

# --- Stat derivation -----------------------------------------------------

STAT_OVERCAP_THRESHOLD = 1200
MOOD_COEF_STEP = 0.02

COURSE_SYNERGY_STAT_CAP = 901
COURSE_SYNERGY_TIER = 300.01
COURSE_SYNERGY_STEP = 0.05

GROUND_SPEED_MOD = {
    Surface.TURF: {
        GroundCondition.GOOD: 0,
        GroundCondition.YIELDING: 0,
        GroundCondition.SOFT: 0,
        GroundCondition.HEAVY: -50,
    },
    Surface.DIRT: {
        GroundCondition.GOOD: 0,
        GroundCondition.YIELDING: 0,
        GroundCondition.SOFT: 0,
        GroundCondition.HEAVY: -50,
    },
}

GROUND_POWER_MOD = {
    Surface.TURF: {
        GroundCondition.GOOD: 0,
        GroundCondition.YIELDING: -50,
        GroundCondition.SOFT: -50,
        GroundCondition.HEAVY: -50,
    },
    Surface.DIRT: {
        GroundCondition.GOOD: -100,
        GroundCondition.YIELDING: -50,
        GroundCondition.SOFT: -100,
        GroundCondition.HEAVY: -100,
    },
}

STRATEGY_APTITUDE_WISDOM_MOD = (1.1, 1.0, 0.85, 0.75, 0.6, 0.4, 0.2, 0.1)

# --- HP ------------------------------------------------------------------

STRATEGY_HP_MOD = {
    Strategy.FRONT_RUNNER: 0.95,
    Strategy.PACE_CHASER: 0.89,
    Strategy.LATE_SURGER: 1.0,
    Strategy.END_CLOSER: 0.995,
    Strategy.RUNAWAY: 0.86,
}

GROUND_HP_MOD = {
    Surface.TURF: {
        GroundCondition.GOOD: 1.0,
        GroundCondition.YIELDING: 1.0,
        GroundCondition.SOFT: 1.02,
        GroundCondition.HEAVY: 1.02,
    },
    Surface.DIRT: {
        GroundCondition.GOOD: 1.0,
        GroundCondition.YIELDING: 1.0,
        GroundCondition.SOFT: 1.01,
        GroundCondition.HEAVY: 1.02,
    },
}

PACE_DOWN_HP_MOD = 0.6
LAST_SPURT_MARGIN = 60.0
LAST_SPURT_SPEED_STEP = 0.1

# --- Emergent skills -----------------------------------------------------

FOOT_CONSERVATION_BASE = 0.00875
FOOT_CONSERVATION_COEF = {
    DistanceType.SHORT: {
        Strategy.FRONT_RUNNER: 1.0,
        Strategy.PACE_CHASER: 0.7,
        Strategy.LATE_SURGER: 0.75,
        Strategy.END_CLOSER: 0.7,
        Strategy.RUNAWAY: 1.0,
    },
    DistanceType.MILE: {
        Strategy.FRONT_RUNNER: 1.0,
        Strategy.PACE_CHASER: 0.8,
        Strategy.LATE_SURGER: 0.7,
        Strategy.END_CLOSER: 0.75,
        Strategy.RUNAWAY: 1.0,
    },
    DistanceType.MEDIUM: {
        Strategy.FRONT_RUNNER: 1.0,
        Strategy.PACE_CHASER: 0.9,
        Strategy.LATE_SURGER: 0.875,
        Strategy.END_CLOSER: 0.86,
        Strategy.RUNAWAY: 1.0,
    },
    DistanceType.LONG: {
        Strategy.FRONT_RUNNER: 1.0,
        Strategy.PACE_CHASER: 0.9,
        Strategy.LATE_SURGER: 1.0,
        Strategy.END_CLOSER: 0.9,
        Strategy.RUNAWAY: 1.0,
    },
}

STAMINA_DUEL_COEF = 0.0085

# Raw skill data stores durations and modifiers scaled by this factor.
SKILL_DATA_SCALE = 10000.0
# Position used for triggers that can never be reached.
UNREACHABLE_POSITION = 9999.0
HORSE_LENGTH = 2.5
