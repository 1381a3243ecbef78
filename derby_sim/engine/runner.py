"""Drives solvers to the finish line and aggregates batch results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Union

import numpy as np

from ..config import get_config
from .builder import RaceSolverBuilder, SolverBatch
from .constants import HORSE_LENGTH
from .solver import RaceSolver
from .telemetry import TelemetryCollector

logger = logging.getLogger(__name__)

DEFAULT_TIMESTEP = 1.0 / 15.0
DEFAULT_MAX_RACE_TIME = 600.0


def _timestep(dt: Optional[float]) -> float:
    return float(dt if dt is not None else get_config("race_engine.timestep", DEFAULT_TIMESTEP))


@dataclass
class SampleResult:
    finish_time: float
    top_speed: float
    hp_remaining: Optional[float]
    used_skills: Set[str] = field(default_factory=set)


def run_solver(
    solver: RaceSolver,
    dt: Optional[float] = None,
    max_time: Optional[float] = None,
    telemetry: Optional[TelemetryCollector] = None,
) -> SampleResult:
    """Steps ``solver`` until it crosses the finish and cleans it up."""
    dt = _timestep(dt)
    max_time = float(max_time if max_time is not None else get_config("race_engine.max_race_time", DEFAULT_MAX_RACE_TIME))
    distance = solver.course.distance
    top_speed = solver.current_speed
    tick = 0
    prev_pos = solver.pos
    prev_time = solver.accumulate_time.t
    while solver.pos < distance:
        if solver.accumulate_time.t > max_time:
            raise RuntimeError(f"Race did not finish within {max_time}s (pos={solver.pos:.1f}/{distance})")
        prev_pos = solver.pos
        prev_time = solver.accumulate_time.t
        solver.step(dt)
        tick += 1
        top_speed = max(top_speed, solver.current_speed)
        if telemetry is not None:
            telemetry.record_solver(solver, tick)

    # interpolate inside the last tick so the timestep doesn't quantize the result
    moved = solver.pos - prev_pos
    elapsed = solver.accumulate_time.t - prev_time
    finish_time = prev_time + (distance - prev_pos) / moved * elapsed if moved > 0 else solver.accumulate_time.t
    solver.cleanup()

    ratio = getattr(solver.hp, "hp_ratio_remaining", None)
    return SampleResult(
        finish_time=finish_time,
        top_speed=top_speed,
        hp_remaining=ratio() if ratio is not None else None,
        used_skills=set(solver.used_skills),
    )


def _as_batch(source: Union[RaceSolverBuilder, SolverBatch]) -> SolverBatch:
    return source.build() if isinstance(source, RaceSolverBuilder) else source


def run_batch(source: Union[RaceSolverBuilder, SolverBatch], dt: Optional[float] = None) -> np.ndarray:
    """Runs every sample and returns the finish times in sample order."""
    batch = _as_batch(source)
    times = np.empty(len(batch))
    for i, solver in enumerate(batch):
        times[i] = run_solver(solver, dt).finish_time
    return times


def compare(
    first: Union[RaceSolverBuilder, SolverBatch],
    second: Union[RaceSolverBuilder, SolverBatch],
    dt: Optional[float] = None,
) -> np.ndarray:
    """
    Runs matched samples of two batches side by side.

    For each sample the two solvers are stepped in lockstep until either
    crosses the finish; the result is the second competitor's lead over the
    first at that moment in horse lengths (negative when it is behind). Build
    the two batches from forked builders so both see the same random draws.
    """
    dt = _timestep(dt)
    batch_a = _as_batch(first)
    batch_b = _as_batch(second)
    gaps: List[float] = []
    for solver_a, solver_b in zip(batch_a, batch_b):
        distance = solver_a.course.distance
        while solver_a.pos < distance and solver_b.pos < distance:
            solver_a.step(dt)
            solver_b.step(dt)
        gaps.append((solver_b.pos - solver_a.pos) / HORSE_LENGTH)
        solver_a.cleanup()
        solver_b.cleanup()
    logger.debug("Compared %d samples", len(gaps))
    return np.asarray(gaps)


def summarize(values: Iterable[float]) -> Dict[str, float]:
    data = np.asarray(list(values), dtype=float)
    if data.size == 0:
        raise ValueError("Cannot summarize an empty result set")
    return {
        "min": float(np.min(data)),
        "max": float(np.max(data)),
        "mean": float(np.mean(data)),
        "median": float(np.median(data)),
    }
