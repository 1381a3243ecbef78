from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence


@dataclass
class TelemetryFrame:
    tick: int
    time: float
    phase: str
    pos: float
    speed: float
    target_speed: float
    accel: float
    hp: Optional[float]
    start_dash: bool
    is_last_spurt: bool
    is_pace_down: bool
    active_skills: List[str] = field(default_factory=list)
    pacer_pos: Optional[float] = None
    status_flags: Dict[str, bool] = field(default_factory=dict)


def frame_from_solver(solver, tick: int) -> TelemetryFrame:
    active = [
        skill.skill_id
        for skill in (
            solver.active_target_speed_skills + solver.active_current_speed_skills + solver.active_accel_skills
        )
    ]
    hp = getattr(solver.hp, "hp", None)
    return TelemetryFrame(
        tick=tick,
        time=solver.accumulate_time.t,
        phase=solver.reported_phase.name.lower(),
        pos=solver.pos,
        speed=solver.current_speed,
        target_speed=solver.target_speed,
        accel=solver.accel,
        hp=hp,
        start_dash=solver.start_dash,
        is_last_spurt=solver.is_last_spurt,
        is_pace_down=solver.is_pace_down,
        active_skills=active,
        pacer_pos=solver.pacer.pos if solver.pacer is not None else None,
        status_flags={"uphill": solver.hill_idx != -1},
    )


class TelemetryCollector:
    def __init__(self) -> None:
        self.frames: List[TelemetryFrame] = []

    def record_frame(self, frame: TelemetryFrame) -> None:
        self.frames.append(frame)

    def record_solver(self, solver, tick: int) -> None:
        self.record_frame(frame_from_solver(solver, tick))

    def export(self) -> Sequence[TelemetryFrame]:
        return tuple(self.frames)

    def clear(self) -> None:
        self.frames.clear()
