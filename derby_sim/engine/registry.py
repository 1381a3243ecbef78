from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .course import is_sorted_by_start
from .data_models import (
    CourseCorner,
    CourseData,
    CourseSlope,
    CourseStraight,
    DistanceType,
    Orientation,
    Surface,
    ThresholdStat,
)


def _default_data_directory() -> Path:
    return Path(__file__).resolve().parents[1] / "data"


@dataclass(frozen=True)
class EffectRecord:
    """Raw skill effect; duration and modifier are still in data units (x10000)."""

    type: int
    modifier: float
    target: int = 1


@dataclass(frozen=True)
class SkillAlternative:
    precondition: str
    condition: str
    base_duration: float
    effects: Tuple[EffectRecord, ...]


@dataclass(frozen=True)
class SkillRecord:
    skill_id: str
    name: str
    rarity: int
    alternatives: Tuple[SkillAlternative, ...]


def parse_course(raw: Mapping[str, Any]) -> CourseData:
    slopes = [CourseSlope(float(s["start"]), float(s["length"]), float(s["slope"])) for s in raw.get("slopes", [])]
    # sorted here so the solver's sortedness check only ever trips on hand-built courses
    slopes.sort(key=lambda s: s.start)
    if not is_sorted_by_start(slopes):
        raise ValueError(f"Course {raw.get('race_track_id')} has overlapping slope starts")
    return CourseData(
        race_track_id=int(raw["race_track_id"]),
        distance=float(raw["distance"]),
        distance_type=DistanceType.parse(raw["distance_type"]),
        surface=Surface.parse(raw["surface"]),
        turn=Orientation.parse(raw.get("turn", Orientation.CLOCKWISE)),
        course_set_status=tuple(ThresholdStat.parse(s) for s in raw.get("course_set_status", [])),
        corners=tuple(CourseCorner(float(c["start"]), float(c["length"])) for c in raw.get("corners", [])),
        straights=tuple(
            CourseStraight(float(s["start"]), float(s["end"]), int(s.get("front_type", 1)))
            for s in raw.get("straights", [])
        ),
        slopes=tuple(slopes),
    )


def parse_skill(skill_id: str, raw: Mapping[str, Any]) -> SkillRecord:
    alternatives = tuple(
        SkillAlternative(
            precondition=alt.get("precondition", ""),
            condition=alt.get("condition", ""),
            base_duration=float(alt.get("base_duration", 0)),
            effects=tuple(
                EffectRecord(type=int(e["type"]), modifier=float(e["modifier"]), target=int(e.get("target", 1)))
                for e in alt.get("effects", [])
            ),
        )
        for alt in raw.get("alternatives", [])
    )
    return SkillRecord(skill_id=str(skill_id), name=raw.get("name", str(skill_id)), rarity=int(raw["rarity"]), alternatives=alternatives)


class CourseRegistry:
    """Loads and caches course geometry from a JSON file keyed by course id."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else _default_data_directory() / "course_data.json"
        self._raw: Optional[Dict[str, Any]] = None
        self._cache: Dict[str, CourseData] = {}

    def _load_raw(self) -> Dict[str, Any]:
        if self._raw is None:
            with self.path.open("r", encoding="utf-8") as handle:
                self._raw = json.load(handle)
        return self._raw

    def load(self, course_id) -> CourseData:
        key = str(course_id)
        if key in self._cache:
            return self._cache[key]

        raw = self._load_raw().get(key)
        if raw is None:
            raise KeyError(f"Course '{course_id}' not found in {self.path}")

        course = parse_course(raw)
        self._cache[key] = course
        return course

    def list_courses(self) -> Iterable[str]:
        return list(self._load_raw().keys())


class SkillRegistry:
    """Loads and caches skill definitions from a JSON file keyed by skill id."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else _default_data_directory() / "skill_data.json"
        self._raw: Optional[Dict[str, Any]] = None
        self._cache: Dict[str, SkillRecord] = {}

    def _load_raw(self) -> Dict[str, Any]:
        if self._raw is None:
            with self.path.open("r", encoding="utf-8") as handle:
                self._raw = json.load(handle)
        return self._raw

    def __contains__(self, skill_id) -> bool:
        return str(skill_id) in self._load_raw()

    def load(self, skill_id) -> SkillRecord:
        key = str(skill_id)
        if key in self._cache:
            return self._cache[key]

        raw = self._load_raw().get(key)
        if raw is None:
            raise KeyError(f"Skill '{skill_id}' not found in {self.path}")

        record = parse_skill(key, raw)
        self._cache[key] = record
        return record

    def list_skills(self) -> Iterable[str]:
        return list(self._load_raw().keys())


DEFAULT_COURSE_REGISTRY = CourseRegistry()
DEFAULT_SKILL_REGISTRY = SkillRegistry()
