from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional, Tuple, Type, TypeVar, Union

E = TypeVar("E", bound=IntEnum)


def _parse_enum(enum_cls: Type[E], value, label: str, aliases: Optional[Dict[str, E]] = None) -> E:
    """Resolve an enum member from a member, an integer code or a name.

    Anything outside the closed set raises ValueError.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Unknown {label}: {value!r}")
    if isinstance(value, int):
        try:
            return enum_cls(value)
        except ValueError as exc:
            raise ValueError(f"Unknown {label}: {value!r}") from exc
    if isinstance(value, str):
        key = value.strip().upper().replace("-", "_").replace(" ", "_")
        if aliases and key in aliases:
            return aliases[key]
        if key in enum_cls.__members__:
            return enum_cls.__members__[key]
    raise ValueError(f"Unknown {label}: {value!r}")


class Strategy(IntEnum):
    """Running style. Integer codes match the game data."""

    FRONT_RUNNER = 1
    PACE_CHASER = 2
    LATE_SURGER = 3
    END_CLOSER = 4
    RUNAWAY = 5

    @classmethod
    def parse(cls, value: Union[str, int, "Strategy"]) -> "Strategy":
        return _parse_enum(cls, value, "strategy", _STRATEGY_ALIASES)

    def matches(self, other: "Strategy") -> bool:
        front = (Strategy.FRONT_RUNNER, Strategy.RUNAWAY)
        return self == other or (self in front and other in front)


_STRATEGY_ALIASES = {
    "NIGE": Strategy.FRONT_RUNNER,
    "SENKOU": Strategy.PACE_CHASER,
    "SASI": Strategy.LATE_SURGER,
    "SASHI": Strategy.LATE_SURGER,
    "OIKOMI": Strategy.END_CLOSER,
    "OONIGE": Strategy.RUNAWAY,
}


class Aptitude(IntEnum):
    """Aptitude grade; the value is the index into the aptitude tables."""

    S = 0
    A = 1
    B = 2
    C = 3
    D = 4
    E = 5
    F = 6
    G = 7

    @classmethod
    def parse(cls, value: Union[str, int, "Aptitude"], kind: str = "") -> "Aptitude":
        label = f"{kind} aptitude" if kind else "aptitude"
        return _parse_enum(cls, value, label)


class Surface(IntEnum):
    TURF = 1
    DIRT = 2

    @classmethod
    def parse(cls, value) -> "Surface":
        return _parse_enum(cls, value, "surface")


class DistanceType(IntEnum):
    SHORT = 1
    MILE = 2
    MEDIUM = 3
    LONG = 4

    @classmethod
    def parse(cls, value) -> "DistanceType":
        return _parse_enum(cls, value, "distance type", {"MID": cls.MEDIUM})


class Orientation(IntEnum):
    CLOCKWISE = 1
    COUNTERCLOCKWISE = 2
    UNUSED = 3
    NO_TURNS = 4

    @classmethod
    def parse(cls, value) -> "Orientation":
        return _parse_enum(cls, value, "orientation")


class ThresholdStat(IntEnum):
    SPEED = 1
    STAMINA = 2
    POWER = 3
    GUTS = 4
    WISDOM = 5

    @classmethod
    def parse(cls, value) -> "ThresholdStat":
        return _parse_enum(cls, value, "threshold stat", {"INT": cls.WISDOM})


class Phase(IntEnum):
    """Course phase. Phase 3 is reported but treated as phase 2 internally."""

    OPENING = 0
    MIDDLE = 1
    FINAL = 2
    LAST = 3

    @classmethod
    def parse(cls, value) -> "Phase":
        return _parse_enum(cls, value, "phase")


class GroundCondition(IntEnum):
    GOOD = 1
    YIELDING = 2
    SOFT = 3
    HEAVY = 4

    @classmethod
    def parse(cls, value) -> "GroundCondition":
        return _parse_enum(cls, value, "ground condition")


class Weather(IntEnum):
    SUNNY = 1
    CLOUDY = 2
    RAINY = 3
    SNOWY = 4

    @classmethod
    def parse(cls, value) -> "Weather":
        return _parse_enum(cls, value, "weather")


class Season(IntEnum):
    SPRING = 1
    SUMMER = 2
    AUTUMN = 3
    WINTER = 4
    SAKURA = 5

    @classmethod
    def parse(cls, value) -> "Season":
        return _parse_enum(cls, value, "season")


class TimeOfDay(IntEnum):
    NO_TIME = 0
    MORNING = 1
    MIDDAY = 2
    EVENING = 3
    NIGHT = 4

    @classmethod
    def parse(cls, value) -> "TimeOfDay":
        return _parse_enum(cls, value, "race time", {"NONE": cls.NO_TIME, "NOTIME": cls.NO_TIME})


class Grade(IntEnum):
    G1 = 100
    G2 = 200
    G3 = 300
    OP = 400
    PRE_OP = 700
    MAIDEN = 800
    DEBUT = 900
    DAILY = 999

    @classmethod
    def parse(cls, value) -> "Grade":
        return _parse_enum(cls, value, "race grade", {"PREOP": cls.PRE_OP})


class Mood(IntEnum):
    AWFUL = -2
    BAD = -1
    NORMAL = 0
    GOOD = 1
    GREAT = 2

    @classmethod
    def parse(cls, value) -> "Mood":
        return _parse_enum(cls, value, "mood")


@dataclass(frozen=True)
class CourseSlope:
    start: float
    length: float
    slope: float

    @property
    def end(self) -> float:
        return self.start + self.length


@dataclass(frozen=True)
class CourseCorner:
    start: float
    length: float

    @property
    def end(self) -> float:
        return self.start + self.length


@dataclass(frozen=True)
class CourseStraight:
    start: float
    end: float
    front_type: int = 1

    @property
    def length(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class CourseData:
    race_track_id: int
    distance: float
    distance_type: DistanceType
    surface: Surface
    turn: Orientation = Orientation.CLOCKWISE
    course_set_status: Tuple[ThresholdStat, ...] = ()
    corners: Tuple[CourseCorner, ...] = ()
    straights: Tuple[CourseStraight, ...] = ()
    slopes: Tuple[CourseSlope, ...] = ()


@dataclass
class CompetitorParameters:
    """Stat snapshot of one competitor. Solvers mutate their own copy."""

    speed: float
    stamina: float
    power: float
    guts: float
    wisdom: float
    strategy: Strategy
    distance_aptitude: Aptitude
    surface_aptitude: Aptitude
    strategy_aptitude: Aptitude
    raw_stamina: float


@dataclass(frozen=True)
class HorseDesc:
    """Competitor description as entered by a user, before any derivation."""

    speed: float
    stamina: float
    power: float
    guts: float
    wisdom: float
    strategy: Union[str, Strategy]
    distance_aptitude: Union[str, Aptitude] = Aptitude.A
    surface_aptitude: Union[str, Aptitude] = Aptitude.A
    strategy_aptitude: Union[str, Aptitude] = Aptitude.A


@dataclass
class RaceParameters:
    mood: Mood = Mood.GREAT
    ground_condition: GroundCondition = GroundCondition.GOOD
    weather: Weather = Weather.SUNNY
    season: Season = Season.SPRING
    time: TimeOfDay = TimeOfDay.MIDDAY
    grade: Grade = Grade.G1
    popularity: int = 1
    order_range: Optional[Tuple[int, int]] = None
    num_umas: Optional[int] = None
    skill_id: str = ""


