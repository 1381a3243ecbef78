"""
Trigger condition parsing.

Skill conditions are written as ``name OP value`` terms joined with ``&``
(and) and ``@`` (or), ``&`` binding tighter, e.g.::

    phase>=2&distance_rate>=50@is_lastspurt==1

Parsing a condition yields a node whose ``apply`` narrows a list of course
regions and returns a dynamic predicate for whatever cannot be decided from
the course alone. Each node also carries the sample policy used to place the
trigger inside the resulting regions.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .course import phase_end, phase_start
from .data_models import CompetitorParameters, CourseData, Phase, RaceParameters, Strategy
from .region import Region, RegionList
from .sample_policy import ImmediatePolicy, RandomPolicy
from .skills import DynamicCondition, RaceState, always

_OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
}

_TOKEN_PATTERN = re.compile(r"\s*(?:(?P<cond>[a-z_0-9]+)\s*(?P<op>==|!=|>=|<=|>|<)\s*(?P<value>-?\d+)|(?P<sep>[&@]))")

ApplyResult = Tuple[RegionList, DynamicCondition]


@dataclass(frozen=True)
class Token:
    kind: str
    name: str = ""
    op: str = ""
    value: int = 0


@dataclass(frozen=True)
class ConditionContext:
    course: CourseData
    horse: CompetitorParameters
    extra: RaceParameters


ConditionFn = Callable[[str, int, RegionList, ConditionContext], ApplyResult]


@dataclass(frozen=True)
class Condition:
    fn: ConditionFn
    policy: object = ImmediatePolicy


def _bounded(regions: RegionList, bounds: Region) -> RegionList:
    return regions.rmap(lambda r: r.intersect(bounds))


def _within_any(regions: Sequence[Region], pos: float) -> bool:
    return any(region.contains(pos) for region in regions)


def _and(first: DynamicCondition, second: DynamicCondition) -> DynamicCondition:
    if first is always:
        return second
    if second is always:
        return first
    return lambda state: first(state) and second(state)


# --- Condition builders ----------------------------------------------------


def static(getter: Callable[[ConditionContext], float]) -> Condition:
    """Decided entirely before the race: all regions or none."""

    def fn(op: str, value: int, regions: RegionList, ctx: ConditionContext) -> ApplyResult:
        if _OPERATORS[op](getter(ctx), value):
            return regions, always
        return RegionList(), always

    return Condition(fn)


def dynamic(getter: Callable[[RaceState, ConditionContext], float]) -> Condition:
    """Checked every frame against the live race state."""

    def fn(op: str, value: int, regions: RegionList, ctx: ConditionContext) -> ApplyResult:
        compare = _OPERATORS[op]
        return regions, lambda state: compare(getter(state, ctx), value)

    return Condition(fn)


def positional(
    bounds: Callable[[int, ConditionContext], RegionList],
    policy: object = ImmediatePolicy,
) -> Condition:
    """Restricts the regions to those returned by ``bounds`` for the value."""

    def fn(op: str, value: int, regions: RegionList, ctx: ConditionContext) -> ApplyResult:
        if op not in ("==", "!="):
            raise ValueError(f"Operator {op} not supported for positional conditions")
        allowed = bounds(value, ctx) if op == "==" else _complement(bounds(value, ctx), ctx.course)
        result = RegionList()
        for region in allowed:
            result.extend(_bounded(regions, region))
        return RegionList(sorted(result, key=lambda r: r.start)), always

    return Condition(fn, policy)


def noop(policy: object = ImmediatePolicy) -> Condition:
    """Conditions on other competitors, which a single-runner race treats as always met."""

    def fn(op: str, value: int, regions: RegionList, ctx: ConditionContext) -> ApplyResult:
        return regions, always

    return Condition(fn, policy)


def _complement(regions: RegionList, course: CourseData) -> RegionList:
    result = RegionList()
    cursor = 0.0
    for region in RegionList().union(regions):
        if region.start > cursor:
            result.append(Region(cursor, region.start))
        cursor = max(cursor, region.end)
    if cursor < course.distance:
        result.append(Region(cursor, course.distance))
    return result


# --- Course geometry conditions --------------------------------------------


def _phase_regions(op: str, value: int, regions: RegionList, ctx: ConditionContext) -> ApplyResult:
    distance = ctx.course.distance
    compare = _OPERATORS[op]
    allowed = RegionList(
        Region(phase_start(distance, phase), phase_end(distance, phase)) for phase in Phase if compare(phase, value)
    ).union(())
    result = RegionList()
    for bounds in allowed:
        result.extend(_bounded(regions, bounds))
    return result, always


def _phase_part(value: int, ctx: ConditionContext, first: float, last: float) -> RegionList:
    start = phase_start(ctx.course.distance, value)
    end = phase_end(ctx.course.distance, value)
    length = end - start
    return RegionList([Region(start + length * first, start + length * last)])


def _distance_rate(op: str, value: int, regions: RegionList, ctx: ConditionContext) -> ApplyResult:
    point = ctx.course.distance * value / 100.0
    return _threshold(op, point, regions, ctx.course.distance), always


def _remain_distance(op: str, value: int, regions: RegionList, ctx: ConditionContext) -> ApplyResult:
    # remaining distance grows towards the start, so the comparison flips
    flipped = {">=": "<=", "<=": ">=", ">": "<", "<": ">", "==": "==", "!=": "!="}[op]
    point = ctx.course.distance - value
    return _threshold(flipped, point, regions, ctx.course.distance), always


def _threshold(op: str, point: float, regions: RegionList, distance: float) -> RegionList:
    if op in (">=", ">"):
        return _bounded(regions, Region(point, distance))
    if op in ("<=", "<"):
        return _bounded(regions, Region(0.0, point))
    if op == "==":
        return _bounded(regions, Region(point, point + 1.0))
    return _bounded(regions, Region(0.0, point)).union(_bounded(regions, Region(point + 1.0, distance)))


def _corners(value: int, ctx: ConditionContext) -> RegionList:
    return RegionList(Region(c.start, c.end) for c in ctx.course.corners)


def _final_corner(value: int, ctx: ConditionContext) -> RegionList:
    if not ctx.course.corners:
        return RegionList()
    last = max(ctx.course.corners, key=lambda c: c.start)
    return RegionList([Region(last.start, ctx.course.distance)])


def _straights(value: int, ctx: ConditionContext) -> RegionList:
    return RegionList(Region(s.start, s.end) for s in ctx.course.straights)


def _slopes(value: int, ctx: ConditionContext) -> RegionList:
    if value == 0:
        return _complement(RegionList(Region(s.start, s.end) for s in ctx.course.slopes), ctx.course)
    uphill = value == 1
    return RegionList(Region(s.start, s.end) for s in ctx.course.slopes if (s.slope > 0) == uphill)


def _with_value_zero(bounds: Callable[[int, ConditionContext], RegionList]):
    """``name==1`` selects the regions, ``name==0`` everything else."""

    def fn(op: str, value: int, regions: RegionList, ctx: ConditionContext) -> ApplyResult:
        selected = bounds(value, ctx)
        if (op == "==") == (value == 0):
            selected = _complement(selected, ctx.course)
        result = RegionList()
        for region in selected:
            result.extend(_bounded(regions, region))
        return result, always

    return fn


def _running_style(op: str, value: int, regions: RegionList, ctx: ConditionContext) -> ApplyResult:
    matches = ctx.horse.strategy.matches(Strategy.parse(value))
    if matches == (op == "=="):
        return regions, always
    return RegionList(), always


def _phase_count(phase: int) -> Callable[[RaceState, ConditionContext], float]:
    return lambda state, ctx: state.activate_count[phase]


DEFAULT_CONDITIONS: Mapping[str, Condition] = {
    # course position
    "phase": Condition(_phase_regions),
    "phase_random": positional(lambda v, ctx: _phase_part(v, ctx, 0.0, 1.0), RandomPolicy),
    "phase_firsthalf_random": positional(lambda v, ctx: _phase_part(v, ctx, 0.0, 0.5), RandomPolicy),
    "phase_laterhalf_random": positional(lambda v, ctx: _phase_part(v, ctx, 0.5, 1.0), RandomPolicy),
    "phase_corner_random": positional(
        lambda v, ctx: RegionList(
            r for c in _corners(v, ctx) for r in [c.intersect(_phase_part(v, ctx, 0.0, 1.0)[0])] if not r.empty
        ),
        RandomPolicy,
    ),
    "distance_rate": Condition(_distance_rate),
    "remain_distance": Condition(_remain_distance),
    "corner": Condition(_with_value_zero(_corners)),
    "is_finalcorner": Condition(_with_value_zero(_final_corner)),
    "all_corner_random": positional(_corners, RandomPolicy),
    "straight_random": positional(_straights, RandomPolicy),
    "slope": positional(_slopes),
    # race setup
    "distance_type": static(lambda ctx: ctx.course.distance_type),
    "ground_type": static(lambda ctx: ctx.course.surface),
    "rotation": static(lambda ctx: ctx.course.turn),
    "track_id": static(lambda ctx: ctx.course.race_track_id),
    "ground_condition": static(lambda ctx: ctx.extra.ground_condition),
    "weather": static(lambda ctx: ctx.extra.weather),
    "season": static(lambda ctx: ctx.extra.season),
    "time": static(lambda ctx: ctx.extra.time),
    "grade": static(lambda ctx: ctx.extra.grade),
    "popularity": static(lambda ctx: ctx.extra.popularity),
    "running_style": Condition(_running_style),
    "base_speed": static(lambda ctx: ctx.horse.speed),
    "base_stamina": static(lambda ctx: ctx.horse.stamina),
    "base_power": static(lambda ctx: ctx.horse.power),
    "base_guts": static(lambda ctx: ctx.horse.guts),
    "base_wiz": static(lambda ctx: ctx.horse.wisdom),
    # live race state
    "is_lastspurt": dynamic(lambda state, ctx: int(state.is_last_spurt)),
    "accumulatetime": dynamic(lambda state, ctx: state.accumulate_time.t),
    "activate_count_all": dynamic(lambda state, ctx: sum(state.activate_count)),
    "activate_count_start": dynamic(_phase_count(0)),
    "activate_count_middle": dynamic(_phase_count(1)),
    "activate_count_end_after": dynamic(_phase_count(2)),
    # counted from phase 2 on; the midpoint of the course is not tracked
    "activate_count_later_half": dynamic(_phase_count(2)),
    "activate_count_heal": dynamic(lambda state, ctx: state.activate_count_heal),
    "is_used_skill_id": Condition(
        lambda op, value, regions, ctx: (
            regions,
            lambda state: (str(value) in state.used_skills) == (op == "=="),
        )
    ),
    "is_activate_other_skill_detail": Condition(
        lambda op, value, regions, ctx: (
            regions,
            lambda state: (ctx.extra.skill_id in state.used_skills) == ((op == "==") == (value == 1)),
        )
    ),
    # other competitors
    "order": noop(),
    "order_rate": noop(),
    "is_overtake": noop(RandomPolicy),
    "is_surrounded": noop(RandomPolicy),
    "blocked_front": noop(RandomPolicy),
    "change_order_onetime": noop(RandomPolicy),
    "bashin_diff_infront": noop(RandomPolicy),
    "bashin_diff_behind": noop(RandomPolicy),
}


# --- Activate counts modeled as positions ------------------------------------


def _count_as_position(bounds: Callable[[int, ConditionContext, RegionList], RegionList], policy=RandomPolicy):
    def fn(op: str, value: int, regions: RegionList, ctx: ConditionContext) -> ApplyResult:
        if op in ("<=", "<"):
            # only the "at least n activations" form is modeled
            return RegionList(), always
        return bounds(value, ctx, regions), always

    return Condition(fn, policy)


def _count_all_bounds(n: int, ctx: ConditionContext, regions: RegionList) -> RegionList:
    if n == 7:
        # the two skills with this threshold behave like immediate skills; the
        # window is 11m because random triggers stay out of the last 10m
        return RegionList(Region(r.start, r.start + 11.0) for r in regions)
    distance = ctx.course.distance
    bounds = Region(min(n / 23.0 - 0.2, 0.6) * distance, min(n / 23.0 + 0.2, 1.0) * distance)
    return _bounded(regions, bounds)


def _count_middle_bounds(n: int, ctx: ConditionContext, regions: RegionList) -> RegionList:
    start = phase_start(ctx.course.distance, 1)
    end = phase_end(ctx.course.distance, 1)
    return _bounded(regions, Region(start, start + n / 10.0 * (end - start)))


ACTIVATE_COUNT_AS_RANDOM_CONDITIONS: Mapping[str, Condition] = {
    **DEFAULT_CONDITIONS,
    "activate_count_all": _count_as_position(_count_all_bounds),
    "activate_count_end_after": _count_as_position(
        lambda n, ctx, regions: _bounded(
            regions, Region(phase_start(ctx.course.distance, 2), phase_end(ctx.course.distance, 3))
        )
    ),
    "activate_count_heal": noop(RandomPolicy),
    "activate_count_later_half": _count_as_position(
        lambda n, ctx, regions: _bounded(regions, Region(ctx.course.distance / 2.0, ctx.course.distance))
    ),
    "activate_count_middle": _count_as_position(_count_middle_bounds),
    "activate_count_start": _count_as_position(
        lambda n, ctx, regions: _bounded(
            regions, Region(phase_start(ctx.course.distance, 0), phase_end(ctx.course.distance, 0))
        ),
        ImmediatePolicy,
    ),
}


# --- Parse tree ---------------------------------------------------------------


def _stronger_policy(first: object, second: object) -> object:
    return RandomPolicy if RandomPolicy in (first, second) else first


class Leaf:
    def __init__(self, condition: Condition, token: Token) -> None:
        self.condition = condition
        self.token = token
        self.sample_policy = condition.policy

    def apply(
        self,
        regions: RegionList,
        course: CourseData,
        horse: CompetitorParameters,
        extra: RaceParameters,
    ) -> ApplyResult:
        ctx = ConditionContext(course=course, horse=horse, extra=extra)
        return self.condition.fn(self.token.op, self.token.value, RegionList(regions), ctx)


class AndNode:
    def __init__(self, left, right) -> None:
        self.left = left
        self.right = right
        self.sample_policy = _stronger_policy(left.sample_policy, right.sample_policy)

    def apply(self, regions, course, horse, extra) -> ApplyResult:
        left_regions, left_pred = self.left.apply(regions, course, horse, extra)
        right_regions, right_pred = self.right.apply(left_regions, course, horse, extra)
        return right_regions, _and(left_pred, right_pred)


class OrNode:
    def __init__(self, left, right) -> None:
        self.left = left
        self.right = right
        self.sample_policy = _stronger_policy(left.sample_policy, right.sample_policy)

    def apply(self, regions, course, horse, extra) -> ApplyResult:
        left_regions, left_pred = self.left.apply(regions, course, horse, extra)
        right_regions, right_pred = self.right.apply(regions, course, horse, extra)

        def predicate(state: RaceState) -> bool:
            return (_within_any(left_regions, state.pos) and left_pred(state)) or (
                _within_any(right_regions, state.pos) and right_pred(state)
            )

        if left_pred is always and right_pred is always:
            predicate = always
        return left_regions.union(right_regions), predicate


class WholeCourse:
    """The empty condition: every region qualifies."""

    sample_policy = ImmediatePolicy

    def apply(self, regions, course, horse, extra) -> ApplyResult:
        return RegionList(regions), always


class ConditionParser:
    def __init__(self, conditions: Optional[Mapping[str, Condition]] = None) -> None:
        self.conditions = conditions if conditions is not None else DEFAULT_CONDITIONS

    def tokenize(self, text: str) -> List[Token]:
        tokens: List[Token] = []
        pos = 0
        text = text.strip()
        while pos < len(text):
            match = _TOKEN_PATTERN.match(text, pos)
            if match is None:
                raise ValueError(f"Cannot tokenize condition at offset {pos}: {text!r}")
            if match.group("sep"):
                tokens.append(Token(kind="and" if match.group("sep") == "&" else "or"))
            else:
                tokens.append(
                    Token(kind="cond", name=match.group("cond"), op=match.group("op"), value=int(match.group("value")))
                )
            pos = match.end()
        return tokens

    def parse(self, tokens: Sequence[Token]):
        if not tokens:
            return WholeCourse()
        alternatives: List[List[Token]] = [[]]
        for token in tokens:
            if token.kind == "or":
                alternatives.append([])
            else:
                alternatives[-1].append(token)

        node = None
        for group in alternatives:
            branch = self._parse_conjunction(group)
            node = branch if node is None else OrNode(node, branch)
        return node

    def _parse_conjunction(self, tokens: Sequence[Token]):
        terms = list(tokens[::2])
        well_formed = (
            len(tokens) % 2 == 1
            and all(token.kind == "cond" for token in terms)
            and all(token.kind == "and" for token in tokens[1::2])
        )
        if not well_formed:
            raise ValueError("Malformed condition: expected terms separated by '&'")
        node = None
        for token in terms:
            condition = self.conditions.get(token.name)
            if condition is None:
                raise ValueError(f"Unknown condition: {token.name}")
            leaf = Leaf(condition, token)
            node = leaf if node is None else AndNode(node, leaf)
        return node


def get_parser(conditions: Optional[Mapping[str, Condition]] = None) -> ConditionParser:
    return ConditionParser(conditions)
