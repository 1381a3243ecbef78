from collections import Counter
from unittest import mock

import pytest

from derby_sim.engine.constants import (
    DEPLETED_DECELERATION,
    PACE_DOWN_SPEED_COEF,
    PHASE_DECELERATION,
    POSITION_KEEP_COOLDOWN,
)
from derby_sim.engine.data_models import (
    Aptitude,
    CompetitorParameters,
    CourseData,
    CourseSlope,
    DistanceType,
    Phase,
    Strategy,
    Surface,
)
from derby_sim.engine.hp_policy import NoopHpPolicy
from derby_sim.engine.region import Region
from derby_sim.engine.rng import RaceRng
from derby_sim.engine.runner import run_solver
from derby_sim.engine.skills import PendingSkill, SkillEffect, SkillRarity, SkillType, always, never
from derby_sim.engine.solver import RaceSolver, last_spurt_speed

DT = 1.0 / 15.0


def _course(distance: float = 2000, slopes=()) -> CourseData:
    return CourseData(
        race_track_id=10001,
        distance=distance,
        distance_type=DistanceType.MEDIUM,
        surface=Surface.TURF,
        slopes=tuple(slopes),
    )


def _horse(strategy: Strategy = Strategy.PACE_CHASER, **overrides) -> CompetitorParameters:
    stats = dict(
        speed=1000,
        stamina=800,
        power=1000,
        guts=600,
        wisdom=800,
        strategy=strategy,
        distance_aptitude=Aptitude.A,
        surface_aptitude=Aptitude.A,
        strategy_aptitude=Aptitude.A,
        raw_stamina=800,
    )
    stats.update(overrides)
    return CompetitorParameters(**stats)


def _skill(skill_id, kind, modifier, duration=0.0, trigger=Region(0, 10), rarity=SkillRarity.WHITE, condition=always):
    return PendingSkill(
        skill_id=skill_id,
        rarity=rarity,
        trigger=trigger,
        extra_condition=condition,
        effects=[SkillEffect(type=kind, base_duration=duration, modifier=modifier)],
    )


def _solver(skills=(), course=None, horse=None, seed=1, **kwargs) -> RaceSolver:
    return RaceSolver(
        horse=horse or _horse(),
        course=course or _course(),
        rng=RaceRng(seed),
        skills=list(skills),
        **kwargs,
    )


def _run(solver: RaceSolver):
    positions = [solver.pos]
    while solver.pos < solver.course.distance:
        solver.step(DT)
        positions.append(solver.pos)
    return positions


def test_position_is_monotonic_and_race_finishes():
    solver = _solver()
    positions = _run(solver)
    assert all(b >= a for a, b in zip(positions, positions[1:]))
    assert positions[-1] >= 2000
    assert solver.accumulate_time.t < 200


def test_no_skill_finish_time_follows_phase_speeds():
    solver = _solver()
    v0, v1 = solver.base_target_speed[0], solver.base_target_speed[1]
    spurt = solver.last_spurt_speed
    # lower bound: every phase run at its target speed from the first metre
    estimate = (2000 / 6) / v0 + (2000 / 2) / v1 + (2000 / 3) / spurt

    settled = []
    while solver.pos < 2000:
        solver.step(DT)
        if 1000 <= solver.pos < 1300:
            settled.append(solver.current_speed)

    assert settled and all(speed == pytest.approx(v1, abs=1e-12) for speed in settled)
    coarse = run_solver(_solver(), DT).finish_time
    fine = run_solver(_solver(), 1.0 / 1000.0).finish_time
    # accelerating and the start delay only ever add time
    assert estimate < fine < estimate + 2.0
    assert coarse == pytest.approx(fine, abs=0.1)


def test_start_dash_caps_speed_and_exits_once():
    solver = _solver()
    assert solver.modifiers.accel.value == 24.0
    exits = 0
    was_start_dash = solver.start_dash
    while solver.pos < 2000:
        solver.step(DT)
        if solver.start_dash:
            assert solver.current_speed <= solver.start_dash_speed
        elif was_start_dash:
            exits += 1
            assert solver.current_speed == pytest.approx(solver.start_dash_speed)
        was_start_dash = solver.start_dash
    assert exits == 1
    assert solver.modifiers.accel.value == 0.0


def test_start_dash_target_is_85_percent_of_base_speed():
    solver = _solver(course=_course(1000))
    assert solver.start_dash_speed == pytest.approx(0.85 * 21.0)
    assert solver.current_speed == 3.0


def test_unsorted_slopes_raise():
    slopes = [CourseSlope(800, 100, 10000), CourseSlope(200, 100, 10000)]
    with pytest.raises(ValueError, match="sorted"):
        _solver(course=_course(slopes=slopes))


def test_phase_transitions_at_course_fractions():
    solver = _solver(course=_course(2400))
    boundaries = {Phase.MIDDLE: 400.0, Phase.FINAL: 1600.0}
    seen = {}
    last_seen = False
    while solver.pos < 2400:
        previous_pos, previous_phase = solver.pos, solver.phase
        solver.step(DT)
        if solver.phase != previous_phase:
            seen[solver.phase] = (previous_pos, solver.pos)
        if solver.reported_phase == Phase.LAST and not last_seen:
            last_seen = True
            assert previous_pos < 2000.0 <= solver.pos
    for phase, boundary in boundaries.items():
        before, after = seen[phase]
        assert before < boundary <= after
        assert after - boundary < 30.0 * DT
    assert last_seen
    # phase 3 is only reported; coefficients stay on phase 2
    assert solver.phase == Phase.FINAL


def test_uphill_slows_target_speed():
    flat = _solver()
    hilly = _solver(course=_course(slopes=[CourseSlope(0, 2000, 20000)]))
    flat.step(DT)
    hilly.step(DT)
    for _ in range(200):
        flat.step(DT)
        hilly.step(DT)
    assert hilly.hill_idx == 0
    assert hilly.target_speed == pytest.approx(flat.target_speed - 2.0 * 200.0 / 1000)


def test_stat_effects_floor_at_one_and_do_not_leak():
    horse = _horse()
    solver = _solver([_skill("debuff", SkillType.SPEED_UP, -5000.0)], horse=horse)
    assert solver.horse.speed == 1
    assert horse.speed == 1000


def test_gate_skills_apply_before_minimum_speed():
    base = _solver()
    boosted = _solver([_skill("guts", SkillType.GUTS_UP, 400.0)])
    assert boosted.horse.guts == 1000
    assert boosted.min_speed > base.min_speed


def test_timed_skill_activates_and_expires_once():
    events = []

    def on_activate(solver, skill_id, perspective):
        events.append(("on", skill_id, solver.accumulate_time.t))

    def on_deactivate(solver, skill_id, perspective):
        events.append(("off", skill_id, solver.accumulate_time.t))

    solver = _solver(
        [_skill("boost", SkillType.TARGET_SPEED, 0.35, duration=2.0, trigger=Region(100, 200))],
        on_skill_activate=on_activate,
        on_skill_deactivate=on_deactivate,
    )
    _run(solver)
    solver.cleanup()
    assert [e[:2] for e in events] == [("on", "boost"), ("off", "boost")]
    # base duration is scaled by distance / 1000
    assert events[1][2] - events[0][2] == pytest.approx(4.0, abs=DT)
    assert solver.modifiers.target_speed.value == 0.0
    assert solver.activate_count[0] == 1
    assert "boost" in solver.used_skills


def test_skill_fails_once_trigger_is_passed():
    solver = _solver([_skill("never", SkillType.TARGET_SPEED, 0.35, 2.0, trigger=Region(100, 200), condition=never)])
    while solver.pos < 250:
        solver.step(DT)
    assert solver.pending_skills == []
    assert "never" not in solver.used_skills


def test_random_gold_never_activates_a_skill_twice():
    activations = Counter()
    golds = [
        _skill(f"gold{i}", SkillType.TARGET_SPEED, 0.15, 3.0, trigger=Region(1500, 1510), rarity=SkillRarity.GOLD)
        for i in range(3)
    ]
    stat_gold = _skill("statgold", SkillType.SPEED_UP, 60.0, trigger=Region(1500, 1510), rarity=SkillRarity.GOLD)
    activator = _skill("lucky", SkillType.ACTIVATE_RANDOM_GOLD, 2.0)
    solver = _solver(
        [activator] + golds + [stat_gold],
        on_skill_activate=lambda s, skill_id, p: activations.update([skill_id]),
    )
    picked = {g.skill_id for g in golds} & solver.used_skills
    assert len(picked) == 2
    assert "statgold" not in solver.used_skills
    assert len(solver.pending_skills) == 2

    _run(solver)
    assert set(activations) == {"lucky", "gold0", "gold1", "gold2", "statgold"}
    assert all(count == 1 for count in activations.values())


def test_random_gold_choice_is_seeded():
    def picked(seed):
        golds = [_skill(f"gold{i}", SkillType.ACCEL, 0.2, 2.0, Region(900, 910), SkillRarity.GOLD) for i in range(5)]
        solver = _solver([_skill("lucky", SkillType.ACTIVATE_RANDOM_GOLD, 2.0)] + golds, seed=seed)
        return solver.used_skills

    assert picked(11) == picked(11)


def test_start_delay_skills():
    base = _solver(seed=5)
    halved = _solver([_skill("focus", SkillType.MULTIPLY_START_DELAY, 0.5)], seed=5)
    fixed = _solver([_skill("gate", SkillType.SET_START_DELAY, 0.0)], seed=5)
    assert halved.start_delay == pytest.approx(base.start_delay * 0.5)
    assert fixed.start_delay == 0.0


def test_start_delay_holds_position_until_elapsed():
    solver = _solver(seed=3)
    delay = solver.start_delay
    assert 0.0 <= delay < 0.1
    solver.step(delay / 2)
    assert solver.pos == 0.0
    solver.step(DT)
    assert solver.pos > 0.0
    assert solver.accumulate_time.t == pytest.approx(delay / 2 + DT)


def test_evolved_duration_extension_applies_to_later_skills_only():
    second = PendingSkill(
        skill_id="later",
        rarity=SkillRarity.EVOLUTION,
        trigger=Region(0, 10),
        extra_condition=always,
        effects=[SkillEffect(SkillType.TARGET_SPEED, 2.0, 0.1)],
    )
    first = PendingSkill(
        skill_id="first",
        rarity=SkillRarity.EVOLUTION,
        trigger=Region(0, 10),
        extra_condition=always,
        effects=[SkillEffect(SkillType.EXTEND_EVOLVED_DURATION, 0.0, 1.5), SkillEffect(SkillType.TARGET_SPEED, 2.0, 0.1)],
    )
    # pending skills are swept from the back, so "first" activates first
    solver = _solver([second, first])
    timers = {skill.skill_id: skill.duration_timer.t for skill in solver.active_target_speed_skills}
    assert timers == {"first": -4.0, "later": -6.0}


def test_recovery_calls_hp_policy():
    hp = mock.Mock(wraps=NoopHpPolicy())
    solver = _solver([_skill("heal", SkillType.RECOVERY, 0.055)], hp=hp)
    hp.recover.assert_called_once_with(0.055)
    hp.init.assert_called_once()
    assert solver.activate_count_heal == 1


def test_legacy_mode_drops_guts_from_last_spurt():
    horse = _horse()
    course = _course()
    assert last_spurt_speed(horse, course, legacy_mode=True) < last_spurt_speed(horse, course)
    assert _solver(legacy_mode=True).last_spurt_speed < _solver().last_spurt_speed


def test_pacer_is_stepped_only_inside_position_keep_window():
    pacer = _solver(horse=_horse(Strategy.FRONT_RUNNER), seed=2)
    solver = _solver(pacer=pacer, seed=3)
    assert pacer.start_delay == 0.0

    saw_pace_down = False
    pacer_pos_at_exit = None
    while solver.pos < 2000:
        solver.step(DT)
        saw_pace_down = saw_pace_down or solver.is_pace_down
        if solver.pos >= solver.pos_keep_end:
            assert not solver.is_pace_down
            if pacer_pos_at_exit is None:
                pacer_pos_at_exit = pacer.pos
    assert saw_pace_down
    assert pacer.pos == pacer_pos_at_exit
    assert 0.0 < pacer.pos < 2000


def test_front_runners_never_pace_down():
    pacer = _solver(horse=_horse(Strategy.FRONT_RUNNER), seed=2)
    solver = _solver(horse=_horse(Strategy.RUNAWAY), pacer=pacer)
    while solver.pos < 600:
        solver.step(DT)
        assert not solver.is_pace_down


def test_cleanup_reports_skills_still_active():
    deactivated = []
    solver = _solver(
        [_skill("late", SkillType.ACCEL, 0.2, duration=50.0, trigger=Region(1900, 1950))],
        on_skill_deactivate=lambda s, skill_id, p: deactivated.append(skill_id),
    )
    _run(solver)
    assert deactivated == []
    solver.cleanup()
    assert deactivated == ["late"]


class _RecordingHp(NoopHpPolicy):
    def __init__(self, transition: float = -1.0) -> None:
        self.transition = transition
        self.remaining = True
        self.pair_calls = 0
        self.recovered = []

    def has_remaining_hp(self) -> bool:
        return self.remaining

    def recover(self, modifier: float) -> None:
        self.recovered.append(modifier)

    def get_last_spurt_pair(self, state, max_speed, base_target_speed_late):
        self.pair_calls += 1
        return (self.transition, max_speed)


class _StandingPacer:
    """A pacer that stays wherever the test puts it."""

    def __init__(self, pos: float) -> None:
        self.pos = pos
        self.start_delay = 0.0

    def step(self, dt: float) -> None:
        pass


def _paced_solver(**kwargs) -> RaceSolver:
    solver = _solver(pacer=_StandingPacer(1000.0), **kwargs)
    while solver.pos == 0.0:
        solver.step(DT)
    return solver


# --- Current speed skills --------------------------------------------------------


def test_current_speed_moves_position_without_touching_speed():
    plain = _solver()
    boosted = _solver([_skill("burst", SkillType.CURRENT_SPEED, 0.5, duration=1.0, trigger=Region(500, 510))])
    while plain.pos < 1100:
        plain.step(DT)
        boosted.step(DT)
    assert "burst" in boosted.used_skills
    assert boosted.active_current_speed_skills == []
    # 0.5 m/s for 2 s of scaled duration, give or take one frame
    assert boosted.pos - plain.pos == pytest.approx(1.0, abs=DT)
    assert boosted.current_speed == plain.current_speed
    assert boosted.modifiers.current_speed.value == 0.0


def test_natural_deceleration_releases_speed_on_expiry():
    expired = []
    solver = _solver(
        [_skill("glide", SkillType.CURRENT_SPEED_WITH_NATURAL_DECELERATION, 0.5, 1.0, Region(1000, 1010))],
        on_skill_deactivate=lambda s, skill_id, p: expired.append(skill_id),
    )
    while not expired:
        solver.step(DT)
    assert expired == ["glide"]
    assert solver.phase == Phase.MIDDLE
    released = solver.current_speed
    assert released == pytest.approx(solver.base_target_speed[1] + 0.5, abs=DT)
    assert solver.modifiers.one_frame_accel == 0.0

    solver.step(DT)
    assert solver.accel == PHASE_DECELERATION[Phase.MIDDLE]
    assert solver.current_speed < released


# --- Position keep -------------------------------------------------------------


def test_pace_down_exits_on_gap_and_waits_out_cooldown():
    solver = _paced_solver()
    while solver.pos < 100:
        solver.step(DT)

    solver.pacer.pos = solver.pos + 1
    solver.step(DT)
    assert solver.is_pace_down
    assert solver.pos_keep_speed_coef == PACE_DOWN_SPEED_COEF

    solver.pacer.pos = solver.pos + 50
    solver.step(DT)
    assert not solver.is_pace_down
    assert solver.pos_keep_speed_coef == 1.0
    assert solver.pos_keep_cooldown.t == POSITION_KEEP_COOLDOWN

    ticks = 0
    while not solver.is_pace_down:
        solver.pacer.pos = solver.pos + 1
        solver.step(DT)
        ticks += 1
    assert ticks * DT == pytest.approx(3.0, abs=1.5 * DT)
    assert solver.pos < solver.pos_keep_end


def test_pace_down_lasts_at_most_one_section():
    solver = _paced_solver()
    previous = solver.pos
    while not solver.is_pace_down:
        solver.pacer.pos = solver.pos + 2
        solver.step(DT)
    while solver.is_pace_down:
        previous = solver.pos
        solver.pacer.pos = solver.pos + 2
        solver.step(DT)
    start = solver.pos_keep_effect_start
    assert previous - start <= solver.section_length < solver.pos - start
    assert solver.pos_keep_cooldown.t == POSITION_KEEP_COOLDOWN


def test_speed_skill_cancels_pace_down():
    solver = _paced_solver(skills=[_skill("boost", SkillType.TARGET_SPEED, 0.35, 1.0, Region(40, 50))])
    entered = False
    while "boost" not in solver.used_skills:
        solver.pacer.pos = solver.pos + 2
        solver.step(DT)
        if "boost" not in solver.used_skills:
            entered = entered or solver.is_pace_down
            if entered:
                assert solver.is_pace_down
    assert entered
    assert not solver.is_pace_down
    assert solver.pos_keep_cooldown.t == POSITION_KEEP_COOLDOWN


# --- HP and last spurt ---------------------------------------------------------


def test_depleted_hp_drops_to_minimum_speed():
    hp = _RecordingHp()
    solver = _solver(hp=hp)
    while solver.pos < 500:
        solver.step(DT)
    before = solver.current_speed
    hp.remaining = False
    solver.step(DT)
    assert solver.target_speed == solver.min_speed
    assert solver.accel == DEPLETED_DECELERATION
    assert solver.current_speed < before

    for _ in range(300):
        solver.step(DT)
        assert solver.current_speed >= solver.min_speed
    assert solver.current_speed == pytest.approx(solver.min_speed)


def _healed_at_phase_2(legacy_mode):
    hp = _RecordingHp(transition=1900.0)
    seen = []
    heal = _skill("heal", SkillType.RECOVERY, 0.05, trigger=Region(1300, 1400), condition=lambda s: s.phase >= 2)
    solver = _solver(
        [heal],
        hp=hp,
        legacy_mode=legacy_mode,
        on_skill_activate=lambda s, skill_id, p: seen.append((s.last_spurt_transition, hp.pair_calls)),
    )
    while "heal" not in solver.used_skills:
        solver.step(DT)
    return solver, hp, seen


def test_recovery_after_phase_2_rechecks_last_spurt():
    solver, hp, seen = _healed_at_phase_2(legacy_mode=False)
    assert seen == [(1900.0, 1)]
    assert hp.pair_calls == 1
    assert hp.recovered == [0.05]
    assert not solver.is_last_spurt


def test_legacy_recovery_leaves_last_spurt_to_the_step():
    solver, hp, seen = _healed_at_phase_2(legacy_mode=True)
    assert seen == [(None, 0)]
    assert hp.pair_calls == 1
    assert solver.last_spurt_transition == 1900.0
    assert hp.recovered == [0.05]


def test_last_spurt_transition_is_computed_once():
    hp = _RecordingHp(transition=1800.0)
    solver = _solver(hp=hp)
    spurt_pos = None
    while solver.pos < 2000:
        solver.step(DT)
        if solver.is_last_spurt and spurt_pos is None:
            spurt_pos = solver.pos
    assert hp.pair_calls == 1
    assert solver.last_spurt_transition == 1800.0
    assert 1800.0 <= spurt_pos < 1802.0
    assert solver.target_speed == solver.last_spurt_speed
