import pytest

from derby_sim.engine.course import (
    base_speed,
    course_speed_modifier,
    is_sorted_by_start,
    phase_end,
    phase_start,
    section_length,
)
from derby_sim.engine.data_models import (
    Aptitude,
    CompetitorParameters,
    CourseData,
    CourseSlope,
    DistanceType,
    Strategy,
    Surface,
    ThresholdStat,
)


def _course(distance: float, status=()) -> CourseData:
    return CourseData(
        race_track_id=10001,
        distance=distance,
        distance_type=DistanceType.MEDIUM,
        surface=Surface.TURF,
        course_set_status=tuple(status),
    )


def _stats(speed: float = 900, stamina: float = 600) -> CompetitorParameters:
    return CompetitorParameters(
        speed=speed,
        stamina=stamina,
        power=800,
        guts=400,
        wisdom=500,
        strategy=Strategy.PACE_CHASER,
        distance_aptitude=Aptitude.A,
        surface_aptitude=Aptitude.A,
        strategy_aptitude=Aptitude.A,
        raw_stamina=stamina,
    )


@pytest.mark.parametrize("distance, expected", [(2000, 20.0), (1000, 21.0), (3000, 19.0)])
def test_base_speed_worked_examples(distance, expected):
    assert base_speed(_course(distance)) == expected


def test_phase_boundaries_for_3000m():
    assert phase_start(3000, 1) == 500
    assert phase_end(3000, 2) == 2500
    assert phase_start(3000, 2) == 2000
    assert phase_start(3000, 3) == 2500
    assert phase_end(3000, 3) == 3000


@pytest.mark.parametrize("distance", [1000, 1200, 1400, 1600, 1800, 2000, 2200, 2400, 2500, 3200, 3600])
def test_phase_boundaries_are_contiguous(distance):
    assert phase_start(distance, 0) == 0
    for phase in range(3):
        assert phase_end(distance, phase) == phase_start(distance, phase + 1)
    assert phase_start(distance, 1) == distance / 6
    assert phase_start(distance, 2) == distance * 2 / 3


def test_phase_rejects_unknown_phase():
    with pytest.raises(ValueError):
        phase_start(2000, 4)


def test_section_length():
    assert section_length(_course(2400)) == 100


def test_course_speed_modifier_counts_satisfied_tiers():
    assert course_speed_modifier(_course(2000), _stats()) == 1.0
    # 900 is just short of the third tier (900.03)
    assert course_speed_modifier(_course(2000, [ThresholdStat.SPEED]), _stats(speed=900)) == pytest.approx(1.15)
    assert course_speed_modifier(_course(2000, [ThresholdStat.SPEED]), _stats(speed=1500)) == pytest.approx(1.2)
    both = _course(2000, [ThresholdStat.SPEED, ThresholdStat.STAMINA])
    assert course_speed_modifier(both, _stats(speed=1500, stamina=200)) == pytest.approx(1.125)


def test_is_sorted_by_start():
    assert is_sorted_by_start([])
    assert is_sorted_by_start([CourseSlope(0, 100, 10000), CourseSlope(200, 100, -10000)])
    assert not is_sorted_by_start([CourseSlope(200, 100, 10000), CourseSlope(0, 100, -10000)])
