"""
Run a Monte Carlo batch of races for one competitor.

Usage:
    python scripts/run_sim.py --course 10606 --stats 1200,900,1000,600,800 \
        --strategy senkou --skill 200331 --skill 100011 --samples 500

With ``--compare SKILL_ID`` the batch is run twice from forked builders, once
without and once with the extra skill, and the gain is reported in horse
lengths. Legacy physics can be enabled with --legacy or DERBY_SIM_LEGACY_MODE.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

# Ensure repo root is on sys.path when script is executed from anywhere
REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO_ROOT not in sys.path:
    sys.path.append(REPO_ROOT)

from derby_sim.config import get_config  # noqa: E402
from derby_sim.engine import HorseDesc, RaceSolverBuilder, compare, run_batch, summarize  # noqa: E402


def _parse_stats(raw: str):
    values = [float(v) for v in raw.split(",")]
    if len(values) != 5:
        raise argparse.ArgumentTypeError("--stats expects speed,stamina,power,guts,wisdom")
    return values


def _make_builder(args) -> RaceSolverBuilder:
    speed, stamina, power, guts, wisdom = args.stats
    horse = HorseDesc(
        speed=speed,
        stamina=stamina,
        power=power,
        guts=guts,
        wisdom=wisdom,
        strategy=args.strategy,
        distance_aptitude=args.distance_aptitude,
        surface_aptitude=args.surface_aptitude,
        strategy_aptitude=args.strategy_aptitude,
    )
    builder = (
        RaceSolverBuilder(args.samples)
        .course(args.course)
        .mood(args.mood)
        .ground(args.ground)
        .weather(args.weather)
        .season(args.season)
        .horse(horse)
    )
    if args.seed is not None:
        builder.seed(args.seed)
    if args.legacy:
        builder.with_legacy_mode()
    if get_config("builder.use_default_pacer", True) and not args.no_pacer:
        builder.use_default_pacer(get_config("builder.pacer_opening_leg_accel", True))
    if get_config("builder.foot_conservation", True):
        builder.with_foot_conservation()
    if get_config("builder.stamina_duel", True):
        builder.with_stamina_duel()
    if get_config("builder.activate_counts_as_random", False):
        builder.with_activate_counts_as_random()
    for skill_id in args.skill:
        builder.add_skill(skill_id)
    return builder


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a batch of race simulations.")
    parser.add_argument("--course", required=True, help="Course ID from the course data set.")
    parser.add_argument("--stats", type=_parse_stats, required=True, help="speed,stamina,power,guts,wisdom")
    parser.add_argument("--strategy", default="senkou", help="Running style (nige, senkou, sasi, oikomi, oonige).")
    parser.add_argument("--distance-aptitude", default="A")
    parser.add_argument("--surface-aptitude", default="A")
    parser.add_argument("--strategy-aptitude", default="A")
    parser.add_argument("--mood", default="great")
    parser.add_argument("--ground", default="good")
    parser.add_argument("--weather", default="sunny")
    parser.add_argument("--season", default="spring")
    parser.add_argument("--skill", action="append", default=[], help="Skill ID to add; repeatable.")
    parser.add_argument("--compare", metavar="SKILL_ID", help="Report the gain from adding this skill.")
    parser.add_argument("--samples", type=int, default=get_config("race_engine.default_samples", 500))
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--no-pacer", action="store_true", help="Disable position keep against a pacer.")
    parser.add_argument("--legacy", action="store_true", help="Use the legacy last spurt formulas.")
    parser.add_argument("--verbose", action="store_true", help="Log skill activations.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    builder = _make_builder(args)
    if args.compare:
        with_skill = builder.fork().add_skill(args.compare)
        gaps = compare(builder, with_skill)
        stats = summarize(gaps)
        print(f"Skill {args.compare} over {args.samples} samples (horse lengths):")
    else:
        times = run_batch(builder)
        stats = summarize(times)
        print(f"Finish times over {args.samples} samples (seconds):")

    for key in ("min", "max", "mean", "median"):
        print(f"  {key:>6}: {stats[key]:.3f}")


if __name__ == "__main__":
    main()
