from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path

from crowd_dj.analysis import EventSnapshot, build_event_snapshot
from crowd_dj.config import env_float, env_int, env_str, engine_config_from_env, load_local_env_file, refresh_config_from_env
from crowd_dj.pipeline import CycleResult, run_cycle
from crowd_dj.ranking import DJ_PRESETS, RANKING_MODES, get_preset
from crowd_dj.refresh import RefreshController, format_refresh_notification, should_initialize_recommendations
from crowd_dj.smart_filters import get_quick_preset
from crowd_dj.weighting import EventConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crowd-weighted track ranking for one event snapshot")
    parser.add_argument("snapshot", help="Path to an event snapshot JSON file")
    parser.add_argument(
        "--previous",
        default=None,
        help="Path to the snapshot shown last cycle; its ranking is replayed before this one",
    )
    parser.add_argument(
        "--mode",
        choices=RANKING_MODES,
        default=None,
        help="Ranking mode (defaults to RANKING_MODE env or hitfinder)",
    )
    parser.add_argument(
        "--preset",
        choices=sorted(DJ_PRESETS),
        default=None,
        help="Popularity/flow weight preset (defaults to WEIGHT_PRESET env or balanced)",
    )
    parser.add_argument(
        "--filters",
        default=None,
        help="Quick preset id applied as smart filters (e.g. family-friendly, peak-hour)",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=env_int("TOP_TRACKS", 10),
        help="Number of ranked tracks to print (defaults to TOP_TRACKS env or 10)",
    )
    parser.add_argument(
        "--discovery-limit",
        type=int,
        default=env_int("DISCOVERY_LIMIT", 20),
        help="Maximum discovery suggestions (defaults to DISCOVERY_LIMIT env or 20)",
    )
    parser.add_argument(
        "--min-synergy",
        type=float,
        default=env_float("MIN_SYNERGY_SCORE", 0.5),
        help="Minimum synergy score for discovery (defaults to MIN_SYNERGY_SCORE env or 0.5)",
    )
    parser.add_argument(
        "--log-level",
        default=env_str("LOG_LEVEL", "WARNING"),
        help="Logging level (defaults to LOG_LEVEL env or WARNING)",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def load_snapshot(path: str) -> EventSnapshot:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Snapshot must be a JSON object.")
    return build_event_snapshot(raw)


def print_cycle(result: CycleResult, snapshot: EventSnapshot, controller: RefreshController, top: int) -> None:
    if not controller.state.is_initialized:
        missing = controller.config.minimum_guests_for_recommendations - snapshot.guest_count
        print(f"Waiting for {missing} more guest(s) before showing recommendations.")
        return

    print(f"Top tracks ({snapshot.guest_count} guests)")
    rows = result.filtered if result.filtered is not None else result.ranking
    for rank, row in enumerate(rows[:top], start=1):
        print(f"{rank:>3}. {row.name} - {row.artist}  score={row.score:.2f}")

    if result.discovery:
        print()
        print("Discovery")
        for item in result.discovery:
            print(f"  {item.track.name} - {item.track.artist}  synergy={item.synergy_score:.3f}")

    rejected = [r for r in result.vibe_results if not r.passed]
    if rejected:
        print()
        print(f"Vibe gate rejected {len(rejected)} of {len(result.vibe_results)} catalog tracks")

    if result.notification is not None and result.notification.should_notify:
        print()
        print(format_refresh_notification(result.notification))


def main(argv: list[str] | None = None) -> None:
    load_local_env_file()
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    previous = None
    try:
        snapshot = load_snapshot(args.snapshot)
        if args.previous:
            previous = load_snapshot(args.previous)
        engine_config = engine_config_from_env()
        if args.mode:
            engine_config = replace(engine_config, mode=args.mode)
        if args.preset:
            engine_config = replace(engine_config, weights=get_preset(args.preset))
        if args.filters:
            snapshot.smart_filters = get_quick_preset(args.filters).config
            if previous is not None:
                previous.smart_filters = snapshot.smart_filters
    except (OSError, ValueError) as exc:
        parser.error(str(exc))

    controller = RefreshController(refresh_config_from_env())
    if previous is not None:
        run_cycle(
            previous,
            EventConfig(),
            engine_config=engine_config,
            controller=controller,
            discovery_limit=args.discovery_limit,
            min_synergy_score=args.min_synergy,
        )

    if not should_initialize_recommendations(snapshot.guest_count, controller.config):
        print_cycle(CycleResult(ranking=[]), snapshot, controller, args.top)
        return

    result = run_cycle(
        snapshot,
        EventConfig(),
        engine_config=engine_config,
        controller=controller,
        discovery_limit=args.discovery_limit,
        min_synergy_score=args.min_synergy,
    )
    print_cycle(result, snapshot, controller, args.top)


if __name__ == "__main__":
    main()
