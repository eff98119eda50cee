from __future__ import annotations

import logging
from dataclasses import dataclass, field

from crowd_dj.analysis import EventSnapshot
from crowd_dj.discovery import DEFAULT_LIMIT, DEFAULT_MIN_SYNERGY_SCORE, generate_discovery_queue
from crowd_dj.models import AggregatedTrack, RefreshNotification, SynergyTrack, TrackValidationResult
from crowd_dj.ranking import DEFAULT_ENGINE_CONFIG, EngineConfig, generate_party_hits
from crowd_dj.refresh import RefreshController
from crowd_dj.smart_filters import FilterableTrack, apply_smart_filters, filterable_from_ranking
from crowd_dj.vibe_gate import validate_track_against_vibe
from crowd_dj.weighting import ContextualWeighting, EventConfig

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CycleResult:
    ranking: list[AggregatedTrack]
    filtered: list[FilterableTrack] | None = None
    discovery: list[SynergyTrack] = field(default_factory=list)
    vibe_results: list[TrackValidationResult] = field(default_factory=list)
    notification: RefreshNotification | None = None


def run_cycle(
    snapshot: EventSnapshot,
    event_config: EventConfig,
    engine_config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    controller: RefreshController | None = None,
    weighting: ContextualWeighting | None = None,
    discovery_limit: int = DEFAULT_LIMIT,
    min_synergy_score: float = DEFAULT_MIN_SYNERGY_SCORE,
) -> CycleResult:
    """One refresh cycle over a single snapshot.

    Ranking feeds the smart filters and the refresh controller; discovery and
    the vibe gate run alongside on the catalog and do not see the ranking.
    """
    ranking = generate_party_hits(
        snapshot.contributions,
        event_config,
        play_history=snapshot.play_history,
        current_track=snapshot.current_track,
        config=engine_config,
        catalog=snapshot.catalog,
        weighting=weighting,
        current_time=snapshot.current_time,
    )

    result = CycleResult(ranking=ranking)
    curated = ranking
    if snapshot.smart_filters is not None:
        result.filtered = apply_smart_filters(
            filterable_from_ranking(ranking, snapshot.catalog),
            snapshot.play_history,
            snapshot.smart_filters,
        )
        curated = result.filtered

    if snapshot.seed_track_ids:
        result.discovery = generate_discovery_queue(
            snapshot.seed_tracks,
            list(snapshot.catalog.values()),
            limit=discovery_limit,
            min_synergy_score=min_synergy_score,
        )

    if snapshot.vibe_profile is not None:
        result.vibe_results = [
            validate_track_against_vibe(track, snapshot.vibe_profile) for track in snapshot.catalog.values()
        ]

    if controller is not None:
        result.notification = controller.evaluate(snapshot.guest_count, curated, snapshot.current_time)

    logger.info(
        "Cycle complete: %d ranked, %d discovery, refresh=%s",
        len(ranking),
        len(result.discovery),
        result.notification.reason if result.notification else None,
    )
    return result
