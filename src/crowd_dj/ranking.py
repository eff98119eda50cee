from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Sequence

from crowd_dj.aggregation import calculate_aps, calculate_penalties, collect_unique_tracks
from crowd_dj.matcher import calculate_flow_score, key_compatibility_label
from crowd_dj.models import AggregatedTrack, AudioFeatures, GuestContribution, PlayRecord, Track, as_utc
from crowd_dj.weighting import ContextualWeighting, EventConfig

logger = logging.getLogger(__name__)

HITFINDER = "hitfinder"
MIX_ASSIST = "mix-assist"
RANKING_MODES = (HITFINDER, MIX_ASSIST)


@dataclass(frozen=True, slots=True)
class DJWeights:
    popularity_weight: float
    flow_weight: float


DJ_PRESETS: dict[str, DJWeights] = {
    "crowd-pleaser": DJWeights(popularity_weight=0.9, flow_weight=0.1),
    "balanced": DJWeights(popularity_weight=0.6, flow_weight=0.4),
    "technical": DJWeights(popularity_weight=0.3, flow_weight=0.7),
    "purist": DJWeights(popularity_weight=0.1, flow_weight=0.9),
}


def get_preset(name: str) -> DJWeights:
    try:
        return DJ_PRESETS[name]
    except KeyError:
        known = ", ".join(DJ_PRESETS)
        raise ValueError(f"Unknown weight preset '{name}'. Expected one of: {known}.") from None


@dataclass(frozen=True, slots=True)
class EngineConfig:
    mode: str = HITFINDER
    weights: DJWeights = field(default_factory=lambda: DJ_PRESETS["balanced"])
    repeat_window_hours: float = 3.0
    artist_fatigue_count: int = 3
    enable_flow_score: bool = True


DEFAULT_ENGINE_CONFIG = EngineConfig()


def hitfinder_score(aps: float, total_penalty: float, weights: DJWeights) -> float:
    return weights.popularity_weight * aps - total_penalty


def mix_assist_score(aps: float, flow_score: float, total_penalty: float, weights: DJWeights) -> float:
    return weights.popularity_weight * aps + weights.flow_weight * flow_score * 10 - total_penalty


def _score_hitfinder(tracks: list[AggregatedTrack], weights: DJWeights) -> None:
    for track in tracks:
        track.ranking_score = hitfinder_score(track.aps, track.total_penalty, weights)
    tracks.sort(key=lambda t: t.ranking_score, reverse=True)


def _score_mix_assist(
    tracks: list[AggregatedTrack],
    weights: DJWeights,
    current_features: AudioFeatures | None,
    features_by_id: Mapping[str, AudioFeatures],
    enable_flow: bool,
) -> None:
    mixable_current = enable_flow and current_features is not None and current_features.supports_mixing
    for track in tracks:
        features = features_by_id.get(track.track_id)
        if mixable_current and features is not None and features.supports_mixing:
            flow = calculate_flow_score(features, current_features)
            track.flow_score = flow.flow_score
            track.bpm_diff = flow.bpm_diff
            track.key_compatibility = key_compatibility_label(flow.harmonic_compatibility)
            track.q_score = mix_assist_score(track.aps, flow.flow_score, track.total_penalty, weights)
        else:
            track.flow_score = 0.0
            track.q_score = hitfinder_score(track.aps, track.total_penalty, weights)
    tracks.sort(key=lambda t: t.q_score, reverse=True)


def generate_party_hits(
    guest_contributions: Sequence[GuestContribution],
    event_config: EventConfig,
    play_history: Sequence[PlayRecord] = (),
    current_track: Track | None = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    catalog: Mapping[str, Track] | None = None,
    weighting: ContextualWeighting | None = None,
    current_time: datetime | None = None,
) -> list[AggregatedTrack]:
    """Rank every track the crowd submitted.

    ``hitfinder`` ranks on popularity minus penalties. ``mix-assist`` adds the
    flow score against ``current_track``; tracks whose audio features are
    missing (or a missing current track) fall back to the hitfinder formula.
    """
    if config.mode not in RANKING_MODES:
        raise ValueError(f"Unknown ranking mode '{config.mode}'. Expected one of: {', '.join(RANKING_MODES)}.")

    if not guest_contributions:
        warnings.warn("No guest contributions supplied; returning an empty ranking.", RuntimeWarning, stacklevel=2)
        return []

    current_time = as_utc(current_time) if current_time is not None else datetime.now(timezone.utc)
    catalog = catalog or {}
    logger.info("Ranking %d guest contributions in %s mode", len(guest_contributions), config.mode)

    tracks: list[AggregatedTrack] = []
    for track_id, pref in collect_unique_tracks(guest_contributions).items():
        aps = calculate_aps(track_id, guest_contributions, event_config, weighting, current_time)
        penalties = calculate_penalties(
            track_id,
            pref.artist,
            play_history,
            repeat_window_hours=config.repeat_window_hours,
            artist_fatigue_count=config.artist_fatigue_count,
            current_time=current_time,
        )
        tracks.append(
            AggregatedTrack(
                track_id=track_id,
                name=pref.name,
                artist=pref.artist,
                aps=aps.aps,
                contributors=aps.contributors,
                user_count=aps.user_count,
                avg_pts=aps.avg_pts,
                penalties=penalties,
                top_contributor=aps.contributors[0].display_name if aps.contributors else "Unknown",
            )
        )
    logger.debug("Found %d unique tracks", len(tracks))

    if config.mode == HITFINDER:
        _score_hitfinder(tracks, config.weights)
    else:
        if current_track is None:
            logger.info("No track playing; mix-assist falls back to popularity scoring")
        features_by_id = {tid: t.audio_features for tid, t in catalog.items() if t.audio_features is not None}
        current_features = current_track.audio_features if current_track is not None else None
        _score_mix_assist(tracks, config.weights, current_features, features_by_id, config.enable_flow_score)

    if tracks:
        logger.info("Top track %s has APS %.2f", tracks[0].track_id, tracks[0].aps)
    return tracks
