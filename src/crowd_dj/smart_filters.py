"""Presentation-layer filters and boosts applied to an already-ranked list.

The pipeline runs in fixed stages: content filter, repetition filter,
audio-feature filters, then the era re-score, then a re-sort. Filters only
remove candidates; the era stage only rescales scores.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Mapping, Sequence

from crowd_dj.models import AggregatedTrack, AudioFeatures, PlayRecord, SmartFiltersConfig, Track

logger = logging.getLogger(__name__)

REPETITION_TIERS = {"off": 0, "low": 3, "medium": 5, "high": 10}


@dataclass(frozen=True, slots=True)
class FilterableTrack:
    track_id: str
    name: str
    artist: str
    score: float
    explicit: bool = False
    release_year: int | None = None
    audio_features: AudioFeatures | None = None


@dataclass(frozen=True, slots=True)
class QuickPreset:
    preset_id: str
    name: str
    description: str
    config: SmartFiltersConfig


DEFAULT_FILTERS = SmartFiltersConfig()

QUICK_PRESETS: tuple[QuickPreset, ...] = (
    QuickPreset(
        preset_id="family-friendly",
        name="Family Friendly",
        description="No explicit content",
        config=SmartFiltersConfig(no_explicit=True),
    ),
    QuickPreset(
        preset_id="high-energy-throwback",
        name="High-Energy Throwback",
        description="Intense nostalgic hits from 80s-90s",
        config=SmartFiltersConfig(
            energy_min=0.75,
            era_bias="1980-1999",
            era_bias_multiplier=1.8,
            repetition_velocity="low",
        ),
    ),
    QuickPreset(
        preset_id="vocal-showcase",
        name="Vocal Showcase",
        description="Powerful vocals, wide artist variety",
        config=SmartFiltersConfig(vocal_emphasis=True, instrumentalness_max=0.2, repetition_velocity="high"),
    ),
    QuickPreset(
        preset_id="peak-hour",
        name="Peak Hour",
        description="Maximum energy and danceability",
        config=SmartFiltersConfig(energy_min=0.8, danceability_min=0.7, repetition_velocity="medium"),
    ),
    QuickPreset(
        preset_id="cool-down",
        name="Cool Down / End of Night",
        description="Mellow, soulful vibes",
        config=SmartFiltersConfig(energy_max=0.5, valence_max=0.6, repetition_velocity="low"),
    ),
)


def as_filterable(track: Track, score: float) -> FilterableTrack:
    return FilterableTrack(
        track_id=track.track_id,
        name=track.name,
        artist=track.artist,
        score=score,
        explicit=track.explicit,
        release_year=track.release_year,
        audio_features=track.audio_features,
    )


def filterable_from_ranking(
    ranked: Sequence[AggregatedTrack],
    catalog: Mapping[str, Track],
) -> list[FilterableTrack]:
    """Attach catalog metadata to ranking rows; unknown tracks carry no features."""
    rows: list[FilterableTrack] = []
    for row in ranked:
        track = catalog.get(row.track_id) or Track(track_id=row.track_id, name=row.name, artist=row.artist)
        rows.append(as_filterable(track, row.score))
    return rows


def get_quick_preset(preset_id: str) -> QuickPreset:
    for preset in QUICK_PRESETS:
        if preset.preset_id == preset_id:
            return preset
    raise ValueError(f"Unknown quick preset '{preset_id}'.")


def repetition_window(config: SmartFiltersConfig) -> int:
    if config.repetition_velocity == "custom":
        return max(config.repetition_velocity_n, 0)
    try:
        return REPETITION_TIERS[config.repetition_velocity]
    except KeyError:
        raise ValueError(f"Unknown repetition velocity '{config.repetition_velocity}'.") from None


def passes_content_filter(track: FilterableTrack, config: SmartFiltersConfig) -> bool:
    return not (config.no_explicit and track.explicit)


def passes_repetition_filter(
    track: FilterableTrack,
    play_history: Sequence[PlayRecord],
    config: SmartFiltersConfig,
) -> bool:
    """Reject a track whose artist is among the last N plays."""
    n = repetition_window(config)
    if n == 0:
        return True
    artist = track.artist.strip().lower()
    last_n = sorted(play_history, key=lambda p: p.played_at, reverse=True)[:n]
    return all(play.artist.strip().lower() != artist for play in last_n)


def passes_audio_feature_filters(track: FilterableTrack, config: SmartFiltersConfig) -> bool:
    features = track.audio_features
    if features is None:
        return True

    checks = (
        (config.energy_min, features.energy, lambda bound, v: v >= bound),
        (config.energy_max, features.energy, lambda bound, v: v <= bound),
        (config.danceability_min, features.danceability, lambda bound, v: v >= bound),
        (config.valence_min, features.valence, lambda bound, v: v >= bound),
        (config.valence_max, features.valence, lambda bound, v: v <= bound),
    )
    for bound, value, ok in checks:
        if bound is not None and value is not None and not ok(bound, value):
            return False

    if config.vocal_emphasis and features.instrumentalness is not None:
        return features.instrumentalness <= config.instrumentalness_max
    return True


def parse_era(era: str) -> tuple[int, int] | None:
    """``"1990s"`` -> (1990, 1999), ``"1980-1999"`` -> (1980, 1999), ``"1995"`` -> (1995, 1995)."""
    text = era.strip().lower()
    try:
        if "-" in text:
            start, end = text.split("-", 1)
            return int(start), int(end)
        if text.endswith("s"):
            decade = int(text[:-1])
            return decade, decade + 9
        year = int(text)
        return year, year
    except ValueError:
        return None


def apply_era_bias(track: FilterableTrack, config: SmartFiltersConfig) -> float:
    if not config.era_bias or not track.release_year:
        return track.score
    bounds = parse_era(config.era_bias)
    if bounds is None:
        return track.score
    start, end = bounds
    if start <= track.release_year <= end:
        return track.score * config.era_bias_multiplier
    return track.score


def apply_smart_filters(
    tracks: Sequence[FilterableTrack],
    play_history: Sequence[PlayRecord],
    config: SmartFiltersConfig,
) -> list[FilterableTrack]:
    initial = len(tracks)
    filtered = [t for t in tracks if passes_content_filter(t, config)]
    logger.debug("Content filter removed %d tracks", initial - len(filtered))

    before = len(filtered)
    filtered = [t for t in filtered if passes_repetition_filter(t, play_history, config)]
    logger.debug("Repetition filter removed %d tracks", before - len(filtered))

    before = len(filtered)
    filtered = [t for t in filtered if passes_audio_feature_filters(t, config)]
    logger.debug("Audio filters removed %d tracks", before - len(filtered))

    rescored = [replace(t, score=apply_era_bias(t, config)) for t in filtered]
    boosted = sum(1 for old, new in zip(filtered, rescored) if old.score != new.score)
    if config.era_bias:
        logger.debug("Era bias boosted %d tracks for %s", boosted, config.era_bias)

    rescored.sort(key=lambda t: t.score, reverse=True)
    logger.info("Smart filters: %d/%d tracks passed", len(rescored), initial)
    return rescored


def active_filter_count(config: SmartFiltersConfig) -> int:
    flags = (
        config.no_explicit,
        config.repetition_velocity != "off",
        bool(config.era_bias),
        config.energy_min is not None,
        config.energy_max is not None,
        config.danceability_min is not None,
        config.valence_min is not None,
        config.valence_max is not None,
        config.vocal_emphasis,
    )
    return sum(1 for flag in flags if flag)


def _percent(value: float | None, fallback: str) -> str:
    return fallback if value is None else f"{value * 100:.0f}"


def filter_summary(config: SmartFiltersConfig) -> list[str]:
    summary: list[str] = []
    if config.no_explicit:
        summary.append("No explicit content")
    if config.repetition_velocity != "off":
        summary.append(f"Artist variety: {config.repetition_velocity} ({repetition_window(config)} songs)")
    if config.era_bias:
        summary.append(f"Era boost: {config.era_bias}")
    if config.energy_min is not None or config.energy_max is not None:
        summary.append(f"Energy: {_percent(config.energy_min, '0')}%-{_percent(config.energy_max, '100')}%")
    if config.danceability_min is not None:
        summary.append(f"Danceability: >{_percent(config.danceability_min, '0')}%")
    if config.valence_min is not None or config.valence_max is not None:
        summary.append(f"Mood: {_percent(config.valence_min, '0')}%-{_percent(config.valence_max, '100')}%")
    if config.vocal_emphasis:
        summary.append("Vocal showcase")
    return summary
