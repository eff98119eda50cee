"""Popularity-independent discovery: tracks that sound like the curator's queue."""
from __future__ import annotations

import logging
import math
import warnings
from typing import Sequence

from crowd_dj.matcher import bpm_similarity, harmonic_compatibility, key_distance
from crowd_dj.models import FINGERPRINT_FIELDS, AudioFeatures, SynergyBreakdown, SynergyTrack, Track

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
DEFAULT_MIN_SYNERGY_SCORE = 0.5

COSINE_WEIGHT = 0.6
BPM_WEIGHT = 0.2
KEY_WEIGHT = 0.1
MOOD_WEIGHT = 0.1


def calculate_average_fingerprint(features: Sequence[AudioFeatures]) -> AudioFeatures:
    """Per-feature mean of complete fingerprints; key and mode are rounded."""
    if not features:
        raise ValueError("Cannot average an empty set of fingerprints.")

    count = len(features)
    means = {name: sum(getattr(f, name) for f in features) / count for name in FINGERPRINT_FIELDS}
    # Halves round up so a 50/50 major/minor queue reads as major.
    means["key"] = int(math.floor(means["key"] + 0.5))
    means["mode"] = int(math.floor(means["mode"] + 0.5))
    return AudioFeatures(**means)


def fingerprint_to_vector(fp: AudioFeatures) -> list[float]:
    return [
        fp.bpm / 200,
        fp.key / 11,
        fp.mode,
        fp.danceability,
        fp.energy,
        fp.valence,
        (fp.loudness + 60) / 60,
        fp.acousticness,
        fp.instrumentalness,
        fp.speechiness,
    ]


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    if len(vector_a) != len(vector_b):
        raise ValueError("Vectors must have the same length.")

    dot = sum(a * b for a, b in zip(vector_a, vector_b))
    magnitude_a = math.sqrt(sum(a * a for a in vector_a))
    magnitude_b = math.sqrt(sum(b * b for b in vector_b))
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0
    return dot / (magnitude_a * magnitude_b)


def calculate_synergy_score(candidate: AudioFeatures, seed: AudioFeatures) -> tuple[float, SynergyBreakdown]:
    cosine = cosine_similarity(fingerprint_to_vector(candidate), fingerprint_to_vector(seed))
    bpm_compat = bpm_similarity(abs(candidate.bpm - seed.bpm))
    key_compat = harmonic_compatibility(key_distance(candidate.key, candidate.mode, seed.key, seed.mode))
    mood_compat = 1 - (abs(candidate.energy - seed.energy) + abs(candidate.valence - seed.valence)) / 2

    score = COSINE_WEIGHT * cosine + BPM_WEIGHT * bpm_compat + KEY_WEIGHT * key_compat + MOOD_WEIGHT * mood_compat
    breakdown = SynergyBreakdown(
        cosine_similarity=cosine,
        bpm_compatibility=bpm_compat,
        key_compatibility=key_compat,
        mood_compatibility=mood_compat,
    )
    return score, breakdown


def _complete_features(track: Track) -> AudioFeatures | None:
    features = track.audio_features
    if features is None or not features.is_complete:
        return None
    return features


def generate_discovery_queue(
    seed_tracks: Sequence[Track],
    candidate_tracks: Sequence[Track],
    limit: int = DEFAULT_LIMIT,
    min_synergy_score: float = DEFAULT_MIN_SYNERGY_SCORE,
) -> list[SynergyTrack]:
    if not seed_tracks:
        warnings.warn("No seed tracks provided for the discovery queue.", RuntimeWarning, stacklevel=2)
        return []

    seed_features = [f for f in (_complete_features(t) for t in seed_tracks) if f is not None]
    if len(seed_features) < len(seed_tracks):
        warnings.warn(
            f"{len(seed_tracks) - len(seed_features)} seed track(s) lack audio features and were ignored.",
            RuntimeWarning,
            stacklevel=2,
        )
    if not seed_features:
        return []

    fingerprint = calculate_average_fingerprint(seed_features)
    logger.info(
        "Discovery fingerprint from %d seeds: bpm=%.1f energy=%.2f valence=%.2f",
        len(seed_features),
        fingerprint.bpm,
        fingerprint.energy,
        fingerprint.valence,
    )

    seed_ids = {t.track_id for t in seed_tracks}
    scored: list[SynergyTrack] = []
    skipped = 0
    for candidate in candidate_tracks:
        if candidate.track_id in seed_ids:
            continue
        features = _complete_features(candidate)
        if features is None:
            skipped += 1
            continue
        score, breakdown = calculate_synergy_score(features, fingerprint)
        if score >= min_synergy_score:
            scored.append(SynergyTrack(track=candidate, synergy_score=score, breakdown=breakdown))

    if skipped:
        warnings.warn(
            f"{skipped} discovery candidate(s) lack audio features and were skipped.",
            RuntimeWarning,
            stacklevel=2,
        )

    scored.sort(key=lambda s: s.synergy_score, reverse=True)
    result = scored[: max(limit, 0)]
    logger.info("Generated %d discovery suggestions", len(result))
    return result


def synergy_explanation(track: SynergyTrack, fingerprint: AudioFeatures) -> str:
    features = track.track.audio_features
    if features is None or not features.is_complete:
        return "Musically similar"

    parts: list[str] = []
    bpm_delta = features.bpm - fingerprint.bpm
    if abs(bpm_delta) <= 5:
        parts.append("Perfect BPM match")
    elif abs(bpm_delta) <= 10:
        parts.append(f"Similar tempo ({bpm_delta:+.0f} BPM)")

    if abs(features.energy - fingerprint.energy) < 0.15:
        parts.append("Matching energy")

    if abs(features.valence - fingerprint.valence) < 0.15:
        parts.append("Similar mood")

    if key_distance(features.key, features.mode, fingerprint.key, fingerprint.mode) <= 1:
        parts.append("Harmonically compatible")

    return ", ".join(parts) if parts else "Musically similar"
