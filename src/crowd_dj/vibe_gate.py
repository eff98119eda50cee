"""Thematic compliance filter for candidate tracks.

Every track starts at 100 points and loses points for each profile criterion
it misses. Explicit content (when disallowed) and excluded keywords are hard
blocks: they return a score of 0 before any other criterion is looked at.
"""
from __future__ import annotations

import logging
from typing import Iterable

from crowd_dj.models import Track, TrackValidationResult, ValueRange, VibeGateBatch, VibeProfile

logger = logging.getLogger(__name__)

STRICTNESS_THRESHOLDS = {"strict": 90, "loose": 60, "open": 30}

GENRE_MISMATCH_POINTS = 40
BLOCKED_GENRE_POINTS = 30
YEAR_MISS_POINTS = 20
TEMPO_MISS_POINTS = 10
ENERGY_MISS_POINTS = 10
DANCEABILITY_MISS_POINTS = 10
KEYWORD_BONUS_POINTS = 10

GENRE_ALIASES: dict[str, list[str]] = {
    "r&b": ["r&b", "rnb", "rhythm and blues", "contemporary r&b", "soul"],
    "hip-hop": ["hip-hop", "hip hop", "rap", "trap", "drill"],
    "electronic": ["electronic", "edm", "house", "techno", "trance", "dubstep"],
    "rock": ["rock", "alternative rock", "indie rock", "hard rock", "punk rock"],
    "pop": ["pop", "synth-pop", "electropop", "indie pop"],
    "jazz": ["jazz", "smooth jazz", "jazz fusion", "bebop"],
    "country": ["country", "country rock", "bluegrass"],
    "latin": ["latin", "reggaeton", "salsa", "bachata", "latin pop"],
    "dance": ["dance", "dance pop", "club", "disco"],
    "funk": ["funk", "funk rock", "p-funk"],
}

DEFAULT_TRACKS_PER_PERSON = 50


def calculate_tracks_per_person(num_users: int) -> int:
    """How many top tracks each guest contributes: round(500 / users) clamped to 10-100."""
    if num_users <= 0:
        return DEFAULT_TRACKS_PER_PERSON
    # int(x + 0.5) rounds halves up; round() would use banker's rounding.
    calculated = int(500 / num_users + 0.5)
    return max(10, min(100, calculated))


def _normalize_genre(genre: str) -> str:
    return genre.lower().strip()


def genre_matches(track_genre: str, genres: Iterable[str]) -> bool:
    normalized_track = _normalize_genre(track_genre)
    if not normalized_track:
        return False

    for genre in genres:
        normalized = _normalize_genre(genre)
        if not normalized:
            continue
        if normalized_track in normalized or normalized in normalized_track:
            return True
        for alias in GENRE_ALIASES.get(normalized, [normalized]):
            if alias in normalized_track or normalized_track in alias:
                return True
    return False


def _contains_keyword(track: Track, keywords: Iterable[str]) -> bool:
    text = track.search_text
    return any(keyword.lower() in text for keyword in keywords if keyword)


def _threshold(strictness: str) -> int:
    try:
        return STRICTNESS_THRESHOLDS[strictness]
    except KeyError:
        raise ValueError(f"Unknown strictness '{strictness}'. Expected strict, loose or open.") from None


def _range_label(value_range: ValueRange) -> str:
    low = "" if value_range.min is None else f"{value_range.min:g}"
    high = "" if value_range.max is None else f"{value_range.max:g}"
    return f"{low}-{high}"


def validate_track_against_vibe(track: Track, profile: VibeProfile) -> TrackValidationResult:
    threshold = _threshold(profile.strictness)
    reasons: list[str] = []

    if not profile.allow_explicit and track.explicit:
        reasons.append("Explicit content not allowed")
        return TrackValidationResult(track=track, passed=False, score=0, reasons=reasons, hard_block=True)

    if profile.exclude_keywords and _contains_keyword(track, profile.exclude_keywords):
        reasons.append("Contains blocked keywords")
        return TrackValidationResult(track=track, passed=False, score=0, reasons=reasons, hard_block=True)

    score = 100

    if profile.allowed_genres:
        if any(genre_matches(g, profile.allowed_genres) for g in track.genres):
            reasons.append("✓ Genre match")
        else:
            score -= GENRE_MISMATCH_POINTS
            reasons.append(f"Genre mismatch (expected: {', '.join(profile.allowed_genres)})")

    blocked_genre = bool(profile.blocked_genres) and any(
        genre_matches(g, profile.blocked_genres) for g in track.genres
    )
    blocked_artist = track.artist.strip().lower() in {a.strip().lower() for a in profile.blocked_artists}
    for blocked, label in ((blocked_genre, "genre"), (blocked_artist, "artist")):
        if not blocked:
            continue
        if profile.strictness == "strict":
            reasons.append(f"Contains blocked {label}")
            return TrackValidationResult(track=track, passed=False, score=0, reasons=reasons)
        score -= BLOCKED_GENRE_POINTS
        reasons.append(f"Contains discouraged {label}")

    if profile.year_range is not None and track.release_year:
        if profile.year_range.contains(track.release_year):
            reasons.append(f"✓ Year match ({track.release_year})")
        else:
            score -= YEAR_MISS_POINTS
            reasons.append(
                f"Year out of range ({track.release_year}, expected: {_range_label(profile.year_range)})"
            )

    features = track.audio_features
    if profile.tempo_range is not None and features is not None and features.bpm:
        if profile.tempo_range.contains(features.bpm):
            reasons.append("✓ Tempo match")
        else:
            score -= TEMPO_MISS_POINTS
            reasons.append(f"Tempo out of range ({features.bpm:g} BPM)")

    if profile.energy is not None and features is not None and features.energy is not None:
        if profile.energy.contains(features.energy):
            reasons.append("✓ Energy match")
        else:
            score -= ENERGY_MISS_POINTS
            reasons.append(f"Energy out of range ({features.energy * 100:.0f}%)")

    if profile.danceability is not None and features is not None and features.danceability is not None:
        if profile.danceability.contains(features.danceability):
            reasons.append("✓ Danceability match")
        else:
            score -= DANCEABILITY_MISS_POINTS
            reasons.append(f"Danceability out of range ({features.danceability * 100:.0f}%)")

    if profile.keywords and _contains_keyword(track, profile.keywords):
        score += KEYWORD_BONUS_POINTS
        reasons.append("✓ Contains desired keywords")

    score = max(0, min(100, score))
    passed = score >= threshold
    if not passed:
        reasons.append(f"Score {score}% below threshold {threshold}% for {profile.strictness} mode")

    return TrackValidationResult(track=track, passed=passed, score=score, reasons=reasons)


def filter_tracks_through_vibe_gate(tracks: list[Track], profile: VibeProfile) -> VibeGateBatch:
    results = [validate_track_against_vibe(track, profile) for track in tracks]
    passed = [r.track for r in results if r.passed]
    failed = [r.track for r in results if not r.passed]
    total = len(tracks)
    pass_rate = len(passed) / total * 100 if total else 0.0
    logger.info("Vibe gate: %d/%d tracks passed (%.0f%%)", len(passed), total, pass_rate)
    return VibeGateBatch(passed=passed, failed=failed, total=total, pass_rate=pass_rate)


def create_vibe_profile_from_theme(theme: str) -> VibeProfile:
    """Best-effort profile from free-text event theme keywords."""
    text = theme.lower()
    profile = VibeProfile(strictness="loose", allow_explicit=True)

    if "90s" in text or "1990s" in text:
        profile.year_range = ValueRange(min=1990, max=1999)
        profile.strictness = "strict"

    if "r&b" in text or "rnb" in text:
        profile.allowed_genres.extend(["r&b", "soul"])

    if "hip-hop" in text or "rap" in text:
        profile.allowed_genres.extend(["hip-hop", "rap"])

    if any(word in text for word in ("electronic", "edm", "house", "techno")):
        profile.allowed_genres.extend(["electronic", "house", "techno"])
        profile.energy = ValueRange(min=0.6, max=1.0)

    if any(word in text for word in ("chill", "relax", "lounge")):
        profile.energy = ValueRange(min=0.0, max=0.6)
        profile.tempo_range = ValueRange(min=60, max=120)

    if "party" in text or "dance" in text:
        profile.energy = ValueRange(min=0.6, max=1.0)
        profile.danceability = ValueRange(min=0.6, max=1.0)

    if "workout" in text or "gym" in text:
        profile.energy = ValueRange(min=0.7, max=1.0)
        profile.tempo_range = ValueRange(min=120, max=180)

    return profile


def describe_vibe_profile(profile: VibeProfile) -> str:
    parts: list[str] = []

    if profile.allowed_genres:
        parts.append(f"Genres: {', '.join(profile.allowed_genres)}")

    if profile.year_range is not None:
        low, high = profile.year_range.min, profile.year_range.max
        if low and high:
            parts.append(f"Years: {low:g}-{high:g}")
        elif low:
            parts.append(f"After {low:g}")
        elif high:
            parts.append(f"Before {high:g}")

    if profile.energy is not None:
        low = (profile.energy.min or 0) * 100
        high = (profile.energy.max or 1) * 100
        parts.append(f"Energy: {low:.0f}%-{high:.0f}%")

    if profile.tempo_range is not None:
        parts.append(f"Tempo: {profile.tempo_range.min or 0:g}-{profile.tempo_range.max or 200:g} BPM")

    parts.append(f"Mode: {profile.strictness}")
    return " • ".join(parts)
