from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from crowd_dj.models import (
    AudioFeatures,
    GuestContribution,
    PlayRecord,
    SmartFiltersConfig,
    Track,
    TrackPreference,
    VibeProfile,
    as_utc,
)

_PRESENCE_VALUES = ("present", "absent", "unknown")


def parse_timestamp(raw: Any, fallback: datetime | None = None) -> datetime:
    """ISO-8601 string or epoch seconds to an aware datetime (UTC when naive)."""
    fallback = fallback or datetime.now(timezone.utc)
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, (int, float)):
        value = datetime.fromtimestamp(raw, tz=timezone.utc)
    elif isinstance(raw, str) and raw.strip():
        try:
            value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError:
            return fallback
    else:
        return fallback
    return as_utc(value)


def _float_or_none(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _int_or_none(raw: Any) -> int | None:
    value = _float_or_none(raw)
    return None if value is None else int(value)


def _release_year(track: dict) -> int | None:
    if track.get("release_year") is not None:
        return _int_or_none(track["release_year"])
    release_date = str((track.get("album") or {}).get("release_date") or track.get("release_date") or "")
    return _int_or_none(release_date[:4]) if len(release_date) >= 4 else None


def build_audio_features(audio_features: dict | None) -> AudioFeatures | None:
    if not audio_features:
        return None

    key = _int_or_none(audio_features.get("key"))
    # -1 is the catalog's "no key detected".
    if key is not None and not 0 <= key <= 11:
        key = None
    mode = _int_or_none(audio_features.get("mode"))
    if mode not in (0, 1):
        mode = None

    features = AudioFeatures(
        bpm=_float_or_none(audio_features.get("bpm", audio_features.get("tempo"))),
        key=key,
        mode=mode,
        danceability=_float_or_none(audio_features.get("danceability")),
        energy=_float_or_none(audio_features.get("energy")),
        valence=_float_or_none(audio_features.get("valence")),
        loudness=_float_or_none(audio_features.get("loudness")),
        acousticness=_float_or_none(audio_features.get("acousticness")),
        instrumentalness=_float_or_none(audio_features.get("instrumentalness")),
        speechiness=_float_or_none(audio_features.get("speechiness")),
    )
    if features == AudioFeatures():
        return None
    return features


def _artist_name(track: dict) -> str:
    if isinstance(track.get("artist"), str):
        return track["artist"]
    names = [a.get("name", "") for a in track.get("artists", []) if isinstance(a, dict)]
    return ", ".join(n for n in names if n) or "Unknown"


def build_track(track: dict, audio_features: dict | None = None) -> Track:
    """Catalog payload (plus optional audio-features payload) to a ``Track``.

    Features may also be nested under ``track["audio_features"]``.
    """
    album = track.get("album")
    album_name = album.get("name") if isinstance(album, dict) else album
    genres = track.get("genres") or track.get("artist_genres") or []

    return Track(
        track_id=str(track.get("id") or track.get("track_id")),
        name=track.get("name", ""),
        artist=_artist_name(track),
        album=album_name or None,
        genres=tuple(str(g) for g in genres),
        explicit=bool(track.get("explicit", False)),
        release_year=_release_year(track),
        audio_features=build_audio_features(audio_features or track.get("audio_features")),
    )


def build_guest_contribution(raw: dict) -> GuestContribution:
    if raw.get("user_id") in (None, ""):
        raise ValueError("Guest contribution is missing user_id.")
    presence = raw.get("presence_status", "unknown")
    coordinates = raw.get("coordinates")
    if isinstance(coordinates, dict):
        coordinates = (coordinates.get("lat"), coordinates.get("lon"))

    prefs = [
        TrackPreference(
            track_id=str(t.get("id") or t.get("track_id")),
            name=t.get("name", ""),
            artist=_artist_name(t),
            rank=int(t.get("rank", index)),
            timeframe=t.get("timeframe", "medium_term"),
            is_saved=bool(t.get("is_saved", False)),
            pts=_float_or_none(t.get("pts")),
        )
        for index, t in enumerate(raw.get("tracks", []), start=1)
    ]
    last_update = raw.get("last_location_update")
    return GuestContribution(
        user_id=str(raw["user_id"]),
        display_name=raw.get("display_name", str(raw["user_id"])),
        arrival_time=parse_timestamp(raw.get("arrival_time")),
        cohort_index=int(raw.get("cohort_index", 0)),
        presence_status=presence if presence in _PRESENCE_VALUES else "unknown",
        tracks=prefs,
        coordinates=tuple(coordinates) if coordinates else None,
        last_location_update=parse_timestamp(last_update) if last_update else None,
    )


def build_play_record(raw: dict) -> PlayRecord:
    return PlayRecord(
        track_id=str(raw.get("track_id") or raw.get("id")),
        artist=_artist_name(raw),
        played_at=parse_timestamp(raw.get("played_at")),
    )


@dataclass(slots=True)
class EventSnapshot:
    """One consistent read of everything a refresh cycle needs."""

    contributions: list[GuestContribution]
    catalog: dict[str, Track] = field(default_factory=dict)
    play_history: list[PlayRecord] = field(default_factory=list)
    current_track_id: str | None = None
    seed_track_ids: list[str] = field(default_factory=list)
    vibe_profile: VibeProfile | None = None
    smart_filters: SmartFiltersConfig | None = None
    current_time: datetime | None = None

    @property
    def guest_count(self) -> int:
        return len(self.contributions)

    @property
    def current_track(self) -> Track | None:
        return self.catalog.get(self.current_track_id) if self.current_track_id else None

    @property
    def seed_tracks(self) -> list[Track]:
        return [self.catalog[tid] for tid in self.seed_track_ids if tid in self.catalog]


def build_event_snapshot(raw: dict) -> EventSnapshot:
    catalog = {}
    for entry in raw.get("catalog", []):
        track = build_track(entry)
        catalog[track.track_id] = track

    vibe = raw.get("vibe_profile")
    filters = raw.get("smart_filters")
    current_time = raw.get("current_time")
    return EventSnapshot(
        contributions=[build_guest_contribution(g) for g in raw.get("guests", [])],
        catalog=catalog,
        play_history=[build_play_record(p) for p in raw.get("play_history", [])],
        current_track_id=raw.get("current_track_id"),
        seed_track_ids=[str(t) for t in raw.get("seed_track_ids", [])],
        vibe_profile=VibeProfile.from_dict(vibe) if vibe else None,
        smart_filters=SmartFiltersConfig.from_dict(filters) if filters else None,
        current_time=parse_timestamp(current_time) if current_time else None,
    )
