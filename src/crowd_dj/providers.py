"""Collaborator contracts the engines read from, with in-memory implementations.

Real deployments back these with the music catalog API, the play log and a
key-value store; the engines only depend on the protocols.
"""
from __future__ import annotations

import time
from typing import Any, Callable, Iterable, Mapping, Protocol

from crowd_dj.models import PlayRecord, SmartFiltersConfig, Track, VibeProfile

SMART_FILTERS_KEY = "smart_filters"
VIBE_PROFILE_KEY = "vibe_profile"


class Cache(Protocol):
    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, ttl: float) -> None:
        ...


class TTLCache:
    """Process-local cache whose entries expire ``ttl`` seconds after being set."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 10_000) -> None:
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if key not in self._entries and len(self._entries) >= self._max_entries:
            self._evict_expired()
            if len(self._entries) >= self._max_entries:
                # Drop the oldest insertion.
                self._entries.pop(next(iter(self._entries)))
        self._entries[key] = (self._clock() + ttl, value)

    def _evict_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class AudioFeatureProvider(Protocol):
    def get_track(self, track_id: str) -> Track | None:
        ...


class CatalogFeatureProvider:
    """Serves tracks from a loader callable, caching hits for ``ttl`` seconds.

    A loader failure is treated as a missing track.
    """

    def __init__(
        self,
        loader: Callable[[str], Track | None],
        cache: Cache | None = None,
        ttl: float = 3600.0,
    ) -> None:
        self._loader = loader
        self._cache = cache if cache is not None else TTLCache()
        self._ttl = ttl

    @classmethod
    def from_tracks(cls, tracks: Iterable[Track], cache: Cache | None = None) -> CatalogFeatureProvider:
        by_id = {t.track_id: t for t in tracks}
        return cls(by_id.get, cache=cache)

    def get_track(self, track_id: str) -> Track | None:
        key = f"track:{track_id}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        try:
            track = self._loader(track_id)
        except (LookupError, OSError):
            return None
        if track is not None:
            self._cache.set(key, track, self._ttl)
        return track

    def catalog(self, track_ids: Iterable[str]) -> dict[str, Track]:
        found: dict[str, Track] = {}
        for track_id in track_ids:
            track = self.get_track(track_id)
            if track is not None:
                found[track_id] = track
        return found


class PlayHistoryProvider(Protocol):
    def recent_plays(self) -> list[PlayRecord]:
        ...


class InMemoryPlayHistory:
    def __init__(self, plays: Iterable[PlayRecord] = ()) -> None:
        self._plays = list(plays)

    def record(self, play: PlayRecord) -> None:
        self._plays.append(play)

    def recent_plays(self) -> list[PlayRecord]:
        """Plays ordered newest first."""
        return sorted(self._plays, key=lambda p: p.played_at, reverse=True)


class ConfigStore(Protocol):
    def get(self, key: str) -> Mapping[str, Any] | None:
        ...

    def set(self, key: str, value: Mapping[str, Any]) -> None:
        ...


class MemoryConfigStore:
    def __init__(self) -> None:
        self._values: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> Mapping[str, Any] | None:
        value = self._values.get(key)
        return dict(value) if value is not None else None

    def set(self, key: str, value: Mapping[str, Any]) -> None:
        self._values[key] = dict(value)


def load_smart_filters(store: ConfigStore) -> SmartFiltersConfig:
    raw = store.get(SMART_FILTERS_KEY)
    return SmartFiltersConfig.from_dict(dict(raw)) if raw else SmartFiltersConfig()


def save_smart_filters(store: ConfigStore, config: SmartFiltersConfig) -> None:
    store.set(SMART_FILTERS_KEY, config.to_dict())


def load_vibe_profile(store: ConfigStore) -> VibeProfile | None:
    raw = store.get(VIBE_PROFILE_KEY)
    return VibeProfile.from_dict(dict(raw)) if raw else None


def save_vibe_profile(store: ConfigStore, profile: VibeProfile) -> None:
    store.set(VIBE_PROFILE_KEY, profile.to_dict())
