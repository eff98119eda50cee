from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Literal

PresenceStatus = Literal["present", "absent", "unknown"]
Strictness = Literal["strict", "loose", "open"]

FINGERPRINT_FIELDS = (
    "bpm",
    "key",
    "mode",
    "danceability",
    "energy",
    "valence",
    "loudness",
    "acousticness",
    "instrumentalness",
    "speechiness",
)
MIXING_FIELDS = ("bpm", "key", "mode", "energy")


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are read as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class AudioFeatures:
    """Per-track audio analysis. Any field may be missing from the provider."""

    bpm: float | None = None
    key: int | None = None
    mode: int | None = None
    danceability: float | None = None
    energy: float | None = None
    valence: float | None = None
    loudness: float | None = None
    acousticness: float | None = None
    instrumentalness: float | None = None
    speechiness: float | None = None

    def has(self, *names: str) -> bool:
        return all(getattr(self, name) is not None for name in names)

    @property
    def supports_mixing(self) -> bool:
        return self.has(*MIXING_FIELDS)

    @property
    def is_complete(self) -> bool:
        return self.has(*FINGERPRINT_FIELDS)


@dataclass(frozen=True, slots=True)
class Track:
    track_id: str
    name: str
    artist: str
    album: str | None = None
    genres: tuple[str, ...] = ()
    explicit: bool = False
    release_year: int | None = None
    audio_features: AudioFeatures | None = None

    @property
    def search_text(self) -> str:
        return f"{self.name} {self.artist} {self.album or ''}".lower()


@dataclass(slots=True)
class TrackPreference:
    track_id: str
    name: str
    artist: str
    rank: int
    timeframe: str = "medium_term"
    is_saved: bool = False
    pts: float | None = None


@dataclass(slots=True)
class GuestContribution:
    user_id: str
    display_name: str
    arrival_time: datetime
    cohort_index: int = 0
    presence_status: PresenceStatus = "unknown"
    tracks: list[TrackPreference] = field(default_factory=list)
    coordinates: tuple[float, float] | None = None
    last_location_update: datetime | None = None

    def __post_init__(self) -> None:
        self.arrival_time = as_utc(self.arrival_time)
        if self.last_location_update is not None:
            self.last_location_update = as_utc(self.last_location_update)

    def preference_for(self, track_id: str) -> TrackPreference | None:
        for pref in self.tracks:
            if pref.track_id == track_id:
                return pref
        return None


@dataclass(frozen=True, slots=True)
class PlayRecord:
    track_id: str
    artist: str
    played_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "played_at", as_utc(self.played_at))


@dataclass(frozen=True, slots=True)
class Contributor:
    user_id: str
    display_name: str
    base_pts: float
    weighted_pts: float
    time_decay_multiplier: float
    cohort: int
    presence_status: PresenceStatus


@dataclass(frozen=True, slots=True)
class ApsResult:
    aps: float
    contributors: list[Contributor]
    user_count: int
    avg_pts: float


@dataclass(frozen=True, slots=True)
class PenaltyBreakdown:
    repeat_penalty: float = 0.0
    artist_fatigue: float = 0.0

    @property
    def total_penalty(self) -> float:
        return self.repeat_penalty + self.artist_fatigue


@dataclass(slots=True)
class AggregatedTrack:
    """Derived per-cycle ranking row. Never persisted on its own."""

    track_id: str
    name: str
    artist: str
    aps: float
    contributors: list[Contributor]
    user_count: int
    avg_pts: float
    penalties: PenaltyBreakdown = field(default_factory=PenaltyBreakdown)
    top_contributor: str = "Unknown"
    flow_score: float | None = None
    bpm_diff: float | None = None
    key_compatibility: str | None = None
    ranking_score: float | None = None
    q_score: float | None = None

    @property
    def total_penalty(self) -> float:
        return self.penalties.total_penalty

    @property
    def score(self) -> float:
        if self.q_score is not None:
            return self.q_score
        return self.ranking_score if self.ranking_score is not None else 0.0


@dataclass(frozen=True, slots=True)
class ValueRange:
    min: float | None = None
    max: float | None = None

    def contains(self, value: float) -> bool:
        # A zero bound is treated as unset.
        if self.min and value < self.min:
            return False
        if self.max and value > self.max:
            return False
        return True


def _range_from(raw: dict | None) -> ValueRange | None:
    if raw is None:
        return None
    return ValueRange(min=raw.get("min"), max=raw.get("max"))


@dataclass(slots=True)
class VibeProfile:
    strictness: Strictness = "loose"
    allowed_genres: list[str] = field(default_factory=list)
    blocked_genres: list[str] = field(default_factory=list)
    blocked_artists: list[str] = field(default_factory=list)
    year_range: ValueRange | None = None
    tempo_range: ValueRange | None = None
    energy: ValueRange | None = None
    danceability: ValueRange | None = None
    keywords: list[str] = field(default_factory=list)
    exclude_keywords: list[str] = field(default_factory=list)
    allow_explicit: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict) -> VibeProfile:
        return cls(
            strictness=raw.get("strictness", "loose"),
            allowed_genres=list(raw.get("allowed_genres", [])),
            blocked_genres=list(raw.get("blocked_genres", [])),
            blocked_artists=list(raw.get("blocked_artists", [])),
            year_range=_range_from(raw.get("year_range")),
            tempo_range=_range_from(raw.get("tempo_range")),
            energy=_range_from(raw.get("energy")),
            danceability=_range_from(raw.get("danceability")),
            keywords=list(raw.get("keywords", [])),
            exclude_keywords=list(raw.get("exclude_keywords", [])),
            allow_explicit=bool(raw.get("allow_explicit", True)),
        )


@dataclass(frozen=True, slots=True)
class TrackValidationResult:
    track: Track
    passed: bool
    score: int
    reasons: list[str]
    hard_block: bool = False


@dataclass(frozen=True, slots=True)
class VibeGateBatch:
    passed: list[Track]
    failed: list[Track]
    total: int
    pass_rate: float


@dataclass(frozen=True, slots=True)
class SynergyBreakdown:
    cosine_similarity: float
    bpm_compatibility: float
    key_compatibility: float
    mood_compatibility: float


@dataclass(frozen=True, slots=True)
class SynergyTrack:
    track: Track
    synergy_score: float
    breakdown: SynergyBreakdown

    @property
    def track_id(self) -> str:
        return self.track.track_id


@dataclass(slots=True)
class SmartFiltersConfig:
    no_explicit: bool = False
    repetition_velocity: str = "off"
    repetition_velocity_n: int = 5
    era_bias: str | None = None
    era_bias_multiplier: float = 1.5
    energy_min: float | None = None
    energy_max: float | None = None
    danceability_min: float | None = None
    valence_min: float | None = None
    valence_max: float | None = None
    vocal_emphasis: bool = False
    instrumentalness_max: float = 0.2

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict) -> SmartFiltersConfig:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in raw.items() if k in known})


@dataclass(frozen=True, slots=True)
class RankedEntry:
    track_id: str
    rank: int


@dataclass(frozen=True, slots=True)
class RefreshSystemState:
    is_initialized: bool
    last_refresh_time: datetime
    last_guest_count: int
    last_displayed_list: tuple[RankedEntry, ...] = ()
    pending_update: bool = False
    background_list: tuple[RankedEntry, ...] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "last_refresh_time", as_utc(self.last_refresh_time))


@dataclass(frozen=True, slots=True)
class RefreshNotification:
    should_notify: bool
    reason: str | None
    new_guests_count: int = 0
    top_rank_changed: bool = False
    rank_volatility_percent: float = 0.0
    previous_top10: list[str] = field(default_factory=list)
    current_top10: list[str] = field(default_factory=list)
