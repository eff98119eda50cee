from __future__ import annotations

import warnings
from datetime import datetime, timezone
from typing import Iterable, Sequence

from crowd_dj.models import (
    ApsResult,
    as_utc,
    Contributor,
    GuestContribution,
    PenaltyBreakdown,
    PlayRecord,
    TrackPreference,
)
from crowd_dj.weighting import ContextualWeighting, EventConfig, FlatWeighting, GuestArrival

MAX_REPEAT_PENALTY = 10.0
ARTIST_FATIGUE_STEP = 0.5
_SECONDS_PER_HOUR = 3600.0


def _now() -> datetime:
    return datetime.now(timezone.utc)


def calculate_aps(
    track_id: str,
    guest_contributions: Sequence[GuestContribution],
    event_config: EventConfig,
    weighting: ContextualWeighting | None = None,
    current_time: datetime | None = None,
) -> ApsResult:
    """Sum the decay-weighted base scores of every guest who listed ``track_id``.

    APS is a plain sum, so both breadth (how many guests) and intensity (how
    high they scored it) raise it. ``avg_pts`` is the unweighted mean of the
    base scores and is kept for display only.
    """
    weighting = weighting or FlatWeighting()
    current_time = as_utc(current_time) if current_time is not None else _now()

    contributors: list[Contributor] = []
    total_weighted = 0.0
    total_base = 0.0

    for guest in guest_contributions:
        pref = guest.preference_for(track_id)
        if pref is None or not pref.pts:
            continue

        weighted = weighting.apply(pref.pts, GuestArrival.from_contribution(guest), event_config, current_time)
        weighted_pts = weighted.weighted_pts
        if weighted_pts < 0:
            warnings.warn(
                f"Contextual weighting returned {weighted_pts:.3f} for guest {guest.user_id}; "
                "clamping to 0.",
                RuntimeWarning,
                stacklevel=2,
            )
            weighted_pts = 0.0

        contributors.append(
            Contributor(
                user_id=guest.user_id,
                display_name=guest.display_name,
                base_pts=pref.pts,
                weighted_pts=weighted_pts,
                time_decay_multiplier=weighted.time_decay_multiplier,
                cohort=guest.cohort_index,
                presence_status=weighted.presence_status,
            )
        )
        total_weighted += weighted_pts
        total_base += pref.pts

    user_count = len(contributors)
    avg_pts = total_base / user_count if user_count else 0.0
    return ApsResult(aps=total_weighted, contributors=contributors, user_count=user_count, avg_pts=avg_pts)


def collect_unique_tracks(guest_contributions: Iterable[GuestContribution]) -> dict[str, TrackPreference]:
    """First-seen preference for every distinct track id, in submission order."""
    unique: dict[str, TrackPreference] = {}
    for guest in guest_contributions:
        for pref in guest.tracks:
            unique.setdefault(pref.track_id, pref)
    return unique


def _hours_between(earlier: datetime, later: datetime) -> float:
    return max(0.0, (later - earlier).total_seconds() / _SECONDS_PER_HOUR)


def calculate_penalties(
    track_id: str,
    artist: str,
    play_history: Sequence[PlayRecord],
    repeat_window_hours: float = 3.0,
    artist_fatigue_count: int = 3,
    current_time: datetime | None = None,
) -> PenaltyBreakdown:
    """Anti-repetition penalties from recent play history.

    The repeat penalty decays linearly from ``MAX_REPEAT_PENALTY`` to 0 across
    the window. Artist fatigue adds ``ARTIST_FATIGUE_STEP`` for each play by the
    same artist among the ``artist_fatigue_count`` most recent in-window plays.
    """
    current_time = as_utc(current_time) if current_time is not None else _now()
    if repeat_window_hours <= 0:
        return PenaltyBreakdown()

    window_seconds = repeat_window_hours * _SECONDS_PER_HOUR
    recent = sorted(
        (p for p in play_history if (current_time - p.played_at).total_seconds() < window_seconds),
        key=lambda p: p.played_at,
        reverse=True,
    )

    repeat_penalty = 0.0
    for play in recent:
        if play.track_id == track_id:
            hours_since = _hours_between(play.played_at, current_time)
            repeat_penalty = max(0.0, MAX_REPEAT_PENALTY - hours_since / repeat_window_hours * MAX_REPEAT_PENALTY)
            break

    artist_key = artist.strip().lower()
    same_artist = sum(
        1 for play in recent[: max(artist_fatigue_count, 0)] if play.artist.strip().lower() == artist_key
    )
    artist_fatigue = same_artist * ARTIST_FATIGUE_STEP

    return PenaltyBreakdown(repeat_penalty=repeat_penalty, artist_fatigue=artist_fatigue)
