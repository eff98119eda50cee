"""Intelligent refresh: decide when the curator should see a new ranking.

The displayed list only changes through :func:`update_refresh_state` (first
display or explicit promotion) or :func:`accept_refresh` (promotion of the
pending background list). Everything else returns a new state without
touching ``last_displayed_list``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Protocol, Sequence

from crowd_dj.models import RankedEntry, RefreshNotification, RefreshSystemState, as_utc

logger = logging.getLogger(__name__)

TOP_N = 10

RANK_VOLATILITY = "rank_volatility"
TOP_RANK_CHANGE = "top_rank_change"
GUEST_BATCH = "guest_batch"
MULTIPLE = "multiple"


class HasTrackId(Protocol):
    @property
    def track_id(self) -> str:
        ...


@dataclass(frozen=True, slots=True)
class RefreshConfig:
    minimum_guests_for_recommendations: int = 5
    rank_volatility_threshold: float = 0.3
    minimum_guest_batch_size: int = 5
    background_processing_interval_s: float = 30.0


DEFAULT_REFRESH_CONFIG = RefreshConfig()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def initialize_refresh_system(current_time: datetime | None = None) -> RefreshSystemState:
    return RefreshSystemState(
        is_initialized=False,
        last_refresh_time=current_time or _now(),
        last_guest_count=0,
    )


def should_initialize_recommendations(guest_count: int, config: RefreshConfig = DEFAULT_REFRESH_CONFIG) -> bool:
    return guest_count >= config.minimum_guests_for_recommendations


def top_track_ids(tracks: Sequence[HasTrackId], n: int = TOP_N) -> list[str]:
    return [t.track_id for t in tracks[:n]]


def calculate_rank_volatility(previous_top: Sequence[str], current_top: Sequence[str]) -> float:
    """Fraction of the current top list that was absent from the previous one."""
    if not previous_top:
        return 0.0
    previous = set(previous_top)
    changed = sum(1 for track_id in current_top if track_id not in previous)
    return changed / max(len(previous_top), len(current_top))


def top_rank_changed(previous_top: Sequence[str], current_top: Sequence[str]) -> bool:
    if not previous_top or not current_top:
        return False
    return previous_top[0] != current_top[0]


def should_notify_refresh(
    state: RefreshSystemState,
    current_guest_count: int,
    new_recommendations: Sequence[HasTrackId],
    config: RefreshConfig = DEFAULT_REFRESH_CONFIG,
) -> RefreshNotification:
    if not state.is_initialized:
        return RefreshNotification(should_notify=False, reason=None)

    current_top = top_track_ids(new_recommendations)
    previous_top = [entry.track_id for entry in state.last_displayed_list[:TOP_N]]

    volatility = calculate_rank_volatility(previous_top, current_top)
    top_changed = top_rank_changed(previous_top, current_top)
    new_guests = current_guest_count - state.last_guest_count

    triggered: list[str] = []
    if volatility >= config.rank_volatility_threshold:
        triggered.append(RANK_VOLATILITY)
    if top_changed:
        triggered.append(TOP_RANK_CHANGE)
    if new_guests >= config.minimum_guest_batch_size:
        triggered.append(GUEST_BATCH)

    if len(triggered) > 1:
        reason = MULTIPLE
    else:
        reason = triggered[0] if triggered else None

    logger.debug("Refresh check: triggers=%s volatility=%.2f new_guests=%d", triggered, volatility, new_guests)
    return RefreshNotification(
        should_notify=bool(triggered),
        reason=reason,
        new_guests_count=new_guests,
        top_rank_changed=top_changed,
        rank_volatility_percent=volatility * 100,
        previous_top10=previous_top,
        current_top10=current_top,
    )


def _ranked(tracks: Sequence[HasTrackId]) -> tuple[RankedEntry, ...]:
    return tuple(RankedEntry(track_id=t.track_id, rank=index) for index, t in enumerate(tracks, start=1))


def update_refresh_state(
    state: RefreshSystemState,
    new_guest_count: int,
    displayed_recommendations: Sequence[HasTrackId],
    current_time: datetime | None = None,
) -> RefreshSystemState:
    """Show ``displayed_recommendations`` to the curator and clear any pending list."""
    return RefreshSystemState(
        is_initialized=True,
        last_refresh_time=current_time or _now(),
        last_guest_count=new_guest_count,
        last_displayed_list=_ranked(displayed_recommendations),
        pending_update=False,
        background_list=None,
    )


def store_background_update(
    state: RefreshSystemState,
    background_recommendations: Sequence[HasTrackId],
) -> RefreshSystemState:
    """Keep a computed ranking hidden; a newer call replaces the older pending list."""
    return replace(state, pending_update=True, background_list=_ranked(background_recommendations))


def accept_refresh(
    state: RefreshSystemState,
    new_guest_count: int,
    current_time: datetime | None = None,
) -> RefreshSystemState:
    """Promote the pending background list to the displayed list."""
    if not state.pending_update or state.background_list is None:
        logger.info("No pending update to promote")
        return state
    return RefreshSystemState(
        is_initialized=True,
        last_refresh_time=current_time or _now(),
        last_guest_count=new_guest_count,
        last_displayed_list=state.background_list,
        pending_update=False,
        background_list=None,
    )


class RefreshController:
    """Holds the cross-cycle refresh state for one event."""

    def __init__(self, config: RefreshConfig = DEFAULT_REFRESH_CONFIG, current_time: datetime | None = None) -> None:
        self.config = config
        self.state = initialize_refresh_system(current_time)

    def evaluate(
        self,
        guest_count: int,
        ranking: Sequence[HasTrackId],
        current_time: datetime | None = None,
    ) -> RefreshNotification:
        """Run one cycle: show the first ranking once enough guests arrived, then stage newer rankings.

        While an update is pending every cycle restages its ranking, so `accept` always promotes
        the latest list.
        """
        if not self.state.is_initialized:
            if should_initialize_recommendations(guest_count, self.config):
                self.state = update_refresh_state(self.state, guest_count, ranking, current_time)
                logger.info("Recommendations initialized with %d guests", guest_count)
            return RefreshNotification(should_notify=False, reason=None)

        notification = should_notify_refresh(self.state, guest_count, ranking, self.config)
        if notification.should_notify or self.state.pending_update:
            self.state = store_background_update(self.state, ranking)
        return notification

    def accept(self, guest_count: int, current_time: datetime | None = None) -> RefreshSystemState:
        self.state = accept_refresh(self.state, guest_count, current_time)
        return self.state


def format_refresh_notification(notification: RefreshNotification) -> str:
    if not notification.should_notify:
        return ""
    if notification.reason == MULTIPLE:
        return (
            f"{notification.new_guests_count} new guests have arrived. "
            "Top tracks have changed significantly. Tap to refresh."
        )
    if notification.reason == GUEST_BATCH:
        return f"{notification.new_guests_count} new guests have arrived. Tap to refresh recommendations."
    if notification.reason == TOP_RANK_CHANGE:
        return "The #1 track has changed! Tap to see updated recommendations."
    if notification.reason == RANK_VOLATILITY:
        return f"{notification.rank_volatility_percent:.0f}% of top tracks have changed. Tap to refresh."
    return "New recommendations available. Tap to refresh."


def refresh_badge_text(notification: RefreshNotification) -> str | None:
    if not notification.should_notify:
        return None
    if notification.new_guests_count > 0:
        return f"+{notification.new_guests_count}"
    return "!"


def time_since_refresh(state: RefreshSystemState, current_time: datetime | None = None) -> str:
    now = as_utc(current_time) if current_time is not None else _now()
    minutes = int(((now - state.last_refresh_time).total_seconds() // 60))
    if minutes < 1:
        return "Just now"
    if minutes == 1:
        return "1 minute ago"
    if minutes < 60:
        return f"{minutes} minutes ago"
    hours = minutes // 60
    return "1 hour ago" if hours == 1 else f"{hours} hours ago"
