"""Contextual weighting contract consumed by the aggregation engine.

The decay curve itself lives outside this package. Callers inject an object
implementing :class:`ContextualWeighting`; :class:`FlatWeighting` is the
pass-through used when no curve is configured.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Protocol

from crowd_dj.models import GuestContribution, PresenceStatus


@dataclass(frozen=True, slots=True)
class GuestArrival:
    user_id: str
    arrival_time: datetime
    cohort_index: int
    presence_status: PresenceStatus
    coordinates: tuple[float, float] | None = None
    last_location_update: datetime | None = None

    @classmethod
    def from_contribution(cls, guest: GuestContribution) -> GuestArrival:
        return cls(
            user_id=guest.user_id,
            arrival_time=guest.arrival_time,
            cohort_index=guest.cohort_index,
            presence_status=guest.presence_status,
            coordinates=guest.coordinates,
            last_location_update=guest.last_location_update,
        )


@dataclass(frozen=True, slots=True)
class EventConfig:
    event_id: str = "event"
    start_time: datetime | None = None
    geo_fence_enabled: bool = False
    decay_config: Mapping[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class WeightedScore:
    weighted_pts: float
    time_decay_multiplier: float
    presence_status: PresenceStatus


class ContextualWeighting(Protocol):
    def apply(
        self,
        base_pts: float,
        guest: GuestArrival,
        event_config: EventConfig,
        current_time: datetime,
    ) -> WeightedScore:
        ...


class FlatWeighting:
    """Returns the base score unchanged with a multiplier of 1.0."""

    def apply(
        self,
        base_pts: float,
        guest: GuestArrival,
        event_config: EventConfig,
        current_time: datetime,
    ) -> WeightedScore:
        _ = (event_config, current_time)
        return WeightedScore(
            weighted_pts=base_pts,
            time_decay_multiplier=1.0,
            presence_status=guest.presence_status,
        )
