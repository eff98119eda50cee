"""FastAPI adapter over the ranking engines.

Every request carries its own snapshot; the server keeps no event state.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Literal

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from crowd_dj.analysis import build_event_snapshot, build_track
from crowd_dj.config import env_float, env_int, engine_config_from_env, refresh_config_from_env
from crowd_dj.discovery import calculate_average_fingerprint, generate_discovery_queue, synergy_explanation
from crowd_dj.models import AggregatedTrack, SmartFiltersConfig, VibeProfile
from crowd_dj.ranking import RANKING_MODES, DJWeights, EngineConfig, generate_party_hits, get_preset
from crowd_dj.refresh import RefreshController, format_refresh_notification, refresh_badge_text
from crowd_dj.smart_filters import apply_smart_filters, filter_summary, filterable_from_ranking, get_quick_preset
from crowd_dj.vibe_gate import (
    calculate_tracks_per_person,
    create_vibe_profile_from_theme,
    describe_vibe_profile,
    validate_track_against_vibe,
)
from crowd_dj.weighting import EventConfig

app = FastAPI(title="Crowd DJ")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class WeightsModel(BaseModel):
    popularity: float = Field(ge=0.0, le=1.0)
    flow: float = Field(ge=0.0, le=1.0)


class RankRequest(BaseModel):
    """An event snapshot plus ranking options."""
    snapshot: dict[str, Any]
    mode: Literal["hitfinder", "mix-assist"] | None = None
    preset: str | None = None
    weights: WeightsModel | None = None
    filter_preset: str | None = None
    limit: int = Field(default=50, ge=1)


class RankedTrack(BaseModel):
    rank: int
    track_id: str
    name: str
    artist: str
    score: float
    aps: float
    user_count: int
    total_penalty: float = 0.0
    top_contributor: str = "Unknown"
    flow_score: float | None = None
    key_compatibility: str | None = None


class RankResponse(BaseModel):
    mode: str
    guest_count: int
    tracks: list[RankedTrack]
    filters: list[str] = []


class RefreshRequest(BaseModel):
    """Two successive snapshots of the same event."""
    previous: dict[str, Any]
    current: dict[str, Any]
    mode: Literal["hitfinder", "mix-assist"] | None = None


class RefreshResponse(BaseModel):
    should_notify: bool
    reason: str | None = None
    message: str = ""
    badge: str | None = None
    new_guests_count: int = 0
    rank_volatility_percent: float = 0.0
    top_rank_changed: bool = False


class DiscoveryRequest(BaseModel):
    seed_tracks: list[dict[str, Any]] = Field(min_length=1)
    candidate_tracks: list[dict[str, Any]]
    limit: int = Field(default_factory=lambda: env_int("DISCOVERY_LIMIT", 20), ge=1)
    min_synergy_score: float = Field(default_factory=lambda: env_float("MIN_SYNERGY_SCORE", 0.5), ge=0.0, le=1.0)


class DiscoveryTrack(BaseModel):
    track_id: str
    name: str
    artist: str
    synergy_score: float
    explanation: str


class VibeCheckRequest(BaseModel):
    tracks: list[dict[str, Any]]
    profile: dict[str, Any] | None = None
    theme: str | None = None
    strictness: Literal["strict", "loose", "open"] | None = None


class VibeCheckResult(BaseModel):
    track_id: str
    passed: bool
    score: int
    reasons: list[str]
    hard_block: bool = False


class VibeCheckResponse(BaseModel):
    profile: str
    pass_rate: float
    results: list[VibeCheckResult]


def _ranked_track(rank: int, row: AggregatedTrack) -> RankedTrack:
    return RankedTrack(
        rank=rank,
        track_id=row.track_id,
        name=row.name,
        artist=row.artist,
        score=row.score,
        aps=row.aps,
        user_count=row.user_count,
        total_penalty=row.total_penalty,
        top_contributor=row.top_contributor,
        flow_score=row.flow_score,
        key_compatibility=row.key_compatibility,
    )


def _engine_config(mode: str | None, preset: str | None, weights: WeightsModel | None) -> EngineConfig:
    config = engine_config_from_env()
    if mode:
        config = replace(config, mode=mode)
    if preset:
        config = replace(config, weights=get_preset(preset))
    if weights is not None:
        config = replace(config, weights=DJWeights(popularity_weight=weights.popularity, flow_weight=weights.flow))
    return config


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "modes": list(RANKING_MODES)}


@app.get("/api/tracks-per-person")
def tracks_per_person(guests: int):
    """How many top tracks each guest is asked to contribute."""
    return {"guests": guests, "tracks_per_person": calculate_tracks_per_person(guests)}


@app.post("/api/rank", response_model=RankResponse)
def rank_tracks(request: RankRequest):
    """Rank the snapshot's crowd picks, optionally through smart filters."""
    try:
        snapshot = build_event_snapshot(request.snapshot)
        config = _engine_config(request.mode, request.preset, request.weights)
        ranking = generate_party_hits(
            snapshot.contributions,
            EventConfig(),
            play_history=snapshot.play_history,
            current_track=snapshot.current_track,
            config=config,
            catalog=snapshot.catalog,
            current_time=snapshot.current_time,
        )

        filters: SmartFiltersConfig | None = snapshot.smart_filters
        if request.filter_preset:
            filters = get_quick_preset(request.filter_preset).config

        rows = [_ranked_track(rank, row) for rank, row in enumerate(ranking, start=1)]
        if filters is not None:
            by_id = {row.track_id: row for row in ranking}
            filtered = apply_smart_filters(filterable_from_ranking(ranking, snapshot.catalog), snapshot.play_history, filters)
            rows = []
            for rank, item in enumerate(filtered, start=1):
                row = _ranked_track(rank, by_id[item.track_id])
                row.score = item.score
                rows.append(row)

        return RankResponse(
            mode=config.mode,
            guest_count=snapshot.guest_count,
            tracks=rows[: request.limit],
            filters=filter_summary(filters) if filters is not None else [],
        )

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error: {str(e)}")


@app.post("/api/refresh-check", response_model=RefreshResponse)
def refresh_check(request: RefreshRequest):
    """Replay two snapshots through a refresh controller and report the notification."""
    try:
        config = _engine_config(request.mode, None, None)
        controller = RefreshController(refresh_config_from_env())
        notification = None
        for raw in (request.previous, request.current):
            snapshot = build_event_snapshot(raw)
            ranking = generate_party_hits(
                snapshot.contributions,
                EventConfig(),
                play_history=snapshot.play_history,
                current_track=snapshot.current_track,
                config=config,
                catalog=snapshot.catalog,
                current_time=snapshot.current_time,
            )
            notification = controller.evaluate(snapshot.guest_count, ranking, snapshot.current_time)

        return RefreshResponse(
            should_notify=notification.should_notify,
            reason=notification.reason,
            message=format_refresh_notification(notification),
            badge=refresh_badge_text(notification),
            new_guests_count=notification.new_guests_count,
            rank_volatility_percent=notification.rank_volatility_percent,
            top_rank_changed=notification.top_rank_changed,
        )

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error: {str(e)}")


@app.post("/api/discovery", response_model=list[DiscoveryTrack])
def discover_tracks(request: DiscoveryRequest):
    """Suggest catalog tracks that sound like the seed set."""
    try:
        seeds = [build_track(t) for t in request.seed_tracks]
        candidates = [build_track(t) for t in request.candidate_tracks]
        queue = generate_discovery_queue(
            seeds,
            candidates,
            limit=request.limit,
            min_synergy_score=request.min_synergy_score,
        )
        if not queue:
            return []

        fingerprint = calculate_average_fingerprint(
            [s.audio_features for s in seeds if s.audio_features is not None and s.audio_features.is_complete]
        )
        return [
            DiscoveryTrack(
                track_id=item.track_id,
                name=item.track.name,
                artist=item.track.artist,
                synergy_score=item.synergy_score,
                explanation=synergy_explanation(item, fingerprint),
            )
            for item in queue
        ]

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error: {str(e)}")


@app.post("/api/vibe-check", response_model=VibeCheckResponse)
def vibe_check(request: VibeCheckRequest):
    """Score tracks against an explicit vibe profile or one derived from a theme."""
    try:
        if request.profile is not None:
            profile = VibeProfile.from_dict(request.profile)
        elif request.theme:
            profile = create_vibe_profile_from_theme(request.theme)
        else:
            raise HTTPException(status_code=422, detail="Either profile or theme is required")
        if request.strictness:
            profile.strictness = request.strictness

        results = [validate_track_against_vibe(build_track(t), profile) for t in request.tracks]
        passed = sum(1 for r in results if r.passed)

        return VibeCheckResponse(
            profile=describe_vibe_profile(profile),
            pass_rate=passed / len(results) * 100 if results else 0.0,
            results=[
                VibeCheckResult(
                    track_id=r.track.track_id,
                    passed=r.passed,
                    score=r.score,
                    reasons=r.reasons,
                    hard_block=r.hard_block,
                )
                for r in results
            ],
        )

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error: {str(e)}")
