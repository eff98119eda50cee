import os
import unittest
from unittest.mock import patch

from fastapi import HTTPException

from crowd_dj.api import (
    DiscoveryRequest,
    RankRequest,
    RefreshRequest,
    VibeCheckRequest,
    WeightsModel,
    discover_tracks,
    health_check,
    rank_tracks,
    refresh_check,
    tracks_per_person,
    vibe_check,
)


def _features(bpm: float, energy: float = 0.7, key: int = 9, mode: int = 0) -> dict:
    return {
        "tempo": bpm,
        "key": key,
        "mode": mode,
        "danceability": 0.7,
        "energy": energy,
        "valence": 0.5,
        "loudness": -6.0,
        "acousticness": 0.1,
        "instrumentalness": 0.0,
        "speechiness": 0.05,
    }


def _catalog_track(track_id: str, bpm: float, explicit: bool = False, genres: list[str] | None = None) -> dict:
    return {
        "id": track_id,
        "name": track_id.title(),
        "artists": [{"name": f"Artist {track_id}"}],
        "album": {"name": "Album", "release_date": "1996-05-01"},
        "explicit": explicit,
        "genres": genres or ["house"],
        "audio_features": _features(bpm),
    }


def _snapshot(guest_count: int = 5, extra_guest_pick: str | None = None) -> dict:
    guests = []
    for i in range(guest_count):
        tracks = [
            {"id": "hit", "name": "Hit", "artist": "Artist hit", "pts": 8},
            {"id": "groove", "name": "Groove", "artist": "Artist groove", "pts": 3},
        ]
        if extra_guest_pick and i >= 5:
            tracks = [{"id": extra_guest_pick, "name": "Surge", "artist": "Artist surge", "pts": 11}]
        guests.append({"user_id": f"u{i}", "tracks": tracks})
    return {
        "guests": guests,
        "catalog": [_catalog_track("hit", 128, explicit=True), _catalog_track("groove", 124)],
        "current_track_id": None,
        "current_time": "2024-06-01T22:00:00Z",
    }


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        env = patch.dict(os.environ, {"RANKING_MODE": "", "WEIGHT_PRESET": "", "MIN_GUESTS": "5", "GUEST_BATCH_SIZE": "5"})
        env.start()
        self.addCleanup(env.stop)

    def test_health(self) -> None:
        self.assertEqual(health_check()["status"], "ok")

    def test_tracks_per_person(self) -> None:
        self.assertEqual(tracks_per_person(25)["tracks_per_person"], 20)

    def test_rank_hitfinder(self) -> None:
        response = rank_tracks(RankRequest(snapshot=_snapshot()))

        self.assertEqual(response.mode, "hitfinder")
        self.assertEqual(response.guest_count, 5)
        self.assertEqual([t.track_id for t in response.tracks], ["hit", "groove"])
        self.assertAlmostEqual(response.tracks[0].score, 0.6 * 40)
        self.assertEqual(response.tracks[0].top_contributor, "u0")
        self.assertEqual(response.filters, [])

    def test_rank_with_custom_weights(self) -> None:
        response = rank_tracks(RankRequest(snapshot=_snapshot(), weights=WeightsModel(popularity=0.5, flow=0.5)))
        self.assertAlmostEqual(response.tracks[0].score, 20.0)

    def test_rank_through_quick_preset(self) -> None:
        response = rank_tracks(RankRequest(snapshot=_snapshot(), filter_preset="family-friendly", limit=5))

        self.assertEqual([t.track_id for t in response.tracks], ["groove"])
        self.assertEqual(response.tracks[0].rank, 1)
        self.assertEqual(response.filters, ["No explicit content"])

    def test_rank_mix_assist_uses_current_track(self) -> None:
        snapshot = _snapshot()
        snapshot["catalog"].append(_catalog_track("now", 124))
        snapshot["current_track_id"] = "now"

        response = rank_tracks(RankRequest(snapshot=snapshot, mode="mix-assist"))

        groove = next(t for t in response.tracks if t.track_id == "groove")
        self.assertAlmostEqual(groove.flow_score, 1.0)
        self.assertEqual(groove.key_compatibility, "Perfect")

    def test_unknown_preset_is_422(self) -> None:
        with self.assertRaises(HTTPException) as exc:
            rank_tracks(RankRequest(snapshot=_snapshot(), preset="loud"))
        self.assertEqual(exc.exception.status_code, 422)

    def test_guest_without_user_id_is_422(self) -> None:
        snapshot = _snapshot()
        del snapshot["guests"][0]["user_id"]
        with self.assertRaises(HTTPException) as exc:
            rank_tracks(RankRequest(snapshot=snapshot))
        self.assertEqual(exc.exception.status_code, 422)

    def test_refresh_check_reports_guest_batch(self) -> None:
        response = refresh_check(RefreshRequest(previous=_snapshot(5), current=_snapshot(10)))

        self.assertTrue(response.should_notify)
        self.assertEqual(response.reason, "guest_batch")
        self.assertEqual(response.badge, "+5")
        self.assertEqual(response.new_guests_count, 5)

    def test_refresh_check_reports_new_number_one(self) -> None:
        response = refresh_check(RefreshRequest(previous=_snapshot(5), current=_snapshot(9, extra_guest_pick="surge")))

        self.assertTrue(response.top_rank_changed)
        self.assertEqual(response.reason, "multiple")

    def test_discovery(self) -> None:
        request = DiscoveryRequest(
            seed_tracks=[_catalog_track("seed", 124)],
            candidate_tracks=[_catalog_track("close", 125), _catalog_track("seed", 124)],
            min_synergy_score=0.5,
        )

        response = discover_tracks(request)

        self.assertEqual([t.track_id for t in response], ["close"])
        self.assertIn("Perfect BPM match", response[0].explanation)

    def test_vibe_check_with_theme(self) -> None:
        request = VibeCheckRequest(
            tracks=[_catalog_track("a", 124), _catalog_track("b", 124, genres=["country"])],
            theme="90s house party",
            strictness="strict",
        )

        response = vibe_check(request)

        self.assertEqual([r.passed for r in response.results], [True, False])
        self.assertEqual(response.pass_rate, 50.0)
        self.assertIn("Mode: strict", response.profile)

    def test_vibe_check_requires_profile_or_theme(self) -> None:
        with self.assertRaises(HTTPException) as exc:
            vibe_check(VibeCheckRequest(tracks=[]))
        self.assertEqual(exc.exception.status_code, 422)

    def test_vibe_check_unknown_strictness_is_422(self) -> None:
        request = VibeCheckRequest(tracks=[_catalog_track("a", 124)], profile={"strictness": "lenient"})
        with self.assertRaises(HTTPException) as exc:
            vibe_check(request)
        self.assertEqual(exc.exception.status_code, 422)


if __name__ == "__main__":
    unittest.main()
