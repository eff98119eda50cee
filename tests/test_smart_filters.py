import unittest
from datetime import datetime, timedelta, timezone

from crowd_dj.models import AggregatedTrack, AudioFeatures, PlayRecord, SmartFiltersConfig, Track
from crowd_dj.smart_filters import (
    FilterableTrack,
    active_filter_count,
    apply_era_bias,
    apply_smart_filters,
    filter_summary,
    filterable_from_ranking,
    get_quick_preset,
    parse_era,
    passes_audio_feature_filters,
    passes_repetition_filter,
    repetition_window,
)

NOW = datetime(2024, 6, 1, 22, 0, tzinfo=timezone.utc)


def _make_track(
    track_id: str,
    score: float = 10.0,
    artist: str = "Artist",
    explicit: bool = False,
    release_year: int | None = 2010,
    features: AudioFeatures | None = None,
) -> FilterableTrack:
    return FilterableTrack(
        track_id=track_id,
        name=track_id.upper(),
        artist=artist,
        score=score,
        explicit=explicit,
        release_year=release_year,
        audio_features=features,
    )


def _make_history(*artists: str) -> list[PlayRecord]:
    # First artist is the most recent play.
    return [
        PlayRecord(track_id=f"p{i}", artist=artist, played_at=NOW - timedelta(minutes=4 * i))
        for i, artist in enumerate(artists)
    ]


class RepetitionFilterTests(unittest.TestCase):
    def test_tiers(self) -> None:
        self.assertEqual(repetition_window(SmartFiltersConfig(repetition_velocity="off")), 0)
        self.assertEqual(repetition_window(SmartFiltersConfig(repetition_velocity="low")), 3)
        self.assertEqual(repetition_window(SmartFiltersConfig(repetition_velocity="medium")), 5)
        self.assertEqual(repetition_window(SmartFiltersConfig(repetition_velocity="high")), 10)
        self.assertEqual(
            repetition_window(SmartFiltersConfig(repetition_velocity="custom", repetition_velocity_n=7)), 7
        )

    def test_unknown_tier_raises(self) -> None:
        with self.assertRaises(ValueError):
            repetition_window(SmartFiltersConfig(repetition_velocity="extreme"))

    def test_rejects_artist_in_last_n_plays(self) -> None:
        config = SmartFiltersConfig(repetition_velocity="low")
        history = _make_history("A", "B", "C", "Target")

        self.assertFalse(passes_repetition_filter(_make_track("x", artist="b"), history, config))
        self.assertTrue(passes_repetition_filter(_make_track("y", artist="Target"), history, config))

    def test_history_order_does_not_matter(self) -> None:
        config = SmartFiltersConfig(repetition_velocity="low")
        history = list(reversed(_make_history("A", "B", "C", "Target")))

        self.assertTrue(passes_repetition_filter(_make_track("y", artist="Target"), history, config))


class AudioFeatureFilterTests(unittest.TestCase):
    def test_missing_features_pass(self) -> None:
        config = SmartFiltersConfig(energy_min=0.8)
        self.assertTrue(passes_audio_feature_filters(_make_track("x"), config))

    def test_bounds(self) -> None:
        config = SmartFiltersConfig(energy_min=0.5, valence_max=0.6)
        ok = _make_track("ok", features=AudioFeatures(energy=0.7, valence=0.5))
        too_happy = _make_track("happy", features=AudioFeatures(energy=0.7, valence=0.9))
        too_calm = _make_track("calm", features=AudioFeatures(energy=0.2, valence=0.5))

        self.assertTrue(passes_audio_feature_filters(ok, config))
        self.assertFalse(passes_audio_feature_filters(too_happy, config))
        self.assertFalse(passes_audio_feature_filters(too_calm, config))

    def test_vocal_emphasis_caps_instrumentalness(self) -> None:
        config = SmartFiltersConfig(vocal_emphasis=True, instrumentalness_max=0.2)
        vocal = _make_track("vocal", features=AudioFeatures(instrumentalness=0.05))
        instrumental = _make_track("inst", features=AudioFeatures(instrumentalness=0.9))

        self.assertTrue(passes_audio_feature_filters(vocal, config))
        self.assertFalse(passes_audio_feature_filters(instrumental, config))


class EraBiasTests(unittest.TestCase):
    def test_parse_era_forms(self) -> None:
        self.assertEqual(parse_era("1990s"), (1990, 1999))
        self.assertEqual(parse_era("1980-1999"), (1980, 1999))
        self.assertEqual(parse_era("1995"), (1995, 1995))
        self.assertIsNone(parse_era("golden age"))

    def test_boost_inside_era_only(self) -> None:
        config = SmartFiltersConfig(era_bias="1990s", era_bias_multiplier=2.0)

        self.assertEqual(apply_era_bias(_make_track("in", score=5.0, release_year=1994), config), 10.0)
        self.assertEqual(apply_era_bias(_make_track("out", score=5.0, release_year=2004), config), 5.0)
        self.assertEqual(apply_era_bias(_make_track("none", score=5.0, release_year=None), config), 5.0)

    def test_unparsable_era_leaves_score(self) -> None:
        config = SmartFiltersConfig(era_bias="golden age")
        self.assertEqual(apply_era_bias(_make_track("x", score=5.0, release_year=1994), config), 5.0)


class ApplySmartFiltersTests(unittest.TestCase):
    def test_default_config_keeps_everything_in_order(self) -> None:
        tracks = [_make_track("a", 9.0), _make_track("b", 5.0, explicit=True)]

        result = apply_smart_filters(tracks, [], SmartFiltersConfig())

        self.assertEqual([t.track_id for t in result], ["a", "b"])

    def test_pipeline_filters_then_boosts_then_resorts(self) -> None:
        config = SmartFiltersConfig(
            no_explicit=True,
            repetition_velocity="low",
            era_bias="1980-1999",
            era_bias_multiplier=3.0,
            energy_min=0.5,
        )
        tracks = [
            _make_track("top", 10.0, release_year=2015),
            _make_track("explicit", 9.0, explicit=True),
            _make_track("repeat", 8.0, artist="Just Played"),
            _make_track("calm", 7.0, features=AudioFeatures(energy=0.1)),
            _make_track("retro", 4.0, release_year=1988),
        ]

        result = apply_smart_filters(tracks, _make_history("Just Played"), config)

        self.assertEqual([t.track_id for t in result], ["retro", "top"])
        self.assertEqual(result[0].score, 12.0)
        self.assertEqual(tracks[4].score, 4.0)

    def test_ranking_rows_pick_up_catalog_metadata(self) -> None:
        row = AggregatedTrack(
            track_id="t1", name="T1", artist="A", aps=10.0, contributors=[], user_count=1, avg_pts=10.0,
            ranking_score=6.0,
        )
        catalog = {"t1": Track(track_id="t1", name="T1", artist="A", explicit=True, release_year=1999)}

        rows = filterable_from_ranking([row], catalog)

        self.assertEqual(rows[0].score, 6.0)
        self.assertTrue(rows[0].explicit)
        self.assertEqual(rows[0].release_year, 1999)


class PresetAndSummaryTests(unittest.TestCase):
    def test_quick_preset_lookup(self) -> None:
        preset = get_quick_preset("peak-hour")
        self.assertEqual(preset.config.energy_min, 0.8)
        self.assertEqual(preset.config.repetition_velocity, "medium")

    def test_unknown_preset_raises(self) -> None:
        with self.assertRaises(ValueError):
            get_quick_preset("after-party")

    def test_active_filter_count(self) -> None:
        self.assertEqual(active_filter_count(SmartFiltersConfig()), 0)
        self.assertEqual(active_filter_count(get_quick_preset("high-energy-throwback").config), 3)

    def test_summary(self) -> None:
        summary = filter_summary(get_quick_preset("cool-down").config)
        self.assertEqual(summary, ["Artist variety: low (3 songs)", "Energy: 0%-50%", "Mood: 0%-60%"])

    def test_config_round_trips_through_dict(self) -> None:
        config = get_quick_preset("vocal-showcase").config
        self.assertEqual(SmartFiltersConfig.from_dict(config.to_dict()), config)


if __name__ == "__main__":
    unittest.main()
