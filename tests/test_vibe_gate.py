import unittest

from crowd_dj.models import AudioFeatures, Track, ValueRange, VibeProfile
from crowd_dj.vibe_gate import (
    calculate_tracks_per_person,
    create_vibe_profile_from_theme,
    describe_vibe_profile,
    filter_tracks_through_vibe_gate,
    genre_matches,
    validate_track_against_vibe,
)


def _make_track(
    track_id: str = "t1",
    name: str = "Song",
    artist: str = "Artist",
    genres: tuple[str, ...] = ("pop",),
    explicit: bool = False,
    release_year: int | None = 1995,
    energy: float | None = 0.7,
    bpm: float | None = 120.0,
) -> Track:
    return Track(
        track_id=track_id,
        name=name,
        artist=artist,
        genres=genres,
        explicit=explicit,
        release_year=release_year,
        audio_features=AudioFeatures(bpm=bpm, energy=energy, danceability=0.6),
    )


class TracksPerPersonTests(unittest.TestCase):
    def test_scales_inversely_with_crowd(self) -> None:
        self.assertEqual(calculate_tracks_per_person(25), 20)
        self.assertEqual(calculate_tracks_per_person(5), 100)
        self.assertEqual(calculate_tracks_per_person(3), 100)
        self.assertEqual(calculate_tracks_per_person(1000), 10)

    def test_rounds_halves_up(self) -> None:
        # 500 / 40 = 12.5
        self.assertEqual(calculate_tracks_per_person(40), 13)

    def test_non_positive_count_uses_default(self) -> None:
        self.assertEqual(calculate_tracks_per_person(0), 50)
        self.assertEqual(calculate_tracks_per_person(-4), 50)


class GenreMatchTests(unittest.TestCase):
    def test_alias_matches(self) -> None:
        self.assertTrue(genre_matches("contemporary r&b", ["r&b"]))
        self.assertTrue(genre_matches("trap", ["hip-hop"]))
        self.assertTrue(genre_matches("deep house", ["electronic"]))

    def test_substring_match_is_case_insensitive(self) -> None:
        self.assertTrue(genre_matches("Dance Pop", ["pop"]))

    def test_unrelated_genre_does_not_match(self) -> None:
        self.assertFalse(genre_matches("country", ["electronic"]))
        self.assertFalse(genre_matches("", ["pop"]))


class ValidateTrackTests(unittest.TestCase):
    def test_explicit_track_is_hard_blocked(self) -> None:
        profile = VibeProfile(strictness="open", allow_explicit=False)

        result = validate_track_against_vibe(_make_track(explicit=True), profile)

        self.assertFalse(result.passed)
        self.assertEqual(result.score, 0)
        self.assertTrue(result.hard_block)

    def test_excluded_keyword_is_hard_blocked(self) -> None:
        profile = VibeProfile(strictness="open", exclude_keywords=["remix"])

        result = validate_track_against_vibe(_make_track(name="Song (Club Remix)"), profile)

        self.assertFalse(result.passed)
        self.assertEqual(result.score, 0)
        self.assertTrue(result.hard_block)

    def test_full_match_scores_hundred(self) -> None:
        profile = VibeProfile(
            strictness="strict",
            allowed_genres=["pop"],
            year_range=ValueRange(min=1990, max=1999),
            energy=ValueRange(min=0.5, max=1.0),
        )

        result = validate_track_against_vibe(_make_track(), profile)

        self.assertTrue(result.passed)
        self.assertEqual(result.score, 100)
        self.assertIn("✓ Genre match", result.reasons)

    def test_score_of_sixty_passes_loose_and_fails_strict(self) -> None:
        track = _make_track(genres=("country",))
        loose = VibeProfile(strictness="loose", allowed_genres=["electronic"])
        strict = VibeProfile(strictness="strict", allowed_genres=["electronic"])

        loose_result = validate_track_against_vibe(track, loose)
        strict_result = validate_track_against_vibe(track, strict)

        self.assertEqual(loose_result.score, 60)
        self.assertTrue(loose_result.passed)
        self.assertEqual(strict_result.score, 60)
        self.assertFalse(strict_result.passed)

    def test_blocked_genre_fails_strict_immediately(self) -> None:
        profile = VibeProfile(strictness="strict", blocked_genres=["pop"])

        result = validate_track_against_vibe(_make_track(), profile)

        self.assertFalse(result.passed)
        self.assertEqual(result.score, 0)
        self.assertFalse(result.hard_block)

    def test_blocked_genre_deducts_in_loose_mode(self) -> None:
        profile = VibeProfile(strictness="loose", blocked_genres=["pop"])

        result = validate_track_against_vibe(_make_track(), profile)

        self.assertEqual(result.score, 70)
        self.assertTrue(result.passed)

    def test_blocked_artist_deducts_in_loose_mode(self) -> None:
        profile = VibeProfile(strictness="loose", blocked_artists=["artist"])

        result = validate_track_against_vibe(_make_track(), profile)

        self.assertEqual(result.score, 70)

    def test_range_misses_accumulate(self) -> None:
        profile = VibeProfile(
            strictness="open",
            year_range=ValueRange(min=2000, max=2009),
            tempo_range=ValueRange(min=60, max=100),
            energy=ValueRange(min=0.0, max=0.5),
            danceability=ValueRange(min=0.8, max=1.0),
        )

        result = validate_track_against_vibe(_make_track(), profile)

        self.assertEqual(result.score, 100 - 20 - 10 - 10 - 10)
        self.assertTrue(result.passed)

    def test_missing_values_skip_range_checks(self) -> None:
        profile = VibeProfile(strictness="strict", year_range=ValueRange(min=2000, max=2009))

        result = validate_track_against_vibe(_make_track(release_year=None), profile)

        self.assertEqual(result.score, 100)

    def test_keyword_bonus_is_capped(self) -> None:
        profile = VibeProfile(strictness="strict", keywords=["song"])

        result = validate_track_against_vibe(_make_track(), profile)

        self.assertEqual(result.score, 100)
        self.assertIn("✓ Contains desired keywords", result.reasons)

    def test_unknown_strictness_raises(self) -> None:
        with self.assertRaises(ValueError):
            validate_track_against_vibe(_make_track(), VibeProfile(strictness="lenient"))


class FilterBatchTests(unittest.TestCase):
    def test_partitions_and_reports_pass_rate(self) -> None:
        profile = VibeProfile(strictness="loose", allow_explicit=False)
        tracks = [_make_track("a"), _make_track("b", explicit=True), _make_track("c"), _make_track("d")]

        batch = filter_tracks_through_vibe_gate(tracks, profile)

        self.assertEqual([t.track_id for t in batch.passed], ["a", "c", "d"])
        self.assertEqual([t.track_id for t in batch.failed], ["b"])
        self.assertEqual(batch.total, 4)
        self.assertAlmostEqual(batch.pass_rate, 75.0)

    def test_empty_batch(self) -> None:
        batch = filter_tracks_through_vibe_gate([], VibeProfile())
        self.assertEqual(batch.total, 0)
        self.assertEqual(batch.pass_rate, 0.0)


class ThemeProfileTests(unittest.TestCase):
    def test_nineties_rnb_theme(self) -> None:
        profile = create_vibe_profile_from_theme("90s R&B night")

        self.assertEqual(profile.strictness, "strict")
        self.assertEqual(profile.year_range, ValueRange(min=1990, max=1999))
        self.assertEqual(profile.allowed_genres, ["r&b", "soul"])

    def test_workout_theme_sets_energy_and_tempo(self) -> None:
        profile = create_vibe_profile_from_theme("Gym workout")

        self.assertEqual(profile.energy, ValueRange(min=0.7, max=1.0))
        self.assertEqual(profile.tempo_range, ValueRange(min=120, max=180))

    def test_description(self) -> None:
        profile = create_vibe_profile_from_theme("90s R&B")

        description = describe_vibe_profile(profile)

        self.assertEqual(description, "Genres: r&b, soul • Years: 1990-1999 • Mode: strict")


if __name__ == "__main__":
    unittest.main()
