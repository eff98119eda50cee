from __future__ import annotations

from dataclasses import dataclass

from crowd_dj.models import AudioFeatures, Track

BPM_WEIGHT = 0.3
HARMONIC_WEIGHT = 0.6
ENERGY_WEIGHT = 0.1

# Energy difference below which the energy term is awarded.
_ENERGY_MATCH_DIFF = 0.3

_BPM_STEPS = ((5, 1.0), (10, 0.8), (20, 0.6), (30, 0.4))
_HARMONIC_STEPS = {0: 1.0, 1: 0.9, 2: 0.7, 3: 0.5}


@dataclass(frozen=True, slots=True)
class FlowScore:
    flow_score: float
    bpm_similarity: float
    harmonic_compatibility: float
    energy_similarity: float
    bpm_diff: float
    key_distance: int
    energy_diff: float


@dataclass(frozen=True, slots=True)
class TransitionCandidate:
    from_track_id: str
    to_track_id: str
    score: float
    reason: str


@dataclass(frozen=True, slots=True)
class TransitionAnalysis:
    quality: str
    quality_score: int
    bpm_difference: float
    energy_change: float
    progression: str
    advice: str


def bpm_similarity(bpm_diff: float) -> float:
    for limit, similarity in _BPM_STEPS:
        if bpm_diff <= limit:
            return similarity
    return 0.2


def key_to_camelot(key: int, mode: int) -> int:
    """Wheel position 0-23: major keys sit at 0-11, minor keys at 12-23."""
    return key if mode == 1 else key + 12


def key_distance(key_a: int, mode_a: int, key_b: int, mode_b: int) -> int:
    diff = abs(key_to_camelot(key_a, mode_a) - key_to_camelot(key_b, mode_b))
    distance = min(diff, 24 - diff)
    return min(6, distance // 2)


def harmonic_compatibility(distance: int) -> float:
    return _HARMONIC_STEPS.get(distance, 0.3)


def key_compatibility_label(harmonic: float) -> str:
    if harmonic > 0.8:
        return "Perfect"
    if harmonic > 0.6:
        return "Good"
    if harmonic > 0.4:
        return "OK"
    return "Difficult"


def calculate_flow_score(candidate: AudioFeatures, current: AudioFeatures) -> FlowScore:
    """Mixing compatibility (0-1) of ``candidate`` played after ``current``.

    Both feature sets must carry bpm, key, mode and energy; check
    ``AudioFeatures.supports_mixing`` first.
    """
    bpm_diff = abs(candidate.bpm - current.bpm)
    bpm_sim = bpm_similarity(bpm_diff)

    distance = key_distance(candidate.key, candidate.mode, current.key, current.mode)
    harmonic = harmonic_compatibility(distance)

    energy_diff = abs(candidate.energy - current.energy)
    energy_sim = 1.0 if energy_diff < _ENERGY_MATCH_DIFF else 0.0

    total = min(1.0, HARMONIC_WEIGHT * harmonic + BPM_WEIGHT * bpm_sim + ENERGY_WEIGHT * energy_sim)
    return FlowScore(
        flow_score=total,
        bpm_similarity=bpm_sim,
        harmonic_compatibility=harmonic,
        energy_similarity=energy_sim,
        bpm_diff=bpm_diff,
        key_distance=distance,
        energy_diff=energy_diff,
    )


def _can_mix(track: Track) -> bool:
    return track.audio_features is not None and track.audio_features.supports_mixing


def best_transition(current: Track, candidates: list[Track]) -> TransitionCandidate | None:
    if not _can_mix(current):
        return None

    best: TransitionCandidate | None = None
    for candidate in candidates:
        if candidate.track_id == current.track_id:
            continue
        # Candidates without mixing features would score against missing values.
        if not _can_mix(candidate):
            continue

        flow = calculate_flow_score(candidate.audio_features, current.audio_features)
        reason = (
            f"bpmΔ={flow.bpm_diff:.1f}, "
            f"keyΔ={flow.key_distance}, "
            f"energyΔ={flow.energy_diff:.2f}"
        )
        match = TransitionCandidate(
            from_track_id=current.track_id,
            to_track_id=candidate.track_id,
            score=flow.flow_score,
            reason=reason,
        )
        if best is None or match.score > best.score:
            best = match
    return best


def transition_quality(current_bpm: float, next_bpm: float, current_energy: float = 75, next_energy: float = 75) -> str:
    bpm_diff = abs(current_bpm - next_bpm)
    energy_diff = abs(next_energy - current_energy)
    if bpm_diff <= 5 and energy_diff <= 10:
        return "perfect"
    if bpm_diff <= 10 and energy_diff <= 20:
        return "seamless"
    if bpm_diff <= 15:
        return "good"
    if bpm_diff <= 25:
        return "acceptable"
    return "challenging"


def transition_score(
    current_bpm: float,
    next_bpm: float,
    current_energy: float = 75,
    next_energy: float = 75,
    same_key: bool = False,
) -> int:
    """0-100 score: BPM up to 40, energy up to 30, key 10, base 20."""
    bpm_diff = abs(current_bpm - next_bpm)
    energy_diff = abs(next_energy - current_energy)

    if bpm_diff <= 5:
        bpm_points = 40.0
    elif bpm_diff <= 10:
        bpm_points = 35.0
    elif bpm_diff <= 15:
        bpm_points = 30.0
    elif bpm_diff <= 25:
        bpm_points = 25.0
    else:
        bpm_points = max(0.0, 30 - (bpm_diff - 15))

    if energy_diff <= 10:
        energy_points = 30.0
    elif energy_diff <= 20:
        energy_points = 25.0
    elif energy_diff <= 30:
        energy_points = 20.0
    else:
        energy_points = max(0.0, 20 - (energy_diff - 20))

    key_points = 10 if same_key else 0
    return int(min(100, bpm_points + energy_points + key_points + 20))


def energy_progression(current_energy: float, next_energy: float) -> str:
    diff = next_energy - current_energy
    if diff > 10:
        return "building"
    if diff < -10:
        return "winding_down"
    return "maintaining"


def analyze_transition(
    current_bpm: float,
    next_bpm: float,
    current_energy: float = 75,
    next_energy: float = 75,
    same_key: bool = False,
) -> TransitionAnalysis:
    """Describe a hand-off between two tracks. Energies are on a 0-100 scale."""
    bpm_diff = abs(current_bpm - next_bpm)
    energy_change = next_energy - current_energy
    progression = energy_progression(current_energy, next_energy)

    parts: list[str] = []
    if bpm_diff <= 5:
        parts.append("BPM nearly identical")
    elif bpm_diff <= 10:
        parts.append("BPM close match")
    elif bpm_diff <= 15:
        parts.append("BPM within acceptable range")
    elif bpm_diff <= 25:
        parts.append("BPM needs adjustment")
    else:
        parts.append("BPM jump - consider transition track")

    if abs(energy_change) <= 10:
        parts.append("energy stays similar")
    elif energy_change > 10:
        parts.append(f"{round(energy_change)}% energy boost")
    else:
        parts.append(f"{abs(round(energy_change))}% energy drop")

    if progression == "building" and energy_change > 20:
        parts.append("big energy jump - good for peak moments")
    elif progression == "winding_down" and energy_change < -20:
        parts.append("significant energy drop - better for set end")

    if same_key:
        parts.append("harmonic key match")

    return TransitionAnalysis(
        quality=transition_quality(current_bpm, next_bpm, current_energy, next_energy),
        quality_score=transition_score(current_bpm, next_bpm, current_energy, next_energy, same_key),
        bpm_difference=bpm_diff,
        energy_change=energy_change,
        progression=progression,
        advice=" • ".join(parts),
    )
