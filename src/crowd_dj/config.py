from __future__ import annotations

import os
from pathlib import Path

from crowd_dj.ranking import EngineConfig, get_preset
from crowd_dj.refresh import RefreshConfig


def load_local_env_file(env_path: str = ".env") -> None:
    """Load key=value pairs from a local .env file into process env.

    Existing environment variables are preserved and not overwritten.
    """

    path = Path(env_path)
    if not path.exists():
        return

    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")

        if key and key not in os.environ:
            os.environ[key] = value


def env_int(name: str, fallback: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    try:
        return int(raw)
    except ValueError:
        return fallback


def env_float(name: str, fallback: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    try:
        return float(raw)
    except ValueError:
        return fallback


def env_str(name: str, fallback: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    return raw.strip()


def engine_config_from_env() -> EngineConfig:
    return EngineConfig(
        mode=env_str("RANKING_MODE", "hitfinder"),
        weights=get_preset(env_str("WEIGHT_PRESET", "balanced")),
        repeat_window_hours=env_float("REPEAT_WINDOW_HOURS", 3.0),
        artist_fatigue_count=env_int("ARTIST_FATIGUE_COUNT", 3),
    )


def refresh_config_from_env() -> RefreshConfig:
    return RefreshConfig(
        minimum_guests_for_recommendations=env_int("MIN_GUESTS", 5),
        rank_volatility_threshold=env_float("RANK_VOLATILITY_THRESHOLD", 0.3),
        minimum_guest_batch_size=env_int("GUEST_BATCH_SIZE", 5),
    )
