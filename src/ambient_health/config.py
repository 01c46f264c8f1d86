"""Centralised application settings loaded from environment / .env file."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """All runtime configuration for the ambient health engine.

    Values are read from environment variables first, then from a *.env* file
    located at the project root.  Every variable lives in the flat
    ``AMBIENT_HEALTH_`` namespace.  Durations are expressed in seconds.

    The detection thresholds are empirically tuned defaults, not calibrated
    constants: adjust them per camera and room.
    """

    model_config = SettingsConfigDict(
        env_prefix="AMBIENT_HEALTH_",
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Backends ──────────────────────────────────────────────
    sensor_backend: Literal["device", "null"] = "device"
    camera_index: int = 0
    blink_camera_index: int = 0

    # ── Presence ──────────────────────────────────────────────
    presence_interval_seconds: float = 2.0
    presence_absence_threshold_seconds: float = 10.0
    presence_stddev_threshold: float = 35.0

    # ── Posture ───────────────────────────────────────────────
    posture_interval_seconds: float = 3.0
    posture_bad_threshold_seconds: float = 300.0
    posture_y_low_threshold: float = 0.65  # head below this → slouching
    posture_y_high_threshold: float = 0.2  # head above this → leaning in

    # ── Blink rate ────────────────────────────────────────────
    blink_sample_interval_seconds: float = 1 / 15
    blink_stats_interval_seconds: float = 5.0
    blink_calibration_frames: int = 30
    blink_drop_ratio: float = 0.03
    blink_debounce_seconds: float = 0.2

    # ── Keystroke cadence ─────────────────────────────────────
    keystroke_window_seconds: float = 60.0
    keystroke_sample_interval_seconds: float = 5.0
    keystroke_calibration_seconds: float = 300.0

    # ── Voice capture ─────────────────────────────────────────
    voice_listen_timeout_seconds: float = 30.0
    voice_silence_seconds: float = 1.5
    voice_min_speech_seconds: float = 0.5
    voice_amplitude_threshold: float = 0.015
    voice_cooldown_seconds: float = 2.0
    voice_min_segment_bytes: int = 1000
    voice_sample_rate: int = 16_000
    hotkey_chord: str = "<ctrl>+<shift>+h"

    # ── Proactive rules ───────────────────────────────────────
    rules_interval_seconds: float = 300.0
    rules_initial_delay_seconds: float = 10.0
    rules_min_alert_gap_seconds: float = 600.0
    rules_history_size: int = 20
    break_threshold_seconds: float = 300.0

    # ── Daily summary ─────────────────────────────────────────
    summary_target_hour: int = 22
    summary_window_minutes: int = 5
    summary_check_interval_seconds: float = 60.0

    # ── Speech / messages ─────────────────────────────────────
    auto_speak: bool = True
    message_poll_interval_seconds: float = 900.0

    # ── External collaborators ────────────────────────────────
    transcription_url: str = ""
    synthesis_url: str = ""
    stats_url: str = ""
    message_url: str = ""
    collaborator_timeout: float = 30.0
    transcription_language: str = "en"

    # ── Notifications ─────────────────────────────────────────
    webhook_url: str = ""
    webhook_max_priority: int = Field(default=3, ge=1, le=3)
    webhook_timeout: float = 10.0

    # ── Logging ───────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Return a cached :class:`Settings` singleton."""
    return Settings()
