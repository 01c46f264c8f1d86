"""Shared Pydantic models used across the engine."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ── Enums ─────────────────────────────────────────────────────

class BlinkStatus(str, Enum):
    NORMAL = "normal"
    LOW = "low"    # fatigue or deep focus
    HIGH = "high"  # stress or dry eye


class WpmTrend(str, Enum):
    RISING = "rising"
    STABLE = "stable"
    DECLINING = "declining"


class FatigueLevel(str, Enum):
    """Typing fatigue relative to the session's calibrated baseline."""
    NONE = "none"
    MILD = "mild"
    MODERATE = "moderate"
    HIGH = "high"


class VoiceCaptureState(str, Enum):
    """Push-to-talk capture states; transitions are strictly cyclic."""
    READY = "ready"
    LISTENING = "listening"
    PROCESSING = "processing"
    COOLDOWN = "cooldown"


class AlertType(str, Enum):
    BREAK = "break"
    POSTURE = "posture"
    HYDRATE = "hydrate"
    EYECARE = "eyecare"


class MessagePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ── Estimator state ───────────────────────────────────────────

class PresenceState(BaseModel):
    """Latest presence classification.  Timestamps are engine-clock seconds."""
    is_present: bool = True
    away_duration_ms: int = 0
    last_seen_at: float = 0.0
    device_available: bool = False


class HeadPosition(BaseModel):
    """Normalised head centroid within the sampled frame."""
    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)


class PostureState(BaseModel):
    score: int = Field(100, ge=0, le=100)  # smoothed, never raw
    is_bad: bool = False
    bad_duration_ms: int = 0
    head_position: HeadPosition | None = None


class BlinkStats(BaseModel):
    blinks_per_minute: int = 0
    status: BlinkStatus = BlinkStatus.NORMAL
    calibrated: bool = False
    message: str = ""


class WpmSnapshot(BaseModel):
    wpm: int = 0
    trend: WpmTrend = WpmTrend.STABLE
    fatigue: FatigueLevel = FatigueLevel.NONE
    session_minutes: int = 0
    baseline: int = 0


# ── Rules & alerts ────────────────────────────────────────────

class HealthMetrics(BaseModel):
    """Read-only snapshot assembled for every rules-engine tick."""
    model_config = ConfigDict(frozen=True)

    wpm: int = 0
    wpm_trend: WpmTrend = WpmTrend.STABLE
    posture_score: int = 100
    is_present: bool = True
    focus_duration_min: int = 0
    breaks_taken: int = 0


class ProactiveRule(BaseModel):
    """A declarative rule evaluated against :class:`HealthMetrics`.

    ``condition`` is an expression over the metric field names, e.g.
    ``"posture_score < 50"``.
    """
    rule_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    alert_type: AlertType
    priority: int = Field(2, ge=1, le=3)  # 1 = high, 3 = low
    condition: str
    message: str


class Alert(BaseModel):
    """A proactive alert.  Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"alert_{uuid.uuid4().hex[:12]}")
    type: AlertType
    message: str
    priority: int = Field(ge=1, le=3)
    rule_id: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


# ── External collaborator payloads ────────────────────────────

class DayStats(BaseModel):
    """Aggregate statistics for the current day, as served by the stats service."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    adherence_percent: int = 0
    breaks_taken: int = 0
    avg_posture_score: int = 0
    focus_minutes: int = 0
    voice_commands: int = 0


class AgentAction(BaseModel):
    action_type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class AgentMessage(BaseModel):
    """A message produced by the reasoning service."""
    text: str
    category: str = "health_insight"
    priority: MessagePriority = MessagePriority.LOW
    action: AgentAction | None = None


# ── Events ────────────────────────────────────────────────────

class HealthEvent(BaseModel):
    """Base class for everything published on the event bus."""
    kind: str
    timestamp: datetime = Field(default_factory=_utcnow)


class UserLeft(HealthEvent):
    kind: Literal["user_left"] = "user_left"


class UserReturned(HealthEvent):
    kind: Literal["user_returned"] = "user_returned"
    away_ms: int


class BadPostureDetected(HealthEvent):
    kind: Literal["bad_posture"] = "bad_posture"
    duration_ms: int


class TranscriptReceived(HealthEvent):
    kind: Literal["transcript"] = "transcript"
    text: str


class VoiceStateChanged(HealthEvent):
    kind: Literal["voice_state"] = "voice_state"
    state: VoiceCaptureState
    error: str | None = None


class AlertEmitted(HealthEvent):
    kind: Literal["alert"] = "alert"
    alert: Alert
