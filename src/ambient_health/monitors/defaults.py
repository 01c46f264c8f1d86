"""Default proactive rules for a desk-work session."""

from __future__ import annotations

from ambient_health.models import AlertType, ProactiveRule
from ambient_health.monitors.rules import RuleEngine


def default_rules() -> list[ProactiveRule]:
    """Return the built-in rule set in declaration (tie-break) order.

    Thresholds are deliberately coarse; tune them per user.
    """
    return [
        ProactiveRule(
            rule_id="break_declining_wpm",
            alert_type=AlertType.BREAK,
            priority=1,
            condition="wpm_trend == 'declining' and focus_duration_min > 90",
            message=(
                "Your typing speed is dropping after a long stretch of focus. "
                "A short break will help you recover."
            ),
        ),
        ProactiveRule(
            rule_id="posture_poor",
            alert_type=AlertType.POSTURE,
            priority=1,
            condition="posture_score < 50",
            message="Your posture has slipped. Sit back and straighten your shoulders.",
        ),
        ProactiveRule(
            rule_id="hydrate_no_breaks",
            alert_type=AlertType.HYDRATE,
            priority=2,
            condition="focus_duration_min > 120 and breaks_taken == 0",
            message="Two hours without a break. Stand up, stretch and grab some water.",
        ),
        ProactiveRule(
            rule_id="eyecare_hourly",
            alert_type=AlertType.EYECARE,
            priority=3,
            condition="focus_duration_min > 60 and focus_duration_min % 60 < 6",
            message="Time for 20-20-20: look at something 20 feet away for 20 seconds.",
        ),
        ProactiveRule(
            rule_id="posture_soft_reminder",
            alert_type=AlertType.POSTURE,
            priority=2,
            condition="focus_duration_min > 45 and posture_score < 70",
            message="Quick posture check: feet flat, back supported, screen at eye level.",
        ),
    ]


def create_default_engine() -> RuleEngine:
    """Factory for a rule engine pre-loaded with the default rules."""
    return RuleEngine(rules=default_rules())
