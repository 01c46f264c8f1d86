"""Rule engine — evaluates :class:`ProactiveRule` against a :class:`HealthMetrics` snapshot."""

from __future__ import annotations

from typing import Any

import structlog

from ambient_health.models import HealthMetrics, ProactiveRule

logger = structlog.get_logger(__name__)


class RuleEngine:
    """Evaluate a set of declarative proactive rules against a metrics snapshot.

    Rules use a simple expression language evaluated in a restricted
    namespace.  Every :class:`HealthMetrics` field is exposed by name;
    enum fields are exposed as their string values.

    Example rule condition::

        "wpm_trend == 'declining' and focus_duration_min > 90"
    """

    def __init__(self, rules: list[ProactiveRule] | None = None) -> None:
        self._rules: list[ProactiveRule] = rules or []

    # ── Rule management ───────────────────────────────────────

    def add_rule(self, rule: ProactiveRule) -> None:
        self._rules.append(rule)

    def remove_rule(self, rule_id: str) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.rule_id != rule_id]
        return len(self._rules) < before

    def list_rules(self) -> list[ProactiveRule]:
        return list(self._rules)

    # ── Evaluation ────────────────────────────────────────────

    def evaluate(self, metrics: HealthMetrics) -> list[ProactiveRule]:
        """Return every rule whose condition holds, in declaration order."""
        namespace = metrics.model_dump(mode="json")
        return [r for r in self._rules if self._condition_met(r.condition, namespace)]

    def select(self, metrics: HealthMetrics) -> ProactiveRule | None:
        """Pick the single rule to act on: lowest priority number, then declaration order."""
        matched = self.evaluate(metrics)
        if not matched:
            return None
        # min() keeps the first of equal keys, so ties go to the earlier rule.
        chosen = min(matched, key=lambda r: r.priority)
        logger.info(
            "rule_engine.rule_selected",
            rule_id=chosen.rule_id,
            priority=chosen.priority,
            matched=[r.rule_id for r in matched],
        )
        return chosen

    # ── Internals ─────────────────────────────────────────────

    @staticmethod
    def _condition_met(condition: str, namespace: dict[str, Any]) -> bool:
        """Safely evaluate a rule condition string.

        Only the metric fields are exposed; builtins are blocked.
        """
        try:
            return bool(eval(condition, {"__builtins__": {}}, dict(namespace)))
        except Exception as exc:
            logger.error("rule_engine.condition_eval_error", condition=condition, error=str(exc))
            return False
