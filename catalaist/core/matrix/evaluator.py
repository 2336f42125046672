"""Apply decision matrix rules to an LLM classification."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models import (
    InterimClassification,
    MatrixEvaluation,
    TransformationCategory,
    TriggeredRule,
)
from .schema import Condition, DecisionMatrix, MatrixRule

LOGGER = logging.getLogger(__name__)

FLAG_REVIEW_CONFIDENCE = 0.3
SUGGESTION_THRESHOLD = 0.5
SUGGESTION_MARGIN = 0.2

# attribute -> value -> per-category score deltas
_SCORE_TABLE: Dict[str, Dict[str, Dict[str, float]]] = {
    "business_value": {
        "low": {"Eliminate": 0.3, "Simplify": 0.2},
        "medium": {"Simplify": 0.2, "Digitise": 0.3, "RPA": 0.2},
        "high": {"RPA": 0.2, "AI Agent": 0.3, "Agentic AI": 0.3},
        "critical": {"RPA": 0.2, "AI Agent": 0.3, "Agentic AI": 0.3},
    },
    "complexity": {
        "low": {"Simplify": 0.2, "Digitise": 0.3, "RPA": 0.3},
        "medium": {"Digitise": 0.2, "RPA": 0.3, "AI Agent": 0.2},
        "high": {"AI Agent": 0.3, "Agentic AI": 0.3},
        "very_high": {"AI Agent": 0.3, "Agentic AI": 0.3},
    },
    "frequency": {
        "daily": {"RPA": 0.3, "AI Agent": 0.2, "Agentic AI": 0.2},
        "weekly": {"RPA": 0.2, "AI Agent": 0.2},
        "monthly": {"Digitise": 0.2, "RPA": 0.1},
        "quarterly": {"Digitise": 0.2, "RPA": 0.1},
    },
    "risk": {
        # High risk pulls away from automation.
        "critical": {"RPA": -0.2, "AI Agent": -0.3, "Agentic AI": -0.4, "Simplify": 0.2},
        "high": {"RPA": -0.2, "AI Agent": -0.3, "Agentic AI": -0.4, "Simplify": 0.2},
        "low": {"RPA": 0.2, "AI Agent": 0.2, "Agentic AI": 0.2},
    },
}


class DecisionMatrixEvaluator:
    """Evaluates ordered matrix rules against extracted attributes."""

    def evaluate(
        self,
        matrix: DecisionMatrix,
        classification: InterimClassification,
        attributes: Dict[str, Any],
    ) -> MatrixEvaluation:
        """
        Run every active rule in priority order against the attributes.

        An `override` rule sets the category and stops evaluation. When rules
        fired but none overrode, weighted attribute scores may still move the
        classification to a clearly better category.

        Args:
            matrix: The decision matrix to apply
            classification: The LLM classification before rules
            attributes: Flat attribute values extracted from the conversation

        Returns:
            MatrixEvaluation with the final classification and audit details
        """
        triggered: List[TriggeredRule] = []
        warnings: List[str] = []
        final = classification
        overridden = False

        for rule in matrix.active_rules():
            if not self.matches(rule.conditions, attributes):
                continue

            action, category, warning = self.sanitize_action(rule)
            if warning:
                warnings.append(warning)
            triggered.append(TriggeredRule(rule_id=rule.rule_id, rule_name=rule.name, action=action))

            final, applied = self._apply(rule, category, final)
            overridden = overridden or applied

            if rule.action.type == "override":
                break

        if triggered and not overridden:
            final, overridden = self._apply_weighted_scores(final, attributes)

        return MatrixEvaluation(
            matrix_version=matrix.version,
            original_classification=classification,
            final_classification=final,
            extracted_attributes=dict(attributes),
            triggered_rules=tuple(triggered),
            overridden=overridden,
            warnings=tuple(warnings),
        )

    def first_match(
        self,
        attributes: Dict[str, Any],
        rules: Sequence[MatrixRule],
    ) -> Optional[TransformationCategory]:
        """Category of the highest-priority active rule that matches and names one."""
        ordered = sorted((r for r in rules if r.active), key=lambda r: -r.priority)
        for rule in ordered:
            if not self.matches(rule.conditions, attributes):
                continue
            _, category, _ = self.sanitize_action(rule)
            if category is not None:
                return category
        return None

    def sanitize_action(
        self, rule: MatrixRule
    ) -> Tuple[Dict[str, Any], Optional[TransformationCategory], Optional[str]]:
        """
        Normalize a rule's action so target_category is a single value.

        Returns:
            (action as a dict, resolved category or None, warning or None)
        """
        action = rule.action.model_dump()
        raw = action.get("target_category")
        warning = None

        if isinstance(raw, list):
            first = raw[0] if raw else None
            warning = f'Rule "{rule.name}" had targetCategory as array, using first value: {first}'
            LOGGER.warning("%s", warning)
            raw = first
            action["target_category"] = first

        if raw is None:
            return action, None, warning

        try:
            category = TransformationCategory(raw)
        except ValueError:
            message = f'Rule "{rule.name}" has unknown targetCategory {raw!r}, ignoring it'
            LOGGER.warning("%s", message)
            action["target_category"] = None
            return action, None, f"{warning}; {message}" if warning else message
        return action, category, warning

    def matches(self, conditions: Sequence[Condition], attributes: Dict[str, Any]) -> bool:
        """All conditions must hold (AND)."""
        return all(self.evaluate_condition(condition, attributes) for condition in conditions)

    @staticmethod
    def evaluate_condition(condition: Condition, attributes: Dict[str, Any]) -> bool:
        value = attributes.get(condition.attribute)
        if value is None:
            return False

        op = condition.operator
        if op == "==":
            return value == condition.value
        if op == "!=":
            return value != condition.value
        if op in (">", "<", ">=", "<="):
            try:
                left, right = float(value), float(condition.value)
            except (TypeError, ValueError):
                return False
            if op == ">":
                return left > right
            if op == "<":
                return left < right
            if op == ">=":
                return left >= right
            return left <= right
        if op in ("in", "not_in"):
            if not isinstance(condition.value, list):
                return False
            contained = value in condition.value
            return contained if op == "in" else not contained
        return False

    @staticmethod
    def weighted_scores(attributes: Dict[str, Any]) -> Dict[str, float]:
        """Per-category scores from attribute values, normalized to [0, 1]."""
        scores = {category: 0.0 for category in TransformationCategory.values()}
        for attribute, table in _SCORE_TABLE.items():
            deltas = table.get(str(attributes.get(attribute)), {})
            for category, delta in deltas.items():
                scores[category] += delta

        top = max(scores.values())
        if top > 0:
            scores = {category: max(0.0, score / top) for category, score in scores.items()}
        return scores

    @staticmethod
    def suggested_category(scores: Dict[str, float]) -> Optional[TransformationCategory]:
        best, best_score = None, 0.0
        for category, score in scores.items():
            if score > best_score:
                best, best_score = category, score
        if best is None or best_score <= SUGGESTION_THRESHOLD:
            return None
        return TransformationCategory(best)

    def _apply(
        self,
        rule: MatrixRule,
        category: Optional[TransformationCategory],
        classification: InterimClassification,
    ) -> Tuple[InterimClassification, bool]:
        action = rule.action
        if action.type == "override":
            if category is None:
                return classification, False
            return (
                replace(
                    classification,
                    category=category,
                    rationale=f"{classification.rationale}\n\nOverridden by decision matrix rule: {action.rationale}",
                ),
                True,
            )

        if action.type == "adjust_confidence":
            if action.confidence_adjustment is None:
                return classification, False
            confidence = min(1.0, max(0.0, classification.confidence + action.confidence_adjustment))
            return (
                replace(
                    classification,
                    confidence=confidence,
                    rationale=f"{classification.rationale}\n\nConfidence adjusted by decision matrix rule: {action.rationale}",
                ),
                False,
            )

        return (
            replace(
                classification,
                confidence=FLAG_REVIEW_CONFIDENCE,
                rationale=f"{classification.rationale}\n\nFlagged for manual review: {action.rationale}",
            ),
            False,
        )

    def _apply_weighted_scores(
        self,
        classification: InterimClassification,
        attributes: Dict[str, Any],
    ) -> Tuple[InterimClassification, bool]:
        scores = self.weighted_scores(attributes)
        suggested = self.suggested_category(scores)
        if suggested is None or suggested == classification.category:
            return classification, False

        current_score = scores.get(classification.category.value, 0.0)
        if scores[suggested.value] <= current_score + SUGGESTION_MARGIN:
            return classification, False

        LOGGER.info(
            "Weighted scoring moved classification from %s to %s",
            classification.category.value,
            suggested.value,
        )
        return (
            replace(
                classification,
                category=suggested,
                rationale=(
                    f"{classification.rationale}\n\nDecision matrix weighted scoring suggested "
                    f"{suggested.value} based on extracted attributes."
                ),
            ),
            True,
        )
