"""Decision matrix schema, evaluation and attribute heuristics."""

from .attributes import extract_attributes_from_context, heuristic_attributes
from .evaluator import DecisionMatrixEvaluator
from .schema import (
    Condition,
    DecisionMatrix,
    MatrixAttribute,
    MatrixRule,
    RuleAction,
    load_decision_matrix,
    parse_decision_matrix,
)

__all__ = [
    "extract_attributes_from_context",
    "heuristic_attributes",
    "DecisionMatrixEvaluator",
    "Condition",
    "DecisionMatrix",
    "MatrixAttribute",
    "MatrixRule",
    "RuleAction",
    "load_decision_matrix",
    "parse_decision_matrix",
]
