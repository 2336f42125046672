"""Schema for decision matrices: attributes, rules, conditions and actions."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Literal, Optional, Union
from uuid import uuid4

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import DecisionMatrixError

LOGGER = logging.getLogger(__name__)

Operator = Literal["==", "!=", ">", "<", ">=", "<=", "in", "not_in"]
ActionType = Literal["override", "adjust_confidence", "flag_review"]


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MatrixAttribute(_Model):
    name: str
    type: Literal["categorical", "numeric", "boolean"] = "categorical"
    possible_values: List[str] = Field(default_factory=list, alias="possibleValues")
    weight: float = Field(default=0.5, ge=0, le=1)
    description: str = ""


class Condition(_Model):
    attribute: str
    operator: Operator
    value: Any = None


class RuleAction(_Model):
    type: ActionType
    # Stored matrices have been seen with a list here; evaluation sanitizes it.
    target_category: Union[str, List[str], None] = Field(default=None, alias="targetCategory")
    confidence_adjustment: Optional[float] = Field(default=None, alias="confidenceAdjustment")
    rationale: str = ""


class MatrixRule(_Model):
    rule_id: str = Field(default_factory=lambda: str(uuid4()), alias="ruleId")
    name: str
    description: str = ""
    conditions: List[Condition] = Field(default_factory=list)
    action: RuleAction
    priority: int = 0
    active: bool = True


class DecisionMatrix(_Model):
    version: str = "1.0"
    created_by: str = Field(default="admin", alias="createdBy")
    description: str = ""
    attributes: List[MatrixAttribute] = Field(default_factory=list)
    rules: List[MatrixRule] = Field(default_factory=list)
    active: bool = True

    def active_rules(self) -> List[MatrixRule]:
        """Active rules, highest priority first; ties keep file order."""
        return sorted((rule for rule in self.rules if rule.active), key=lambda rule: -rule.priority)


def parse_decision_matrix(data: Any) -> DecisionMatrix:
    if not isinstance(data, dict):
        raise DecisionMatrixError("Decision matrix must be a mapping")
    try:
        return DecisionMatrix.model_validate(data)
    except PydanticValidationError as exc:
        raise DecisionMatrixError(f"Invalid decision matrix: {exc}") from exc


def load_decision_matrix(path: Path) -> DecisionMatrix:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise DecisionMatrixError(f"Decision matrix not found at {path}") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise DecisionMatrixError(f"Failed to read {path}: {exc}") from exc

    matrix = parse_decision_matrix(data)
    LOGGER.info("Loaded decision matrix v%s with %d rule(s) from %s", matrix.version, len(matrix.rules), path)
    return matrix
