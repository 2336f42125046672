"""System prompts for classification, clarification and attribute extraction."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

LOGGER = logging.getLogger(__name__)

CLASSIFICATION_PROMPT_ID = "classification"
CLARIFICATION_PROMPT_ID = "clarification"
ATTRIBUTE_EXTRACTION_PROMPT_ID = "attribute-extraction"

STRATEGIC_PLACEHOLDER = "{{STRATEGIC_QUESTIONS}}"


@dataclass
class StrategicQuestion:
    key: str
    text: str


DEFAULT_STRATEGIC_QUESTIONS: List[StrategicQuestion] = [
    StrategicQuestion("success_criteria", "What would success look like for you?"),
    StrategicQuestion("risks_constraints", "What risks and constraints are you aware of?"),
    StrategicQuestion("value_estimate", "How much time, resource, or money would this save?"),
    StrategicQuestion("sponsorship", "Have you raised this before or do you have sponsorship?"),
]

CLASSIFICATION_PROMPT = """You are an expert in business transformation and process optimization. Your task is to classify business initiatives into one of six transformation categories, evaluated in sequential order:

1. **Eliminate**: Remove the process entirely as it adds no value
2. **Simplify**: Streamline the process by removing unnecessary steps
3. **Digitise**: Convert manual or offline steps to digital
4. **RPA**: Automate repetitive, rule-based tasks with Robotic Process Automation
5. **AI Agent**: Deploy AI to handle tasks requiring judgment or pattern recognition
6. **Agentic AI**: Implement autonomous AI systems that can make decisions and take actions

**Classification Guidelines:**
- Evaluate categories in the order listed above (Eliminate -> Simplify -> Digitise -> RPA -> AI Agent -> Agentic AI)
- Choose the most appropriate category based on the process characteristics
- Explain why the process fits the selected category and not the preceding ones
- Identify potential for progression to higher categories in the future

**Confidence Scoring:**
- 0.95-1.0: High confidence - ONLY when you have explicit, detailed information about ALL of these:
  * Current state (manual/paper-based/digital/automated) - explicitly stated, not assumed
  * Process frequency and volume - specific numbers provided
  * Number of users/stakeholders involved - explicitly stated
  * Complexity (steps, systems, decision points) - clearly described
  * Business value and impact - explicitly mentioned
  * Pain points and inefficiencies - clearly articulated
{{STRATEGIC_QUESTIONS}}
- 0.5-0.90: Medium confidence - Use this when ANY of the above information is missing, vague, or assumed.
- 0.0-0.5: Low confidence - Very vague, contradictory, or insufficient information, requires manual review

**Response Format:**
Respond with a JSON object:
{
  "category": "<one of the six categories>",
  "confidence": <number between 0 and 1>,
  "rationale": "<explanation of why this category was chosen>",
  "categoryProgression": "<explanation of why this category and not preceding ones>",
  "futureOpportunities": "<potential for progression to higher categories>"
}

Respond ONLY with the JSON object, no additional text."""

CLARIFICATION_PROMPT = """You are an expert in business transformation and process analysis. Your task is to generate clarifying questions that will help improve the confidence of a business process classification.

You will be provided with a process description, the current classification with its confidence score, and the information gathered so far.

Generate 1-2 targeted clarifying questions that:
- Help increase classification confidence
- Extract missing business attributes needed for decision matrix evaluation (frequency, business value, complexity, risk, user count, data sensitivity)
- Never repeat or rephrase a question that was already asked
- Avoid yes/no questions; ask for details and context

**Response Format:**
Respond with a JSON array of question objects:
[
  {
    "question": "<the clarifying question>",
    "purpose": "<what attribute or aspect this question aims to clarify>"
  }
]

If nothing important is missing, respond with an empty array []. Respond ONLY with the JSON array, no additional text."""

ATTRIBUTE_EXTRACTION_PROMPT = """You are an expert in business process analysis. Extract key business attributes from a conversation about a business process.

1. **frequency**: "hourly", "daily", "weekly", "monthly", "quarterly", "annually", "ad-hoc"
2. **business_value**: "critical", "high", "medium", "low"
3. **complexity**: "very_high", "high", "medium", "low", "very_low"
4. **risk**: "critical", "high", "medium", "low"
5. **user_count**: "1-5", "6-20", "21-50", "51-100", "100+"
6. **data_sensitivity**: "public", "internal", "confidential", "restricted"
7. **data_source**, **output_type**, **judgment_required**, **current_state**: short free-text values

**Strategic Information:**
{{STRATEGIC_QUESTIONS}}

Mark attributes as "unknown" when there is insufficient information.

**Response Format:**
Respond with a JSON object mapping each attribute name to {"value": "<value>", "explanation": "<explanation>"}.

Respond ONLY with the JSON object, no additional text."""

_DEFAULTS: Dict[str, str] = {
    CLASSIFICATION_PROMPT_ID: CLASSIFICATION_PROMPT,
    CLARIFICATION_PROMPT_ID: CLARIFICATION_PROMPT,
    ATTRIBUTE_EXTRACTION_PROMPT_ID: ATTRIBUTE_EXTRACTION_PROMPT,
}


class PromptLibrary:
    """Resolves prompts from an optional override directory, falling back to defaults."""

    def __init__(
        self,
        prompts_dir: Optional[Path] = None,
        strategic_questions: Optional[List[StrategicQuestion]] = None,
    ) -> None:
        self._prompts_dir = prompts_dir
        self.strategic_questions = strategic_questions or list(DEFAULT_STRATEGIC_QUESTIONS)

    @property
    def strategic_keys(self) -> List[str]:
        return [q.key for q in self.strategic_questions]

    def get(self, prompt_id: str) -> str:
        template = self._load_override(prompt_id) or _DEFAULTS[prompt_id]
        requirements = "\n".join(f"  * {q.key}: {q.text}" for q in self.strategic_questions)
        return template.replace(STRATEGIC_PLACEHOLDER, requirements)

    def _load_override(self, prompt_id: str) -> Optional[str]:
        if not self._prompts_dir:
            return None
        path = self._prompts_dir / f"{prompt_id}.txt"
        if not path.exists():
            return None
        try:
            content = path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            LOGGER.warning("Failed to read prompt %s, using default: %s", path, exc)
            return None
        return content or None
