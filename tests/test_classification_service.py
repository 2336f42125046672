"""Tests for ClassificationService and ClarificationService."""

import pytest

from catalaist.core.clarification import ClarificationService
from catalaist.core.classification import ClassificationService
from catalaist.core.conversation import ContextSummarizer
from catalaist.core.errors import LLMResponseError
from catalaist.core.models import (
    ClarificationExchange,
    ConfidenceAction,
    ConversationState,
    InterimClassification,
    TerminationReason,
    TransformationCategory,
)
from conftest import (
    POOR_DESCRIPTION,
    RICH_DESCRIPTION,
    FakeProvider,
    attributes_json,
    classification_json,
    questions_json,
)


def _context(description=RICH_DESCRIPTION, exchanges=()):
    state = ConversationState(process_description=description, exchanges=list(exchanges))
    return ContextSummarizer().summarize(state)


def _exchanges(count):
    return [ClarificationExchange(question=f"Question {i}?", answer=f"Answer {i}") for i in range(count)]


class TestClassify:
    """Test cases for ClassificationService.classify."""

    @pytest.mark.asyncio
    async def test_classify_parses_response(self):
        """The LLM response is parsed into an InterimClassification."""
        provider = FakeProvider(classification=[classification_json("Digitise", 0.77, "Paper forms")])
        service = ClassificationService(provider, "gpt-4")

        result = await service.classify(_context())

        assert result.category == TransformationCategory.DIGITISE
        assert result.confidence == pytest.approx(0.77)
        messages = provider.calls["classification"][0]
        assert [m.role for m in messages] == ["system", "user"]
        assert RICH_DESCRIPTION in messages[1].content

    @pytest.mark.asyncio
    async def test_o1_models_fold_system_prompt(self):
        """Models without a system role get the prompt in the user message."""
        provider = FakeProvider(classification=[classification_json()])
        service = ClassificationService(provider, "o1-mini")

        await service.classify(_context())

        messages = provider.calls["classification"][0]
        assert len(messages) == 1
        assert messages[0].role == "user"
        assert "classify business initiatives" in messages[0].content
        assert RICH_DESCRIPTION in messages[0].content

    @pytest.mark.asyncio
    async def test_malformed_response_raises(self):
        """A response without JSON raises LLMResponseError."""
        provider = FakeProvider(classification=["I think it is RPA"])
        service = ClassificationService(provider, "gpt-4")

        with pytest.raises(LLMResponseError):
            await service.classify(_context())


class TestDetermineAction:
    """Confidence and quality routing."""

    def setup_method(self):
        self.service = ClassificationService(FakeProvider(), "gpt-4")

    def test_low_confidence_goes_to_manual_review(self):
        """Below 0.5 the session is routed to manual review regardless of quality."""
        assert self.service.determine_action(0.49, RICH_DESCRIPTION) == ConfidenceAction.MANUAL_REVIEW

    def test_high_confidence_good_description_auto_classifies(self):
        """Very high confidence on a good description skips clarification."""
        assert self.service.determine_action(0.98, RICH_DESCRIPTION) == ConfidenceAction.AUTO_CLASSIFY

    def test_poor_description_always_clarifies(self):
        """Even a confident LLM must ask when the description is poor."""
        assert self.service.determine_action(0.99, POOR_DESCRIPTION) == ConfidenceAction.CLARIFY

    def test_medium_confidence_clarifies(self):
        assert self.service.determine_action(0.9, RICH_DESCRIPTION) == ConfidenceAction.CLARIFY

    def test_configurable_thresholds(self):
        """Thresholds come from the constructor."""
        service = ClassificationService(FakeProvider(), "gpt-4", manual_review_threshold=0.7, auto_classify_threshold=0.9)

        assert service.determine_action(0.65, RICH_DESCRIPTION) == ConfidenceAction.MANUAL_REVIEW
        assert service.determine_action(0.9, RICH_DESCRIPTION) == ConfidenceAction.AUTO_CLASSIFY


class TestDescriptionQuality:
    """Test cases for assess_description_quality."""

    def test_rich_description_is_good(self):
        assert ClassificationService.assess_description_quality(RICH_DESCRIPTION) == "good"

    def test_short_description_is_poor(self):
        assert ClassificationService.assess_description_quality(POOR_DESCRIPTION) == "poor"

    def test_three_answers_make_it_good(self):
        """Three answered questions are enough context on their own."""
        assert ClassificationService.assess_description_quality(POOR_DESCRIPTION, _exchanges(3)) == "good"

    def test_marginal(self):
        """Enough core detail but little strategic context is marginal."""
        description = (
            "Every day our team of 8 people manually copies order data from emails into a spreadsheet, "
            "then re-enters it in the warehouse system. The workflow involves three steps and two "
            "departments, it is slow and mistakes are common, and our goal is fewer errors."
        )

        assert ClassificationService.assess_description_quality(description) == "marginal"


class TestExtractAttributes:
    """Test cases for ClassificationService.extract_attributes."""

    @pytest.mark.asyncio
    async def test_llm_attributes_include_strategic_keys(self):
        """Parsed attributes carry the core set plus strategic answers."""
        provider = FakeProvider(attributes=[attributes_json(frequency="daily", success_criteria="Halve cycle time")])
        service = ClassificationService(provider, "gpt-4")

        attributes = await service.extract_attributes(RICH_DESCRIPTION, _exchanges(1))

        assert attributes["frequency"]["value"] == "daily"
        assert attributes["success_criteria"]["value"] == "Halve cycle time"
        assert attributes["sponsorship"]["value"] == "unknown"
        user_message = provider.calls["attributes"][0][-1].content
        assert "Q: Question 0?" in user_message
        assert "A: Answer 0" in user_message

    @pytest.mark.asyncio
    async def test_unparseable_response_falls_back_to_heuristics(self, caplog):
        """Keyword heuristics stand in when the LLM output is unusable."""
        provider = FakeProvider(attributes=["Sorry, I cannot help with that."])
        service = ClassificationService(provider, "gpt-4")

        attributes = await service.extract_attributes(RICH_DESCRIPTION, [])

        assert attributes["frequency"]["value"] == "weekly"
        assert attributes["frequency"]["explanation"] == "Inferred from keywords in the conversation"
        assert "using keyword heuristics" in caplog.text


class TestShouldClarify:
    """Test cases for ClarificationService.should_clarify."""

    def setup_method(self):
        self.service = ClarificationService(FakeProvider(), "gpt-4")

    @pytest.mark.parametrize("confidence", [0.6, 0.7, 0.85])
    def test_medium_band_clarifies(self, confidence):
        decision = self.service.should_clarify(confidence, [])

        assert decision.should_clarify
        assert decision.stop_reason is None

    def test_above_band_stops_for_evaluation(self):
        decision = self.service.should_clarify(0.86, [])

        assert not decision.should_clarify
        assert decision.stop_reason == TerminationReason.EVALUATION

    def test_below_band_goes_to_manual_review(self):
        decision = self.service.should_clarify(0.59, [])

        assert not decision.should_clarify
        assert decision.stop_reason == TerminationReason.MANUAL_REVIEW

    def test_budget_exhausted(self):
        """The question budget is checked before confidence."""
        decision = self.service.should_clarify(0.7, _exchanges(5))

        assert not decision.should_clarify
        assert decision.stop_reason == TerminationReason.MAX_QUESTIONS
        assert "Maximum question limit (5)" in decision.reason

    def test_remaining_questions(self):
        assert self.service.remaining_questions(_exchanges(2)) == 3
        assert self.service.remaining_questions(_exchanges(7)) == 0
        assert self.service.can_ask_more(_exchanges(4))
        assert not self.service.can_ask_more(_exchanges(5))


class TestGenerateQuestions:
    """Test cases for ClarificationService.generate_questions."""

    @pytest.mark.asyncio
    async def test_batch_respects_remaining_budget(self):
        """Only as many questions as the budget allows are kept."""
        provider = FakeProvider(clarification=[questions_json("How often?", "Who approves?")])
        service = ClarificationService(provider, "gpt-4")
        exchanges = _exchanges(4)
        classification = InterimClassification(TransformationCategory.RPA, 0.7, "Rule based")

        batch = await service.generate_questions(_context(exchanges=exchanges), classification, exchanges)

        assert [q.question for q in batch.questions] == ["How often?"]
        user_message = provider.calls["clarification"][0][-1].content
        assert "Remaining questions allowed: 1" in user_message
        assert "- Category: RPA" in user_message
        assert "- Confidence: 0.70" in user_message

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        """An empty array is returned as an empty batch with the raw response."""
        provider = FakeProvider(clarification=["[]"])
        service = ClarificationService(provider, "gpt-4")
        classification = InterimClassification(TransformationCategory.RPA, 0.7)

        batch = await service.generate_questions(_context(), classification, [])

        assert batch.questions == []
        assert batch.raw_response == "[]"

    @pytest.mark.asyncio
    async def test_non_json_raises_with_raw_response(self):
        """Placeholder text without JSON surfaces as LLMResponseError."""
        provider = FakeProvider(clarification=["Clarification 1"])
        service = ClarificationService(provider, "gpt-4")
        classification = InterimClassification(TransformationCategory.RPA, 0.7)

        with pytest.raises(LLMResponseError) as exc_info:
            await service.generate_questions(_context(), classification, [])

        assert exc_info.value.raw_response == "Clarification 1"
