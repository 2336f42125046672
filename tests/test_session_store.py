"""Tests for SessionStore and AuditLog."""

import json
import os
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from catalaist.core.errors import (
    SessionCorrupted,
    SessionNotFound,
    SessionValidationError,
    ValidationError,
)
from catalaist.core.models import (
    ClarificationExchange,
    ClassificationResult,
    ControllerPhase,
    ConversationState,
    TerminationReason,
    TransformationCategory,
)
from catalaist.core.storage import AuditLog, SessionStore


def _state(**kwargs):
    return ConversationState(process_description="Supplier invoices are approved by hand every week.", **kwargs)


def _result(confidence=0.9, low_confidence=False, reason=TerminationReason.EVALUATION):
    return ClassificationResult(
        category=TransformationCategory.RPA,
        confidence=confidence,
        rationale="Repetitive rule-based data entry",
        terminated_by=reason,
        key_facts=("Process frequency: weekly",),
        attributes={"frequency": {"value": "weekly", "explanation": "Stated"}},
        low_confidence=low_confidence,
        model_used="gpt-4",
        llm_provider="openai",
    )


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path)


class TestSessionLifecycle:
    """Creating, loading and deleting sessions."""

    def test_create_and_load(self, store, tmp_path):
        """A created session is written to disk and can be read back."""
        record = store.create_session("gpt-4")

        path = tmp_path / "sessions" / f"{record.session_id}.json"
        assert path.exists()
        assert json.loads(path.read_text())["status"] == "active"

        store.clear_cache()
        loaded = store.load_session(record.session_id)
        assert loaded.model_used == "gpt-4"
        assert loaded.session_id == record.session_id

    def test_missing_session(self, store):
        with pytest.raises(SessionNotFound):
            store.load_session(str(uuid4()))

    def test_non_uuid_id_is_not_found(self, store):
        """Ids that are not UUIDs never touch the filesystem."""
        with pytest.raises(SessionNotFound):
            store.load_session("../../etc/passwd")
        assert not store.session_exists("not-a-uuid")

    def test_corrupted_file(self, store, tmp_path):
        """Invalid JSON on disk raises SessionCorrupted."""
        session_id = str(uuid4())
        path = tmp_path / "sessions" / f"{session_id}.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(SessionCorrupted):
            store.load_session(session_id)

    def test_schema_mismatch_on_disk(self, store, tmp_path):
        """Valid JSON that fails the schema is also corrupted."""
        session_id = str(uuid4())
        path = tmp_path / "sessions" / f"{session_id}.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"session_id": session_id, "status": "exploded"}), encoding="utf-8")

        with pytest.raises(SessionCorrupted):
            store.load_session(session_id)

    def test_invalid_record_not_saved(self, store):
        """Records are validated before they are written."""
        record = store.save_conversation(_state())
        bad = record.model_copy(deep=True)
        bad.conversations[0].process_description = "short"

        with pytest.raises(SessionValidationError):
            store.save_session(bad)

        store.clear_cache()
        assert store.load_session(record.session_id).conversations[0].process_description.startswith("Supplier")

    def test_list_sessions_newest_first(self, store, tmp_path):
        first = store.create_session("gpt-4")
        second = store.create_session("gpt-4")
        os.utime(tmp_path / "sessions" / f"{first.session_id}.json", (1_000, 1_000))
        os.utime(tmp_path / "sessions" / f"{second.session_id}.json", (2_000, 2_000))

        assert store.list_sessions() == [second.session_id, first.session_id]

    def test_list_sessions_empty(self, store):
        assert store.list_sessions() == []

    def test_delete(self, store):
        record = store.create_session("gpt-4")

        store.delete_session(record.session_id)

        assert not store.session_exists(record.session_id)
        with pytest.raises(SessionNotFound):
            store.delete_session(record.session_id)


class TestConversationsAndResults:
    """Persisting conversation state and final results."""

    def test_save_conversation_creates_session(self, store):
        state = _state()
        state.exchanges.append(ClarificationExchange(question="How often?", answer="Weekly"))
        state.round = 2
        state.phase = ControllerPhase.AWAITING_ANSWER

        record = store.save_conversation(state, model_used="gpt-4o")

        assert record.session_id == state.session_id
        assert record.model_used == "gpt-4o"
        conversation = record.conversations[0]
        assert conversation.conversation_id == state.conversation_id
        assert conversation.rounds == 2
        assert conversation.phase == "awaiting_answer"
        assert [(qa.question, qa.answer) for qa in conversation.clarification_qa] == [("How often?", "Weekly")]
        assert not conversation.has_pii

    def test_save_conversation_records_masked_data_flag(self, store):
        record = store.save_conversation(_state(has_pii=True))

        assert record.conversations[0].has_pii
        store.clear_cache()
        assert store.load_session(record.session_id).conversations[0].has_pii

    def test_save_conversation_upserts(self, store):
        """Saving the same conversation again replaces it rather than appending."""
        state = _state()
        store.save_conversation(state)
        state.exchanges.append(ClarificationExchange(question="How often?", answer="Weekly"))

        record = store.save_conversation(state)

        assert len(record.conversations) == 1
        assert len(record.conversations[0].clarification_qa) == 1

    def test_save_result_completed(self, store):
        state = _state()
        store.save_conversation(state)

        record = store.save_result(state.session_id, _result())

        assert record.status == "completed"
        assert record.classification.category == TransformationCategory.RPA
        assert record.classification.terminated_by == TerminationReason.EVALUATION
        assert record.classification.key_facts == ["Process frequency: weekly"]

    @pytest.mark.parametrize(
        "result",
        [
            _result(confidence=0.3, low_confidence=True, reason=TerminationReason.LOOP_DETECTED),
            _result(confidence=0.4, reason=TerminationReason.MANUAL_REVIEW),
        ],
    )
    def test_save_result_needing_review(self, store, result):
        """Low-confidence and manual-review results mark the session for review."""
        state = _state()
        store.save_conversation(state)

        assert store.save_result(state.session_id, result).status == "manual_review"

    def test_save_result_survives_reload(self, store, tmp_path):
        state = _state()
        store.save_conversation(state)
        store.save_result(state.session_id, _result())

        record = SessionStore(tmp_path).load_session(state.session_id)

        assert record.classification.confidence == pytest.approx(0.9)
        assert record.classification.attributes["frequency"]["value"] == "weekly"


class TestFeedback:
    """Test cases for record_feedback."""

    @pytest.fixture
    def classified(self, store):
        state = _state()
        store.save_conversation(state)
        store.save_result(state.session_id, _result())
        return state.session_id

    def test_confirm(self, store, classified):
        record = store.record_feedback(classified, confirmed=True)

        assert record.feedback.confirmed
        assert record.feedback.corrected_category is None

    def test_correct(self, store, classified, tmp_path):
        store.record_feedback(classified, confirmed=False, corrected_category="AI Agent")

        record = SessionStore(tmp_path).load_session(classified)
        assert record.feedback.corrected_category == TransformationCategory.AI_AGENT

    def test_correction_required_when_not_confirmed(self, store, classified):
        with pytest.raises(ValidationError, match="corrected_category is required"):
            store.record_feedback(classified, confirmed=False)

    def test_unknown_category(self, store, classified):
        with pytest.raises(ValidationError):
            store.record_feedback(classified, confirmed=False, corrected_category="Teleport")

    def test_no_classification_yet(self, store):
        state = _state()
        store.save_conversation(state)

        with pytest.raises(ValidationError, match="no classification"):
            store.record_feedback(state.session_id, confirmed=True)


class TestAuditLog:
    """Test cases for AuditLog."""

    def test_record_and_read(self, tmp_path):
        """Events are appended one per line and read back in order."""
        log = AuditLog(tmp_path)
        session_id = str(uuid4())

        log.record(session_id, "input", {"process_description": "Invoices"})
        log.record(session_id, "classification", {"category": "RPA"})

        events = log.read(session_id)
        assert [event.event_type for event in events] == ["input", "classification"]
        assert events[1].data == {"category": "RPA"}
        assert len((tmp_path / "audit" / f"{session_id}.jsonl").read_text().splitlines()) == 2

    def test_read_missing(self, tmp_path):
        assert AuditLog(tmp_path).read(str(uuid4())) == []

    def test_unknown_event_type_rejected(self, tmp_path):
        with pytest.raises(PydanticValidationError):
            AuditLog(tmp_path).record(str(uuid4()), "gossip", {})

    def test_corrupted_line(self, tmp_path):
        log = AuditLog(tmp_path)
        session_id = str(uuid4())
        log.record(session_id, "input", {})
        with (tmp_path / "audit" / f"{session_id}.jsonl").open("a", encoding="utf-8") as handle:
            handle.write("garbage\n")

        with pytest.raises(SessionCorrupted, match="line 2"):
            log.read(session_id)
