"""JSON file storage for classification sessions."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Dict, List
from uuid import UUID, uuid4

from pydantic import ValidationError as PydanticValidationError

from ..errors import SessionCorrupted, SessionNotFound, SessionValidationError, ValidationError
from ..models import TransformationCategory
from .schemas import (
    ClassificationRecord,
    ConversationRecord,
    ExchangeRecord,
    FeedbackRecord,
    SessionRecord,
    _now,
)

if TYPE_CHECKING:
    from ..models import ClassificationResult, ConversationState

LOGGER = logging.getLogger(__name__)

SESSIONS_DIR = "sessions"


class SessionStore:
    """Thread-safe session persistence with an in-memory cache.

    Each session lives in `<data_dir>/sessions/<session_id>.json`. Records are
    validated before they are written and again when they are read back.
    """

    def __init__(self, data_dir: Path) -> None:
        self._root = Path(data_dir) / SESSIONS_DIR
        self._cache: Dict[str, SessionRecord] = {}
        self._lock = RLock()

    def create_session(self, model_used: str, session_id: str | None = None) -> SessionRecord:
        record = self._build(
            SessionRecord,
            session_id=session_id or str(uuid4()),
            model_used=model_used,
        )
        self.save_session(record)
        LOGGER.info("Session %s created", record.session_id)
        return record

    def save_session(self, record: SessionRecord) -> None:
        """
        Validate and write a session record.

        Raises:
            SessionValidationError: The record does not match the schema
        """
        record.updated_at = _now()
        try:
            validated = SessionRecord.model_validate(record.model_dump())
        except PydanticValidationError as exc:
            raise SessionValidationError(f"Failed to save session {record.session_id}: {exc}") from exc

        path = self._path(validated.session_id)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(validated.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, path)
            self._cache[validated.session_id] = validated

    def load_session(self, session_id: str) -> SessionRecord:
        """
        Load a session, from cache when possible.

        Raises:
            SessionNotFound: No file exists for the id
            SessionCorrupted: The file is not valid JSON or fails validation
        """
        with self._lock:
            cached = self._cache.get(session_id)
            if cached is not None:
                return cached

            path = self._path(session_id)
            if not path.exists():
                raise SessionNotFound(session_id)

            try:
                record = SessionRecord.model_validate(json.loads(path.read_text(encoding="utf-8")))
            except (json.JSONDecodeError, PydanticValidationError) as exc:
                LOGGER.error("Corrupted session file for %s: %s", session_id, exc)
                raise SessionCorrupted(
                    f"Session file {session_id} is corrupted and cannot be loaded"
                ) from exc

            self._cache[session_id] = record
            return record

    def session_exists(self, session_id: str) -> bool:
        with self._lock:
            if session_id in self._cache:
                return True
            try:
                return self._path(session_id).exists()
            except SessionNotFound:
                return False

    def save_conversation(self, state: ConversationState, model_used: str = "") -> SessionRecord:
        """Upsert the conversation held by `state` into its session, creating the session if needed."""
        conversation = self._build(
            ConversationRecord,
            conversation_id=state.conversation_id,
            timestamp=state.created_at,
            process_description=state.process_description,
            clarification_qa=[
                ExchangeRecord(question=e.question, answer=e.answer) for e in state.exchanges
            ],
            key_facts=list(state.key_facts),
            rounds=state.round,
            phase=state.phase.value,
            has_pii=state.has_pii,
        )

        with self._lock:
            if self.session_exists(state.session_id):
                record = self.load_session(state.session_id).model_copy(deep=True)
            else:
                record = self._build(SessionRecord, session_id=state.session_id, model_used=model_used)

            record.conversations = [
                c for c in record.conversations if c.conversation_id != conversation.conversation_id
            ]
            record.conversations.append(conversation)
            if model_used:
                record.model_used = model_used
            self.save_session(record)
            return record

    def save_result(self, session_id: str, result: ClassificationResult) -> SessionRecord:
        """Attach the final classification and mark the session completed or for review."""
        classification = self._build(ClassificationRecord, **result.to_dict())
        with self._lock:
            record = self.load_session(session_id).model_copy(deep=True)
            record.classification = classification
            record.status = "manual_review" if result.needs_review else "completed"
            if result.model_used:
                record.model_used = result.model_used
            self.save_session(record)
            return record

    def record_feedback(
        self,
        session_id: str,
        confirmed: bool,
        corrected_category: TransformationCategory | str | None = None,
    ) -> SessionRecord:
        """
        Store user feedback on a finished classification.

        Raises:
            SessionNotFound: Unknown session
            ValidationError: The session has no classification yet, or the
                correction is missing or not a known category
        """
        with self._lock:
            record = self.load_session(session_id).model_copy(deep=True)
            if record.classification is None:
                raise ValidationError(f"Session {session_id} has no classification to give feedback on")

            try:
                feedback = FeedbackRecord(confirmed=confirmed, corrected_category=corrected_category)
            except PydanticValidationError as exc:
                raise ValidationError(f"Invalid feedback: {exc}") from exc

            record.feedback = feedback
            self.save_session(record)
            LOGGER.info(
                "Feedback for session %s: %s",
                session_id,
                "confirmed" if confirmed else f"corrected to {feedback.corrected_category.value}",
            )
            return record

    def list_sessions(self) -> List[str]:
        """Session ids, most recently written first."""
        if not self._root.exists():
            return []
        files = sorted(self._root.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)
        return [path.stem for path in files]

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            path = self._path(session_id)
            if not path.exists() and session_id not in self._cache:
                raise SessionNotFound(session_id)
            path.unlink(missing_ok=True)
            self._cache.pop(session_id, None)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def _path(self, session_id: str) -> Path:
        try:
            UUID(session_id)
        except ValueError as exc:
            raise SessionNotFound(session_id) from exc
        return self._root / f"{session_id}.json"

    @staticmethod
    def _build(model: type, **data: object):
        try:
            return model(**data)
        except PydanticValidationError as exc:
            raise SessionValidationError(f"Invalid {model.__name__}: {exc}") from exc
