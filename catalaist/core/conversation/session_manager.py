"""Manage active classification sessions."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import TYPE_CHECKING, Dict, List, Sequence, Tuple

from ..errors import InvalidTransition, SessionNotFound
from ..models import ConversationState

if TYPE_CHECKING:
    from ..storage.session_store import SessionStore
    from .controller import ConversationController, TurnOutcome

LOGGER = logging.getLogger(__name__)


class SessionManager:
    """Thread-safe in-memory registry of interviews in progress.

    Turns for one session run one at a time under a per-session asyncio
    lock; different sessions proceed concurrently. Each turn is persisted
    when a store is configured.
    """

    def __init__(self, controller: ConversationController, store: SessionStore | None = None) -> None:
        self._controller = controller
        self._store = store
        self._states: Dict[str, ConversationState] = {}
        self._turn_locks: Dict[str, asyncio.Lock] = {}
        self._lock = RLock()

    async def begin(
        self,
        process_description: str,
        session_id: str | None = None,
    ) -> Tuple[ConversationState, TurnOutcome]:
        if session_id:
            with self._lock:
                if session_id in self._states:
                    raise InvalidTransition(f"Session {session_id} is already in progress")

        state, outcome = await self._controller.start(process_description, session_id=session_id)
        with self._lock:
            self._states[state.session_id] = state
        LOGGER.info("Session %s started (%s)", state.session_id, outcome.phase.value)
        self._persist(state)
        return state, outcome

    async def answer(self, session_id: str, answers: Sequence[str]) -> TurnOutcome:
        """
        Submit answers for the pending question batch of a session.

        Args:
            session_id: The session id returned by begin()
            answers: One answer per pending question

        Returns:
            The next TurnOutcome
        """
        state = self.get_state(session_id)
        async with self._turn_lock(session_id):
            outcome = await self._controller.submit_answers(state, answers)
        self._persist(state)
        return outcome

    def get_state(self, session_id: str) -> ConversationState:
        with self._lock:
            if session_id not in self._states:
                raise SessionNotFound(session_id)
            return self._states[session_id]

    def list_active(self) -> List[ConversationState]:
        with self._lock:
            return [state for state in self._states.values() if not state.is_terminal]

    def cleanup_ended(self, older_than: timedelta) -> int:
        """Drop finished sessions, and any not touched since `older_than` ago."""
        cutoff = datetime.now(timezone.utc) - older_than
        with self._lock:
            to_remove = [
                sid
                for sid, state in self._states.items()
                if state.is_terminal or state.updated_at < cutoff
            ]
            for sid in to_remove:
                self._states.pop(sid, None)
                self._turn_locks.pop(sid, None)
        if to_remove:
            LOGGER.info("Removed %d ended session(s)", len(to_remove))
        return len(to_remove)

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._states)
            self._states.clear()
            self._turn_locks.clear()
        return count

    def _turn_lock(self, session_id: str) -> asyncio.Lock:
        with self._lock:
            lock = self._turn_locks.get(session_id)
            if lock is None:
                lock = asyncio.Lock()
                self._turn_locks[session_id] = lock
            return lock

    def _persist(self, state: ConversationState) -> None:
        if self._store is None:
            return
        self._store.save_conversation(state, model_used=self._controller.classifier.model)
        if state.result is not None:
            self._store.save_result(state.session_id, state.result)
