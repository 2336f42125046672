"""Append-only audit trail, one JSONL file per session."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from ..errors import SessionCorrupted
from .schemas import AuditEvent

LOGGER = logging.getLogger(__name__)

AUDIT_DIR = "audit"


class AuditLog:
    def __init__(self, data_dir: Path) -> None:
        self._root = Path(data_dir) / AUDIT_DIR
        self._lock = Lock()

    def record(self, session_id: str, event_type: str, data: Dict[str, Any]) -> AuditEvent:
        event = AuditEvent(session_id=session_id, event_type=event_type, data=data)
        line = event.model_dump_json()
        path = self._path(session_id)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        LOGGER.debug("Audit %s event for session %s", event_type, session_id)
        return event

    def read(self, session_id: str) -> List[AuditEvent]:
        path = self._path(session_id)
        if not path.exists():
            return []
        events: List[AuditEvent] = []
        for number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            try:
                events.append(AuditEvent.model_validate(json.loads(line)))
            except (json.JSONDecodeError, PydanticValidationError) as exc:
                raise SessionCorrupted(f"Audit log for {session_id} is corrupted at line {number}") from exc
        return events

    def _path(self, session_id: str) -> Path:
        return self._root / f"{session_id}.jsonl"
