from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..models import GenerationRecord


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


class HistoryStore:
    """
    Completed pipeline runs, persisted as a JSON object keyed by record id.

    Also serves as the usage counter for the free tier: a caller's usage is
    the number of runs saved under their identity.
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path else None
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.load()

    def load(self) -> None:
        with self._lock:
            self._records.clear()
            if self.path is None or not self.path.exists():
                return
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                return
            if isinstance(raw, dict):
                for key, value in raw.items():
                    if isinstance(key, str) and isinstance(value, dict):
                        self._records[key] = value

    def _persist(self, snapshot: dict[str, dict[str, Any]]) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(snapshot, ensure_ascii=True, indent=2), encoding="utf-8")

    def save(self, **fields: Any) -> GenerationRecord:
        record = GenerationRecord(
            id=uuid.uuid4().hex[:12],
            created_at=utc_now_iso(),
            **fields,
        )
        with self._lock:
            self._records[record.id] = record.model_dump()
            snapshot = dict(self._records)
        self._persist(snapshot)
        return record

    def get(self, record_id: str) -> GenerationRecord | None:
        with self._lock:
            raw = self._records.get(record_id)
        return GenerationRecord(**raw) if raw else None

    def list_recent(self, identity: str | None, limit: int = 20) -> list[GenerationRecord]:
        if not identity:
            return []
        with self._lock:
            rows = [
                (str(row.get("created_at") or ""), position, row)
                for position, row in enumerate(self._records.values())
                if row.get("identity") == identity
            ]
        # Insertion order breaks ties between records saved in the same instant.
        rows.sort(key=lambda item: item[:2], reverse=True)
        return [GenerationRecord(**row) for _, _, row in rows[:limit]]

    def count(self, identity: str | None) -> int:
        if not identity:
            return 0
        with self._lock:
            return sum(1 for row in self._records.values() if row.get("identity") == identity)
