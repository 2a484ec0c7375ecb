from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4


class WorkflowEventLog:
    """JSONL log of workflow events shared by every API in a state directory.

    Each API keeps at most ``max_events_per_api`` of its newest events, so a
    busy workflow never pushes another API's history out of the file.
    """

    def __init__(self, path: Path, max_events_per_api: int = 500) -> None:
        self.path = path
        self.max_events_per_api = max_events_per_api

    def _read(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        return [
            json.loads(line)
            for line in self.path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]

    def record(self, api_name: str, event_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        event = {
            "id": str(uuid4()),
            "api_name": api_name,
            "type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "payload": payload,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(event, ensure_ascii=False) + "\n")
        self.compact(api_name)
        return event

    def events(
        self,
        api_name: str | None = None,
        *,
        event_type: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Oldest-first events, optionally for one API and one event type."""
        rows = [
            row
            for row in self._read()
            if (api_name is None or row.get("api_name") == api_name)
            and (event_type is None or row.get("type") == event_type)
        ]
        if limit is not None:
            rows = rows[-max(0, limit) :] if limit else []
        return rows

    def compact(self, api_name: str) -> int:
        """Drop the oldest events of ``api_name`` beyond its quota; return how many."""
        rows = self._read()
        own = [index for index, row in enumerate(rows) if row.get("api_name") == api_name]
        excess = len(own) - self.max_events_per_api
        if excess <= 0:
            return 0
        dropped = set(own[:excess])
        kept = [row for index, row in enumerate(rows) if index not in dropped]
        self.path.write_text(
            "".join(json.dumps(row, ensure_ascii=False) + "\n" for row in kept),
            encoding="utf-8",
        )
        return excess


def format_event(event: dict[str, Any]) -> str:
    details = ", ".join(f"{key}={value}" for key, value in event.get("payload", {}).items() if key != "api_name")
    line = f"{event.get('type', 'event')}"
    if details:
        line += f" ({details})"
    timestamp = event.get("timestamp")
    return f"[{timestamp}] {line}" if timestamp else line
