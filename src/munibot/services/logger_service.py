from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from munibot.storage import DocumentStore


LOG_BUFFER_SIZE = 2000


class LoggerService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self._listeners: list[Callable[[dict[str, object]], None]] = []

    def subscribe(self, listener: Callable[[dict[str, object]], None]) -> None:
        self._listeners.append(listener)

    def log(self, event: str, *, level: str = "info", **data: object) -> None:
        row = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "data": data,
        }
        logs = self.store.data["logs"]
        logs.append(row)
        if len(logs) > LOG_BUFFER_SIZE:
            del logs[: len(logs) - LOG_BUFFER_SIZE]
        self.store.touch()
        print(f"[{row['ts']}] {level.upper()} {event} {data}")
        for listener in self._listeners:
            try:
                listener(row)
            except Exception:  # noqa: BLE001
                continue

    def warning(self, event: str, **data: object) -> None:
        self.log(event, level="warning", **data)

    def error(self, event: str, **data: object) -> None:
        self.log(event, level="error", **data)
