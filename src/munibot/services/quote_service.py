from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from munibot.services.logger_service import LoggerService
from munibot.storage import DocumentStore


QUOTE_TABLE = "quote"


@dataclass(frozen=True)
class Quote:
    number: int
    quote: str
    invoker: str
    created_at: datetime
    stream_category: str = ""
    stream_title: str = ""


class QuoteService:
    def __init__(self, store: DocumentStore, logger: LoggerService) -> None:
        self.store = store
        self.logger = logger
        self._rng = random.Random()

    async def _ordered_rows(self, channel: str) -> list[dict[str, Any]]:
        rows = await self.store.query(QUOTE_TABLE, channel=channel.lower())
        return sorted(rows, key=lambda row: (int(row.get("number", 0)), float(row.get("created_at", 0.0))))

    async def add(
        self,
        channel: str,
        text: str,
        invoker: str,
        *,
        stream_category: str = "",
        stream_title: str = "",
    ) -> Quote:
        created_at = datetime.now(tz=timezone.utc)
        row = await self.store.create_numbered(
            QUOTE_TABLE,
            {
                "channel": channel.lower(),
                "created_at": created_at.timestamp(),
                "quote": text,
                "invoker": invoker,
                "stream_category": stream_category,
                "stream_title": stream_title,
            },
            "number",
            channel=channel.lower(),
        )
        number = int(row["number"])
        self.logger.log("quotes.added", channel=channel, number=number, invoker=invoker)
        return Quote(number, text, invoker, created_at, stream_category, stream_title)

    async def get(self, channel: str, number: int | None = None) -> Quote | None:
        """Quote by 1-based number, or a random one when `number` is None."""
        rows = await self._ordered_rows(channel)
        if not rows:
            return None
        if number is None:
            number = self._rng.randint(1, len(rows))
        if number < 1 or number > len(rows):
            return None
        row = rows[number - 1]
        return Quote(
            number=number,
            quote=str(row.get("quote", "")),
            invoker=str(row.get("invoker", "")),
            created_at=datetime.fromtimestamp(float(row.get("created_at", 0.0)), tz=timezone.utc),
            stream_category=str(row.get("stream_category", "")),
            stream_title=str(row.get("stream_title", "")),
        )
