"""
FarmBot web API client and daily sum up

A sequence run shows up in the device logs as a "Starting <name>" message,
followed by "Completed <name>" when it finished. The daily sum up pairs
these messages for the current UTC day:

- each start with a matching completion counts the sequence as completed
- each start without a completion counts it as uncompleted
- logs of type "error" are kept as is
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass
class DailySumup:
    date: datetime
    completed_sequences: List[str] = field(default_factory=list)
    uncompleted_sequences: List[str] = field(default_factory=list)
    error_logs: List[dict] = field(default_factory=list)


def log_day(log: dict) -> Optional[date]:
    """UTC day of a log entry, from its updated_at timestamp."""
    raw = log.get("updated_at")
    if not raw:
        return None
    try:
        stamp = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp.astimezone(timezone.utc).date()


def summarize_day(sequences: List[str], logs: List[dict], now: Optional[datetime] = None) -> DailySumup:
    now = now or datetime.now(timezone.utc)
    today = now.astimezone(timezone.utc).date()
    day_logs = [log for log in logs if log_day(log) == today]

    completed: List[str] = []
    uncompleted: List[str] = []
    for sequence in sequences:
        messages = [str(log.get("message") or "") for log in day_logs]
        starts = sum(1 for message in messages if f"Starting {sequence}" in message)
        completions = sum(1 for message in messages if f"Completed {sequence}" in message)

        completed.extend([sequence] * min(starts, completions))
        uncompleted.extend([sequence] * max(starts - completions, 0))

    errors = [
        {
            "type": log.get("type"),
            "message": log.get("message"),
            "timestamp": log.get("updated_at"),
            "x": log.get("x"),
            "y": log.get("y"),
            "z": log.get("z"),
        }
        for log in day_logs
        if log.get("type") == "error"
    ]

    return DailySumup(
        date=now,
        completed_sequences=completed,
        uncompleted_sequences=uncompleted,
        error_logs=errors,
    )


class FarmbotClient:
    def __init__(
        self,
        base_url: str = "https://my.farmbot.io/api",
        token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.http_client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": token},
            timeout=timeout,
            transport=transport,
        )

    async def fetch_sequences(self) -> List[str]:
        response = await self.http_client.get("/sequences")
        response.raise_for_status()
        return [sequence["name"] for sequence in response.json()]

    async def fetch_logs(self) -> List[dict]:
        response = await self.http_client.get("/logs")
        response.raise_for_status()
        return response.json()

    async def fetch_daily_sumup(self, now: Optional[datetime] = None) -> DailySumup:
        sequences = await self.fetch_sequences()
        logs = await self.fetch_logs()
        logger.info(f"FarmBot API: Got {len(sequences)} sequences and {len(logs)} logs")
        return summarize_day(sequences, logs, now)

    async def aclose(self) -> None:
        await self.http_client.aclose()
