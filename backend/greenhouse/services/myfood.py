"""
myfood hub client

Reads the public sensor records of a production unit (greenhouse) from the
myfood open data API.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class SensorRecord(BaseModel):
    """A record as returned by the hub (most recent first)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sensor: str
    capture_date: datetime = Field(alias="captureDate")
    value: float

    @field_validator("capture_date")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class MyFoodClient:
    def __init__(
        self,
        base_url: str = "https://hub.myfood.eu/opendata",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.http_client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def fetch_measures(self, greenhouse_id: int) -> List[SensorRecord]:
        """Fetch the latest sensor records of a greenhouse."""
        url = f"/productionunits/{greenhouse_id}/measures"
        logger.info(f"Fetching records from myfood API... ({self.base_url}{url})")

        response = await self.http_client.get(url)
        response.raise_for_status()
        records = [SensorRecord.model_validate(record) for record in response.json()]

        logger.info(f"myfood API: Got {len(records)} records")
        return records

    async def aclose(self) -> None:
        await self.http_client.aclose()
