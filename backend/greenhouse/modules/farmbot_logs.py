"""FarmBot daily activity reports."""
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

import httpx
from fastapi import Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from greenhouse.core.module import Module
from greenhouse.core.task import Task
from greenhouse.database import get_db
from greenhouse.errors import NoRecords
from greenhouse.models import FarmbotLogSumup
from greenhouse.schemas import FarmbotSumupOut, dump_all

DEFAULT_SINCE = timedelta(days=30)
DEFAULT_UNTIL = timedelta(minutes=1)


class SumupsQuery(BaseModel):
    since: Optional[int] = Field(default=None, description="Unix timestamp, default: now - 30 days")
    until: Optional[int] = Field(default=None, description="Unix timestamp, default: now + 1 minute")


class FarmbotLogsModule(Module):
    name = "FarmbotLogsModule"

    def __init__(self, app):
        super().__init__(app)

        self.register_task("0 0 18 * * *", self.save_daily_sumup)

        self.http("GET", "/getFarmbotDailySumUp", self.get_daily_sumups)

    def store_sumup(self, row: FarmbotLogSumup) -> dict:
        with self.session() as db:
            db.add(row)
            db.commit()
            return FarmbotSumupOut.model_validate(row).dump()

    async def save_daily_sumup(self, task: Optional[Task] = None) -> Optional[dict]:
        """Sum up the FarmBot logs of the current day and store the report."""
        self.logger.info("Fetching FarmBot API...")
        try:
            sumup = await self.app.farmbot.fetch_daily_sumup()
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            self.logger.error(f"An error happened while fetching FarmBot API: {exc}")
            return None

        row = FarmbotLogSumup(
            date=sumup.date,
            completed_sequences=sumup.completed_sequences,
            uncompleted_sequences=sumup.uncompleted_sequences,
            error_logs=sumup.error_logs,
        )
        saved = await run_in_threadpool(self.store_sumup, row)

        self.logger.info(
            f"Daily sum up saved: {len(row.completed_sequences)} completed, "
            f"{len(row.uncompleted_sequences)} uncompleted, {len(row.error_logs)} error(s)"
        )
        return saved

    def get_daily_sumups(self, query: Annotated[SumupsQuery, Query()], db: Session = Depends(get_db)):
        now = datetime.now(timezone.utc)
        since = datetime.fromtimestamp(query.since, tz=timezone.utc) if query.since is not None else now - DEFAULT_SINCE
        until = datetime.fromtimestamp(query.until, tz=timezone.utc) if query.until is not None else now + DEFAULT_UNTIL

        sumups = (
            db.query(FarmbotLogSumup)
            .filter(FarmbotLogSumup.date >= since, FarmbotLogSumup.date <= until)
            .order_by(FarmbotLogSumup.date.desc())
            .all()
        )
        if not sumups:
            raise NoRecords("No FarmBot sum up found")
        return dump_all(FarmbotSumupOut, sumups)
