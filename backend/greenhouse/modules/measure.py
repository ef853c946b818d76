"""Sensor measures: polling of the myfood hub and range queries."""
from datetime import datetime, timedelta, timezone
from typing import Annotated, List, Optional

import httpx
from fastapi import Depends, Query
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from greenhouse.core.channel import Channel
from greenhouse.core.module import Module
from greenhouse.core.task import Task
from greenhouse.database import get_db
from greenhouse.errors import InvalidArguments, NoRecords, UnknownSensorError
from greenhouse.models import Measure, Sensor, sensor_from_name
from greenhouse.schemas import MeasureOut, dump_all
from greenhouse.services.myfood import SensorRecord

SORT_FIELDS = {
    "sensor": Measure.sensor,
    "captureDate": Measure.capture_date,
    "value": Measure.value,
}
DEFAULT_SORT = "-captureDate,sensor"
DEFAULT_SINCE = timedelta(minutes=20)
DEFAULT_UNTIL = timedelta(minutes=1)


class MeasuresQuery(BaseModel):
    since: Optional[int] = Field(default=None, description="Unix timestamp, default: now - 20 minutes")
    until: Optional[int] = Field(default=None, description="Unix timestamp, default: now + 1 minute")
    sensors: Optional[str] = Field(default=None, description="Comma separated sensors, default: all")
    sort: Optional[str] = Field(default=None, description="Comma separated fields, '-' prefix for descending")
    limit: Optional[int] = Field(default=None, ge=1, description="Default: number of sensors")


def parse_sensors(raw: Optional[str]) -> List[Sensor]:
    if not raw:
        return list(Sensor)
    try:
        return [sensor_from_name(name) for name in raw.split(",") if name.strip()]
    except UnknownSensorError as exc:
        raise InvalidArguments(str(exc))


def parse_sort(raw: Optional[str]) -> list:
    clauses = []
    for item in (raw or DEFAULT_SORT).split(","):
        item = item.strip()
        if not item:
            continue
        descending = item.startswith("-")
        name = item.lstrip("-")
        if name not in SORT_FIELDS:
            raise InvalidArguments(f"Cannot sort on '{name}', available fields: {','.join(SORT_FIELDS)}")
        column = SORT_FIELDS[name]
        clauses.append(column.desc() if descending else column.asc())
    return clauses


def query_measures(db: Session, query: MeasuresQuery, now: Optional[datetime] = None) -> List[Measure]:
    now = now or datetime.now(timezone.utc)
    since = datetime.fromtimestamp(query.since, tz=timezone.utc) if query.since is not None else now - DEFAULT_SINCE
    until = datetime.fromtimestamp(query.until, tz=timezone.utc) if query.until is not None else now + DEFAULT_UNTIL
    sensors = [sensor.value for sensor in parse_sensors(query.sensors)]

    return (
        db.query(Measure)
        .filter(Measure.capture_date >= since, Measure.capture_date <= until)
        .filter(Measure.sensor.in_(sensors))
        .order_by(*parse_sort(query.sort))
        .limit(query.limit or len(Sensor))
        .all()
    )


def filter_unregistered(db: Session, measures: List[Measure]) -> List[Measure]:
    """Keep measures whose (sensor, capture_date, value) is neither stored nor repeated in the batch."""
    seen = set()
    unregistered = []
    for measure in measures:
        key = (measure.sensor, measure.capture_date, measure.value)
        if key in seen:
            continue
        seen.add(key)
        same = (
            db.query(Measure.id)
            .filter(
                Measure.sensor == measure.sensor,
                Measure.capture_date == measure.capture_date,
                Measure.value == measure.value,
            )
            .first()
        )
        if same is None:
            unregistered.append(measure)
    return unregistered


class MeasureModule(Module):
    name = "MeasureModule"

    def __init__(self, app):
        super().__init__(app)

        self.register_task("0 */10 * * * *", self.update_measures)

        self.http("GET", "/getMyFoodMeasures", self.get_measures)
        self.channel("/getMeasures", self.get_measures_channel)

    async def init(self) -> None:
        # Get the current values so the database is not empty when the server starts
        if self.settings.fetch_on_startup:
            await self.update_measures()

    # ---- Polling ----------------------------------------------------------

    def build_measures(self, records: List[SensorRecord]) -> List[Measure]:
        measures = []
        for record in records:
            try:
                sensor = sensor_from_name(record.sensor)
            except UnknownSensorError as exc:
                self.logger.warning(f"Skipping record: {exc}")
                continue
            measures.append(Measure(sensor=sensor.value, capture_date=record.capture_date, value=record.value))
        return measures

    def save_measures(self, measures: List[Measure]) -> List[dict]:
        """Store the measures not registered yet and return them serialized."""
        with self.session() as db:
            try:
                unregistered = filter_unregistered(db, measures)
                db.add_all(unregistered)
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                self.logger.error(f"Unable to save measures: {exc}")
                return []
            return dump_all(MeasureOut, unregistered)

    def latest_measures(self) -> List[dict]:
        with self.session() as db:
            latest = (
                db.query(Measure)
                .order_by(Measure.capture_date.desc(), Measure.sensor.asc())
                .limit(len(Sensor))
                .all()
            )
            return dump_all(MeasureOut, latest)

    async def update_measures(self, task: Optional[Task] = None) -> List[dict]:
        """Store the new hub records and notify them to the connected channels."""
        self.logger.info("Fetching myfood API...")
        try:
            records = await self.app.myfood.fetch_measures(self.settings.greenhouse_id)
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.error(f"An error happened while fetching MyFood API: {exc}")
            return []

        # Records come most recent first, one per sensor
        measures = self.build_measures(records[:len(Sensor)])
        saved = await run_in_threadpool(self.save_measures, measures)

        self.logger.info(f"Filtered {len(saved)} new measure(s), sending to channels")
        if saved:
            await self.app.broadcast("updateMeasures", {"measures": saved})
        return saved

    # ---- Channels ---------------------------------------------------------

    async def on_join(self, channel: Channel) -> None:
        measures = await run_in_threadpool(self.latest_measures)
        if measures:
            await channel.send("updateMeasures", {"measures": measures})

    async def on_leave(self, channel: Channel) -> None:
        self.logger.debug(f"Channel {channel.id} left")

    def find_measures(self, query: MeasuresQuery) -> List[dict]:
        with self.session() as db:
            return dump_all(MeasureOut, query_measures(db, query))

    async def get_measures_channel(self, path: str, data: dict, channel: Channel) -> List[dict]:
        try:
            query = MeasuresQuery.model_validate({key: data.get(key) for key in MeasuresQuery.model_fields})
        except ValidationError as exc:
            raise InvalidArguments("Invalid measure filters", details=exc.errors(include_url=False, include_context=False))

        measures = await run_in_threadpool(self.find_measures, query)
        await channel.send("getMeasures", {"measures": measures})
        return measures

    # ---- Routes -----------------------------------------------------------

    def get_measures(self, query: Annotated[MeasuresQuery, Query()], db: Session = Depends(get_db)):
        """
        Handle /getMyFoodMeasures GET route: stored measures in a time range

        Query parameters: since, until, sensors, sort, limit (all facultative)
        """
        measures = query_measures(db, query)
        if not measures:
            raise NoRecords("No measure found")
        return dump_all(MeasureOut, measures)
