"""Pydantic schemas for API responses and channel payloads."""
from datetime import datetime, timezone
from typing import Annotated, Any, List, Optional
from uuid import UUID

from pydantic import AfterValidator, AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from greenhouse.models import UserType

HIDDEN_PASSWORD = "********"


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_utc)]


class OutModel(BaseModel):
    """Reads ORM attributes, serializes with camelCase keys."""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )

    def dump(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# === Measures ===
class MeasureOut(OutModel):
    id: int
    sensor: str
    capture_date: UtcDatetime
    value: float


# === FarmBot ===
class FarmbotSumupOut(OutModel):
    id: int
    date: UtcDatetime
    completed_sequences: List[str] = []
    uncompleted_sequences: List[str] = []
    error_logs: List[dict] = []


# === Occupancy rates ===
class ElementOut(OutModel):
    value: Optional[str] = None
    comment: Optional[str] = None


class RateOut(OutModel):
    date: UtcDatetime
    value: float


class UnitOut(OutModel):
    id: UUID
    name: str
    slots: int
    elements: List[ElementOut] = []
    rates: List[RateOut] = []


class ModuleOut(OutModel):
    name: str
    units: List[List[UnitOut]] = Field(default_factory=list, validation_alias="grouped_units")
    version: int


# === Users ===
class UserOut(OutModel):
    """User as sent to clients, the password is never exposed."""
    email: str
    password: str = HIDDEN_PASSWORD
    type: UserType
    token: Optional[str] = None


def dump_all(schema: type, rows: List[Any]) -> List[dict]:
    return [schema.model_validate(row).dump() for row in rows]
