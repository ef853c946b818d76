"""Sensor measures polled from the myfood hub."""
import enum

from sqlalchemy import Column, DateTime, Float, Integer, String, UniqueConstraint, text

from greenhouse.database import Base
from greenhouse.errors import UnknownSensorError


class Sensor(str, enum.Enum):
    PH = "ph"
    HUMIDITY = "humidity"
    AIR_TEMPERATURE = "air temperature"
    WATER_TEMPERATURE = "water temperature"
    EXTERNAL_AIR_HUMIDITY = "external air humidity"
    EXTERNAL_AIR_TEMPERATURE = "external air temperature"


# Names used by the hub, lower-cased
SENSOR_ALIASES = {
    "ph sensor": Sensor.PH,
    "ph": Sensor.PH,
    "water temperature sensor": Sensor.WATER_TEMPERATURE,
    "water temperature": Sensor.WATER_TEMPERATURE,
    "air temperature sensor": Sensor.AIR_TEMPERATURE,
    "air temperature": Sensor.AIR_TEMPERATURE,
    "air humidity sensor": Sensor.HUMIDITY,
    "air humidity": Sensor.HUMIDITY,
    "humidity": Sensor.HUMIDITY,
    "external air humidity sensor": Sensor.EXTERNAL_AIR_HUMIDITY,
    "external air humidity": Sensor.EXTERNAL_AIR_HUMIDITY,
    "external air temperature sensor": Sensor.EXTERNAL_AIR_TEMPERATURE,
    "external air temperature": Sensor.EXTERNAL_AIR_TEMPERATURE,
}


def sensor_from_name(name: str) -> Sensor:
    """Resolve a hub sensor name (case-insensitive) to a Sensor."""
    try:
        return SENSOR_ALIASES[name.strip().lower()]
    except (KeyError, AttributeError):
        raise UnknownSensorError(f"Unknown sensor name: {name!r}")


class Measure(Base):
    __tablename__ = "measures"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sensor = Column(String(50), nullable=False, index=True)
    capture_date = Column(DateTime(timezone=True), nullable=False, index=True)
    value = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)

    __table_args__ = (
        UniqueConstraint("sensor", "capture_date", "value", name="uq_measure_sensor_date_value"),
    )
