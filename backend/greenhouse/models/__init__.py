"""All SQLAlchemy models, re-exported for table creation and app use."""

from greenhouse.models.user import User, UserType
from greenhouse.models.measure import Measure, Sensor, sensor_from_name
from greenhouse.models.farmbot import FarmbotLogSumup
from greenhouse.models.occupancy import (
    OccupancyRateElement,
    OccupancyRateModule,
    OccupancyRateRate,
    OccupancyRateUnit,
)

__all__ = [
    "User", "UserType",
    "Measure", "Sensor", "sensor_from_name",
    "FarmbotLogSumup",
    "OccupancyRateElement", "OccupancyRateModule", "OccupancyRateRate", "OccupancyRateUnit",
]
