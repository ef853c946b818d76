from greenhouse.modules.farmbot_logs import FarmbotLogsModule
from greenhouse.modules.measure import MeasureModule
from greenhouse.modules.occupancy_rate import OccupancyModule
from greenhouse.modules.user import UserModule

__all__ = [
    "FarmbotLogsModule",
    "MeasureModule",
    "OccupancyModule",
    "UserModule",
]
