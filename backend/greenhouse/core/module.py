"""Base class of feature modules and the channel join/leave capability."""
import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Protocol, runtime_checkable

from greenhouse.core.endpoint import ChannelEndpoint, Endpoint, HTTPEndpoint
from greenhouse.core.task import Task, TaskAction, TaskSchedule

if TYPE_CHECKING:
    from greenhouse.core.application import Application
    from greenhouse.core.channel import Channel


@runtime_checkable
class Joinable(Protocol):
    """Modules implementing this are notified when channels connect and disconnect."""

    async def on_join(self, channel: "Channel") -> None: ...

    async def on_leave(self, channel: "Channel") -> None: ...


class Module:
    """A bundle of endpoints, scheduled tasks and persistence logic for one feature area."""

    name = "Module"

    def __init__(self, app: "Application"):
        self.app = app
        self.settings = app.settings
        self.endpoints: List[Endpoint] = []
        self.logger = logging.getLogger(f"greenhouse.modules.{self.name}")

    # ---- Endpoints ---------------------------------------------------------

    def add_endpoint(self, endpoint: Endpoint) -> None:
        self.endpoints.append(endpoint)

    def add_endpoints(self, endpoints: Iterable[Endpoint]) -> None:
        self.endpoints.extend(endpoints)

    def http(self, method: str, path: str, handler: Callable[..., Any]) -> None:
        self.add_endpoint(HTTPEndpoint(path=path, method=method, handler=handler))

    def channel(self, path: str, handler: Callable[..., Any]) -> None:
        self.add_endpoint(ChannelEndpoint(path=path, handler=handler))

    # ---- Tasks -------------------------------------------------------------

    def register_task(self, schedule: TaskSchedule, action: TaskAction, start: bool = True) -> Task:
        return Task(self.app.tasks, schedule, action, origin_name=self.name, start=start)

    @property
    def tasks(self) -> List[Task]:
        return self.app.tasks.from_origin(self.name)

    # ---- Lifecycle ---------------------------------------------------------

    async def init(self) -> None:
        """Startup hook, run once the database is reachable."""

    def session(self):
        return self.app.database.session()
