"""Endpoint registry shared by the HTTP router and the message channel."""
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, List, Optional, Union


class EndpointKind(str, enum.Enum):
    HTTP = "HTTP"
    CHANNEL = "Channel"


HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


@dataclass
class HTTPEndpoint:
    path: str
    method: str
    handler: Callable[..., Any]
    kind: EndpointKind = field(default=EndpointKind.HTTP, init=False)

    def __post_init__(self):
        self.method = self.method.upper()
        if self.method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {self.method}")


@dataclass
class ChannelEndpoint:
    """Handler is awaited as ``handler(path, data, channel)``."""
    path: str
    handler: Callable[..., Any]
    kind: EndpointKind = field(default=EndpointKind.CHANNEL, init=False)


Endpoint = Union[HTTPEndpoint, ChannelEndpoint]


def is_path_matching(endpoint: Endpoint, path: str) -> bool:
    # Exact match only, no wildcard or parameter support
    return endpoint.path.upper() == path.upper()


class EndpointList:
    """Flat list of endpoints; on duplicate paths the last registered wins."""

    def __init__(self, *endpoints: Endpoint):
        self._endpoints: List[Endpoint] = list(endpoints)

    def register(self, endpoint: Endpoint) -> None:
        self._endpoints.append(endpoint)

    def register_many(self, endpoints: Iterable[Endpoint]) -> None:
        self._endpoints.extend(endpoints)

    def find(self, path: str, kind: Optional[EndpointKind] = None) -> List[Endpoint]:
        """All endpoints matching the path (and kind if given), in registration order."""
        endpoints = self._endpoints if kind is None else [e for e in self._endpoints if e.kind == kind]
        return [endpoint for endpoint in endpoints if is_path_matching(endpoint, path)]

    def last(self, path: str, kind: Optional[EndpointKind] = None) -> Optional[Endpoint]:
        endpoints = self.find(path, kind)
        return endpoints[-1] if endpoints else None

    def __iter__(self) -> Iterator[Endpoint]:
        return iter(list(self._endpoints))

    def __len__(self) -> int:
        return len(self._endpoints)
