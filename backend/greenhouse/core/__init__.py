from greenhouse.core.application import Application
from greenhouse.core.channel import Channel
from greenhouse.core.endpoint import ChannelEndpoint, Endpoint, EndpointKind, EndpointList, HTTPEndpoint
from greenhouse.core.module import Joinable, Module
from greenhouse.core.task import Task, TaskPool

__all__ = [
    "Application", "Channel",
    "ChannelEndpoint", "Endpoint", "EndpointKind", "EndpointList", "HTTPEndpoint",
    "Joinable", "Module",
    "Task", "TaskPool",
]
