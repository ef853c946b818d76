"""Builds the application with every feature module registered."""
from typing import Optional

from fastapi import FastAPI

from greenhouse.config import Settings, get_settings
from greenhouse.core import Application
from greenhouse.modules import FarmbotLogsModule, MeasureModule, OccupancyModule, UserModule

MODULES = (MeasureModule, FarmbotLogsModule, OccupancyModule, UserModule)


def create_application(settings: Optional[Settings] = None, **components) -> Application:
    """Register the feature modules and bind their routes.

    ``components`` overrides the database, API clients or task pool, as
    accepted by :class:`Application`.
    """
    application = Application(settings or get_settings(), **components)
    for module_class in MODULES:
        application.register_module(module_class)
    application.setup()
    return application


def create_app(settings: Optional[Settings] = None, **components) -> FastAPI:
    return create_application(settings, **components).api
