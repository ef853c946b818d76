"""Test fixtures for the greenhouse API: in-memory database and fake upstream APIs."""
from __future__ import annotations

from typing import Any, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

from greenhouse.config import Settings
from greenhouse.core import Application
from greenhouse.database import Database
from greenhouse.factory import create_application
from greenhouse.models import User, UserType
from greenhouse.modules.user import create_user
from greenhouse.services.farmbot import FarmbotClient
from greenhouse.services.myfood import MyFoodClient

ADMIN_EMAIL = "admin@greenhouse.test"
ADMIN_PASSWORD = "admin-password"


class FakeApi:
    """Serves canned JSON bodies by URL path through httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: Dict[str, Any] = {}
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path not in self.routes:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=self.routes[request.url.path])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        public_path="",
        secret="test-secret-test-secret-test-secret",
        salt_rounds=4,
        scheduler_enabled=False,
        fetch_on_startup=False,
        metrics_enabled=False,
        rate_limit_enabled=False,
        farmbot_token="farmbot-token",
    )


@pytest.fixture
def myfood_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def farmbot_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def application(settings: Settings, myfood_api: FakeApi, farmbot_api: FakeApi) -> Application:
    database = Database(settings.sqlalchemy_url)
    database.create_all()
    application = create_application(
        settings,
        database=database,
        myfood=MyFoodClient(settings.myfood_api_url, transport=myfood_api.transport),
        farmbot=FarmbotClient(settings.farmbot_api_url, token=settings.farmbot_token, transport=farmbot_api.transport),
    )
    yield application
    database.dispose()


@pytest.fixture
def client(application: Application) -> TestClient:
    # Entering the client runs the lifespan: tables and module init hooks
    with TestClient(application.api) as client:
        yield client


@pytest.fixture
def admin(application: Application) -> User:
    with application.database.session() as db:
        return create_user(db, ADMIN_EMAIL, ADMIN_PASSWORD, UserType.ADMIN, rounds=4)


@pytest.fixture
def admin_token(client: TestClient, admin: User) -> str:
    resp = client.post("/login", params={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200, f"Admin login failed: {resp.text}"
    return resp.json()["user"]["token"]
