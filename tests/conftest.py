import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from gdash.app import create_app
from gdash.auth.roles import Role
from gdash.auth.session import COOKIE_NAME, issue_session
from gdash.config import ClusterConfig, Settings

ADMIN_PASSWORD = "hunter2"
READONLY_PASSWORD = "look-dont-touch"
ADMIN_TOKEN = "garage-admin-token"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeGarage:
    """In-memory stand-in for the Garage admin API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str, str], Union[Handler, Tuple[int, Any]]] = {}
        self.calls: List[httpx.Request] = []

    def add(self, method: str, path: str, payload: Any = None, status: int = 200, host: str = "garage.local") -> None:
        self.routes[(host, method, path)] = (status, payload)

    def on(self, method: str, path: str, handler: Handler, host: str = "garage.local") -> None:
        self.routes[(host, method, path)] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get((request.url.host, request.method, request.url.path))
        if route is None:
            return httpx.Response(404, text=f"no route for {request.method} {request.url.path}")
        if callable(route):
            return route(request)
        status, payload = route
        if isinstance(payload, str):
            return httpx.Response(status, text=payload)
        return httpx.Response(status, json=payload)

    def paths(self) -> List[str]:
        return [c.url.path for c in self.calls]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def make_cluster(cid: str = "default", host: str = "garage.local") -> ClusterConfig:
    return ClusterConfig(
        id=cid,
        name=cid.title(),
        admin_url=f"http://{host}:3903",
        admin_token=ADMIN_TOKEN,
        s3_endpoint=f"http://{host}:3900",
        region="garage",
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        admin_password=ADMIN_PASSWORD,
        readonly_password=READONLY_PASSWORD,
        clusters=(make_cluster(),),
    )


@pytest.fixture()
def garage() -> FakeGarage:
    return FakeGarage()


@pytest.fixture()
def make_client(garage):
    def _make(settings: Settings, **kwargs) -> TestClient:
        app = create_app(settings, garage_transport=garage.transport(), **kwargs)
        return TestClient(app)

    return _make


@pytest.fixture()
def client(make_client, settings) -> TestClient:
    return make_client(settings)


def sign_in(client: TestClient, role: Role) -> None:
    secret = ADMIN_PASSWORD if role is Role.ADMIN else READONLY_PASSWORD
    client.cookies.set(COOKIE_NAME, issue_session(secret, role))


@pytest.fixture()
def admin_client(client) -> TestClient:
    sign_in(client, Role.ADMIN)
    return client


@pytest.fixture()
def readonly_client(client) -> TestClient:
    sign_in(client, Role.READONLY)
    return client
