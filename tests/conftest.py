"""
Shared fixtures: in-memory database, a fake Graph API and a wired TestClient.
"""
import os
from datetime import timedelta
from urllib.parse import parse_qs

# must be set before app.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from app.api import deps
from app.core.config import Settings
from app.db.session import get_db
from app.main import app
from app.models.token import UserToken, utcnow
from app.services.meta_api import MetaGraphClient
from app.services.meta_oauth import MetaOAuthService


class FakeGraph:
    """
    Minimal Graph API stand-in for httpx.MockTransport.
    Routes map a path (without the version prefix) to a JSON body, a
    (status, body) tuple, or a callable taking the request.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, path, response):
        self.routes[path] = response

    def params_for(self, path):
        return [params for p, params in self.calls if p == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = "/" + request.url.path.split("/", 2)[2]
        params = {k: v[0] for k, v in parse_qs(request.url.query.decode()).items()}
        self.calls.append((path, params))

        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, json={"error": {"message": f"Unknown path {path}"}})
        if callable(route):
            route = route(request)
        if isinstance(route, tuple):
            status, body = route
            return httpx.Response(status, json=body)
        return httpx.Response(200, json=route)

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings(
        META_APP_ID="app-123",
        META_APP_SECRET="secret-xyz",
        META_REDIRECT_URI="https://bridge.example.com/auth/callback",
        DATABASE_URL="sqlite://",
    )


@pytest.fixture(name="graph")
def graph_fixture():
    return FakeGraph()


@pytest.fixture(name="graph_client")
def graph_client_fixture(settings, graph):
    return MetaGraphClient(settings, transport=graph.transport)


@pytest.fixture(name="frozen_now")
def frozen_now_fixture():
    return utcnow().replace(microsecond=0)


@pytest.fixture(name="oauth_service")
def oauth_service_fixture(settings, graph_client, frozen_now):
    return MetaOAuthService(settings, graph_client, clock=lambda: frozen_now)


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session, settings, graph_client, oauth_service):
    app.dependency_overrides[get_db] = lambda: session
    app.dependency_overrides[deps.get_settings] = lambda: settings
    app.dependency_overrides[deps.get_graph_client] = lambda: graph_client
    app.dependency_overrides[deps.get_oauth_service] = lambda: oauth_service
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="stored_token")
def stored_token_fixture(session):
    """a valid credential for user 'cliq-42' with a known ad account"""
    token = UserToken(
        user_id="cliq-42",
        access_token="EAAB-long-lived",
        expires_at=utcnow() + timedelta(days=30),
        ad_account_id="act_1001",
    )
    session.add(token)
    session.commit()
    session.refresh(token)
    return token
