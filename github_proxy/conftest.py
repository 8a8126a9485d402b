from typing import Optional

import pytest
from fastapi.testclient import TestClient

from github_proxy.config import Settings
from github_proxy.main import create_app
from github_proxy.upstream import UpstreamClient, get_upstream_client
from github_proxy.utils_tests.upstream_spy import UpstreamSpy


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("GH_PAT", "GITHUB_PROXY_GITHUB_TOKEN", "USE_SECRET_MANAGER", "GITHUB_PROXY_ADDRESSING_MODE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def upstream_spy() -> UpstreamSpy:
    return UpstreamSpy()


@pytest.fixture
def make_client(upstream_spy):
    def factory(spy: Optional[UpstreamSpy] = None, **overrides) -> TestClient:
        spy = spy or upstream_spy
        overrides.setdefault("github_token", "tok123")
        settings = Settings(_env_file=None, **overrides)
        app = create_app(settings)
        app.dependency_overrides[get_upstream_client] = lambda: UpstreamClient(settings, transport=spy.transport)
        return TestClient(app)

    return factory
