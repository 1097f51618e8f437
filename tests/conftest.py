"""Shared test fixtures and an httpx.MockTransport-backed fake server."""

import io
import tarfile

import httpx
import pytest

P5_REGISTRY_URL = "https://data.jsdelivr.com/v1/package/npm/p5"
TYPES_REGISTRY_URL = "https://data.jsdelivr.com/v1/package/npm/@types/p5"

P5_VERSIONS = ["2.1.1", "2.1.0-rc.1", "2.0.2", "2.0.1", "2.0.0", "1.11.3", "1.9.0", "1.4.0"]
TYPES_VERSIONS = ["1.7.7", "1.7.6", "1.6.1", "1.4.3"]


class FakeServer:
    """Route table served through ``httpx.MockTransport``.

    Unknown URLs answer 404. Every request is recorded in ``requests``.
    """

    def __init__(self):
        self.routes: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, status: int = 200, **response_kwargs) -> None:
        self.routes[str(httpx.URL(url))] = {"status_code": status, **response_kwargs}

    def redirect(self, url: str, location: str, status: int = 302) -> None:
        self.add(url, status, headers={"Location": location})

    def requested_urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="Not Found")
        return httpx.Response(**route)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler), follow_redirects=False)


def make_tarball(files: dict[str, bytes], wrapper: str = "repo-main") -> bytes:
    """Build an in-memory codeload-style tar.gz with a top-level wrapper dir."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        wrapper_info = tarfile.TarInfo(wrapper)
        wrapper_info.type = tarfile.DIRTYPE
        wrapper_info.mode = 0o755
        tar.addfile(wrapper_info)
        for name, data in files.items():
            info = tarfile.TarInfo(f"{wrapper}/{name}")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def registry_payload(versions: list[str], latest: str) -> dict:
    return {"tags": {"latest": latest}, "versions": versions}


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def http_client(server):
    client = server.client()
    yield client
    client.close()


@pytest.fixture
def registry(server):
    """Server preloaded with the p5 and @types/p5 version catalogs."""
    server.add(P5_REGISTRY_URL, json=registry_payload(P5_VERSIONS, "2.1.1"))
    server.add(TYPES_REGISTRY_URL, json=registry_payload(TYPES_VERSIONS, "1.7.7"))
    return server


@pytest.fixture(autouse=True)
def _no_github_token(monkeypatch):
    monkeypatch.delenv("GH_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
