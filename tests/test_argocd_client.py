"""Tests for ArgoCDClient."""

import json
import threading
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from argo_ephemeral.argocd import (
    Application,
    ApplicationMetadata,
    ApplicationQuery,
    ArgoCDClient,
)
from argo_ephemeral.config import Settings
from argo_ephemeral.errors import (
    ApplicationNotFoundError,
    ArgoCDAuthenticationError,
    ArgoCDError,
    ArgoCDUnauthorizedError,
    InvalidQueryError,
)

SERVER = "https://argocd.example.com"


def app_payload(name="demo", sync="Synced", health="Healthy"):
    return {
        "metadata": {"name": name, "namespace": "argocd", "uid": "abc"},
        "spec": {
            "project": "default",
            "source": {"repoURL": "https://github.com/example/app.git", "path": "k8s"},
            "destination": {"server": "https://kubernetes.default.svc", "namespace": "ns"},
        },
        "status": {"sync": {"status": sync}, "health": {"status": health}},
    }


class FakeArgoServer:
    """Argo CD API double that accepts one valid token at a time."""

    def __init__(self, valid_token="fresh", issued_token="fresh"):
        self.valid_token = valid_token
        self.issued_token = issued_token
        self.apps = {"demo": app_payload()}
        self.logins = 0
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            if request.url.path == "/api/v1/session":
                self.logins += 1
                body = json.loads(request.content)
                if body.get("password") != "secret":
                    return httpx.Response(401, json={"error": "invalid credentials"})
                return httpx.Response(200, json={"token": self.issued_token})

        if request.headers.get("Authorization") != f"Bearer {self.valid_token}":
            return httpx.Response(401, json={"error": "invalid session"})

        path = request.url.path
        if request.method == "GET" and path == "/api/v1/applications":
            return httpx.Response(200, json={"items": list(self.apps.values())})
        if request.method == "POST" and path == "/api/v1/applications":
            payload = json.loads(request.content)
            self.apps[payload["metadata"]["name"]] = payload
            return httpx.Response(200, json=payload)

        name = path.rsplit("/", 1)[-1]
        if name not in self.apps:
            return httpx.Response(404, json={"error": f"application {name} not found"})
        if request.method == "GET":
            return httpx.Response(200, json=self.apps[name])
        if request.method == "DELETE":
            del self.apps[name]
            return httpx.Response(200, json={})
        return httpx.Response(405)

    def app_requests(self):
        return [r for r in self.requests if r.url.path != "/api/v1/session"]


@pytest.fixture
def server():
    return FakeArgoServer()


@pytest.fixture
def make_client(server):
    clients = []

    def _make(token="fresh", password="secret"):
        client = ArgoCDClient(
            server_url=SERVER,
            username="admin",
            password=password,
            token=token,
            transport=httpx.MockTransport(server.handler),
        )
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


class TestSessionRenewal:
    """Retry-once-on-401 behaviour."""

    def test_valid_token_no_login(self, server, make_client):
        """Test that a valid static token is used without logging in."""
        client = make_client(token="fresh")

        app = client.get_application(ApplicationQuery(name="demo"))

        assert app.name == "demo"
        assert server.logins == 0

    def test_login_when_no_token(self, server, make_client):
        """Test that the first call logs in when no token is configured."""
        client = make_client(token="")

        client.get_application(ApplicationQuery(name="demo"))

        assert server.logins == 1
        assert server.app_requests()[0].headers["Authorization"] == "Bearer fresh"

    def test_expired_token_renewed_and_retried_once(self, server, make_client):
        """Test that a 401 triggers one login and exactly one retry."""
        client = make_client(token="stale")

        app = client.get_application(ApplicationQuery(name="demo"))

        assert app.is_synced and app.is_healthy
        assert server.logins == 1
        auth = [r.headers["Authorization"] for r in server.app_requests()]
        assert auth == ["Bearer stale", "Bearer fresh"]

    def test_second_unauthorized_is_returned(self, server, make_client):
        """Test that a failure after renewal is raised without further retries."""
        server.issued_token = "also-rejected"
        client = make_client(token="stale")

        with pytest.raises(ArgoCDUnauthorizedError):
            client.get_application(ApplicationQuery(name="demo"))

        assert server.logins == 1
        assert len(server.app_requests()) == 2

    def test_concurrent_unauthorized_share_one_login(self, server, make_client):
        """Test that concurrent callers with an expired token trigger a single login."""
        client = make_client(token="stale")

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(
                pool.map(
                    lambda _: client.get_application(ApplicationQuery(name="demo")),
                    range(8),
                )
            )

        assert all(app.name == "demo" for app in results)
        assert server.logins == 1

    def test_login_rejected(self, server, make_client):
        """Test that rejected credentials raise ArgoCDAuthenticationError."""
        client = make_client(token="stale", password="wrong")

        with pytest.raises(ArgoCDAuthenticationError):
            client.get_application(ApplicationQuery(name="demo"))

    def test_login_reply_not_json(self):
        """Test that an unparseable login reply raises ArgoCDAuthenticationError."""

        def handler(request):
            if request.url.path == "/api/v1/session":
                return httpx.Response(200, text="<html>proxy login</html>")
            return httpx.Response(401, json={"error": "invalid session"})

        client = ArgoCDClient(
            server_url=SERVER,
            username="admin",
            password="secret",
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(ArgoCDAuthenticationError, match="not JSON"):
            client.get_application(ApplicationQuery(name="demo"))
        client.close()

    def test_no_credentials(self, server):
        """Test that renewal without credentials fails cleanly."""
        client = ArgoCDClient(
            server_url=SERVER,
            token="stale",
            transport=httpx.MockTransport(server.handler),
        )

        with pytest.raises(ArgoCDAuthenticationError):
            client.get_application(ApplicationQuery(name="demo"))

        assert server.logins == 0
        client.close()


class TestApplications:
    """Application CRUD."""

    def test_create_application_upserts(self, server, make_client):
        """Test that create posts the application with upsert enabled."""
        client = make_client()
        app = Application.model_validate(app_payload(name="preview"))

        created = client.create_application(app)

        request = server.app_requests()[-1]
        assert request.method == "POST"
        assert request.url.params["upsert"] == "true"
        body = json.loads(request.content)
        assert body["spec"]["source"]["repoURL"] == "https://github.com/example/app.git"
        assert "status" not in body
        assert created.name == "preview"

    def test_get_application_not_found(self, make_client):
        """Test that a 404 maps to ApplicationNotFoundError."""
        client = make_client()

        with pytest.raises(ApplicationNotFoundError) as exc_info:
            client.get_application(ApplicationQuery(name="missing"))

        assert exc_info.value.status_code == 404
        assert exc_info.value.name == "missing"

    def test_get_application_sends_namespace(self, server, make_client):
        """Test that query fields become query parameters."""
        client = make_client()

        client.get_application(ApplicationQuery(name="demo", app_namespace="argocd"))

        request = server.app_requests()[-1]
        assert request.url.path == "/api/v1/applications/demo"
        assert request.url.params["appNamespace"] == "argocd"
        assert "name" not in request.url.params

    def test_empty_query_rejected_without_request(self, server, make_client):
        """Test that an empty query is rejected before any network call."""
        client = make_client()

        with pytest.raises(InvalidQueryError):
            client.get_application(ApplicationQuery())
        with pytest.raises(InvalidQueryError):
            client.list_applications(ApplicationQuery())

        assert server.requests == []

    def test_get_requires_name(self, server, make_client):
        """Test that get rejects a query without a name."""
        client = make_client()

        with pytest.raises(InvalidQueryError):
            client.get_application(ApplicationQuery(app_namespace="argocd"))

        assert server.requests == []

    def test_list_applications(self, server, make_client):
        """Test listing applications with a selector."""
        client = make_client()

        apps = client.list_applications(
            ApplicationQuery(selector="app.kubernetes.io/managed-by=argo-ephemeral-operator")
        )

        assert [a.name for a in apps] == ["demo"]
        assert "selector" in server.app_requests()[-1].url.params

    def test_delete_application_cascades(self, server, make_client):
        """Test that delete requests cascading deletion."""
        client = make_client()

        client.delete_application("demo", "argocd")

        request = server.app_requests()[-1]
        assert request.method == "DELETE"
        assert request.url.params["cascade"] == "true"
        assert request.url.params["appNamespace"] == "argocd"
        assert "demo" not in server.apps

    def test_delete_requires_name_and_namespace(self, server, make_client):
        """Test that delete validates its arguments before any call."""
        client = make_client()

        with pytest.raises(InvalidQueryError):
            client.delete_application("demo", "")
        with pytest.raises(InvalidQueryError):
            client.delete_application("", "argocd")

        assert server.requests == []

    def test_delete_missing_application(self, make_client):
        """Test that deleting a missing application raises ApplicationNotFoundError."""
        client = make_client()

        with pytest.raises(ApplicationNotFoundError):
            client.delete_application("missing", "argocd")

    def test_server_error(self):
        """Test that other error statuses raise ArgoCDError with the status code."""
        client = ArgoCDClient(
            server_url=SERVER,
            token="fresh",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
        )

        with pytest.raises(ArgoCDError) as exc_info:
            client.get_application(ApplicationQuery(name="demo"))

        assert exc_info.value.status_code == 500
        client.close()


class TestFromSettings:
    def test_from_settings(self):
        """Test building the client from settings."""
        settings = Settings(
            argocd_server="https://argocd.internal/",
            argocd_username="bot",
            argocd_password="pw",
            argocd_token="tok",
            argocd_insecure=True,
            request_timeout_seconds=5,
        )

        client = ArgoCDClient.from_settings(settings)

        assert client.server_url == "https://argocd.internal"
        assert client.username == "bot"
        assert client.insecure is True
        assert client.timeout == 5
        client.close()
