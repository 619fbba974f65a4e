"""Argo CD API client with transparent session renewal."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, TypeVar

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Settings
from ..errors import (
    ApplicationNotFoundError,
    ArgoCDAuthenticationError,
    ArgoCDError,
    ArgoCDUnauthorizedError,
    InvalidQueryError,
)
from .models import Application, ApplicationQuery

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ArgoClient(ABC):
    """Operations the reconciler needs from Argo CD."""

    @abstractmethod
    def create_application(self, app: Application) -> Application:
        """Create (or upsert) an application."""

    @abstractmethod
    def get_application(self, query: ApplicationQuery) -> Application:
        """Get one application by name."""

    @abstractmethod
    def list_applications(self, query: ApplicationQuery) -> list[Application]:
        """List applications matching the query."""

    @abstractmethod
    def delete_application(self, name: str, app_namespace: str) -> None:
        """Delete an application and its resources."""


class ArgoCDClient(ArgoClient):
    """
    Argo CD REST client.

    Every call goes through ``do_request_with_retry``: when the server rejects
    the bearer token the client logs in again under a lock and retries the
    call exactly once. Concurrent callers that hit the same expired token
    share a single re-login.
    """

    def __init__(
        self,
        server_url: str,
        username: str = "",
        password: str = "",
        token: str = "",
        insecure: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize Argo CD client.

        Args:
            server_url: Argo CD API server base URL
            username: Login user for session creation and renewal
            password: Login password
            token: Optional initial bearer token (skips the first login)
            insecure: Skip TLS verification
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.server_url = server_url.rstrip("/")
        self.username = username
        self.password = password
        self.insecure = insecure
        self.timeout = timeout
        self._transport = transport

        self._lock = threading.Lock()
        self._token = token
        self._generation = 0
        self._http: Optional[httpx.Client] = None
        # Clients replaced by a renewal may still be serving in-flight calls
        self._retired: list[httpx.Client] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> "ArgoCDClient":
        return cls(
            server_url=settings.argocd_server,
            username=settings.argocd_username,
            password=settings.argocd_password,
            token=settings.argocd_token,
            insecure=settings.argocd_insecure,
            timeout=settings.request_timeout_seconds,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        """Close all HTTP connections."""
        with self._lock:
            clients = self._retired + ([self._http] if self._http else [])
            self._retired = []
            self._http = None
        for client in clients:
            client.close()

    # Session handling

    def _client_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "base_url": self.server_url,
            "timeout": self.timeout,
            "verify": not self.insecure,
        }
        if self._transport is not None:
            options["transport"] = self._transport
        return options

    def _build_http(self, token: str) -> httpx.Client:
        return httpx.Client(
            headers={"Authorization": f"Bearer {token}"},
            **self._client_options(),
        )

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    def _login(self) -> str:
        """
        Create a session token from username and password.

        Raises:
            ArgoCDAuthenticationError: If credentials are missing or rejected
            httpx.TransportError: If the server stays unreachable
        """
        if not self.username or not self.password:
            raise ArgoCDAuthenticationError("no Argo CD credentials configured")

        logger.info(f"Logging in to Argo CD at {self.server_url} as {self.username}")
        with httpx.Client(**self._client_options()) as http:
            response = http.post(
                "/api/v1/session",
                json={"username": self.username, "password": self.password},
            )
        if response.status_code != 200:
            raise ArgoCDAuthenticationError(
                f"login failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise ArgoCDAuthenticationError(
                f"login response is not JSON: {response.text[:200]}"
            ) from e
        token = payload.get("token") if isinstance(payload, dict) else None
        if not token:
            raise ArgoCDAuthenticationError("login response carried no token")
        return token

    def _connection(self) -> tuple[httpx.Client, int]:
        """Current HTTP client and the session generation it belongs to."""
        with self._lock:
            if self._http is None:
                if not self._token:
                    self._token = self._login()
                self._http = self._build_http(self._token)
            return self._http, self._generation

    def _renew_session(self, stale_generation: int) -> None:
        with self._lock:
            if self._generation != stale_generation:
                logger.debug("Argo CD session already renewed by another caller")
                return
            self._token = self._login()
            if self._http is not None:
                self._retired.append(self._http)
            self._http = self._build_http(self._token)
            self._generation += 1
            logger.info("Argo CD session renewed")

    def do_request_with_retry(self, operation: Callable[[httpx.Client], T]) -> T:
        """
        Run ``operation`` and, if the token was rejected, once more after re-login.

        Args:
            operation: Callable performing the request with the given client

        Returns:
            Whatever ``operation`` returns

        Raises:
            ArgoCDError: From the retried call, unchanged
        """
        http, generation = self._connection()
        try:
            return operation(http)
        except ArgoCDUnauthorizedError:
            logger.info("Argo CD rejected the session token, logging in again")

        self._renew_session(generation)
        http, _ = self._connection()
        return operation(http)

    # Requests

    @staticmethod
    def _send(
        http: httpx.Client,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        name: Optional[str] = None,
    ) -> httpx.Response:
        try:
            response = http.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            raise ArgoCDError(f"{method} {path} failed: {e}") from e

        if response.status_code == 401:
            raise ArgoCDUnauthorizedError(f"{method} {path} unauthorized")
        if response.status_code == 404:
            raise ApplicationNotFoundError(name, response.text)
        if response.status_code >= 400:
            raise ArgoCDError(
                f"{method} {path} failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        return response

    def create_application(self, app: Application) -> Application:
        """
        Create an application, updating it if it already exists.

        Args:
            app: Application to create

        Returns:
            Application as stored by Argo CD
        """
        body = app.to_dict()
        body.pop("status", None)

        def operation(http: httpx.Client) -> Application:
            response = self._send(
                http,
                "POST",
                "/api/v1/applications",
                params={"upsert": "true"},
                json=body,
                name=app.name,
            )
            return Application.model_validate(response.json())

        created = self.do_request_with_retry(operation)
        logger.info(f"Created Argo CD application {created.name}")
        return created

    def get_application(self, query: ApplicationQuery) -> Application:
        """
        Get an application.

        Args:
            query: Lookup parameters; ``name`` is required

        Returns:
            Application

        Raises:
            InvalidQueryError: If the query is empty or has no name
            ApplicationNotFoundError: If the application does not exist
        """
        if query.is_empty():
            raise InvalidQueryError("application query must not be empty")
        if not query.name:
            raise InvalidQueryError("application name is required")

        def operation(http: httpx.Client) -> Application:
            response = self._send(
                http,
                "GET",
                f"/api/v1/applications/{query.name}",
                params=query.to_params(),
                name=query.name,
            )
            return Application.model_validate(response.json())

        return self.do_request_with_retry(operation)

    def list_applications(self, query: ApplicationQuery) -> list[Application]:
        """
        List applications.

        Args:
            query: Filter parameters

        Returns:
            Matching applications

        Raises:
            InvalidQueryError: If the query is empty
        """
        if query.is_empty():
            raise InvalidQueryError("application query must not be empty")

        def operation(http: httpx.Client) -> list[Application]:
            params = query.to_params()
            if query.name:
                params["name"] = query.name
            response = self._send(http, "GET", "/api/v1/applications", params=params)
            items = response.json().get("items") or []
            return [Application.model_validate(item) for item in items]

        return self.do_request_with_retry(operation)

    def delete_application(self, name: str, app_namespace: str) -> None:
        """
        Delete an application with cascading resource deletion.

        Args:
            name: Application name
            app_namespace: Namespace the application object lives in

        Raises:
            InvalidQueryError: If name or namespace is empty
            ApplicationNotFoundError: If the application does not exist
        """
        if not name or not app_namespace:
            raise InvalidQueryError("application name and namespace are required")

        def operation(http: httpx.Client) -> None:
            self._send(
                http,
                "DELETE",
                f"/api/v1/applications/{name}",
                params={"appNamespace": app_namespace, "cascade": "true"},
                name=name,
            )

        self.do_request_with_retry(operation)
        logger.info(f"Deleted Argo CD application {name}")
