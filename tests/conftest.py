"""Pytest configuration and fixtures for argo-ephemeral tests."""

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from argo_ephemeral import (
    ConfigMapProvisioner,
    EphemeralApplication,
    EphemeralApplicationReconciler,
    NameGenerator,
    NamespaceManager,
    RecordKey,
    SecretProvisioner,
)
from argo_ephemeral.argocd import Application, ApplicationBuilder, ArgoClient
from argo_ephemeral.errors import ApplicationNotFoundError
from argo_ephemeral.models import format_timestamp

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeCoreV1Api:
    """In-memory stand-in for the namespace, secret and configmap endpoints."""

    def __init__(self):
        self.namespaces: dict[str, client.V1Namespace] = {}
        self.secrets: dict[tuple[str, str], client.V1Secret] = {}
        self.config_maps: dict[tuple[str, str], client.V1ConfigMap] = {}
        self.replace_calls = 0

    @staticmethod
    def _not_found():
        return ApiException(status=404, reason="Not Found")

    @staticmethod
    def _conflict():
        return ApiException(status=409, reason="AlreadyExists")

    def create_namespace(self, body, **kwargs):
        name = body.metadata.name
        if name in self.namespaces:
            raise self._conflict()
        self.namespaces[name] = copy.deepcopy(body)
        return body

    def delete_namespace(self, name, **kwargs):
        if name not in self.namespaces:
            raise self._not_found()
        del self.namespaces[name]

    def read_namespaced_secret(self, name, namespace, **kwargs):
        if (namespace, name) not in self.secrets:
            raise self._not_found()
        return copy.deepcopy(self.secrets[(namespace, name)])

    def create_namespaced_secret(self, namespace, body, **kwargs):
        if (namespace, body.metadata.name) in self.secrets:
            raise self._conflict()
        self.secrets[(namespace, body.metadata.name)] = copy.deepcopy(body)
        return body

    def replace_namespaced_secret(self, name, namespace, body, **kwargs):
        self.replace_calls += 1
        self.secrets[(namespace, name)] = copy.deepcopy(body)
        return body

    def read_namespaced_config_map(self, name, namespace, **kwargs):
        if (namespace, name) not in self.config_maps:
            raise self._not_found()
        return copy.deepcopy(self.config_maps[(namespace, name)])

    def create_namespaced_config_map(self, namespace, body, **kwargs):
        if (namespace, body.metadata.name) in self.config_maps:
            raise self._conflict()
        self.config_maps[(namespace, body.metadata.name)] = copy.deepcopy(body)
        return body

    def replace_namespaced_config_map(self, name, namespace, body, **kwargs):
        self.replace_calls += 1
        self.config_maps[(namespace, name)] = copy.deepcopy(body)
        return body

    def add_secret(self, namespace: str, name: str, data: dict[str, str], type_="Opaque"):
        self.secrets[(namespace, name)] = client.V1Secret(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            data=dict(data),
            type=type_,
        )

    def add_config_map(self, namespace: str, name: str, data: dict[str, str]):
        self.config_maps[(namespace, name)] = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            data=dict(data),
        )


class FakeRecordStore:
    """In-memory EphemeralApplication store with finalizer-aware deletion."""

    def __init__(self):
        self.objects: dict[RecordKey, EphemeralApplication] = {}
        self.update_calls = 0
        self.status_calls = 0
        self.delete_calls: list[RecordKey] = []
        self.fail_update: Optional[Exception] = None
        self.fail_status: Optional[Exception] = None

    def add(self, record: EphemeralApplication) -> RecordKey:
        self.objects[record.key] = record.model_copy(deep=True)
        return record.key

    def get(self, key: RecordKey) -> Optional[EphemeralApplication]:
        record = self.objects.get(key)
        return record.model_copy(deep=True) if record else None

    def list(self, namespace: Optional[str] = None) -> list[EphemeralApplication]:
        return [
            record.model_copy(deep=True)
            for key, record in self.objects.items()
            if namespace is None or key.namespace == namespace
        ]

    def update(self, record: EphemeralApplication) -> EphemeralApplication:
        if self.fail_update is not None:
            error, self.fail_update = self.fail_update, None
            raise error
        self.update_calls += 1
        if record.is_being_deleted and not record.metadata.finalizers:
            self.objects.pop(record.key, None)
        else:
            self.objects[record.key] = record.model_copy(deep=True)
        return record

    def update_status(self, record: EphemeralApplication) -> EphemeralApplication:
        if self.fail_status is not None:
            error, self.fail_status = self.fail_status, None
            raise error
        self.status_calls += 1
        stored = self.objects[record.key]
        stored.status = record.status.model_copy(deep=True)
        return record

    def delete(self, record: EphemeralApplication) -> bool:
        self.delete_calls.append(record.key)
        stored = self.objects.get(record.key)
        if stored is None:
            return False
        if stored.metadata.finalizers:
            stored.metadata.deletion_timestamp = NOW
        else:
            del self.objects[record.key]
        return True


class FakeArgoClient(ArgoClient):
    """In-memory Argo CD with controllable sync and health status."""

    def __init__(self):
        self.apps: dict[str, Application] = {}
        self.created: list[Application] = []
        self.deleted: list[tuple[str, str]] = []
        self.create_error: Optional[Exception] = None
        self.sync_status = "OutOfSync"
        self.health_status = "Progressing"

    def create_application(self, app):
        if self.create_error is not None:
            raise self.create_error
        stored = app.model_copy(deep=True)
        self.apps[app.name] = stored
        self.created.append(stored)
        return stored

    def get_application(self, query):
        if query.name not in self.apps:
            raise ApplicationNotFoundError(query.name)
        app = self.apps[query.name].model_copy(deep=True)
        app.status.sync.status = self.sync_status
        app.status.health.status = self.health_status
        return app

    def list_applications(self, query):
        return list(self.apps.values())

    def delete_application(self, name, app_namespace):
        self.deleted.append((name, app_namespace))
        if name not in self.apps:
            raise ApplicationNotFoundError(name)
        del self.apps[name]


@pytest.fixture
def mock_cluster_connection():
    """Mock cluster connection for testing."""
    mock_conn = MagicMock()
    mock_conn.core_v1 = MagicMock(spec=client.CoreV1Api)
    mock_conn.custom_objects = MagicMock(spec=client.CustomObjectsApi)
    mock_conn.request_timeout = 10
    return mock_conn


@pytest.fixture
def fake_core_v1():
    """In-memory CoreV1Api."""
    return FakeCoreV1Api()


@pytest.fixture
def fake_cluster(fake_core_v1):
    """Cluster connection backed by the in-memory CoreV1Api."""
    conn = MagicMock()
    conn.core_v1 = fake_core_v1
    conn.request_timeout = None
    return conn


@pytest.fixture
def now():
    """Fixed current time used by the reconciler clock."""
    return NOW


@pytest.fixture
def record_store():
    return FakeRecordStore()


@pytest.fixture
def argo_client():
    return FakeArgoClient()


@pytest.fixture
def make_record():
    """Factory for EphemeralApplication records."""

    def _make(
        name: str = "demo",
        namespace: Optional[str] = "default",
        expires_in: timedelta = timedelta(days=1),
        secrets: Optional[list[dict[str, Any]]] = None,
        config_maps: Optional[list[dict[str, Any]]] = None,
        namespace_name: Optional[str] = None,
        status: Optional[dict[str, Any]] = None,
        finalizers: Optional[list[str]] = None,
        sync_policy: Optional[dict[str, Any]] = None,
    ) -> EphemeralApplication:
        spec: dict[str, Any] = {
            "repoURL": "https://github.com/example/guestbook.git",
            "path": "deploy",
            "targetRevision": "main",
            "expirationDate": format_timestamp(NOW + expires_in),
            "secrets": secrets or [],
            "configMaps": config_maps or [],
        }
        if namespace_name:
            spec["namespaceName"] = namespace_name
        if sync_policy:
            spec["syncPolicy"] = sync_policy
        metadata: dict[str, Any] = {
            "name": name,
            "generation": 1,
            "resourceVersion": "1",
            "finalizers": finalizers or [],
        }
        if namespace:
            metadata["namespace"] = namespace
        return EphemeralApplication.from_dict(
            {
                "apiVersion": "ephemeral.argo.io/v1alpha1",
                "kind": "EphemeralApplication",
                "metadata": metadata,
                "spec": spec,
                "status": status or {},
            }
        )

    return _make


@pytest.fixture
def reconciler(fake_cluster, record_store, argo_client):
    """Reconciler wired to in-memory collaborators and a fixed clock."""
    return EphemeralApplicationReconciler(
        store=record_store,
        namespaces=NamespaceManager(fake_cluster),
        secrets=SecretProvisioner(fake_cluster),
        config_maps=ConfigMapProvisioner(fake_cluster),
        argo_client=argo_client,
        app_builder=ApplicationBuilder(app_namespace="argocd"),
        name_generator=NameGenerator(seed=42),
        reconcile_interval=300,
        creating_requeue=30,
        clock=lambda: NOW,
    )
