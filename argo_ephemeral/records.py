"""EphemeralApplication custom resource access."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from kubernetes.client.exceptions import ApiException

from .cluster import ClusterConnection, k8s_retry
from .models import EphemeralApplication, RecordKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordKind:
    """Group/version/plural of the custom resource the controller owns."""

    group: str = "ephemeral.argo.io"
    version: str = "v1alpha1"
    plural: str = "ephemeralapplications"
    kind: str = "EphemeralApplication"

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


class EphemeralApplicationStore:
    """Reads and writes EphemeralApplication objects through the CustomObjectsApi."""

    def __init__(self, cluster: ClusterConnection, kind: Optional[RecordKind] = None):
        """
        Initialize the store.

        Args:
            cluster: Cluster connection
            kind: Custom resource coordinates (defaults to ephemeral.argo.io/v1alpha1)
        """
        self.cluster = cluster
        self.custom_objects = cluster.custom_objects
        self.kind = kind or RecordKind()

    def _coordinates(self) -> dict[str, str]:
        return {
            "group": self.kind.group,
            "version": self.kind.version,
            "plural": self.kind.plural,
        }

    @staticmethod
    def _refresh_metadata(record: EphemeralApplication, obj: dict[str, Any]) -> None:
        metadata = obj.get("metadata") or {}
        if metadata.get("resourceVersion"):
            record.metadata.resource_version = metadata["resourceVersion"]

    @k8s_retry
    def get(self, key: RecordKey) -> Optional[EphemeralApplication]:
        """
        Get an EphemeralApplication.

        Args:
            key: Record identity

        Returns:
            EphemeralApplication or None if not found
        """
        try:
            if key.namespace:
                obj = self.custom_objects.get_namespaced_custom_object(
                    namespace=key.namespace,
                    name=key.name,
                    _request_timeout=self.cluster.request_timeout,
                    **self._coordinates(),
                )
            else:
                obj = self.custom_objects.get_cluster_custom_object(
                    name=key.name,
                    _request_timeout=self.cluster.request_timeout,
                    **self._coordinates(),
                )
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return EphemeralApplication.from_dict(obj)

    @k8s_retry
    def list(self, namespace: Optional[str] = None) -> list[EphemeralApplication]:
        """
        List EphemeralApplications.

        Args:
            namespace: Namespace to list (all namespaces when None)

        Returns:
            List of EphemeralApplication objects
        """
        if namespace:
            result = self.custom_objects.list_namespaced_custom_object(
                namespace=namespace,
                _request_timeout=self.cluster.request_timeout,
                **self._coordinates(),
            )
        else:
            result = self.custom_objects.list_cluster_custom_object(
                _request_timeout=self.cluster.request_timeout,
                **self._coordinates(),
            )
        return [EphemeralApplication.from_dict(item) for item in result.get("items", [])]

    def update(self, record: EphemeralApplication) -> EphemeralApplication:
        """
        Persist the record's finalizers.

        Sent as a JSON patch guarded by the record's resourceVersion, so
        metadata and spec fields the model does not carry are left untouched.

        Args:
            record: Record to write; its resourceVersion is refreshed in place

        Returns:
            The same record

        Raises:
            ApiException: On a stale resourceVersion or any other API failure
        """
        body = [
            {
                "op": "test",
                "path": "/metadata/resourceVersion",
                "value": record.metadata.resource_version,
            },
            {
                "op": "add",
                "path": "/metadata/finalizers",
                "value": list(record.metadata.finalizers),
            },
        ]
        key = record.key
        if key.namespace:
            obj = self.custom_objects.patch_namespaced_custom_object(
                namespace=key.namespace,
                name=key.name,
                body=body,
                _request_timeout=self.cluster.request_timeout,
                **self._coordinates(),
            )
        else:
            obj = self.custom_objects.patch_cluster_custom_object(
                name=key.name,
                body=body,
                _request_timeout=self.cluster.request_timeout,
                **self._coordinates(),
            )
        self._refresh_metadata(record, obj)
        return record

    def update_status(self, record: EphemeralApplication) -> EphemeralApplication:
        """
        Persist the status subresource.

        Args:
            record: Record to write; its resourceVersion is refreshed in place

        Returns:
            The same record

        Raises:
            ApiException: On conflict or any other API failure
        """
        body = record.to_dict()
        key = record.key
        if key.namespace:
            obj = self.custom_objects.replace_namespaced_custom_object_status(
                namespace=key.namespace,
                name=key.name,
                body=body,
                _request_timeout=self.cluster.request_timeout,
                **self._coordinates(),
            )
        else:
            obj = self.custom_objects.replace_cluster_custom_object_status(
                name=key.name,
                body=body,
                _request_timeout=self.cluster.request_timeout,
                **self._coordinates(),
            )
        self._refresh_metadata(record, obj)
        logger.debug(f"Updated status of {key}: phase={record.status.phase.value}")
        return record

    def delete(self, record: EphemeralApplication) -> bool:
        """
        Request deletion of an EphemeralApplication.

        With the finalizer present the object only gets a deletion timestamp;
        it disappears once the finalizer is removed.

        Args:
            record: Record to delete

        Returns:
            True if deletion was requested, False if already gone
        """
        key = record.key
        try:
            if key.namespace:
                self.custom_objects.delete_namespaced_custom_object(
                    namespace=key.namespace,
                    name=key.name,
                    _request_timeout=self.cluster.request_timeout,
                    **self._coordinates(),
                )
            else:
                self.custom_objects.delete_cluster_custom_object(
                    name=key.name,
                    _request_timeout=self.cluster.request_timeout,
                    **self._coordinates(),
                )
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        return True
