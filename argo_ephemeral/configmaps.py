"""ConfigMap provisioning into ephemeral namespaces."""

import logging
from typing import Optional

from kubernetes.client import V1ConfigMap, V1ObjectMeta
from kubernetes.client.exceptions import ApiException

from .cluster import ClusterConnection, k8s_retry
from .errors import ProvisioningError
from .labels import provenance_metadata
from .models import ConfigMapReference, EphemeralApplication

logger = logging.getLogger(__name__)

SOURCE_CONFIGMAP_ANNOTATION = "ephemeral.argo.io/source-configmap"


def describe_config_maps(config_maps: list[ConfigMapReference]) -> list[str]:
    """Human-readable provenance of each configmap, for status display."""
    described = []
    for ref in config_maps:
        if ref.is_inline:
            described.append(f"{ref.name} (inline)")
        else:
            described.append(f"{ref.source_namespace}/{ref.name} -> {ref.target}")
    return described


class ConfigMapProvisioner:
    """Copies or creates configmaps inside an ephemeral namespace."""

    kind = "ConfigMap"

    def __init__(self, cluster: ClusterConnection):
        """
        Initialize configmap provisioner.

        Args:
            cluster: Cluster connection
        """
        self.cluster = cluster
        self.core_v1 = cluster.core_v1

    def provision(self, record: EphemeralApplication, namespace: str) -> None:
        """
        Provision every configmap referenced by the record, in order.

        Args:
            record: Owning EphemeralApplication
            namespace: Target namespace

        Raises:
            ProvisioningError: Naming the first reference that failed
        """
        if not record.spec.config_maps:
            return

        logger.info(
            f"Provisioning {len(record.spec.config_maps)} configmaps into {namespace}"
        )
        for ref in record.spec.config_maps:
            try:
                self.provision_config_map(ref, namespace, owner=record.metadata.name)
            except ApiException as e:
                raise ProvisioningError(
                    self.kind, ref.name, f"{e.status} {e.reason}"
                ) from e

    def provision_config_map(
        self, ref: ConfigMapReference, namespace: str, owner: str
    ) -> V1ConfigMap:
        """
        Create or update one configmap in the target namespace.

        Non-empty inline ``data`` takes precedence over ``sourceNamespace``.

        Args:
            ref: ConfigMap reference
            namespace: Target namespace
            owner: Name of the owning EphemeralApplication

        Returns:
            The created or updated V1ConfigMap

        Raises:
            ProvisioningError: If the reference is incomplete or its source is missing
            ApiException: If the API server rejects a call
        """
        if ref.is_inline:
            data = dict(ref.data)
            labels, annotations = provenance_metadata(
                owner, SOURCE_CONFIGMAP_ANNOTATION
            )
        else:
            if not ref.source_namespace:
                raise ProvisioningError(
                    self.kind,
                    ref.name,
                    "either data or sourceNamespace must be set",
                )
            source = self._read(ref.name, ref.source_namespace)
            if source is None:
                raise ProvisioningError(
                    self.kind,
                    ref.name,
                    f"source configmap {ref.source_namespace}/{ref.name} not found",
                )
            data = source.data or {}
            labels, annotations = provenance_metadata(
                owner, SOURCE_CONFIGMAP_ANNOTATION, ref.source_namespace, ref.name
            )

        config_map = V1ConfigMap(
            api_version="v1",
            kind="ConfigMap",
            metadata=V1ObjectMeta(
                name=ref.target,
                namespace=namespace,
                labels=labels,
                annotations=annotations or None,
            ),
            data=data,
        )
        return self._upsert(config_map, namespace)

    @k8s_retry
    def _read(self, name: str, namespace: str) -> Optional[V1ConfigMap]:
        try:
            return self.core_v1.read_namespaced_config_map(
                name=name,
                namespace=namespace,
                _request_timeout=self.cluster.request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def _upsert(self, config_map: V1ConfigMap, namespace: str) -> V1ConfigMap:
        name = config_map.metadata.name
        try:
            created = self.core_v1.create_namespaced_config_map(
                namespace=namespace,
                body=config_map,
                _request_timeout=self.cluster.request_timeout,
            )
            logger.info(f"Created configmap {namespace}/{name}")
            return created
        except ApiException as e:
            if e.status != 409:
                raise

        logger.info(f"ConfigMap {namespace}/{name} already exists, updating")
        existing = self.core_v1.read_namespaced_config_map(
            name=name,
            namespace=namespace,
            _request_timeout=self.cluster.request_timeout,
        )
        existing.data = config_map.data
        return self.core_v1.replace_namespaced_config_map(
            name=name,
            namespace=namespace,
            body=existing,
            _request_timeout=self.cluster.request_timeout,
        )
