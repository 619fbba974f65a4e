"""Secret provisioning into ephemeral namespaces."""

import base64
import logging
from typing import Optional

from kubernetes.client import V1ObjectMeta, V1Secret
from kubernetes.client.exceptions import ApiException

from .cluster import ClusterConnection, k8s_retry
from .errors import ProvisioningError
from .labels import provenance_metadata
from .models import EphemeralApplication, SecretReference

logger = logging.getLogger(__name__)

SOURCE_SECRET_ANNOTATION = "ephemeral.argo.io/source-secret"
OPAQUE = "Opaque"


def describe_secrets(secrets: list[SecretReference]) -> list[str]:
    """Human-readable provenance of each secret, for status display."""
    described = []
    for ref in secrets:
        if ref.is_inline:
            described.append(f"{ref.name} (inline)")
        else:
            described.append(f"{ref.source_namespace}/{ref.name} -> {ref.target}")
    return described


class SecretProvisioner:
    """Copies or synthesizes secrets inside an ephemeral namespace."""

    kind = "Secret"

    def __init__(self, cluster: ClusterConnection):
        """
        Initialize secret provisioner.

        Args:
            cluster: Cluster connection
        """
        self.cluster = cluster
        self.core_v1 = cluster.core_v1

    def provision(self, record: EphemeralApplication, namespace: str) -> None:
        """
        Provision every secret referenced by the record, in order.

        Stops at the first failure; later references are not applied.

        Args:
            record: Owning EphemeralApplication
            namespace: Target namespace

        Raises:
            ProvisioningError: Naming the reference that failed
        """
        if not record.spec.secrets:
            return

        logger.info(
            f"Provisioning {len(record.spec.secrets)} secrets into {namespace}"
        )
        for ref in record.spec.secrets:
            try:
                self.provision_secret(ref, namespace, owner=record.metadata.name)
            except ApiException as e:
                raise ProvisioningError(
                    self.kind, ref.name, f"{e.status} {e.reason}"
                ) from e

    def provision_secret(
        self, ref: SecretReference, namespace: str, owner: str
    ) -> V1Secret:
        """
        Create or update one secret in the target namespace.

        Inline ``values`` win over ``sourceNamespace`` when both are set.

        Args:
            ref: Secret reference
            namespace: Target namespace
            owner: Name of the owning EphemeralApplication

        Returns:
            The created or updated V1Secret

        Raises:
            ProvisioningError: If the reference is incomplete or its source is missing
            ApiException: If the API server rejects a call
        """
        if ref.is_inline:
            data = {
                key: base64.b64encode(value.encode()).decode()
                for key, value in ref.values.items()
            }
            secret_type = OPAQUE
            labels, annotations = provenance_metadata(owner, SOURCE_SECRET_ANNOTATION)
        else:
            if not ref.source_namespace:
                raise ProvisioningError(
                    self.kind,
                    ref.name,
                    "sourceNamespace is required when no inline values are given",
                )
            source = self._read(ref.name, ref.source_namespace)
            if source is None:
                raise ProvisioningError(
                    self.kind,
                    ref.name,
                    f"source secret {ref.source_namespace}/{ref.name} not found",
                )
            data = source.data or {}
            secret_type = source.type or OPAQUE
            labels, annotations = provenance_metadata(
                owner, SOURCE_SECRET_ANNOTATION, ref.source_namespace, ref.name
            )

        origin = "inline" if ref.is_inline else f"{ref.source_namespace}/{ref.name}"
        logger.info(f"Provisioning secret {namespace}/{ref.target} ({origin})")

        secret = V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=V1ObjectMeta(
                name=ref.target,
                namespace=namespace,
                labels=labels,
                annotations=annotations or None,
            ),
            type=secret_type,
            data=data,
        )
        return self._upsert(secret, namespace)

    @k8s_retry
    def _read(self, name: str, namespace: str) -> Optional[V1Secret]:
        try:
            return self.core_v1.read_namespaced_secret(
                name=name,
                namespace=namespace,
                _request_timeout=self.cluster.request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def _upsert(self, secret: V1Secret, namespace: str) -> V1Secret:
        name = secret.metadata.name
        try:
            return self.core_v1.create_namespaced_secret(
                namespace=namespace,
                body=secret,
                _request_timeout=self.cluster.request_timeout,
            )
        except ApiException as e:
            if e.status != 409:
                raise

        logger.info(f"Secret {namespace}/{name} already exists, updating")
        existing = self.core_v1.read_namespaced_secret(
            name=name,
            namespace=namespace,
            _request_timeout=self.cluster.request_timeout,
        )
        existing.data = secret.data
        existing.type = secret.type
        return self.core_v1.replace_namespaced_secret(
            name=name,
            namespace=namespace,
            body=existing,
            _request_timeout=self.cluster.request_timeout,
        )
