"""Kubernetes Namespace operations."""

import logging

from kubernetes.client import V1Namespace, V1ObjectMeta
from kubernetes.client.exceptions import ApiException

from .cluster import ClusterConnection, k8s_retry
from .labels import ownership_labels

logger = logging.getLogger(__name__)


class NamespaceManager:
    """Creates and deletes the namespaces that host ephemeral environments."""

    def __init__(self, cluster: ClusterConnection):
        """
        Initialize namespace manager.

        Args:
            cluster: Cluster connection
        """
        self.cluster = cluster
        self.core_v1 = cluster.core_v1

    @k8s_retry
    def create(self, name: str, owner: str) -> bool:
        """
        Create a namespace owned by an EphemeralApplication.

        Args:
            name: Namespace name
            owner: Name of the owning EphemeralApplication

        Returns:
            True if created, False if it already existed

        Raises:
            ApiException: If creation fails
        """
        namespace = V1Namespace(
            api_version="v1",
            kind="Namespace",
            metadata=V1ObjectMeta(name=name, labels=ownership_labels(owner)),
        )
        try:
            self.core_v1.create_namespace(
                body=namespace,
                _request_timeout=self.cluster.request_timeout,
            )
        except ApiException as e:
            if e.status == 409:
                logger.info(f"Namespace {name} already exists, reusing it")
                return False
            raise

        logger.info(f"Created namespace {name} for {owner}")
        return True

    @k8s_retry
    def delete(self, name: str) -> bool:
        """
        Delete a namespace and, with it, everything provisioned inside.

        Args:
            name: Namespace name

        Returns:
            True if deleted, False if not found

        Raises:
            ApiException: If deletion fails
        """
        try:
            self.core_v1.delete_namespace(
                name=name,
                _request_timeout=self.cluster.request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                logger.info(f"Namespace {name} already gone")
                return False
            raise

        logger.info(f"Deleted namespace {name}")
        return True
