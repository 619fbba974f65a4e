"""Kubernetes client connection."""

from typing import Optional

from kubernetes import config
from kubernetes.client import ApiClient, CoreV1Api, CustomObjectsApi
from kubernetes.client.exceptions import ApiException
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .models import ClusterConfig


def is_transient(exc: BaseException) -> bool:
    """Whether a Kubernetes API error is worth retrying in-process."""
    if not isinstance(exc, ApiException):
        return False
    return exc.status == 429 or (exc.status or 0) >= 500


# Bounded retry for idempotent calls against the API server. Anything that
# survives it is handed back to the reconciler and retried on requeue.
k8s_retry = retry(
    retry=retry_if_exception(is_transient),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    reraise=True,
)


class ClusterConnection:
    """Represents a connection to the Kubernetes cluster the controller runs against."""

    def __init__(
        self,
        cluster_config: Optional[ClusterConfig] = None,
        request_timeout: Optional[float] = None,
    ):
        """
        Initialize cluster connection.

        Args:
            cluster_config: Cluster configuration (in-cluster when omitted)
            request_timeout: Per-request timeout in seconds for API calls

        Raises:
            ValueError: If kubeconfig is invalid
        """
        self.config = cluster_config or ClusterConfig()
        self.request_timeout = request_timeout
        self._api_client: Optional[ApiClient] = None
        self._core_v1: Optional[CoreV1Api] = None
        self._custom_objects: Optional[CustomObjectsApi] = None

        self._initialize_client()

    def _initialize_client(self):
        """Initialize Kubernetes API client."""
        try:
            if self.config.kubeconfig_path:
                config.load_kube_config(
                    config_file=self.config.kubeconfig_path,
                    context=self.config.context,
                )
            else:
                config.load_incluster_config()

            self._api_client = ApiClient()
            self._core_v1 = CoreV1Api(self._api_client)
            self._custom_objects = CustomObjectsApi(self._api_client)

        except Exception as e:
            raise ValueError(f"Failed to initialize cluster connection: {e}") from e

    @property
    def core_v1(self) -> CoreV1Api:
        """Get CoreV1Api instance."""
        if not self._core_v1:
            raise RuntimeError("Cluster connection not initialized")
        return self._core_v1

    @property
    def custom_objects(self) -> CustomObjectsApi:
        """Get CustomObjectsApi instance."""
        if not self._custom_objects:
            raise RuntimeError("Cluster connection not initialized")
        return self._custom_objects

    def is_healthy(self) -> bool:
        """
        Check if cluster connection is healthy.

        Returns:
            True if cluster is reachable and healthy
        """
        try:
            self.core_v1.get_api_resources()
            return True
        except ApiException:
            return False

    def close(self):
        """Close the cluster connection and clean up resources."""
        if self._api_client:
            self._api_client.close()
            self._api_client = None

        self._core_v1 = None
        self._custom_objects = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
