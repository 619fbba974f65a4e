"""Configuration management for the ephemeral application controller."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Settings
    service_name: str = "argo-ephemeral-operator"
    version: str = "0.1.0"
    log_level: str = "INFO"

    # Kubernetes Settings
    kubeconfig_path: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file (in-cluster config when unset)",
    )
    kube_context: Optional[str] = None
    watch_namespace: Optional[str] = Field(
        default=None,
        description="Namespace to watch for EphemeralApplications (all when unset)",
    )
    request_timeout_seconds: float = 30.0

    # Argo CD Settings
    argocd_server: str = Field(
        default="https://argocd-server.argocd.svc.cluster.local",
        description="Argo CD API server base URL",
    )
    argocd_username: str = "admin"
    argocd_password: str = ""
    argocd_token: str = Field(
        default="",
        description="Initial session token; username/password are used to renew it",
    )
    argocd_namespace: str = "argocd"
    argocd_project: str = "default"
    argocd_insecure: bool = False
    destination_server: str = "https://kubernetes.default.svc"

    # Reconciliation Settings
    reconcile_interval_seconds: float = 300.0
    creating_requeue_seconds: float = 30.0
    max_concurrent_reconciles: int = 4
    resync_interval_seconds: float = 300.0
    base_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 300.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
