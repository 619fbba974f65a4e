"""Argo CD Application models (subset of argoproj.io/v1alpha1)."""

from typing import Any, Optional

from pydantic import Field

from ..models import CamelModel

SYNC_STATUS_SYNCED = "Synced"
HEALTH_STATUS_HEALTHY = "Healthy"


class ApplicationSource(CamelModel):
    """Git source of an application."""

    repo_url: str = Field(alias="repoURL")
    path: Optional[str] = None
    target_revision: Optional[str] = None


class ApplicationDestination(CamelModel):
    """Cluster and namespace an application deploys into."""

    server: Optional[str] = None
    namespace: Optional[str] = None
    name: Optional[str] = None


class SyncPolicyAutomated(CamelModel):
    prune: bool = False
    self_heal: bool = False


class ApplicationSyncPolicy(CamelModel):
    automated: Optional[SyncPolicyAutomated] = None


class ResourceIgnoreDifferences(CamelModel):
    """Fields Argo CD must not treat as drift."""

    group: str = ""
    kind: str
    name: Optional[str] = None
    namespace: Optional[str] = None
    json_pointers: list[str] = Field(default_factory=list)


class ApplicationSpec(CamelModel):
    project: str = "default"
    source: Optional[ApplicationSource] = None
    destination: ApplicationDestination = Field(default_factory=ApplicationDestination)
    sync_policy: Optional[ApplicationSyncPolicy] = None
    ignore_differences: list[ResourceIgnoreDifferences] = Field(default_factory=list)


class SyncStatus(CamelModel):
    status: str = "Unknown"
    revision: Optional[str] = None


class HealthStatus(CamelModel):
    status: str = "Unknown"
    message: Optional[str] = None


class ApplicationStatus(CamelModel):
    sync: SyncStatus = Field(default_factory=SyncStatus)
    health: HealthStatus = Field(default_factory=HealthStatus)


class ApplicationMetadata(CamelModel):
    name: str
    namespace: Optional[str] = None
    labels: dict[str, str] = Field(default_factory=dict)
    resource_version: Optional[str] = None


class Application(CamelModel):
    """An Argo CD Application."""

    metadata: ApplicationMetadata
    spec: ApplicationSpec = Field(default_factory=ApplicationSpec)
    status: ApplicationStatus = Field(default_factory=ApplicationStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def is_synced(self) -> bool:
        return self.status.sync.status == SYNC_STATUS_SYNCED

    @property
    def is_healthy(self) -> bool:
        return self.status.health.status == HEALTH_STATUS_HEALTHY


class ApplicationQuery(CamelModel):
    """Lookup parameters for applications; at least one field must be set."""

    name: Optional[str] = None
    app_namespace: Optional[str] = None
    projects: list[str] = Field(default_factory=list)
    selector: Optional[str] = None
    repo: Optional[str] = None
    refresh: Optional[str] = None
    resource_version: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(
            [
                self.name,
                self.app_namespace,
                self.projects,
                self.selector,
                self.repo,
                self.refresh,
                self.resource_version,
            ]
        )

    def to_params(self) -> dict[str, Any]:
        """Query-string parameters understood by the Argo CD REST API."""
        params = self.model_dump(by_alias=True, exclude_none=True, exclude={"name"})
        if not params.get("projects"):
            params.pop("projects", None)
        return params
