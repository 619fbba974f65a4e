"""EphemeralApplication resource models."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Current time in UTC, truncated to whole seconds like API timestamps."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a timestamp as RFC3339 in UTC (``2024-12-31T23:59:59Z``)."""
    return _as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


Timestamp = Annotated[
    datetime,
    AfterValidator(_as_utc),
    PlainSerializer(format_timestamp, when_used="json"),
]


class CamelModel(BaseModel):
    """Base model for objects exchanged with the Kubernetes API (camelCase keys)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON shape the API server expects."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Phase(str, Enum):
    """Lifecycle phase of an ephemeral environment."""

    PENDING = "Pending"
    CREATING = "Creating"
    ACTIVE = "Active"
    EXPIRING = "Expiring"
    FAILED = "Failed"


class ConditionStatus(str, Enum):
    """Condition status values."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class RecordKey:
    """Identity of an EphemeralApplication (namespace may be None)."""

    name: str
    namespace: Optional[str] = None

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


class ClusterConfig(BaseModel):
    """Cluster configuration."""

    kubeconfig_path: Optional[str] = None
    context: Optional[str] = None  # Specific context to use


class SecretReference(CamelModel):
    """A secret to copy from another namespace or to create from inline values."""

    name: str
    source_namespace: Optional[str] = None
    target_name: Optional[str] = None
    values: dict[str, str] = Field(default_factory=dict)

    @property
    def target(self) -> str:
        """Name of the secret inside the ephemeral namespace."""
        return self.target_name or self.name

    @property
    def is_inline(self) -> bool:
        return bool(self.values)


class ConfigMapReference(CamelModel):
    """A configmap to copy from another namespace or to create from inline data."""

    name: str
    source_namespace: Optional[str] = None
    data: dict[str, str] = Field(default_factory=dict)

    @property
    def target(self) -> str:
        return self.name

    @property
    def is_inline(self) -> bool:
        return bool(self.data)


class AutomatedSyncPolicy(CamelModel):
    """Automated sync options passed through to Argo CD."""

    prune: bool = True
    self_heal: bool = True


class SyncPolicy(CamelModel):
    """Sync behaviour of the generated Argo CD application."""

    automated: Optional[AutomatedSyncPolicy] = None


class Condition(CamelModel):
    """Status condition, keyed by ``type``."""

    type: str
    status: ConditionStatus
    reason: str
    message: str = ""
    last_transition_time: Timestamp
    observed_generation: Optional[int] = None


class ObjectMeta(CamelModel):
    """Subset of Kubernetes object metadata used by the controller."""

    name: str
    namespace: Optional[str] = None
    uid: Optional[str] = None
    resource_version: Optional[str] = None
    generation: Optional[int] = None
    creation_timestamp: Optional[Timestamp] = None
    deletion_timestamp: Optional[Timestamp] = None
    finalizers: list[str] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class EphemeralApplicationSpec(CamelModel):
    """Desired state of an ephemeral environment."""

    repo_url: str = Field(alias="repoURL")
    path: str
    target_revision: str = "HEAD"
    expiration_date: Timestamp
    namespace_name: Optional[str] = None
    secrets: list[SecretReference] = Field(default_factory=list)
    config_maps: list[ConfigMapReference] = Field(default_factory=list)
    sync_policy: Optional[SyncPolicy] = None

    def automated_sync_policy(self) -> AutomatedSyncPolicy:
        """Effective automated sync policy (prune and self-heal unless overridden)."""
        if self.sync_policy and self.sync_policy.automated:
            return self.sync_policy.automated
        return AutomatedSyncPolicy()


class EphemeralApplicationStatus(CamelModel):
    """Observed state, written only by the reconciler."""

    phase: Phase = Phase.PENDING
    namespace: Optional[str] = None
    remote_application_name: Optional[str] = None
    conditions: list[Condition] = Field(default_factory=list)
    message: Optional[str] = None
    last_sync_time: Optional[Timestamp] = None
    copied_secrets: list[str] = Field(default_factory=list)
    copied_config_maps: list[str] = Field(default_factory=list)

    @field_validator("phase", mode="before")
    @classmethod
    def _empty_phase_is_pending(cls, value: Any) -> Any:
        if value in (None, ""):
            return Phase.PENDING
        return value

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def set_condition(
        self,
        condition_type: str,
        status: ConditionStatus,
        reason: str,
        message: str,
        observed_generation: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Condition:
        """
        Insert or replace the condition of the given type.

        Args:
            condition_type: Condition type (e.g. "Ready")
            status: Condition status
            reason: Machine-readable reason
            message: Human-readable message
            observed_generation: Generation the condition was computed from
            now: Transition time (defaults to the current time)

        Returns:
            The stored condition
        """
        condition = Condition(
            type=condition_type,
            status=status,
            reason=reason,
            message=message,
            last_transition_time=now or utcnow(),
            observed_generation=observed_generation,
        )
        for i, existing in enumerate(self.conditions):
            if existing.type == condition_type:
                self.conditions[i] = condition
                return condition
        self.conditions.append(condition)
        return condition


class EphemeralApplication(CamelModel):
    """The EphemeralApplication custom resource."""

    api_version: str = "ephemeral.argo.io/v1alpha1"
    kind: str = "EphemeralApplication"
    metadata: ObjectMeta
    spec: EphemeralApplicationSpec
    status: EphemeralApplicationStatus = Field(
        default_factory=EphemeralApplicationStatus
    )

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "EphemeralApplication":
        return cls.model_validate(obj)

    @property
    def key(self) -> RecordKey:
        return RecordKey(name=self.metadata.name, namespace=self.metadata.namespace)

    @property
    def is_being_deleted(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True once the current time is past ``spec.expirationDate``."""
        return _as_utc(now or utcnow()) > self.spec.expiration_date

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.metadata.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        if self.has_finalizer(finalizer):
            return False
        self.metadata.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        if not self.has_finalizer(finalizer):
            return False
        self.metadata.finalizers = [
            f for f in self.metadata.finalizers if f != finalizer
        ]
        return True
