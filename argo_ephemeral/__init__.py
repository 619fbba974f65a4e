"""Argo Ephemeral - time-limited GitOps environments on Kubernetes."""

__version__ = "0.1.0"

from .cluster import ClusterConnection
from .configmaps import ConfigMapProvisioner
from .controller import EphemeralApplicationController, WorkQueue
from .errors import (
    ApplicationNotFoundError,
    ArgoCDAuthenticationError,
    ArgoCDError,
    ArgoCDUnauthorizedError,
    EphemeralError,
    InvalidQueryError,
    ProvisioningError,
)
from .models import (
    ClusterConfig,
    Condition,
    ConditionStatus,
    ConfigMapReference,
    EphemeralApplication,
    EphemeralApplicationSpec,
    EphemeralApplicationStatus,
    Phase,
    RecordKey,
    SecretReference,
)
from .namegen import NameGenerator
from .namespaces import NamespaceManager
from .reconciler import EphemeralApplicationReconciler, ReconcileResult
from .records import EphemeralApplicationStore, RecordKind
from .secrets import SecretProvisioner

__all__ = [
    # Controller
    "EphemeralApplicationController",
    "EphemeralApplicationReconciler",
    "ReconcileResult",
    "WorkQueue",
    # Kubernetes access
    "ClusterConnection",
    "EphemeralApplicationStore",
    "RecordKind",
    "NamespaceManager",
    "SecretProvisioner",
    "ConfigMapProvisioner",
    "NameGenerator",
    # Models
    "ClusterConfig",
    "Condition",
    "ConditionStatus",
    "ConfigMapReference",
    "EphemeralApplication",
    "EphemeralApplicationSpec",
    "EphemeralApplicationStatus",
    "Phase",
    "RecordKey",
    "SecretReference",
    # Errors
    "EphemeralError",
    "ProvisioningError",
    "InvalidQueryError",
    "ArgoCDError",
    "ArgoCDUnauthorizedError",
    "ArgoCDAuthenticationError",
    "ApplicationNotFoundError",
]
