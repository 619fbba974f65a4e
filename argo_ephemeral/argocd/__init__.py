"""Argo CD adapter: application models, request builder and API client."""

from .builder import ApplicationBuilder, build_ignore_differences
from .client import ArgoCDClient, ArgoClient
from .models import (
    Application,
    ApplicationDestination,
    ApplicationMetadata,
    ApplicationQuery,
    ApplicationSource,
    ApplicationSpec,
    ApplicationStatus,
    ApplicationSyncPolicy,
    HealthStatus,
    ResourceIgnoreDifferences,
    SyncPolicyAutomated,
    SyncStatus,
)

__all__ = [
    "ArgoClient",
    "ArgoCDClient",
    "ApplicationBuilder",
    "build_ignore_differences",
    "Application",
    "ApplicationDestination",
    "ApplicationMetadata",
    "ApplicationQuery",
    "ApplicationSource",
    "ApplicationSpec",
    "ApplicationStatus",
    "ApplicationSyncPolicy",
    "HealthStatus",
    "ResourceIgnoreDifferences",
    "SyncPolicyAutomated",
    "SyncStatus",
]
