"""Builds the Argo CD Application for an EphemeralApplication."""

from ..labels import ownership_labels
from ..models import EphemeralApplication
from .models import (
    Application,
    ApplicationDestination,
    ApplicationMetadata,
    ApplicationSource,
    ApplicationSpec,
    ApplicationSyncPolicy,
    ResourceIgnoreDifferences,
    SyncPolicyAutomated,
)

IN_CLUSTER_SERVER = "https://kubernetes.default.svc"
SECRET_IGNORED_POINTERS = ["/data", "/stringData"]
CONFIGMAP_IGNORED_POINTERS = ["/data", "/binaryData"]


def build_ignore_differences(
    record: EphemeralApplication,
) -> list[ResourceIgnoreDifferences]:
    """
    Ignore rules for every secret and configmap the controller injects.

    Without them self-heal would revert the injected data back to whatever the
    Git source declares.
    """
    ignore = []
    for secret in record.spec.secrets:
        ignore.append(
            ResourceIgnoreDifferences(
                kind="Secret",
                name=secret.target,
                json_pointers=list(SECRET_IGNORED_POINTERS),
            )
        )
    for config_map in record.spec.config_maps:
        ignore.append(
            ResourceIgnoreDifferences(
                kind="ConfigMap",
                name=config_map.target,
                json_pointers=list(CONFIGMAP_IGNORED_POINTERS),
            )
        )
    return ignore


class ApplicationBuilder:
    """Turns an EphemeralApplication into the Argo CD Application to create."""

    def __init__(
        self,
        app_namespace: str = "argocd",
        project: str = "default",
        destination_server: str = IN_CLUSTER_SERVER,
    ):
        """
        Initialize the builder.

        Args:
            app_namespace: Namespace Argo CD Applications live in
            project: Argo CD project for generated applications
            destination_server: API server URL applications deploy to
        """
        self.app_namespace = app_namespace
        self.project = project
        self.destination_server = destination_server

    def build(self, record: EphemeralApplication, namespace: str) -> Application:
        """
        Build the Application deploying the record's source into ``namespace``.

        Args:
            record: EphemeralApplication being provisioned
            namespace: Ephemeral namespace to deploy into

        Returns:
            Application ready to submit
        """
        spec = record.spec
        automated = spec.automated_sync_policy()
        return Application(
            metadata=ApplicationMetadata(
                name=record.metadata.name,
                namespace=self.app_namespace,
                labels=ownership_labels(record.metadata.name),
            ),
            spec=ApplicationSpec(
                project=self.project,
                source=ApplicationSource(
                    repo_url=spec.repo_url,
                    path=spec.path,
                    target_revision=spec.target_revision,
                ),
                destination=ApplicationDestination(
                    namespace=namespace,
                    server=self.destination_server,
                ),
                sync_policy=ApplicationSyncPolicy(
                    automated=SyncPolicyAutomated(
                        prune=automated.prune,
                        self_heal=automated.self_heal,
                    )
                ),
                ignore_differences=build_ignore_differences(record),
            ),
        )
