"""
EphemeralApplication reconciler.

Drives one record through Pending -> Creating -> Active, with side exits to
Failed on unrecoverable errors and to Expiring once the expiration date has
passed. Teardown runs when the record's deletion has begun and the finalizer
is still present.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from kubernetes.client.exceptions import ApiException

from .argocd.builder import ApplicationBuilder
from .argocd.client import ArgoClient
from .argocd.models import ApplicationQuery
from .configmaps import ConfigMapProvisioner, describe_config_maps
from .errors import ApplicationNotFoundError, EphemeralError, InvalidQueryError
from .labels import FINALIZER
from .models import (
    ConditionStatus,
    EphemeralApplication,
    Phase,
    RecordKey,
    utcnow,
)
from .namegen import NameGenerator
from .namespaces import NamespaceManager
from .records import EphemeralApplicationStore
from .secrets import SecretProvisioner, describe_secrets

logger = logging.getLogger(__name__)

READY = "Ready"

DEFAULT_RECONCILE_INTERVAL = 300.0
DEFAULT_CREATING_REQUEUE = 30.0


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a pass: seconds until the next pass, or None for no requeue."""

    requeue_after: Optional[float] = None


class EphemeralApplicationReconciler:
    """
    Phase-based state machine for EphemeralApplications.

    ``reconcile`` is synchronous and raises on errors that should be retried
    with backoff. It holds no per-record state, so different keys may be
    reconciled concurrently; callers must not reconcile the same key twice
    at once.
    """

    def __init__(
        self,
        store: EphemeralApplicationStore,
        namespaces: NamespaceManager,
        secrets: SecretProvisioner,
        config_maps: ConfigMapProvisioner,
        argo_client: ArgoClient,
        app_builder: ApplicationBuilder,
        name_generator: Optional[NameGenerator] = None,
        reconcile_interval: float = DEFAULT_RECONCILE_INTERVAL,
        creating_requeue: float = DEFAULT_CREATING_REQUEUE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the reconciler.

        Args:
            store: EphemeralApplication persistence
            namespaces: Namespace manager
            secrets: Secret provisioner
            config_maps: ConfigMap provisioner
            argo_client: Argo CD client
            app_builder: Builds the Argo CD Application for a record
            name_generator: Namespace name generator
            reconcile_interval: Requeue delay for settled phases (seconds)
            creating_requeue: Requeue delay while waiting for sync (seconds)
            clock: Returns the current UTC time
        """
        self.store = store
        self.namespaces = namespaces
        self.secrets = secrets
        self.config_maps = config_maps
        self.argo_client = argo_client
        self.app_builder = app_builder
        self.name_generator = name_generator or NameGenerator()
        self.reconcile_interval = reconcile_interval
        self.creating_requeue = creating_requeue
        self.clock = clock or utcnow

        self._handlers: dict[
            Phase, Callable[[EphemeralApplication], ReconcileResult]
        ] = {
            Phase.PENDING: self._handle_pending,
            Phase.CREATING: self._handle_creating,
            Phase.ACTIVE: self._handle_active,
            Phase.EXPIRING: self._handle_expiring,
            Phase.FAILED: self._handle_failed,
        }

    def reconcile(self, key: RecordKey) -> ReconcileResult:
        """
        Run one reconciliation pass.

        Args:
            key: Record identity

        Returns:
            ReconcileResult with the requested requeue delay

        Raises:
            ApiException: If a Kubernetes call (including status writes) fails
            ArgoCDError: If Argo CD fails outside of Pending
        """
        record = self.store.get(key)
        if record is None:
            logger.debug(f"EphemeralApplication {key} not found, nothing to do")
            return ReconcileResult()

        if record.is_being_deleted:
            return self._handle_deletion(record)

        if record.add_finalizer(FINALIZER):
            logger.info(f"Adding finalizer to {key}")
            self.store.update(record)

        if record.is_expired(self.clock()):
            return self._handle_expiration(record)

        return self._handlers[record.status.phase](record)

    # Phases

    def _handle_pending(self, record: EphemeralApplication) -> ReconcileResult:
        key = record.key
        status = record.status
        if not status.namespace:
            # Recorded before anything is created under it
            status.namespace = self.name_generator.generate(record.spec.namespace_name)
            status.message = f"Provisioning namespace {status.namespace}"
            self.store.update_status(record)
        namespace = status.namespace
        logger.info(f"Provisioning {key} into namespace {namespace}")

        step = "failed to create namespace"
        try:
            self.namespaces.create(namespace, owner=record.metadata.name)

            step = "failed to provision secrets"
            self.secrets.provision(record, namespace)

            step = "failed to provision configmaps"
            self.config_maps.provision(record, namespace)

            step = "failed to create Argo CD application"
            app = self.argo_client.create_application(
                self.app_builder.build(record, namespace)
            )
        except (ApiException, EphemeralError) as e:
            logger.error(f"Provisioning {key} failed: {step}: {e}")
            return self._fail(record, step, e)

        status.phase = Phase.CREATING
        status.remote_application_name = app.name
        status.copied_secrets = describe_secrets(record.spec.secrets)
        status.copied_config_maps = describe_config_maps(record.spec.config_maps)
        status.message = "Argo CD application created"
        self._set_ready(
            record, ConditionStatus.FALSE, "Creating", "Creating ephemeral environment"
        )
        self.store.update_status(record)

        logger.info(f"{key} is Creating (application {app.name} in {namespace})")
        return ReconcileResult(requeue_after=self.creating_requeue)

    def _handle_creating(self, record: EphemeralApplication) -> ReconcileResult:
        try:
            app = self.argo_client.get_application(self._query(record))
        except (ApplicationNotFoundError, InvalidQueryError) as e:
            return self._fail(record, "Argo CD application not found", e)

        if not (app.is_synced and app.is_healthy):
            logger.debug(
                f"{record.key} waiting for {app.name}: "
                f"sync={app.status.sync.status} health={app.status.health.status}"
            )
            return ReconcileResult(requeue_after=self.creating_requeue)

        status = record.status
        status.phase = Phase.ACTIVE
        status.last_sync_time = self.clock()
        status.message = "Ephemeral environment is active"
        self._set_ready(
            record,
            ConditionStatus.TRUE,
            "Active",
            "Ephemeral environment is active and healthy",
        )
        self.store.update_status(record)

        logger.info(f"{record.key} is Active")
        return ReconcileResult(requeue_after=self.reconcile_interval)

    def _handle_active(self, record: EphemeralApplication) -> ReconcileResult:
        try:
            app = self.argo_client.get_application(self._query(record))
        except (ApplicationNotFoundError, InvalidQueryError) as e:
            return self._fail(record, "application disappeared", e)

        if app.is_synced:
            record.status.last_sync_time = self.clock()
            self.store.update_status(record)

        return ReconcileResult(requeue_after=self.reconcile_interval)

    def _handle_failed(self, record: EphemeralApplication) -> ReconcileResult:
        # Only expiration moves a record out of Failed
        return ReconcileResult(requeue_after=self.reconcile_interval)

    def _handle_expiring(self, record: EphemeralApplication) -> ReconcileResult:
        # Status says Expiring but the record was never deleted
        logger.info(f"Re-issuing delete for expiring {record.key}")
        self.store.delete(record)
        return ReconcileResult()

    def _handle_expiration(self, record: EphemeralApplication) -> ReconcileResult:
        logger.info(
            f"{record.key} expired at "
            f"{record.spec.expiration_date.isoformat()}, deleting"
        )
        record.status.phase = Phase.EXPIRING
        record.status.message = "Ephemeral environment has expired and is being deleted"
        self._set_ready(
            record, ConditionStatus.FALSE, "Expiring", "Environment has expired"
        )
        self.store.update_status(record)
        self.store.delete(record)
        return ReconcileResult()

    def _handle_deletion(self, record: EphemeralApplication) -> ReconcileResult:
        """Delete the Argo CD application and namespace, then drop the finalizer."""
        if not record.has_finalizer(FINALIZER):
            return ReconcileResult()

        status = record.status
        # Generated applications carry the record name
        app_name = status.remote_application_name or (
            record.metadata.name if status.namespace else None
        )
        if app_name:
            logger.info(f"Deleting Argo CD application {app_name} for {record.key}")
            try:
                self.argo_client.delete_application(
                    app_name, self.app_builder.app_namespace
                )
            except ApplicationNotFoundError:
                logger.info(f"Argo CD application {app_name} already gone")

        if status.namespace:
            self.namespaces.delete(status.namespace)

        record.remove_finalizer(FINALIZER)
        self.store.update(record)
        logger.info(f"Teardown of {record.key} complete")
        return ReconcileResult()

    # Helpers

    def _query(self, record: EphemeralApplication) -> ApplicationQuery:
        return ApplicationQuery(
            name=record.status.remote_application_name,
            app_namespace=self.app_builder.app_namespace,
        )

    def _fail(
        self, record: EphemeralApplication, message: str, error: Exception
    ) -> ReconcileResult:
        record.status.phase = Phase.FAILED
        record.status.message = f"{message}: {error}"
        self._set_ready(record, ConditionStatus.FALSE, "Error", message)
        self.store.update_status(record)
        return ReconcileResult(requeue_after=self.reconcile_interval)

    def _set_ready(
        self,
        record: EphemeralApplication,
        status: ConditionStatus,
        reason: str,
        message: str,
    ) -> None:
        record.status.set_condition(
            READY,
            status,
            reason,
            message,
            observed_generation=record.metadata.generation,
            now=self.clock(),
        )
