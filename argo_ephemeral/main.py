"""Ephemeral application controller entry point."""

import asyncio
import logging
import signal
from typing import Optional

from . import __version__
from .argocd import ApplicationBuilder, ArgoCDClient
from .cluster import ClusterConnection
from .config import Settings, get_settings
from .configmaps import ConfigMapProvisioner
from .controller import EphemeralApplicationController
from .models import ClusterConfig
from .namegen import NameGenerator
from .namespaces import NamespaceManager
from .reconciler import EphemeralApplicationReconciler
from .records import EphemeralApplicationStore
from .secrets import SecretProvisioner

logger = logging.getLogger(__name__)


class Application:
    """Main application orchestrator."""

    def __init__(self, settings: Settings):
        """
        Initialize application.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self.cluster: Optional[ClusterConnection] = None
        self.argo_client: Optional[ArgoCDClient] = None
        self.controller: Optional[EphemeralApplicationController] = None
        self._shutdown = False

    def build_controller(self) -> EphemeralApplicationController:
        """Wire the cluster connection, Argo CD client and reconciler together."""
        settings = self.settings
        self.cluster = ClusterConnection(
            ClusterConfig(
                kubeconfig_path=settings.kubeconfig_path,
                context=settings.kube_context,
            ),
            request_timeout=settings.request_timeout_seconds,
        )
        self.argo_client = ArgoCDClient.from_settings(settings)

        store = EphemeralApplicationStore(self.cluster)
        reconciler = EphemeralApplicationReconciler(
            store=store,
            namespaces=NamespaceManager(self.cluster),
            secrets=SecretProvisioner(self.cluster),
            config_maps=ConfigMapProvisioner(self.cluster),
            argo_client=self.argo_client,
            app_builder=ApplicationBuilder(
                app_namespace=settings.argocd_namespace,
                project=settings.argocd_project,
                destination_server=settings.destination_server,
            ),
            name_generator=NameGenerator(),
            reconcile_interval=settings.reconcile_interval_seconds,
            creating_requeue=settings.creating_requeue_seconds,
        )
        return EphemeralApplicationController(
            reconciler=reconciler,
            store=store,
            namespace=settings.watch_namespace or None,
            workers=settings.max_concurrent_reconciles,
            resync_interval=settings.resync_interval_seconds,
            base_backoff=settings.base_backoff_seconds,
            max_backoff=settings.max_backoff_seconds,
        )

    async def start(self) -> None:
        """Start the application."""
        logger.info(f"Starting {self.settings.service_name} v{__version__}")
        logger.info(f"   Argo CD: {self.settings.argocd_server}")
        logger.info(f"   Watching: {self.settings.watch_namespace or 'all namespaces'}")

        self.controller = self.build_controller()
        if not self.cluster.is_healthy():
            logger.warning("Kubernetes API server is not reachable yet")
        await self.controller.start()

        logger.info("Controller started")

        while not self._shutdown:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        """Stop the application."""
        logger.info("Shutting down controller...")
        self._shutdown = True

        if self.controller:
            await self.controller.stop()
        if self.argo_client:
            self.argo_client.close()
        if self.cluster:
            self.cluster.close()

        logger.info("Controller stopped")

    def handle_signal(self, sig: int) -> None:
        """
        Handle shutdown signals.

        Args:
            sig: Signal number
        """
        logger.info(f"Received signal {sig}, initiating shutdown...")
        self._shutdown = True


async def main() -> None:
    """Main entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = Application(settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, app.handle_signal, sig)

    try:
        await app.start()
    finally:
        await app.stop()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
