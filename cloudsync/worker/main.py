"""CloudSync Worker Service - Main orchestrator."""

# flake8: noqa: E501


import asyncio
import signal
import sys
import threading
from typing import Optional

from flask import Flask, jsonify
from prometheus_client import generate_latest

from cloudsync.shared.database.manager import DatabaseManager
from cloudsync.worker.cloud.registry import build_default_registry
from cloudsync.worker.config.settings import settings
from cloudsync.worker.sync.service import SyncService
from cloudsync.worker.utils.logger import configure_logging, get_logger

# Configure logging
configure_logging()
logger = get_logger(__name__)


class WorkerService:
    """Main worker service orchestrator."""

    def __init__(self):
        """Initialize worker service."""
        self.running = False
        self.db_manager: Optional[DatabaseManager] = None
        self.sync: Optional[SyncService] = None
        self.registry = build_default_registry()
        self.health_app = Flask(__name__)
        self._setup_health_endpoints()

    def _init_database(self):
        """Open the primary (and replica) connections and wire the sync engine."""
        self.db_manager = DatabaseManager.from_settings()
        self.sync = SyncService.build(
            self.db_manager.write,
            self.db_manager.read,
            registry=self.registry,
        )
        logger.info("sync engine initialized", providers=self.registry.providers())

    def _setup_health_endpoints(self):
        """Setup Flask health check and metrics endpoints."""

        @self.health_app.route("/healthz")
        def health_check():
            """Health check endpoint."""
            healthy = self.running and self.sync is not None and self.sync.queue.running
            return jsonify({"status": "healthy" if healthy else "stopped"}), 200 if healthy else 503

        @self.health_app.route("/metrics")
        def metrics():
            """Prometheus metrics endpoint."""
            return generate_latest(), 200

        @self.health_app.route("/status")
        def status():
            """Detailed status endpoint."""
            queue = self.sync.queue if self.sync else None
            return (
                jsonify(
                    {
                        "service": "cloudsync-worker",
                        "running": self.running,
                        "providers": self.registry.providers(),
                        "database_connected": self.db_manager is not None,
                        "read_replica": bool(self.db_manager and self.db_manager.has_replica),
                        "queue": {
                            "running": bool(queue and queue.running),
                            "queued": queue.qsize() if queue else 0,
                            "workers": queue.worker_count if queue else 0,
                        },
                        "cached_adapters": len(self.sync.factory.cached_keys()) if self.sync else 0,
                        "settings": {
                            "sync_on_startup": settings.sync_on_startup,
                            "auto_sync_enabled": settings.auto_sync_enabled,
                            "task_execution_timeout": settings.task_execution_timeout,
                            "pending_sweep_interval": settings.pending_sweep_interval,
                            "failed_sweep_interval": settings.failed_sweep_interval,
                        },
                    }
                ),
                200,
            )

    async def start(self):
        """Start the worker service."""
        logger.info("Starting CloudSync Worker Service")
        self._init_database()
        self.running = True

        await self.sync.queue.start()

        if settings.sync_on_startup:
            logger.info("Running initial sweeps on startup")
            await self.sync.process_pending_tasks(settings.pending_sweep_concurrency)
            await self.sync.process_failed_tasks()

        self.sync.sweeps.start()
        if settings.auto_sync_enabled:
            self.sync.auto_sync.start()

        logger.info(
            "CloudSync Worker Service started",
            health_port=settings.health_check_port,
        )

    async def stop(self):
        """Stop the worker service."""
        if not self.running and self.sync is None:
            return
        logger.info("Stopping CloudSync Worker Service")
        self.running = False

        if self.sync:
            self.sync.sweeps.stop()
            self.sync.auto_sync.stop()
            await self.sync.queue.stop()
            self.sync = None

        # Close database connections
        if self.db_manager:
            self.db_manager.close()
            self.db_manager = None

        logger.info("CloudSync Worker Service stopped")

    def run_health_server(self):
        """Run Flask health check server in a separate thread."""

        def run_flask():
            self.health_app.run(
                host="0.0.0.0",
                port=settings.health_check_port,
                debug=False,
                use_reloader=False,
            )

        health_thread = threading.Thread(target=run_flask, daemon=True)
        health_thread.start()
        logger.info(
            "Health check server started",
            port=settings.health_check_port,
        )


async def main():
    """Main entry point."""
    service = WorkerService()
    loop = asyncio.get_running_loop()

    def signal_handler(sig):
        logger.info("Received signal, shutting down", signal=sig.name)
        service.running = False

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    try:
        # Start health server
        service.run_health_server()

        # Start worker service
        await service.start()

        # Keep running
        while service.running:
            await asyncio.sleep(1)

    except Exception as e:
        logger.error("Fatal error in worker service", error=str(e), exc_info=True)
        sys.exit(1)
    finally:
        await service.stop()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
