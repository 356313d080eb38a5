"""Scheduler jobs: connectivity probe, queue retry, heartbeat."""

import os
from datetime import datetime, timezone

from services.connectivity import ConnectivityMonitor
from services.document_store import DocumentStore
from services.offline_queue import OfflineQueue
from utils.logger import logger

HEARTBEAT_FILE = "logs/scheduler_heartbeat"


async def check_connectivity(
    connectivity: ConnectivityMonitor,
    store: DocumentStore,
    timeout: float = 5.0,
) -> None:
    """
    Probe the document store and update the connectivity signal.

    Runs every ``connectivity_check_seconds``. A transition back online
    triggers the offline queue replay through the monitor's listeners.
    """
    try:
        online = await connectivity.probe(store.ping, timeout=timeout)
        logger.debug(f"Connectivity check: {'online' if online else 'offline'}")
    except Exception as e:
        logger.error(f"Error in check_connectivity: {e}", exc_info=True)


async def log_queue_status(queue: OfflineQueue) -> None:
    """Log a summary when writes are still waiting for replay."""
    try:
        status = queue.get_status()
        if status["queued"] > 0:
            logger.info(
                f"Offline queue: {status['queued']} pending operation(s), "
                f"{'online' if status['processing'] else 'offline'}"
            )
    except Exception as e:
        logger.error(f"Error in log_queue_status: {e}", exc_info=True)


async def scheduler_heartbeat() -> None:
    """
    Write a timestamp for liveness monitoring.

    Runs every 30 minutes. The file is checked on startup to detect
    scheduler downtime.
    """
    try:
        os.makedirs(os.path.dirname(HEARTBEAT_FILE), exist_ok=True)
        with open(HEARTBEAT_FILE, "w") as f:
            f.write(datetime.now(timezone.utc).isoformat())
        logger.debug("Scheduler heartbeat written")
    except Exception as e:
        logger.error(f"Error writing scheduler heartbeat: {e}")
