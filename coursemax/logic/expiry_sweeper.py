# coursemax/logic/expiry_sweeper.py
import logging

from ..errors import DependencyUnavailable

logger = logging.getLogger(__name__)


def run_once(coordinator):
    """One sweep. Storage outages are logged and the ids list comes back empty."""
    try:
        return coordinator.expire_sweep()
    except DependencyUnavailable as e:
        logger.error(f"❌ Expiry sweep skipped, storage unavailable: {e.detail or e}")
        return []


def start_expiry_sweeper(socketio, coordinator, interval_seconds):
    """Run ``run_once`` every ``interval_seconds`` as a Socket.IO background task."""

    def _loop():
        logger.info(f"⏰ Expiry sweeper started (every {interval_seconds}s)")
        while True:
            socketio.sleep(interval_seconds)
            run_once(coordinator)

    return socketio.start_background_task(_loop)
