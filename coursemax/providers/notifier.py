# coursemax/providers/notifier.py
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional

import requests

logger = logging.getLogger(__name__)

NEW_ASSIGNMENT_EVENT = "delivery_assignment"
ASSIGNMENT_TAKEN_EVENT = "delivery_assignment_taken"


def driver_room(driver_id) -> str:
    """Socket.IO room a driver's app joins to receive dispatch events."""
    return f"driver:{driver_id}"


@dataclass
class NotificationReport:
    successful: int = 0
    failed: int = 0

    def to_dict(self):
        return {"notifications_sent": self.successful, "notifications_failed": self.failed}


class Notifier(ABC):
    """Fan-out of dispatch events to drivers.

    Purely informational: a notification never reserves anything, and a
    failed delivery is counted, not raised.
    """

    @abstractmethod
    def notify(self, driver_ids: Iterable[str], event: str, payload: Mapping) -> NotificationReport:
        raise NotImplementedError()


class LoggingNotifier(Notifier):
    """Test and local-run notifier: records events instead of sending them."""

    def __init__(self):
        self.sent = []

    def notify(self, driver_ids, event, payload):
        report = NotificationReport()
        for driver_id in driver_ids:
            self.sent.append((str(driver_id), event, dict(payload)))
            report.successful += 1
        logger.info(f"📣 {event} recorded for {report.successful} driver(s)")
        return report


class SocketIONotifier(Notifier):
    def __init__(self, socketio):
        self.socketio = socketio

    def notify(self, driver_ids, event, payload):
        report = NotificationReport()
        for driver_id in driver_ids:
            try:
                self.socketio.emit(event, dict(payload), to=driver_room(driver_id))
                report.successful += 1
            except Exception as e:
                report.failed += 1
                logger.warning(f"Socket.IO emit to driver {driver_id} failed: {e}")
        return report


class FcmNotifier(Notifier):
    """Push notifications through Firebase Cloud Messaging (legacy HTTP API)."""

    FCM_URL = "https://fcm.googleapis.com/fcm/send"

    def __init__(self, server_key: str, token_resolver: Callable[[str], Optional[str]], *, timeout: float = 5,
                 session: Optional[requests.Session] = None):
        if not server_key:
            raise RuntimeError("FCM_SERVER_KEY is required for the FCM notifier.")
        self.server_key = server_key
        self.token_resolver = token_resolver
        self.timeout = timeout
        self.session = session or requests.Session()

    def _message(self, token, event, payload):
        total_orders = payload.get("total_orders", 0)
        return {
            "to": token,
            "notification": {
                "title": f"🛵 {total_orders} commande(s) disponible(s)",
                "body": f"{payload.get('total_value', '')} $",
                "sound": "default",
            },
            "data": {"type": event, **{k: str(v) for k, v in payload.items()}},
            "priority": "high",
            "time_to_live": int(payload.get("ttl_seconds", 300)),
        }

    def notify(self, driver_ids, event, payload):
        report = NotificationReport()
        headers = {"Authorization": f"key={self.server_key}", "Content-Type": "application/json"}
        for driver_id in driver_ids:
            try:
                token = self.token_resolver(driver_id)
            except Exception as e:
                logger.warning(f"No push token for driver {driver_id}: {e}")
                token = None
            if not token:
                report.failed += 1
                continue
            try:
                response = self.session.post(
                    self.FCM_URL, json=self._message(token, event, payload), headers=headers, timeout=self.timeout
                )
            except requests.exceptions.RequestException as e:
                report.failed += 1
                logger.warning(f"FCM push to driver {driver_id} failed: {e}")
                continue
            if response.ok:
                report.successful += 1
            else:
                report.failed += 1
                logger.warning(f"FCM rejected push to driver {driver_id}: HTTP {response.status_code}")
        return report


def get_notifier(config, *, socketio=None, token_resolver=None) -> Notifier:
    mode = (config.get("NOTIFIER") or "socketio").lower()
    if mode == "fcm":
        logger.info("Using FCM notifier for driver dispatch.")
        return FcmNotifier(
            config.get("FCM_SERVER_KEY"),
            token_resolver or (lambda driver_id: None),
            timeout=config.get("NOTIFICATION_TIMEOUT_SECONDS", 5),
        )
    if mode == "socketio" and socketio is not None:
        logger.info("Using Socket.IO notifier for driver dispatch.")
        return SocketIONotifier(socketio)
    logger.info("Using LOG notifier for driver dispatch.")
    return LoggingNotifier()
