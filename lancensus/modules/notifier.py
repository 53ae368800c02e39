"""
Notifier Module

Pluggable alerts for discovery events with two backends:
  - Log (writes through the ``logging`` module, always available)
  - Webhook (HTTP POST to any URL: Slack, Discord, custom)

Every alert is a ``Notification`` naming the discovery event
(``device_joined``, ``scan_completed``, ``scan_failed``) and carrying its
device or scan fields, so webhook receivers get structured data rather
than a pre-rendered sentence.

Usage:
    notifier = Notifier()  # log only

    notifier = Notifier(backends=[
        LogBackend(),
        WebhookBackend("https://hooks.slack.com/services/..."),
    ])

A backend failing never affects the scan that triggered the notification.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from config import (
    APP_NAME,
    NOTIFY_ON_NEW_DEVICE,
    NOTIFY_ON_SCAN_FAILURE,
    WEBHOOK_TIMEOUT,
    WEBHOOK_URL,
)

logger = logging.getLogger(__name__)

URGENCY_COLORS = {"critical": 0xFF0000, "normal": 0x36A64F, "low": 0xCCCCCC}


@dataclass
class Notification:
    """One discovery event worth telling an operator about."""

    event: str
    title: str
    fields: Dict[str, Any] = field(default_factory=dict)
    urgency: str = "normal"

    @property
    def message(self) -> str:
        return "\n".join(f"{key}: {_display(value)}" for key, value in self.fields.items())


def _display(value: Any) -> str:
    return "unknown" if value is None else str(value)


# ─── Backend Interface ────────────────────────────────────────────────────────


class NotifierBackend(ABC):
    """Base class for notification backends."""

    @abstractmethod
    def send(self, notification: Notification) -> bool:
        """Deliver a notification; returns True if delivery succeeded."""


# ─── Log Backend ──────────────────────────────────────────────────────────────


class LogBackend(NotifierBackend):
    """Emit notifications as log records."""

    _LEVELS = {"low": logging.DEBUG, "normal": logging.INFO, "critical": logging.WARNING}

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logging.getLogger("lancensus.notifications")

    def send(self, notification: Notification) -> bool:
        level = self._LEVELS.get(notification.urgency, logging.INFO)
        self.log.log(level, "%s: %s", notification.title, notification.message.replace("\n", " | "))
        return True


# ─── Webhook Backend ──────────────────────────────────────────────────────────


class WebhookBackend(NotifierBackend):
    """POST discovery events to a webhook URL.

    Slack and Discord receive the event fields as attachment/embed fields;
    any other receiver gets the event name and the raw field values as JSON.
    """

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: int = WEBHOOK_TIMEOUT,
        service: Optional[str] = None,
    ):
        """
        Args:
            url: Webhook URL.
            headers: Extra HTTP headers (e.g. Authorization).
            timeout: HTTP request timeout in seconds.
            service: 'slack', 'discord' or 'generic'; guessed from the URL if None.
        """
        self.url = url
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self.timeout = timeout
        self.service = service or self.service_for(url)

    @staticmethod
    def service_for(url: str) -> str:
        if "hooks.slack.com" in url:
            return "slack"
        if "/api/webhooks/" in url and ("discord.com" in url or "discordapp.com" in url):
            return "discord"
        return "generic"

    def build_payload(self, notification: Notification) -> Dict:
        color = URGENCY_COLORS.get(notification.urgency, URGENCY_COLORS["normal"])

        if self.service == "slack":
            return {
                "text": notification.title,
                "attachments": [{
                    "color": f"#{color:06x}",
                    "fields": [
                        {"title": key, "value": _display(value), "short": True}
                        for key, value in notification.fields.items()
                    ],
                    "footer": f"{APP_NAME} {notification.event}",
                }],
            }

        if self.service == "discord":
            return {
                "embeds": [{
                    "title": notification.title,
                    "color": color,
                    "fields": [
                        {"name": key, "value": _display(value), "inline": True}
                        for key, value in notification.fields.items()
                    ],
                    "footer": {"text": f"{APP_NAME} {notification.event}"},
                }]
            }

        return {
            "event": notification.event,
            "title": notification.title,
            "urgency": notification.urgency,
            "source": APP_NAME,
            "data": notification.fields,
        }

    def send(self, notification: Notification) -> bool:
        try:
            resp = requests.post(
                self.url,
                json=self.build_payload(notification),
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.error(f"Webhook timed out delivering {notification.event}")
            return False
        except requests.RequestException as e:
            logger.error(f"Webhook error delivering {notification.event}: {e}")
            return False

        if resp.ok:
            logger.debug(f"Webhook delivered {notification.event}: {notification.title}")
            return True
        logger.warning("Webhook returned %d for %s: %s",
                       resp.status_code, notification.event, resp.text[:200])
        return False


# ─── Main Notifier ────────────────────────────────────────────────────────────


class Notifier:
    """Notification manager with pluggable backends.

    ``Notifier()`` logs only, plus a webhook when ``WEBHOOK_URL`` is set.
    """

    def __init__(
        self,
        backends: Optional[List[NotifierBackend]] = None,
        notify_new_devices: bool = NOTIFY_ON_NEW_DEVICE,
        notify_failures: bool = NOTIFY_ON_SCAN_FAILURE,
    ):
        if backends is not None:
            self.backends = backends
        else:
            self.backends = [LogBackend()]
            if WEBHOOK_URL:
                self.backends.append(WebhookBackend(WEBHOOK_URL))
        self.notify_new_devices = notify_new_devices
        self.notify_failures = notify_failures

    def dispatch(self, notification: Notification) -> bool:
        """Hand ``notification`` to every backend; True if any delivered it."""
        sent = False
        for backend in self.backends:
            try:
                if backend.send(notification):
                    sent = True
            except Exception as e:
                logger.error(f"Backend {type(backend).__name__} error: {e}")
        return sent

    # ── Discovery events ──

    def notify_new_device(self, ip: str, mac: Optional[str], vendor: Optional[str] = None) -> bool:
        if not self.notify_new_devices:
            return False
        return self.dispatch(Notification(
            event="device_joined",
            title=f"New Device Detected: {ip}",
            fields={"ip_address": ip, "mac_address": mac, "vendor": vendor},
        ))

    def notify_scan_complete(self, target: str, device_count: int, new_devices: int = 0) -> bool:
        return self.dispatch(Notification(
            event="scan_completed",
            title=f"Network Scan Complete: {target}",
            fields={
                "target_network": target,
                "devices_found": device_count,
                "new_devices_found": new_devices,
            },
            urgency="normal" if new_devices > 0 else "low",
        ))

    def notify_scan_failed(self, scan_id: str, error: str) -> bool:
        if not self.notify_failures:
            return False
        return self.dispatch(Notification(
            event="scan_failed",
            title="Network Scan Failed",
            fields={"scan_id": scan_id, "error_message": error},
            urgency="critical",
        ))
