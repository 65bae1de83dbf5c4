"""Alert engine — fans incident alerts out to notification channels by severity.

Decoupled from the transports via ``set_sender()``. The engine owns the
routing rules (which severity reaches which channel); the actual delivery
is delegated to whatever sender is injected per channel, by default a
``WebhookChannel`` posting JSON with httpx.

Never raises on delivery — a failing channel is logged and the remaining
channels are still tried. Alert text is never logged, only counts.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from enum import Enum
from typing import Any, Protocol

import httpx

from src.config import settings
from src.models.enums import IncidentSeverity
from src.security.safe_log import get_logger

logger = get_logger(__name__)


class AlertChannel(str, Enum):
    EMAIL = "email"
    CHAT = "chat"
    PAGER = "pager"


# ── Routing rules ────────────────────────────────────────────────────

SEVERITY_CHANNELS: dict[IncidentSeverity, tuple[AlertChannel, ...]] = {
    IncidentSeverity.CRITICAL: (AlertChannel.EMAIL, AlertChannel.CHAT, AlertChannel.PAGER),
    IncidentSeverity.HIGH: (AlertChannel.EMAIL, AlertChannel.CHAT),
    IncidentSeverity.MEDIUM: (AlertChannel.EMAIL,),
    IncidentSeverity.LOW: (AlertChannel.EMAIL,),
}

SendFn = Callable[[str, str, str, dict[str, Any]], Coroutine[Any, Any, None]]


def channels_for(severity: IncidentSeverity | str) -> tuple[AlertChannel, ...]:
    """Channels an alert of this severity must reach."""
    return SEVERITY_CHANNELS.get(IncidentSeverity(severity), (AlertChannel.EMAIL,))


class AlertPort(Protocol):
    async def send_alert(
        self,
        severity: IncidentSeverity | str,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> list[AlertChannel]: ...


class WebhookChannel:
    """Posts an alert as JSON to one webhook URL."""

    def __init__(self, url: str, timeout: float | None = None) -> None:
        self._url = url
        self._timeout = timeout if timeout is not None else settings.incidents.alert_timeout

    async def __call__(self, severity: str, title: str, message: str, metadata: dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, connect=5.0)) as client:
            response = await client.post(
                self._url,
                json={"severity": severity, "title": title, "text": message, "metadata": metadata},
            )
            response.raise_for_status()


def _default_senders() -> dict[AlertChannel, SendFn]:
    urls = {
        AlertChannel.EMAIL: settings.incidents.email_webhook_url,
        AlertChannel.CHAT: settings.incidents.chat_webhook_url,
        AlertChannel.PAGER: settings.incidents.pager_webhook_url,
    }
    return {channel: WebhookChannel(url) for channel, url in urls.items() if url}


class AlertEngine:
    """Routes alerts to the channels their severity requires."""

    def __init__(self, senders: dict[AlertChannel, SendFn] | None = None) -> None:
        self._senders: dict[AlertChannel, SendFn] = dict(senders) if senders is not None else _default_senders()

    def set_sender(self, channel: AlertChannel, fn: SendFn) -> None:
        """Inject the delivery function for one channel."""
        self._senders[channel] = fn

    async def send_alert(
        self,
        severity: IncidentSeverity | str,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> list[AlertChannel]:
        """Deliver to every channel of the severity. Returns the channels that accepted it."""
        level = IncidentSeverity(severity)
        targets = channels_for(level)
        delivered: list[AlertChannel] = []
        failed = 0
        unconfigured = 0

        for channel in targets:
            send = self._senders.get(channel)
            if send is None:
                unconfigured += 1
                continue
            try:
                await send(level.value, title, message, dict(metadata or {}))
            except (httpx.HTTPError, OSError):
                failed += 1
                continue
            delivered.append(channel)

        if unconfigured:
            logger.warning("incident.alert.unconfigured", severity=level.value, channels=unconfigured)
        if failed:
            logger.error("incident.alert.failed", severity=level.value, channels=failed)
        logger.info("incident.alert.sent", severity=level.value, delivered=len(delivered), expected=len(targets))
        return delivered


# Module-level singleton
alert_engine = AlertEngine()
