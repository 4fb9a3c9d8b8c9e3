"""
auth/notify.py -- Fire-and-forget delivery of passcodes to a contact channel.

Sinks:
  LogSink     -- development sink; writes the message to the log.
  HttpSmsSink -- POSTs to an SMS gateway with requests.

BackgroundNotifier wraps any sink and runs send() on a small thread pool so
passcode issuance returns before delivery is confirmed. Delivery errors are
logged by a done-callback and never reach the issuer: the passcode stays
valid and the caller can ask for delivery again.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Protocol

import requests

from core.config import Settings
from core.contacts import mask_contact

logger = logging.getLogger("credgate.notify")


class NotificationSink(Protocol):
    def send(self, contact: str, message: str) -> None: ...


class LogSink:
    """Write the message to the log instead of sending it.

    Development only: the message carries the passcode in plaintext.
    """

    def send(self, contact: str, message: str) -> None:
        logger.info("SMS (log sink) to %s: %s", mask_contact(contact), message)


class HttpSmsSink:
    """Deliver SMS through an HTTP gateway.

    The gateway contract is a JSON POST {"to", "message", "sender"} with an
    optional bearer token. Any non-2xx response raises requests.HTTPError,
    which BackgroundNotifier logs.
    """

    def __init__(self, url: str, token: str = "", sender_id: str = "", timeout: float = 10.0) -> None:
        self.url = url
        self.token = token
        self.sender_id = sender_id
        self.timeout = timeout
        self._session = requests.Session()

    def send(self, contact: str, message: str) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        resp = self._session.post(
            self.url,
            json={"to": contact, "message": message, "sender": self.sender_id},
            headers=headers,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        logger.info("SMS accepted by gateway for %s", mask_contact(contact))

    def close(self) -> None:
        self._session.close()


class BackgroundNotifier:
    """Run a sink's send() off the request path."""

    def __init__(self, sink: NotificationSink, max_workers: int = 2) -> None:
        self.sink = sink
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def send(self, contact: str, message: str) -> Optional[Future]:
        """Queue delivery and return immediately. Never raises for delivery errors."""
        try:
            future = self._executor.submit(self.sink.send, contact, message)
        except RuntimeError:
            # Executor already shut down (process is stopping).
            logger.warning("Notifier closed; dropped message for %s", mask_contact(contact))
            return None
        future.add_done_callback(lambda f: _log_failure(f, contact))
        return future

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        close = getattr(self.sink, "close", None)
        if callable(close):
            close()


def _log_failure(future: Future, contact: str) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("SMS delivery failed for %s: %s", mask_contact(contact), exc)


def build_notifier(settings: Settings) -> BackgroundNotifier:
    """Pick the HTTP gateway when configured, the log sink otherwise."""
    sink: NotificationSink
    if settings.sms_gateway_url:
        sink = HttpSmsSink(
            settings.sms_gateway_url,
            token=settings.sms_gateway_token,
            sender_id=settings.sms_sender_id,
            timeout=settings.sms_timeout_seconds,
        )
    else:
        sink = LogSink()
    return BackgroundNotifier(sink, max_workers=settings.notify_workers)
