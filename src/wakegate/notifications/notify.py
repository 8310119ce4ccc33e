"""User-facing notifications (ntfy, Pushover, email)."""

import functools
import logging
import smtplib
from email.message import EmailMessage
from enum import Enum
from typing import Any, Callable, Iterator, Optional

import httpx

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 10
SMTP_TIMEOUT = 15


class NotificationKind(Enum):
    INFO = "info"
    ERROR = "error"


# A channel sends (kind, title, message) and raises on failure.
Channel = Callable[[NotificationKind, str, str], None]


class Notifier:
    """
    Dispatches notifications to every configured channel.

    Args:
        config: The ``settings.notifications`` mapping. Recognized keys:
            ``ntfy_topic`` (+ optional ``ntfy_server``), ``pushover_token`` +
            ``pushover_user``, and ``smtp``.
    """

    def __init__(self, config: Optional[dict[str, Any]] = None) -> None:
        self._config: dict[str, Any] = config or {}

    def notify(self, kind: NotificationKind, title: str, message: str) -> None:
        """Send ``message`` on all channels; failures are logged, never raised."""
        level = logging.ERROR if kind is NotificationKind.ERROR else logging.INFO
        logger.log(level, "%s: %s", title, message)

        for name, send in self._channels():
            try:
                send(kind, title, message)
                logger.debug("%s notification sent", name)
            except Exception as exc:
                logger.error("Failed to send %s notification: %s", name, exc)

    def _channels(self) -> Iterator[tuple[str, Channel]]:
        cfg = self._config
        if cfg.get("ntfy_topic"):
            yield "ntfy", functools.partial(
                _send_ntfy, cfg.get("ntfy_server", "https://ntfy.sh"), cfg["ntfy_topic"]
            )
        if cfg.get("pushover_token") and cfg.get("pushover_user"):
            yield "Pushover", functools.partial(
                _send_pushover, cfg["pushover_token"], cfg["pushover_user"]
            )
        smtp_cfg = cfg.get("smtp")
        if smtp_cfg:
            if smtp_cfg.get("to_addr"):
                yield "email", functools.partial(_send_email, smtp_cfg)
            else:
                logger.warning("SMTP configured but no 'to_addr' specified, skipping email")


def _send_ntfy(server: str, topic: str, kind: NotificationKind, title: str, message: str) -> None:
    error = kind is NotificationKind.ERROR
    resp = httpx.post(
        server.rstrip("/"),
        json={
            "topic": topic,
            "title": title,
            "message": message,
            "priority": 4 if error else 3,
            "tags": ["warning"] if error else ["zzz"],
        },
        timeout=HTTP_TIMEOUT,
    )
    resp.raise_for_status()


def _send_pushover(token: str, user: str, kind: NotificationKind, title: str, message: str) -> None:
    resp = httpx.post(
        "https://api.pushover.net/1/messages.json",
        data={
            "token": token,
            "user": user,
            "title": title,
            "message": message,
            "priority": 1 if kind is NotificationKind.ERROR else 0,
        },
        timeout=HTTP_TIMEOUT,
    )
    resp.raise_for_status()


def _send_email(smtp_cfg: dict[str, Any], kind: NotificationKind, title: str, message: str) -> None:
    """
    smtp_cfg keys: host, port, user, password, from_addr, to_addr, use_tls
    """
    user: Optional[str] = smtp_cfg.get("user")
    password: Optional[str] = smtp_cfg.get("password")

    msg = EmailMessage()
    msg["Subject"] = f"wakegate: {title}"
    msg["From"] = smtp_cfg.get("from_addr") or user or "wakegate@localhost"
    msg["To"] = smtp_cfg["to_addr"]
    msg.set_content(message)

    host = smtp_cfg.get("host", "localhost")
    port = int(smtp_cfg.get("port", 587))
    with smtplib.SMTP(host, port, timeout=SMTP_TIMEOUT) as smtp:
        if smtp_cfg.get("use_tls", True):
            smtp.starttls()
        if user and password:
            smtp.login(user, password)
        smtp.send_message(msg)
