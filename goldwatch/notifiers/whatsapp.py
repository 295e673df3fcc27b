"""
WhatsApp channel backed by a paired WhatsApp Web HTTP gateway.

Pairing (scanning the QR code) happens out of band against the gateway.
This module only tracks whether the session is usable and sends through it.
"""

import logging
import re
import threading
import time
from enum import Enum
from typing import Callable, Optional

import requests

from goldwatch.database.models import ChannelKind
from .base import NotificationChannel, NotificationResult

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle of the WhatsApp Web session."""

    UNAUTHENTICATED = "unauthenticated"
    PAIRING = "pairing"
    READY = "ready"


# Allowed moves; any state may fall back to UNAUTHENTICATED on logout
_TRANSITIONS = {
    SessionState.UNAUTHENTICATED: {SessionState.PAIRING},
    SessionState.PAIRING: {SessionState.READY, SessionState.UNAUTHENTICATED},
    SessionState.READY: {SessionState.UNAUTHENTICATED},
}

# Gateway status strings mapped to local states
_GATEWAY_STATUS = {
    "WORKING": SessionState.READY,
    "SCAN_QR_CODE": SessionState.PAIRING,
    "STARTING": SessionState.PAIRING,
    "STOPPED": SessionState.UNAUTHENTICATED,
    "FAILED": SessionState.UNAUTHENTICATED,
}


class InvalidTransition(Exception):
    """Raised on a session state change the lifecycle does not allow."""

    pass


def normalize_phone(phone: str) -> str:
    """Strip everything but digits: '+62 812-3456' -> '628123456'."""
    return re.sub(r"[^0-9]", "", phone or "")


class WhatsAppSession:
    """Session state machine plus the gateway it lives on."""

    def __init__(
        self,
        gateway_url: str,
        name: str = "default",
        api_key: str = "",
        timeout: float = 10,
        recheck_after: float = 30,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.gateway_url = gateway_url.rstrip("/")
        self.name = name
        self.api_key = api_key
        self.timeout = timeout
        self.recheck_after = recheck_after
        self._monotonic = monotonic
        self._last_recheck: Optional[float] = None
        self._state = SessionState.UNAUTHENTICATED
        self._lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    def is_ready(self) -> bool:
        return self._state == SessionState.READY

    def transition(self, new_state: SessionState) -> None:
        """Move to ``new_state``; staying in place is a no-op."""
        with self._lock:
            if new_state == self._state:
                return
            if new_state not in _TRANSITIONS[self._state]:
                raise InvalidTransition(
                    f"Cannot move WhatsApp session from {self._state.value} to {new_state.value}"
                )
            logger.info(f"WhatsApp session {self._state.value} -> {new_state.value}")
            self._state = new_state

    def start_pairing(self) -> None:
        self.transition(SessionState.PAIRING)

    def mark_ready(self) -> None:
        self.transition(SessionState.READY)

    def mark_logged_out(self) -> None:
        self.transition(SessionState.UNAUTHENTICATED)

    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    def sync(self) -> SessionState:
        """
        Pull the session status from the gateway and follow it.

        Steps through PAIRING when the gateway jumps straight to working, and
        through UNAUTHENTICATED when a ready session asks for a new QR scan,
        so the lifecycle stays valid. Gateway errors leave the state unchanged.
        """
        try:
            response = requests.get(
                f"{self.gateway_url}/api/sessions/{self.name}",
                headers=self.headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            status = str(response.json().get("status", "")).upper()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Could not read WhatsApp session status: {e}")
            return self._state

        target = _GATEWAY_STATUS.get(status)
        if target is None:
            logger.warning(f"Unknown WhatsApp session status: {status}")
            return self._state

        if target == SessionState.READY and self._state == SessionState.UNAUTHENTICATED:
            self.start_pairing()
        elif target == SessionState.PAIRING and self._state == SessionState.READY:
            self.mark_logged_out()
        self.transition(target)
        return self._state

    def ensure_ready(self) -> bool:
        """
        Re-read the gateway status when the session is not ready.

        Polls at most once per ``recheck_after`` seconds so a send to an
        unpaired session fails fast instead of hitting the gateway each time.
        """
        if self.is_ready():
            return True
        now = self._monotonic()
        if self._last_recheck is not None and now - self._last_recheck < self.recheck_after:
            return False
        self._last_recheck = now
        return self.sync() == SessionState.READY


class WhatsAppChannel(NotificationChannel):
    """Sends messages to phone numbers through a paired session."""

    kind = ChannelKind.WHATSAPP
    message_style = "markdown"

    def __init__(self, session: WhatsAppSession):
        self.session = session

    def is_ready(self) -> bool:
        return self.session.is_ready()

    def send(self, destination: str, message: str) -> NotificationResult:
        """Send message to a phone number."""
        if not self.session.ensure_ready():
            return NotificationResult.failed(
                self.name,
                f"not ready: WhatsApp session is {self.session.state.value}; "
                "pair the gateway by scanning its QR code",
            )

        number = normalize_phone(destination)
        if not number:
            return NotificationResult.failed(
                self.name, f"invalid phone number: {destination!r}"
            )

        try:
            response = requests.post(
                f"{self.session.gateway_url}/api/sendText",
                json={
                    "session": self.session.name,
                    "chatId": f"{number}@c.us",
                    "text": message,
                },
                headers=self.session.headers(),
                timeout=self.session.timeout,
            )
        except requests.exceptions.RequestException as e:
            return NotificationResult.failed(self.name, f"transport error: {e}")

        if response.ok:
            return NotificationResult.sent(self.name)

        if response.status_code in (401, 409, 422):
            # Gateway rejects sends from a session that is no longer logged in
            self.session.mark_logged_out()
            return NotificationResult.failed(
                self.name, f"not ready: gateway rejected session (HTTP {response.status_code})"
            )
        return NotificationResult.failed(
            self.name, f"HTTP {response.status_code}: {response.text}"
        )
