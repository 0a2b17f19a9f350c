"""
Notifier - one message to one address

The transport (SMTP, an e-mail API) lives outside the engine. Anything with
a send(to_address, subject, html_body) -> SendResult method can be plugged
in. A single attempt per call; the dispatcher decides what to do with a
failure.
"""

import threading
from typing import Protocol

from pydantic import BaseModel

from alicerce.kernel.logging import get_logger

logger = get_logger(__name__)


class SendResult(BaseModel):
    success: bool
    error: str | None = None


class Notifier(Protocol):
    """Transport contract"""

    def send(self, to_address: str, subject: str, html_body: str) -> SendResult: ...


class SentMessage(BaseModel):
    to_address: str
    subject: str
    html_body: str


class SimulatedNotifier:
    """
    Notifier that delivers nothing and remembers what it was asked to send

    Used by the CLI (simulation mode) and the test suite. Addresses listed
    in fail_for get a failed SendResult, which makes partial-failure
    fan-outs easy to reproduce.
    """

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = set(fail_for or ())
        self.sent: list[SentMessage] = []
        self._lock = threading.Lock()

    def send(self, to_address: str, subject: str, html_body: str) -> SendResult:
        if to_address in self.fail_for:
            logger.info("simulated_send_failed", to_address=to_address, subject=subject)
            return SendResult(success=False, error="simulated failure")

        with self._lock:
            self.sent.append(SentMessage(to_address=to_address, subject=subject, html_body=html_body))
        logger.info("simulated_send", to_address=to_address, subject=subject)
        return SendResult(success=True)

    def addresses(self) -> list[str]:
        with self._lock:
            return [m.to_address for m in self.sent]

    def subjects_for(self, to_address: str) -> list[str]:
        with self._lock:
            return [m.subject for m in self.sent if m.to_address == to_address]
