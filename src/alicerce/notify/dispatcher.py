"""
Notification Dispatcher - bounded concurrent fan-out

Each recipient is independent: one failed or slow send never blocks the
others and never propagates to the transition that triggered the fan-out.
Every outcome is collected into a DispatchReport and written to the
email_logs collection.
"""

import contextvars
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Literal

from pydantic import BaseModel, Field

from alicerce.kernel.ids import generate_id
from alicerce.kernel.logging import get_logger
from alicerce.kernel.metrics import dispatch_duration_seconds, notifications_total
from alicerce.kernel.settings import EngineSettings
from alicerce.kernel.store import Store
from alicerce.kernel.time import TimeProvider
from alicerce.notify.notifier import Notifier, SendResult
from alicerce.notify.templates import RenderedMessage, TemplateCatalog, TemplateId

logger = get_logger(__name__)


class OutgoingMessage(BaseModel):
    """A templated message waiting to be sent"""

    recipient: str = Field(..., description="Display name (supplier or department)")
    address: str | None
    template_id: TemplateId
    variables: dict[str, str] = Field(default_factory=dict)


class DeliveryOutcome(BaseModel):
    recipient: str
    address: str | None
    template_id: TemplateId
    status: Literal["sent", "failed", "skipped"]
    subject: str = ""
    error: str | None = None


class DispatchReport(BaseModel):
    """Per-recipient outcomes of one fan-out, in message order"""

    outcomes: list[DeliveryOutcome] = Field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "sent")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "skipped")

    def failures(self) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]

    def summary(self) -> dict[str, object]:
        """Compact form stored in audit details"""
        return {
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "failed_recipients": [o.recipient for o in self.failures()],
        }


class NotificationDispatcher:
    """
    Renders and sends messages through a bounded thread pool

    Args:
        notifier: Transport
        settings: Pool size, timeout, simulation flag, sender name, portal url
        time_provider: Clock for e-mail log timestamps
        store: Where e-mail log entries are written (optional)
        catalog: Templates (defaults to the built-in set)
    """

    def __init__(
        self,
        notifier: Notifier,
        settings: EngineSettings,
        time_provider: TimeProvider,
        store: Store | None = None,
        catalog: TemplateCatalog | None = None,
    ) -> None:
        self.notifier = notifier
        self.settings = settings
        self.time_provider = time_provider
        self.store = store
        self.catalog = catalog or TemplateCatalog()

    def dispatch(self, messages: list[OutgoingMessage]) -> DispatchReport:
        """
        Send every message, concurrently, and collect the outcomes

        Never raises because of a recipient: exceptions from the notifier
        become failed outcomes, and sends still running after
        notification_timeout_seconds are reported as failed with "timeout".
        """
        if not messages:
            return DispatchReport()

        start = time.perf_counter()
        rendered = [
            self.catalog.render(m.template_id, self._variables(m)) for m in messages
        ]
        outcomes: list[DeliveryOutcome | None] = [None] * len(messages)
        futures: dict[int, Future[DeliveryOutcome]] = {}

        pool = ThreadPoolExecutor(
            max_workers=self.settings.notification_max_workers,
            thread_name_prefix="alicerce-notify",
        )
        try:
            for index, message in enumerate(messages):
                address = message.address
                if not address:
                    outcomes[index] = self._outcome(
                        message, rendered[index], "skipped", "no e-mail address on file"
                    )
                    continue
                # Each worker runs in a copy of the caller's context (correlation id)
                ctx = contextvars.copy_context()
                futures[index] = pool.submit(
                    ctx.run, self._send_one, message, address, rendered[index]
                )

            wait(futures.values(), timeout=self.settings.notification_timeout_seconds)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        for index, future in futures.items():
            if future.done() and not future.cancelled():
                outcomes[index] = future.result()
            else:
                logger.warning(
                    "notification_timed_out",
                    recipient=messages[index].recipient,
                    template=messages[index].template_id.value,
                )
                outcomes[index] = self._outcome(messages[index], rendered[index], "failed", "timeout")

        report = DispatchReport(outcomes=[o for o in outcomes if o is not None])
        for outcome in report.outcomes:
            notifications_total.labels(
                template=outcome.template_id.value, outcome=outcome.status
            ).inc()
        self._write_email_log(report)

        dispatch_duration_seconds.observe(time.perf_counter() - start)
        logger.info(
            "notifications_dispatched",
            total=len(report.outcomes),
            sent=report.sent,
            failed=report.failed,
            skipped=report.skipped,
        )
        return report

    def _variables(self, message: OutgoingMessage) -> dict[str, str]:
        return {
            "portalUrl": self.settings.portal_url,
            "senderName": self.settings.sender_name,
            **message.variables,
        }

    @staticmethod
    def _outcome(
        message: OutgoingMessage,
        rendered: RenderedMessage,
        status: Literal["sent", "failed", "skipped"],
        error: str | None = None,
    ) -> DeliveryOutcome:
        return DeliveryOutcome(
            recipient=message.recipient,
            address=message.address,
            template_id=message.template_id,
            status=status,
            subject=rendered.subject,
            error=error,
        )

    def _send_one(
        self, message: OutgoingMessage, address: str, rendered: RenderedMessage
    ) -> DeliveryOutcome:
        try:
            result = self.notifier.send(address, rendered.subject, rendered.html)
        except Exception as e:
            logger.error(
                "notification_send_raised",
                recipient=message.recipient,
                template=message.template_id.value,
                error=str(e),
            )
            result = SendResult(success=False, error=str(e))

        if not result.success:
            logger.warning(
                "notification_failed",
                recipient=message.recipient,
                template=message.template_id.value,
                error=result.error,
            )
            return self._outcome(message, rendered, "failed", result.error)
        return self._outcome(message, rendered, "sent")

    def _write_email_log(self, report: DispatchReport) -> None:
        if self.store is None:
            return
        now = self.time_provider.now().isoformat()
        for outcome in report.outcomes:
            if outcome.status == "skipped":
                continue
            if outcome.status == "failed":
                status = "error"
            else:
                status = "simulated" if self.settings.email_simulation else "success"
            try:
                self.store.insert(
                    "email_logs",
                    {
                        "id": generate_id(),
                        "to_email": outcome.address,
                        "recipient": outcome.recipient,
                        "template_id": outcome.template_id.value,
                        "subject": outcome.subject,
                        "status": status,
                        "error_details": outcome.error,
                        "created_at": now,
                    },
                )
            except Exception as e:
                logger.error("email_log_write_failed", error=str(e))
