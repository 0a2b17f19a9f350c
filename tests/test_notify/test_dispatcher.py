"""
Tests for the Notification Dispatcher - bounded concurrent fan-out

One recipient's failure, exception or slowness must never affect the
others. Every outcome ends up in the report and in the e-mail log.

Fun fact: The first e-mail was sent by Ray Tomlinson in 1971 between two
computers sitting side by side. He later said he couldn't remember what it
said - probably "QWERTYUIOP".
"""

import threading
from datetime import datetime, timezone

from alicerce.kernel.settings import EngineSettings
from alicerce.kernel.store import SQLiteStore
from alicerce.kernel.time import TestTimeProvider
from alicerce.notify.dispatcher import NotificationDispatcher, OutgoingMessage
from alicerce.notify.notifier import SendResult, SimulatedNotifier
from alicerce.notify.templates import TemplateId


def _message(name: str, address: str | None, template: TemplateId = TemplateId.PROPOSAL_LOSER) -> OutgoingMessage:
    return OutgoingMessage(
        recipient=name,
        address=address,
        template_id=template,
        variables={"supplierName": name, "demandTitle": "Papel A4", "protocol": "ALI.DEM.2025.1234"},
    )


# ==============================================================================
# Outcomes
# ==============================================================================


def test_every_message_is_sent(dispatcher: NotificationDispatcher, notifier: SimulatedNotifier) -> None:
    messages = [_message(f"Fornecedor {n}", f"f{n}@example.com") for n in range(10)]

    report = dispatcher.dispatch(messages)

    assert report.sent == 10
    assert sorted(notifier.addresses()) == sorted(f"f{n}@example.com" for n in range(10))
    # Outcomes keep message order regardless of completion order
    assert [o.recipient for o in report.outcomes] == [m.recipient for m in messages]


def test_empty_fan_out(dispatcher: NotificationDispatcher) -> None:
    assert dispatcher.dispatch([]).outcomes == []


def test_failed_recipient_does_not_block_others(
    dispatcher: NotificationDispatcher, notifier: SimulatedNotifier
) -> None:
    notifier.fail_for.add("beta@example.com")

    report = dispatcher.dispatch(
        [
            _message("Acme", "acme@example.com"),
            _message("Beta", "beta@example.com"),
            _message("Gama", "gama@example.com"),
        ]
    )

    assert report.sent == 2
    assert report.failed == 1
    assert report.failures()[0].recipient == "Beta"
    assert report.failures()[0].error == "simulated failure"
    assert set(notifier.addresses()) == {"acme@example.com", "gama@example.com"}


def test_missing_address_is_skipped(dispatcher: NotificationDispatcher) -> None:
    report = dispatcher.dispatch([_message("Sem E-mail", None), _message("Acme", "acme@example.com")])

    assert report.skipped == 1
    assert report.outcomes[0].status == "skipped"
    assert report.outcomes[0].error == "no e-mail address on file"
    assert report.summary() == {"sent": 1, "failed": 0, "skipped": 1, "failed_recipients": []}


def test_blank_address_never_reaches_notifier(
    dispatcher: NotificationDispatcher, notifier: SimulatedNotifier
) -> None:
    report = dispatcher.dispatch([_message("Vazio", ""), _message("Acme", "acme@example.com")])

    assert [o.status for o in report.outcomes] == ["skipped", "sent"]
    assert notifier.addresses() == ["acme@example.com"]


def test_notifier_exception_becomes_failed_outcome(
    settings: EngineSettings, test_time: TestTimeProvider
) -> None:
    class ExplodingNotifier:
        def send(self, to_address: str, subject: str, html_body: str) -> SendResult:
            if to_address.startswith("boom"):
                raise ConnectionError("SMTP connection refused")
            return SendResult(success=True)

    dispatcher = NotificationDispatcher(ExplodingNotifier(), settings, test_time)

    report = dispatcher.dispatch([_message("Boom", "boom@example.com"), _message("Ok", "ok@example.com")])

    assert [o.status for o in report.outcomes] == ["failed", "sent"]
    assert report.outcomes[0].error == "SMTP connection refused"


def test_slow_send_is_reported_as_timeout(test_time: TestTimeProvider) -> None:
    release = threading.Event()

    class StuckNotifier:
        def send(self, to_address: str, subject: str, html_body: str) -> SendResult:
            if to_address == "slow@example.com":
                release.wait(5)
            return SendResult(success=True)

    settings = EngineSettings(notification_max_workers=2, notification_timeout_seconds=0.2)
    dispatcher = NotificationDispatcher(StuckNotifier(), settings, test_time)

    try:
        report = dispatcher.dispatch(
            [_message("Lenta", "slow@example.com"), _message("Rapida", "fast@example.com")]
        )
    finally:
        release.set()

    assert report.outcomes[0].status == "failed"
    assert report.outcomes[0].error == "timeout"
    assert report.outcomes[1].status == "sent"


def test_render_uses_settings_defaults(dispatcher: NotificationDispatcher, notifier: SimulatedNotifier) -> None:
    dispatcher.dispatch([_message("Acme", "acme@example.com", TemplateId.SUPPLIER_APPROVED)])

    [sent] = notifier.sent
    assert sent.subject == "Cadastro Aprovado - Sistema Alicerce"
    assert "https://alicerce.example.gov.br" in sent.html_body
    assert "Sistema Alicerce" in sent.html_body


# ==============================================================================
# E-mail log
# ==============================================================================


def test_email_log_records_sent_and_failed(
    dispatcher: NotificationDispatcher, notifier: SimulatedNotifier, store: SQLiteStore
) -> None:
    notifier.fail_for.add("beta@example.com")

    dispatcher.dispatch(
        [
            _message("Acme", "acme@example.com"),
            _message("Beta", "beta@example.com"),
            _message("Sem E-mail", None),
        ]
    )

    logs = {log["recipient"]: log for log in store.list("email_logs")}
    assert set(logs) == {"Acme", "Beta"}
    assert logs["Acme"]["status"] == "simulated"
    assert logs["Beta"]["status"] == "error"
    assert logs["Beta"]["error_details"] == "simulated failure"
    assert logs["Acme"]["subject"] == "Resultado da Cotação - Sistema Alicerce"
    assert logs["Acme"]["created_at"] == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc).isoformat()


def test_email_log_success_outside_simulation(
    notifier: SimulatedNotifier, test_time: TestTimeProvider, store: SQLiteStore
) -> None:
    settings = EngineSettings(email_simulation=False)
    dispatcher = NotificationDispatcher(notifier, settings, test_time, store=store)

    dispatcher.dispatch([_message("Acme", "acme@example.com")])

    assert store.list("email_logs")[0]["status"] == "success"
