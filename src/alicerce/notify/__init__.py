"""
Notify - templated e-mail fan-out
"""

from alicerce.notify.dispatcher import (
    DeliveryOutcome,
    DispatchReport,
    NotificationDispatcher,
    OutgoingMessage,
)
from alicerce.notify.notifier import Notifier, SendResult, SimulatedNotifier
from alicerce.notify.templates import TemplateCatalog, TemplateId, format_brl, format_date

__all__ = [
    "DeliveryOutcome",
    "DispatchReport",
    "NotificationDispatcher",
    "Notifier",
    "OutgoingMessage",
    "SendResult",
    "SimulatedNotifier",
    "TemplateCatalog",
    "TemplateId",
    "format_brl",
    "format_date",
]
