"""
Structured logging for Alicerce.

Every engine operation logs a started/completed pair under one correlation
id; the notification workers it fans out inherit that id. Contact data of
suppliers and departments is masked before anything is rendered.

Fun fact: Brazil's CNPJ ends in two check digits computed with a weighted
modulo 11 - which is why the last two digits are the ones we leave visible.
"""

import contextvars
import logging
import re
import secrets
import sys
import time
from typing import Any

import structlog

from alicerce.kernel.errors import AlicerceError
from alicerce.kernel.settings import EngineSettings

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

MASK = "***"

# Keys whose values are masked wherever they appear in an event
CONTACT_FIELDS = frozenset({"email", "to_address", "contact_email", "address", "phone", "cnpj"})
SECRET_FIELDS = frozenset({"password", "token", "secret", "api_key", "smtp_password"})

_EMAIL = re.compile(r"^[^@\s]+@([^@\s]+)$")


def generate_correlation_id() -> str:
    """22-character URL-safe id (128 bits)"""
    return secrets.token_urlsafe(16)


def get_correlation_id() -> str:
    """Current correlation id; one is created on first use in a context"""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def mask_value(key: str, value: Any) -> Any:
    """
    Mask one logged value according to its key

    E-mails keep their domain, CNPJs keep their check digits, phones keep
    nothing and secrets are always fully masked.

    Example:
        >>> mask_value("contact_email", "compras@acme.com.br")
        '***@acme.com.br'
        >>> mask_value("cnpj", "12.345.678/0001-90")
        '***-90'
    """
    if not value:
        return value
    if key in SECRET_FIELDS:
        return MASK
    if key not in CONTACT_FIELDS:
        return value
    text = str(value)
    email = _EMAIL.match(text)
    if email:
        return f"{MASK}@{email.group(1)}"
    if key == "cnpj":
        digits = re.sub(r"\D", "", text)
        return f"{MASK}-{digits[-2:]}" if len(digits) >= 2 else MASK
    return MASK


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """Copy of a log context with contact data and secrets masked"""
    return {key: mask_value(key, value) for key, value in context.items()}


def _add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


def _mask_contact_data(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    return redact_context(event_dict)


def configure_logging(
    *,
    json_output: bool | None = None,
    log_level: str | None = None,
    settings: EngineSettings | None = None,
) -> None:
    """
    Configure structlog on top of stdlib logging.

    Logs go to stderr so CLI commands can print JSON on stdout.

    Args:
        json_output: JSON lines (production) instead of console rendering.
            Defaults to settings.log_json.
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
            Defaults to settings.log_level.
        settings: Source of the defaults; read from ALICERCE_* when omitted
    """
    settings = settings or EngineSettings()
    if json_output is None:
        json_output = settings.log_json
    level = getattr(logging, (log_level or settings.log_level).upper())

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    logging.getLogger().setLevel(level)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_correlation_id,
        _mask_contact_data,
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class LogOperation:
    """
    Timed started/completed/failed log lines around one engine operation

    The operation name and context are bound to structlog's context vars
    for the duration of the block, so store retries and validation
    warnings logged inside it carry them too.

    Rule violations (any AlicerceError) are logged as warnings without a
    traceback; anything else is an error with exc_info.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time = 0.0
        self._tokens: Any = None

    def __enter__(self) -> "LogOperation":
        self._tokens = structlog.contextvars.bind_contextvars(
            operation=self.operation, **self.context
        )
        self.start_time = time.perf_counter()
        self.logger.debug(f"{self.operation} started")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
        try:
            if exc_type is None:
                self.logger.info(f"{self.operation} completed", duration_ms=duration_ms)
            elif isinstance(exc_val, AlicerceError):
                self.logger.warning(
                    f"{self.operation} refused",
                    duration_ms=duration_ms,
                    error_type=exc_type.__name__,
                    error=str(exc_val),
                )
            else:
                self.logger.error(
                    f"{self.operation} failed",
                    duration_ms=duration_ms,
                    error_type=exc_type.__name__,
                    error=str(exc_val),
                    exc_info=True,
                )
        finally:
            structlog.contextvars.reset_contextvars(**self._tokens)
