# library_management/core/logging.py
import json
import logging
from logging import Logger
from typing import Any, Dict, Optional
from contextvars import ContextVar
from .config import settings


# Identificador de la operación en curso (un checkout, una devolución).
# Lo fijan los servicios del ciclo de préstamos; las reglas de flush lo heredan.
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Lo que trae cualquier LogRecord; el resto viene de `extra=`
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """
    Una línea JSON por evento del ciclo de préstamos y del catálogo.

    Los mensajes son nombres de evento (`checkout_completed`,
    `return_transition`, `constraint_violation`...) y los datos van en
    `extra=`: loan_id, copy_id, member_id, reason, new_status.
    """

    def format(self, record: logging.LogRecord) -> str:
        log: Dict[str, Any] = {
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in log
        )

        corr_id = correlation_id_ctx.get()
        if corr_id is not None:
            log.setdefault("correlation_id", corr_id)

        if record.exc_info:
            log["exc_info"] = self.formatException(record.exc_info)

        # fechas y Decimal de `extra` salen como texto
        return json.dumps(log, ensure_ascii=False, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    """Deja un único handler JSON en el logger raíz (lo usa `python -m ...init_db`)."""
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)


def get_logger(name: str) -> Logger:
    # library.loans, library.catalog, library.db
    return logging.getLogger(name)
