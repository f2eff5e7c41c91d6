"""JSON logging with the service name and current transaction reference."""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from qhome_pay.config import settings


txn_ref_ctx: ContextVar[str] = ContextVar("txn_ref", default="")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.SERVICE_NAME
        if not getattr(record, "txn_ref", ""):
            record.txn_ref = txn_ref_ctx.get()
        return True


def configure_logging() -> None:
    """Configure the root logger once per process."""

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    fmt = "%(asctime)s %(levelname)s %(service_name)s %(txn_ref)s %(name)s %(message)s"
    if settings.LOG_JSON:
        handler.setFormatter(JsonFormatter(fmt))
    else:
        handler.setFormatter(logging.Formatter(fmt))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL)


logger = logging.getLogger("qhome_pay")
