"""Logging setup shared by the CLI and the web app."""
from __future__ import annotations

import logging
import sys

from flask import g, has_request_context

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [user=%(user_id)s shop=%(shop_id)s] %(message)s"

_HANDLER_NAME = "tailordesk"


class RequestContextFilter(logging.Filter):
    """Stamp records with the signed-in user and shop, when there is one."""

    def filter(self, record: logging.LogRecord) -> bool:
        user_id = shop_id = "-"
        if has_request_context():
            ctx = g.get("ctx")
            if ctx is not None:
                user_id = ctx.user_id
                shop_id = ctx.shop_id if ctx.shop_id is not None else "-"
        if not hasattr(record, "user_id"):
            record.user_id = user_id
        if not hasattr(record, "shop_id"):
            record.shop_id = shop_id
        return True


def configure_logging(level: str = "INFO", stream=None) -> logging.Logger:
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for h in root.handlers:
        if h.get_name() == _HANDLER_NAME:
            return root

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestContextFilter())
    root.addHandler(handler)

    # psycopg and urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("psycopg").setLevel(logging.WARNING)
    return root


def reset_logging() -> None:
    root = logging.getLogger()
    for h in list(root.handlers):
        if h.get_name() == _HANDLER_NAME:
            root.removeHandler(h)
