"""Smoke runner logging: the service's JSON lines, tagged ``service=runner``.

Idempotent: calling setup_logging() multiple times won't duplicate handlers.
"""
from __future__ import annotations

import logging
import os
import sys

from order_intake.logging_conf import JsonFormatter


def setup_logging(level: str | int = os.getenv("LOG_LEVEL", "INFO")) -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter(service="runner"))
    root.setLevel(level)
    root.addHandler(handler)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or "runner")
