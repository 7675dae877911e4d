"""Initialisation du logging applicatif."""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "reconcord"


class LabeledFormatter(logging.Formatter):
    """Préfixe chaque message par un libellé court du niveau."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        text = f"{label} {record.name}: {record.getMessage()}"
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure le logger ``reconcord`` (idempotent).

    Un seul handler sur stderr ; les modules utilisent ``logging.getLogger(__name__)``.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def reset_logging() -> None:
    """Retire les handlers installés par setup_logging (tests)."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
