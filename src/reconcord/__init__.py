"""Reconcord - Rapprochement de lignes entre un jeu source et un jeu cible."""

from reconcord.config import ConfigError, ConfigFileError
from reconcord.errors import (
    EngineError,
    ExportError,
    NotFoundError,
    ReconcordError,
    TransientError,
    ValidationError,
)

__all__ = [
    "__version__",
    "ReconcordError",
    "ValidationError",
    "NotFoundError",
    "EngineError",
    "ExportError",
    "TransientError",
    "ConfigError",
    "ConfigFileError",
]

__version__ = "0.1.0"
