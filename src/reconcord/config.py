"""Configuration et chargement du fichier config JSON."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from reconcord.errors import ReconcordError, ValidationError

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR"})


class ConfigError(ValidationError):
    """Erreur de validation de la configuration."""


class ConfigFileError(ReconcordError):
    """Erreur de chargement du fichier de configuration (fichier absent, JSON invalide)."""


def _number(d: dict[str, Any], key: str, default: Any, cast: type) -> Any:
    """Convertit d[key] avec cast ; toute valeur non numérique lève ConfigError."""
    value = d.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{key} invalide: {value!r}")
    try:
        return cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} invalide: {value!r}") from e


@dataclass
class Config:
    """Configuration principale de Reconcord."""

    data_dir: str | None = None  # None = stockage en mémoire
    export_dir: str = "exports"

    match_min_hits: int = 1  # seuil de correspondance certaine
    suspect_min_hits: int = 1  # seuil de suspicion
    fuzzy_threshold: float = 90.0
    top_k: int = 5

    workers: int = 1
    parallel_min_rows: int = 200
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Config:
        match_min_hits = _number(d, "match_min_hits", 1, int)
        suspect_min_hits = _number(d, "suspect_min_hits", 1, int)
        fuzzy_threshold = _number(d, "fuzzy_threshold", 90.0, float)
        top_k = _number(d, "top_k", 5, int)
        workers = _number(d, "workers", 1, int)
        parallel_min_rows = _number(d, "parallel_min_rows", 200, int)
        log_level = str(d.get("log_level", "INFO")).upper()

        if match_min_hits < 1:
            raise ConfigError(f"match_min_hits doit être >= 1 (got {match_min_hits})")
        if suspect_min_hits < 1:
            raise ConfigError(f"suspect_min_hits doit être >= 1 (got {suspect_min_hits})")
        if suspect_min_hits > match_min_hits:
            raise ConfigError(
                f"suspect_min_hits ({suspect_min_hits}) doit être <= match_min_hits ({match_min_hits})"
            )
        if not 0 <= fuzzy_threshold <= 100:
            raise ConfigError(f"fuzzy_threshold doit être entre 0 et 100 (got {fuzzy_threshold})")
        if top_k < 1:
            raise ConfigError(f"top_k doit être >= 1 (got {top_k})")
        if workers < 1:
            raise ConfigError(f"workers doit être >= 1 (got {workers})")
        if parallel_min_rows < 0:
            raise ConfigError(f"parallel_min_rows doit être >= 0 (got {parallel_min_rows})")
        if log_level not in VALID_LOG_LEVELS:
            raise ConfigError(f"log_level invalide: {log_level!r}. Valides: {sorted(VALID_LOG_LEVELS)}")

        return cls(
            data_dir=d.get("data_dir"),
            export_dir=d.get("export_dir", "exports"),
            match_min_hits=match_min_hits,
            suspect_min_hits=suspect_min_hits,
            fuzzy_threshold=fuzzy_threshold,
            top_k=top_k,
            workers=workers,
            parallel_min_rows=parallel_min_rows,
            log_level=log_level,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_dir": self.data_dir,
            "export_dir": self.export_dir,
            "match_min_hits": self.match_min_hits,
            "suspect_min_hits": self.suspect_min_hits,
            "fuzzy_threshold": self.fuzzy_threshold,
            "top_k": self.top_k,
            "workers": self.workers,
            "parallel_min_rows": self.parallel_min_rows,
            "log_level": self.log_level,
        }

    @classmethod
    def load(cls, path: str | Path) -> Config:
        """
        Charge la configuration depuis un fichier JSON.

        Raises:
            ConfigFileError: Si le fichier est absent ou le JSON invalide.
            ConfigError: Si la configuration est invalide.
        """
        path = Path(path).resolve()
        if not path.exists():
            raise ConfigFileError(f"Fichier de configuration introuvable: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                d = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigFileError(f"JSON invalide dans {path}: {e}") from e
        except OSError as e:
            raise ConfigFileError(f"Impossible de lire {path}: {e}") from e

        if not isinstance(d, dict):
            raise ConfigFileError(f"Fichier de configuration invalide: {path} doit contenir un objet JSON")

        config = cls.from_dict(d)
        config.resolve_paths(path.parent)
        return config

    def resolve_paths(self, base_dir: Path) -> None:
        """
        Résout les chemins relatifs par rapport au répertoire de base (ex. dossier du fichier config).

        Modifie data_dir et export_dir en place.
        """
        base = Path(base_dir)
        if self.data_dir and not Path(self.data_dir).is_absolute():
            self.data_dir = str((base / self.data_dir).resolve())
        if self.export_dir and not Path(self.export_dir).is_absolute():
            self.export_dir = str((base / self.export_dir).resolve())
