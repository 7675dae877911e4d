"""Stockage des lots : en mémoire (tests) ou fichiers JSON (un fichier par lot)."""

from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from reconcord.batch import Batch
from reconcord.errors import NotFoundError, TransientError


class BatchStore(ABC):
    """Interface de stockage : écriture atomique, lecture par identifiant."""

    @abstractmethod
    def save(self, batch: Batch) -> None:
        """Enregistre un lot complet, ou rien en cas d'échec."""

    @abstractmethod
    def get(self, batch_id: str) -> Batch:
        """
        Raises:
            NotFoundError: Si le lot est inconnu.
        """

    @abstractmethod
    def list(self) -> list[Batch]:
        """Tous les lots, du plus récent au plus ancien."""


class MemoryBatchStore(BatchStore):
    """Lots conservés sous forme sérialisée ; chaque lecture renvoie une copie indépendante."""

    def __init__(self) -> None:
        self._batches: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save(self, batch: Batch) -> None:
        data = copy.deepcopy(batch.to_dict())
        with self._lock:
            self._batches[batch.batch_id] = data

    def get(self, batch_id: str) -> Batch:
        with self._lock:
            data = self._batches.get(batch_id)
        if data is None:
            raise NotFoundError(f"Lot introuvable: {batch_id}")
        return Batch.from_dict(copy.deepcopy(data))

    def list(self) -> list[Batch]:
        with self._lock:
            snapshot = list(self._batches.values())
        batches = [Batch.from_dict(copy.deepcopy(d)) for d in snapshot]
        return sorted(batches, key=lambda b: b.created_at, reverse=True)


class JsonBatchStore(BatchStore):
    """
    Un fichier ``<batch_id>.json`` par lot dans ``directory``.

    L'écriture passe par un fichier temporaire du même dossier puis
    ``os.replace`` : un lecteur voit le lot complet ou ne le voit pas.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransientError(f"Impossible de créer {self.directory}: {e}") from e

    def _path(self, batch_id: str) -> Path:
        if not batch_id or "/" in batch_id or "\\" in batch_id or batch_id.startswith("."):
            raise NotFoundError(f"Lot introuvable: {batch_id}")
        return self.directory / f"{batch_id}.json"

    def save(self, batch: Batch) -> None:
        path = self._path(batch.batch_id)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(batch.to_dict(), f, ensure_ascii=False, default=str)
            os.replace(tmp_name, path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise TransientError(f"Impossible d'enregistrer le lot {batch.batch_id}: {e}") from e
        except (TypeError, ValueError):
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, batch_id: str) -> Batch:
        path = self._path(batch_id)
        if not path.exists():
            raise NotFoundError(f"Lot introuvable: {batch_id}")
        try:
            with open(path, encoding="utf-8") as f:
                return Batch.from_dict(json.load(f))
        except (OSError, json.JSONDecodeError) as e:
            raise TransientError(f"Impossible de lire le lot {batch_id}: {e}") from e

    def list(self) -> list[Batch]:
        batches = [self.get(p.stem) for p in self.directory.glob("*.json") if not p.name.startswith(".")]
        return sorted(batches, key=lambda b: b.created_at, reverse=True)
