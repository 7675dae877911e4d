"""Cycle de vie des lots : création, re-run, lecture."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from reconcord.batch import Batch
from reconcord.config import Config
from reconcord.errors import ValidationError
from reconcord.fields import FieldRegistry
from reconcord.io_excel import check_extension, load_dataset
from reconcord.matching.linker import Linker
from reconcord.records import Dataset
from reconcord.rules import RuleSet
from reconcord.store import BatchStore, MemoryBatchStore

logger = logging.getLogger(__name__)

RERUN_SUFFIX = " (re-run)"


class BatchManager:
    """Ingestion des jeux, appel du moteur sur un snapshot des règles, persistance."""

    def __init__(
        self,
        config: Config,
        rules: RuleSet,
        store: BatchStore | None = None,
        fields: FieldRegistry | None = None,
    ) -> None:
        self.config = config
        self.rules = rules
        self.store = store if store is not None else MemoryBatchStore()
        self.fields = fields

    def create_batch(
        self,
        name: str,
        source_content: bytes,
        source_filename: str,
        target_content: bytes,
        target_filename: str,
    ) -> dict[str, Any]:
        """
        Parse les deux fichiers, exécute le matching et enregistre le lot.

        Returns:
            Résumé : batch_id, batch_name et les quatre compteurs.

        Raises:
            ValidationError: Nom vide, extension refusée, fichier illisible ou vide.
        """
        batch_name = (name or "").strip()
        if not batch_name:
            raise ValidationError("Le nom du lot est requis")
        # Extensions vérifiées avant toute lecture
        check_extension(source_filename)
        check_extension(target_filename)
        source = load_dataset(source_content, source_filename)
        target = load_dataset(target_content, target_filename)
        batch = self.run_datasets(batch_name, source, target)
        return batch.summary()

    def run_datasets(
        self,
        batch_name: str,
        source: Dataset,
        target: Dataset,
        *,
        parent_batch_id: str | None = None,
    ) -> Batch:
        """Exécute le moteur sur des jeux déjà parsés et persiste le lot obtenu."""
        if len(source) == 0 or len(target) == 0:
            raise ValidationError("Les jeux source et cible doivent contenir au moins une ligne")
        snapshot = self.rules.snapshot()
        field_types = self.fields.types() if self.fields is not None else None
        linker = Linker(self.config, snapshot, field_types)
        result = linker.run(source, target)

        batch = Batch(
            batch_id=uuid.uuid4().hex,
            batch_name=batch_name,
            created_at=datetime.now(timezone.utc).isoformat(),
            source_dataset=source,
            target_dataset=target,
            result=result,
            parent_batch_id=parent_batch_id,
            rule_snapshot=[r.to_dict() for r in snapshot],
            settings={
                "match_min_hits": self.config.match_min_hits,
                "suspect_min_hits": self.config.suspect_min_hits,
                "fuzzy_threshold": self.config.fuzzy_threshold,
                "top_k": self.config.top_k,
                "rule_errors": linker.stats["rule_errors"],
            },
        )
        self.store.save(batch)
        logger.info(
            "Lot %s (%s) enregistré: %d lignes source, %d lignes cible, %d règles",
            batch.batch_id,
            batch.batch_name,
            len(source),
            len(target),
            len(snapshot),
        )
        return batch

    def rerun(self, batch_id: str) -> dict[str, Any]:
        """
        Relance le matching sur les jeux d'origine d'un lot avec les règles actuelles.

        Le lot d'origine n'est pas modifié ; un nouveau lot est créé.

        Raises:
            NotFoundError: Si le lot est inconnu.
        """
        original = self.store.get(batch_id)
        base_name = original.batch_name
        if base_name.endswith(RERUN_SUFFIX):
            base_name = base_name[: -len(RERUN_SUFFIX)]
        batch = self.run_datasets(
            base_name + RERUN_SUFFIX,
            original.source_dataset,
            original.target_dataset,
            parent_batch_id=original.batch_id,
        )
        logger.info("Re-run de %s -> %s", original.batch_id, batch.batch_id)
        return batch.summary()

    def get_batch(self, batch_id: str) -> Batch:
        return self.store.get(batch_id)

    def get_results(self, batch_id: str) -> dict[str, Any]:
        """matched / suspected / unmatched_source / unmatched_target d'un lot."""
        return self.store.get(batch_id).result.results_payload()

    def list_batches(self) -> list[dict[str, Any]]:
        return [b.listing() for b in self.store.list()]
