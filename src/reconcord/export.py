"""Export d'un lot : classeur xlsx multi-feuilles et mapping CSV."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import pandas as pd

from reconcord.batch import Batch
from reconcord.errors import ExportError
from reconcord.io_excel import save_xlsx
from reconcord.report import build_report_df
from reconcord.store import BatchStore

logger = logging.getLogger(__name__)

SHEET_MATCHED = "MATCHED"
SHEET_SUSPECTED = "SUSPECTED"
SHEET_UNMATCHED_SOURCE = "UNMATCHED_SOURCE"
SHEET_UNMATCHED_TARGET = "UNMATCHED_TARGET"
SHEET_REPORT = "REPORT"


def _prefixed(record: dict[str, Any], prefix: str) -> dict[str, Any]:
    return {f"{prefix}.{k}": v for k, v in record.items()}


def _rule_name(rule: dict[str, Any] | None) -> str:
    return (rule or {}).get("rule_name", "") or ""


def build_export_frames(batch: Batch) -> dict[str, pd.DataFrame]:
    """
    Construit les feuilles de l'export, dans l'ordre d'écriture.

    Les colonnes des enregistrements sont préfixées ``source.`` / ``target.`` ;
    une catégorie vide donne une feuille avec en-têtes seulement.
    """
    source_cols = [f"source.{c}" for c in batch.source_dataset.columns]
    target_cols = [f"target.{c}" for c in batch.target_dataset.columns]

    matched_rows = [
        {
            "source_index": m.source_index,
            "target_index": m.target_index,
            "rule_name": _rule_name(m.rule),
            "hits": m.hits,
            "matched_rules": ", ".join(m.matched_rules),
            "rationale_statement": m.rationale_statement,
            **_prefixed(m.source_record, "source"),
            **_prefixed(m.target_record, "target"),
        }
        for m in batch.matched
    ]
    matched_cols = ["source_index", "target_index", "rule_name", "hits", "matched_rules", "rationale_statement"]

    suspected_rows = [
        {
            "source_index": g.source_index,
            "target_index": t.target_index,
            "reason": g.reason,
            "rule_name": _rule_name(t.rule),
            "hits": t.hits,
            "rationale_statement": t.rationale_statement,
            **_prefixed(g.source_record, "source"),
            **_prefixed(t.target_record, "target"),
        }
        for g in batch.suspected
        for t in g.targets
    ]
    suspected_cols = ["source_index", "target_index", "reason", "rule_name", "hits", "rationale_statement"]

    unmatched_source = [{"row_index": i, **r} for i, r in batch.unmatched_source]
    unmatched_target = [{"row_index": i, **r} for i, r in batch.unmatched_target]

    return {
        SHEET_MATCHED: pd.DataFrame(matched_rows, columns=matched_cols + source_cols + target_cols),
        SHEET_SUSPECTED: pd.DataFrame(suspected_rows, columns=suspected_cols + source_cols + target_cols),
        SHEET_UNMATCHED_SOURCE: pd.DataFrame(
            unmatched_source, columns=["row_index", *batch.source_dataset.columns]
        ),
        SHEET_UNMATCHED_TARGET: pd.DataFrame(
            unmatched_target, columns=["row_index", *batch.target_dataset.columns]
        ),
        SHEET_REPORT: build_report_df(batch),
    }


def export_file_name(batch: Batch) -> str:
    base = re.sub(r"[^\w\-]+", "_", batch.batch_name).strip("_") or "batch"
    return f"{base}_{batch.batch_id[:8]}.xlsx"


def build_mapping_csv(batch: Batch, output_path: str | Path) -> None:
    """
    Génère mapping.csv : une ligne par paire source/cible retenue ou suspecte.
    """
    rows = []
    for m in batch.matched:
        rows.append(
            {
                "source_index": m.source_index,
                "target_index": m.target_index,
                "status": "matched",
                "hits": m.hits,
                "rule_name": _rule_name(m.rule),
                "rationale_statement": m.rationale_statement,
            }
        )
    for g in batch.suspected:
        for t in g.targets:
            rows.append(
                {
                    "source_index": g.source_index,
                    "target_index": t.target_index,
                    "status": "suspected",
                    "hits": t.hits,
                    "rule_name": _rule_name(t.rule),
                    "rationale_statement": t.rationale_statement,
                }
            )
    for i, _ in batch.unmatched_source:
        rows.append({"source_index": i, "target_index": "", "status": "unmatched", "hits": 0})
    df = pd.DataFrame(
        rows,
        columns=["source_index", "target_index", "status", "hits", "rule_name", "rationale_statement"],
    )
    df.to_csv(output_path, index=False, encoding="utf-8")


class Exporter:
    """Écrit l'export xlsx d'un lot dans ``export_dir``."""

    def __init__(self, store: BatchStore, export_dir: str | Path) -> None:
        self.store = store
        self.export_dir = Path(export_dir)

    def export(self, batch_id: str) -> dict[str, str]:
        """
        Sérialise les catégories d'un lot en un classeur xlsx.

        Returns:
            {file_name, file_link} (file_link est une URI file://).

        Raises:
            NotFoundError: Si le lot est inconnu.
            ExportError: Si l'écriture échoue (le fichier partiel est supprimé).
        """
        batch = self.store.get(batch_id)
        file_name = export_file_name(batch)
        path = (self.export_dir / file_name).resolve()
        try:
            frames = build_export_frames(batch)
            self.export_dir.mkdir(parents=True, exist_ok=True)
            save_xlsx(path, frames)
        except Exception as e:
            path.unlink(missing_ok=True)
            raise ExportError(f"Échec de l'export du lot {batch_id}: {e}") from e
        logger.info("Lot %s exporté: %s", batch_id, path)
        return {"file_name": file_name, "file_link": path.as_uri()}
