"""Génération du rapport et onglet REPORT."""

from __future__ import annotations

from datetime import datetime

import pandas as pd

from reconcord import __version__
from reconcord.batch import Batch


def build_report_df(batch: Batch) -> pd.DataFrame:
    """
    Construit le DataFrame pour l'onglet REPORT.

    Contient : compteurs des quatre catégories, tailles des jeux, paramètres
    du run, règles utilisées, horodatage, version.
    """
    counts = batch.result.counts()
    rows = [
        ("batch_id", batch.batch_id),
        ("batch_name", batch.batch_name),
        ("created_at", batch.created_at),
        ("parent_batch_id", batch.parent_batch_id or ""),
        ("", ""),
        ("nb_source_rows", len(batch.source_dataset)),
        ("nb_target_rows", len(batch.target_dataset)),
        ("nb_matched", counts["matched_count"]),
        ("nb_suspected", counts["suspected_count"]),
        ("nb_unmatched_source", counts["unmatched_source_count"]),
        ("nb_unmatched_target", counts["unmatched_target_count"]),
        ("", ""),
        ("Parameters", ""),
    ]
    for key, value in batch.settings.items():
        rows.append((key, value))
    rows.extend([("", ""), ("Rules", "")])
    for i, r in enumerate(batch.rule_snapshot):
        rows.append(
            (
                f"rule_{i}",
                f"#{r.get('rule_id')} {r.get('rule_name')}: {r.get('source_field')}->{r.get('target_field')} "
                f"{r.get('match_classification')} {r.get('match_type')}",
            )
        )
    rows.extend(
        [
            ("", ""),
            ("timestamp", datetime.now().isoformat()),
            ("version", __version__),
        ]
    )
    return pd.DataFrame(rows, columns=["Key", "Value"])


def print_report_console(batch: Batch) -> None:
    """Affiche un résumé du lot en console."""
    counts = batch.result.counts()
    print("\n=== Reconcord Report ===")
    print(f"  Lot:                 {batch.batch_name} ({batch.batch_id})")
    print(f"  Lignes source:       {len(batch.source_dataset)}")
    print(f"  Lignes cible:        {len(batch.target_dataset)}")
    print(f"  Matched:             {counts['matched_count']}")
    print(f"  Suspected:           {counts['suspected_count']}")
    print(f"  Source non appariée: {counts['unmatched_source_count']}")
    print(f"  Cible non appariée:  {counts['unmatched_target_count']}")
    print(f"  Version:             {__version__}")
    print("========================\n")
