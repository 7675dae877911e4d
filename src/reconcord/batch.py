"""Lot : une exécution du moteur sur un couple de jeux source / cible."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from reconcord.matching.schema import LinkResult, MatchResult, SuspectGroup
from reconcord.records import Dataset


@dataclass(frozen=True)
class Batch:
    """Lot persisté ; jamais modifié après création (un re-run crée un nouveau lot)."""

    batch_id: str
    batch_name: str
    created_at: str
    source_dataset: Dataset
    target_dataset: Dataset
    result: LinkResult
    parent_batch_id: str | None = None
    rule_snapshot: list[dict[str, Any]] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)

    @property
    def matched(self) -> list[MatchResult]:
        return self.result.matched

    @property
    def suspected(self) -> list[SuspectGroup]:
        return self.result.suspected

    @property
    def unmatched_source(self) -> list[tuple[int, dict[str, Any]]]:
        return self.result.unmatched_source

    @property
    def unmatched_target(self) -> list[tuple[int, dict[str, Any]]]:
        return self.result.unmatched_target

    def summary(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "batch_name": self.batch_name,
            **self.result.counts(),
        }

    def listing(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "batch_name": self.batch_name,
            "created_at": self.created_at,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "batch_name": self.batch_name,
            "created_at": self.created_at,
            "parent_batch_id": self.parent_batch_id,
            "source_dataset": self.source_dataset.to_dict(),
            "target_dataset": self.target_dataset.to_dict(),
            "result": self.result.to_dict(),
            "rule_snapshot": self.rule_snapshot,
            "settings": self.settings,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Batch:
        return cls(
            batch_id=d["batch_id"],
            batch_name=d["batch_name"],
            created_at=d["created_at"],
            source_dataset=Dataset.from_dict(d["source_dataset"]),
            target_dataset=Dataset.from_dict(d["target_dataset"]),
            result=LinkResult.from_dict(d["result"]),
            parent_batch_id=d.get("parent_batch_id"),
            rule_snapshot=list(d.get("rule_snapshot", [])),
            settings=dict(d.get("settings", {})),
        )
