"""Schémas et types pour le matching."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Union

Row = dict[str, Any]


@dataclass
class MatchCandidate:
    """Un candidat de correspondance pour une ligne source."""

    target_index: int
    hits: int
    rule: dict[str, Any] | None  # règle gagnante, figée au moment du matching
    rationale_statement: str = ""
    matched_rules: list[str] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"MatchCandidate(target_row={self.target_index}, hits={self.hits})"


@dataclass
class MatchResult:
    """Paire source/cible retenue comme correspondance certaine."""

    source_index: int
    target_index: int
    rule: dict[str, Any] | None
    rationale_statement: str
    source_record: Row
    target_record: Row
    hits: int = 0
    matched_rules: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_index": self.source_index,
            "target_index": self.target_index,
            "rule": copy.deepcopy(self.rule),
            "rationale_statement": self.rationale_statement,
            "source_record": dict(self.source_record),
            "target_record": dict(self.target_record),
            "hits": self.hits,
            "matched_rules": list(self.matched_rules),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MatchResult:
        return cls(
            source_index=d["source_index"],
            target_index=d["target_index"],
            rule=d.get("rule"),
            rationale_statement=d.get("rationale_statement", ""),
            source_record=d.get("source_record", {}),
            target_record=d.get("target_record", {}),
            hits=d.get("hits", 0),
            matched_rules=list(d.get("matched_rules", [])),
        )


@dataclass
class SuspectTarget:
    """Cible plausible d'un groupe suspect."""

    target_index: int
    target_record: Row
    rule: dict[str, Any] | None
    rationale_statement: str
    hits: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_index": self.target_index,
            "target_record": dict(self.target_record),
            "rule": copy.deepcopy(self.rule),
            "rationale_statement": self.rationale_statement,
            "hits": self.hits,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SuspectTarget:
        return cls(
            target_index=d["target_index"],
            target_record=d.get("target_record", {}),
            rule=d.get("rule"),
            rationale_statement=d.get("rationale_statement", ""),
            hits=d.get("hits", 0),
        )


@dataclass
class SuspectGroup:
    """Une ligne source et ses cibles plausibles, aucune n'étant certaine."""

    source_index: int
    source_record: Row
    targets: list[SuspectTarget]
    reason: str = ""  # tie, below_threshold, shared_target

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_index": self.source_index,
            "source_record": dict(self.source_record),
            "targets": [t.to_dict() for t in self.targets],
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SuspectGroup:
        return cls(
            source_index=d["source_index"],
            source_record=d.get("source_record", {}),
            targets=[SuspectTarget.from_dict(t) for t in d.get("targets", [])],
            reason=d.get("reason", ""),
        )


@dataclass(frozen=True)
class Matched:
    result: MatchResult
    kind: str = "matched"

    @property
    def source_index(self) -> int:
        return self.result.source_index


@dataclass(frozen=True)
class Suspected:
    group: SuspectGroup
    kind: str = "suspected"

    @property
    def source_index(self) -> int:
        return self.group.source_index


@dataclass(frozen=True)
class Unmatched:
    source_index: int
    source_record: Row
    kind: str = "unmatched"


RowOutcome = Union[Matched, Suspected, Unmatched]


def outcome_to_dict(outcome: RowOutcome) -> dict[str, Any]:
    if isinstance(outcome, Matched):
        return {"kind": outcome.kind, **outcome.result.to_dict()}
    if isinstance(outcome, Suspected):
        return {"kind": outcome.kind, **outcome.group.to_dict()}
    return {"kind": outcome.kind, "source_index": outcome.source_index, "source_record": dict(outcome.source_record)}


def outcome_from_dict(d: dict[str, Any]) -> RowOutcome:
    kind = d.get("kind")
    if kind == "matched":
        return Matched(MatchResult.from_dict(d))
    if kind == "suspected":
        return Suspected(SuspectGroup.from_dict(d))
    if kind == "unmatched":
        return Unmatched(d["source_index"], d.get("source_record", {}))
    raise ValueError(f"Type de résultat inconnu: {kind!r}")


@dataclass
class LinkResult:
    """
    Partition d'un run : un résultat par ligne source, plus les cibles non réclamées.

    Les trois listes (matched / suspected / unmatched) sont dérivées de
    ``outcomes`` ; chaque ligne source apparaît donc exactement une fois.
    """

    outcomes: list[RowOutcome]
    unmatched_target: list[tuple[int, Row]]

    @property
    def matched(self) -> list[MatchResult]:
        return [o.result for o in self.outcomes if isinstance(o, Matched)]

    @property
    def suspected(self) -> list[SuspectGroup]:
        return [o.group for o in self.outcomes if isinstance(o, Suspected)]

    @property
    def unmatched_source(self) -> list[tuple[int, Row]]:
        return [(o.source_index, o.source_record) for o in self.outcomes if isinstance(o, Unmatched)]

    def counts(self) -> dict[str, int]:
        return {
            "matched_count": len(self.matched),
            "suspected_count": len(self.suspected),
            "unmatched_source_count": len(self.unmatched_source),
            "unmatched_target_count": len(self.unmatched_target),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcomes": [outcome_to_dict(o) for o in self.outcomes],
            "unmatched_target": [{"index": i, "record": dict(r)} for i, r in self.unmatched_target],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> LinkResult:
        return cls(
            outcomes=[outcome_from_dict(o) for o in d.get("outcomes", [])],
            unmatched_target=[(u["index"], u["record"]) for u in d.get("unmatched_target", [])],
        )

    def results_payload(self) -> dict[str, Any]:
        """Forme renvoyée par get_batch_results."""
        return {
            "matched": [m.to_dict() for m in self.matched],
            "suspected": [s.to_dict() for s in self.suspected],
            "unmatched_source": [dict(r) for _, r in self.unmatched_source],
            "unmatched_target": [dict(r) for _, r in self.unmatched_target],
            "unmatched_source_indices": [i for i, _ in self.unmatched_source],
            "unmatched_target_indices": [i for i, _ in self.unmatched_target],
        }
