"""Moteur de linkage : signal par paire, détection d'ambiguïté, partition finale."""

from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Sequence

from reconcord.config import Config
from reconcord.errors import EngineError, ReconcordError
from reconcord.matching.schema import (
    LinkResult,
    MatchCandidate,
    Matched,
    MatchResult,
    RowOutcome,
    Suspected,
    SuspectGroup,
    SuspectTarget,
    Unmatched,
)
from reconcord.matching.scorers import compile_rules, score_row_pair
from reconcord.records import Dataset
from reconcord.rules import Rule

logger = logging.getLogger(__name__)


@dataclass
class _RowDecision:
    """Classement provisoire d'une ligne source, avant résolution des cibles partagées."""

    source_index: int
    status: str  # matched, suspected, unmatched
    candidates: list[MatchCandidate] = field(default_factory=list)
    reason: str = ""
    errors: int = 0


class Linker:
    """Moteur de linkage entre source et cible."""

    def __init__(
        self,
        config: Config,
        rules: Sequence[Rule],
        field_types: dict[str, str] | None = None,
    ) -> None:
        self.config = config
        self.rules = tuple(rules)
        self.groups = compile_rules(self.rules, field_types)
        self.match_min_hits = config.match_min_hits
        self.suspect_min_hits = config.suspect_min_hits
        self.fuzzy_threshold = config.fuzzy_threshold
        self.top_k = config.top_k
        self.workers = config.workers
        self.parallel_min_rows = config.parallel_min_rows
        self.stats: dict[str, int] = {"pairs": 0, "rule_errors": 0}

    def run(self, source: Dataset, target: Dataset) -> LinkResult:
        """
        Exécute le matching pour toutes les lignes source.

        Returns:
            LinkResult : un résultat par ligne source et les cibles non réclamées.

        Raises:
            EngineError: Échec inattendu du moteur (les échecs de règle par paire
                sont récupérés localement).
        """
        source_rows = list(source)
        target_rows = list(target)
        try:
            if self.workers > 1 and len(source_rows) >= self.parallel_min_rows:
                with ThreadPoolExecutor(max_workers=self.workers) as pool:
                    decisions = list(
                        pool.map(
                            lambda i: self._decide_row(i, source_rows[i], target_rows),
                            range(len(source_rows)),
                        )
                    )
            else:
                decisions = [self._decide_row(i, row, target_rows) for i, row in enumerate(source_rows)]
        except ReconcordError:
            raise
        except Exception as e:
            raise EngineError(f"Échec du matching: {type(e).__name__}: {e}") from e

        # Toutes les lignes sont évaluées : résolution globale.
        self.stats["pairs"] = len(source_rows) * len(target_rows)
        self.stats["rule_errors"] = sum(d.errors for d in decisions)
        result = self._finalize(decisions, source_rows, target_rows)
        counts = result.counts()
        logger.info(
            "Matching terminé: %d matched, %d suspected, %d source / %d cible non appariées (%d erreurs de règle)",
            counts["matched_count"],
            counts["suspected_count"],
            counts["unmatched_source_count"],
            counts["unmatched_target_count"],
            self.stats["rule_errors"],
        )
        return result

    def _decide_row(
        self,
        source_index: int,
        source_row: dict[str, Any],
        target_rows: list[dict[str, Any]],
    ) -> _RowDecision:
        candidates: list[MatchCandidate] = []
        errors = 0
        for target_index, target_row in enumerate(target_rows):
            score = score_row_pair(source_row, target_row, self.groups, self.fuzzy_threshold)
            errors += score.errors
            if score.hits >= self.suspect_min_hits and score.winner is not None:
                candidates.append(
                    MatchCandidate(
                        target_index=target_index,
                        hits=score.hits,
                        rule=score.winner.rule.to_dict(),
                        rationale_statement=score.rationale,
                        matched_rules=score.matched_rules,
                    )
                )

        if not candidates:
            return _RowDecision(source_index, "unmatched", errors=errors)

        candidates.sort(key=lambda c: (-c.hits, c.target_index))
        best = candidates[0].hits
        top = [c for c in candidates if c.hits == best]
        if len(top) == 1 and best >= self.match_min_hits:
            return _RowDecision(source_index, "matched", [top[0]], errors=errors)

        # Égalité ou signal insuffisant : toutes les ex æquo sont conservées.
        kept = candidates[: max(self.top_k, len(top))]
        reason = "tie" if len(top) > 1 else "below_threshold"
        return _RowDecision(source_index, "suspected", kept, reason=reason, errors=errors)

    def _finalize(
        self,
        decisions: list[_RowDecision],
        source_rows: list[dict[str, Any]],
        target_rows: list[dict[str, Any]],
    ) -> LinkResult:
        """
        Construit la partition finale.

        Une cible réclamée par plusieurs correspondances certaines, ou citée
        dans un groupe suspect, rétrograde ces correspondances en suspectes.
        """
        claims = Counter(d.candidates[0].target_index for d in decisions if d.status == "matched")
        suspect_targets = {
            c.target_index for d in decisions if d.status == "suspected" for c in d.candidates
        }
        contested = {t for t, n in claims.items() if n > 1} | (set(claims) & suspect_targets)

        outcomes: list[RowOutcome] = []
        claimed: set[int] = set()
        for d in decisions:
            source_record = dict(source_rows[d.source_index])
            if d.status == "unmatched":
                outcomes.append(Unmatched(d.source_index, source_record))
                continue

            if d.status == "matched" and d.candidates[0].target_index not in contested:
                c = d.candidates[0]
                outcomes.append(
                    Matched(
                        MatchResult(
                            source_index=d.source_index,
                            target_index=c.target_index,
                            rule=c.rule,
                            rationale_statement=c.rationale_statement,
                            source_record=source_record,
                            target_record=dict(target_rows[c.target_index]),
                            hits=c.hits,
                            matched_rules=list(c.matched_rules),
                        )
                    )
                )
                claimed.add(c.target_index)
                continue

            reason = d.reason if d.status == "suspected" else "shared_target"
            group = SuspectGroup(
                source_index=d.source_index,
                source_record=source_record,
                targets=[
                    SuspectTarget(
                        target_index=c.target_index,
                        target_record=dict(target_rows[c.target_index]),
                        rule=c.rule,
                        rationale_statement=c.rationale_statement,
                        hits=c.hits,
                    )
                    for c in d.candidates
                ],
                reason=reason,
            )
            outcomes.append(Suspected(group))
            claimed.update(t.target_index for t in group.targets)

        unmatched_target = [
            (i, dict(row)) for i, row in enumerate(target_rows) if i not in claimed
        ]
        return LinkResult(outcomes=outcomes, unmatched_target=unmatched_target)
