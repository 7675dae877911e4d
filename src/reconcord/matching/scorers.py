"""Évaluation des règles sur une paire de lignes source / cible."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from rapidfuzz import fuzz

from reconcord.matching.rationale import render_rationale
from reconcord.normalize import coerce_value, is_missing, norm_text
from reconcord.predicate import Predicate, PredicateError, compile_predicate
from reconcord.rules import IGNORE, Rule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledRule:
    """Règle prête à l'évaluation : prédicat compilé, types des champs résolus."""

    rule: Rule
    position: int  # rang dans le Rule Set
    predicate: Predicate | None = None
    error: str | None = None  # code_block invalide
    source_type: str | None = None
    target_type: str | None = None


@dataclass
class PairScore:
    """Signal d'une paire : nombre de couples de champs concordants et règle gagnante."""

    hits: int = 0
    winner: CompiledRule | None = None
    winner_values: tuple[Any, Any] = (None, None)
    matched_rules: list[str] = field(default_factory=list)
    errors: int = 0

    @property
    def rationale(self) -> str:
        if self.winner is None:
            return ""
        return render_rationale(self.winner.rule, *self.winner_values, hits=self.hits)


def compile_rules(
    rules: Sequence[Rule],
    field_types: dict[str, str] | None = None,
) -> list[list[CompiledRule]]:
    """
    Compile un snapshot de règles, groupées par couple (source_field, target_field).

    Les groupes suivent l'ordre de première apparition ; dans un groupe, l'ordre
    du Rule Set est conservé.
    """
    types = field_types or {}
    groups: dict[tuple[str, str], list[CompiledRule]] = {}
    for position, rule in enumerate(rules):
        predicate = None
        error = None
        try:
            predicate = compile_predicate(rule.code_block)
        except PredicateError as e:
            error = str(e)
            logger.warning("Règle #%d %r ignorée: %s", rule.rule_id, rule.rule_name, e)
        compiled = CompiledRule(
            rule=rule,
            position=position,
            predicate=predicate,
            error=error,
            source_type=types.get(rule.source_field),
            target_type=types.get(rule.target_field),
        )
        groups.setdefault(rule.field_pair, []).append(compiled)
    return list(groups.values())


def score_field(source_val: str, target_val: str, method: str) -> float:
    """
    Calcule le score (0-100) de similarité entre deux textes normalisés.

    Args:
        source_val: Valeur source.
        target_val: Valeur cible.
        method: fuzzy, token_set ou contains.

    Returns:
        Score entre 0 et 100.
    """
    s = norm_text(source_val, remove_diacritics=True)
    t = norm_text(target_val, remove_diacritics=True)
    if not s or not t:
        return 0.0

    if method == "token_set":
        return float(fuzz.token_set_ratio(s, t))

    if method == "contains":
        if s in t or t in s:
            return 100.0
        return float(fuzz.partial_ratio(s, t))

    return float(fuzz.ratio(s, t))


def evaluate_rule(compiled: CompiledRule, source_val: Any, target_val: Any, fuzzy_threshold: float) -> bool:
    """
    Indique si une règle MATCH produit un signal pour une paire de valeurs.

    Raises:
        PredicateError: code_block invalide ou en échec, règle custom sans code.
    """
    rule = compiled.rule
    if compiled.error is not None:
        raise PredicateError(compiled.error)
    if compiled.predicate is not None:
        return compiled.predicate(source_val, target_val)

    if is_missing(source_val) or is_missing(target_val):
        return False

    method = rule.match_type
    if method == "exact":
        if not rule.select_if_both_same:
            return False
        return coerce_value(source_val, compiled.source_type) == coerce_value(target_val, compiled.target_type)

    if method == "normalized_exact":
        if not rule.select_if_both_same:
            return False
        return norm_text(str(source_val), remove_diacritics=True) == norm_text(str(target_val), remove_diacritics=True)

    if method == "custom":
        raise PredicateError(f"Règle custom {rule.rule_name!r} sans code_block")

    return score_field(str(source_val), str(target_val), method) >= fuzzy_threshold


def score_row_pair(
    source_row: dict[str, Any],
    target_row: dict[str, Any],
    groups: list[list[CompiledRule]],
    fuzzy_threshold: float,
) -> PairScore:
    """
    Calcule le signal entre une ligne source et une ligne cible.

    - Chaque couple de champs apporte au plus un signal.
    - Dans un couple, les règles sont essayées dans l'ordre : IGNORE arrête
      l'évaluation du couple, une règle en échec est sautée, la première règle
      qui concorde l'emporte.
    - La règle gagnante de la paire est celle de plus petit rang ayant concordé.
    """
    score = PairScore()
    for group in groups:
        src_col, tgt_col = group[0].rule.field_pair
        if src_col not in source_row or tgt_col not in target_row:
            continue
        src_val = source_row[src_col]
        tgt_val = target_row[tgt_col]
        for compiled in group:
            if compiled.rule.match_classification == IGNORE:
                break
            try:
                hit = evaluate_rule(compiled, src_val, tgt_val, fuzzy_threshold)
            except PredicateError as e:
                score.errors += 1
                logger.debug("Règle #%d sautée pour la paire: %s", compiled.rule.rule_id, e)
                continue
            if hit:
                score.hits += 1
                score.matched_rules.append(compiled.rule.rule_name)
                if score.winner is None or compiled.position < score.winner.position:
                    score.winner = compiled
                    score.winner_values = (src_val, tgt_val)
                break
    return score
