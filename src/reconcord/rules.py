"""Règles de comparaison champ à champ et leur registre ordonné."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from reconcord.errors import NotFoundError, TransientError, ValidationError
from reconcord.predicate import PredicateError, compile_predicate

logger = logging.getLogger(__name__)

MATCH = "MATCH"
IGNORE = "IGNORE"
VALID_CLASSIFICATIONS = (MATCH, IGNORE)

# exact, normalized_exact, fuzzy, token_set, contains, custom
VALID_MATCH_TYPES = ("exact", "normalized_exact", "fuzzy", "token_set", "contains", "custom")

EDITABLE_KEYS = (
    "rule_name",
    "description",
    "source_field",
    "target_field",
    "select_if_both_same",
    "match_classification",
    "match_type",
    "rationale_statement",
    "code_block",
)


@dataclass(frozen=True)
class Rule:
    """Règle de comparaison entre un champ source et un champ cible."""

    rule_id: int
    rule_name: str
    source_field: str
    target_field: str
    description: str = ""
    select_if_both_same: bool = True
    match_classification: str = MATCH
    match_type: str = "exact"
    rationale_statement: str = ""
    code_block: str | None = None

    @property
    def field_pair(self) -> tuple[str, str]:
        return (self.source_field, self.target_field)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any], rule_id: int | None = None) -> Rule:
        """
        Construit et valide une règle.

        Raises:
            ValidationError: Si un attribut est absent ou invalide.
        """
        rid = rule_id if rule_id is not None else d.get("rule_id")
        if not isinstance(rid, int) or isinstance(rid, bool):
            raise ValidationError(f"rule_id invalide: {rid!r}")

        rule_name = str(d.get("rule_name") or "").strip()
        source_field = str(d.get("source_field") or "").strip()
        target_field = str(d.get("target_field") or "").strip()
        missing = [k for k, v in (("rule_name", rule_name), ("source_field", source_field), ("target_field", target_field)) if not v]
        if missing:
            raise ValidationError(f"Clé(s) requise(s) manquante(s): {', '.join(missing)}")

        classification = str(d.get("match_classification", MATCH)).upper()
        if classification not in VALID_CLASSIFICATIONS:
            raise ValidationError(
                f"match_classification invalide: {classification!r}. Valides: {list(VALID_CLASSIFICATIONS)}"
            )
        match_type = str(d.get("match_type", "exact")).lower()
        if match_type not in VALID_MATCH_TYPES:
            raise ValidationError(f"match_type invalide: {match_type!r}. Valides: {list(VALID_MATCH_TYPES)}")

        select_if_both_same = d.get("select_if_both_same", True)
        if not isinstance(select_if_both_same, bool):
            raise ValidationError(f"select_if_both_same doit être un booléen (got {select_if_both_same!r})")

        code_block = d.get("code_block")
        if code_block is not None and not str(code_block).strip():
            code_block = None
        if match_type == "custom" and code_block is None:
            raise ValidationError("match_type 'custom' requiert un code_block")

        return cls(
            rule_id=rid,
            rule_name=rule_name,
            source_field=source_field,
            target_field=target_field,
            description=str(d.get("description") or ""),
            select_if_both_same=select_if_both_same,
            match_classification=classification,
            match_type=match_type,
            rationale_statement=str(d.get("rationale_statement") or ""),
            code_block=str(code_block) if code_block is not None else None,
        )


def rule_options() -> dict[str, list[str]]:
    """Valeurs proposées pour les listes déroulantes de l'écran des règles."""
    return {
        "match_classification": list(VALID_CLASSIFICATIONS),
        "match_types": list(VALID_MATCH_TYPES),
    }


class RuleSet:
    """
    Collection ordonnée de règles, modifiable par identifiant.

    Les exécutions du moteur travaillent sur ``snapshot()`` : un tuple de
    règles figées, insensible aux modifications ultérieures.
    """

    def __init__(self, path: str | Path | None = None, fields: Any = None) -> None:
        self._rules: list[Rule] = []
        self._next_id = 1
        self._lock = threading.RLock()
        self._path = Path(path) if path else None
        self._fields = fields  # FieldRegistry optionnel
        if self._path is not None and self._path.exists():
            self._load()

    def all(self) -> list[Rule]:
        with self._lock:
            return list(self._rules)

    def snapshot(self) -> tuple[Rule, ...]:
        with self._lock:
            return tuple(self._rules)

    def get(self, rule_id: int) -> Rule:
        with self._lock:
            for r in self._rules:
                if r.rule_id == rule_id:
                    return r
        raise NotFoundError(f"Règle introuvable: {rule_id}")

    def uses_field(self, field_name: str) -> list[Rule]:
        with self._lock:
            return [r for r in self._rules if field_name in r.field_pair]

    def create(self, data: dict[str, Any]) -> Rule:
        with self._lock:
            rule = Rule.from_dict(data, rule_id=self._next_id)
            self._check(rule)
            self._commit([*self._rules, rule], self._next_id + 1)
        logger.info("Règle créée: #%d %s (%s -> %s)", rule.rule_id, rule.rule_name, rule.source_field, rule.target_field)
        return rule

    def update(self, rule_id: int, data: dict[str, Any]) -> Rule:
        """
        Met à jour les attributs fournis d'une règle ; rule_id n'est pas modifiable.

        Raises:
            NotFoundError: Si la règle n'existe pas.
            ValidationError: Si la règle résultante est invalide.
        """
        with self._lock:
            current = self.get(rule_id)
            merged = current.to_dict()
            merged.update({k: v for k, v in data.items() if k in EDITABLE_KEYS})
            rule = Rule.from_dict(merged, rule_id=rule_id)
            self._check(rule)
            rules = [rule if r.rule_id == rule_id else r for r in self._rules]
            self._commit(rules, self._next_id)
        logger.info("Règle modifiée: #%d %s", rule.rule_id, rule.rule_name)
        return rule

    def delete(self, rule_id: int) -> None:
        with self._lock:
            self.get(rule_id)
            self._commit([r for r in self._rules if r.rule_id != rule_id], self._next_id)
        logger.info("Règle supprimée: #%d", rule_id)

    def reorder(self, rule_ids: list[int]) -> None:
        """Réordonne les règles ; la liste doit contenir tous les identifiants existants."""
        with self._lock:
            by_id = {r.rule_id: r for r in self._rules}
            if sorted(rule_ids) != sorted(by_id):
                raise ValidationError("reorder attend exactement les identifiants des règles existantes")
            self._commit([by_id[i] for i in rule_ids], self._next_id)

    def _check(self, rule: Rule) -> None:
        fields = self._fields
        if fields is not None and len(fields) > 0:
            for name in rule.field_pair:
                if not fields.is_usable(name):
                    raise ValidationError(f"Champ non configuré ou inactif: {name!r}")
        if rule.code_block is not None:
            try:
                compile_predicate(rule.code_block)
            except PredicateError as e:
                # accepté : la règle sera ignorée à l'évaluation
                logger.warning("code_block invalide pour la règle %r: %s", rule.rule_name, e)

    def _commit(self, rules: list[Rule], next_id: int) -> None:
        if self._path is not None:
            self._write({"next_id": next_id, "rules": [r.to_dict() for r in rules]})
        self._rules = rules
        self._next_id = next_id

    def _write(self, data: dict[str, Any]) -> None:
        assert self._path is not None
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            tmp.replace(self._path)
        except OSError as e:
            raise TransientError(f"Impossible d'écrire {self._path}: {e}") from e

    def _load(self) -> None:
        assert self._path is not None
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise TransientError(f"Impossible de lire {self._path}: {e}") from e
        self._rules = [Rule.from_dict(d) for d in data.get("rules", [])]
        default_next = max((r.rule_id for r in self._rules), default=0) + 1
        self._next_id = max(int(data.get("next_id", 1)), default_next)

