"""Texte de justification d'une correspondance à partir du modèle de la règle."""

from __future__ import annotations

import re
from typing import Any

from reconcord.normalize import safe_str
from reconcord.rules import Rule

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def render_rationale(rule: Rule, source_value: Any, target_value: Any, hits: int) -> str:
    """
    Remplit le modèle ``rationale_statement`` de la règle gagnante.

    Variables : {source_value}, {target_value}, {source_field}, {target_field},
    {rule_name}, {hits}. Un nom inconnu est laissé tel quel.
    """
    values = {
        "source_value": safe_str(source_value),
        "target_value": safe_str(target_value),
        "source_field": rule.source_field,
        "target_field": rule.target_field,
        "rule_name": rule.rule_name,
        "hits": str(hits),
    }
    template = rule.rationale_statement.strip()
    if not template:
        return (
            f"{rule.rule_name}: {rule.source_field}={values['source_value']!r} "
            f"correspond à {rule.target_field}={values['target_value']!r}"
        )
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)
