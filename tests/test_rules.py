"""Tests du registre de règles."""

import json
from pathlib import Path
from typing import Any

import pytest

from reconcord.errors import NotFoundError, ValidationError
from reconcord.fields import FieldRegistry
from reconcord.rules import Rule, RuleSet, rule_options


def _data(**kwargs: Any) -> dict[str, Any]:
    data = {
        "rule_name": "email_exact",
        "source_field": "email",
        "target_field": "email",
        "match_type": "exact",
    }
    data.update(kwargs)
    return data


def test_create_assigns_incremental_ids() -> None:
    rules = RuleSet()
    r1 = rules.create(_data())
    r2 = rules.create(_data(rule_name="name", source_field="name", target_field="name"))
    assert (r1.rule_id, r2.rule_id) == (1, 2)
    assert [r.rule_name for r in rules.all()] == ["email_exact", "name"]


def test_ids_not_reused_after_delete() -> None:
    rules = RuleSet()
    rules.create(_data())
    rules.delete(1)
    assert rules.create(_data()).rule_id == 2


def test_rule_defaults_and_case() -> None:
    rule = Rule.from_dict(_data(match_classification="match", match_type="FUZZY"), rule_id=1)
    assert rule.match_classification == "MATCH"
    assert rule.match_type == "fuzzy"
    assert rule.select_if_both_same is True
    assert rule.code_block is None


@pytest.mark.parametrize(
    ("data", "message"),
    [
        ({"rule_name": "x", "source_field": "a"}, "manquante"),
        (_data(match_classification="MAYBE"), "match_classification"),
        (_data(match_type="soundex"), "match_type"),
        (_data(select_if_both_same="yes"), "booléen"),
        (_data(match_type="custom"), "code_block"),
    ],
)
def test_create_invalid(data: dict[str, Any], message: str) -> None:
    rules = RuleSet()
    with pytest.raises(ValidationError, match=message):
        rules.create(data)
    assert rules.all() == []


def test_update_merges_attributes() -> None:
    rules = RuleSet()
    rules.create(_data(description="d"))
    updated = rules.update(1, {"match_type": "normalized_exact", "rule_id": 99})
    assert updated.rule_id == 1
    assert updated.match_type == "normalized_exact"
    assert updated.description == "d"


def test_update_and_delete_unknown() -> None:
    rules = RuleSet()
    with pytest.raises(NotFoundError, match="introuvable"):
        rules.update(42, {"rule_name": "x"})
    with pytest.raises(NotFoundError):
        rules.delete(42)


def test_snapshot_is_isolated_from_edits() -> None:
    rules = RuleSet()
    rules.create(_data())
    snapshot = rules.snapshot()
    rules.update(1, {"rule_name": "renamed"})
    rules.create(_data(rule_name="other"))
    assert [r.rule_name for r in snapshot] == ["email_exact"]


def test_invalid_code_block_accepted() -> None:
    rules = RuleSet()
    rule = rules.create(_data(match_type="custom", code_block="import os"))
    assert rule.code_block == "import os"


def test_fields_checked_when_registry_not_empty() -> None:
    fields = FieldRegistry()
    rules = RuleSet(fields=fields)
    rules.create(_data())  # registre vide : pas de contrôle

    fields.create("email", "email")
    with pytest.raises(ValidationError, match="non configuré"):
        rules.create(_data(source_field="phone"))
    fields.update("email", {"is_active": False})
    with pytest.raises(ValidationError, match="inactif"):
        rules.create(_data())


def test_reorder() -> None:
    rules = RuleSet()
    rules.create(_data(rule_name="a"))
    rules.create(_data(rule_name="b"))
    rules.reorder([2, 1])
    assert [r.rule_name for r in rules.all()] == ["b", "a"]
    with pytest.raises(ValidationError):
        rules.reorder([1])


def test_uses_field() -> None:
    rules = RuleSet()
    rules.create(_data(source_field="email", target_field="mail"))
    assert len(rules.uses_field("mail")) == 1
    assert rules.uses_field("name") == []


def test_persistence(tmp_path: Path) -> None:
    path = tmp_path / "rules.json"
    rules = RuleSet(path)
    rules.create(_data())
    rules.create(_data(rule_name="b"))
    rules.delete(2)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["next_id"] == 3

    reloaded = RuleSet(path)
    assert [r.to_dict() for r in reloaded.all()] == [r.to_dict() for r in rules.all()]
    assert reloaded.create(_data(rule_name="c")).rule_id == 3


def test_rule_options() -> None:
    options = rule_options()
    assert options["match_classification"] == ["MATCH", "IGNORE"]
    assert "custom" in options["match_types"]
