"""Tests du rapport."""

import pytest

from reconcord.batch import Batch
from reconcord.config import Config
from reconcord.manager import BatchManager
from reconcord.records import Dataset
from reconcord.report import build_report_df, print_report_console
from reconcord.rules import RuleSet


@pytest.fixture
def batch() -> Batch:
    rules = RuleSet()
    rules.create({"rule_name": "email_exact", "source_field": "email", "target_field": "email"})
    manager = BatchManager(Config(), rules)
    source = Dataset.from_records([{"email": "a@x.com"}, {"email": "c@x.com"}])
    target = Dataset.from_records([{"email": "a@x.com"}, {"email": "b@x.com"}])
    return manager.run_datasets("Rapport", source, target)


def test_build_report_df(batch: Batch) -> None:
    df = build_report_df(batch)
    assert list(df.columns) == ["Key", "Value"]
    values = dict(zip(df["Key"], df["Value"]))
    assert values["nb_source_rows"] == 2
    assert values["nb_target_rows"] == 2
    assert values["nb_matched"] == 1
    assert values["nb_suspected"] == 0
    assert values["nb_unmatched_source"] == 1
    assert values["nb_unmatched_target"] == 1
    assert values["match_min_hits"] == 1
    assert "email_exact" in values["rule_0"]
    assert "version" in values


def test_print_report_console(batch: Batch, capsys: pytest.CaptureFixture[str]) -> None:
    print_report_console(batch)
    out = capsys.readouterr().out
    assert "=== Reconcord Report ===" in out
    assert "Rapport" in out
    assert "Matched:             1" in out
