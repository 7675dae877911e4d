"""Fixtures partagées."""

from __future__ import annotations

from typing import Any, Callable

import pandas as pd
import pytest

from reconcord.config import Config
from reconcord.records import Dataset
from reconcord.rules import Rule


def make_rule(rule_id: int = 1, **kwargs: Any) -> Rule:
    data = {
        "rule_name": f"rule_{rule_id}",
        "source_field": "email",
        "target_field": "email",
        "match_classification": "MATCH",
        "match_type": "exact",
        "select_if_both_same": True,
    }
    data.update(kwargs)
    return Rule.from_dict(data, rule_id=rule_id)


@pytest.fixture
def rule_factory() -> Callable[..., Rule]:
    return make_rule


@pytest.fixture
def dataset() -> Callable[[list[dict[str, Any]]], Dataset]:
    return Dataset.from_records


@pytest.fixture
def csv_bytes() -> Callable[[list[dict[str, Any]]], bytes]:
    def _csv(records: list[dict[str, Any]]) -> bytes:
        return pd.DataFrame(records).to_csv(index=False).encode("utf-8")

    return _csv


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(export_dir=str(tmp_path / "exports"))
