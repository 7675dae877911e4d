"""Tests des opérations exposées (réponses structurées)."""

from pathlib import Path
from typing import Any, Callable

import pytest

from reconcord.batch import Batch
from reconcord.config import Config
from reconcord.errors import TransientError
from reconcord.service import ReconcordService, error_response
from reconcord.store import MemoryBatchStore

CsvBytes = Callable[[list[dict[str, Any]]], bytes]

EMAIL_RULE = {
    "rule_name": "email_exact",
    "source_field": "email",
    "target_field": "email",
    "match_classification": "MATCH",
    "match_type": "exact",
    "select_if_both_same": True,
    "rationale_statement": "Même email",
}


class FailingStore(MemoryBatchStore):
    def save(self, batch: Batch) -> None:
        raise TransientError("stockage indisponible")


@pytest.fixture
def service(config: Config) -> ReconcordService:
    return ReconcordService(config)


@pytest.fixture
def batch_id(service: ReconcordService, csv_bytes: CsvBytes) -> str:
    service.create_rule(EMAIL_RULE)
    response = service.create_batch(
        "Lot",
        csv_bytes([{"email": "a@x.com"}]),
        "source.csv",
        csv_bytes([{"email": "a@x.com"}, {"email": "b@x.com"}]),
        "target.csv",
    )
    assert response["status_code"] == 200
    return response["data"]["batch_id"]


def test_create_batch_response(service: ReconcordService, batch_id: str) -> None:
    listing = service.list_batches()
    assert listing["status_code"] == 200
    assert listing["status_message"] == "OK"
    assert [b["batch_id"] for b in listing["data"]] == [batch_id]
    assert listing["data"][0]["batch_name"] == "Lot"


def test_get_batch_results(service: ReconcordService, batch_id: str) -> None:
    response = service.get_batch_results(batch_id)
    assert response["status_code"] == 200
    data = response["data"]
    assert data["matched"][0]["rationale_statement"] == "Même email"
    assert data["unmatched_target"] == [{"email": "b@x.com"}]
    assert data["unmatched_source"] == []


def test_results_payload_does_not_alter_stored_batch(service: ReconcordService, batch_id: str) -> None:
    data = service.get_batch_results(batch_id)["data"]
    data["matched"][0]["rule"]["rule_name"] = "TAMPERED"
    data["matched"][0]["source_record"]["email"] = "TAMPERED"
    data["unmatched_target"][0]["email"] = "TAMPERED"

    again = service.get_batch_results(batch_id)["data"]
    assert again["matched"][0]["rule"]["rule_name"] == "email_exact"
    assert again["matched"][0]["source_record"]["email"] == "a@x.com"
    assert again["unmatched_target"] == [{"email": "b@x.com"}]


def test_unknown_batch_is_404(service: ReconcordService) -> None:
    for response in (
        service.get_batch_results("absent"),
        service.rerun_batch("absent"),
        service.export_batch("absent"),
    ):
        assert response["status_code"] == 404
        assert response["status_message"] == "NOT FOUND"
        assert response["error"] == "NotFoundError"
        assert "data" not in response


def test_create_batch_invalid_is_400(service: ReconcordService, csv_bytes: CsvBytes) -> None:
    content = csv_bytes([{"email": "a@x.com"}])
    response = service.create_batch("Lot", content, "source.pdf", content, "target.csv")
    assert response["status_code"] == 400
    assert response["error"] == "ValidationError"
    assert "Format non supporté" in response["message"]
    assert service.list_batches()["data"] == []


def test_store_failure_is_503(config: Config, csv_bytes: CsvBytes) -> None:
    service = ReconcordService(config, store=FailingStore())
    content = csv_bytes([{"email": "a@x.com"}])
    response = service.create_batch("Lot", content, "s.csv", content, "t.csv")
    assert response["status_code"] == 503
    assert response["error"] == "TransientError"
    assert service.list_batches()["data"] == []


def test_unexpected_error_is_500(service: ReconcordService, monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(batch_id: str) -> dict:
        raise RuntimeError("boom")

    monkeypatch.setattr(service.manager, "get_results", boom)
    response = service.get_batch_results("x")
    assert response["status_code"] == 500
    assert response["error"] == "EngineError"
    assert "boom" in response["message"]


def test_rerun_batch(service: ReconcordService, batch_id: str) -> None:
    response = service.rerun_batch(batch_id)
    assert response["status_code"] == 200
    assert response["data"]["matched_count"] == 1
    assert response["data"]["batch_id"] != batch_id


def test_export_batch(service: ReconcordService, batch_id: str) -> None:
    response = service.export_batch(batch_id)
    assert response["status_code"] == 200
    assert response["data"]["file_link"].startswith("file://")
    assert response["data"]["file_name"].endswith(".xlsx")


def test_rule_crud(service: ReconcordService) -> None:
    created = service.create_rule(EMAIL_RULE)
    assert created["status_code"] == 201
    assert created["status_message"] == "CREATED"
    assert created["data"][0]["rule_id"] == 1

    updated = service.update_rule("1", {"match_type": "normalized_exact"})
    assert updated["status_code"] == 200
    assert updated["data"][0]["match_type"] == "normalized_exact"

    assert service.update_rule(9, {"rule_name": "x"})["status_code"] == 404
    assert service.update_rule("abc", {"rule_name": "x"})["status_code"] == 400
    assert service.create_rule({"rule_name": "x"})["status_code"] == 400

    deleted = service.delete_rule(1)
    assert deleted["status_code"] == 200
    assert deleted["data"] == []


def test_reorder_rules(service: ReconcordService) -> None:
    service.create_rule(EMAIL_RULE)
    service.create_rule({**EMAIL_RULE, "rule_name": "email_norm", "match_type": "normalized_exact"})

    response = service.reorder_rules(["2", 1])
    assert response["status_code"] == 200
    assert [r["rule_id"] for r in response["data"]] == [2, 1]
    assert [r["rule_id"] for r in service.list_rules()["data"]] == [2, 1]

    assert service.reorder_rules([2])["status_code"] == 400
    assert service.reorder_rules([1, 1])["status_code"] == 400
    assert service.reorder_rules("2,1")["status_code"] == 400
    assert [r["rule_id"] for r in service.list_rules()["data"]] == [2, 1]


def test_rule_options(service: ReconcordService) -> None:
    response = service.rule_options()
    assert response["data"]["match_classification"] == ["MATCH", "IGNORE"]


def test_field_operations(service: ReconcordService) -> None:
    created = service.configure_field("email", "email", "Adresse")
    assert created["status_code"] == 201
    assert created["data"] == [
        {"field_name": "email", "type": "email", "description": "Adresse", "is_active": True}
    ]
    assert service.configure_field("email", "email")["status_code"] == 400
    assert service.configure_field("x", "blob")["status_code"] == 400

    assert service.create_rule(EMAIL_RULE)["status_code"] == 201
    bad_rule = dict(EMAIL_RULE, source_field="phone")
    assert service.create_rule(bad_rule)["status_code"] == 400

    assert service.edit_field("email", {"is_active": False})["status_code"] == 400
    assert service.edit_field("email", {"description": "Courriel"})["status_code"] == 200
    in_use = service.delete_field("email")
    assert in_use["status_code"] == 400
    assert "email_exact" in in_use["message"]

    service.delete_rule(1)
    assert service.delete_field("email")["status_code"] == 200
    assert service.delete_field("email")["status_code"] == 404
    assert service.list_fields()["data"] == []


def test_error_response_plain_exception() -> None:
    response = error_response(ValueError("x"))
    assert response["status_code"] == 500
    assert response["error"] == "EngineError"


def test_from_config_persists(tmp_path: Path, csv_bytes: CsvBytes) -> None:
    config = Config(data_dir=str(tmp_path / "data"), export_dir=str(tmp_path / "exports"))
    service = ReconcordService.from_config(config)
    service.configure_field("email", "email")
    service.create_rule(EMAIL_RULE)
    content = csv_bytes([{"email": "a@x.com"}])
    batch_id = service.create_batch("Lot", content, "s.csv", content, "t.csv")["data"]["batch_id"]

    reopened = ReconcordService.from_config(config)
    assert [r["rule_name"] for r in reopened.list_rules()["data"]] == ["email_exact"]
    assert [f["field_name"] for f in reopened.list_fields()["data"]] == ["email"]
    assert reopened.get_batch_results(batch_id)["data"]["matched"][0]["target_index"] == 0
