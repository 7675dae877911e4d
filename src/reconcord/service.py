"""
Opérations exposées à la couche de présentation.

Chaque méthode renvoie une réponse structurée
``{status_code, status_message, message, data}`` ; en cas d'échec ``data``
est absent et ``error`` porte le type d'erreur. Aucune exception ne traverse
cette frontière.
"""

from __future__ import annotations

import functools
import logging
from pathlib import Path
from typing import Any, Callable

from reconcord.config import Config
from reconcord.errors import (
    EngineError,
    ExportError,
    NotFoundError,
    ReconcordError,
    TransientError,
    ValidationError,
)
from reconcord.export import Exporter
from reconcord.fields import FieldRegistry
from reconcord.manager import BatchManager
from reconcord.rules import RuleSet, rule_options
from reconcord.store import BatchStore, JsonBatchStore, MemoryBatchStore

logger = logging.getLogger(__name__)

Response = dict[str, Any]

STATUS_MESSAGES = {
    200: "OK",
    201: "CREATED",
    400: "BAD REQUEST",
    404: "NOT FOUND",
    500: "INTERNAL SERVER ERROR",
    503: "SERVICE UNAVAILABLE",
}

_ERROR_CODES: list[tuple[type[ReconcordError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (TransientError, 503),
    (ExportError, 500),
    (EngineError, 500),
]


def ok(data: Any, message: str = "", status_code: int = 200) -> Response:
    return {
        "status_code": status_code,
        "status_message": STATUS_MESSAGES[status_code],
        "message": message,
        "data": data,
    }


def error_response(exc: Exception) -> Response:
    """Traduit une exception en réponse d'erreur structurée."""
    status_code = 500
    kind = "EngineError"
    for exc_type, code in _ERROR_CODES:
        if isinstance(exc, exc_type):
            status_code = code
            kind = exc_type.__name__
            break
    return {
        "status_code": status_code,
        "status_message": STATUS_MESSAGES[status_code],
        "message": str(exc) or kind,
        "error": kind,
    }


def boundary(fn: Callable[..., Response]) -> Callable[..., Response]:
    """Convertit toute exception levée par une opération en réponse d'erreur."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Response:
        try:
            return fn(*args, **kwargs)
        except ReconcordError as e:
            logger.warning("%s: %s", fn.__name__, e)
            return error_response(e)
        except Exception as e:
            logger.exception("Erreur inattendue dans %s", fn.__name__)
            return error_response(EngineError(f"Erreur inattendue: {type(e).__name__}: {e}"))

    return wrapper


def _rule_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"rule_id invalide: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"rule_id invalide: {value!r}") from e


class ReconcordService:
    """Façade des opérations : lots, champs, règles."""

    def __init__(
        self,
        config: Config,
        *,
        store: BatchStore | None = None,
        rules: RuleSet | None = None,
        fields: FieldRegistry | None = None,
    ) -> None:
        self.config = config
        self.fields = fields if fields is not None else FieldRegistry()
        self.rules = rules if rules is not None else RuleSet(fields=self.fields)
        self.store = store if store is not None else MemoryBatchStore()
        self.manager = BatchManager(config, self.rules, self.store, self.fields)
        self.exporter = Exporter(self.store, config.export_dir)

    @classmethod
    def from_config(cls, config: Config) -> ReconcordService:
        """Stockage JSON sous ``data_dir`` si configuré, sinon en mémoire."""
        if not config.data_dir:
            return cls(config)
        data_dir = Path(config.data_dir)
        fields = FieldRegistry(data_dir / "fields.json")
        rules = RuleSet(data_dir / "rules.json", fields=fields)
        store = JsonBatchStore(data_dir / "batches")
        return cls(config, store=store, rules=rules, fields=fields)

    # Lots

    @boundary
    def list_batches(self) -> Response:
        return ok(self.manager.list_batches())

    @boundary
    def create_batch(
        self,
        batch_name: str,
        source_file: bytes,
        source_filename: str,
        target_file: bytes,
        target_filename: str,
    ) -> Response:
        summary = self.manager.create_batch(batch_name, source_file, source_filename, target_file, target_filename)
        return ok(summary, "Lot traité avec succès")

    @boundary
    def get_batch_results(self, batch_id: str) -> Response:
        return ok(self.manager.get_results(batch_id))

    @boundary
    def rerun_batch(self, batch_id: str) -> Response:
        return ok(self.manager.rerun(batch_id), "Lot relancé avec les règles actuelles")

    @boundary
    def export_batch(self, batch_id: str) -> Response:
        return ok(self.exporter.export(batch_id), "Export généré")

    # Champs

    def _field_list(self) -> list[dict[str, Any]]:
        return [f.to_dict() for f in self.fields.all()]

    @boundary
    def list_fields(self) -> Response:
        return ok(self._field_list())

    @boundary
    def configure_field(self, field_name: str, field_type: str, description: str = "") -> Response:
        self.fields.create(field_name, field_type, description)
        return ok(self._field_list(), "Champ créé", status_code=201)

    @boundary
    def edit_field(self, field_name: str, data: dict[str, Any]) -> Response:
        if data.get("is_active") is False and self.rules.uses_field(field_name):
            raise ValidationError(f"Le champ {field_name!r} est utilisé par des règles")
        self.fields.update(field_name, data)
        return ok(self._field_list(), "Champ modifié")

    @boundary
    def delete_field(self, field_name: str) -> Response:
        used_by = self.rules.uses_field(field_name)
        if used_by:
            names = ", ".join(r.rule_name for r in used_by)
            raise ValidationError(f"Le champ {field_name!r} est utilisé par les règles: {names}")
        self.fields.delete(field_name)
        return ok(self._field_list(), "Champ supprimé")

    # Règles

    def _rule_list(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self.rules.all()]

    @boundary
    def rule_options(self) -> Response:
        return ok(rule_options())

    @boundary
    def list_rules(self) -> Response:
        return ok(self._rule_list())

    @boundary
    def create_rule(self, data: dict[str, Any]) -> Response:
        self.rules.create(data)
        return ok(self._rule_list(), "Règle créée", status_code=201)

    @boundary
    def update_rule(self, rule_id: Any, data: dict[str, Any]) -> Response:
        self.rules.update(_rule_id(rule_id), data)
        return ok(self._rule_list(), "Règle modifiée")

    @boundary
    def delete_rule(self, rule_id: Any) -> Response:
        self.rules.delete(_rule_id(rule_id))
        return ok(self._rule_list(), "Règle supprimée")

    @boundary
    def reorder_rules(self, rule_ids: list[Any]) -> Response:
        """Fixe l'ordre d'évaluation ; rule_ids doit lister toutes les règles existantes."""
        if not isinstance(rule_ids, (list, tuple)):
            raise ValidationError(f"rule_ids doit être une liste (got {rule_ids!r})")
        self.rules.reorder([_rule_id(i) for i in rule_ids])
        return ok(self._rule_list(), "Règles réordonnées")
