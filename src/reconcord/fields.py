"""Registre des champs configurés (nom, type, description)."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from reconcord.errors import NotFoundError, TransientError, ValidationError

logger = logging.getLogger(__name__)

VALID_FIELD_TYPES = frozenset({"string", "number", "date", "boolean", "email"})


@dataclass
class Field:
    """Un champ déclaré, utilisable comme source_field / target_field d'une règle."""

    field_name: str
    type: str = "string"
    description: str = ""
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _validate_type(field_type: Any) -> str:
    if field_type not in VALID_FIELD_TYPES:
        raise ValidationError(f"type de champ invalide: {field_type!r}. Valides: {sorted(VALID_FIELD_TYPES)}")
    return field_type


class FieldRegistry:
    """Champs indexés par nom ; ordre d'insertion conservé."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._fields: dict[str, Field] = {}
        self._lock = threading.RLock()
        self._path = Path(path) if path else None
        if self._path is not None and self._path.exists():
            self._load()

    def all(self) -> list[Field]:
        with self._lock:
            return [Field(**f.to_dict()) for f in self._fields.values()]

    def get(self, field_name: str) -> Field:
        with self._lock:
            if field_name not in self._fields:
                raise NotFoundError(f"Champ introuvable: {field_name!r}")
            return Field(**self._fields[field_name].to_dict())

    def __contains__(self, field_name: object) -> bool:
        with self._lock:
            return field_name in self._fields

    def __len__(self) -> int:
        with self._lock:
            return len(self._fields)

    def is_usable(self, field_name: str) -> bool:
        """True si le champ existe et est actif."""
        with self._lock:
            f = self._fields.get(field_name)
            return f is not None and f.is_active

    def types(self) -> dict[str, str]:
        """Mapping nom → type, pour la coercition des valeurs au matching."""
        with self._lock:
            return {name: f.type for name, f in self._fields.items()}

    def create(self, field_name: str, field_type: str, description: str = "") -> Field:
        name = (field_name or "").strip()
        if not name:
            raise ValidationError("field_name requis")
        _validate_type(field_type)
        with self._lock:
            if name in self._fields:
                raise ValidationError(f"Le champ {name!r} existe déjà")
            field = Field(field_name=name, type=field_type, description=description or "")
            self._commit({**self._fields, name: field})
        logger.info("Champ créé: %s (%s)", name, field_type)
        return Field(**field.to_dict())

    def update(self, field_name: str, data: dict[str, Any]) -> Field:
        """Met à jour type / description / is_active. Le nom n'est pas modifiable."""
        with self._lock:
            if field_name not in self._fields:
                raise NotFoundError(f"Champ introuvable: {field_name!r}")
            new_name = data.get("field_name", field_name)
            if new_name != field_name:
                raise ValidationError("field_name ne peut pas être modifié")
            current = self._fields[field_name]
            field_type = data.get("type", data.get("field_type", current.type))
            _validate_type(field_type)
            is_active = data.get("is_active", current.is_active)
            if not isinstance(is_active, bool):
                raise ValidationError(f"is_active doit être un booléen (got {is_active!r})")
            updated = Field(
                field_name=field_name,
                type=field_type,
                description=data.get("description", current.description) or "",
                is_active=is_active,
            )
            self._commit({**self._fields, field_name: updated})
        logger.info("Champ modifié: %s", field_name)
        return Field(**updated.to_dict())

    def delete(self, field_name: str) -> None:
        with self._lock:
            if field_name not in self._fields:
                raise NotFoundError(f"Champ introuvable: {field_name!r}")
            self._commit({k: v for k, v in self._fields.items() if k != field_name})
        logger.info("Champ supprimé: %s", field_name)

    def _commit(self, fields: dict[str, Field]) -> None:
        """Persiste puis publie le nouvel état ; rien ne change si l'écriture échoue."""
        if self._path is not None:
            self._write([f.to_dict() for f in fields.values()])
        self._fields = fields

    def _write(self, data: list[dict[str, Any]]) -> None:
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
        for d in data:
            field = Field(
                field_name=d["field_name"],
                type=d.get("type", "string"),
                description=d.get("description", ""),
                is_active=d.get("is_active", True),
            )
            self._fields[field.field_name] = field
