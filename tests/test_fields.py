"""Tests du registre de champs."""

from pathlib import Path

import pytest

from reconcord.errors import NotFoundError, ValidationError
from reconcord.fields import FieldRegistry


def test_create_and_get() -> None:
    fields = FieldRegistry()
    fields.create("email", "email", "Adresse")
    f = fields.get("email")
    assert (f.field_name, f.type, f.description, f.is_active) == ("email", "email", "Adresse", True)
    assert "email" in fields
    assert fields.types() == {"email": "email"}


def test_create_duplicate() -> None:
    fields = FieldRegistry()
    fields.create("email", "email")
    with pytest.raises(ValidationError, match="existe déjà"):
        fields.create("email", "string")


def test_create_invalid_type() -> None:
    fields = FieldRegistry()
    with pytest.raises(ValidationError, match="type de champ invalide"):
        fields.create("x", "blob")
    assert len(fields) == 0


def test_update() -> None:
    fields = FieldRegistry()
    fields.create("amount", "string")
    fields.update("amount", {"type": "number", "is_active": False})
    f = fields.get("amount")
    assert f.type == "number"
    assert f.is_active is False
    assert not fields.is_usable("amount")


def test_update_rename_refused() -> None:
    fields = FieldRegistry()
    fields.create("amount", "number")
    with pytest.raises(ValidationError, match="modifié"):
        fields.update("amount", {"field_name": "montant"})


def test_get_returns_copy() -> None:
    fields = FieldRegistry()
    fields.create("email", "email")
    fields.get("email").is_active = False
    assert fields.is_usable("email")


def test_delete() -> None:
    fields = FieldRegistry()
    fields.create("email", "email")
    fields.delete("email")
    with pytest.raises(NotFoundError, match="introuvable"):
        fields.get("email")
    with pytest.raises(NotFoundError):
        fields.delete("email")


def test_persistence(tmp_path: Path) -> None:
    path = tmp_path / "fields.json"
    fields = FieldRegistry(path)
    fields.create("email", "email")
    fields.create("name", "string", "Nom")
    reloaded = FieldRegistry(path)
    assert [f.to_dict() for f in reloaded.all()] == [f.to_dict() for f in fields.all()]
