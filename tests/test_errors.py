"""Tests des cas d'erreur."""

from pathlib import Path

import pytest

from reconcord import (
    ConfigError,
    ConfigFileError,
    EngineError,
    ExportError,
    NotFoundError,
    ReconcordError,
    TransientError,
    ValidationError,
)
from reconcord.config import Config
from reconcord.io_excel import DatasetError
from reconcord.predicate import PredicateError


def test_config_load_file_not_found(tmp_path: Path) -> None:
    """Config.load() lève ConfigFileError si le fichier n'existe pas."""
    with pytest.raises(ConfigFileError, match="introuvable"):
        Config.load(tmp_path / "inexistant.json")


def test_config_load_invalid_json(tmp_path: Path) -> None:
    """Config.load() lève ConfigFileError si le JSON est invalide."""
    bad_json = tmp_path / "config.json"
    bad_json.write_text("{ invalid json }", encoding="utf-8")
    with pytest.raises(ConfigFileError, match="JSON invalide"):
        Config.load(bad_json)


def test_config_load_not_dict(tmp_path: Path) -> None:
    """Config.load() lève ConfigFileError si le JSON n'est pas un objet."""
    bad_config = tmp_path / "config.json"
    bad_config.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(ConfigFileError, match="objet JSON"):
        Config.load(bad_config)


def test_config_load_invalid_values(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"match_min_hits": 0}', encoding="utf-8")
    with pytest.raises(ConfigError, match="match_min_hits"):
        Config.load(path)


@pytest.mark.parametrize(
    ("exc_type", "base"),
    [
        (ValidationError, ValueError),
        (NotFoundError, LookupError),
        (ConfigError, ValidationError),
        (DatasetError, ValidationError),
        (PredicateError, EngineError),
        (ExportError, ReconcordError),
        (TransientError, ReconcordError),
        (ConfigFileError, ReconcordError),
    ],
)
def test_error_hierarchy(exc_type: type, base: type) -> None:
    assert issubclass(exc_type, base)
    assert issubclass(exc_type, ReconcordError)
