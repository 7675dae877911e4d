"""Tests I/O tableurs."""

import io
from pathlib import Path

import pandas as pd
import pytest

from reconcord.io_excel import DatasetError, check_extension, load_dataset, save_xlsx


def _xlsx_bytes(df: pd.DataFrame) -> bytes:
    buf = io.BytesIO()
    df.to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


def test_load_csv_comma() -> None:
    ds = load_dataset(b"email,name\na@x.com,Ann\nb@x.com,Bob\n", "source.csv")
    assert ds.columns == ("email", "name")
    assert len(ds) == 2
    assert ds.row(1) == {"email": "b@x.com", "name": "Bob"}
    assert ds.file_name == "source.csv"


def test_load_csv_semicolon_keeps_text() -> None:
    ds = load_dataset(b"id;code\n1;007\n2;010\n", "data.csv")
    assert ds.columns == ("id", "code")
    assert ds.row(0) == {"id": "1", "code": "007"}


def test_load_csv_latin1() -> None:
    ds = load_dataset("nom;ville\nHélène;Orléans\n".encode("latin-1"), "l1.csv")
    assert ds.row(0) == {"nom": "Hélène", "ville": "Orléans"}


def test_load_csv_empty_cells_are_none() -> None:
    ds = load_dataset(b"email,name\na@x.com,\n", "s.csv")
    assert ds.row(0) == {"email": "a@x.com", "name": None}


def test_load_xlsx() -> None:
    df = pd.DataFrame({"email": ["a@x.com", "b@x.com"], "zip": ["01000", "75001"]})
    ds = load_dataset(_xlsx_bytes(df), "cible.XLSX")
    assert len(ds) == 2
    assert ds.row(0)["zip"] == "01000"


def test_load_unsupported_extension() -> None:
    with pytest.raises(DatasetError, match="Format non supporté"):
        load_dataset(b"a,b\n1,2\n", "data.txt")


def test_load_empty_content() -> None:
    with pytest.raises(DatasetError, match="vide"):
        load_dataset(b"", "data.csv")


def test_load_header_only() -> None:
    with pytest.raises(DatasetError, match="Aucune ligne"):
        load_dataset(b"email,name\n", "data.csv")


def test_load_invalid_xlsx() -> None:
    with pytest.raises(DatasetError, match="Impossible de lire"):
        load_dataset(b"not a zip file", "data.xlsx")


def test_check_extension() -> None:
    assert check_extension("a/b/Source.CSV") == ".csv"
    with pytest.raises(DatasetError):
        check_extension("source")


def test_save_xlsx_sheet_order(tmp_path: Path) -> None:
    out = tmp_path / "out.xlsx"
    save_xlsx(out, {"B": pd.DataFrame({"x": [1]}), "A": pd.DataFrame({"y": [2]})})
    xl = pd.ExcelFile(out, engine="openpyxl")
    assert xl.sheet_names == ["B", "A"]
