"""Jeux de lignes source / cible, immuables une fois ingérés."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

import pandas as pd

from reconcord.normalize import clean_cell

Row = dict[str, Any]


@dataclass(frozen=True)
class Dataset:
    """
    Lignes d'un fichier importé, indexées à partir de 0.

    Les lignes sont stockées en tuples ; ``row(i)`` renvoie une copie dict.
    """

    columns: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...]
    file_name: str = ""

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, file_name: str = "") -> Dataset:
        columns = tuple(str(c) for c in df.columns)
        rows = tuple(
            tuple(clean_cell(v) for v in values)
            for values in df.itertuples(index=False, name=None)
        )
        return cls(columns=columns, rows=rows, file_name=file_name)

    @classmethod
    def from_records(cls, records: list[Row], file_name: str = "") -> Dataset:
        """Construit un Dataset depuis une liste de dicts (colonnes dans l'ordre d'apparition)."""
        columns: list[str] = []
        for rec in records:
            for key in rec:
                if key not in columns:
                    columns.append(key)
        rows = tuple(tuple(clean_cell(rec.get(c)) for c in columns) for rec in records)
        return cls(columns=tuple(columns), rows=rows, file_name=file_name)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Row]:
        for i in range(len(self.rows)):
            yield self.row(i)

    def row(self, index: int) -> Row:
        return dict(zip(self.columns, self.rows[index]))

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "columns": list(self.columns),
            "rows": [list(r) for r in self.rows],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Dataset:
        return cls(
            columns=tuple(d.get("columns", [])),
            rows=tuple(tuple(r) for r in d.get("rows", [])),
            file_name=d.get("file_name", ""),
        )
