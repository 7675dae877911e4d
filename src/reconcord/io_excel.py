"""I/O tableurs : lecture des jeux importés (CSV, XLSX) et écriture xlsx."""

from __future__ import annotations

import csv
import io
from pathlib import Path

import pandas as pd

from reconcord.errors import ValidationError
from reconcord.records import Dataset

# Formats acceptés à l'import
SUPPORTED_INPUT_EXTENSIONS = (".csv", ".xlsx")
CSV_DELIMITERS = [",", ";", "\t", "|"]


class DatasetError(ValidationError):
    """Fichier importé refusé ou illisible (extension, contenu vide, format)."""


def check_extension(filename: str) -> str:
    """
    Vérifie l'extension d'un fichier importé et la renvoie en minuscules.

    Raises:
        DatasetError: Si l'extension n'est ni .csv ni .xlsx.
    """
    suffix = Path(filename or "").suffix.lower()
    if suffix not in SUPPORTED_INPUT_EXTENSIONS:
        raise DatasetError(
            f"Format non supporté pour {filename!r}. Formats acceptés: {', '.join(SUPPORTED_INPUT_EXTENSIONS)}"
        )
    return suffix


def _detect_csv_delimiter(text: str) -> str | None:
    sample_lines: list[str] = []
    for line in text.splitlines():
        if line.strip() == "":
            continue
        sample_lines.append(line)
        if len(sample_lines) >= 5:
            break
    if not sample_lines:
        return None
    sample = "\n".join(sample_lines)
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS)
        return dialect.delimiter
    except csv.Error:
        first = sample_lines[0]
        counts = {d: first.count(d) for d in CSV_DELIMITERS}
        best = max(counts, key=counts.get)
        return best if counts[best] > 0 else None


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def read_csv_bytes(content: bytes, filename: str = "") -> pd.DataFrame:
    """Lit un CSV en préservant le texte (dtype=str), séparateur détecté."""
    text = _decode(content)
    if text.strip() == "":
        raise DatasetError(f"Fichier CSV vide: {filename}")
    delimiter = _detect_csv_delimiter(text) or ","
    try:
        return pd.read_csv(io.StringIO(text), dtype=str, sep=delimiter)
    except pd.errors.ParserError:
        # Lignes mal formées : moteur python, lignes invalides ignorées.
        try:
            return pd.read_csv(
                io.StringIO(text),
                dtype=str,
                sep=delimiter,
                engine="python",
                on_bad_lines="warn",
            )
        except Exception as e:
            raise DatasetError(f"Erreur CSV {filename}: {e}. Vérifiez le séparateur.") from e
    except pd.errors.EmptyDataError as e:
        raise DatasetError(f"Fichier CSV vide: {filename}") from e
    except Exception as e:
        raise DatasetError(f"Erreur CSV {filename}: {e}") from e


def read_xlsx_bytes(content: bytes, filename: str = "", sheet_name: str | None = None) -> pd.DataFrame:
    """Lit une feuille xlsx (première par défaut) en préservant le texte."""
    try:
        xl = pd.ExcelFile(io.BytesIO(content), engine="openpyxl")
    except Exception as e:
        raise DatasetError(f"Impossible de lire le fichier {filename}: {e}") from e

    if sheet_name is None:
        sheet_name = xl.sheet_names[0]  # type: ignore[assignment]
    elif sheet_name not in xl.sheet_names:
        sheets = [str(s) for s in xl.sheet_names]
        raise DatasetError(
            f"Feuille '{sheet_name}' introuvable dans {filename}. Feuilles: {', '.join(sheets)}"
        )
    try:
        return pd.read_excel(xl, sheet_name=sheet_name, dtype=str, engine="openpyxl")  # type: ignore[return-value]
    except Exception as e:
        raise DatasetError(f"Erreur feuille '{sheet_name}' dans {filename}: {e}") from e


def load_dataset(content: bytes, filename: str) -> Dataset:
    """
    Parse un fichier importé (octets + nom) en Dataset.

    Raises:
        DatasetError: Extension refusée, fichier illisible, sans colonnes ou sans lignes.
    """
    suffix = check_extension(filename)
    if not content:
        raise DatasetError(f"Fichier vide: {filename}")
    if suffix == ".csv":
        df = read_csv_bytes(content, filename)
    else:
        df = read_xlsx_bytes(content, filename)

    df = df.dropna(how="all")
    if len(df.columns) == 0 or len(df) == 0:
        raise DatasetError(f"Aucune ligne de données dans {filename}")
    return Dataset.from_dataframe(df.reset_index(drop=True), file_name=Path(filename).name)


def save_xlsx(
    filepath: str | Path,
    dataframes: dict[str, pd.DataFrame],
    *,
    header: bool = True,
    index: bool = False,
) -> None:
    """
    Sauvegarde plusieurs DataFrames dans un fichier xlsx (une feuille par DataFrame).

    Args:
        filepath: Chemin de sortie.
        dataframes: Dict {nom_feuille: DataFrame}, l'ordre des clés est conservé.
    """
    with pd.ExcelWriter(filepath, engine="openpyxl") as writer:
        for sheet_name, df in dataframes.items():
            # Nettoyer le nom de feuille (Excel limite à 31 caractères)
            safe_name = str(sheet_name)[:31]
            df.to_excel(writer, sheet_name=safe_name, index=index, header=header)
