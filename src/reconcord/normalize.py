"""Normalisation de texte et coercition des valeurs selon le type de champ."""

from __future__ import annotations

import math
import re
import unicodedata
from typing import Any

import pandas as pd

TRUE_STRINGS = frozenset({"true", "vrai", "yes", "oui", "y", "1"})
FALSE_STRINGS = frozenset({"false", "faux", "no", "non", "n", "0"})


def _remove_diacritics(s: str) -> str:
    """Retire les diacritiques (accents) d'une chaîne."""
    nfd = unicodedata.normalize("NFD", s)
    return "".join(c for c in nfd if unicodedata.category(c) != "Mn")


def is_missing(val: Any) -> bool:
    """True pour None, NaN, pd.NA et les chaînes vides."""
    if val is None:
        return True
    if isinstance(val, float) and math.isnan(val):
        return True
    if val is pd.NA or val is pd.NaT:
        return True
    if isinstance(val, str) and val.strip() == "":
        return True
    return False


def norm_text(
    s: str | float | int | None,
    *,
    lower: bool = True,
    strip: bool = True,
    remove_diacritics: bool = False,
) -> str:
    """
    Normalise un texte : NFKC, espaces multiples → espace simple, lower, strip.

    Args:
        s: Valeur à normaliser (convertie en str si numérique).
        lower: Mettre en minuscules.
        strip: Supprimer espaces en début/fin.
        remove_diacritics: Supprimer les accents.

    Returns:
        Chaîne normalisée.
    """
    if s is None or (isinstance(s, float) and (s != s or s == float("inf"))):
        return ""
    text = str(s).strip() if strip else str(s)
    text = unicodedata.normalize("NFKC", text)
    text = re.sub(r"\s+", " ", text)
    if strip:
        text = text.strip()
    if lower:
        text = text.lower()
    if remove_diacritics:
        text = _remove_diacritics(text)
    return text


def safe_str(val: Any) -> str:
    """Convertit une valeur en chaîne pour affichage/stockage."""
    if is_missing(val):
        return ""
    return str(val)


def clean_cell(val: Any) -> str | int | float | bool | None:
    """Ramène une cellule pandas à un scalaire JSON (NaN → None, numpy → python)."""
    if is_missing(val):
        return None
    if hasattr(val, "item") and not isinstance(val, (str, bytes)):
        # numpy scalar
        val = val.item()
    if isinstance(val, (str, int, float, bool)):
        return val
    return str(val)


def coerce_value(val: Any, field_type: str | None = None) -> Any:
    """
    Convertit une valeur pour comparaison selon le type du champ.

    - number : float (``"10"`` et ``"10.0"`` sont égaux)
    - date : pd.Timestamp normalisé au jour
    - boolean : bool
    - email : texte en minuscules
    - string / inconnu : texte sans espaces de bord

    Une valeur non convertible est comparée comme texte.
    """
    if is_missing(val):
        return None
    if field_type == "number":
        try:
            return float(str(val).strip().replace(",", "."))
        except ValueError:
            return str(val).strip()
    if field_type == "date":
        ts = pd.to_datetime(str(val).strip(), errors="coerce", dayfirst=False)
        if pd.isna(ts):
            return str(val).strip()
        return ts.normalize()
    if field_type == "boolean":
        if isinstance(val, bool):
            return val
        text = str(val).strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
        return text
    if field_type == "email":
        return str(val).strip().lower()
    return str(val).strip()
