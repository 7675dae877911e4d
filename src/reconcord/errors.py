"""Hiérarchie des erreurs de Reconcord."""

from __future__ import annotations


class ReconcordError(Exception):
    """Exception de base pour Reconcord."""


class ValidationError(ReconcordError, ValueError):
    """Entrée invalide ou manquante (nom de lot vide, type de fichier refusé...)."""


class NotFoundError(ReconcordError, LookupError):
    """Lot, règle ou champ inconnu."""


class EngineError(ReconcordError):
    """Échec du moteur de matching ou d'un prédicat de règle."""


class ExportError(ReconcordError):
    """Échec de sérialisation lors de l'export."""


class TransientError(ReconcordError):
    """Échec d'accès à une dépendance externe (disque, réseau)."""
