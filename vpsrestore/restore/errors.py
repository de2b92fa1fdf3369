"""Erreurs fonctionnelles du pipeline de restauration.

Les erreurs levées avant l'arrêt des services (configuration, sélection,
transfert, validation) garantissent qu'aucune modification n'a eu lieu.
`ApplyError` est la seule erreur survenant après l'arrêt des services.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class RestoreError(Exception):
    """Erreur fonctionnelle lors d'une restauration."""


class ConfigurationError(RestoreError):
    """Paramètre manquant ou invalide (fichier env, arguments, prérequis)."""


class ConfirmationRequiredError(RestoreError):
    """Exécution destructive demandée sans confirmation explicite."""


class SelectionError(RestoreError):
    """Impossible de déterminer l'archive à restaurer."""


class BackupNotFoundError(SelectionError):
    """Aucune archive datée ne correspond sur le remote."""


class TransferError(RestoreError):
    """Échec du listing ou du téléchargement depuis le remote."""


class ArchiveValidationError(RestoreError):
    """Archive téléchargée illisible ou vide."""


class ApplyError(RestoreError):
    """Extraction échouée alors que les services sont déjà arrêtés."""

    def __init__(self, message: str, snapshot_path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.snapshot_path = snapshot_path


class CommandError(RestoreError):
    """Commande externe terminée avec un code retour inattendu."""

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class CredentialError(RestoreError):
    """Échec du provisionnement des identifiants chiffrés."""
