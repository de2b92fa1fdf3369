"""Téléchargement de l'archive puis validation avant toute modification.

La validation doit échouer avant le snapshot et l'arrêt des services : on
n'arrête jamais un service pour une archive qui ne pourrait pas être appliquée.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Protocol

from vpsrestore.logging.logger import run_command
from vpsrestore.restore.archive import ArchiveCodec
from vpsrestore.restore.errors import ArchiveValidationError, TransferError
from vpsrestore.restore.models import BackupDescriptor, ValidatedArchive


class BackupTransferProvider(Protocol):
    def list_objects(self, remote: str) -> List[str]:
        ...

    def download(self, remote_path: str, local_path: Path) -> None:
        ...


class RcloneTransfer:
    """Accès au remote via le client `rclone`."""

    def __init__(self, logger: logging.Logger, binary: str = "rclone") -> None:
        self.logger = logger
        self.binary = binary

    def list_objects(self, remote: str) -> List[str]:
        result = run_command([self.binary, "lsf", remote, "--files-only"], logger=self.logger, log_output=False)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def download(self, remote_path: str, local_path: Path) -> None:
        run_command([self.binary, "copyto", remote_path, str(local_path)], logger=self.logger)


def ensure_workdir(work_dir: Path) -> None:
    work_dir.mkdir(parents=True, exist_ok=True)
    os.chmod(work_dir, 0o700)


def fetch_backup(descriptor: BackupDescriptor, transfer: BackupTransferProvider, logger: logging.Logger) -> Path:
    """Télécharge l'archive dans le répertoire de travail.

    Raises:
        TransferError: réseau, permissions ou objet absent du remote.
    """

    logger.info("Téléchargement de %s vers %s", descriptor.remote_path, descriptor.local_path)
    try:
        ensure_workdir(descriptor.local_path.parent)
        transfer.download(descriptor.remote_path, descriptor.local_path)
    except Exception as exc:  # noqa: BLE001 - toute erreur du provider est un échec de transfert
        raise TransferError(f"Téléchargement de {descriptor.remote_path} échoué: {exc}") from exc

    if not descriptor.local_path.is_file():
        raise TransferError(f"Archive absente après téléchargement: {descriptor.local_path}")
    return descriptor.local_path


def validate_archive(archive: Path, codec: ArchiveCodec, logger: logging.Logger) -> ValidatedArchive:
    """Lit le listing complet de l'archive sans rien extraire.

    Raises:
        ArchiveValidationError: archive corrompue ou vide.
    """

    logger.info("Validation de l'archive %s", archive)
    try:
        entries = codec.list_entries(archive)
    except Exception as exc:  # noqa: BLE001 - archive illisible quelle que soit la cause
        raise ArchiveValidationError(f"Archive invalide {archive}: {exc}") from exc

    if not entries:
        raise ArchiveValidationError(f"Archive vide: {archive}")

    logger.info("Archive valide: %s entrée(s)", len(entries))
    return ValidatedArchive(path=archive, entries=tuple(entries))
