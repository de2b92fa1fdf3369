"""Sélection de l'archive à restaurer.

Les archives sont nommées `<prefix>-YYYY-MM-DD<extension>` ; les dates ISO
étant zéro-paddées, l'ordre lexicographique est l'ordre chronologique.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable, Optional

from vpsrestore.restore.config import RestoreConfig
from vpsrestore.restore.errors import BackupNotFoundError, ConfigurationError, TransferError
from vpsrestore.restore.models import BackupDescriptor
from vpsrestore.restore.transfer import BackupTransferProvider


def backup_pattern(config: RestoreConfig) -> re.Pattern[str]:
    return re.compile(
        rf"^{re.escape(config.backup_prefix)}-[0-9]{{4}}-[0-9]{{2}}-[0-9]{{2}}{re.escape(config.backup_extension)}$"
    )


def backup_name_for_date(config: RestoreConfig, backup_date: str) -> str:
    if not re.fullmatch(r"[0-9]{4}-[0-9]{2}-[0-9]{2}", backup_date):
        raise ConfigurationError(f"Date invalide (attendu YYYY-MM-DD): {backup_date}")
    try:
        datetime.strptime(backup_date, "%Y-%m-%d")
    except ValueError as exc:
        raise ConfigurationError(f"Date inexistante: {backup_date}") from exc
    return f"{config.backup_prefix}-{backup_date}{config.backup_extension}"


def latest_backup_name(config: RestoreConfig, names: Iterable[str]) -> Optional[str]:
    pattern = backup_pattern(config)
    candidates = sorted(name.strip() for name in names if pattern.match(name.strip()))
    return candidates[-1] if candidates else None


def describe(config: RestoreConfig, name: str) -> BackupDescriptor:
    return BackupDescriptor(
        name=name,
        remote_path=f"{config.remote_location.rstrip('/')}/{name}",
        local_path=config.local_work_dir / name,
    )


def select_backup(
    config: RestoreConfig,
    transfer: BackupTransferProvider,
    *,
    backup_name: Optional[str] = None,
    backup_date: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> BackupDescriptor:
    """Résout l'unique archive du run.

    Raises:
        ConfigurationError: nom et date fournis ensemble, nom ou date invalide.
        TransferError: listing du remote impossible.
        BackupNotFoundError: aucune archive datée sur le remote.
    """

    logger = logger or logging.getLogger(__name__)
    if backup_name and backup_date:
        raise ConfigurationError("Choisir soit un nom d'archive, soit une date, pas les deux")

    if backup_name:
        name = backup_name.strip()
        if not name or "/" in name or name in (".", ".."):
            raise ConfigurationError(f"Nom d'archive invalide: {backup_name!r}")
        logger.info("Archive imposée: %s", name)
        return describe(config, name)

    if backup_date:
        name = backup_name_for_date(config, backup_date.strip())
        logger.info("Archive déduite de la date %s: %s", backup_date, name)
        return describe(config, name)

    logger.info("Recherche de la dernière archive sur %s", config.remote_location)
    try:
        names = transfer.list_objects(config.remote_location)
    except Exception as exc:  # noqa: BLE001 - toute erreur du provider est un échec de transfert
        raise TransferError(f"Listing du remote {config.remote_location} impossible: {exc}") from exc

    name = latest_backup_name(config, names)
    if name is None:
        raise BackupNotFoundError(
            f"Aucune archive {config.backup_prefix}-YYYY-MM-DD{config.backup_extension} trouvée sur {config.remote_location}"
        )
    return describe(config, name)
