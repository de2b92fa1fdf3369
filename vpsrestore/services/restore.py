"""Point d'entrée de la restauration avec les outils réels (rclone, tar, systemctl)."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from vpsrestore.logging.logger import build_logger
from vpsrestore.restore.archive import TarArchiveCodec
from vpsrestore.restore.config import RestoreConfig
from vpsrestore.restore.lifecycle import SystemdDockerLifecycle
from vpsrestore.restore.preflight import require_commands
from vpsrestore.restore.report import RunReport
from vpsrestore.restore.restore_run import RestoreProviders, new_run_id, run_restore
from vpsrestore.restore.transfer import RcloneTransfer


@dataclass
class RestoreRequest:
    """Paramètres nécessaires à une restauration."""

    backup_name: Optional[str] = None
    backup_date: Optional[str] = None
    dry_run: bool = False
    confirmed: bool = False


def default_providers(logger: logging.Logger) -> RestoreProviders:
    return RestoreProviders(
        transfer=RcloneTransfer(logger),
        codec=TarArchiveCodec(logger),
        lifecycle=SystemdDockerLifecycle(logger),
    )


def run(
    request: RestoreRequest,
    config: RestoreConfig,
    providers: Optional[RestoreProviders] = None,
    echo: Callable[[str], None] = print,
) -> RunReport:
    """Restaure un backup spécifié (ou le plus récent) sur l'hôte.

    Args:
        request: Sélection de l'archive et mode (dry-run ou confirmé).
        config: Configuration lue depuis `backup.env`.
        providers: Outils externes ; par défaut rclone, tar et systemctl/docker.

    Raises:
        RestoreError: en cas d'échec fatal.
    """

    run_id = new_run_id(datetime.now())
    if providers is None:
        require_commands()
        # Les outils journalisent dans le logger du run pour que leurs sorties finissent dans restore.log.
        providers = default_providers(build_logger(run_id))

    return run_restore(
        config,
        providers,
        backup_name=request.backup_name,
        backup_date=request.backup_date,
        dry_run=request.dry_run,
        confirmed=request.confirmed,
        echo=echo,
        run_id=run_id,
    )
