from __future__ import annotations

import os
import shutil
from typing import Iterable

from vpsrestore.restore.errors import ConfigurationError

REQUIRED_COMMANDS = ("rclone", "tar", "systemctl")


def require_root() -> None:
    if os.geteuid() != 0:
        raise ConfigurationError("Lancer en root.")


def require_commands(commands: Iterable[str] = REQUIRED_COMMANDS) -> None:
    """Vérifie la présence des binaires indispensables."""

    for binary in commands:
        if not shutil.which(binary):
            raise ConfigurationError(f"Commande introuvable: {binary}")
