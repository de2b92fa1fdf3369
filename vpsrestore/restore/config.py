"""Chargement de la configuration de restauration (`backup.env`).

Le fichier est lu une seule fois par run via python-dotenv ; il n'est jamais
exécuté par un shell ni réécrit par l'orchestrateur.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from dotenv import dotenv_values

from vpsrestore.restore.errors import ConfigurationError

ENV_FILE = Path("/opt/vpn-backup/backup.env")
DEFAULT_RESTORE_WORKDIR = "/opt/restore-run"
DEFAULT_BACKUP_PREFIX = "vpn-backup"
DEFAULT_BACKUP_EXTENSION = ".tar.gz"
DEFAULT_BOT_SERVICE = "budivpn-bot.service"
DEFAULT_NGINX_SERVICE = "nginx.service"
DEFAULT_COMPOSE_FILE = "/opt/marzban/docker-compose.yml"

REQUIRED_KEYS = ("RCLONE_REMOTE", "LOCAL_WORKDIR", "BACKUP_ITEMS")

DEFAULT_ENV_CONTENT = """RCLONE_REMOTE="gdrive:VPN-BACKUP"
LOCAL_WORKDIR="/opt/vpn-backup"
BACKUP_ITEMS="/root/.config/rclone /opt/marzban /var/lib/marzban /etc/nginx /etc/systemd/system /opt/marzban-bot /opt/vpn-restore /opt/auto-restore-repo"
"""


@dataclass(frozen=True)
class RestoreConfig:
    remote_location: str
    local_work_dir: Path
    restore_items: Tuple[str, ...]
    backup_workdir: Path
    backup_prefix: str = DEFAULT_BACKUP_PREFIX
    backup_extension: str = DEFAULT_BACKUP_EXTENSION
    bot_service: str = DEFAULT_BOT_SERVICE
    nginx_service: str = DEFAULT_NGINX_SERVICE
    compose_file: Path = Path(DEFAULT_COMPOSE_FILE)
    env_file: Optional[Path] = None

    @property
    def logs_dir(self) -> Path:
        return self.local_work_dir / "logs"

    @property
    def state_db(self) -> Path:
        return self.local_work_dir / "state.sqlite"

    @classmethod
    def from_mapping(cls, values: Mapping[str, Optional[str]], env_file: Optional[Path] = None) -> "RestoreConfig":
        """Construit la configuration à partir des clés du fichier env.

        Raises:
            ConfigurationError: clé obligatoire absente ou chemin non absolu.
        """

        cleaned: Dict[str, str] = {key: (value or "").strip() for key, value in values.items()}
        source = env_file or "backup.env"
        for key in REQUIRED_KEYS:
            if not cleaned.get(key):
                raise ConfigurationError(f"{key} manquant dans {source}")

        return cls(
            remote_location=cleaned["RCLONE_REMOTE"],
            local_work_dir=Path(cleaned.get("RESTORE_WORKDIR") or DEFAULT_RESTORE_WORKDIR),
            restore_items=parse_restore_items(cleaned["BACKUP_ITEMS"]),
            backup_workdir=Path(cleaned["LOCAL_WORKDIR"]),
            backup_prefix=cleaned.get("BACKUP_PREFIX") or DEFAULT_BACKUP_PREFIX,
            backup_extension=cleaned.get("BACKUP_EXTENSION") or DEFAULT_BACKUP_EXTENSION,
            bot_service=cleaned.get("BOT_SERVICE") or DEFAULT_BOT_SERVICE,
            nginx_service=cleaned.get("NGINX_SERVICE") or DEFAULT_NGINX_SERVICE,
            compose_file=Path(cleaned.get("MARZBAN_COMPOSE") or DEFAULT_COMPOSE_FILE),
            env_file=env_file,
        )


def parse_restore_items(raw: str) -> Tuple[str, ...]:
    items: list[str] = []
    for item in raw.split():
        if not os.path.isabs(item):
            raise ConfigurationError(f"BACKUP_ITEMS doit contenir des chemins absolus: {item}")
        if item not in items:
            items.append(item)
    if not items:
        raise ConfigurationError("BACKUP_ITEMS est vide")
    return tuple(items)


def load_config(env_file: Path = ENV_FILE) -> RestoreConfig:
    env_path = Path(env_file)
    if not env_path.is_file():
        raise ConfigurationError(f"Fichier env introuvable: {env_path}")
    try:
        values = dotenv_values(env_path, interpolate=False)
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"Fichier env illisible: {env_path} ({exc})") from exc
    return RestoreConfig.from_mapping(values, env_file=env_path)


def write_default_env(env_file: Path = ENV_FILE) -> bool:
    """Crée un `backup.env` par défaut s'il n'existe pas encore.

    Returns:
        True si le fichier a été créé, False s'il était déjà présent (conservé tel quel).
    """

    env_path = Path(env_file)
    env_path.parent.mkdir(parents=True, exist_ok=True)
    os.chmod(env_path.parent, 0o700)
    if env_path.exists():
        return False

    fd = os.open(env_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(DEFAULT_ENV_CONTENT)
    return True
