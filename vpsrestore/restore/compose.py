from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from vpsrestore.logging.logger import run_command


def detect_compose_command() -> Optional[List[str]]:
    """Renvoie `docker compose` (v2) ou `docker-compose`, ou None si aucun n'est disponible."""

    if shutil.which("docker"):
        probe = subprocess.run(
            ["docker", "compose", "version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
        if probe.returncode == 0:
            return ["docker", "compose"]
    if shutil.which("docker-compose"):
        return ["docker-compose"]
    return None


def compose_down(compose_command: Sequence[str], compose_file: Path, logger: logging.Logger) -> None:
    cmd = [*compose_command, "-f", str(compose_file), "down"]
    run_command(cmd, cwd=compose_file.parent, logger=logger)


def compose_up(compose_command: Sequence[str], compose_file: Path, logger: logging.Logger) -> None:
    cmd = [*compose_command, "-f", str(compose_file), "up", "-d"]
    run_command(cmd, cwd=compose_file.parent, logger=logger)
