from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from vpsrestore.restore.errors import CommandError

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def build_logger(run_id: str, logs_dir: Path | None = None, log_filename: str = "restore.log") -> logging.Logger:
    """Logger d'un run de restauration.

    Sans `logs_dir`, seul le handler console est installé : un dry-run ne doit
    créer aucun fichier. Un second appel avec `logs_dir` ajoute le fichier au
    même logger une fois le run confirmé.
    """

    logger = logging.getLogger(f"restore.{run_id}")
    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(type(handler) is logging.StreamHandler for handler in logger.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if logs_dir is not None:
        run_log_dir = Path(logs_dir) / run_id
        run_log_dir.mkdir(parents=True, exist_ok=True)
        log_file = run_log_dir / log_filename
        if not any(isinstance(handler, logging.FileHandler) and handler.baseFilename == str(log_file) for handler in logger.handlers):
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def run_command(
    command: List[str],
    logger: logging.Logger,
    cwd: Path | None = None,
    ok_codes: Sequence[int] = (0,),
    log_output: bool = True,
) -> subprocess.CompletedProcess:
    """Exécute une commande externe et trace sa sortie.

    Raises:
        CommandError: si le code retour n'est pas dans `ok_codes`.
    """

    logger.info("$ %s", " ".join(command))
    try:
        result = subprocess.run(
            command,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise CommandError(f"Commande impossible à lancer: {' '.join(command)} ({exc})") from exc

    if log_output and result.stdout:
        logger.info(result.stdout.strip())
    if result.stderr:
        logger.info(result.stderr.strip())

    if result.returncode not in ok_codes:
        error_msg = f"Commande échouée ({result.returncode}): {' '.join(command)}"
        logger.error(error_msg)
        raise CommandError(error_msg, returncode=result.returncode, output=result.stderr or result.stdout)

    return result


def first_lines(text: Optional[str], count: int) -> List[str]:
    if not text:
        return []
    return text.splitlines()[:count]
