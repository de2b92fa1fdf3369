from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from vpsrestore.restore.archive import ArchiveCodec
from vpsrestore.restore.models import SafetySnapshot
from vpsrestore.restore.report import RunReport, best_effort

SNAPSHOT_PREFIX = "pre-restore-"
SNAPSHOT_STAMP = "%Y-%m-%d_%H%M%S"


def existing_items(items: Sequence[str]) -> List[str]:
    return [item for item in items if os.path.exists(item)]


def snapshot_path(work_dir: Path, now: datetime) -> Path:
    return work_dir / f"{SNAPSHOT_PREFIX}{now.strftime(SNAPSHOT_STAMP)}.tar.gz"


def take_safety_snapshot(
    items: Sequence[str],
    work_dir: Path,
    codec: ArchiveCodec,
    report: RunReport,
    logger: logging.Logger,
    now: datetime,
) -> Optional[SafetySnapshot]:
    """Archive localement l'état actuel des chemins qui vont être écrasés.

    Les chemins absents sont ignorés ; si aucun n'existe, aucun snapshot n'est
    créé et ce n'est pas une erreur. Un échec d'archivage est consigné et le
    run continue : le snapshot sert à un retour arrière manuel, il n'est pas
    vérifié.
    """

    sources = existing_items(items)
    if not sources:
        logger.info("Rien à sauvegarder avant restauration (aucun chemin présent)")
        report.add("snapshot", ok=True, detail="ignoré: aucun chemin présent")
        return None

    target = snapshot_path(work_dir, now)
    logger.info("Snapshot de sécurité %s (%s chemin(s))", target, len(sources))
    outcome: dict[str, bool] = {}

    def _create() -> None:
        outcome["complete"] = codec.create(target, sources)

    if not best_effort(report, "snapshot", _create, logger):
        if target.exists():
            logger.warning("Archive de snapshot incomplète conservée: %s", target)
            report.steps[-1].detail = f"{report.steps[-1].detail} (archive incomplète: {target})"
        return None

    complete = outcome.get("complete", True)
    if not complete:
        logger.warning("Snapshot partiel: des fichiers ont changé pendant l'archivage")
        report.steps[-1].detail = "partiel"
    else:
        logger.info("Snapshot de sécurité créé")
    return SafetySnapshot(path=target, timestamp=now, sources=tuple(sources), complete=complete)
