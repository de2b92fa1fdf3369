from __future__ import annotations

import logging
from typing import List

from vpsrestore.restore.lifecycle import ServiceLifecycleProvider
from vpsrestore.restore.models import ServiceSet
from vpsrestore.restore.report import RunReport, best_effort


def collect_health(
    services: ServiceSet,
    provider: ServiceLifecycleProvider,
    report: RunReport,
    logger: logging.Logger,
) -> List[str]:
    """Contrôles rapides après redémarrage ; aucun résultat ne fait échouer le run."""

    logger.info("Contrôles de santé:")
    lines: List[str] = []

    def _unit(unit: str) -> None:
        status = provider.unit_status(unit)
        lines.extend(status.splitlines())

    def _containers() -> None:
        overview = provider.container_overview()
        if overview:
            lines.extend(overview.splitlines())

    best_effort(report, f"status {services.edge.identifier}", lambda: _unit(services.edge.identifier), logger)
    if services.auxiliary.present:
        best_effort(report, f"status {services.auxiliary.identifier}", lambda: _unit(services.auxiliary.identifier), logger)
    best_effort(report, "docker ps", _containers, logger)

    for line in lines:
        logger.info("  %s", line)
    report.health.extend(lines)
    return lines
