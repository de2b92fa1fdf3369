"""Arrêt puis redémarrage ordonné des services dépendants.

Chaque action est non bloquante : un service en panne ne doit jamais empêcher
la restauration des autres. Une stack compose sans runtime ou sans fichier
compose est ignorée (ni tentée, ni comptée en échec).
"""
from __future__ import annotations

import logging
import shutil
from functools import partial
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from vpsrestore.logging.logger import first_lines, run_command
from vpsrestore.restore import compose
from vpsrestore.restore.config import RestoreConfig
from vpsrestore.restore.models import (
    COMPOSE_STACK,
    ROLE_AUXILIARY,
    ROLE_EDGE,
    ROLE_STACK,
    SIMPLE_UNIT,
    ServiceSet,
    ServiceUnit,
)
from vpsrestore.restore.report import RunReport, best_effort

STATUS_LINES = 14


class ServiceLifecycleProvider(Protocol):
    def unit_exists(self, unit: str) -> bool:
        ...

    def stop_unit(self, unit: str) -> None:
        ...

    def start_unit(self, unit: str) -> None:
        ...

    def reload_daemon(self) -> None:
        ...

    def compose_command(self) -> Optional[List[str]]:
        ...

    def compose_down(self, compose_command: Sequence[str], compose_file: Path) -> None:
        ...

    def compose_up(self, compose_command: Sequence[str], compose_file: Path) -> None:
        ...

    def unit_status(self, unit: str) -> str:
        ...

    def container_overview(self) -> Optional[str]:
        ...


class SystemdDockerLifecycle:
    """Services systemd via `systemctl`, stack Marzban via docker compose."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def unit_exists(self, unit: str) -> bool:
        result = run_command(["systemctl", "list-unit-files", "--no-legend"], logger=self.logger, log_output=False)
        return any(line.split()[0] == unit for line in result.stdout.splitlines() if line.strip())

    def stop_unit(self, unit: str) -> None:
        run_command(["systemctl", "stop", unit], logger=self.logger)

    def start_unit(self, unit: str) -> None:
        run_command(["systemctl", "start", unit], logger=self.logger)

    def reload_daemon(self) -> None:
        run_command(["systemctl", "daemon-reload"], logger=self.logger)

    def compose_command(self) -> Optional[List[str]]:
        return compose.detect_compose_command()

    def compose_down(self, compose_command: Sequence[str], compose_file: Path) -> None:
        compose.compose_down(compose_command, compose_file, self.logger)

    def compose_up(self, compose_command: Sequence[str], compose_file: Path) -> None:
        compose.compose_up(compose_command, compose_file, self.logger)

    def unit_status(self, unit: str) -> str:
        # `systemctl status` renvoie 3 pour une unité inactive : ce n'est pas une erreur ici.
        result = run_command(
            ["systemctl", "--no-pager", "--full", "status", unit],
            logger=self.logger,
            ok_codes=(0, 1, 2, 3, 4),
            log_output=False,
        )
        return "\n".join(first_lines(result.stdout, STATUS_LINES))

    def container_overview(self) -> Optional[str]:
        if not shutil.which("docker"):
            return None
        result = run_command(
            ["docker", "ps", "--format", "table {{.Names}}\t{{.Image}}\t{{.Status}}"],
            logger=self.logger,
            log_output=False,
        )
        return result.stdout.strip()


def detect_services(config: RestoreConfig, provider: ServiceLifecycleProvider, logger: logging.Logger) -> ServiceSet:
    """Détecte la présence des services au début du run (jamais mise en cache)."""

    try:
        bot_present = provider.unit_exists(config.bot_service)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Détection de %s impossible: %s", config.bot_service, exc)
        bot_present = False

    try:
        compose_command = provider.compose_command()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Détection de docker compose impossible: %s", exc)
        compose_command = None
    stack_present = bool(compose_command) and config.compose_file.is_file()

    services = ServiceSet(
        auxiliary=ServiceUnit(config.bot_service, SIMPLE_UNIT, ROLE_AUXILIARY, present=bot_present),
        stack=ServiceUnit(
            str(config.compose_file),
            COMPOSE_STACK,
            ROLE_STACK,
            present=stack_present,
            compose_command=tuple(compose_command or ()),
        ),
        # Le reverse proxy est toujours tenté ; un échec est simplement consigné.
        edge=ServiceUnit(config.nginx_service, SIMPLE_UNIT, ROLE_EDGE, present=True),
    )
    logger.info(
        "Services détectés: bot=%s, stack compose=%s, proxy=%s",
        "oui" if bot_present else "non",
        "oui" if stack_present else "non",
        config.nginx_service,
    )
    return services


class ServiceLifecycleController:
    def __init__(
        self,
        services: ServiceSet,
        provider: ServiceLifecycleProvider,
        report: RunReport,
        logger: logging.Logger,
    ) -> None:
        self.services = services
        self.provider = provider
        self.report = report
        self.logger = logger

    def stop_all(self) -> None:
        self.logger.info("Arrêt des services (début de l'interruption)")
        for unit in self.services.stop_order():
            self._act(unit, "stop")

    def start_all(self) -> None:
        self.logger.info("Démarrage des services")
        for unit in self.services.start_order():
            self._act(unit, "start")

    def reload(self) -> None:
        self.logger.info("Rechargement de systemd")
        best_effort(self.report, "daemon-reload", self.provider.reload_daemon, self.logger)

    def _act(self, unit: ServiceUnit, action: str) -> None:
        if not unit.present:
            self.logger.info("%s ignoré (%s absent)", action, unit.identifier)
            return

        if unit.kind == COMPOSE_STACK:
            compose_file = Path(unit.identifier)
            if action == "stop":
                name = f"compose down {compose_file}"
                step = partial(self.provider.compose_down, unit.compose_command, compose_file)
            else:
                name = f"compose up {compose_file}"
                step = partial(self.provider.compose_up, unit.compose_command, compose_file)
        else:
            handler = self.provider.stop_unit if action == "stop" else self.provider.start_unit
            name = f"{action} {unit.identifier}"
            step = partial(handler, unit.identifier)

        best_effort(self.report, name, step, self.logger)
