"""Orchestration d'une restauration depuis une archive distante.

Chemin unique et strictement séquentiel :
- sélection de l'archive (nom, date ou la plus récente sur le remote)
- affichage du plan ; un dry-run s'arrête ici sans rien écrire
- téléchargement puis validation de l'archive (avant toute interruption)
- snapshot local de l'état courant des chemins restaurés
- arrêt des services, extraction, daemon-reload, redémarrage
- contrôles de santé et enregistrement du run dans SQLite

Aucun retour arrière automatique : si l'extraction échoue, les services restent
arrêtés et le snapshot de sécurité sert à une reprise manuelle.
"""
from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from vpsrestore.logging.logger import build_logger, close_logger
from vpsrestore.restore.apply import apply_archive
from vpsrestore.restore.archive import ArchiveCodec
from vpsrestore.restore.config import RestoreConfig
from vpsrestore.restore.errors import ApplyError, ConfigurationError, ConfirmationRequiredError, RestoreError
from vpsrestore.restore.health import collect_health
from vpsrestore.restore.lifecycle import ServiceLifecycleController, ServiceLifecycleProvider, detect_services
from vpsrestore.restore.models import RestorePlan, RunPhase, can_advance, snapshot_label
from vpsrestore.restore.plan import build_plan, render_plan
from vpsrestore.restore.report import (
    STATUS_COMPLETED,
    STATUS_COMPLETED_WITH_WARNINGS,
    STATUS_DRY_RUN,
    STATUS_FAILED,
    STATUS_FAILED_APPLY,
    RunReport,
)
from vpsrestore.restore.selection import select_backup
from vpsrestore.restore.snapshot import take_safety_snapshot
from vpsrestore.restore.transfer import BackupTransferProvider, ensure_workdir, fetch_backup, validate_archive
from vpsrestore.store.sqlite_store import RestoreState


@dataclass(frozen=True)
class RestoreProviders:
    transfer: BackupTransferProvider
    codec: ArchiveCodec
    lifecycle: ServiceLifecycleProvider


def new_run_id(now: datetime) -> str:
    return f"{now.strftime('%Y%m%dT%H%M%S')}-{uuid.uuid4().hex[:8]}"


class RestoreRun:
    """Exécution unique d'un plan de restauration.

    Les phases avancent strictement dans l'ordre ; un plan échoué n'est jamais
    repris, il faut recalculer un plan pour réessayer.
    """

    def __init__(
        self,
        config: RestoreConfig,
        plan: RestorePlan,
        providers: RestoreProviders,
        *,
        logger: logging.Logger,
        run_id: str,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self.plan = plan
        self.providers = providers
        self.logger = logger
        self.now = now
        self.phase = RunPhase.PLANNED
        self.report = RunReport(run_id=run_id, backup_name=plan.descriptor.name)
        self._started = False

    def execute(self) -> RunReport:
        if self._started:
            raise RestoreError("Plan déjà exécuté : recalculer un plan pour réessayer")
        self._started = True

        try:
            services = detect_services(self.config, self.providers.lifecycle, self.logger)

            archive = fetch_backup(self.plan.descriptor, self.providers.transfer, self.logger)
            self.report.add("download", ok=True, detail=str(archive))
            self._advance(RunPhase.TRANSFERRED)

            validated = validate_archive(archive, self.providers.codec, self.logger)
            self.report.add("validate", ok=True, detail=f"{len(validated.entries)} entrée(s)")
            self._advance(RunPhase.VALIDATED)

            self.report.snapshot = take_safety_snapshot(
                self.plan.restore_items,
                self.config.local_work_dir,
                self.providers.codec,
                self.report,
                self.logger,
                self.now(),
            )
            self._advance(RunPhase.SNAPSHOTTED)
        except RestoreError as exc:
            self._fail(STATUS_FAILED, str(exc))
            raise

        controller = ServiceLifecycleController(services, self.providers.lifecycle, self.report, self.logger)
        controller.stop_all()
        self._advance(RunPhase.SERVICES_STOPPED)

        try:
            apply_archive(validated, self.providers.codec, self.logger, snapshot=self.report.snapshot)
        except ApplyError as exc:
            self._fail(STATUS_FAILED_APPLY, str(exc))
            self.logger.critical("!!! RESTAURATION INCOMPLÈTE : extraction échouée, services laissés ARRÊTÉS !!!")
            self.logger.critical("Cause: %s", exc)
            self.logger.critical(
                "Reprise manuelle requise. Snapshot de sécurité: %s", snapshot_label(self.report.snapshot)
            )
            raise
        self.report.add("extract", ok=True, detail=f"{len(validated.entries)} entrée(s)")
        self._advance(RunPhase.APPLIED)

        controller.reload()
        controller.start_all()
        self._advance(RunPhase.SERVICES_STARTED)

        collect_health(services, self.providers.lifecycle, self.report, self.logger)
        self._advance(RunPhase.COMPLETED)

        failures = self.report.failures
        if failures:
            self.report.status = STATUS_COMPLETED_WITH_WARNINGS
            self.report.message = f"{len(failures)} étape(s) non bloquante(s) en échec"
        else:
            self.report.status = STATUS_COMPLETED
            self.report.message = "Restauration terminée"
        return self.report

    def _advance(self, phase: RunPhase) -> None:
        if not can_advance(self.phase, phase):
            raise RestoreError(f"Transition interdite: {self.phase.value} -> {phase.value}")
        self.logger.info("Phase: %s", phase.value)
        self.phase = phase

    def _fail(self, status: str, message: str) -> None:
        self.logger.error("Restauration échouée après la phase %s: %s", self.phase.value, message)
        self.phase = RunPhase.FAILED
        self.report.status = status
        self.report.message = message


def run_restore(
    config: RestoreConfig,
    providers: RestoreProviders,
    *,
    backup_name: Optional[str] = None,
    backup_date: Optional[str] = None,
    dry_run: bool = False,
    confirmed: bool = False,
    state: Optional[RestoreState] = None,
    echo: Callable[[str], None] = print,
    now: Callable[[], datetime] = datetime.now,
    run_id: Optional[str] = None,
) -> RunReport:
    """Restaure l'état de l'hôte depuis une archive du remote.

    Args:
        config: Configuration chargée depuis `backup.env`.
        providers: Accès au remote, à l'archiveur et au gestionnaire de services.
        backup_name: Nom d'archive imposé (pris tel quel).
        backup_date: Date `YYYY-MM-DD` de l'archive à restaurer.
        dry_run: Affiche le plan et s'arrête sans aucune écriture.
        confirmed: Autorise le chemin destructif (`--yes`).
        state: Historique SQLite, par défaut `<work_dir>/state.sqlite`.
        run_id: Identifiant du run, généré si absent (logger `restore.<run_id>`).

    Raises:
        RestoreError: toute erreur fatale ; `ApplyError` si les services sont restés arrêtés.
    """

    run_id = run_id or new_run_id(now())
    logger = build_logger(run_id)
    try:
        logger.info("=== Restauration %s démarrée ===", run_id)
        descriptor = select_backup(
            config,
            providers.transfer,
            backup_name=backup_name,
            backup_date=backup_date,
            logger=logger,
        )
        logger.info("Archive sélectionnée: %s", descriptor.name)
        logger.info("Objet distant: %s", descriptor.remote_path)
        logger.info("Archive locale: %s", descriptor.local_path)

        plan = build_plan(config, descriptor)
        echo(render_plan(config, plan))

        if dry_run:
            logger.info("DRY RUN: aucune modification effectuée.")
            return RunReport(run_id=run_id, backup_name=descriptor.name, status=STATUS_DRY_RUN, message="dry-run")

        if not confirmed:
            raise ConfirmationRequiredError("Arrêt de sécurité : relancer avec --yes pour restaurer réellement.")

        try:
            ensure_workdir(config.local_work_dir)
            build_logger(run_id, config.logs_dir)
            state = state or RestoreState(config.state_db)
            state.ensure_schema()
        except (OSError, sqlite3.Error) as exc:
            raise ConfigurationError(f"Répertoire de travail inutilisable {config.local_work_dir}: {exc}") from exc

        run = RestoreRun(config, plan, providers, logger=logger, run_id=run_id, now=now)
        _record(state, run.report, logger)
        try:
            report = run.execute()
        except RestoreError:
            _record(state, run.report, logger)
            raise

        _record(state, report, logger)
        logger.info("=== RESTAURATION TERMINÉE (%s) ===", report.status)
        logger.info("Snapshot de sécurité local: %s", snapshot_label(report.snapshot))
        return report
    finally:
        close_logger(logger)


def _record(state: RestoreState, report: RunReport, logger: logging.Logger) -> None:
    try:
        state.record_run(report)
    except Exception as db_exc:  # noqa: BLE001 - trace secondaire
        logger.exception("Impossible d'écrire le statut du run: %s", db_exc)
