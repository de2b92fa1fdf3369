"""Console de suivi des restaurations.

Lecture seule : historique des runs, journaux et plan (dry-run). Aucune route
ne déclenche de restauration destructive ; celle-ci reste une commande
opérateur (`vpn-restore --yes`).

Lancement : `uvicorn --factory runner.app:create_app`.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from vpsrestore.restore.config import RestoreConfig, load_config
from vpsrestore.restore.errors import ConfigurationError, SelectionError, TransferError
from vpsrestore.restore.plan import build_plan, plan_as_dict
from vpsrestore.restore.selection import select_backup
from vpsrestore.restore.transfer import BackupTransferProvider, RcloneTransfer
from vpsrestore.store.sqlite_store import RestoreState

RUN_ID_RE = re.compile(r"^[0-9A-Za-z-]+$")
LOG_FILENAME = "restore.log"


def create_app(
    config: Optional[RestoreConfig] = None,
    state: Optional[RestoreState] = None,
    transfer: Optional[BackupTransferProvider] = None,
) -> FastAPI:
    config = config or load_config()
    state = state or RestoreState(config.state_db)
    state.ensure_schema()
    transfer = transfer or RcloneTransfer(logging.getLogger("restore.console"))

    app = FastAPI(title="VPS Restore Console", version="0.1.0")

    # --- Helpers ---
    def _get_run(run_id: str) -> Dict[str, Any]:
        run = state.get_run(run_id) if RUN_ID_RE.match(run_id) else None
        if not run:
            raise HTTPException(status_code=404, detail="Run inconnu")
        return run

    # --- Routes ---
    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/runs")
    def list_runs() -> List[Dict[str, Any]]:
        return state.list_runs()

    @app.get("/runs/{run_id}")
    def run_detail(run_id: str) -> Dict[str, Any]:
        return _get_run(run_id)

    @app.get("/runs/{run_id}/log", response_class=PlainTextResponse)
    def view_log(run_id: str) -> PlainTextResponse:
        _get_run(run_id)
        log_path = config.logs_dir / run_id / LOG_FILENAME
        if not log_path.exists():
            raise HTTPException(status_code=404, detail="Fichier de log introuvable")
        content = log_path.read_text(encoding="utf-8", errors="replace")
        return PlainTextResponse(content)

    @app.get("/plan")
    def plan(backup: Optional[str] = None, date: Optional[str] = None) -> Dict[str, Any]:
        try:
            descriptor = select_backup(config, transfer, backup_name=backup, backup_date=date)
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except SelectionError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except TransferError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return plan_as_dict(build_plan(config, descriptor))

    return app
