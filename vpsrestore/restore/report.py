from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from vpsrestore.restore.models import SafetySnapshot

STATUS_RUNNING = "RUNNING"
STATUS_DRY_RUN = "DRY_RUN"
STATUS_COMPLETED = "COMPLETED"
STATUS_COMPLETED_WITH_WARNINGS = "COMPLETED_WITH_WARNINGS"
STATUS_FAILED = "FAILED"
STATUS_FAILED_APPLY = "FAILED_APPLY"


@dataclass
class StepOutcome:
    name: str
    ok: bool
    detail: str = ""


@dataclass
class RunReport:
    run_id: str
    backup_name: str = ""
    status: str = STATUS_RUNNING
    message: str = ""
    steps: List[StepOutcome] = field(default_factory=list)
    snapshot: Optional[SafetySnapshot] = None
    health: List[str] = field(default_factory=list)

    def add(self, name: str, ok: bool, detail: str = "") -> StepOutcome:
        outcome = StepOutcome(name=name, ok=ok, detail=detail)
        self.steps.append(outcome)
        return outcome

    @property
    def failures(self) -> List[StepOutcome]:
        return [step for step in self.steps if not step.ok]

    def step(self, name: str) -> Optional[StepOutcome]:
        for outcome in self.steps:
            if outcome.name == name:
                return outcome
        return None


def best_effort(report: RunReport, name: str, action: Callable[[], object], logger: logging.Logger) -> bool:
    """Exécute une action non bloquante et consigne son résultat dans le rapport.

    Un échec est journalisé en warning puis le run continue ; aucune exception
    ne remonte à l'appelant.
    """

    try:
        action()
    except Exception as exc:  # noqa: BLE001 - étape non bloquante, tracée dans le rapport
        logger.warning("%s échoué (non bloquant): %s", name, exc)
        report.add(name, ok=False, detail=str(exc))
        return False

    report.add(name, ok=True)
    return True
