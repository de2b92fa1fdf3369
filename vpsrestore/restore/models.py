from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

SIMPLE_UNIT = "simple_unit"
COMPOSE_STACK = "compose_stack"

ROLE_AUXILIARY = "auxiliary"
ROLE_STACK = "stack"
ROLE_EDGE = "edge"


@dataclass(frozen=True)
class BackupDescriptor:
    name: str
    remote_path: str
    local_path: Path


@dataclass(frozen=True)
class RestorePlan:
    descriptor: BackupDescriptor
    restore_items: Tuple[str, ...]
    actions: Tuple[str, ...]
    plan_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class ValidatedArchive:
    """Archive dont le listing a été lu sans erreur ; seule entrée acceptée par l'extraction."""

    path: Path
    entries: Tuple[str, ...]


@dataclass(frozen=True)
class SafetySnapshot:
    path: Path
    timestamp: datetime
    sources: Tuple[str, ...]
    complete: bool = True


@dataclass(frozen=True)
class ServiceUnit:
    identifier: str
    kind: str
    role: str
    present: bool
    # Commande compose détectée (`docker compose` ou `docker-compose`), stacks uniquement.
    compose_command: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ServiceSet:
    auxiliary: ServiceUnit
    stack: ServiceUnit
    edge: ServiceUnit

    def stop_order(self) -> List[ServiceUnit]:
        return [self.auxiliary, self.stack, self.edge]

    def start_order(self) -> List[ServiceUnit]:
        # Le reverse proxy repart en premier pour rétablir l'accès au plus vite.
        return [self.edge, self.stack, self.auxiliary]


class RunPhase(str, Enum):
    PLANNED = "PLANNED"
    TRANSFERRED = "TRANSFERRED"
    VALIDATED = "VALIDATED"
    SNAPSHOTTED = "SNAPSHOTTED"
    SERVICES_STOPPED = "SERVICES_STOPPED"
    APPLIED = "APPLIED"
    SERVICES_STARTED = "SERVICES_STARTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


PHASE_ORDER = [
    RunPhase.PLANNED,
    RunPhase.TRANSFERRED,
    RunPhase.VALIDATED,
    RunPhase.SNAPSHOTTED,
    RunPhase.SERVICES_STOPPED,
    RunPhase.APPLIED,
    RunPhase.SERVICES_STARTED,
    RunPhase.COMPLETED,
]


def can_advance(current: RunPhase, target: RunPhase) -> bool:
    if current in (RunPhase.COMPLETED, RunPhase.FAILED):
        return False
    if target is RunPhase.FAILED:
        return True
    return PHASE_ORDER.index(target) == PHASE_ORDER.index(current) + 1


@dataclass(frozen=True)
class CredentialBlob:
    encrypted_payload: str
    target_path: Path


def snapshot_label(snapshot: Optional[SafetySnapshot]) -> str:
    return str(snapshot.path) if snapshot is not None else "(aucun)"
