"""Plan de restauration : calcul pur, sans effet de bord.

Sert de garde-fou entre la sélection de l'archive et l'exécution ; le chemin
destructif n'est emprunté qu'après confirmation explicite.
"""
from __future__ import annotations

from typing import Any, Dict, List

from vpsrestore.restore.config import RestoreConfig
from vpsrestore.restore.models import BackupDescriptor, RestorePlan


def planned_actions(config: RestoreConfig, descriptor: BackupDescriptor) -> List[str]:
    return [
        f"télécharger {descriptor.remote_path} -> {descriptor.local_path}",
        f"valider l'archive {descriptor.local_path}",
        f"snapshot de sécurité des chemins existants dans {config.local_work_dir}",
        f"arrêter {config.bot_service} (si installé)",
        f"docker compose down {config.compose_file} (si compose disponible)",
        f"arrêter {config.nginx_service}",
        f"extraire {descriptor.name} (chemins absolus, écrasement)",
        "systemctl daemon-reload",
        f"démarrer {config.nginx_service}",
        f"docker compose up -d {config.compose_file} (si compose disponible)",
        f"démarrer {config.bot_service} (si installé)",
        "contrôles de santé",
    ]


def build_plan(config: RestoreConfig, descriptor: BackupDescriptor) -> RestorePlan:
    return RestorePlan(
        descriptor=descriptor,
        restore_items=tuple(config.restore_items),
        actions=tuple(planned_actions(config, descriptor)),
    )


def render_plan(config: RestoreConfig, plan: RestorePlan) -> str:
    lines = [
        "=== PLAN ===",
        f"ENV_FILE: {config.env_file or '(non défini)'}",
        f"RCLONE_REMOTE: {config.remote_location}",
        f"WORKDIR: {config.local_work_dir}",
        f"Archive: {plan.descriptor.name}",
        f"Archive locale: {plan.descriptor.local_path}",
        "Chemins restaurés (depuis l'archive):",
    ]
    lines.extend(f"  {item}" for item in plan.restore_items)
    lines.append("Actions:")
    lines.extend(f"  {index}. {action}" for index, action in enumerate(plan.actions, start=1))
    lines.append("============")
    return "\n".join(lines)


def plan_as_dict(plan: RestorePlan) -> Dict[str, Any]:
    return {
        "plan_id": plan.plan_id,
        "backup": plan.descriptor.name,
        "remote_path": plan.descriptor.remote_path,
        "local_path": str(plan.descriptor.local_path),
        "restore_items": list(plan.restore_items),
        "actions": list(plan.actions),
    }
