from __future__ import annotations

import logging
from typing import Optional, Tuple

from vpsrestore.restore.archive import ArchiveCodec
from vpsrestore.restore.errors import ApplyError
from vpsrestore.restore.models import SafetySnapshot, ValidatedArchive


def apply_archive(
    validated: ValidatedArchive,
    codec: ArchiveCodec,
    logger: logging.Logger,
    snapshot: Optional[SafetySnapshot] = None,
) -> Tuple[str, ...]:
    """Extrait l'archive validée sur les chemins absolus qu'elle contient, en écrasant l'existant.

    Doit être appelé une fois les services arrêtés. Renvoie les entrées telles
    que listées par la validation.

    Raises:
        ApplyError: extraction échouée ; les services restent arrêtés.
    """

    logger.info("Restauration des fichiers depuis %s (%s entrée(s))", validated.path, len(validated.entries))
    try:
        codec.extract(validated.path)
    except Exception as exc:  # noqa: BLE001 - tout échec ici laisse le système arrêté
        raise ApplyError(
            f"Extraction de {validated.path} échouée: {exc}",
            snapshot_path=snapshot.path if snapshot is not None else None,
        ) from exc

    logger.info("Fichiers restaurés")
    return validated.entries
