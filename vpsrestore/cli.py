from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from vpsrestore.restore.config import ENV_FILE, load_config, write_default_env
from vpsrestore.restore.errors import ApplyError, RestoreError
from vpsrestore.restore.models import snapshot_label
from vpsrestore.restore.preflight import require_root
from vpsrestore.services import restore
from vpsrestore.services.credentials import (
    RCLONE_CONF_PATH,
    CredentialBootstrap,
    default_passphrase_source,
    embedded_blob,
    load_blob,
)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_APPLY_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="vpn-restore",
        description="Restauration VPS (Marzban/Xray + Nginx + Bot) depuis une archive rclone.",
    )
    ap.add_argument("--env-file", type=Path, default=ENV_FILE, help="Fichier de configuration (backup.env).")
    mode = ap.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Afficher le plan sans rien modifier.")
    mode.add_argument("--yes", action="store_true", help="Restaurer réellement (arrête les services).")
    pick = ap.add_mutually_exclusive_group()
    pick.add_argument("--backup", metavar="NAME", help="Nom exact de l'archive, ex. vpn-backup-2024-01-15.tar.gz.")
    pick.add_argument("--date", metavar="YYYY-MM-DD", help="Date de l'archive à restaurer.")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        require_root()
        config = load_config(args.env_file)
        report = restore.run(
            restore.RestoreRequest(
                backup_name=args.backup,
                backup_date=args.date,
                dry_run=args.dry_run,
                confirmed=args.yes,
            ),
            config,
        )
    except ApplyError as exc:
        print("ERROR: RESTAURATION INCOMPLÈTE, services laissés arrêtés.", file=sys.stderr)
        print(f"ERROR: {exc}", file=sys.stderr)
        print(f"ERROR: reprise manuelle depuis le snapshot: {exc.snapshot_path or '(aucun)'}", file=sys.stderr)
        return EXIT_APPLY_FAILED
    except RestoreError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_FAILED

    if not args.dry_run:
        print(f"RESTORE DONE ({report.status}). Safety tar (local): {snapshot_label(report.snapshot)}")
        for step in report.failures:
            print(f"WARN: {step.name}: {step.detail}", file=sys.stderr)
    return EXIT_OK


def build_bootstrap_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="vpn-restore-bootstrap",
        description="Prépare backup.env et restaure rclone.conf depuis le blob chiffré.",
    )
    ap.add_argument("--env-file", type=Path, default=ENV_FILE)
    ap.add_argument("--blob-file", type=Path, help="Blob openssl base64 remplaçant le blob embarqué.")
    ap.add_argument("--target", type=Path, default=RCLONE_CONF_PATH)
    return ap


def bootstrap_main(argv: Optional[List[str]] = None) -> int:
    args = build_bootstrap_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
    logger = logging.getLogger("restore.bootstrap")

    try:
        require_root()
        if write_default_env(args.env_file):
            logger.info("backup.env par défaut créé: %s", args.env_file)
        else:
            logger.info("backup.env déjà présent (conservé tel quel)")

        if Path(args.target).exists():
            logger.info("%s déjà présent, restauration ignorée", args.target)
        else:
            blob = load_blob(args.blob_file, args.target) if args.blob_file else embedded_blob(args.target)
            bootstrap = CredentialBootstrap(
                blob,
                default_passphrase_source(),
                logger=logger,
            )
            bootstrap.ensure()
    except (RestoreError, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_FAILED

    print("Next:")
    print("  vpn-restore --dry-run")
    print("  vpn-restore --yes")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
