from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Protocol, Sequence

from vpsrestore.logging.logger import run_command

# tar renvoie 1 quand un fichier a changé pendant sa lecture : archive produite mais partielle.
TAR_FILES_CHANGED = 1


class ArchiveCodec(Protocol):
    def list_entries(self, archive: Path) -> List[str]:
        ...

    def create(self, archive: Path, sources: Sequence[str]) -> bool:
        """Archive `sources` (chemins absolus conservés) ; False si l'archive est partielle."""
        ...

    def extract(self, archive: Path) -> None:
        ...


class TarArchiveCodec:
    """Archives tar.gz à chemins absolus, via le binaire `tar`."""

    def __init__(self, logger: logging.Logger, binary: str = "tar") -> None:
        self.logger = logger
        self.binary = binary

    def list_entries(self, archive: Path) -> List[str]:
        result = run_command([self.binary, "-tzf", str(archive)], logger=self.logger, log_output=False)
        return [line for line in result.stdout.splitlines() if line.strip()]

    def create(self, archive: Path, sources: Sequence[str]) -> bool:
        cmd = [
            self.binary,
            "-czf",
            str(archive),
            "--warning=no-file-changed",
            "--absolute-names",
            *sources,
        ]
        result = run_command(cmd, logger=self.logger, ok_codes=(0, TAR_FILES_CHANGED))
        return result.returncode == 0

    def extract(self, archive: Path) -> None:
        run_command(
            [self.binary, "-xzf", str(archive), "--absolute-names", "--overwrite"],
            logger=self.logger,
        )
