from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple

import pytest

from vpsrestore.restore.config import RestoreConfig
from vpsrestore.restore.restore_run import RestoreProviders


@dataclass
class FakeTransfer:
    events: List[str]
    objects: List[str] = field(default_factory=list)
    fail_list: bool = False
    fail_download: bool = False
    listed: int = 0

    def list_objects(self, remote: str) -> List[str]:
        self.listed += 1
        self.events.append(f"list {remote}")
        if self.fail_list:
            raise RuntimeError("remote unreachable")
        return list(self.objects)

    def download(self, remote_path: str, local_path: Path) -> None:
        self.events.append(f"download {remote_path}")
        if self.fail_download:
            raise RuntimeError("object not found")
        Path(local_path).write_bytes(b"fake-tarball")


@dataclass
class FakeArchiveCodec:
    events: List[str]
    entries: Tuple[str, ...] = ("/etc/nginx/nginx.conf", "/opt/marzban/.env")
    fail_list: bool = False
    fail_create: bool = False
    leave_partial: bool = False
    fail_extract: bool = False
    partial: bool = False
    created: List[Tuple[Path, Tuple[str, ...]]] = field(default_factory=list)
    extracted: List[Path] = field(default_factory=list)

    def list_entries(self, archive: Path) -> List[str]:
        self.events.append("validate")
        if self.fail_list:
            raise RuntimeError("gzip: stdin: not in gzip format")
        return list(self.entries)

    def create(self, archive: Path, sources: Sequence[str]) -> bool:
        self.events.append("snapshot")
        if self.leave_partial:
            Path(archive).write_bytes(b"trunc")
        if self.fail_create:
            raise RuntimeError("tar: cannot open")
        Path(archive).write_bytes(b"snapshot")
        self.created.append((Path(archive), tuple(sources)))
        return not self.partial

    def extract(self, archive: Path) -> None:
        self.events.append("extract")
        if self.fail_extract:
            raise RuntimeError("tar: Unexpected EOF in archive")
        self.extracted.append(Path(archive))


@dataclass
class FakeLifecycle:
    events: List[str]
    installed: Set[str] = field(default_factory=set)
    compose: Optional[List[str]] = None
    failing: Set[str] = field(default_factory=set)

    def _maybe_fail(self, name: str) -> None:
        if name in self.failing:
            raise RuntimeError(f"{name} failed")

    def unit_exists(self, unit: str) -> bool:
        return unit in self.installed

    def stop_unit(self, unit: str) -> None:
        self.events.append(f"stop {unit}")
        self._maybe_fail(f"stop {unit}")

    def start_unit(self, unit: str) -> None:
        self.events.append(f"start {unit}")
        self._maybe_fail(f"start {unit}")

    def reload_daemon(self) -> None:
        self.events.append("daemon-reload")
        self._maybe_fail("daemon-reload")

    def compose_command(self) -> Optional[List[str]]:
        return self.compose

    def compose_down(self, compose_command: Sequence[str], compose_file: Path) -> None:
        self.events.append("compose down")
        self._maybe_fail("compose down")

    def compose_up(self, compose_command: Sequence[str], compose_file: Path) -> None:
        self.events.append("compose up")
        self._maybe_fail("compose up")

    def unit_status(self, unit: str) -> str:
        return f"● {unit}\n   Active: active (running)"

    def container_overview(self) -> Optional[str]:
        return "NAMES\tIMAGE\tSTATUS\nmarzban\tgozargah/marzban\tUp 3 seconds" if self.compose else None


@pytest.fixture
def events() -> List[str]:
    return []


@pytest.fixture
def config(tmp_path) -> RestoreConfig:
    nginx_dir = tmp_path / "etc" / "nginx"
    marzban_dir = tmp_path / "opt" / "marzban"
    return RestoreConfig(
        remote_location="gdrive:VPN-BACKUP",
        local_work_dir=tmp_path / "restore-run",
        restore_items=(str(nginx_dir), str(marzban_dir), str(tmp_path / "var" / "lib" / "marzban")),
        backup_workdir=tmp_path / "vpn-backup",
        backup_prefix="backup",
        bot_service="budivpn-bot.service",
        nginx_service="nginx.service",
        compose_file=marzban_dir / "docker-compose.yml",
    )


@pytest.fixture
def transfer(events) -> FakeTransfer:
    return FakeTransfer(
        events=events,
        objects=["backup-2024-01-02.tar.gz", "backup-2024-01-15.tar.gz", "backup-2023-12-31.tar.gz"],
    )


@pytest.fixture
def codec(events) -> FakeArchiveCodec:
    return FakeArchiveCodec(events=events)


@pytest.fixture
def lifecycle(events) -> FakeLifecycle:
    return FakeLifecycle(events=events, installed={"budivpn-bot.service"}, compose=["docker", "compose"])


@pytest.fixture
def providers(transfer, codec, lifecycle) -> RestoreProviders:
    return RestoreProviders(transfer=transfer, codec=codec, lifecycle=lifecycle)


@pytest.fixture
def fixed_now():
    return lambda: datetime(2024, 1, 16, 3, 4, 5)
