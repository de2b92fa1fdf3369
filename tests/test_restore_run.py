import dataclasses
import logging
import os

import pytest

from vpsrestore.restore.apply import apply_archive
from vpsrestore.restore.errors import (
    ApplyError,
    ArchiveValidationError,
    ConfigurationError,
    ConfirmationRequiredError,
    RestoreError,
    TransferError,
)
from vpsrestore.restore.models import RunPhase
from vpsrestore.restore.plan import build_plan
from vpsrestore.restore.report import (
    STATUS_COMPLETED,
    STATUS_COMPLETED_WITH_WARNINGS,
    STATUS_DRY_RUN,
    STATUS_FAILED,
    STATUS_FAILED_APPLY,
)
from vpsrestore.restore.restore_run import RestoreRun, run_restore
from vpsrestore.restore.selection import describe
from vpsrestore.restore.transfer import validate_archive
from vpsrestore.store.sqlite_store import RestoreState


def _populate_host(config):
    """Crée les chemins restaurés et le fichier compose, comme sur un hôte en service."""
    for item in config.restore_items[:2]:
        os.makedirs(item, exist_ok=True)
        with open(os.path.join(item, "current.conf"), "w", encoding="utf-8") as f:
            f.write("current\n")
    config.compose_file.write_text("services: {}\n", encoding="utf-8")


def _run(config, providers, fixed_now, **kwargs):
    kwargs.setdefault("confirmed", True)
    return run_restore(config, providers, echo=lambda _text: None, now=fixed_now, **kwargs)


def test_full_restore_order(config, providers, events, codec, fixed_now):
    _populate_host(config)

    report = _run(config, providers, fixed_now)

    assert report.status == STATUS_COMPLETED
    assert events == [
        "list gdrive:VPN-BACKUP",
        "download gdrive:VPN-BACKUP/backup-2024-01-15.tar.gz",
        "validate",
        "snapshot",
        "stop budivpn-bot.service",
        "compose down",
        "stop nginx.service",
        "extract",
        "daemon-reload",
        "start nginx.service",
        "compose up",
        "start budivpn-bot.service",
    ]
    assert codec.extracted == [config.local_work_dir / "backup-2024-01-15.tar.gz"]
    assert report.snapshot is not None
    assert report.snapshot.path == config.local_work_dir / "pre-restore-2024-01-16_030405.tar.gz"
    assert report.snapshot.sources == config.restore_items[:2]
    assert report.snapshot.path.is_file()
    assert any("active (running)" in line for line in report.health)


def test_run_is_recorded_with_log_file(config, providers, fixed_now):
    report = _run(config, providers, fixed_now, run_id="20240116T030405-abcd1234")

    run = RestoreState(config.state_db).get_run(report.run_id)
    assert run["status"] == STATUS_COMPLETED
    assert run["backup_name"] == "backup-2024-01-15.tar.gz"
    assert [step["name"] for step in run["steps"]][:2] == ["download", "validate"]

    log_file = config.logs_dir / report.run_id / "restore.log"
    assert "RESTAURATION TERMINÉE" in log_file.read_text(encoding="utf-8")


def test_no_existing_items_skips_snapshot(config, providers, codec, fixed_now):
    report = _run(config, providers, fixed_now)

    assert report.snapshot is None
    assert codec.created == []
    assert report.step("snapshot").ok
    assert not list(config.local_work_dir.glob("pre-restore-*"))


def test_partial_snapshot_is_kept(config, providers, codec, fixed_now):
    _populate_host(config)
    codec.partial = True

    report = _run(config, providers, fixed_now)

    assert report.snapshot is not None
    assert report.snapshot.complete is False
    assert report.step("snapshot").detail == "partiel"
    assert report.status == STATUS_COMPLETED


def test_snapshot_failure_does_not_abort(config, providers, codec, events, fixed_now):
    _populate_host(config)
    codec.fail_create = True

    report = _run(config, providers, fixed_now)

    assert report.snapshot is None
    assert "extract" in events
    assert report.status == STATUS_COMPLETED_WITH_WARNINGS
    assert report.step("snapshot").ok is False


def test_missing_compose_file_skips_stack_only(config, providers, events, fixed_now):
    report = _run(config, providers, fixed_now)

    assert "compose down" not in events
    assert "compose up" not in events
    assert "stop budivpn-bot.service" in events
    assert "start nginx.service" in events
    assert report.status == STATUS_COMPLETED
    assert report.failures == []


def test_absent_bot_is_not_touched(config, providers, lifecycle, events, fixed_now):
    lifecycle.installed = set()

    report = _run(config, providers, fixed_now)

    assert not any("budivpn-bot" in event for event in events)
    assert report.status == STATUS_COMPLETED


def test_failing_service_does_not_stop_the_run(config, providers, lifecycle, events, fixed_now):
    _populate_host(config)
    lifecycle.failing = {"stop budivpn-bot.service", "start nginx.service"}

    report = _run(config, providers, fixed_now)

    assert report.status == STATUS_COMPLETED_WITH_WARNINGS
    assert {step.name for step in report.failures} == {"stop budivpn-bot.service", "start nginx.service"}
    assert events.index("compose up") > events.index("start nginx.service")
    assert events[-1] == "start budivpn-bot.service"


@pytest.mark.parametrize(
    "breakage, expected",
    [("fail_download", TransferError), ("fail_list", ArchiveValidationError)],
)
def test_early_failure_touches_nothing(config, providers, transfer, codec, events, fixed_now, breakage, expected):
    _populate_host(config)
    if breakage == "fail_download":
        transfer.fail_download = True
    else:
        codec.fail_list = True

    with pytest.raises(expected):
        _run(config, providers, fixed_now, run_id="20240116T030405-early000")

    assert "snapshot" not in events
    assert not any(event.startswith(("stop", "compose")) for event in events)
    assert codec.extracted == []
    assert RestoreState(config.state_db).get_run("20240116T030405-early000")["status"] == STATUS_FAILED


def test_empty_archive_is_rejected(config, providers, codec, events, fixed_now):
    codec.entries = ()

    with pytest.raises(ArchiveValidationError):
        _run(config, providers, fixed_now)

    assert "extract" not in events


def test_apply_failure_leaves_services_stopped(config, providers, codec, events, fixed_now, caplog):
    _populate_host(config)
    codec.fail_extract = True

    with caplog.at_level(logging.CRITICAL), pytest.raises(ApplyError) as exc_info:
        _run(config, providers, fixed_now, run_id="20240116T030405-apply000")

    assert exc_info.value.snapshot_path == config.local_work_dir / "pre-restore-2024-01-16_030405.tar.gz"
    assert "stop nginx.service" in events
    assert not any(event.startswith("start") for event in events)
    assert "daemon-reload" not in events
    assert "RESTAURATION INCOMPLÈTE" in caplog.text

    run = RestoreState(config.state_db).get_run("20240116T030405-apply000")
    assert run["status"] == STATUS_FAILED_APPLY


def test_plan_executes_once(config, providers, fixed_now):
    config.local_work_dir.mkdir(parents=True)
    descriptor = describe(config, "backup-2024-01-15.tar.gz")
    run = RestoreRun(
        config,
        build_plan(config, descriptor),
        providers,
        logger=logging.getLogger("restore.test"),
        run_id="once",
        now=fixed_now,
    )

    assert run.execute().status == STATUS_COMPLETED
    assert run.phase is RunPhase.COMPLETED
    with pytest.raises(RestoreError):
        run.execute()


def test_extracted_entries_match_validated_listing(config, providers, codec, fixed_now):
    archive = config.local_work_dir / "backup.tar.gz"
    config.local_work_dir.mkdir(parents=True)
    archive.write_bytes(b"x")
    logger = logging.getLogger("restore.test")

    validated = validate_archive(archive, codec, logger)

    assert apply_archive(validated, codec, logger) == codec.entries


def test_dry_run_writes_nothing(config, providers, events, fixed_now):
    _populate_host(config)
    rendered = []

    report = run_restore(config, providers, dry_run=True, echo=rendered.append, now=fixed_now)

    assert report.status == STATUS_DRY_RUN
    assert report.backup_name == "backup-2024-01-15.tar.gz"
    assert events == ["list gdrive:VPN-BACKUP"]
    assert not config.local_work_dir.exists()
    assert "=== PLAN ===" in rendered[0]
    assert "backup-2024-01-15.tar.gz" in rendered[0]


def test_confirmation_is_required(config, providers, events, fixed_now):
    with pytest.raises(ConfirmationRequiredError):
        _run(config, providers, fixed_now, confirmed=False)

    assert events == ["list gdrive:VPN-BACKUP"]
    assert not config.local_work_dir.exists()


def test_failed_snapshot_reports_leftover_archive(config, providers, codec, fixed_now):
    _populate_host(config)
    codec.fail_create = True
    codec.leave_partial = True
    leftover = config.local_work_dir / "pre-restore-2024-01-16_030405.tar.gz"

    report = _run(config, providers, fixed_now)

    assert report.snapshot is None
    assert leftover.is_file()
    assert str(leftover) in report.step("snapshot").detail
    assert report.step("snapshot").ok is False


def test_unusable_workdir_is_configuration_error(config, providers, events, fixed_now, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    config = dataclasses.replace(config, local_work_dir=blocker / "sub")

    with pytest.raises(ConfigurationError, match="Répertoire de travail"):
        _run(config, providers, fixed_now)

    assert "download gdrive:VPN-BACKUP/backup-2024-01-15.tar.gz" not in events
