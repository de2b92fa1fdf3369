from pathlib import Path

import pytest

from vpsrestore.restore.config import RestoreConfig, load_config, write_default_env
from vpsrestore.restore.errors import ConfigurationError


def _write_env(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_load_config_reads_env_file(tmp_path):
    env = _write_env(
        tmp_path / "backup.env",
        'RCLONE_REMOTE="gdrive:VPN-BACKUP"\n'
        'LOCAL_WORKDIR="/opt/vpn-backup"\n'
        '# commentaire\n'
        'BACKUP_ITEMS="/etc/nginx /opt/marzban /etc/nginx"\n',
    )

    config = load_config(env)

    assert config.remote_location == "gdrive:VPN-BACKUP"
    assert config.restore_items == ("/etc/nginx", "/opt/marzban")
    assert config.local_work_dir == Path("/opt/restore-run")
    assert config.backup_workdir == Path("/opt/vpn-backup")
    assert config.backup_prefix == "vpn-backup"
    assert config.compose_file == Path("/opt/marzban/docker-compose.yml")
    assert config.env_file == env


def test_optional_keys_override_defaults(tmp_path):
    env = _write_env(
        tmp_path / "backup.env",
        "RCLONE_REMOTE=s3:bucket/vps\n"
        "LOCAL_WORKDIR=/srv/backup\n"
        "BACKUP_ITEMS=/etc/nginx\n"
        "RESTORE_WORKDIR=/srv/restore\n"
        "BACKUP_PREFIX=backup\n"
        "BOT_SERVICE=mybot.service\n",
    )

    config = load_config(env)

    assert config.local_work_dir == Path("/srv/restore")
    assert config.backup_prefix == "backup"
    assert config.bot_service == "mybot.service"
    assert config.nginx_service == "nginx.service"


def test_missing_file_is_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "absent.env")


@pytest.mark.parametrize("missing", ["RCLONE_REMOTE", "LOCAL_WORKDIR", "BACKUP_ITEMS"])
def test_required_keys(missing):
    values = {"RCLONE_REMOTE": "gdrive:x", "LOCAL_WORKDIR": "/opt/vpn-backup", "BACKUP_ITEMS": "/etc/nginx"}
    values[missing] = ""

    with pytest.raises(ConfigurationError, match=missing):
        RestoreConfig.from_mapping(values)


def test_relative_restore_item_rejected():
    with pytest.raises(ConfigurationError, match="absolus"):
        RestoreConfig.from_mapping(
            {"RCLONE_REMOTE": "gdrive:x", "LOCAL_WORKDIR": "/opt/vpn-backup", "BACKUP_ITEMS": "/etc/nginx etc/ssl"}
        )


def test_write_default_env_keeps_existing_file(tmp_path):
    env = tmp_path / "vpn-backup" / "backup.env"

    assert write_default_env(env) is True
    assert oct(env.stat().st_mode & 0o777) == "0o600"
    assert load_config(env).remote_location == "gdrive:VPN-BACKUP"

    env.write_text('RCLONE_REMOTE="other:remote"\nLOCAL_WORKDIR=/x\nBACKUP_ITEMS=/etc\n', encoding="utf-8")
    assert write_default_env(env) is False
    assert load_config(env).remote_location == "other:remote"


def test_sample_env_fixture_is_valid():
    sample = Path(__file__).resolve().parents[1] / "fixtures" / "backup.env"

    config = load_config(sample)

    assert config.remote_location == "gdrive:VPN-BACKUP"
    assert "/etc/nginx" in config.restore_items
    assert config.state_db == Path("/opt/restore-run/state.sqlite")
