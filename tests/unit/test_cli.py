"""
Tests for the clustersnap command line.
"""

import json
import logging
import signal
from unittest.mock import patch

import pytest

from clustersnap.connectors.memory import InMemoryResourceApi
from clustersnap.core.cancellation import CancellationToken
from clustersnap.core.exceptions import ConfigError
from clustersnap.snapshot_cli import cancel_on_signal, format_size, main, split_list


@pytest.fixture(autouse=True)
def quiet_cli(monkeypatch):
    """Keep the CLI from touching global logging or the environment."""
    for name in ("CLUSTERSNAP_BACKUP_DIR", "KUBECONFIG", "CLUSTERSNAP_APPLY_STRATEGY", "CLUSTERSNAP_MAX_WORKERS",
                 "CLUSTERSNAP_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    with patch("clustersnap.snapshot_cli.setup_logging"):
        yield


def run_cli(argv, api=None):
    with patch("clustersnap.snapshot_cli.connect", return_value=api) as mock_connect:
        code = main(argv)
    return code, mock_connect


def take_backup(api, backup_dir, name="b1", compress=False):
    argv = ["backup", "-o", str(backup_dir), "--name", name, "--namespaces", "prod"]
    argv.append("--compress" if compress else "--no-compress")
    code, _ = run_cli(argv, api)
    assert code == 0


class TestHelpers:
    """Tests for CLI helpers."""

    def test_split_list(self):
        assert split_list("prod, staging,,") == ["prod", "staging"]
        assert split_list(None) == []

    @pytest.mark.parametrize("size,expected", [
        (512, "512 B"),
        (2048, "2.0 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
        (3 * 1024 ** 3, "3.0 GB"),
    ])
    def test_format_size(self, size, expected):
        assert format_size(size) == expected

    def test_cancel_on_signal_restores_handlers(self):
        original = signal.getsignal(signal.SIGINT)
        token = CancellationToken()

        with cancel_on_signal(token):
            handler = signal.getsignal(signal.SIGINT)
            handler(signal.SIGINT, None)

        assert token.is_cancelled()
        assert signal.getsignal(signal.SIGINT) is original


class TestBackupCommand:
    """Tests for 'clustersnap backup'."""

    def test_backup(self, memory_api, tmp_path, capsys):
        code, mock_connect = run_cli(
            ["--kubeconfig", "/tmp/kc", "--context", "dev",
             "backup", "-o", str(tmp_path), "--name", "b1", "--namespaces", "prod"],
            memory_api,
        )

        assert code == 0
        assert (tmp_path / "b1.tar.gz").is_file()
        out = capsys.readouterr().out
        assert "Backup completed successfully!" in out
        assert "Resources backed up: 4" in out
        assert mock_connect.call_args.kwargs["kubeconfig"] == "/tmp/kc"
        assert mock_connect.call_args.kwargs["context"] == "dev"

    def test_backup_resource_type_filter(self, memory_api, tmp_path, capsys):
        code, _ = run_cli(
            ["backup", "-o", str(tmp_path), "--name", "b1", "--namespaces", "prod",
             "--resource-types", "secrets,configmaps", "--no-compress"],
            memory_api,
        )

        assert code == 0
        assert "Resources backed up: 2" in capsys.readouterr().out
        assert (tmp_path / "b1" / "prod" / "secret-db.yaml").is_file()

    def test_connection_failure(self, tmp_path):
        with patch("clustersnap.snapshot_cli.connect", side_effect=ConfigError("no kubeconfig")):
            assert main(["backup", "-o", str(tmp_path)]) == 1

    def test_existing_backup_name(self, memory_api, tmp_path):
        take_backup(memory_api, tmp_path)
        code, _ = run_cli(["backup", "-o", str(tmp_path), "--name", "b1", "--no-compress"], memory_api)
        assert code == 1


class TestRestoreCommand:
    """Tests for 'clustersnap restore'."""

    def test_restore_latest(self, memory_api, tmp_path, capsys):
        take_backup(memory_api, tmp_path)
        capsys.readouterr()
        target = InMemoryResourceApi()

        code, _ = run_cli(["restore", "--path", str(tmp_path)], target)

        assert code == 0
        out = capsys.readouterr().out
        assert "Created: 4" in out
        assert len(target) == 4

    def test_restore_dry_run_json(self, memory_api, tmp_path, capsys):
        take_backup(memory_api, tmp_path, compress=True)
        capsys.readouterr()
        target = InMemoryResourceApi()

        code, _ = run_cli(
            ["restore", "--backup", str(tmp_path / "b1.tar.gz"), "--dry-run", "--json"], target
        )

        assert code == 0
        out = capsys.readouterr().out
        assert "(dry run)" in out
        assert '"dry_run": true' in out
        assert target.mutations == []

    def test_restore_with_errors_fails(self, memory_api, tmp_path, capsys):
        take_backup(memory_api, tmp_path)
        target = InMemoryResourceApi()
        target.fail_apply("Deployment", "prod")

        code, _ = run_cli(["restore", "--path", str(tmp_path)], target)

        assert code == 1
        assert "Errors: 1" in capsys.readouterr().out

    def test_restore_without_backups(self, tmp_path):
        code, _ = run_cli(["restore", "--path", str(tmp_path)], InMemoryResourceApi())
        assert code == 1


class TestListAndDelete:
    """Tests for 'clustersnap list' and 'clustersnap delete'."""

    def test_list_table(self, memory_api, tmp_path, capsys):
        take_backup(memory_api, tmp_path)
        capsys.readouterr()

        code, mock_connect = run_cli(["list", "--path", str(tmp_path), "--detail"])

        assert code == 0
        out = capsys.readouterr().out
        assert "b1" in out
        assert "Kubernetes version: v1.28.4" in out
        mock_connect.assert_not_called()

    def test_list_json(self, memory_api, tmp_path, capsys):
        take_backup(memory_api, tmp_path, compress=True)
        capsys.readouterr()

        code, _ = run_cli(["list", "--path", str(tmp_path), "--json"])

        assert code == 0
        listed = json.loads(capsys.readouterr().out)
        assert [b["name"] for b in listed] == ["b1"]
        assert listed[0]["compress"] is True

    def test_list_empty(self, tmp_path, capsys):
        code, _ = run_cli(["list", "--path", str(tmp_path)])
        assert code == 0
        assert "No backups found" in capsys.readouterr().out

    def test_delete(self, memory_api, tmp_path):
        take_backup(memory_api, tmp_path)

        code, _ = run_cli(["delete", "b1", "--path", str(tmp_path)])

        assert code == 0
        assert not (tmp_path / "b1").exists()

    def test_delete_missing(self, tmp_path):
        code, _ = run_cli(["delete", "nope", "--path", str(tmp_path)])
        assert code == 1


class TestMain:
    """Tests for argument handling."""

    def test_no_command(self, capsys):
        assert main([]) == 1
        assert "No command specified" in capsys.readouterr().err

    def test_missing_config_file(self, tmp_path):
        assert main(["--config", str(tmp_path / "missing.yaml"), "list"]) == 1

    def test_logging_section_configures_logging(self, tmp_path):
        path = tmp_path / "clustersnap.yaml"
        path.write_text("logging:\n  level: warning\n  structured: true\n")

        with patch("clustersnap.snapshot_cli.setup_logging") as mock_setup:
            code, _ = run_cli(["--config", str(path), "list", "--path", str(tmp_path)])

        assert code == 0
        mock_setup.assert_called_once_with(verbose=False, structured=True, level=logging.WARNING)

    def test_verbose_and_structured_flags(self, tmp_path):
        with patch("clustersnap.snapshot_cli.setup_logging") as mock_setup:
            code, _ = run_cli(["-v", "--structured-logs", "list", "--path", str(tmp_path)])

        assert code == 0
        mock_setup.assert_called_once_with(verbose=True, structured=True, level=logging.INFO)

    def test_unknown_log_level(self, tmp_path):
        path = tmp_path / "clustersnap.yaml"
        path.write_text("logging:\n  level: chatty\n")
        assert main(["--config", str(path), "list", "--path", str(tmp_path)]) == 1
