"""
Unit tests for the core data model and cancellation token.
"""

import dataclasses
import time

import pytest

from clustersnap.core.cancellation import CancellationToken
from clustersnap.core.exceptions import CancellationError, SnapshotError, StorageError
from clustersnap.core.models import (
    DEFAULT_EXCLUDED_NAMESPACES, BackupOptions, ProgressState, ResourceRecord,
    RestoreOptions, RestoreResult,
)


class TestResourceRecord:
    """Tests for ResourceRecord."""

    def test_identity_and_scope(self):
        record = ResourceRecord(kind="Secret", api_version="v1", namespace="prod", name="db")
        assert record.key == ("Secret", "prod", "db")
        assert record.scope_dir == "prod"
        assert not record.is_cluster_scoped
        assert record.display_name() == "Secret/prod/db"

    def test_cluster_scoped_record(self):
        record = ResourceRecord(kind="Namespace", api_version="v1", namespace="", name="prod")
        assert record.is_cluster_scoped
        assert record.scope_dir == "cluster"
        assert record.display_name() == "Namespace/prod"

    def test_descriptor_omits_empty_maps(self):
        record = ResourceRecord(
            kind="Deployment", api_version="apps/v1", namespace="prod", name="api",
            relative_path="prod/deployment-api.yaml",
        )
        descriptor = record.to_descriptor()
        assert descriptor == {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "namespace": "prod",
            "name": "api",
            "relativePath": "prod/deployment-api.yaml",
        }

    def test_descriptor_round_trip(self):
        record = ResourceRecord(
            kind="ConfigMap", api_version="v1", namespace="prod", name="settings",
            labels={"app": "api"}, annotations={"team": "core"},
            relative_path="prod/configmap-settings.yaml",
        )
        restored = ResourceRecord.from_descriptor(record.to_descriptor(), content=b"x")
        assert restored == dataclasses.replace(record, content=b"x")

    def test_missing_namespace_means_cluster_scope(self):
        record = ResourceRecord.from_descriptor({"kind": "Namespace", "name": "prod", "namespace": None})
        assert record.namespace == ""

    def test_records_are_immutable(self):
        record = ResourceRecord(kind="Secret", api_version="v1", namespace="prod", name="db")
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.name = "other"


class TestOptions:
    """Tests for backup and restore options."""

    def test_backup_defaults(self):
        options = BackupOptions()
        assert options.exclude_namespaces == DEFAULT_EXCLUDED_NAMESPACES
        assert options.compress is True
        assert options.backup_name is None
        assert options.namespaces == frozenset()

    def test_collections_are_frozen(self):
        options = BackupOptions(namespaces=["prod", "staging"], kinds="deployments, services")
        assert options.namespaces == frozenset({"prod", "staging"})
        assert options.kinds == frozenset({"deployments", "services"})

    def test_restore_defaults(self):
        options = RestoreOptions(backup_path="./backups/b1")
        assert options.timeout == 300.0
        assert not options.dry_run
        assert not options.overwrite_existing
        assert options.exclude_namespaces == frozenset()


class TestProgressState:
    """Tests for ProgressState."""

    def test_completed_never_decreases(self):
        progress = ProgressState(total=10)
        progress.advance(5, "five")
        progress.advance(3, "three")
        assert progress.completed == 5
        assert progress.current_message == "three"

    def test_snapshot_is_independent(self):
        progress = ProgressState(total=2, warnings=[ValueError("x")])
        copy = progress.snapshot()
        copy.warnings.append(ValueError("y"))
        copy.completed = 99
        assert len(progress.warnings) == 1
        assert progress.completed == 0


class TestRestoreResult:
    """Tests for RestoreResult reporting."""

    def test_summary_and_dict(self):
        result = RestoreResult(
            processed=2, skipped=1, created=2, namespaces=["", "prod"],
            kinds=["namespace", "secret"], errors=[StorageError("boom")],
        )
        summary = result.summary()
        assert "Processed: 2" in summary
        assert "Skipped: 1" in summary
        assert "Namespaces: cluster, prod" in summary

        data = result.to_dict()
        assert data["errors"] == ["boom"]
        assert data["created"] == 2
        assert data["dry_run"] is False


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_cancel(self):
        token = CancellationToken()
        assert not token.is_cancelled()
        token.cancel("stop")
        assert token.is_cancelled()
        assert token.reason == "stop"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(CancellationError) as exc_info:
            token.raise_if_cancelled()
        assert isinstance(exc_info.value, SnapshotError)

    def test_deadline(self):
        token = CancellationToken(timeout=0)
        assert token.is_cancelled()
        assert token.reason == "deadline exceeded"
        assert token.remaining() == 0.0

    def test_no_deadline(self):
        assert CancellationToken().remaining() is None

    def test_wait_completes(self):
        assert CancellationToken().wait(0.01) is True

    def test_wait_interrupted_by_cancel(self):
        token = CancellationToken()
        token.cancel()
        start = time.monotonic()
        assert token.wait(5) is False
        assert time.monotonic() - start < 1

    def test_wait_bounded_by_deadline(self):
        token = CancellationToken(timeout=0.05)
        start = time.monotonic()
        assert token.wait(5) is False
        assert time.monotonic() - start < 1
        assert token.is_cancelled()
