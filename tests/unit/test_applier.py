"""
Unit tests for single-record replay.
"""

from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest
import yaml

from clustersnap.connectors.kubernetes.kubeconfig import ClusterConnection
from clustersnap.connectors.kubernetes.rest_client import KubernetesResourceApi
from clustersnap.connectors.memory import InMemoryResourceApi
from clustersnap.core.exceptions import AlreadyExistsError, ApplyError, ConversionError, ResourceApiError
from clustersnap.core.models import ApplyOutcome, ResourceRecord, RestoreOptions
from clustersnap.runner.applier import (
    ALREADY_EXISTS, MAX_WAIT_SECONDS, SIMULATED_CREATE, SIMULATED_UPDATE,
    Applier, kind_info_for, wait_for_ready,
)


@pytest.fixture
def secret_record(sample_records):
    return next(r for r in sample_records if r.kind == "Secret")


@pytest.fixture
def target():
    return InMemoryResourceApi()


class TestApply:
    """Tests for Applier.apply()."""

    def test_create_then_skip(self, target, secret_record):
        applier = Applier(target)

        first = applier.apply(secret_record, RestoreOptions())
        second = applier.apply(secret_record, RestoreOptions())

        assert first.outcome == ApplyOutcome.CREATED
        assert second.outcome == ApplyOutcome.SKIPPED
        assert second.detail == ALREADY_EXISTS
        assert ("Secret", "prod", "db") in target
        assert len(target.mutations) == 1

    def test_create_then_overwrite(self, target, secret_record):
        applier = Applier(target)

        applier.apply(secret_record, RestoreOptions())
        second = applier.apply(secret_record, RestoreOptions(overwrite_existing=True))

        assert second.outcome == ApplyOutcome.UPDATED
        assert [m[0] for m in target.mutations] == ["created", "updated"]

    def test_dry_run_never_mutates(self, target, secret_record):
        applier = Applier(target)

        result = applier.apply(secret_record, RestoreOptions(dry_run=True, overwrite_existing=True))

        assert result.outcome == ApplyOutcome.SKIPPED
        assert result.detail == SIMULATED_CREATE
        assert len(target) == 0
        assert target.mutations == []

    def test_dry_run_reports_existing(self, memory_api, secret_record):
        result = Applier(memory_api).apply(secret_record, RestoreOptions(dry_run=True))

        assert result.detail == SIMULATED_UPDATE
        assert memory_api.mutations == []

    def test_api_failure(self, target, secret_record):
        target.fail_apply("Secret", "prod")

        result = Applier(target).apply(secret_record, RestoreOptions())

        assert result.outcome == ApplyOutcome.FAILED
        assert not result.succeeded
        assert isinstance(result.error, ApplyError)
        assert (result.error.kind, result.error.namespace, result.error.name) == ("Secret", "prod", "db")
        assert isinstance(result.error.__cause__, ResourceApiError)

    def test_unparseable_content(self, target, secret_record):
        result = Applier(target).apply(replace(secret_record, content=b"- not\n- a mapping\n"), RestoreOptions())

        assert result.outcome == ApplyOutcome.FAILED
        assert isinstance(result.error.__cause__, ConversionError)
        assert target.mutations == []

    def test_concurrent_create_counts_as_skipped(self, secret_record):
        api = MagicMock()
        api.get.return_value = None
        api.create_or_update.side_effect = AlreadyExistsError("exists")

        result = Applier(api).apply(secret_record, RestoreOptions())

        assert result.outcome == ApplyOutcome.SKIPPED
        assert result.detail == ALREADY_EXISTS

    def test_object_namespace_passed_through(self, secret_record):
        api = MagicMock()
        api.get.return_value = None
        api.create_or_update.return_value = ApplyOutcome.CREATED

        Applier(api).apply(secret_record, RestoreOptions())

        kind_info, obj, namespace = api.create_or_update.call_args.args
        assert kind_info.kind == "Secret"
        assert obj["metadata"]["name"] == "db"
        assert namespace == "prod"
        assert api.create_or_update.call_args.kwargs["overwrite"] is False

    def test_overwrite_passes_flag(self, secret_record):
        api = MagicMock()
        api.create_or_update.return_value = ApplyOutcome.UPDATED

        result = Applier(api).apply(secret_record, RestoreOptions(overwrite_existing=True))

        assert result.outcome == ApplyOutcome.UPDATED
        assert api.create_or_update.call_args.kwargs["overwrite"] is True

    @pytest.mark.parametrize("strategy", ["create-update", "server-side"])
    def test_rest_create_race_is_skipped(self, secret_record, strategy):
        not_found = MagicMock(status_code=404, text="")
        not_found.json.return_value = {"reason": "NotFound", "message": "not found"}
        conflict = MagicMock(status_code=409, text="")
        conflict.json.return_value = {"reason": "AlreadyExists", "message": "exists"}
        session = MagicMock()
        session.headers = {}
        session.request.side_effect = [not_found, conflict]
        api = KubernetesResourceApi(
            ClusterConnection(server="https://k8s.example.com"), apply_strategy=strategy, session=session
        )

        result = Applier(api).apply(secret_record, RestoreOptions(overwrite_existing=False))

        assert result.outcome == ApplyOutcome.SKIPPED
        assert result.detail == ALREADY_EXISTS
        assert [c.args[0] for c in session.request.call_args_list] == ["GET", "POST"]

    def test_memory_create_race_is_skipped(self, target, secret_record):
        real_get = target.get

        def get_then_race(kind_info, namespace, name):
            found = real_get(kind_info, namespace, name)
            target.add(yaml.safe_load(secret_record.content))
            return found

        target.get = get_then_race

        result = Applier(target).apply(secret_record, RestoreOptions())

        assert result.outcome == ApplyOutcome.SKIPPED
        assert result.detail == ALREADY_EXISTS
        assert target.mutations == []


class TestWait:
    """Tests for the post-apply pause."""

    def test_wait_after_success(self, target, secret_record):
        with patch("clustersnap.runner.applier.wait_for_ready", return_value=True) as mock_wait:
            Applier(target).apply(secret_record, RestoreOptions(wait=True, timeout=5.0))

        mock_wait.assert_called_once()
        assert mock_wait.call_args.args[1] == 5.0

    def test_no_wait_after_skip(self, memory_api, secret_record):
        with patch("clustersnap.runner.applier.wait_for_ready") as mock_wait:
            Applier(memory_api).apply(secret_record, RestoreOptions(wait=True))

        mock_wait.assert_not_called()

    @pytest.mark.parametrize("timeout,expected", [
        (300.0, MAX_WAIT_SECONDS),
        (2.0, 2.0),
        (-1.0, 0.0),
    ])
    def test_wait_is_bounded(self, timeout, expected):
        token = MagicMock()
        token.wait.return_value = True

        assert wait_for_ready(token, timeout) is True
        token.wait.assert_called_once_with(expected)


class TestKindInfoFor:
    """Tests for kind resolution during replay."""

    def test_known_kind(self):
        info = kind_info_for(ResourceRecord("Deployment", "apps/v1", "prod", "api"))
        assert info.plural == "deployments"
        assert info.group == "apps"

    def test_unknown_kind_from_api_version(self):
        info = kind_info_for(ResourceRecord("Widget", "example.com/v1alpha1", "prod", "w"))

        assert info.group == "example.com"
        assert info.version == "v1alpha1"
        assert info.plural == "widgets"
        assert not info.cluster_scoped

    def test_unknown_cluster_scoped_kind(self):
        assert kind_info_for(ResourceRecord("Widget", "example.com/v1", "", "w")).cluster_scoped

    def test_known_kind_with_other_version(self):
        info = kind_info_for(ResourceRecord("Ingress", "extensions/v1beta1", "prod", "web"))
        assert info.api_version == "extensions/v1beta1"
        assert info.plural == "ingresses"
