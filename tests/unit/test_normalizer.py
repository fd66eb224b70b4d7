"""
Unit tests for object normalization and serialization.
"""

import copy

import pytest
import yaml

from clustersnap.core.exceptions import ConversionError
from clustersnap.core.kinds import KINDS_BY_NAME
from clustersnap.snapshot.normalizer import (
    LAST_APPLIED_ANNOTATION, deserialize, normalize, serialize, should_skip, to_record,
)


@pytest.fixture
def live_deployment():
    """A deployment as returned by a server, runtime fields included."""
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": "api",
            "namespace": "prod",
            "uid": "0b5c",
            "resourceVersion": "81723",
            "generation": 4,
            "creationTimestamp": "2024-01-01T00:00:00Z",
            "managedFields": [{"manager": "kubectl"}],
            "labels": {"app": "api"},
            "annotations": {
                LAST_APPLIED_ANNOTATION: "{}",
                "deployment.kubernetes.io/revision": "4",
                "team": "core",
            },
        },
        "spec": {"replicas": 2},
        "status": {"readyReplicas": 2},
    }


class TestNormalize:
    """Tests for normalize()."""

    def test_strips_runtime_fields(self, live_deployment):
        result = normalize(live_deployment)
        metadata = result["metadata"]

        for field in ("uid", "resourceVersion", "generation", "creationTimestamp", "managedFields"):
            assert field not in metadata
        assert metadata["annotations"] == {"team": "core"}
        assert metadata["labels"] == {"app": "api"}
        assert "status" not in result
        assert result["spec"] == {"replicas": 2}

    def test_input_not_mutated(self, live_deployment):
        original = copy.deepcopy(live_deployment)
        normalize(live_deployment)
        assert live_deployment == original

    def test_empty_annotations_removed(self):
        obj = {
            "kind": "ConfigMap",
            "metadata": {"name": "x", "annotations": {LAST_APPLIED_ANNOTATION: "{}"}},
        }
        assert "annotations" not in normalize(obj)["metadata"]

    def test_object_without_metadata_passes_through(self):
        obj = {"kind": "Thing", "spec": {"a": 1}}
        assert normalize(obj) == obj

    def test_idempotent(self, live_deployment):
        once = normalize(live_deployment)
        assert normalize(once) == once


class TestSerialize:
    """Tests for canonical serialization."""

    def test_key_order_does_not_matter(self):
        a = {"kind": "ConfigMap", "apiVersion": "v1", "data": {"b": "2", "a": "1"}}
        b = {"data": {"a": "1", "b": "2"}, "apiVersion": "v1", "kind": "ConfigMap"}
        assert serialize(a) == serialize(b)

    def test_unchanged_object_serializes_identically(self, live_deployment):
        first = serialize(normalize(live_deployment))
        live_deployment["metadata"]["resourceVersion"] = "99999"
        live_deployment["status"] = {"readyReplicas": 0}
        assert serialize(normalize(live_deployment)) == first

    def test_round_trip(self, live_deployment):
        normalized = normalize(live_deployment)
        assert deserialize(serialize(normalized)) == normalized


class TestDeserialize:
    """Tests for deserialize() validation."""

    def test_not_a_mapping(self):
        with pytest.raises(ConversionError):
            deserialize(b"- a\n- b\n")

    def test_missing_kind(self):
        with pytest.raises(ConversionError, match="kind"):
            deserialize(b"apiVersion: v1\nmetadata:\n  name: x\n")

    def test_missing_api_version(self):
        with pytest.raises(ConversionError, match="apiVersion"):
            deserialize(b"kind: Secret\n")

    def test_invalid_yaml(self):
        with pytest.raises(ConversionError):
            deserialize(b"kind: [unclosed\n")


class TestShouldSkip:
    """Tests for auto-generated object detection."""

    def test_service_account_token_secret(self):
        assert should_skip("Secret", {"type": "kubernetes.io/service-account-token", "metadata": {"name": "t"}})
        assert not should_skip("Secret", {"type": "Opaque", "metadata": {"name": "db"}})

    def test_default_service_account(self):
        assert should_skip("ServiceAccount", {"metadata": {"name": "default"}})
        assert not should_skip("ServiceAccount", {"metadata": {"name": "builder"}})

    def test_system_cluster_roles(self):
        assert should_skip("ClusterRole", {"metadata": {"name": "system:node"}})
        assert should_skip("ClusterRoleBinding", {"metadata": {"name": "system:basic-user"}})
        assert not should_skip("ClusterRole", {"metadata": {"name": "reader"}})

    def test_other_kinds_kept(self):
        assert not should_skip("Deployment", {"metadata": {"name": "default"}})

    def test_missing_or_null_name(self):
        assert not should_skip("ClusterRole", {"metadata": {"name": None}})
        assert not should_skip("ClusterRoleBinding", {"metadata": None})
        assert not should_skip("ServiceAccount", {})


class TestToRecord:
    """Tests for building records from raw objects."""

    def test_namespaced_record(self, live_deployment):
        record = to_record(live_deployment, KINDS_BY_NAME["Deployment"], "prod")

        assert record.key == ("Deployment", "prod", "api")
        assert record.api_version == "apps/v1"
        assert record.labels == {"app": "api"}
        assert record.annotations == {"team": "core"}
        assert record.relative_path == ""

        content = yaml.safe_load(record.content)
        assert "status" not in content
        assert "uid" not in content["metadata"]

    def test_cluster_scoped_record_has_no_namespace(self):
        obj = {"metadata": {"name": "prod", "namespace": "ignored"}}
        record = to_record(obj, KINDS_BY_NAME["Namespace"], "prod")
        assert record.namespace == ""

    def test_stamps_api_version_and_kind(self):
        # List results often omit apiVersion/kind on items
        record = to_record({"metadata": {"name": "db"}, "type": "Opaque"}, KINDS_BY_NAME["Secret"], "prod")
        content = yaml.safe_load(record.content)
        assert content["apiVersion"] == "v1"
        assert content["kind"] == "Secret"

    def test_namespace_taken_from_metadata(self):
        obj = {"metadata": {"name": "db", "namespace": "staging"}}
        record = to_record(obj, KINDS_BY_NAME["Secret"])
        assert record.namespace == "staging"

    def test_missing_name(self):
        with pytest.raises(ConversionError) as exc_info:
            to_record({"metadata": {}}, KINDS_BY_NAME["Secret"], "prod")
        assert exc_info.value.kind == "Secret"
