"""
Unit tests for the kind tables.
"""

import pytest

from clustersnap.core.kinds import (
    KINDS_BY_NAME, RESOURCE_ORDER, SUPPORTED_RESOURCE_TYPES,
    api_version_for, get_resource_order, is_cluster_scoped, lookup, plural_for,
)


class TestLookup:
    """Tests for resolving kind spellings."""

    @pytest.mark.parametrize("spelling", ["Deployment", "deployment", "deployments"])
    def test_any_spelling_resolves(self, spelling):
        info = lookup(spelling)
        assert info is KINDS_BY_NAME["Deployment"]
        assert info.api_version == "apps/v1"
        assert info.plural == "deployments"

    def test_core_group_api_version(self):
        assert lookup("secrets").api_version == "v1"
        assert api_version_for("ConfigMap") == "v1"

    def test_unknown_kind(self):
        assert lookup("widgets") is None
        assert api_version_for("Widget") == "v1"

    def test_every_supported_type_resolves(self):
        for resource_type in SUPPORTED_RESOURCE_TYPES:
            assert lookup(resource_type) is not None, resource_type


class TestPlurals:
    """Tests for the singular to plural table."""

    def test_irregular_plurals(self):
        assert plural_for("networkpolicy") == "networkpolicies"
        assert plural_for("ingress") == "ingresses"
        assert plural_for("storageclass") == "storageclasses"

    def test_fallback_appends_s(self):
        assert plural_for("widget") == "widgets"

    def test_case_insensitive(self):
        assert plural_for("ConfigMap") == "configmaps"


class TestResourceOrder:
    """Tests for restore tiers."""

    def test_dependencies_come_first(self):
        assert get_resource_order("CustomResourceDefinition") == 0
        assert get_resource_order("Namespace") < get_resource_order("Secret")
        assert get_resource_order("Secret") < get_resource_order("Service")
        assert get_resource_order("Service") < get_resource_order("Deployment")
        assert get_resource_order("Deployment") < get_resource_order("Ingress")

    def test_unknown_kind_sorts_last(self):
        assert get_resource_order("Widget") == len(RESOURCE_ORDER)

    def test_tables_are_read_only(self):
        with pytest.raises(TypeError):
            KINDS_BY_NAME["Widget"] = None


class TestScope:
    """Tests for cluster scope detection."""

    def test_cluster_scoped_kinds(self):
        for resource_type in ("namespaces", "persistentvolumes", "clusterroles", "storageclasses"):
            assert is_cluster_scoped(resource_type)

    def test_namespaced_kinds(self):
        assert not is_cluster_scoped("secrets")
        assert not is_cluster_scoped("Deployment")
        assert not is_cluster_scoped("widgets")
