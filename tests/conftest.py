"""
Shared test fixtures and configuration for pytest.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from clustersnap.connectors.memory import InMemoryResourceApi
from clustersnap.core.kinds import KINDS_BY_NAME
from clustersnap.snapshot.normalizer import to_record


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (require a live cluster)")


# ============================================================================
# Sample objects
# ============================================================================

def make_object(kind: str, name: str, namespace: str = "", **extra) -> dict:
    """Build a raw object as a server would return it."""
    info = KINDS_BY_NAME[kind]
    metadata = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    obj = {"apiVersion": info.api_version, "kind": kind, "metadata": metadata}
    obj.update(extra)
    return obj


@pytest.fixture
def sample_objects():
    """A small cluster: one namespace with a secret, a config map and a deployment."""
    return [
        make_object("Namespace", "prod"),
        make_object("Secret", "db", "prod", type="Opaque", data={"password": "c2VjcmV0"}),
        make_object("ConfigMap", "settings", "prod", data={"mode": "production"}),
        make_object(
            "Deployment", "api", "prod",
            spec={"replicas": 2, "template": {"spec": {"containers": [{"name": "api", "image": "api:1.0"}]}}},
            status={"readyReplicas": 2},
        ),
    ]


@pytest.fixture
def memory_api(sample_objects):
    """In-memory Resource API seeded with the sample objects."""
    return InMemoryResourceApi(sample_objects, version="v1.28.4")


@pytest.fixture
def sample_records(sample_objects):
    """ResourceRecords for the sample objects."""
    return [
        to_record(obj, KINDS_BY_NAME[obj["kind"]], obj["metadata"].get("namespace"))
        for obj in sample_objects
    ]


@pytest.fixture
def make_obj():
    """Factory for raw objects: make_obj("Secret", "db", "prod", type="Opaque")."""
    return make_object
