"""Shared fixtures for the nativesubmit test suite."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from nativesubmit.config import SparkApplication
from nativesubmit.k8s import K8sAlreadyExistsError, K8sConflictError, RetryPolicy
from nativesubmit.submit import SubmissionContext

# 2026-01-15T10:00:00Z
FIXED_NOW = 1768471200.0

APP_ID = "spark-0123456789abcdef0123456789abcdef"
SUBMISSION_ID = "5d9f3c1e-7f0a-4a55-9c1c-0d8a3e0b2f11"

NO_WAIT = RetryPolicy(attempts=5, delay=0.0, jitter=0.0)


def fixed_clock() -> float:
    return FIXED_NOW


def make_application(**spec_overrides) -> SparkApplication:
    """Create a SparkApplication with sensible defaults for testing.

    Keyword arguments replace top-level ``spec`` fields (camelCase or
    snake_case). Use ``metadata=`` to replace the metadata block.
    """
    metadata = spec_overrides.pop("metadata", None) or {
        "name": "pi",
        "namespace": "spark-jobs",
        "uid": "0b7c5a3e-1111-2222-3333-444455556666",
    }
    spec: dict[str, Any] = {
        "type": "Scala",
        "mode": "cluster",
        "image": "apache/spark:3.5.1",
        "mainClass": "org.apache.spark.examples.SparkPi",
        "mainApplicationFile": "local:///opt/spark/examples/jars/spark-examples.jar",
        "arguments": ["1000"],
        "driver": {"cores": 1, "memory": "1024m", "serviceAccount": "spark"},
        "executor": {"cores": 2, "instances": 2, "memory": "2g"},
    }
    spec.update(spec_overrides)
    return SparkApplication.model_validate({"metadata": metadata, "spec": spec})


def make_context(app: SparkApplication, **overrides) -> SubmissionContext:
    ctx = SubmissionContext.for_application(app, APP_ID, SUBMISSION_ID, fixed_clock)
    if not overrides:
        return ctx
    fields = {**ctx.__dict__, **overrides}
    return SubmissionContext(**fields)


class FakeResourceClient:
    """In-memory stand-in for K8sClient.

    Tracks a resourceVersion per object so tests can tell whether an
    update happened, and can inject conflicts or lose freshly created
    objects to exercise retry and verification paths.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.conflicts_remaining = 0
        self.drop_next_creates = 0
        self._version = 0

    def _key(self, manifest: dict[str, Any]) -> tuple[str, str, str]:
        meta = manifest["metadata"]
        return manifest["kind"], meta["namespace"], meta["name"]

    def _store(self, manifest: dict[str, Any]) -> dict[str, Any]:
        self._version += 1
        obj = copy.deepcopy(manifest)
        obj["metadata"]["resourceVersion"] = str(self._version)
        self.objects[self._key(obj)] = obj
        return copy.deepcopy(obj)

    def get(self, kind: str, name: str, namespace: str) -> dict[str, Any] | None:
        self.calls.append(("get", kind, name))
        obj = self.objects.get((kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def create(self, manifest: dict[str, Any]) -> dict[str, Any]:
        kind, namespace, name = self._key(manifest)
        self.calls.append(("create", kind, name))
        if (kind, namespace, name) in self.objects:
            raise K8sAlreadyExistsError("exists", kind, name, namespace, 409)
        if self.drop_next_creates:
            self.drop_next_creates -= 1
            return copy.deepcopy(manifest)
        return self._store(manifest)

    def update(self, manifest: dict[str, Any]) -> dict[str, Any]:
        kind, namespace, name = self._key(manifest)
        self.calls.append(("update", kind, name))
        if self.conflicts_remaining:
            self.conflicts_remaining -= 1
            raise K8sConflictError("conflict", kind, name, namespace, 409)
        return self._store(manifest)

    def version_of(self, kind: str, name: str, namespace: str = "spark-jobs") -> str:
        return self.objects[(kind, namespace, name)]["metadata"]["resourceVersion"]


@pytest.fixture
def app() -> SparkApplication:
    """A default SparkApplication for tests that don't care about specifics."""
    return make_application()


@pytest.fixture
def ctx(app) -> SubmissionContext:
    return make_context(app)


@pytest.fixture
def fake_client() -> FakeResourceClient:
    return FakeResourceClient()
