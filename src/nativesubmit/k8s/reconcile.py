"""Idempotent create-or-update of generated manifests."""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from .client import K8sAlreadyExistsError, K8sConflictError, K8sError, ResourceClient
from .wait import (
    CONFLICT_RETRY,
    SERVICE_VERIFY,
    RetryPolicy,
    WaitCancelled,
    WaitStatus,
    WaitTimeout,
    pause,
    wait_for_condition,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Top-level fields replaced on update, per kind. A Pod spec cannot change
# once the Pod exists, so only its metadata is reconciled.
_MUTABLE_FIELDS = {
    "ConfigMap": ("data", "binaryData"),
    "Pod": (),
    "Service": ("spec",),
}
_MUTABLE_METADATA = ("labels", "annotations", "ownerReferences")


class ReconcileOutcome(Enum):
    """What reconciliation did to the live object."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class ReconcileResult:
    """Result of reconciling one object."""

    kind: str
    name: str
    namespace: str
    outcome: ReconcileOutcome
    attempts: int = 1
    verified: bool | None = None


def managed_fields(manifest: dict[str, Any]) -> dict[str, Any]:
    """The parts of a manifest that reconciliation owns."""
    kind = manifest.get("kind", "")
    metadata = manifest.get("metadata", {})
    managed: dict[str, Any] = {
        "metadata": {k: metadata[k] for k in _MUTABLE_METADATA if k in metadata},
    }
    for field in _MUTABLE_FIELDS.get(kind, ("spec",)):
        if field in manifest:
            managed[field] = manifest[field]
    return managed


def _keyed_by_name(items: list[Any]) -> bool:
    return bool(items) and all(isinstance(item, dict) and "name" in item for item in items)


def is_subset(desired: Any, live: Any) -> bool:
    """True when every value in ``desired`` is present and equal in ``live``.

    Mappings may carry extra keys on the live side (server defaults). Lists
    of named entries (containers, volumes, env, ports) are matched by name
    and may carry extra live entries, such as an injected service-account
    volume; other lists must match element by element.
    """
    if isinstance(desired, dict):
        if not isinstance(live, dict):
            return False
        return all(k in live and is_subset(v, live[k]) for k, v in desired.items())
    if isinstance(desired, list):
        if not isinstance(live, list):
            return False
        if _keyed_by_name(desired) and _keyed_by_name(live):
            return all(
                any(is_subset(item, other) for other in live if other["name"] == item["name"])
                for item in desired
            )
        if len(desired) != len(live):
            return False
        return all(is_subset(d, lv) for d, lv in zip(desired, live))
    return desired == live


def merge_for_update(live: dict[str, Any], desired: dict[str, Any]) -> dict[str, Any]:
    """Overwrite the managed fields of ``live`` with those of ``desired``.

    resourceVersion and other server-owned metadata are kept from the live
    object, as is an already-assigned Service clusterIP.
    """
    kind = desired.get("kind", live.get("kind", ""))
    merged = copy.deepcopy(live)
    merged.pop("status", None)
    merged["apiVersion"] = desired.get("apiVersion", live.get("apiVersion"))
    merged["kind"] = kind

    metadata = merged.setdefault("metadata", {})
    for key in _MUTABLE_METADATA:
        if key in desired.get("metadata", {}):
            metadata[key] = copy.deepcopy(desired["metadata"][key])

    for field in _MUTABLE_FIELDS.get(kind, ("spec",)):
        if field in desired:
            merged[field] = copy.deepcopy(desired[field])

    if kind == "Service":
        live_spec = live.get("spec", {})
        for key in ("clusterIP", "clusterIPs"):
            if key in live_spec:
                merged["spec"][key] = live_spec[key]
    return merged


def retry_on_conflict(
    fn: Callable[[], T],
    policy: RetryPolicy = CONFLICT_RETRY,
    deadline: float | None = None,
    cancel: threading.Event | None = None,
) -> tuple[T, int]:
    """Call ``fn`` until it stops raising a conflict.

    Returns:
        ``(result, attempts)``

    Raises:
        K8sConflictError: If every attempt conflicts
        WaitTimeout: If the next retry would pass ``deadline``
        WaitCancelled: If ``cancel`` is set while backing off
    """
    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn(), attempt
        except (K8sConflictError, K8sAlreadyExistsError) as e:
            if attempt >= policy.attempts:
                raise
            delay = next(delays)
            if deadline is not None and time.monotonic() + delay > deadline:
                raise WaitTimeout(f"Deadline exceeded retrying after conflict: {e}") from e
            logger.debug("Conflict on attempt %d, retrying in %.3fs: %s", attempt, delay, e)
            if pause(delay, cancel):
                raise WaitCancelled(f"Cancelled while retrying after conflict: {e}") from e


class Reconciler:
    """Create-or-update manifests through a ResourceClient."""

    def __init__(
        self,
        client: ResourceClient,
        retry_policy: RetryPolicy = CONFLICT_RETRY,
        verify_policy: RetryPolicy = SERVICE_VERIFY,
    ):
        self.client = client
        self.retry_policy = retry_policy
        self.verify_policy = verify_policy

    def apply(
        self,
        manifest: dict[str, Any],
        deadline: float | None = None,
        cancel: threading.Event | None = None,
    ) -> ReconcileResult:
        """Create ``manifest`` or bring the live object in line with it.

        No update is issued when the live object already matches, so a
        second pass over an unchanged manifest leaves its revision alone.
        Services are verified after creation.
        """
        kind = manifest["kind"]
        name = manifest["metadata"]["name"]
        namespace = manifest["metadata"]["namespace"]
        if cancel is not None and cancel.is_set():
            raise WaitCancelled(f"Cancelled before reconciling {kind} {namespace}/{name}")

        def attempt() -> ReconcileOutcome:
            live = self.client.get(kind, name, namespace)
            if live is None:
                self.client.create(manifest)
                return ReconcileOutcome.CREATED
            if kind == "Pod" and not is_subset(manifest.get("spec", {}), live.get("spec", {})):
                logger.warning(
                    "Pod %s/%s already exists with a different spec; leaving it as is",
                    namespace,
                    name,
                )
            if is_subset(managed_fields(manifest), live):
                logger.info("%s %s/%s is up to date", kind, namespace, name)
                return ReconcileOutcome.UNCHANGED
            self.client.update(merge_for_update(live, manifest))
            return ReconcileOutcome.UPDATED

        outcome, attempts = retry_on_conflict(attempt, self.retry_policy, deadline, cancel)
        result = ReconcileResult(kind, name, namespace, outcome, attempts)

        if kind == "Service" and outcome == ReconcileOutcome.CREATED:
            result.verified = self.verify_exists(manifest, deadline, cancel)
        return result

    def verify_exists(
        self,
        manifest: dict[str, Any],
        deadline: float | None = None,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Confirm a freshly created object is readable, re-creating it if not.

        Returns:
            True once the object is observed, False if the policy's
            attempts run out first

        Raises:
            WaitTimeout: If ``deadline`` passes
            WaitCancelled: If ``cancel`` is set
            K8sResourceError: If reading or re-creating the object fails
        """
        kind = manifest["kind"]
        name = manifest["metadata"]["name"]
        namespace = manifest["metadata"]["namespace"]

        def check() -> tuple[bool, str]:
            if self.client.get(kind, name, namespace) is not None:
                return True, f"{kind} {name} exists"
            logger.info("%s %s/%s not found after create, re-creating", kind, namespace, name)
            try:
                self.client.create(manifest)
            except K8sAlreadyExistsError:
                return True, f"{kind} {name} already exists"
            return False, f"{kind} {name} re-created"

        wait = wait_for_condition(
            check,
            timeout_seconds=None,
            poll_interval=self.verify_policy.delay,
            description=f"{kind} {namespace}/{name}",
            max_attempts=self.verify_policy.attempts,
            deadline=deadline,
            cancel=cancel,
            propagate=(K8sError,),
        )
        if wait.status == WaitStatus.READY:
            return True
        if wait.status == WaitStatus.TIMEOUT:
            raise WaitTimeout(wait.message)
        if wait.status == WaitStatus.CANCELLED:
            raise WaitCancelled(wait.message)
        logger.warning("%s", wait.message)
        return False
