"""Kubernetes access and reconciliation for nativesubmit."""

from .client import (
    K8sAlreadyExistsError,
    K8sClient,
    K8sConflictError,
    K8sConnectionError,
    K8sError,
    K8sResourceError,
    ResourceClient,
    get_k8s_client,
)
from .reconcile import (
    ReconcileOutcome,
    Reconciler,
    ReconcileResult,
    is_subset,
    managed_fields,
    merge_for_update,
    retry_on_conflict,
)
from .wait import (
    CONFLICT_RETRY,
    SERVICE_VERIFY,
    RetryPolicy,
    WaitCancelled,
    WaitError,
    WaitResult,
    WaitStatus,
    WaitTimeout,
    deadline_after,
    wait_for_condition,
)

__all__ = [
    # Client
    "K8sClient",
    "ResourceClient",
    "get_k8s_client",
    # Errors
    "K8sError",
    "K8sConnectionError",
    "K8sResourceError",
    "K8sConflictError",
    "K8sAlreadyExistsError",
    "WaitError",
    "WaitTimeout",
    "WaitCancelled",
    # Reconcile
    "Reconciler",
    "ReconcileResult",
    "ReconcileOutcome",
    "retry_on_conflict",
    "managed_fields",
    "merge_for_update",
    "is_subset",
    # Wait
    "RetryPolicy",
    "CONFLICT_RETRY",
    "SERVICE_VERIFY",
    "WaitResult",
    "WaitStatus",
    "deadline_after",
    "wait_for_condition",
]
