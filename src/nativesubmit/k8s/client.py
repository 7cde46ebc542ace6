"""Kubernetes client for the driver's ConfigMap, Pod and Service."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from kubernetes import client, config
from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)


class K8sError(Exception):
    """Base exception for Kubernetes errors."""

    pass


class K8sConnectionError(K8sError):
    """Raised when Kubernetes cluster is unreachable."""

    pass


class K8sResourceError(K8sError):
    """Raised when a resource operation fails."""

    def __init__(
        self,
        message: str,
        kind: str = "",
        name: str = "",
        namespace: str = "",
        status: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.name = name
        self.namespace = namespace
        self.status = status


class K8sConflictError(K8sResourceError):
    """Raised when an update loses an optimistic-concurrency race."""

    pass


class K8sAlreadyExistsError(K8sResourceError):
    """Raised when creating an object that already exists."""

    pass


class ResourceClient(Protocol):
    """Minimal get/create/update surface used by the reconciler."""

    def get(self, kind: str, name: str, namespace: str) -> dict[str, Any] | None: ...

    def create(self, manifest: dict[str, Any]) -> dict[str, Any]: ...

    def update(self, manifest: dict[str, Any]) -> dict[str, Any]: ...


# kind -> (read, create, replace) CoreV1Api methods
_OPERATIONS = {
    "ConfigMap": (
        "read_namespaced_config_map",
        "create_namespaced_config_map",
        "replace_namespaced_config_map",
    ),
    "Pod": (
        "read_namespaced_pod",
        "create_namespaced_pod",
        "replace_namespaced_pod",
    ),
    "Service": (
        "read_namespaced_service",
        "create_namespaced_service",
        "replace_namespaced_service",
    ),
}


def _identity(manifest: dict[str, Any]) -> tuple[str, str, str]:
    metadata = manifest.get("metadata", {})
    return manifest.get("kind", ""), metadata.get("name", ""), metadata.get("namespace", "")


class K8sClient:
    """Kubernetes client for resource management.

    Wraps the official kubernetes-client. Objects go in and come out as
    plain manifest dicts with camelCase keys.
    """

    def __init__(self, context: str = ""):
        """Initialize Kubernetes client."""
        self.context_name = context

        try:
            if context:
                config.load_kube_config(context=context)
            else:
                # Try in-cluster config first, fall back to kubeconfig
                try:
                    config.load_incluster_config()
                except config.ConfigException:
                    config.load_kube_config()
        except Exception as e:
            raise K8sConnectionError(f"Failed to load Kubernetes config: {e}")  # noqa: B904

        self._core_v1 = client.CoreV1Api()

    def _operation(self, kind: str, index: int) -> Any:
        try:
            return getattr(self._core_v1, _OPERATIONS[kind][index])
        except KeyError:
            raise K8sResourceError(f"Unsupported resource kind: {kind}", kind=kind)  # noqa: B904

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        return self._core_v1.api_client.sanitize_for_serialization(obj)

    def get(self, kind: str, name: str, namespace: str) -> dict[str, Any] | None:
        """Read an object, returning None if it does not exist."""
        read = self._operation(kind, 0)
        try:
            return self._to_dict(read(name, namespace))
        except ApiException as e:
            if e.status == 404:
                return None
            raise K8sResourceError(  # noqa: B904
                f"Failed to get {kind} {namespace}/{name}: {e.reason}",
                kind=kind,
                name=name,
                namespace=namespace,
                status=e.status,
            )

    def create(self, manifest: dict[str, Any]) -> dict[str, Any]:
        """Create an object.

        Raises:
            K8sAlreadyExistsError: If an object with the same name exists
            K8sResourceError: On any other API failure
        """
        kind, name, namespace = _identity(manifest)
        create = self._operation(kind, 1)
        try:
            created = self._to_dict(create(namespace, manifest))
        except ApiException as e:
            error = K8sAlreadyExistsError if e.status == 409 else K8sResourceError
            raise error(  # noqa: B904
                f"Failed to create {kind} {namespace}/{name}: {e.reason}",
                kind=kind,
                name=name,
                namespace=namespace,
                status=e.status,
            )
        logger.info("Created %s %s/%s", kind, namespace, name)
        return created

    def update(self, manifest: dict[str, Any]) -> dict[str, Any]:
        """Replace an object; the manifest should carry the live resourceVersion.

        Raises:
            K8sConflictError: If the object changed since it was read
            K8sResourceError: On any other API failure
        """
        kind, name, namespace = _identity(manifest)
        replace = self._operation(kind, 2)
        try:
            updated = self._to_dict(replace(name, namespace, manifest))
        except ApiException as e:
            error = K8sConflictError if e.status == 409 else K8sResourceError
            raise error(  # noqa: B904
                f"Failed to update {kind} {namespace}/{name}: {e.reason}",
                kind=kind,
                name=name,
                namespace=namespace,
                status=e.status,
            )
        logger.info("Updated %s %s/%s", kind, namespace, name)
        return updated


def get_k8s_client(context: str = "") -> K8sClient:
    """Get a Kubernetes client instance."""
    return K8sClient(context=context)
