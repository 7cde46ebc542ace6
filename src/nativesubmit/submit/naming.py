"""Names, identifiers and labels derived from a SparkApplication."""

from __future__ import annotations

import secrets
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .. import _constants as c
from ..config.resolver import (
    from_conf,
    from_value,
    merge_maps,
    prefixed_entries,
    resolve,
    resolve_first,
)
from ..config.schema import SparkApplication


@dataclass(frozen=True)
class SubmissionContext:
    """Identifiers and names shared by every object of one submission."""

    app_id: str
    submission_id: str
    namespace: str
    driver_pod_name: str
    service_name: str
    config_map_name: str
    pod_labels: dict[str, str]

    @classmethod
    def for_application(
        cls,
        app: SparkApplication,
        app_id: str,
        submission_id: str,
        clock: Callable[[], float] = time.time,
    ) -> SubmissionContext:
        pod_name = driver_pod_name(app)
        return cls(
            app_id=app_id,
            submission_id=submission_id,
            namespace=app_namespace(app),
            driver_pod_name=pod_name,
            service_name=service_name(pod_name, clock),
            config_map_name=config_map_name(pod_name),
            pod_labels=driver_pod_labels(app, app_id, submission_id),
        )


def generate_application_id() -> str:
    """Return a fresh ``spark-<32 hex>`` application ID."""
    return f"spark-{uuid.uuid4().hex}"


def generate_submission_id() -> str:
    return str(uuid.uuid4())


def driver_pod_name(app: SparkApplication) -> str:
    """driver.podName, else the sparkConf pod name, else ``<app>-driver``."""
    return resolve(
        app.spec.driver.pod_name,
        c.SPARK_DRIVER_POD_NAME,
        app.spark_conf,
        default=f"{app.name}-driver",
    )  # type: ignore[return-value]


def app_namespace(app: SparkApplication) -> str:
    """Object namespace, else spark.kubernetes.namespace, else ``default``."""
    return resolve_first(
        from_value(app.metadata.namespace),
        from_conf(app.spark_conf, c.SPARK_NAMESPACE),
        default="default",
    )  # type: ignore[return-value]


def config_map_name(pod_name: str) -> str:
    return f"{pod_name}-conf-map"


def service_name(pod_name: str, clock: Callable[[], float] = time.time) -> str:
    """Headless Service name for the driver.

    ``<pod>-svc`` when it fits in a DNS label, otherwise a generated
    ``spark-<unix seconds><20 hex>-driver-svc``.
    """
    preferred = f"{pod_name}-svc"
    if len(preferred) <= c.MAX_SERVICE_NAME_LENGTH:
        return preferred
    return f"spark-{int(clock())}{secrets.token_hex(10)}-driver-svc"


def owner_reference(app: SparkApplication) -> dict[str, Any]:
    return {
        "apiVersion": c.OWNER_API_VERSION,
        "kind": c.OWNER_KIND,
        "name": app.name,
        "uid": app.metadata.uid,
        "controller": False,
    }


def owner_references(app: SparkApplication) -> list[dict[str, Any]]:
    """Owner references for generated objects; empty when the app has no UID."""
    if not app.metadata.uid:
        return []
    return [owner_reference(app)]


def operator_labels(app: SparkApplication, submission_id: str) -> dict[str, str]:
    return {
        c.LABEL_APP_NAME: app.name,
        c.LABEL_LAUNCHED_BY_OPERATOR: "true",
        c.LABEL_SUBMISSION_ID: submission_id,
    }


def driver_pod_labels(app: SparkApplication, app_id: str, submission_id: str) -> dict[str, str]:
    """Labels for the driver pod, also used as the Service selector.

    sparkConf driver labels < application labels < driver labels; the
    identity labels are applied last.
    """
    return merge_maps(
        prefixed_entries(app.spark_conf, c.DRIVER_LABEL_PREFIX),
        app.metadata.labels,
        app.spec.driver.labels,
        operator_labels(app, submission_id),
        {c.LABEL_SPARK_APP_SELECTOR: app_id, c.LABEL_SPARK_ROLE: "driver"},
    )
