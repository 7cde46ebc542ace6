"""Headless Service fronting the driver pod."""

from __future__ import annotations

from typing import Any

from .. import _constants as c
from ..config.resolver import merge_maps, prefixed_entries
from ..config.schema import SparkApplication
from .driver import driver_ports
from .naming import SubmissionContext, owner_references


def ip_families(app: SparkApplication) -> list[str]:
    raw = app.spark_conf.get(c.SPARK_DRIVER_SERVICE_IP_FAMILIES, c.DEFAULT_IP_FAMILY)
    families = [f.strip() for f in raw.split(",") if f.strip()]
    return families or [c.DEFAULT_IP_FAMILY]


def service_labels(app: SparkApplication, ctx: SubmissionContext) -> dict[str, str]:
    return merge_maps(
        {c.LABEL_SPARK_APP_SELECTOR: ctx.app_id},
        prefixed_entries(app.spark_conf, c.DRIVER_SERVICE_LABEL_PREFIX),
        app.spec.driver.service_labels,
    )


def service_annotations(app: SparkApplication) -> dict[str, str]:
    return merge_maps(
        app.spec.driver.annotations,
        prefixed_entries(app.spark_conf, c.DRIVER_SERVICE_ANNOTATION_PREFIX),
        app.spec.driver.service_annotations,
    )


def build_driver_service(app: SparkApplication, ctx: SubmissionContext) -> dict[str, Any]:
    """Build the headless driver Service.

    Service ports follow the resolved driver ports; target ports are the
    canonical container defaults (7078, 7079, 4040).

    Raises:
        ConfigurationError: If a configured port is not a valid integer
    """
    driver_port, block_manager_port, ui_port = driver_ports(app)

    metadata: dict[str, Any] = {
        "name": ctx.service_name,
        "namespace": ctx.namespace,
        "labels": service_labels(app, ctx),
    }
    annotations = service_annotations(app)
    if annotations:
        metadata["annotations"] = annotations
    refs = owner_references(app)
    if refs:
        metadata["ownerReferences"] = refs

    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": metadata,
        "spec": {
            "clusterIP": "None",
            "sessionAffinity": "None",
            "type": "ClusterIP",
            "ipFamilies": ip_families(app),
            "selector": dict(ctx.pod_labels),
            "ports": [
                {
                    "name": c.DRIVER_PORT_NAME,
                    "port": driver_port,
                    "protocol": "TCP",
                    "targetPort": c.DEFAULT_DRIVER_PORT,
                },
                {
                    "name": c.BLOCK_MANAGER_PORT_NAME,
                    "port": block_manager_port,
                    "protocol": "TCP",
                    "targetPort": c.DEFAULT_BLOCK_MANAGER_PORT,
                },
                {
                    "name": c.UI_PORT_NAME,
                    "port": ui_port,
                    "protocol": "TCP",
                    "targetPort": c.DEFAULT_UI_PORT,
                },
            ],
        },
    }
