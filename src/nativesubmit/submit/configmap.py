"""ConfigMap carrying the driver's properties and environment script."""

from __future__ import annotations

from typing import Any

from .. import _constants as c
from ..config.schema import SparkApplication
from .naming import SubmissionContext, owner_references
from .properties import PropertiesDocument


def build_config_map(
    app: SparkApplication,
    ctx: SubmissionContext,
    properties: PropertiesDocument,
) -> dict[str, Any]:
    """Build the ``<driver-pod>-conf-map`` manifest."""
    metadata: dict[str, Any] = {
        "name": ctx.config_map_name,
        "namespace": ctx.namespace,
        "labels": {c.LABEL_SPARK_APP_SELECTOR: ctx.app_id},
    }
    refs = owner_references(app)
    if refs:
        metadata["ownerReferences"] = refs

    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": metadata,
        "data": {
            c.SPARK_ENV_FILE: c.SPARK_ENV_SCRIPT,
            c.SPARK_NAMESPACE: ctx.namespace,
            c.SPARK_PROPERTIES_FILE: properties.render(),
        },
    }
