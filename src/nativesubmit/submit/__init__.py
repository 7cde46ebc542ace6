"""Manifest synthesis and submission orchestration."""

from .configmap import build_config_map
from .driver import build_driver_container, build_driver_pod
from .naming import (
    SubmissionContext,
    app_namespace,
    driver_pod_name,
    generate_application_id,
    owner_reference,
    service_name,
)
from .properties import (
    LocalDirRewrite,
    Priority,
    PropertiesBuilder,
    PropertiesDocument,
    build_properties,
    master_url,
    rewrite_local_dirs,
)
from .service import build_driver_service
from .submitter import (
    SparkSubmitter,
    SubmissionError,
    SubmissionManifests,
    SubmissionResult,
    assign_identifiers,
    synthesize,
)
from .template import PodTemplateError, driver_template, load_pod_template, select_spark_container

__all__ = [
    # Orchestration
    "SparkSubmitter",
    "SubmissionResult",
    "SubmissionManifests",
    "SubmissionError",
    "synthesize",
    "assign_identifiers",
    # Naming
    "SubmissionContext",
    "driver_pod_name",
    "app_namespace",
    "service_name",
    "owner_reference",
    "generate_application_id",
    # Properties
    "PropertiesDocument",
    "PropertiesBuilder",
    "Priority",
    "LocalDirRewrite",
    "build_properties",
    "rewrite_local_dirs",
    "master_url",
    # Manifests
    "build_config_map",
    "build_driver_pod",
    "build_driver_container",
    "build_driver_service",
    # Templates
    "PodTemplateError",
    "driver_template",
    "load_pod_template",
    "select_spark_container",
]
