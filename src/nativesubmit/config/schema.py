"""Pydantic models for the SparkApplication custom resource.

Field names are snake_case in Python and camelCase on the wire, so a
manifest written for the Spark operator validates unchanged. Nested
Kubernetes objects (volumes, mounts, containers, tolerations) are kept
as plain dicts and passed through to the generated manifests.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .._constants import OWNER_API_VERSION, OWNER_KIND

# =============================================================================
# Enums
# =============================================================================


class ApplicationType(str, Enum):
    """Language of the application's main resource."""

    JAVA = "Java"
    SCALA = "Scala"
    PYTHON = "Python"
    R = "R"

    @property
    def is_jvm(self) -> bool:
        return self in (ApplicationType.JAVA, ApplicationType.SCALA)

    @property
    def resource_type(self) -> str:
        """Value of spark.kubernetes.resource.type."""
        if self.is_jvm:
            return "java"
        return self.value.lower()


class DeployMode(str, Enum):
    """Spark deploy mode."""

    CLUSTER = "cluster"
    CLIENT = "client"
    IN_CLUSTER_CLIENT = "in-cluster-client"


class SecretType(str, Enum):
    """Secret kinds that imply extra driver/executor environment."""

    GCP_SERVICE_ACCOUNT = "GCPServiceAccount"
    HADOOP_DELEGATION_TOKEN = "HadoopDelegationToken"
    GENERIC = "Generic"


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Pod-level building blocks
# =============================================================================


class NamePath(_Model):
    """A ConfigMap mounted at a path."""

    name: str
    path: str


class NameKey(_Model):
    """A key inside a named Secret."""

    name: str
    key: str


class SecretInfo(_Model):
    """A Secret mounted into the pod."""

    name: str
    path: str
    secret_type: SecretType = SecretType.GENERIC


class SparkPodSpec(_Model):
    """Fields shared by the driver and executor sections."""

    cores: int | None = None
    core_request: str | None = None
    core_limit: str | None = None
    memory: str | None = None
    memory_overhead: str | None = None
    image: str | None = None
    service_account: str | None = None
    java_options: str | None = None
    kubernetes_master: str | None = None

    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    node_selector: dict[str, str] = Field(default_factory=dict)

    secrets: list[SecretInfo] = Field(default_factory=list)
    config_maps: list[NamePath] = Field(default_factory=list)
    env: list[dict[str, Any]] = Field(default_factory=list)
    env_vars: dict[str, str] = Field(default_factory=dict)
    env_secret_key_refs: dict[str, NameKey] = Field(default_factory=dict)

    volume_mounts: list[dict[str, Any]] = Field(default_factory=list)
    sidecars: list[dict[str, Any]] = Field(default_factory=list)
    init_containers: list[dict[str, Any]] = Field(default_factory=list)
    security_context: dict[str, Any] | None = None
    tolerations: list[dict[str, Any]] | None = None
    termination_grace_period_seconds: int | None = None

    @field_validator("cores")
    @classmethod
    def validate_cores(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("cores must be at least 1")
        return v


class DriverSpec(SparkPodSpec):
    """Driver pod settings."""

    pod_name: str | None = None
    service_annotations: dict[str, str] = Field(default_factory=dict)
    service_labels: dict[str, str] = Field(default_factory=dict)


class ExecutorSpec(SparkPodSpec):
    """Executor settings, emitted only as Spark properties."""

    instances: int | None = None
    delete_on_termination: bool | None = None


class Dependencies(_Model):
    """Artifacts shipped with the application."""

    jars: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    py_files: list[str] = Field(default_factory=list)
    packages: list[str] = Field(default_factory=list)
    exclude_packages: list[str] = Field(default_factory=list)
    repositories: list[str] = Field(default_factory=list)


class MonitoringSpec(_Model):
    """Metrics exposure settings."""

    expose_driver_metrics: bool = False
    expose_executor_metrics: bool = False
    metrics_properties: str | None = None
    metrics_properties_file: str | None = None


class DynamicAllocation(_Model):
    """Dynamic executor allocation bounds."""

    enabled: bool = False
    initial_executors: int | None = None
    min_executors: int | None = None
    max_executors: int | None = None
    shuffle_tracking_timeout: int | None = None


# =============================================================================
# Top-level resource
# =============================================================================


class ObjectMeta(_Model):
    """Subset of Kubernetes object metadata used by the submitter."""

    name: str
    namespace: str = ""
    uid: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v:
            raise ValueError("metadata.name must not be empty")
        return v


class SparkApplicationSpec(_Model):
    """Desired state of a Spark application."""

    type: ApplicationType = ApplicationType.SCALA
    mode: DeployMode = DeployMode.CLUSTER
    spark_version: str = ""
    image: str | None = None
    image_pull_policy: str | None = None
    image_pull_secrets: list[str] = Field(default_factory=list)
    main_class: str | None = None
    main_application_file: str | None = None
    arguments: list[str] = Field(default_factory=list)
    python_version: str | None = None
    memory_overhead_factor: str | None = None

    spark_conf: dict[str, str] = Field(default_factory=dict)
    hadoop_conf: dict[str, str] = Field(default_factory=dict)
    hadoop_config_map: str | None = None

    volumes: list[dict[str, Any]] = Field(default_factory=list)
    node_selector: dict[str, str] = Field(default_factory=dict)

    deps: Dependencies = Field(default_factory=Dependencies)
    driver: DriverSpec = Field(default_factory=DriverSpec)
    executor: ExecutorSpec = Field(default_factory=ExecutorSpec)
    monitoring: MonitoringSpec | None = None
    dynamic_allocation: DynamicAllocation | None = None

    @field_validator("spark_conf", "hadoop_conf", mode="before")
    @classmethod
    def stringify_values(cls, v: Any) -> Any:
        # YAML turns `spark.executor.instances: 2` into an int
        if isinstance(v, dict):
            return {str(k): _conf_str(val) for k, val in v.items()}
        return v


class SparkApplicationStatus(_Model):
    """Status fields written during submission."""

    spark_application_id: str = ""
    submission_id: str = Field(default="", alias="submissionID")
    # Epoch seconds of the first submission, reused as spark.app.submitTime
    submission_time: float | None = None


class SparkApplication(_Model):
    """A SparkApplication custom resource."""

    api_version: str = OWNER_API_VERSION
    kind: str = OWNER_KIND
    metadata: ObjectMeta
    spec: SparkApplicationSpec = Field(default_factory=SparkApplicationSpec)
    status: SparkApplicationStatus = Field(default_factory=SparkApplicationStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def spark_conf(self) -> dict[str, str]:
        return self.spec.spark_conf


def _conf_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
