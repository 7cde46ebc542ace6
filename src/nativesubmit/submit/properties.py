"""Spark properties document for the driver.

The driver reads ``spark.properties`` from its ConfigMap on start-up. The
document is assembled in a :class:`PropertiesDocument`, which remembers
where every key came from so that a structured field always beats a
sparkConf entry, which always beats a built-in default, regardless of the
order the sections below run in.
"""

from __future__ import annotations

import copy
import logging
import os
import posixpath
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any

from .. import _constants as c
from ..config.quantity import default_overhead_factor, fixed_memory_overhead
from ..config.resolver import (
    ConfigurationError,
    escape_value,
    merge_maps,
    resolve_int,
    resolve_port,
)
from ..config.schema import SecretInfo, SecretType, SparkApplication, SparkPodSpec
from .naming import SubmissionContext, operator_labels

logger = logging.getLogger(__name__)


class Priority(IntEnum):
    """Source priority of a property value; higher wins."""

    DEFAULTS_FILE = 0
    BUILTIN = 1
    SPARK_CONF = 2
    SPEC = 3
    FORCED = 4


@dataclass
class _Entry:
    value: str
    priority: Priority


class PropertiesDocument:
    """Ordered key/value store serialized once into properties-file text.

    A key keeps the position of its first insertion. A later ``put`` of
    the same key replaces the value only if its priority is at least the
    stored one, so equal priorities resolve last-write-wins.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._raw_lines: list[str] = []

    def put(self, key: str, value: Any, priority: Priority = Priority.SPEC) -> None:
        if value is None:
            return
        text = _prop_str(value)
        current = self._entries.get(key)
        if current is None or priority >= current.priority:
            self._entries[key] = _Entry(text, priority)

    def put_all(
        self,
        items: Mapping[str, Any] | Iterable[tuple[str, Any]],
        priority: Priority = Priority.SPEC,
        prefix: str = "",
    ) -> None:
        pairs = items.items() if isinstance(items, Mapping) else items
        for key, value in pairs:
            self.put(prefix + key, value, priority)

    def append_raw(self, line: str) -> None:
        """Append a line emitted verbatim after all key/value entries."""
        self._raw_lines.append(line)

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        return entry.value if entry else None

    def priority_of(self, key: str) -> Priority | None:
        entry = self._entries.get(key)
        return entry.priority if entry else None

    def items(self) -> Iterator[tuple[str, str]]:
        for key, entry in self._entries.items():
            yield key, entry.value

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def render(self) -> str:
        lines = [f"{key}={value}" for key, value in self.items()]
        lines.extend(self._raw_lines)
        return "".join(f"{line}\n" for line in lines)


def _prop_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Local-dir volume rewrite
# =============================================================================

_LOCAL_DIR_VOLUME_TYPES = ("hostPath", "emptyDir", "persistentVolumeClaim")


@dataclass
class LocalDirRewrite:
    """Volumes and mounts with ``spark-local-dir-*`` entries removed."""

    volumes: list[dict[str, Any]] = field(default_factory=list)
    driver_mounts: list[dict[str, Any]] = field(default_factory=list)
    executor_mounts: list[dict[str, Any]] = field(default_factory=list)
    properties: list[tuple[str, str]] = field(default_factory=list)


def _volume_type(volume: Mapping[str, Any]) -> str | None:
    for volume_type in _LOCAL_DIR_VOLUME_TYPES:
        if volume_type in volume:
            return volume_type
    return None


def _local_dir_options(volume_type: str, source: Mapping[str, Any]) -> list[tuple[str, Any]]:
    if volume_type == "hostPath":
        return [("path", source.get("path")), ("type", source.get("type"))]
    if volume_type == "persistentVolumeClaim":
        return [("claimName", source.get("claimName"))]
    return [("medium", source.get("medium")), ("sizeLimit", source.get("sizeLimit"))]


def _mount_properties(
    prefix: str, volume: Mapping[str, Any], mount: Mapping[str, Any]
) -> list[tuple[str, str]]:
    volume_type = _volume_type(volume)
    if volume_type is None:
        logger.warning(
            "Local dir volume %s has no hostPath, emptyDir or persistentVolumeClaim source",
            volume.get("name"),
        )
        return []

    base = f"{prefix}{volume_type}.{volume['name']}."
    lines = [(f"{base}mount.path", str(mount.get("mountPath", "")))]
    if mount.get("subPath"):
        lines.append((f"{base}mount.subPath", str(mount["subPath"])))
    if mount.get("readOnly"):
        lines.append((f"{base}mount.readOnly", "true"))
    source = volume.get(volume_type) or {}
    for option, value in _local_dir_options(volume_type, source):
        if value not in (None, ""):
            lines.append((f"{base}options.{option}", _prop_str(value)))
    return lines


def rewrite_local_dirs(app: SparkApplication) -> LocalDirRewrite:
    """Split ``spark-local-dir-*`` volumes out of the pod volume lists.

    Such volumes are re-expressed as ``spark.kubernetes.{driver,executor}.volumes.*``
    properties and removed from the returned volume and mount lists. The
    application itself is left untouched; the returned lists are copies.
    """
    volumes = copy.deepcopy(app.spec.volumes)
    local = {
        v["name"]: v
        for v in volumes
        if str(v.get("name", "")).startswith(c.LOCAL_DIR_VOLUME_PREFIX)
    }
    result = LocalDirRewrite(volumes=[v for v in volumes if v.get("name") not in local])

    for prefix, mounts, kept in (
        (c.DRIVER_VOLUMES_PREFIX, app.spec.driver.volume_mounts, result.driver_mounts),
        (c.EXECUTOR_VOLUMES_PREFIX, app.spec.executor.volume_mounts, result.executor_mounts),
    ):
        for mount in copy.deepcopy(mounts):
            volume = local.get(mount.get("name"))
            if volume is None:
                kept.append(mount)
            else:
                result.properties.extend(_mount_properties(prefix, volume, mount))
    return result


# =============================================================================
# Helpers
# =============================================================================


def master_url(environ: Mapping[str, str]) -> str:
    """In-cluster API server URL, ``k8s://https://host:port``."""
    host = environ.get("KUBERNETES_SERVICE_HOST") or "localhost"
    port = environ.get("KUBERNETES_SERVICE_PORT") or "443"
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"k8s://https://{host}:{port}"


def read_properties_file(path: str | Path) -> list[tuple[str, str]]:
    """Read key/value pairs from a Java-style properties file.

    Blank lines and ``#``/``!`` comments are skipped; the key ends at the
    first ``=``, ``:`` or whitespace. Trailing backslashes join lines.
    """
    entries: list[tuple[str, str]] = []
    pending = ""
    with open(path, encoding="utf-8") as f:
        for raw in f:
            line = pending + raw.strip()
            if line.endswith("\\") and not line.endswith("\\\\"):
                pending = line[:-1]
                continue
            pending = ""
            if not line or line[0] in "#!":
                continue
            for i, ch in enumerate(line):
                if ch in "=: \t":
                    key = line[:i]
                    value = line[i + 1 :].lstrip(" \t")
                    if ch in " \t" and value[:1] in ("=", ":"):
                        value = value[1:].lstrip(" \t")
                    break
            else:
                key, value = line, ""
            entries.append((key, value))
    return entries


def secret_env(secret: SecretInfo) -> tuple[str, str] | None:
    """Environment variable implied by a typed secret."""
    if secret.secret_type == SecretType.GCP_SERVICE_ACCOUNT:
        return "GOOGLE_APPLICATION_CREDENTIALS", posixpath.join(secret.path, "key.json")
    if secret.secret_type == SecretType.HADOOP_DELEGATION_TOKEN:
        return "HADOOP_TOKEN_FILE_LOCATION", posixpath.join(secret.path, "hadoop.token")
    return None


def _annotation_value(key: str, value: str) -> str:
    if key == c.PROMETHEUS_TARGETS_ANNOTATION:
        return escape_value(value.replace("\n", ""))
    return value


def _comma_join(items: Iterable[str], escape: bool = False) -> str | None:
    values = [escape_value(i) if escape else i for i in items]
    return ",".join(values) if values else None


# =============================================================================
# Builder
# =============================================================================


class PropertiesBuilder:
    """Assembles the driver's properties document section by section."""

    def __init__(
        self,
        app: SparkApplication,
        ctx: SubmissionContext,
        local_dirs: LocalDirRewrite | None = None,
        clock: Callable[[], float] = time.time,
        environ: Mapping[str, str] | None = None,
        defaults_file: str | Path | None = c.SPARK_DEFAULTS_FILE,
    ):
        self.app = app
        self.ctx = ctx
        self.local_dirs = local_dirs if local_dirs is not None else rewrite_local_dirs(app)
        self.clock = clock
        self.environ = os.environ if environ is None else environ
        self.defaults_file = defaults_file
        self.doc = PropertiesDocument()

    @property
    def conf(self) -> dict[str, str]:
        return self.app.spark_conf

    def build(self) -> PropertiesDocument:
        self._identity()
        self._dependencies()
        self._image()
        self._python_and_overhead()
        self.doc.put(c.SPARK_WAIT_APP_COMPLETION, "false", Priority.FORCED)
        self._spark_conf()
        self._hadoop()
        self._driver()
        self._executor()
        self._dynamic_allocation()
        self._node_selectors()
        self._runtime()
        self._defaults_file()
        self._monitoring()
        self.doc.put_all(self.local_dirs.properties, Priority.SPEC)
        self._main_resource()
        return self.doc

    def _identity(self) -> None:
        ctx, doc = self.ctx, self.doc
        doc.put(c.SPARK_DRIVER_HOST, f"{ctx.service_name}.{ctx.namespace}.svc", Priority.FORCED)
        doc.put(c.SPARK_APP_ID, ctx.app_id, Priority.FORCED)
        doc.put(c.SPARK_MASTER, escape_value(master_url(self.environ)), Priority.FORCED)
        doc.put(c.SPARK_DEPLOY_MODE, self.app.spec.mode.value)
        doc.put(c.SPARK_NAMESPACE, ctx.namespace, Priority.FORCED)
        doc.put(c.SPARK_APP_NAME, self.app.name, Priority.FORCED)
        doc.put(c.SPARK_DRIVER_POD_NAME, ctx.driver_pod_name, Priority.FORCED)

    def _dependencies(self) -> None:
        deps = self.app.spec.deps
        self.doc.put(c.SPARK_JARS, _comma_join(deps.jars, escape=True))
        self.doc.put(c.SPARK_FILES, _comma_join(deps.files))
        self.doc.put(c.SPARK_PY_FILES, _comma_join(deps.py_files))
        self.doc.put(c.SPARK_PACKAGES, _comma_join(deps.packages))
        self.doc.put(c.SPARK_EXCLUDE_PACKAGES, _comma_join(deps.exclude_packages))
        self.doc.put(c.SPARK_REPOSITORIES, _comma_join(deps.repositories))

    def _image(self) -> None:
        spec = self.app.spec
        if spec.image:
            self.doc.put(c.SPARK_CONTAINER_IMAGE, escape_value(spec.image))
        self.doc.put(c.SPARK_IMAGE_PULL_POLICY, spec.image_pull_policy)
        self.doc.put(c.SPARK_IMAGE_PULL_SECRETS, _comma_join(spec.image_pull_secrets))

    def _python_and_overhead(self) -> None:
        spec = self.app.spec
        self.doc.put(c.SPARK_PYTHON_VERSION, spec.python_version)
        if fixed_memory_overhead(self.app) is not None:
            return
        if spec.memory_overhead_factor:
            self.doc.put(c.SPARK_MEMORY_OVERHEAD_FACTOR, spec.memory_overhead_factor)
        else:
            self.doc.put(
                c.SPARK_MEMORY_OVERHEAD_FACTOR, default_overhead_factor(self.app), Priority.BUILTIN
            )

    def _spark_conf(self) -> None:
        for key in sorted(self.conf):
            if key == c.SPARK_DRIVER_POD_NAME:
                continue
            value = self.conf[key]
            if key in (c.SPARK_DRIVER_CLASS_PATH, c.SPARK_EXECUTOR_CLASS_PATH):
                value = escape_value(value)
            self.doc.put(key, value, Priority.SPARK_CONF)

    def _hadoop(self) -> None:
        spec = self.app.spec
        self.doc.put_all(sorted(spec.hadoop_conf.items()), prefix=c.HADOOP_CONF_PREFIX)
        if spec.hadoop_conf or spec.hadoop_config_map:
            self.doc.put(f"{c.HADOOP_CONF_PREFIX}HADOOP_CONF_DIR", c.HADOOP_CONF_DIR)

    def _driver(self) -> None:
        app, doc, driver = self.app, self.doc, self.app.spec.driver
        executor = app.spec.executor

        doc.put_all(
            operator_labels(app, self.ctx.submission_id),
            Priority.FORCED,
            prefix=c.DRIVER_LABEL_PREFIX,
        )
        if driver.image:
            doc.put(c.SPARK_DRIVER_CONTAINER_IMAGE, escape_value(driver.image))

        # Compute
        if driver.cores is not None:
            doc.put(c.SPARK_DRIVER_CORES, driver.cores)
        elif c.SPARK_DRIVER_CORES in self.conf:
            resolve_int(self.conf[c.SPARK_DRIVER_CORES], c.SPARK_DRIVER_CORES)
        else:
            doc.put(c.SPARK_DRIVER_CORES, c.DEFAULT_DRIVER_CORES, Priority.BUILTIN)
        doc.put(c.SPARK_DRIVER_REQUEST_CORES, driver.core_request)
        doc.put(c.SPARK_DRIVER_LIMIT_CORES, driver.core_limit)
        doc.put(c.SPARK_EXECUTOR_REQUEST_CORES, executor.core_request)

        # Memory
        doc.put(c.SPARK_DRIVER_MEMORY, c.DEFAULT_DRIVER_MEMORY, Priority.BUILTIN)
        doc.put(c.SPARK_DRIVER_MEMORY, driver.memory)
        self._memory_overhead(c.SPARK_DRIVER_MEMORY_OVERHEAD, driver.memory_overhead)
        doc.put(c.SPARK_EXECUTOR_CORES, executor.cores)
        doc.put(c.SPARK_EXECUTOR_LIMIT_CORES, executor.core_limit)
        doc.put(c.SPARK_EXECUTOR_MEMORY, c.DEFAULT_EXECUTOR_MEMORY, Priority.BUILTIN)
        doc.put(c.SPARK_EXECUTOR_MEMORY, executor.memory)
        self._memory_overhead(c.SPARK_EXECUTOR_MEMORY_OVERHEAD, executor.memory_overhead)

        doc.put(c.SPARK_DRIVER_SERVICE_ACCOUNT, driver.service_account)
        if driver.java_options:
            doc.put(c.SPARK_DRIVER_JAVA_OPTIONS, escape_value(driver.java_options))
        doc.put(c.SPARK_DRIVER_KUBERNETES_MASTER, driver.kubernetes_master)

        self._pod_metadata(driver, c.DRIVER_LABEL_PREFIX, c.DRIVER_ANNOTATION_PREFIX)
        self._secret_key_refs(driver, c.DRIVER_SECRET_KEY_REF_PREFIX)
        doc.put_all(
            sorted(driver.service_annotations.items()),
            prefix=c.DRIVER_SERVICE_ANNOTATION_PREFIX,
        )
        self._secrets(driver, c.DRIVER_SECRETS_PREFIX, c.DRIVER_ENV_PREFIX)
        self._env(driver, c.DRIVER_ENV_PREFIX)

    def _executor(self) -> None:
        app, doc, executor = self.app, self.doc, self.app.spec.executor
        doc.put_all(
            operator_labels(app, self.ctx.submission_id),
            Priority.FORCED,
            prefix=c.EXECUTOR_LABEL_PREFIX,
        )
        doc.put(c.SPARK_EXECUTOR_INSTANCES, executor.instances)
        if executor.image:
            doc.put(c.SPARK_EXECUTOR_CONTAINER_IMAGE, escape_value(executor.image))
        doc.put(c.SPARK_EXECUTOR_SERVICE_ACCOUNT, executor.service_account)
        doc.put(c.SPARK_EXECUTOR_DELETE_ON_TERMINATION, executor.delete_on_termination)
        self._pod_metadata(executor, c.EXECUTOR_LABEL_PREFIX, c.EXECUTOR_ANNOTATION_PREFIX)
        self._secret_key_refs(executor, c.EXECUTOR_SECRET_KEY_REF_PREFIX)
        if executor.java_options:
            doc.put(c.SPARK_EXECUTOR_JAVA_OPTIONS, escape_value(executor.java_options))
        self._secrets(executor, c.EXECUTOR_SECRETS_PREFIX, c.EXECUTOR_ENV_PREFIX)
        self._env(executor, c.EXECUTOR_ENV_PREFIX)

    def _memory_overhead(self, key: str, explicit: str | None) -> None:
        if explicit:
            self.doc.put(key, explicit)
        elif key not in self.conf and c.SPARK_KUBERNETES_MEMORY_OVERHEAD in self.conf:
            self.doc.put(key, self.conf[c.SPARK_KUBERNETES_MEMORY_OVERHEAD], Priority.SPARK_CONF)

    def _pod_metadata(self, pod: SparkPodSpec, label_prefix: str, annotation_prefix: str) -> None:
        labels = merge_maps(self.app.metadata.labels, pod.labels)
        self.doc.put_all(sorted(labels.items()), prefix=label_prefix)
        for key, value in sorted(pod.annotations.items()):
            self.doc.put(annotation_prefix + key, _annotation_value(key, value))

    def _secret_key_refs(self, pod: SparkPodSpec, prefix: str) -> None:
        for env_name, ref in sorted(pod.env_secret_key_refs.items()):
            self.doc.put(prefix + env_name, f"{ref.name}:{ref.key}")

    def _secrets(self, pod: SparkPodSpec, secrets_prefix: str, env_prefix: str) -> None:
        for secret in pod.secrets:
            self.doc.put(secrets_prefix + secret.name, secret.path)
            env = secret_env(secret)
            if env is not None:
                self.doc.put(env_prefix + env[0], env[1])

    def _env(self, pod: SparkPodSpec, prefix: str) -> None:
        self.doc.put_all(sorted(pod.env_vars.items()), prefix=prefix)
        for var in pod.env:
            if "name" in var and "value" in var:
                self.doc.put(prefix + var["name"], var["value"])

    def _dynamic_allocation(self) -> None:
        da = self.app.spec.dynamic_allocation
        if da is None or not da.enabled:
            return
        self.doc.put(c.SPARK_DYNAMIC_ALLOCATION_ENABLED, "true")
        self.doc.put(c.SPARK_DYNAMIC_ALLOCATION_SHUFFLE_TRACKING, "true")
        self.doc.put(c.SPARK_DYNAMIC_ALLOCATION_INITIAL, da.initial_executors)
        self.doc.put(c.SPARK_DYNAMIC_ALLOCATION_MIN, da.min_executors)
        self.doc.put(c.SPARK_DYNAMIC_ALLOCATION_MAX, da.max_executors)
        self.doc.put(c.SPARK_DYNAMIC_ALLOCATION_TIMEOUT, da.shuffle_tracking_timeout)

    def _node_selectors(self) -> None:
        spec = self.app.spec
        self.doc.put_all(sorted(spec.node_selector.items()), prefix=c.NODE_SELECTOR_PREFIX)
        self.doc.put_all(
            sorted(spec.driver.node_selector.items()), prefix=c.DRIVER_NODE_SELECTOR_PREFIX
        )
        self.doc.put_all(
            sorted(spec.executor.node_selector.items()), prefix=c.EXECUTOR_NODE_SELECTOR_PREFIX
        )

    def _runtime(self) -> None:
        doc, ctx = self.doc, self.ctx
        doc.put(c.SPARK_SUBMIT_IN_DRIVER, "true", Priority.FORCED)
        # Validation only; a configured block-manager port arrives via sparkConf
        resolve_port(
            self.conf,
            c.SPARK_DRIVER_BLOCK_MANAGER_PORT,
            c.SPARK_BLOCK_MANAGER_PORT,
            default=c.DEFAULT_BLOCK_MANAGER_PORT,
        )
        doc.put(c.SPARK_DRIVER_BLOCK_MANAGER_PORT, c.DEFAULT_BLOCK_MANAGER_PORT, Priority.BUILTIN)
        driver_port = resolve_port(self.conf, c.SPARK_DRIVER_PORT, default=c.DEFAULT_DRIVER_PORT)
        doc.put(c.SPARK_DRIVER_PORT, driver_port, Priority.SPARK_CONF)
        doc.put(c.SPARK_RESOURCE_TYPE, self.app.spec.type.resource_type, Priority.FORCED)
        doc.put(c.SPARK_SUBMIT_TIME, int(self.clock() * 1000), Priority.FORCED)
        doc.put(c.SPARK_UI_PROXY_BASE, f"/{ctx.namespace}/{self.app.name}", Priority.FORCED)
        doc.put(c.SPARK_UI_PROXY_REDIRECT_URI, "/", Priority.FORCED)

    def _defaults_file(self) -> None:
        if not self.defaults_file or not Path(self.defaults_file).is_file():
            return
        try:
            entries = read_properties_file(self.defaults_file)
        except OSError as e:
            raise ConfigurationError(  # noqa: B904
                f"Failed to read {self.defaults_file}: {e}", value=str(self.defaults_file)
            )
        logger.debug("Loaded %d defaults from %s", len(entries), self.defaults_file)
        self.doc.put_all(entries, Priority.DEFAULTS_FILE)

    def _monitoring(self) -> None:
        monitoring = self.app.spec.monitoring
        if monitoring is None:
            return
        self.doc.put(c.SPARK_METRICS_NAMESPACE, f"{self.ctx.namespace}.{self.app.name}")
        self.doc.put(c.SPARK_METRICS_CONF, monitoring.metrics_properties_file)

    def _main_resource(self) -> None:
        main_file = self.app.spec.main_application_file
        if main_file:
            jars = [j for j in (self.doc.get(c.SPARK_JARS),) if j]
            jars.append(escape_value(main_file))
            self.doc.put(c.SPARK_JARS, ",".join(jars), Priority.FORCED)
        for arg in self.app.spec.arguments:
            self.doc.append_raw(arg)


def build_properties(
    app: SparkApplication,
    ctx: SubmissionContext,
    local_dirs: LocalDirRewrite | None = None,
    clock: Callable[[], float] = time.time,
    environ: Mapping[str, str] | None = None,
    defaults_file: str | Path | None = c.SPARK_DEFAULTS_FILE,
) -> PropertiesDocument:
    """Build the properties document for one submission."""
    return PropertiesBuilder(
        app,
        ctx,
        local_dirs=local_dirs,
        clock=clock,
        environ=environ,
        defaults_file=defaults_file,
    ).build()
