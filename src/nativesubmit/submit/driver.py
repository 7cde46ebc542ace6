"""Driver pod manifest synthesis.

The pod is assembled from an optional template (see :mod:`.template`)
overlaid with the fields derived from the SparkApplication. Every helper
here is a pure function of its inputs; nothing in the application or the
template is mutated.
"""

from __future__ import annotations

import copy
import logging
import os
from collections.abc import Iterable, Mapping
from typing import Any

from .. import _constants as c
from ..config.quantity import driver_resources
from ..config.resolver import (
    from_conf,
    from_value,
    merge_maps,
    prefixed_entries,
    resolve,
    resolve_first,
    resolve_port,
)
from ..config.schema import SecretInfo, SparkApplication
from .naming import SubmissionContext, owner_references
from .properties import LocalDirRewrite, rewrite_local_dirs, secret_env

logger = logging.getLogger(__name__)


def dedupe_by(items: Iterable[dict[str, Any]], key: str) -> list[dict[str, Any]]:
    """Drop duplicates on ``key``: the first position is kept, the last value wins."""
    merged: dict[Any, dict[str, Any]] = {}
    for item in items:
        merged[item.get(key)] = item
    return list(merged.values())


def _env(name: str, value: Any) -> dict[str, Any]:
    return {"name": name, "value": str(value)}


# =============================================================================
# Decisions
# =============================================================================


def driver_image(app: SparkApplication) -> str | None:
    """driver.image, spec.image, driver image conf, container image conf."""
    return resolve_first(
        from_value(app.spec.driver.image),
        from_value(app.spec.image),
        from_conf(app.spark_conf, c.SPARK_DRIVER_CONTAINER_IMAGE),
        from_conf(app.spark_conf, c.SPARK_CONTAINER_IMAGE),
    )


def image_pull_policy(app: SparkApplication) -> str:
    return resolve(
        app.spec.image_pull_policy,
        c.SPARK_IMAGE_PULL_POLICY,
        app.spark_conf,
        default=c.DEFAULT_IMAGE_PULL_POLICY,
    )  # type: ignore[return-value]


def image_pull_secrets(app: SparkApplication) -> list[dict[str, str]] | None:
    names = list(app.spec.image_pull_secrets)
    if not names:
        raw = app.spark_conf.get(c.SPARK_IMAGE_PULL_SECRETS, "")
        names = [n.strip() for n in raw.split(",") if n.strip()]
    return [{"name": n} for n in names] or None


def driver_ports(app: SparkApplication) -> tuple[int, int, int]:
    """(driver RPC, block manager, UI) ports."""
    conf = app.spark_conf
    driver_port = resolve_port(conf, c.SPARK_DRIVER_PORT, default=c.DEFAULT_DRIVER_PORT)
    block_manager_port = resolve_port(
        conf,
        c.SPARK_DRIVER_BLOCK_MANAGER_PORT,
        c.SPARK_BLOCK_MANAGER_PORT,
        default=c.DEFAULT_BLOCK_MANAGER_PORT,
    )
    return driver_port, block_manager_port, c.DEFAULT_UI_PORT


def pod_annotations(app: SparkApplication) -> dict[str, str]:
    return merge_maps(
        prefixed_entries(app.spark_conf, c.DRIVER_ANNOTATION_PREFIX),
        app.spec.driver.annotations,
    )


def pod_node_selector(app: SparkApplication) -> dict[str, str]:
    return merge_maps(
        prefixed_entries(app.spark_conf, c.NODE_SELECTOR_PREFIX),
        prefixed_entries(app.spark_conf, c.DRIVER_NODE_SELECTOR_PREFIX),
        app.spec.node_selector,
        app.spec.driver.node_selector,
    )


def pod_security_context(app: SparkApplication) -> dict[str, Any] | None:
    """Pod security context mapped from driver.securityContext.

    Returns None when no user or non-root setting is configured.
    """
    sc = app.spec.driver.security_context or {}
    if sc.get("runAsUser") is None and sc.get("runAsNonRoot") is None:
        return None
    context: dict[str, Any] = {}
    uid = sc.get("runAsUser")
    if uid is not None:
        context.update(runAsUser=uid, fsGroup=uid, supplementalGroups=[uid])
    if sc.get("runAsGroup") is not None:
        context["runAsGroup"] = sc["runAsGroup"]
    if sc.get("runAsNonRoot") is not None:
        context["runAsNonRoot"] = sc["runAsNonRoot"]
    return context


def default_pod_security_context() -> dict[str, Any]:
    return {
        "runAsUser": c.DEFAULT_SPARK_UID,
        "fsGroup": c.DEFAULT_SPARK_UID,
        "supplementalGroups": [c.DEFAULT_SPARK_UID],
        "runAsNonRoot": True,
    }


def default_tolerations() -> list[dict[str, Any]]:
    return [
        {
            "key": key,
            "operator": "Exists",
            "effect": "NoExecute",
            "tolerationSeconds": c.DEFAULT_TOLERATION_SECONDS,
        }
        for key in ("node.kubernetes.io/not-ready", "node.kubernetes.io/unreachable")
    ]


def scheduler_name(app: SparkApplication) -> str | None:
    return resolve_first(
        from_conf(app.spark_conf, c.SPARK_DRIVER_SCHEDULER_NAME),
        from_conf(app.spark_conf, c.SPARK_SCHEDULER_NAME),
    )


def driver_secrets(app: SparkApplication) -> list[SecretInfo]:
    """driver.secrets followed by sparkConf driver secrets not already listed."""
    secrets = list(app.spec.driver.secrets)
    listed = {s.name for s in secrets}
    for name, path in prefixed_entries(app.spark_conf, c.DRIVER_SECRETS_PREFIX):
        if name not in listed:
            secrets.append(SecretInfo(name=name, path=path))
    return secrets


def local_scratch_dirs(app: SparkApplication) -> list[str]:
    """Directories named by SPARK_LOCAL_DIRS in the driver environment."""
    raw = resolve_first(
        from_value(app.spec.driver.env_vars.get("SPARK_LOCAL_DIRS")),
        from_conf(app.spark_conf, f"{c.DRIVER_ENV_PREFIX}SPARK_LOCAL_DIRS"),
    )
    if not raw:
        return []
    return [d.strip() for d in raw.split(",") if d.strip()]


def container_args(app: SparkApplication) -> list[str]:
    args = ["driver", "--properties-file", f"{c.SPARK_CONF_DIR}/{c.SPARK_PROPERTIES_FILE}"]
    if app.spec.main_class:
        args.extend(["--class", app.spec.main_class])
    if app.spec.main_application_file:
        args.append(app.spec.main_application_file)
    args.extend(app.spec.arguments)
    return args


# =============================================================================
# Volumes and mounts
# =============================================================================


def _conf_volume(ctx: SubmissionContext) -> dict[str, Any]:
    items = [
        {"key": key, "path": key, "mode": c.CONFIG_MAP_FILE_MODE}
        for key in (c.SPARK_ENV_FILE, c.SPARK_PROPERTIES_FILE)
    ]
    return {
        "name": c.SPARK_CONF_VOLUME,
        "configMap": {
            "name": ctx.config_map_name,
            "defaultMode": c.CONFIG_MAP_FILE_MODE,
            "items": items,
        },
    }


def volumes_and_mounts(
    app: SparkApplication,
    ctx: SubmissionContext,
    local_dirs: LocalDirRewrite,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Pod volumes and driver container mounts derived from the application."""
    conf = app.spark_conf
    volumes: list[dict[str, Any]] = [_conf_volume(ctx)]
    mounts: list[dict[str, Any]] = [{"name": c.SPARK_CONF_VOLUME, "mountPath": c.SPARK_CONF_DIR}]

    volumes.extend(local_dirs.volumes)
    mounts.extend(local_dirs.driver_mounts)

    mounted_paths = {m.get("mountPath") for m in mounts}
    scratch = [d for d in local_scratch_dirs(app) if d not in mounted_paths]
    for i, path in enumerate(scratch, start=1):
        name = f"{c.SCRATCH_DIR_VOLUME_PREFIX}{i}"
        volumes.append({"name": name, "emptyDir": {}})
        mounts.append({"name": name, "mountPath": path})

    for secret in driver_secrets(app):
        name = f"{secret.name}-volume"
        volumes.append({"name": name, "secret": {"secretName": secret.name}})
        mounts.append({"name": name, "mountPath": secret.path})

    for cm in app.spec.driver.config_maps:
        name = f"{cm.name}-vol"
        volumes.append({"name": name, "configMap": {"name": cm.name}})
        mounts.append({"name": name, "mountPath": cm.path})

    krb5_config_map = conf.get(c.SPARK_KERBEROS_KRB5_CONFIG_MAP)
    if krb5_config_map:
        volumes.append({"name": c.KRB5_VOLUME, "configMap": {"name": krb5_config_map}})
        mounts.append(
            {"name": c.KRB5_VOLUME, "mountPath": c.KRB5_FILE_PATH, "subPath": c.KRB5_FILE_NAME}
        )

    token_secret = conf.get(c.SPARK_KERBEROS_TOKEN_SECRET_NAME)
    if token_secret:
        volumes.append({"name": c.HADOOP_TOKEN_VOLUME, "secret": {"secretName": token_secret}})
        mounts.append(
            {"name": c.HADOOP_TOKEN_VOLUME, "mountPath": c.HADOOP_CREDENTIALS_DIR.rstrip("/")}
        )

    if app.spec.hadoop_config_map:
        volumes.append(
            {"name": c.HADOOP_CONF_VOLUME, "configMap": {"name": app.spec.hadoop_config_map}}
        )
        mounts.append({"name": c.HADOOP_CONF_VOLUME, "mountPath": c.HADOOP_CONF_DIR})

    return volumes, mounts


def config_map_mounts(app: SparkApplication) -> list[dict[str, Any]]:
    return [{"name": f"{cm.name}-vol", "mountPath": cm.path} for cm in app.spec.driver.config_maps]


# =============================================================================
# Environment
# =============================================================================


def driver_env(
    app: SparkApplication,
    ctx: SubmissionContext,
    environ: Mapping[str, str],
) -> list[dict[str, Any]]:
    """Driver container environment, deduplicated by name."""
    driver, conf = app.spec.driver, app.spark_conf
    env: list[dict[str, Any]] = [
        _env("SPARK_USER", environ.get("SPARK_USER") or c.DEFAULT_SPARK_USER),
        _env("SPARK_APPLICATION_ID", ctx.app_id),
        {
            "name": "SPARK_DRIVER_BIND_ADDRESS",
            "valueFrom": {"fieldRef": {"apiVersion": "v1", "fieldPath": "status.podIP"}},
        },
    ]
    env.extend(_env(k, v) for k, v in prefixed_entries(conf, c.DRIVER_ENV_PREFIX))
    env.extend(_env(k, v) for k, v in sorted(driver.env_vars.items()))
    env.extend(copy.deepcopy(driver.env))

    refs = {
        name: tuple(value.split(":", 1))
        for name, value in prefixed_entries(conf, c.DRIVER_SECRET_KEY_REF_PREFIX)
        if ":" in value
    }
    refs.update({name: (ref.name, ref.key) for name, ref in driver.env_secret_key_refs.items()})
    for name, (secret, key) in sorted(refs.items()):
        env.append({"name": name, "valueFrom": {"secretKeyRef": {"name": secret, "key": key}}})

    item_key = conf.get(c.SPARK_KERBEROS_TOKEN_ITEM_KEY)
    if item_key:
        env.append(_env("HADOOP_TOKEN_FILE_LOCATION", c.HADOOP_CREDENTIALS_DIR + item_key))

    for secret in driver_secrets(app):
        secret_var = secret_env(secret)
        if secret_var is not None:
            env.append(_env(*secret_var))

    if app.spec.hadoop_config_map:
        env.append(_env("HADOOP_CONF_DIR", c.HADOOP_CONF_DIR))
    env.append(_env("SPARK_CONF_DIR", c.SPARK_CONF_DIR))
    return dedupe_by(env, "name")


# =============================================================================
# Containers
# =============================================================================


def build_driver_container(
    app: SparkApplication,
    ctx: SubmissionContext,
    mounts: list[dict[str, Any]],
    environ: Mapping[str, str],
    base: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Driver container, overlaid on a template container when given."""
    container = copy.deepcopy(dict(base or {}))
    driver_port, block_manager_port, ui_port = driver_ports(app)

    container.update(
        name=c.DRIVER_CONTAINER_NAME,
        args=container_args(app),
        imagePullPolicy=image_pull_policy(app),
        ports=[
            {"name": c.DRIVER_PORT_NAME, "containerPort": driver_port, "protocol": "TCP"},
            {
                "name": c.BLOCK_MANAGER_PORT_NAME,
                "containerPort": block_manager_port,
                "protocol": "TCP",
            },
            {"name": c.UI_PORT_NAME, "containerPort": ui_port, "protocol": "TCP"},
        ],
        resources=driver_resources(app),
        securityContext={"capabilities": {"drop": ["ALL"]}, "privileged": False},
        terminationMessagePath=c.TERMINATION_MESSAGE_PATH,
        terminationMessagePolicy=c.TERMINATION_MESSAGE_POLICY,
    )
    image = driver_image(app)
    if image:
        container["image"] = image
    container["env"] = dedupe_by(
        [*container.get("env", []), *driver_env(app, ctx, environ)], "name"
    )
    container["volumeMounts"] = dedupe_by(
        [*container.get("volumeMounts", []), *mounts], "mountPath"
    )
    return container


def build_sidecars(app: SparkApplication, volume_names: set[str]) -> list[dict[str, Any]]:
    """Sidecars with mounts restricted to volumes present in the pod."""
    extra_mounts = config_map_mounts(app)
    sidecars = []
    for sidecar in app.spec.driver.sidecars:
        container = copy.deepcopy(sidecar)
        kept = []
        for mount in container.get("volumeMounts", []):
            if mount.get("name") in volume_names:
                kept.append(mount)
            else:
                logger.warning(
                    "Dropping mount %s from sidecar %s: volume not in pod",
                    mount.get("name"),
                    container.get("name"),
                )
        container["volumeMounts"] = dedupe_by([*kept, *extra_mounts], "mountPath")
        sidecars.append(container)
    return sidecars


# =============================================================================
# Pod
# =============================================================================


def build_driver_pod(
    app: SparkApplication,
    ctx: SubmissionContext,
    local_dirs: LocalDirRewrite | None = None,
    template: tuple[Mapping[str, Any], Mapping[str, Any]] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Build the driver Pod manifest.

    Args:
        app: Application being submitted
        ctx: Names and identifiers of this submission
        local_dirs: Result of ``rewrite_local_dirs``; computed when omitted
        template: ``(base pod, base container)`` from ``driver_template``
        environ: Environment used for SPARK_USER; defaults to os.environ

    Returns:
        Pod manifest as a dict
    """
    local_dirs = local_dirs if local_dirs is not None else rewrite_local_dirs(app)
    base_pod, base_container = template or ({}, {})
    environ = os.environ if environ is None else environ
    driver = app.spec.driver

    pod = copy.deepcopy(dict(base_pod))
    pod["apiVersion"] = "v1"
    pod["kind"] = "Pod"

    metadata = pod.setdefault("metadata", {})
    metadata["name"] = ctx.driver_pod_name
    metadata["namespace"] = ctx.namespace
    metadata["labels"] = merge_maps(metadata.get("labels"), ctx.pod_labels)
    annotations = merge_maps(metadata.get("annotations"), pod_annotations(app))
    if annotations:
        metadata["annotations"] = annotations
    refs = owner_references(app)
    if refs:
        metadata["ownerReferences"] = refs

    volumes, mounts = volumes_and_mounts(app, ctx, local_dirs)
    spec = pod.setdefault("spec", {})
    spec["volumes"] = dedupe_by([*spec.get("volumes", []), *volumes], "name")
    volume_names = {v["name"] for v in spec["volumes"]}

    spec["dnsPolicy"] = c.DEFAULT_DNS_POLICY
    spec["enableServiceLinks"] = True
    spec["restartPolicy"] = c.DEFAULT_RESTART_POLICY

    node_selector = merge_maps(spec.get("nodeSelector"), pod_node_selector(app))
    if node_selector:
        spec["nodeSelector"] = node_selector

    pull_secrets = image_pull_secrets(app)
    if pull_secrets:
        spec["imagePullSecrets"] = pull_secrets

    # The UID 185 default applies only when the application sets no context
    if driver.security_context is None:
        if not spec.get("securityContext"):
            spec["securityContext"] = default_pod_security_context()
    else:
        security_context = pod_security_context(app)
        if security_context is not None:
            spec["securityContext"] = security_context

    account = resolve(driver.service_account, c.SPARK_DRIVER_SERVICE_ACCOUNT, app.spark_conf)
    if account:
        spec["serviceAccountName"] = account

    scheduler = scheduler_name(app)
    if scheduler:
        spec["schedulerName"] = scheduler

    if driver.termination_grace_period_seconds is not None:
        spec["terminationGracePeriodSeconds"] = driver.termination_grace_period_seconds
    else:
        spec.setdefault("terminationGracePeriodSeconds", c.DEFAULT_TERMINATION_GRACE_SECONDS)

    if driver.tolerations is not None:
        spec["tolerations"] = copy.deepcopy(driver.tolerations)
    elif not spec.get("tolerations"):
        spec["tolerations"] = default_tolerations()

    if driver.init_containers:
        spec["initContainers"] = [
            *spec.get("initContainers", []),
            *copy.deepcopy(driver.init_containers),
        ]

    spec["containers"] = [
        build_driver_container(app, ctx, mounts, environ, base_container),
        *spec.get("containers", []),
        *build_sidecars(app, volume_names),
    ]
    return pod
