"""Driver pod template retrieval and container selection."""

from __future__ import annotations

import copy
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx
import yaml

from .. import _constants as c
from ..config.loader import ConfigError
from ..config.resolver import from_conf, from_value, parse_duration, resolve_first

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_ENV = "SPARK_FILES_FETCH_TIMEOUT"


class PodTemplateError(ConfigError):
    """Raised when a pod template cannot be fetched or parsed."""

    pass


def fetch_timeout(spark_conf: Mapping[str, str], environ: Mapping[str, str] | None = None) -> float:
    """Template fetch timeout in seconds.

    spark.files.fetchTimeout, then the SPARK_FILES_FETCH_TIMEOUT environment
    variable, then 5 seconds.
    """
    environ = os.environ if environ is None else environ
    raw = resolve_first(
        from_conf(spark_conf, c.SPARK_FILES_FETCH_TIMEOUT),
        from_value(environ.get(FETCH_TIMEOUT_ENV)),
    )
    if raw is None:
        return c.DEFAULT_FETCH_TIMEOUT_SECONDS
    return parse_duration(raw, c.SPARK_FILES_FETCH_TIMEOUT)


def _read_template_text(location: str, timeout: float) -> str:
    parsed = urlparse(location)
    if parsed.scheme in ("http", "https"):
        try:
            response = httpx.get(location, timeout=timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PodTemplateError(f"Failed to fetch pod template {location}: {e}")  # noqa: B904
        return response.text

    if parsed.scheme in ("file", "local"):
        path = Path(parsed.path)
    elif parsed.scheme == "":
        path = Path(location)
    else:
        raise PodTemplateError(f"Unsupported pod template scheme: {parsed.scheme}")

    try:
        return path.read_text()
    except OSError as e:
        raise PodTemplateError(f"Failed to read pod template {path}: {e}")  # noqa: B904


def load_pod_template(
    location: str,
    spark_conf: Mapping[str, str],
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load a Pod manifest from a local path, file:// / local:// URI or http(s) URL.

    Raises:
        PodTemplateError: If the template cannot be read or is not a Pod
    """
    text = _read_template_text(location, fetch_timeout(spark_conf, environ))
    try:
        template = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise PodTemplateError(f"Failed to parse pod template {location}: {e}")  # noqa: B904

    if not isinstance(template, dict):
        raise PodTemplateError(f"Pod template {location} is not a mapping")
    kind = template.get("kind", "Pod")
    if kind != "Pod":
        raise PodTemplateError(f"Pod template {location} has kind {kind}, expected Pod")
    logger.info("Loaded driver pod template from %s", location)
    return template


def select_spark_container(
    template: Mapping[str, Any], container_name: str | None
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a template into (pod without the Spark container, Spark container).

    The container named ``container_name`` is chosen when present,
    otherwise the first container. A template without containers yields
    an empty base container.
    """
    pod = copy.deepcopy(dict(template))
    spec = pod.setdefault("spec", {})
    containers = list(spec.get("containers") or [])

    index = None
    if container_name:
        index = next(
            (i for i, ctr in enumerate(containers) if ctr.get("name") == container_name), None
        )
        if index is None and containers:
            logger.warning(
                "Container %s not found in pod template, using %s",
                container_name,
                containers[0].get("name"),
            )
    if index is None and containers:
        index = 0

    container: dict[str, Any] = containers.pop(index) if index is not None else {}
    spec["containers"] = containers
    return pod, container


def driver_template(
    spark_conf: Mapping[str, str],
    environ: Mapping[str, str] | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Base pod and container from spark.kubernetes.driver.podTemplateFile, if set."""
    location = spark_conf.get(c.SPARK_DRIVER_POD_TEMPLATE_FILE)
    if not location:
        return {}, {}
    template = load_pod_template(location, spark_conf, environ)
    return select_spark_container(template, spark_conf.get(c.SPARK_DRIVER_POD_TEMPLATE_CONTAINER))
