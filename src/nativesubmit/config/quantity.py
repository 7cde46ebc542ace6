"""Memory and CPU arithmetic for the driver container."""

from __future__ import annotations

import re
from typing import Any

from .. import _constants as c
from .resolver import ConfigurationError, from_conf, from_value, resolve, resolve_first
from .schema import SparkApplication

_MEMORY_MULTIPLIERS_MIB = {
    "": 1.0,
    "K": 1.0 / 1024,
    "M": 1.0,
    "G": 1024.0,
    "T": 1024.0 * 1024,
}
_MEMORY_RE = re.compile(r"^(\d+(?:\.\d+)?)([KMGT]?)I?B?$")


def parse_memory_to_mib(literal: str) -> float:
    """Parse a Spark memory literal to MiB.

    Supports k, m, g, t suffixes (case-insensitive, optionally followed by
    ``i`` and/or ``b``). A bare number is taken as MiB.

    Examples:
        >>> parse_memory_to_mib("2g")
        2048.0
        >>> parse_memory_to_mib("512m")
        512.0

    Raises:
        ConfigurationError: If the literal is not a memory amount
    """
    text = str(literal).strip().upper()
    match = _MEMORY_RE.match(text)
    if not match:
        raise ConfigurationError(f"Invalid memory format: {literal!r}", value=literal)
    number, unit = match.groups()
    return float(number) * _MEMORY_MULTIPLIERS_MIB[unit]


def format_mib(mib: float) -> str:
    """Format a MiB amount as a Kubernetes quantity, e.g. ``1408Mi``."""
    if float(mib).is_integer():
        return f"{int(mib)}Mi"
    return f"{mib:.6f}".rstrip("0").rstrip(".") + "Mi"


def default_overhead_factor(app: SparkApplication) -> str:
    """Overhead factor implied by the application type."""
    if app.spec.type.is_jvm:
        return c.JVM_MEMORY_OVERHEAD_FACTOR
    return c.NON_JVM_MEMORY_OVERHEAD_FACTOR


def memory_overhead_factor(app: SparkApplication) -> float:
    """Resolve the driver memory overhead factor.

    Raises:
        ConfigurationError: If the configured factor is not a number
    """
    raw = resolve(
        app.spec.memory_overhead_factor,
        c.SPARK_DRIVER_MEMORY_OVERHEAD_FACTOR,
        app.spark_conf,
        default=default_overhead_factor(app),
    )
    try:
        return float(raw)  # type: ignore[arg-type]
    except ValueError:
        raise ConfigurationError(  # noqa: B904
            f"Invalid memory overhead factor: {raw!r}",
            key=c.SPARK_DRIVER_MEMORY_OVERHEAD_FACTOR,
            value=raw,
        )


def fixed_memory_overhead(app: SparkApplication) -> str | None:
    """Explicit driver memory overhead, if any source configures one."""
    return resolve_first(
        from_value(app.spec.driver.memory_overhead),
        from_conf(app.spark_conf, c.SPARK_DRIVER_MEMORY_OVERHEAD),
        from_conf(app.spark_conf, c.SPARK_KUBERNETES_MEMORY_OVERHEAD),
    )


def memory_with_overhead(base_mib: float, app: SparkApplication) -> float:
    """Add the driver memory overhead to ``base_mib``.

    A fixed overhead is added verbatim. Otherwise the overhead is
    ``max(384, factor * base)``.
    """
    fixed = fixed_memory_overhead(app)
    if fixed is not None:
        return base_mib + parse_memory_to_mib(fixed)
    factor = memory_overhead_factor(app)
    return base_mib + max(float(c.MIN_MEMORY_OVERHEAD_MIB), factor * base_mib)


def driver_memory_quantity(app: SparkApplication) -> str:
    """Driver container memory including overhead, as a quantity."""
    literal = resolve(app.spec.driver.memory, c.SPARK_DRIVER_MEMORY, app.spark_conf)
    if literal is None:
        return c.DEFAULT_MEMORY_QUANTITY
    return format_mib(memory_with_overhead(parse_memory_to_mib(literal), app))


def cpu_request(app: SparkApplication) -> str:
    """Driver CPU request: coreRequest, request.cores conf, cores, driver.cores conf, "1"."""
    driver = app.spec.driver
    return resolve_first(
        from_value(driver.core_request),
        from_conf(app.spark_conf, c.SPARK_DRIVER_REQUEST_CORES),
        from_value(driver.cores),
        from_conf(app.spark_conf, c.SPARK_DRIVER_CORES),
        default=c.DEFAULT_CPU_REQUEST,
    )  # type: ignore[return-value]


def cpu_limit(app: SparkApplication) -> str | None:
    """Driver CPU limit, only when explicitly configured."""
    return resolve(app.spec.driver.core_limit, c.SPARK_DRIVER_LIMIT_CORES, app.spark_conf)


def driver_resources(app: SparkApplication) -> dict[str, Any]:
    """Container resources block for the driver."""
    memory = driver_memory_quantity(app)
    resources: dict[str, Any] = {
        "requests": {"cpu": cpu_request(app), "memory": memory},
        "limits": {"memory": memory},
    }
    limit = cpu_limit(app)
    if limit is not None:
        resources["limits"]["cpu"] = limit
    return resources
