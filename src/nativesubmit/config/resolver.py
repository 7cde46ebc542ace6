"""Tiered configuration resolution.

Every multi-source setting is resolved through an ordered chain of
lookups: an explicit structured field first, then one or more sparkConf
keys, then a built-in default. The first lookup that yields a value wins,
so precedence never depends on the order the caller happens to emit
properties in.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from .loader import ConfigError

Lookup = Callable[[], "str | None"]


class ConfigurationError(ConfigError):
    """Raised when a configured value cannot be interpreted."""

    def __init__(self, message: str, key: str = "", value: Any = None):
        super().__init__(message)
        self.key = key
        self.value = value


def from_value(value: Any) -> Lookup:
    """Lookup returning a structured field, skipping None and empty strings."""

    def lookup() -> str | None:
        if value is None or value == "":
            return None
        return str(value)

    return lookup


def from_conf(spark_conf: Mapping[str, str], key: str) -> Lookup:
    """Lookup returning ``spark_conf[key]`` when the key is present."""

    def lookup() -> str | None:
        return spark_conf.get(key)

    return lookup


def resolve_first(*lookups: Lookup, default: str | None = None) -> str | None:
    """Return the first value produced by ``lookups``, else ``default``."""
    for lookup in lookups:
        value = lookup()
        if value is not None:
            return value
    return default


def resolve(
    explicit: Any,
    key: str,
    spark_conf: Mapping[str, str],
    default: str | None = None,
) -> str | None:
    """Resolve a setting from a structured field, a sparkConf key, or a default.

    Args:
        explicit: Structured field value (None or "" means absent)
        key: sparkConf key consulted when the field is absent
        spark_conf: Free-form sparkConf mapping
        default: Value used when neither source supplies one

    Returns:
        The resolved value, or ``default``
    """
    return resolve_first(from_value(explicit), from_conf(spark_conf, key), default=default)


def resolve_port(spark_conf: Mapping[str, str], *keys: str, default: int) -> int:
    """Resolve a port number from the first present sparkConf key.

    Raises:
        ConfigurationError: If the configured value is not a valid port
    """
    for key in keys:
        if key not in spark_conf:
            continue
        raw = spark_conf[key]
        try:
            port = int(str(raw).strip())
        except ValueError:
            raise ConfigurationError(  # noqa: B904
                f"Invalid port for {key}: {raw!r}", key=key, value=raw
            )
        if not 0 < port < 65536:
            raise ConfigurationError(f"Port out of range for {key}: {port}", key=key, value=raw)
        return port
    return default


def resolve_int(value: str, key: str) -> int:
    """Parse an integer setting, raising ConfigurationError on failure."""
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigurationError(  # noqa: B904
            f"Invalid integer for {key}: {value!r}", key=key, value=value
        )


def escape_value(value: str) -> str:
    """Escape ``:`` and ``=`` for the properties-file format (``/a:b=c`` -> ``/a\\:b\\=c``)."""
    return value.replace(":", "\\:").replace("=", "\\=")


def prefixed_entries(spark_conf: Mapping[str, str], prefix: str) -> list[tuple[str, str]]:
    """Return ``(suffix, value)`` for every sparkConf key under ``prefix``.

    Results are sorted by key so output never depends on mapping order.
    """
    return sorted(
        (key[len(prefix) :], value)
        for key, value in spark_conf.items()
        if key.startswith(prefix) and len(key) > len(prefix)
    )


def merge_maps(*layers: Iterable[tuple[str, str]] | Mapping[str, str] | None) -> dict[str, str]:
    """Merge key/value layers, later layers winning."""
    merged: dict[str, str] = {}
    for layer in layers:
        if not layer:
            continue
        items = layer.items() if isinstance(layer, Mapping) else layer
        for key, value in items:
            merged[key] = value
    return merged


_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "min": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}
_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-z]*)\s*$")


def parse_duration(literal: str, key: str = "") -> float:
    """Parse a Spark time literal (``5s``, ``100ms``, ``2min``) to seconds.

    A bare number is interpreted as seconds.

    Raises:
        ConfigurationError: If the literal is malformed
    """
    match = _DURATION_RE.match(str(literal).lower())
    if not match or match.group(2) not in ("", *_DURATION_UNITS):
        raise ConfigurationError(
            f"Invalid duration for {key or 'setting'}: {literal!r}", key=key, value=literal
        )
    number, unit = match.groups()
    return float(number) * _DURATION_UNITS.get(unit, 1.0)
