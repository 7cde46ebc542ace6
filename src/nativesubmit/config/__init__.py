"""SparkApplication model, loading and configuration resolution."""

from .loader import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    dump_application,
    load_application,
    parse_application,
)
from .quantity import (
    cpu_limit,
    cpu_request,
    driver_memory_quantity,
    driver_resources,
    format_mib,
    memory_overhead_factor,
    memory_with_overhead,
    parse_memory_to_mib,
)
from .resolver import (
    ConfigurationError,
    escape_value,
    from_conf,
    from_value,
    parse_duration,
    prefixed_entries,
    resolve,
    resolve_first,
    resolve_port,
)
from .schema import (
    ApplicationType,
    DeployMode,
    DriverSpec,
    ExecutorSpec,
    SecretType,
    SparkApplication,
    SparkApplicationSpec,
)

__all__ = [
    # Model
    "SparkApplication",
    "SparkApplicationSpec",
    "DriverSpec",
    "ExecutorSpec",
    "ApplicationType",
    "DeployMode",
    "SecretType",
    # Loading
    "load_application",
    "parse_application",
    "dump_application",
    # Errors
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "ConfigValidationError",
    "ConfigurationError",
    # Resolution
    "resolve",
    "resolve_first",
    "resolve_port",
    "from_conf",
    "from_value",
    "escape_value",
    "prefixed_entries",
    "parse_duration",
    # Quantities
    "parse_memory_to_mib",
    "format_mib",
    "memory_overhead_factor",
    "memory_with_overhead",
    "driver_memory_quantity",
    "cpu_request",
    "cpu_limit",
    "driver_resources",
]
