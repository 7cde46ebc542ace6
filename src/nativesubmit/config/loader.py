"""SparkApplication manifest loader."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .._constants import OWNER_KIND
from .schema import SparkApplication


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigFileNotFoundError(ConfigError):
    """Raised when a manifest file is not found."""

    pass


class ConfigParseError(ConfigError):
    """Raised when a manifest cannot be parsed."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when manifest validation fails."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


def load_yaml_documents(path: Path) -> list[dict[str, Any]]:
    """Load every YAML document in a file.

    Args:
        path: Path to YAML file

    Returns:
        Non-empty documents, in file order

    Raises:
        ConfigFileNotFoundError: If file doesn't exist
        ConfigParseError: If YAML parsing fails or a document is not a mapping
    """
    if not path.exists():
        raise ConfigFileNotFoundError(f"Manifest file not found: {path}")

    try:
        with open(path) as f:
            documents = [doc for doc in yaml.safe_load_all(f) if doc]
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse YAML: {e}")  # noqa: B904

    for doc in documents:
        if not isinstance(doc, dict):
            raise ConfigParseError(f"Expected a mapping in {path}, got {type(doc).__name__}")
    return documents


def parse_application(data: dict[str, Any]) -> SparkApplication:
    """Validate a SparkApplication from an already-parsed mapping.

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        return SparkApplication.model_validate(data)
    except ValidationError as e:
        errors = e.errors()
        error_messages = []
        for err in errors:
            loc = ".".join(str(x) for x in err["loc"])
            msg = err["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        raise ConfigValidationError(  # noqa: B904
            "SparkApplication validation failed:\n" + "\n".join(error_messages),
            errors=[dict(e) for e in errors],  # type: ignore[call-overload]
        )


def load_application(path: str | Path) -> SparkApplication:
    """Load the first SparkApplication found in a YAML file.

    Documents of other kinds (for example a Namespace or ServiceAccount
    bundled in the same file) are skipped.

    Args:
        path: Path to manifest YAML file

    Returns:
        Validated SparkApplication

    Raises:
        ConfigFileNotFoundError: If file doesn't exist
        ConfigParseError: If YAML parsing fails or no SparkApplication is present
        ConfigValidationError: If validation fails
    """
    path = Path(path)
    for doc in load_yaml_documents(path):
        if doc.get("kind", OWNER_KIND) == OWNER_KIND:
            return parse_application(doc)
    raise ConfigParseError(f"No {OWNER_KIND} document found in {path}")


def dump_application(app: SparkApplication) -> str:
    """Serialize a SparkApplication back to camelCase YAML."""
    data = app.model_dump(mode="json", by_alias=True, exclude_none=True)
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, indent=2)
