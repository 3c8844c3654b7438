"""
Configuration Loader (``claims_config.loader``).

Responsibility
--------------
Reads a YAML settings file and parses it into the frozen
``claims_config.schema`` dataclasses.  Runtime callers go through
``claims_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; a typo never silently
  falls back to a default.
* Values are type-checked; booleans are not accepted where numbers are
  expected.
* ``compute_checksum`` is deterministic over the parsed content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong shape or type  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from claims_config.schema import (
    ClaimsSettings,
    DatabaseSettings,
    DocumentSettings,
    LoggingSettings,
    WorkflowSettings,
)

_SECTIONS = ("database", "documents", "workflow", "logging")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _section(data: dict[str, Any], name: str, allowed: tuple[str, ...]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping")
    unknown = sorted(set(section) - set(allowed))
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {', '.join(unknown)}")
    return section


def _bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{section}.{key}' must be true or false, got {value!r}")
    return value


def _str(section: str, key: str, value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"'{section}.{key}' must be a non-empty string, got {value!r}")
    return value


def _positive_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"'{section}.{key}' must be a positive integer, got {value!r}")
    return value


def _positive_decimal(section: str, key: str, value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValueError(f"'{section}.{key}' must be a number, got {value!r}")
    try:
        number = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"'{section}.{key}' must be a number, got {value!r}") from exc
    if not number.is_finite() or number <= 0:
        raise ValueError(f"'{section}.{key}' must be positive, got {value!r}")
    return number


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    section = _section(data, "database", ("url", "echo"))
    default = DatabaseSettings()
    return DatabaseSettings(
        url=_str("database", "url", section.get("url", default.url)),
        echo=_bool("database", "echo", section.get("echo", default.echo)),
    )


def parse_documents(data: dict[str, Any]) -> DocumentSettings:
    section = _section(
        data, "documents", ("upload_dir", "allowed_extensions", "max_size_bytes")
    )
    default = DocumentSettings()
    extensions = section.get("allowed_extensions", list(default.allowed_extensions))
    if (
        not isinstance(extensions, list)
        or not extensions
        or not all(isinstance(e, str) and e.strip(". ") for e in extensions)
    ):
        raise ValueError(
            f"'documents.allowed_extensions' must be a non-empty list of strings, "
            f"got {extensions!r}"
        )
    return DocumentSettings(
        upload_dir=_str("documents", "upload_dir", section.get("upload_dir", default.upload_dir)),
        allowed_extensions=tuple(e.strip().lower().lstrip(".") for e in extensions),
        max_size_bytes=_positive_int(
            "documents", "max_size_bytes", section.get("max_size_bytes", default.max_size_bytes)
        ),
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowSettings:
    section = _section(data, "workflow", ("require_reason", "max_hours_per_claim"))
    default = WorkflowSettings()
    return WorkflowSettings(
        require_reason=_bool(
            "workflow", "require_reason", section.get("require_reason", default.require_reason)
        ),
        max_hours_per_claim=_positive_decimal(
            "workflow",
            "max_hours_per_claim",
            section.get("max_hours_per_claim", default.max_hours_per_claim),
        ),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    section = _section(data, "logging", ("level",))
    level = _str("logging", "level", section.get("level", LoggingSettings().level)).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"'logging.level' is not a logging level: {level!r}")
    return LoggingSettings(level=level)


def parse_settings(
    data: dict[str, Any],
    source_path: str | None = None,
) -> ClaimsSettings:
    """
    Parse a settings mapping into ``ClaimsSettings``.

    Missing sections and keys take their defaults.

    Raises:
        ValueError: Unknown section or key, or a value of the wrong type.
    """
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(unknown)}")
    return ClaimsSettings(
        database=parse_database(data),
        documents=parse_documents(data),
        workflow=parse_workflow(data),
        logging=parse_logging(data),
        source_path=source_path,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
