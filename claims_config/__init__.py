"""
claims_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings.
    It reads one YAML file (the packaged ``defaults.yaml`` unless a path
    is given) and returns a frozen ``ClaimsSettings``.

Architecture position:
    Configuration.  This package sits above ``claims_kernel``; the kernel
    MUST NEVER import from ``claims_config``.  ``claims_config.bridges``
    translates settings into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the given path does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` -- unknown keys or values of the wrong type.

Audit relevance:
    Every successful call emits a ``CLAIMS_CONFIG_TRACE`` log entry with
    the source path and the checksum of the parsed content.
"""

from __future__ import annotations

import logging
from pathlib import Path

from claims_config.loader import load_yaml_file, parse_settings
from claims_config.schema import (
    ClaimsSettings,
    DatabaseSettings,
    DocumentSettings,
    LoggingSettings,
    WorkflowSettings,
)

_logger = logging.getLogger("claims_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: str | Path | None = None) -> ClaimsSettings:
    """
    Load and validate the active settings.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.

    Returns:
        ClaimsSettings with ``source_path`` and ``checksum`` filled in.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    settings = parse_settings(load_yaml_file(path), source_path=str(path))

    _logger.info(
        "CLAIMS_CONFIG_TRACE",
        extra={
            "trace_type": "CLAIMS_CONFIG_TRACE",
            "source_path": settings.source_path,
            "checksum": settings.checksum,
            "database_dialect": settings.database.url.split(":", 1)[0],
            "allowed_extensions": list(settings.documents.allowed_extensions),
        },
    )
    return settings


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ClaimsSettings",
    "DatabaseSettings",
    "DocumentSettings",
    "LoggingSettings",
    "WorkflowSettings",
    "get_active_config",
]
