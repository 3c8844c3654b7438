"""
Settings schema.

Frozen dataclasses for the parsed YAML configuration.  The loader builds
them; the bridges turn them into kernel inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

DEFAULT_ALLOWED_EXTENSIONS = ("pdf", "docx", "xlsx", "jpg", "jpeg", "png")


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///claims.db"
    echo: bool = False


@dataclass(frozen=True)
class DocumentSettings:
    """Where uploads go and what is accepted."""

    upload_dir: str = "uploads"
    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS
    max_size_bytes: int = 5 * 1024 * 1024


@dataclass(frozen=True)
class WorkflowSettings:
    require_reason: bool = True
    max_hours_per_claim: Decimal = Decimal("200")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class ClaimsSettings:
    """
    The complete runtime configuration.

    ``source_path`` and ``checksum`` identify the YAML the settings came
    from, so a log trace can be tied back to one exact file.
    """

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    documents: DocumentSettings = field(default_factory=DocumentSettings)
    workflow: WorkflowSettings = field(default_factory=WorkflowSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source_path: str | None = None
    checksum: str = ""
