"""
Kernel-side policy values.

The kernel never reads configuration itself.  ``claims_config.bridges``
builds these from ``ClaimsSettings``; services fall back to the defaults
below when none are injected.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

DEFAULT_ALLOWED_EXTENSIONS: tuple[str, ...] = ("pdf", "docx", "xlsx", "jpg", "jpeg", "png")
DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True)
class DocumentPolicy:
    """Upload rules for supporting documents."""

    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS
    max_size_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    def __post_init__(self) -> None:
        if not self.allowed_extensions:
            raise ValueError("allowed_extensions must not be empty")
        if self.max_size_bytes <= 0:
            raise ValueError("max_size_bytes must be positive")
        normalized = tuple(e.lower().lstrip(".") for e in self.allowed_extensions)
        object.__setattr__(self, "allowed_extensions", normalized)


@dataclass(frozen=True)
class WorkflowPolicy:
    """Review rules applied by ClaimService."""

    require_reason: bool = True
    max_hours_per_claim: Decimal = Decimal("200")
