"""
Config -> Kernel Bridges.

Functions that convert ClaimsSettings into kernel inputs.  They live in
claims_config (the producer) because the kernel must NEVER import
claims_config.

Usage:
    from claims_config.bridges import build_document_policy, init_database

    settings = get_active_config()
    init_database(settings)
    policy = build_document_policy(settings)
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine

from claims_config.schema import ClaimsSettings
from claims_kernel.db.engine import create_tables, init_engine_from_url
from claims_kernel.db.immutability import register_immutability_listeners
from claims_kernel.domain.policy import DocumentPolicy, WorkflowPolicy
from claims_kernel.logging_config import configure_logging
from claims_kernel.services.document_store import LocalDocumentStore


def build_document_policy(settings: ClaimsSettings) -> DocumentPolicy:
    return DocumentPolicy(
        allowed_extensions=settings.documents.allowed_extensions,
        max_size_bytes=settings.documents.max_size_bytes,
    )


def build_workflow_policy(settings: ClaimsSettings) -> WorkflowPolicy:
    return WorkflowPolicy(
        require_reason=settings.workflow.require_reason,
        max_hours_per_claim=settings.workflow.max_hours_per_claim,
    )


def build_document_store(
    settings: ClaimsSettings,
    base_dir: str | Path | None = None,
) -> LocalDocumentStore:
    """Local store rooted at ``upload_dir`` (relative paths resolve against ``base_dir``)."""
    root = Path(settings.documents.upload_dir)
    if base_dir is not None and not root.is_absolute():
        root = Path(base_dir) / root
    return LocalDocumentStore(root)


def init_database(settings: ClaimsSettings, create: bool = True) -> Engine:
    """
    Configure logging, open the engine and install the ORM guards.

    Tables are created when ``create`` is true.
    """
    configure_logging(level=settings.logging.level)
    engine = init_engine_from_url(settings.database.url, echo=settings.database.echo)
    register_immutability_listeners()
    if create:
        create_tables()
    return engine
