"""
approval_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_settings()`` is the only way the CLI and other callers
    obtain the database URL, the log level and the seed workflows.

Architecture position:
    Configuration -- sits above ``approval_kernel``.  The kernel never
    imports from this package; ``seed_workflows`` pushes parsed workflows
    into the kernel's ``WorkflowStore``.

Resolution order for the settings file:
    1. the ``config_path`` argument,
    2. the ``APPROVALS_CONFIG`` environment variable,
    3. the packaged ``approval_config/defaults.yaml``.
    ``DATABASE_URL`` overrides ``database.url`` from any of them.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` / ``KeyError`` -- malformed settings.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from approval_config.loader import load_yaml_file, parse_settings
from approval_config.schema import (
    ApprovalSettings,
    DatabaseSettings,
    LoggingSettings,
)
from approval_kernel.domain.approval import WorkflowDefinition
from approval_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV_VAR = "APPROVALS_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"


def get_active_settings(config_path: Path | str | None = None) -> ApprovalSettings:
    """Load, parse and return the active settings.

    Every successful call logs ``approval_config_loaded`` with the source
    path, checksum and seed workflow count.
    """
    if config_path is not None:
        path = Path(config_path)
    elif os.environ.get(CONFIG_ENV_VAR):
        path = Path(os.environ[CONFIG_ENV_VAR])
    else:
        path = DEFAULT_SETTINGS_PATH

    settings = parse_settings(load_yaml_file(path), source=str(path))

    database_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if database_url:
        settings = replace(settings, database=replace(settings.database, url=database_url))

    _logger.info(
        "approval_config_loaded",
        extra={
            "source": settings.source,
            "checksum": settings.checksum,
            "workflow_count": len(settings.workflows),
            "database_url_overridden": bool(database_url),
        },
    )
    return settings


def seed_workflows(store, settings: ApprovalSettings, actor_id: str | None = None) -> list[WorkflowDefinition]:
    """Save every seed workflow through ``store`` (a ``WorkflowStore``).

    Existing definitions for the same owner and subject type are replaced.
    The caller owns the transaction.
    """
    return [store.save(workflow, actor_id) for workflow in settings.workflows]


__all__ = [
    "ApprovalSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "get_active_settings",
    "seed_workflows",
]
