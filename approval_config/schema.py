"""
Runtime settings schema.

Frozen dataclasses the YAML settings file is parsed into.  Workflow
definitions reuse the kernel's ``WorkflowDefinition`` DTO so that seeded
workflows go through exactly the same validation as administrative edits.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from approval_kernel.domain.approval import WorkflowDefinition

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str = "sqlite:///approvals.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """Level for the ``approval_kernel`` logger hierarchy."""

    level: str = "INFO"


# ---------------------------------------------------------------------------
# Top level
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalSettings:
    """Everything the approval runtime reads from configuration."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    workflows: tuple[WorkflowDefinition, ...] = ()
    checksum: str = ""
    source: str = ""
