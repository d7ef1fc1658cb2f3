"""
Module: approval_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    approval engines.  This is the canonical import surface for the kernel
    services and selectors.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain, exceptions and logging.
    MUST NOT import approval_kernel services, selectors or models.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Timestamps are
      passed in by the caller.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from approval_engines import is_pending_for, apply_action
    from approval_engines.authoring import add_stage, remove_stage
"""

from approval_engines.authoring import (
    add_stage,
    assign_approver,
    normalize_stages,
    remove_stage,
)
from approval_engines.sequential import (
    apply_action,
    apply_submission,
    approval_chain,
    authorize_actor,
    completed_approval_count,
    current_stage,
    derive_status,
    describe_progress,
    ensure_workflow_usable,
    is_pending_for,
    replay_status,
)

__all__ = [
    # sequential
    "apply_action",
    "apply_submission",
    "approval_chain",
    "authorize_actor",
    "completed_approval_count",
    "current_stage",
    "derive_status",
    "describe_progress",
    "ensure_workflow_usable",
    "is_pending_for",
    "replay_status",
    # authoring
    "add_stage",
    "assign_approver",
    "normalize_stages",
    "remove_stage",
]
