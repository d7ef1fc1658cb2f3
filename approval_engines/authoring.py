"""
approval_engines.authoring -- Pure workflow-definition editing.

Responsibility:
    The edits an administrator makes on a project's approval settings:
    append a stage, remove a stage, reassign a stage's approver.  Each
    function returns a new ``WorkflowDefinition``; persistence is the
    caller's job (``WorkflowStore``).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Sequence numbers stay contiguous from 1: removing a stage renumbers
      the stages after it.
    - A new stage needs both a role label and an approver.
"""

from __future__ import annotations

from dataclasses import replace

from approval_kernel.domain.approval import (
    ApprovalStage,
    WorkflowDefinition,
    validate_stages,
)
from approval_kernel.exceptions import IncompleteStageError, StageNotFoundError


def add_stage(
    workflow: WorkflowDefinition,
    role_label: str,
    approver_id: str | None,
) -> WorkflowDefinition:
    """Append a stage at the end of the sequence."""
    if not role_label or not role_label.strip():
        raise IncompleteStageError("role label")
    if not approver_id:
        raise IncompleteStageError("approver")

    stage = ApprovalStage(
        sequence_number=len(workflow.stages) + 1,
        role_label=role_label.strip(),
        approver_id=approver_id,
    )
    return replace(workflow, stages=workflow.stages + (stage,))


def remove_stage(workflow: WorkflowDefinition, sequence_number: int) -> WorkflowDefinition:
    """Drop a stage and renumber the remaining ones from 1."""
    if workflow.stage(sequence_number) is None:
        raise StageNotFoundError(workflow.owner_key, sequence_number)

    kept = [s for s in workflow.stages if s.sequence_number != sequence_number]
    renumbered = tuple(
        replace(stage, sequence_number=index)
        for index, stage in enumerate(kept, start=1)
    )
    return replace(workflow, stages=renumbered)


def assign_approver(
    workflow: WorkflowDefinition,
    sequence_number: int,
    approver_id: str | None,
) -> WorkflowDefinition:
    """Set (or clear) the approver of one stage."""
    if workflow.stage(sequence_number) is None:
        raise StageNotFoundError(workflow.owner_key, sequence_number)

    stages = tuple(
        replace(stage, approver_id=approver_id or None)
        if stage.sequence_number == sequence_number else stage
        for stage in workflow.stages
    )
    return replace(workflow, stages=stages)


def normalize_stages(
    owner_key: str,
    stages: list[ApprovalStage] | tuple[ApprovalStage, ...],
) -> tuple[ApprovalStage, ...]:
    """Sort by sequence number and validate contiguity."""
    ordered = tuple(sorted(stages, key=lambda s: s.sequence_number))
    validate_stages(owner_key, ordered)
    return ordered
