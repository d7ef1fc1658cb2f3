"""
approval_engines.sequential -- Pure sequential approval engine.

Responsibility:
    Decide, for a trip request or inspection report, who must act next,
    what status an approve/reject/submit action produces, and whether the
    workflow is complete.  Every list, detail and action surface calls
    these functions; none of them re-implement the counting rules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types, exceptions and logging.

Invariants enforced:
    - Completed-stage count is recomputed from history on every call.  A
      stored stage index is never trusted, so editing a workflow while a
      request is in flight changes who is asked next.
    - Reject short-circuits: it always yields the terminal rejected status.
    - Approve is final when ``completed + 1 >= len(stages)``; with no stages
      configured the first approve is final.
    - Purity: no clock access, no database.  Timestamps are parameters.

Failure modes:
    - WorkflowNotFoundError when an awaiting entity has no workflow.
    - ApprovalAlreadyResolvedError on terminal entities.
    - InvalidApprovalTransitionError on draft entities (or submitting a
      non-draft one).
    - ActorNotAuthorizedError from ``authorize_actor``.
    - A completed count at or beyond the stage count is logged as
      ``approval_stage_index_out_of_range`` and treated as "not pending";
      it never raises during reads.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from approval_kernel.domain.approval import (
    ActionResult,
    Actor,
    ApprovableEntity,
    ApprovalAction,
    ApprovalActionKind,
    ApprovalProgress,
    ApprovalStage,
    SubjectType,
    WorkflowDefinition,
    vocabulary_for,
)
from approval_kernel.exceptions import (
    ActorNotAuthorizedError,
    ApprovalAlreadyResolvedError,
    IncompleteWorkflowError,
    InvalidApprovalTransitionError,
    WorkflowNotConfiguredError,
    WorkflowNotFoundError,
)
from approval_kernel.logging_config import get_logger

logger = get_logger("engines.sequential")


# =========================================================================
# Counting and lookup
# =========================================================================


def completed_approval_count(entity: ApprovableEntity) -> int:
    """Number of finished stages recorded in the entity's history.

    The first history entry is the creation/submission record and never
    counts, whatever its status.
    """
    vocab = entity.vocabulary
    return sum(
        1 for action in entity.approval_history[1:]
        if action.completes_stage(vocab)
    )


def current_stage(
    entity: ApprovableEntity,
    workflow: WorkflowDefinition | None,
) -> ApprovalStage | None:
    """The stage whose approver must act next, or None.

    None when the entity is not awaiting approval, when no stages are
    configured, or when history already holds at least as many completed
    stages as the workflow defines.
    """
    if entity.status not in entity.vocabulary.awaiting:
        return None
    if workflow is None:
        raise WorkflowNotFoundError(entity.owner_key, entity.subject_type.value)
    if not workflow.stages:
        return None

    index = completed_approval_count(entity)
    if index >= len(workflow.stages):
        logger.warning(
            "approval_stage_index_out_of_range",
            extra={
                "entity_id": entity.entity_id,
                "owner_key": entity.owner_key,
                "completed_stages": index,
                "stage_count": len(workflow.stages),
            },
        )
        return None
    return workflow.stages[index]


def is_pending_for(
    entity: ApprovableEntity,
    workflow: WorkflowDefinition | None,
    user_id: str,
) -> bool:
    """True iff the entity is awaiting approval and ``user_id`` is up next.

    Always False for draft and terminal statuses, whatever the user.
    """
    stage = current_stage(entity, workflow)
    if stage is None or not stage.approver_id:
        return False
    return stage.approver_id == user_id


def authorize_actor(
    entity: ApprovableEntity,
    workflow: WorkflowDefinition | None,
    actor_id: str | None,
) -> None:
    """Raise ActorNotAuthorizedError unless ``actor_id`` may act now.

    A workflow with no stages names no approver, so any actor may close
    the request.
    """
    if workflow is not None and not workflow.stages:
        return
    stage = current_stage(entity, workflow)
    if actor_id is not None and stage is not None and stage.approver_id == actor_id:
        return
    raise ActorNotAuthorizedError(
        entity.entity_id,
        actor_id,
        stage.approver_id if stage is not None else None,
    )


# =========================================================================
# Transitions
# =========================================================================


def apply_action(
    entity: ApprovableEntity,
    workflow: WorkflowDefinition | None,
    action: ApprovalActionKind | str,
    actor: Actor,
    comments: str | None,
    at: datetime,
) -> ActionResult:
    """Compute the status and history entry produced by approve/reject.

    Does not check who the actor is; callers pair this with
    ``authorize_actor``.
    """
    action = ApprovalActionKind(action)
    if action not in (ApprovalActionKind.APPROVE, ApprovalActionKind.REJECT):
        raise ValueError(f"Approvers can only approve or reject, not {action.value}")
    vocab = entity.vocabulary

    if entity.status in vocab.terminal:
        raise ApprovalAlreadyResolvedError(entity.entity_id, entity.status)
    if entity.status not in vocab.awaiting:
        raise InvalidApprovalTransitionError(
            entity.entity_id, entity.status, action.value,
        )
    if workflow is None:
        raise WorkflowNotFoundError(entity.owner_key, entity.subject_type.value)

    completed = completed_approval_count(entity)

    if action == ApprovalActionKind.REJECT:
        new_status = vocab.rejected
        is_final = True
    elif not workflow.stages:
        # No stages configured: nothing left to wait for.
        new_status = vocab.approved
        is_final = True
    else:
        is_final = completed + 1 >= len(workflow.stages)
        new_status = vocab.approved if is_final else vocab.intermediate
        completed += 1

    entry = ApprovalAction(
        actor_id=actor.actor_id,
        actor_name=actor.name,
        actor_role=actor.role_label,
        result_status=new_status,
        comments=comments,
        timestamp=at,
        decision=action,
    )
    return ActionResult(
        new_status=new_status,
        new_history_entry=entry,
        is_final=is_final,
        completed_stages=completed,
    )


def apply_submission(
    entity: ApprovableEntity,
    workflow: WorkflowDefinition | None,
    actor: Actor,
    comments: str | None,
    at: datetime,
) -> ActionResult:
    """Move a draft into the first approval stage.

    The workflow must exist, define at least one stage, and have an
    approver on every stage.
    """
    vocab = entity.vocabulary
    if entity.status != vocab.draft:
        raise InvalidApprovalTransitionError(entity.entity_id, entity.status, "submit")
    ensure_workflow_usable(entity.owner_key, entity.subject_type, workflow)

    entry = ApprovalAction(
        actor_id=actor.actor_id,
        actor_name=actor.name,
        actor_role=actor.role_label,
        result_status=vocab.submitted,
        comments=comments,
        timestamp=at,
        decision=ApprovalActionKind.SUBMIT,
    )
    return ActionResult(new_status=vocab.submitted, new_history_entry=entry)


def ensure_workflow_usable(
    owner_key: str,
    subject_type: SubjectType,
    workflow: WorkflowDefinition | None,
) -> WorkflowDefinition:
    """Require a workflow with at least one stage and no unassigned approver."""
    if workflow is None:
        raise WorkflowNotFoundError(owner_key, SubjectType(subject_type).value)
    if not workflow.stages:
        raise WorkflowNotConfiguredError(owner_key, SubjectType(subject_type).value)
    unassigned = workflow.first_unassigned_stage()
    if unassigned is not None:
        raise IncompleteWorkflowError(owner_key, unassigned.sequence_number)
    return workflow


# =========================================================================
# Derivation and replay
# =========================================================================


def derive_status(history: Iterable[ApprovalAction]) -> str | None:
    """Status implied by a history: the result of its last entry."""
    last = None
    for last in history:
        pass
    return last.result_status if last is not None else None


def replay_status(
    subject_type: SubjectType | str,
    history: tuple[ApprovalAction, ...],
    stages: tuple[ApprovalStage, ...],
) -> str | None:
    """Recompute the final status from scratch by re-running every action.

    The first entry fixes the starting status (draft or submitted).  Each
    later entry is interpreted as a submit, reject or approve and the
    engine's rules are applied against ``stages``.  Returns None for an
    empty history.
    """
    vocab = vocabulary_for(subject_type)
    if not history:
        return None

    status = history[0].result_status
    completed = 0
    for action in history[1:]:
        if action.decision == ApprovalActionKind.REJECT or action.result_status == vocab.rejected:
            status = vocab.rejected
        elif action.completes_stage(vocab):
            completed += 1
            if not stages or completed >= len(stages):
                status = vocab.approved
            else:
                status = vocab.intermediate
        elif status == vocab.draft and action.result_status == vocab.submitted:
            status = vocab.submitted
    return status


def approval_chain(entity: ApprovableEntity) -> tuple[ApprovalAction, ...]:
    """The submission record plus every completed-stage sign-off, in order."""
    submitter = entity.submitter
    if submitter is None:
        return ()
    vocab = entity.vocabulary
    signoffs = tuple(
        a for a in entity.approval_history[1:] if a.completes_stage(vocab)
    )
    return (submitter,) + signoffs


def describe_progress(
    entity: ApprovableEntity,
    workflow: WorkflowDefinition | None,
) -> ApprovalProgress:
    """Summarize progress for a detail view.  Never raises on missing workflow."""
    stage = None
    if workflow is not None:
        stage = current_stage(entity, workflow)
    return ApprovalProgress(
        entity_id=entity.entity_id,
        status=entity.status,
        completed_stages=completed_approval_count(entity),
        total_stages=len(workflow.stages) if workflow is not None else 0,
        current_stage=stage,
        is_terminal=entity.is_terminal,
        chain=approval_chain(entity),
    )
