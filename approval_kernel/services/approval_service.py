"""
approval_kernel.services.approval_service -- Caller-facing approval API.

Responsibility:
    The single entry point list pages, detail pages and the CLI use for
    trip requests and inspection reports: create, submit, approve, reject,
    and "what is awaiting me".  Mutations are delegated to
    ``ApprovalRecorder``; reads to ``PendingApprovalSelector``.

Architecture position:
    Kernel > Services.  Composes the recorder, the workflow store and the
    inbox selector over one caller-owned session.

Invariants enforced:
    - No surface computes approval status itself; everything funnels into
      the recorder and, through it, the pure engine.
    - Each mutation runs with ``actor_id`` and ``entity_id`` bound into the
      log context.
    - The service never commits.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from approval_kernel.domain.approval import (
    Actor,
    ApprovableEntity,
    ApprovalActionKind,
    ApprovalProgress,
    SubjectType,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.logging_config import LogContext
from approval_kernel.selectors.inbox_selector import PendingApprovalSelector
from approval_kernel.services.approval_recorder import ApprovalRecorder
from approval_kernel.services.workflow_store import WorkflowStore

REPORT_CREATED_COMMENT = "Report created."
SUBMITTED_COMMENT = "Submitted for approval"


class ApprovalService:
    """Approval workflow operations over one session."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self.workflows = WorkflowStore(session, self._clock)
        self._recorder = ApprovalRecorder(session, self.workflows, self._clock)
        self._selector = PendingApprovalSelector(session)

    # -- approver actions ----------------------------------------------------

    def approve(
        self,
        entity_id: str,
        actor: Actor,
        comments: str | None = None,
    ) -> ApprovableEntity:
        with LogContext.bind(actor_id=actor.actor_id, entity_id=entity_id):
            return self._recorder.record_action(
                entity_id, ApprovalActionKind.APPROVE, actor, comments,
            )

    def reject(
        self,
        entity_id: str,
        actor: Actor,
        comments: str | None = None,
    ) -> ApprovableEntity:
        with LogContext.bind(actor_id=actor.actor_id, entity_id=entity_id):
            return self._recorder.record_action(
                entity_id, ApprovalActionKind.REJECT, actor, comments,
            )

    # -- requester actions ---------------------------------------------------

    def create_trip_request(
        self,
        trip_id: str,
        project_id: str,
        requester: Actor,
        comments: str | None = None,
        draft: bool = True,
    ) -> ApprovableEntity:
        """Create a business-trip request, as a draft unless told otherwise."""
        with LogContext.bind(
            actor_id=requester.actor_id, entity_id=trip_id, owner_key=project_id,
        ):
            return self._recorder.create_entity(
                trip_id, SubjectType.TRIP, project_id, requester, comments, draft=draft,
            )

    def create_report(
        self,
        report_id: str,
        project_id: str,
        inspector: Actor,
        comments: str | None = REPORT_CREATED_COMMENT,
        draft: bool = False,
    ) -> ApprovableEntity:
        """Create an inspection report, submitted for review unless a draft."""
        with LogContext.bind(
            actor_id=inspector.actor_id, entity_id=report_id, owner_key=project_id,
        ):
            return self._recorder.create_entity(
                report_id, SubjectType.REPORT, project_id, inspector, comments, draft=draft,
            )

    def submit(
        self,
        entity_id: str,
        actor: Actor,
        comments: str | None = SUBMITTED_COMMENT,
    ) -> ApprovableEntity:
        with LogContext.bind(actor_id=actor.actor_id, entity_id=entity_id):
            return self._recorder.submit(entity_id, actor, comments)

    # -- reads ---------------------------------------------------------------

    def pending_for_user(
        self,
        user_id: str,
        subject_type: SubjectType | str | None = None,
        strict: bool = False,
    ) -> list[ApprovableEntity]:
        """Everything awaiting ``user_id``'s decision."""
        return self._selector.pending_for_user(user_id, subject_type, strict=strict)

    def get_entity(self, entity_id: str) -> ApprovableEntity:
        return self._selector.get_entity(entity_id)

    def get_progress(self, entity_id: str) -> ApprovalProgress:
        return self._selector.get_progress(entity_id)
