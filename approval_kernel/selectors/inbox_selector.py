"""
Module: approval_kernel.selectors.inbox_selector
Responsibility: Read-side queries over trip requests and reports: the
    "awaiting my approval" inbox, single-entity lookup with progress, and
    filtered listings.
Architecture position: Kernel > Selectors.  Reads models/ and asks the pure
    engine whether each candidate is pending for the user.

Invariants enforced:
    - The inbox never applies its own counting rules; it calls
      ``is_pending_for`` for every candidate.
    - Only entities in an awaiting status are candidates; drafts and
      terminal entities are never pending.
    - Workflows are loaded in one batch per subject type.

Failure modes:
    - EntityNotFoundError from ``get_entity`` / ``get_progress``.
    - An awaiting entity whose workflow is missing is excluded from the
      inbox and logged as ``approval_workflow_missing``; with
      ``strict=True`` the WorkflowNotFoundError is raised instead.
"""

from __future__ import annotations

from sqlalchemy import select

from approval_engines.sequential import describe_progress, is_pending_for
from approval_kernel.domain.approval import (
    ApprovableEntity,
    ApprovalProgress,
    SubjectType,
    vocabulary_for,
)
from approval_kernel.exceptions import EntityNotFoundError, WorkflowNotFoundError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.entity import ApprovableEntityModel
from approval_kernel.models.workflow import load_definitions
from approval_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.inbox")


class PendingApprovalSelector(BaseSelector[ApprovableEntityModel]):
    """Inbox and lookup queries for approvable entities."""

    def pending_for_user(
        self,
        user_id: str,
        subject_type: SubjectType | str | None = None,
        strict: bool = False,
    ) -> list[ApprovableEntity]:
        """Entities whose current stage approver is ``user_id``.

        Args:
            user_id: The approver whose inbox is being built.
            subject_type: Restrict to trips or reports; both when None.
            strict: Raise WorkflowNotFoundError instead of skipping an
                entity whose workflow is missing.
        """
        if subject_type is None:
            subject_types = list(SubjectType)
        else:
            subject_types = [SubjectType(subject_type)]

        pending: list[ApprovableEntity] = []
        for st in subject_types:
            vocab = vocabulary_for(st)
            models = self.session.execute(
                select(ApprovableEntityModel)
                .where(
                    ApprovableEntityModel.subject_type == st.value,
                    ApprovableEntityModel.status.in_(sorted(vocab.awaiting)),
                )
                .order_by(
                    ApprovableEntityModel.created_at,
                    ApprovableEntityModel.entity_id,
                )
            ).scalars().all()
            if not models:
                continue

            workflows = load_definitions(self.session, {m.owner_key for m in models}, st)
            for model in models:
                entity = model.to_dto()
                workflow = workflows.get(entity.owner_key)
                if workflow is None:
                    if strict:
                        raise WorkflowNotFoundError(entity.owner_key, st.value)
                    logger.error(
                        "approval_workflow_missing",
                        extra={
                            "entity_id": entity.entity_id,
                            "owner_key": entity.owner_key,
                            "subject_type": st.value,
                        },
                    )
                    continue
                if is_pending_for(entity, workflow, user_id):
                    pending.append(entity)

        logger.debug(
            "approval_inbox_built",
            extra={"user_id": user_id, "pending_count": len(pending)},
        )
        return pending

    def get_entity(self, entity_id: str) -> ApprovableEntity:
        """Load one entity with its full history."""
        model = self.session.execute(
            select(ApprovableEntityModel).where(
                ApprovableEntityModel.entity_id == entity_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError(entity_id)
        return model.to_dto()

    def get_progress(self, entity_id: str) -> ApprovalProgress:
        """Where the entity stands in its workflow, for detail views."""
        entity = self.get_entity(entity_id)
        workflows = load_definitions(self.session, {entity.owner_key}, entity.subject_type)
        return describe_progress(entity, workflows.get(entity.owner_key))

    def list_entities(
        self,
        subject_type: SubjectType | str | None = None,
        owner_key: str | None = None,
        status: str | None = None,
    ) -> list[ApprovableEntity]:
        """All entities matching the optional filters, oldest first."""
        stmt = select(ApprovableEntityModel)
        if subject_type is not None:
            stmt = stmt.where(
                ApprovableEntityModel.subject_type == SubjectType(subject_type).value,
            )
        if owner_key is not None:
            stmt = stmt.where(ApprovableEntityModel.owner_key == owner_key)
        if status is not None:
            stmt = stmt.where(ApprovableEntityModel.status == status)
        stmt = stmt.order_by(
            ApprovableEntityModel.created_at,
            ApprovableEntityModel.entity_id,
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]
