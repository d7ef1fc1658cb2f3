"""
approval_kernel.services.workflow_store -- Workflow definition persistence.

Responsibility:
    Resolve the approval workflow for a (owner_key, subject_type) pair and
    apply administrative edits to it.  The engine and recorder only ever
    see frozen ``WorkflowDefinition`` DTOs.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and the pure
    authoring helpers in ``approval_engines.authoring``.

Invariants enforced:
    - Workflows are keyed by a stable owner key (the project id), never by
      a display name.
    - Every write validates stage contiguity and bumps ``version``.
    - A stored definition with an empty stage list resolves as-is; it is
      not treated as missing.

Failure modes:
    - WorkflowNotFoundError from ``resolve`` and the authoring operations
      when no definition exists.
    - InvalidWorkflowDefinitionError on a malformed stage list.
    - IncompleteStageError / StageNotFoundError from authoring edits.
    - PersistenceError when the flush fails.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from approval_engines import authoring
from approval_kernel.domain.approval import SubjectType, WorkflowDefinition
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import PersistenceError, WorkflowNotFoundError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.workflow import WorkflowDefinitionModel, load_definitions
from approval_kernel.services.base import BaseService

logger = get_logger("services.workflow_store")


class WorkflowStore(BaseService[WorkflowDefinitionModel]):
    """Reads and edits per-project approval workflows."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # =========================================================================
    # Reads
    # =========================================================================

    def find(
        self,
        owner_key: str,
        subject_type: SubjectType | str,
    ) -> WorkflowDefinition | None:
        """Definition for the owner and subject type, or None."""
        model = self._load_model(owner_key, SubjectType(subject_type))
        return model.to_dto() if model is not None else None

    def resolve(
        self,
        owner_key: str,
        subject_type: SubjectType | str,
    ) -> WorkflowDefinition:
        """Definition for the owner and subject type.

        Raises:
            WorkflowNotFoundError: No definition is stored.
        """
        subject_type = SubjectType(subject_type)
        model = self._load_model(owner_key, subject_type)
        if model is None:
            raise WorkflowNotFoundError(owner_key, subject_type.value)
        return model.to_dto()

    def resolve_many(
        self,
        owner_keys: Iterable[str],
        subject_type: SubjectType | str,
    ) -> dict[str, WorkflowDefinition]:
        """Batch read; the inbox selector shares the same query."""
        return load_definitions(self.session, owner_keys, subject_type)

    # =========================================================================
    # Writes
    # =========================================================================

    def save(
        self,
        definition: WorkflowDefinition,
        actor_id: str | None,
    ) -> WorkflowDefinition:
        """Insert or replace the whole stage list of a definition."""
        stages = authoring.normalize_stages(definition.owner_key, definition.stages)
        subject_type = SubjectType(definition.subject_type)
        now = self._clock.now()

        model = self._load_model(definition.owner_key, subject_type)
        if model is None:
            model = WorkflowDefinitionModel.from_dto(
                WorkflowDefinition(
                    owner_key=definition.owner_key,
                    subject_type=subject_type,
                    stages=stages,
                ),
                actor_id=actor_id,
                at=now,
            )
            self.session.add(model)
        else:
            model.apply_dto(
                WorkflowDefinition(
                    owner_key=definition.owner_key,
                    subject_type=subject_type,
                    stages=stages,
                ),
                actor_id=actor_id,
                at=now,
            )
            model.version = model.version + 1

        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(definition.owner_key, str(exc)) from exc

        logger.info(
            "approval_workflow_saved",
            extra={
                "owner_key": definition.owner_key,
                "subject_type": subject_type.value,
                "stage_count": len(stages),
                "version": model.version,
                "updated_by": actor_id,
            },
        )
        return model.to_dto()

    def add_stage(
        self,
        owner_key: str,
        subject_type: SubjectType | str,
        role_label: str,
        approver_id: str | None,
        actor_id: str | None,
    ) -> WorkflowDefinition:
        """Append a stage; role label and approver are both required."""
        current = self.resolve(owner_key, subject_type)
        return self.save(authoring.add_stage(current, role_label, approver_id), actor_id)

    def remove_stage(
        self,
        owner_key: str,
        subject_type: SubjectType | str,
        sequence_number: int,
        actor_id: str | None,
    ) -> WorkflowDefinition:
        """Remove a stage and renumber the rest from 1."""
        current = self.resolve(owner_key, subject_type)
        return self.save(authoring.remove_stage(current, sequence_number), actor_id)

    def assign_approver(
        self,
        owner_key: str,
        subject_type: SubjectType | str,
        sequence_number: int,
        approver_id: str | None,
        actor_id: str | None,
    ) -> WorkflowDefinition:
        """Set the approver of one stage."""
        current = self.resolve(owner_key, subject_type)
        return self.save(
            authoring.assign_approver(current, sequence_number, approver_id),
            actor_id,
        )

    # =========================================================================
    # Internal
    # =========================================================================

    def _load_model(
        self,
        owner_key: str,
        subject_type: SubjectType,
    ) -> WorkflowDefinitionModel | None:
        return self.session.execute(
            select(WorkflowDefinitionModel).where(
                WorkflowDefinitionModel.owner_key == owner_key,
                WorkflowDefinitionModel.subject_type == subject_type.value,
            )
        ).scalar_one_or_none()
