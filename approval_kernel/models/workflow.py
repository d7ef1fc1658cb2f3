"""
Module: approval_kernel.models.workflow
Responsibility: ORM persistence for approval workflow definitions.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    - One definition per (owner_key, subject_type) -- unique constraint.
    - Stages are stored as one ordered JSON array of
      ``{stage, roleName, approverId}`` objects, so a definition is always
      written as a whole; there is no partially-updated stage list.
    - Contiguity of stage numbers is validated by the WorkflowStore before
      every write.

Failure modes:
    - IntegrityError on a second definition for the same owner/subject type.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, String, UniqueConstraint, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from approval_kernel.db.base import Base
from approval_kernel.domain.approval import (
    ApprovalStage,
    SubjectType,
    WorkflowDefinition,
)


class WorkflowDefinitionModel(Base):
    """Persistent approval workflow for one project and subject type."""

    __tablename__ = "approval_workflows"

    __table_args__ = (
        UniqueConstraint(
            "owner_key", "subject_type",
            name="uq_approval_workflows_owner_subject",
        ),
        CheckConstraint(
            "subject_type IN ('trip', 'report')",
            name="ck_approval_workflows_subject_type",
        ),
    )

    owner_key: Mapped[str] = mapped_column(String(100), nullable=False)
    subject_type: Mapped[str] = mapped_column(String(20), nullable=False)
    stages: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowDefinition {self.owner_key}/{self.subject_type} "
            f"stages={len(self.stages or [])} v{self.version}>"
        )

    def to_dto(self) -> WorkflowDefinition:
        """Convert ORM model to frozen domain DTO."""
        stages = tuple(
            sorted(
                (ApprovalStage.from_document(s) for s in self.stages or []),
                key=lambda s: s.sequence_number,
            )
        )
        return WorkflowDefinition(
            owner_key=self.owner_key,
            subject_type=SubjectType(self.subject_type),
            stages=stages,
            version=self.version,
        )

    def apply_dto(self, dto: WorkflowDefinition, actor_id: str | None, at: datetime) -> None:
        """Replace the stage list from a DTO; the JSON column is reassigned whole."""
        self.stages = [s.to_document() for s in dto.stages]
        self.updated_by = actor_id
        self.updated_at = at

    @classmethod
    def from_dto(
        cls,
        dto: WorkflowDefinition,
        actor_id: str | None,
        at: datetime,
    ) -> WorkflowDefinitionModel:
        """Create ORM model from domain DTO."""
        return cls(
            owner_key=dto.owner_key,
            subject_type=dto.subject_type.value,
            stages=[s.to_document() for s in dto.stages],
            version=1,
            updated_by=actor_id,
            updated_at=at,
        )


def load_definitions(
    session: Session,
    owner_keys: Iterable[str],
    subject_type: SubjectType | str,
) -> dict[str, WorkflowDefinition]:
    """Definitions for several owners in one query, keyed by owner key.

    Owners without a stored definition are absent from the result.
    """
    keys = set(owner_keys)
    if not keys:
        return {}
    rows = session.execute(
        select(WorkflowDefinitionModel).where(
            WorkflowDefinitionModel.owner_key.in_(keys),
            WorkflowDefinitionModel.subject_type == SubjectType(subject_type).value,
        )
    ).scalars().all()
    return {row.owner_key: row.to_dto() for row in rows}
