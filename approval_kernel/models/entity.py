"""
Module: approval_kernel.models.entity
Responsibility: ORM persistence for approvable entities (trip requests,
    inspection reports) and their append-only approval history.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    - History rows are append-only: ORM listeners reject UPDATE and DELETE
      of ``ApprovalActionModel``.
    - UNIQUE(entity_id, sequence) -- one history row per position.
    - ``version`` is the mapper's version_id_col: every UPDATE of an entity
      carries ``WHERE version = <read version>`` and fails with StaleDataError
      when another writer got there first.  ``history_length`` changes on
      every recorded action, so an UPDATE (and its version check) is emitted
      even when the status label itself does not change.
    - Status values are limited by a check constraint to the union of the
      trip and report vocabularies.

Failure modes:
    - IntegrityError on duplicate entity_id or duplicate history position.
    - StaleDataError on a concurrent update (mapped to
      ConcurrentModificationError by the recorder).
    - ImmutabilityViolationError on history UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base
from approval_kernel.domain.approval import (
    STATUS_VOCABULARIES,
    ApprovableEntity,
    ApprovalAction,
    ApprovalActionKind,
    SubjectType,
)
from approval_kernel.exceptions import ImmutabilityViolationError

_ALL_STATUSES = sorted(
    {s for vocab in STATUS_VOCABULARIES.values() for s in vocab.all_statuses}
)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ApprovableEntityModel(Base):
    """Persistent trip request / report approval state.

    Contract:
        Only ApprovalRecorder writes ``status``, ``history_length`` and
        ``history``.
    """

    __tablename__ = "approvable_entities"

    __table_args__ = (
        CheckConstraint(
            "subject_type IN ('trip', 'report')",
            name="ck_approvable_entities_subject_type",
        ),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in _ALL_STATUSES) + ")",
            name="ck_approvable_entities_status",
        ),
        # Inbox queries filter by subject type and awaiting status
        Index("ix_approvable_entities_subject_status", "subject_type", "status"),
        Index("ix_approvable_entities_owner", "owner_key"),
    )

    entity_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    subject_type: Mapped[str] = mapped_column(String(20), nullable=False)
    owner_key: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    history_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    history: Mapped[list["ApprovalActionModel"]] = relationship(
        "ApprovalActionModel",
        back_populates="entity",
        primaryjoin="ApprovableEntityModel.entity_id == ApprovalActionModel.entity_id",
        order_by="ApprovalActionModel.sequence",
        lazy="selectin",
        cascade="save-update, merge",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<ApprovableEntity {self.entity_id} {self.subject_type} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> ApprovableEntity:
        """Convert ORM model to frozen domain DTO."""
        return ApprovableEntity(
            entity_id=self.entity_id,
            subject_type=SubjectType(self.subject_type),
            owner_key=self.owner_key,
            status=self.status,
            approval_history=tuple(a.to_dto() for a in self.history),
            version=self.version,
        )


class ApprovalActionModel(Base):
    """Persistent approval history entry. Append-only.

    Contract:
        History rows are immutable once created -- no UPDATE, no DELETE.
    """

    __tablename__ = "approval_actions"

    __table_args__ = (
        UniqueConstraint(
            "entity_id", "sequence",
            name="uq_approval_actions_entity_sequence",
        ),
        Index("ix_approval_actions_entity_id", "entity_id"),
    )

    entity_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("approvable_entities.entity_id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    actor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    decision: Mapped[str | None] = mapped_column(String(20), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    entity: Mapped["ApprovableEntityModel"] = relationship(
        "ApprovableEntityModel",
        back_populates="history",
        foreign_keys=[entity_id],
        primaryjoin="ApprovalActionModel.entity_id == ApprovableEntityModel.entity_id",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalAction {self.entity_id}#{self.sequence} "
            f"{self.actor_name} -> {self.status}>"
        )

    def to_dto(self) -> ApprovalAction:
        """Convert ORM model to frozen domain DTO."""
        return ApprovalAction(
            actor_id=self.actor_id,
            actor_name=self.actor_name,
            actor_role=self.actor_role,
            result_status=self.status,
            timestamp=_as_utc(self.timestamp),
            comments=self.comments,
            decision=ApprovalActionKind(self.decision) if self.decision else None,
        )

    @classmethod
    def from_dto(
        cls,
        entity_id: str,
        sequence: int,
        dto: ApprovalAction,
    ) -> ApprovalActionModel:
        """Create ORM model from domain DTO."""
        return cls(
            entity_id=entity_id,
            sequence=sequence,
            actor_id=dto.actor_id,
            actor_name=dto.actor_name,
            actor_role=dto.actor_role,
            status=dto.result_status,
            decision=dto.decision.value if dto.decision is not None else None,
            comments=dto.comments,
            timestamp=dto.timestamp,
        )


# =============================================================================
# ORM-Level Immutability for History (Append-Only)
# =============================================================================


@event.listens_for(ApprovalActionModel, "before_update")
def prevent_action_update(mapper, connection, target):
    """Prevent updates to approval history entries."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=f"{target.entity_id}#{target.sequence}",
        reason="Approval history is append-only -- cannot modify",
    )


@event.listens_for(ApprovalActionModel, "before_delete")
def prevent_action_delete(mapper, connection, target):
    """Prevent deletion of approval history entries."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAction",
        entity_id=f"{target.entity_id}#{target.sequence}",
        reason="Approval history is append-only -- cannot delete",
    )
