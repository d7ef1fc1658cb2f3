"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the sequential approval engine.  Defines the
per-subject-type status vocabularies, workflow definitions and stages,
approval history entries, approvable entities, and engine results.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Stage ordering -- ``validate_stages`` requires sequence numbers that are
  ascending, contiguous from 1 and unique, with a non-empty role label.
* One vocabulary table -- trips and reports share one engine; everything
  that differs between them lives in ``STATUS_VOCABULARIES``.
* History is append-only -- ``ApprovableEntity.approval_history`` is a
  tuple; the first entry is the creation/submission record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from approval_kernel.exceptions import InvalidWorkflowDefinitionError


# =========================================================================
# Subject types and status vocabularies
# =========================================================================


class SubjectType(str, Enum):
    """Kinds of records that walk through an approval workflow."""

    TRIP = "trip"
    REPORT = "report"


class TripStatus(str, Enum):
    """Business-trip request statuses."""

    DRAFT = "Draft"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ReportStatus(str, Enum):
    """Inspection report statuses."""

    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    REVIEWED = "Reviewed"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ApprovalActionKind(str, Enum):
    """What a history entry records.

    Approvers only ever ``approve`` or ``reject``; ``create`` and ``submit``
    are written by the requester.
    """

    CREATE = "create"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class StatusVocabulary:
    """Status labels one subject type uses at each point of the workflow.

    ``awaiting`` are the non-terminal statuses in which a stage approver is
    expected to act.  ``completed_stage`` are the history statuses that mark
    a finished (non-rejecting) stage.
    """

    subject_type: SubjectType
    draft: str
    submitted: str
    intermediate: str
    approved: str
    rejected: str
    awaiting: frozenset[str]
    completed_stage: frozenset[str]

    @property
    def terminal(self) -> frozenset[str]:
        return frozenset({self.approved, self.rejected})

    @property
    def all_statuses(self) -> frozenset[str]:
        return frozenset(
            {self.draft, self.submitted, self.intermediate, self.approved, self.rejected}
        )


STATUS_VOCABULARIES: dict[SubjectType, StatusVocabulary] = {
    SubjectType.TRIP: StatusVocabulary(
        subject_type=SubjectType.TRIP,
        draft=TripStatus.DRAFT.value,
        submitted=TripStatus.PENDING.value,
        intermediate=TripStatus.PENDING.value,
        approved=TripStatus.APPROVED.value,
        rejected=TripStatus.REJECTED.value,
        awaiting=frozenset({TripStatus.PENDING.value}),
        completed_stage=frozenset({TripStatus.APPROVED.value}),
    ),
    SubjectType.REPORT: StatusVocabulary(
        subject_type=SubjectType.REPORT,
        draft=ReportStatus.DRAFT.value,
        submitted=ReportStatus.SUBMITTED.value,
        intermediate=ReportStatus.REVIEWED.value,
        approved=ReportStatus.APPROVED.value,
        rejected=ReportStatus.REJECTED.value,
        awaiting=frozenset({ReportStatus.SUBMITTED.value, ReportStatus.REVIEWED.value}),
        completed_stage=frozenset({ReportStatus.REVIEWED.value, ReportStatus.APPROVED.value}),
    ),
}


def vocabulary_for(subject_type: SubjectType | str) -> StatusVocabulary:
    """Look up the status vocabulary for a subject type (enum or raw value)."""
    return STATUS_VOCABULARIES[SubjectType(subject_type)]


# =========================================================================
# Workflow definitions
# =========================================================================


@dataclass(frozen=True)
class ApprovalStage:
    """One position in an ordered approval sequence.

    ``approver_id`` may be None while an administrator is still authoring
    the workflow; such a stage cannot be acted on.
    """

    sequence_number: int
    role_label: str
    approver_id: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "stage": self.sequence_number,
            "roleName": self.role_label,
            "approverId": self.approver_id,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> ApprovalStage:
        return cls(
            sequence_number=int(data["stage"]),
            role_label=data["roleName"],
            approver_id=data.get("approverId") or None,
        )


@dataclass(frozen=True)
class WorkflowDefinition:
    """Ordered approval stages for one owner (project) and subject type."""

    owner_key: str
    subject_type: SubjectType
    stages: tuple[ApprovalStage, ...] = ()
    version: int = 1

    @property
    def is_finalized(self) -> bool:
        """True when every stage has an approver assigned."""
        return all(stage.approver_id for stage in self.stages)

    def first_unassigned_stage(self) -> ApprovalStage | None:
        for stage in self.stages:
            if not stage.approver_id:
                return stage
        return None

    def stage(self, sequence_number: int) -> ApprovalStage | None:
        for stage in self.stages:
            if stage.sequence_number == sequence_number:
                return stage
        return None


def validate_stages(owner_key: str, stages: tuple[ApprovalStage, ...]) -> None:
    """Check stage ordering rules; raise InvalidWorkflowDefinitionError."""
    for expected, stage in enumerate(stages, start=1):
        if stage.sequence_number != expected:
            raise InvalidWorkflowDefinitionError(
                owner_key,
                f"stage at position {expected} has sequence number "
                f"{stage.sequence_number}; stages must be contiguous from 1",
            )
        if not stage.role_label or not stage.role_label.strip():
            raise InvalidWorkflowDefinitionError(
                owner_key, f"stage {expected} has an empty role label",
            )


# =========================================================================
# Actors, history entries, entities
# =========================================================================


@dataclass(frozen=True)
class Actor:
    """The user performing an action, as shown in the history trail."""

    actor_id: str | None
    name: str
    role_label: str = "Approver"


@dataclass(frozen=True)
class ApprovalAction:
    """One entry in an entity's approval history. Immutable.

    ``decision`` is None for entries imported from documents that predate
    it; for those only ``result_status`` is known.
    """

    actor_id: str | None
    actor_name: str
    actor_role: str
    result_status: str
    timestamp: datetime
    comments: str | None = None
    decision: ApprovalActionKind | None = None

    def completes_stage(self, vocabulary: StatusVocabulary) -> bool:
        """True if this entry records a finished (non-rejecting) stage.

        Trips stay ``Pending`` after a non-final approval, so the status
        alone cannot tell a stage approval from a resubmission; the
        recorded decision can.
        """
        if self.decision is not None:
            return self.decision == ApprovalActionKind.APPROVE
        return self.result_status in vocabulary.completed_stage

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "actorName": self.actor_name,
            "actorRole": self.actor_role,
            "status": self.result_status,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.actor_id is not None:
            doc["actorId"] = self.actor_id
        if self.comments is not None:
            doc["comments"] = self.comments
        if self.decision is not None:
            doc["decision"] = self.decision.value
        return doc

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> ApprovalAction:
        timestamp = datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))
        actor_id = data.get("actorId")
        return cls(
            actor_id=str(actor_id) if actor_id is not None else None,
            actor_name=data["actorName"],
            actor_role=data.get("actorRole", ""),
            result_status=data["status"],
            timestamp=timestamp,
            comments=data.get("comments"),
            decision=ApprovalActionKind(data["decision"]) if data.get("decision") else None,
        )


@dataclass(frozen=True)
class ApprovableEntity:
    """Snapshot of a trip request or inspection report and its history.

    ``status`` is denormalized for querying; it always equals the status
    implied by ``approval_history``.
    """

    entity_id: str
    subject_type: SubjectType
    owner_key: str
    status: str
    approval_history: tuple[ApprovalAction, ...] = ()
    version: int = 1

    @property
    def vocabulary(self) -> StatusVocabulary:
        return vocabulary_for(self.subject_type)

    @property
    def submitter(self) -> ApprovalAction | None:
        return self.approval_history[0] if self.approval_history else None

    @property
    def is_terminal(self) -> bool:
        return self.status in self.vocabulary.terminal

    def to_document(self) -> dict[str, Any]:
        """Render the persisted document shape (one record per entity)."""
        return {
            "id": self.entity_id,
            "subjectType": self.subject_type.value,
            "ownerKey": self.owner_key,
            "status": self.status,
            "approvalHistory": [a.to_document() for a in self.approval_history],
        }


# =========================================================================
# Engine results
# =========================================================================


@dataclass(frozen=True)
class ActionResult:
    """Outcome of applying an approve/reject/submit action."""

    new_status: str
    new_history_entry: ApprovalAction
    is_final: bool = False
    completed_stages: int = 0


@dataclass(frozen=True)
class ApprovalProgress:
    """Where an entity stands in its workflow, for detail views."""

    entity_id: str
    status: str
    completed_stages: int
    total_stages: int
    current_stage: ApprovalStage | None = None
    is_terminal: bool = False
    chain: tuple[ApprovalAction, ...] = field(default_factory=tuple)
