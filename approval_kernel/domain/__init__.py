"""
Pure domain layer.

This module contains immutable value objects with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock interface)
- I/O
"""

from approval_kernel.domain.approval import (
    STATUS_VOCABULARIES,
    ActionResult,
    Actor,
    ApprovableEntity,
    ApprovalAction,
    ApprovalActionKind,
    ApprovalProgress,
    ApprovalStage,
    ReportStatus,
    StatusVocabulary,
    SubjectType,
    TripStatus,
    WorkflowDefinition,
    validate_stages,
    vocabulary_for,
)
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    "STATUS_VOCABULARIES",
    "ActionResult",
    "Actor",
    "ApprovableEntity",
    "ApprovalAction",
    "ApprovalActionKind",
    "ApprovalProgress",
    "ApprovalStage",
    "Clock",
    "DeterministicClock",
    "ReportStatus",
    "StatusVocabulary",
    "SubjectType",
    "SystemClock",
    "TripStatus",
    "WorkflowDefinition",
    "validate_stages",
    "vocabulary_for",
]
