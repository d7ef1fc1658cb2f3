"""ORM models for the approval kernel."""

from approval_kernel.models.entity import ApprovableEntityModel, ApprovalActionModel
from approval_kernel.models.workflow import WorkflowDefinitionModel

__all__ = [
    "ApprovableEntityModel",
    "ApprovalActionModel",
    "WorkflowDefinitionModel",
]
