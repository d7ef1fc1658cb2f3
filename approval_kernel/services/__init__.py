"""Services for the approval kernel (write side)."""

from approval_kernel.services.approval_recorder import ApprovalRecorder
from approval_kernel.services.approval_service import ApprovalService
from approval_kernel.services.workflow_store import WorkflowStore

__all__ = [
    "ApprovalRecorder",
    "ApprovalService",
    "WorkflowStore",
]
