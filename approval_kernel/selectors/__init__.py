"""Selectors for the approval kernel (read side)."""

from approval_kernel.selectors.inbox_selector import PendingApprovalSelector

__all__ = [
    "PendingApprovalSelector",
]
