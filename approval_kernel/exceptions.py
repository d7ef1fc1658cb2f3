"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval screens must tell a user precisely why an action failed ("you are
not the approver for this stage" is a different message from "somebody else
approved this a second ago").  Parsing message strings for that is fragile,
so every error here has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        service.approve(entity_id, actor, comments)
    except ActorNotAuthorizedError as e:
        notify(f"{e.actor_id} cannot act on {e.entity_id}")
    except ConcurrentModificationError:
        notify("The request changed while you were reviewing it. Reload.")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- WorkflowError
    |   +-- WorkflowNotFoundError
    |   +-- WorkflowNotConfiguredError
    |   +-- InvalidWorkflowDefinitionError
    |   +-- IncompleteWorkflowError
    |   +-- IncompleteStageError
    |   +-- StageNotFoundError
    |
    +-- ApprovalError
    |   +-- EntityNotFoundError
    |   +-- DuplicateEntityError
    |   +-- ActorNotAuthorizedError
    |   +-- ApprovalAlreadyResolvedError
    |   +-- InvalidApprovalTransitionError
    |   +-- StatusDriftError
    |
    +-- PersistenceError
    |   +-- ConcurrentModificationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|-----------------------------------------
Workflow     | WORKFLOW_NOT_FOUND           | No definition for owner/subject type
             | WORKFLOW_NOT_CONFIGURED      | Definition has no stages at submission
             | INVALID_WORKFLOW_DEFINITION  | Non-contiguous/duplicate stage numbers
             | INCOMPLETE_WORKFLOW          | A stage has no approver assigned
             | INCOMPLETE_STAGE             | New stage missing role label/approver
             | STAGE_NOT_FOUND              | Sequence number not in definition
-------------|------------------------------|-----------------------------------------
Approval     | ENTITY_NOT_FOUND             | Trip/report ID doesn't exist
             | DUPLICATE_ENTITY             | Trip/report ID already exists
             | ACTOR_NOT_AUTHORIZED         | Actor is not the current stage approver
             | APPROVAL_ALREADY_RESOLVED    | Entity is Approved/Rejected
             | INVALID_APPROVAL_TRANSITION  | Action not valid from current status
             | STATUS_DRIFT                 | Stored status disagrees with history
-------------|------------------------------|-----------------------------------------
Persistence  | PERSISTENCE_FAILURE          | Database write failed
             | CONCURRENT_MODIFICATION      | Entity version changed underneath us
-------------|------------------------------|-----------------------------------------
Immutability | IMMUTABILITY_VIOLATION       | Modifying/deleting a history entry

Nothing in the kernel retries automatically.  PersistenceError is always
propagated to the caller, who decides whether to reload and retry.
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Workflow-definition exceptions


class WorkflowError(ApprovalKernelError):
    """Base exception for workflow-definition errors."""

    code: str = "WORKFLOW_ERROR"


class WorkflowNotFoundError(WorkflowError):
    """No workflow definition is configured for the owner and subject type."""

    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, owner_key: str, subject_type: str):
        self.owner_key = owner_key
        self.subject_type = subject_type
        super().__init__(
            f"No {subject_type} approval workflow configured for owner {owner_key}"
        )


class WorkflowNotConfiguredError(WorkflowError):
    """The workflow exists but defines no stages, so nothing can be submitted."""

    code: str = "WORKFLOW_NOT_CONFIGURED"

    def __init__(self, owner_key: str, subject_type: str):
        self.owner_key = owner_key
        self.subject_type = subject_type
        super().__init__(
            f"The {subject_type} approval workflow for owner {owner_key} "
            "has no stages"
        )


class InvalidWorkflowDefinitionError(WorkflowError):
    """Stage list violates ordering/contiguity rules."""

    code: str = "INVALID_WORKFLOW_DEFINITION"

    def __init__(self, owner_key: str, reason: str):
        self.owner_key = owner_key
        self.reason = reason
        super().__init__(f"Invalid workflow definition for {owner_key}: {reason}")


class IncompleteWorkflowError(WorkflowError):
    """A stage is still missing its approver and cannot be used."""

    code: str = "INCOMPLETE_WORKFLOW"

    def __init__(self, owner_key: str, sequence_number: int):
        self.owner_key = owner_key
        self.sequence_number = sequence_number
        super().__init__(
            f"Stage {sequence_number} of workflow {owner_key} has no approver"
        )


class IncompleteStageError(WorkflowError):
    """A stage being added lacks a role label or an approver."""

    code: str = "INCOMPLETE_STAGE"

    def __init__(self, missing: str):
        self.missing = missing
        super().__init__(f"Cannot add stage: {missing} is required")


class StageNotFoundError(WorkflowError):
    """Sequence number does not exist in the workflow."""

    code: str = "STAGE_NOT_FOUND"

    def __init__(self, owner_key: str, sequence_number: int):
        self.owner_key = owner_key
        self.sequence_number = sequence_number
        super().__init__(f"Workflow {owner_key} has no stage {sequence_number}")


# Approval exceptions


class ApprovalError(ApprovalKernelError):
    """Base exception for approval action errors."""

    code: str = "APPROVAL_ERROR"


class EntityNotFoundError(ApprovalError):
    """Approvable entity with given ID was not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Approvable entity not found: {entity_id}")


class DuplicateEntityError(ApprovalError):
    """Approvable entity with given ID already exists."""

    code: str = "DUPLICATE_ENTITY"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Approvable entity already exists: {entity_id}")


class ActorNotAuthorizedError(ApprovalError):
    """The acting user is not the designated approver for the current stage."""

    code: str = "ACTOR_NOT_AUTHORIZED"

    def __init__(self, entity_id: str, actor_id: str | None, expected_approver_id: str | None):
        self.entity_id = entity_id
        self.actor_id = actor_id
        self.expected_approver_id = expected_approver_id
        super().__init__(
            f"Actor {actor_id} is not the current approver of {entity_id}"
        )


class ApprovalAlreadyResolvedError(ApprovalError):
    """Entity is in a terminal status; no further action is accepted."""

    code: str = "APPROVAL_ALREADY_RESOLVED"

    def __init__(self, entity_id: str, status: str):
        self.entity_id = entity_id
        self.status = status
        super().__init__(f"{entity_id} is already {status}")


class InvalidApprovalTransitionError(ApprovalError):
    """The requested action is not valid from the entity's current status."""

    code: str = "INVALID_APPROVAL_TRANSITION"

    def __init__(self, entity_id: str, status: str, action: str):
        self.entity_id = entity_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} {entity_id} while it is {status}")


class StatusDriftError(ApprovalError):
    """Stored status disagrees with the status implied by approval history."""

    code: str = "STATUS_DRIFT"

    def __init__(self, entity_id: str, stored_status: str, derived_status: str):
        self.entity_id = entity_id
        self.stored_status = stored_status
        self.derived_status = derived_status
        super().__init__(
            f"Status drift on {entity_id}: stored {stored_status!r}, "
            f"history implies {derived_status!r}"
        )


# Persistence exceptions


class PersistenceError(ApprovalKernelError):
    """Writing to the store failed; the change was not committed."""

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, entity_id: str, reason: str):
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Failed to persist {entity_id}: {reason}")


class ConcurrentModificationError(PersistenceError):
    """The entity was modified by another writer since it was read."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_id: str, expected_version: int):
        self.expected_version = expected_version
        super().__init__(
            entity_id,
            f"entity changed underneath us (expected version {expected_version})",
        )


# Immutability exceptions


class ImmutabilityError(ApprovalKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only approval history entry."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
