"""
approval_kernel.services.approval_recorder -- The only writer of approval state.

Responsibility:
    Accept approve / reject / submit actions and new trip requests and
    reports, ask the pure engine what they produce, and persist the new
    history entry together with the denormalized status in one flush.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and the pure
    engines.  Every status change in the system goes through this class.

Invariants enforced:
    - Status is written only here, and only as the engine computed it.
    - History is append-only; the new entry and the new status are flushed
      together.
    - The flush is a compare-and-swap on the entity version: a concurrent
      writer makes this flush fail instead of silently overwriting.
    - Before any action the stored status is compared with the status its
      history implies; a mismatch is refused.
    - Authorization is re-checked here, whatever the caller already did.

Failure modes:
    - EntityNotFoundError, DuplicateEntityError.
    - WorkflowNotFoundError / WorkflowNotConfiguredError /
      IncompleteWorkflowError.
    - StatusDriftError, ActorNotAuthorizedError,
      ApprovalAlreadyResolvedError, InvalidApprovalTransitionError.
    - ConcurrentModificationError when the version check fails or another
      writer already holds the history position;
      PersistenceError on any other database error.  Nothing is retried.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from approval_engines.sequential import (
    apply_action,
    apply_submission,
    authorize_actor,
    derive_status,
    ensure_workflow_usable,
)
from approval_kernel.domain.approval import (
    ActionResult,
    Actor,
    ApprovableEntity,
    ApprovalAction,
    ApprovalActionKind,
    SubjectType,
    vocabulary_for,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import (
    ConcurrentModificationError,
    DuplicateEntityError,
    EntityNotFoundError,
    PersistenceError,
    StatusDriftError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.entity import ApprovableEntityModel, ApprovalActionModel
from approval_kernel.services.base import BaseService
from approval_kernel.services.workflow_store import WorkflowStore

logger = get_logger("services.approval_recorder")


class ApprovalRecorder(BaseService[ApprovableEntityModel]):
    """Applies approval actions and persists the resulting history."""

    def __init__(
        self,
        session: Session,
        workflow_store: WorkflowStore | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._workflows = workflow_store or WorkflowStore(session, self._clock)

    # =========================================================================
    # Approver actions
    # =========================================================================

    def record_action(
        self,
        entity_id: str,
        action: ApprovalActionKind | str,
        actor: Actor,
        comments: str | None = None,
    ) -> ApprovableEntity:
        """Approve or reject on behalf of the current stage approver.

        Returns the entity as flushed; the caller commits.
        """
        action = ApprovalActionKind(action)
        model = self._load_entity_model(entity_id)
        entity = model.to_dto()
        self._check_drift(entity)

        workflow = self._workflows.find(entity.owner_key, entity.subject_type)
        result = apply_action(
            entity, workflow, action, actor, comments, self._clock.now(),
        )
        authorize_actor(entity, workflow, actor.actor_id)

        updated = self._append(model, entity, result)

        logger.info(
            "approval_action_recorded",
            extra={
                "entity_id": entity_id,
                "subject_type": entity.subject_type.value,
                "owner_key": entity.owner_key,
                "actor_id": actor.actor_id,
                "action": action.value,
                "from_status": entity.status,
                "to_status": result.new_status,
                "completed_stages": result.completed_stages,
                "is_final": result.is_final,
                "version": updated.version,
            },
        )
        return updated

    # =========================================================================
    # Requester actions
    # =========================================================================

    def create_entity(
        self,
        entity_id: str,
        subject_type: SubjectType | str,
        owner_key: str,
        submitter: Actor,
        comments: str | None = None,
        draft: bool = False,
    ) -> ApprovableEntity:
        """Create a trip request or report with its first history entry.

        A draft starts in the draft status and needs no workflow yet.
        Otherwise the entity goes straight to the submitted status, which
        requires a usable workflow for the owner.
        """
        subject_type = SubjectType(subject_type)
        vocab = vocabulary_for(subject_type)

        existing = self.session.execute(
            select(ApprovableEntityModel.id).where(
                ApprovableEntityModel.entity_id == entity_id,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateEntityError(entity_id)

        if not draft:
            ensure_workflow_usable(
                owner_key,
                subject_type,
                self._workflows.find(owner_key, subject_type),
            )

        now = self._clock.now()
        status = vocab.draft if draft else vocab.submitted
        first_entry = ApprovalAction(
            actor_id=submitter.actor_id,
            actor_name=submitter.name,
            actor_role=submitter.role_label,
            result_status=status,
            timestamp=now,
            comments=comments,
            decision=ApprovalActionKind.CREATE if draft else ApprovalActionKind.SUBMIT,
        )

        model = ApprovableEntityModel(
            entity_id=entity_id,
            subject_type=subject_type.value,
            owner_key=owner_key,
            status=status,
            history_length=1,
            created_at=now,
        )
        model.history.append(ApprovalActionModel.from_dto(entity_id, 0, first_entry))
        self.session.add(model)

        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateEntityError(entity_id) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(entity_id, str(exc)) from exc

        logger.info(
            "approval_entity_created",
            extra={
                "entity_id": entity_id,
                "subject_type": subject_type.value,
                "owner_key": owner_key,
                "actor_id": submitter.actor_id,
                "status": status,
            },
        )
        return model.to_dto()

    def submit(
        self,
        entity_id: str,
        actor: Actor,
        comments: str | None = None,
    ) -> ApprovableEntity:
        """Move a draft into the first approval stage."""
        model = self._load_entity_model(entity_id)
        entity = model.to_dto()
        self._check_drift(entity)

        workflow = self._workflows.find(entity.owner_key, entity.subject_type)
        result = apply_submission(entity, workflow, actor, comments, self._clock.now())

        updated = self._append(model, entity, result)

        logger.info(
            "approval_entity_submitted",
            extra={
                "entity_id": entity_id,
                "subject_type": entity.subject_type.value,
                "owner_key": entity.owner_key,
                "actor_id": actor.actor_id,
                "to_status": result.new_status,
                "version": updated.version,
            },
        )
        return updated

    # =========================================================================
    # Internal
    # =========================================================================

    def _load_entity_model(self, entity_id: str) -> ApprovableEntityModel:
        model = self.session.execute(
            select(ApprovableEntityModel).where(
                ApprovableEntityModel.entity_id == entity_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError(entity_id)
        return model

    def _check_drift(self, entity: ApprovableEntity) -> None:
        derived = derive_status(entity.approval_history)
        if derived != entity.status:
            logger.error(
                "approval_status_drift",
                extra={
                    "entity_id": entity.entity_id,
                    "stored_status": entity.status,
                    "derived_status": derived,
                },
            )
            raise StatusDriftError(entity.entity_id, entity.status, derived)

    def _append(
        self,
        model: ApprovableEntityModel,
        entity: ApprovableEntity,
        result: ActionResult,
    ) -> ApprovableEntity:
        """Append one history entry and the new status in a single flush.

        The entity row UPDATE carries ``WHERE version = <read version>``.
        """
        sequence = len(entity.approval_history)
        model.history.append(
            ApprovalActionModel.from_dto(entity.entity_id, sequence, result.new_history_entry)
        )
        model.status = result.new_status
        model.history_length = sequence + 1

        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "approval_concurrent_modification",
                extra={"entity_id": entity.entity_id, "expected_version": entity.version},
            )
            raise ConcurrentModificationError(entity.entity_id, entity.version) from exc
        except IntegrityError as exc:
            if _is_history_position_clash(exc):
                # Another writer already holds this history position
                raise ConcurrentModificationError(entity.entity_id, entity.version) from exc
            raise PersistenceError(entity.entity_id, str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(entity.entity_id, str(exc)) from exc

        return model.to_dto()


def _is_history_position_clash(exc: IntegrityError) -> bool:
    """True if the violation is the (entity_id, sequence) uniqueness of history.

    PostgreSQL names the constraint; SQLite names the columns instead.
    """
    message = str(exc.orig)
    return (
        "uq_approval_actions_entity_sequence" in message
        or "approval_actions.entity_id, approval_actions.sequence" in message
    )
