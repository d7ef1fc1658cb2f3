"""
Tests for the pure sequential approval engine.

Tests cover:
- completed_approval_count: first entry never counts, per-type vocabularies,
  recorded decisions versus status-only entries
- current_stage / is_pending_for: stage indexing, draft and terminal
  statuses, missing workflow, out-of-range completed count
- authorize_actor: current approver only, empty-stage workflows
- apply_action: reject short-circuit, final/intermediate approvals,
  empty-stage branch, mid-flight workflow edits
- apply_submission / ensure_workflow_usable: draft-only, workflow checks
- derive_status / replay_status / approval_chain / describe_progress
"""

import pytest

from approval_engines.sequential import (
    apply_action,
    apply_submission,
    approval_chain,
    authorize_actor,
    completed_approval_count,
    current_stage,
    derive_status,
    describe_progress,
    ensure_workflow_usable,
    is_pending_for,
    replay_status,
)
from approval_kernel.domain.approval import (
    Actor,
    ApprovalAction,
    ApprovalActionKind,
    ReportStatus,
    SubjectType,
    TripStatus,
)
from approval_kernel.exceptions import (
    ActorNotAuthorizedError,
    ApprovalAlreadyResolvedError,
    IncompleteWorkflowError,
    InvalidApprovalTransitionError,
    WorkflowNotConfiguredError,
    WorkflowNotFoundError,
)
from tests.factories import T0, make_action, make_entity, make_workflow

U0 = Actor(actor_id="U0", name="Requester", role_label="Inspector")
U1 = Actor(actor_id="U1", name="Reviewer One", role_label="Reviewer")
U2 = Actor(actor_id="U2", name="Approver Two", role_label="Approver")


def two_stage(subject_type=SubjectType.REPORT):
    return make_workflow(subject_type, ("U1", "U2"), roles=("Reviewer", "Approver"))


def step(entity, workflow, action, actor, comments=None):
    """Apply an action and return the entity as the recorder would persist it."""
    result = apply_action(entity, workflow, action, actor, comments, T0)
    return make_entity(
        entity.subject_type,
        history=entity.approval_history + (result.new_history_entry,),
        entity_id=entity.entity_id,
    ), result


# =========================================================================
# 1. completed_approval_count
# =========================================================================


class TestCompletedApprovalCount:
    """Tests for completed_approval_count."""

    def test_submission_entry_never_counts(self):
        entity = make_entity(
            SubjectType.REPORT,
            history=(make_action(ReportStatus.APPROVED.value),),
            status=ReportStatus.SUBMITTED.value,
        )

        assert completed_approval_count(entity) == 0

    def test_report_counts_reviewed_and_approved(self):
        entity = make_entity(
            SubjectType.REPORT,
            history=(
                make_action("Submitted"),
                make_action("Reviewed", actor_id="5"),
                make_action("Approved", actor_id="6"),
            ),
        )

        assert completed_approval_count(entity) == 2

    def test_trip_status_only_history_counts_approved(self):
        """Entries without a recorded decision fall back to the status set."""
        entity = make_entity(
            SubjectType.TRIP,
            history=(
                make_action("Draft"),
                make_action("Pending"),
                make_action("Approved", actor_id="2"),
            ),
        )

        assert completed_approval_count(entity) == 1

    def test_trip_intermediate_approval_counts_by_decision(self):
        """A non-final trip approval stays Pending but still completes a stage."""
        entity = make_entity(
            SubjectType.TRIP,
            history=(
                make_action("Draft", decision=ApprovalActionKind.CREATE),
                make_action("Pending", decision=ApprovalActionKind.SUBMIT),
                make_action("Pending", actor_id="2", decision=ApprovalActionKind.APPROVE),
            ),
        )

        assert completed_approval_count(entity) == 1

    def test_rejection_does_not_count(self):
        entity = make_entity(
            SubjectType.REPORT,
            history=(
                make_action("Submitted"),
                make_action("Rejected", decision=ApprovalActionKind.REJECT),
            ),
        )

        assert completed_approval_count(entity) == 0


# =========================================================================
# 2. current_stage / is_pending_for
# =========================================================================


class TestIsPendingFor:
    """Tests for current_stage and is_pending_for."""

    def test_first_stage_approver_is_pending(self):
        entity = make_entity()
        workflow = two_stage()

        assert is_pending_for(entity, workflow, "U1") is True
        assert is_pending_for(entity, workflow, "U2") is False

    def test_current_stage_is_indexed_by_completed_count(self):
        entity = make_entity(
            history=(make_action("Submitted"), make_action("Reviewed", actor_id="U1")),
        )

        stage = current_stage(entity, two_stage())

        assert stage.sequence_number == 2
        assert stage.approver_id == "U2"

    @pytest.mark.parametrize("status", ["Approved", "Rejected"])
    def test_terminal_status_never_pending(self, status):
        entity = make_entity(
            history=(make_action("Submitted"), make_action(status, actor_id="U1")),
        )
        workflow = two_stage()

        for user in ("U0", "U1", "U2", "anyone"):
            assert is_pending_for(entity, workflow, user) is False

    def test_draft_never_pending(self):
        entity = make_entity(SubjectType.TRIP, history=(make_action("Draft"),))

        assert is_pending_for(entity, two_stage(SubjectType.TRIP), "U1") is False

    def test_draft_without_workflow_is_not_an_error(self):
        entity = make_entity(SubjectType.TRIP, history=(make_action("Draft"),))

        assert is_pending_for(entity, None, "U1") is False

    def test_missing_workflow_for_awaiting_entity_raises(self):
        with pytest.raises(WorkflowNotFoundError) as exc_info:
            is_pending_for(make_entity(), None, "U1")

        assert exc_info.value.owner_key == "PRJ-001"
        assert exc_info.value.subject_type == "report"

    def test_completed_count_beyond_stages_is_not_pending(self, captured_logs):
        """A workflow shortened mid-flight degrades to 'not pending'."""
        entity = make_entity(
            history=(make_action("Submitted"), make_action("Reviewed", actor_id="U1")),
        )
        workflow = make_workflow(SubjectType.REPORT, ("U1",))

        assert current_stage(entity, workflow) is None
        assert is_pending_for(entity, workflow, "U1") is False

        logs = captured_logs()
        warning = next(r for r in logs if r["message"] == "approval_stage_index_out_of_range")
        assert warning["level"] == "WARNING"
        assert warning["completed_stages"] == 1
        assert warning["stage_count"] == 1

    def test_unassigned_stage_is_pending_for_nobody(self):
        workflow = make_workflow(SubjectType.REPORT, (None, "U2"))

        assert is_pending_for(make_entity(), workflow, "U1") is False
        assert is_pending_for(make_entity(), workflow, "") is False

    def test_empty_stages_has_no_current_stage(self):
        workflow = make_workflow(SubjectType.REPORT, ())

        assert current_stage(make_entity(), workflow) is None
        assert is_pending_for(make_entity(), workflow, "U1") is False


# =========================================================================
# 3. authorize_actor
# =========================================================================


class TestAuthorizeActor:
    """Tests for authorize_actor."""

    def test_current_approver_is_authorized(self):
        authorize_actor(make_entity(), two_stage(), "U1")

    def test_later_stage_approver_is_not_authorized(self):
        with pytest.raises(ActorNotAuthorizedError) as exc_info:
            authorize_actor(make_entity(), two_stage(), "U2")

        assert exc_info.value.actor_id == "U2"
        assert exc_info.value.expected_approver_id == "U1"

    def test_anonymous_actor_is_not_authorized(self):
        with pytest.raises(ActorNotAuthorizedError):
            authorize_actor(make_entity(), two_stage(), None)

    def test_terminal_entity_has_no_approver(self):
        entity = make_entity(
            history=(make_action("Submitted"), make_action("Rejected", actor_id="U1")),
        )

        with pytest.raises(ActorNotAuthorizedError) as exc_info:
            authorize_actor(entity, two_stage(), "U1")

        assert exc_info.value.expected_approver_id is None

    def test_empty_stages_allow_any_actor(self):
        authorize_actor(make_entity(), make_workflow(SubjectType.REPORT, ()), "whoever")


# =========================================================================
# 4. apply_action
# =========================================================================


class TestApplyAction:
    """Tests for apply_action."""

    def test_two_stage_report_walkthrough(self):
        """U1 reviews, U2 approves; the inbox moves from U1 to U2 to nobody."""
        workflow = two_stage()
        entity = make_entity(history=(make_action("Submitted", actor_id="U0"),))
        assert completed_approval_count(entity) == 0
        assert is_pending_for(entity, workflow, "U1") is True

        entity, result = step(entity, workflow, "approve", U1)
        assert len(entity.approval_history) == 2
        assert entity.status == "Reviewed"
        assert result.is_final is False
        assert completed_approval_count(entity) == 1
        assert is_pending_for(entity, workflow, "U2") is True
        assert is_pending_for(entity, workflow, "U1") is False

        entity, result = step(entity, workflow, "approve", U2)
        assert entity.status == "Approved"
        assert result.is_final is True
        assert entity.is_terminal

    def test_first_stage_reject_short_circuits(self):
        workflow = two_stage()

        entity, result = step(make_entity(), workflow, "reject", U1, "Insufficient evidence")

        assert entity.status == "Rejected"
        assert result.is_final is True
        assert result.new_history_entry.comments == "Insufficient evidence"
        assert is_pending_for(entity, workflow, "U2") is False

    def test_trip_intermediate_status_is_pending(self):
        workflow = two_stage(SubjectType.TRIP)
        entity = make_entity(
            SubjectType.TRIP,
            history=(
                make_action("Draft", decision=ApprovalActionKind.CREATE),
                make_action("Pending", decision=ApprovalActionKind.SUBMIT),
            ),
            entity_id="TRIP-001",
        )

        entity, result = step(entity, workflow, "approve", U1)
        assert result.new_status == TripStatus.PENDING.value
        assert is_pending_for(entity, workflow, "U2") is True

        entity, result = step(entity, workflow, "approve", U2)
        assert result.new_status == TripStatus.APPROVED.value

    def test_history_entry_records_actor_and_decision(self):
        result = apply_action(make_entity(), two_stage(), ApprovalActionKind.APPROVE, U1, "ok", T0)

        entry = result.new_history_entry
        assert entry.actor_id == "U1"
        assert entry.actor_name == "Reviewer One"
        assert entry.actor_role == "Reviewer"
        assert entry.result_status == "Reviewed"
        assert entry.decision == ApprovalActionKind.APPROVE
        assert entry.timestamp == T0

    def test_empty_stages_first_approve_is_final(self):
        workflow = make_workflow(SubjectType.REPORT, ())

        result = apply_action(make_entity(), workflow, "approve", U1, None, T0)

        assert result.new_status == "Approved"
        assert result.is_final is True

    def test_empty_stages_trip_approve_is_final(self):
        entity = make_entity(SubjectType.TRIP, history=(make_action("Pending"),))

        result = apply_action(entity, make_workflow(SubjectType.TRIP, ()), "approve", U1, None, T0)

        assert result.new_status == "Approved"

    def test_workflow_edited_mid_flight_changes_next_approver(self):
        """The completed count is recomputed; a stage inserted later is respected."""
        entity = make_entity(
            history=(make_action("Submitted"), make_action("Reviewed", actor_id="U1")),
        )
        extended = make_workflow(SubjectType.REPORT, ("U1", "U3", "U2"))

        assert is_pending_for(entity, extended, "U3") is True
        result = apply_action(entity, extended, "approve", U2, None, T0)
        assert result.new_status == "Reviewed"
        assert result.completed_stages == 2

    @pytest.mark.parametrize("status", ["Approved", "Rejected"])
    def test_terminal_entity_rejects_further_actions(self, status):
        entity = make_entity(
            history=(make_action("Submitted"), make_action(status, actor_id="U1")),
        )

        with pytest.raises(ApprovalAlreadyResolvedError) as exc_info:
            apply_action(entity, two_stage(), "approve", U2, None, T0)

        assert exc_info.value.status == status

    def test_draft_cannot_be_approved(self):
        entity = make_entity(SubjectType.TRIP, history=(make_action("Draft"),))

        with pytest.raises(InvalidApprovalTransitionError):
            apply_action(entity, two_stage(SubjectType.TRIP), "approve", U1, None, T0)

    def test_missing_workflow_raises(self):
        with pytest.raises(WorkflowNotFoundError):
            apply_action(make_entity(), None, "approve", U1, None, T0)

    def test_submit_is_not_an_approver_action(self):
        with pytest.raises(ValueError):
            apply_action(make_entity(), two_stage(), ApprovalActionKind.SUBMIT, U1, None, T0)


# =========================================================================
# 5. apply_submission / ensure_workflow_usable
# =========================================================================


class TestApplySubmission:
    """Tests for apply_submission and ensure_workflow_usable."""

    def draft_trip(self):
        return make_entity(
            SubjectType.TRIP,
            history=(make_action("Draft", actor_id="U0", decision=ApprovalActionKind.CREATE),),
            entity_id="TRIP-001",
        )

    def test_draft_moves_to_submitted_status(self):
        result = apply_submission(
            self.draft_trip(), two_stage(SubjectType.TRIP), U0, "Submitted for approval", T0,
        )

        assert result.new_status == "Pending"
        assert result.new_history_entry.decision == ApprovalActionKind.SUBMIT
        assert result.new_history_entry.comments == "Submitted for approval"

    def test_submission_does_not_complete_a_stage(self):
        workflow = two_stage(SubjectType.TRIP)
        draft = self.draft_trip()
        result = apply_submission(draft, workflow, U0, None, T0)
        submitted = make_entity(
            SubjectType.TRIP,
            history=draft.approval_history + (result.new_history_entry,),
        )

        assert completed_approval_count(submitted) == 0
        assert is_pending_for(submitted, workflow, "U1") is True

    def test_non_draft_cannot_be_submitted(self):
        with pytest.raises(InvalidApprovalTransitionError) as exc_info:
            apply_submission(make_entity(), two_stage(), U0, None, T0)

        assert exc_info.value.action == "submit"

    def test_missing_workflow(self):
        with pytest.raises(WorkflowNotFoundError):
            apply_submission(self.draft_trip(), None, U0, None, T0)

    def test_empty_workflow(self):
        with pytest.raises(WorkflowNotConfiguredError):
            apply_submission(self.draft_trip(), make_workflow(SubjectType.TRIP, ()), U0, None, T0)

    def test_unassigned_stage(self):
        workflow = make_workflow(SubjectType.TRIP, ("U1", None))

        with pytest.raises(IncompleteWorkflowError) as exc_info:
            ensure_workflow_usable("PRJ-001", SubjectType.TRIP, workflow)

        assert exc_info.value.sequence_number == 2


# =========================================================================
# 6. Derivation, replay, chain, progress
# =========================================================================


class TestDerivation:
    """Tests for derive_status, replay_status, approval_chain, describe_progress."""

    def test_derive_status_is_last_entry(self):
        history = (make_action("Submitted"), make_action("Reviewed"))

        assert derive_status(history) == "Reviewed"
        assert derive_status(()) is None

    def test_replay_matches_engine_after_walkthrough(self):
        workflow = two_stage()
        entity = make_entity()
        entity, _ = step(entity, workflow, "approve", U1)
        entity, _ = step(entity, workflow, "approve", U2)

        assert replay_status(SubjectType.REPORT, entity.approval_history, workflow.stages) == entity.status

    def test_replay_of_legacy_trip_document(self):
        history = (make_action("Draft"), make_action("Pending"), make_action("Approved", actor_id="2"))
        stages = make_workflow(SubjectType.TRIP, ("2",)).stages

        assert replay_status("trip", history, stages) == "Approved"

    def test_history_document_without_decision(self):
        """Stored history entries that predate the decision field still count."""
        docs = [
            {"actorId": 1, "actorName": "Budi", "actorRole": "Lead Inspector",
             "status": "Submitted", "timestamp": "2024-07-20T09:00:00Z"},
            {"actorId": "5", "actorName": "QAQC", "actorRole": "Client QAQC",
             "status": "Reviewed", "timestamp": "2024-07-21T10:30:00Z", "comments": "ok"},
        ]
        history = tuple(ApprovalAction.from_document(d) for d in docs)
        entity = make_entity(history=history)

        assert history[0].actor_id == "1"
        assert history[1].decision is None
        assert history[1].timestamp.tzinfo is not None
        assert completed_approval_count(entity) == 1
        assert is_pending_for(entity, two_stage(), "U2")
        assert history[1].to_document()["comments"] == "ok"

    def test_replay_empty_history(self):
        assert replay_status(SubjectType.REPORT, (), ()) is None

    def test_approval_chain_lists_submitter_and_signoffs(self):
        entity = make_entity(
            history=(
                make_action("Submitted", actor_id="U0"),
                make_action("Reviewed", actor_id="U1"),
                make_action("Approved", actor_id="U2"),
            ),
        )

        chain = approval_chain(entity)

        assert [a.actor_id for a in chain] == ["U0", "U1", "U2"]

    def test_approval_chain_skips_rejection(self):
        entity = make_entity(
            history=(make_action("Submitted", actor_id="U0"), make_action("Rejected", actor_id="U1")),
        )

        assert [a.actor_id for a in approval_chain(entity)] == ["U0"]

    def test_approval_chain_starts_with_submitter(self):
        entity = make_entity(
            history=(make_action("Submitted", actor_id="U0"), make_action("Reviewed", actor_id="U1")),
        )

        assert approval_chain(entity)[0] is entity.submitter

    def test_approval_chain_without_history(self):
        entity = make_entity(history=(), status="Submitted")

        assert entity.submitter is None
        assert approval_chain(entity) == ()

    def test_describe_progress(self):
        entity = make_entity(
            history=(make_action("Submitted"), make_action("Reviewed", actor_id="U1")),
        )

        progress = describe_progress(entity, two_stage())

        assert progress.completed_stages == 1
        assert progress.total_stages == 2
        assert progress.current_stage.approver_id == "U2"
        assert progress.is_terminal is False

    def test_describe_progress_without_workflow(self):
        progress = describe_progress(make_entity(), None)

        assert progress.total_stages == 0
        assert progress.current_stage is None
