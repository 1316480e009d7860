from __future__ import annotations

from datetime import datetime, timezone

import pytest

from taskhub.lifecycle.policy import ADMIN_FIELDS, Ownership, allowed_fields, can_view, ownership_of
from taskhub.lifecycle.transitions import (
  ActorKind,
  AssignmentEvent,
  Status,
  TaskState,
  TransitionEvent,
  actor_kind_for,
  apply_transition,
  assignment_event,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
EARLIER = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

PENDING = TaskState(status=Status.PENDING)
IN_PROGRESS = TaskState(status=Status.IN_PROGRESS)
AWAITING = TaskState(status=Status.COMPLETED, needs_completion_approval=True)
APPROVED = TaskState(status=Status.COMPLETED, completed_at=EARLIER)


def _completed_at_invariant(s: TaskState) -> bool:
  return (s.completed_at is not None) == (s.status is Status.COMPLETED and not s.needs_completion_approval)


def test_ownership_assignee_team_and_none() -> None:
  assert ownership_of(actor_id="u", actor_team_id="t", assignee_id="u", team_id=None) is Ownership.ASSIGNEE
  assert ownership_of(actor_id="u", actor_team_id="t", assignee_id=None, team_id="t") is Ownership.TEAM
  assert ownership_of(actor_id="u", actor_team_id="t", assignee_id="x", team_id=None) is Ownership.NONE
  assert ownership_of(actor_id="u", actor_team_id=None, assignee_id=None, team_id="t") is Ownership.NONE
  assert ownership_of(actor_id="u", actor_team_id="t", assignee_id=None, team_id=None) is Ownership.NONE


def test_allowed_fields_by_role() -> None:
  assert allowed_fields("Admin", Ownership.NONE) == ADMIN_FIELDS
  assert allowed_fields("Manager", Ownership.NONE) == ADMIN_FIELDS
  assert allowed_fields("User", Ownership.ASSIGNEE) == {"status"}
  assert allowed_fields("User", Ownership.TEAM) == {"status"}
  assert allowed_fields("User", Ownership.NONE) == frozenset()


def test_can_view() -> None:
  assert can_view("Manager", actor_id="m", actor_team_id=None, assignee_id="x", team_id=None)
  assert can_view("User", actor_id="u", actor_team_id=None, assignee_id="u", team_id=None)
  assert can_view("User", actor_id="u", actor_team_id="t", assignee_id=None, team_id="t")
  assert not can_view("User", actor_id="u", actor_team_id="t", assignee_id="x", team_id=None)


def test_actor_kind_for_roles() -> None:
  assert actor_kind_for("Admin") is ActorKind.PRIVILEGED
  assert actor_kind_for("Manager") is ActorKind.PRIVILEGED
  assert actor_kind_for("User") is ActorKind.MEMBER
  assert actor_kind_for(None) is ActorKind.MEMBER


@pytest.mark.parametrize("current", [PENDING, IN_PROGRESS, AWAITING, APPROVED])
@pytest.mark.parametrize("requested", list(Status))
@pytest.mark.parametrize("actor", list(ActorKind))
def test_completed_at_tracks_approved_completion(current: TaskState, requested: Status, actor: ActorKind) -> None:
  nxt, _ = apply_transition(current, requested, actor, now=NOW)
  assert _completed_at_invariant(nxt)


def test_privileged_complete_is_approved_without_event() -> None:
  nxt, events = apply_transition(IN_PROGRESS, Status.COMPLETED, ActorKind.PRIVILEGED, now=NOW)
  assert nxt == TaskState(status=Status.COMPLETED, needs_completion_approval=False, completed_at=NOW)
  assert events == []


def test_privileged_complete_on_awaiting_task_is_approval() -> None:
  nxt, events = apply_transition(AWAITING, Status.COMPLETED, ActorKind.PRIVILEGED, now=NOW)
  assert nxt.approved and nxt.completed_at == NOW
  assert events == [TransitionEvent.APPROVED]


@pytest.mark.parametrize("requested", [Status.PENDING, Status.IN_PROGRESS])
def test_privileged_reopen_of_awaiting_task_is_rejection(requested: Status) -> None:
  nxt, events = apply_transition(AWAITING, requested, ActorKind.PRIVILEGED, now=NOW)
  assert nxt == TaskState(status=requested)
  assert events == [TransitionEvent.REJECTED]


def test_privileged_complete_on_approved_task_keeps_completed_at() -> None:
  nxt, events = apply_transition(APPROVED, Status.COMPLETED, ActorKind.PRIVILEGED, now=NOW)
  assert nxt is APPROVED
  assert events == []


@pytest.mark.parametrize("current", [PENDING, IN_PROGRESS])
def test_member_complete_requests_approval(current: TaskState) -> None:
  nxt, events = apply_transition(current, Status.COMPLETED, ActorKind.MEMBER, now=NOW)
  assert nxt.pending_approval
  assert nxt.completed_at is None
  assert events == [TransitionEvent.APPROVAL_REQUESTED]


@pytest.mark.parametrize("current", [PENDING, IN_PROGRESS, APPROVED])
def test_member_resubmitting_current_status_is_noop(current: TaskState) -> None:
  nxt, events = apply_transition(current, current.status, ActorKind.MEMBER, now=NOW)
  assert nxt is current
  assert events == []


def test_member_completing_again_while_awaiting_approval_renotifies() -> None:
  nxt, events = apply_transition(AWAITING, Status.COMPLETED, ActorKind.MEMBER, now=NOW)
  assert nxt is AWAITING
  assert events == [TransitionEvent.APPROVAL_REQUESTED]


def test_member_reopening_clears_approval_request() -> None:
  nxt, events = apply_transition(AWAITING, Status.IN_PROGRESS, ActorKind.MEMBER, now=NOW)
  assert nxt == TaskState(status=Status.IN_PROGRESS)
  assert events == []


def test_assignment_event_rules() -> None:
  assert assignment_event(old_assignee_id="a", old_team_id=None, new_assignee_id="b", new_team_id=None) is AssignmentEvent.ASSIGNEE
  assert assignment_event(old_assignee_id="a", old_team_id=None, new_assignee_id="a", new_team_id=None) is None
  assert assignment_event(old_assignee_id="a", old_team_id=None, new_assignee_id=None, new_team_id="t") is AssignmentEvent.TEAM
  assert assignment_event(old_assignee_id=None, old_team_id="t", new_assignee_id=None, new_team_id="t") is None
  assert assignment_event(old_assignee_id="a", old_team_id=None, new_assignee_id=None, new_team_id=None) is None
