from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from taskhub.lifecycle.policy import is_privileged


class Status(str, Enum):
  PENDING = "Pending"
  IN_PROGRESS = "In Progress"
  COMPLETED = "Completed"


class ActorKind(str, Enum):
  PRIVILEGED = "privileged"
  MEMBER = "member"


class TransitionEvent(str, Enum):
  APPROVAL_REQUESTED = "approval_requested"
  APPROVED = "approved"
  REJECTED = "rejected"


class AssignmentEvent(str, Enum):
  ASSIGNEE = "assignee"
  TEAM = "team"


@dataclass(frozen=True)
class TaskState:
  status: Status
  needs_completion_approval: bool = False
  completed_at: datetime | None = None

  @property
  def pending_approval(self) -> bool:
    return self.status is Status.COMPLETED and self.needs_completion_approval

  @property
  def approved(self) -> bool:
    return self.status is Status.COMPLETED and not self.needs_completion_approval


def actor_kind_for(role: str | None) -> ActorKind:
  return ActorKind.PRIVILEGED if is_privileged(role) else ActorKind.MEMBER


def apply_transition(
  current: TaskState,
  requested: Status,
  actor: ActorKind,
  *,
  now: datetime,
) -> tuple[TaskState, list[TransitionEvent]]:
  """
  Compute the state a status request leads to, plus the events it raises.

  Pure: no I/O, `now` is injected. Returns `current` itself when the request
  changes nothing, or when a pending approval is merely re-requested.
  """
  if actor is ActorKind.PRIVILEGED:
    if requested is Status.COMPLETED:
      if current.approved:
        return current, []
      events = [TransitionEvent.APPROVED] if current.pending_approval else []
      return TaskState(status=Status.COMPLETED, needs_completion_approval=False, completed_at=now), events
    events = [TransitionEvent.REJECTED] if current.pending_approval else []
    nxt = TaskState(status=requested, needs_completion_approval=False, completed_at=None)
    if nxt == current:
      return current, []
    return nxt, events

  # Member: Completed while awaiting approval re-notifies the approvers with
  # the state untouched. Completed on an approved task, or any other repeat
  # of the current status, is a no-op.
  if requested is Status.COMPLETED and current.pending_approval:
    return current, [TransitionEvent.APPROVAL_REQUESTED]
  if requested is current.status:
    return current, []
  if requested is Status.COMPLETED:
    return (
      TaskState(status=Status.COMPLETED, needs_completion_approval=True, completed_at=None),
      [TransitionEvent.APPROVAL_REQUESTED],
    )
  return replace(current, status=requested, needs_completion_approval=False, completed_at=None), []


def assignment_event(
  *,
  old_assignee_id: str | None,
  old_team_id: str | None,
  new_assignee_id: str | None,
  new_team_id: str | None,
) -> AssignmentEvent | None:
  if new_assignee_id is not None and new_assignee_id != old_assignee_id:
    return AssignmentEvent.ASSIGNEE
  if new_assignee_id is None and new_team_id is not None and new_team_id != old_team_id:
    return AssignmentEvent.TEAM
  return None
