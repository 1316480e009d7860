from __future__ import annotations

from enum import Enum

ADMIN = "Admin"
MANAGER = "Manager"
USER = "User"
ROLES = (ADMIN, MANAGER, USER)
PRIVILEGED_ROLES = frozenset({ADMIN, MANAGER})

ADMIN_FIELDS = frozenset({"title", "description", "dueDate", "status", "tags", "assigneeId", "teamId"})
MEMBER_FIELDS = frozenset({"status"})


class Ownership(str, Enum):
  ASSIGNEE = "assignee"
  TEAM = "team"
  NONE = "none"


def is_privileged(role: str | None) -> bool:
  return role in PRIVILEGED_ROLES


def ownership_of(
  *,
  actor_id: str,
  actor_team_id: str | None,
  assignee_id: str | None,
  team_id: str | None,
) -> Ownership:
  """
  How a non-privileged actor relates to a task.

  A team member only owns a team task while nobody is assigned to it.
  """
  if assignee_id is not None and assignee_id == actor_id:
    return Ownership.ASSIGNEE
  if assignee_id is None and team_id is not None and actor_team_id is not None and team_id == actor_team_id:
    return Ownership.TEAM
  return Ownership.NONE


def allowed_fields(role: str | None, ownership: Ownership) -> frozenset[str]:
  if is_privileged(role):
    return ADMIN_FIELDS
  if ownership is Ownership.NONE:
    return frozenset()
  return MEMBER_FIELDS


def can_view(
  role: str | None,
  *,
  actor_id: str,
  actor_team_id: str | None,
  assignee_id: str | None,
  team_id: str | None,
) -> bool:
  if is_privileged(role):
    return True
  if assignee_id is not None and assignee_id == actor_id:
    return True
  return team_id is not None and team_id == actor_team_id
