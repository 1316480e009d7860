from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from taskhub.errors import ForbiddenError, ValidationError, require_uuid
from taskhub.lifecycle.policy import Ownership, allowed_fields, is_privileged
from taskhub.lifecycle.transitions import Status

_NON_NULLABLE = ("title", "description", "dueDate", "status", "tags")


def normalize_tags(tags: list[str] | None) -> list[str] | None:
  if tags is None:
    return None
  out: list[str] = []
  for t in tags:
    s = str(t).strip()
    if s and s not in out:
      out.append(s)
  return out


def as_utc(value: datetime | None) -> datetime | None:
  if value is None:
    return None
  if value.tzinfo is None:
    return value.replace(tzinfo=timezone.utc)
  return value.astimezone(timezone.utc)


class AdminUpdate(BaseModel):
  model_config = ConfigDict(extra="forbid")

  title: str | None = Field(default=None, min_length=1, max_length=200)
  description: str | None = Field(default=None, min_length=1)
  dueDate: datetime | None = None
  status: Status | None = None
  tags: list[str] | None = None
  assigneeId: str | None = None
  teamId: str | None = None

  @field_validator("title", "description")
  @classmethod
  def _strip(cls, v: str | None) -> str | None:
    if v is None:
      return None
    s = v.strip()
    if not s:
      raise ValueError("must not be blank")
    return s

  @field_validator("dueDate")
  @classmethod
  def _utc(cls, v: datetime | None) -> datetime | None:
    return as_utc(v)

  @field_validator("tags")
  @classmethod
  def _tags(cls, v: list[str] | None) -> list[str] | None:
    return normalize_tags(v)


class StatusOnlyUpdate(BaseModel):
  model_config = ConfigDict(extra="forbid")

  status: Status


UpdateCommand = Union[AdminUpdate, StatusOnlyUpdate]


def _fields_of(exc: PydanticValidationError) -> list[str]:
  out: list[str] = []
  for err in exc.errors():
    loc = err.get("loc") or ()
    name = str(loc[0]) if loc else "body"
    if name not in out:
      out.append(name)
  return out


def parse_update_command(role: str | None, ownership: Ownership, body: Any) -> UpdateCommand:
  """
  Turn a raw update body into a command for the actor's role.

  Privileged actors get an AdminUpdate (unknown keys, nulls on required fields
  and malformed values are ValidationErrors). Everyone else may only send
  exactly {"status": ...} on a task they own; anything else is Forbidden.
  """
  if not isinstance(body, dict):
    raise ValidationError("Request body must be a JSON object", fields=["body"])

  if not is_privileged(role):
    permitted = allowed_fields(role, ownership)
    if not permitted:
      raise ForbiddenError("You can only update tasks assigned to you or to your team")
    keys = set(body.keys())
    if keys != permitted:
      extra = sorted(keys - permitted)
      raise ForbiddenError("Only the status of this task can be updated", fields=extra or sorted(permitted))
    try:
      return StatusOnlyUpdate.model_validate(body)
    except PydanticValidationError as exc:
      raise ValidationError("Invalid status value", fields=_fields_of(exc)) from None

  try:
    cmd = AdminUpdate.model_validate(body)
  except PydanticValidationError as exc:
    raise ValidationError("Invalid task update", fields=_fields_of(exc)) from None

  nulls = [f for f in _NON_NULLABLE if f in cmd.model_fields_set and getattr(cmd, f) is None]
  if nulls:
    raise ValidationError("Fields cannot be null", fields=nulls)
  if cmd.assigneeId is not None and cmd.teamId is not None:
    raise ValidationError("A task can be assigned to a user or a team, not both", fields=["assigneeId", "teamId"])
  if cmd.assigneeId is not None:
    cmd.assigneeId = require_uuid(cmd.assigneeId, field="assigneeId")
  if cmd.teamId is not None:
    cmd.teamId = require_uuid(cmd.teamId, field="teamId")
  return cmd
