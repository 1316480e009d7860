from __future__ import annotations

import uuid

import pytest

from taskhub.errors import ForbiddenError, ValidationError
from taskhub.lifecycle.commands import AdminUpdate, StatusOnlyUpdate, normalize_tags, parse_update_command
from taskhub.lifecycle.policy import Ownership
from taskhub.lifecycle.transitions import Status


def test_member_status_only_body_becomes_status_command() -> None:
  cmd = parse_update_command("User", Ownership.ASSIGNEE, {"status": "In Progress"})
  assert isinstance(cmd, StatusOnlyUpdate)
  assert cmd.status is Status.IN_PROGRESS


@pytest.mark.parametrize(
  "body",
  [
    {"status": "Completed", "title": "x"},
    {"title": "x"},
    {"status": "Completed", "needsCompletionApproval": False},
    {},
  ],
)
def test_member_extra_or_missing_keys_are_forbidden(body: dict) -> None:
  with pytest.raises(ForbiddenError):
    parse_update_command("User", Ownership.TEAM, body)


def test_member_without_ownership_is_forbidden_before_value_checks() -> None:
  with pytest.raises(ForbiddenError):
    parse_update_command("User", Ownership.NONE, {"status": "nonsense"})


def test_member_bad_status_value_is_validation_error() -> None:
  with pytest.raises(ValidationError) as exc:
    parse_update_command("User", Ownership.ASSIGNEE, {"status": "Done"})
  assert exc.value.fields == ["status"]


def test_admin_update_normalizes_fields() -> None:
  team = str(uuid.uuid4()).upper()
  cmd = parse_update_command(
    "Admin",
    Ownership.NONE,
    {"title": "  Ship it ", "tags": ["a", " a ", "", "b"], "teamId": team, "dueDate": "2026-05-01T10:00:00"},
  )
  assert isinstance(cmd, AdminUpdate)
  assert cmd.title == "Ship it"
  assert cmd.tags == ["a", "b"]
  assert cmd.teamId == team.lower()
  assert cmd.dueDate is not None and cmd.dueDate.utcoffset().total_seconds() == 0
  assert cmd.model_fields_set == {"title", "tags", "teamId", "dueDate"}


def test_admin_unknown_key_is_validation_error() -> None:
  with pytest.raises(ValidationError) as exc:
    parse_update_command("Manager", Ownership.NONE, {"priority": "high"})
  assert "priority" in exc.value.fields


def test_admin_null_on_required_field_is_validation_error() -> None:
  with pytest.raises(ValidationError) as exc:
    parse_update_command("Admin", Ownership.NONE, {"title": None, "assigneeId": None})
  assert exc.value.fields == ["title"]


def test_admin_both_assignee_and_team_is_validation_error() -> None:
  with pytest.raises(ValidationError) as exc:
    parse_update_command("Admin", Ownership.NONE, {"assigneeId": str(uuid.uuid4()), "teamId": str(uuid.uuid4())})
  assert set(exc.value.fields) == {"assigneeId", "teamId"}


def test_admin_malformed_id_is_validation_error() -> None:
  with pytest.raises(ValidationError) as exc:
    parse_update_command("Admin", Ownership.NONE, {"assigneeId": "not-an-id"})
  assert exc.value.fields == ["assigneeId"]


def test_non_object_body_is_validation_error() -> None:
  with pytest.raises(ValidationError):
    parse_update_command("Admin", Ownership.NONE, ["status"])


def test_normalize_tags() -> None:
  assert normalize_tags(None) is None
  assert normalize_tags([" x", "x", "y ", "  "]) == ["x", "y"]
