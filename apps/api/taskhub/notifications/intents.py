from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from taskhub.clock import format_date
from taskhub.config import settings
from taskhub.models import Task
from taskhub.notifications.recipients import Recipient


class NotificationType(str, Enum):
  TASK_ASSIGNED = "task_assigned"
  TEAM_TASK_ASSIGNED = "team_task_assigned"
  TASK_UPDATED = "task_updated"
  TASK_DUE_SOON = "task_due_soon"
  TASK_OVERDUE = "task_overdue"
  COMMENT_ADDED = "comment_added"
  TASK_PENDING_APPROVAL = "task_pending_approval"
  TASK_APPROVED = "task_approved"
  TASK_REJECTED = "task_rejected"
  OTHER = "other"


@dataclass(frozen=True)
class EmailContent:
  subject: str
  body: str


@dataclass(frozen=True)
class NotificationIntent:
  recipient: Recipient
  task_id: str | None
  type: NotificationType
  message: str
  link: str | None = None
  email: EmailContent | None = None


def task_link(task_id: str) -> str:
  return f"/task/{task_id}"


def _email(recipient: Recipient, task: Task, *, subject: str, message: str) -> EmailContent:
  url = f"{settings.frontend_url.rstrip('/')}{task_link(task.id)}"
  body = (
    f"Hi {recipient.display_name},\n\n"
    f"{message}\n\n"
    f"Due: {format_date(task.due_date)}\n"
    f"View the task: {url}\n"
  )
  return EmailContent(subject=subject, body=body)


def _fan_out(
  task: Task,
  recipients: list[Recipient],
  type_: NotificationType,
  message: str,
  *,
  subject: str | None = None,
) -> list[NotificationIntent]:
  out: list[NotificationIntent] = []
  for r in recipients:
    email = _email(r, task, subject=subject, message=message) if subject else None
    out.append(NotificationIntent(recipient=r, task_id=task.id, type=type_, message=message, link=task_link(task.id), email=email))
  return out


def assignee_assigned(task: Task, recipients: list[Recipient], *, on_update: bool = False) -> list[NotificationIntent]:
  if on_update:
    message = f"Task assigned to you: {task.title}"
  else:
    message = f"You have been assigned a new task: {task.title}"
  return _fan_out(task, recipients, NotificationType.TASK_ASSIGNED, message, subject=f"New Task Assigned: {task.title}")


def team_assigned(task: Task, recipients: list[Recipient]) -> list[NotificationIntent]:
  message = f"New team task assigned: {task.title}"
  return _fan_out(task, recipients, NotificationType.TEAM_TASK_ASSIGNED, message, subject=f"New Team Task: {task.title}")


def approval_requested(task: Task, recipients: list[Recipient], *, actor_name: str) -> list[NotificationIntent]:
  message = f'Task "{task.title}" was marked completed by {actor_name} and needs approval'
  return _fan_out(task, recipients, NotificationType.TASK_PENDING_APPROVAL, message)


def approved(task: Task, recipients: list[Recipient]) -> list[NotificationIntent]:
  message = f'Your completion of "{task.title}" was approved'
  return _fan_out(task, recipients, NotificationType.TASK_APPROVED, message)


def rejected(task: Task, recipients: list[Recipient]) -> list[NotificationIntent]:
  message = f'Completion of "{task.title}" was rejected; status is now {task.status}'
  return _fan_out(task, recipients, NotificationType.TASK_REJECTED, message)


def due_soon(task: Task, recipients: list[Recipient]) -> list[NotificationIntent]:
  message = f'Task "{task.title}" is due soon (Due: {format_date(task.due_date)})'
  return _fan_out(task, recipients, NotificationType.TASK_DUE_SOON, message, subject=f"Due Soon Task Reminder: {task.title}")


def overdue(task: Task, recipients: list[Recipient]) -> list[NotificationIntent]:
  message = f'Task "{task.title}" is overdue! (Due: {format_date(task.due_date)})'
  return _fan_out(task, recipients, NotificationType.TASK_OVERDUE, message, subject=f"Overdue Task Reminder: {task.title}")
