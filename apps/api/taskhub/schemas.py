from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from taskhub.lifecycle.commands import as_utc, normalize_tags
from taskhub.lifecycle.transitions import Status

Role = Literal["Admin", "Manager", "User"]


class LoginIn(BaseModel):
  username: str = Field(min_length=1, max_length=120)
  password: str = Field(min_length=1, max_length=200)


class ForgotPasswordIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)


class ResetPasswordIn(BaseModel):
  token: str = Field(min_length=1, max_length=200)
  password: str = Field(min_length=8, max_length=200)


class UserRefOut(BaseModel):
  id: str
  username: str
  fname: str
  lname: str


class TeamRefOut(BaseModel):
  id: str
  name: str


class UserOut(BaseModel):
  id: str
  username: str
  email: str | None = None
  fname: str
  lname: str
  role: Role
  teamId: str | None = None
  team: TeamRefOut | None = None
  active: bool = True


class UserCreateIn(BaseModel):
  username: str = Field(min_length=1, max_length=120)
  fname: str = Field(default="", max_length=120)
  lname: str = Field(default="", max_length=120)
  email: str | None = Field(default=None, min_length=3, max_length=320)
  role: Role = "User"
  teamId: str | None = None
  password: str = Field(min_length=8, max_length=200)


class UserUpdateIn(BaseModel):
  username: str | None = Field(default=None, min_length=1, max_length=120)
  fname: str | None = Field(default=None, max_length=120)
  lname: str | None = Field(default=None, max_length=120)
  email: str | None = Field(default=None, min_length=3, max_length=320)
  role: Role | None = None
  teamId: str | None = None
  password: str | None = Field(default=None, min_length=8, max_length=200)


class TeamIn(BaseModel):
  name: str = Field(min_length=1, max_length=120)
  description: str | None = Field(default=None, max_length=2000)


class TeamUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=120)
  description: str | None = Field(default=None, max_length=2000)


class TeamOut(BaseModel):
  id: str
  name: str
  description: str | None = None
  leader: UserRefOut | None = None
  memberCount: int = 0
  createdAt: datetime
  updatedAt: datetime


class TeamDetailOut(TeamOut):
  members: list[UserRefOut] = Field(default_factory=list)


class TeamLeaderIn(BaseModel):
  userId: str | None = None


class TeamMemberIn(BaseModel):
  userId: str


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=200)
  description: str = Field(min_length=1)
  dueDate: datetime
  status: Status = Status.PENDING
  tags: list[str] = Field(default_factory=list)
  assigneeId: str | None = None
  teamId: str | None = None

  @field_validator("title", "description")
  @classmethod
  def _not_blank(cls, v: str) -> str:
    s = v.strip()
    if not s:
      raise ValueError("must not be blank")
    return s

  @field_validator("dueDate")
  @classmethod
  def _utc(cls, v: datetime) -> datetime:
    return as_utc(v)

  @field_validator("tags")
  @classmethod
  def _tags(cls, v: list[str]) -> list[str]:
    return normalize_tags(v) or []


class TaskOut(BaseModel):
  id: str
  title: str
  description: str
  dueDate: datetime
  status: Status
  tags: list[str] = Field(default_factory=list)
  assignee: UserRefOut | None = None
  team: TeamRefOut | None = None
  completedAt: datetime | None = None
  needsCompletionApproval: bool = False
  dueDateReminderSent: bool = False
  overdueReminderSent: bool = False
  createdAt: datetime
  updatedAt: datetime


class MyWorkCountsOut(BaseModel):
  pendingInProgress: int
  completed: int


class MyWorkOut(BaseModel):
  relevantTasks: list[TaskOut]
  counts: MyWorkCountsOut


class SummaryOut(BaseModel):
  completedTasksCount: int
  pendingTasksCount: int


class PerformanceOut(BaseModel):
  labels: list[str]
  data: list[int]


class DurationOut(BaseModel):
  title: str
  duration: int


class NotificationTaskOut(BaseModel):
  id: str
  title: str
  status: Status
  dueDate: datetime


class NotificationOut(BaseModel):
  id: str
  type: str
  status: Literal["unread", "read"]
  message: str
  link: str | None = None
  task: NotificationTaskOut | None = None
  createdAt: datetime


class NotificationPageOut(BaseModel):
  notifications: list[NotificationOut]
  currentPage: int
  totalPages: int
  totalCount: int
