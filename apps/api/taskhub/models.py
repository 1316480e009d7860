from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, TypeDecorator, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class UtcDateTime(TypeDecorator):
  """Timezone-aware UTC datetimes on every backend (SQLite drops tzinfo)."""

  impl = DateTime(timezone=True)
  cache_ok = True

  def process_bind_param(self, value: Any, dialect: Any) -> Any:
    if value is None:
      return None
    if value.tzinfo is None:
      value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    if dialect.name == "sqlite":
      return value.replace(tzinfo=None)
    return value

  def process_result_value(self, value: Any, dialect: Any) -> Any:
    if value is not None and value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value


IdType = Uuid(as_uuid=False)
TagList = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
  pass


class Team(Base):
  __tablename__ = "teams"

  id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  # users.team_id points back here; kept consistent by the team/user services.
  leader_id: Mapped[str | None] = mapped_column(IdType, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)
  username: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  email: Mapped[str | None] = mapped_column(String, nullable=True, unique=True, index=True)
  fname: Mapped[str] = mapped_column(String, nullable=False, default="")
  lname: Mapped[str] = mapped_column(String, nullable=False, default="")
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False, default="User")  # Admin | Manager | User
  team_id: Mapped[str | None] = mapped_column(IdType, ForeignKey("teams.id"), nullable=True, index=True)
  active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Session(Base):
  __tablename__ = "sessions"

  id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(IdType, ForeignKey("users.id"), nullable=False, index=True)
  created_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  expires_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)


class PasswordResetToken(Base):
  __tablename__ = "password_reset_tokens"

  id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(IdType, ForeignKey("users.id"), nullable=False, index=True)
  token_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  request_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  used_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  expires_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"
  __table_args__ = (CheckConstraint("assignee_id IS NULL OR team_id IS NULL", name="ck_tasks_single_owner"),)

  id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  due_date: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False, default="Pending")  # Pending | In Progress | Completed
  tags: Mapped[list[str]] = mapped_column(TagList, nullable=False, default=list)
  assignee_id: Mapped[str | None] = mapped_column(IdType, ForeignKey("users.id"), nullable=True, index=True)
  team_id: Mapped[str | None] = mapped_column(IdType, ForeignKey("teams.id"), nullable=True, index=True)
  completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  due_date_reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  overdue_reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  needs_completion_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Notification(Base):
  __tablename__ = "notifications"

  id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(IdType, ForeignKey("users.id"), nullable=False, index=True)
  # No FK: notifications outlive deleted tasks.
  task_id: Mapped[str | None] = mapped_column(IdType, nullable=True, index=True)
  type: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default="unread", index=True)  # unread | read
  message: Mapped[str] = mapped_column(Text, nullable=False)
  link: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False, index=True)


class ReminderRun(Base):
  __tablename__ = "reminder_runs"

  id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)
  status: Mapped[str] = mapped_column(String, nullable=False, default="running")  # running | finished | failed
  started_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False, index=True)
  finished_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  due_soon_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  overdue_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
