"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "teams",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("leader_id", postgresql.UUID(as_uuid=False), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_teams_name", "teams", ["name"], unique=True)

  op.create_table(
    "users",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("username", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=True),
    sa.Column("fname", sa.String(), nullable=False, server_default=""),
    sa.Column("lname", sa.String(), nullable=False, server_default=""),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("role", sa.String(), nullable=False, server_default="User"),
    sa.Column("team_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("teams.id"), nullable=True),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_username", "users", ["username"], unique=True)
  op.create_index("ix_users_email", "users", ["email"], unique=True)
  op.create_index("ix_users_team_id", "users", ["team_id"], unique=False)

  op.create_table(
    "sessions",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("user_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("created_ip", sa.String(), nullable=True),
    sa.Column("user_agent", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_sessions_user_id", "sessions", ["user_id"], unique=False)

  op.create_table(
    "password_reset_tokens",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("user_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("token_hash", sa.String(), nullable=False),
    sa.Column("request_ip", sa.String(), nullable=True),
    sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_password_reset_tokens_user_id", "password_reset_tokens", ["user_id"], unique=False)
  op.create_index("ix_password_reset_tokens_token_hash", "password_reset_tokens", ["token_hash"], unique=True)

  op.create_table(
    "tasks",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
    sa.Column("status", sa.String(), nullable=False, server_default="Pending"),
    sa.Column("tags", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
    sa.Column("assignee_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("team_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("teams.id"), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("due_date_reminder_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("overdue_reminder_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("needs_completion_approval", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("assignee_id IS NULL OR team_id IS NULL", name="ck_tasks_single_owner"),
  )
  op.create_index("ix_tasks_due_date", "tasks", ["due_date"], unique=False)
  op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"], unique=False)
  op.create_index("ix_tasks_team_id", "tasks", ["team_id"], unique=False)
  op.create_index("ix_tasks_needs_completion_approval", "tasks", ["needs_completion_approval"], unique=False)
  op.create_index("ix_tasks_status_due_date", "tasks", ["status", "due_date"], unique=False)

  op.create_table(
    "notifications",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("user_id", postgresql.UUID(as_uuid=False), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("task_id", postgresql.UUID(as_uuid=False), nullable=True),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False, server_default="unread"),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("link", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
  op.create_index("ix_notifications_task_id", "notifications", ["task_id"], unique=False)
  op.create_index("ix_notifications_status", "notifications", ["status"], unique=False)
  op.create_index("ix_notifications_created_at", "notifications", ["created_at"], unique=False)

  op.create_table(
    "reminder_runs",
    sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
    sa.Column("status", sa.String(), nullable=False, server_default="running"),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("due_soon_count", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("overdue_count", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("error", sa.Text(), nullable=True),
  )
  op.create_index("ix_reminder_runs_started_at", "reminder_runs", ["started_at"], unique=False)


def downgrade() -> None:
  op.drop_table("reminder_runs")
  op.drop_table("notifications")
  op.drop_table("tasks")
  op.drop_table("password_reset_tokens")
  op.drop_table("sessions")
  op.drop_table("users")
  op.drop_table("teams")
