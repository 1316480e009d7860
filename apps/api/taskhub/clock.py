from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from taskhub.config import settings


def local_zone(name: str | None = None) -> ZoneInfo:
  return ZoneInfo(name or settings.reminder_timezone)


def start_of_day(now: datetime, tz: ZoneInfo, *, days: int = 0) -> datetime:
  """Midnight (in `tz`) of the day `days` after `now`'s local date, as UTC."""
  d = now.astimezone(tz).date() + timedelta(days=days)
  return datetime.combine(d, time.min, tzinfo=tz).astimezone(timezone.utc)


def end_of_day(now: datetime, tz: ZoneInfo, *, days: int = 0) -> datetime:
  d = now.astimezone(tz).date() + timedelta(days=days)
  return datetime.combine(d, time.max, tzinfo=tz).astimezone(timezone.utc)


def range_start(now: datetime, tz: ZoneInfo, time_range: str) -> datetime:
  """Start of the current day/week (Monday)/month/year in `tz`, as UTC."""
  local = now.astimezone(tz)
  key = (time_range or "W").strip().upper()
  if key == "D":
    d = local.date()
  elif key == "M":
    d = local.date().replace(day=1)
  elif key == "Y":
    d = local.date().replace(month=1, day=1)
  else:
    d = local.date() - timedelta(days=local.weekday())
  return datetime.combine(d, time.min, tzinfo=tz).astimezone(timezone.utc)


def format_date(value: datetime, tz: ZoneInfo | None = None) -> str:
  return value.astimezone(tz or local_zone()).strftime("%Y-%m-%d")
