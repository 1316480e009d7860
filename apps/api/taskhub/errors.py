from __future__ import annotations

import uuid
from collections.abc import Iterable


class DomainError(Exception):
  status_code = 400

  def __init__(self, message: str, *, fields: Iterable[str] | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.fields = list(fields or [])

  def to_detail(self) -> dict:
    return {"message": self.message, "fields": self.fields}


class ValidationError(DomainError):
  status_code = 422


class NotFoundError(DomainError):
  status_code = 404


class ForbiddenError(DomainError):
  status_code = 403


class ConflictError(DomainError):
  status_code = 409


def require_uuid(value: str | None, *, field: str) -> str:
  """Normalize an id or raise ValidationError naming the field."""
  try:
    return str(uuid.UUID(str(value)))
  except (TypeError, ValueError, AttributeError):
    raise ValidationError(f"Invalid {field} format", fields=[field]) from None
