from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Any, Protocol

from taskhub.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingEmail:
  to: str
  subject: str
  body: str


class EmailSender(Protocol):
  async def send(self, *, to: str, subject: str, body: str) -> dict[str, Any]: ...


@dataclass
class LocalEmailSender:
  """Keeps mail in memory and logs it; used in development and tests."""

  outbox: list[OutgoingEmail] = field(default_factory=list)

  async def send(self, *, to: str, subject: str, body: str) -> dict[str, Any]:
    self.outbox.append(OutgoingEmail(to=to, subject=subject, body=body))
    logger.info("local email to %s: %s", to, subject)
    return {"provider": "local", "status": "sent", "detail": {"to": to}}


class SmtpEmailSender:
  def __init__(
    self,
    *,
    host: str,
    from_addr: str,
    port: int = 587,
    username: str | None = None,
    password: str | None = None,
    starttls: bool = True,
    timeout: float = 15,
  ) -> None:
    if not host or not from_addr:
      raise ValueError("SMTP sender requires host and from address")
    self.host = host
    self.port = int(port)
    self.from_addr = from_addr
    self.username = username or ""
    self.password = password or ""
    self.starttls = starttls
    self.timeout = timeout

  async def send(self, *, to: str, subject: str, body: str) -> dict[str, Any]:
    def _send_sync() -> None:
      m = EmailMessage()
      m["Subject"] = subject
      m["From"] = self.from_addr
      m["To"] = to
      m.set_content(body)
      with smtplib.SMTP(host=self.host, port=self.port, timeout=self.timeout) as s:
        s.ehlo()
        if self.starttls:
          s.starttls()
          s.ehlo()
        if self.username and self.password:
          s.login(self.username, self.password)
        s.send_message(m)

    await asyncio.to_thread(_send_sync)
    return {"provider": "smtp", "status": "sent", "detail": {"to": to, "host": self.host, "port": self.port}}


def email_sender_for(cfg: Settings) -> EmailSender:
  if cfg.email_provider == "smtp":
    return SmtpEmailSender(
      host=cfg.smtp_host or "",
      from_addr=cfg.smtp_from or "",
      port=cfg.smtp_port,
      username=cfg.smtp_username,
      password=cfg.smtp_password,
      starttls=cfg.smtp_starttls,
    )
  return LocalEmailSender()
