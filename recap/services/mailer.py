"""Summary emails rendered to HTML and delivered through the Resend API."""

from __future__ import annotations

import html
import logging
import os
import re
from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence

import httpx

from recap.services.config import MailConfig
from recap.services.errors import ConfigError, UpstreamError

# Models sometimes open with a boilerplate paragraph announcing the email itself.
_INTRO_RE = re.compile(
    r"For those who asked[\s\S]*?this summary is being sent to the participants\.?\s*",
    re.IGNORECASE,
)
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_BULLET_RE = re.compile(r"^[*\-]\s+")


class Mailer(Protocol):
    async def send_summary(
        self,
        to: str,
        subject: str,
        summary: str,
        participants: Optional[Sequence[str]] = None,
    ) -> None:
        ...


def clean_summary(summary: str) -> str:
    return _INTRO_RE.sub("", str(summary or "").strip()).strip()


def markdown_to_html(text: str) -> str:
    """Render the small markdown subset summaries use: bold, bullet lists, paragraphs."""
    out: list[str] = []
    in_list = False
    for line in html.escape(text).split("\n"):
        trimmed = _BOLD_RE.sub(r"<strong>\1</strong>", line.strip())
        if _BULLET_RE.match(trimmed):
            if not in_list:
                out.append('<ul style="margin:8px 0 8px 18px;color:#222;">')
                in_list = True
            out.append(f"<li>{_BULLET_RE.sub('', trimmed)}</li>")
            continue
        if in_list:
            out.append("</ul>")
            in_list = False
        if trimmed:
            out.append(f'<p style="margin:8px 0;color:#222;">{trimmed}</p>')
        else:
            out.append("<p></p>")
    if in_list:
        out.append("</ul>")
    return "\n".join(out)


def render_summary_email(summary: str, participants: Optional[Sequence[str]] = None) -> str:
    participants_html = ""
    if participants:
        items = "".join(f"<li>{html.escape(str(p))}</li>" for p in participants)
        participants_html = (
            '<div style="margin-bottom:16px;">'
            '<h3 style="margin:0 0 8px 0;color:#333;">Participants</h3>'
            f'<ul style="margin:0;padding-left:18px;color:#333;">{items}</ul>'
            "</div>"
        )
    body_html = markdown_to_html(clean_summary(summary))
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 680px; margin: 0 auto; padding: 22px; background-color: #f6f8fb;">
      <div style="max-width:560px; margin:0 auto; background:#ffffff; border-radius:10px; padding:20px; box-shadow:0 1px 3px rgba(0,0,0,0.06);">
        <div style="text-align:center; margin-bottom:14px;">
          <h1 style="color:#111; margin:0; font-size:20px;">Meeting summary</h1>
        </div>
        {participants_html}
        <div style="padding:12px 14px; border-radius:8px; background:#fafafa;">
          {body_html}
        </div>
        <div style="margin-top:14px; font-size:13px; color:#666;">This is an automated message.</div>
      </div>
    </div>
    """


class ResendMailer:
    def __init__(
        self,
        config: MailConfig,
        log_dir: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._log_path = os.path.join(log_dir, "mail.log")
        self._transport = transport
        self._logger = logging.getLogger("recap.mailer")

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def _record(self, outcome: str, to: str, subject: str, error: str = "") -> None:
        """Append a delivery line to mail.log so operators can audit sends later."""
        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        entry = f"[{stamp}] {outcome} to={to} subject={subject}"
        if error:
            entry = f"{entry} err={error}"
        try:
            os.makedirs(os.path.dirname(self._log_path), exist_ok=True)
            with open(self._log_path, "a", encoding="utf-8") as f:
                f.write(entry + "\n")
        except OSError as exc:
            self._logger.warning("Failed to write mail log: %s", exc)

    async def send_summary(
        self,
        to: str,
        subject: str,
        summary: str,
        participants: Optional[Sequence[str]] = None,
    ) -> None:
        if not self._config.api_key:
            raise ConfigError("RESEND_API_KEY not configured")

        payload = {
            "from": self._config.sender,
            "to": [to],
            "subject": subject,
            "html": render_summary_email(summary, participants),
        }
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._config.timeout_seconds
            ) as client:
                response = await client.post(
                    self._config.api_url,
                    headers={"Authorization": f"Bearer {self._config.api_key}"},
                    json=payload,
                )
        except httpx.HTTPError as exc:
            self._logger.warning("Failed to send summary to %s: %s", to, exc)
            self._record("FAILED", to, subject, str(exc))
            raise UpstreamError(f"Mail delivery to {to} failed: {exc}") from exc

        if not response.is_success:
            body = response.text
            self._logger.warning(
                "Mail provider rejected %s: status=%s body=%s", to, response.status_code, body[:500]
            )
            self._record("FAILED", to, subject, f"{response.status_code} {body[:200]}")
            raise UpstreamError(
                f"Mail delivery to {to} failed: {response.status_code}",
                status=response.status_code,
                body=body,
            )

        self._record("SENT", to, subject)
        self._logger.info("Summary sent to %s", to)
