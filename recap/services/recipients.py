"""Who receives a room's summary, and sending it to each of them.

Resolution is a chain of strategies tried in order; each returns a list of
addresses or ``None`` and the first non-empty answer wins:

1. the address the caller passed explicitly,
2. the participant emails the meeting registry knows for the room,
3. addresses mentioned in the transcript itself.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence
from urllib.parse import quote

import httpx

from recap.services.config import RegistryConfig
from recap.services.mailer import Mailer

_logger = logging.getLogger("recap.recipients")

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


@dataclass(frozen=True)
class RecipientQuery:
    room: str
    explicit_email: Optional[str]
    transcript_text: str


RecipientStrategy = Callable[[RecipientQuery], Awaitable[Optional[list[str]]]]


@dataclass(frozen=True)
class Resolution:
    tier: Optional[str] = None
    addresses: tuple[str, ...] = ()


def extract_emails(text: str) -> list[str]:
    """Distinct email-looking tokens in order of first appearance."""
    return list(dict.fromkeys(EMAIL_RE.findall(text or "")))


async def explicit_recipient(query: RecipientQuery) -> Optional[list[str]]:
    email = (query.explicit_email or "").strip()
    return [email] if email else None


async def transcript_recipients(query: RecipientQuery) -> Optional[list[str]]:
    found = extract_emails(query.transcript_text)
    if found:
        _logger.info("Extracted recipient emails from transcript: count=%d", len(found))
    return found or None


class MeetingRegistryClient:
    """Reads a room's participant emails from the meeting backend."""

    def __init__(
        self, config: RegistryConfig, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self._config = config
        self._transport = transport
        self._logger = logging.getLogger("recap.registry")

    @property
    def enabled(self) -> bool:
        return bool(self._config.base_url)

    def meeting_url(self, room: str) -> str:
        return f"{self._config.base_url.rstrip('/')}/api/meetings/{quote(room, safe='')}"

    async def participant_emails(self, room: str) -> Optional[list[str]]:
        if not self.enabled:
            self._logger.info("Meeting registry not configured")
            return None
        url = self.meeting_url(room)
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._config.timeout_seconds
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            self._logger.warning("Failed fetching meeting participants: %s", exc)
            return None
        if not response.is_success:
            self._logger.warning("Failed fetching meeting participants: status=%s", response.status_code)
            return None
        try:
            body = response.json()
        except ValueError:
            self._logger.warning("Meeting registry returned non-JSON body")
            return None

        meeting = body.get("meeting") if isinstance(body, dict) else None
        emails = meeting.get("participantsEmails") if isinstance(meeting, dict) else None
        if not isinstance(emails, list):
            self._logger.info("No participantsEmails found on meeting %s", room)
            return None
        cleaned = [str(e).strip() for e in emails if isinstance(e, str) and e.strip()]
        return list(dict.fromkeys(cleaned)) or None

    async def __call__(self, query: RecipientQuery) -> Optional[list[str]]:
        return await self.participant_emails(query.room)


class RecipientResolver:
    def __init__(self, strategies: Sequence[tuple[str, RecipientStrategy]]) -> None:
        self._strategies = list(strategies)

    async def resolve(
        self, room: str, explicit_email: Optional[str], transcript_text: str
    ) -> Resolution:
        query = RecipientQuery(room=room, explicit_email=explicit_email, transcript_text=transcript_text)
        for tier, strategy in self._strategies:
            addresses = await strategy(query)
            if addresses:
                _logger.info("Recipients resolved by %s: count=%d", tier, len(addresses))
                return Resolution(tier=tier, addresses=tuple(addresses))
        _logger.info("No recipients resolved for room %s", room)
        return Resolution()


def build_recipient_resolver(registry: MeetingRegistryClient) -> RecipientResolver:
    return RecipientResolver(
        [
            ("explicit", explicit_recipient),
            ("registry", registry),
            ("transcript", transcript_recipients),
        ]
    )


@dataclass(frozen=True)
class DeliveryOutcome:
    address: str
    ok: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class DeliveryReport:
    outcomes: tuple[DeliveryOutcome, ...] = field(default_factory=tuple)

    @property
    def sent(self) -> list[str]:
        return [o.address for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[str]:
        return [o.address for o in self.outcomes if not o.ok]

    @property
    def all_succeeded(self) -> bool:
        return bool(self.outcomes) and not self.failed


class SummaryDelivery:
    """Sends one summary to many addresses; each address succeeds or fails alone."""

    def __init__(self, mailer: Mailer) -> None:
        self._mailer = mailer
        self._logger = logging.getLogger("recap.delivery")

    async def deliver(
        self,
        addresses: Sequence[str],
        subject: str,
        summary: str,
        participants: Optional[Sequence[str]] = None,
    ) -> DeliveryReport:
        outcomes: list[DeliveryOutcome] = []
        for address in addresses:
            self._logger.info("Sending summary to %s", address)
            try:
                await self._mailer.send_summary(address, subject, summary, participants)
            except Exception as exc:
                self._logger.warning("Failed emailing %s: %s", address, exc)
                outcomes.append(DeliveryOutcome(address=address, ok=False, error=str(exc)))
                continue
            outcomes.append(DeliveryOutcome(address=address, ok=True))
        return DeliveryReport(outcomes=tuple(outcomes))
