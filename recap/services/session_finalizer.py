"""Finalize a room: aggregate, normalize, summarize, deliver, clean up."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from recap.services.recipients import DeliveryReport, Resolution
from recap.services.transcript_normalizer import TranscriptNormalizer

if TYPE_CHECKING:
    from recap.services.mailer import ResendMailer
    from recap.services.recipients import RecipientResolver, SummaryDelivery
    from recap.services.summarization import SummarizationService
    from recap.services.transcript_store import TranscriptStore

_logger = logging.getLogger(__name__)

SUMMARY_PREVIEW_CHARS = 2000


@dataclass(frozen=True)
class FinalizeResult:
    room: str
    full_text: str
    summary: Optional[str]
    provider_status: Optional[int] = None
    participants: tuple[str, ...] = ()
    files: tuple[str, ...] = ()
    resolution: Resolution = field(default_factory=Resolution)
    report: DeliveryReport = field(default_factory=DeliveryReport)
    cleaned_up: bool = False

    def to_response(self) -> dict:
        return {
            "success": True,
            "fullText": self.full_text,
            "summary": self.summary,
            "providerStatus": self.provider_status,
            "participants": list(self.participants),
            "recipients": list(self.resolution.addresses),
            "delivered": self.report.sent,
            "cleanedUp": self.cleaned_up,
        }


def summary_subject(room: str) -> str:
    return f"Meeting summary {room}".strip()


class SessionFinalizer:
    def __init__(
        self,
        store: "TranscriptStore",
        normalizer: TranscriptNormalizer,
        summarizer: "SummarizationService",
        mailer: "ResendMailer",
        resolver: "RecipientResolver",
        delivery: "SummaryDelivery",
    ) -> None:
        self._store = store
        self._normalizer = normalizer
        self._summarizer = summarizer
        self._mailer = mailer
        self._resolver = resolver
        self._delivery = delivery

    async def finalize(
        self, room: str, user_id: Optional[str] = None, email: Optional[str] = None
    ) -> FinalizeResult:
        _logger.info("Finalize requested: room=%s user=%s email=%s", room, user_id, email)

        aggregate = await self._store.aggregate(room, owner=user_id)
        if aggregate.refs:
            _logger.info(
                "Aggregating transcripts: room=%s files=%d chars=%d",
                room,
                len(aggregate.refs),
                len(aggregate.text),
            )
        else:
            _logger.info("No transcripts found for room %s", room)

        normalized = self._normalizer.normalize(aggregate.text)
        result = await self._summarizer.summarize(
            normalized.text, normalized.participants, raw_text=aggregate.text
        )
        summary = result.summary

        resolution = Resolution()
        report = DeliveryReport()
        cleaned_up = False
        if summary and self._mailer.enabled:
            resolution = await self._resolver.resolve(room, email, aggregate.text)
            if resolution.addresses:
                report = await self._delivery.deliver(
                    resolution.addresses,
                    summary_subject(room),
                    summary,
                    normalized.participants,
                )
                if report.all_succeeded:
                    removed = await self._store.delete(aggregate.refs)
                    cleaned_up = True
                    _logger.info("Deleted %d transcript file(s) for room %s", removed, room)
                else:
                    _logger.warning(
                        "Keeping transcripts for room %s: %d of %d deliveries failed",
                        room,
                        len(report.failed),
                        len(report.outcomes),
                    )
            else:
                _logger.info("No recipients for room %s; summary not delivered", room)

        if summary:
            _logger.info("Summary preview: %s", summary[:SUMMARY_PREVIEW_CHARS])
            _logger.debug("Full summary: %s", summary)
        else:
            _logger.info("No summary generated for room %s", room)

        return FinalizeResult(
            room=room,
            full_text=aggregate.text,
            summary=summary,
            provider_status=result.provider_status,
            participants=normalized.participants,
            files=tuple(aggregate.paths),
            resolution=resolution,
            report=report,
            cleaned_up=cleaned_up,
        )
