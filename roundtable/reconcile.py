"""Reconciliation between the runtime meeting and its durable backend record."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime

from roundtable.backend.base import BackendError, MeetingBackend
from roundtable.desks import DeskResolver, ResolutionFailure
from roundtable.models import (
    SYSTEM_SENDER,
    USER_SENDER,
    BackendMeeting,
    BackendMessage,
    Meeting,
    Message,
    Participant,
)

logger = logging.getLogger(__name__)

UNKNOWN_AGENT = "Unknown agent"


@dataclass
class ReconcileReport:
    mapped: list[str] = field(default_factory=list)         # desk ids found in the resolver
    name_matched: list[str] = field(default_factory=list)   # desk ids joined by a unique name
    ambiguous: list[str] = field(default_factory=list)      # desk ids whose name fits several roster entries
    placeholders: list[str] = field(default_factory=list)   # desk ids kept as unknown participants

    @property
    def clean(self) -> bool:
        return not (self.name_matched or self.ambiguous or self.placeholders)


def placeholder_meeting_id() -> str:
    return f"meeting-{int(time.time() * 1000)}"


def _parse_started_at(value: str | None) -> float:
    if not value:
        return time.time()
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return time.time()


class Reconciler:
    """Starts meetings on the backend and rebuilds them on resume."""

    def __init__(self, backend: MeetingBackend, resolver: DeskResolver) -> None:
        self._backend = backend
        self._resolver = resolver

    async def fresh_start(self, topic: str, participants: list[Participant]) -> Meeting:
        """Resolve desks, then persist the meeting.

        Participants whose desk cannot be resolved stay in the local meeting
        (resolution is retried lazily at ask time) but are left out of the
        backend record. If persistence fails the meeting gets a placeholder
        id and is not persisted.
        """
        desk_ids: list[str] = []
        for participant in participants:
            if participant.is_human:
                continue
            desk_id = await self._resolver.resolve(participant.handle)
            if isinstance(desk_id, ResolutionFailure):
                logger.warning("Starting without a desk for %s: %s", participant.handle, desk_id.reason)
                continue
            desk_ids.append(desk_id)

        meeting_id: str | None = None
        if desk_ids:
            try:
                entity = await self._backend.start_meeting(topic, desk_ids)
                meeting_id = entity.id
            except BackendError as exc:
                logger.warning("Failed to persist meeting %r: %s", topic, exc)
        else:
            logger.warning("No desk resolved for meeting %r, not persisting", topic)

        persisted = meeting_id is not None
        if meeting_id is None:
            meeting_id = placeholder_meeting_id()
            logger.warning("Meeting %r running unpersisted as %s", topic, meeting_id)

        return Meeting(
            id=meeting_id,
            topic=topic,
            participants=tuple(participants),
            persisted=persisted,
        )

    def rebuild(self, entity: BackendMeeting) -> tuple[Meeting, ReconcileReport]:
        """Turn a persisted meeting back into a runtime Meeting.

        Never raises on malformed input. The transcript always has one entry
        per persisted message.
        """
        report = ReconcileReport()
        roster = self._resolver.roster
        names_by_desk = _names_by_desk(entity.messages)
        by_desk: dict[str, Participant] = {}

        for desk_id in dict.fromkeys(entity.participants):
            handle = self._resolver.handle_for(desk_id)
            if handle is not None and handle in roster:
                by_desk[desk_id] = roster[handle]
                report.mapped.append(desk_id)
                continue

            name = names_by_desk.get(desk_id)
            matches = [p for p in roster.values() if name and p.name == name and not p.is_human]
            if len(matches) == 1 and self._resolver.desk_id_for(matches[0].handle) in (None, desk_id):
                participant = matches[0]
                self._resolver.remember(participant.handle, desk_id)
                by_desk[desk_id] = participant
                report.name_matched.append(desk_id)
                logger.warning("Rejoined desk %s to %s by display name", desk_id, participant.handle)
                continue
            if len(matches) > 1:
                report.ambiguous.append(desk_id)
                logger.warning(
                    "Desk %s matches %d participants named %r, keeping it unresolved",
                    desk_id, len(matches), name,
                )

            placeholder = Participant(
                handle=f"unknown-{desk_id}",
                name=name or UNKNOWN_AGENT,
                desk_id=desk_id,
            )
            self._resolver.register(placeholder)
            by_desk[desk_id] = placeholder
            report.placeholders.append(desk_id)

        messages = tuple(self._translate(m, by_desk) for m in entity.messages)

        meeting = Meeting(
            id=entity.id,
            topic=entity.topic,
            participants=tuple(by_desk.values()),
            messages=messages,
            started_at=_parse_started_at(entity.started_at),
            persisted=True,
        )
        logger.info(
            "Rebuilt meeting %s: %d participants, %d messages (%d by name, %d ambiguous, %d placeholders)",
            entity.id, len(meeting.participants), len(messages),
            len(report.name_matched), len(report.ambiguous), len(report.placeholders),
        )
        return meeting, report

    def _translate(self, message: BackendMessage, by_desk: dict[str, Participant]) -> Message:
        if message.is_user:
            sender, sender_name = USER_SENDER, message.sender_name or "You"
        elif message.is_system:
            sender, sender_name = SYSTEM_SENDER, "System"
        elif message.sender_id in by_desk:
            participant = by_desk[message.sender_id]
            sender, sender_name = participant.handle, participant.name
        else:
            handle = self._resolver.handle_for(message.sender_id)
            participant = self._resolver.roster.get(handle) if handle else None
            if participant is not None:
                sender, sender_name = participant.handle, participant.name
            else:
                sender, sender_name = f"unknown-{message.sender_id}", message.sender_name or UNKNOWN_AGENT

        return Message(
            id=message.id,
            sender=sender,
            sender_name=sender_name,
            content=message.content,
            timestamp=message.timestamp,
            cost_usd=message.cost_usd,
        )


def _names_by_desk(messages: list[BackendMessage]) -> dict[str, str]:
    names: dict[str, str] = {}
    for m in messages:
        if m.is_user or m.is_system or not m.sender_name:
            continue
        names.setdefault(m.sender_id, m.sender_name)
    return names
