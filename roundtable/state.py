"""Discussion phase, transition events and the reducer that applies them.

Every change to the session (phase, transcript, pending round-2 context)
goes through `reduce`, which makes the cycle

    idle -> round1 -> (awaiting-round2 | idle) -> round2 -> idle

mechanically checkable.
"""

from dataclasses import dataclass, replace
from enum import Enum

from roundtable.models import Meeting, Message, Participant, PeerResponse, PendingRoundContext


class Phase(str, Enum):
    IDLE = "idle"
    ROUND1 = "round1"
    AWAITING_ROUND2 = "awaiting-round2"
    ROUND2 = "round2"


@dataclass(frozen=True)
class SessionState:
    phase: Phase = Phase.IDLE
    meeting: Meeting | None = None
    pending: PendingRoundContext | None = None


# --- Events -----------------------------------------------------------------

@dataclass(frozen=True)
class MeetingOpened:
    meeting: Meeting


@dataclass(frozen=True)
class MeetingClosed:
    pass


@dataclass(frozen=True)
class UtteranceSubmitted:
    message: Message


@dataclass(frozen=True)
class MessageAppended:
    meeting_id: str
    message: Message


@dataclass(frozen=True)
class RoundFinished:
    round_number: int
    utterance: str = ""
    participants: tuple[Participant, ...] = ()
    responses: tuple[PeerResponse, ...] = ()


@dataclass(frozen=True)
class Round2Confirmed:
    pass


@dataclass(frozen=True)
class Round2Declined:
    pass


Event = (
    MeetingOpened | MeetingClosed | UtteranceSubmitted | MessageAppended
    | RoundFinished | Round2Confirmed | Round2Declined
)


class InvalidTransition(Exception):
    """Raised when an event is not legal in the current phase."""

    def __init__(self, phase: Phase, event: object) -> None:
        self.phase = phase
        self.event = event
        super().__init__(f"{type(event).__name__} not allowed in phase {phase.value}")


def _append(meeting: Meeting, message: Message) -> Meeting:
    return replace(meeting, messages=(*meeting.messages, message))


def reduce(state: SessionState, event: Event) -> SessionState:
    """Apply one event and return the next state. Raises InvalidTransition."""
    if isinstance(event, MeetingOpened):
        return SessionState(phase=Phase.IDLE, meeting=event.meeting)

    if isinstance(event, MeetingClosed):
        return SessionState()

    meeting = state.meeting
    if meeting is None:
        raise InvalidTransition(state.phase, event)

    if isinstance(event, UtteranceSubmitted):
        if state.phase is not Phase.IDLE:
            raise InvalidTransition(state.phase, event)
        return SessionState(phase=Phase.ROUND1, meeting=_append(meeting, event.message))

    if isinstance(event, MessageAppended):
        if event.meeting_id != meeting.id:
            raise InvalidTransition(state.phase, event)
        return replace(state, meeting=_append(meeting, event.message))

    if isinstance(event, RoundFinished):
        if event.round_number == 1 and state.phase is Phase.ROUND1:
            if len(event.responses) > 1:
                answered = {r.handle for r in event.responses}
                pending = PendingRoundContext(
                    utterance=event.utterance,
                    participants=tuple(p for p in event.participants if p.handle in answered),
                    responses=event.responses,
                )
                return SessionState(phase=Phase.AWAITING_ROUND2, meeting=meeting, pending=pending)
            return SessionState(phase=Phase.IDLE, meeting=meeting)
        if event.round_number == 2 and state.phase is Phase.ROUND2:
            return SessionState(phase=Phase.IDLE, meeting=meeting)
        raise InvalidTransition(state.phase, event)

    if isinstance(event, Round2Confirmed):
        if state.phase is not Phase.AWAITING_ROUND2:
            raise InvalidTransition(state.phase, event)
        # The context is dropped on entry; the caller captured it beforehand.
        return SessionState(phase=Phase.ROUND2, meeting=meeting)

    if isinstance(event, Round2Declined):
        if state.phase is not Phase.AWAITING_ROUND2:
            raise InvalidTransition(state.phase, event)
        return SessionState(phase=Phase.IDLE, meeting=meeting)

    raise InvalidTransition(state.phase, event)


def check_invariants(state: SessionState) -> None:
    """Raise AssertionError if the state breaks a structural rule."""
    awaiting = state.phase is Phase.AWAITING_ROUND2
    if awaiting != (state.pending is not None):
        raise AssertionError(f"pending context present={state.pending is not None} in phase {state.phase.value}")
    if state.phase is not Phase.IDLE and state.meeting is None:
        raise AssertionError(f"phase {state.phase.value} without a meeting")
    if state.pending is not None and len(state.pending.responses) < 2:
        raise AssertionError("round 2 offered with fewer than two responses")
