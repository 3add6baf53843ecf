"""Pure dataclasses for meetings, transcripts and backend entities. No I/O."""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any

USER_SENDER = "user"
SYSTEM_SENDER = "system"


def new_message_id() -> str:
    return f"msg-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Participant:
    handle: str            # local, process-unique
    name: str
    color: str = "#feca57"
    avatar: str = "avatar1"
    model: str = ""
    is_human: bool = False
    desk_id: str | None = None   # durable id seeded from config, if known


@dataclass(frozen=True)
class Message:
    id: str
    sender: str            # participant handle, "user" or "system"
    sender_name: str
    content: str
    timestamp: float
    round_number: int = 0
    cost_usd: float | None = None
    is_error: bool = False

    @property
    def is_system(self) -> bool:
        return self.sender == SYSTEM_SENDER

    @property
    def is_user(self) -> bool:
        return self.sender == USER_SENDER

    @classmethod
    def system(cls, content: str, round_number: int = 0) -> "Message":
        return cls(new_message_id(), SYSTEM_SENDER, "System", content, time.time(), round_number)

    @classmethod
    def user(cls, content: str, round_number: int = 0) -> "Message":
        return cls(new_message_id(), USER_SENDER, "You", content, time.time(), round_number)


@dataclass(frozen=True)
class Meeting:
    id: str
    topic: str
    participants: tuple[Participant, ...]
    messages: tuple[Message, ...] = ()
    started_at: float = field(default_factory=time.time)
    persisted: bool = False

    def participant(self, handle: str) -> Participant | None:
        return next((p for p in self.participants if p.handle == handle), None)


@dataclass(frozen=True)
class PeerResponse:
    handle: str
    name: str
    content: str


@dataclass(frozen=True)
class PendingRoundContext:
    utterance: str
    participants: tuple[Participant, ...]
    responses: tuple[PeerResponse, ...]


@dataclass
class AskResult:
    text: str
    cost_usd: float | None
    latency_ms: float | None
    model: str | None = None


# --- Backend entities -------------------------------------------------------

def to_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@dataclass
class BackendMessage:
    id: str
    sender_id: str
    sender_name: str
    content: str
    timestamp: float           # epoch seconds
    is_user: bool = False
    sender_model: str | None = None
    cost_usd: float | None = None

    @property
    def is_system(self) -> bool:
        return not self.is_user and (self.sender_id == SYSTEM_SENDER or self.sender_name == "System")

    @classmethod
    def from_payload(cls, raw: Any) -> "BackendMessage":
        """Build from a backend JSON object, tolerating missing or bad fields."""
        data = raw if isinstance(raw, dict) else {}
        is_user = bool(data.get("isUser", False))
        timestamp_ms = to_float(data.get("timestamp"))
        content = data.get("content")
        return cls(
            id=str(data.get("id") or new_message_id()),
            sender_id=str(data.get("senderId") or (USER_SENDER if is_user else SYSTEM_SENDER)),
            sender_name=str(data.get("senderName") or ""),
            content=content if isinstance(content, str) else "",
            timestamp=timestamp_ms / 1000 if timestamp_ms is not None else time.time(),
            is_user=is_user,
            sender_model=data.get("senderModel"),
            cost_usd=to_float(data.get("costUsd")),
        )


@dataclass
class BackendMeeting:
    id: str
    topic: str
    participants: list[str] = field(default_factory=list)   # durable desk ids
    messages: list[BackendMessage] = field(default_factory=list)
    status: str = "active"        # "active" or "ended"
    started_at: str | None = None
    ended_at: str | None = None

    @classmethod
    def from_payload(cls, raw: Any) -> "BackendMeeting":
        data = raw if isinstance(raw, dict) else {}
        participants = data.get("participants")
        messages = data.get("messages")
        return cls(
            id=str(data.get("id") or ""),
            topic=str(data.get("topic") or ""),
            participants=[str(p) for p in participants if p] if isinstance(participants, list) else [],
            messages=[BackendMessage.from_payload(m) for m in messages] if isinstance(messages, list) else [],
            status=str(data.get("status") or "active"),
            started_at=data.get("started_at"),
            ended_at=data.get("ended_at"),
        )
