"""Abstract contract for the meeting backend (desks, meetings, asks)."""

from abc import ABC, abstractmethod

from roundtable.models import AskResult, BackendMeeting, PeerResponse


class BackendError(Exception):
    """Raised when a backend call fails."""

    def __init__(
        self,
        operation: str,
        message: str,
        status: int | None = None,
        cost_usd: float | None = None,
    ) -> None:
        self.operation = operation
        self.message = message
        self.status = status
        self.cost_usd = cost_usd
        super().__init__(message)


class MeetingBackend(ABC):
    """Abstract base for the durable store behind desks and meetings."""

    @abstractmethod
    async def create_desk(
        self,
        name: str,
        agent_name: str,
        color: str,
        avatar: str,
        model_id: str,
    ) -> str:
        """Provision a desk record and return its durable id."""
        ...

    @abstractmethod
    async def start_meeting(self, topic: str, participant_ids: list[str]) -> BackendMeeting:
        ...

    @abstractmethod
    async def ask_participant(
        self,
        meeting_id: str,
        desk_id: str,
        content: str,
        round_number: int,
        peer_responses: list[PeerResponse] | None = None,
    ) -> AskResult:
        """Ask one desk inside a persisted meeting.

        Args:
            meeting_id: Durable meeting id.
            desk_id: Durable desk id of the participant being asked.
            content: The user's utterance.
            round_number: 1 for independent answers, 2 for the debate round.
            peer_responses: Round-1 answers of the other participants (round 2 only).

        Raises:
            BackendError: On HTTP failure, provider failure or timeout.
        """
        ...

    @abstractmethod
    async def chat(self, desk_id: str, messages: list[dict[str, str]]) -> AskResult:
        """Plain chat completion for a desk, used when the meeting is not persisted."""
        ...

    @abstractmethod
    async def end_meeting(self, meeting_id: str) -> None:
        ...

    @abstractmethod
    async def reactivate_meeting(self, meeting_id: str) -> BackendMeeting:
        ...

    @abstractmethod
    async def get_meeting(self, meeting_id: str) -> BackendMeeting:
        ...

    @abstractmethod
    async def list_meetings(self, status: str | None = None) -> list[BackendMeeting]:
        ...

    @abstractmethod
    async def delete_meeting(self, meeting_id: str) -> None:
        ...

    @abstractmethod
    async def delete_all_meetings(self) -> int:
        """Delete every meeting for the team. Returns the number removed."""
        ...

    async def close(self) -> None:
        """Release transport resources. Default is a no-op."""
