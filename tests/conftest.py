"""Shared pytest fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, BackendConfig, DefaultsConfig, PromptsConfig
from roundtable.backend.base import MeetingBackend
from roundtable.costs import CostAccumulator
from roundtable.desks import DeskResolver
from roundtable.models import (
    AskResult,
    BackendMeeting,
    BackendMessage,
    Participant,
    PeerResponse,
    new_message_id,
)
from roundtable.rounds import RoundExecutor
from roundtable.session import MeetingSession


class FakeBackend(MeetingBackend):
    """Test double MeetingBackend. Every operation is an AsyncMock."""

    def __init__(self) -> None:
        self.meetings: dict[str, BackendMeeting] = {}
        self.asked: list[tuple[str, int]] = []   # (desk_id, round) in call order

        async def create_desk(name, agent_name, color, avatar, model_id):
            return f"desk-{agent_name.lower()}"

        async def start_meeting(topic, participant_ids):
            meeting = BackendMeeting(id=f"mtg-{len(self.meetings) + 1}", topic=topic,
                                     participants=list(participant_ids))
            self.meetings[meeting.id] = meeting
            return meeting

        async def ask_participant(meeting_id, desk_id, content, round_number, peer_responses=None):
            self.asked.append((desk_id, round_number))
            if peer_responses:
                peers = ", ".join(r.name for r in peer_responses)
                return AskResult(f"{desk_id} building on {peers}", 0.02, 120.0)
            return AskResult(f"{desk_id} thinks about: {content}", 0.01, 100.0)

        async def chat(desk_id, messages):
            self.asked.append((desk_id, 0))
            return AskResult(f"{desk_id} chat reply", 0.005, 80.0)

        async def stored(meeting_id):
            return self.meetings[meeting_id]

        # Shadow the class methods with AsyncMocks at the instance level.
        # ABC check passes because the methods are defined in the class body below.
        self.create_desk = AsyncMock(side_effect=create_desk)  # type: ignore[method-assign]
        self.start_meeting = AsyncMock(side_effect=start_meeting)  # type: ignore[method-assign]
        self.ask_participant = AsyncMock(side_effect=ask_participant)  # type: ignore[method-assign]
        self.chat = AsyncMock(side_effect=chat)  # type: ignore[method-assign]
        self.end_meeting = AsyncMock(return_value=None)  # type: ignore[method-assign]
        self.reactivate_meeting = AsyncMock(side_effect=stored)  # type: ignore[method-assign]
        self.get_meeting = AsyncMock(side_effect=stored)  # type: ignore[method-assign]
        self.list_meetings = AsyncMock(return_value=[])  # type: ignore[method-assign]
        self.delete_meeting = AsyncMock(return_value=None)  # type: ignore[method-assign]
        self.delete_all_meetings = AsyncMock(return_value=0)  # type: ignore[method-assign]

    async def create_desk(self, name, agent_name, color, avatar, model_id) -> str:  # type: ignore[override]
        raise NotImplementedError

    async def start_meeting(self, topic, participant_ids) -> BackendMeeting:  # type: ignore[override]
        raise NotImplementedError

    async def ask_participant(self, meeting_id, desk_id, content, round_number, peer_responses=None) -> AskResult:  # type: ignore[override]
        raise NotImplementedError

    async def chat(self, desk_id, messages) -> AskResult:  # type: ignore[override]
        raise NotImplementedError

    async def end_meeting(self, meeting_id) -> None:  # type: ignore[override]
        raise NotImplementedError

    async def reactivate_meeting(self, meeting_id) -> BackendMeeting:  # type: ignore[override]
        raise NotImplementedError

    async def get_meeting(self, meeting_id) -> BackendMeeting:  # type: ignore[override]
        raise NotImplementedError

    async def list_meetings(self, status=None) -> list[BackendMeeting]:  # type: ignore[override]
        raise NotImplementedError

    async def delete_meeting(self, meeting_id) -> None:  # type: ignore[override]
        raise NotImplementedError

    async def delete_all_meetings(self) -> int:  # type: ignore[override]
        raise NotImplementedError


class SleepRecorder:
    """Stands in for asyncio.sleep and records each requested delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def backend_message(sender_id: str, sender_name: str, content: str, *, is_user: bool = False,
                    ts: float = 1_700_000_000.0) -> BackendMessage:
    return BackendMessage(
        id=new_message_id(),
        sender_id=sender_id,
        sender_name=sender_name,
        content=content,
        timestamp=ts,
        is_user=is_user,
    )


def peer(handle: str, content: str) -> PeerResponse:
    return PeerResponse(handle, handle.capitalize(), content)


@pytest.fixture
def roster() -> dict[str, Participant]:
    return {
        "ceo": Participant(handle="ceo", name="You", is_human=True),
        "atlas": Participant(handle="atlas", name="Atlas", model="claude-sonnet-4-20250514"),
        "nova": Participant(handle="nova", name="Nova", color="#54a0ff", avatar="avatar2", model="gpt-4o"),
        "sage": Participant(handle="sage", name="Sage", color="#1dd1a1", avatar="avatar3"),
    }


@pytest.fixture
def prompts() -> PromptsConfig:
    return PromptsConfig()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def resolver(backend: FakeBackend, roster: dict[str, Participant]) -> DeskResolver:
    return DeskResolver(backend, roster)


@pytest.fixture
def costs() -> CostAccumulator:
    return CostAccumulator()


@pytest.fixture
def executor(
    backend: FakeBackend,
    resolver: DeskResolver,
    costs: CostAccumulator,
    prompts: PromptsConfig,
    sleeper: SleepRecorder,
) -> RoundExecutor:
    return RoundExecutor(backend, resolver, costs, prompts, pacing_sec=0.8, ask_timeout_sec=5.0, sleep=sleeper)


@pytest.fixture
def session(
    backend: FakeBackend,
    resolver: DeskResolver,
    executor: RoundExecutor,
    costs: CostAccumulator,
    prompts: PromptsConfig,
) -> MeetingSession:
    return MeetingSession(backend, resolver, executor, costs, prompts=prompts)


@pytest.fixture
def sample_app_config(tmp_path: Path, roster: dict[str, Participant], prompts: PromptsConfig) -> AppConfig:
    return AppConfig(
        backend=BackendConfig(base_url="http://backend.test", api_token_env="TEST_ROUNDTABLE_TOKEN"),
        defaults=DefaultsConfig(output_dir=tmp_path / "transcripts", desk_map_path=None),
        prompts=prompts,
        participants=roster,
    )
