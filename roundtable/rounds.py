"""Round execution: one paced, sequential ask per participant."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from config.config_loader import PromptsConfig
from roundtable.backend.base import BackendError, MeetingBackend
from roundtable.costs import CostAccumulator
from roundtable.desks import DeskResolver, ResolutionFailure
from roundtable.errors import classify_error
from roundtable.models import AskResult, Message, Participant, PeerResponse, new_message_id
from roundtable.state import MessageAppended

logger = logging.getLogger(__name__)

DEFAULT_PACING_SEC = 0.8

Emit = Callable[[MessageAppended], None]


@dataclass(frozen=True)
class Round1Prompt:
    utterance: str
    history: tuple[dict[str, str], ...] = ()   # prior transcript as chat turns


@dataclass(frozen=True)
class Round2Prompt:
    utterance: str
    responses: tuple[PeerResponse, ...]


RoundPrompt = Round1Prompt | Round2Prompt


@dataclass
class RoundOutcome:
    round_number: int
    responses: list[PeerResponse] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)     # handles with provider failures
    skipped: list[str] = field(default_factory=list)    # handles never asked


def chat_history(messages: tuple[Message, ...] | list[Message]) -> list[dict[str, str]]:
    """Render a transcript as chat turns, dropping system notices."""
    history: list[dict[str, str]] = []
    for m in messages:
        if m.is_system:
            continue
        if m.is_user:
            history.append({"role": "user", "content": m.content})
        else:
            history.append({"role": "assistant", "content": f"[{m.sender_name}]: {m.content}"})
    return history


class RoundExecutor:
    """Runs a round across participants strictly in list order.

    Each result is emitted as soon as it arrives. One participant failing
    never stops the others.
    """

    def __init__(
        self,
        backend: MeetingBackend,
        resolver: DeskResolver,
        costs: CostAccumulator,
        prompts: PromptsConfig,
        pacing_sec: float = DEFAULT_PACING_SEC,
        ask_timeout_sec: float | None = 120.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._resolver = resolver
        self._costs = costs
        self._prompts = prompts
        self._pacing_sec = pacing_sec
        self._ask_timeout_sec = ask_timeout_sec
        self._sleep = sleep

    async def run_round(
        self,
        meeting_id: str,
        participants: list[Participant],
        prompt: RoundPrompt,
        round_number: int,
        emit: Emit,
        *,
        persisted: bool = True,
        active: Callable[[], bool] | None = None,
    ) -> RoundOutcome:
        """Ask every participant once and emit one message per attempted call.

        Args:
            meeting_id: Meeting the messages belong to.
            participants: Eligible participants; their order is the transcript order.
            prompt: Round1Prompt or Round2Prompt.
            round_number: 1 or 2, stamped on every emitted message.
            emit: Receives a MessageAppended event per transcript entry.
            persisted: Whether meeting_id is known to the backend. If not,
                calls go through the plain chat endpoint with local history.
            active: Checked before each participant; returning False stops
                the round without touching calls already made.

        Returns:
            RoundOutcome with the successful responses in iteration order.
        """
        outcome = RoundOutcome(round_number=round_number)

        if len(participants) > 1:
            divider = self._prompts.round1_divider if round_number == 1 else self._prompts.round2_divider
            emit(MessageAppended(meeting_id, Message.system(divider, round_number)))

        logger.info("Starting round %d with %d participants", round_number, len(participants))

        for index, participant in enumerate(participants):
            if active is not None and not active():
                logger.info("Round %d stopped before %s: meeting closed", round_number, participant.handle)
                break

            if index > 0:
                await self._sleep(self._pacing_sec)
                if active is not None and not active():
                    logger.info("Round %d stopped before %s: meeting closed", round_number, participant.handle)
                    break

            peers: list[PeerResponse] = []
            if isinstance(prompt, Round2Prompt):
                own = [r for r in prompt.responses if r.handle == participant.handle]
                peers = [r for r in prompt.responses if r.handle != participant.handle]
                if not own or not peers:
                    logger.debug("Skipping %s in round 2: nothing to react to", participant.handle)
                    outcome.skipped.append(participant.handle)
                    continue

            desk_id = await self._resolver.resolve(participant.handle)
            if isinstance(desk_id, ResolutionFailure):
                logger.warning("Skipping %s in round %d: %s", participant.handle, round_number, desk_id.reason)
                outcome.skipped.append(participant.handle)
                continue

            result = await self._ask(meeting_id, desk_id, prompt, round_number, peers, persisted)

            if isinstance(result, AskResult):
                emit(MessageAppended(meeting_id, Message(
                    id=new_message_id(),
                    sender=participant.handle,
                    sender_name=participant.name,
                    content=result.text,
                    timestamp=time.time(),
                    round_number=round_number,
                    cost_usd=result.cost_usd,
                )))
                outcome.responses.append(PeerResponse(participant.handle, participant.name, result.text))
                self._costs.record(result.cost_usd, participant.handle)
            else:
                logger.warning("%s failed in round %d: %s", participant.handle, round_number, result)
                emit(MessageAppended(meeting_id, Message(
                    id=new_message_id(),
                    sender=participant.handle,
                    sender_name=participant.name,
                    content=f"[{classify_error(result)}]",
                    timestamp=time.time(),
                    round_number=round_number,
                    cost_usd=result.cost_usd,
                    is_error=True,
                )))
                outcome.failed.append(participant.handle)
                self._costs.record(result.cost_usd, participant.handle)

        logger.info(
            "Round %d complete: %d/%d participants answered",
            round_number,
            len(outcome.responses),
            len(participants),
        )
        return outcome

    def _messages_for(self, prompt: RoundPrompt, peers: list[PeerResponse]) -> list[dict[str, str]]:
        if isinstance(prompt, Round1Prompt):
            return [*prompt.history, {"role": "user", "content": prompt.utterance}]
        peer_block = "\n\n".join(f"[{r.name}]: {r.content}" for r in peers)
        return [
            {"role": "user", "content": prompt.utterance},
            {"role": "assistant", "content": peer_block},
            {"role": "user", "content": self._prompts.round2_instruction},
        ]

    async def _ask(
        self,
        meeting_id: str,
        desk_id: str,
        prompt: RoundPrompt,
        round_number: int,
        peers: list[PeerResponse],
        persisted: bool,
    ) -> AskResult | BackendError:
        """Issue exactly one call. Never raises; returns BackendError on failure."""
        if persisted:
            call = self._backend.ask_participant(
                meeting_id,
                desk_id,
                prompt.utterance,
                round_number,
                peers if isinstance(prompt, Round2Prompt) else None,
            )
        else:
            call = self._backend.chat(desk_id, self._messages_for(prompt, peers))

        try:
            result = await asyncio.wait_for(call, timeout=self._ask_timeout_sec)
        except TimeoutError:
            return BackendError("ask", f"Request timed out after {self._ask_timeout_sec:g}s")
        except BackendError as exc:
            return exc
        except Exception as exc:
            return BackendError("ask", f"Unexpected error: {exc}")

        if not result.text.strip():
            return BackendError("ask", "Empty response content", cost_usd=result.cost_usd)
        return result
