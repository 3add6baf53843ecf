"""Meeting session: the public facade that drives the discussion cycle."""

import logging
from collections.abc import Callable
from dataclasses import replace

from config.config_loader import AppConfig, PromptsConfig
from roundtable.backend.base import BackendError, MeetingBackend
from roundtable.costs import CostAccumulator
from roundtable.desks import DeskResolver
from roundtable.models import Meeting, Message, Participant, PendingRoundContext
from roundtable.reconcile import Reconciler, ReconcileReport
from roundtable.rounds import Round1Prompt, Round2Prompt, RoundExecutor, RoundOutcome, chat_history
from roundtable.state import (
    Event,
    MeetingClosed,
    MeetingOpened,
    MessageAppended,
    Phase,
    Round2Confirmed,
    Round2Declined,
    RoundFinished,
    SessionState,
    UtteranceSubmitted,
    check_invariants,
    reduce,
)

logger = logging.getLogger(__name__)

MessageListener = Callable[[Message], None]
PhaseListener = Callable[[Phase], None]


class MeetingSession:
    """One meeting at a time: start, talk in rounds, end or resume.

    None of the public coroutines raise. Failures end as a skipped
    participant, an inline error message, or a False/None return value.
    """

    def __init__(
        self,
        backend: MeetingBackend,
        resolver: DeskResolver,
        executor: RoundExecutor,
        costs: CostAccumulator,
        prompts: PromptsConfig | None = None,
        reconciler: Reconciler | None = None,
    ) -> None:
        self._backend = backend
        self._resolver = resolver
        self._executor = executor
        self._prompts = prompts or PromptsConfig()
        self._reconciler = reconciler or Reconciler(backend, resolver)
        self.costs = costs
        self._state = SessionState()
        self._epoch = 0
        self.last_ended: Meeting | None = None
        self.last_report: ReconcileReport | None = None
        self._message_listeners: list[MessageListener] = []
        self._phase_listeners: list[PhaseListener] = []

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        backend: MeetingBackend,
        global_costs: CostAccumulator | None = None,
    ) -> "MeetingSession":
        resolver = DeskResolver(backend, config.participants, config.defaults.desk_map_path)
        costs = CostAccumulator(parent=global_costs)
        executor = RoundExecutor(
            backend,
            resolver,
            costs,
            config.prompts,
            pacing_sec=config.defaults.pacing_ms / 1000,
            ask_timeout_sec=config.defaults.ask_timeout_sec,
        )
        return cls(backend, resolver, executor, costs, prompts=config.prompts)

    # --- Read access ---------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def meeting(self) -> Meeting | None:
        return self._state.meeting

    @property
    def transcript(self) -> tuple[Message, ...]:
        return self._state.meeting.messages if self._state.meeting else ()

    @property
    def pending(self) -> PendingRoundContext | None:
        return self._state.pending

    @property
    def persisted(self) -> bool:
        return bool(self._state.meeting and self._state.meeting.persisted)

    @property
    def resolver(self) -> DeskResolver:
        return self._resolver

    def on_message(self, listener: MessageListener) -> None:
        self._message_listeners.append(listener)

    def on_phase(self, listener: PhaseListener) -> None:
        self._phase_listeners.append(listener)

    # --- State plumbing ------------------------------------------------------

    def _dispatch(self, event: Event) -> None:
        before = self._state.phase
        self._state = reduce(self._state, event)
        check_invariants(self._state)
        if isinstance(event, (MessageAppended, UtteranceSubmitted)):
            self._notify_message(event.message)
        if self._state.phase is not before:
            logger.debug("Phase %s -> %s", before.value, self._state.phase.value)
            for listener in self._phase_listeners:
                try:
                    listener(self._state.phase)
                except Exception as exc:
                    logger.warning("Phase listener failed: %s", exc)

    def _notify_message(self, message: Message) -> None:
        for listener in self._message_listeners:
            try:
                listener(message)
            except Exception as exc:
                logger.warning("Message listener failed: %s", exc)

    def _emit(self, event: MessageAppended) -> None:
        """Route a round result to the live meeting, or to the one just ended."""
        current = self._state.meeting
        if current is not None and current.id == event.meeting_id:
            self._dispatch(event)
            return
        ended = self.last_ended
        if ended is not None and ended.id == event.meeting_id:
            logger.info("Late result for ended meeting %s from %s", ended.id, event.message.sender)
            self.last_ended = replace(ended, messages=(*ended.messages, event.message))
            return
        logger.warning("Dropping message for unknown meeting %s", event.meeting_id)

    def _close_locally(self, meeting: Meeting) -> None:
        self._epoch += 1
        self.last_ended = meeting
        self._dispatch(MeetingClosed())

    def _is_current(self, epoch: int) -> Callable[[], bool]:
        return lambda: self._epoch == epoch

    # --- Operations ----------------------------------------------------------

    async def start_session(self, topic: str, handles: list[str]) -> Meeting | None:
        """Open a meeting on `topic` with the given participant handles."""
        topic = topic.strip()
        if not topic or not handles:
            logger.warning("A meeting needs a topic and at least one participant")
            return None
        if self._state.meeting is not None:
            logger.warning("Meeting %s is still open; end it first", self._state.meeting.id)
            return None

        roster = self._resolver.roster
        participants = []
        for handle in dict.fromkeys(handles):
            if handle not in roster:
                logger.warning("Unknown participant %r, leaving it out", handle)
                continue
            participants.append(roster[handle])
        if not participants:
            logger.warning("None of %s are known participants", ", ".join(handles))
            return None

        try:
            meeting = await self._reconciler.fresh_start(topic, participants)
        except Exception:
            logger.exception("Unexpected failure starting meeting %r", topic)
            return None

        self._epoch += 1
        self._dispatch(MeetingOpened(meeting))
        self._dispatch(MessageAppended(meeting.id, Message.system(self._prompts.welcome.format(topic=topic))))
        logger.info("Meeting started: %r with %d participants", topic, len(participants))
        return self._state.meeting

    async def submit_utterance(self, text: str) -> bool:
        """Run round 1 for a user utterance. Returns False if it was not accepted."""
        text = text.strip()
        meeting = self._state.meeting
        if not text or meeting is None:
            return False
        if self._state.phase is not Phase.IDLE:
            logger.info("Ignoring utterance while in phase %s", self._state.phase.value)
            return False

        history = tuple(chat_history(meeting.messages))
        self._dispatch(UtteranceSubmitted(Message.user(text)))

        epoch = self._epoch
        participants = [p for p in meeting.participants if not p.is_human]
        outcome = await self._run(
            meeting, participants, Round1Prompt(text, history), 1, epoch,
        )
        if self._epoch != epoch:
            return True

        self._dispatch(RoundFinished(
            round_number=1,
            utterance=text,
            participants=tuple(participants),
            responses=tuple(outcome.responses),
        ))
        if self._state.phase is Phase.AWAITING_ROUND2:
            logger.info("Round 1 produced %d answers, waiting for a round 2 decision", len(outcome.responses))
        return True

    async def confirm_round2(self) -> bool:
        """Run the debate round for the pending context. Returns False if none is pending."""
        pending = self._state.pending
        meeting = self._state.meeting
        if self._state.phase is not Phase.AWAITING_ROUND2 or pending is None or meeting is None:
            return False

        self._dispatch(Round2Confirmed())
        epoch = self._epoch
        await self._run(
            meeting, list(pending.participants), Round2Prompt(pending.utterance, pending.responses), 2, epoch,
        )
        if self._epoch == epoch:
            self._dispatch(RoundFinished(round_number=2))
        return True

    def decline_round2(self) -> bool:
        if self._state.phase is not Phase.AWAITING_ROUND2:
            return False
        self._dispatch(Round2Declined())
        return True

    async def end_session(self) -> bool:
        """Close the meeting locally and tell the backend. Never fails the caller."""
        meeting = self._state.meeting
        if meeting is None:
            return False

        self._close_locally(meeting)
        logger.info("Meeting ended: %r", meeting.topic)

        if meeting.persisted:
            try:
                await self._backend.end_meeting(meeting.id)
            except BackendError as exc:
                logger.warning("Could not mark meeting %s ended: %s", meeting.id, exc)
        return True

    async def resume_session(self, meeting_id: str) -> Meeting | None:
        """Reactivate a past meeting and load it. The phase is always idle afterwards."""
        try:
            reactivated = await self._backend.reactivate_meeting(meeting_id)
        except BackendError as exc:
            logger.warning("Failed to reactivate meeting %s: %s", meeting_id, exc)
            return None

        try:
            entity = await self._backend.get_meeting(reactivated.id or meeting_id)
        except BackendError as exc:
            logger.warning("Could not fetch meeting %s, using reactivation payload: %s", meeting_id, exc)
            entity = reactivated
        if not entity.id:
            entity.id = meeting_id

        try:
            meeting, report = self._reconciler.rebuild(entity)
        except Exception:
            logger.exception("Unexpected failure rebuilding meeting %s", meeting_id)
            return None

        current = self._state.meeting
        if current is not None and current.id == meeting.id:
            # Same backend record: keep it active, drop only the local copy.
            self._close_locally(current)
        elif current is not None:
            await self.end_session()

        self._epoch += 1
        self.last_report = report
        self._dispatch(MeetingOpened(meeting))
        logger.info("Meeting reactivated: %r", meeting.topic)
        return self._state.meeting

    async def _run(
        self,
        meeting: Meeting,
        participants: list[Participant],
        prompt: Round1Prompt | Round2Prompt,
        round_number: int,
        epoch: int,
    ) -> RoundOutcome:
        try:
            return await self._executor.run_round(
                meeting.id,
                participants,
                prompt,
                round_number,
                self._emit,
                persisted=meeting.persisted,
                active=self._is_current(epoch),
            )
        except Exception:
            logger.exception("Round %d aborted unexpectedly", round_number)
            return RoundOutcome(round_number=round_number)
