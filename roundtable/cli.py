"""Click CLI: open, resume and script meetings against the meeting backend."""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from config.config_loader import AppConfig, load_config
from roundtable.agenda import parse_agenda
from roundtable.backend.base import BackendError, MeetingBackend
from roundtable.backend.http import HttpMeetingBackend
from roundtable.costs import CostAccumulator
from roundtable.desks import DeskResolver
from roundtable.healthcheck import check_backend
from roundtable.models import Meeting, Message
from roundtable.output import (
    print_costs,
    print_history,
    print_message,
    print_transcript,
    save_transcript,
)
from roundtable.reconcile import Reconciler
from roundtable.session import MeetingSession
from roundtable.state import Phase

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


@dataclass
class CliContext:
    config: AppConfig
    skip_health_check: bool
    global_costs: CostAccumulator


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _default_panel(config: AppConfig) -> list[str]:
    """Every configured participant, humans included (they are never asked)."""
    return list(config.participants)


def _participant_names(config: AppConfig) -> dict[str, str]:
    return {handle: p.name for handle, p in config.participants.items()}


async def _ensure_backend(ctx: CliContext, backend: MeetingBackend, *, required: bool) -> None:
    """Probe the backend. Exits when it is required, otherwise asks to continue unpersisted."""
    if ctx.skip_health_check:
        return
    ok, err = await check_backend(backend)
    if ok:
        return
    short_err = err.splitlines()[0][:120] if err else "unknown error"
    console.print(f"[red]Backend unreachable:[/red] {escape(short_err)}")
    if required:
        sys.exit(1)
    if not click.confirm("Continue with an unpersisted meeting?", default=True):
        sys.exit(0)


def _ask_round2(session: MeetingSession) -> bool:
    responders = ", ".join(p.name for p in session.pending.participants) if session.pending else ""
    return click.confirm(f"Continue to Round 2 discussion between {responders}?", default=True)


async def _run_round1(session: MeetingSession, text: str) -> None:
    with console.status("Participants are thinking..."):
        accepted = await session.submit_utterance(text)
    if not accepted:
        console.print("[yellow]Still discussing, wait for the current round to finish.[/yellow]")


async def _run_round2(session: MeetingSession) -> None:
    with console.status("Debating..."):
        await session.confirm_round2()


async def _converse(ctx: CliContext, session: MeetingSession, save: bool) -> None:
    """Interactive loop. Blank lines are ignored; /end, /save and /cost are commands."""
    console.print("[dim]Type a message. Commands: /end, /save, /cost[/dim]")
    while session.meeting is not None:
        try:
            line = click.prompt("You", prompt_suffix="> ", default="", show_default=False).strip()
        except click.Abort:
            line = "/end"
        if not line:
            continue
        if line == "/end":
            break
        if line == "/save":
            saved = save_transcript(session.meeting, ctx.config.defaults.output_dir)
            console.print(f"[dim]Saved to: {escape(str(saved))}[/dim]")
            continue
        if line == "/cost":
            print_costs(session.costs, _participant_names(ctx.config))
            continue

        await _run_round1(session, line)
        if session.phase is Phase.AWAITING_ROUND2:
            if _ask_round2(session):
                await _run_round2(session)
            else:
                session.decline_round2()

    await _finish(ctx, session, save)


async def _finish(ctx: CliContext, session: MeetingSession, save: bool) -> None:
    await session.end_session()
    ended = session.last_ended
    print_costs(session.costs, _participant_names(ctx.config))
    if save and ended is not None and ended.messages:
        saved = save_transcript(ended, ctx.config.defaults.output_dir)
        console.print(f"\n[dim]Saved to: {escape(str(saved))}[/dim]")


def _new_session(ctx: CliContext, backend: MeetingBackend) -> MeetingSession:
    session = MeetingSession.from_config(ctx.config, backend, ctx.global_costs)
    session.on_message(lambda m: None if m.is_user else print_message(m))
    return session


async def _meet(ctx: CliContext, topic: str, handles: list[str], save: bool) -> None:
    backend = HttpMeetingBackend(ctx.config.backend)
    try:
        await _ensure_backend(ctx, backend, required=False)
        session = _new_session(ctx, backend)
        meeting = await session.start_session(topic, handles)
        if meeting is None:
            console.print("[bold red]Error:[/bold red] Could not start the meeting. Check topic and participants.")
            sys.exit(1)
        if not meeting.persisted:
            console.print("[yellow]Meeting is not persisted and will not appear in history.[/yellow]")
        await _converse(ctx, session, save)
    finally:
        await backend.close()


async def _resume(ctx: CliContext, meeting_id: str, save: bool) -> None:
    backend = HttpMeetingBackend(ctx.config.backend)
    try:
        await _ensure_backend(ctx, backend, required=True)
        session = _new_session(ctx, backend)
        meeting = await session.resume_session(meeting_id)
        if meeting is None:
            console.print(f"[bold red]Error:[/bold red] Could not resume meeting {escape(meeting_id)}.")
            sys.exit(1)
        print_transcript(meeting)
        report = session.last_report
        if report is not None and not report.clean:
            console.print(
                f"[yellow]{len(report.placeholders)} participant(s) could not be matched to a known desk "
                f"({len(report.ambiguous)} ambiguous).[/yellow]"
            )
        await _converse(ctx, session, save)
    finally:
        await backend.close()


async def _run_agenda(ctx: CliContext, agenda_path: Path, save: bool) -> None:
    agenda = parse_agenda(agenda_path)
    backend = HttpMeetingBackend(ctx.config.backend)
    try:
        await _ensure_backend(ctx, backend, required=False)
        session = _new_session(ctx, backend)
        if await session.start_session(agenda.topic, agenda.participants) is None:
            console.print(f"[bold red]Error:[/bold red] Could not start meeting from {escape(agenda_path.name)}.")
            sys.exit(1)
        for utterance in agenda.utterances:
            print_message(Message.user(utterance))
            await _run_round1(session, utterance)
            if session.phase is Phase.AWAITING_ROUND2:
                if agenda.debate:
                    await _run_round2(session)
                else:
                    session.decline_round2()
        await _finish(ctx, session, save)
    finally:
        await backend.close()


async def _load_transcript(ctx: CliContext, backend: MeetingBackend, meeting_id: str) -> Meeting:
    entity = await backend.get_meeting(meeting_id)
    resolver = DeskResolver(backend, ctx.config.participants, ctx.config.defaults.desk_map_path)
    meeting, _ = Reconciler(backend, resolver).rebuild(entity)
    return meeting


async def _with_backend(ctx: CliContext, action: Callable[[MeetingBackend], Awaitable[Any]]) -> Any:
    backend = HttpMeetingBackend(ctx.config.backend)
    try:
        return await action(backend)
    except BackendError as exc:
        console.print(f"[bold red]Backend error:[/bold red] {escape(str(exc))}")
        sys.exit(1)
    finally:
        await backend.close()


@click.group()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Settings file (default: config/settings.yaml)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the backend connectivity check at startup")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool, skip_health_check: bool) -> None:
    """Roundtable -- turn-based meetings between you and several AI desks.

    \b
    Examples:
      roundtable meet "Bug triage" -p atlas -p nova
      roundtable resume 7d1c...
      roundtable run agenda.md --save
      roundtable history --status ended
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(Path(config_path)) if config_path else load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    ctx.obj = CliContext(config=config, skip_health_check=skip_health_check, global_costs=CostAccumulator())


@main.command()
@click.argument("topic")
@click.option("-p", "--participant", "participants", multiple=True,
              help="Participant handle from settings.yaml (repeatable, default: everyone)")
@click.option("--save", is_flag=True, help="Save the transcript as markdown when the meeting ends")
@click.pass_obj
def meet(ctx: CliContext, topic: str, participants: tuple[str, ...], save: bool) -> None:
    """Start a new meeting on TOPIC and talk interactively."""
    handles = list(participants) or _default_panel(ctx.config)
    asyncio.run(_meet(ctx, topic, handles, save))


@main.command()
@click.argument("meeting_id")
@click.option("--save", is_flag=True, help="Save the transcript as markdown when the meeting ends")
@click.pass_obj
def resume(ctx: CliContext, meeting_id: str, save: bool) -> None:
    """Reactivate a past meeting and continue it."""
    asyncio.run(_resume(ctx, meeting_id, save))


@main.command()
@click.argument("agenda", type=click.Path(exists=True, dir_okay=False))
@click.option("--save", is_flag=True, help="Save the transcript as markdown when the meeting ends")
@click.pass_obj
def run(ctx: CliContext, agenda: str, save: bool) -> None:
    """Run a scripted meeting from an AGENDA markdown file."""
    try:
        asyncio.run(_run_agenda(ctx, Path(agenda), save))
    except ValueError as exc:
        console.print(f"[bold red]Agenda error:[/bold red] {escape(str(exc))}")
        sys.exit(1)


@main.command()
@click.option("--status", type=click.Choice(["active", "ended"]), default=None, help="Filter by status")
@click.pass_obj
def history(ctx: CliContext, status: str | None) -> None:
    """List past and active meetings."""
    meetings = asyncio.run(_with_backend(ctx, lambda b: b.list_meetings(status)))
    print_history(meetings)


@main.command()
@click.argument("meeting_id")
@click.option("--save", is_flag=True, help="Also save the transcript as markdown")
@click.pass_obj
def transcript(ctx: CliContext, meeting_id: str, save: bool) -> None:
    """Show the full transcript of a meeting."""
    meeting = asyncio.run(_with_backend(ctx, lambda b: _load_transcript(ctx, b, meeting_id)))
    print_transcript(meeting)
    if save:
        saved = save_transcript(meeting, ctx.config.defaults.output_dir)
        console.print(f"\n[dim]Saved to: {escape(str(saved))}[/dim]")


@main.command()
@click.argument("meeting_id")
@click.pass_obj
def delete(ctx: CliContext, meeting_id: str) -> None:
    """Delete one meeting."""
    asyncio.run(_with_backend(ctx, lambda b: b.delete_meeting(meeting_id)))
    console.print(f"Deleted meeting {escape(meeting_id)}.")


@main.command()
@click.confirmation_option(prompt="Delete every meeting?")
@click.pass_obj
def clear(ctx: CliContext) -> None:
    """Delete all meetings."""
    count = asyncio.run(_with_backend(ctx, lambda b: b.delete_all_meetings()))
    console.print(f"Deleted {count} meeting(s).")


if __name__ == "__main__":
    main()
