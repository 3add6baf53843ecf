"""Rich console output and markdown export for meeting transcripts."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from roundtable.costs import CostAccumulator
from roundtable.models import BackendMeeting, Meeting, Message

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _clock(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S")


def print_message(message: Message) -> None:
    """Print one transcript entry as it lands."""
    if message.is_system:
        if message.content.startswith("---"):
            console.print(Rule(Text(message.content.strip("- "), style="bold cyan")))
        else:
            console.print(Text(message.content, style="dim italic"))
        return

    if message.is_user:
        console.print(Text(f"{message.sender_name}: {message.content}", style="bold"))
        return

    subtitle_parts = [_clock(message.timestamp)]
    if message.round_number:
        subtitle_parts.append(f"round {message.round_number}")
    if message.cost_usd:
        subtitle_parts.append(f"${message.cost_usd:.4f}")
    console.print(
        Panel(
            Text(message.content, style="red") if message.is_error else Markdown(message.content),
            title=Text(message.sender_name, style="bold"),
            subtitle=" | ".join(subtitle_parts),
            border_style="red" if message.is_error else "dim",
        )
    )


def print_transcript(meeting: Meeting) -> None:
    console.print(Rule(Text(meeting.topic, style="bold green")))
    console.print(
        Text(
            f"Meeting: {meeting.id} | "
            f"Participants: {', '.join(p.name for p in meeting.participants) or '-'} | "
            f"Persisted: {'yes' if meeting.persisted else 'no'}",
            style="dim",
        )
    )
    if not meeting.messages:
        console.print(Text("No messages in this meeting", style="dim"))
    for message in meeting.messages:
        print_message(message)


def print_history(meetings: list[BackendMeeting]) -> None:
    """Print meeting summaries as a table."""
    if not meetings:
        console.print("No meetings yet.")
        return
    table = Table(title="Meetings")
    table.add_column("ID", style="dim")
    table.add_column("Topic")
    table.add_column("Status")
    table.add_column("Started")
    table.add_column("Messages", justify="right")
    for m in meetings:
        status_style = "green" if m.status == "active" else "dim"
        table.add_row(
            Text(m.id),
            Text(m.topic),
            Text(m.status, style=status_style),
            (m.started_at or "")[:19].replace("T", " "),
            str(len(m.messages)),
        )
    console.print(table)


def print_costs(session_costs: CostAccumulator, names: dict[str, str] | None = None) -> None:
    names = names or {}
    breakdown = ", ".join(
        f"{names.get(h, h)} ${v:.4f}" for h, v in sorted(session_costs.by_participant.items())
    )
    console.print(
        Text(
            f"Session cost: ${session_costs.total_usd:.4f} over {session_costs.calls} calls"
            + (f" ({breakdown})" if breakdown else ""),
            style="dim",
        )
    )


def save_transcript(meeting: Meeting, output_dir: Path) -> Path:
    """Save the meeting transcript as a markdown file.

    Args:
        meeting: The meeting to export.
        output_dir: Directory to save the file in.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(meeting.topic) or 'meeting'}.md"

    total_cost = sum(m.cost_usd or 0.0 for m in meeting.messages)
    lines: list[str] = [
        f"# Meeting: {meeting.topic}",
        "",
        f"**Date:** {datetime.fromtimestamp(meeting.started_at).strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Meeting ID:** {meeting.id}{'' if meeting.persisted else ' (not persisted)'}",
        f"**Participants:** {', '.join(p.name for p in meeting.participants)}",
        f"**Cost:** ${total_cost:.4f}",
        "",
        "---",
        "",
    ]

    for message in meeting.messages:
        if message.is_system:
            lines.append(f"## {message.content.strip('- ')}" if message.content.startswith("---")
                         else f"*{message.content}*")
            lines.append("")
            continue
        lines.append(f"### {message.sender_name} ({_clock(message.timestamp)})")
        lines.append("")
        lines.append(message.content)
        lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath
