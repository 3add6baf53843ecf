"""Tests for roundtable/output.py."""

from pathlib import Path

import pytest

from roundtable import output
from roundtable.costs import CostAccumulator
from roundtable.models import BackendMeeting, Meeting, Message, Participant
from roundtable.output import _slug, print_costs, print_history, print_transcript, save_transcript


def test_slug_basic():
    assert _slug("What's the top priority?") == "whats-the-top-priority"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_slug_special_chars():
    result = _slug("API vs. SDK (2024)")
    assert "." not in result
    assert "(" not in result


@pytest.fixture
def sample_meeting() -> Meeting:
    atlas = Participant(handle="atlas", name="Atlas")
    return Meeting(
        id="mtg-1",
        topic="Bug Triage",
        participants=(atlas,),
        messages=(
            Message.system('Meeting "Bug Triage" has started. Discuss away!'),
            Message.user("What's the top priority?"),
            Message.system("--- Round 1: Initial Thoughts ---", 1),
            Message("m1", "atlas", "Atlas", "Fix **login** first.", 1_700_000_000.0, 1, 0.0123),
            Message("m2", "nova", "Nova", "[Invalid API key. Check in Hire Agent > Manage.]", 1_700_000_001.0, 1,
                    is_error=True),
        ),
        persisted=True,
    )


def test_save_transcript_creates_file(tmp_path: Path, sample_meeting: Meeting):
    saved = save_transcript(sample_meeting, tmp_path / "out")
    assert saved.exists()
    assert saved.suffix == ".md"
    assert saved.name.endswith("_bug-triage.md")


def test_save_transcript_content(tmp_path: Path, sample_meeting: Meeting):
    content = save_transcript(sample_meeting, tmp_path).read_text(encoding="utf-8")
    assert "# Meeting: Bug Triage" in content
    assert "**Meeting ID:** mtg-1" in content
    assert "**Cost:** $0.0123" in content
    assert "## Round 1: Initial Thoughts" in content
    assert "### Atlas (" in content
    assert "Fix **login** first." in content
    assert "*Meeting \"Bug Triage\" has started. Discuss away!*" in content


def test_save_unpersisted_meeting_is_marked(tmp_path: Path):
    meeting = Meeting(id="meeting-1", topic="???", participants=())
    content = save_transcript(meeting, tmp_path).read_text(encoding="utf-8")
    assert "(not persisted)" in content
    assert "_meeting.md" in str(list(tmp_path.iterdir())[0])


def test_print_helpers_render(sample_meeting: Meeting, capsys):
    output.console.width = 100
    print_transcript(sample_meeting)
    print_history([BackendMeeting(id="mtg-1", topic="Bug Triage", status="ended",
                                  started_at="2025-01-01T10:00:00Z")])
    costs = CostAccumulator()
    costs.record(0.0123, "atlas")
    print_costs(costs, {"atlas": "Atlas"})
    out = capsys.readouterr().out
    assert "Bug Triage" in out
    assert "Atlas" in out
    assert "$0.0123" in out


def test_print_history_empty(capsys):
    print_history([])
    assert "No meetings yet." in capsys.readouterr().out


def test_markup_in_user_text_is_printed_literally(capsys):
    output.console.width = 100
    meeting = Meeting(
        id="mtg-[x]",
        topic="a [/b] and [red]x",
        participants=(Participant(handle="atlas", name="[bold]Atlas"),),
        messages=(
            Message.system("--- [/round] ---", 1),
            Message("m1", "atlas", "[bold]Atlas", "ok", 1_700_000_000.0, 1),
        ),
    )
    print_transcript(meeting)
    print_history([BackendMeeting(id="mtg-[x]", topic="[red]x", status="[/ended]")])
    out = capsys.readouterr().out
    assert "a [/b] and [red]x" in out
    assert "[/round]" in out
    assert "[bold]Atlas" in out
    assert "[red]x" in out
