"""Tests for the click commands and helpers in roundtable/cli.py."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import yaml
from click.testing import CliRunner

from roundtable import cli
from roundtable.backend.base import BackendError
from roundtable.models import BackendMeeting
from tests.conftest import FakeBackend, backend_message


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    settings = {
        "backend": {"base_url": "http://backend.test", "api_token_env": "TEST_ROUNDTABLE_TOKEN"},
        "defaults": {"output_dir": str(tmp_path / "transcripts"), "pacing_ms": 0, "ask_timeout_sec": 5},
        "participants": {
            "ceo": {"name": "You", "human": True},
            "atlas": {"name": "Atlas"},
            "nova": {"name": "Nova"},
        },
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def fake(monkeypatch) -> FakeBackend:
    backend = FakeBackend()
    monkeypatch.setattr(cli, "HttpMeetingBackend", lambda config: backend)
    return backend


def _invoke(settings_file: Path, *args: str, input: str | None = None):
    return CliRunner().invoke(
        cli.main, ["--config", str(settings_file), "--skip-health-check", *args], input=input,
    )


def test_default_panel_lists_everyone(sample_app_config):
    assert cli._default_panel(sample_app_config) == ["ceo", "atlas", "nova", "sage"]


def test_participant_names(sample_app_config):
    assert cli._participant_names(sample_app_config)["nova"] == "Nova"


def test_help_lists_commands():
    result = CliRunner().invoke(cli.main, ["--help"])
    assert result.exit_code == 0
    for command in ("meet", "resume", "run", "history", "transcript", "delete", "clear"):
        assert command in result.output


def test_missing_config_file_is_a_usage_error(tmp_path: Path):
    result = CliRunner().invoke(cli.main, ["--config", str(tmp_path / "nope.yaml"), "history"])
    assert result.exit_code != 0


def test_history(settings_file, fake):
    fake.list_meetings = AsyncMock(return_value=[
        BackendMeeting(id="mtg-1", topic="Bug Triage", status="ended", started_at="2025-01-01T10:00:00Z"),
    ])
    result = _invoke(settings_file, "history", "--status", "ended")
    assert result.exit_code == 0
    assert "Bug Triage" in result.output
    fake.list_meetings.assert_awaited_once_with("ended")


def test_backend_error_exits_nonzero(settings_file, fake):
    fake.list_meetings = AsyncMock(side_effect=BackendError("list_meetings", "Network error: refused"))
    result = _invoke(settings_file, "history")
    assert result.exit_code == 1
    assert "refused" in result.output


def test_transcript_rebuilds_and_saves(settings_file, fake, tmp_path: Path):
    fake.meetings["mtg-9"] = BackendMeeting(
        id="mtg-9",
        topic="Roadmap",
        participants=["desk-a"],
        messages=[
            backend_message("user", "You", "What next?", is_user=True),
            backend_message("desk-a", "Atlas", "Search."),
        ],
    )
    result = _invoke(settings_file, "transcript", "mtg-9", "--save")
    assert result.exit_code == 0
    assert "Roadmap" in result.output
    assert len(list((tmp_path / "transcripts").glob("*_roadmap.md"))) == 1


def test_delete_and_clear(settings_file, fake):
    fake.delete_all_meetings = AsyncMock(return_value=4)
    assert "Deleted meeting mtg-1" in _invoke(settings_file, "delete", "mtg-1").output
    fake.delete_meeting.assert_awaited_once_with("mtg-1")

    result = _invoke(settings_file, "clear", "--yes")
    assert result.exit_code == 0
    assert "Deleted 4 meeting(s)." in result.output


def test_meet_interactive_decline_round2(settings_file, fake):
    result = _invoke(settings_file, "meet", "Bug Triage", "-p", "atlas", "-p", "nova",
                     input="What's the top priority?\nn\n/end\n")
    assert result.exit_code == 0, result.output
    assert fake.asked == [("desk-atlas", 1), ("desk-nova", 1)]
    fake.end_meeting.assert_awaited_once_with("mtg-1")
    assert "Session cost" in result.output


def test_meet_unknown_participants_fails(settings_file, fake):
    result = _invoke(settings_file, "meet", "Topic", "-p", "ghost")
    assert result.exit_code == 1


def test_run_agenda_with_debate(settings_file, fake, tmp_path: Path):
    agenda = tmp_path / "agenda.md"
    agenda.write_text("---\ntopic: Planning\nparticipants: [atlas, nova]\n---\nFirst question?\n", encoding="utf-8")

    result = _invoke(settings_file, "run", str(agenda), "--save")

    assert result.exit_code == 0, result.output
    assert fake.asked == [("desk-atlas", 1), ("desk-nova", 1), ("desk-atlas", 2), ("desk-nova", 2)]
    assert len(list((tmp_path / "transcripts").glob("*_planning.md"))) == 1


def test_run_agenda_without_participants(settings_file, fake, tmp_path: Path):
    agenda = tmp_path / "agenda.md"
    agenda.write_text("---\ntopic: Planning\n---\nQ?\n", encoding="utf-8")
    result = _invoke(settings_file, "run", str(agenda))
    assert result.exit_code == 1
    assert "no participants" in result.output


def test_resume_failure_exits(settings_file, fake):
    fake.reactivate_meeting = AsyncMock(side_effect=BackendError("reactivate_meeting", "Request failed (404)"))
    result = _invoke(settings_file, "resume", "missing")
    assert result.exit_code == 1
