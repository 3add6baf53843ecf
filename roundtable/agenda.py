"""Agenda files: a scripted meeting as markdown with YAML frontmatter."""

from dataclasses import dataclass, field
from pathlib import Path

import frontmatter


@dataclass
class Agenda:
    topic: str
    participants: list[str]
    utterances: list[str] = field(default_factory=list)
    debate: bool = True        # confirm round 2 whenever it is offered


def _as_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [str(value)]


def parse_agenda(file_path: Path) -> Agenda:
    """Parse an agenda file.

    Frontmatter keys: topic (defaults to the file stem), participants
    (list or comma-separated string), debate (bool). Each blank-line
    separated paragraph of the body is one utterance.

    Raises:
        ValueError: If the agenda names no participants.
    """
    post = frontmatter.load(str(file_path))
    metadata = dict(post.metadata)

    participants = _as_list(metadata.get("participants"))
    if not participants:
        raise ValueError(f"Agenda {file_path.name} lists no participants")

    paragraphs = [p.strip() for p in post.content.split("\n\n")]
    return Agenda(
        topic=str(metadata.get("topic") or file_path.stem),
        participants=participants,
        utterances=[" ".join(p.split()) for p in paragraphs if p],
        debate=bool(metadata.get("debate", True)),
    )
