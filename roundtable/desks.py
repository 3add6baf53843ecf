"""Desk resolution: local participant handle -> durable backend desk id."""

import asyncio
import logging
from pathlib import Path

import yaml

from roundtable.backend.base import BackendError, MeetingBackend
from roundtable.models import Participant

logger = logging.getLogger(__name__)


class ResolutionFailure(Exception):
    """Returned (not raised) when a handle has no desk and none could be created."""

    def __init__(self, handle: str, reason: str) -> None:
        self.handle = handle
        self.reason = reason
        super().__init__(f"[{handle}] {reason}")


def load_desk_map(path: Path) -> dict[str, str]:
    """Read a handle -> desk id YAML map. Missing or unreadable files yield {}."""
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not read desk map %s: %s", path, exc)
        return {}
    if not isinstance(raw, dict):
        logger.warning("Desk map %s is not a mapping, ignoring", path)
        return {}
    return {str(k): str(v) for k, v in raw.items() if v}


def save_desk_map(path: Path, mapping: dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(dict(sorted(mapping.items()))), encoding="utf-8")


class DeskResolver:
    """Memoizes desk ids per handle and provisions missing desks on demand.

    Resolution is serialized per handle, so two rounds racing on the same
    participant create at most one backend desk.
    """

    def __init__(
        self,
        backend: MeetingBackend,
        roster: dict[str, Participant],
        store_path: Path | None = None,
    ) -> None:
        self._backend = backend
        self._roster = dict(roster)
        self._store_path = store_path
        self._desk_ids: dict[str, str] = {
            p.handle: p.desk_id for p in roster.values() if p.desk_id
        }
        self._locks: dict[str, asyncio.Lock] = {}
        if store_path is not None:
            for handle, desk_id in load_desk_map(store_path).items():
                self._desk_ids.setdefault(handle, desk_id)

    @property
    def roster(self) -> dict[str, Participant]:
        return dict(self._roster)

    def register(self, participant: Participant) -> None:
        self._roster[participant.handle] = participant
        if participant.desk_id:
            self._desk_ids.setdefault(participant.handle, participant.desk_id)

    def remember(self, handle: str, desk_id: str) -> None:
        self._desk_ids[handle] = desk_id

    def desk_id_for(self, handle: str) -> str | None:
        return self._desk_ids.get(handle)

    def handle_for(self, desk_id: str) -> str | None:
        return next((h for h, d in self._desk_ids.items() if d == desk_id), None)

    async def resolve(self, handle: str) -> str | ResolutionFailure:
        """Return the durable desk id for a handle, creating the desk if needed.

        Never raises. On failure nothing is memoized, so a later call retries.
        """
        cached = self._desk_ids.get(handle)
        if cached:
            return cached

        lock = self._locks.setdefault(handle, asyncio.Lock())
        async with lock:
            cached = self._desk_ids.get(handle)
            if cached:
                return cached

            participant = self._roster.get(handle)
            if participant is None:
                return ResolutionFailure(handle, "unknown participant")

            try:
                desk_id = await self._backend.create_desk(
                    name=participant.name or "Desk",
                    agent_name=participant.name or "Agent",
                    color=participant.color,
                    avatar=participant.avatar,
                    model_id=participant.model,
                )
            except BackendError as exc:
                logger.warning("Could not provision desk for %s: %s", handle, exc)
                return ResolutionFailure(handle, str(exc))
            except Exception as exc:
                logger.warning("Unexpected error provisioning desk for %s: %s", handle, exc)
                return ResolutionFailure(handle, f"Unexpected error: {exc}")

            self._desk_ids[handle] = desk_id
            logger.info("Provisioned desk %s for %s", desk_id, handle)
            self._persist()
            return desk_id

    def _persist(self) -> None:
        if self._store_path is None:
            return
        try:
            save_desk_map(self._store_path, self._desk_ids)
        except OSError as exc:
            logger.warning("Could not write desk map %s: %s", self._store_path, exc)
