"""Load settings.yaml into typed dataclasses. Checks the backend token at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from roundtable.models import Participant

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"
_URL_OVERRIDE_ENV = "ROUNDTABLE_API_URL"


@dataclass
class BackendConfig:
    base_url: str
    api_token_env: str
    timeout_sec: float = 30.0
    has_token: bool = False


@dataclass
class DefaultsConfig:
    output_dir: Path
    desk_map_path: Path | None = None
    pacing_ms: int = 800
    ask_timeout_sec: float = 120.0
    default_model: str = ""


@dataclass
class PromptsConfig:
    welcome: str = 'Meeting "{topic}" has started. Discuss away!'
    round1_divider: str = "--- Round 1: Initial Thoughts ---"
    round2_divider: str = "--- Round 2: Discussion & Debate ---"
    round2_instruction: str = (
        "Now discuss, debate, and build on the other participants' responses. "
        "Reference them by name."
    )


@dataclass
class AppConfig:
    backend: BackendConfig
    defaults: DefaultsConfig
    prompts: PromptsConfig
    participants: dict[str, Participant] = field(default_factory=dict)


def _load_participants(raw: dict, default_model: str) -> dict[str, Participant]:
    participants: dict[str, Participant] = {}
    for handle, entry in (raw or {}).items():
        entry = entry or {}
        participants[str(handle)] = Participant(
            handle=str(handle),
            name=str(entry.get("name") or handle),
            color=str(entry.get("color") or "#feca57"),
            avatar=str(entry.get("avatar") or "avatar1"),
            model=str(entry.get("model") or default_model),
            is_human=bool(entry.get("human", False)),
            desk_id=str(entry["desk_id"]) if entry.get("desk_id") else None,
        )
    return participants


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs a warning for a missing API token but does not raise; the backend
    will answer 401 and the caller degrades to an unpersisted session.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    backend_raw = raw.get("backend", {})
    token_env = str(backend_raw.get("api_token_env", "ROUNDTABLE_API_TOKEN"))
    has_token = bool(os.environ.get(token_env, "").strip())
    if not has_token:
        logger.warning("No backend token found, set %s in .env", token_env)
    backend = BackendConfig(
        base_url=os.environ.get(_URL_OVERRIDE_ENV, "").strip() or str(backend_raw["base_url"]),
        api_token_env=token_env,
        timeout_sec=float(backend_raw.get("timeout_sec", 30)),
        has_token=has_token,
    )

    defaults_raw = raw["defaults"]
    desk_map_raw = defaults_raw.get("desk_map_path")
    defaults = DefaultsConfig(
        output_dir=Path(defaults_raw["output_dir"]),
        desk_map_path=Path(desk_map_raw) if desk_map_raw else None,
        pacing_ms=int(defaults_raw.get("pacing_ms", 800)),
        ask_timeout_sec=float(defaults_raw.get("ask_timeout_sec", 120)),
        default_model=str(defaults_raw.get("default_model", "")),
    )

    prompts_raw = raw.get("prompts", {})
    prompts = PromptsConfig(**{k: str(v) for k, v in prompts_raw.items()
                               if k in PromptsConfig.__dataclass_fields__})

    participants = _load_participants(raw.get("participants", {}), defaults.default_model)
    logger.info("Loaded %d participants from %s", len(participants), settings_path.name)

    return AppConfig(
        backend=backend,
        defaults=defaults,
        prompts=prompts,
        participants=participants,
    )
