"""Backend health check: ping the meeting API before opening a session."""

import asyncio
import logging

from roundtable.backend.base import MeetingBackend

logger = logging.getLogger(__name__)

_TIMEOUT_SEC = 15.0


async def check_backend(backend: MeetingBackend) -> tuple[bool, str]:
    """List meetings once as a connectivity probe.

    Returns:
        (ok, error_message). error_message is "" when ok is True.
    """
    try:
        await asyncio.wait_for(backend.list_meetings(status="active"), timeout=_TIMEOUT_SEC)
        return True, ""
    except TimeoutError:
        return False, f"Backend did not answer within {_TIMEOUT_SEC:g}s"
    except Exception as exc:
        logger.debug("Backend health check failed: %s", exc)
        return False, str(exc)
