"""Turn raw backend / provider failures into short user-facing text."""

from collections.abc import Callable

# (test, message). First match wins, so specific patterns go first.
_RULES: list[tuple[Callable[[str], bool], str]] = [
    (
        lambda r: "No active" in r and "credential" in r,
        "No API key found for this provider. Add one via Hire Agent > Manage tab.",
    ),
    (
        lambda r: "exceeded" in r or "quota" in r or "insufficient" in r,
        "API key has no credits. Add billing at your provider dashboard.",
    ),
    (
        lambda r: "Kimi Code key" in r or "sk-kimi-" in r,
        "Kimi Code keys only work in coding agents. Use a Moonshot platform key.",
    ),
    (
        lambda r: "Invalid API key" in r or "Incorrect API key" in r or "invalid_api_key" in r,
        "Invalid API key. Check in Hire Agent > Manage.",
    ),
]

_DEFAULT_MESSAGE = "Failed to get response"


def classify_error(raw: object) -> str:
    """Map a raw failure (exception or text) to a stable user-facing message.

    Unmatched failures pass through unchanged. The result depends only on
    the text, never on which participant or round produced it.
    """
    if isinstance(raw, BaseException):
        text = str(getattr(raw, "message", None) or raw)
    else:
        text = str(raw) if raw is not None else ""
    if not text:
        return _DEFAULT_MESSAGE
    for test, message in _RULES:
        if test(text):
            return message
    return text
