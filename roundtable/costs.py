"""Running cost totals for a session and for the whole process."""

import logging
import math
from collections.abc import Callable

logger = logging.getLogger(__name__)

CostSink = Callable[[float, str | None], None]


class CostAccumulator:
    """Folds per-call costs into running totals.

    A session accumulator usually has the process-wide accumulator as its
    parent, so one `record` call updates both. Recording never raises.
    """

    def __init__(self, parent: "CostAccumulator | None" = None) -> None:
        self._parent = parent
        self._sinks: list[CostSink] = []
        self.total_usd = 0.0
        self.calls = 0
        self.by_participant: dict[str, float] = {}

    def add_sink(self, sink: CostSink) -> None:
        self._sinks.append(sink)

    def record(self, amount: float | None, handle: str | None = None) -> None:
        if amount is None:
            return
        try:
            value = float(amount)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric cost %r for %s", amount, handle)
            return
        if math.isnan(value) or math.isinf(value) or value < 0:
            logger.warning("Ignoring invalid cost %r for %s", amount, handle)
            return

        self.total_usd += value
        self.calls += 1
        if handle is not None:
            self.by_participant[handle] = self.by_participant.get(handle, 0.0) + value

        for sink in self._sinks:
            try:
                sink(value, handle)
            except Exception as exc:
                logger.warning("Cost sink failed: %s", exc)

        if self._parent is not None:
            self._parent.record(value, handle)

    def reset(self) -> None:
        self.total_usd = 0.0
        self.calls = 0
        self.by_participant.clear()
