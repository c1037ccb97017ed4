"""
Diagnostics sink for the per-match orchestrator.

The orchestrator never logs or prints directly; it emits named events
with keyword fields to an injected observer.  Production code uses
:class:`LoggingObserver`; tests use :class:`RecordingObserver` to assert
on what the pipeline decided and why.

Events
------
    match.lambdas          fixture_id, lambda_home, lambda_away, confidence
    market.skipped         fixture_id, market_id, reason
    market.scored          fixture_id, market_id, odds, probability, edge_score, risk_tier
    display_floor.rejected fixture_id, market_id, odds, floor
    match.selected         fixture_id, market_id (None when nothing qualified), candidates
"""

import logging
from typing import Any, Dict, List, Protocol, Tuple

logger = logging.getLogger(__name__)

#: Events forwarded at INFO; everything else goes to DEBUG.
INFO_EVENTS = frozenset({"match.selected"})


class EngineObserver(Protocol):
    def emit(self, event: str, **fields: Any) -> None:
        ...


class LoggingObserver:
    """Forward events to a stdlib logger."""

    def __init__(self, log: logging.Logger = logger):
        self.log = log

    def emit(self, event: str, **fields: Any) -> None:
        level = logging.INFO if event in INFO_EVENTS else logging.DEBUG
        if not self.log.isEnabledFor(level):
            return
        detail = " ".join(f"{k}={v}" for k, v in fields.items())
        self.log.log(level, "%s %s", event, detail)


class RecordingObserver:
    """Keep every event in memory, in emission order."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, event: str, **fields: Any) -> None:
        self.events.append((event, dict(fields)))

    def of_type(self, event: str) -> List[Dict[str, Any]]:
        return [fields for name, fields in self.events if name == event]
