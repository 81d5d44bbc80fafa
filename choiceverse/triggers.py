"""Scheduled trigger generation.

A TriggerSchedule lists recurring triggers (monthly budget review, yearly
vehicle inspection, ...) as ``every N ticks`` cadences. The orchestrator asks
it which entries are due at the start of each tick and turns them into
Trigger instances in registration order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .schemas import Information, TriggerType


DEFAULT_OFFSET = 1
"""Default tick offset so cadence aligns with tick=1 runs."""


@dataclass(frozen=True)
class TickInterval:
    """Represents an ``every N ticks`` cadence with an optional offset and end."""

    every: int = 1
    offset: int = DEFAULT_OFFSET
    until: Optional[int] = None

    def is_due(self, *, tick: int, last_run_tick: Optional[int] = None) -> bool:
        """Return ``True`` when the cadence fires on this tick."""

        if tick < self.offset:
            return False

        if self.until is not None and tick > self.until:
            return False

        if last_run_tick is not None and tick <= last_run_tick:
            return False

        if self.every <= 0:
            return True

        return ((tick - self.offset) % self.every) == 0


@dataclass(frozen=True)
class ScheduledTrigger:
    """A recurring trigger definition."""

    trigger_type: TriggerType
    interval: TickInterval = field(default_factory=TickInterval)
    label: Optional[str] = None
    targets: Optional[Tuple[str, ...]] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    information: Tuple[Information, ...] = ()

    def __post_init__(self) -> None:
        if self.trigger_type is TriggerType.CUSTOM and not self.label:
            raise ValueError("CUSTOM scheduled triggers need a label")


class TriggerSchedule:
    """Ordered collection of scheduled triggers."""

    def __init__(self, entries: Optional[List[ScheduledTrigger]] = None) -> None:
        self._entries: List[ScheduledTrigger] = list(entries or [])

    def add(self, entry: ScheduledTrigger) -> "TriggerSchedule":
        self._entries.append(entry)
        return self

    def every(
        self,
        trigger_type: TriggerType,
        every: int = 1,
        *,
        offset: int = DEFAULT_OFFSET,
        until: Optional[int] = None,
        label: Optional[str] = None,
        targets: Optional[List[str]] = None,
        payload: Optional[Dict[str, Any]] = None,
        information: Tuple[Information, ...] = (),
    ) -> "TriggerSchedule":
        """Shorthand for ``add(ScheduledTrigger(...))``."""

        return self.add(
            ScheduledTrigger(
                trigger_type=TriggerType(trigger_type),
                interval=TickInterval(every=every, offset=offset, until=until),
                label=label,
                targets=tuple(targets) if targets is not None else None,
                payload=dict(payload or {}),
                information=tuple(information),
            )
        )

    def due(self, tick: int) -> List[ScheduledTrigger]:
        return [entry for entry in self._entries if entry.interval.is_due(tick=tick)]

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["DEFAULT_OFFSET", "TickInterval", "ScheduledTrigger", "TriggerSchedule"]
