# -*- coding: utf-8 -*-
"""
Recalculation fan-out.

A profile write (save / activate) produces one RecalculationEvent. Every
registered subscriber receives it concurrently; the write completes only once
all of them have settled. A failing subscriber is logged and recorded, it
never cancels its siblings.

    IDLE -> DISPATCHING -> AWAITING -> SETTLED
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Tuple, Union

from corridor.models import PriorityChange, RecalculationEvent

logger = logging.getLogger(__name__)

SIGNIFICANT_CHANGE_THRESHOLD = 5

Subscriber = Callable[[RecalculationEvent], Union[Awaitable[Any], Any]]


class RecalculationState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    AWAITING = "awaiting"
    SETTLED = "settled"


@dataclass(frozen=True)
class RecalculationOutcome:
    name: str
    ok: bool
    error: Optional[BaseException] = None


@dataclass
class RecalculationReport:
    event: RecalculationEvent
    outcomes: List[RecalculationOutcome] = field(default_factory=list)
    state: RecalculationState = RecalculationState.IDLE

    @property
    def succeeded(self) -> List[str]:
        return [o.name for o in self.outcomes if o.ok]

    @property
    def failed(self) -> List[RecalculationOutcome]:
        return [o for o in self.outcomes if not o.ok]


class RecalculationCoordinator:
    """Ordered, append-only list of subscribers plus the dispatch barrier."""

    def __init__(self):
        self._subscribers: List[Tuple[str, Subscriber]] = []

    @property
    def subscriber_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self._subscribers)

    def register(self, subscriber: Subscriber, name: Optional[str] = None) -> str:
        name = name or getattr(subscriber, "__qualname__", None) or repr(subscriber)
        self._subscribers.append((name, subscriber))
        logger.debug("Recalculation subscriber registered: %s", name)
        return name

    async def _run_isolated(self, name, subscriber, event) -> RecalculationOutcome:
        try:
            result = subscriber(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.exception(
                "Recalculation subscriber %s failed for %s/%s",
                name, event.user_id, event.profile_name,
            )
            return RecalculationOutcome(name=name, ok=False, error=e)
        return RecalculationOutcome(name=name, ok=True)

    async def dispatch(self, event: RecalculationEvent) -> RecalculationReport:
        report = RecalculationReport(event=event)
        subscribers = list(self._subscribers)

        report.state = RecalculationState.DISPATCHING
        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(self._run_isolated(name, sub, event))
                for name, sub in subscribers
            ]
            report.state = RecalculationState.AWAITING

        report.outcomes = [t.result() for t in tasks]
        report.state = RecalculationState.SETTLED

        if report.failed:
            logger.warning(
                "Recalculation for %s/%s settled with %d/%d failures",
                event.user_id, event.profile_name, len(report.failed), len(subscribers),
            )
        else:
            logger.info(
                "Recalculation for %s/%s settled (%d subscribers)",
                event.user_id, event.profile_name, len(subscribers),
            )
        return report


def is_significant(before: int, after: int, threshold: int = SIGNIFICANT_CHANGE_THRESHOLD) -> bool:
    return abs(after - before) >= threshold


def significant_changes(
    before: Mapping[int, int],
    after: Mapping[int, int],
    names: Optional[Mapping[int, str]] = None,
    threshold: int = SIGNIFICANT_CHANGE_THRESHOLD,
) -> List[PriorityChange]:
    """
    Stations whose score moved by at least ``threshold`` points, largest
    movement first. Only stations present on both sides are compared.
    """
    names = names or {}
    changes = [
        PriorityChange(
            station_id=station_id,
            name=names.get(station_id, f"Station {station_id}"),
            old_priority=before[station_id],
            new_priority=new_score,
        )
        for station_id, new_score in after.items()
        if station_id in before and is_significant(before[station_id], new_score, threshold)
    ]
    changes.sort(key=lambda c: abs(c.change), reverse=True)
    return changes
