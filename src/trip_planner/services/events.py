"""Structured events emitted by the planning stages."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Protocol

logger = logging.getLogger("trip_planner.events")


@dataclass(slots=True, frozen=True)
class PlanningEvent:
    @property
    def name(self) -> str:
        return type(self).__name__

    level = logging.INFO


@dataclass(slots=True, frozen=True)
class SolveCompleted(PlanningEvent):
    leg_count: int
    method: str
    total_distance_m: float
    solving_time_ms: float


@dataclass(slots=True, frozen=True)
class SolverFallback(PlanningEvent):
    leg_count: int
    elapsed_ms: float
    budget_ms: float
    level = logging.WARNING


@dataclass(slots=True, frozen=True)
class DayClosed(PlanningEvent):
    day_number: int
    leg_count: int
    distance_km: float
    elevation_gain_m: float


@dataclass(slots=True, frozen=True)
class PartitionFailed(PlanningEvent):
    code: str
    details: str
    leg_index: Optional[int] = None
    level = logging.WARNING


@dataclass(slots=True, frozen=True)
class TransferRouted(PlanningEvent):
    origin_leg: Optional[int]
    destination_leg: int
    length_m: float
    point_count: int
    level = logging.DEBUG


@dataclass(slots=True, frozen=True)
class TransferFallback(PlanningEvent):
    origin_leg: Optional[int]
    destination_leg: int
    reason: str
    level = logging.WARNING


@dataclass(slots=True, frozen=True)
class PlanCompleted(PlanningEvent):
    ok: bool
    day_count: int = 0
    error: Optional[str] = None
    elapsed_ms: float = 0.0


class EventSink(Protocol):
    def emit(self, event: PlanningEvent) -> None: ...


class LoggingEventSink:
    """Write events to the ``trip_planner.events`` logger."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def emit(self, event: PlanningEvent) -> None:
        fields = " ".join(f"{key}={value}" for key, value in asdict(event).items())
        self._log.log(event.level, f"{event.name} {fields}")


@dataclass
class CollectingEventSink:
    """Keep every event in memory."""

    events: List[PlanningEvent] = field(default_factory=list)

    def emit(self, event: PlanningEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [event for event in self.events if isinstance(event, event_type)]
