"""
Pydantic schemas for the Choiceverse decision engine.

All plain-data structures shared between the pipeline, agents, the event
system and the orchestrator are defined here.

Design Philosophy:
- Value types (Information, Trigger, Event, Violation) are frozen; every
  transformation produces a new instance
- Snapshots are detached copies of population/environment state, never live
  references, so validation and persistence can't mutate the model
- Everything serializes with model_dump()/model_dump_json() for external
  persistence layers
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


EXTERNAL_SOURCE = "external"
"""Source id used for information that did not originate from an agent."""


def new_agent_id() -> str:
    """Generate a fresh opaque agent identifier."""

    return str(uuid4())


def clamp_unit(value: float) -> float:
    """Clamp a float into the closed [0, 1] interval."""

    return max(0.0, min(1.0, float(value)))


def describe_choice(choice: Any) -> str:
    """Return a stable, human-readable label for a choice value.

    Event payloads store this label rather than the choice object so the
    log stays plain data. Objects exposing ``name`` use it; pydantic models
    use their JSON dump; everything else falls back to ``repr``.
    """

    if choice is None:
        return "none"
    if isinstance(choice, (str, int, float, bool)):
        return str(choice)
    name = getattr(choice, "name", None)
    if isinstance(name, str):
        return name
    if isinstance(choice, BaseModel):
        return choice.model_dump_json()
    return repr(choice)


# ============================================================================
# Information & Triggers
# ============================================================================


class Information(BaseModel):
    """A unit of information that can be delivered to an agent.

    Immutable once constructed. Pipeline stages return new instances
    (see with_reliability/with_payload) rather than editing in place.
    """

    model_config = ConfigDict(frozen=True)

    info_id: str = Field(default_factory=lambda: str(uuid4()), description="Identity of the item")
    topic: str = Field(..., description="Topic the item is about")
    payload: Any = Field(None, description="Opaque content")
    reliability: float = Field(..., ge=0.0, le=1.0, description="Perceived reliability in [0, 1]")
    source: str = Field(EXTERNAL_SOURCE, description="Originating agent id or 'external'")
    timestamp: float = Field(0.0, description="Simulation time the item was produced")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def with_reliability(self, reliability: float) -> "Information":
        """Return a copy with reliability clamped into [0, 1]."""

        return self.model_copy(update={"reliability": clamp_unit(reliability)})

    def with_payload(self, payload: Any) -> "Information":
        return self.model_copy(update={"payload": payload})

    def with_metadata(self, key: str, value: Any) -> "Information":
        metadata = dict(self.metadata)
        metadata[key] = value
        return self.model_copy(update={"metadata": metadata})

    def age(self, current_time: float) -> float:
        return current_time - self.timestamp

    def is_recent(self, current_time: float, threshold: float) -> bool:
        return self.age(current_time) <= threshold


class TriggerType(str, Enum):
    """Why a decision is being requested."""

    TEMPORAL = "temporal"
    INFORMATIONAL = "informational"
    SOCIAL = "social"
    ECONOMIC = "economic"
    REGULATORY = "regulatory"
    TECHNOLOGICAL = "technological"
    ENVIRONMENTAL = "environmental"
    PERSONAL = "personal"
    STOCHASTIC = "stochastic"
    CUSTOM = "custom"

    @classmethod
    def standard_types(cls) -> List["TriggerType"]:
        """All trigger types except CUSTOM."""

        return [member for member in cls if member is not cls.CUSTOM]


class Trigger(BaseModel):
    """A concrete trigger instance delivered at a tick.

    ``sequence`` is the arrival order within the tick and breaks ties when an
    agent receives several triggers. ``targets`` of None means every agent.
    """

    model_config = ConfigDict(frozen=True)

    trigger_id: str = Field(default_factory=lambda: str(uuid4()))
    trigger_type: TriggerType
    tick: int = Field(0, ge=0)
    sequence: int = Field(0, ge=0)
    label: Optional[str] = Field(None, description="Name for CUSTOM triggers")
    targets: Optional[List[str]] = Field(None, description="Agent ids; None = everyone")
    payload: Dict[str, Any] = Field(default_factory=dict)
    information: List[Information] = Field(
        default_factory=list, description="Information delivered with the trigger"
    )

    def applies_to(self, agent_id: str) -> bool:
        return self.targets is None or agent_id in self.targets

    @property
    def display_name(self) -> str:
        if self.trigger_type is TriggerType.CUSTOM and self.label:
            return f"custom({self.label})"
        return self.trigger_type.value


# ============================================================================
# Events
# ============================================================================


class EventKind(str, Enum):
    AGENT_ADDED = "agent_added"
    AGENT_REMOVED = "agent_removed"
    SIMULATION_STARTED = "simulation_started"
    TICK_STARTED = "tick_started"
    ENVIRONMENT_UPDATED = "environment_updated"
    CHOICE_MADE = "choice_made"
    CHOICE_DEFERRED = "choice_deferred"
    DECISION_FAILED = "decision_failed"
    TICK_COMPLETED = "tick_completed"
    VALIDATION_VIOLATION = "validation_violation"
    SIMULATION_COMPLETED = "simulation_completed"
    SIMULATION_HALTED = "simulation_halted"
    CUSTOM = "custom"


DECISION_KINDS = frozenset(
    {EventKind.CHOICE_MADE, EventKind.CHOICE_DEFERRED, EventKind.DECISION_FAILED}
)


class Event(BaseModel):
    """Immutable record in the event log.

    ``sequence`` is assigned by the EventSystem when the event is recorded;
    events built by the factories below start with ``sequence=None``.
    """

    model_config = ConfigDict(frozen=True)

    sequence: Optional[int] = Field(None, ge=0, description="Position in the log")
    tick: int = Field(..., ge=0)
    agent_id: Optional[str] = None
    kind: EventKind
    description: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)

    # Factories ----------------------------------------------------------------

    @classmethod
    def agent_added(cls, agent_id: str, tick: int) -> "Event":
        return cls(
            tick=tick,
            agent_id=agent_id,
            kind=EventKind.AGENT_ADDED,
            description=f"Agent {agent_id} added to model",
        )

    @classmethod
    def agent_removed(cls, agent_id: str, tick: int) -> "Event":
        return cls(
            tick=tick,
            agent_id=agent_id,
            kind=EventKind.AGENT_REMOVED,
            description=f"Agent {agent_id} removed from model",
        )

    @classmethod
    def simulation_started(cls, tick: int, *, agents: int, seed: int) -> "Event":
        return cls(
            tick=tick,
            kind=EventKind.SIMULATION_STARTED,
            description="Simulation started",
            payload={"agents": agents, "seed": seed},
        )

    @classmethod
    def tick_started(cls, tick: int, *, triggers: int) -> "Event":
        return cls(
            tick=tick,
            kind=EventKind.TICK_STARTED,
            description=f"Tick {tick} started",
            payload={"triggers": triggers},
        )

    @classmethod
    def environment_updated(cls, tick: int, changes: List[str]) -> "Event":
        return cls(
            tick=tick,
            kind=EventKind.ENVIRONMENT_UPDATED,
            description=f"Environment produced {len(changes)} change(s)",
            payload={"changes": changes},
        )

    @classmethod
    def choice_made(
        cls,
        agent_id: str,
        tick: int,
        *,
        choice: str,
        choice_index: int,
        trigger: Trigger,
        evaluation_scores: Dict[str, float],
        information_delivered: int,
    ) -> "Event":
        return cls(
            tick=tick,
            agent_id=agent_id,
            kind=EventKind.CHOICE_MADE,
            description=f"Agent {agent_id} made choice: {choice}",
            payload={
                "choice": choice,
                "choice_index": choice_index,
                "trigger": trigger.display_name,
                "trigger_id": trigger.trigger_id,
                "evaluation_scores": evaluation_scores,
                "information_delivered": information_delivered,
            },
        )

    @classmethod
    def choice_deferred(
        cls,
        agent_id: str,
        tick: int,
        *,
        trigger: Trigger,
        reason: str,
        information_delivered: int,
    ) -> "Event":
        return cls(
            tick=tick,
            agent_id=agent_id,
            kind=EventKind.CHOICE_DEFERRED,
            description=f"Agent {agent_id} deferred ({reason})",
            payload={
                "trigger": trigger.display_name,
                "trigger_id": trigger.trigger_id,
                "reason": reason,
                "information_delivered": information_delivered,
            },
        )

    @classmethod
    def decision_failed(
        cls,
        agent_id: str,
        tick: int,
        *,
        trigger: Trigger,
        error_type: str,
        message: str,
    ) -> "Event":
        return cls(
            tick=tick,
            agent_id=agent_id,
            kind=EventKind.DECISION_FAILED,
            description=f"Agent {agent_id} decision failed: {message}",
            payload={
                "trigger": trigger.display_name,
                "trigger_id": trigger.trigger_id,
                "error_type": error_type,
                "message": message,
            },
        )

    @classmethod
    def tick_completed(
        cls, tick: int, *, decisions: int, choices: int, deferred: int, failures: int
    ) -> "Event":
        return cls(
            tick=tick,
            kind=EventKind.TICK_COMPLETED,
            description=f"Tick {tick} completed",
            payload={
                "decisions": decisions,
                "choices": choices,
                "deferred": deferred,
                "failures": failures,
            },
        )

    @classmethod
    def validation_violation(cls, violation: "Violation", tick: int) -> "Event":
        return cls(
            tick=tick,
            agent_id=violation.agent_id,
            kind=EventKind.VALIDATION_VIOLATION,
            description=f"Validation {violation.severity.value}: {violation.message}",
            payload=violation.model_dump(mode="json"),
        )

    @classmethod
    def simulation_completed(cls, tick: int, *, reason: str) -> "Event":
        return cls(
            tick=tick,
            kind=EventKind.SIMULATION_COMPLETED,
            description="Simulation completed",
            payload={"reason": reason},
        )

    @classmethod
    def simulation_halted(cls, tick: int, *, reason: str) -> "Event":
        return cls(
            tick=tick,
            kind=EventKind.SIMULATION_HALTED,
            description=f"Simulation halted: {reason}",
            payload={"reason": reason},
        )


# ============================================================================
# Validation
# ============================================================================


class Severity(str, Enum):
    WARNING = "warning"
    FATAL = "fatal"


class Violation(BaseModel):
    """Output of a validation rule. Only FATAL violations halt a run."""

    model_config = ConfigDict(frozen=True)

    rule: str
    severity: Severity = Severity.WARNING
    message: str
    agent_id: Optional[str] = None
    tick: Optional[int] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_fatal(self) -> bool:
        return self.severity is Severity.FATAL


# ============================================================================
# Snapshots
# ============================================================================


class AgentSnapshot(BaseModel):
    """Point-in-time copy of one agent's attributes and decision counters."""

    agent_id: str
    psychological: Dict[str, float] = Field(default_factory=dict)
    socioeconomic: Dict[str, float] = Field(default_factory=dict)
    stock_variables: Dict[str, Optional[str]] = Field(default_factory=dict)
    state: Dict[str, float] = Field(default_factory=dict)
    choices_made: int = 0
    resolved_triggers: List[str] = Field(default_factory=list)


class PopulationSnapshot(BaseModel):
    tick: int = Field(0, ge=0)
    agents: List[AgentSnapshot] = Field(default_factory=list)

    def get(self, agent_id: str) -> Optional[AgentSnapshot]:
        for agent in self.agents:
            if agent.agent_id == agent_id:
                return agent
        return None


class NetworkStatistics(BaseModel):
    node_count: int = 0
    edge_count: int = 0
    average_degree: float = 0.0
    density: float = 0.0
    clustering_coefficient: float = 0.0


class EnvironmentSnapshot(BaseModel):
    tick: int = Field(0, ge=0)
    physical_assets: List[str] = Field(default_factory=list)
    knowledge_topics: List[str] = Field(default_factory=list)
    networks: List[NetworkStatistics] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Configuration & Summary
# ============================================================================


class StopCondition(BaseModel):
    """When a run ends.

    ``convergence`` (optional) receives the population snapshot and tick
    after each tick; returning True completes the run early. It is excluded
    from serialization.
    """

    max_ticks: int = Field(100, ge=1, description="Hard tick limit")
    convergence: Optional[Callable[[PopulationSnapshot, int], bool]] = Field(
        None, exclude=True
    )


class ModelConfiguration(BaseModel):
    """Already-validated setup supplied by the construction layer."""

    model_id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1)
    description: str = ""
    stop_condition: StopCondition = Field(default_factory=StopCondition)
    seed: int = Field(0, ge=0, description="Run seed for all derived randomness")
    validation_enabled: bool = True
    parallel_agents: bool = Field(
        False, description="Process agents in worker threads within a tick"
    )
    hot_join: bool = Field(False, description="Allow add_agent while running")

    @classmethod
    def from_env(cls, name: str, description: str = "", **overrides: Any) -> "ModelConfiguration":
        """Build a configuration using Config defaults for ticks and seed."""

        from .config import Config

        values: Dict[str, Any] = {
            "name": name,
            "description": description,
            "stop_condition": StopCondition(max_ticks=Config.DEFAULT_TICK_COUNT),
            "seed": Config.DEFAULT_SEED,
        }
        values.update(overrides)
        return cls(**values)


class RunStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    HALTED = "halted"


class DecisionFailure(BaseModel):
    tick: int
    agent_id: str
    trigger_id: str
    error_type: str = Field(..., description="'choice' or 'pipeline'")
    message: str


class TickSummary(BaseModel):
    tick: int
    decisions: int = 0
    choices_made: int = 0
    deferred: int = 0
    failures: List[DecisionFailure] = Field(default_factory=list)
    violations: List[Violation] = Field(default_factory=list)


class Summary(BaseModel):
    """Statistics snapshot for a run, computed by scanning the event log."""

    name: str
    status: RunStatus
    ticks_completed: int = 0
    total_agents: int = 0
    total_decisions: int = 0
    total_choices_made: int = 0
    total_deferred: int = 0
    average_choices_per_agent: float = 0.0
    events_recorded: int = 0
    validation_warnings: int = 0
    choices_by_agent: Dict[str, int] = Field(default_factory=dict)
    failures: List[DecisionFailure] = Field(default_factory=list)
    fatal_violations: List[Violation] = Field(default_factory=list)
    halt_reason: Optional[str] = None
    ticks: List[TickSummary] = Field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status is RunStatus.COMPLETED

    @property
    def halted(self) -> bool:
        return self.status is RunStatus.HALTED
