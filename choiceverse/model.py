"""
Consumer choice model orchestrator.

Fully decoupled from file I/O and global config: the environment, the
transformer, validation, event log and persistence are all injected.

Each tick runs the same fixed sequence:
0. Join queued agents, advance the environment (exogenous processes)
1. Collect triggers in arrival order: scheduled, environment-generated,
   peer influence from the previous tick, injected
2. For every agent (ascending id) and every trigger that applies to it
   (arrival order): gather candidate information, run the transformer,
   build the ChoiceContext and resolve the trigger
3. Append exactly one decision event per (agent, trigger) pair in
   (agent id, trigger sequence) order, plus tick boundary events
4. Validate the population; FATAL violations halt the run once the tick is
   recorded
5. Hand the tick's events and population snapshot to the persistence strategy

All randomness is derived from (seed, tick, agent id, call site), so a run is
reproducible from its configuration alone, whether agents are processed
sequentially or in worker threads.
"""

from __future__ import annotations

import asyncio
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .agent import ConsumerAgent, Decision
from .choice import PEER_CHOICE_TOPIC, ChoiceContext
from .environment import Environment, EnvironmentChange, EnvironmentView
from .errors import ChoiceError, ConfigurationError, DuplicateAgentError, PipelineError
from .events import EventSystem
from .information import FilterContext, Transformer
from .logging_utils import (
    LOG_TAG_DETERMINISTIC,
    LOG_TAG_ERROR,
    LOG_TAG_INFO,
    LOG_TAG_SUCCESS,
    is_quiet,
    is_verbose,
    log_deterministic,
    log_error,
    log_info,
    log_success,
)
from .persistence import InMemoryPersistence, PersistenceStrategy, SimulationRun
from .randomness import (
    CALL_SITE_CHOICE,
    CALL_SITE_ENVIRONMENT,
    CALL_SITE_PIPELINE,
    derive_rng,
)
from .schemas import (
    DECISION_KINDS,
    DecisionFailure,
    Event,
    EventKind,
    Information,
    ModelConfiguration,
    PopulationSnapshot,
    RunStatus,
    Severity,
    Summary,
    TickSummary,
    Trigger,
    TriggerType,
    Violation,
    describe_choice,
)
from .triggers import TriggerSchedule
from .validation import ValidationEngine


ChoiceProvider = Callable[[ConsumerAgent, Trigger, EnvironmentView], Sequence[Any]]
FilterContextBuilder = Callable[[ConsumerAgent, Trigger, int, random.Random], FilterContext]


def default_choice_provider(
    agent: ConsumerAgent, trigger: Trigger, environment: EnvironmentView
) -> List[Any]:
    """Offer every available physical asset (optionally one ``asset_type``)."""

    asset_type = trigger.payload.get("asset_type")
    return list(environment.available_assets(asset_type))


def default_filter_context_builder(
    agent: ConsumerAgent, trigger: Trigger, tick: int, rng: random.Random
) -> FilterContext:
    """Derive the pipeline context from the agent's attributes."""

    attrs = agent.attributes
    return FilterContext(
        current_time=float(tick),
        agent_interests=tuple(attrs.interests),
        agent_biases=dict(attrs.biases),
        social_influence=attrs.psychological.get("social_influence", 0.0),
        stress_level=attrs.psychological.get("stress", 0.0),
        confirmation_bias_strength=attrs.psychological.get("confirmation_bias", 0.5),
        rng=rng,
    )


@dataclass
class _InjectedTrigger:
    tick: int
    trigger_type: TriggerType
    targets: Optional[List[str]]
    payload: Dict[str, Any]
    information: List[Information]
    label: Optional[str]


@dataclass
class _PeerDelivery:
    target: str
    information: Information


@dataclass
class _DecisionOutcome:
    trigger: Trigger
    decision: Optional[Decision] = None
    delivered: int = 0
    error: Optional[Exception] = None
    error_type: Optional[str] = None


@dataclass
class _AgentOutcome:
    agent_id: str
    decisions: List[_DecisionOutcome] = field(default_factory=list)


class ConsumerChoiceModel:
    """
    Orchestrates a population of consumer agents through simulated time.

    Lifecycle: created -> running -> completed | halted. ``run()`` drives the
    loop to a stop condition; ``step()`` runs exactly one tick.
    """

    def __init__(
        self,
        configuration: ModelConfiguration,
        environment: Environment,
        transformer: Transformer,
        *,
        validation_engine: Optional[ValidationEngine] = None,
        event_system: Optional[EventSystem] = None,
        persistence: Optional[PersistenceStrategy] = None,
        trigger_schedule: Optional[TriggerSchedule] = None,
        choice_provider: Optional[ChoiceProvider] = None,
        filter_context_builder: Optional[FilterContextBuilder] = None,
    ):
        """Initialize the model with all collaborators injected.

        Args:
            configuration: Validated ModelConfiguration (seed, stop condition, ...)
            environment: Environment agents choose within
            transformer: Information pipeline applied per (agent, trigger)
            validation_engine: Rules checked after each tick (defaults to
                attribute range + single resolution)
            event_system: Event log (defaults to a fresh EventSystem)
            persistence: Output sink (defaults to InMemoryPersistence)
            trigger_schedule: Recurring triggers
            choice_provider: Builds the candidate set for a decision
                (defaults to the environment's available assets)
            filter_context_builder: Builds the pipeline FilterContext
        """
        if configuration is None:
            raise ConfigurationError("ConsumerChoiceModel requires a ModelConfiguration")
        if environment is None:
            raise ConfigurationError("ConsumerChoiceModel requires an Environment")
        if transformer is None:
            raise ConfigurationError("ConsumerChoiceModel requires a Transformer")

        self.configuration = configuration
        self.environment = environment
        self.transformer = transformer
        self.validation_engine = (
            validation_engine if validation_engine is not None else ValidationEngine.with_defaults()
        )
        self.event_system = event_system or EventSystem()
        self.persistence = persistence or InMemoryPersistence()
        self.trigger_schedule = trigger_schedule or TriggerSchedule()
        self.choice_provider: ChoiceProvider = choice_provider or default_choice_provider
        self.filter_context_builder: FilterContextBuilder = (
            filter_context_builder or default_filter_context_builder
        )

        self.status = RunStatus.CREATED
        self.current_tick = 0
        self._agents: Dict[str, ConsumerAgent] = {}
        self._pending_agents: List[ConsumerAgent] = []
        self._injected: List[_InjectedTrigger] = []
        self._peer_deliveries: List[_PeerDelivery] = []
        self._cancel_requested = False
        self._stepping = False
        self._persistence_open = False
        self._persisted_events = 0

    @property
    def run_id(self) -> str:
        return self.configuration.model_id

    # =============================
    # Population management
    # =============================

    @property
    def agents(self) -> Dict[str, ConsumerAgent]:
        return dict(self._agents)

    def get_agent(self, agent_id: str) -> Optional[ConsumerAgent]:
        return self._agents.get(agent_id)

    def add_agent(self, agent: ConsumerAgent) -> None:
        """Add an agent to the population.

        While the run is in progress this requires ``hot_join``; the agent
        then joins at the next tick boundary.

        Raises:
            DuplicateAgentError: the id is already present (or queued)
            ConfigurationError: invalid agent/attributes, shared choice
                module, adding mid-run without hot_join, or the run ended
        """
        if not isinstance(agent, ConsumerAgent):
            raise ConfigurationError(f"Expected ConsumerAgent, got {type(agent).__name__}")
        if self.status in (RunStatus.COMPLETED, RunStatus.HALTED):
            raise ConfigurationError(f"Cannot add agent {agent.agent_id}: the run has ended")

        agent_id = agent.agent_id
        known = list(self._agents.values()) + self._pending_agents
        if any(existing.agent_id == agent_id for existing in known):
            raise DuplicateAgentError(agent_id)
        for existing in known:
            if existing.choice_module is agent.choice_module:
                raise ConfigurationError(
                    f"Agent {agent_id} shares its choice module instance with agent "
                    f"{existing.agent_id}; each agent needs its own module"
                )

        if self.configuration.validation_enabled:
            violations = self.validation_engine.validate_agent(agent.snapshot(), self.current_tick)
            fatal = [violation for violation in violations if violation.is_fatal]
            if fatal:
                details = "; ".join(violation.message for violation in fatal)
                raise ConfigurationError(f"Agent {agent_id} failed validation: {details}")

        if self.status is RunStatus.RUNNING:
            if not self.configuration.hot_join:
                raise ConfigurationError(
                    f"Cannot add agent {agent_id} while the model is running.\n\n"
                    "Remediation tips:\n"
                    "  - Add agents before calling run()/step()\n"
                    "  - Or set ModelConfiguration.hot_join=True to join at the next tick"
                )
            self._pending_agents.append(agent)
            return

        self._register(agent)

    def remove_agent(self, agent_id: str) -> ConsumerAgent:
        """Remove an agent. Only allowed while the model is not running."""
        if self.status is RunStatus.RUNNING:
            raise ConfigurationError(f"Cannot remove agent {agent_id} while the model is running")
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            raise ConfigurationError(f"Agent {agent_id} is not part of the model")
        self.event_system.record(Event.agent_removed(agent_id, self.current_tick))
        return agent

    def _register(self, agent: ConsumerAgent) -> None:
        self._agents[agent.agent_id] = agent
        self.event_system.record(Event.agent_added(agent.agent_id, self.current_tick))

    # =============================
    # External input
    # =============================

    def inject_trigger(
        self,
        trigger_type: TriggerType,
        *,
        tick: Optional[int] = None,
        targets: Optional[Iterable[str]] = None,
        payload: Optional[Dict[str, Any]] = None,
        information: Iterable[Information] = (),
        label: Optional[str] = None,
    ) -> int:
        """Queue an external trigger and return the tick it will fire on.

        Defaults to the next tick. Injected triggers arrive after scheduled,
        environment and peer triggers of the same tick.
        """
        trigger_type = TriggerType(trigger_type)
        if trigger_type is TriggerType.CUSTOM and not label:
            raise ConfigurationError("CUSTOM triggers need a label")
        if self.status in (RunStatus.COMPLETED, RunStatus.HALTED):
            raise ConfigurationError("Cannot inject triggers after the run has ended")
        when = self.current_tick + 1 if tick is None else tick
        if when <= self.current_tick and self.status is RunStatus.RUNNING:
            raise ConfigurationError(
                f"Cannot inject a trigger for tick {when}; tick {self.current_tick} already ran"
            )
        if when < 1:
            raise ConfigurationError("Triggers fire on ticks >= 1")
        self._injected.append(
            _InjectedTrigger(
                tick=when,
                trigger_type=trigger_type,
                targets=list(targets) if targets is not None else None,
                payload=dict(payload or {}),
                information=list(information),
                label=label,
            )
        )
        return when

    def cancel(self) -> None:
        """Request cooperative cancellation.

        Checked at tick boundaries and between agents; an agent is never
        interrupted mid-decision. The run ends as halted with reason
        "cancelled".
        """
        self._cancel_requested = True

    # =============================
    # Run loop
    # =============================

    async def run(self) -> Summary:
        """Run until a stop condition, a fatal violation or cancellation.

        Returns:
            Summary computed from the event log
        """
        self._ensure_not_finished()
        try:
            await self._start()
            while self.status is RunStatus.RUNNING:
                await self.step()
        except Exception as exc:
            log_error(f"  {LOG_TAG_ERROR} ERROR at tick {self.current_tick}: {exc}")
            raise
        finally:
            # Always release the persistence backend, even when a tick fails.
            await self._close_persistence()
        return self.summary()

    async def step(self) -> Optional[TickSummary]:
        """Run exactly one tick.

        Any error escaping the tick halts the run with reason "error: ..."
        (recorded in the log, the summary and the run metadata) before it
        propagates; the failed tick is never skipped by a later call.

        Returns:
            The tick's summary, or None when a pending cancellation ended the
            run before the tick started.
        """
        self._ensure_not_finished()
        if self._stepping:
            raise ConfigurationError("step() is already in progress")
        self._stepping = True
        try:
            await self._start()

            if self._cancel_requested:
                await self._finish(RunStatus.HALTED, "cancelled")
                return None

            try:
                return await self._step_tick(self.current_tick + 1)
            except Exception as exc:
                if self.status is RunStatus.RUNNING:
                    await self._finish(RunStatus.HALTED, f"error: {exc}")
                raise
        finally:
            self._stepping = False

    async def _step_tick(self, tick: int) -> TickSummary:
        tick_summary, interrupted = await self._run_tick(tick)

        population = self.population_snapshot()
        await self._persist_events()
        await self.persistence.save_snapshot(self.run_id, tick, population)

        fatal = [violation for violation in tick_summary.violations if violation.is_fatal]
        stop = self.configuration.stop_condition
        if fatal:
            await self._finish(
                RunStatus.HALTED, f"fatal validation violation ({fatal[0].rule})"
            )
        elif interrupted or self._cancel_requested:
            await self._finish(RunStatus.HALTED, "cancelled")
        elif stop.convergence is not None and self._check_convergence(population, tick):
            await self._finish(RunStatus.COMPLETED, "converged")
        elif tick >= stop.max_ticks:
            await self._finish(RunStatus.COMPLETED, "max_ticks")
        return tick_summary

    def _ensure_not_finished(self) -> None:
        if self.status in (RunStatus.COMPLETED, RunStatus.HALTED):
            raise ConfigurationError(
                f"Run already {self.status.value}; build a new model to run again"
            )

    def _check_convergence(self, population: PopulationSnapshot, tick: int) -> bool:
        predicate = self.configuration.stop_condition.convergence
        assert predicate is not None
        try:
            return bool(predicate(population, tick))
        except Exception as exc:
            raise ConfigurationError(f"Convergence predicate raised at tick {tick}: {exc}") from exc

    async def _start(self) -> None:
        if self.status is not RunStatus.CREATED:
            return
        await self.persistence.initialize()
        self._persistence_open = True
        config = self.configuration
        await self.persistence.save_run_metadata(
            SimulationRun(
                run_id=self.run_id,
                name=config.name,
                description=config.description,
                seed=config.seed,
                max_ticks=config.stop_condition.max_ticks,
                agent_count=len(self._agents),
                status=RunStatus.RUNNING,
                start_time=datetime.now(timezone.utc),
                transformer=self.transformer.describe(),
            )
        )
        self.status = RunStatus.RUNNING
        self.event_system.record(
            Event.simulation_started(self.current_tick, agents=len(self._agents), seed=config.seed)
        )
        if not is_quiet():
            print(f"Starting simulation '{config.name}' (run {self.run_id})")
            print(
                f"Agents: {len(self._agents)}, Max ticks: {config.stop_condition.max_ticks}, "
                f"Seed: {config.seed}\n"
            )

    async def _finish(self, status: RunStatus, reason: str) -> None:
        self.status = status
        if status is RunStatus.COMPLETED:
            self.event_system.record(Event.simulation_completed(self.current_tick, reason=reason))
        else:
            self.event_system.record(Event.simulation_halted(self.current_tick, reason=reason))
        await self._persist_events()
        summary = self.summary()
        await self.persistence.save_summary(self.run_id, summary)
        await self.persistence.update_run_status(
            self.run_id, status, end_time=datetime.now(timezone.utc)
        )
        await self._close_persistence()

        if not is_quiet():
            if status is RunStatus.COMPLETED:
                log_success(f"\n{LOG_TAG_SUCCESS} Simulation complete ({reason}).")
            else:
                log_error(f"\n{LOG_TAG_ERROR} Simulation halted: {reason}")

    async def _close_persistence(self) -> None:
        if self._persistence_open:
            self._persistence_open = False
            await self.persistence.close()

    async def _persist_events(self) -> None:
        new_events = self.event_system.events_since(self._persisted_events)
        if not new_events:
            return
        by_tick: Dict[int, List[Event]] = {}
        for event in new_events:
            by_tick.setdefault(event.tick, []).append(event)
        for tick in sorted(by_tick):
            await self.persistence.save_events(self.run_id, tick, by_tick[tick])
        self._persisted_events += len(new_events)

    # =============================
    # Tick
    # =============================

    async def _run_tick(self, tick: int) -> Tuple[TickSummary, bool]:
        """Execute a single tick. Returns (summary, interrupted_by_cancel)."""
        first_sequence = len(self.event_system)
        if not is_quiet():
            print(f"=== Tick {tick}/{self.configuration.stop_condition.max_ticks} ===")

        # Environment mutates only here, between ticks. The model's clock moves
        # only once the environment has.
        env_rng = derive_rng(self.configuration.seed, tick, None, CALL_SITE_ENVIRONMENT)
        changes = self.environment.advance_to(tick, env_rng)
        self.current_tick = tick

        # 0. Hot-joined agents enter before anything else is recorded this tick.
        for agent in sorted(self._pending_agents, key=lambda a: a.agent_id):
            self._register(agent)
        self._pending_agents.clear()

        # 1. Triggers in arrival order.
        triggers = self._collect_triggers(tick, changes)
        self.event_system.record(Event.tick_started(tick, triggers=len(triggers)))
        if changes:
            self.event_system.record(
                Event.environment_updated(tick, [change.description or change.change_id for change in changes])
            )
            if not is_quiet():
                log_deterministic(f"  {LOG_TAG_DETERMINISTIC} [Environment] {len(changes)} change(s) applied")

        # 2. Decisions. Results are buffered and appended in agent-id order.
        outcomes, interrupted = await self._decide_all(tick, triggers, changes)

        # 3. One decision event per (agent, trigger).
        for outcome in outcomes:
            for item in outcome.decisions:
                self.event_system.record(self._decision_event(outcome.agent_id, tick, item))

        self._peer_deliveries = self._collect_peer_deliveries(tick, outcomes)

        made = sum(1 for o in outcomes for d in o.decisions if d.decision is not None and d.decision.made)
        deferred = sum(1 for o in outcomes for d in o.decisions if d.decision is not None and not d.decision.made)
        failed = sum(1 for o in outcomes for d in o.decisions if d.error is not None)
        self.event_system.record(
            Event.tick_completed(
                tick, decisions=made + deferred + failed, choices=made, deferred=deferred, failures=failed
            )
        )

        # 4. Validation after the tick is fully recorded.
        if self.configuration.validation_enabled:
            violations = self.validation_engine.validate(
                self.population_snapshot(), self.environment.snapshot()
            )
            for violation in violations:
                self.event_system.record(Event.validation_violation(violation, tick))
                if not is_quiet():
                    if violation.is_fatal:
                        log_error(f"  {LOG_TAG_ERROR} [Validation] {violation.message}")
                    else:
                        log_info(f"  {LOG_TAG_INFO} [Validation] {violation.message}")

        if not is_quiet():
            log_success(f"  {LOG_TAG_SUCCESS} Tick {tick}: {made} choice(s), {deferred} deferred, {failed} failed")

        tick_events = self.event_system.events_since(first_sequence)
        return _tick_summary(tick, tick_events), interrupted

    def _collect_triggers(self, tick: int, changes: List[EnvironmentChange]) -> List[Trigger]:
        triggers: List[Trigger] = []

        def _add(**kwargs: Any) -> None:
            sequence = len(triggers)
            triggers.append(
                Trigger(trigger_id=f"t{tick}-{sequence}", tick=tick, sequence=sequence, **kwargs)
            )

        # Scheduled
        for entry in self.trigger_schedule.due(tick):
            _add(
                trigger_type=entry.trigger_type,
                label=entry.label,
                targets=list(entry.targets) if entry.targets is not None else None,
                payload=dict(entry.payload),
                information=list(entry.information),
            )

        # Environment-generated
        for change in changes:
            if change.trigger_type is None:
                continue
            _add(
                trigger_type=change.trigger_type,
                label=change.process if change.trigger_type is TriggerType.CUSTOM else None,
                targets=change.targets,
                payload={"change_id": change.change_id, "process": change.process},
                information=list(change.information),
            )

        # Peer influence from the previous tick, one social trigger per recipient
        by_target: Dict[str, List[Information]] = {}
        for delivery in self._peer_deliveries:
            if delivery.target in self._agents:
                by_target.setdefault(delivery.target, []).append(delivery.information)
        for target in sorted(by_target):
            items = by_target[target]
            _add(
                trigger_type=TriggerType.SOCIAL,
                targets=[target],
                payload={"sources": [item.source for item in items]},
                information=items,
            )

        # Injected
        remaining: List[_InjectedTrigger] = []
        for injected in self._injected:
            if injected.tick != tick:
                remaining.append(injected)
                continue
            _add(
                trigger_type=injected.trigger_type,
                label=injected.label,
                targets=injected.targets,
                payload=injected.payload,
                information=injected.information,
            )
        self._injected = remaining
        return triggers

    async def _decide_all(
        self, tick: int, triggers: List[Trigger], changes: List[EnvironmentChange]
    ) -> Tuple[List[_AgentOutcome], bool]:
        agent_ids = sorted(self._agents)
        work = [
            (self._agents[agent_id], [t for t in triggers if t.applies_to(agent_id)])
            for agent_id in agent_ids
        ]

        if self.configuration.parallel_agents:
            # Each agent only touches its own state and reads the shared
            # environment, so worker threads need no coordination. gather()
            # returns results in submission order (agent-id order).
            if self._cancel_requested:
                return [], True
            results = await asyncio.gather(
                *(
                    asyncio.to_thread(self._process_agent, agent, agent_triggers, tick, changes)
                    for agent, agent_triggers in work
                )
            )
            return list(results), False

        outcomes: List[_AgentOutcome] = []
        for agent, agent_triggers in work:
            if self._cancel_requested:
                return outcomes, True
            outcomes.append(self._process_agent(agent, agent_triggers, tick, changes))
        return outcomes, False

    def _process_agent(
        self,
        agent: ConsumerAgent,
        triggers: List[Trigger],
        tick: int,
        changes: List[EnvironmentChange],
    ) -> _AgentOutcome:
        outcome = _AgentOutcome(agent_id=agent.agent_id)
        for trigger in triggers:
            try:
                decision, delivered = self._decide(agent, trigger, tick, changes)
                outcome.decisions.append(
                    _DecisionOutcome(trigger=trigger, decision=decision, delivered=delivered)
                )
            except PipelineError as exc:
                outcome.decisions.append(
                    _DecisionOutcome(trigger=trigger, error=exc, error_type="pipeline")
                )
            except ChoiceError as exc:
                outcome.decisions.append(
                    _DecisionOutcome(trigger=trigger, error=exc, error_type="choice")
                )
        return outcome

    def _decide(
        self,
        agent: ConsumerAgent,
        trigger: Trigger,
        tick: int,
        changes: List[EnvironmentChange],
    ) -> Tuple[Decision, int]:
        seed = self.configuration.seed
        agent_id = agent.agent_id
        view = self.environment.view()

        candidates = self._candidate_information(agent_id, trigger, tick, changes)
        pipeline_rng = derive_rng(seed, tick, agent_id, f"{CALL_SITE_PIPELINE}:{trigger.sequence}")
        try:
            filter_context = self.filter_context_builder(agent, trigger, tick, pipeline_rng)
        except Exception as exc:
            raise PipelineError(f"Filter context builder raised {type(exc).__name__}: {exc}", stage="context") from exc
        delivered = self.transformer.process(candidates, agent_id, filter_context)

        try:
            choices = list(self.choice_provider(agent, trigger, view))
        except Exception as exc:
            raise ChoiceError(
                f"Choice provider raised {type(exc).__name__}: {exc}",
                agent_id=agent_id,
                trigger_id=trigger.trigger_id,
            ) from exc

        context = ChoiceContext(
            agent_id=agent_id,
            tick=tick,
            trigger=trigger,
            attributes=agent.attributes.model_copy(deep=True),
            information=delivered,
            environment=view,
            rng=derive_rng(seed, tick, agent_id, f"{CALL_SITE_CHOICE}:{trigger.sequence}"),
        )
        decision = agent.resolve_trigger(trigger, choices, context, time=float(tick))

        if is_verbose():
            if decision.made:
                log_info(f"    {agent_id} <- {trigger.display_name}: chose {describe_choice(decision.choice)}")
            else:
                log_info(f"    {agent_id} <- {trigger.display_name}: deferred ({decision.reason})")
        return decision, len(delivered)

    def _candidate_information(
        self,
        agent_id: str,
        trigger: Trigger,
        tick: int,
        changes: List[EnvironmentChange],
    ) -> List[Information]:
        """Knowledge, this tick's changes, peer choices, then trigger items (deduplicated by id)."""
        items: List[Information] = [
            knowledge.to_information()
            for knowledge in self.environment.accessible_knowledge(agent_id, tick)
        ]
        for change in changes:
            if change.targets is None or agent_id in change.targets:
                items.extend(change.information)
        items.extend(
            delivery.information for delivery in self._peer_deliveries if delivery.target == agent_id
        )
        items.extend(trigger.information)

        seen: set[str] = set()
        unique: List[Information] = []
        for item in items:
            if item.info_id in seen:
                continue
            seen.add(item.info_id)
            unique.append(item)
        return unique

    def _collect_peer_deliveries(self, tick: int, outcomes: List[_AgentOutcome]) -> List[_PeerDelivery]:
        deliveries: List[_PeerDelivery] = []
        for outcome in outcomes:
            source = outcome.agent_id
            for item in outcome.decisions:
                decision = item.decision
                if decision is None or not decision.made:
                    continue
                for neighbor in self.environment.neighbors(source):
                    if neighbor not in self._agents or not self.environment.can_interact(source, neighbor):
                        continue
                    deliveries.append(
                        _PeerDelivery(
                            target=neighbor,
                            information=Information(
                                info_id=f"peer:{tick}:{item.trigger.sequence}:{source}:{neighbor}",
                                topic=PEER_CHOICE_TOPIC,
                                payload={
                                    "agent_id": source,
                                    "choice": describe_choice(decision.choice),
                                    "choice_index": decision.choice_index,
                                },
                                reliability=self.environment.influence(source, neighbor),
                                source=source,
                                timestamp=float(tick),
                            ),
                        )
                    )
        return deliveries

    def _decision_event(self, agent_id: str, tick: int, item: _DecisionOutcome) -> Event:
        if item.error is not None:
            message = getattr(item.error, "reason", None) or str(item.error)
            if not is_quiet():
                log_error(
                    f"  {LOG_TAG_ERROR} [{agent_id}] {item.error_type} failure on {item.trigger.display_name}: {item.error}"
                )
            return Event.decision_failed(
                agent_id,
                tick,
                trigger=item.trigger,
                error_type=item.error_type or "choice",
                message=message,
            )
        decision = item.decision
        assert decision is not None
        if decision.made:
            return Event.choice_made(
                agent_id,
                tick,
                choice=describe_choice(decision.choice),
                choice_index=decision.choice_index or 0,
                trigger=item.trigger,
                evaluation_scores=dict(decision.evaluation_scores),
                information_delivered=item.delivered,
            )
        return Event.choice_deferred(
            agent_id,
            tick,
            trigger=item.trigger,
            reason=decision.reason or "no_choice",
            information_delivered=item.delivered,
        )

    # =============================
    # Snapshots & summary
    # =============================

    def population_snapshot(self) -> PopulationSnapshot:
        return PopulationSnapshot(
            tick=self.current_tick,
            agents=[self._agents[agent_id].snapshot() for agent_id in sorted(self._agents)],
        )

    def summary(self) -> Summary:
        """Statistics computed from the event log plus the current population."""
        events = self.event_system.events

        ticks: List[TickSummary] = []
        by_tick: Dict[int, List[Event]] = {}
        for event in events:
            by_tick.setdefault(event.tick, []).append(event)
        for tick in sorted(by_tick):
            if any(event.kind is EventKind.TICK_STARTED for event in by_tick[tick]):
                ticks.append(_tick_summary(tick, by_tick[tick]))

        choices_by_agent: Counter[str] = Counter({agent_id: 0 for agent_id in self._agents})
        validation_warnings = 0
        fatal: List[Violation] = []
        halt_reason: Optional[str] = None
        for event in events:
            if event.kind is EventKind.CHOICE_MADE and event.agent_id is not None:
                choices_by_agent[event.agent_id] += 1
            elif event.kind is EventKind.VALIDATION_VIOLATION:
                violation = Violation.model_validate(event.payload)
                if violation.severity is Severity.FATAL:
                    fatal.append(violation)
                else:
                    validation_warnings += 1
            elif event.kind is EventKind.SIMULATION_HALTED:
                halt_reason = event.payload.get("reason")

        total_choices = sum(tick.choices_made for tick in ticks)
        total_agents = len(self._agents)
        return Summary(
            name=self.configuration.name,
            status=self.status,
            ticks_completed=sum(1 for event in events if event.kind is EventKind.TICK_COMPLETED),
            total_agents=total_agents,
            total_decisions=sum(1 for event in events if event.kind in DECISION_KINDS),
            total_choices_made=total_choices,
            total_deferred=sum(tick.deferred for tick in ticks),
            average_choices_per_agent=(total_choices / total_agents) if total_agents else 0.0,
            events_recorded=len(events),
            validation_warnings=validation_warnings,
            choices_by_agent=dict(sorted(choices_by_agent.items())),
            failures=[failure for tick in ticks for failure in tick.failures],
            fatal_violations=fatal,
            halt_reason=halt_reason,
            ticks=ticks,
        )


def _tick_summary(tick: int, events: List[Event]) -> TickSummary:
    summary = TickSummary(tick=tick)
    for event in events:
        if event.tick != tick:
            continue
        if event.kind is EventKind.CHOICE_MADE:
            summary.choices_made += 1
        elif event.kind is EventKind.CHOICE_DEFERRED:
            summary.deferred += 1
        elif event.kind is EventKind.DECISION_FAILED:
            summary.failures.append(
                DecisionFailure(
                    tick=tick,
                    agent_id=event.agent_id or "",
                    trigger_id=event.payload.get("trigger_id", ""),
                    error_type=event.payload.get("error_type", "choice"),
                    message=event.payload.get("message", ""),
                )
            )
        elif event.kind is EventKind.VALIDATION_VIOLATION:
            summary.violations.append(Violation.model_validate(event.payload))
    summary.decisions = summary.choices_made + summary.deferred + len(summary.failures)
    return summary


__all__ = [
    "ChoiceProvider",
    "FilterContextBuilder",
    "default_choice_provider",
    "default_filter_context_builder",
    "ConsumerChoiceModel",
]
