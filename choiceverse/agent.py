"""
Consumer agents: attributes, choice history and atomic trigger resolution.

A ConsumerAgent pairs an AgentAttributes record with exactly one choice
module. ``resolve_trigger`` is the only path that changes an agent during a
run, and it is all-or-nothing: every check and every state-update rule runs
against the current attributes first, and the history entry, the resolved
trigger id and the attribute changes are committed together at the end. If
anything fails the agent is left exactly as it was.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from .choice import ChoiceContext, ChoiceModule, EvaluationDimension
from .errors import ChoiceError, ConfigurationError
from .schemas import AgentSnapshot, Trigger, clamp_unit, describe_choice, new_agent_id


ATTRIBUTE_SECTIONS = ("psychological", "socioeconomic", "stock_variables", "state")


class AgentAttributes(BaseModel):
    """Attribute record for one agent.

    psychological values are expected in [0, 1]; socioeconomic values are
    expected to be >= 0. Both are checked by AttributeRangeRule rather than
    here, so a misconfigured population shows up as a validation violation.
    """

    agent_id: str = Field(default_factory=new_agent_id)
    psychological: Dict[str, float] = Field(default_factory=dict)
    socioeconomic: Dict[str, float] = Field(default_factory=dict)
    stock_variables: Dict[str, Optional[str]] = Field(default_factory=dict)
    state: Dict[str, float] = Field(default_factory=dict)
    interests: List[str] = Field(default_factory=list)
    biases: Dict[str, float] = Field(default_factory=dict)

    def get(self, key: str) -> Optional[float]:
        """Look a numeric attribute up in psychological, socioeconomic, then state."""

        for section in (self.psychological, self.socioeconomic, self.state):
            if key in section:
                return section[key]
        return None

    def update_attributes(self, updates: Dict[str, float]) -> None:
        """Overwrite existing psychological/socioeconomic values.

        Raises:
            ConfigurationError: if a key is not already present
        """

        unknown = [
            key for key in updates if key not in self.psychological and key not in self.socioeconomic
        ]
        if unknown:
            raise ConfigurationError(f"Unknown attribute(s): {', '.join(sorted(unknown))}")
        for key, value in updates.items():
            if key in self.psychological:
                self.psychological[key] = value
            else:
                self.socioeconomic[key] = value


@dataclass(frozen=True)
class AttributeChange:
    """One pending write to an attribute section."""

    section: str
    key: str
    value: Any

    def __post_init__(self) -> None:
        if self.section not in ATTRIBUTE_SECTIONS:
            raise ValueError(f"Unknown attribute section: {self.section}")


class StateUpdateRule(Protocol):
    """Computes attribute changes that follow from a made choice."""

    def changes(
        self,
        attributes: AgentAttributes,
        choice: Any,
        evaluation: Dict[EvaluationDimension, float],
        context: ChoiceContext,
    ) -> List[AttributeChange]:
        ...


class SatisfactionUpdate:
    """Moves a psychological attribute toward the mean evaluation score.

    new = old + learning_rate * (mean_score - old), clamped to [0, 1].
    Choices with no evaluation scores leave the attribute alone.
    """

    def __init__(self, attribute: str = "satisfaction", learning_rate: float = 0.1) -> None:
        if not 0.0 <= learning_rate <= 1.0:
            raise ValueError("learning_rate must be within [0, 1]")
        self.attribute = attribute
        self.learning_rate = learning_rate

    def changes(self, attributes, choice, evaluation, context):
        if not evaluation:
            return []
        score = clamp_unit(sum(evaluation.values()) / len(evaluation))
        current = attributes.psychological.get(self.attribute, 0.5)
        updated = clamp_unit(current + self.learning_rate * (score - current))
        return [AttributeChange("psychological", self.attribute, updated)]


class StockVariableUpdate:
    """Records the chosen item under a stock variable (e.g. current vehicle)."""

    def __init__(self, variable: str, describe: Callable[[Any], str] = describe_choice) -> None:
        self.variable = variable
        self.describe = describe

    def changes(self, attributes, choice, evaluation, context):
        return [AttributeChange("stock_variables", self.variable, self.describe(choice))]


@dataclass(frozen=True)
class ChoiceRecord:
    """History entry for one applied choice."""

    choice: Any
    choice_index: int
    tick: int
    time: float
    trigger_id: str
    trigger_type: str
    evaluation_scores: Dict[str, float] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return describe_choice(self.choice)


@dataclass(frozen=True)
class Decision:
    """Outcome of resolving one trigger.

    ``choice`` is None when the agent deferred; ``reason`` then says why
    ("not_triggered" or "no_choice").
    """

    trigger_id: str
    choice: Any = None
    choice_index: Optional[int] = None
    evaluation_scores: Dict[str, float] = field(default_factory=dict)
    reason: Optional[str] = None

    @property
    def made(self) -> bool:
        return self.choice_index is not None


class ConsumerAgent:
    """An agent that resolves triggers into choices through its choice module."""

    def __init__(
        self,
        attributes: AgentAttributes,
        choice_module: ChoiceModule,
        update_rules: Iterable[StateUpdateRule] = (),
    ) -> None:
        if attributes is None:
            raise ConfigurationError("ConsumerAgent requires attributes")
        if choice_module is None:
            raise ConfigurationError(
                f"Agent {attributes.agent_id} requires a choice module"
            )
        self.attributes = attributes
        self.choice_module = choice_module
        self.update_rules: List[StateUpdateRule] = list(update_rules)
        self._history: List[ChoiceRecord] = []
        self._resolved: List[str] = []
        self._resolved_set: set[str] = set()
        self.last_choice_time: Optional[float] = None

    @property
    def agent_id(self) -> str:
        return self.attributes.agent_id

    @property
    def choice_history(self) -> List[ChoiceRecord]:
        return list(self._history)

    @property
    def resolved_triggers(self) -> List[str]:
        return list(self._resolved)

    def has_resolved(self, trigger_id: str) -> bool:
        return trigger_id in self._resolved_set

    def most_recent_choice(self) -> Optional[ChoiceRecord]:
        return self._history[-1] if self._history else None

    def choices_in_time_range(self, start: float, end: float) -> List[ChoiceRecord]:
        return [record for record in self._history if start <= record.time <= end]

    def clear_history(self) -> None:
        """Forget past choices. Resolved trigger ids are kept."""

        self._history.clear()
        self.last_choice_time = None

    def process_trigger(
        self,
        trigger: Trigger,
        choices: Sequence[Any],
        context: ChoiceContext,
        time: Optional[float] = None,
    ) -> Optional[Any]:
        """Resolve a trigger and return the applied choice (None if deferred)."""

        return self.resolve_trigger(trigger, choices, context, time).choice

    def resolve_trigger(
        self,
        trigger: Trigger,
        choices: Sequence[Any],
        context: ChoiceContext,
        time: Optional[float] = None,
    ) -> Decision:
        """Run the full decision protocol for one trigger and commit atomically.

        Raises:
            ChoiceError: trigger already resolved, module failure, a choice
                outside the candidate set, or a failing evaluation/update rule.
                The agent is unchanged when this is raised.
        """

        trigger_id = trigger.trigger_id
        if trigger_id in self._resolved_set:
            raise ChoiceError(
                f"Trigger {trigger_id} already resolved", agent_id=self.agent_id, trigger_id=trigger_id
            )

        module = self.choice_module
        candidates = list(choices)
        when = float(time) if time is not None else float(context.time or 0.0)

        if not self._guard(lambda: module.should_make_choice(trigger, context), trigger_id):
            self._commit(trigger_id, None, [])
            return Decision(trigger_id=trigger_id, reason="not_triggered")

        choice = self._guard(lambda: module.make_choice(candidates, context, trigger), trigger_id)
        if choice is None:
            self._commit(trigger_id, None, [])
            return Decision(trigger_id=trigger_id, reason="no_choice")

        index = _index_of(candidates, choice)
        if index is None:
            raise ChoiceError(
                f"Choice module returned {describe_choice(choice)!r}, which is not one of the candidates",
                agent_id=self.agent_id,
                trigger_id=trigger_id,
            )

        # Everything downstream holds the candidate itself, never the module's copy.
        choice = candidates[index]

        dimensions = module.evaluation_dimensions()
        evaluation = self._guard(lambda: module.evaluate_choice(choice, dimensions, context), trigger_id)
        pending: List[AttributeChange] = []
        for rule in self.update_rules:
            pending.extend(
                self._guard(
                    lambda rule=rule: rule.changes(self.attributes, choice, evaluation, context),
                    trigger_id,
                )
            )

        scores = self._guard(
            lambda: {_dimension_key(key): float(value) for key, value in evaluation.items()},
            trigger_id,
        )
        record = ChoiceRecord(
            choice=choice,
            choice_index=index,
            tick=context.tick,
            time=when,
            trigger_id=trigger_id,
            trigger_type=trigger.display_name,
            evaluation_scores=scores,
        )
        self._commit(trigger_id, record, pending)
        return Decision(
            trigger_id=trigger_id,
            choice=choice,
            choice_index=index,
            evaluation_scores=scores,
        )

    def snapshot(self) -> AgentSnapshot:
        attrs = self.attributes
        return AgentSnapshot(
            agent_id=attrs.agent_id,
            psychological=dict(attrs.psychological),
            socioeconomic=dict(attrs.socioeconomic),
            stock_variables=dict(attrs.stock_variables),
            state=dict(attrs.state),
            choices_made=len(self._history),
            resolved_triggers=list(self._resolved),
        )

    def _guard(self, call: Callable[[], Any], trigger_id: str) -> Any:
        try:
            return call()
        except ChoiceError:
            raise
        except Exception as exc:
            raise ChoiceError(
                f"{type(exc).__name__}: {exc}", agent_id=self.agent_id, trigger_id=trigger_id
            ) from exc

    def _commit(
        self,
        trigger_id: str,
        record: Optional[ChoiceRecord],
        changes: List[AttributeChange],
    ) -> None:
        self._resolved.append(trigger_id)
        self._resolved_set.add(trigger_id)
        if record is not None:
            self._history.append(record)
            self.last_choice_time = record.time
        for change in changes:
            getattr(self.attributes, change.section)[change.key] = change.value

    def __repr__(self) -> str:
        return f"ConsumerAgent(agent_id={self.agent_id!r}, choices={len(self._history)})"


def _index_of(candidates: Sequence[Any], choice: Any) -> Optional[int]:
    for index, candidate in enumerate(candidates):
        if candidate is choice:
            return index
    for index, candidate in enumerate(candidates):
        try:
            if candidate == choice:
                return index
        except Exception:
            continue
    return None


def _dimension_key(key: Any) -> str:
    if isinstance(key, EvaluationDimension):
        return key.value
    return str(key)


__all__ = [
    "AgentAttributes",
    "AttributeChange",
    "StateUpdateRule",
    "SatisfactionUpdate",
    "StockVariableUpdate",
    "ChoiceRecord",
    "Decision",
    "ConsumerAgent",
]
