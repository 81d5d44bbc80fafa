"""
Choice modules: strategies that pick one candidate for a trigger.

A ChoiceModule is owned by exactly one agent. It receives an explicit finite
candidate sequence and must return either None (no choice) or one of those
candidates. Randomness, when needed, comes from ``context.rng``; modules never
touch the global ``random`` state.

Built-ins:
- SimpleChoiceModule: first candidate
- RandomChoiceModule: uniform draw
- UtilityChoiceModule: weighted multi-dimension utility, ties to the earliest
- LogitChoiceModule: softmax draw over utilities
- ThresholdAdoptionModule: adopt once utility plus peer pressure crosses a
  threshold (diffusion-of-innovation style)
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
)

from .errors import ChoiceError
from .schemas import Information, Trigger, TriggerType

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .agent import AgentAttributes
    from .environment import EnvironmentView


ChoiceT = TypeVar("ChoiceT")

PEER_CHOICE_TOPIC = "peer_choice"


class EvaluationDimension(str, Enum):
    """Dimensions along which a choice can be evaluated."""

    ECONOMIC = "economic"
    ENVIRONMENTAL = "environmental"
    SOCIAL = "social"
    FUNCTIONAL = "functional"
    AESTHETIC = "aesthetic"
    CONVENIENCE = "convenience"
    SAFETY = "safety"
    RELIABILITY = "reliability"
    INNOVATION = "innovation"
    BRAND = "brand"
    CUSTOM = "custom"


@dataclass
class ChoiceContext:
    """Everything a choice module may look at for one decision.

    Built fresh per (agent, trigger) by the orchestrator and never persisted.
    ``attributes`` is a detached copy; modifying it has no effect on the agent.
    """

    agent_id: str
    tick: int
    trigger: Trigger
    attributes: "AgentAttributes"
    information: List[Information] = field(default_factory=list)
    environment: Optional["EnvironmentView"] = None
    rng: Optional[random.Random] = None
    time: Optional[float] = None

    def __post_init__(self) -> None:
        if self.time is None:
            self.time = float(self.tick)

    def information_on(self, topic: str) -> List[Information]:
        return [item for item in self.information if item.topic == topic]


Scorer = Callable[[Any, EvaluationDimension, ChoiceContext], float]


def attribute_scorer(choice: Any, dimension: EvaluationDimension, context: ChoiceContext) -> float:
    """Default scorer: read ``dimension.value`` from the candidate's attributes.

    Works for PhysicalAsset-like objects (``.attributes`` mapping) and for
    plain mappings. Anything else scores 0.
    """

    source: Any = getattr(choice, "attributes", choice)
    if isinstance(source, Mapping):
        value = source.get(dimension.value, 0.0)
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0
    return 0.0


class ChoiceModule(Protocol):
    """Decision strategy used by a ConsumerAgent."""

    def make_choice(
        self,
        choices: Sequence[ChoiceT],
        context: ChoiceContext,
        trigger: Trigger,
    ) -> Optional[ChoiceT]:
        ...

    def evaluate_choice(
        self,
        choice: Any,
        dimensions: Sequence[EvaluationDimension],
        context: ChoiceContext,
    ) -> Dict[EvaluationDimension, float]:
        ...

    def should_make_choice(self, trigger: Trigger, context: ChoiceContext) -> bool:
        ...

    def evaluation_dimensions(self) -> List[EvaluationDimension]:
        ...


class BaseChoiceModule:
    """Default behaviour shared by the built-in modules.

    Args:
        triggers: trigger types the module reacts to (None = all)
        dimensions: dimensions reported by evaluate_choice
        scorer: per-dimension scoring function (default: attribute_scorer)
    """

    name = "BaseChoiceModule"

    def __init__(
        self,
        *,
        triggers: Optional[Iterable[TriggerType]] = None,
        dimensions: Optional[Sequence[EvaluationDimension]] = None,
        scorer: Optional[Scorer] = None,
    ) -> None:
        self.triggers = frozenset(TriggerType(t) for t in triggers) if triggers is not None else None
        self.dimensions: List[EvaluationDimension] = list(dimensions or [])
        self.scorer: Scorer = scorer or attribute_scorer

    def make_choice(
        self,
        choices: Sequence[ChoiceT],
        context: ChoiceContext,
        trigger: Trigger,
    ) -> Optional[ChoiceT]:
        raise NotImplementedError

    def evaluate_choice(
        self,
        choice: Any,
        dimensions: Sequence[EvaluationDimension],
        context: ChoiceContext,
    ) -> Dict[EvaluationDimension, float]:
        return {dimension: float(self.scorer(choice, dimension, context)) for dimension in dimensions}

    def should_make_choice(self, trigger: Trigger, context: ChoiceContext) -> bool:
        return self.triggers is None or trigger.trigger_type in self.triggers

    def evaluation_dimensions(self) -> List[EvaluationDimension]:
        return list(self.dimensions)


class SimpleChoiceModule(BaseChoiceModule):
    """Always picks the first candidate."""

    name = "SimpleChoiceModule"

    def make_choice(self, choices, context, trigger):
        if not choices:
            return None
        return choices[0]


class RandomChoiceModule(BaseChoiceModule):
    """Uniform draw using the call-scoped rng."""

    name = "RandomChoiceModule"

    def make_choice(self, choices, context, trigger):
        if not choices:
            return None
        rng = _require_rng(context, self.name)
        return choices[rng.randrange(len(choices))]


class UtilityChoiceModule(BaseChoiceModule):
    """Picks the candidate with the highest weighted utility.

    utility(c) = sum(weight[d] * scorer(c, d, context)). Ties go to the
    earliest candidate. When ``min_utility`` is set and no candidate reaches
    it, the module returns None.
    """

    name = "UtilityChoiceModule"

    def __init__(
        self,
        weights: Mapping[EvaluationDimension, float],
        *,
        scorer: Optional[Scorer] = None,
        min_utility: Optional[float] = None,
        triggers: Optional[Iterable[TriggerType]] = None,
    ) -> None:
        if not weights:
            raise ValueError("UtilityChoiceModule requires at least one weight")
        self.weights: Dict[EvaluationDimension, float] = {
            EvaluationDimension(key): float(value) for key, value in weights.items()
        }
        self.min_utility = min_utility
        super().__init__(triggers=triggers, dimensions=list(self.weights), scorer=scorer)

    def utility(self, choice: Any, context: ChoiceContext) -> float:
        return sum(
            weight * float(self.scorer(choice, dimension, context))
            for dimension, weight in self.weights.items()
        )

    def rank(self, choices: Sequence[Any], context: ChoiceContext) -> List[float]:
        return [self.utility(choice, context) for choice in choices]

    def make_choice(self, choices, context, trigger):
        if not choices:
            return None
        utilities = self.rank(choices, context)
        best_index = 0
        for index, value in enumerate(utilities):
            if value > utilities[best_index]:
                best_index = index
        if self.min_utility is not None and utilities[best_index] < self.min_utility:
            return None
        return choices[best_index]


class LogitChoiceModule(UtilityChoiceModule):
    """Multinomial logit: P(c) proportional to exp(utility(c) / temperature)."""

    name = "LogitChoiceModule"

    def __init__(
        self,
        weights: Mapping[EvaluationDimension, float],
        *,
        temperature: float = 1.0,
        scorer: Optional[Scorer] = None,
        triggers: Optional[Iterable[TriggerType]] = None,
    ) -> None:
        if temperature <= 0:
            raise ValueError("temperature must be > 0")
        self.temperature = temperature
        super().__init__(weights, scorer=scorer, triggers=triggers)

    def probabilities(self, choices: Sequence[Any], context: ChoiceContext) -> List[float]:
        utilities = self.rank(choices, context)
        peak = max(utilities)
        exps = [math.exp((value - peak) / self.temperature) for value in utilities]
        total = sum(exps)
        return [value / total for value in exps]

    def make_choice(self, choices, context, trigger):
        if not choices:
            return None
        rng = _require_rng(context, self.name)
        probabilities = self.probabilities(choices, context)
        draw = rng.random()
        cumulative = 0.0
        for choice, probability in zip(choices, probabilities):
            cumulative += probability
            if draw < cumulative:
                return choice
        return choices[-1]


class ThresholdAdoptionModule(UtilityChoiceModule):
    """Adopts the best candidate once utility plus peer pressure is high enough.

    score = (1 - social_weight) * best_utility + social_weight * peer_pressure

    Peer pressure is the share of the agent's neighbors whose choices reached
    it as ``peer_choice`` information this decision (1.0 if any arrived and
    the agent has no known neighbors). An agent that already holds a value
    in ``adoption_variable`` is not asked again.
    """

    name = "ThresholdAdoptionModule"

    def __init__(
        self,
        threshold: float = 0.5,
        *,
        social_weight: float = 0.5,
        weights: Optional[Mapping[EvaluationDimension, float]] = None,
        scorer: Optional[Scorer] = None,
        adoption_variable: str = "adopted",
        triggers: Optional[Iterable[TriggerType]] = None,
    ) -> None:
        if not 0.0 <= social_weight <= 1.0:
            raise ValueError("social_weight must be within [0, 1]")
        self.threshold = threshold
        self.social_weight = social_weight
        self.adoption_variable = adoption_variable
        super().__init__(
            weights or {EvaluationDimension.FUNCTIONAL: 1.0},
            scorer=scorer,
            triggers=triggers,
        )

    def peer_pressure(self, context: ChoiceContext) -> float:
        sources = {item.source for item in context.information_on(PEER_CHOICE_TOPIC)}
        if not sources:
            return 0.0
        neighbors: List[str] = []
        if context.environment is not None:
            neighbors = context.environment.neighbors(context.agent_id)
        if not neighbors:
            return 1.0
        return min(1.0, len(sources & set(neighbors)) / len(neighbors))

    def should_make_choice(self, trigger: Trigger, context: ChoiceContext) -> bool:
        if context.attributes.stock_variables.get(self.adoption_variable) is not None:
            return False
        return super().should_make_choice(trigger, context)

    def make_choice(self, choices, context, trigger):
        if not choices:
            return None
        utilities = self.rank(choices, context)
        best_index = 0
        for index, value in enumerate(utilities):
            if value > utilities[best_index]:
                best_index = index
        score = (1.0 - self.social_weight) * utilities[best_index]
        score += self.social_weight * self.peer_pressure(context)
        if score >= self.threshold:
            return choices[best_index]
        return None


def _require_rng(context: ChoiceContext, module_name: str) -> random.Random:
    if context.rng is None:
        raise ChoiceError(
            f"{module_name} needs context.rng for its draw",
            agent_id=context.agent_id,
            trigger_id=context.trigger.trigger_id,
        )
    return context.rng


__all__ = [
    "PEER_CHOICE_TOPIC",
    "EvaluationDimension",
    "ChoiceContext",
    "Scorer",
    "attribute_scorer",
    "ChoiceModule",
    "BaseChoiceModule",
    "SimpleChoiceModule",
    "RandomChoiceModule",
    "UtilityChoiceModule",
    "LogitChoiceModule",
    "ThresholdAdoptionModule",
]
