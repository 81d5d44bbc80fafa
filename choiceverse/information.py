"""
Information filter/distorter pipeline.

The Transformer models what actually reaches an agent: attention limits
(filters), bias and noise (distorters). Stages are applied in the order they
were added, and each stage sees the previous stage's output.

Stage contracts:
- Filters only remove items. Every item a filter returns must be one of the
  objects it received (checked by identity), so content can't change.
- Distorters map each surviving item to a new Information with the same
  info_id and topic. Reliability outside [0, 1] is clamped or rejected
  depending on the transformer's reliability_policy.
- Stochastic stages set ``stochastic = True`` and draw only from
  ``context.rng``. Non-stochastic pipelines are referentially transparent.

Usage:
    transformer = (
        Transformer()
        .add_filter(ReliabilityFilter(0.3))
        .add_distorter(ConfirmationBiasDistorter(0.2))
        .add_filter(AttentionBudget(5, TruncationPolicy.HIGHEST_RELIABILITY))
    )
    delivered = transformer.process(items, agent_id, FilterContext(current_time=3))
"""

from __future__ import annotations

import os
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union

from .errors import PipelineError
from .logging_utils import LOG_TAG_DETERMINISTIC, Color, colored
from .schemas import Information, clamp_unit


@dataclass(frozen=True)
class FilterContext:
    """Per-(agent, tick) inputs shared by every stage of one process() call."""

    current_time: float = 0.0
    agent_interests: Tuple[str, ...] = ()
    relevance_threshold: float = 0.5
    reliability_threshold: float = 0.3
    recency_threshold: float = 100.0
    max_items: Optional[int] = None
    agent_biases: Dict[str, float] = field(default_factory=dict)
    social_influence: float = 0.0
    stress_level: float = 0.0
    confirmation_bias_strength: float = 0.5
    rng: Optional[random.Random] = field(default=None, compare=False, repr=False)


class InformationFilter(Protocol):
    """Removes items from the candidate set."""

    name: str
    stochastic: bool

    def filter_information(
        self,
        information: Sequence[Information],
        agent_id: str,
        context: FilterContext,
    ) -> List[Information]:
        ...

    def parameters(self) -> Dict[str, float]:
        ...


class InformationDistorter(Protocol):
    """Alters content/reliability of a single surviving item."""

    name: str
    stochastic: bool

    def distort_information(
        self,
        information: Information,
        agent_id: str,
        context: FilterContext,
    ) -> Information:
        ...

    def distortion_magnitude(self, information: Information, agent_id: str) -> float:
        ...

    def parameters(self) -> Dict[str, float]:
        ...


Stage = Union[InformationFilter, InformationDistorter]

FILTER = "filter"
DISTORTER = "distorter"


class Transformer:
    """Ordered pipeline of filters and distorters."""

    def __init__(self, reliability_policy: str = "clamp") -> None:
        if reliability_policy not in ("clamp", "reject"):
            raise ValueError("reliability_policy must be 'clamp' or 'reject'")
        self.reliability_policy = reliability_policy
        self._stages: List[Tuple[str, Stage]] = []

    def add_filter(self, information_filter: InformationFilter) -> "Transformer":
        self._stages.append((FILTER, information_filter))
        return self

    def add_distorter(self, distorter: InformationDistorter) -> "Transformer":
        self._stages.append((DISTORTER, distorter))
        return self

    @property
    def stages(self) -> List[Tuple[str, Stage]]:
        return list(self._stages)

    def filter_count(self) -> int:
        return sum(1 for kind, _ in self._stages if kind == FILTER)

    def distorter_count(self) -> int:
        return sum(1 for kind, _ in self._stages if kind == DISTORTER)

    @property
    def is_stochastic(self) -> bool:
        return any(getattr(stage, "stochastic", False) for _, stage in self._stages)

    def describe(self) -> List[Dict[str, Any]]:
        """Return the stage configuration in application order."""

        return [
            {
                "kind": kind,
                "name": _stage_name(stage),
                "stochastic": bool(getattr(stage, "stochastic", False)),
                "parameters": dict(stage.parameters()),
            }
            for kind, stage in self._stages
        ]

    def process(
        self,
        information: Sequence[Information],
        agent_id: str,
        context: FilterContext,
    ) -> List[Information]:
        """Run every stage left-to-right and return the delivered items.

        Raises:
            PipelineError: malformed input, a stage raising, or a stage
                breaking its contract (filter inventing items, distorter
                changing identity/topic, reliability out of range under
                the 'reject' policy)
        """

        current: List[Information] = []
        for item in information:
            if not isinstance(item, Information):
                raise PipelineError(
                    f"Malformed information item of type {type(item).__name__}"
                )
            current.append(item)

        received = len(current)
        for kind, stage in self._stages:
            name = _stage_name(stage)
            if getattr(stage, "stochastic", False) and context.rng is None:
                raise PipelineError(
                    "Stochastic stage requires context.rng (no ambient randomness allowed)",
                    stage=name,
                )
            if kind == FILTER:
                current = self._run_filter(stage, name, current, agent_id, context)  # type: ignore[arg-type]
            else:
                current = self._run_distorter(stage, name, current, agent_id, context)  # type: ignore[arg-type]

        if os.getenv("DEBUG_PIPELINE"):
            print(
                colored(
                    f"  {LOG_TAG_DETERMINISTIC} [Pipeline] {agent_id}: {received} in -> {len(current)} delivered",
                    Color.CYAN,
                )
            )
        return current

    def _run_filter(
        self,
        stage: InformationFilter,
        name: str,
        items: List[Information],
        agent_id: str,
        context: FilterContext,
    ) -> List[Information]:
        try:
            output = stage.filter_information(list(items), agent_id, context)
        except PipelineError as exc:
            if exc.stage is None:
                raise PipelineError(exc.reason, stage=name) from exc
            raise
        except Exception as exc:
            raise PipelineError(f"Filter raised {type(exc).__name__}: {exc}", stage=name) from exc

        if output is None:
            raise PipelineError("Filter returned None instead of a list", stage=name)

        allowed = {id(item) for item in items}
        seen: set[int] = set()
        result: List[Information] = []
        for item in output:
            if id(item) not in allowed:
                raise PipelineError(
                    "Filter returned an item it did not receive (filters may only remove)",
                    stage=name,
                )
            if id(item) in seen:
                raise PipelineError("Filter duplicated an item", stage=name)
            seen.add(id(item))
            result.append(item)
        return result

    def _run_distorter(
        self,
        stage: InformationDistorter,
        name: str,
        items: List[Information],
        agent_id: str,
        context: FilterContext,
    ) -> List[Information]:
        result: List[Information] = []
        for item in items:
            try:
                distorted = stage.distort_information(item, agent_id, context)
            except PipelineError as exc:
                if exc.stage is None:
                    raise PipelineError(exc.reason, stage=name) from exc
                raise
            except Exception as exc:
                raise PipelineError(
                    f"Distorter raised {type(exc).__name__}: {exc}", stage=name
                ) from exc

            if not isinstance(distorted, Information):
                raise PipelineError("Distorter must return Information", stage=name)
            if distorted.info_id != item.info_id or distorted.topic != item.topic:
                raise PipelineError(
                    f"Distorter changed identity/topic of item {item.info_id}", stage=name
                )
            if not 0.0 <= distorted.reliability <= 1.0:
                if self.reliability_policy == "reject":
                    raise PipelineError(
                        f"Reliability {distorted.reliability} outside [0, 1]", stage=name
                    )
                distorted = distorted.with_reliability(distorted.reliability)
            result.append(distorted)
        return result


def _stage_name(stage: Any) -> str:
    return getattr(stage, "name", None) or type(stage).__name__


# ============================================================================
# Built-in filters
# ============================================================================


class ItemFilter:
    """Convenience base for filters that decide item by item."""

    name = "ItemFilter"
    stochastic = False

    def passes_filter(self, information: Information, agent_id: str, context: FilterContext) -> bool:
        raise NotImplementedError

    def filter_information(
        self,
        information: Sequence[Information],
        agent_id: str,
        context: FilterContext,
    ) -> List[Information]:
        return [item for item in information if self.passes_filter(item, agent_id, context)]

    def parameters(self) -> Dict[str, float]:
        return {}


class ReliabilityFilter(ItemFilter):
    """Drops items below a minimum reliability."""

    name = "ReliabilityFilter"

    def __init__(self, min_reliability: float) -> None:
        self.min_reliability = min_reliability

    def passes_filter(self, information: Information, agent_id: str, context: FilterContext) -> bool:
        return information.reliability >= self.min_reliability

    def parameters(self) -> Dict[str, float]:
        return {"min_reliability": self.min_reliability}


class TopicInterestFilter(ItemFilter):
    """Keeps items whose topic matches one of the agent's interests.

    ``"pricing"`` matches ``"pricing"`` and ``"pricing:ev"``. Agents with no
    interests receive everything.
    """

    name = "TopicInterestFilter"

    def passes_filter(self, information: Information, agent_id: str, context: FilterContext) -> bool:
        if not context.agent_interests:
            return True
        topic = information.topic
        return any(
            topic == interest or topic.startswith(f"{interest}:")
            for interest in context.agent_interests
        )


class RecencyFilter(ItemFilter):
    """Drops items older than a threshold (own value or context.recency_threshold)."""

    name = "RecencyFilter"

    def __init__(self, threshold: Optional[float] = None) -> None:
        self.threshold = threshold

    def passes_filter(self, information: Information, agent_id: str, context: FilterContext) -> bool:
        threshold = self.threshold if self.threshold is not None else context.recency_threshold
        return information.is_recent(context.current_time, threshold)

    def parameters(self) -> Dict[str, float]:
        if self.threshold is None:
            return {}
        return {"threshold": self.threshold}


class RandomDropFilter:
    """Drops each item independently with a fixed probability."""

    name = "RandomDropFilter"
    stochastic = True

    def __init__(self, drop_probability: float) -> None:
        if not 0.0 <= drop_probability <= 1.0:
            raise ValueError("drop_probability must be within [0, 1]")
        self.drop_probability = drop_probability

    def filter_information(
        self,
        information: Sequence[Information],
        agent_id: str,
        context: FilterContext,
    ) -> List[Information]:
        rng = context.rng
        assert rng is not None
        return [item for item in information if rng.random() >= self.drop_probability]

    def parameters(self) -> Dict[str, float]:
        return {"drop_probability": self.drop_probability}


class TruncationPolicy(str, Enum):
    """Which items survive when the attention budget is exceeded."""

    HIGHEST_RELIABILITY = "highest_reliability"
    MOST_RECENT = "most_recent"
    ARRIVAL_ORDER = "arrival_order"


class AttentionBudget:
    """Terminal truncation stage enforcing a maximum number of items.

    Survivors keep their arrival order; the policy only decides which items
    survive. Ties are broken by arrival order. When ``max_items`` is None the
    budget comes from ``context.max_items``; if that is None too, nothing is
    truncated.
    """

    name = "AttentionBudget"
    stochastic = False

    def __init__(
        self,
        max_items: Optional[int] = None,
        policy: TruncationPolicy = TruncationPolicy.HIGHEST_RELIABILITY,
    ) -> None:
        if max_items is not None and max_items < 0:
            raise ValueError("max_items must be >= 0")
        self.max_items = max_items
        self.policy = TruncationPolicy(policy)

    def filter_information(
        self,
        information: Sequence[Information],
        agent_id: str,
        context: FilterContext,
    ) -> List[Information]:
        limit = self.max_items if self.max_items is not None else context.max_items
        items = list(information)
        if limit is None or len(items) <= limit:
            return items

        indexed = list(enumerate(items))
        if self.policy is TruncationPolicy.HIGHEST_RELIABILITY:
            ranked = sorted(indexed, key=lambda pair: (-pair[1].reliability, pair[0]))
        elif self.policy is TruncationPolicy.MOST_RECENT:
            ranked = sorted(indexed, key=lambda pair: (-pair[1].timestamp, pair[0]))
        else:
            ranked = indexed

        keep = {index for index, _ in ranked[:limit]}
        return [item for index, item in indexed if index in keep]

    def parameters(self) -> Dict[str, float]:
        params: Dict[str, Any] = {"policy": self.policy.value}
        if self.max_items is not None:
            params["max_items"] = self.max_items
        return params


# ============================================================================
# Built-in distorters
# ============================================================================


class ConfirmationBiasDistorter:
    """Shifts reliability by the agent's confirmation bias.

    Adjustment = context.confirmation_bias_strength * bias_strength, scaled
    by the agent's signed bias for the topic when one is set.
    """

    name = "ConfirmationBiasDistorter"
    stochastic = False

    def __init__(self, bias_strength: float) -> None:
        self.bias_strength = bias_strength

    def distort_information(
        self,
        information: Information,
        agent_id: str,
        context: FilterContext,
    ) -> Information:
        adjustment = context.confirmation_bias_strength * self.bias_strength
        topic_bias = context.agent_biases.get(information.topic)
        if topic_bias is not None:
            adjustment *= topic_bias
        return information.with_reliability(information.reliability + adjustment)

    def distortion_magnitude(self, information: Information, agent_id: str) -> float:
        return self.bias_strength

    def parameters(self) -> Dict[str, float]:
        return {"bias_strength": self.bias_strength}


class ReliabilityNoiseDistorter:
    """Adds zero-mean gaussian noise to reliability."""

    name = "ReliabilityNoiseDistorter"
    stochastic = True

    def __init__(self, stddev: float) -> None:
        if stddev < 0:
            raise ValueError("stddev must be >= 0")
        self.stddev = stddev

    def distort_information(
        self,
        information: Information,
        agent_id: str,
        context: FilterContext,
    ) -> Information:
        rng = context.rng
        assert rng is not None
        noisy = information.reliability + rng.gauss(0.0, self.stddev)
        return information.with_reliability(clamp_unit(noisy))

    def distortion_magnitude(self, information: Information, agent_id: str) -> float:
        return self.stddev

    def parameters(self) -> Dict[str, float]:
        return {"stddev": self.stddev}


__all__ = [
    "FilterContext",
    "InformationFilter",
    "InformationDistorter",
    "Transformer",
    "ItemFilter",
    "ReliabilityFilter",
    "TopicInterestFilter",
    "RecencyFilter",
    "RandomDropFilter",
    "TruncationPolicy",
    "AttentionBudget",
    "ConfirmationBiasDistorter",
    "ReliabilityNoiseDistorter",
]
