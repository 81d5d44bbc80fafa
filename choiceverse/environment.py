"""
Environment the agents choose within.

Holds physical assets (the things agents can choose), knowledge assets
(information agents can access), social networks, interaction rules and
exogenous processes that change the world over time.

The orchestrator is the only writer: it calls ``advance_to`` between ticks.
During a tick, agents and choice modules only see an ``EnvironmentView``,
which exposes read queries and nothing else.
"""

from __future__ import annotations

import random
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError
from .schemas import (
    EnvironmentSnapshot,
    Information,
    NetworkStatistics,
    TriggerType,
    clamp_unit,
)
from .triggers import TickInterval


# ============================================================================
# Assets
# ============================================================================


class PhysicalAsset(BaseModel):
    """A tangible option agents can choose (a product, a vehicle, a tariff)."""

    model_config = ConfigDict(frozen=True)

    asset_id: str
    name: str
    asset_type: str = "product"
    attributes: Dict[str, float] = Field(
        default_factory=dict, description="Dimension scores, e.g. {'economic': 0.7}"
    )
    available: bool = True


class KnowledgeAsset(BaseModel):
    """Information held by the environment.

    ``audience`` of None means every agent can access it. The asset becomes
    accessible from ``available_from`` onward.
    """

    model_config = ConfigDict(frozen=True)

    knowledge_id: str
    topic: str
    content: Any = None
    reliability: float = Field(1.0, ge=0.0, le=1.0)
    available_from: int = Field(0, ge=0)
    audience: Optional[List[str]] = None

    def accessible_to(self, agent_id: str, tick: int) -> bool:
        if tick < self.available_from:
            return False
        return self.audience is None or agent_id in self.audience

    def to_information(self) -> Information:
        return Information(
            info_id=f"knowledge:{self.knowledge_id}",
            topic=self.topic,
            payload=self.content,
            reliability=self.reliability,
            timestamp=float(self.available_from),
            metadata={"knowledge_id": self.knowledge_id},
        )


# ============================================================================
# Social networks
# ============================================================================


class SocialNetwork:
    """Weighted undirected graph of agent relationships."""

    def __init__(self, name: str = "social") -> None:
        self.name = name
        self._adjacency: Dict[str, Dict[str, float]] = {}

    def add_node(self, agent_id: str) -> None:
        self._adjacency.setdefault(agent_id, {})

    def add_connection(self, source: str, target: str, strength: float = 1.0) -> None:
        if source == target:
            raise ConfigurationError(f"Network '{self.name}': self-connection for {source}")
        if not 0.0 < strength <= 1.0:
            raise ConfigurationError(
                f"Network '{self.name}': connection strength must be in (0, 1], got {strength}"
            )
        self._adjacency.setdefault(source, {})[target] = strength
        self._adjacency.setdefault(target, {})[source] = strength

    def remove_connection(self, source: str, target: str) -> None:
        self._adjacency.get(source, {}).pop(target, None)
        self._adjacency.get(target, {}).pop(source, None)

    def nodes(self) -> List[str]:
        return sorted(self._adjacency)

    def neighbors(self, agent_id: str) -> List[str]:
        return sorted(self._adjacency.get(agent_id, {}))

    def connection_strength(self, source: str, target: str) -> float:
        return self._adjacency.get(source, {}).get(target, 0.0)

    def edges(self) -> List[Tuple[str, str, float]]:
        result = []
        for source in sorted(self._adjacency):
            for target, strength in sorted(self._adjacency[source].items()):
                if source < target:
                    result.append((source, target, strength))
        return result

    def clustering_coefficient(self) -> float:
        """Average local clustering; nodes with fewer than two neighbors count as 0."""
        if not self._adjacency:
            return 0.0
        total = 0.0
        for links in self._adjacency.values():
            neighbors = sorted(links)
            degree = len(neighbors)
            if degree < 2:
                continue
            closed = sum(
                1
                for i, first in enumerate(neighbors)
                for second in neighbors[i + 1:]
                if second in self._adjacency[first]
            )
            total += closed / (degree * (degree - 1) / 2.0)
        return total / len(self._adjacency)

    def statistics(self) -> NetworkStatistics:
        node_count = len(self._adjacency)
        edge_count = len(self.edges())
        average_degree = (2.0 * edge_count / node_count) if node_count else 0.0
        possible = node_count * (node_count - 1) / 2.0
        density = edge_count / possible if possible else 0.0
        return NetworkStatistics(
            node_count=node_count,
            edge_count=edge_count,
            average_degree=average_degree,
            density=density,
            clustering_coefficient=self.clustering_coefficient(),
        )


# ============================================================================
# Interaction rules & exogenous processes
# ============================================================================


class InteractionRules(Protocol):
    """Decides whether one agent's choice can influence another, and how much.

    ``influence`` is the weight (0-1) a peer's choice carries for the target;
    it becomes the reliability of the delivered peer information.
    """

    def can_interact(self, source: str, target: str, environment: "EnvironmentView") -> bool:
        ...

    def influence(self, source: str, target: str, environment: "EnvironmentView") -> float:
        ...


class NetworkInteractionRules:
    """Agents interact when their strongest connection exceeds ``min_strength``.

    Influence is the connection strength scaled by ``influence_scale``.
    """

    def __init__(self, min_strength: float = 0.0, influence_scale: float = 1.0) -> None:
        self.min_strength = min_strength
        self.influence_scale = influence_scale

    def can_interact(self, source: str, target: str, environment: "EnvironmentView") -> bool:
        strength = environment.connection_strength(source, target)
        return strength > 0.0 and strength >= self.min_strength

    def influence(self, source: str, target: str, environment: "EnvironmentView") -> float:
        return environment.connection_strength(source, target) * self.influence_scale


class EnvironmentChange(BaseModel):
    """Something an exogenous process did to the world this tick.

    When ``trigger_type`` is set the orchestrator turns the change into a
    trigger for ``targets`` (None = everyone) carrying ``information``.
    """

    model_config = ConfigDict(frozen=True)

    change_id: str
    tick: int
    process: str
    description: str = ""
    information: List[Information] = Field(default_factory=list)
    trigger_type: Optional[TriggerType] = None
    targets: Optional[List[str]] = None
    asset_availability: Dict[str, bool] = Field(default_factory=dict)


class ExogenousProcess(Protocol):
    """External driver of environment change (prices, news, launches)."""

    name: str

    def is_active(self, tick: int) -> bool:
        ...

    def apply(self, tick: int, environment: "EnvironmentView", rng: random.Random) -> List[EnvironmentChange]:
        ...


class PeriodicInformationProcess:
    """Publishes an information item on a fixed cadence.

    With ``reliability_jitter`` > 0 the published reliability is drawn
    uniformly from reliability +/- jitter (clamped) using the environment rng.
    """

    def __init__(
        self,
        name: str,
        topic: str,
        *,
        interval: TickInterval = TickInterval(every=1),
        payload: Any = None,
        reliability: float = 1.0,
        reliability_jitter: float = 0.0,
        trigger_type: Optional[TriggerType] = TriggerType.INFORMATIONAL,
        targets: Optional[List[str]] = None,
    ) -> None:
        self.name = name
        self.topic = topic
        self.interval = interval
        self.payload = payload
        self.reliability = clamp_unit(reliability)
        self.reliability_jitter = reliability_jitter
        self.trigger_type = trigger_type
        self.targets = targets

    def is_active(self, tick: int) -> bool:
        return self.interval.is_due(tick=tick)

    def apply(self, tick, environment, rng):
        reliability = self.reliability
        if self.reliability_jitter > 0:
            reliability = clamp_unit(
                reliability + rng.uniform(-self.reliability_jitter, self.reliability_jitter)
            )
        item = Information(
            info_id=f"{self.name}:{tick}",
            topic=self.topic,
            payload=self.payload,
            reliability=reliability,
            timestamp=float(tick),
            metadata={"process": self.name},
        )
        return [
            EnvironmentChange(
                change_id=f"{self.name}:{tick}",
                tick=tick,
                process=self.name,
                description=f"{self.name} published '{self.topic}'",
                information=[item],
                trigger_type=self.trigger_type,
                targets=self.targets,
            )
        ]


class AssetLaunchProcess:
    """Makes a physical asset available at a given tick and announces it."""

    def __init__(
        self,
        asset_id: str,
        launch_tick: int,
        *,
        name: Optional[str] = None,
        trigger_type: Optional[TriggerType] = TriggerType.TECHNOLOGICAL,
    ) -> None:
        self.asset_id = asset_id
        self.launch_tick = launch_tick
        self.name = name or f"launch:{asset_id}"
        self.trigger_type = trigger_type

    def is_active(self, tick: int) -> bool:
        return tick == self.launch_tick

    def apply(self, tick, environment, rng):
        item = Information(
            info_id=f"{self.name}:{tick}",
            topic="asset_launch",
            payload={"asset_id": self.asset_id},
            reliability=1.0,
            timestamp=float(tick),
            metadata={"process": self.name},
        )
        return [
            EnvironmentChange(
                change_id=f"{self.name}:{tick}",
                tick=tick,
                process=self.name,
                description=f"Asset {self.asset_id} launched",
                information=[item],
                trigger_type=self.trigger_type,
                asset_availability={self.asset_id: True},
            )
        ]


# ============================================================================
# Environment
# ============================================================================


class Environment:
    """Mutable world state owned by the orchestrator."""

    def __init__(
        self,
        *,
        physical_assets: Iterable[PhysicalAsset] = (),
        knowledge_assets: Iterable[KnowledgeAsset] = (),
        networks: Iterable[SocialNetwork] = (),
        interaction_rules: Optional[InteractionRules] = None,
        processes: Iterable[ExogenousProcess] = (),
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._assets: Dict[str, PhysicalAsset] = {}
        self._knowledge: Dict[str, KnowledgeAsset] = {}
        self.networks: List[SocialNetwork] = []
        self.interaction_rules: InteractionRules = interaction_rules or NetworkInteractionRules()
        self.processes: List[ExogenousProcess] = []
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.current_tick = 0
        self.last_changes: List[EnvironmentChange] = []
        self._view = EnvironmentView(self)

        for asset in physical_assets:
            self.add_physical_asset(asset)
        for knowledge in knowledge_assets:
            self.add_knowledge_asset(knowledge)
        for network in networks:
            self.add_network(network)
        for process in processes:
            self.add_process(process)

    # Setup --------------------------------------------------------------------

    def add_physical_asset(self, asset: PhysicalAsset) -> None:
        if asset.asset_id in self._assets:
            raise ConfigurationError(f"Physical asset {asset.asset_id} already exists")
        self._assets[asset.asset_id] = asset

    def add_knowledge_asset(self, knowledge: KnowledgeAsset) -> None:
        if knowledge.knowledge_id in self._knowledge:
            raise ConfigurationError(f"Knowledge asset {knowledge.knowledge_id} already exists")
        self._knowledge[knowledge.knowledge_id] = knowledge

    def add_network(self, network: SocialNetwork) -> None:
        self.networks.append(network)

    def add_process(self, process: ExogenousProcess) -> None:
        self.processes.append(process)

    def set_interaction_rules(self, rules: InteractionRules) -> None:
        self.interaction_rules = rules

    # Queries ------------------------------------------------------------------

    def physical_asset(self, asset_id: str) -> Optional[PhysicalAsset]:
        return self._assets.get(asset_id)

    def available_assets(self, asset_type: Optional[str] = None) -> List[PhysicalAsset]:
        return [
            asset
            for asset in self._assets.values()
            if asset.available and (asset_type is None or asset.asset_type == asset_type)
        ]

    def accessible_knowledge(self, agent_id: str, tick: Optional[int] = None) -> List[KnowledgeAsset]:
        when = self.current_tick if tick is None else tick
        return [k for k in self._knowledge.values() if k.accessible_to(agent_id, when)]

    def neighbors(self, agent_id: str) -> List[str]:
        found: set[str] = set()
        for network in self.networks:
            found.update(network.neighbors(agent_id))
        return sorted(found)

    def connection_strength(self, source: str, target: str) -> float:
        return max((n.connection_strength(source, target) for n in self.networks), default=0.0)

    def can_interact(self, source: str, target: str) -> bool:
        return bool(self.interaction_rules.can_interact(source, target, self._view))

    def influence(self, source: str, target: str) -> float:
        return clamp_unit(self.interaction_rules.influence(source, target, self._view))

    def view(self) -> "EnvironmentView":
        return self._view

    def snapshot(self) -> EnvironmentSnapshot:
        return EnvironmentSnapshot(
            tick=self.current_tick,
            physical_assets=[asset.asset_id for asset in self.available_assets()],
            knowledge_topics=sorted({k.topic for k in self._knowledge.values()}),
            networks=[network.statistics() for network in self.networks],
            metadata=dict(self.metadata),
        )

    # Mutation (orchestrator only) ----------------------------------------------

    def advance_to(self, tick: int, rng: random.Random) -> List[EnvironmentChange]:
        """Run active processes for ``tick`` and apply their changes.

        Processes run in registration order and share ``rng``.
        """

        if tick < self.current_tick:
            raise ConfigurationError(
                f"Environment cannot move backwards (at {self.current_tick}, asked for {tick})"
            )
        changes: List[EnvironmentChange] = []
        for process in self.processes:
            if process.is_active(tick):
                changes.extend(process.apply(tick, self._view, rng))

        for change in changes:
            for asset_id in change.asset_availability:
                if asset_id not in self._assets:
                    raise ConfigurationError(
                        f"Process {change.process} referenced unknown asset {asset_id}"
                    )
        for change in changes:
            for asset_id, available in change.asset_availability.items():
                self._assets[asset_id] = self._assets[asset_id].model_copy(update={"available": available})

        self.current_tick = tick
        self.last_changes = changes
        return changes


class EnvironmentView:
    """Read-only facade handed to agents and choice modules."""

    __slots__ = ("_environment",)

    def __init__(self, environment: Environment) -> None:
        self._environment = environment

    @property
    def current_tick(self) -> int:
        return self._environment.current_tick

    def available_assets(self, asset_type: Optional[str] = None) -> List[PhysicalAsset]:
        return self._environment.available_assets(asset_type)

    def physical_asset(self, asset_id: str) -> Optional[PhysicalAsset]:
        return self._environment.physical_asset(asset_id)

    def accessible_knowledge(self, agent_id: str, tick: Optional[int] = None) -> List[KnowledgeAsset]:
        return self._environment.accessible_knowledge(agent_id, tick)

    def neighbors(self, agent_id: str) -> List[str]:
        return self._environment.neighbors(agent_id)

    def connection_strength(self, source: str, target: str) -> float:
        return self._environment.connection_strength(source, target)

    def can_interact(self, source: str, target: str) -> bool:
        return self._environment.can_interact(source, target)

    def influence(self, source: str, target: str) -> float:
        return self._environment.influence(source, target)

    def snapshot(self) -> EnvironmentSnapshot:
        return self._environment.snapshot()


__all__ = [
    "PhysicalAsset",
    "KnowledgeAsset",
    "SocialNetwork",
    "InteractionRules",
    "NetworkInteractionRules",
    "EnvironmentChange",
    "ExogenousProcess",
    "PeriodicInformationProcess",
    "AssetLaunchProcess",
    "Environment",
    "EnvironmentView",
]
