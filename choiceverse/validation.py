"""
Validation engine: population-wide invariant checks.

Rules are pure functions of a population snapshot (and optionally an
environment snapshot) that return violations. The orchestrator runs them after
every tick; a FATAL violation halts the run once the tick is recorded. A rule
that raises is itself reported as a FATAL violation naming the rule.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from .errors import ValidationViolationError
from .schemas import (
    AgentSnapshot,
    EnvironmentSnapshot,
    PopulationSnapshot,
    Severity,
    Violation,
)


class ValidationRule(Protocol):
    name: str

    def check(
        self,
        population: PopulationSnapshot,
        environment: Optional[EnvironmentSnapshot],
    ) -> List[Violation]:
        ...


class AttributeRangeRule:
    """psychological values must lie in [0, 1]; socioeconomic values must be >= 0."""

    name = "attribute_range"

    def __init__(self, severity: Severity = Severity.FATAL) -> None:
        self.severity = severity

    def check(self, population, environment):
        violations: List[Violation] = []
        for agent in population.agents:
            for key, value in sorted(agent.psychological.items()):
                if not 0.0 <= value <= 1.0:
                    violations.append(
                        self._violation(agent, population.tick, "psychological", key, value, "[0, 1]")
                    )
            for key, value in sorted(agent.socioeconomic.items()):
                if value < 0.0:
                    violations.append(
                        self._violation(agent, population.tick, "socioeconomic", key, value, ">= 0")
                    )
        return violations

    def _violation(
        self, agent: AgentSnapshot, tick: int, section: str, key: str, value: float, expected: str
    ) -> Violation:
        return Violation(
            rule=self.name,
            severity=self.severity,
            message=f"Agent {agent.agent_id}: {section} attribute '{key}'={value} outside {expected}",
            agent_id=agent.agent_id,
            tick=tick,
            details={"section": section, "attribute": key, "value": value},
        )


class RequiredAttributesRule:
    """Every agent must define the listed psychological/socioeconomic attributes."""

    name = "required_attributes"

    def __init__(
        self,
        psychological: Sequence[str] = (),
        socioeconomic: Sequence[str] = (),
        severity: Severity = Severity.FATAL,
    ) -> None:
        self.psychological = list(psychological)
        self.socioeconomic = list(socioeconomic)
        self.severity = severity

    def check(self, population, environment):
        violations = []
        for agent in population.agents:
            missing = [k for k in self.psychological if k not in agent.psychological]
            missing += [k for k in self.socioeconomic if k not in agent.socioeconomic]
            if missing:
                violations.append(
                    Violation(
                        rule=self.name,
                        severity=self.severity,
                        message=f"Agent {agent.agent_id} is missing required attribute(s): {', '.join(missing)}",
                        agent_id=agent.agent_id,
                        tick=population.tick,
                        details={"missing": missing},
                    )
                )
        return violations


class SingleResolutionRule:
    """No agent may resolve the same trigger instance twice."""

    name = "single_resolution"

    def check(self, population, environment):
        violations = []
        for agent in population.agents:
            seen: set[str] = set()
            duplicates: List[str] = []
            for trigger_id in agent.resolved_triggers:
                if trigger_id in seen and trigger_id not in duplicates:
                    duplicates.append(trigger_id)
                seen.add(trigger_id)
            if duplicates:
                violations.append(
                    Violation(
                        rule=self.name,
                        severity=Severity.FATAL,
                        message=f"Agent {agent.agent_id} resolved trigger(s) more than once: {', '.join(duplicates)}",
                        agent_id=agent.agent_id,
                        tick=population.tick,
                        details={"trigger_ids": duplicates},
                    )
                )
        return violations


class CallbackRule:
    """Wraps a predicate over the population snapshot.

    The predicate returns True when the population is valid. When it returns
    False a single violation with ``message`` is produced.
    """

    def __init__(
        self,
        name: str,
        predicate: Callable[[PopulationSnapshot, Optional[EnvironmentSnapshot]], bool],
        *,
        message: str = "",
        severity: Severity = Severity.WARNING,
    ) -> None:
        self.name = name
        self.predicate = predicate
        self.message = message or f"Check '{name}' failed"
        self.severity = severity

    def check(self, population, environment):
        if self.predicate(population, environment):
            return []
        return [
            Violation(
                rule=self.name,
                severity=self.severity,
                message=self.message,
                tick=population.tick,
            )
        ]


class ValidationEngine:
    """Runs registered rules in registration order."""

    def __init__(self, rules: Optional[Iterable[ValidationRule]] = None) -> None:
        self._rules: List[ValidationRule] = list(rules or [])

    @classmethod
    def with_defaults(cls) -> "ValidationEngine":
        return cls([AttributeRangeRule(), SingleResolutionRule()])

    def register(self, rule: ValidationRule) -> "ValidationEngine":
        self._rules.append(rule)
        return self

    @property
    def rules(self) -> List[ValidationRule]:
        return list(self._rules)

    def validate(
        self,
        population: PopulationSnapshot,
        environment: Optional[EnvironmentSnapshot] = None,
    ) -> List[Violation]:
        """Run every rule and collect violations. Never raises."""

        violations: List[Violation] = []
        for rule in self._rules:
            name = getattr(rule, "name", None) or type(rule).__name__
            try:
                found = list(rule.check(population, environment))
            except Exception as exc:
                violations.append(
                    Violation(
                        rule=name,
                        severity=Severity.FATAL,
                        message=f"Rule '{name}' raised {type(exc).__name__}: {exc}",
                        tick=population.tick,
                        details={"error_type": type(exc).__name__},
                    )
                )
                continue
            for violation in found:
                if violation.tick is None:
                    violation = violation.model_copy(update={"tick": population.tick})
                violations.append(violation)
        return violations

    def validate_agent(self, snapshot: AgentSnapshot, tick: int = 0) -> List[Violation]:
        """Validate a single agent as a one-member population."""

        return self.validate(PopulationSnapshot(tick=tick, agents=[snapshot]))

    def assert_valid(
        self,
        population: PopulationSnapshot,
        environment: Optional[EnvironmentSnapshot] = None,
    ) -> List[Violation]:
        """Like validate(), but raise when any violation is fatal.

        Raises:
            ValidationViolationError: carrying the fatal violations
        """

        violations = self.validate(population, environment)
        fatal = [violation for violation in violations if violation.is_fatal]
        if fatal:
            raise ValidationViolationError(fatal)
        return violations


__all__ = [
    "ValidationRule",
    "AttributeRangeRule",
    "RequiredAttributesRule",
    "SingleResolutionRule",
    "CallbackRule",
    "ValidationEngine",
]
