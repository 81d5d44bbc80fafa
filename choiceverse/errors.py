"""
Exception taxonomy for Choiceverse simulations.

Errors fall into two groups:

- Setup errors (ConfigurationError, DuplicateAgentError) abort the offending
  call immediately and leave the model untouched.
- Decision errors (PipelineError, ChoiceError) are attributable to a single
  (agent, trigger) pair. The orchestrator records them as events and keeps
  processing the rest of the population.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .schemas import Violation


class ChoiceverseError(Exception):
    """Base class for all library errors."""


class ConfigurationError(ChoiceverseError):
    """Raised when a model, agent or component is set up incorrectly.

    Always raised before any state is mutated.
    """


class DuplicateAgentError(ConfigurationError):
    """Raised when an agent id is already present in the model."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(
            f"Agent with ID {agent_id} already exists.\n\n"
            "Remediation tips:\n"
            "  - Let AgentAttributes generate ids (omit agent_id)\n"
            "  - Check for agents added twice from the same factory output"
        )


class PipelineError(ChoiceverseError):
    """Raised when a filter or distorter stage fails unrecoverably."""

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        self.stage = stage
        self.reason = message
        prefix = f"[{stage}] " if stage else ""
        super().__init__(f"{prefix}{message}")


class ChoiceError(ChoiceverseError):
    """Raised when a choice module fails for one agent/trigger."""

    def __init__(
        self,
        message: str,
        *,
        agent_id: Optional[str] = None,
        trigger_id: Optional[str] = None,
    ) -> None:
        self.agent_id = agent_id
        self.trigger_id = trigger_id
        self.reason = message
        prefix = f"Agent {agent_id}: " if agent_id else ""
        super().__init__(f"{prefix}{message}")


class ValidationViolationError(ChoiceverseError):
    """Raised by ValidationEngine.assert_valid when fatal violations exist."""

    def __init__(self, violations: "List[Violation]") -> None:
        self.violations = violations
        lines = ["Model validation failed:"]
        for violation in violations:
            lines.append(f"  - [{violation.rule}] {violation.message}")
        super().__init__("\n".join(lines))


__all__ = [
    "ChoiceverseError",
    "ConfigurationError",
    "DuplicateAgentError",
    "PipelineError",
    "ChoiceError",
    "ValidationViolationError",
]
