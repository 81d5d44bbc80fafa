"""
Choiceverse - consumer choice agent-based simulation library.

Simulate populations of consumers resolving triggers into choices from the
information that survives their attention and bias filters.

Fully decoupled library: no file I/O, no database, no global config required.
All collaborators are injected by the user.
"""

__version__ = "0.1.0"

# Main simulation component
from .model import ConsumerChoiceModel, default_choice_provider, default_filter_context_builder

# Agents & choice
from .agent import (
    AgentAttributes,
    AttributeChange,
    ChoiceRecord,
    ConsumerAgent,
    Decision,
    SatisfactionUpdate,
    StateUpdateRule,
    StockVariableUpdate,
)
from .choice import (
    BaseChoiceModule,
    ChoiceContext,
    ChoiceModule,
    EvaluationDimension,
    LogitChoiceModule,
    RandomChoiceModule,
    SimpleChoiceModule,
    ThresholdAdoptionModule,
    UtilityChoiceModule,
    attribute_scorer,
)
from .llm_choice import LLMChoiceModule, LLMChoiceResponse

# Information pipeline
from .information import (
    AttentionBudget,
    ConfirmationBiasDistorter,
    FilterContext,
    InformationDistorter,
    InformationFilter,
    ItemFilter,
    RandomDropFilter,
    RecencyFilter,
    ReliabilityFilter,
    ReliabilityNoiseDistorter,
    TopicInterestFilter,
    Transformer,
    TruncationPolicy,
)

# Environment & triggers
from .environment import (
    AssetLaunchProcess,
    Environment,
    EnvironmentChange,
    EnvironmentView,
    ExogenousProcess,
    InteractionRules,
    KnowledgeAsset,
    NetworkInteractionRules,
    PeriodicInformationProcess,
    PhysicalAsset,
    SocialNetwork,
)
from .triggers import ScheduledTrigger, TickInterval, TriggerSchedule

# Events, validation, persistence
from .events import ConsoleEventSink, EventSystem, SubscriberFailure
from .validation import (
    AttributeRangeRule,
    CallbackRule,
    RequiredAttributesRule,
    SingleResolutionRule,
    ValidationEngine,
    ValidationRule,
)
from .persistence import (
    InMemoryPersistence,
    JsonPersistence,
    PersistenceStrategy,
    SimulationRun,
)

# Core schemas
from .schemas import (
    AgentSnapshot,
    EnvironmentSnapshot,
    Event,
    EventKind,
    Information,
    ModelConfiguration,
    PopulationSnapshot,
    RunStatus,
    Severity,
    StopCondition,
    Summary,
    TickSummary,
    Trigger,
    TriggerType,
    Violation,
)

# Errors
from .errors import (
    ChoiceError,
    ChoiceverseError,
    ConfigurationError,
    DuplicateAgentError,
    PipelineError,
    ValidationViolationError,
)

__all__ = [
    # Main class
    "ConsumerChoiceModel",
    "default_choice_provider",
    "default_filter_context_builder",
    # Agents
    "AgentAttributes",
    "AttributeChange",
    "ChoiceRecord",
    "ConsumerAgent",
    "Decision",
    "SatisfactionUpdate",
    "StateUpdateRule",
    "StockVariableUpdate",
    # Choice modules
    "BaseChoiceModule",
    "ChoiceContext",
    "ChoiceModule",
    "EvaluationDimension",
    "LogitChoiceModule",
    "RandomChoiceModule",
    "SimpleChoiceModule",
    "ThresholdAdoptionModule",
    "UtilityChoiceModule",
    "attribute_scorer",
    "LLMChoiceModule",
    "LLMChoiceResponse",
    # Information pipeline
    "AttentionBudget",
    "ConfirmationBiasDistorter",
    "FilterContext",
    "InformationDistorter",
    "InformationFilter",
    "ItemFilter",
    "RandomDropFilter",
    "RecencyFilter",
    "ReliabilityFilter",
    "ReliabilityNoiseDistorter",
    "TopicInterestFilter",
    "Transformer",
    "TruncationPolicy",
    # Environment
    "AssetLaunchProcess",
    "Environment",
    "EnvironmentChange",
    "EnvironmentView",
    "ExogenousProcess",
    "InteractionRules",
    "KnowledgeAsset",
    "NetworkInteractionRules",
    "PeriodicInformationProcess",
    "PhysicalAsset",
    "SocialNetwork",
    # Triggers
    "ScheduledTrigger",
    "TickInterval",
    "TriggerSchedule",
    # Events & validation
    "ConsoleEventSink",
    "EventSystem",
    "SubscriberFailure",
    "AttributeRangeRule",
    "CallbackRule",
    "RequiredAttributesRule",
    "SingleResolutionRule",
    "ValidationEngine",
    "ValidationRule",
    # Persistence
    "InMemoryPersistence",
    "JsonPersistence",
    "PersistenceStrategy",
    "SimulationRun",
    # Schemas
    "AgentSnapshot",
    "EnvironmentSnapshot",
    "Event",
    "EventKind",
    "Information",
    "ModelConfiguration",
    "PopulationSnapshot",
    "RunStatus",
    "Severity",
    "StopCondition",
    "Summary",
    "TickSummary",
    "Trigger",
    "TriggerType",
    "Violation",
    # Errors
    "ChoiceError",
    "ChoiceverseError",
    "ConfigurationError",
    "DuplicateAgentError",
    "PipelineError",
    "ValidationViolationError",
]
