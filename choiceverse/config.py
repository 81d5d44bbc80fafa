"""
Choiceverse Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # LLM Provider Configuration (only used by LLMChoiceModule)
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-5-nano")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Simulation Configuration
    DEFAULT_TICK_COUNT: int = int(os.getenv("CHOICEVERSE_DEFAULT_TICKS", "50"))
    DEFAULT_SEED: int = int(os.getenv("CHOICEVERSE_SEED", "0"))

    # Persistence (JsonPersistence default location)
    RUNS_DIR: Path = Path(os.getenv("CHOICEVERSE_RUNS_DIR", "simulation_runs"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are unusable."""
        if cls.DEFAULT_TICK_COUNT < 1:
            raise ValueError("CHOICEVERSE_DEFAULT_TICKS must be at least 1")

        if cls.DEFAULT_SEED < 0:
            raise ValueError("CHOICEVERSE_SEED must be a non-negative integer")

        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider"
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider"
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Choiceverse Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  Default Ticks: {cls.DEFAULT_TICK_COUNT}",
            f"  Seed: {cls.DEFAULT_SEED}",
            f"  Runs Directory: {cls.RUNS_DIR}",
            f"  Log Level: {cls.LOG_LEVEL}",
        ]
        return "\n".join(lines)
