"""Tests for environment-driven configuration."""

import pytest

from choiceverse.config import Config


def test_validate_accepts_defaults_with_key(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "openai")
    monkeypatch.setattr(Config, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(Config, "DEFAULT_TICK_COUNT", 10)
    monkeypatch.setattr(Config, "DEFAULT_SEED", 0)

    Config.validate()


def test_validate_rejects_bad_simulation_values(monkeypatch):
    monkeypatch.setattr(Config, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(Config, "LLM_PROVIDER", "openai")

    monkeypatch.setattr(Config, "DEFAULT_TICK_COUNT", 0)
    with pytest.raises(ValueError, match="CHOICEVERSE_DEFAULT_TICKS"):
        Config.validate()

    monkeypatch.setattr(Config, "DEFAULT_TICK_COUNT", 5)
    monkeypatch.setattr(Config, "DEFAULT_SEED", -1)
    with pytest.raises(ValueError, match="CHOICEVERSE_SEED"):
        Config.validate()


def test_validate_requires_provider_key(monkeypatch):
    monkeypatch.setattr(Config, "DEFAULT_TICK_COUNT", 5)
    monkeypatch.setattr(Config, "DEFAULT_SEED", 0)
    monkeypatch.setattr(Config, "LLM_PROVIDER", "anthropic")
    monkeypatch.setattr(Config, "ANTHROPIC_API_KEY", None)

    with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
        Config.validate()


def test_display_lists_settings(monkeypatch):
    monkeypatch.setattr(Config, "LLM_MODEL", "claude-test")
    text = Config.display()
    assert text.startswith("Choiceverse Configuration:")
    assert "LLM Model: claude-test" in text
