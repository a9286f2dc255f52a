"""Tests for environment-driven settings."""

import dataclasses

import pytest

from diffscreen.config import BEDROCK_MODEL_ID, DIFF_CHUNK_MAX_CHARS, Settings
from diffscreen.exceptions import ConfigError


def test_defaults_without_env():
    settings = Settings.from_env()

    assert settings.base is None
    assert settings.max_unit_chars == DIFF_CHUNK_MAX_CHARS
    assert settings.model_id == BEDROCK_MODEL_ID
    assert settings.system_prompt is None


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DIFFSCREEN_BASE", " develop ")
    monkeypatch.setenv("DIFFSCREEN_MAX_UNIT_CHARS", "5000")
    monkeypatch.setenv("DIFFSCREEN_CONTEXT_LINES", "0")
    monkeypatch.setenv("DIFFSCREEN_CONCURRENCY", "8")
    monkeypatch.setenv("DIFFSCREEN_AWS_REGION", "us-east-1")

    settings = Settings.from_env()

    assert settings.base == "develop"
    assert settings.max_unit_chars == 5000
    assert settings.context_lines == 0
    assert settings.max_concurrency == 8
    assert settings.aws_region == "us-east-1"


def test_blank_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("DIFFSCREEN_MODEL_ID", "   ")
    monkeypatch.setenv("DIFFSCREEN_MAX_TOKENS", "")

    settings = Settings.from_env()

    assert settings.model_id == BEDROCK_MODEL_ID
    assert settings.max_tokens == Settings().max_tokens


@pytest.mark.parametrize(
    "name, value",
    [
        ("DIFFSCREEN_MAX_UNIT_CHARS", "lots"),
        ("DIFFSCREEN_CONCURRENCY", "0"),
        ("DIFFSCREEN_CONTEXT_LINES", "-1"),
    ],
)
def test_bad_values_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError, match=name):
        Settings.from_env()


def test_settings_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        Settings().max_concurrency = 10
