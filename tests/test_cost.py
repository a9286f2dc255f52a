"""Tests for usage totals and cost estimates."""

import pytest

from diffscreen.cost import MODELS, Usage, estimate_cost, get_pricing


def test_usage_accumulates():
    usage = Usage()
    usage.add(100, 20, 500)
    usage.add(50, 10, 1500)

    assert (usage.calls, usage.total_tokens) == (2, 180)
    assert usage.avg_latency_s == pytest.approx(1.0)
    assert usage.to_dict()["total_tokens"] == 180


def test_known_model_pricing():
    usage = Usage(calls=1, input_tokens=1_000_000, output_tokens=1_000_000)
    assert estimate_cost("eu.anthropic.claude-haiku-4-5-20251001-v1:0", usage) == pytest.approx(6.0)


def test_unknown_model_falls_back():
    pricing = get_pricing("some-new-model")
    assert pricing.label == "unknown"
    assert pricing.input_per_token == MODELS["anthropic.claude-sonnet-4-6"].input_per_token


def test_empty_usage_costs_nothing():
    assert estimate_cost("anything", Usage()) == 0
    assert Usage().avg_latency_s == 0
