"""Unit tests for the aggregation logic."""

from __future__ import annotations

import math

import pytest

from services.aggregator import Aggregator


def test_aggregate_empty_iterable_returns_default_summary() -> None:
    aggregator = Aggregator()

    summary = aggregator.aggregate([])

    assert summary.count == 0
    assert summary.min_value is None
    assert summary.max_value is None
    assert summary.mean_value is None


def test_aggregate_computes_statistics() -> None:
    aggregator = Aggregator()

    summary = aggregator.aggregate([10.0, 30, 20.0])

    assert summary.count == 3
    assert summary.min_value == 10.0
    assert summary.max_value == 30.0
    assert summary.mean_value == 20.0


def test_profile_readings_use_their_mean() -> None:
    aggregator = Aggregator()

    summary = aggregator.aggregate([[40.0, 50.0, 60.0], 70.0])

    assert summary.count == 2
    assert summary.min_value == pytest.approx(50.0)
    assert summary.max_value == pytest.approx(70.0)


def test_empty_profiles_and_nan_are_ignored() -> None:
    aggregator = Aggregator()

    summary = aggregator.aggregate([[], math.nan, 5.0])

    assert summary.count == 1
    assert summary.mean_value == 5.0
