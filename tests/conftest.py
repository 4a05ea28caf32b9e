"""Pytest configuration and fixtures."""

import copy
import json
import pytest
import tempfile
from pathlib import Path


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def rsi_compare(operator="lt", value=30, node_id=None):
    """COMPARE node of the rsi_14 indicator against a constant."""
    node = {
        "type": "COMPARE",
        "left": {"type": "INDICATOR", "indicator_id": "rsi_14"},
        "operator": operator,
        "right": {"type": "CONSTANT", "value": value},
    }
    if node_id is not None:
        node["id"] = node_id
    return node


@pytest.fixture
def compare():
    """Factory for rsi_14 COMPARE nodes."""
    return rsi_compare


@pytest.fixture
def rsi_indicator():
    """A single RSI declaration."""
    return {"id": "rsi_14", "type": "RSI", "params": {"period": 14}}


@pytest.fixture
def legacy_document(rsi_indicator):
    """Version 1 document with flat entry/exit trees."""
    return {
        "version": 1,
        "indicators": [rsi_indicator],
        "entry_conditions": {"type": "AND", "children": [rsi_compare("lt", 30, "c1")]},
        "exit_conditions": {"type": "AND", "children": [rsi_compare("gt", 70, "c2")]},
        "parameters": {"stoploss": -0.05, "timeframe": "1h"},
    }


@pytest.fixture
def canonical_document(rsi_indicator):
    """Version 2 document trading both directions."""
    return {
        "version": 2,
        "position_mode": "LONG_AND_SHORT",
        "indicators": [
            rsi_indicator,
            {"id": "ema_fast", "type": "EMA", "params": {"period": 12}},
            {"id": "ema_slow", "type": "EMA", "params": {"period": 26}},
        ],
        "long": {
            "entry_conditions": {
                "type": "AND",
                "id": "long_entry",
                "children": [
                    rsi_compare("lt", 30, "long_rsi"),
                    {
                        "type": "CROSSOVER",
                        "id": "long_cross",
                        "series1": {"type": "INDICATOR", "indicator_id": "ema_fast"},
                        "series2": {"type": "INDICATOR", "indicator_id": "ema_slow"},
                    },
                ],
            },
            "exit_conditions": rsi_compare("gt", 70, "long_exit"),
        },
        "short": {
            "entry_conditions": rsi_compare("gt", 70, "short_entry"),
            "exit_conditions": rsi_compare("lt", 30, "short_exit"),
        },
        "parameters": {"stoploss": -0.08, "minimal_roi": {"0": 0.05, "60": 0.02}},
    }


@pytest.fixture
def leverage_document(rsi_indicator):
    """Long-only document with a conditional and an unconditional leverage rule."""
    return {
        "version": 2,
        "indicators": [rsi_indicator],
        "long": {
            "entry_conditions": rsi_compare("lt", 30),
            "exit_conditions": rsi_compare("gt", 70),
        },
        "leverage": {
            "rules": [
                {
                    "id": "hot",
                    "label": "Overbought",
                    "priority": 10,
                    "condition": rsi_compare("gt", 70),
                    "leverage": {"type": "CONSTANT", "value": 5.0},
                },
                {
                    "id": "base",
                    "label": "Base",
                    "priority": 0,
                    "condition": None,
                    "leverage": {"type": "CONSTANT", "value": 3.0},
                },
            ]
        },
    }


@pytest.fixture
def document_factory():
    """Deep copies of a document so tests can mutate freely."""

    def _factory(document):
        return copy.deepcopy(document)

    return _factory


@pytest.fixture
def write_document(temp_dir):
    """Write a document to a JSON file and return the path."""

    def _write(document, name="strategy.json"):
        path = temp_dir / name
        path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return _write
