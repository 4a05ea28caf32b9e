"""Map incoming builder documents onto the canonical nested shape.

Normalization is two explicit steps: :func:`detect_shape` classifies the
raw mapping, then :func:`normalize_document` maps it. Version 1 documents
keep a single entry/exit tree at the top level; version 2 documents nest
them under ``long`` and ``short``. Inputs are never mutated.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from strategy_compiler.codegen.errors import SchemaError
from strategy_compiler.schemas.common import PositionMode

logger = logging.getLogger(__name__)

CANONICAL_VERSION = 2
LEGACY_VERSION = 1

LEGACY_ENTRY_KEYS = ("entry_conditions", "entryConditions")
LEGACY_EXIT_KEYS = ("exit_conditions", "exitConditions")
CANONICAL_KEYS = ("long", "short")


class DocumentShape(str, Enum):
    """Structural shape of a builder document."""

    LEGACY = "legacy"
    CANONICAL = "canonical"


def noop_condition() -> dict[str, Any]:
    """A condition that never holds (an OR with no children)."""
    return {"type": "OR", "children": []}


def noop_signal_config() -> dict[str, Any]:
    return {"entry_conditions": noop_condition(), "exit_conditions": noop_condition()}


def extract_builder_document(document: Any) -> dict[str, Any]:
    """Unwrap a stored strategy config down to its builder document.

    Stored configs keep the builder document under ``ui_builder`` next to
    exchange settings such as ``timeframe``. The outer timeframe is carried
    into the builder parameters unless they already set one.

    Raises:
        SchemaError: If the document is not a mapping or the wrapper has no
            builder document
    """
    if not isinstance(document, dict):
        raise SchemaError(f"document must be an object, got {type(document).__name__}")
    if "ui_builder" not in document:
        return document

    builder = document["ui_builder"]
    if not isinstance(builder, dict):
        raise SchemaError("no ui_builder config found")

    timeframe = document.get("timeframe")
    parameters = builder.get("parameters")
    if timeframe is None or (parameters is not None and not isinstance(parameters, dict)):
        return builder
    parameters = parameters or {}
    if parameters.get("timeframe") is not None:
        return builder
    return {**builder, "parameters": {**parameters, "timeframe": timeframe}}


def _first_present(document: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if document.get(key) is not None:
            return document[key]
    return None


def detect_shape(document: dict[str, Any]) -> DocumentShape:
    """Classify a document as legacy (flat) or canonical (nested).

    Raises:
        SchemaError: If the document is neither shape, or its version tag
            contradicts its structure
    """
    if not isinstance(document, dict):
        raise SchemaError(f"document must be an object, got {type(document).__name__}")

    has_nested = any(document.get(key) is not None for key in CANONICAL_KEYS)
    has_flat = any(
        document.get(key) is not None for key in LEGACY_ENTRY_KEYS + LEGACY_EXIT_KEYS
    )
    version = document.get("version")
    if version is not None and (isinstance(version, bool) or not isinstance(version, int)):
        raise SchemaError(f"version must be an integer, got {version!r}")

    if has_nested:
        if version == LEGACY_VERSION:
            raise SchemaError("version 1 documents cannot carry long/short signal configs")
        return DocumentShape.CANONICAL
    if has_flat:
        if version is not None and version >= CANONICAL_VERSION:
            raise SchemaError(
                f"version {version} documents must nest conditions under long/short"
            )
        return DocumentShape.LEGACY
    raise SchemaError(
        "document has neither long/short signal configs nor entry/exit conditions"
    )


def normalize_document(document: dict[str, Any]) -> dict[str, Any]:
    """Return the canonical form of a document.

    Canonical documents come back unchanged (as a shallow copy). Legacy
    documents become version 2, long-only, with the flat trees under
    ``long`` and a never-firing ``short``. Applying this twice gives the
    same result as applying it once.

    Args:
        document: Raw builder document

    Returns:
        New canonical document mapping

    Raises:
        SchemaError: If the document shape cannot be determined
    """
    shape = detect_shape(document)
    if shape is DocumentShape.CANONICAL:
        return dict(document)

    logger.debug(f"Migrating legacy document to version {CANONICAL_VERSION}")
    entry = _first_present(document, LEGACY_ENTRY_KEYS)
    exit_ = _first_present(document, LEGACY_EXIT_KEYS)

    canonical = {
        key: value
        for key, value in document.items()
        if key not in LEGACY_ENTRY_KEYS + LEGACY_EXIT_KEYS
    }
    canonical["version"] = CANONICAL_VERSION
    canonical["position_mode"] = PositionMode.LONG_ONLY.value
    canonical["long"] = {
        "entry_conditions": entry if entry is not None else noop_condition(),
        "exit_conditions": exit_ if exit_ is not None else noop_condition(),
    }
    canonical["short"] = noop_signal_config()
    return canonical
