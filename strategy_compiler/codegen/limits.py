"""Size and depth ceiling for raw documents.

Runs on the untrusted mapping before normalization or validation, so no
later stage ever sees a document larger or deeper than the configured
limits. The walk uses an explicit stack and never recurses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from strategy_compiler.codegen.errors import SchemaError, SizeLimitError
from strategy_compiler.core.config import LimitsConfig

_SCALARS = (str, int, float, bool, type(None))


@dataclass(frozen=True)
class DocumentStats:
    """Measurements of a raw document."""

    containers: int
    depth: int
    string_chars: int
    list_items: int = 0


def check_document_limits(document: Any, limits: LimitsConfig | None = None) -> DocumentStats:
    """Measure a raw document and enforce the ceilings.

    Args:
        document: Parsed JSON-like value (dicts, lists, scalars)
        limits: Ceilings to enforce; defaults when None

    Returns:
        DocumentStats for the document

    Raises:
        SizeLimitError: If a ceiling is exceeded
        SchemaError: If the document holds a non-JSON value
    """
    limits = limits or LimitsConfig()
    containers = 0
    max_depth = 0
    string_chars = 0
    list_items = 0

    stack: list[tuple[Any, int]] = [(document, 1)]
    while stack:
        value, depth = stack.pop()

        if isinstance(value, str):
            string_chars += len(value)
            if string_chars > limits.max_string_chars:
                raise SizeLimitError(
                    f"document strings exceed {limits.max_string_chars} characters"
                )
            continue
        if isinstance(value, _SCALARS):
            continue
        if not isinstance(value, (dict, list, tuple)):
            raise SchemaError(f"unsupported value of type {type(value).__name__}")

        containers += 1
        max_depth = max(max_depth, depth)
        if containers > limits.max_nodes:
            raise SizeLimitError(f"document exceeds {limits.max_nodes} nodes")
        if depth > limits.max_depth:
            raise SizeLimitError(f"document nesting exceeds depth {limits.max_depth}")

        if isinstance(value, dict):
            for key, item in value.items():
                if not isinstance(key, str):
                    raise SchemaError(f"object keys must be strings, got {key!r}")
                string_chars += len(key)
                stack.append((item, depth + 1))
        else:
            list_items += len(value)
            if list_items > limits.max_list_items:
                raise SizeLimitError(
                    f"document arrays exceed {limits.max_list_items} items in total"
                )
            stack.extend((item, depth + 1) for item in value)

    if string_chars > limits.max_string_chars:
        raise SizeLimitError(f"document strings exceed {limits.max_string_chars} characters")

    return DocumentStats(
        containers=containers,
        depth=max_depth,
        string_chars=string_chars,
        list_items=list_items,
    )
