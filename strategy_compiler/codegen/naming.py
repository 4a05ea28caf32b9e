"""Rules for the generated strategy class name."""

from __future__ import annotations

import keyword
import re

from strategy_compiler.codegen.errors import SchemaError
from strategy_compiler.codegen.filters import pascal_case

CLASS_NAME_PATTERN = re.compile(r"^[A-Z][a-zA-Z0-9]*$")

# Names the generated module imports or defines at module level
RESERVED_CLASS_NAMES = frozenset(
    {
        "IStrategy",
        "DataFrame",
        "Optional",
        "ZoneInfo",
    }
)

DEFAULT_CLASS_NAME = "GeneratedStrategy"


def validate_class_name(name: str, max_length: int = 100) -> None:
    """Check that a name can be used as the generated class name.

    Raises:
        SchemaError: If the name is empty, too long, not PascalCase, a Python
            keyword, or shadows a name the generated module imports
    """
    if not name:
        raise SchemaError("class name is required")
    if len(name) > max_length:
        raise SchemaError(f"class name must be at most {max_length} characters")
    if not CLASS_NAME_PATTERN.match(name):
        raise SchemaError(
            f"class name '{name}' must be PascalCase (start with uppercase letter, "
            "alphanumeric only)"
        )
    if keyword.iskeyword(name) or name in RESERVED_CLASS_NAMES:
        raise SchemaError(f"class name '{name}' is reserved")


def name_to_class_name(name: str) -> str:
    """Derive a valid class name from free text such as a strategy title.

    Args:
        name: Display name (e.g., "rsi dip buyer v2")

    Returns:
        PascalCase identifier (e.g., "RsiDipBuyerV2")
    """
    class_name = pascal_case(name)
    if not class_name:
        return DEFAULT_CLASS_NAME
    if not class_name[0].isalpha():
        class_name = "Strategy" + class_name
    if keyword.iskeyword(class_name) or class_name in RESERVED_CLASS_NAMES:
        class_name += "Strategy"
    return class_name
