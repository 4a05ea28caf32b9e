"""Custom Jinja2 filters for template rendering."""

import math
import re
from typing import Any


def snake_case(value: str) -> str:
    """Convert a string to snake_case.

    Args:
        value: String to convert (e.g., "MyStrategy" or "my-strategy")

    Returns:
        snake_case string (e.g., "my_strategy")
    """
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", value)
    s2 = re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1)
    s3 = s2.replace("-", "_").replace(" ", "_")
    return s3.lower()


def pascal_case(value: str) -> str:
    """Convert free text to PascalCase, dropping anything non-alphanumeric.

    Args:
        value: String to convert (e.g., "my rsi strategy" or "rsi-v2")

    Returns:
        PascalCase string (e.g., "MyRsiStrategy", "RsiV2")
    """
    words = re.split(r"[^A-Za-z0-9]+", value)
    return "".join(word[:1].upper() + word[1:] for word in words if word)


def python_literal(value: Any) -> str:
    """Render a scalar or list of scalars as a Python literal.

    Strings use repr(), so quotes, backslashes and newlines can never break
    out of the literal.

    Args:
        value: None, bool, int, float, str, or a list/tuple of those

    Returns:
        Python source for the value

    Raises:
        ValueError: For non-finite floats or unsupported types
    """
    if value is None or isinstance(value, (bool, int, str)):
        return repr(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"cannot render non-finite float {value!r}")
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(python_literal(item) for item in value) + "]"
    raise ValueError(f"cannot render {type(value).__name__} as a literal")


def safe_comment(value: Any, max_length: int = 120) -> str:
    """Collapse text into a single line that is safe inside a # comment.

    Args:
        value: Label text from the document (may be None)
        max_length: Truncate longer text

    Returns:
        Printable single-line text
    """
    if value is None:
        return ""
    text = "".join(ch if ch.isprintable() else " " for ch in str(value))
    text = " ".join(text.split())
    if len(text) > max_length:
        text = text[: max_length - 3] + "..."
    return text


def indent(lines: list[str], spaces: int = 8) -> str:
    """Join code lines, indenting each by a fixed number of spaces.

    Args:
        lines: Lines of code without leading indentation
        spaces: Indentation width

    Returns:
        Indented block without a trailing newline
    """
    pad = " " * spaces
    return "\n".join(pad + line if line else "" for line in lines)


# Registry of all custom filters
CUSTOM_FILTERS = {
    "snake_case": snake_case,
    "pascal_case": pascal_case,
    "py": python_literal,
    "safe_comment": safe_comment,
    "indent_lines": indent,
}
