"""Template engine for rendering compiled strategies to Python code."""

import ast
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateNotFound

from strategy_compiler.codegen.errors import CodeGenerationError
from strategy_compiler.codegen.filters import CUSTOM_FILTERS
from strategy_compiler.codegen.templates import STRATEGY_TEMPLATE, TEMPLATE_DIR

REQUIRED_METHODS = ("populate_indicators", "populate_entry_trend", "populate_exit_trend")


class TemplateEngine:
    """Engine for rendering compiled strategies to Python code.

    Design principles:
    - Deterministic output (same input = same output)
    - Only emitter-produced expressions and filtered literals are interpolated
    """

    def __init__(self, template_dir: Path | None = None):
        """Initialize the template engine.

        Args:
            template_dir: Optional custom template directory. Defaults to
                          the built-in templates.
        """
        self._template_dir = template_dir or TEMPLATE_DIR
        self._env = Environment(
            loader=FileSystemLoader(self._template_dir),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

        for name, func in CUSTOM_FILTERS.items():
            self._env.filters[name] = func

    def render(self, context: dict[str, Any], template_name: str = STRATEGY_TEMPLATE) -> str:
        """Render a template context to Python code.

        Args:
            context: Template variables built by the generator
            template_name: Template to render

        Returns:
            Generated Python code as a string

        Raises:
            CodeGenerationError: If rendering fails
        """
        try:
            template = self._env.get_template(template_name)
            return template.render(**context)
        except TemplateNotFound as e:
            raise CodeGenerationError(f"Template not found: {e}") from e
        except Exception as e:
            raise CodeGenerationError(f"Template rendering failed: {e}") from e

    def validate_output(self, code: str, class_name: str | None = None) -> list[str]:
        """Validate generated code structure.

        Args:
            code: The generated Python code
            class_name: Expected strategy class name, if known

        Returns:
            List of validation error messages (empty if valid)
        """
        try:
            tree = ast.parse(code)
        except SyntaxError as e:
            return [f"Syntax error at line {e.lineno}: {e.msg}"]

        errors = []
        classes = [
            node
            for node in tree.body
            if isinstance(node, ast.ClassDef)
            and any(isinstance(b, ast.Name) and b.id == "IStrategy" for b in node.bases)
        ]
        if len(classes) != 1:
            errors.append(f"Expected one IStrategy subclass, found {len(classes)}")
            return errors

        strategy = classes[0]
        if class_name is not None and strategy.name != class_name:
            errors.append(f"Strategy class is named {strategy.name}, expected {class_name}")

        methods = {n.name for n in strategy.body if isinstance(n, ast.FunctionDef)}
        for method in REQUIRED_METHODS:
            if method not in methods:
                errors.append(f"Missing {method} method")

        if "from freqtrade.strategy import IStrategy" not in code:
            errors.append("Missing required import: IStrategy")

        return errors
