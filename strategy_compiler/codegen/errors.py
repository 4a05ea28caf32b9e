"""Error taxonomy for strategy code generation.

Every fatal failure is a :class:`CodeGenerationError` carrying an
:class:`ErrorKind`. Errors are raised at the point of detection and turned
into a failed :class:`~strategy_compiler.codegen.generator.CodeGenResult`
exactly once, at the generation boundary.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a generation failure."""

    SCHEMA = "schema"
    REFERENCE = "reference"
    SCOPE = "scope"
    TYPE = "type"
    SIZE_LIMIT = "size_limit"
    INTERNAL = "internal"


class CodeGenerationError(Exception):
    """Error during code generation."""

    kind = ErrorKind.INTERNAL
    label = "InternalError"

    def __str__(self) -> str:
        return f"{self.label}: {super().__str__()}"

    @property
    def message(self) -> str:
        return super().__str__()


class SchemaError(CodeGenerationError):
    """Malformed document, unknown variant tag or invalid indicator parameters."""

    kind = ErrorKind.SCHEMA
    label = "SchemaError"


class NotImplementedOperandError(SchemaError):
    """Reserved operand kinds (EXTERNAL, CUSTOM) that cannot be generated yet."""


class IndicatorReferenceError(CodeGenerationError):
    """An operand names an indicator id that is not declared."""

    kind = ErrorKind.REFERENCE
    label = "ReferenceError"


class ScopeError(CodeGenerationError):
    """A context-only operand used outside callback scope."""

    kind = ErrorKind.SCOPE
    label = "ScopeError"


class OperandTypeError(CodeGenerationError):
    """A scalar used where a series is required, or the reverse."""

    kind = ErrorKind.TYPE
    label = "TypeError"


class SizeLimitError(CodeGenerationError):
    """Document exceeds the configured node, depth or size ceiling."""

    kind = ErrorKind.SIZE_LIMIT
    label = "SizeLimitError"


class LeverageFallbackWarning(UserWarning):
    """No unconditional leverage rule; a fallback value was synthesized."""
