"""Strategy compiler: builder documents to Freqtrade strategy code."""

from strategy_compiler.codegen import CodeGenResult, generate_code

__version__ = "0.1.0"

__all__ = ["CodeGenResult", "generate_code", "__version__"]
