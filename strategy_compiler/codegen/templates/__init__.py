"""Jinja2 templates for generated strategy modules.

Template Structure
-----------------
- strategy.py.j2: Strategy class with indicator population, entry/exit
  signal population and the optional leverage callback

Design Principles
----------------
1. Deterministic output - Same document always produces the same code
2. No timestamps or environment details in generated code
3. Only expressions produced by the emitter are interpolated; labels go
   through the safe_comment filter and literals through the py filter
"""

from pathlib import Path

# Template directory
TEMPLATE_DIR = Path(__file__).parent

STRATEGY_TEMPLATE = "strategy.py.j2"
