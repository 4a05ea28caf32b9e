"""Indicator registry: the only place indicator-specific knowledge lives.

Each :class:`IndicatorSpec` describes one indicator type: its parameter
schema, its output columns, the Jinja2 snippet that computes it inside
``populate_indicators`` and how much history it needs. The expression
emitter only ever asks the registry for column names, so adding a type is
a single :meth:`IndicatorRegistry.register` call.

Column naming: the primary output of an instance ``rsi_14`` is the column
``rsi_14``; a named output ``upper`` of instance ``bb`` is ``bb_upper``.

Example:
    >>> bound = DEFAULT_REGISTRY.bind([IndicatorDeclaration(id="rsi_14", type="RSI")])
    >>> bound.column("rsi_14")
    'rsi_14'
    >>> bound.code_lines()
    ["dataframe['rsi_14'] = ta.RSI(dataframe['close'], timeperiod=14)"]
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from jinja2 import Environment, StrictUndefined, Template

from strategy_compiler.codegen.errors import IndicatorReferenceError, SchemaError
from strategy_compiler.codegen.filters import python_literal
from strategy_compiler.schemas.document import IndicatorDeclaration

INDICATOR_ID_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")

# Columns the engine owns; indicator outputs must not overwrite them
RESERVED_COLUMNS = frozenset(
    {
        "date",
        "open",
        "high",
        "low",
        "close",
        "volume",
        "enter_long",
        "enter_short",
        "exit_long",
        "exit_short",
        "enter_tag",
        "exit_tag",
    }
)

# Import lines keyed by the short names used in IndicatorSpec.imports
IMPORT_STATEMENTS = {
    "talib": "import talib.abstract as ta",
    "qtpylib": "from technical import qtpylib",
}

SOURCE_COLUMNS = ("open", "high", "low", "close", "volume")

PRIMARY = ""

_snippet_env = Environment(
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
    autoescape=False,
)
_snippet_env.filters["py"] = python_literal


# =============================================================================
# SPECS
# =============================================================================


@dataclass(frozen=True)
class ParamSpec:
    """Schema for one indicator parameter."""

    name: str
    kind: type
    default: Any
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    choices: tuple[str, ...] = ()
    aliases: tuple[str, ...] = ()

    def coerce(self, value: Any, owner: str) -> Any:
        """Validate a raw value, returning it in the declared kind.

        Raises:
            SchemaError: If the value has the wrong type, is out of range or
                is not one of the allowed choices
        """
        where = f"indicator '{owner}' parameter '{self.name}'"
        if self.kind is str:
            if not isinstance(value, str) or (self.choices and value not in self.choices):
                allowed = ", ".join(self.choices)
                raise SchemaError(f"{where} must be one of: {allowed}; got {value!r}")
            return value

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise SchemaError(f"{where} must be a number, got {value!r}")
        if isinstance(value, float) and not math.isfinite(value):
            raise SchemaError(f"{where} must be finite, got {value!r}")
        if self.kind is int:
            if isinstance(value, float) and not value.is_integer():
                raise SchemaError(f"{where} must be an integer, got {value!r}")
            value = int(value)
        else:
            value = float(value)

        if self.minimum is not None and value < self.minimum:
            raise SchemaError(f"{where} must be >= {self.minimum}, got {value!r}")
        if self.maximum is not None and value > self.maximum:
            raise SchemaError(f"{where} must be <= {self.maximum}, got {value!r}")
        return value


def _period(default: int, maximum: int = 1000) -> ParamSpec:
    return ParamSpec("period", int, default, minimum=1, maximum=maximum, aliases=("timeperiod", "length"))


def _source() -> ParamSpec:
    return ParamSpec("source", str, "close", choices=SOURCE_COLUMNS)


@dataclass(frozen=True)
class IndicatorSpec:
    """Everything the compiler knows about one indicator type.

    Attributes:
        type: Registry key, e.g. ``RSI``
        params: Parameter schema
        outputs: Output fields; ``""`` is the primary column named after the id
        default_field: Field used when a reference names none
        template: Jinja2 snippet rendered with ``id`` and ``params``
        imports: Short import names (see IMPORT_STATEMENTS)
        warmup: Candles needed before the first valid value, from params
        description: Human readable name
    """

    type: str
    params: tuple[ParamSpec, ...]
    outputs: tuple[str, ...]
    template: str
    warmup: Callable[[dict[str, Any]], int]
    default_field: Optional[str] = PRIMARY
    imports: tuple[str, ...] = ("talib",)
    description: str = ""
    _compiled: Template = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_compiled", _snippet_env.from_string(self.template))

    def validate_params(self, declaration: IndicatorDeclaration) -> dict[str, Any]:
        """Fill defaults and check every supplied parameter.

        Raises:
            SchemaError: On unknown names or invalid values, naming the declaration
        """
        lookup: dict[str, ParamSpec] = {}
        for spec in self.params:
            for name in (spec.name,) + spec.aliases:
                lookup[name] = spec

        resolved = {spec.name: spec.default for spec in self.params}
        seen: set[str] = set()
        for name, value in declaration.params.items():
            spec = lookup.get(name)
            if spec is None:
                known = ", ".join(p.name for p in self.params) or "none"
                raise SchemaError(
                    f"indicator '{declaration.id}' ({self.type}) has unknown parameter "
                    f"'{name}'; accepted: {known}"
                )
            if spec.name in seen:
                raise SchemaError(
                    f"indicator '{declaration.id}' sets parameter '{spec.name}' twice"
                )
            seen.add(spec.name)
            resolved[spec.name] = spec.coerce(value, declaration.id)
        return resolved

    def render(self, indicator_id: str, params: dict[str, Any]) -> list[str]:
        code = self._compiled.render(id=indicator_id, params=params)
        return [line for line in code.splitlines() if line.strip()]


def column_name(indicator_id: str, output: str) -> str:
    return indicator_id if output == PRIMARY else f"{indicator_id}_{output}"


# =============================================================================
# BINDING
# =============================================================================


@dataclass(frozen=True)
class BoundIndicator:
    """A declaration validated against its spec."""

    declaration: IndicatorDeclaration
    spec: IndicatorSpec
    params: dict[str, Any]

    @property
    def id(self) -> str:
        return self.declaration.id

    @property
    def columns(self) -> dict[str, str]:
        return {output: column_name(self.id, output) for output in self.spec.outputs}

    def column(self, output: Optional[str] = None) -> str:
        """Resolve a reference to one of this indicator's columns.

        Raises:
            IndicatorReferenceError: If the output does not exist
        """
        if output is None or output == "":
            output = self.spec.default_field
            if output is None:
                fields = ", ".join(o for o in self.spec.outputs if o)
                raise IndicatorReferenceError(
                    f"indicator '{self.id}' ({self.spec.type}) needs a field: {fields}"
                )
        if output not in self.spec.outputs:
            fields = ", ".join(o or "(value)" for o in self.spec.outputs)
            raise IndicatorReferenceError(
                f"indicator '{self.id}' ({self.spec.type}) has no output '{output}'; "
                f"outputs: {fields}"
            )
        return column_name(self.id, output)

    def code_lines(self) -> list[str]:
        return self.spec.render(self.id, self.params)

    @property
    def warmup(self) -> int:
        return int(self.spec.warmup(self.params))


class BoundIndicators:
    """The indicator set of one document, ready for emission."""

    def __init__(self, indicators: Iterable[BoundIndicator] = ()):
        self._by_id = {ind.id: ind for ind in indicators}

    def __contains__(self, indicator_id: str) -> bool:
        return indicator_id in self._by_id

    def __iter__(self):
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def column(self, indicator_id: str, output: Optional[str] = None) -> str:
        """Column holding an indicator output.

        Raises:
            IndicatorReferenceError: If no indicator with this id is declared
        """
        indicator = self._by_id.get(indicator_id)
        if indicator is None:
            raise IndicatorReferenceError(f"indicator '{indicator_id}' is not declared")
        return indicator.column(output)

    def code_lines(self) -> list[str]:
        lines: list[str] = []
        for indicator in self._by_id.values():
            lines.extend(indicator.code_lines())
        return lines

    def imports(self) -> set[str]:
        return {name for ind in self._by_id.values() for name in ind.spec.imports}

    def warmup(self) -> int:
        return max((ind.warmup for ind in self._by_id.values()), default=0)


# =============================================================================
# REGISTRY
# =============================================================================


class IndicatorRegistry:
    """Closed table of supported indicator types."""

    def __init__(self, specs: Iterable[IndicatorSpec] = ()):
        self._specs: dict[str, IndicatorSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: IndicatorSpec) -> None:
        """Add an indicator type.

        Raises:
            ValueError: If the type is already registered
        """
        key = spec.type.upper()
        if key in self._specs:
            raise ValueError(f"indicator type {key} is already registered")
        self._specs[key] = spec

    def get(self, indicator_type: str) -> IndicatorSpec:
        """Look up a type.

        Raises:
            SchemaError: If the type is not registered
        """
        spec = self._specs.get(indicator_type.upper())
        if spec is None:
            raise SchemaError(f"unknown indicator type '{indicator_type}'")
        return spec

    def types(self) -> list[str]:
        return sorted(self._specs)

    def __contains__(self, indicator_type: str) -> bool:
        return indicator_type.upper() in self._specs

    def bind(self, declarations: Iterable[IndicatorDeclaration]) -> BoundIndicators:
        """Validate a document's declarations and resolve their columns.

        Raises:
            SchemaError: On bad ids, unknown types, invalid parameters, or
                column collisions
        """
        bound: list[BoundIndicator] = []
        owners: dict[str, str] = {}
        for declaration in declarations:
            if not INDICATOR_ID_PATTERN.match(declaration.id):
                raise SchemaError(
                    f"indicator id '{declaration.id}' must be a letter or underscore "
                    "followed by up to 63 letters, digits or underscores"
                )
            spec = self._specs.get(declaration.type)
            if spec is None:
                raise SchemaError(
                    f"indicator '{declaration.id}' has unknown type '{declaration.type}'"
                )
            if declaration.id in {b.id for b in bound}:
                raise SchemaError(f"duplicate indicator id '{declaration.id}'")

            indicator = BoundIndicator(declaration, spec, spec.validate_params(declaration))
            for column in indicator.columns.values():
                if column.lower() in RESERVED_COLUMNS:
                    raise SchemaError(
                        f"indicator '{declaration.id}' output column '{column}' "
                        "clashes with a market data column"
                    )
                if column in owners:
                    raise SchemaError(
                        f"indicator '{declaration.id}' output column '{column}' "
                        f"collides with indicator '{owners[column]}'"
                    )
                owners[column] = declaration.id
            bound.append(indicator)
        return BoundIndicators(bound)


# =============================================================================
# BUILT-IN INDICATORS
# =============================================================================


def _single_series(name: str, talib_name: str, period: int, description: str) -> IndicatorSpec:
    return IndicatorSpec(
        type=name,
        params=(_period(period), _source()),
        outputs=(PRIMARY,),
        template=(
            f"dataframe['{{{{ id }}}}'] = ta.{talib_name}("
            "dataframe['{{ params.source }}'], timeperiod={{ params.period }})"
        ),
        warmup=lambda p: p["period"],
        description=description,
    )


def _ohlc_period(name: str, period: int, description: str) -> IndicatorSpec:
    return IndicatorSpec(
        type=name,
        params=(_period(period),),
        outputs=(PRIMARY,),
        template=f"dataframe['{{{{ id }}}}'] = ta.{name}(dataframe, timeperiod={{{{ params.period }}}})",
        warmup=lambda p: p["period"] + 1,
        description=description,
    )


BUILTIN_INDICATORS: tuple[IndicatorSpec, ...] = (
    _single_series("RSI", "RSI", 14, "Relative Strength Index"),
    _single_series("SMA", "SMA", 20, "Simple Moving Average"),
    _single_series("EMA", "EMA", 20, "Exponential Moving Average"),
    _single_series("WMA", "WMA", 20, "Weighted Moving Average"),
    _single_series("DEMA", "DEMA", 20, "Double Exponential Moving Average"),
    _single_series("TEMA", "TEMA", 20, "Triple Exponential Moving Average"),
    _single_series("KAMA", "KAMA", 30, "Kaufman Adaptive Moving Average"),
    _single_series("MOM", "MOM", 10, "Momentum"),
    _single_series("ROC", "ROC", 10, "Rate of Change"),
    IndicatorSpec(
        type="MACD",
        params=(
            ParamSpec("fast", int, 12, minimum=1, maximum=500, aliases=("fastperiod", "fast_period")),
            ParamSpec("slow", int, 26, minimum=2, maximum=1000, aliases=("slowperiod", "slow_period")),
            ParamSpec("signal", int, 9, minimum=1, maximum=500, aliases=("signalperiod", "signal_period")),
        ),
        outputs=(PRIMARY, "signal", "histogram"),
        template=(
            "{{ id }}_raw = ta.MACD(dataframe, fastperiod={{ params.fast }}, "
            "slowperiod={{ params.slow }}, signalperiod={{ params.signal }})\n"
            "dataframe['{{ id }}'] = {{ id }}_raw['macd']\n"
            "dataframe['{{ id }}_signal'] = {{ id }}_raw['macdsignal']\n"
            "dataframe['{{ id }}_histogram'] = {{ id }}_raw['macdhist']"
        ),
        warmup=lambda p: p["slow"] + p["signal"],
        description="Moving Average Convergence Divergence",
    ),
    IndicatorSpec(
        type="BB",
        params=(
            _period(20),
            ParamSpec("std_dev", float, 2.0, minimum=0.1, maximum=10.0, aliases=("stddev", "nbdev")),
        ),
        outputs=("upper", "middle", "lower", "width"),
        default_field="middle",
        template=(
            "{{ id }}_raw = ta.BBANDS(dataframe, timeperiod={{ params.period }}, "
            "nbdevup={{ params.std_dev | py }}, nbdevdn={{ params.std_dev | py }}, matype=0)\n"
            "dataframe['{{ id }}_upper'] = {{ id }}_raw['upperband']\n"
            "dataframe['{{ id }}_middle'] = {{ id }}_raw['middleband']\n"
            "dataframe['{{ id }}_lower'] = {{ id }}_raw['lowerband']\n"
            "dataframe['{{ id }}_width'] = "
            "({{ id }}_raw['upperband'] - {{ id }}_raw['lowerband']) / {{ id }}_raw['middleband']"
        ),
        warmup=lambda p: p["period"],
        description="Bollinger Bands",
    ),
    IndicatorSpec(
        type="KC",
        params=(
            ParamSpec("period", int, 20, minimum=1, maximum=1000, aliases=("window",)),
            ParamSpec("atrs", float, 2.0, minimum=0.1, maximum=10.0, aliases=("multiplier",)),
        ),
        outputs=("upper", "middle", "lower"),
        default_field="middle",
        imports=("qtpylib",),
        template=(
            "{{ id }}_raw = qtpylib.keltner_channel(dataframe, window={{ params.period }}, "
            "atrs={{ params.atrs | py }})\n"
            "dataframe['{{ id }}_upper'] = {{ id }}_raw['upper']\n"
            "dataframe['{{ id }}_middle'] = {{ id }}_raw['mid']\n"
            "dataframe['{{ id }}_lower'] = {{ id }}_raw['lower']"
        ),
        warmup=lambda p: p["period"] + 1,
        description="Keltner Channel",
    ),
    IndicatorSpec(
        type="STOCH",
        params=(
            ParamSpec("k", int, 14, minimum=1, maximum=500, aliases=("fastk_period",)),
            ParamSpec("d", int, 3, minimum=1, maximum=500, aliases=("slowd_period",)),
            ParamSpec("smooth", int, 3, minimum=1, maximum=500, aliases=("slowk_period",)),
        ),
        outputs=("k", "d"),
        default_field="k",
        template=(
            "{{ id }}_raw = ta.STOCH(dataframe, fastk_period={{ params.k }}, "
            "slowk_period={{ params.smooth }}, slowk_matype=0, "
            "slowd_period={{ params.d }}, slowd_matype=0)\n"
            "dataframe['{{ id }}_k'] = {{ id }}_raw['slowk']\n"
            "dataframe['{{ id }}_d'] = {{ id }}_raw['slowd']"
        ),
        warmup=lambda p: p["k"] + p["smooth"] + p["d"],
        description="Stochastic Oscillator",
    ),
    IndicatorSpec(
        type="STOCH_RSI",
        params=(
            _period(14),
            ParamSpec("k", int, 3, minimum=1, maximum=500, aliases=("fastk_period",)),
            ParamSpec("d", int, 3, minimum=1, maximum=500, aliases=("fastd_period",)),
        ),
        outputs=("k", "d"),
        default_field="k",
        template=(
            "{{ id }}_raw = ta.STOCHRSI(dataframe, timeperiod={{ params.period }}, "
            "fastk_period={{ params.k }}, fastd_period={{ params.d }}, fastd_matype=0)\n"
            "dataframe['{{ id }}_k'] = {{ id }}_raw['fastk']\n"
            "dataframe['{{ id }}_d'] = {{ id }}_raw['fastd']"
        ),
        warmup=lambda p: 2 * p["period"] + p["k"] + p["d"],
        description="Stochastic RSI",
    ),
    _ohlc_period("ATR", 14, "Average True Range"),
    IndicatorSpec(
        type="ADX",
        params=(_period(14),),
        outputs=(PRIMARY, "plus_di", "minus_di"),
        template=(
            "dataframe['{{ id }}'] = ta.ADX(dataframe, timeperiod={{ params.period }})\n"
            "dataframe['{{ id }}_plus_di'] = ta.PLUS_DI(dataframe, timeperiod={{ params.period }})\n"
            "dataframe['{{ id }}_minus_di'] = ta.MINUS_DI(dataframe, timeperiod={{ params.period }})"
        ),
        warmup=lambda p: 2 * p["period"],
        description="Average Directional Index",
    ),
    _ohlc_period("CCI", 20, "Commodity Channel Index"),
    _ohlc_period("WILLR", 14, "Williams %R"),
    _ohlc_period("MFI", 14, "Money Flow Index"),
    IndicatorSpec(
        type="OBV",
        params=(),
        outputs=(PRIMARY,),
        template="dataframe['{{ id }}'] = ta.OBV(dataframe)",
        warmup=lambda p: 1,
        description="On Balance Volume",
    ),
    IndicatorSpec(
        type="AD",
        params=(),
        outputs=(PRIMARY,),
        template="dataframe['{{ id }}'] = ta.AD(dataframe)",
        warmup=lambda p: 1,
        description="Accumulation/Distribution Line",
    ),
    IndicatorSpec(
        type="VWAP",
        params=(ParamSpec("window", int, 200, minimum=1, maximum=5000, aliases=("period",)),),
        outputs=(PRIMARY,),
        imports=("qtpylib",),
        template="dataframe['{{ id }}'] = qtpylib.rolling_vwap(dataframe, window={{ params.window }})",
        warmup=lambda p: p["window"],
        description="Rolling Volume Weighted Average Price",
    ),
    IndicatorSpec(
        type="CMF",
        params=(_period(20),),
        outputs=(PRIMARY,),
        imports=(),
        template=(
            "{{ id }}_mfv = ((dataframe['close'] - dataframe['low']) - "
            "(dataframe['high'] - dataframe['close'])) / "
            "(dataframe['high'] - dataframe['low']) * dataframe['volume']\n"
            "dataframe['{{ id }}'] = {{ id }}_mfv.rolling({{ params.period }}).sum() / "
            "dataframe['volume'].rolling({{ params.period }}).sum()"
        ),
        warmup=lambda p: p["period"],
        description="Chaikin Money Flow",
    ),
    IndicatorSpec(
        type="ICHIMOKU",
        params=(
            ParamSpec("conv", int, 9, minimum=1, maximum=500, aliases=("conversion",)),
            ParamSpec("base", int, 26, minimum=1, maximum=500),
            ParamSpec("span", int, 52, minimum=1, maximum=1000, aliases=("lagging",)),
        ),
        outputs=("tenkan", "kijun", "senkou_a", "senkou_b"),
        default_field=None,
        imports=(),
        template=(
            "dataframe['{{ id }}_tenkan'] = (dataframe['high'].rolling({{ params.conv }}).max() + "
            "dataframe['low'].rolling({{ params.conv }}).min()) / 2\n"
            "dataframe['{{ id }}_kijun'] = (dataframe['high'].rolling({{ params.base }}).max() + "
            "dataframe['low'].rolling({{ params.base }}).min()) / 2\n"
            "dataframe['{{ id }}_senkou_a'] = ((dataframe['{{ id }}_tenkan'] + "
            "dataframe['{{ id }}_kijun']) / 2).shift({{ params.base }})\n"
            "dataframe['{{ id }}_senkou_b'] = ((dataframe['high'].rolling({{ params.span }}).max() + "
            "dataframe['low'].rolling({{ params.span }}).min()) / 2).shift({{ params.base }})"
        ),
        warmup=lambda p: p["span"] + p["base"],
        description="Ichimoku Cloud",
    ),
    IndicatorSpec(
        type="SAR",
        params=(
            ParamSpec("acceleration", float, 0.02, minimum=0.001, maximum=1.0),
            ParamSpec("maximum", float, 0.2, minimum=0.01, maximum=1.0),
        ),
        outputs=(PRIMARY,),
        template=(
            "dataframe['{{ id }}'] = ta.SAR(dataframe, acceleration={{ params.acceleration | py }}, "
            "maximum={{ params.maximum | py }})"
        ),
        warmup=lambda p: 2,
        description="Parabolic SAR",
    ),
    IndicatorSpec(
        type="PIVOT",
        params=(),
        outputs=(PRIMARY, "r1", "s1", "r2", "s2"),
        imports=(),
        template=(
            "{{ id }}_high = dataframe['high'].shift(1)\n"
            "{{ id }}_low = dataframe['low'].shift(1)\n"
            "dataframe['{{ id }}'] = ({{ id }}_high + {{ id }}_low + dataframe['close'].shift(1)) / 3\n"
            "dataframe['{{ id }}_r1'] = 2 * dataframe['{{ id }}'] - {{ id }}_low\n"
            "dataframe['{{ id }}_s1'] = 2 * dataframe['{{ id }}'] - {{ id }}_high\n"
            "dataframe['{{ id }}_r2'] = dataframe['{{ id }}'] + ({{ id }}_high - {{ id }}_low)\n"
            "dataframe['{{ id }}_s2'] = dataframe['{{ id }}'] - ({{ id }}_high - {{ id }}_low)"
        ),
        warmup=lambda p: 2,
        description="Classic pivot points from the previous candle",
    ),
    IndicatorSpec(
        type="SUPERTREND",
        params=(
            _period(10),
            ParamSpec("multiplier", float, 3.0, minimum=0.1, maximum=20.0),
        ),
        outputs=("upper", "lower"),
        default_field=None,
        template=(
            "{{ id }}_atr = ta.ATR(dataframe, timeperiod={{ params.period }})\n"
            "{{ id }}_hl2 = (dataframe['high'] + dataframe['low']) / 2\n"
            "dataframe['{{ id }}_upper'] = {{ id }}_hl2 + ({{ params.multiplier | py }} * {{ id }}_atr)\n"
            "dataframe['{{ id }}_lower'] = {{ id }}_hl2 - ({{ params.multiplier | py }} * {{ id }}_atr)"
        ),
        warmup=lambda p: p["period"] + 1,
        description="Supertrend bands",
    ),
)

DEFAULT_REGISTRY = IndicatorRegistry(BUILTIN_INDICATORS)
