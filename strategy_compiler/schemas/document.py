"""Strategy document schema (canonical nested shape).

A document is the builder's snapshot of one strategy: declared indicators,
per-direction signal trees, an optional mirror policy, leverage rules and
free-form trading parameters. Legacy flat documents are mapped onto this
shape by :mod:`strategy_compiler.codegen.normalizer` before validation.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from strategy_compiler.schemas.common import PositionMode, SignalDirection
from strategy_compiler.schemas.expression import (
    FROZEN_MODEL_CONFIG,
    ComputedOperand,
    ConditionNode,
    ConstantOperand,
    CustomOperand,
    ExternalOperand,
    IndicatorOperand,
    Operand,
    OrNode,
    PriceOperand,
    TimeOperand,
    TradeContextOperand,
)


class IndicatorDeclaration(BaseModel):
    """One indicator instance; its params are checked by the indicator registry."""

    model_config = FROZEN_MODEL_CONFIG

    id: str = Field(..., min_length=1, description="Unique id, also the column name prefix")
    type: str = Field(..., min_length=1, description="Indicator type, e.g. RSI or MACD")
    params: dict[str, Any] = Field(default_factory=dict)
    label: Optional[str] = None

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        return v.strip().upper()


class SignalConfig(BaseModel):
    """Entry and exit trees for one direction."""

    model_config = FROZEN_MODEL_CONFIG

    entry_conditions: ConditionNode = Field(
        default_factory=OrNode,
        validation_alias=AliasChoices("entry_conditions", "entry", "entryConditions"),
    )
    exit_conditions: ConditionNode = Field(
        default_factory=OrNode,
        validation_alias=AliasChoices("exit_conditions", "exit", "exitConditions"),
    )


class MirrorConfig(BaseModel):
    """Derive one direction's signals from the other."""

    model_config = FROZEN_MODEL_CONFIG

    enabled: bool = False
    source: SignalDirection = SignalDirection.LONG
    invert_comparisons: bool = Field(
        True, validation_alias=AliasChoices("invert_comparisons", "invertComparisons")
    )
    invert_crossovers: bool = Field(
        True, validation_alias=AliasChoices("invert_crossovers", "invertCrossovers")
    )

    @field_validator("source", mode="before")
    @classmethod
    def upper_source(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class LeverageExpression(BaseModel):
    """Leverage read from an operand when the trade opens, clamped to ``[min, max]``."""

    model_config = FROZEN_MODEL_CONFIG

    type: Literal["EXPRESSION"] = "EXPRESSION"
    operand: Operand
    min: Optional[float] = Field(None, gt=0, description="Lower bound on the computed value")
    max: Optional[float] = Field(None, gt=0, description="Upper bound on the computed value")

    @model_validator(mode="after")
    def check_bounds(self) -> "LeverageExpression":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min {self.min} is greater than max {self.max}")
        return self


# An operand used as-is, or an EXPRESSION wrapping one with bounds
LeverageValue = Annotated[
    Union[
        ConstantOperand,
        IndicatorOperand,
        PriceOperand,
        TradeContextOperand,
        TimeOperand,
        ComputedOperand,
        ExternalOperand,
        CustomOperand,
        LeverageExpression,
    ],
    Field(discriminator="type"),
]


class LeverageRule(BaseModel):
    """A priority-ordered leverage assignment, unconditional when no condition is set."""

    model_config = FROZEN_MODEL_CONFIG

    id: Optional[str] = None
    label: Optional[str] = None
    priority: int = 0
    enabled: bool = True
    condition: Optional[ConditionNode] = None
    leverage: LeverageValue

    @field_validator("leverage", mode="before")
    @classmethod
    def lift_bare_number(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return {"type": "CONSTANT", "value": v}
        return v


class LeverageSettings(BaseModel):
    """Leverage callback configuration."""

    model_config = FROZEN_MODEL_CONFIG

    enabled: bool = True
    rules: tuple[LeverageRule, ...] = ()
    default_leverage: Optional[float] = Field(
        None, gt=0, description="Unconditional value used after every rule"
    )
    max_leverage: Optional[float] = Field(
        None, gt=0, description="Upper bound applied on top of the exchange maximum"
    )

    @model_validator(mode="before")
    @classmethod
    def accept_rule_list(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return {"rules": list(data)}
        return data


class StrategyParameters(BaseModel):
    """Trading parameters copied onto the generated class. Unknown keys are kept."""

    model_config = ConfigDict(frozen=True, extra="allow")

    stoploss: float = Field(-0.10, le=0, description="Hard stoploss as a negative ratio")
    minimal_roi: dict[str, float] = Field(default_factory=lambda: {"0": 0.10})
    trailing_stop: bool = False
    trailing_stop_positive: Optional[float] = Field(None, gt=0)
    trailing_stop_positive_offset: Optional[float] = Field(None, ge=0)
    use_exit_signal: bool = True
    timeframe: Optional[str] = Field(None, pattern=r"^[0-9]+[smhdwM]$")
    startup_candle_count: Optional[int] = Field(None, ge=0)

    @field_validator("minimal_roi")
    @classmethod
    def validate_roi_keys(cls, v: dict[str, float]) -> dict[str, float]:
        for key in v:
            if not key.isdigit():
                raise ValueError(f"minimal_roi keys must be minutes, got {key!r}")
        return v


class StrategyDocument(BaseModel):
    """Canonical builder document."""

    model_config = FROZEN_MODEL_CONFIG

    version: int = 2
    position_mode: PositionMode = PositionMode.LONG_ONLY
    indicators: tuple[IndicatorDeclaration, ...] = ()
    long: Optional[SignalConfig] = None
    short: Optional[SignalConfig] = None
    mirror_config: Optional[MirrorConfig] = Field(
        None, validation_alias=AliasChoices("mirror_config", "mirror", "mirrorConfig")
    )
    leverage: Optional[LeverageSettings] = None
    parameters: StrategyParameters = Field(default_factory=StrategyParameters)
    callbacks: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def lift_callback_leverage(cls, data: Any) -> Any:
        """Older documents keep leverage rules under ``callbacks.leverage``."""
        if not isinstance(data, dict) or data.get("leverage") is not None:
            return data
        callbacks = data.get("callbacks")
        if isinstance(callbacks, dict) and callbacks.get("leverage") is not None:
            return {**data, "leverage": callbacks["leverage"]}
        return data

    @field_validator("position_mode", mode="before")
    @classmethod
    def upper_mode(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    def signal_for(self, direction: SignalDirection) -> Optional[SignalConfig]:
        return self.long if direction is SignalDirection.LONG else self.short
