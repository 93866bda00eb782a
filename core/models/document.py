"""Persisted configuration document: credentials and autotrade schedule."""

from decimal import Decimal
from enum import Enum
from typing import Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    field_serializer,
    field_validator,
)


def fits_json_number(value: Decimal) -> bool:
    """True if ``value`` survives the float used for JSON numbers unchanged."""
    if not value.is_finite():
        return False
    if value == value.to_integral_value():
        return True
    return Decimal(repr(float(value))) == value


class TradeSide(str, Enum):
    NONE = ""
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: Union["TradeSide", str, None]) -> "TradeSide":
        """Lenient operator-input parsing ("buy", "Sell", None...)."""
        if isinstance(value, TradeSide):
            return value
        if value is None:
            return cls.NONE
        text = str(value).strip().upper()
        if text in ("", "NONE"):
            return cls.NONE
        return cls(text)


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    key: StrictStr
    secret: StrictStr
    passphrase: StrictStr

    @classmethod
    def empty(cls) -> "Credentials":
        return cls(key="", secret="", passphrase="")

    @property
    def is_valid(self) -> bool:
        return bool(self.key and self.secret and self.passphrase)

    def redacted(self) -> dict:
        return {name: ("REDACTED" if value else "") for name, value in self.model_dump().items()}


class AutotradeSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    enabled: StrictBool
    next_trade_timestamp_utc: StrictInt = Field(alias="next-trade-timestamp-UTC")
    next_trade_amount: Decimal = Field(ge=0, alias="next-trade-amount")
    next_trade_side: TradeSide = Field(alias="next-trade-side")

    @field_validator("next_trade_amount", mode="before")
    @classmethod
    def _amount_is_number(cls, v):
        # Stored as a JSON number; bool is an int subclass and must not pass
        if isinstance(v, bool) or not isinstance(v, (int, float, Decimal)):
            raise ValueError("next-trade-amount must be a number")
        if isinstance(v, float):
            # Shortest repr is the text that was on disk
            return Decimal(repr(v))
        return v

    @field_validator("next_trade_amount")
    @classmethod
    def _amount_round_trips(cls, v: Decimal) -> Decimal:
        if not fits_json_number(v):
            raise ValueError(f"next-trade-amount {v} cannot be stored exactly as a JSON number")
        return v

    @field_serializer("next_trade_amount", when_used="json")
    def _amount_as_number(self, v: Decimal):
        if v == v.to_integral_value():
            return int(v)
        return float(v)

    @classmethod
    def disabled(cls) -> "AutotradeSettings":
        return cls(
            enabled=False,
            next_trade_timestamp_utc=0,
            next_trade_amount=Decimal(0),
            next_trade_side=TradeSide.NONE,
        )


class ConfigDocument(BaseModel):
    """Single durable record. Replaced whole on every write."""

    model_config = ConfigDict(frozen=True, extra="allow")

    credentials: Credentials
    autotrade: AutotradeSettings

    @classmethod
    def default(cls) -> "ConfigDocument":
        return cls(credentials=Credentials.empty(), autotrade=AutotradeSettings.disabled())

    def with_credentials(self, credentials: Credentials) -> "ConfigDocument":
        return self.model_copy(update={"credentials": credentials})

    def with_autotrade(self, autotrade: AutotradeSettings) -> "ConfigDocument":
        return self.model_copy(update={"autotrade": autotrade})

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: dict) -> "ConfigDocument":
        return cls.model_validate(data)
