from typing import Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class Unparsable(BaseModel):
    """Marker for a numeric field whose upstream value was not a number."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["unparsable"] = "unparsable"
    raw: str


Number = Union[float, Unparsable]


class Position(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    symbol: str = ""
    name: str = ""
    quantity: Number = 0.0
    avg_price: Number = Field(0.0, alias="avgPrice")
    current_price: Number = Field(0.0, alias="currentPrice")
    market_value: Number = Field(0.0, alias="marketValue")
    unrealized_pl: Number = Field(0.0, alias="unrealizedPL")
    unrealized_pl_percent: Number = Field(0.0, alias="unrealizedPLPercent")


class Order(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    symbol: str = ""
    order_type: str = Field("—", alias="type")
    side: str = "—"
    status: str = "—"
    quantity: Number = 0.0
    filled: Number = 0.0
    limit_price: Optional[Number] = Field(None, alias="limitPrice")
    stop_price: Optional[Number] = Field(None, alias="stopPrice")
    avg_fill_price: Optional[Number] = Field(None, alias="avgFillPrice")
    timestamp: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def overfilled(self) -> bool:
        """True when the upstream reports more filled than ordered."""
        if isinstance(self.filled, Unparsable) or isinstance(self.quantity, Unparsable):
            return False
        return self.filled > self.quantity


class Proposal(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str = ""
    side: str = ""
    qty: Number = 0.0
    est_price: Optional[Number] = None
    reason: str = ""
    confidence: float = Field(0.5, ge=0, le=1)
    horizon: Optional[str] = None
    signals: Dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.symbol, self.side)

    @property
    def actionable(self) -> bool:
        return self.side in {"buy", "sell"}


class Account(BaseModel):
    model_config = ConfigDict(frozen=True)

    equity: Number = 0.0
    cash: Number = 0.0
    buying_power: Number = 0.0


class RiskLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_order_notional: Number = 0.0
    max_position_pct: Number = 0.0


class Regime(BaseModel):
    model_config = ConfigDict(frozen=True)

    regime: Literal["RISK_ON", "RISK_OFF", "UNKNOWN"] = "UNKNOWN"
    detail: str = ""


class WatchItem(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str
    name: str = ""
    price: Number = 0.0
    change: Number = 0.0
    change_percent: Number = Field(0.0, alias="changePercent")
    volume: Number = 0.0


class DashboardSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    account: Account
    positions: Tuple[Position, ...] = ()
    risk: RiskLimits
    num_positions: int = 0
    total_market_value: float = 0.0
    total_unrealized_pl: float = 0.0
    as_of: str
    stale: bool = False
    last_error: Optional[str] = None


class ApprovalRequest(BaseModel):
    symbol: str = Field(..., min_length=1)
    side: str
    qty: Optional[float] = Field(None, ge=0)
    est_price: Optional[float] = Field(None, ge=0)

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, value: str) -> str:
        symbol = value.strip().upper()
        if not symbol:
            raise ValueError("symbol is required")
        return symbol

    @field_validator("side")
    @classmethod
    def validate_side(cls, value: str) -> str:
        side_lower = value.strip().lower()
        if side_lower not in {"buy", "sell"}:
            raise ValueError("side must be buy or sell")
        return side_lower


class ApprovalResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    order_id: Optional[str] = None
    message: str = ""


class ErrorResponse(BaseModel):
    error: str
    detail: str
    context: Optional[dict] = None
