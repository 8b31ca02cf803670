"""Pydantic schemas for the Trade API and the lifecycle core."""

from datetime import date, datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from journal.utils.constants import (
    SORTABLE_FIELDS,
    Exchange,
    InstrumentType,
    OrderType,
    Position,
    Segment,
    TradeStatus,
    TradeType,
)


def to_utc(value: datetime | None) -> datetime | None:
    """Tag naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _clean_tags(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    seen: list[str] = []
    for tag in value:
        text = tag.strip()
        if not text:
            continue
        if len(text) > 50:
            raise ValueError("tags must be at most 50 characters")
        if text not in seen:
            seen.append(text)
    return seen


def _reject_explicit_null(model: BaseModel, fields: tuple[str, ...]):
    for name in fields:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{name} cannot be null")


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

class Taxes(BaseModel):
    stt: float = Field(default=0.0, ge=0)
    stamp_duty: float = Field(default=0.0, ge=0)
    gst: float = Field(default=0.0, ge=0)
    sebi_turnover: float = Field(default=0.0, ge=0)
    exchange_txn: float = Field(default=0.0, ge=0)

    def total(self) -> float:
        return self.stt + self.stamp_duty + self.gst + self.sebi_turnover + self.exchange_txn


class TradeLeg(BaseModel):
    """One side (entry or exit) of a trade.

    ``brokerage`` and ``taxes`` are None when the user did not provide them;
    charges for such a leg come from the rate table instead.
    """

    price: float = Field(gt=0)
    quantity: int = Field(gt=0)
    timestamp: datetime
    order_type: OrderType = OrderType.MARKET
    brokerage: float | None = Field(default=None, ge=0)
    taxes: Taxes | None = None

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)


class PnL(BaseModel):
    gross: float = 0.0
    net: float = 0.0
    charges: float = 0.0
    brokerage: float = 0.0
    taxes: Taxes = Field(default_factory=Taxes)
    percentage_gain: float = 0.0
    is_profit: bool = False


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class TradeCreate(BaseModel):
    symbol: str = Field(min_length=1, max_length=64)
    exchange: Exchange = Exchange.NSE
    segment: Segment = Segment.EQUITY
    instrument_type: InstrumentType = InstrumentType.STOCK
    trade_type: TradeType
    position: Position
    entry_price: float = Field(gt=0)
    quantity: int = Field(gt=0)
    entry_timestamp: datetime | None = None
    order_type: OrderType = OrderType.MARKET
    brokerage: float | None = Field(default=None, ge=0)
    taxes: Taxes | None = None
    stop_loss: float | None = Field(default=None, gt=0)
    target: float | None = Field(default=None, gt=0)
    strategy: str | None = Field(default=None, max_length=100)
    psychology: str | None = Field(default=None, max_length=200)
    mistake: str | None = Field(default=None, max_length=200)
    tags: list[str] = Field(default_factory=list)
    notes: str | None = Field(default=None, max_length=2000)
    time_frame: str | None = Field(default=None, max_length=20)
    broker_id: str | None = None
    broker_trade_id: str | None = Field(default=None, max_length=128)

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        text = value.strip().upper()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str]) -> list[str]:
        return _clean_tags(value) or []

    @field_validator("entry_timestamp")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)


class TradeExit(BaseModel):
    exit_price: float = Field(gt=0)
    exit_quantity: int | None = Field(default=None, gt=0)
    exit_timestamp: datetime | None = None
    order_type: OrderType = OrderType.MARKET
    brokerage: float | None = Field(default=None, ge=0)
    taxes: Taxes | None = None

    model_config = {"extra": "forbid"}

    @field_validator("exit_timestamp")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)


class TradeUpdate(BaseModel):
    """Economic edit of an open trade."""

    entry_price: float | None = Field(default=None, gt=0)
    quantity: int | None = Field(default=None, gt=0)
    brokerage: float | None = Field(default=None, ge=0)
    taxes: Taxes | None = None
    entry_timestamp: datetime | None = None
    stop_loss: float | None = Field(default=None, gt=0)
    target: float | None = Field(default=None, gt=0)
    strategy: str | None = Field(default=None, max_length=100)
    psychology: str | None = Field(default=None, max_length=200)
    mistake: str | None = Field(default=None, max_length=200)
    tags: list[str] | None = None
    notes: str | None = Field(default=None, max_length=2000)
    time_frame: str | None = Field(default=None, max_length=20)

    model_config = {"extra": "forbid"}

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str] | None) -> list[str] | None:
        return _clean_tags(value)

    @field_validator("entry_timestamp")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)

    @model_validator(mode="after")
    def _required_stay_required(self):
        _reject_explicit_null(self, ("entry_price", "quantity", "entry_timestamp"))
        return self


class TradeCorrection(BaseModel):
    """After-the-fact correction of a partial or closed trade.

    Only these fields may change once a trade has an exit leg; the lifecycle
    state itself is never touched by a correction.
    """

    entry_timestamp: datetime | None = None
    exit_timestamp: datetime | None = None
    entry_price: float | None = Field(default=None, gt=0)
    exit_price: float | None = Field(default=None, gt=0)
    quantity: int | None = Field(default=None, gt=0)
    brokerage: float | None = Field(default=None, ge=0)
    exit_brokerage: float | None = Field(default=None, ge=0)
    stop_loss: float | None = Field(default=None, gt=0)
    target: float | None = Field(default=None, gt=0)
    strategy: str | None = Field(default=None, max_length=100)
    psychology: str | None = Field(default=None, max_length=200)
    mistake: str | None = Field(default=None, max_length=200)
    tags: list[str] | None = None
    notes: str | None = Field(default=None, max_length=2000)
    time_frame: str | None = Field(default=None, max_length=20)

    model_config = {"extra": "forbid"}

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str] | None) -> list[str] | None:
        return _clean_tags(value)

    @field_validator("entry_timestamp", "exit_timestamp")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)

    @model_validator(mode="after")
    def _required_stay_required(self):
        _reject_explicit_null(
            self,
            ("entry_timestamp", "exit_timestamp", "entry_price", "exit_price", "quantity"),
        )
        return self


class TradeAnnotation(BaseModel):
    """Edits still allowed on a cancelled trade."""

    notes: str | None = Field(default=None, max_length=2000)
    tags: list[str] | None = None

    model_config = {"extra": "forbid"}

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str] | None) -> list[str] | None:
        return _clean_tags(value)


class TradeQuery(BaseModel):
    status: list[TradeStatus] | None = None
    symbol: list[str] | None = None
    exchange: list[Exchange] | None = None
    segment: list[Segment] | None = None
    trade_type: list[TradeType] | None = None
    position: Position | None = None
    strategy: str | None = None
    tags: list[str] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    exit_date: date | None = None
    min_pnl: float | None = None
    max_pnl: float | None = None
    search: str | None = Field(default=None, max_length=100)
    page: int = Field(default=1, ge=1)
    limit: int | None = Field(default=None, ge=1)
    sort_by: str = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"

    @field_validator("date_from", "date_to")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)

    @field_validator("symbol")
    @classmethod
    def _upper_symbols(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [s.strip().upper() for s in value if s.strip()]

    @field_validator("sort_by")
    @classmethod
    def _validate_sort(cls, value: str) -> str:
        if value not in SORTABLE_FIELDS:
            allowed = ", ".join(SORTABLE_FIELDS)
            raise ValueError(f"must be one of: {allowed}")
        return value


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

class TradeRead(BaseModel):
    id: int
    user_id: str
    broker_id: str | None = None
    broker_trade_id: str | None = None
    symbol: str
    exchange: str
    segment: str
    instrument_type: str
    trade_type: str
    position: str
    entry: TradeLeg
    exit: TradeLeg | None = None
    status: TradeStatus
    pnl: PnL
    stop_loss: float | None = None
    target: float | None = None
    risk_reward_ratio: float | None = None
    strategy: str | None = None
    psychology: str | None = None
    mistake: str | None = None
    tags: list[str] = Field(default_factory=list)
    notes: str | None = None
    time_frame: str | None = None
    holding_period: int | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)

    @classmethod
    def from_model(cls, trade) -> "TradeRead":
        return cls(
            id=trade.id,
            user_id=trade.user_id,
            broker_id=trade.broker_id,
            broker_trade_id=trade.broker_trade_id,
            symbol=trade.symbol,
            exchange=trade.exchange,
            segment=trade.segment,
            instrument_type=trade.instrument_type,
            trade_type=trade.trade_type,
            position=trade.position,
            entry=trade.entry_leg(),
            exit=trade.exit_leg(),
            status=trade.status,
            pnl=trade.pnl(),
            stop_loss=trade.stop_loss,
            target=trade.target,
            risk_reward_ratio=trade.risk_reward_ratio,
            strategy=trade.strategy,
            psychology=trade.psychology,
            mistake=trade.mistake,
            tags=list(trade.tags or []),
            notes=trade.notes,
            time_frame=trade.time_frame,
            holding_period=trade.holding_period,
            created_at=trade.created_at,
            updated_at=trade.updated_at,
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


class TradePage(BaseModel):
    data: list[TradeRead]
    pagination: Pagination


class BulkError(BaseModel):
    index: int
    reason: str
    broker_trade_id: str | None = None


class BulkResult(BaseModel):
    created: int = 0
    skipped: int = 0
    errors: list[BulkError] = Field(default_factory=list)


class BulkCreateRequest(BaseModel):
    trades: list[dict]
    skip_duplicates: bool = True
