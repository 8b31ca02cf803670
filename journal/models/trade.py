"""Trade model: one journaled trade with its entry/exit legs and derived P&L."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, UniqueConstraint
from sqlmodel import SQLModel, Field, Column

from journal.schemas.trade import PnL, Taxes, TradeLeg


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Trade(SQLModel, table=True):
    __tablename__ = "trade"
    __table_args__ = (
        UniqueConstraint("user_id", "broker_trade_id", name="uq_trade_user_broker_trade"),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    broker_id: str | None = None
    broker_trade_id: str | None = Field(default=None, index=True)

    # Instrument
    symbol: str = Field(index=True)  # upper-cased, e.g. "NIFTY 22000"
    exchange: str = "NSE"
    segment: str = "equity"
    instrument_type: str = "stock"
    trade_type: str  # "intraday", "delivery", "swing"
    position: str  # "long" or "short"

    # Entry leg
    entry_price: float
    entry_quantity: int
    entry_timestamp: datetime = Field(default_factory=_utcnow, index=True)
    entry_order_type: str = "market"
    entry_brokerage: float | None = None  # None = derive from rate table
    entry_taxes: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    # Exit leg, all-or-nothing
    exit_price: float | None = None
    exit_quantity: int | None = None
    exit_timestamp: datetime | None = None
    exit_order_type: str | None = None
    exit_brokerage: float | None = None
    exit_taxes: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    status: str = Field(default="open", index=True)  # "open", "partial", "closed", "cancelled"

    # Derived P&L
    pnl_gross: float = 0.0
    pnl_net: float = 0.0
    pnl_charges: float = 0.0
    pnl_brokerage: float = 0.0
    pnl_taxes: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    pnl_percentage_gain: float = 0.0
    pnl_is_profit: bool = False

    # Risk management
    stop_loss: float | None = None
    target: float | None = None
    risk_reward_ratio: float | None = None

    # Annotations
    strategy: str | None = Field(default=None, max_length=100)
    psychology: str | None = Field(default=None, max_length=200)
    mistake: str | None = Field(default=None, max_length=200)
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    notes: str | None = Field(default=None, max_length=2000)
    time_frame: str | None = Field(default=None, max_length=20)

    holding_period: int | None = None  # minutes

    # Soft delete
    is_deleted: bool = Field(default=False, index=True)
    deleted_at: datetime | None = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def entry_leg(self) -> TradeLeg:
        return TradeLeg(
            price=self.entry_price,
            quantity=self.entry_quantity,
            timestamp=self.entry_timestamp,
            order_type=self.entry_order_type,
            brokerage=self.entry_brokerage,
            taxes=Taxes(**self.entry_taxes) if self.entry_taxes else None,
        )

    def exit_leg(self) -> TradeLeg | None:
        if self.exit_price is None:
            return None
        return TradeLeg(
            price=self.exit_price,
            quantity=self.exit_quantity,
            timestamp=self.exit_timestamp,
            order_type=self.exit_order_type or "market",
            brokerage=self.exit_brokerage,
            taxes=Taxes(**self.exit_taxes) if self.exit_taxes else None,
        )

    def pnl(self) -> PnL:
        return PnL(
            gross=self.pnl_gross,
            net=self.pnl_net,
            charges=self.pnl_charges,
            brokerage=self.pnl_brokerage,
            taxes=Taxes(**(self.pnl_taxes or {})),
            percentage_gain=self.pnl_percentage_gain,
            is_profit=self.pnl_is_profit,
        )


def leg_columns(prefix: str, leg: TradeLeg | None) -> dict[str, Any]:
    """Flatten a leg into ``{prefix}_*`` column values (all None when leg is None)."""
    if leg is None:
        return {
            f"{prefix}_price": None,
            f"{prefix}_quantity": None,
            f"{prefix}_timestamp": None,
            f"{prefix}_order_type": None,
            f"{prefix}_brokerage": None,
            f"{prefix}_taxes": None,
        }
    return {
        f"{prefix}_price": leg.price,
        f"{prefix}_quantity": leg.quantity,
        f"{prefix}_timestamp": leg.timestamp,
        f"{prefix}_order_type": leg.order_type.value,
        f"{prefix}_brokerage": leg.brokerage,
        f"{prefix}_taxes": leg.taxes.model_dump() if leg.taxes else None,
    }


def pnl_columns(pnl: PnL) -> dict[str, Any]:
    return {
        "pnl_gross": pnl.gross,
        "pnl_net": pnl.net,
        "pnl_charges": pnl.charges,
        "pnl_brokerage": pnl.brokerage,
        "pnl_taxes": pnl.taxes.model_dump(),
        "pnl_percentage_gain": pnl.percentage_gain,
        "pnl_is_profit": pnl.is_profit,
    }
