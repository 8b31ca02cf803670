"""Pydantic schemas for analytics responses."""

from datetime import date, datetime

from pydantic import BaseModel, field_validator, model_validator

from journal.schemas.trade import to_utc


class DateRange(BaseModel):
    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value)

    @model_validator(mode="after")
    def _ordered(self):
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must not be after end")
        return self

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None

    def cache_key(self) -> str:
        """Stable key for the summary cache; ``all`` when unbounded."""
        if self.is_open:
            return "all"
        start = self.start.isoformat() if self.start else "-"
        end = self.end.isoformat() if self.end else "-"
        return f"{start}..{end}"


class TradeSummary(BaseModel):
    total_trades: int = 0
    open_trades: int = 0
    partial_trades: int = 0
    closed_trades: int = 0
    cancelled_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    break_even_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    avg_pnl: float = 0.0
    total_win: float = 0.0
    total_loss: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0  # inf when there are wins and no losses
    best_trade: float = 0.0
    worst_trade: float = 0.0
    total_charges: float = 0.0
    avg_holding_period: float = 0.0  # minutes


class GroupStat(BaseModel):
    key: str
    total_trades: int
    total_pnl: float
    avg_pnl: float
    winning_trades: int
    losing_trades: int
    max_profit: float
    max_loss: float
    avg_holding_period: float
    win_rate: float


class StrategyStat(BaseModel):
    strategy: str
    total_trades: int
    total_pnl: float
    total_profit: float
    total_loss: float
    avg_pnl: float
    winning_trades: int
    losing_trades: int
    win_rate: float


class MistakeStat(BaseModel):
    mistake: str
    count: int
    total_impact: float
    avg_impact: float


class DailyPnL(BaseModel):
    day: date
    pnl: float
    trades: int
    winning_trades: int
    losing_trades: int


class PerformanceMetrics(BaseModel):
    trading_days: int = 0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_date: date | None = None
    recovery_factor: float = 0.0
    calmar_ratio: float = 0.0
    var_95: float = 0.0
    var_99: float = 0.0
    expectancy: float = 0.0
    average_rrr: float = 0.0
    consistency: float = 0.0  # % of profitable days
    current_win_streak: int = 0
    current_loss_streak: int = 0
    max_win_streak: int = 0
    max_loss_streak: int = 0


class BreakdownItem(BaseModel):
    label: str
    pnl: float
    trades: int


class TrendPoint(BaseModel):
    period: str  # "2024-03" for months, "2024-W09" for ISO weeks
    pnl: float
    trades: int
    winning_trades: int
    losing_trades: int


class PeriodStat(BaseModel):
    trades: int = 0
    pnl: float = 0.0
    win_rate: float = 0.0
    trading_days: int = 0
    avg_daily_pnl: float = 0.0


class DashboardSummary(BaseModel):
    """Closed-trade P&L for the current UTC day, ISO week and calendar month."""

    as_of: datetime
    today: PeriodStat
    this_week: PeriodStat
    this_month: PeriodStat
