"""Aggregate analytics over a user's trades.

Trades are loaded from the store and aggregated in pandas. Only closed trades
count towards win/loss statistics, and every aggregate uses net P&L.
"""

import logging
import math
import re
from datetime import datetime, time, timedelta, timezone
from typing import Sequence

import numpy as np
import pandas as pd

from journal.errors import InvalidInputError
from journal.models.trade import Trade
from journal.schemas.analytics import (
    BreakdownItem,
    DailyPnL,
    DashboardSummary,
    DateRange,
    GroupStat,
    MistakeStat,
    PerformanceMetrics,
    PeriodStat,
    StrategyStat,
    TradeSummary,
    TrendPoint,
)
from journal.schemas.trade import to_utc
from journal.services import risk_metrics
from journal.services.cache import CacheLayer
from journal.services.pnl import round_money
from journal.services.trade_store import TradeStore
from journal.utils.constants import (
    BREAKDOWN_DIMENSIONS,
    BREAKDOWN_LABELS,
    GROUP_BY_FIELDS,
    NO_STRATEGY_LABEL,
    TradeStatus,
)

logger = logging.getLogger(__name__)

# "NIFTY 22000" -> "NIFTY", "BANK NIFTY 45000" -> "BANK NIFTY"
STRIKE_SUFFIX = re.compile(r"^([A-Z\s]+?)\s+\d+$", re.IGNORECASE)

FRAME_COLUMNS = [
    "id",
    "symbol",
    "exchange",
    "segment",
    "trade_type",
    "position",
    "strategy",
    "mistake",
    "status",
    "pnl_net",
    "pnl_charges",
    "holding_period",
    "entry_timestamp",
    "exit_timestamp",
]

CLOSED = [TradeStatus.CLOSED.value]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def normalize_symbol(symbol: str) -> str:
    """Strip a trailing strike so option variants roll up to their underlying."""
    match = STRIKE_SUFFIX.match(symbol)
    return match.group(1).strip() if match else symbol


def profit_factor(total_win: float, total_loss: float) -> float:
    """Winning P&L over absolute losing P&L; inf with wins and no losses, 0 with neither."""
    if total_loss != 0:
        return total_win / abs(total_loss)
    if total_win > 0:
        return math.inf
    return 0.0


def trades_frame(trades: Sequence[Trade]) -> pd.DataFrame:
    """One row per trade with the columns analytics works on."""
    if not trades:
        return pd.DataFrame(columns=FRAME_COLUMNS)
    df = pd.DataFrame([{col: getattr(t, col) for col in FRAME_COLUMNS} for t in trades])
    df["pnl_net"] = pd.to_numeric(df["pnl_net"], errors="coerce").fillna(0.0)
    df["pnl_charges"] = pd.to_numeric(df["pnl_charges"], errors="coerce").fillna(0.0)
    df["holding_period"] = pd.to_numeric(df["holding_period"], errors="coerce")
    # Stores without tz support hand back naive UTC values
    df["exit_timestamp"] = pd.to_datetime(df["exit_timestamp"], utc=True)
    return df


def _mean(series: pd.Series) -> float:
    values = series.dropna()
    return float(values.mean()) if len(values) else 0.0


def _label(value) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return NO_STRATEGY_LABEL
    text = str(value).strip()
    return text or NO_STRATEGY_LABEL


def _win_rate(pnl: pd.Series) -> float:
    wins = int((pnl > 0).sum())
    decided = wins + int((pnl < 0).sum())
    return round_money(wins / decided * 100) if decided else 0.0


def month_label(ts: pd.Series) -> pd.Series:
    return ts.dt.strftime("%Y-%m")


def iso_week_label(ts: pd.Series) -> pd.Series:
    iso = ts.dt.isocalendar()
    return iso["year"].astype(str) + "-W" + iso["week"].astype(str).str.zfill(2)


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class AnalyticsAggregator:
    def __init__(
        self,
        store: TradeStore,
        cache: CacheLayer,
        risk_free_rate: float = 0.0,
        periods_per_year: int = 252,
    ):
        self.store = store
        self.cache = cache
        self.risk_free_rate = risk_free_rate
        self.periods_per_year = periods_per_year

    def _closed_by_exit(self, user_id: str, date_range: DateRange | None) -> pd.DataFrame:
        rng = date_range or DateRange()
        trades = self.store.fetch(user_id, statuses=CLOSED, exit_from=rng.start, exit_to=rng.end)
        return trades_frame(trades)

    # Summary ----------------------------------------------------------

    def get_trade_summary(self, user_id: str, date_range: DateRange | None = None) -> TradeSummary:
        rng = date_range or DateRange()
        key = self.cache.summary_key(user_id, rng.cache_key())
        cached = self.cache.get_model(key, TradeSummary)
        if cached is not None:
            return cached

        trades = self.store.fetch(user_id, entry_from=rng.start, entry_to=rng.end)
        summary = self.summarize(trades_frame(trades))
        self.cache.set_model(key, summary, self.cache.summary_ttl)
        return summary

    @staticmethod
    def summarize(df: pd.DataFrame) -> TradeSummary:
        status_counts = df["status"].value_counts()
        closed = df[df["status"] == TradeStatus.CLOSED.value]
        pnl = closed["pnl_net"]
        wins = pnl[pnl > 0]
        losses = pnl[pnl < 0]

        decided = len(wins) + len(losses)
        total_win = float(wins.sum())
        total_loss = float(losses.sum())

        return TradeSummary(
            total_trades=len(df),
            open_trades=int(status_counts.get(TradeStatus.OPEN.value, 0)),
            partial_trades=int(status_counts.get(TradeStatus.PARTIAL.value, 0)),
            closed_trades=len(closed),
            cancelled_trades=int(status_counts.get(TradeStatus.CANCELLED.value, 0)),
            winning_trades=len(wins),
            losing_trades=len(losses),
            break_even_trades=int((pnl == 0).sum()),
            win_rate=round_money(len(wins) / decided * 100) if decided else 0.0,
            total_pnl=round_money(float(pnl.sum())),
            avg_pnl=round_money(_mean(pnl)),
            total_win=round_money(total_win),
            total_loss=round_money(total_loss),
            avg_win=round_money(total_win / len(wins)) if len(wins) else 0.0,
            avg_loss=round_money(total_loss / len(losses)) if len(losses) else 0.0,
            profit_factor=round_money(profit_factor(total_win, total_loss)),
            best_trade=round_money(float(pnl.max())) if len(pnl) else 0.0,
            worst_trade=round_money(float(pnl.min())) if len(pnl) else 0.0,
            total_charges=round_money(float(closed["pnl_charges"].sum())),
            avg_holding_period=round_money(_mean(closed["holding_period"])),
        )

    # Groupings --------------------------------------------------------

    def get_trade_statistics(
        self,
        user_id: str,
        group_by: str,
        date_range: DateRange | None = None,
    ) -> list[GroupStat]:
        column = GROUP_BY_FIELDS.get(group_by)
        if column is None:
            raise InvalidInputError(
                f"Unsupported group_by '{group_by}'",
                {"allowed": sorted(set(GROUP_BY_FIELDS.values()))},
            )

        rng = date_range or DateRange()
        df = trades_frame(
            self.store.fetch(user_id, statuses=CLOSED, entry_from=rng.start, entry_to=rng.end)
        )
        if df.empty:
            return []

        if column == "symbol":
            df["key"] = df["symbol"].map(normalize_symbol)
        elif column == "strategy":
            df["key"] = df["strategy"].map(_label)
        else:
            df["key"] = df[column].astype(str)

        stats = []
        for key, group in df.groupby("key"):
            pnl = group["pnl_net"]
            wins = int((pnl > 0).sum())
            losses = int((pnl < 0).sum())
            stats.append(GroupStat(
                key=str(key),
                total_trades=len(group),
                total_pnl=round_money(float(pnl.sum())),
                avg_pnl=round_money(float(pnl.mean())),
                winning_trades=wins,
                losing_trades=losses,
                max_profit=round_money(float(pnl.max())),
                max_loss=round_money(float(pnl.min())),
                avg_holding_period=round_money(_mean(group["holding_period"])),
                win_rate=_win_rate(pnl),
            ))
        stats.sort(key=lambda s: s.total_pnl, reverse=True)
        return stats

    def get_strategy_analytics(self, user_id: str, date_range: DateRange | None = None) -> list[StrategyStat]:
        df = self._closed_by_exit(user_id, date_range)
        if df.empty:
            return []
        df["key"] = df["strategy"].map(_label)

        stats = []
        for key, group in df.groupby("key"):
            pnl = group["pnl_net"]
            wins = int((pnl > 0).sum())
            stats.append(StrategyStat(
                strategy=str(key),
                total_trades=len(group),
                total_pnl=round_money(float(pnl.sum())),
                total_profit=round_money(float(pnl[pnl > 0].sum())),
                total_loss=round_money(float(pnl[pnl < 0].sum())),
                avg_pnl=round_money(float(pnl.mean())),
                winning_trades=wins,
                losing_trades=int((pnl < 0).sum()),
                win_rate=round_money(wins / len(group) * 100),
            ))
        stats.sort(key=lambda s: s.total_pnl, reverse=True)
        return stats

    def get_mistake_analytics(self, user_id: str, date_range: DateRange | None = None) -> list[MistakeStat]:
        df = self._closed_by_exit(user_id, date_range)
        if df.empty:
            return []
        df["key"] = df["mistake"].fillna("").astype(str).str.strip()
        df = df[df["key"] != ""]
        if df.empty:
            return []

        grouped = df.groupby("key")["pnl_net"].agg(["count", "sum", "mean"])
        stats = [
            MistakeStat(
                mistake=str(key),
                count=int(row["count"]),
                total_impact=round_money(float(row["sum"])),
                avg_impact=round_money(float(row["mean"])),
            )
            for key, row in grouped.iterrows()
        ]
        stats.sort(key=lambda s: s.count, reverse=True)
        return stats

    # Time series ------------------------------------------------------

    def _daily_frame(self, user_id: str, date_range: DateRange | None) -> pd.DataFrame:
        df = self._closed_by_exit(user_id, date_range)
        if df.empty:
            return pd.DataFrame(columns=["pnl", "trades", "winning_trades", "losing_trades"])
        df["day"] = df["exit_timestamp"].dt.date
        daily = df.groupby("day").agg(
            pnl=("pnl_net", "sum"),
            trades=("id", "count"),
            winning_trades=("pnl_net", lambda s: int((s > 0).sum())),
            losing_trades=("pnl_net", lambda s: int((s < 0).sum())),
        )
        return daily.sort_index()

    def get_daily_pnl(self, user_id: str, date_range: DateRange | None = None) -> list[DailyPnL]:
        daily = self._daily_frame(user_id, date_range)
        return [
            DailyPnL(
                day=day,
                pnl=round_money(float(row["pnl"])),
                trades=int(row["trades"]),
                winning_trades=int(row["winning_trades"]),
                losing_trades=int(row["losing_trades"]),
            )
            for day, row in daily.iterrows()
        ]

    def get_performance_metrics(
        self,
        user_id: str,
        date_range: DateRange | None = None,
    ) -> PerformanceMetrics:
        closed = self._closed_by_exit(user_id, date_range)
        if closed.empty:
            return PerformanceMetrics()

        closed["day"] = closed["exit_timestamp"].dt.date
        daily = closed.groupby("day")["pnl_net"].sum().sort_index()
        values = daily.to_numpy(dtype=float)
        days = list(daily.index)

        drawdown = risk_metrics.max_drawdown(values)
        streaks = risk_metrics.streaks(values)
        total = float(values.sum())
        mean = float(np.mean(values))

        pnl = closed["pnl_net"]
        wins = pnl[pnl > 0]
        losses = pnl[pnl < 0]
        decided = len(wins) + len(losses)
        win_rate = len(wins) / decided if decided else 0.0
        avg_win = float(wins.mean()) if len(wins) else 0.0
        avg_loss = float(abs(losses.mean())) if len(losses) else 0.0

        max_dd = drawdown.max_drawdown
        return PerformanceMetrics(
            trading_days=len(values),
            sharpe_ratio=round_money(risk_metrics.sharpe_ratio(
                values, self.risk_free_rate, self.periods_per_year
            )),
            sortino_ratio=round_money(risk_metrics.sortino_ratio(
                values, self.risk_free_rate, self.periods_per_year
            )),
            max_drawdown=round_money(max_dd),
            max_drawdown_date=days[drawdown.index] if drawdown.index is not None else None,
            recovery_factor=round_money(total / max_dd) if max_dd > 0 else 0.0,
            calmar_ratio=round_money(mean * self.periods_per_year / max_dd) if max_dd > 0 else 0.0,
            var_95=round_money(risk_metrics.value_at_risk(values, 0.95)),
            var_99=round_money(risk_metrics.value_at_risk(values, 0.99)),
            expectancy=round_money(win_rate * avg_win - (1 - win_rate) * avg_loss),
            average_rrr=round_money(avg_win / avg_loss) if avg_loss > 0 else 0.0,
            consistency=round_money(float((values > 0).sum()) / len(values) * 100),
            current_win_streak=streaks.current_win,
            current_loss_streak=streaks.current_loss,
            max_win_streak=streaks.max_win,
            max_loss_streak=streaks.max_loss,
        )

    # Breakdowns and trends --------------------------------------------

    def get_pnl_breakdown(
        self,
        user_id: str,
        dimension: str,
        date_range: DateRange | None = None,
    ) -> list[BreakdownItem]:
        """Net P&L and trade count per position, weekday, segment or trade type.

        Every known label is listed, with zeros where there were no trades.
        """
        column = BREAKDOWN_DIMENSIONS.get(dimension)
        if column is None:
            raise InvalidInputError(
                f"Unsupported breakdown dimension '{dimension}'",
                {"allowed": sorted(set(BREAKDOWN_DIMENSIONS.values()))},
            )
        labels = list(BREAKDOWN_LABELS[column])

        df = self._closed_by_exit(user_id, date_range)
        if df.empty:
            return [BreakdownItem(label=label, pnl=0.0, trades=0) for label in labels]

        if column == "day_of_week":
            df["key"] = df["exit_timestamp"].dt.day_name()
        else:
            df["key"] = df[column].astype(str)

        grouped = df.groupby("key")["pnl_net"].agg(["sum", "count"])
        order = labels + sorted(k for k in grouped.index if k not in labels)
        grouped = grouped.reindex(order, fill_value=0)
        return [
            BreakdownItem(label=str(key), pnl=round_money(float(row["sum"])), trades=int(row["count"]))
            for key, row in grouped.iterrows()
        ]

    def get_monthly_trend(self, user_id: str, months: int = 12) -> list[TrendPoint]:
        return self._trend(user_id, month_label, months)

    def get_weekly_trend(self, user_id: str, weeks: int = 12) -> list[TrendPoint]:
        return self._trend(user_id, iso_week_label, weeks)

    def _trend(self, user_id: str, label, periods: int) -> list[TrendPoint]:
        """The latest ``periods`` periods with closed trades, oldest first."""
        if periods < 1:
            raise InvalidInputError("Number of periods must be at least 1", {"periods": periods})

        df = self._closed_by_exit(user_id, None)
        if df.empty:
            return []
        df["period"] = label(df["exit_timestamp"])
        grouped = (
            df.groupby("period")
            .agg(
                pnl=("pnl_net", "sum"),
                trades=("id", "count"),
                winning_trades=("pnl_net", lambda s: int((s > 0).sum())),
                losing_trades=("pnl_net", lambda s: int((s < 0).sum())),
            )
            .sort_index()
            .tail(periods)
        )
        return [
            TrendPoint(
                period=str(period),
                pnl=round_money(float(row["pnl"])),
                trades=int(row["trades"]),
                winning_trades=int(row["winning_trades"]),
                losing_trades=int(row["losing_trades"]),
            )
            for period, row in grouped.iterrows()
        ]

    def get_dashboard_summary(self, user_id: str, now: datetime | None = None) -> DashboardSummary:
        """Today, this ISO week and this month, by exit time in UTC."""
        now = to_utc(now) or datetime.now(timezone.utc)
        day_start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
        week_start = day_start - timedelta(days=day_start.weekday())
        month_start = day_start.replace(day=1)

        df = self._closed_by_exit(user_id, DateRange(start=min(week_start, month_start), end=now))
        return DashboardSummary(
            as_of=now,
            today=self._period_stat(df, day_start),
            this_week=self._period_stat(df, week_start),
            this_month=self._period_stat(df, month_start),
        )

    @staticmethod
    def _period_stat(df: pd.DataFrame, start: datetime) -> PeriodStat:
        if df.empty:
            return PeriodStat()
        period = df[df["exit_timestamp"] >= start]
        if period.empty:
            return PeriodStat()
        pnl = period["pnl_net"]
        trading_days = int(period["exit_timestamp"].dt.date.nunique())
        total = float(pnl.sum())
        return PeriodStat(
            trades=len(period),
            pnl=round_money(total),
            win_rate=_win_rate(pnl),
            trading_days=trading_days,
            avg_daily_pnl=round_money(total / trading_days),
        )
