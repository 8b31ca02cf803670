"""Function-call surface of the journal: one object wiring store, cache and engines."""

import logging
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy.engine import Engine

from journal.config import Settings
from journal.engine.bulk_import import BulkImporter
from journal.engine.lifecycle import TradeLifecycleManager
from journal.schemas.analytics import (
    BreakdownItem,
    DailyPnL,
    DashboardSummary,
    DateRange,
    GroupStat,
    MistakeStat,
    PerformanceMetrics,
    StrategyStat,
    TradeSummary,
    TrendPoint,
)
from journal.schemas.trade import (
    BulkResult,
    TradeCreate,
    TradeExit,
    TradePage,
    TradeQuery,
    TradeRead,
)
from journal.services.analytics import AnalyticsAggregator
from journal.services.cache import CacheLayer, build_cache
from journal.services.trade_store import TradeStore

logger = logging.getLogger(__name__)


class TradeService:
    def __init__(
        self,
        store: TradeStore,
        cache: CacheLayer,
        brokerage_profile: str = "default",
        default_page_size: int = 20,
        max_page_size: int = 100,
        risk_free_rate: float = 0.0,
        periods_per_year: int = 252,
    ):
        self.store = store
        self.cache = cache
        self.lifecycle = TradeLifecycleManager(
            store, cache, brokerage_profile, default_page_size, max_page_size
        )
        self.importer = BulkImporter(store, cache, brokerage_profile)
        self.analytics = AnalyticsAggregator(store, cache, risk_free_rate, periods_per_year)

    @classmethod
    def from_settings(cls, engine: Engine, settings: Settings, cache: CacheLayer | None = None) -> "TradeService":
        return cls(
            TradeStore(engine),
            cache or build_cache(settings),
            brokerage_profile=settings.brokerage_profile,
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
            risk_free_rate=settings.risk_free_rate,
            periods_per_year=settings.trading_days_per_year,
        )

    # Trades

    def create_trade(self, user_id: str, data: TradeCreate) -> TradeRead:
        return self.lifecycle.create(user_id, data)

    def get_trade(self, user_id: str, trade_id: int) -> TradeRead:
        return self.lifecycle.get(user_id, trade_id)

    def list_trades(self, user_id: str, query: TradeQuery) -> TradePage:
        return self.lifecycle.list_trades(user_id, query)

    def update_trade(self, user_id: str, trade_id: int, patch: dict[str, Any]) -> TradeRead:
        return self.lifecycle.update(user_id, trade_id, patch)

    def exit_trade(self, user_id: str, trade_id: int, data: TradeExit) -> TradeRead:
        return self.lifecycle.exit(user_id, trade_id, data)

    def cancel_trade(self, user_id: str, trade_id: int) -> TradeRead:
        return self.lifecycle.cancel(user_id, trade_id)

    def delete_trade(self, user_id: str, trade_id: int):
        self.lifecycle.delete(user_id, trade_id)

    def bulk_create_trades(
        self,
        user_id: str,
        records: Sequence[dict[str, Any] | TradeCreate],
        skip_duplicates: bool = True,
    ) -> BulkResult:
        return self.importer.bulk_create(user_id, records, skip_duplicates)

    def get_open_trades(self, user_id: str) -> list[TradeRead]:
        return self.lifecycle.open_trades(user_id)

    def get_unique_symbols(self, user_id: str) -> list[str]:
        return self.lifecycle.unique_symbols(user_id)

    # Analytics

    def get_trade_summary(self, user_id: str, date_range: DateRange | None = None) -> TradeSummary:
        return self.analytics.get_trade_summary(user_id, date_range)

    def get_trade_statistics(
        self,
        user_id: str,
        group_by: str,
        date_range: DateRange | None = None,
    ) -> list[GroupStat]:
        return self.analytics.get_trade_statistics(user_id, group_by, date_range)

    def get_strategy_analytics(self, user_id: str, date_range: DateRange | None = None) -> list[StrategyStat]:
        return self.analytics.get_strategy_analytics(user_id, date_range)

    def get_mistake_analytics(self, user_id: str, date_range: DateRange | None = None) -> list[MistakeStat]:
        return self.analytics.get_mistake_analytics(user_id, date_range)

    def get_daily_pnl(self, user_id: str, date_range: DateRange | None = None) -> list[DailyPnL]:
        return self.analytics.get_daily_pnl(user_id, date_range)

    def get_performance_metrics(self, user_id: str, date_range: DateRange | None = None) -> PerformanceMetrics:
        return self.analytics.get_performance_metrics(user_id, date_range)

    def get_pnl_breakdown(
        self,
        user_id: str,
        dimension: str,
        date_range: DateRange | None = None,
    ) -> list[BreakdownItem]:
        return self.analytics.get_pnl_breakdown(user_id, dimension, date_range)

    def get_monthly_trend(self, user_id: str, months: int = 12) -> list[TrendPoint]:
        return self.analytics.get_monthly_trend(user_id, months)

    def get_weekly_trend(self, user_id: str, weeks: int = 12) -> list[TrendPoint]:
        return self.analytics.get_weekly_trend(user_id, weeks)

    def get_dashboard_summary(self, user_id: str, now: datetime | None = None) -> DashboardSummary:
        return self.analytics.get_dashboard_summary(user_id, now)
