"""Analytics API: summary, groupings and risk metrics."""

import math
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from journal.api.deps import get_current_user_id, get_trade_service
from journal.errors import InvalidInputError
from journal.schemas.analytics import (
    BreakdownItem,
    DailyPnL,
    DashboardSummary,
    DateRange,
    GroupStat,
    MistakeStat,
    PerformanceMetrics,
    StrategyStat,
    TrendPoint,
)
from journal.services.trade_service import TradeService

router = APIRouter(prefix="/api/analytics", tags=["analytics"], dependencies=[Depends(get_current_user_id)])


def date_range(date_from: datetime | None = None, date_to: datetime | None = None) -> DateRange:
    try:
        return DateRange(start=date_from, end=date_to)
    except ValidationError as e:
        raise InvalidInputError.from_validation_error(e, "Invalid date range") from e


@router.get("/summary")
def trade_summary(
    rng: DateRange = Depends(date_range),
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    summary = service.get_trade_summary(user_id, rng).model_dump()
    # JSON has no inf; profit factor with no losses is reported as null
    for key, value in summary.items():
        if isinstance(value, float) and (math.isinf(value) or math.isnan(value)):
            summary[key] = None
    return summary


@router.get("/statistics", response_model=list[GroupStat])
def trade_statistics(
    group_by: str = "symbol",
    rng: DateRange = Depends(date_range),
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_trade_statistics(user_id, group_by, rng)


@router.get("/strategies", response_model=list[StrategyStat])
def strategy_analytics(
    rng: DateRange = Depends(date_range),
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_strategy_analytics(user_id, rng)


@router.get("/mistakes", response_model=list[MistakeStat])
def mistake_analytics(
    rng: DateRange = Depends(date_range),
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_mistake_analytics(user_id, rng)


@router.get("/daily", response_model=list[DailyPnL])
def daily_pnl(
    rng: DateRange = Depends(date_range),
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_daily_pnl(user_id, rng)


@router.get("/performance", response_model=PerformanceMetrics)
def performance_metrics(
    rng: DateRange = Depends(date_range),
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_performance_metrics(user_id, rng)


@router.get("/breakdown", response_model=list[BreakdownItem])
def pnl_breakdown(
    dimension: str = "position",
    rng: DateRange = Depends(date_range),
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_pnl_breakdown(user_id, dimension, rng)


@router.get("/trends/monthly", response_model=list[TrendPoint])
def monthly_trend(
    months: int = Query(default=12, ge=1, le=120),
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_monthly_trend(user_id, months)


@router.get("/trends/weekly", response_model=list[TrendPoint])
def weekly_trend(
    weeks: int = Query(default=12, ge=1, le=520),
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_weekly_trend(user_id, weeks)


@router.get("/dashboard", response_model=DashboardSummary)
def dashboard_summary(
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_dashboard_summary(user_id)
