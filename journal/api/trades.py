"""Trade journal API."""

from datetime import date, datetime
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import ValidationError

from journal.api.deps import get_current_user_id, get_trade_service
from journal.errors import InvalidInputError
from journal.schemas.trade import (
    BulkCreateRequest,
    BulkResult,
    TradeCreate,
    TradeExit,
    TradePage,
    TradeQuery,
    TradeRead,
)
from journal.services.trade_service import TradeService
from journal.utils.constants import Exchange, Position, Segment, TradeStatus, TradeType

router = APIRouter(prefix="/api/trades", tags=["trades"], dependencies=[Depends(get_current_user_id)])


@router.get("", response_model=TradePage)
def list_trades(
    status_: list[TradeStatus] | None = Query(default=None, alias="status"),
    symbol: list[str] | None = Query(default=None),
    exchange: list[Exchange] | None = Query(default=None),
    segment: list[Segment] | None = Query(default=None),
    trade_type: list[TradeType] | None = Query(default=None),
    position: Position | None = None,
    strategy: str | None = None,
    tags: list[str] | None = Query(default=None),
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    exit_date: date | None = None,
    min_pnl: float | None = None,
    max_pnl: float | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int | None = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    try:
        query = TradeQuery(
            status=status_,
            symbol=symbol,
            exchange=exchange,
            segment=segment,
            trade_type=trade_type,
            position=position,
            strategy=strategy,
            tags=tags,
            date_from=date_from,
            date_to=date_to,
            exit_date=exit_date,
            min_pnl=min_pnl,
            max_pnl=max_pnl,
            search=search,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except ValidationError as e:
        raise InvalidInputError.from_validation_error(e, "Invalid trade query") from e
    return service.list_trades(user_id, query)


@router.post("", response_model=TradeRead, status_code=status.HTTP_201_CREATED)
def create_trade(
    body: TradeCreate,
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.create_trade(user_id, body)


@router.post("/bulk", response_model=BulkResult)
def bulk_create_trades(
    body: BulkCreateRequest,
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.bulk_create_trades(user_id, body.trades, body.skip_duplicates)


@router.get("/symbols", response_model=list[str])
def unique_symbols(
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_unique_symbols(user_id)


@router.get("/open", response_model=list[TradeRead])
def open_trades(
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_open_trades(user_id)


@router.get("/{trade_id}", response_model=TradeRead)
def get_trade(
    trade_id: int,
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.get_trade(user_id, trade_id)


@router.patch("/{trade_id}", response_model=TradeRead)
def update_trade(
    trade_id: int,
    patch: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    # Validated against the status-specific schema inside the lifecycle
    return service.update_trade(user_id, trade_id, patch)


@router.post("/{trade_id}/exit", response_model=TradeRead)
def exit_trade(
    trade_id: int,
    body: TradeExit,
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.exit_trade(user_id, trade_id, body)


@router.post("/{trade_id}/cancel", response_model=TradeRead)
def cancel_trade(
    trade_id: int,
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    return service.cancel_trade(user_id, trade_id)


@router.delete("/{trade_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_trade(
    trade_id: int,
    user_id: str = Depends(get_current_user_id),
    service: TradeService = Depends(get_trade_service),
):
    service.delete_trade(user_id, trade_id)
