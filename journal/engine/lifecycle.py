"""Trade lifecycle: create, update, exit, cancel and delete.

State machine::

    open --exit(qty < entry)--> partial --exit(qty == entry)--> closed
    open/partial --cancel--> cancelled

closed and cancelled are terminal. Partial and closed trades still accept a
limited correction set; cancelled trades only accept notes and tags.

Every change to a financial field goes through ``recompute_and_persist`` so P&L,
risk/reward and holding period are always derived from the stored legs.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from journal.errors import (
    InvalidInputError,
    InvalidTradeStateError,
    NotFoundError,
    TradeAlreadyClosedError,
)
from journal.models.trade import Trade, leg_columns, pnl_columns
from journal.schemas.trade import (
    Pagination,
    TradeAnnotation,
    TradeCorrection,
    TradeCreate,
    TradeExit,
    TradeLeg,
    TradePage,
    TradeQuery,
    TradeRead,
    TradeUpdate,
)
from journal.services.cache import CacheLayer
from journal.services.pnl import BROKERAGE_RATES, compute_pnl, risk_reward_ratio
from journal.services.trade_store import TradeStore
from journal.utils.constants import ACTIVE_STATUSES, TradeStatus

logger = logging.getLogger(__name__)

# Patch schema accepted for each status
PATCH_SCHEMAS = {
    TradeStatus.OPEN.value: TradeUpdate,
    TradeStatus.PARTIAL.value: TradeCorrection,
    TradeStatus.CLOSED.value: TradeCorrection,
    TradeStatus.CANCELLED.value: TradeAnnotation,
}

# Patch field -> Trade column, where they differ
ENTRY_FIELD_COLUMNS = {
    "quantity": "entry_quantity",
    "brokerage": "entry_brokerage",
    "taxes": "entry_taxes",
}

# Columns whose change requires P&L to be derived again
FINANCIAL_COLUMNS = {
    "entry_price",
    "entry_quantity",
    "entry_timestamp",
    "entry_brokerage",
    "entry_taxes",
    "exit_price",
    "exit_quantity",
    "exit_timestamp",
    "exit_brokerage",
    "exit_taxes",
    "stop_loss",
    "target",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_broker(broker_id: str | None, default_profile: str) -> str:
    """Brokerage profile for a trade: its broker when known, else the default."""
    if broker_id and broker_id.lower() in BROKERAGE_RATES:
        return broker_id.lower()
    return default_profile


def holding_minutes(entry: TradeLeg, exit: TradeLeg | None) -> int | None:
    if exit is None:
        return None
    return round((exit.timestamp - entry.timestamp).total_seconds() / 60)


def build_trade(user_id: str, data: TradeCreate, brokerage_profile: str = "default") -> Trade:
    """New open trade from validated input, with P&L seeded from the entry leg."""
    entry = TradeLeg(
        price=data.entry_price,
        quantity=data.quantity,
        timestamp=data.entry_timestamp or _utcnow(),
        order_type=data.order_type,
        brokerage=data.brokerage,
        taxes=data.taxes,
    )
    pnl = compute_pnl(
        entry,
        None,
        data.position.value,
        data.segment.value,
        data.trade_type.value,
        data.exchange.value,
        resolve_broker(data.broker_id, brokerage_profile),
    )
    return Trade(
        user_id=user_id,
        broker_id=data.broker_id,
        broker_trade_id=data.broker_trade_id,
        symbol=data.symbol,
        exchange=data.exchange.value,
        segment=data.segment.value,
        instrument_type=data.instrument_type.value,
        trade_type=data.trade_type.value,
        position=data.position.value,
        status=TradeStatus.OPEN.value,
        stop_loss=data.stop_loss,
        target=data.target,
        risk_reward_ratio=risk_reward_ratio(
            data.entry_price, data.stop_loss, data.target, data.position.value
        ),
        strategy=data.strategy,
        psychology=data.psychology,
        mistake=data.mistake,
        tags=data.tags,
        notes=data.notes,
        time_frame=data.time_frame,
        **leg_columns("entry", entry),
        **pnl_columns(pnl),
    )


class TradeLifecycleManager:
    def __init__(
        self,
        store: TradeStore,
        cache: CacheLayer,
        brokerage_profile: str = "default",
        default_page_size: int = 20,
        max_page_size: int = 100,
    ):
        self.store = store
        self.cache = cache
        self.brokerage_profile = brokerage_profile
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load(self, user_id: str, trade_id: int) -> Trade:
        trade = self.store.get(user_id, trade_id)
        if trade is None:
            raise NotFoundError("Trade", trade_id)
        return trade

    def get(self, user_id: str, trade_id: int) -> TradeRead:
        key = self.cache.trade_key(user_id, trade_id)
        cached = self.cache.get_model(key, TradeRead)
        if cached is not None:
            return cached

        read = TradeRead.from_model(self._load(user_id, trade_id))
        self.cache.set_model(key, read, self.cache.trade_ttl)
        return read

    def list_trades(self, user_id: str, query: TradeQuery) -> TradePage:
        limit = min(query.limit or self.default_page_size, self.max_page_size)
        offset = (query.page - 1) * limit
        rows, total = self.store.find(user_id, query, limit=limit, offset=offset)
        total_pages = math.ceil(total / limit) if total else 0
        return TradePage(
            data=[TradeRead.from_model(t) for t in rows],
            pagination=Pagination(
                page=query.page,
                limit=limit,
                total=total,
                total_pages=total_pages,
                has_more=query.page < total_pages,
            ),
        )

    def open_trades(self, user_id: str) -> list[TradeRead]:
        return [TradeRead.from_model(t) for t in self.store.open_trades(user_id)]

    def unique_symbols(self, user_id: str) -> list[str]:
        key = self.cache.symbols_key(user_id)
        cached = self.cache.get_list(key)
        if cached is not None:
            return cached
        symbols = self.store.distinct_symbols(user_id)
        self.cache.set_list(key, symbols, self.cache.symbols_ttl)
        return symbols

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(self, user_id: str, data: TradeCreate) -> TradeRead:
        trade = self.store.insert(build_trade(user_id, data, self.brokerage_profile))
        self.cache.invalidate_user(user_id)
        logger.info(f"Trade {trade.id} created for user {user_id}: {trade.position} {trade.symbol}")
        return TradeRead.from_model(trade)

    def exit(self, user_id: str, trade_id: int, data: TradeExit) -> TradeRead:
        trade = self._load(user_id, trade_id)
        if trade.status == TradeStatus.CLOSED.value:
            raise TradeAlreadyClosedError(trade_id)
        if trade.status not in ACTIVE_STATUSES:
            raise InvalidTradeStateError(trade.status, "open or partial")

        quantity = data.exit_quantity or trade.entry_quantity
        if quantity > trade.entry_quantity:
            raise InvalidInputError(
                "Exit quantity cannot exceed entry quantity",
                {"exit_quantity": quantity, "entry_quantity": trade.entry_quantity},
            )
        status = TradeStatus.PARTIAL if quantity < trade.entry_quantity else TradeStatus.CLOSED

        exit_leg = TradeLeg(
            price=data.exit_price,
            quantity=quantity,
            timestamp=data.exit_timestamp or _utcnow(),
            order_type=data.order_type,
            brokerage=data.brokerage,
            taxes=data.taxes,
        )
        changes = {**leg_columns("exit", exit_leg), "status": status.value}
        updated = self.recompute_and_persist(trade, changes)
        logger.info(
            f"Trade {trade_id} exited for user {user_id}: {status.value}, "
            f"net {updated.pnl_net}"
        )
        return TradeRead.from_model(updated)

    def cancel(self, user_id: str, trade_id: int) -> TradeRead:
        trade = self._load(user_id, trade_id)
        if trade.status not in ACTIVE_STATUSES:
            raise InvalidTradeStateError(trade.status, "open or partial")

        updated = self.store.update_fields(
            user_id, trade_id, {"status": TradeStatus.CANCELLED.value, "updated_at": _utcnow()}
        )
        if updated is None:
            raise NotFoundError("Trade", trade_id)
        self.cache.invalidate_user(user_id, trade_id)
        logger.info(f"Trade {trade_id} cancelled for user {user_id}")
        return TradeRead.from_model(updated)

    def update(self, user_id: str, trade_id: int, patch: dict[str, Any]) -> TradeRead:
        """Apply a patch validated against the schema allowed for the trade's status."""
        trade = self._load(user_id, trade_id)
        schema = PATCH_SCHEMAS[trade.status]
        try:
            parsed = schema.model_validate(patch)
        except ValidationError as e:
            raise InvalidInputError.from_validation_error(
                e, f"Invalid update for {trade.status} trade"
            ) from e

        fields = parsed.model_dump(exclude_unset=True)
        if not fields:
            return TradeRead.from_model(trade)

        changes = self._columns_for(trade, fields)
        if FINANCIAL_COLUMNS.intersection(changes):
            updated = self.recompute_and_persist(trade, changes)
        else:
            updated = self.store.update_fields(user_id, trade_id, {**changes, "updated_at": _utcnow()})
            if updated is None:
                raise NotFoundError("Trade", trade_id)
            self.cache.invalidate_user(user_id, trade_id)

        logger.info(f"Trade {trade_id} updated for user {user_id}: {sorted(fields)}")
        return TradeRead.from_model(updated)

    def delete(self, user_id: str, trade_id: int):
        if not self.store.soft_delete(user_id, trade_id):
            raise NotFoundError("Trade", trade_id)
        self.cache.invalidate_user(user_id, trade_id)
        logger.info(f"Trade {trade_id} deleted for user {user_id}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _columns_for(self, trade: Trade, fields: dict[str, Any]) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        for name, value in fields.items():
            if name == "quantity" and trade.status != TradeStatus.OPEN.value:
                changes.update(self._corrected_quantity(trade, value))
            else:
                changes[ENTRY_FIELD_COLUMNS.get(name, name)] = value
        return changes

    @staticmethod
    def _corrected_quantity(trade: Trade, quantity: int) -> dict[str, int]:
        if trade.status == TradeStatus.CLOSED.value:
            return {"entry_quantity": quantity, "exit_quantity": quantity}
        # Partial: the exit leg stays, so the entry must still exceed it
        if quantity <= (trade.exit_quantity or 0):
            raise InvalidInputError(
                "Quantity of a partially exited trade must exceed the exit quantity",
                {"quantity": quantity, "exit_quantity": trade.exit_quantity},
            )
        return {"entry_quantity": quantity}

    def recompute_and_persist(self, trade: Trade, changes: dict[str, Any]) -> Trade:
        """Derive P&L for ``trade`` with ``changes`` applied and store both in one update.

        This is the only write path for financial fields.
        """
        working = Trade(**{**trade.model_dump(), **changes})
        entry = working.entry_leg()
        exit = working.exit_leg()

        if exit is not None:
            if exit.quantity > entry.quantity:
                raise InvalidInputError(
                    "Exit quantity cannot exceed entry quantity",
                    {"exit_quantity": exit.quantity, "entry_quantity": entry.quantity},
                )
            if exit.timestamp < entry.timestamp:
                raise InvalidInputError(
                    "Exit timestamp cannot be before entry timestamp",
                    {
                        "entry_timestamp": entry.timestamp.isoformat(),
                        "exit_timestamp": exit.timestamp.isoformat(),
                    },
                )

        pnl = compute_pnl(
            entry,
            exit,
            working.position,
            working.segment,
            working.trade_type,
            working.exchange,
            resolve_broker(working.broker_id, self.brokerage_profile),
        )
        values = {
            **changes,
            **pnl_columns(pnl),
            "risk_reward_ratio": risk_reward_ratio(
                entry.price, working.stop_loss, working.target, working.position
            ),
            "holding_period": holding_minutes(entry, exit),
            "updated_at": _utcnow(),
        }

        updated = self.store.update_fields(trade.user_id, trade.id, values)
        if updated is None:
            raise NotFoundError("Trade", trade.id)
        self.cache.invalidate_user(trade.user_id, trade.id)
        return updated
