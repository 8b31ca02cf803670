"""Table-backed trade repository.

Every method opens its own ``Session`` and only ever sees the rows of one
user. Soft-deleted rows are invisible to all reads except the duplicate
check used by bulk import.
"""

import json
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import String, cast, func, or_, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from journal.errors import InvalidInputError
from journal.models.trade import Trade
from journal.schemas.trade import TradeQuery
from journal.utils.constants import ACTIVE_STATUSES

logger = logging.getLogger(__name__)


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text matches literally (escape char ``\\``)."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class TradeStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, user_id: str, trade_id: int) -> Trade | None:
        with Session(self.engine) as session:
            stmt = select(Trade).where(
                Trade.id == trade_id,
                Trade.user_id == user_id,
                Trade.is_deleted == False,  # noqa: E712
            )
            return session.exec(stmt).first()

    def find(self, user_id: str, query: TradeQuery, limit: int, offset: int) -> tuple[list[Trade], int]:
        """Filtered, sorted page of trades plus the total matching count."""
        conditions = self._conditions(user_id, query)

        column = getattr(Trade, query.sort_by)
        order = column.asc() if query.sort_order == "asc" else column.desc()
        tiebreak = Trade.id.asc() if query.sort_order == "asc" else Trade.id.desc()

        with Session(self.engine) as session:
            total = session.exec(
                select(func.count()).select_from(Trade).where(*conditions)
            ).one()
            stmt = (
                select(Trade)
                .where(*conditions)
                .order_by(order, tiebreak)
                .offset(offset)
                .limit(limit)
            )
            return list(session.exec(stmt).all()), int(total)

    def fetch(
        self,
        user_id: str,
        *,
        statuses: Iterable[str] | None = None,
        entry_from: datetime | None = None,
        entry_to: datetime | None = None,
        exit_from: datetime | None = None,
        exit_to: datetime | None = None,
    ) -> list[Trade]:
        """All live trades of a user, optionally narrowed by status and date range."""
        stmt = select(Trade).where(Trade.user_id == user_id, Trade.is_deleted == False)  # noqa: E712
        if statuses is not None:
            stmt = stmt.where(Trade.status.in_(list(statuses)))
        if entry_from is not None:
            stmt = stmt.where(Trade.entry_timestamp >= entry_from)
        if entry_to is not None:
            stmt = stmt.where(Trade.entry_timestamp <= entry_to)
        if exit_from is not None:
            stmt = stmt.where(Trade.exit_timestamp >= exit_from)
        if exit_to is not None:
            stmt = stmt.where(Trade.exit_timestamp <= exit_to)
        stmt = stmt.order_by(Trade.entry_timestamp.asc(), Trade.id.asc())
        with Session(self.engine) as session:
            return list(session.exec(stmt).all())

    def open_trades(self, user_id: str) -> list[Trade]:
        with Session(self.engine) as session:
            stmt = (
                select(Trade)
                .where(
                    Trade.user_id == user_id,
                    Trade.is_deleted == False,  # noqa: E712
                    Trade.status.in_(ACTIVE_STATUSES),
                )
                .order_by(Trade.entry_timestamp.desc(), Trade.id.desc())
            )
            return list(session.exec(stmt).all())

    def distinct_symbols(self, user_id: str) -> list[str]:
        with Session(self.engine) as session:
            stmt = (
                select(Trade.symbol)
                .where(Trade.user_id == user_id, Trade.is_deleted == False)  # noqa: E712
                .distinct()
                .order_by(Trade.symbol)
            )
            return list(session.exec(stmt).all())

    def existing_broker_trade_ids(self, user_id: str, candidates: Iterable[str]) -> set[str]:
        """Broker trade ids already stored for the user, soft-deleted rows included."""
        ids = list({c for c in candidates if c})
        if not ids:
            return set()
        with Session(self.engine) as session:
            stmt = select(Trade.broker_trade_id).where(
                Trade.user_id == user_id,
                Trade.broker_trade_id.in_(ids),
            )
            return {row for row in session.exec(stmt).all() if row}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, trade: Trade) -> Trade:
        with Session(self.engine) as session:
            session.add(trade)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise InvalidInputError(
                    "Trade with this broker_trade_id already exists",
                    {"broker_trade_id": trade.broker_trade_id},
                ) from e
            session.refresh(trade)
            return trade

    def insert_many(self, rows: list[tuple[int, Trade]]) -> tuple[list[Trade], list[tuple[int, str]]]:
        """Insert rows independently; one failing row never blocks the others.

        ``rows`` pairs each trade with its index in the caller's batch. Returns
        the stored trades and ``(index, reason)`` for every failed row.
        """
        created: list[Trade] = []
        failures: list[tuple[int, str]] = []
        with Session(self.engine) as session:
            for index, trade in rows:
                session.add(trade)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    failures.append((index, "duplicate broker_trade_id"))
                    continue
                except SQLAlchemyError as e:
                    session.rollback()
                    logger.warning(f"Insert of batch row {index} failed: {e}")
                    failures.append((index, str(getattr(e, "orig", None) or e)))
                    continue
                session.refresh(trade)
                # keep loaded state intact across later rollbacks
                session.expunge(trade)
                created.append(trade)
        return created, failures

    def update_fields(self, user_id: str, trade_id: int, values: dict[str, Any]) -> Trade | None:
        """Apply ``values`` in one conditional UPDATE; None when no live row matched."""
        stmt = (
            update(Trade)
            .where(
                Trade.id == trade_id,
                Trade.user_id == user_id,
                Trade.is_deleted == False,  # noqa: E712
            )
            .values(**values)
        )
        with Session(self.engine) as session:
            result = session.exec(stmt)  # type: ignore[call-overload]
            session.commit()
            if result.rowcount == 0:
                return None
            return session.get(Trade, trade_id)

    def soft_delete(self, user_id: str, trade_id: int) -> bool:
        now = datetime.now(timezone.utc)
        matched = self.update_fields(
            user_id, trade_id, {"is_deleted": True, "deleted_at": now, "updated_at": now}
        )
        return matched is not None

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def _conditions(self, user_id: str, query: TradeQuery) -> list:
        conditions = [Trade.user_id == user_id, Trade.is_deleted == False]  # noqa: E712

        if query.status:
            conditions.append(Trade.status.in_([s.value for s in query.status]))
        if query.symbol:
            conditions.append(Trade.symbol.in_(query.symbol))
        if query.exchange:
            conditions.append(Trade.exchange.in_([e.value for e in query.exchange]))
        if query.segment:
            conditions.append(Trade.segment.in_([s.value for s in query.segment]))
        if query.trade_type:
            conditions.append(Trade.trade_type.in_([t.value for t in query.trade_type]))
        if query.position:
            conditions.append(Trade.position == query.position.value)
        if query.strategy:
            conditions.append(Trade.strategy == query.strategy)
        if query.tags:
            # tags is stored as JSON text with ensure_ascii, so encode the needle the same way
            conditions.append(
                or_(*[
                    cast(Trade.tags, String).like(f"%{escape_like(json.dumps(tag))}%", escape="\\")
                    for tag in query.tags
                ])
            )
        if query.date_from:
            conditions.append(Trade.entry_timestamp >= query.date_from)
        if query.date_to:
            conditions.append(Trade.entry_timestamp <= query.date_to)
        if query.exit_date:
            day_start = datetime.combine(query.exit_date, time.min, tzinfo=timezone.utc)
            conditions.append(Trade.exit_timestamp >= day_start)
            conditions.append(Trade.exit_timestamp < day_start + timedelta(days=1))
        if query.min_pnl is not None:
            conditions.append(Trade.pnl_net >= query.min_pnl)
        if query.max_pnl is not None:
            conditions.append(Trade.pnl_net <= query.max_pnl)
        if query.search:
            pattern = f"%{escape_like(query.search.strip())}%"
            conditions.append(
                or_(
                    Trade.symbol.ilike(pattern, escape="\\"),
                    Trade.strategy.ilike(pattern, escape="\\"),
                    Trade.notes.ilike(pattern, escape="\\"),
                )
            )
        return conditions
