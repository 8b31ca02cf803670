"""Bulk import of externally sourced trades (broker sync, file import)."""

import logging
from typing import Any, Sequence

from pydantic import ValidationError

from journal.errors import InvalidInputError
from journal.models.trade import Trade
from journal.schemas.trade import BulkError, BulkResult, TradeCreate
from journal.services.cache import CacheLayer
from journal.services.trade_store import TradeStore
from journal.engine.lifecycle import build_trade

logger = logging.getLogger(__name__)


def _reason(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
        for err in exc.errors()
    )


class BulkImporter:
    def __init__(self, store: TradeStore, cache: CacheLayer, brokerage_profile: str = "default"):
        self.store = store
        self.cache = cache
        self.brokerage_profile = brokerage_profile

    def bulk_create(
        self,
        user_id: str,
        records: Sequence[dict[str, Any] | TradeCreate],
        skip_duplicates: bool = True,
    ) -> BulkResult:
        """Validate, deduplicate and insert ``records``; bad rows never abort the batch."""
        result = BulkResult()
        try:
            valid = self._validate(records, result)

            existing: set[str] = set()
            if skip_duplicates:
                existing = self.store.existing_broker_trade_ids(
                    user_id, [data.broker_trade_id for _, data in valid if data.broker_trade_id]
                )

            rows: list[tuple[int, Trade]] = []
            seen: set[str] = set()
            for index, data in valid:
                broker_trade_id = data.broker_trade_id
                if skip_duplicates and broker_trade_id:
                    if broker_trade_id in existing or broker_trade_id in seen:
                        result.skipped += 1
                        continue
                    seen.add(broker_trade_id)
                rows.append((index, build_trade(user_id, data, self.brokerage_profile)))

            created, failures = self.store.insert_many(rows)
            result.created = len(created)
            by_index = dict(rows)
            for index, reason in failures:
                result.errors.append(
                    BulkError(index=index, reason=reason, broker_trade_id=by_index[index].broker_trade_id)
                )
        finally:
            self.cache.invalidate_user(user_id)

        result.errors.sort(key=lambda e: e.index)
        if result.errors:
            logger.warning(
                f"Bulk import for user {user_id}: {len(result.errors)} of {len(records)} records failed"
            )
        logger.info(
            f"Bulk import for user {user_id}: created={result.created} skipped={result.skipped}"
        )
        return result

    @staticmethod
    def _validate(records, result: BulkResult) -> list[tuple[int, TradeCreate]]:
        valid = []
        for index, record in enumerate(records):
            if isinstance(record, TradeCreate):
                valid.append((index, record))
                continue
            if not isinstance(record, dict):
                result.errors.append(BulkError(index=index, reason="record must be an object"))
                continue
            try:
                valid.append((index, TradeCreate.model_validate(record)))
            except ValidationError as e:
                raw_id = record.get("broker_trade_id")
                result.errors.append(BulkError(
                    index=index,
                    reason=_reason(e),
                    broker_trade_id=raw_id if isinstance(raw_id, str) else None,
                ))
        return valid


def parse_records(payload: Any) -> list:
    """Accept either a list of records or ``{"trades": [...]}``."""
    if isinstance(payload, dict):
        payload = payload.get("trades")
    if not isinstance(payload, list):
        raise InvalidInputError("Expected a list of trades or an object with a 'trades' list")
    return payload
