"""Tests for bulk import: dedup, per-row validation and cache invalidation."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from journal.engine.bulk_import import BulkImporter, parse_records
from journal.errors import InvalidInputError
from journal.schemas.trade import TradeQuery

from factories import T0, trade_input

USER = "user-1"


def record(broker_trade_id=None, **overrides) -> dict:
    data = {
        "symbol": "INFY",
        "trade_type": "intraday",
        "position": "long",
        "entry_price": 1500.0,
        "quantity": 2,
        "entry_timestamp": T0.isoformat(),
        "broker_trade_id": broker_trade_id,
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# 1. Deduplication
# ---------------------------------------------------------------------------

class TestDeduplication:
    def test_existing_ids_skipped(self, service):
        service.create_trade(USER, trade_input(broker_trade_id="B2"))
        service.create_trade(USER, trade_input(broker_trade_id="B4"))

        result = service.bulk_create_trades(USER, [record(f"B{i}") for i in range(1, 6)])

        assert result.created == 3
        assert result.skipped == 2
        assert result.errors == []
        ids = {t.broker_trade_id for t in service.list_trades(USER, TradeQuery(limit=100)).data}
        assert ids == {"B1", "B2", "B3", "B4", "B5"}

    def test_duplicates_within_batch_skipped(self, service):
        result = service.bulk_create_trades(USER, [record("X"), record("X"), record(None), record(None)])
        assert result.created == 3
        assert result.skipped == 1

    def test_soft_deleted_id_still_counts_as_existing(self, service):
        trade = service.create_trade(USER, trade_input(broker_trade_id="GONE"))
        service.delete_trade(USER, trade.id)
        result = service.bulk_create_trades(USER, [record("GONE")])
        assert result.created == 0
        assert result.skipped == 1

    def test_ids_are_scoped_per_user(self, service):
        service.create_trade("user-2", trade_input(broker_trade_id="B1"))
        result = service.bulk_create_trades(USER, [record("B1")])
        assert result.created == 1

    def test_without_skip_duplicate_fails_at_its_index(self, service):
        service.create_trade(USER, trade_input(broker_trade_id="B2"))
        result = service.bulk_create_trades(
            USER, [record("B1"), record("B2"), record("B3")], skip_duplicates=False
        )
        assert result.created == 2
        assert result.skipped == 0
        assert len(result.errors) == 1
        assert result.errors[0].index == 1
        assert result.errors[0].broker_trade_id == "B2"
        assert "duplicate" in result.errors[0].reason


# ---------------------------------------------------------------------------
# 2. Validation
# ---------------------------------------------------------------------------

class TestValidation:
    def test_invalid_rows_reported_by_index(self, service):
        records = [record("A"), record("B", quantity=0), "not a record", record("C", position="sideways")]
        result = service.bulk_create_trades(USER, records)

        assert result.created == 1
        assert [e.index for e in result.errors] == [1, 2, 3]
        assert "quantity" in result.errors[0].reason
        assert result.errors[0].broker_trade_id == "B"
        assert result.errors[1].reason == "record must be an object"
        assert "position" in result.errors[2].reason

    def test_imported_trades_are_open_with_entry_charges(self, service):
        service.bulk_create_trades(USER, [record("A")])
        trade = service.get_open_trades(USER)[0]
        assert trade.status == "open"
        assert trade.pnl.gross == 0.0
        assert trade.pnl.charges > 0
        assert trade.pnl.net == -trade.pnl.charges

    def test_empty_batch(self, service):
        result = service.bulk_create_trades(USER, [])
        assert result.created == 0
        assert result.errors == []


# ---------------------------------------------------------------------------
# 3. Cache and failure handling
# ---------------------------------------------------------------------------

def test_import_invalidates_cached_symbols(service):
    service.create_trade(USER, trade_input(symbol="TCS"))
    assert service.get_unique_symbols(USER) == ["TCS"]
    service.bulk_create_trades(USER, [record("A")])
    assert service.get_unique_symbols(USER) == ["INFY", "TCS"]


def test_cache_invalidated_even_when_store_fails():
    store = MagicMock()
    store.existing_broker_trade_ids.return_value = set()
    store.insert_many.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))
    cache = MagicMock()
    importer = BulkImporter(store, cache)

    with pytest.raises(OperationalError):
        importer.bulk_create(USER, [record("A")])
    cache.invalidate_user.assert_called_once_with(USER)


def test_parse_records_accepts_list_or_wrapper():
    assert parse_records([{"a": 1}]) == [{"a": 1}]
    assert parse_records({"trades": [{"a": 1}]}) == [{"a": 1}]
    with pytest.raises(InvalidInputError):
        parse_records({"rows": []})
