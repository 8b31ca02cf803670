"""Shared enums and defaults for trades."""

from enum import Enum


class TradeStatus(str, Enum):
    OPEN = "open"
    PARTIAL = "partial"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class Position(str, Enum):
    LONG = "long"
    SHORT = "short"


class Segment(str, Enum):
    EQUITY = "equity"
    FUTURES = "futures"
    OPTIONS = "options"
    COMMODITY = "commodity"


class TradeType(str, Enum):
    INTRADAY = "intraday"
    DELIVERY = "delivery"
    SWING = "swing"


class Exchange(str, Enum):
    NSE = "NSE"
    BSE = "BSE"
    MCX = "MCX"
    NFO = "NFO"


class InstrumentType(str, Enum):
    STOCK = "stock"
    FUTURE = "future"
    CALL = "call"
    PUT = "put"
    COMMODITY = "commodity"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP_LOSS = "stop_loss"
    TRAILING_STOP = "trailing_stop"


# Statuses from which a trade may still be exited or cancelled
ACTIVE_STATUSES = (TradeStatus.OPEN.value, TradeStatus.PARTIAL.value)

# Dimensions accepted by trade statistics grouping, mapped to Trade columns
GROUP_BY_FIELDS: dict[str, str] = {
    "symbol": "symbol",
    "exchange": "exchange",
    "segment": "segment",
    "trade_type": "trade_type",
    "tradeType": "trade_type",
    "strategy": "strategy",
}

# Columns trades may be sorted on when listing
SORTABLE_FIELDS = (
    "created_at",
    "updated_at",
    "entry_timestamp",
    "exit_timestamp",
    "symbol",
    "pnl_net",
)

NO_STRATEGY_LABEL = "No Strategy"

# Dimensions accepted by the P&L breakdown; day_of_week is derived from the exit day
BREAKDOWN_DIMENSIONS: dict[str, str] = {
    "position": "position",
    "day_of_week": "day_of_week",
    "dayOfWeek": "day_of_week",
    "segment": "segment",
    "trade_type": "trade_type",
    "tradeType": "trade_type",
}

WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

# Labels always present in a breakdown, in display order
BREAKDOWN_LABELS: dict[str, tuple[str, ...]] = {
    "position": tuple(p.value for p in Position),
    "day_of_week": WEEKDAYS,
    "segment": tuple(s.value for s in Segment),
    "trade_type": tuple(t.value for t in TradeType),
}
