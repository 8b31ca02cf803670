"""P&L, charge and risk/reward computation for trade legs.

All functions are pure computation with no I/O or database access. Rates follow
the Indian market (STT, stamp duty, GST, SEBI and exchange fees).
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from journal.schemas.trade import PnL, Taxes, TradeLeg


# ---------------------------------------------------------------------------
# Rate tables
# ---------------------------------------------------------------------------

TAX_RATES = {
    # Securities Transaction Tax
    "stt_delivery": 0.001,  # 0.1% on both legs
    "stt_intraday_sell": 0.00025,  # 0.025%, sell leg only
    "stt_futures_sell": 0.0001,  # 0.01%, sell leg only
    "stt_options_sell": 0.0005,  # 0.05% on premium, sell leg only
    "stamp_duty_buy": 0.00015,  # 0.015%, buy leg only
    "gst": 0.18,  # on brokerage
    "sebi_turnover": 0.000001,  # Rs 10 per crore
    "nse_equity": 0.0000345,
    "bse_equity": 0.0000375,
    "nse_futures": 0.0000190,
    "nse_options": 0.0005300,  # on premium
}

BROKERAGE_RATES: dict[str, dict[str, float | None]] = {
    "default": {
        "delivery": 0.001,
        "delivery_max": None,
        "intraday": 0.0003,
        "intraday_max": 20.0,
        "futures": 0.0003,
        "futures_max": 20.0,
        "options_flat": 20.0,
    },
    "zerodha": {
        "delivery": 0.0,
        "delivery_max": None,
        "intraday": 0.0003,
        "intraday_max": 20.0,
        "futures": 0.0003,
        "futures_max": 20.0,
        "options_flat": 20.0,
    },
    "upstox": {
        "delivery": 0.0,
        "delivery_max": None,
        "intraday": 0.0003,
        "intraday_max": 20.0,
        "futures": 0.0003,
        "futures_max": 20.0,
        "options_flat": 20.0,
    },
}


@dataclass(frozen=True)
class Charges:
    """Charge breakdown for a single leg (or the sum of both legs)."""

    brokerage: float = 0.0
    stt: float = 0.0
    stamp_duty: float = 0.0
    gst: float = 0.0
    sebi_turnover: float = 0.0
    exchange_txn: float = 0.0
    total: float = 0.0

    def taxes(self) -> Taxes:
        return Taxes(
            stt=self.stt,
            stamp_duty=self.stamp_duty,
            gst=self.gst,
            sebi_turnover=self.sebi_turnover,
            exchange_txn=self.exchange_txn,
        )

    def __add__(self, other: "Charges") -> "Charges":
        return Charges(
            brokerage=round_money(self.brokerage + other.brokerage),
            stt=round_money(self.stt + other.stt),
            stamp_duty=round_money(self.stamp_duty + other.stamp_duty),
            gst=round_money(self.gst + other.gst),
            sebi_turnover=round_money(self.sebi_turnover + other.sebi_turnover),
            exchange_txn=round_money(self.exchange_txn + other.exchange_txn),
            total=round_money(self.total + other.total),
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def round_money(value: float) -> float:
    """Round to 2 decimals, half away from zero (2.675 -> 2.68, -2.675 -> -2.68)."""
    if not math.isfinite(value):
        return value
    rounded = Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(rounded) + 0.0  # normalizes -0.0


def _direction(position: str) -> int:
    return 1 if position == "long" else -1


def leg_side(leg: str, position: str) -> str:
    """Return "buy" or "sell" for the entry/exit leg of a position."""
    opens_with_buy = position == "long"
    if leg == "entry":
        return "buy" if opens_with_buy else "sell"
    return "sell" if opens_with_buy else "buy"


def _rates(broker: str | None) -> dict[str, float | None]:
    return BROKERAGE_RATES.get((broker or "default").lower(), BROKERAGE_RATES["default"])


# ---------------------------------------------------------------------------
# Rate-table charges
# ---------------------------------------------------------------------------

def calculate_brokerage(turnover: float, segment: str, trade_type: str, broker: str | None = None) -> float:
    rates = _rates(broker)

    if segment == "options":
        return rates["options_flat"] or 0.0

    if trade_type == "delivery" and segment == "equity":
        brokerage = turnover * (rates["delivery"] or 0.0)
        cap = rates["delivery_max"]
        return min(brokerage, cap) if cap is not None else brokerage

    if segment == "futures":
        return min(turnover * rates["futures"], rates["futures_max"])

    # Intraday/swing equity and commodity
    return min(turnover * rates["intraday"], rates["intraday_max"])


def calculate_stt(turnover: float, side: str, segment: str, trade_type: str) -> float:
    if segment == "commodity":
        return 0.0
    if segment == "options":
        return turnover * TAX_RATES["stt_options_sell"] if side == "sell" else 0.0
    if segment == "futures":
        return turnover * TAX_RATES["stt_futures_sell"] if side == "sell" else 0.0
    # Equity: delivery taxes both legs, intraday/swing only the sell leg
    if trade_type == "delivery":
        return turnover * TAX_RATES["stt_delivery"]
    return turnover * TAX_RATES["stt_intraday_sell"] if side == "sell" else 0.0


def calculate_exchange_txn(turnover: float, segment: str, exchange: str = "NSE") -> float:
    if segment == "options":
        return turnover * TAX_RATES["nse_options"]
    if segment == "futures":
        return turnover * TAX_RATES["nse_futures"]
    if exchange == "BSE":
        return turnover * TAX_RATES["bse_equity"]
    return turnover * TAX_RATES["nse_equity"]


def rate_table_charges(
    turnover: float,
    side: str,
    segment: str,
    trade_type: str,
    exchange: str = "NSE",
    broker: str | None = None,
) -> Charges:
    brokerage = calculate_brokerage(turnover, segment, trade_type, broker)
    stt = calculate_stt(turnover, side, segment, trade_type)
    stamp_duty = turnover * TAX_RATES["stamp_duty_buy"] if side == "buy" else 0.0
    gst = brokerage * TAX_RATES["gst"]
    sebi = turnover * TAX_RATES["sebi_turnover"]
    exchange_txn = calculate_exchange_txn(turnover, segment, exchange)

    return Charges(
        brokerage=round_money(brokerage),
        stt=round_money(stt),
        stamp_duty=round_money(stamp_duty),
        gst=round_money(gst),
        sebi_turnover=round_money(sebi),
        exchange_txn=round_money(exchange_txn),
        total=round_money(brokerage + stt + stamp_duty + gst + sebi + exchange_txn),
    )


def leg_charges(
    leg: TradeLeg,
    side: str,
    segment: str,
    trade_type: str,
    exchange: str = "NSE",
    broker: str | None = None,
) -> Charges:
    """Charges for one leg.

    Explicit brokerage and/or taxes on the leg are taken as-is (a missing half
    counts as zero). Only a leg with neither is priced from the rate table.
    """
    if leg.brokerage is None and leg.taxes is None:
        turnover = leg.price * leg.quantity
        return rate_table_charges(turnover, side, segment, trade_type, exchange, broker)

    brokerage = leg.brokerage or 0.0
    taxes = leg.taxes or Taxes()
    return Charges(
        brokerage=round_money(brokerage),
        stt=round_money(taxes.stt),
        stamp_duty=round_money(taxes.stamp_duty),
        gst=round_money(taxes.gst),
        sebi_turnover=round_money(taxes.sebi_turnover),
        exchange_txn=round_money(taxes.exchange_txn),
        total=round_money(brokerage + taxes.total()),
    )


# ---------------------------------------------------------------------------
# P&L
# ---------------------------------------------------------------------------

def compute_pnl(
    entry: TradeLeg,
    exit: TradeLeg | None,
    position: str,
    segment: str,
    trade_type: str,
    exchange: str = "NSE",
    broker: str | None = None,
) -> PnL:
    """Gross/net P&L of a trade.

    Gross uses the *entry* quantity as the traded size, so a partial exit is
    valued as if the whole position moved to the exit price.
    """
    entry_charges = leg_charges(
        entry, leg_side("entry", position), segment, trade_type, exchange, broker
    )

    if exit is None:
        charges = entry_charges.total
        return PnL(
            gross=0.0,
            net=round_money(-charges),
            charges=charges,
            brokerage=entry_charges.brokerage,
            taxes=entry_charges.taxes(),
            percentage_gain=0.0,
            is_profit=False,
        )

    exit_charges = leg_charges(
        exit, leg_side("exit", position), segment, trade_type, exchange, broker
    )
    total = entry_charges + exit_charges

    gross = round_money(_direction(position) * (exit.price - entry.price) * entry.quantity)
    net = round_money(gross - total.total)
    investment = entry.price * entry.quantity
    percentage_gain = round_money(net / investment * 100) if investment > 0 else 0.0

    return PnL(
        gross=gross,
        net=net,
        charges=total.total,
        brokerage=total.brokerage,
        taxes=total.taxes(),
        percentage_gain=percentage_gain,
        is_profit=net > 0,
    )


def risk_reward_ratio(
    entry_price: float,
    stop_loss: float | None,
    target: float | None,
    position: str,
) -> float:
    """Reward per unit of risk; 0 when a bound is missing or the stop is on the wrong side."""
    if stop_loss is None or target is None:
        return 0.0
    if position == "long":
        risk = entry_price - stop_loss
        reward = target - entry_price
    else:
        risk = stop_loss - entry_price
        reward = entry_price - target
    if risk <= 0:
        return 0.0
    return round_money(reward / risk)


def breakeven_price(entry_price: float, quantity: int, charges: float, position: str) -> float:
    """Exit price at which net P&L is zero."""
    per_unit = charges / quantity if quantity else 0.0
    return round_money(entry_price + _direction(position) * per_unit)


def unrealized_pnl(entry_price: float, current_price: float, quantity: int, position: str) -> tuple[float, float]:
    """Mark-to-market P&L of an open position. Returns (pnl, pct)."""
    pnl = _direction(position) * (current_price - entry_price) * quantity
    investment = entry_price * quantity
    pct = pnl / investment * 100 if investment > 0 else 0.0
    return round_money(pnl), round_money(pct)


def position_size(capital: float, risk_percent: float, entry_price: float, stop_loss: float) -> tuple[int, float]:
    """Quantity that risks ``risk_percent`` of capital down to the stop. Returns (qty, risk_amount)."""
    risk_amount = capital * (risk_percent / 100.0)
    per_unit = abs(entry_price - stop_loss)
    quantity = int(risk_amount // per_unit) if per_unit > 0 else 0
    return quantity, round_money(risk_amount)
