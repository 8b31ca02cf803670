"""Tests for the P&L calculator and risk metrics."""

import math

import numpy as np
import pytest

from journal.schemas.trade import Taxes, TradeLeg
from journal.services import risk_metrics
from journal.services.pnl import (
    breakeven_price,
    calculate_brokerage,
    compute_pnl,
    leg_charges,
    leg_side,
    position_size,
    risk_reward_ratio,
    round_money,
    unrealized_pnl,
)

from factories import T0


def leg(price, quantity, brokerage=None, taxes=None):
    return TradeLeg(price=price, quantity=quantity, timestamp=T0, brokerage=brokerage, taxes=taxes)


# ---------------------------------------------------------------------------
# 1. Rounding
# ---------------------------------------------------------------------------

class TestRoundMoney:
    def test_half_rounds_away_from_zero(self):
        assert round_money(2.675) == 2.68
        assert round_money(-2.675) == -2.68
        assert round_money(1.005) == 1.01

    def test_no_negative_zero(self):
        result = round_money(-0.001)
        assert result == 0.0
        assert math.copysign(1, result) == 1

    def test_non_finite_passthrough(self):
        assert round_money(math.inf) == math.inf
        assert math.isnan(round_money(math.nan))


# ---------------------------------------------------------------------------
# 2. compute_pnl
# ---------------------------------------------------------------------------

class TestComputePnl:
    def test_long_with_explicit_brokerage(self):
        pnl = compute_pnl(
            leg(100, 10, brokerage=10), leg(120, 10, brokerage=10), "long", "equity", "intraday"
        )
        assert pnl.gross == 200.00
        assert pnl.charges == 20.00
        assert pnl.net == 180.00
        assert pnl.percentage_gain == 18.00
        assert pnl.is_profit is True

    def test_short_with_zero_charges(self):
        pnl = compute_pnl(
            leg(100, 5, brokerage=0), leg(80, 5, brokerage=0), "short", "equity", "intraday"
        )
        assert pnl.gross == 100.00
        assert pnl.net == 100.00
        assert pnl.charges == 0.0

    def test_short_loss_is_not_profit(self):
        pnl = compute_pnl(
            leg(100, 5, brokerage=0), leg(110, 5, brokerage=0), "short", "equity", "intraday"
        )
        assert pnl.gross == -50.0
        assert pnl.is_profit is False

    def test_open_trade_carries_entry_charges_only(self):
        pnl = compute_pnl(leg(100, 10, brokerage=15), None, "long", "equity", "intraday")
        assert pnl.gross == 0.0
        assert pnl.charges == 15.0
        assert pnl.net == -15.0
        assert pnl.percentage_gain == 0.0
        assert pnl.is_profit is False

    def test_explicit_taxes_summed_with_brokerage(self):
        taxes = Taxes(stt=1.5, stamp_duty=0.25, gst=0.5)
        pnl = compute_pnl(
            leg(100, 10, brokerage=5, taxes=taxes), leg(110, 10, brokerage=5), "long", "equity", "intraday"
        )
        assert pnl.charges == 12.25
        assert pnl.brokerage == 10.0
        assert pnl.taxes.stt == 1.5
        assert pnl.net == 87.75

    def test_taxes_without_brokerage_count_brokerage_as_zero(self):
        charges = leg_charges(leg(100, 10, taxes=Taxes(stt=2.0)), "buy", "equity", "intraday")
        assert charges.brokerage == 0.0
        assert charges.total == 2.0

    def test_partial_exit_uses_entry_quantity_for_gross(self):
        pnl = compute_pnl(
            leg(100, 10, brokerage=0), leg(110, 4, brokerage=0), "long", "equity", "intraday"
        )
        assert pnl.gross == 100.0

    @pytest.mark.parametrize("entry_price,exit_price,qty,position,trade_type", [
        (101.37, 99.81, 7, "long", "intraday"),
        (2450.5, 2471.25, 13, "short", "delivery"),
        (18.05, 18.95, 1500, "long", "swing"),
    ])
    def test_net_equals_gross_minus_charges(self, entry_price, exit_price, qty, position, trade_type):
        pnl = compute_pnl(leg(entry_price, qty), leg(exit_price, qty), position, "equity", trade_type)
        assert pnl.net == round_money(pnl.gross - pnl.charges)

    def test_recompute_is_idempotent(self):
        args = (leg(523.4, 17), leg(531.1, 17), "long", "futures", "intraday", "NSE", "zerodha")
        assert compute_pnl(*args) == compute_pnl(*args)


# ---------------------------------------------------------------------------
# 3. Rate-table charges
# ---------------------------------------------------------------------------

class TestRateTable:
    def test_leg_side_follows_position(self):
        assert leg_side("entry", "long") == "buy"
        assert leg_side("exit", "long") == "sell"
        assert leg_side("entry", "short") == "sell"
        assert leg_side("exit", "short") == "buy"

    def test_delivery_buy_leg_breakdown(self):
        charges = leg_charges(leg(200, 10), "buy", "equity", "delivery")
        assert charges.brokerage == 2.0
        assert charges.stt == 2.0
        assert charges.stamp_duty == 0.3
        assert charges.gst == 0.36
        assert charges.sebi_turnover == 0.0
        assert charges.exchange_txn == 0.07
        assert charges.total == 4.73

    def test_intraday_stt_only_on_sell_and_stamp_only_on_buy(self):
        buy = leg_charges(leg(200, 10), "buy", "equity", "intraday")
        sell = leg_charges(leg(200, 10), "sell", "equity", "intraday")
        assert buy.stt == 0.0
        assert sell.stt == 0.5
        assert buy.stamp_duty == 0.3
        assert sell.stamp_duty == 0.0
        assert buy.total == 1.08
        assert sell.total == 1.28

    def test_intraday_brokerage_capped(self):
        assert calculate_brokerage(100_000, "equity", "intraday") == 20.0

    def test_options_flat_brokerage(self):
        assert calculate_brokerage(500, "options", "intraday") == 20.0

    def test_zerodha_delivery_is_free(self):
        assert calculate_brokerage(50_000, "equity", "delivery", "zerodha") == 0.0

    def test_unknown_broker_uses_default_profile(self):
        assert calculate_brokerage(1000, "equity", "delivery", "acme") == 1.0

    def test_commodity_has_no_stt(self):
        charges = leg_charges(leg(5000, 2), "sell", "commodity", "intraday")
        assert charges.stt == 0.0

    def test_bse_exchange_rate(self):
        nse = leg_charges(leg(1000, 100), "buy", "equity", "intraday", "NSE")
        bse = leg_charges(leg(1000, 100), "buy", "equity", "intraday", "BSE")
        assert nse.exchange_txn == 3.45
        assert bse.exchange_txn == 3.75


# ---------------------------------------------------------------------------
# 4. Risk/reward and sizing helpers
# ---------------------------------------------------------------------------

class TestRiskHelpers:
    def test_risk_reward_long_and_short(self):
        assert risk_reward_ratio(100, 90, 130, "long") == 3.0
        assert risk_reward_ratio(100, 110, 80, "short") == 2.0

    def test_risk_reward_zero_when_bound_missing_or_stop_on_wrong_side(self):
        assert risk_reward_ratio(100, None, 130, "long") == 0.0
        assert risk_reward_ratio(100, 90, None, "long") == 0.0
        assert risk_reward_ratio(100, 105, 130, "long") == 0.0

    def test_breakeven(self):
        assert breakeven_price(100, 10, 20, "long") == 102.0
        assert breakeven_price(100, 10, 20, "short") == 98.0

    def test_unrealized(self):
        assert unrealized_pnl(100, 110, 5, "long") == (50.0, 10.0)
        assert unrealized_pnl(100, 110, 5, "short") == (-50.0, -10.0)

    def test_position_size(self):
        assert position_size(100_000, 1, 100, 95) == (200, 1000.0)
        assert position_size(100_000, 1, 100, 100) == (0, 1000.0)


# ---------------------------------------------------------------------------
# 5. Risk metrics
# ---------------------------------------------------------------------------

class TestRiskMetrics:
    def test_sharpe_needs_two_points_and_deviation(self):
        assert risk_metrics.sharpe_ratio([5.0]) == 0.0
        assert risk_metrics.sharpe_ratio([1.0, 1.0, 1.0]) == 0.0

    def test_sharpe_uses_population_std(self):
        assert risk_metrics.sharpe_ratio([2.0, 4.0]) == pytest.approx(3 * np.sqrt(252))

    def test_sortino_uses_negative_periods_only(self):
        assert risk_metrics.sortino_ratio([3.0, -1.0]) == pytest.approx(np.sqrt(252))
        assert risk_metrics.sortino_ratio([1.0, 2.0]) == 0.0

    def test_value_at_risk_percentile(self):
        assert risk_metrics.value_at_risk([-10, -5, 0, 5, 10], 0.95) == pytest.approx(-9.0)
        assert risk_metrics.value_at_risk([]) == 0.0

    def test_max_drawdown_from_running_peak(self):
        dd = risk_metrics.max_drawdown([100, -50, -30, 80, -120])
        assert dd.max_drawdown == 120.0
        assert dd.index == 4

    def test_max_drawdown_counts_losses_from_zero(self):
        dd = risk_metrics.max_drawdown([-10, -5])
        assert dd.max_drawdown == 15.0
        assert dd.index == 1

    def test_max_drawdown_none_when_only_gains(self):
        dd = risk_metrics.max_drawdown([10, 20])
        assert dd.max_drawdown == 0.0
        assert dd.index is None

    def test_streaks_ignore_flat_days(self):
        result = risk_metrics.streaks([1, 1, -1, 0, -1, -1])
        assert result.max_win == 2
        assert result.max_loss == 3
        assert result.current_loss == 3
        assert result.current_win == 0

    def test_no_current_streak_after_flat_day(self):
        result = risk_metrics.streaks([1, 1, 0])
        assert result.current_win == 0
        assert result.max_win == 2
