"""Risk and performance ratios over a daily P&L series.

Inputs are plain sequences of daily net P&L in currency units. All functions
are pure and return 0 rather than raising on degenerate input.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass
class Drawdown:
    max_drawdown: float
    index: int | None  # position in the series where the max drawdown was hit


@dataclass
class Streaks:
    current_win: int = 0
    current_loss: int = 0
    max_win: int = 0
    max_loss: int = 0


def sharpe_ratio(
    returns: Sequence[float],
    risk_free_rate: float = 0.0,
    periods_per_year: int = 252,
) -> float:
    """Annualized Sharpe ratio (population standard deviation)."""
    values = np.asarray(returns, dtype=float)
    if len(values) < 2:
        return 0.0
    excess = values - risk_free_rate / periods_per_year
    std = float(np.std(excess))
    if std == 0 or np.isnan(std):
        return 0.0
    return float(np.mean(excess) / std * np.sqrt(periods_per_year))


def sortino_ratio(
    returns: Sequence[float],
    risk_free_rate: float = 0.0,
    periods_per_year: int = 252,
) -> float:
    """Annualized Sortino ratio.

    Downside deviation is the root mean square of the negative periods only.
    """
    values = np.asarray(returns, dtype=float)
    if len(values) < 2:
        return 0.0
    excess = values - risk_free_rate / periods_per_year
    downside = excess[excess < 0]
    if len(downside) == 0:
        return 0.0
    downside_dev = float(np.sqrt(np.mean(downside ** 2)))
    if downside_dev == 0:
        return 0.0
    return float(np.mean(excess) / downside_dev * np.sqrt(periods_per_year))


def value_at_risk(returns: Sequence[float], confidence: float = 0.95) -> float:
    """Historical VaR: the (1 - confidence) percentile of the series."""
    values = np.asarray(returns, dtype=float)
    if len(values) == 0:
        return 0.0
    return float(np.percentile(values, (1 - confidence) * 100))


def max_drawdown(pnl: Sequence[float]) -> Drawdown:
    """Largest peak-to-trough fall of the cumulative P&L, starting from 0."""
    values = np.asarray(pnl, dtype=float)
    if len(values) == 0:
        return Drawdown(0.0, None)
    equity = np.cumsum(values)
    peaks = np.maximum.accumulate(np.maximum(equity, 0.0))
    drawdowns = peaks - equity
    idx = int(np.argmax(drawdowns))
    worst = float(drawdowns[idx])
    if worst <= 0:
        return Drawdown(0.0, None)
    return Drawdown(worst, idx)


def streaks(pnl: Sequence[float]) -> Streaks:
    """Consecutive winning/losing periods. Flat periods neither extend nor break a run."""
    result = Streaks()
    win_run = loss_run = 0
    last_sign = 0
    for value in pnl:
        if value > 0:
            win_run += 1
            loss_run = 0
            result.max_win = max(result.max_win, win_run)
            last_sign = 1
        elif value < 0:
            loss_run += 1
            win_run = 0
            result.max_loss = max(result.max_loss, loss_run)
            last_sign = -1
        else:
            last_sign = 0
    if last_sign > 0:
        result.current_win = win_run
    elif last_sign < 0:
        result.current_loss = loss_run
    return result
