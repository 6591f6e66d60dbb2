from collections.abc import Mapping, Sequence

import numpy as np
import pandas as pd

MIN_RETURN_OBSERVATIONS = 3


def compute_correlations(df: pd.DataFrame) -> pd.DataFrame:
    """Compute Pearson correlation matrix for numeric columns."""
    numeric_df = df.select_dtypes(include="number")
    if numeric_df.empty:
        return pd.DataFrame()
    return numeric_df.corr()


def price_returns(price_histories: Mapping[str, Sequence[float]]) -> pd.DataFrame:
    """Align price histories on their most recent points and convert to returns.

    Histories of different lengths are truncated to the shortest one so every
    column covers the same window.
    """
    usable = {symbol: list(prices) for symbol, prices in price_histories.items() if prices}
    if not usable:
        return pd.DataFrame()
    window = min(len(prices) for prices in usable.values())
    prices_df = pd.DataFrame(
        {symbol: prices[-window:] for symbol, prices in usable.items()},
        dtype="float64",
    )
    return prices_df.pct_change().dropna(how="all")


def max_correlation_with(
    symbol: str,
    price_histories: Mapping[str, Sequence[float]],
) -> float:
    """Return the highest return correlation between ``symbol`` and the others.

    Pairs without enough overlapping observations, or with a constant series,
    are ignored. Returns 0.0 when nothing can be compared.
    """
    returns = price_returns(price_histories)
    if symbol not in returns.columns or len(returns.columns) < 2:
        return 0.0
    if len(returns.index) < MIN_RETURN_OBSERVATIONS:
        return 0.0

    correlations = compute_correlations(returns)
    if correlations.empty:
        return 0.0
    others = correlations[symbol].drop(labels=[symbol])
    values = [float(v) for v in others.to_numpy() if not np.isnan(v)]
    return max(values, default=0.0)
