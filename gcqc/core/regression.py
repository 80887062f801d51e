"""Simple (one predictor) ordinary least squares regression."""
import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np
from scipy.stats import t as students_t

from ..services.errors import RegressionError


@dataclass(frozen=True)
class Coefficient:
    estimate: float
    standard_error: float
    df: int

    def t_statistic(self) -> float:
        if self.standard_error == 0.0:
            # Perfect fit
            return math.copysign(math.inf, self.estimate) if self.estimate != 0.0 else math.nan
        return self.estimate / self.standard_error

    def p(self) -> float:
        """Two-sided p-value of the t-test for a zero coefficient."""
        t = self.t_statistic()
        return float(2.0 * students_t.cdf(-abs(t), self.df))


@dataclass(frozen=True)
class SimpleRegression:
    intercept: Coefficient
    slope: Coefficient
    residual_ss: float
    residual_df: int


def simple_regression(obs: Sequence[Tuple[float, float]]) -> SimpleRegression:
    """
    Fits y = b0 + b1 * x to the (x, y) observations.

    Raises:
        RegressionError: with fewer than 3 observations, or when the design is
            singular (n * sum(x^2) - sum(x)^2 <= 0).
    """
    if len(obs) < 3:
        raise RegressionError("Cannot obtain meaningful regression estimates with <3 observations")

    data = np.asarray(obs, dtype=float)
    x = data[:, 0]
    y = data[:, 1]
    n = float(len(data))

    sum_x = x.sum()
    sum_x2 = np.dot(x, x)
    sum_y = y.sum()
    sum_xy = np.dot(x, y)

    # Determinant of X'X
    det = n * sum_x2 - sum_x ** 2
    if not det > 0.0:
        raise RegressionError("Numerical error during regression calculations")

    b0 = (sum_x2 * sum_y - sum_x * sum_xy) / det
    b1 = (n * sum_xy - sum_x * sum_y) / det

    residual_ss = float(np.sum((y - b0 - b1 * x) ** 2))
    df = len(data) - 2
    res_var = residual_ss / df

    intercept = Coefficient(
        estimate=float(b0),
        standard_error=float(math.sqrt(sum_x2 * res_var / det)),
        df=df,
    )
    slope = Coefficient(
        estimate=float(b1),
        standard_error=float(math.sqrt(n * res_var / det)),
        df=df,
    )
    return SimpleRegression(intercept=intercept, slope=slope, residual_ss=residual_ss, residual_df=df)
