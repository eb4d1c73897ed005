"""
Statistical Test Engine: t-test, one-way ANOVA, Pearson correlation,
chi-square of independence and a normality check.

Every test reads a single snapshot, validates its preconditions up front and
raises a ``PreconditionError`` subclass with a readable message when the data
cannot support it. p-values come from a ``PValueEstimator``.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from config.settings import (
    NORMALITY_KURTOSIS_LIMIT,
    NORMALITY_SKEW_LIMIT,
    SIGNIFICANCE_LEVEL,
    VARIANCE_RATIO_LIMIT,
)
from core.errors import (
    GroupCountError,
    InsufficientDataError,
    UnknownVariableError,
    UnsupportedTestError,
    VariableTypeError,
)
from core.significance import PValueEstimator
from core.snapshot_store import Snapshot
from core.variables import VariableDescriptor, VariableType, category_label, to_number
from utils.helpers import format_p_value

logger = logging.getLogger(__name__)

T_TEST = "independent-t-test"
ANOVA = "one-way-anova"
PEARSON = "pearson-correlation"
CHI_SQUARE = "chi-square"
NORMALITY = "normality-test"

TEST_NAMES = {
    T_TEST: "Independent Samples T-test",
    ANOVA: "One-way ANOVA",
    PEARSON: "Pearson Correlation",
    CHI_SQUARE: "Chi-square Test of Independence",
    NORMALITY: "Normality Test (Shapiro-Wilk)",
}


# ═══════════════════════════════════════════════════════
# Result types
# ═══════════════════════════════════════════════════════

@dataclass
class DiagnosticResult:
    passed: bool
    p_value: float
    test_name: str


@dataclass
class AssumptionReport:
    normality: Optional[DiagnosticResult] = None
    homogeneity: Optional[DiagnosticResult] = None
    recommendations: List[str] = field(default_factory=list)


@dataclass
class TestResult:
    """Outcome of one statistical test."""
    __test__ = False  # not a pytest class

    test_id: str
    test_name: str
    description: str
    statistic: float
    p_value: float
    significant: bool
    interpretation: str
    degrees_of_freedom: Optional[int] = None
    effect_size: Optional[float] = None
    confidence_interval: Optional[Tuple[float, float]] = None
    sample_size: Optional[int] = None
    assumptions: Optional[AssumptionReport] = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.confidence_interval is not None:
            data["confidence_interval"] = list(self.confidence_interval)
        return data


# ═══════════════════════════════════════════════════════
# Value extraction
# ═══════════════════════════════════════════════════════

def numeric_values(frame: pd.DataFrame, name: str) -> List[float]:
    return [n for n in map(to_number, frame[name]) if n is not None]


def grouped_numeric(frame: pd.DataFrame, categorical: str, numeric: str) -> Dict[str, List[float]]:
    """Numeric values per category, groups in first-seen order."""
    groups: Dict[str, List[float]] = {}
    for label, value in zip(frame[categorical], frame[numeric]):
        label, number = category_label(label), to_number(value)
        if label is None or number is None:
            continue
        groups.setdefault(label, []).append(number)
    return groups


def paired_numeric(frame: pd.DataFrame, first: str, second: str) -> Tuple[List[float], List[float]]:
    xs, ys = [], []
    for a, b in zip(frame[first], frame[second]):
        x, y = to_number(a), to_number(b)
        if x is not None and y is not None:
            xs.append(x)
            ys.append(y)
    return xs, ys


def contingency_table(frame: pd.DataFrame, first: str, second: str) -> pd.DataFrame:
    """Observed counts; rows are ``first`` categories, columns ``second``."""
    labels = pd.DataFrame({
        "a": frame[first].map(category_label),
        "b": frame[second].map(category_label),
    }).dropna()
    table = pd.crosstab(labels["a"], labels["b"])
    table.index.name, table.columns.name = first, second
    return table


# ═══════════════════════════════════════════════════════
# Descriptives and assumption checks
# ═══════════════════════════════════════════════════════

def _mean(values) -> float:
    return float(np.mean(values))


def _var(values) -> float:
    return float(np.var(values, ddof=1))


def shape_statistics(values: List[float]) -> Tuple[float, float]:
    """Bias-corrected sample skewness and excess kurtosis (NaN for constant data)."""
    series = pd.Series(values, dtype=float)
    if series.std(ddof=1) == 0:
        return float("nan"), float("nan")
    kurt = series.kurt() if len(series) >= 4 else float("nan")
    return float(series.skew()), float(kurt)


def _shape_ok(skew: float, kurt: float) -> bool:
    if math.isnan(skew):
        return False
    kurt_ok = math.isnan(kurt) or abs(kurt) < NORMALITY_KURTOSIS_LIMIT
    return abs(skew) < NORMALITY_SKEW_LIMIT and kurt_ok


def check_normality(values: List[float], estimator: PValueEstimator) -> DiagnosticResult:
    if len(values) < 3:
        return DiagnosticResult(False, 0.0, "Shapiro-Wilk (insufficient data)")
    skew, kurt = shape_statistics(values)
    passed, p = estimator.normality(values, _shape_ok(skew, kurt))
    name = "Shapiro-Wilk" if estimator.is_exact else "Shapiro-Wilk (approximated)"
    return DiagnosticResult(passed, p, name)


def check_homogeneity(groups: List[List[float]], estimator: PValueEstimator) -> DiagnosticResult:
    if len(groups) < 2 or any(len(g) < 2 for g in groups):
        return DiagnosticResult(False, 0.0, "Levene Test (insufficient data)")
    variances = [_var(g) for g in groups]
    high, low = max(variances), min(variances)
    ratio_ok = high == 0 if low == 0 else high / low < VARIANCE_RATIO_LIMIT
    passed, p = estimator.homogeneity(groups, ratio_ok)
    name = "Levene Test" if estimator.is_exact else "Levene Test (approximated)"
    return DiagnosticResult(passed, p, name)


def _group_assumptions(groups: List[List[float]], estimator, non_parametric: str, welch: str) -> AssumptionReport:
    checks = [check_normality(g, estimator) for g in groups]
    report = AssumptionReport(
        normality=DiagnosticResult(
            passed=all(c.passed for c in checks),
            p_value=min(c.p_value for c in checks),
            test_name="Shapiro-Wilk",
        ),
        homogeneity=check_homogeneity(groups, estimator),
    )
    if not report.normality.passed:
        report.recommendations.append(f"Consider using {non_parametric} (non-parametric alternative)")
    if not report.homogeneity.passed:
        report.recommendations.append(f"Consider using {welch} for unequal variances")
    return report


def _describe(values: List[float]) -> dict:
    return {"n": len(values), "mean": _mean(values), "sd": math.sqrt(_var(values)) if len(values) > 1 else 0.0}


def _label(value: float, small: float, medium: float) -> str:
    if value < small:
        return "small"
    return "medium" if value < medium else "large"


def _significance_phrase(significant: bool) -> str:
    return "There is a statistically significant" if significant else "There is no statistically significant"


# ═══════════════════════════════════════════════════════
# Tests
# ═══════════════════════════════════════════════════════

def independent_t_test(
    groups: Dict[str, List[float]],
    numeric_name: str,
    estimator: PValueEstimator,
) -> TestResult:
    """Pooled-variance t-test between exactly two groups."""
    if len(groups) != 2:
        raise GroupCountError(f"T-test requires exactly 2 groups; found {len(groups)}")
    (label1, group1), (label2, group2) = groups.items()
    if len(group1) < 2 or len(group2) < 2:
        raise InsufficientDataError("Each group must have at least 2 observations")

    n1, n2 = len(group1), len(group2)
    mean1, mean2 = _mean(group1), _mean(group2)
    var1, var2 = _var(group1), _var(group2)
    df = n1 + n2 - 2
    pooled_var = ((n1 - 1) * var1 + (n2 - 1) * var2) / df
    if pooled_var == 0:
        raise InsufficientDataError(f"'{numeric_name}' has no variance within the groups")

    standard_error = math.sqrt(pooled_var * (1 / n1 + 1 / n2))
    t_stat = (mean1 - mean2) / standard_error
    p = estimator.t_test(t_stat, df)
    cohens_d = abs(mean1 - mean2) / math.sqrt(pooled_var)
    margin = estimator.t_critical(df) * standard_error
    ci = (mean1 - mean2 - margin, mean1 - mean2 + margin)

    significant = p < SIGNIFICANCE_LEVEL
    interpretation = (
        f"{_significance_phrase(significant)} difference in {numeric_name} between "
        f"{label1} (M = {mean1:.2f}, SD = {math.sqrt(var1):.2f}) and "
        f"{label2} (M = {mean2:.2f}, SD = {math.sqrt(var2):.2f}), "
        f"t({df}) = {t_stat:.3f}, p = {format_p_value(p)}. "
        f"The effect size is {_label(cohens_d, 0.2, 0.8)} (Cohen's d = {cohens_d:.2f})."
    )
    return TestResult(
        test_id=T_TEST,
        test_name=TEST_NAMES[T_TEST],
        description=f"Comparing {numeric_name} between {label1} and {label2}",
        statistic=t_stat,
        p_value=p,
        significant=significant,
        interpretation=interpretation,
        degrees_of_freedom=df,
        effect_size=cohens_d,
        confidence_interval=ci,
        sample_size=n1 + n2,
        assumptions=_group_assumptions(
            [group1, group2], estimator, "Mann-Whitney U test", "Welch's t-test"
        ),
        details={"groups": {label1: _describe(group1), label2: _describe(group2)}},
    )


def one_way_anova(
    groups: Dict[str, List[float]],
    categorical_name: str,
    numeric_name: str,
    estimator: PValueEstimator,
) -> TestResult:
    if len(groups) < 3:
        raise GroupCountError(f"ANOVA requires at least 3 groups; found {len(groups)}")
    if any(len(g) < 2 for g in groups.values()):
        raise InsufficientDataError("Each group must have at least 2 observations")

    values = list(groups.values())
    everything = [v for g in values for v in g]
    grand_mean = _mean(everything)
    total_n = len(everything)

    ss_between = sum(len(g) * (_mean(g) - grand_mean) ** 2 for g in values)
    ss_within = sum(sum((v - _mean(g)) ** 2 for v in g) for g in values)
    df_between = len(values) - 1
    df_within = total_n - len(values)
    if ss_within == 0:
        raise InsufficientDataError(f"'{numeric_name}' has no variance within the groups")

    f_stat = (ss_between / df_between) / (ss_within / df_within)
    p = estimator.f_test(f_stat, df_between, df_within)
    eta_squared = ss_between / (ss_between + ss_within)

    significant = p < SIGNIFICANCE_LEVEL
    interpretation = (
        f"{_significance_phrase(significant)} difference in {numeric_name} across "
        f"{categorical_name} groups, F({df_between}, {df_within}) = {f_stat:.3f}, "
        f"p = {format_p_value(p)}, η² = {eta_squared:.3f}. "
        f"The effect size is {_label(eta_squared, 0.01, 0.06)}."
    )
    if significant:
        interpretation += " Post-hoc tests are recommended to identify which specific groups differ."

    return TestResult(
        test_id=ANOVA,
        test_name=TEST_NAMES[ANOVA],
        description=f"Comparing {numeric_name} across {len(values)} groups of {categorical_name}",
        statistic=f_stat,
        p_value=p,
        significant=significant,
        interpretation=interpretation,
        degrees_of_freedom=df_between,
        effect_size=eta_squared,
        sample_size=total_n,
        assumptions=_group_assumptions(
            values, estimator, "Kruskal-Wallis test", "Welch's ANOVA"
        ),
        details={
            "df_within": df_within,
            "ss_between": ss_between,
            "ss_within": ss_within,
            "groups": {label: _describe(g) for label, g in groups.items()},
        },
    )


def pearson_correlation(
    xs: List[float],
    ys: List[float],
    first_name: str,
    second_name: str,
    estimator: PValueEstimator,
) -> TestResult:
    n = len(xs)
    if n < 3:
        raise InsufficientDataError("Correlation requires at least 3 valid pairs of observations")
    for name, values in ((first_name, xs), (second_name, ys)):
        if np.ptp(values) == 0:
            raise InsufficientDataError(f"'{name}' is constant; correlation is undefined")

    r = float(np.clip(np.corrcoef(xs, ys)[0, 1], -1.0, 1.0))
    df = n - 2
    remainder = 1 - r * r
    if remainder <= 0:
        t_stat = math.copysign(math.inf, r)
    else:
        t_stat = r * math.sqrt(df) / math.sqrt(remainder)
    p = estimator.t_test(t_stat, df)

    ci = None
    if n > 3:
        if abs(r) >= 1.0:
            ci = (r, r)
        else:
            z, se = math.atanh(r), 1 / math.sqrt(n - 3)
            crit = estimator.z_critical()
            ci = (math.tanh(z - crit * se), math.tanh(z + crit * se))

    significant = p < SIGNIFICANCE_LEVEL
    strength = "weak" if abs(r) < 0.3 else "moderate" if abs(r) < 0.7 else "strong"
    direction = "positive" if r > 0 else "negative"
    explained = (
        "Less than 1%" if abs(r) * 100 < 1 else f"Approximately {r * r * 100:.1f}%"
    )
    interpretation = (
        f"There is a {'statistically significant' if significant else 'non-significant'} "
        f"{strength} {direction} correlation between {first_name} and {second_name}, "
        f"r({df}) = {r:.3f}, p = {format_p_value(p)}. "
        f"{explained} of the variance in {second_name} is explained by {first_name}."
    )
    return TestResult(
        test_id=PEARSON,
        test_name=TEST_NAMES[PEARSON],
        description=f"Correlation analysis between {first_name} and {second_name}",
        statistic=r,
        p_value=p,
        significant=significant,
        interpretation=interpretation,
        degrees_of_freedom=df,
        confidence_interval=ci,
        sample_size=n,
        details={
            "t_statistic": t_stat,
            "r_squared": r * r,
            first_name: _describe(xs),
            second_name: _describe(ys),
        },
    )


def chi_square_test(
    table: pd.DataFrame,
    first_name: str,
    second_name: str,
    estimator: PValueEstimator,
) -> TestResult:
    rows, cols = table.shape
    if rows < 2 or cols < 2:
        raise GroupCountError("Chi-square test requires at least 2 categories in each variable")

    observed = table.to_numpy(dtype=float)
    total = observed.sum()
    expected = np.outer(observed.sum(axis=1), observed.sum(axis=0)) / total
    mask = expected > 0
    chi2 = float(((observed[mask] - expected[mask]) ** 2 / expected[mask]).sum())
    df = (rows - 1) * (cols - 1)
    p = estimator.chi_square(chi2, df)
    cramers_v = math.sqrt(chi2 / (total * min(rows - 1, cols - 1)))

    significant = p < SIGNIFICANCE_LEVEL
    interpretation = (
        f"{_significance_phrase(significant)} association between {first_name} and "
        f"{second_name}, χ²({df}) = {chi2:.3f}, p = {format_p_value(p)}, "
        f"Cramér's V = {cramers_v:.3f}. The effect size is {_label(cramers_v, 0.1, 0.3)}."
    )
    return TestResult(
        test_id=CHI_SQUARE,
        test_name=TEST_NAMES[CHI_SQUARE],
        description=f"Testing independence between {first_name} and {second_name}",
        statistic=chi2,
        p_value=p,
        significant=significant,
        interpretation=interpretation,
        degrees_of_freedom=df,
        effect_size=cramers_v,
        sample_size=int(total),
        details={
            "observed": {str(k): {str(c): int(n) for c, n in row.items()} for k, row in table.iterrows()},
            "low_expected_cells": int((expected < 5).sum()),
        },
    )


def normality_test(values: List[float], name: str, estimator: PValueEstimator) -> TestResult:
    if len(values) < 3:
        raise InsufficientDataError("Normality test requires at least 3 observations")

    diagnostic = check_normality(values, estimator)
    skew, kurt = shape_statistics(values)
    mean, sd = _mean(values), math.sqrt(_var(values))
    skew_term = 0.0 if math.isnan(skew) else abs(skew)
    kurt_term = 0.0 if math.isnan(kurt) else abs(kurt)
    w = estimator.w_statistic(values, 0.95 - skew_term * 0.1 - kurt_term * 0.05)

    verdict = "suggests" if diagnostic.passed else "indicates"
    follows = "follows" if diagnostic.passed else "does not follow"
    interpretation = (
        f"The {diagnostic.test_name} test {verdict} that {name} {follows} a normal "
        f"distribution (W ≈ {w:.3f}, p = {format_p_value(diagnostic.p_value)}). "
        f"Mean = {mean:.2f}, SD = {sd:.2f}, Skewness = {skew:.2f}, Kurtosis = {kurt:.2f}."
    )
    if not diagnostic.passed:
        interpretation += " Consider using non-parametric tests for further analysis."

    return TestResult(
        test_id=NORMALITY,
        test_name=TEST_NAMES[NORMALITY],
        description=f"Testing normality of {name} distribution",
        statistic=w,
        p_value=diagnostic.p_value,
        significant=not diagnostic.passed,
        interpretation=interpretation,
        sample_size=len(values),
        details={"mean": mean, "sd": sd, "skewness": skew, "kurtosis": kurt},
    )


# ═══════════════════════════════════════════════════════
# Dispatch
# ═══════════════════════════════════════════════════════

def _split_cat_num(first: VariableDescriptor, second: Optional[VariableDescriptor], test_name: str):
    """Return (categorical, numeric) whichever order they were given in."""
    if second is None:
        raise VariableTypeError(f"{test_name} requires both categorical and numeric variables")
    if first.type == VariableType.CATEGORICAL and second.type == VariableType.NUMERIC:
        return first, second
    if first.type == VariableType.NUMERIC and second.type == VariableType.CATEGORICAL:
        return second, first
    raise VariableTypeError(f"{test_name} requires one categorical and one numeric variable")


def _run_t_test(frame, first, second, estimator):
    cat, num = _split_cat_num(first, second, "T-test")
    return independent_t_test(grouped_numeric(frame, cat.name, num.name), num.name, estimator)


def _run_anova(frame, first, second, estimator):
    cat, num = _split_cat_num(first, second, "ANOVA")
    return one_way_anova(grouped_numeric(frame, cat.name, num.name), cat.name, num.name, estimator)


def _run_pearson(frame, first, second, estimator):
    if second is None or first.type != VariableType.NUMERIC or second.type != VariableType.NUMERIC:
        raise VariableTypeError("Pearson correlation requires two numeric variables")
    xs, ys = paired_numeric(frame, first.name, second.name)
    return pearson_correlation(xs, ys, first.name, second.name, estimator)


def _run_chi_square(frame, first, second, estimator):
    if second is None or first.type != VariableType.CATEGORICAL or second.type != VariableType.CATEGORICAL:
        raise VariableTypeError("Chi-square test requires two categorical variables")
    table = contingency_table(frame, first.name, second.name)
    return chi_square_test(table, first.name, second.name, estimator)


def _run_normality(frame, first, second, estimator):
    if first.type != VariableType.NUMERIC:
        raise VariableTypeError("Normality test requires a numeric variable")
    return normality_test(numeric_values(frame, first.name), first.name, estimator)


RUNNERS: Dict[str, Callable] = {
    T_TEST: _run_t_test,
    ANOVA: _run_anova,
    PEARSON: _run_pearson,
    CHI_SQUARE: _run_chi_square,
    NORMALITY: _run_normality,
}


def run_test(
    snapshot: Snapshot,
    test_id: str,
    primary: str,
    secondary: Optional[str] = None,
    estimator: Optional[PValueEstimator] = None,
) -> TestResult:
    """Validate the variables against ``test_id`` and run it on ``snapshot``."""
    if test_id not in RUNNERS:
        raise UnsupportedTestError(test_id)
    first = snapshot.variable(primary)
    if first is None:
        raise UnknownVariableError(primary)
    second = None
    if secondary:
        second = snapshot.variable(secondary)
        if second is None:
            raise UnknownVariableError(secondary)

    estimator = estimator or PValueEstimator()
    # each run starts the jitter from the seed so repeats agree
    estimator.reset()
    result = RUNNERS[test_id](snapshot.frame, first, second, estimator)
    logger.info(
        "%s on %s%s: statistic=%.4f p=%.4f",
        test_id, primary, f" x {secondary}" if secondary else "", result.statistic, result.p_value,
    )
    return result
