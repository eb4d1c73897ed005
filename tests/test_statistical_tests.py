import math

import numpy as np
import pytest
from scipy import stats

from core.errors import (
    GroupCountError,
    InsufficientDataError,
    UnknownVariableError,
    UnsupportedTestError,
    VariableTypeError,
)
from core.statistical_tests import (
    ANOVA,
    CHI_SQUARE,
    NORMALITY,
    PEARSON,
    T_TEST,
    contingency_table,
    grouped_numeric,
    independent_t_test,
    normality_test,
    pearson_correlation,
    run_test,
    shape_statistics,
)


class TestExtraction:
    def test_grouped_numeric_skips_missing_and_keeps_order(self, store):
        groups = grouped_numeric(store.snapshot.frame, "gender", "satisfaction_overall")
        assert list(groups) == ["Male", "Female"]
        assert len(groups["Male"]) + len(groups["Female"]) == 145

    def test_contingency_table_shape(self, store):
        table = contingency_table(store.snapshot.frame, "region", "age_group")
        assert table.shape == (3, 4)
        assert int(table.to_numpy().sum()) == 150

    def test_shape_statistics_of_constant_data(self):
        skew, kurt = shape_statistics([3.0, 3.0, 3.0, 3.0])
        assert math.isnan(skew) and math.isnan(kurt)


class TestTTest:
    def test_clear_difference(self, estimator):
        groups = {"A": [1.0, 2.0, 3.0] * 10, "B": [11.0, 12.0, 13.0] * 10}
        result = independent_t_test(groups, "score", estimator)
        assert abs(result.statistic) > 10
        assert result.significant
        assert result.degrees_of_freedom == 58
        assert result.effect_size > 0.8
        low, high = result.confidence_interval
        assert low < -10 < high < 0
        assert "large" in result.interpretation

    def test_matches_scipy_in_exact_mode(self, exact_estimator):
        a = [4.1, 5.2, 6.3, 5.5, 4.8, 5.9]
        b = [5.0, 6.1, 7.4, 6.6, 6.2, 7.0]
        result = independent_t_test({"a": a, "b": b}, "score", exact_estimator)
        reference = stats.ttest_ind(a, b, equal_var=True)
        assert result.statistic == pytest.approx(reference.statistic)
        assert result.p_value == pytest.approx(reference.pvalue)

    def test_needs_two_groups(self, estimator):
        with pytest.raises(GroupCountError):
            independent_t_test({"a": [1.0, 2.0], "b": [3.0, 4.0], "c": [5.0, 6.0]}, "x", estimator)

    def test_needs_two_observations_per_group(self, estimator):
        with pytest.raises(InsufficientDataError):
            independent_t_test({"a": [1.0], "b": [3.0, 4.0]}, "x", estimator)

    def test_zero_variance(self, estimator):
        with pytest.raises(InsufficientDataError):
            independent_t_test({"a": [1.0, 1.0], "b": [3.0, 3.0]}, "x", estimator)

    def test_assumptions_reported(self, estimator):
        groups = {"A": [1.0, 2.0, 3.0] * 10, "B": [10.0, 20.0, 30.0] * 10}
        result = independent_t_test(groups, "score", estimator)
        assert not result.assumptions.homogeneity.passed
        assert "Consider using Welch's t-test for unequal variances" in result.assumptions.recommendations


class TestPearson:
    def test_self_correlation(self, estimator):
        xs = [float(x) for x in range(1, 21)]
        result = pearson_correlation(xs, xs, "x", "x", estimator)
        assert result.statistic == pytest.approx(1.0)
        assert result.significant
        assert result.degrees_of_freedom == 18
        assert result.confidence_interval == pytest.approx((1.0, 1.0))
        assert result.details["t_statistic"] > 1e6

    def test_matches_scipy_in_exact_mode(self, exact_estimator):
        rng = np.random.default_rng(3)
        xs = rng.normal(size=40)
        ys = xs * 0.5 + rng.normal(size=40)
        result = pearson_correlation(xs.tolist(), ys.tolist(), "x", "y", exact_estimator)
        reference = stats.pearsonr(xs, ys)
        assert result.statistic == pytest.approx(reference[0])
        assert result.p_value == pytest.approx(reference[1])
        low, high = result.confidence_interval
        assert low < result.statistic < high

    def test_no_interval_for_three_pairs(self, estimator):
        result = pearson_correlation([1.0, 2.0, 3.0], [2.0, 1.0, 4.0], "x", "y", estimator)
        assert result.confidence_interval is None

    def test_too_few_pairs(self, estimator):
        with pytest.raises(InsufficientDataError):
            pearson_correlation([1.0, 2.0], [1.0, 2.0], "x", "y", estimator)

    def test_constant_variable(self, estimator):
        with pytest.raises(InsufficientDataError, match="constant"):
            pearson_correlation([1.0, 2.0, 3.0, 4.0], [5.0, 5.0, 5.0, 5.0], "x", "y", estimator)


class TestNormality:
    def test_normal_sample(self, estimator):
        values = np.random.default_rng(1).normal(100, 15, 300).tolist()
        result = normality_test(values, "score", estimator)
        assert not result.significant
        assert result.sample_size == 300
        assert abs(result.details["kurtosis"]) < 1

    def test_skewed_sample(self, estimator):
        values = [1.0] * 60 + [2.0] * 5 + [100.0] * 3
        result = normality_test(values, "score", estimator)
        assert result.significant
        assert "non-parametric" in result.interpretation

    def test_needs_three_values(self, estimator):
        with pytest.raises(InsufficientDataError):
            normality_test([1.0, 2.0], "score", estimator)


class TestRunTest:
    def test_chi_square_degrees_of_freedom(self, store, estimator):
        result = run_test(store.snapshot, CHI_SQUARE, "region", "age_group", estimator)
        assert result.degrees_of_freedom == 6
        assert result.sample_size == 150
        assert 0 <= result.effect_size <= 1

    def test_chi_square_matches_scipy(self, store, exact_estimator):
        table = contingency_table(store.snapshot.frame, "region", "age_group")
        result = run_test(store.snapshot, CHI_SQUARE, "region", "age_group", exact_estimator)
        chi2, p, dof, _ = stats.chi2_contingency(table.to_numpy())
        assert result.statistic == pytest.approx(chi2)
        assert result.p_value == pytest.approx(p)

    def test_t_test_accepts_either_order(self, store, estimator):
        forward = run_test(store.snapshot, T_TEST, "gender", "satisfaction_overall", estimator)
        backward = run_test(store.snapshot, T_TEST, "satisfaction_overall", "gender", estimator)
        assert forward.statistic == pytest.approx(backward.statistic)
        assert forward.degrees_of_freedom == 143

    def test_anova(self, store, estimator):
        result = run_test(store.snapshot, ANOVA, "region", "satisfaction_overall", estimator)
        assert result.degrees_of_freedom == 2
        assert result.details["df_within"] == 147
        assert 0 <= result.effect_size <= 1

    def test_anova_needs_three_groups(self, store, estimator):
        with pytest.raises(GroupCountError):
            run_test(store.snapshot, ANOVA, "gender", "satisfaction_overall", estimator)

    def test_t_test_with_three_groups(self, store, estimator):
        with pytest.raises(GroupCountError):
            run_test(store.snapshot, T_TEST, "region", "satisfaction_overall", estimator)

    def test_pearson_needs_numeric(self, store, estimator):
        with pytest.raises(VariableTypeError):
            run_test(store.snapshot, PEARSON, "age", "gender", estimator)

    def test_normality_needs_numeric(self, store, estimator):
        with pytest.raises(VariableTypeError):
            run_test(store.snapshot, NORMALITY, "region", estimator=estimator)

    def test_chi_square_single_category(self, make_store, estimator):
        rows = [{"a": "x", "b": "p" if i % 2 else "q"} for i in range(10)]
        store = make_store(rows)
        with pytest.raises(GroupCountError):
            run_test(store.snapshot, CHI_SQUARE, "a", "b", estimator)

    def test_unknown_variable(self, store, estimator):
        with pytest.raises(UnknownVariableError):
            run_test(store.snapshot, PEARSON, "age", "income", estimator)

    def test_unsupported_test(self, store):
        with pytest.raises(UnsupportedTestError):
            run_test(store.snapshot, "mann-whitney", "gender", "age")

    def test_result_serializes(self, store, estimator):
        data = run_test(store.snapshot, T_TEST, "gender", "satisfaction_overall", estimator).to_dict()
        assert data["test_id"] == T_TEST
        assert isinstance(data["confidence_interval"], list)
        assert data["assumptions"]["normality"]["test_name"] == "Shapiro-Wilk"

    def test_repeated_runs_agree(self, store, estimator):
        first = run_test(store.snapshot, NORMALITY, "age", estimator=estimator)
        second = run_test(store.snapshot, NORMALITY, "age", estimator=estimator)
        assert first.p_value == second.p_value
        assert first.assumptions == second.assumptions
