import numpy as np
import pytest
from scipy import stats

from core.significance import PValueEstimator


class TestApproximateMode:
    @pytest.mark.parametrize("t, expected", [(3.5, 0.001), (-2.7, 0.01), (2.2, 0.05), (1.6, 0.1)])
    def test_t_table(self, estimator, t, expected):
        assert estimator.t_test(t, 30) == expected

    def test_f_and_chi_square_tables(self, estimator):
        assert estimator.f_test(6.0, 2, 30) == 0.001
        assert estimator.f_test(2.6, 2, 30) == 0.05
        assert estimator.chi_square(16.0, 4) == 0.001
        assert estimator.chi_square(4.0, 4) == 0.1

    def test_tail_is_seeded(self):
        first = PValueEstimator("approximate", seed=7)
        second = PValueEstimator("approximate", seed=7)
        draws = [first.t_test(0.5, 20) for _ in range(3)]
        assert draws == [second.t_test(0.5, 20) for _ in range(3)]
        assert all(0.2 <= p <= 0.5 for p in draws)

    def test_reset_restarts_sequence(self, estimator):
        p = estimator.t_test(0.1, 10)
        estimator.reset()
        assert estimator.t_test(0.1, 10) == p

    def test_diagnostics_follow_heuristic(self, estimator):
        passed, p = estimator.normality([1.0, 2.0, 3.0], shape_ok=True)
        assert passed and 0.1 <= p <= 0.5
        passed, p = estimator.homogeneity([[1.0, 2.0], [1.0, 9.0]], ratio_ok=False)
        assert not passed and p < 0.05

    def test_critical_values(self, estimator):
        assert estimator.t_critical(10) == 2.0
        assert estimator.z_critical() == 1.96

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            PValueEstimator("bootstrap")


class TestExactMode:
    def test_t_matches_scipy(self, exact_estimator):
        assert exact_estimator.t_test(2.1, 25) == pytest.approx(2 * stats.t.sf(2.1, 25))

    def test_f_and_chi_square_match_scipy(self, exact_estimator):
        assert exact_estimator.f_test(3.2, 2, 40) == pytest.approx(stats.f.sf(3.2, 2, 40))
        assert exact_estimator.chi_square(7.5, 6) == pytest.approx(stats.chi2.sf(7.5, 6))

    def test_infinite_t(self, exact_estimator):
        assert exact_estimator.t_test(float("inf"), 10) == 0.0

    def test_shapiro_diagnostic(self, exact_estimator):
        rng = np.random.default_rng(0)
        normal = rng.normal(50, 10, 200).tolist()
        passed, p = exact_estimator.normality(normal, shape_ok=False)
        assert p == pytest.approx(stats.shapiro(normal).pvalue)
        assert passed == (p >= 0.05)

    def test_levene_on_constant_groups(self, exact_estimator):
        assert exact_estimator.homogeneity([[2.0, 2.0], [5.0, 5.0]], ratio_ok=True) == (True, 1.0)

    def test_t_critical_from_distribution(self, exact_estimator):
        assert exact_estimator.t_critical(20) == pytest.approx(stats.t.ppf(0.975, 20))
