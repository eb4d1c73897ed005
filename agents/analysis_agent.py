"""
Analysis Agent: test selection and execution against one snapshot.
"""

from dataclasses import dataclass
from typing import List, Optional

import plotly.graph_objects as go

from core.data_visualizer import DataVisualizer
from core.significance import PValueEstimator
from core.snapshot_store import Snapshot
from core.statistical_tests import TestResult, run_test
from core.test_selector import display_name, recommend_tests


@dataclass
class TestRecommendation:
    __test__ = False

    test_id: str
    name: str
    primary: bool


class AnalysisAgent:
    """
    Select → Run → Chart.

    Usage:
        agent = AnalysisAgent()
        options = agent.recommend(snapshot, "comparison", "gender", "satisfaction_overall")
        result = agent.run(snapshot, options[0].test_id, "gender", "satisfaction_overall")
    """

    def __init__(self, estimator: Optional[PValueEstimator] = None):
        self.estimator = estimator or PValueEstimator()

    def recommend(
        self,
        snapshot: Optional[Snapshot],
        intent: str,
        first: Optional[str],
        second: Optional[str] = None,
        runnable_only: bool = True,
    ) -> List[TestRecommendation]:
        if snapshot is None or not first:
            return []
        first_var = snapshot.variable(first)
        second_var = snapshot.variable(second) if second else None
        test_ids = recommend_tests(intent, first_var, second_var, runnable_only=runnable_only)
        return [
            TestRecommendation(test_id=t, name=display_name(t), primary=i == 0)
            for i, t in enumerate(test_ids)
        ]

    def run(self, snapshot: Snapshot, test_id: str, primary: str, secondary: Optional[str] = None) -> TestResult:
        return run_test(snapshot, test_id, primary, secondary, self.estimator)

    @staticmethod
    def chart(snapshot: Snapshot, test_id: str, primary: str, secondary: Optional[str] = None) -> Optional[go.Figure]:
        return DataVisualizer(snapshot).chart_for_test(test_id, primary, secondary)
