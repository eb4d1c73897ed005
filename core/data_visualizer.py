"""Plotly charts for dataset preview, preparation and analysis results."""

from typing import List, Optional, Sequence

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from config.settings import CHART_HEIGHT
from core.snapshot_store import Snapshot
from core.statistical_tests import (
    ANOVA,
    CHI_SQUARE,
    NORMALITY,
    PEARSON,
    T_TEST,
    contingency_table,
)
from core.variables import VariableDescriptor, VariableType, category_label, to_number


class DataVisualizer:
    """Generate Plotly charts from a snapshot."""

    def __init__(self, snapshot: Snapshot):
        self.snapshot = snapshot
        self.df = snapshot.frame

    def _numbers(self, name: str) -> pd.Series:
        return self.df[name].map(to_number).astype(float)

    def _labels(self, name: str) -> pd.Series:
        return self.df[name].map(category_label)

    # ── Preparation ────────────────────────────────────

    @staticmethod
    def missing_comparison_chart(
        before: Sequence[VariableDescriptor],
        after: Sequence[VariableDescriptor],
    ) -> Optional[go.Figure]:
        """Bar chart comparing missing counts before and after a step."""
        after_by_name = {v.name: v.missing for v in after}
        rows = [
            (v.name, v.missing, after_by_name.get(v.name, 0))
            for v in before if v.missing > 0
        ]
        if not rows:
            return None

        names, missing_before, missing_after = zip(*rows)
        fig = go.Figure()
        fig.add_trace(go.Bar(name="Before", x=names, y=missing_before, marker_color="#EF4444"))
        fig.add_trace(go.Bar(name="After", x=names, y=missing_after, marker_color="#22C55E"))
        fig.update_layout(
            title="Missing Values: Before vs After",
            barmode="group",
            height=CHART_HEIGHT,
            template="plotly_white",
        )
        return fig

    def type_distribution_chart(self) -> go.Figure:
        """Pie chart of variable types."""
        counts = pd.Series([v.type.value for v in self.snapshot.variables]).value_counts()
        fig = px.pie(
            names=counts.index,
            values=counts.values,
            title="Variable Type Distribution",
            hole=0.4,
        )
        fig.update_layout(height=CHART_HEIGHT, template="plotly_white")
        return fig

    def numeric_distributions(self, max_cols: int = 9) -> Optional[go.Figure]:
        """Histogram grid for numeric variables."""
        names = [v.name for v in self.snapshot.variables if v.type == VariableType.NUMERIC][:max_cols]
        if not names:
            return None

        n = len(names)
        n_rows = (n + 2) // 3
        n_chart_cols = min(n, 3)
        fig = make_subplots(rows=n_rows, cols=n_chart_cols, subplot_titles=names)
        for i, name in enumerate(names):
            fig.add_trace(
                go.Histogram(x=self._numbers(name), name=name, showlegend=False, marker_color="#6366F1"),
                row=i // n_chart_cols + 1, col=i % n_chart_cols + 1,
            )
        fig.update_layout(
            title="Numeric Variable Distributions",
            height=CHART_HEIGHT * n_rows * 0.7,
            template="plotly_white",
            showlegend=False,
        )
        return fig

    # ── Single variable ────────────────────────────────

    def histogram(self, name: str) -> go.Figure:
        fig = px.histogram(x=self._numbers(name).dropna(), nbins=20, title=f"Distribution of {name}")
        fig.update_traces(marker_color="#6366F1")
        fig.update_layout(height=CHART_HEIGHT, template="plotly_white", xaxis_title=name, yaxis_title="Count")
        return fig

    def frequency_bar(self, name: str, top: int = 10) -> go.Figure:
        counts = self._labels(name).dropna().value_counts().head(top)
        fig = px.bar(x=counts.index.astype(str), y=counts.values, title=f"Frequencies of {name}")
        fig.update_traces(marker_color="#F59E0B")
        fig.update_layout(height=CHART_HEIGHT, template="plotly_white", xaxis_title=name, yaxis_title="Count")
        return fig

    # ── Two variables ──────────────────────────────────

    def box_by_group(self, categorical: str, numeric: str) -> go.Figure:
        data = pd.DataFrame({categorical: self._labels(categorical), numeric: self._numbers(numeric)}).dropna()
        fig = px.box(data, x=categorical, y=numeric, points="outliers", title=f"{numeric} by {categorical}")
        fig.update_layout(height=CHART_HEIGHT, template="plotly_white")
        return fig

    def scatter(self, x: str, y: str) -> go.Figure:
        data = pd.DataFrame({x: self._numbers(x), y: self._numbers(y)}).dropna()
        fig = px.scatter(data, x=x, y=y, title=f"{y} vs {x}", opacity=0.7)
        fig.update_layout(height=CHART_HEIGHT, template="plotly_white")
        return fig

    def crosstab_heatmap(self, first: str, second: str) -> go.Figure:
        table = contingency_table(self.df, first, second)
        fig = px.imshow(table, text_auto=True, color_continuous_scale="Blues", title=f"{first} x {second}")
        fig.update_layout(height=CHART_HEIGHT + 100, template="plotly_white")
        return fig

    def chart_for_test(self, test_id: str, primary: str, secondary: Optional[str] = None) -> Optional[go.Figure]:
        """The chart that best illustrates a test result."""
        if test_id == NORMALITY:
            return self.histogram(primary)
        if secondary is None:
            return None
        if test_id == PEARSON:
            return self.scatter(primary, secondary)
        if test_id == CHI_SQUARE:
            return self.crosstab_heatmap(primary, secondary)
        if test_id in (T_TEST, ANOVA):
            first = self.snapshot.variable(primary)
            if first is not None and first.type == VariableType.CATEGORICAL:
                return self.box_by_group(primary, secondary)
            return self.box_by_group(secondary, primary)
        return None


def variables_table(variables: List[VariableDescriptor]) -> pd.DataFrame:
    """One row per variable for display."""
    return pd.DataFrame([
        {
            "Variable": v.name,
            "Type": v.type.value,
            "Missing": v.missing,
            "Unique": v.unique,
            "Example": v.example,
            "Categories": ", ".join(v.categories) if v.categories else "",
        }
        for v in variables
    ])
