"""Analysis tab: pick an intent and variables, run a recommended test."""

import streamlit as st

from agents.workbench_agent import WorkbenchAgent
from core.errors import WorkbenchError
from core.statistical_tests import TestResult
from core.test_selector import AnalysisIntent
from ui.styles import section_header
from utils.helpers import format_p_value

INTENT_LABELS = {
    AnalysisIntent.DISTRIBUTION: "📊 Describe a distribution",
    AnalysisIntent.RELATIONSHIP: "🔗 Relationship between two variables",
    AnalysisIntent.COMPARISON: "⚖️ Compare groups",
}
RESULT_KEY = "analysis_result"


def render_analysis_tab(agent: WorkbenchAgent):
    st.markdown(section_header("🧪", "Statistical Analysis"), unsafe_allow_html=True)

    intent = st.radio(
        "What do you want to find out?",
        list(AnalysisIntent),
        format_func=INTENT_LABELS.get,
        horizontal=True,
    )

    names = [v.name for v in agent.get_variables()]
    types = {v.name: v.type.value for v in agent.get_variables()}
    col1, col2 = st.columns(2)
    with col1:
        first = st.selectbox("Variable", names, format_func=lambda n: f"{n} ({types[n]})")
    second = None
    if intent != AnalysisIntent.DISTRIBUTION:
        with col2:
            others = [n for n in names if n != first]
            second = st.selectbox("Second variable", others, format_func=lambda n: f"{n} ({types[n]})")

    options = agent.recommend_tests(intent, first, second)
    if not options:
        unsupported = agent.recommend_tests(intent, first, second, runnable_only=False)
        if unsupported:
            st.info("Suggested: " + ", ".join(o.name for o in unsupported) + " (not available yet)")
        else:
            st.warning("No test fits this combination of variable types.")
        return

    test = st.selectbox(
        "Recommended tests",
        options,
        format_func=lambda o: f"{o.name}{' ★' if o.primary else ''}",
    )

    if st.button("▶ Run Test", type="primary"):
        try:
            result = agent.run_test(test.test_id, first, second)
        except WorkbenchError as e:
            st.error(f"❌ {e}")
            return
        st.session_state[RESULT_KEY] = (result, first, second)

    if RESULT_KEY in st.session_state:
        result, primary, secondary = st.session_state[RESULT_KEY]
        render_result(result)
        if primary in names and (secondary is None or secondary in names):
            fig = agent.analysis.chart(agent.store.snapshot, result.test_id, primary, secondary)
            if fig is not None:
                st.plotly_chart(fig, use_container_width=True)


def render_result(result: TestResult):
    """Result card, statistics and assumption checks for one test."""
    badge = '<span class="sig-badge yes">significant</span>' if result.significant \
        else '<span class="sig-badge no">not significant</span>'
    st.markdown(
        f"""
        <div class="result-card">
            <div style="font-weight: 700; color: #e2e8f0; font-size: 1.05rem;">
                {result.test_name} {badge}
            </div>
            <div style="color: #94a3b8; font-size: 0.85rem; margin: 6px 0;">{result.description}</div>
            <div style="color: #c9d1d9; line-height: 1.6;">{result.interpretation}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Statistic", f"{result.statistic:.3f}")
    with col2:
        st.metric("p-value", format_p_value(result.p_value))
    with col3:
        st.metric("df", result.degrees_of_freedom if result.degrees_of_freedom is not None else "—")
    with col4:
        st.metric("Effect size", f"{result.effect_size:.3f}" if result.effect_size is not None else "—")

    if result.confidence_interval is not None:
        low, high = result.confidence_interval
        st.caption(f"Confidence interval: [{low:.3f}, {high:.3f}] · n = {result.sample_size}")

    if result.assumptions is not None:
        with st.expander("Assumption checks"):
            for check in (result.assumptions.normality, result.assumptions.homogeneity):
                if check is not None:
                    icon = "✅" if check.passed else "⚠️"
                    st.markdown(f"{icon} **{check.test_name}** (p {format_p_value(check.p_value)})")
            for rec in result.assumptions.recommendations:
                st.info(rec)

    if result.details:
        with st.expander("Details"):
            st.json(result.details)
