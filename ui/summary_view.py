"""Dataset overview: metrics, variables, data quality and preview."""

import asyncio

import streamlit as st

from agents.workbench_agent import WorkbenchAgent
from core.data_quality import QualityIssue, Severity
from core.data_visualizer import DataVisualizer, variables_table
from ui.styles import section_header
from utils.helpers import format_number
from utils.tasks import TaskState, TaskStatus

SEVERITY_COLORS = {
    Severity.HIGH: ("🔴", "#ef4444", "rgba(239,68,68,0.08)"),
    Severity.MEDIUM: ("🟡", "#f59e0b", "rgba(245,158,11,0.08)"),
    Severity.LOW: ("🔵", "#6366f1", "rgba(99,102,241,0.08)"),
}


def render_overview_metrics(agent: WorkbenchAgent):
    """Render top-level KPI metrics."""
    metadata = agent.get_metadata()
    variables = agent.get_variables()

    st.markdown(section_header("📊", "Dataset Overview"), unsafe_allow_html=True)

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        removed = metadata.total_rows - agent.get_row_count()
        st.metric("Rows", format_number(agent.get_row_count()), delta=f"-{removed}" if removed else "0")
    with col2:
        st.metric("Variables", format_number(len(variables)))
    with col3:
        st.metric("Missing Cells", format_number(sum(v.missing for v in variables)))
    with col4:
        done = sum(1 for flag in agent.completed_steps().values() if flag)
        st.metric("Steps Done", f"{done}/{len(agent.steps)}")

    st.caption(f"📁 {metadata.file_name} · session {metadata.session_id} · uploaded {metadata.uploaded_at[:19]}")


def render_variables(agent: WorkbenchAgent):
    st.markdown(section_header("📋", "Variables"), unsafe_allow_html=True)
    st.dataframe(variables_table(agent.get_variables()), use_container_width=True, hide_index=True)


def render_quality_report(agent: WorkbenchAgent):
    """Quality score plus one card per detected issue."""
    report = agent.quality_report()
    if report is None:
        return

    st.markdown(section_header("🩺", "Data Quality"), unsafe_allow_html=True)
    col1, col2 = st.columns([1, 3])
    with col1:
        st.metric("Quality Score", f"{report.overall_score}/100")
    with col2:
        st.info(report.summary)

    if not report.issues:
        st.success("No data quality issues detected.")
        return
    with st.expander(f"View {len(report.issues)} issue(s)", expanded=report.overall_score < 75):
        for issue in report.issues:
            _render_issue_card(issue)


def _render_issue_card(issue: QualityIssue):
    emoji, border_color, bg_color = SEVERITY_COLORS[issue.severity]
    examples = ""
    if issue.examples:
        examples = f'<div style="margin-top:6px; font-family: \'IBM Plex Mono\', monospace; ' \
                   f'font-size: 0.72rem; color: #a5b4fc;">{", ".join(map(str, issue.examples[:5]))}</div>'
    st.markdown(
        f"""
        <div style="
            background: {bg_color};
            border-left: 4px solid {border_color};
            border-radius: 0 12px 12px 0;
            padding: 12px 16px;
            margin: 8px 0;
        ">
            <div style="font-weight: 700; color: #e2e8f0;">{emoji} {issue.title}</div>
            <div style="color: #94a3b8; font-size: 0.85rem; margin-top: 4px;">{issue.description}</div>
            {examples}
            <div style="margin-top: 8px; color: #86efac; font-size: 0.82rem;">💡 {issue.suggestion}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_distributions(agent: WorkbenchAgent):
    visualizer = DataVisualizer(agent.store.snapshot)
    st.markdown(section_header("📈", "Distributions"), unsafe_allow_html=True)
    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(visualizer.type_distribution_chart(), use_container_width=True)
    with col2:
        fig = visualizer.numeric_distributions()
        if fig is not None:
            st.plotly_chart(fig, use_container_width=True)
        else:
            st.info("No numeric variables to plot.")


def render_data_preview(agent: WorkbenchAgent, page_size: int = 20):
    """Paged view of the current rows."""
    st.markdown(section_header("👀", "Data Preview"), unsafe_allow_html=True)
    total = agent.get_row_count()
    pages = max(1, -(-total // page_size))
    page = st.number_input("Page", min_value=1, max_value=pages, value=1, step=1) - 1

    task = TaskState(lambda: agent.fetch_rows(page, page_size), name="data preview")
    with st.spinner("Loading rows..."):
        rows = asyncio.run(task.run())
    if task.status is TaskStatus.ERROR:
        st.error(f"Could not load rows: {task.error}")
        if st.button("Retry", key="preview_retry"):
            rows = asyncio.run(task.retry())
    if rows:
        st.dataframe(rows, use_container_width=True)
    st.caption(f"Rows {page * page_size + 1}-{min(total, (page + 1) * page_size)} of {format_number(total)}")
