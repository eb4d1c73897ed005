"""
Survey Workbench: Main Application
Upload → Prepare (six guided steps) → Analyze (recommended statistical tests)
"""

import logging

import streamlit as st

from agents.workbench_agent import WorkbenchAgent
from config.settings import APP_ICON, APP_LAYOUT, APP_TITLE, LOG_LEVEL
from core.errors import WorkbenchError
from core.significance import PValueEstimator
from ui.analysis_view import RESULT_KEY, render_analysis_tab
from ui.preparation_view import OUTCOME_KEY, render_preparation_tab
from ui.sidebar import render_sidebar
from ui.styles import CUSTOM_CSS
from ui.summary_view import (
    render_data_preview,
    render_distributions,
    render_overview_metrics,
    render_quality_report,
    render_variables,
)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

AGENT_KEY = "workbench_agent"


def get_agent() -> WorkbenchAgent:
    """One agent per browser session, resumed from the state file when possible."""
    if AGENT_KEY not in st.session_state:
        agent = WorkbenchAgent.with_state_file()
        if agent.restore():
            logger.info("Resumed previous session")
        st.session_state[AGENT_KEY] = agent
    return st.session_state[AGENT_KEY]


def _clear_results():
    for key in (OUTCOME_KEY, RESULT_KEY):
        st.session_state.pop(key, None)


st.set_page_config(page_title=APP_TITLE, page_icon=APP_ICON, layout=APP_LAYOUT)
st.markdown(CUSTOM_CSS, unsafe_allow_html=True)

agent = get_agent()
sidebar = render_sidebar(agent.completed_steps())

if agent.analysis.estimator.mode != sidebar.p_value_mode:
    agent.analysis.estimator = PValueEstimator(mode=sidebar.p_value_mode)
    st.session_state.pop(RESULT_KEY, None)

if sidebar.reset_clicked:
    agent.reset()
    _clear_results()
    st.rerun()

if sidebar.load_clicked:
    with st.spinner("⚡ Reading and profiling your dataset..."):
        try:
            agent.ingest(sidebar.uploaded_file, sidebar.sheet_name)
        except (WorkbenchError, ValueError) as e:
            st.error(f"❌ Could not load file: {e}")
            st.stop()
    _clear_results()
    st.toast("Dataset loaded!", icon="✅")

if sidebar.sample_clicked:
    agent.load_sample(sidebar.sample_key)
    _clear_results()
    st.toast("Sample dataset loaded!", icon="✅")

# ── Welcome Screen ──
if not agent.is_loaded():
    st.markdown(
        """
        <div style="padding: 2rem 0;">
            <h1 style="margin-bottom: 0.3rem;">Survey Workbench</h1>
            <p style="color: #94a3b8; font-size: 1.05rem; max-width: 640px;">
                Upload survey responses or pick a sample dataset. Walk through six
                preparation steps, each with a suggested fix you can edit, then run
                the statistical test that fits your question.
            </p>
        </div>
        """,
        unsafe_allow_html=True,
    )
    previous = agent.get_metadata()
    if previous is not None:
        st.info(f"Progress from your last session on **{previous.file_name}** was found. "
                "Upload the file again to continue; loading it starts the steps over.")
    st.stop()

st.markdown(
    f"""
    <div style="margin-bottom: 1rem;">
        <h1 style="font-size: 1.8rem !important; margin-bottom: 0;">Workbench</h1>
        <span style="font-family: 'IBM Plex Mono', monospace; font-size: 0.78rem; color: #5f7f82;">
            {agent.get_metadata().file_name}
        </span>
    </div>
    """,
    unsafe_allow_html=True,
)

tab_overview, tab_prep, tab_analysis = st.tabs(["📊 Overview", "🛠️ Preparation", "🧪 Analysis"])

with tab_overview:
    render_overview_metrics(agent)
    st.markdown("<br>", unsafe_allow_html=True)
    render_quality_report(agent)
    st.markdown("<br>", unsafe_allow_html=True)
    render_variables(agent)
    st.markdown("<br>", unsafe_allow_html=True)
    render_distributions(agent)
    st.markdown("<br>", unsafe_allow_html=True)
    render_data_preview(agent)

with tab_prep:
    render_preparation_tab(agent)

with tab_analysis:
    render_analysis_tab(agent)
