"""Sidebar UI: dataset upload, sample datasets and session controls."""

from dataclasses import dataclass
from typing import Optional

import streamlit as st

from config.settings import P_VALUE_MODE, SUPPORTED_FILE_TYPES
from core.data_loader import DataLoader
from core.sample_data import SAMPLE_DATASETS
from core.significance import P_VALUE_MODES
from core.step_graph import STEP_TITLES


@dataclass
class SidebarInput:
    uploaded_file: object = None
    sheet_name: Optional[str] = None
    load_clicked: bool = False
    sample_key: Optional[str] = None
    sample_clicked: bool = False
    p_value_mode: str = P_VALUE_MODE
    reset_clicked: bool = False


def _label(text: str) -> str:
    return f"""
    <div style="
        font-family: 'DM Sans', sans-serif;
        font-size: 0.75rem;
        color: #64748b;
        text-transform: uppercase;
        letter-spacing: 0.1em;
        font-weight: 600;
        margin-bottom: 8px;
    ">{text}</div>
    """


def _divider():
    st.markdown('<hr style="margin: 1rem 0; opacity: 0.15;">', unsafe_allow_html=True)


def render_sidebar(completed: dict) -> SidebarInput:
    """Render the sidebar and collect what the user asked for on this run."""
    result = SidebarInput()
    with st.sidebar:
        st.markdown(
            """
            <div style="text-align:center; padding: 0.5rem 0 1rem 0;">
                <div style="
                    font-family: 'Playfair Display', serif;
                    font-size: 1.5rem;
                    font-weight: 800;
                    color: #f1f5f9;
                    letter-spacing: -0.03em;
                ">✦ Survey Workbench</div>
                <div style="
                    font-size: 0.72rem;
                    color: #64748b;
                    text-transform: uppercase;
                    letter-spacing: 0.1em;
                    margin-top: 4px;
                ">Prepare · Test · Report</div>
            </div>
            """,
            unsafe_allow_html=True,
        )
        _divider()

        st.markdown(_label("📂 Dataset Upload"), unsafe_allow_html=True)
        result.uploaded_file = st.file_uploader(
            "Choose a file",
            type=SUPPORTED_FILE_TYPES,
            help=f"Supported: {', '.join(SUPPORTED_FILE_TYPES)}",
            label_visibility="collapsed",
        )

        if result.uploaded_file:
            info = DataLoader.get_file_info(result.uploaded_file)
            st.caption(f"📄 {info['filename']} · {info['type'].upper()} · {info['size_readable']}")
            sheets = DataLoader.sheet_names(result.uploaded_file)
            if len(sheets) > 1:
                result.sheet_name = st.selectbox("Worksheet", sheets)

        result.load_clicked = st.button(
            "⚡ Load Dataset",
            type="primary",
            use_container_width=True,
            disabled=result.uploaded_file is None,
        )
        _divider()

        st.markdown(_label("🧪 Sample Data"), unsafe_allow_html=True)
        result.sample_key = st.selectbox(
            "Sample dataset",
            list(SAMPLE_DATASETS),
            format_func=lambda key: f"{SAMPLE_DATASETS[key].title} ({SAMPLE_DATASETS[key].rows} rows)",
            label_visibility="collapsed",
        )
        result.sample_clicked = st.button("Use Sample", use_container_width=True)
        _divider()

        st.markdown(_label("⚙️ Analysis Config"), unsafe_allow_html=True)
        result.p_value_mode = st.radio(
            "p-value computation",
            P_VALUE_MODES,
            index=P_VALUE_MODES.index(P_VALUE_MODE) if P_VALUE_MODE in P_VALUE_MODES else 0,
            horizontal=True,
            help="approximate: threshold tables; exact: scipy distributions",
        )
        _divider()

        st.markdown(_label("🗺️ Preparation"), unsafe_allow_html=True)
        for kind, title in STEP_TITLES.items():
            mark = "✅" if completed.get(kind.value) else "⬜"
            st.markdown(f"{mark} {title}")

        _divider()
        result.reset_clicked = st.button("🗑 Reset Session", use_container_width=True)

    return result
