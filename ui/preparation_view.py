"""Preparation tab: step tracker, suggested change, editing and apply."""

import asyncio

import pandas as pd
import streamlit as st

from agents.workbench_agent import StepOutcome, WorkbenchAgent
from core.changes import (
    COMPOSITE_METHODS,
    INVALID_VALUE_STRATEGIES,
    MISSING_STRATEGIES,
    CompositeChange,
    DuplicatesChange,
    MissingValuesChange,
    RecodeChange,
    RemoveColumnsChange,
    StandardizeChange,
)
from core.data_visualizer import DataVisualizer
from core.errors import WorkbenchError
from core.step_advisor import StepSuggestion
from core.step_graph import STEP_TITLES, StepKind
from ui.styles import action_log, section_header, step_tracker
from utils.helpers import dataframe_to_excel_bytes, format_number
from utils.tasks import TaskState, TaskStatus

OUTCOME_KEY = "prep_outcome"


def _key(agent: WorkbenchAgent, kind: StepKind, name: str) -> str:
    # widget state must not leak between datasets
    return f"prep_{agent.get_metadata().session_id}_{kind.value}_{name}"


def render_preparation_tab(agent: WorkbenchAgent):
    kind = agent.current_step
    st.markdown(
        step_tracker(STEP_TITLES.items(), agent.completed_steps(), kind),
        unsafe_allow_html=True,
    )

    position = agent.steps.index(kind) + 1
    st.markdown(
        section_header("🛠️", f"Step {position}/{len(agent.steps)} · {STEP_TITLES[kind]}"),
        unsafe_allow_html=True,
    )

    suggestion = agent.suggest_step(kind)
    if suggestion.findings:
        with st.expander(f"🔍 {len(suggestion.findings)} finding(s)", expanded=True):
            for finding in suggestion.findings:
                st.markdown(f"- {finding}")
    else:
        st.success("Nothing to fix here. You can mark this step complete as-is.")

    editors = {
        StepKind.MISSING_VALUES: _edit_missing_values,
        StepKind.STANDARDIZE_VARIABLES: _edit_standardize,
        StepKind.FIX_DUPLICATES: _edit_duplicates,
        StepKind.RECODE_VARIABLES: _edit_recode,
        StepKind.COMPOSITE_SCORES: _edit_composites,
        StepKind.REMOVE_COLUMNS: _edit_removals,
    }
    change = editors[kind](agent, suggestion)

    col_prev, col_apply, col_next = st.columns([1, 2, 1])
    with col_prev:
        if st.button("← Previous", use_container_width=True, disabled=position == 1):
            agent.previous_step()
            st.rerun()
    with col_apply:
        label = "✓ Mark Complete" if change.is_empty() else "⚡ Apply Changes"
        if st.button(label, type="primary", use_container_width=True):
            _apply(agent, kind, change)
    with col_next:
        if st.button("Next →", use_container_width=True, disabled=position == len(agent.steps)):
            agent.next_step()
            st.rerun()

    if OUTCOME_KEY in st.session_state:
        render_outcome(*st.session_state[OUTCOME_KEY])

    st.markdown("<br>", unsafe_allow_html=True)
    render_export(agent)


def _apply(agent: WorkbenchAgent, kind: StepKind, change):
    before = agent.get_variables()
    try:
        outcome = agent.apply_step(kind, change)
    except WorkbenchError as e:
        st.error(f"❌ {e}")
        return
    st.session_state[OUTCOME_KEY] = (kind, before, outcome)
    if agent.steps.index(kind) < len(agent.steps) - 1:
        agent.next_step()
    st.toast(f"{STEP_TITLES[kind]} complete", icon="✅")
    st.rerun()


# ── Per-step editors ───────────────────────────────────

def _edit_missing_values(agent: WorkbenchAgent, suggestion: StepSuggestion) -> MissingValuesChange:
    suggested: MissingValuesChange = suggestion.change
    strategies, invalid = {}, {}
    for name, default in suggested.strategies.items():
        col1, col2 = st.columns([2, 1])
        with col1:
            strategies[name] = st.selectbox(
                f"`{name}` missing values",
                MISSING_STRATEGIES,
                index=MISSING_STRATEGIES.index(default),
                key=_key(agent, suggestion.kind, f"strategy_{name}"),
            )
        if name in suggested.invalid_value_handling:
            with col2:
                invalid[name] = st.selectbox(
                    "invalid values",
                    INVALID_VALUE_STRATEGIES,
                    index=INVALID_VALUE_STRATEGIES.index(suggested.invalid_value_handling[name]),
                    key=_key(agent, suggestion.kind, f"invalid_{name}"),
                )
    return MissingValuesChange(
        strategies={k: v for k, v in strategies.items() if v != "ignore"},
        invalid_value_handling={k: v for k, v in invalid.items() if v != "ignore"},
    )


def _edit_standardize(agent: WorkbenchAgent, suggestion: StepSuggestion) -> StandardizeChange:
    table = pd.DataFrame(
        [{"old_name": r.old_name, "new_name": r.new_name} for r in suggestion.change.renames],
        columns=["old_name", "new_name"],
    )
    edited = st.data_editor(
        table,
        num_rows="dynamic",
        use_container_width=True,
        hide_index=True,
        key=_key(agent, suggestion.kind, "renames"),
    )
    renames = [
        {"old_name": row["old_name"], "new_name": str(row["new_name"]).strip()}
        for row in edited.to_dict("records")
        if row.get("old_name") and row.get("new_name")
    ]
    return StandardizeChange.from_dict({"renames": renames})


def _edit_duplicates(agent: WorkbenchAgent, suggestion: StepSuggestion) -> DuplicatesChange:
    suggested: DuplicatesChange = suggestion.change
    groups = suggestion.details.get("duplicate_groups", [])
    if st.button("🔄 Re-scan rows", key=_key(agent, suggestion.kind, "rescan")):
        task = TaskState(agent.scan_duplicates, name="duplicate scan")
        with st.spinner("Scanning for duplicate rows..."):
            rescanned = asyncio.run(task.run())
        if task.status is TaskStatus.ERROR:
            st.error(f"Scan failed: {task.error}")
        else:
            groups = rescanned
    remove = st.checkbox(
        f"Remove exact duplicates ({sum(g.count - 1 for g in groups)} extra row(s))",
        value=suggested.remove_exact_duplicates,
        disabled=not groups,
        key=_key(agent, suggestion.kind, "remove"),
    )
    if groups:
        st.dataframe(
            pd.DataFrame([
                {"group": g.group_id, "rows": g.count, "positions": str(g.row_positions[:5]), **g.sample_values}
                for g in groups
            ]),
            use_container_width=True,
            hide_index=True,
        )

    standardized = {}
    for name, mapping in suggested.standardized_values.items():
        pairs = ", ".join(f"'{old}' → '{new}'" for old, new in mapping.items())
        if st.checkbox(f"Merge spellings in `{name}`: {pairs}", value=True,
                       key=_key(agent, suggestion.kind, f"merge_{name}")):
            standardized[name] = mapping
    return DuplicatesChange(remove_exact_duplicates=remove, standardized_values=standardized)


def _edit_recode(agent: WorkbenchAgent, suggestion: StepSuggestion) -> RecodeChange:
    recodings = {}
    for name, recoding in suggestion.change.recodings.items():
        pairs = ", ".join(f"'{old}' → '{new}'" for old, new in recoding.labels.items())
        if st.checkbox(f"Recode `{name}`: {pairs}", value=True, key=_key(agent, suggestion.kind, name)):
            recodings[name] = recoding
    return RecodeChange(recodings=recodings)


def _edit_composites(agent: WorkbenchAgent, suggestion: StepSuggestion) -> CompositeChange:
    chosen = []
    for candidate in suggestion.details.get("candidates", []):
        composite = candidate.composite
        col1, col2 = st.columns([3, 1])
        with col1:
            keep = st.checkbox(
                f"`{composite.name}` from {', '.join(composite.variables)}",
                value=candidate.selected,
                key=_key(agent, suggestion.kind, f"pick_{composite.name}"),
            )
        with col2:
            method = st.selectbox(
                "method",
                COMPOSITE_METHODS,
                key=_key(agent, suggestion.kind, f"method_{composite.name}"),
                label_visibility="collapsed",
            )
        if keep:
            chosen.append({"name": composite.name, "variables": list(composite.variables), "method": method})
    return CompositeChange.from_dict({"composites": chosen})


def _edit_removals(agent: WorkbenchAgent, suggestion: StepSuggestion) -> RemoveColumnsChange:
    columns = st.multiselect(
        "Columns to remove",
        [v.name for v in agent.get_variables()],
        default=list(suggestion.change.columns),
        key=_key(agent, suggestion.kind, "columns"),
    )
    return RemoveColumnsChange(columns=tuple(columns))


# ── Outcome & export ───────────────────────────────────

def render_outcome(kind: StepKind, before, outcome: StepOutcome):
    st.markdown(section_header("🧾", f"Last Applied · {STEP_TITLES[kind]}"), unsafe_allow_html=True)

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Rows Before", format_number(outcome.rows_before))
    with col2:
        removed = outcome.rows_before - outcome.rows_after
        st.metric("Rows After", format_number(outcome.rows_after), delta=f"-{removed}" if removed else "0")
    with col3:
        st.metric("Variables", len(outcome.variables))

    for warning in outcome.warnings:
        st.warning(warning)
    if outcome.actions_log:
        with st.expander(f"View {len(outcome.actions_log)} action(s)", expanded=True):
            st.markdown(action_log(outcome.actions_log), unsafe_allow_html=True)

    if kind == StepKind.MISSING_VALUES:
        fig = DataVisualizer.missing_comparison_chart(before, outcome.variables)
        if fig is not None:
            st.plotly_chart(fig, use_container_width=True)

    if outcome.preview_rows:
        st.dataframe(outcome.preview_rows, use_container_width=True)


def render_export(agent: WorkbenchAgent):
    st.markdown(section_header("💾", "Export Prepared Data"), unsafe_allow_html=True)
    frame = agent.get_frame()
    stem = agent.get_metadata().file_name.rsplit(".", 1)[0]

    col1, col2 = st.columns(2)
    with col1:
        st.download_button(
            label="⬇ Download CSV",
            data=frame.to_csv(index=False).encode("utf-8"),
            file_name=f"{stem}_prepared.csv",
            mime="text/csv",
            use_container_width=True,
        )
    with col2:
        st.download_button(
            label="⬇ Download Excel",
            data=dataframe_to_excel_bytes(frame),
            file_name=f"{stem}_prepared.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            use_container_width=True,
        )
