"""Custom CSS for the workbench, injected via st.markdown."""

CUSTOM_CSS = """
<style>
@import url('https://fonts.googleapis.com/css2?family=Inter:wght@400;600;700&family=IBM+Plex+Mono:wght@400;500&family=Fraunces:wght@700&display=swap');

.stApp {
    background: #0b1416;
    color: #cfdadb;
    font-family: 'Inter', sans-serif;
}

.main .block-container {
    padding-top: 1.5rem;
    max-width: 1280px;
}

[data-testid="stSidebar"] {
    background: #0f1c1f;
    border-right: 1px solid rgba(20, 184, 166, 0.18);
}

h1 {
    font-family: 'Fraunces', serif !important;
    color: #ecfeff !important;
    letter-spacing: -0.02em !important;
}

h2, h3 {
    color: #d5f5f1 !important;
    font-weight: 600 !important;
}

[data-testid="stMetric"] {
    background: rgba(20, 184, 166, 0.07);
    border: 1px solid rgba(20, 184, 166, 0.2);
    border-radius: 10px;
    padding: 0.8rem 1rem;
}

[data-testid="stMetricValue"] {
    font-family: 'IBM Plex Mono', monospace !important;
    color: #ecfeff !important;
}

.stButton > button[kind="primary"] {
    background: #0d9488;
    border: none;
    color: #f0fdfa;
}

/* ── Section headers ── */
.section-header {
    display: flex;
    align-items: center;
    gap: 10px;
    margin: 0.8rem 0 0.6rem 0;
}
.section-header .accent-bar {
    width: 4px;
    height: 22px;
    border-radius: 2px;
    background: linear-gradient(180deg, #14b8a6, #0d9488);
}
.section-header .title {
    font-weight: 700;
    color: #d5f5f1;
    font-size: 1.1rem;
}

/* ── Step tracker ── */
.step-tracker {
    display: flex;
    gap: 6px;
    flex-wrap: wrap;
    margin-bottom: 1rem;
}
.step-pill {
    padding: 6px 12px;
    border-radius: 999px;
    font-size: 0.78rem;
    border: 1px solid rgba(20, 184, 166, 0.2);
    color: #64748b;
}
.step-pill.done {
    color: #86efac;
    border-color: rgba(34, 197, 94, 0.4);
}
.step-pill.current {
    color: #d5f5f1;
    background: rgba(20, 184, 166, 0.18);
}

/* ── Action log ── */
.log-step {
    display: flex;
    gap: 12px;
    padding: 6px 0;
    font-size: 0.85rem;
    border-bottom: 1px solid rgba(20, 184, 166, 0.08);
}
.log-step-num {
    font-family: 'IBM Plex Mono', monospace;
    color: #2dd4bf;
}

/* ── Test result ── */
.result-card {
    border: 1px solid rgba(20, 184, 166, 0.2);
    border-radius: 14px;
    padding: 1rem 1.2rem;
    background: rgba(20, 184, 166, 0.05);
}
.sig-badge {
    display: inline-block;
    padding: 2px 10px;
    border-radius: 999px;
    font-size: 0.72rem;
    font-weight: 700;
    text-transform: uppercase;
}
.sig-badge.yes { background: rgba(34, 197, 94, 0.15); color: #86efac; }
.sig-badge.no { background: rgba(148, 163, 184, 0.15); color: #cbd5e1; }
</style>
"""


def section_header(icon: str, title: str) -> str:
    """Generate an HTML section header with accent bar."""
    return f"""
    <div class="section-header">
        <div class="accent-bar"></div>
        <div class="title">{icon} {title}</div>
    </div>
    """


def step_tracker(steps, completed: dict, current) -> str:
    pills = ""
    for kind, title in steps:
        classes = ["step-pill"]
        if completed.get(kind.value):
            classes.append("done")
        if kind == current:
            classes.append("current")
        mark = "✓ " if completed.get(kind.value) else ""
        pills += f'<div class="{" ".join(classes)}">{mark}{title}</div>'
    return f'<div class="step-tracker">{pills}</div>'


def action_log(actions) -> str:
    return "".join(
        f'<div class="log-step"><span class="log-step-num">{i:02d}</span><span>{action}</span></div>'
        for i, action in enumerate(actions, 1)
    )
