"""Shared fixtures: a small deterministic survey and stores built from it."""

import pandas as pd
import pytest

from agents.workbench_agent import WorkbenchAgent
from core.significance import PValueEstimator
from core.snapshot_store import SnapshotStore
from core.variables import infer_variables
from utils.helpers import records_to_frame

GENDER_GAPS = (3, 20, 47, 88, 120)


def survey_rows(n: int = 150) -> list:
    rows = []
    for i in range(n):
        male = i % 2 == 0
        rows.append({
            "respondent_id": 1001 + i,
            "gender": None if i in GENDER_GAPS else ("Male" if male else "Female"),
            "age": 18 + (i * 13) % 50,
            "region": ("North", "South", "East")[i % 3],
            "age_group": ("18-24", "25-34", "35-44", "45+")[(i // 3) % 4],
            "satisfaction_overall": (i % 5) + 1 + (3 if male else 0),
            "q1_trust": (i % 5) + 1,
            "q2_trust": (i * 2) % 5 + 1,
            "q3_trust": (i * 3) % 5 + 1,
            "comments": f"Response number {i}",
        })
    return rows


@pytest.fixture
def survey_frame() -> pd.DataFrame:
    return records_to_frame(survey_rows())


@pytest.fixture
def make_store():
    """Factory: rows -> loaded in-memory SnapshotStore."""
    def _make(rows, file_name="survey.csv"):
        frame = rows if isinstance(rows, pd.DataFrame) else records_to_frame(rows)
        store = SnapshotStore()
        store.load(frame, infer_variables(frame), {"file_name": file_name})
        return store
    return _make


@pytest.fixture
def store(make_store, survey_frame):
    return make_store(survey_frame)


@pytest.fixture
def estimator():
    return PValueEstimator("approximate", seed=42)


@pytest.fixture
def exact_estimator():
    return PValueEstimator("exact")


@pytest.fixture
def agent(survey_frame):
    agent = WorkbenchAgent()
    agent.load(survey_frame, metadata={"file_name": "survey.csv"})
    return agent
