"""Built-in demo surveys so the workbench can be tried without a file."""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from config.settings import RANDOM_STATE


@dataclass(frozen=True)
class ColumnRecipe:
    name: str
    kind: str                       # id | int | float | choice | text | date
    missing: int = 0
    options: Sequence = ()
    low: float = 0
    high: float = 0


@dataclass(frozen=True)
class SampleDataset:
    key: str
    title: str
    rows: int
    columns: Sequence[ColumnRecipe]


_FEEDBACK = [
    "Great customer service, but prices are high",
    "Fast delivery",
    "Product quality could be better",
    "Very satisfied overall",
    "Website was hard to navigate",
    "Will buy again",
]

SAMPLE_DATASETS: Dict[str, SampleDataset] = {
    "customer-satisfaction": SampleDataset(
        key="customer-satisfaction",
        title="Customer Satisfaction Survey",
        rows=150,
        columns=(
            ColumnRecipe("respondent_id", "id", low=1001),
            ColumnRecipe("age", "int", missing=5, low=18, high=75),
            ColumnRecipe("gender", "choice", missing=2, options=("Female", "Male", "Non-binary")),
            ColumnRecipe("location", "choice", options=(
                "West Coast", "East Coast", "Midwest", "South", "Southwest",
                "Northwest", "Northeast", "Mountain",
            )),
            ColumnRecipe("purchase_frequency", "choice", missing=3, options=(
                "Weekly", "Monthly", "Quarterly", "Yearly", "Rarely",
            )),
            ColumnRecipe("product_category", "choice", options=(
                "Electronics", "Clothing", "Home", "Beauty", "Sports", "Books",
            )),
            ColumnRecipe("satisfaction_overall", "int", low=1, high=10),
            ColumnRecipe("satisfaction_quality", "int", missing=2, low=1, high=10),
            ColumnRecipe("satisfaction_price", "int", missing=1, low=1, high=10),
            ColumnRecipe("satisfaction_service", "int", missing=3, low=1, high=10),
            ColumnRecipe("likely_to_recommend", "int", missing=4, low=0, high=10),
            ColumnRecipe("feedback", "text", missing=45, options=_FEEDBACK),
        ),
    ),
    "employee-engagement": SampleDataset(
        key="employee-engagement",
        title="Employee Engagement Survey",
        rows=200,
        columns=(
            ColumnRecipe("employee_id", "id", low=2001),
            ColumnRecipe("department", "choice", options=(
                "Marketing", "Sales", "Engineering", "Finance", "HR", "Support", "Legal", "Operations",
            )),
            ColumnRecipe("role_level", "choice", missing=2, options=(
                "Individual Contributor", "Senior", "Lead", "Manager", "Director",
            )),
            ColumnRecipe("tenure_years", "float", missing=5, low=0, high=20),
            ColumnRecipe("gender", "choice", missing=4, options=("Female", "Male", "Non-binary")),
            ColumnRecipe("remote_work", "choice", options=("Remote", "Hybrid", "On-site")),
            ColumnRecipe("satisfaction_overall", "int", missing=2, low=1, high=10),
            ColumnRecipe("satisfaction_management", "int", missing=5, low=1, high=10),
            ColumnRecipe("satisfaction_compensation", "int", missing=3, low=1, high=10),
            ColumnRecipe("satisfaction_worklife", "int", missing=4, low=1, high=10),
            ColumnRecipe("likely_to_stay", "int", missing=8, low=0, high=10),
            ColumnRecipe("review_date", "date", low=0, high=365),
        ),
    ),
    "market-research": SampleDataset(
        key="market-research",
        title="Market Research Study",
        rows=300,
        columns=(
            ColumnRecipe("participant_id", "id", low=3001),
            ColumnRecipe("age", "int", missing=8, low=18, high=78),
            ColumnRecipe("gender", "choice", missing=5, options=("Female", "Male", "Non-binary")),
            ColumnRecipe("location_type", "choice", missing=3, options=("Urban", "Suburban", "Rural")),
            ColumnRecipe("region", "choice", missing=2, options=("Northeast", "Midwest", "South", "West")),
            ColumnRecipe("product_a_rating", "int", missing=5, low=1, high=10),
            ColumnRecipe("product_b_rating", "int", missing=6, low=1, high=10),
            ColumnRecipe("product_c_rating", "int", missing=7, low=1, high=10),
            ColumnRecipe("purchase_intent", "int", missing=9, low=0, high=10),
            ColumnRecipe("survey_date", "date", low=0, high=90),
        ),
    ),
}


def _column(recipe: ColumnRecipe, rows: int, rng: np.random.Generator) -> List:
    if recipe.kind == "id":
        return [int(recipe.low) + i for i in range(rows)]
    if recipe.kind == "int":
        return [int(v) for v in rng.integers(int(recipe.low), int(recipe.high) + 1, size=rows)]
    if recipe.kind == "float":
        return [round(float(v), 1) for v in rng.uniform(recipe.low, recipe.high, size=rows)]
    if recipe.kind in ("choice", "text"):
        return [recipe.options[i] for i in rng.integers(0, len(recipe.options), size=rows)]
    if recipe.kind == "date":
        start = date(2023, 1, 1)
        return [
            (start + timedelta(days=int(d))).isoformat()
            for d in rng.integers(int(recipe.low), int(recipe.high) + 1, size=rows)
        ]
    raise ValueError(f"Unknown column kind: {recipe.kind}")


def generate_sample(key: str, seed: Optional[int] = RANDOM_STATE) -> pd.DataFrame:
    """Rows for one of ``SAMPLE_DATASETS``; the same seed gives the same rows."""
    if key not in SAMPLE_DATASETS:
        raise ValueError(f"Unknown sample dataset '{key}'. Available: {', '.join(SAMPLE_DATASETS)}")
    dataset = SAMPLE_DATASETS[key]
    rng = np.random.default_rng(seed)
    data = {}
    for recipe in dataset.columns:
        values = _column(recipe, dataset.rows, rng)
        for pos in rng.choice(dataset.rows, size=min(recipe.missing, dataset.rows), replace=False):
            values[int(pos)] = None
        data[recipe.name] = values
    return pd.DataFrame(data, dtype=object)
