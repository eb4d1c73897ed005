"""
Variable descriptors: per-column metadata for a dataset snapshot.

Types are inferred from a bounded sample of rows (at most
``INFERENCE_SAMPLE_SIZE``); later preparation steps refresh the counters
of the descriptors they touch.
"""

import math
import re
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from config.settings import (
    CATEGORICAL_MAX_LEVELS,
    DATE_PATTERN,
    INFERENCE_SAMPLE_SIZE,
    MIXED_NUMERIC_THRESHOLD,
)

_DATE_RE = re.compile(DATE_PATTERN)


class VariableType(str, Enum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    DATE = "date"
    TEXT = "text"


@dataclass
class VariableDescriptor:
    """Metadata for one column of the dataset."""
    name: str
    type: VariableType
    missing: int = 0
    unique: int = 0
    example: str = "N/A"
    coding: Optional[Dict[str, int]] = None
    original_categories: Optional[List[str]] = None
    invalid_values: Optional[List[str]] = None
    numeric_percentage: Optional[float] = None

    def __post_init__(self):
        self.type = VariableType(self.type)

    @property
    def is_mixed_numeric(self) -> bool:
        return self.type == VariableType.NUMERIC and bool(self.invalid_values)

    @property
    def categories(self) -> List[str]:
        return list(self.coding) if self.coding else []

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "VariableDescriptor":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


# ═══════════════════════════════════════════════════════
# Value helpers
# ═══════════════════════════════════════════════════════

def is_missing(value: Any) -> bool:
    """None, NaN and blank strings all count as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (float, np.floating)):
        return math.isnan(value)
    return value is pd.NaT


def to_number(value: Any) -> Optional[float]:
    """Parse a cell as a finite float, or return None."""
    if is_missing(value) or isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def raw_label(value: Any) -> Optional[str]:
    """Cell value as text, surrounding whitespace kept; None when missing."""
    if is_missing(value):
        return None
    if isinstance(value, np.generic):
        value = value.item()
    return str(value)


def category_label(value: Any) -> Optional[str]:
    """String label used for categorical grouping; None when missing."""
    label = raw_label(value)
    return None if label is None else label.strip()


def _first_seen(values: Sequence[Any]) -> List[Any]:
    seen = {}
    for v in values:
        seen.setdefault(v, None)
    return list(seen)


# ═══════════════════════════════════════════════════════
# Inference
# ═══════════════════════════════════════════════════════

def infer_variable(name: str, values: Sequence[Any]) -> VariableDescriptor:
    """Infer type and counters for one column from a sample of its values."""
    present = [v for v in values if not is_missing(v)]
    labels = [category_label(v) for v in present]
    distinct = _first_seen(labels)
    missing = len(values) - len(present)
    example = labels[0] if labels else "N/A"

    numeric_flags = [to_number(v) is not None for v in present]
    numeric_count = sum(numeric_flags)

    if present and numeric_count == len(present):
        return VariableDescriptor(name, VariableType.NUMERIC, missing, len(distinct), example)

    if present and numeric_count / len(present) >= MIXED_NUMERIC_THRESHOLD:
        invalid = _first_seen([lbl for lbl, ok in zip(labels, numeric_flags) if not ok])
        return VariableDescriptor(
            name, VariableType.NUMERIC, missing, len(distinct), example,
            invalid_values=invalid,
            numeric_percentage=round(numeric_count / len(present) * 100, 1),
        )

    if present and len(distinct) <= CATEGORICAL_MAX_LEVELS and len(present) > len(distinct) * 2:
        return VariableDescriptor(
            name, VariableType.CATEGORICAL, missing, len(distinct), example,
            coding={label: code for code, label in enumerate(distinct)},
            original_categories=list(distinct),
        )

    if any(_DATE_RE.match(lbl) for lbl in labels):
        return VariableDescriptor(name, VariableType.DATE, missing, len(distinct), example)

    return VariableDescriptor(name, VariableType.TEXT, missing, len(distinct), example)


def infer_variables(df: pd.DataFrame, sample_size: int = INFERENCE_SAMPLE_SIZE) -> List[VariableDescriptor]:
    """Infer descriptors for every column, looking at no more than ``sample_size`` rows."""
    sample = df.head(sample_size)
    return [infer_variable(str(col), sample[col].tolist()) for col in df.columns]


def refresh_variable(variable: VariableDescriptor, values: Sequence[Any]) -> VariableDescriptor:
    """
    Recount missing/unique/example over ``values`` keeping the type and coding.

    Mixed-numeric markers are recomputed so a column whose invalid tokens
    have all been resolved stops being reported as mixed.
    """
    present = [v for v in values if not is_missing(v)]
    labels = [category_label(v) for v in present]
    updated = replace(
        variable,
        missing=len(values) - len(present),
        unique=len(set(labels)),
        example=labels[0] if labels else "N/A",
        coding=dict(variable.coding) if variable.coding is not None else None,
        original_categories=(
            list(variable.original_categories) if variable.original_categories is not None else None
        ),
    )
    if variable.type == VariableType.NUMERIC:
        bad = [lbl for v, lbl in zip(present, labels) if to_number(v) is None]
        if bad:
            updated.invalid_values = _first_seen(bad)
            updated.numeric_percentage = round((len(present) - len(bad)) / len(present) * 100, 1)
        else:
            updated.invalid_values = None
            updated.numeric_percentage = None
    return updated
