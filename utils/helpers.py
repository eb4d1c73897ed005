"""Utility functions used across modules."""

import math
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd


def format_number(n: int) -> str:
    """Format large numbers with commas."""
    return f"{n:,}"


def format_p_value(p: float) -> str:
    return "< 0.001" if p < 0.001 else f"{p:.3f}"


def dataframe_to_excel_bytes(df: pd.DataFrame) -> bytes:
    """Convert DataFrame to Excel bytes for download."""
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Prepared Data")
    return buffer.getvalue()


# ═══════════════════════════════════════════════════════
# Row <-> frame conversion
# ═══════════════════════════════════════════════════════

def python_value(value: Any) -> Any:
    """Unbox numpy scalars and turn NaN/NaT into None."""
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    return value


def to_object_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Object-dtype copy of ``df`` with every missing cell set to None."""
    out = df.astype(object)
    out = out.where(pd.notna(out), None)
    return out.reset_index(drop=True)


def records_to_frame(rows: Iterable[Dict[str, Any]], columns: Optional[List[str]] = None) -> pd.DataFrame:
    """Build an object-dtype frame from row mappings."""
    df = pd.DataFrame.from_records(list(rows), columns=columns)
    return to_object_frame(df)


def frame_to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Plain ``list[dict]`` rows with Python scalars and None for missing."""
    columns = list(df.columns)
    return [
        {col: python_value(value) for col, value in zip(columns, row)}
        for row in df.itertuples(index=False, name=None)
    ]
