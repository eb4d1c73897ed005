"""Handles file upload parsing for various formats."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import pandas as pd

from config.settings import INFERENCE_SAMPLE_SIZE, SUPPORTED_FILE_TYPES
from core.variables import VariableDescriptor, infer_variables, is_missing
from utils.helpers import to_object_frame

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Normalized rows plus inferred variables, ready for ``SnapshotStore.load``."""
    frame: pd.DataFrame
    variables: List[VariableDescriptor]
    metadata: dict


class DataLoader:
    """Load data from uploaded files into pandas DataFrames."""

    PARSERS = {
        "csv": "_read_csv",
        "tsv": "_read_tsv",
        "xlsx": "_read_excel",
        "xls": "_read_excel",
        "json": "_read_json",
        "parquet": "_read_parquet",
    }

    def __init__(self, sample_size: int = INFERENCE_SAMPLE_SIZE):
        self.sample_size = sample_size

    def load(self, uploaded_file, sheet_name=None) -> pd.DataFrame:
        """
        Parse an uploaded file and return a DataFrame.

        Args:
            uploaded_file: Streamlit UploadedFile object (or any named binary file)
            sheet_name: worksheet to read for Excel files; first sheet when None

        Returns:
            pd.DataFrame with raw data

        Raises:
            ValueError: If file type is unsupported
        """
        file_ext = self.extension(uploaded_file.name)

        if file_ext not in self.PARSERS:
            raise ValueError(
                f"Unsupported file type: .{file_ext}. "
                f"Supported: {', '.join(SUPPORTED_FILE_TYPES)}"
            )

        if file_ext in ("xlsx", "xls"):
            return self._read_excel(uploaded_file, sheet_name)
        parser_method = getattr(self, self.PARSERS[file_ext])
        return parser_method(uploaded_file)

    def ingest(self, uploaded_file, sheet_name=None) -> IngestionResult:
        """Parse, normalize and type a file in one go."""
        raw = self.load(uploaded_file, sheet_name)
        frame = self.normalize(raw)
        variables = infer_variables(frame, self.sample_size)
        logger.info(
            "Ingested %s: %d rows, %d columns (types inferred from %d rows)",
            uploaded_file.name, len(frame), len(variables), min(len(frame), self.sample_size),
        )
        return IngestionResult(
            frame=frame,
            variables=variables,
            metadata={
                "file_name": uploaded_file.name,
                "uploaded_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    @staticmethod
    def normalize(df: pd.DataFrame) -> pd.DataFrame:
        """Strip strings, turn blanks into None and drop rows with no values at all."""
        df = to_object_frame(df)
        df.columns = DataLoader._clean_columns(df.columns)
        if df.empty:
            return df
        df = df.apply(lambda col: col.map(lambda v: v.strip() if isinstance(v, str) else v))
        df = df.apply(lambda col: col.map(lambda v: None if is_missing(v) else v))
        empty = df.apply(lambda col: col.map(is_missing)).all(axis=1).astype(bool)
        return to_object_frame(df.loc[~empty])

    @staticmethod
    def _clean_columns(columns) -> List[str]:
        names, seen = [], {}
        for i, col in enumerate(columns):
            name = str(col).strip() or f"Column {i + 1}"
            if name in seen:
                seen[name] += 1
                name = f"{name}_{seen[name]}"
            else:
                seen[name] = 0
            names.append(name)
        return names

    @staticmethod
    def extension(file_name: str) -> str:
        return file_name.split(".")[-1].lower()

    @staticmethod
    def sheet_names(uploaded_file) -> List[str]:
        """Worksheet names of an Excel workbook (empty for other formats)."""
        if DataLoader.extension(uploaded_file.name) not in ("xlsx", "xls"):
            return []
        with pd.ExcelFile(uploaded_file, engine="openpyxl") as workbook:
            names = list(workbook.sheet_names)
        uploaded_file.seek(0)
        return names

    def _read_csv(self, file) -> pd.DataFrame:
        """Read CSV with automatic encoding fallback."""
        try:
            return pd.read_csv(file, encoding="utf-8")
        except UnicodeDecodeError:
            file.seek(0)
            return pd.read_csv(file, encoding="latin-1")

    def _read_tsv(self, file) -> pd.DataFrame:
        return pd.read_csv(file, sep="\t")

    def _read_excel(self, file, sheet_name: Optional[str] = None) -> pd.DataFrame:
        """Read Excel files (.xlsx, .xls)."""
        return pd.read_excel(file, sheet_name=sheet_name or 0, engine="openpyxl")

    def _read_json(self, file) -> pd.DataFrame:
        """Read JSON files (records or columnar format)."""
        try:
            return pd.read_json(file)
        except ValueError:
            file.seek(0)
            return pd.read_json(file, lines=True)

    def _read_parquet(self, file) -> pd.DataFrame:
        return pd.read_parquet(file)

    @staticmethod
    def get_file_info(uploaded_file) -> dict:
        """Extract metadata about the uploaded file."""
        return {
            "filename": uploaded_file.name,
            "size_bytes": uploaded_file.size,
            "size_readable": (
                f"{uploaded_file.size / 1024:.1f} KB"
                if uploaded_file.size < 1024 ** 2
                else f"{uploaded_file.size / (1024 ** 2):.1f} MB"
            ),
            "type": DataLoader.extension(uploaded_file.name),
        }
