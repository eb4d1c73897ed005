"""
Data Quality Report: scans a freshly ingested snapshot for problems the
preparation pipeline can fix, and scores the dataset 0-100.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import pandas as pd

from config.settings import (
    DOMINANT_VALUE_RATIO,
    HIGH_CARDINALITY_MIN_LEVELS,
    HIGH_CARDINALITY_RATIO,
    OUTLIER_IQR_MULTIPLIER,
    QUALITY_DUPLICATES_HIGH,
    QUALITY_MISSING_HIGH,
    QUALITY_MISSING_MEDIUM,
    SEVERITY_WEIGHTS,
)
from core.snapshot_store import Snapshot
from core.step_advisor import scan_duplicate_groups, scan_inconsistencies
from core.variables import VariableType, category_label, is_missing, to_number


class IssueType(Enum):
    MISSING = "missing"
    DUPLICATES = "duplicates"
    INCONSISTENT = "inconsistent"
    OUTLIERS = "outliers"
    CONSTANT = "constant"
    HIGH_CARDINALITY = "high_cardinality"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class QualityIssue:
    """A single detected data quality problem."""
    issue_type: IssueType
    severity: Severity
    title: str
    description: str
    suggestion: str
    affected_column: Optional[str] = None
    count: Optional[int] = None
    percentage: Optional[float] = None
    examples: list = field(default_factory=list)


@dataclass
class QualityReport:
    issues: List[QualityIssue]
    overall_score: int
    summary: str


def quality_summary(score: int) -> str:
    if score >= 90:
        return "Excellent data quality with minimal issues detected."
    if score >= 75:
        return "Good data quality with some minor issues to address."
    if score >= 60:
        return "Moderate data quality - several issues should be resolved."
    return "Poor data quality - significant issues need attention before analysis."


class DataQualityChecker:
    """
    Scans a snapshot and produces a QualityReport.

    Detection pipeline:
        1. Missing values per column
        2. Exact duplicate rows
        3. Case/whitespace variants of categorical values
        4. Outliers in numeric columns (IQR method)
        5. Constant or near-constant columns
        6. High-cardinality categorical columns
    """

    def __init__(self, snapshot: Snapshot):
        self.snapshot = snapshot
        self.df = snapshot.frame
        self.issues: List[QualityIssue] = []

    def run(self) -> QualityReport:
        self.issues = []
        if self.snapshot.row_count == 0 or not self.snapshot.variables:
            return QualityReport([], 100, "No data available for quality analysis.")

        self._detect_missing()
        self._detect_duplicates()
        self._detect_inconsistencies()
        self._detect_outliers()
        self._detect_constant_columns()
        self._detect_high_cardinality()

        severity_order = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}
        self.issues.sort(key=lambda issue: severity_order[issue.severity])

        deduction = sum(SEVERITY_WEIGHTS[issue.severity.value] for issue in self.issues)
        score = max(0, 100 - deduction)
        return QualityReport(self.issues, score, quality_summary(score))

    def _detect_missing(self):
        rows = self.snapshot.row_count
        for var in self.snapshot.variables:
            missing = int(self.df[var.name].map(is_missing).sum())
            ratio = missing / rows
            if ratio > QUALITY_MISSING_HIGH:
                severity, title = Severity.HIGH, f"High Missing Values in '{var.name}'"
                suggestion = "Consider imputing values or removing this column if too sparse."
            elif ratio > QUALITY_MISSING_MEDIUM:
                severity, title = Severity.MEDIUM, f"Missing Values in '{var.name}'"
                suggestion = "Consider handling missing values in Data Preparation."
            else:
                continue
            self.issues.append(QualityIssue(
                issue_type=IssueType.MISSING,
                severity=severity,
                title=title,
                description=f"{missing} missing values ({ratio * 100:.1f}%)",
                suggestion=suggestion,
                affected_column=var.name,
                count=missing,
                percentage=round(ratio * 100, 1),
            ))

    def _detect_duplicates(self):
        groups = scan_duplicate_groups(self.df)
        extra_rows = sum(g.count - 1 for g in groups)
        if not extra_rows:
            return
        ratio = extra_rows / self.snapshot.row_count
        self.issues.append(QualityIssue(
            issue_type=IssueType.DUPLICATES,
            severity=Severity.HIGH if ratio > QUALITY_DUPLICATES_HIGH else Severity.MEDIUM,
            title="Duplicate Rows Detected",
            description=f"{extra_rows} duplicate rows found in {len(groups)} group(s)",
            suggestion="Review and remove duplicate entries in Data Preparation.",
            count=extra_rows,
            percentage=round(ratio * 100, 1),
        ))

    def _detect_inconsistencies(self):
        for group in scan_inconsistencies(self.df):
            self.issues.append(QualityIssue(
                issue_type=IssueType.INCONSISTENT,
                severity=Severity.MEDIUM,
                title=f"Inconsistent Values in '{group.variable}'",
                description="Found variations in categorical responses",
                suggestion="Standardize these values to ensure consistent analysis.",
                affected_column=group.variable,
                count=len(group.row_positions),
                examples=list(group.values),
            ))

    def _detect_outliers(self):
        for var in self.snapshot.variables:
            if var.type != VariableType.NUMERIC:
                continue
            series = pd.Series([n for n in map(to_number, self.df[var.name]) if n is not None], dtype=float)
            if series.empty:
                continue
            q1, q3 = series.quantile(0.25), series.quantile(0.75)
            iqr = q3 - q1
            if iqr == 0:
                continue
            lower = q1 - OUTLIER_IQR_MULTIPLIER * iqr
            upper = q3 + OUTLIER_IQR_MULTIPLIER * iqr
            outliers = series[(series < lower) | (series > upper)]
            if outliers.empty:
                continue
            self.issues.append(QualityIssue(
                issue_type=IssueType.OUTLIERS,
                severity=Severity.LOW,
                title=f"Outliers Detected in '{var.name}'",
                description=(
                    f"{len(outliers)} potential outliers outside [{lower:.2f}, {upper:.2f}]"
                ),
                suggestion="Review extreme values - they may be data entry errors or genuine edge cases.",
                affected_column=var.name,
                count=len(outliers),
                percentage=round(len(outliers) / len(series) * 100, 1),
            ))

    def _detect_constant_columns(self):
        for var in self.snapshot.variables:
            labels = self.df[var.name].map(category_label).dropna()
            if labels.empty:
                continue
            dominant = labels.value_counts().iloc[0] / len(labels)
            if dominant <= DOMINANT_VALUE_RATIO:
                continue
            self.issues.append(QualityIssue(
                issue_type=IssueType.CONSTANT,
                severity=Severity.MEDIUM,
                title=f"Low Variance in '{var.name}'",
                description=f"{dominant * 100:.1f}% of values are the same",
                suggestion="Consider removing this column as it provides little analytical value.",
                affected_column=var.name,
                percentage=round(dominant * 100, 1),
            ))

    def _detect_high_cardinality(self):
        rows = self.snapshot.row_count
        for var in self.snapshot.variables:
            if var.type != VariableType.CATEGORICAL:
                continue
            levels = self.df[var.name].map(category_label).dropna().nunique()
            if levels / rows > HIGH_CARDINALITY_RATIO and levels > HIGH_CARDINALITY_MIN_LEVELS:
                self.issues.append(QualityIssue(
                    issue_type=IssueType.HIGH_CARDINALITY,
                    severity=Severity.LOW,
                    title=f"High Cardinality in '{var.name}'",
                    description=f"{levels} unique values - likely not useful for group analysis",
                    suggestion="Consider excluding from statistical analysis or grouping similar values.",
                    affected_column=var.name,
                    count=int(levels),
                ))
