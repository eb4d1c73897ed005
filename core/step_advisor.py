"""
Step Advisor: proposes a change descriptor for each preparation step.

Suggestions are never applied on their own: the UI shows them, the user
edits or accepts them, and only then does the facade apply them.
"""

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from config.settings import (
    COMPOSITE_AUTO_SELECT_ITEMS,
    COMPOSITE_MIN_ITEMS,
    DOMINANT_VALUE_RATIO,
    HIGH_MISSING_THRESHOLD,
    ID_UNIQUE_RATIO,
    LOW_VARIANCE_UNIQUE_RATIO,
    INCONSISTENCY_MAX_LEVELS,
    INCONSISTENCY_MAX_VARIANTS,
)
from core.changes import (
    ChangeDescriptor,
    CompositeChange,
    CompositeScore,
    DuplicatesChange,
    MissingValuesChange,
    Recoding,
    RecodeChange,
    RemoveColumnsChange,
    Rename,
    StandardizeChange,
)
from core.snapshot_store import Snapshot
from core.step_graph import StepKind
from core.transformations import find_exact_duplicate_groups
from core.variables import VariableType, category_label, is_missing, raw_label

_SPECIAL_CHARS = re.compile(r"[^a-zA-Z0-9_]")
_Q_PREFIX = re.compile(r"^q\d+", re.IGNORECASE)
_Q_LABEL = re.compile(r"^q(\d+)_(.+)$", re.IGNORECASE)
_STEM_NUMBER = re.compile(r"^([a-z]+)_?(\d+)$", re.IGNORECASE)
_Q_STEM = re.compile(r"^q(\d+)_([a-z]+)$", re.IGNORECASE)
_PREVIEW_COLUMNS = 3


@dataclass
class DuplicateGroup:
    """Rows identical across every column."""
    group_id: int
    count: int
    row_positions: List[int]
    sample_values: Dict[str, str]


@dataclass
class InconsistencyGroup:
    """Spellings of one category that differ only by case or whitespace."""
    variable: str
    values: List[str]
    canonical: str
    row_positions: List[int]


@dataclass
class RemovalCandidate:
    name: str
    reason: str


@dataclass
class CompositeCandidate:
    composite: CompositeScore
    selected: bool


@dataclass
class StepSuggestion:
    """A proposed change plus the findings that motivated it."""
    kind: StepKind
    change: ChangeDescriptor
    findings: List[str] = field(default_factory=list)
    details: dict = field(default_factory=dict)


# ═══════════════════════════════════════════════════════
# Scans
# ═══════════════════════════════════════════════════════

def scan_duplicate_groups(frame: pd.DataFrame) -> List[DuplicateGroup]:
    return describe_duplicate_groups(frame, find_exact_duplicate_groups(frame))


def describe_duplicate_groups(frame: pd.DataFrame, position_groups: List[List[int]]) -> List[DuplicateGroup]:
    groups = []
    preview = list(frame.columns[:_PREVIEW_COLUMNS])
    for group_id, positions in enumerate(position_groups, start=1):
        first = frame.iloc[positions[0]]
        groups.append(DuplicateGroup(
            group_id=group_id,
            count=len(positions),
            row_positions=sorted(positions),
            sample_values={col: "NULL" if first[col] is None else str(first[col]) for col in preview},
        ))
    return groups


def _normalized(label: str) -> str:
    return " ".join(label.split()).lower()


def scan_inconsistencies(frame: pd.DataFrame) -> List[InconsistencyGroup]:
    """Case/whitespace variant groups in columns with a handful of distinct values."""
    found = []
    for column in frame.columns:
        labels = [raw_label(v) for v in frame[column]]
        distinct = list(dict.fromkeys(lbl for lbl in labels if lbl is not None))
        if len(distinct) < 2 or len(distinct) > INCONSISTENCY_MAX_LEVELS:
            continue

        by_normalized = defaultdict(list)
        for label in distinct:
            by_normalized[_normalized(label)].append(label)

        for variants in by_normalized.values():
            if len(variants) < 2 or len(variants) > INCONSISTENCY_MAX_VARIANTS:
                continue
            wanted = set(variants)
            found.append(InconsistencyGroup(
                variable=str(column),
                values=variants,
                canonical=" ".join(variants[0].split()),
                row_positions=[pos for pos, lbl in enumerate(labels) if lbl in wanted],
            ))
    return found


def standardized_name(name: str) -> str:
    """Readable form of a raw column name, e.g. ``q3_job_role`` -> ``Job role (Q3)``."""
    has_underscore = "_" in name
    has_special = bool(_SPECIAL_CHARS.search(name))
    all_lower = name == name.lower() and re.search(r"[a-z]", name) is not None
    is_question = bool(_Q_PREFIX.match(name))

    result = name
    q_match = _Q_LABEL.match(name) if is_question else None
    if q_match:
        label = q_match.group(2).replace("_", " ")
        result = f"{label[:1].upper()}{label[1:]} (Q{q_match.group(1)})"
    elif has_underscore and not is_question:
        result = " ".join(word[:1].upper() + word[1:] for word in name.split("_"))
    elif all_lower and not is_question:
        result = name[:1].upper() + name[1:]

    if has_special:
        result = re.sub(r"[^a-zA-Z0-9_\s()]", "", result)
    return result.strip() or name


def needs_standardizing(name: str) -> bool:
    all_lower = name == name.lower() and re.search(r"[a-z]", name) is not None
    return (
        "_" in name
        or bool(_SPECIAL_CHARS.search(name))
        or (all_lower and len(name) > 3)
        or bool(_Q_PREFIX.match(name))
    )


def _preferred_label(variants: List[str]) -> str:
    def is_proper(label: str) -> bool:
        return label == label[:1].upper() + label[1:].lower()

    return sorted(variants, key=lambda lbl: (not is_proper(lbl), len(lbl)))[0]


# ═══════════════════════════════════════════════════════
# Advisor
# ═══════════════════════════════════════════════════════

class StepAdvisor:
    """
    Scans one snapshot and suggests a change for any pipeline step.

    Usage:
        advisor = StepAdvisor(store.snapshot)
        suggestion = advisor.suggest(StepKind.MISSING_VALUES)
    """

    def __init__(self, snapshot: Snapshot):
        self.snapshot = snapshot
        self.frame = snapshot.frame
        self._suggesters = {
            StepKind.MISSING_VALUES: self._suggest_missing_values,
            StepKind.STANDARDIZE_VARIABLES: self._suggest_standardize,
            StepKind.FIX_DUPLICATES: self._suggest_duplicates,
            StepKind.RECODE_VARIABLES: self._suggest_recode,
            StepKind.COMPOSITE_SCORES: self._suggest_composites,
            StepKind.REMOVE_COLUMNS: self._suggest_removals,
        }

    def suggest(self, kind: StepKind) -> StepSuggestion:
        return self._suggesters[StepKind.parse(kind)]()

    def _missing_count(self, name: str) -> int:
        return int(self.frame[name].map(is_missing).sum())

    def _unique_count(self, name: str) -> int:
        return len({category_label(v) for v in self.frame[name] if not is_missing(v)})

    def _dominant_share(self, name: str) -> float:
        labels = self.frame[name].map(category_label).dropna()
        return float(labels.value_counts().iloc[0] / len(labels)) if len(labels) else 0.0

    # ── missingValues ──────────────────────────────────

    def _suggest_missing_values(self) -> StepSuggestion:
        rows = max(self.snapshot.row_count, 1)
        strategies, invalid, findings = {}, {}, []
        for var in self.snapshot.variables:
            missing = self._missing_count(var.name)
            if missing == 0 and not var.is_mixed_numeric:
                continue
            if var.is_mixed_numeric:
                strategies[var.name] = "ignore"
                invalid[var.name] = "null"
                findings.append(
                    f"'{var.name}' is {var.numeric_percentage}% numeric; invalid values: {var.invalid_values}"
                )
                continue
            if missing / rows > HIGH_MISSING_THRESHOLD:
                strategies[var.name] = "drop"
            elif var.type == VariableType.NUMERIC:
                strategies[var.name] = "mean"
            elif var.type == VariableType.CATEGORICAL:
                strategies[var.name] = "mode"
            else:
                strategies[var.name] = "drop"
            findings.append(f"'{var.name}' has {missing} missing value(s) ({missing / rows:.0%})")

        return StepSuggestion(
            kind=StepKind.MISSING_VALUES,
            change=MissingValuesChange(strategies=strategies, invalid_value_handling=invalid),
            findings=findings,
        )

    # ── standardizeVariables ───────────────────────────

    def _suggest_standardize(self) -> StepSuggestion:
        taken = set(self.snapshot.names)
        renames, findings = [], []
        for name in self.snapshot.names:
            if not needs_standardizing(name):
                continue
            new_name = standardized_name(name)
            if new_name == name or new_name in taken:
                continue
            taken.add(new_name)
            renames.append(Rename(name, new_name))
            findings.append(f"'{name}' -> '{new_name}'")
        return StepSuggestion(
            kind=StepKind.STANDARDIZE_VARIABLES,
            change=StandardizeChange(renames=tuple(renames)),
            findings=findings,
        )

    # ── fixDuplicates ──────────────────────────────────

    def _suggest_duplicates(self) -> StepSuggestion:
        groups = scan_duplicate_groups(self.frame)
        inconsistencies = scan_inconsistencies(self.frame)
        standardized: Dict[str, Dict[str, str]] = defaultdict(dict)
        for group in inconsistencies:
            for value in group.values:
                if value != group.canonical:
                    standardized[group.variable][value] = group.canonical

        findings = [
            f"Group {g.group_id}: {g.count} identical rows at positions {g.row_positions[:3]}"
            for g in groups
        ] + [
            f"'{g.variable}' spells one value as {g.values}"
            for g in inconsistencies
        ]
        return StepSuggestion(
            kind=StepKind.FIX_DUPLICATES,
            change=DuplicatesChange(
                remove_exact_duplicates=bool(groups),
                standardized_values=dict(standardized),
            ),
            findings=findings,
            details={"duplicate_groups": groups, "inconsistencies": inconsistencies},
        )

    # ── recodeVariables ────────────────────────────────

    def _suggest_recode(self) -> StepSuggestion:
        recodings, findings = {}, []
        for var in self.snapshot.variables:
            if var.type != VariableType.CATEGORICAL or not var.coding:
                continue
            by_normalized = defaultdict(list)
            for label in var.coding:
                by_normalized[_normalized(label)].append(label)

            labels = {}
            for variants in by_normalized.values():
                if len(variants) < 2 and variants[0] == " ".join(variants[0].split()):
                    continue
                best = " ".join(_preferred_label(variants).split())
                labels.update({v: best for v in variants if v != best})
            if labels:
                recodings[var.name] = Recoding(labels=labels)
                findings.append(f"'{var.name}': {labels}")
        return StepSuggestion(
            kind=StepKind.RECODE_VARIABLES,
            change=RecodeChange(recodings=recodings),
            findings=findings,
        )

    # ── compositeScores ────────────────────────────────

    def composite_candidates(self) -> List[CompositeCandidate]:
        stems: Dict[str, List[str]] = defaultdict(list)
        for var in self.snapshot.variables:
            if var.type != VariableType.NUMERIC:
                continue
            match = _STEM_NUMBER.match(var.name)
            if match:
                stems[match.group(1).lower()].append(var.name)
            q_match = _Q_STEM.match(var.name)
            if q_match:
                stems[q_match.group(2).lower()].append(var.name)

        taken = set(self.snapshot.names)
        candidates = []
        for stem, items in stems.items():
            if len(items) < COMPOSITE_MIN_ITEMS:
                continue
            name = f"{stem[:1].upper()}{stem[1:]}_Score"
            if name in taken:
                continue
            taken.add(name)
            candidates.append(CompositeCandidate(
                composite=CompositeScore(name=name, variables=tuple(items), method="mean"),
                selected=len(items) >= COMPOSITE_AUTO_SELECT_ITEMS,
            ))
        return candidates

    def _suggest_composites(self) -> StepSuggestion:
        candidates = self.composite_candidates()
        return StepSuggestion(
            kind=StepKind.COMPOSITE_SCORES,
            change=CompositeChange(composites=tuple(c.composite for c in candidates if c.selected)),
            findings=[
                f"{c.composite.name} from {list(c.composite.variables)}"
                + ("" if c.selected else " (not pre-selected)")
                for c in candidates
            ],
            details={"candidates": candidates},
        )

    # ── removeColumns ──────────────────────────────────

    def removal_candidates(self) -> List[RemovalCandidate]:
        rows = max(self.snapshot.row_count, 1)
        candidates = []
        for var in self.snapshot.variables:
            missing_ratio = self._missing_count(var.name) / rows
            unique_ratio = self._unique_count(var.name) / rows
            if missing_ratio > HIGH_MISSING_THRESHOLD:
                candidates.append(RemovalCandidate(var.name, "High missing data (>50%)"))
            elif unique_ratio > ID_UNIQUE_RATIO and var.type != VariableType.NUMERIC:
                candidates.append(RemovalCandidate(var.name, "Likely ID field or unique identifier"))
            elif var.type == VariableType.TEXT:
                continue
            elif unique_ratio < LOW_VARIANCE_UNIQUE_RATIO:
                candidates.append(RemovalCandidate(var.name, "Low variance (very few unique values)"))
            elif self._dominant_share(var.name) > DOMINANT_VALUE_RATIO:
                candidates.append(RemovalCandidate(var.name, "Low variance (almost all values identical)"))
        return candidates

    def _suggest_removals(self) -> StepSuggestion:
        candidates = self.removal_candidates()
        columns = tuple(c.name for c in candidates)
        findings = [f"'{c.name}': {c.reason}" for c in candidates]
        if len(columns) == len(self.snapshot.variables):
            # the dataset must keep at least one variable
            findings.append("Every variable qualifies for removal; nothing pre-selected")
            columns = ()
        return StepSuggestion(
            kind=StepKind.REMOVE_COLUMNS,
            change=RemoveColumnsChange(columns=columns),
            findings=findings,
            details={"candidates": candidates},
        )


def suggest_change(snapshot: Snapshot, kind: StepKind) -> Optional[StepSuggestion]:
    if snapshot is None:
        return None
    return StepAdvisor(snapshot).suggest(kind)
