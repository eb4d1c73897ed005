"""
Preparation step transformations.

Every step is a pure function of (current snapshot, change descriptor): the
snapshot is never modified, a new frame and a new list of variable
descriptors are returned. Categorical labels, codes and row values only
ever change together, through ``relabel``.
"""

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import pandas as pd

from config.settings import COMPOSITE_MIN_ITEMS
from core.changes import (
    ChangeDescriptor,
    CompositeChange,
    DuplicatesChange,
    MissingValuesChange,
    RecodeChange,
    RemoveColumnsChange,
    StandardizeChange,
)
from core.errors import InsufficientDataError, InvalidChangeError, UnknownVariableError, VariableTypeError
from core.snapshot_store import Snapshot
from core.step_graph import StepKind
from core.variables import (
    VariableDescriptor,
    VariableType,
    category_label,
    is_missing,
    raw_label,
    refresh_variable,
    to_number,
)
from utils.helpers import python_value


@dataclass
class StepReport:
    """What a step did (or found nothing to do)."""
    kind: Optional[StepKind] = None
    rows_before: int = 0
    rows_after: int = 0
    columns_before: int = 0
    columns_after: int = 0
    actions_log: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


@dataclass
class StepResult:
    frame: pd.DataFrame
    variables: List[VariableDescriptor]
    report: StepReport


# ═══════════════════════════════════════════════════════
# Shared helpers
# ═══════════════════════════════════════════════════════

def _mask(column: pd.Series, predicate: Callable[[Any], bool]) -> pd.Series:
    return column.map(predicate).astype(bool)


def cell_signature(value: Any) -> tuple:
    """Type-sensitive identity of a cell for exact duplicate matching."""
    value = python_value(value)
    if value is None:
        return ("null",)
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, (int, float)):
        return ("num", float(value))
    if isinstance(value, str):
        return ("str", value)
    return ("other", repr(value))


def find_exact_duplicate_groups(frame: pd.DataFrame) -> List[List[int]]:
    """Row positions of every group of rows identical across all columns."""
    groups: Dict[tuple, List[int]] = {}
    for pos, row in enumerate(frame.itertuples(index=False, name=None)):
        groups.setdefault(tuple(cell_signature(v) for v in row), []).append(pos)
    return [positions for positions in groups.values() if len(positions) > 1]


def mapped_value(mapping: Mapping[str, Any], value: Any) -> Any:
    """Look ``value`` up by its exact text first, then by its trimmed label."""
    if is_missing(value):
        return value
    raw = raw_label(value)
    if raw in mapping:
        return mapping[raw]
    return mapping.get(category_label(value), value)


def relabel(
    values: pd.Series,
    variable: VariableDescriptor,
    label_map: Mapping[str, str],
    coding: Optional[Mapping[str, int]] = None,
) -> Tuple[pd.Series, VariableDescriptor]:
    """
    Rename category labels, rewrite row values and rebuild the coding at once.

    Without an explicit ``coding`` codes are reassigned densely in first-seen
    order of the new labels. With one, listed labels take the given codes and
    any other label gets the next free integer.
    """
    mapping = {}
    for old, new in label_map.items():
        if new is None or str(new).strip() == "":
            raise InvalidChangeError(f"New label for '{old}' in '{variable.name}' cannot be empty")
        mapping[str(old)] = str(new).strip()

    new_values = values.map(lambda v: mapped_value(mapping, v)) if mapping else values.copy()

    old_labels = list(variable.coding) if variable.coding else []
    observed = [category_label(v) for v in new_values if not is_missing(v)]
    new_labels = list(dict.fromkeys([mapping.get(lbl, lbl) for lbl in old_labels] + observed))

    if coding is None:
        new_coding = {label: code for code, label in enumerate(new_labels)}
    else:
        unknown = [label for label in coding if label not in new_labels]
        if unknown:
            raise InvalidChangeError(f"Codes given for unknown categories of '{variable.name}': {unknown}")
        new_coding = {}
        next_code = max(coding.values(), default=-1) + 1
        for label in new_labels:
            if label in coding:
                new_coding[label] = int(coding[label])
            else:
                new_coding[label] = next_code
                next_code += 1

    original = variable.original_categories if variable.original_categories is not None else old_labels
    updated = replace(variable, coding=new_coding, original_categories=list(original))
    return new_values, updated


# ═══════════════════════════════════════════════════════
# Transformer
# ═══════════════════════════════════════════════════════

class StepTransformer:
    """
    Applies one change descriptor to a snapshot.

    Steps:
        missingValues        → invalid tokens, row drops, imputation
        standardizeVariables → label maps, then simultaneous renames
        fixDuplicates        → exact duplicate removal, then token standardization
        recodeVariables      → labels and/or codes of categorical variables
        compositeScores      → new mean/sum variables
        removeColumns        → drop variables
    """

    def __init__(self):
        self.report = StepReport()
        self._appliers = {
            StepKind.MISSING_VALUES: self._missing_values,
            StepKind.STANDARDIZE_VARIABLES: self._standardize,
            StepKind.FIX_DUPLICATES: self._fix_duplicates,
            StepKind.RECODE_VARIABLES: self._recode,
            StepKind.COMPOSITE_SCORES: self._composites,
            StepKind.REMOVE_COLUMNS: self._remove_columns,
        }

    def apply(self, snapshot: Snapshot, change: ChangeDescriptor) -> StepResult:
        self.report = StepReport(
            kind=change.kind,
            rows_before=snapshot.row_count,
            columns_before=len(snapshot.variables),
        )
        frame = snapshot.frame.copy()
        variables = copy.deepcopy(list(snapshot.variables))

        if change.is_empty():
            self.report.rows_after = self.report.rows_before
            self.report.columns_after = self.report.columns_before
            self.report.warnings.append("No changes selected for this step")
            return StepResult(frame, variables, self.report)

        frame, variables = self._appliers[change.kind](frame, variables, change)
        frame = frame.reset_index(drop=True)
        variables = [refresh_variable(v, frame[v.name].tolist()) for v in variables]

        self.report.rows_after = len(frame)
        self.report.columns_after = len(variables)
        return StepResult(frame, variables, self.report)

    # ── missingValues ──────────────────────────────────

    def _missing_values(self, frame, variables, change: MissingValuesChange):
        by_name = _index(variables)
        for name in list(change.invalid_value_handling) + list(change.strategies):
            _require(by_name, name)

        for name, strategy in change.invalid_value_handling.items():
            var = by_name[name]
            if var.type != VariableType.NUMERIC:
                raise VariableTypeError(
                    f"Invalid-value handling applies to numeric columns; '{name}' is {var.type.value}"
                )
            bad = _mask(frame[name], lambda v: not is_missing(v) and to_number(v) is None)
            if strategy == "ignore" or not bad.any():
                continue
            if strategy == "null":
                replacement = None
            elif strategy == "zero":
                replacement = 0
            else:
                numbers = [n for n in map(to_number, frame[name]) if n is not None]
                if not numbers:
                    raise InsufficientDataError(f"'{name}' has no numeric values to compute a mean from")
                replacement = float(pd.Series(numbers, dtype=float).mean())
            frame.loc[bad, name] = replacement
            self.report.actions_log.append(
                f"Replaced {int(bad.sum())} invalid value(s) in '{name}' with {replacement!r}"
            )

        drop_cols = [name for name, s in change.strategies.items() if s == "drop"]
        if drop_cols:
            affected = frame[drop_cols].apply(lambda col: col.map(is_missing)).any(axis=1)
            if affected.any():
                frame = frame.loc[~affected.astype(bool)]
                self.report.actions_log.append(
                    f"Dropped {int(affected.sum())} row(s) with missing values in {drop_cols}"
                )

        for name, strategy in change.strategies.items():
            if strategy in ("drop", "ignore"):
                continue
            var = by_name[name]
            fill = self._fill_value(frame[name], var, strategy)
            missing = _mask(frame[name], is_missing)
            if missing.any():
                frame.loc[missing, name] = fill
                self.report.actions_log.append(
                    f"Filled {int(missing.sum())} missing value(s) in '{name}' with {strategy} ({fill!r})"
                )

        if not self.report.actions_log:
            self.report.warnings.append("No missing or invalid values needed handling")
        return frame, variables

    @staticmethod
    def _fill_value(column: pd.Series, var: VariableDescriptor, strategy: str):
        if strategy == "zero":
            return 0
        if strategy in ("mean", "median"):
            if var.type != VariableType.NUMERIC:
                raise VariableTypeError(
                    f"'{strategy}' imputation needs a numeric variable; '{var.name}' is {var.type.value}"
                )
            numbers = pd.Series([n for n in map(to_number, column) if n is not None], dtype=float)
            if numbers.empty:
                raise InsufficientDataError(f"'{var.name}' has no values to compute a {strategy} from")
            return float(numbers.mean() if strategy == "mean" else numbers.median())
        # mode
        if var.type != VariableType.CATEGORICAL:
            raise VariableTypeError(
                f"'mode' imputation needs a categorical variable; '{var.name}' is {var.type.value}"
            )
        present = column[~_mask(column, is_missing)]
        if present.empty:
            raise InsufficientDataError(f"'{var.name}' has no values to compute a mode from")
        return present.mode().iloc[0]

    # ── standardizeVariables ───────────────────────────

    def _standardize(self, frame, variables, change: StandardizeChange):
        by_name = _index(variables)
        for name, mapping in change.label_maps.items():
            var = _require(by_name, name)
            if not mapping:
                continue
            if var.type != VariableType.CATEGORICAL:
                raise VariableTypeError(f"Label standardization needs a categorical variable; '{name}' is {var.type.value}")
            frame[name], by_name[name] = relabel(frame[name], var, mapping)
            self.report.actions_log.append(f"Standardized {len(mapping)} label(s) in '{name}'")

        rename_map: Dict[str, str] = {}
        for rename in change.renames:
            _require(by_name, rename.old_name)
            new_name = rename.new_name.strip()
            if not new_name:
                raise InvalidChangeError(f"New name for '{rename.old_name}' cannot be empty")
            if rename.old_name in rename_map:
                raise InvalidChangeError(f"'{rename.old_name}' is renamed more than once")
            rename_map[rename.old_name] = new_name

        final_names = [rename_map.get(v.name, v.name) for v in variables]
        clashes = sorted({n for n in final_names if final_names.count(n) > 1})
        if clashes:
            raise InvalidChangeError(f"Renaming would create duplicate variable names: {clashes}")

        frame = frame.rename(columns=rename_map)
        variables = [replace(by_name[v.name], name=rename_map.get(v.name, v.name)) for v in variables]
        for old, new in rename_map.items():
            self.report.actions_log.append(f"Renamed '{old}' to '{new}'")
        return frame, variables

    # ── fixDuplicates ──────────────────────────────────

    def _fix_duplicates(self, frame, variables, change: DuplicatesChange):
        by_name = _index(variables)
        if change.remove_exact_duplicates:
            groups = find_exact_duplicate_groups(frame)
            drop_positions = sorted(pos for group in groups for pos in group[1:])
            if drop_positions:
                frame = frame.drop(index=frame.index[drop_positions])
                self.report.actions_log.append(
                    f"Removed {len(drop_positions)} exact duplicate row(s) from {len(groups)} group(s)"
                )
            else:
                self.report.warnings.append("No exact duplicate rows found")

        for name, mapping in change.standardized_values.items():
            var = _require(by_name, name)
            mapping = {k: v for k, v in mapping.items() if k != v}
            if not mapping:
                continue
            if var.type == VariableType.CATEGORICAL:
                frame[name], by_name[name] = relabel(frame[name], var, mapping)
            else:
                lookup = {str(k): v for k, v in mapping.items()}
                frame[name] = frame[name].map(lambda v: mapped_value(lookup, v))
            self.report.actions_log.append(
                f"Standardized {len(mapping)} inconsistent value(s) in '{name}'"
            )
        return frame, [by_name[v.name] for v in variables]

    # ── recodeVariables ────────────────────────────────

    def _recode(self, frame, variables, change: RecodeChange):
        by_name = _index(variables)
        for name, recoding in change.recodings.items():
            var = _require(by_name, name)
            if recoding.is_empty():
                continue
            if var.type != VariableType.CATEGORICAL:
                raise VariableTypeError(f"Only categorical variables can be recoded; '{name}' is {var.type.value}")
            frame[name], by_name[name] = relabel(frame[name], var, recoding.labels, recoding.coding)
            self.report.actions_log.append(
                f"Recoded '{name}' ({len(recoding.labels)} label change(s), "
                f"{'custom' if recoding.coding else 'dense'} codes)"
            )
        return frame, [by_name[v.name] for v in variables]

    # ── compositeScores ────────────────────────────────

    def _composites(self, frame, variables, change: CompositeChange):
        by_name = _index(variables)
        for composite in change.composites:
            name = composite.name.strip()
            if not name:
                raise InvalidChangeError("Composite score needs a name")
            if name in by_name:
                raise InvalidChangeError(f"A variable named '{name}' already exists")
            items = list(dict.fromkeys(composite.variables))
            if len(items) < COMPOSITE_MIN_ITEMS:
                raise InvalidChangeError(
                    f"Composite '{name}' needs at least {COMPOSITE_MIN_ITEMS} source variables"
                )
            for item in items:
                var = _require(by_name, item)
                if var.type != VariableType.NUMERIC:
                    raise VariableTypeError(
                        f"Composite '{name}' can only use numeric variables; '{item}' is {var.type.value}"
                    )

            numeric = frame[items].apply(lambda col: col.map(to_number)).astype(float)
            if composite.method == "mean":
                score = numeric.mean(axis=1, skipna=True)
            else:
                score = numeric.sum(axis=1, skipna=True, min_count=1)
            frame[name] = pd.Series([python_value(v) for v in score], index=frame.index, dtype=object)

            new_var = VariableDescriptor(name=name, type=VariableType.NUMERIC)
            by_name[name] = new_var
            variables = variables + [new_var]
            self.report.actions_log.append(
                f"Created '{name}' as the {composite.method} of {len(items)} item(s)"
            )
        return frame, [by_name[v.name] for v in variables]

    # ── removeColumns ──────────────────────────────────

    def _remove_columns(self, frame, variables, change: RemoveColumnsChange):
        by_name = _index(variables)
        columns = list(dict.fromkeys(change.columns))
        for name in columns:
            _require(by_name, name)
        if len(columns) == len(variables):
            raise InvalidChangeError("Cannot remove every variable from the dataset")
        frame = frame.drop(columns=columns)
        self.report.actions_log.append(f"Removed {len(columns)} column(s): {columns}")
        return frame, [v for v in variables if v.name not in set(columns)]


def apply_change(snapshot: Snapshot, change: ChangeDescriptor) -> StepResult:
    """Apply ``change`` to ``snapshot`` without modifying it."""
    return StepTransformer().apply(snapshot, change)


def _index(variables: List[VariableDescriptor]) -> Dict[str, VariableDescriptor]:
    return {v.name: v for v in variables}


def _require(by_name: Dict[str, VariableDescriptor], name: str) -> VariableDescriptor:
    if name not in by_name:
        raise UnknownVariableError(name)
    return by_name[name]
