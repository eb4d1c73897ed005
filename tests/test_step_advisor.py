import pytest

from core.changes import Rename
from core.snapshot_store import SnapshotStore
from core.step_advisor import (
    StepAdvisor,
    needs_standardizing,
    scan_duplicate_groups,
    scan_inconsistencies,
    standardized_name,
    suggest_change,
)
from core.step_graph import StepKind
from core.transformations import apply_change
from core.variables import VariableDescriptor, VariableType
from utils.helpers import records_to_frame


class TestNames:
    @pytest.mark.parametrize("raw, expected", [
        ("satisfaction_overall", "Satisfaction Overall"),
        ("q3_job_role", "Job role (Q3)"),
        ("gender", "Gender"),
        ("Income$", "Income"),
    ])
    def test_standardized_name(self, raw, expected):
        assert standardized_name(raw) == expected

    def test_short_lowercase_names_are_left_alone(self):
        assert not needs_standardizing("age")
        assert not needs_standardizing("Region")
        assert needs_standardizing("region")


class TestScans:
    def test_duplicate_groups_describe_first_row(self, make_store):
        row = {"id": "x", "score": 1}
        store = make_store([row, {"id": "y", "score": 2}, row])
        groups = scan_duplicate_groups(store.snapshot.frame)
        assert len(groups) == 1
        assert groups[0].count == 2
        assert groups[0].row_positions == [0, 2]
        assert groups[0].sample_values == {"id": "x", "score": "1"}

    def test_case_variants_found(self, make_store):
        rows = [{"region": r} for r in ["North", "north", "South", "NORTH", "South", "North"]]
        found = scan_inconsistencies(make_store(rows).snapshot.frame)
        assert len(found) == 1
        assert found[0].variable == "region"
        assert found[0].values == ["North", "north", "NORTH"]
        assert found[0].canonical == "North"
        assert found[0].row_positions == [0, 1, 3, 5]

    def test_whitespace_variants_found(self, make_store):
        answers = ["Very satisfied", "Very  satisfied", "Neutral", "Very satisfied", "Neutral", "Very satisfied ", "Neutral"]
        found = scan_inconsistencies(make_store([{"sat": a} for a in answers]).snapshot.frame)
        assert len(found) == 1
        assert found[0].values == ["Very satisfied", "Very  satisfied", "Very satisfied "]
        assert found[0].canonical == "Very satisfied"
        assert found[0].row_positions == [0, 1, 3, 5]

    def test_canonical_collapses_inner_spaces(self, make_store):
        rows = [{"sat": a} for a in ["Very  satisfied", "very satisfied", "Neutral", "Neutral"]]
        (group,) = scan_inconsistencies(make_store(rows).snapshot.frame)
        assert group.canonical == "Very satisfied"

    def test_high_cardinality_columns_skipped(self, make_store):
        rows = [{"code": f"c{i}"} for i in range(25)] + [{"code": "C1"}]
        assert scan_inconsistencies(make_store(rows).snapshot.frame) == []


class TestSuggestions:
    def test_missing_values(self, store):
        suggestion = StepAdvisor(store.snapshot).suggest(StepKind.MISSING_VALUES)
        assert suggestion.change.strategies == {"gender": "mode"}
        assert suggestion.findings == ["'gender' has 5 missing value(s) (3%)"]

    def test_missing_values_rules(self, make_store):
        rows = [
            {"score": i if i % 4 else None, "sparse": None if i < 8 else i, "note": None if i == 0 else f"n{i}"}
            for i in range(12)
        ]
        change = StepAdvisor(make_store(rows).snapshot).suggest(StepKind.MISSING_VALUES).change
        assert change.strategies == {"score": "mean", "sparse": "drop", "note": "drop"}

    def test_mixed_numeric_gets_invalid_handling(self, make_store):
        rows = [{"age": 20 + i} for i in range(9)] + [{"age": "n/a"}]
        change = StepAdvisor(make_store(rows).snapshot).suggest(StepKind.MISSING_VALUES).change
        assert change.strategies == {"age": "ignore"}
        assert change.invalid_value_handling == {"age": "null"}

    def test_standardize(self, store):
        change = StepAdvisor(store.snapshot).suggest(StepKind.STANDARDIZE_VARIABLES).change
        renames = {r.old_name: r.new_name for r in change.renames}
        assert renames["q1_trust"] == "Trust (Q1)"
        assert renames["satisfaction_overall"] == "Satisfaction Overall"
        assert "age" not in renames

    def test_standardize_skips_taken_names(self, make_store):
        store = make_store([{"first_name": "a", "First Name": "b"}])
        change = StepAdvisor(store.snapshot).suggest(StepKind.STANDARDIZE_VARIABLES).change
        assert Rename("first_name", "First Name") not in change.renames

    def test_duplicates_clean_survey(self, store):
        suggestion = StepAdvisor(store.snapshot).suggest(StepKind.FIX_DUPLICATES)
        assert suggestion.change.is_empty()
        assert suggestion.details["duplicate_groups"] == []

    def test_duplicates_suggestion_applies(self, make_store):
        rows = [{"region": r, "n": i} for i, r in enumerate(["North", "north", "South", "South", "North", "South"])]
        rows.append(dict(rows[0]))
        store = make_store(rows)
        suggestion = StepAdvisor(store.snapshot).suggest(StepKind.FIX_DUPLICATES)
        assert suggestion.change.remove_exact_duplicates
        assert suggestion.change.standardized_values == {"region": {"north": "North"}}

        result = apply_change(store.snapshot, suggestion.change)
        assert len(result.frame) == 6
        assert "north" not in set(result.frame["region"])

    def test_whitespace_suggestion_applies(self, make_store):
        answers = ["Very satisfied", "Very  satisfied", "Neutral", "Very satisfied", "Neutral", "Very satisfied ", "Neutral"]
        store = make_store([{"sat": a} for a in answers])
        change = StepAdvisor(store.snapshot).suggest(StepKind.FIX_DUPLICATES).change
        assert change.standardized_values == {
            "sat": {"Very  satisfied": "Very satisfied", "Very satisfied ": "Very satisfied"},
        }
        result = apply_change(store.snapshot, change)
        assert set(result.frame["sat"]) == {"Very satisfied", "Neutral"}

    def test_recode_proposes_proper_case(self, make_store):
        rows = [{"answer": a} for a in ["yes", "Yes", "No", "no", "Yes", "No", "yes"] * 2]
        change = StepAdvisor(make_store(rows).snapshot).suggest(StepKind.RECODE_VARIABLES).change
        assert change.recodings["answer"].labels == {"yes": "Yes", "no": "No"}

    def test_composites(self, store):
        suggestion = StepAdvisor(store.snapshot).suggest(StepKind.COMPOSITE_SCORES)
        (composite,) = suggestion.change.composites
        assert composite.name == "Trust_Score"
        assert composite.variables == ("q1_trust", "q2_trust", "q3_trust")
        assert composite.method == "mean"

    def test_two_item_composite_not_preselected(self, make_store):
        rows = [{"item_1": i, "item_2": i + 1} for i in range(5)]
        suggestion = StepAdvisor(make_store(rows).snapshot).suggest(StepKind.COMPOSITE_SCORES)
        assert suggestion.change.is_empty()
        (candidate,) = suggestion.details["candidates"]
        assert candidate.composite.name == "Item_Score"
        assert not candidate.selected

    def test_removals(self, store):
        suggestion = StepAdvisor(store.snapshot).suggest(StepKind.REMOVE_COLUMNS)
        # gender has 2 levels over 150 rows (1.3% unique)
        assert suggestion.change.columns == ("gender", "comments")
        reasons = {c.name: c.reason for c in suggestion.details["candidates"]}
        assert reasons["gender"] == "Low variance (very few unique values)"
        assert reasons["comments"] == "Likely ID field or unique identifier"

    def test_unique_ratio_at_two_percent_is_kept(self, store):
        # region: 3 levels / 150 rows is exactly 2%
        names = [c.name for c in StepAdvisor(store.snapshot).removal_candidates()]
        assert "region" not in names

    def test_low_unique_ratio_skips_text(self):
        frame = records_to_frame([{"note": "same answer", "score": i} for i in range(100)])
        store = SnapshotStore()
        store.load(frame, [
            VariableDescriptor("note", VariableType.TEXT),
            VariableDescriptor("score", VariableType.NUMERIC),
        ])
        assert StepAdvisor(store.snapshot).removal_candidates() == []

    def test_dominant_value_flagged(self, make_store):
        # 2 levels over 100 rows is not below 2%, but one answer covers 99%
        rows = [{"flag": "yes" if i else "no", "score": i} for i in range(100)]
        candidates = StepAdvisor(make_store(rows).snapshot).removal_candidates()
        assert [(c.name, c.reason) for c in candidates] == [
            ("flag", "Low variance (almost all values identical)"),
        ]

    def test_removal_never_selects_every_column(self, make_store):
        store = make_store([{"code": f"id-{i}"} for i in range(10)])
        suggestion = StepAdvisor(store.snapshot).suggest(StepKind.REMOVE_COLUMNS)
        assert suggestion.change.is_empty()
        assert len(suggestion.details["candidates"]) == 1

    def test_suggest_change_without_snapshot(self):
        assert suggest_change(None, StepKind.MISSING_VALUES) is None
