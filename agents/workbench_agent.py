"""
Workbench Agent: the one object the UI talks to.

Wraps the snapshot store, the preparation pipeline, the step advisor and
the analysis agent behind plain method calls:

    Ingest → Suggest → Apply (per step) → Analyze
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from agents.analysis_agent import AnalysisAgent, TestRecommendation
from config.settings import DEFAULT_PAGE_SIZE, PREVIEW_ROWS, SCAN_CHUNK_SIZE, STATE_FILE
from core.changes import ChangeDescriptor, parse_change
from core.data_loader import DataLoader
from core.data_quality import DataQualityChecker, QualityReport
from core.errors import EmptyDatasetError
from core.sample_data import SAMPLE_DATASETS, generate_sample
from core.snapshot_store import DatasetMetadata, Snapshot, SnapshotStore
from core.state_storage import JsonFileStorage
from core.statistical_tests import TestResult
from core.step_advisor import DuplicateGroup, StepSuggestion, StepAdvisor, describe_duplicate_groups
from core.step_graph import StepKind
from core.transformations import apply_change, cell_signature
from core.variables import VariableDescriptor, infer_variables
from utils.helpers import frame_to_records, records_to_frame

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """What the UI needs to redraw after a step."""
    variables: List[VariableDescriptor]
    preview_rows: List[dict]
    changed: bool
    warnings: List[str] = field(default_factory=list)
    actions_log: List[str] = field(default_factory=list)
    rows_before: int = 0
    rows_after: int = 0


class WorkbenchAgent:
    """
    Facade over one dataset session.

    Usage:
        agent = WorkbenchAgent()
        agent.ingest(uploaded_file)
        suggestion = agent.suggest_step("missingValues")
        outcome = agent.apply_step("missingValues", suggestion.change)
        result = agent.run_test("independent-t-test", "gender", "satisfaction_overall")
    """

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        analysis: Optional[AnalysisAgent] = None,
        loader: Optional[DataLoader] = None,
    ):
        self.store = store if store is not None else SnapshotStore()
        self.analysis = analysis or AnalysisAgent()
        self.loader = loader or DataLoader()
        self._step_index = 0

    @classmethod
    def with_state_file(cls, path: str = STATE_FILE) -> "WorkbenchAgent":
        """Agent whose progress survives restarts in a JSON file."""
        return cls(store=SnapshotStore(storage=JsonFileStorage(path)))

    # ── Ingestion ──────────────────────────────────────

    def load(
        self,
        rows: Union[pd.DataFrame, Sequence[Mapping[str, Any]]],
        variables: Optional[Sequence[VariableDescriptor]] = None,
        metadata: Union[DatasetMetadata, Mapping, None] = None,
    ) -> Snapshot:
        """Load rows directly; variables are inferred when not given."""
        frame = rows if isinstance(rows, pd.DataFrame) else records_to_frame(rows)
        if variables is None:
            frame = DataLoader.normalize(frame)
            variables = infer_variables(frame, self.loader.sample_size)
        snapshot = self.store.load(frame, variables, metadata)
        self._step_index = 0
        return snapshot

    def ingest(self, uploaded_file, sheet_name: Optional[str] = None) -> Snapshot:
        result = self.loader.ingest(uploaded_file, sheet_name)
        snapshot = self.store.load(result.frame, result.variables, result.metadata)
        self._step_index = 0
        return snapshot

    def load_sample(self, key: str) -> Snapshot:
        frame = generate_sample(key)
        return self.load(frame, metadata={"file_name": f"{SAMPLE_DATASETS[key].title}.csv"})

    # ── Reads ──────────────────────────────────────────

    def is_loaded(self) -> bool:
        return self.store.is_loaded()

    def get_variables(self) -> List[VariableDescriptor]:
        return self.store.current_variables()

    def get_rows(self, page: int = 0, page_size: int = DEFAULT_PAGE_SIZE) -> List[dict]:
        return self.store.current_rows(page, page_size)

    def get_all_rows(self) -> List[dict]:
        return self.store.all_rows()

    def get_row_count(self) -> int:
        return self.store.row_count()

    def get_metadata(self) -> Optional[DatasetMetadata]:
        return self.store.metadata()

    def get_frame(self) -> pd.DataFrame:
        """Copy of the current rows, for download."""
        snapshot = self.store.snapshot
        return snapshot.frame.copy() if snapshot is not None else pd.DataFrame()

    def completed_steps(self) -> Dict[str, bool]:
        return self.store.completed_steps()

    def step_change(self, kind: Union[StepKind, str]) -> Optional[ChangeDescriptor]:
        return self.store.step_change(StepKind.parse(kind))

    def quality_report(self) -> Optional[QualityReport]:
        snapshot = self.store.snapshot
        return DataQualityChecker(snapshot).run() if snapshot is not None else None

    # ── Preparation pipeline ───────────────────────────

    def suggest_step(self, kind: Union[StepKind, str]) -> StepSuggestion:
        return StepAdvisor(self._require_snapshot()).suggest(StepKind.parse(kind))

    def apply_step(
        self,
        kind: Union[StepKind, str],
        change: Union[ChangeDescriptor, Mapping, None] = None,
    ) -> StepOutcome:
        """
        Apply one preparation step to the current snapshot.

        An empty change only marks the step complete; anything else is
        committed and discards the results of every later step.
        """
        kind = StepKind.parse(kind)
        change = parse_change(kind, change)
        snapshot = self._require_snapshot()

        result = apply_change(snapshot, change)
        if change.is_empty():
            self.store.mark_completed(kind, change)
            changed = False
        else:
            self.store.commit(kind, result.frame, result.variables, change)
            changed = True

        return StepOutcome(
            variables=self.store.current_variables(),
            preview_rows=self.store.current_rows(0, PREVIEW_ROWS),
            changed=changed,
            warnings=list(result.report.warnings),
            actions_log=list(result.report.actions_log),
            rows_before=result.report.rows_before,
            rows_after=self.store.row_count(),
        )

    # ── Navigation ─────────────────────────────────────

    @property
    def steps(self) -> List[StepKind]:
        return list(self.store.graph.order)

    @property
    def current_step(self) -> StepKind:
        return self.steps[self._step_index]

    def next_step(self) -> StepKind:
        self._step_index = min(self._step_index + 1, len(self.steps) - 1)
        return self.current_step

    def previous_step(self) -> StepKind:
        self._step_index = max(self._step_index - 1, 0)
        return self.current_step

    def go_to_step(self, kind: Union[StepKind, str]) -> StepKind:
        self._step_index = self.store.graph.position(StepKind.parse(kind))
        return self.current_step

    # ── Analysis ───────────────────────────────────────

    def recommend_tests(
        self,
        intent: str,
        first: Optional[str],
        second: Optional[str] = None,
        runnable_only: bool = True,
    ) -> List[TestRecommendation]:
        return self.analysis.recommend(self.store.snapshot, intent, first, second, runnable_only)

    def run_test(self, test_id: str, primary: str, secondary: Optional[str] = None) -> TestResult:
        # one snapshot for the whole test, even if a commit lands meanwhile
        return self.analysis.run(self._require_snapshot(), test_id, primary, secondary)

    # ── Async reads ────────────────────────────────────

    async def fetch_rows(self, page: int = 0, page_size: int = DEFAULT_PAGE_SIZE) -> List[dict]:
        snapshot = self.store.snapshot
        await asyncio.sleep(0)
        if snapshot is None or page < 0 or page_size <= 0:
            return []
        start = page * page_size
        return frame_to_records(snapshot.frame.iloc[start:start + page_size])

    async def scan_duplicates(self, chunk_size: int = SCAN_CHUNK_SIZE) -> List[DuplicateGroup]:
        """Exact duplicate groups, yielding to the event loop between chunks."""
        snapshot = self._require_snapshot()
        frame = snapshot.frame
        groups: Dict[tuple, List[int]] = {}
        for start in range(0, len(frame), chunk_size):
            chunk = frame.iloc[start:start + chunk_size]
            for offset, row in enumerate(chunk.itertuples(index=False, name=None)):
                groups.setdefault(tuple(cell_signature(v) for v in row), []).append(start + offset)
            await asyncio.sleep(0)
        duplicates = [positions for positions in groups.values() if len(positions) > 1]
        logger.debug("Duplicate scan over %d rows found %d group(s)", len(frame), len(duplicates))
        return describe_duplicate_groups(frame, duplicates)

    # ── Session ────────────────────────────────────────

    def restore(self) -> bool:
        return self.store.restore()

    def reset(self) -> None:
        self.store.clear()
        self._step_index = 0

    def _require_snapshot(self) -> Snapshot:
        snapshot = self.store.snapshot
        if snapshot is None:
            raise EmptyDatasetError("No dataset loaded")
        return snapshot
