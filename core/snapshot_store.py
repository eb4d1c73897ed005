"""
Dataset Snapshot Store: the single source of truth for the current dataset.

Holds the current rows and variables, the upload metadata and the log of
applied preparation steps. ``commit`` is the only way rows and variables
change after ingestion; it swaps in a whole new ``Snapshot`` object, so a
reader holding the previous snapshot keeps a consistent view.

Only progress bookkeeping (metadata, completion flags, latest change per
step) reaches durable storage. Rows and variables stay in memory and are
gone after a restart until the file is ingested again.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from config.settings import DEFAULT_PAGE_SIZE
from core.changes import CHANGE_TYPES, ChangeDescriptor
from core.errors import EmptyDatasetError, InvalidChangeError
from core.state_storage import InMemoryStorage
from core.step_graph import PIPELINE_ORDER, StepGraph, StepKind
from core.variables import VariableDescriptor
from utils.helpers import frame_to_records, records_to_frame, to_object_frame

logger = logging.getLogger(__name__)

METADATA_KEY = "datasetMetadata"
COMPLETED_KEY = "completedPrepSteps"
CHANGES_KEY = "prepChanges"
APPLIED_AT_KEY = "prepAppliedAt"
SESSION_COUNTER_KEY = "sessionCounter"

Rows = Union[pd.DataFrame, Sequence[Mapping[str, Any]]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class DatasetMetadata:
    file_name: str
    total_rows: int
    total_columns: int
    uploaded_at: str
    session_id: int

    def to_dict(self) -> dict:
        return {
            "file_name": self.file_name,
            "total_rows": self.total_rows,
            "total_columns": self.total_columns,
            "uploaded_at": self.uploaded_at,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "DatasetMetadata":
        return cls(
            file_name=data.get("file_name", data.get("fileName", "dataset")),
            total_rows=int(data.get("total_rows", data.get("totalRows", 0))),
            total_columns=int(data.get("total_columns", data.get("totalColumns", 0))),
            uploaded_at=data.get("uploaded_at", data.get("uploadedAt", "")),
            session_id=int(data.get("session_id", data.get("sessionId", 0))),
        )


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of the dataset at one point in time."""
    frame: pd.DataFrame
    variables: Tuple[VariableDescriptor, ...]
    metadata: DatasetMetadata

    @property
    def row_count(self) -> int:
        return len(self.frame)

    @property
    def names(self) -> List[str]:
        return [v.name for v in self.variables]

    def variable(self, name: str) -> Optional[VariableDescriptor]:
        return next((v for v in self.variables if v.name == name), None)


@dataclass
class StepRecord:
    completed: bool = False
    change: Optional[ChangeDescriptor] = None
    applied_at: Optional[str] = None


@dataclass
class StepLog:
    """Completion flag and latest change descriptor for every step."""
    order: List[StepKind] = field(default_factory=lambda: list(PIPELINE_ORDER))
    records: Dict[StepKind, StepRecord] = field(default_factory=dict)

    def __post_init__(self):
        for kind in self.order:
            self.records.setdefault(kind, StepRecord())

    def record(self, kind: StepKind, change: ChangeDescriptor, keep_existing_change: bool = False):
        rec = self.records[kind]
        rec.completed = True
        rec.applied_at = _now()
        if not keep_existing_change or rec.change is None:
            rec.change = change

    def invalidate(self, kinds: Sequence[StepKind]):
        for kind in kinds:
            self.records[kind] = StepRecord()

    def completed_map(self) -> Dict[str, bool]:
        return {kind.value: self.records[kind].completed for kind in self.order}

    def to_storage(self) -> Tuple[dict, dict, dict]:
        completed = self.completed_map()
        changes = {
            kind.value: rec.change.to_dict()
            for kind, rec in self.records.items() if rec.change is not None
        }
        applied = {
            kind.value: rec.applied_at
            for kind, rec in self.records.items() if rec.applied_at is not None
        }
        return completed, changes, applied

    @classmethod
    def from_storage(cls, order, completed: Mapping, changes: Mapping, applied: Mapping) -> "StepLog":
        log = cls(order=list(order))
        for kind in log.order:
            rec = log.records[kind]
            rec.completed = bool(completed.get(kind.value, False))
            if kind.value in changes:
                rec.change = CHANGE_TYPES[kind].from_dict(changes[kind.value])
            rec.applied_at = applied.get(kind.value)
        return log


class SnapshotStore:
    """
    Holds one dataset snapshot plus its preparation step log.

    Usage:
        store = SnapshotStore(storage=JsonFileStorage(".workbench_state.json"))
        store.load(rows, variables, {"file_name": "survey.csv"})
        store.commit(StepKind.REMOVE_COLUMNS, new_rows, new_variables, change)
    """

    def __init__(self, storage=None, graph: Optional[StepGraph] = None):
        self.storage = storage if storage is not None else InMemoryStorage()
        self.graph = graph or StepGraph.linear()
        self.log = StepLog(order=self.graph.order)
        self._snapshot: Optional[Snapshot] = None
        self._restored_metadata: Optional[DatasetMetadata] = None

    # ── Ingestion ──────────────────────────────────────

    def load(
        self,
        rows: Rows,
        variables: Sequence[VariableDescriptor],
        metadata: Union[DatasetMetadata, Mapping, None] = None,
    ) -> Snapshot:
        """Replace the whole snapshot with a freshly ingested dataset."""
        frame = rows if isinstance(rows, pd.DataFrame) else records_to_frame(rows)
        if len(frame) == 0:
            raise EmptyDatasetError("Dataset has no rows; nothing was loaded")
        if not variables:
            raise EmptyDatasetError("Dataset has no variables; nothing was loaded")

        variables = tuple(copy.deepcopy(list(variables)))
        frame = self._aligned(to_object_frame(frame), variables)

        meta = metadata if isinstance(metadata, Mapping) else {}
        if isinstance(metadata, DatasetMetadata):
            meta = metadata.to_dict()
        snapshot_meta = DatasetMetadata(
            file_name=meta.get("file_name", meta.get("fileName", "dataset")),
            total_rows=len(frame),
            total_columns=len(variables),
            uploaded_at=meta.get("uploaded_at", meta.get("uploadedAt")) or _now(),
            session_id=self._next_session_id(),
        )

        self._snapshot = Snapshot(frame=frame, variables=variables, metadata=snapshot_meta)
        self._restored_metadata = None
        self.log = StepLog(order=self.graph.order)
        self._persist()
        logger.info(
            "Loaded %s: %d rows, %d variables (session %d)",
            snapshot_meta.file_name, len(frame), len(variables), snapshot_meta.session_id,
        )
        return self._snapshot

    # ── Reads ──────────────────────────────────────────

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    def is_loaded(self) -> bool:
        snap = self._snapshot
        return snap is not None and snap.row_count > 0 and len(snap.variables) > 0

    def current_variables(self) -> List[VariableDescriptor]:
        if self._snapshot is None:
            return []
        return copy.deepcopy(list(self._snapshot.variables))

    def current_rows(self, page: int = 0, page_size: int = DEFAULT_PAGE_SIZE) -> List[dict]:
        if self._snapshot is None or page < 0 or page_size <= 0:
            return []
        start = page * page_size
        return frame_to_records(self._snapshot.frame.iloc[start:start + page_size])

    def all_rows(self) -> List[dict]:
        if self._snapshot is None:
            return []
        return frame_to_records(self._snapshot.frame)

    def row_count(self) -> int:
        return self._snapshot.row_count if self._snapshot is not None else 0

    def metadata(self) -> Optional[DatasetMetadata]:
        if self._snapshot is not None:
            return self._snapshot.metadata
        return self._restored_metadata

    def completed_steps(self) -> Dict[str, bool]:
        return self.log.completed_map()

    def step_change(self, kind: StepKind) -> Optional[ChangeDescriptor]:
        return self.log.records[kind].change

    # ── Mutation ───────────────────────────────────────

    def commit(
        self,
        kind: StepKind,
        new_rows: Rows,
        new_variables: Sequence[VariableDescriptor],
        change: ChangeDescriptor,
    ) -> Snapshot:
        """
        Replace rows and variables with a step's output.

        Records ``change`` as the step's latest descriptor, marks it complete
        and discards the completion flag and change of every dependent step.
        """
        current = self._require_snapshot()
        frame = new_rows if isinstance(new_rows, pd.DataFrame) else records_to_frame(new_rows)
        if len(frame) == 0:
            raise InvalidChangeError(f"Step '{kind.value}' would remove every row of the dataset")
        if not new_variables:
            raise InvalidChangeError(f"Step '{kind.value}' would remove every variable of the dataset")

        variables = tuple(copy.deepcopy(list(new_variables)))
        frame = self._aligned(to_object_frame(frame), variables)
        meta = DatasetMetadata(
            file_name=current.metadata.file_name,
            total_rows=len(frame),
            total_columns=len(variables),
            uploaded_at=current.metadata.uploaded_at,
            session_id=current.metadata.session_id,
        )
        # single assignment: readers see either the old or the new snapshot
        self._snapshot = Snapshot(frame=frame, variables=variables, metadata=meta)

        self.log.record(kind, change)
        invalidated = self.graph.dependents(kind)
        self.log.invalidate(invalidated)
        self._persist()
        logger.info(
            "Committed %s: %d -> %d rows, %d -> %d variables; invalidated %s",
            kind.value, current.row_count, len(frame), len(current.variables), len(variables),
            [k.value for k in invalidated] or "nothing",
        )
        return self._snapshot

    def mark_completed(self, kind: StepKind, change: ChangeDescriptor) -> None:
        """Mark a step complete without touching data or dependent steps."""
        self._require_snapshot()
        self.log.record(kind, change, keep_existing_change=True)
        self._persist()
        logger.info("Step %s reviewed with no changes", kind.value)

    # ── Durable progress ───────────────────────────────

    def restore(self) -> bool:
        """Reload metadata and step progress persisted by an earlier session."""
        meta = self.storage.get(METADATA_KEY)
        if not meta:
            return False
        self._restored_metadata = DatasetMetadata.from_dict(meta)
        self.log = StepLog.from_storage(
            self.graph.order,
            self.storage.get(COMPLETED_KEY, {}) or {},
            self.storage.get(CHANGES_KEY, {}) or {},
            self.storage.get(APPLIED_AT_KEY, {}) or {},
        )
        logger.info(
            "Restored progress for %s (session %d); rows must be re-ingested",
            self._restored_metadata.file_name, self._restored_metadata.session_id,
        )
        return True

    def clear(self) -> None:
        self._snapshot = None
        self._restored_metadata = None
        self.log = StepLog(order=self.graph.order)
        for key in (METADATA_KEY, COMPLETED_KEY, CHANGES_KEY, APPLIED_AT_KEY):
            self.storage.delete(key)

    # ── Internals ──────────────────────────────────────

    def _require_snapshot(self) -> Snapshot:
        if self._snapshot is None:
            raise EmptyDatasetError("No dataset loaded")
        return self._snapshot

    def _next_session_id(self) -> int:
        session_id = int(self.storage.get(SESSION_COUNTER_KEY, 0) or 0) + 1
        self.storage.set(SESSION_COUNTER_KEY, session_id)
        return session_id

    def _persist(self) -> None:
        meta = self.metadata()
        if meta is not None:
            self.storage.set(METADATA_KEY, meta.to_dict())
        completed, changes, applied = self.log.to_storage()
        self.storage.set(COMPLETED_KEY, completed)
        self.storage.set(CHANGES_KEY, changes)
        self.storage.set(APPLIED_AT_KEY, applied)

    @staticmethod
    def _aligned(frame: pd.DataFrame, variables: Sequence[VariableDescriptor]) -> pd.DataFrame:
        """Check the name invariant and order columns like ``variables``."""
        names = [v.name for v in variables]
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise InvalidChangeError(f"Variable names must be unique; duplicated: {dupes}")
        columns = [str(c) for c in frame.columns]
        missing = [n for n in names if n not in columns]
        extra = [c for c in columns if c not in names]
        if missing or extra:
            raise InvalidChangeError(
                f"Rows and variables disagree (no column for {missing}, no variable for {extra})"
            )
        frame = frame.copy()
        frame.columns = columns
        return frame[names].reset_index(drop=True)
