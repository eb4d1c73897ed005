"""
Preparation step kinds and the dependency graph between them.

The default pipeline is a linear chain, but invalidation only ever asks the
graph for the dependents of a step, so a different ordering (or a branching
one) just means building a different graph.
"""

from collections import deque
from enum import Enum
from typing import Dict, Iterable, List, Set, Union


class StepKind(str, Enum):
    MISSING_VALUES = "missingValues"
    STANDARDIZE_VARIABLES = "standardizeVariables"
    FIX_DUPLICATES = "fixDuplicates"
    RECODE_VARIABLES = "recodeVariables"
    COMPOSITE_SCORES = "compositeScores"
    REMOVE_COLUMNS = "removeColumns"

    @classmethod
    def parse(cls, kind: Union["StepKind", str]) -> "StepKind":
        if isinstance(kind, cls):
            return kind
        try:
            return cls(kind)
        except ValueError:
            raise ValueError(
                f"Unknown step kind: {kind!r}. Expected one of: {', '.join(k.value for k in cls)}"
            ) from None


PIPELINE_ORDER = [
    StepKind.MISSING_VALUES,
    StepKind.STANDARDIZE_VARIABLES,
    StepKind.FIX_DUPLICATES,
    StepKind.RECODE_VARIABLES,
    StepKind.COMPOSITE_SCORES,
    StepKind.REMOVE_COLUMNS,
]

STEP_TITLES = {
    StepKind.MISSING_VALUES: "Handle Missing Values",
    StepKind.STANDARDIZE_VARIABLES: "Standardize Variables",
    StepKind.FIX_DUPLICATES: "Fix Duplicates & Inconsistencies",
    StepKind.RECODE_VARIABLES: "Recode Variables",
    StepKind.COMPOSITE_SCORES: "Create Composite Scores",
    StepKind.REMOVE_COLUMNS: "Remove Columns",
}


class StepGraph:
    """
    Directed graph of "step B depends on the output of step A" edges.

    Usage:
        graph = StepGraph.linear(PIPELINE_ORDER)
        graph.dependents(StepKind.FIX_DUPLICATES)
    """

    def __init__(self, order: Iterable[StepKind], edges: Dict[StepKind, Iterable[StepKind]]):
        self.order: List[StepKind] = list(order)
        self._downstream: Dict[StepKind, Set[StepKind]] = {kind: set() for kind in self.order}
        for upstream, downstream in edges.items():
            for kind in downstream:
                if upstream not in self._downstream or kind not in self._downstream:
                    raise ValueError(f"Edge {upstream} -> {kind} references a step outside the graph")
                self._downstream[upstream].add(kind)
        self._check_acyclic()

    @classmethod
    def linear(cls, order: Iterable[StepKind] = PIPELINE_ORDER) -> "StepGraph":
        order = list(order)
        edges = {a: [b] for a, b in zip(order, order[1:])}
        return cls(order, edges)

    def dependents(self, kind: StepKind) -> List[StepKind]:
        """All steps reachable from ``kind``, in pipeline order."""
        seen: Set[StepKind] = set()
        queue = deque(self._downstream[kind])
        while queue:
            nxt = queue.popleft()
            if nxt in seen:
                continue
            seen.add(nxt)
            queue.extend(self._downstream[nxt])
        return [k for k in self.order if k in seen]

    def position(self, kind: StepKind) -> int:
        return self.order.index(kind)

    def _check_acyclic(self):
        for kind in self.order:
            if kind in self.dependents(kind):
                raise ValueError(f"Step graph has a cycle through {kind.value}")
