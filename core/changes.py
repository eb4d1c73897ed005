"""
Change descriptors: one dataclass per preparation step kind.

A change descriptor is the minimal input needed to reproduce a step's
effect on a snapshot. Each variant round-trips through plain dicts so the
step log can be persisted as JSON; ``from_dict`` also accepts the camelCase
keys used by the browser front end.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Dict, Mapping, Optional, Tuple, Union

from core.errors import InvalidChangeError
from core.step_graph import StepKind

MISSING_STRATEGIES = ("drop", "mean", "median", "mode", "zero", "ignore")
INVALID_VALUE_STRATEGIES = ("null", "zero", "mean", "ignore")
COMPOSITE_METHODS = ("mean", "sum")


def _pick(data: Mapping, *keys, default=None):
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass(frozen=True)
class MissingValuesChange:
    kind: ClassVar[StepKind] = StepKind.MISSING_VALUES
    strategies: Dict[str, str] = field(default_factory=dict)
    invalid_value_handling: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        for name, strategy in self.strategies.items():
            if strategy not in MISSING_STRATEGIES:
                raise InvalidChangeError(
                    f"Unknown missing-value strategy '{strategy}' for '{name}'. "
                    f"Use one of: {', '.join(MISSING_STRATEGIES)}"
                )
        for name, strategy in self.invalid_value_handling.items():
            if strategy not in INVALID_VALUE_STRATEGIES:
                raise InvalidChangeError(
                    f"Unknown invalid-value strategy '{strategy}' for '{name}'. "
                    f"Use one of: {', '.join(INVALID_VALUE_STRATEGIES)}"
                )

    def is_empty(self) -> bool:
        return not self.strategies and not self.invalid_value_handling

    def to_dict(self) -> dict:
        return {
            "strategies": dict(self.strategies),
            "invalid_value_handling": dict(self.invalid_value_handling),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "MissingValuesChange":
        structured = {"strategies", "missingValueHandling", "invalid_value_handling", "invalidValueHandling"}
        if structured & set(data):
            strategies = _pick(data, "strategies", "missingValueHandling", default={}) or {}
            invalid = _pick(data, "invalid_value_handling", "invalidValueHandling", default={}) or {}
        else:
            # shorthand: {"gender": "mode", "age": "mean"}
            strategies, invalid = data, {}
        return cls(
            strategies={k: v for k, v in strategies.items() if v},
            invalid_value_handling={k: v for k, v in invalid.items() if v},
        )


@dataclass(frozen=True)
class Rename:
    old_name: str
    new_name: str


@dataclass(frozen=True)
class StandardizeChange:
    kind: ClassVar[StepKind] = StepKind.STANDARDIZE_VARIABLES
    renames: Tuple[Rename, ...] = ()
    label_maps: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.renames and not any(self.label_maps.values())

    def to_dict(self) -> dict:
        return {
            "renames": [{"old_name": r.old_name, "new_name": r.new_name} for r in self.renames],
            "label_maps": {k: dict(v) for k, v in self.label_maps.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "StandardizeChange":
        renames = []
        for item in _pick(data, "renames", "standardizedNames", default=[]) or []:
            old = _pick(item, "old_name", "oldName")
            new = _pick(item, "new_name", "newName")
            if old is None or new is None:
                raise InvalidChangeError(f"Rename entry needs an old and a new name: {item!r}")
            if old != new:
                renames.append(Rename(str(old), str(new)))
        label_maps = _pick(data, "label_maps", "valueMappings", default={}) or {}
        return cls(renames=tuple(renames), label_maps={k: dict(v) for k, v in label_maps.items()})


@dataclass(frozen=True)
class DuplicatesChange:
    kind: ClassVar[StepKind] = StepKind.FIX_DUPLICATES
    remove_exact_duplicates: bool = False
    standardized_values: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.remove_exact_duplicates and not any(self.standardized_values.values())

    def to_dict(self) -> dict:
        return {
            "remove_exact_duplicates": self.remove_exact_duplicates,
            "standardized_values": {k: dict(v) for k, v in self.standardized_values.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "DuplicatesChange":
        values = _pick(data, "standardized_values", "standardizedValues", default={}) or {}
        return cls(
            remove_exact_duplicates=bool(
                _pick(data, "remove_exact_duplicates", "removeDuplicates", default=False)
            ),
            standardized_values={k: dict(v) for k, v in values.items()},
        )


@dataclass(frozen=True)
class Recoding:
    """New labels (old -> new) and/or a new label -> code mapping for one variable."""
    labels: Dict[str, str] = field(default_factory=dict)
    coding: Optional[Dict[str, int]] = None

    def is_empty(self) -> bool:
        return not self.labels and not self.coding


@dataclass(frozen=True)
class RecodeChange:
    kind: ClassVar[StepKind] = StepKind.RECODE_VARIABLES
    recodings: Dict[str, Recoding] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return all(r.is_empty() for r in self.recodings.values())

    def to_dict(self) -> dict:
        return {
            "recodings": {
                name: {"labels": dict(r.labels), "coding": dict(r.coding) if r.coding else None}
                for name, r in self.recodings.items()
            }
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "RecodeChange":
        recodings = {}
        for name, item in (_pick(data, "recodings", default={}) or {}).items():
            coding = item.get("coding")
            if coding is not None:
                try:
                    coding = {str(k): int(v) for k, v in coding.items()}
                except (TypeError, ValueError):
                    raise InvalidChangeError(f"Codes for '{name}' must be integers") from None
            recodings[name] = Recoding(labels=dict(item.get("labels") or {}), coding=coding)
        return cls(recodings=recodings)


@dataclass(frozen=True)
class CompositeScore:
    name: str
    variables: Tuple[str, ...]
    method: str = "mean"

    def __post_init__(self):
        if self.method not in COMPOSITE_METHODS:
            raise InvalidChangeError(
                f"Unknown composite method '{self.method}'. Use one of: {', '.join(COMPOSITE_METHODS)}"
            )


@dataclass(frozen=True)
class CompositeChange:
    kind: ClassVar[StepKind] = StepKind.COMPOSITE_SCORES
    composites: Tuple[CompositeScore, ...] = ()

    def is_empty(self) -> bool:
        return not self.composites

    def to_dict(self) -> dict:
        return {
            "composites": [
                {"name": c.name, "variables": list(c.variables), "method": c.method}
                for c in self.composites
            ]
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "CompositeChange":
        composites = tuple(
            CompositeScore(
                name=str(item["name"]),
                variables=tuple(item.get("variables") or ()),
                method=item.get("method", "mean"),
            )
            for item in _pick(data, "composites", "compositeScores", default=[]) or []
        )
        return cls(composites=composites)


@dataclass(frozen=True)
class RemoveColumnsChange:
    kind: ClassVar[StepKind] = StepKind.REMOVE_COLUMNS
    columns: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not self.columns

    def to_dict(self) -> dict:
        return {"columns": list(self.columns)}

    @classmethod
    def from_dict(cls, data: Mapping) -> "RemoveColumnsChange":
        return cls(columns=tuple(_pick(data, "columns", "removedColumns", default=()) or ()))


ChangeDescriptor = Union[
    MissingValuesChange,
    StandardizeChange,
    DuplicatesChange,
    RecodeChange,
    CompositeChange,
    RemoveColumnsChange,
]

CHANGE_TYPES = {
    cls.kind: cls
    for cls in (
        MissingValuesChange,
        StandardizeChange,
        DuplicatesChange,
        RecodeChange,
        CompositeChange,
        RemoveColumnsChange,
    )
}


def parse_change(kind: StepKind, change: Union[ChangeDescriptor, Mapping, None]) -> ChangeDescriptor:
    """Coerce a descriptor or a plain mapping into the variant for ``kind``."""
    cls = CHANGE_TYPES[kind]
    if change is None:
        return cls()
    if isinstance(change, cls):
        return change
    if isinstance(change, Mapping):
        return cls.from_dict(change)
    raise InvalidChangeError(
        f"{type(change).__name__} is not a change descriptor for step '{kind.value}'"
    )
