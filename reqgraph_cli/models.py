"""Core data models shared by extraction, storage, and resolution layers."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

ANONYMOUS = "Anonymous"


class StoreDecodeError(ValueError):
    """A persisted module record could not be decoded."""


@dataclass
class AssignedValue:
    """Right-hand side of an assignment or export, identified by content."""

    fingerprint: str
    kind: str
    code: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AssignedValue":
        return cls(fingerprint=payload["fingerprint"], kind=payload["kind"], code=payload["code"])


@dataclass
class MethodInfo:
    name: str
    code: str
    fingerprint: str


@dataclass
class ClassInfo:
    extends: Optional[str] = None
    methods: List[MethodInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ClassInfo":
        return cls(
            extends=payload.get("extends"),
            methods=[MethodInfo(**m) for m in payload["methods"]],
        )


@dataclass
class Callable:
    name: str
    code: str
    fingerprint: str
    kind: str


@dataclass
class Frame:
    """One enclosing function-like scope at a call site."""

    name: str
    line: int
    fingerprint: str
    anonymous: bool = False


class CallableTable:
    """Callables keyed by qualified name, with a secondary fingerprint index.

    The index keeps names in insertion order so a fingerprint lookup returns
    the first callable registered with that content. Re-adding a name
    appends it to the index again.
    """

    def __init__(self) -> None:
        self._by_name: Dict[str, Callable] = {}
        self._by_fingerprint: Dict[str, List[str]] = {}

    def add(self, item: Callable) -> None:
        self._by_name[item.name] = item
        self._by_fingerprint.setdefault(item.fingerprint, []).append(item.name)

    def find_by_fingerprint(self, fingerprint: str) -> Optional[Callable]:
        for name in self._by_fingerprint.get(fingerprint, []):
            item = self._by_name.get(name)
            # Skip names that were later rebound to different content
            if item is not None and item.fingerprint == fingerprint:
                return item
        return None

    def names_for_fingerprint(self, fingerprint: str) -> List[str]:
        return list(self._by_fingerprint.get(fingerprint, []))

    def get(self, name: str) -> Optional[Callable]:
        return self._by_name.get(name)

    def names(self) -> List[str]:
        return list(self._by_name)

    def items(self) -> Iterator[Tuple[str, Callable]]:
        return iter(self._by_name.items())

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __getitem__(self, name: str) -> Callable:
        return self._by_name[name]

    def __len__(self) -> int:
        return len(self._by_name)

    def to_dict(self) -> Dict[str, Any]:
        return {name: asdict(item) for name, item in self._by_name.items()}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CallableTable":
        table = cls()
        for item in payload.values():
            table.add(Callable(**item))
        return table


@dataclass
class SymbolTable:
    imported: Dict[str, str] = field(default_factory=dict)
    exported: Dict[str, AssignedValue] = field(default_factory=dict)
    assignment: Dict[str, AssignedValue] = field(default_factory=dict)
    classes: Dict[str, ClassInfo] = field(default_factory=dict)
    callable: CallableTable = field(default_factory=CallableTable)
    called: Dict[str, List[Frame]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": dict(self.imported),
            "exported": {k: v.to_dict() for k, v in self.exported.items()},
            "assignment": {k: v.to_dict() for k, v in self.assignment.items()},
            "classes": {k: v.to_dict() for k, v in self.classes.items()},
            "callable": self.callable.to_dict(),
            "called": {k: [asdict(f) for f in stack] for k, stack in self.called.items()},
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SymbolTable":
        return cls(
            imported={str(k): str(v) for k, v in payload["imported"].items()},
            exported={k: AssignedValue.from_dict(v) for k, v in payload["exported"].items()},
            assignment={k: AssignedValue.from_dict(v) for k, v in payload["assignment"].items()},
            classes={k: ClassInfo.from_dict(v) for k, v in payload["classes"].items()},
            callable=CallableTable.from_dict(payload["callable"]),
            called={
                k: [Frame(**f) for f in stack] for k, stack in payload["called"].items()
            },
        )


@dataclass
class ModuleRecord:
    """Everything computed for one module. ``tree`` is never persisted."""

    path: str
    content_hash: str
    name: str
    file_path: str
    symbol_table: SymbolTable
    tree: Any = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "content_hash": self.content_hash,
            "name": self.name,
            "file_path": self.file_path,
            "symbol_table": self.symbol_table.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ModuleRecord":
        return cls(
            path=payload["path"],
            content_hash=payload["content_hash"],
            name=payload["name"],
            file_path=payload["file_path"],
            symbol_table=SymbolTable.from_dict(payload["symbol_table"]),
        )

    @classmethod
    def from_json(cls, data: str | bytes) -> "ModuleRecord":
        try:
            payload = json.loads(data)
            return cls.from_dict(payload)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise StoreDecodeError(str(exc)) from exc


@dataclass
class ResolveReport:
    callers: Dict[str, Any]
    flattened: List[str]
    entrypoints: List[str]
