"""Cross-module call-graph resolution over extracted symbol tables.

The resolver answers "which modules, transitively, call into this one?"
by joining per-module symbol tables:

* inherited methods are copied into each subclass's callable table;
* ``require`` bindings decide whether one module imports another;
* call sites are matched to method names by case-insensitive substring;
* the reverse-import graph is walked recursively from every module.

Matching is heuristic.  A call ``repo.findUser()`` matches the method name
``finduser`` and also ``User``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import config
from .models import Callable, ClassInfo, ModuleRecord, ResolveReport, SymbolTable

logger = logging.getLogger(__name__)

CallerMap = Dict[str, Any]


def propagate_inheritance(module_map: Dict[str, ModuleRecord]) -> List[Tuple[str, str]]:
    """Copy each parent class's methods into its subclasses' callable tables.

    The parent is found by bare class name across *all* modules (first match
    wins); which module the subclass actually imported is not considered.
    Methods a subclass declares itself are left alone.

    Not idempotent: a second run re-adds every entry and grows the
    fingerprint index again.

    Returns:
        ``(module_path, "Class.method")`` for every inserted entry.
    """

    def find_class(name: str) -> Optional[ClassInfo]:
        for record in module_map.values():
            info = record.symbol_table.classes.get(name)
            if info is not None:
                return info
        return None

    inserted: List[Tuple[str, str]] = []
    for path, record in module_map.items():
        table = record.symbol_table
        for class_name, info in table.classes.items():
            if not info.extends:
                continue
            parent = find_class(info.extends)
            if parent is None:
                logger.debug("Parent class %s of %s.%s not found", info.extends, path, class_name)
                continue
            own = {m.name for m in info.methods}
            for method in parent.methods:
                if method.name in own:
                    continue
                qualified = f"{class_name}.{method.name}"
                table.callable.add(Callable(
                    name=qualified,
                    code=method.code,
                    fingerprint=method.fingerprint,
                    kind="method_definition",
                ))
                inserted.append((path, qualified))
    logger.debug("Propagated %d inherited methods", len(inserted))
    return inserted


def merge_callers(into: CallerMap, other: CallerMap) -> CallerMap:
    """Recursively union *other* into *into* and return *into*."""
    for key, value in other.items():
        if key in into:
            merge_callers(into[key], value)
        else:
            into[key] = value
    return into


def flatten_callers(nested: CallerMap) -> List[str]:
    """Collect the leaves of a nested caller map, deduplicated in order.

    A key whose value is empty is a leaf.  A key with a non-empty value is
    replaced by the leaves beneath it.
    """
    leaves: List[str] = []

    def _collect(tree: CallerMap) -> None:
        for key, value in tree.items():
            if value:
                _collect(value)
            else:
                leaves.append(key)

    _collect(nested)
    seen = set()
    unique: List[str] = []
    for leaf in leaves:
        if leaf not in seen:
            seen.add(leaf)
            unique.append(leaf)
    return unique


class CallGraphResolver:
    """Reverse-dependency queries over a snapshot of all module records.

    The module map must not change while queries run.  Inheritance
    propagation mutates the callable tables once, on first use.
    """

    def __init__(
        self,
        module_map: Dict[str, ModuleRecord],
        root_prefix: str = config.ROOT_PREFIX,
        entry_prefix: str = config.ENTRY_PREFIX,
    ) -> None:
        self.modules = module_map
        self.root_prefix = root_prefix
        self.entry_prefix = entry_prefix
        self._prepared = False
        self._normalized: Dict[str, str] = {}
        for path in module_map:
            self._normalized.setdefault(self._strip(path), path)

    def prepare(self) -> None:
        """Run inheritance propagation, exactly once per resolver."""
        if self._prepared:
            return
        propagate_inheritance(self.modules)
        self._prepared = True

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _strip(self, path: str) -> str:
        if self.root_prefix and path.startswith(self.root_prefix):
            return path[len(self.root_prefix):]
        return path

    def _table(self, path: str) -> Optional[SymbolTable]:
        record = self.modules.get(path)
        if record is None:
            actual = self._normalized.get(self._strip(path))
            record = self.modules.get(actual) if actual is not None else None
        return record.symbol_table if record is not None else None

    def _imported_module(self, source: str) -> str:
        module = self._strip(source.split(".", 1)[0])
        if module not in self._normalized and f"{module}/index" in self._normalized:
            module = f"{module}/index"
        return module

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def imports_module(self, parent: str, child: str) -> Optional[str]:
        """Return the binding under which *child* requires *parent*, if any."""
        self.prepare()
        table = self._table(child)
        if table is None:
            return None
        wanted = self._strip(parent)
        for binding, source in table.imported.items():
            if self._imported_module(source) == wanted:
                return binding
        return None

    def calls_in_module(
        self,
        parent: Optional[str],
        method_name: str,
        child: str,
    ) -> Dict[str, Callable]:
        """Callables of *child* that enclose a call matching *method_name*.

        When *parent* is given, *child* must import it or nothing matches.
        """
        self.prepare()
        table = self._table(child)
        if table is None:
            return {}
        if parent is not None and self.imports_module(parent, child) is None:
            return {}

        needle = method_name.lower()
        found: Dict[str, Callable] = {}
        for callee, stack in table.called.items():
            if needle not in callee.lower():
                continue
            for frame in stack:
                item = table.callable.find_by_fingerprint(frame.fingerprint)
                if item is not None:
                    found[item.name] = item
        return found

    def find_callers(
        self,
        target: str,
        method_names: Optional[Iterable[str]] = None,
        path: Optional[List[str]] = None,
    ) -> CallerMap:
        """Nested map of modules that import *target* and call its methods.

        With no method names, any module importing *target* counts.  Modules
        already on *path* are not revisited.
        """
        self.prepare()
        names = list(method_names or [])
        trail = list(path) if path else [target]
        result: CallerMap = {}
        for candidate in self.modules:
            if candidate in trail:
                continue
            if names:
                matched: Dict[str, Callable] = {}
                for name in names:
                    matched.update(self.calls_in_module(target, name, candidate))
                if not matched:
                    continue
                result[candidate] = self.find_callers(
                    candidate, list(matched), trail + [candidate],
                )
            elif self.imports_module(target, candidate) is not None:
                result[candidate] = self.find_callers(candidate, None, trail + [candidate])
        return result

    def resolve(self, entity: Optional[str] = None) -> ResolveReport:
        """Seed a caller search from every call site of every module.

        *entity* restricts seeds to call sites whose callee text contains
        it (case-insensitive).
        """
        self.prepare()
        needle = entity.lower() if entity else None
        callers: CallerMap = {}
        for module, record in self.modules.items():
            for callee in list(record.symbol_table.called):
                if needle is not None and needle not in callee.lower():
                    continue
                seeds = list(self.calls_in_module(None, callee, module))
                found = self.find_callers(module, seeds, [module])
                merge_callers(callers.setdefault(module, {}), found)

        flattened = flatten_callers(callers)
        entrypoints = [p for p in flattened if p.startswith(self.entry_prefix)]
        logger.info(
            "Resolved %d seed modules, %d leaves, %d entry points",
            len(callers), len(flattened), len(entrypoints),
        )
        return ResolveReport(callers=callers, flattened=flattened, entrypoints=entrypoints)
