"""Analysis pipeline: discover, load or extract, resolve, report."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from . import config
from .canonical import content_hash
from .extractor import extract
from .models import ModuleRecord, ResolveReport
from .parser import JavaScriptParser, ParseError, discover_sources, module_path_for
from .resolver import CallerMap, CallGraphResolver
from .storage import ModuleStore, StoreWriteError

logger = logging.getLogger(__name__)


@dataclass
class AnalysisStats:
    files: int = 0
    parsed: int = 0
    cached: int = 0
    failed: int = 0


class Analyzer:
    """Coordinates discovery, the module store, extraction and resolution."""

    def __init__(
        self,
        root: Path,
        store: ModuleStore,
        parser: Optional[JavaScriptParser] = None,
        root_prefix: str = config.ROOT_PREFIX,
        entry_prefix: str = config.ENTRY_PREFIX,
        extensions: Optional[Iterable[str]] = None,
        refresh: bool = False,
    ) -> None:
        self.root = root
        self.store = store
        self.parser = parser or JavaScriptParser()
        self.root_prefix = root_prefix
        self.entry_prefix = entry_prefix
        self.extensions = set(extensions or config.SOURCE_EXTENSIONS)
        self.refresh = refresh
        self.stats = AnalysisStats()
        self._resolver: Optional[CallGraphResolver] = None

    def discover(self) -> List[Path]:
        return discover_sources(self.root, self.extensions)

    def load_module(self, file_path: Path) -> Optional[ModuleRecord]:
        """Return the module's record from the store, or parse and store it.

        Returns ``None`` when the module does not parse.
        """
        module_path = module_path_for(self.root, file_path)
        if not self.refresh:
            record = self.store.get(module_path)
            if record is not None:
                logger.debug("Loaded stored record: %s", module_path)
                self.stats.cached += 1
                return record

        logger.debug("Parsing: %s", module_path)
        try:
            source = file_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("%s", ParseError(module_path, f"cannot read {file_path}: {exc}"))
            self.stats.failed += 1
            return None
        try:
            tree = self.parser.parse(source, module_path)
        except ParseError as exc:
            logger.warning("%s", exc)
            self.stats.failed += 1
            return None

        record = ModuleRecord(
            path=module_path,
            content_hash=content_hash(source),
            name=file_path.stem,
            file_path=str(file_path),
            symbol_table=extract(tree, module_path),
            tree=tree,
        )
        self.stats.parsed += 1
        try:
            self.store.put(module_path, record)
        except StoreWriteError as exc:
            logger.warning("%s", exc)
        return record

    def build_module_map(self) -> Dict[str, ModuleRecord]:
        self.stats = AnalysisStats()
        files = self.discover()
        self.stats.files = len(files)
        modules: Dict[str, ModuleRecord] = {}
        for file_path in files:
            record = self.load_module(file_path)
            if record is not None:
                modules[record.path] = record
        logger.info(
            "Modules: %d files, %d parsed, %d from store, %d failed",
            self.stats.files, self.stats.parsed, self.stats.cached, self.stats.failed,
        )
        return modules

    def resolver(self) -> CallGraphResolver:
        if self._resolver is None:
            self._resolver = CallGraphResolver(
                self.build_module_map(),
                root_prefix=self.root_prefix,
                entry_prefix=self.entry_prefix,
            )
        return self._resolver

    def run(self, entity: Optional[str] = None, report_path: Optional[Path] = None) -> ResolveReport:
        report = self.resolver().resolve(entity=entity)
        write_report(report.entrypoints, report_path or config.REPORT_FILE)
        return report

    def callers(self, module: str, method: str) -> CallerMap:
        return self.resolver().find_callers(module, [method])


def write_report(modules: List[str], path: Path) -> Path:
    """Write one module path per line."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(modules), encoding="utf-8")
    logger.info("Wrote %d entry points to %s", len(modules), path)
    return path
